"""Shared factories for the quality engine tests."""

import math
import itertools

import pytest

from knowledge_quality import InMemoryStore, Kind, KnowledgeRecord

NOW = 1_700_000_000.0
DAY = 24 * 60 * 60

_ids = itertools.count(1)


def make_record(record_id=None, content='Use Redis for caching', confidence=0.8,
                embedding=None, kind=Kind.SOLUTION, **kwargs) -> KnowledgeRecord:
    """Build a record with sensible defaults; any field can be overridden."""
    kwargs.setdefault('created_at', NOW - 100 * DAY)
    return KnowledgeRecord(
        id=record_id or f'r{next(_ids)}',
        kind=kind,
        content=content,
        confidence=confidence,
        embedding=embedding,
        **kwargs,
    )


def rotated(base, other, similarity):
    """
    Unit vector whose cosine with unit `base` is exactly `similarity`.
    `other` must be a unit vector orthogonal to `base`.
    """
    s = math.sqrt(1.0 - similarity ** 2)
    return [similarity * b + s * o for b, o in zip(base, other)]


@pytest.fixture
def store():
    return InMemoryStore()
