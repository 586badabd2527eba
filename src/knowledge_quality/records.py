"""
records.py — The unit of the knowledge collection.

A KnowledgeRecord is one short piece of knowledge (a decision, an error,
its solution, ...) with a confidence score and an externally produced
embedding. The engine never mutates records it was handed; all changes
go through the store's update_metadata().
"""

import logging
import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from knowledge_quality.errors import MalformedRecordError

logger = logging.getLogger(__name__)


class Kind(str, Enum):
    DECISION = 'decision'
    ERROR = 'error'
    SOLUTION = 'solution'
    PATTERN = 'pattern'
    INSIGHT = 'insight'


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class SupersessionEntry:
    id: str
    reason: str
    resolved_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'reason': self.reason,
                'resolved_at': self.resolved_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SupersessionEntry':
        return cls(id=str(data['id']), reason=data.get('reason', ''),
                   resolved_at=float(data.get('resolved_at', 0.0)))


@dataclass
class KnowledgeRecord:
    id: str
    kind: Kind
    content: str
    confidence: float = 0.5
    context: Optional[str] = None
    verified: bool = False
    tags: Set[str] = field(default_factory=set)
    embedding: Optional[List[float]] = None
    created_at: float = field(default_factory=time.time)
    last_accessed_at: Optional[float] = None
    access_count: int = 0
    related_ids: Set[str] = field(default_factory=set)

    # Supersession state, written only by the resolution engine
    superseded: bool = False
    superseded_by: Optional[str] = None
    superseded_at: Optional[float] = None
    superseded_reason: Optional[str] = None
    original_confidence: Optional[float] = None
    supersedes: List[SupersessionEntry] = field(default_factory=list)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0

    def is_related(self, other: 'KnowledgeRecord') -> bool:
        """True if either record explicitly links to the other."""
        return other.id in self.related_ids or self.id in other.related_ids

    def is_well_formed(self) -> bool:
        """Cheap structural check used to exclude records from every analysis."""
        if not self.id or not isinstance(self.content, str) or not self.content.strip():
            return False
        try:
            Kind(self.kind)
        except ValueError:
            return False
        if not isinstance(self.tags, (set, frozenset, list, tuple)):
            return False
        if not isinstance(self.related_ids, (set, frozenset, list, tuple)):
            return False
        for value in (self.confidence, self.created_at, self.access_count):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
        return 0.0 <= self.confidence <= 1.0

    def summary(self) -> Dict[str, Any]:
        return {'id': self.id, 'content': self.content,
                'kind': _kind_value(self.kind), 'confidence': self.confidence}

    # -----------------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': _kind_value(self.kind),
            'content': self.content,
            'context': self.context,
            'confidence': self.confidence,
            'verified': self.verified,
            'tags': sorted(self.tags),
            'embedding': list(self.embedding) if self.embedding is not None else None,
            'created_at': self.created_at,
            'last_accessed_at': self.last_accessed_at,
            'access_count': self.access_count,
            'related_ids': sorted(self.related_ids),
            'superseded': self.superseded,
            'superseded_by': self.superseded_by,
            'superseded_at': self.superseded_at,
            'superseded_reason': self.superseded_reason,
            'original_confidence': self.original_confidence,
            'supersedes': [s.to_dict() for s in self.supersedes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KnowledgeRecord':
        """Build a record from a plain dict, rejecting malformed input."""
        record_id = data.get('id')
        if not record_id:
            raise MalformedRecordError('Record is missing an id')
        content = data.get('content')
        if not content or not str(content).strip():
            raise MalformedRecordError(f'Record {record_id} has empty content')
        try:
            kind = Kind(data.get('kind'))
        except ValueError:
            raise MalformedRecordError(
                f"Record {record_id} has unknown kind {data.get('kind')!r}"
            ) from None
        confidence = float(data.get('confidence', 0.5))
        if not 0.0 <= confidence <= 1.0:
            raise MalformedRecordError(
                f'Record {record_id} confidence {confidence} outside [0, 1]'
            )

        embedding = data.get('embedding')
        return cls(
            id=str(record_id),
            kind=kind,
            content=str(content),
            confidence=confidence,
            context=data.get('context'),
            verified=bool(data.get('verified', False)),
            tags=set(data.get('tags') or []),
            embedding=[float(x) for x in embedding] if embedding else None,
            created_at=float(data.get('created_at') or time.time()),
            last_accessed_at=data.get('last_accessed_at'),
            access_count=int(data.get('access_count') or 0),
            related_ids=set(data.get('related_ids') or []),
            superseded=bool(data.get('superseded', False)),
            superseded_by=data.get('superseded_by'),
            superseded_at=data.get('superseded_at'),
            superseded_reason=data.get('superseded_reason'),
            original_confidence=data.get('original_confidence'),
            supersedes=[SupersessionEntry.from_dict(s)
                        for s in data.get('supersedes') or []],
        )


FIELD_NAMES = frozenset(f.name for f in fields(KnowledgeRecord))


def _kind_value(kind) -> str:
    return kind.value if isinstance(kind, Kind) else str(kind)


def kind_value(record: KnowledgeRecord) -> str:
    """Plain string kind, tolerant of records built with a raw str."""
    return _kind_value(record.kind)


def well_formed(records: Iterable[KnowledgeRecord]) -> List[KnowledgeRecord]:
    """Drop records with missing or mistyped fields, keeping input order."""
    kept = []
    for r in records:
        if r.is_well_formed():
            kept.append(r)
        else:
            logger.debug('Skipping malformed record %r', getattr(r, 'id', None))
    return kept
