"""
patterns.py — Frequency statistics over the whole collection.

Recurring errors and decisions are found by phrasing, not by embedding:
two records belong to the same pattern when their first 50 lower-cased
characters match. Cheap, and good enough to surface copy-pasted error
messages and re-made decisions.
"""

import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from knowledge_quality.records import Kind, KnowledgeRecord, kind_value, well_formed

PATTERN_KEY_LENGTH = 50
MIN_PATTERN_COUNT = 2
TOP_PATTERNS = 10
DAY_SECONDS = 24 * 60 * 60


@dataclass
class RecurringPattern:
    pattern: str
    count: int = 0
    first_seen: Optional[float] = None
    last_seen: Optional[float] = None
    avg_confidence: float = 0.0
    examples: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class TemporalStats:
    last_7_days: int = 0
    last_30_days: int = 0
    last_90_days: int = 0
    avg_per_day: float = 0.0
    trend: str = 'decreasing'

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class KindConfidence:
    kind: str
    avg: float
    min: float
    max: float
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class FrequencyReport:
    error_patterns: List[RecurringPattern] = field(default_factory=list)
    decision_patterns: List[RecurringPattern] = field(default_factory=list)
    tag_frequency: Dict[str, int] = field(default_factory=dict)
    kind_distribution: Dict[str, int] = field(default_factory=dict)
    temporal: TemporalStats = field(default_factory=TemporalStats)
    confidence_by_kind: List[KindConfidence] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_patterns': [p.to_dict() for p in self.error_patterns],
            'decision_patterns': [p.to_dict() for p in self.decision_patterns],
            'tag_frequency': dict(self.tag_frequency),
            'kind_distribution': dict(self.kind_distribution),
            'temporal': self.temporal.to_dict(),
            'confidence_by_kind': [c.to_dict() for c in self.confidence_by_kind],
        }


def pattern_key(content: str) -> str:
    return content.lower()[:PATTERN_KEY_LENGTH]


def recurring_patterns(records: Sequence[KnowledgeRecord]) -> List[RecurringPattern]:
    """Group by phrasing; keep groups seen at least twice, most frequent first."""
    groups: 'OrderedDict[str, RecurringPattern]' = OrderedDict()
    confidences: Dict[str, List[float]] = {}

    for r in records:
        key = pattern_key(r.content)
        p = groups.get(key)
        if p is None:
            p = groups[key] = RecurringPattern(pattern=r.content,
                                               first_seen=r.created_at,
                                               last_seen=r.created_at)
            confidences[key] = []
        p.count += 1
        p.first_seen = min(p.first_seen, r.created_at)
        p.last_seen = max(p.last_seen, r.created_at)
        p.examples.append(r.id)
        confidences[key].append(r.confidence)

    for key, p in groups.items():
        p.avg_confidence = sum(confidences[key]) / len(confidences[key])

    recurring = [p for p in groups.values() if p.count >= MIN_PATTERN_COUNT]
    recurring.sort(key=lambda p: p.count, reverse=True)
    return recurring[:TOP_PATTERNS]


def temporal_stats(records: Sequence[KnowledgeRecord], now: float) -> TemporalStats:
    def created_within(days: int) -> int:
        cutoff = now - days * DAY_SECONDS
        return sum(1 for r in records if r.created_at > cutoff)

    last_7, last_30, last_90 = created_within(7), created_within(30), created_within(90)
    avg_per_day = last_30 / 30
    return TemporalStats(
        last_7_days=last_7,
        last_30_days=last_30,
        last_90_days=last_90,
        avg_per_day=avg_per_day,
        trend='increasing' if last_7 > avg_per_day * 7 else 'decreasing',
    )


def confidence_by_kind(records: Sequence[KnowledgeRecord]) -> List[KindConfidence]:
    by_kind: Dict[str, List[float]] = OrderedDict()
    for r in records:
        by_kind.setdefault(kind_value(r), []).append(r.confidence)
    return [
        KindConfidence(kind=k, avg=sum(v) / len(v), min=min(v), max=max(v),
                       count=len(v))
        for k, v in by_kind.items()
    ]


def analyze_frequency(records: Sequence[KnowledgeRecord],
                      now: Optional[float] = None) -> FrequencyReport:
    """Recurring phrasings, tag/kind histograms, growth trend, confidence by kind."""
    now = time.time() if now is None else now
    records = well_formed(records)

    tag_counts: Counter = Counter()
    for r in records:
        tag_counts.update(r.tags)

    return FrequencyReport(
        error_patterns=recurring_patterns(
            [r for r in records if kind_value(r) == Kind.ERROR.value]),
        decision_patterns=recurring_patterns(
            [r for r in records if kind_value(r) == Kind.DECISION.value]),
        tag_frequency=dict(tag_counts),
        kind_distribution=dict(Counter(kind_value(r) for r in records)),
        temporal=temporal_stats(records, now),
        confidence_by_kind=confidence_by_kind(records),
    )
