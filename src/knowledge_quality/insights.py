"""
insights.py — Turn clusters and frequency stats into actionable findings.

Three outputs:
  - insights:      prioritized observations (critical > high > medium > low)
  - anti-patterns: structural quality problems across the collection
  - tag suggestions: candidate tags mined from cluster vocabulary
"""

from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from knowledge_quality.clustering import Cluster
from knowledge_quality.patterns import FrequencyReport
from knowledge_quality.records import Kind, KnowledgeRecord, kind_value, well_formed

PRIORITY_ORDER = {'critical': 0, 'high': 1, 'medium': 2, 'low': 3}

THEME_CLUSTER_SIZE = 5
RECURRING_ERROR_COUNT = 3
LOW_CONFIDENCE_KIND_AVG = 0.6
UNUSED_RATIO = 0.3
COMMON_TAG_COUNT = 3

DUPLICATE_KEY_LENGTH = 100
LOW_CONFIDENCE = 0.5
LOW_CONFIDENCE_RATIO = 0.2
UNTAGGED_RATIO = 0.3
UNSOLVED_ERROR_RATIO = 0.5
SAMPLE_SIZE = 10

TAG_CLUSTER_SIZE = 3
MIN_TOKEN_LENGTH = 4
STOPWORDS = frozenset({'this', 'that', 'with', 'from', 'have'})


@dataclass
class Insight:
    kind: str
    priority: str
    title: str
    description: str
    recommendation: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class AntiPattern:
    kind: str
    severity: str
    title: str
    description: str
    recommendation: str
    affected_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class TagSuggestion:
    suggested_tag: str
    alternatives: List[str]
    cluster_size: int
    confidence: float
    reason: str
    affected_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def _preview(text: str, length: int) -> str:
    return f'{text[:length]}...' if len(text) > length else text


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

def generate_insights(clusters: Sequence[Cluster], report: FrequencyReport,
                      records: Sequence[KnowledgeRecord]) -> List[Insight]:
    insights = []
    records = well_formed(records)

    for cluster in clusters:
        if cluster.size < THEME_CLUSTER_SIZE:
            continue
        insights.append(Insight(
            kind='cluster',
            priority='high',
            title=f'Common theme detected: {_preview(cluster.centroid.content, 50)}',
            description=(f'Found {cluster.size} related records with '
                         f'{cluster.avg_confidence * 100:.0f}% avg confidence'),
            recommendation=('Consider creating a reusable pattern or abstraction '
                            'for this common theme'),
            data={'cluster_size': cluster.size,
                  'kinds': sorted(cluster.kinds),
                  'tags': sorted(cluster.tags)[:5]},
        ))

    if report.error_patterns:
        top = report.error_patterns[0]
        if top.count >= RECURRING_ERROR_COUNT:
            insights.append(Insight(
                kind='error',
                priority='critical',
                title=f'Recurring error: {_preview(top.pattern, 60)}',
                description=f'This error has occurred {top.count} times',
                recommendation='Investigate root cause and implement permanent fix',
                data={'count': top.count, 'first_seen': top.first_seen,
                      'last_seen': top.last_seen, 'examples': list(top.examples)},
            ))

    temporal = report.temporal
    if temporal.trend == 'increasing':
        insights.append(Insight(
            kind='trend',
            priority='medium',
            title='Knowledge base growing rapidly',
            description=(f'{temporal.last_7_days} records added in last 7 days '
                         f'({temporal.avg_per_day:.1f}/day average)'),
            recommendation='Consider organizing knowledge with more tags and categories',
            data=temporal.to_dict(),
        ))

    low_kinds = sorted((c for c in report.confidence_by_kind
                        if c.avg < LOW_CONFIDENCE_KIND_AVG),
                       key=lambda c: c.avg)
    if low_kinds:
        lowest = low_kinds[0]
        insights.append(Insight(
            kind='quality',
            priority='medium',
            title=f'Low confidence in {lowest.kind} records',
            description=(f'Average confidence only {lowest.avg * 100:.0f}% for '
                         f'{lowest.count} {lowest.kind} records'),
            recommendation='Review and verify these records, or remove unreliable knowledge',
            data=lowest.to_dict(),
        ))

    unused = [r for r in records if r.access_count == 0]
    if records and len(unused) > len(records) * UNUSED_RATIO:
        pct = len(unused) / len(records) * 100
        insights.append(Insight(
            kind='usage',
            priority='low',
            title='Many records never accessed',
            description=(f'{len(unused)} of {len(records)} records ({pct:.0f}%) '
                         f'have never been accessed'),
            recommendation=('Consider archiving or improving discoverability of '
                            'unused knowledge'),
            data={'unused_count': len(unused), 'total_count': len(records),
                  'percentage': pct},
        ))

    cluster_tags: 'OrderedDict[str, None]' = OrderedDict()
    for cluster in clusters:
        for tag in sorted(cluster.tags):
            cluster_tags.setdefault(tag, None)
    common = [t for t in cluster_tags
              if report.tag_frequency.get(t, 0) >= COMMON_TAG_COUNT]
    if common:
        insights.append(Insight(
            kind='organization',
            priority='low',
            title='Frequently used tags detected',
            description=(f"Tags {', '.join(common[:3])} are used frequently "
                         f'across clusters'),
            recommendation='Consider creating dedicated categories for these common themes',
            data={'tags': common,
                  'frequencies': [{'tag': t, 'count': report.tag_frequency[t]}
                                  for t in common]},
        ))

    insights.sort(key=lambda i: PRIORITY_ORDER[i.priority])
    return insights


# ---------------------------------------------------------------------------
# Anti-patterns
# ---------------------------------------------------------------------------

def duplicate_groups(records: Sequence[KnowledgeRecord]) -> List[List[KnowledgeRecord]]:
    groups: 'OrderedDict[str, List[KnowledgeRecord]]' = OrderedDict()
    for r in records:
        key = r.content.lower().strip()[:DUPLICATE_KEY_LENGTH]
        groups.setdefault(key, []).append(r)
    return [g for g in groups.values() if len(g) > 1]


def errors_without_solutions(records: Sequence[KnowledgeRecord]) -> List[KnowledgeRecord]:
    """Error records with no related_ids link to a solution, in either direction."""
    errors = [r for r in records if kind_value(r) == Kind.ERROR.value]
    solutions = [r for r in records if kind_value(r) == Kind.SOLUTION.value]
    return [e for e in errors if not any(e.is_related(s) for s in solutions)]


def detect_anti_patterns(records: Sequence[KnowledgeRecord]) -> List[AntiPattern]:
    records = well_formed(records)
    found = []
    total = len(records)

    duplicates = duplicate_groups(records)
    if duplicates:
        found.append(AntiPattern(
            kind='duplication',
            severity='medium',
            title='Duplicate records detected',
            description=f'Found {len(duplicates)} groups of similar records',
            recommendation='Consolidate duplicate records to maintain a clean knowledge base',
            affected_ids=[r.id for group in duplicates for r in group],
        ))

    low = [r for r in records if r.confidence < LOW_CONFIDENCE]
    if len(low) > total * LOW_CONFIDENCE_RATIO:
        found.append(AntiPattern(
            kind='low_quality',
            severity='high',
            title='Excessive low-confidence records',
            description=f'{len(low)} records have confidence < 50%',
            recommendation='Review and improve or remove low-confidence knowledge',
            affected_ids=[r.id for r in low],
        ))

    untagged = [r for r in records if not r.tags]
    if len(untagged) > total * UNTAGGED_RATIO:
        found.append(AntiPattern(
            kind='organization',
            severity='low',
            title='Many untagged records',
            description=f'{len(untagged)} records have no tags',
            recommendation='Add tags to improve searchability and organization',
            affected_ids=[r.id for r in untagged][:SAMPLE_SIZE],
        ))

    n_errors = sum(1 for r in records if kind_value(r) == Kind.ERROR.value)
    unsolved = errors_without_solutions(records)
    if n_errors and len(unsolved) > n_errors * UNSOLVED_ERROR_RATIO:
        found.append(AntiPattern(
            kind='incomplete',
            severity='medium',
            title='Errors without solutions',
            description=f'{len(unsolved)} errors have no linked solution',
            recommendation='Link solutions to errors or document that they are unresolved',
            affected_ids=[r.id for r in unsolved][:SAMPLE_SIZE],
        ))

    return found


# ---------------------------------------------------------------------------
# Tag suggestions
# ---------------------------------------------------------------------------

def tokenize(text: str) -> List[str]:
    return [w for w in text.lower().split()
            if len(w) >= MIN_TOKEN_LENGTH and w not in STOPWORDS]


def suggest_tags(clusters: Sequence[Cluster]) -> List[TagSuggestion]:
    suggestions = []
    for cluster in clusters:
        if cluster.size < TAG_CLUSTER_SIZE:
            continue
        words: Counter = Counter()
        for member in cluster.members:
            words.update(tokenize(member.content))
        # most_common keeps first-seen order for equal counts
        top = [w for w, _ in words.most_common(3)]
        if not top:
            continue
        suggestions.append(TagSuggestion(
            suggested_tag=top[0],
            alternatives=top[1:],
            cluster_size=cluster.size,
            confidence=cluster.avg_confidence,
            reason=f'Found in {cluster.size} related records',
            affected_ids=cluster.member_ids(),
        ))
    return suggestions
