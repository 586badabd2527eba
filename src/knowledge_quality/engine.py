"""
engine.py — Orchestrates the quality components against a store.

Every operation starts from a fresh store.fetch_all() snapshot; nothing
computed is kept between calls. The only state is a lock that keeps
auto-resolve runs on this engine from overlapping, since two concurrent
runs would both detect the same pairs.

Usage:
    from knowledge_quality import QualityEngine, InMemoryStore

    engine = QualityEngine(InMemoryStore(records))
    report = await engine.auto_resolve_contradictions()
    insights = await engine.generate_insights()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from knowledge_quality import contradiction
from knowledge_quality.clustering import Cluster, cluster_records
from knowledge_quality.config import ClusterOptions, ContradictionOptions, EngineConfig
from knowledge_quality.contradiction import (
    AutoResolveReport,
    ConflictMatch,
    ContradictionCandidate,
    Resolution,
    SupersededEntry,
)
from knowledge_quality.insights import (
    AntiPattern,
    Insight,
    TagSuggestion,
    detect_anti_patterns,
    generate_insights,
    suggest_tags,
)
from knowledge_quality.patterns import FrequencyReport, analyze_frequency
from knowledge_quality.store import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass
class InsightReport:
    insights: List[Insight] = field(default_factory=list)
    anti_patterns: List[AntiPattern] = field(default_factory=list)
    tag_suggestions: List[TagSuggestion] = field(default_factory=list)
    clusters: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            'total_insights': len(self.insights),
            'critical_insights': sum(1 for i in self.insights
                                     if i.priority == 'critical'),
            'anti_patterns_found': len(self.anti_patterns),
            'clusters_detected': len(self.clusters),
            'tag_suggestions_count': len(self.tag_suggestions),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'insights': [i.to_dict() for i in self.insights],
            'anti_patterns': [a.to_dict() for a in self.anti_patterns],
            'tag_suggestions': [t.to_dict() for t in self.tag_suggestions],
            'clusters': list(self.clusters),
            'summary': self.summary,
        }


class QualityEngine:
    """
    Knowledge quality operations over one record collection.

    Options arguments default to the engine config. They are validated
    when constructed (see config.py), not here.
    """

    def __init__(self, store: KnowledgeStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()
        self._resolve_lock = asyncio.Lock()

    # -----------------------------------------------------------------------
    # Contradictions
    # -----------------------------------------------------------------------

    async def detect_contradictions(
        self, options: Optional[ContradictionOptions] = None,
    ) -> List[ContradictionCandidate]:
        records = await self.store.fetch_all()
        return contradiction.detect_contradictions(
            records, options or self.config.contradiction)

    async def resolve_contradiction(self, candidate: ContradictionCandidate) -> Resolution:
        return await contradiction.resolve_one(self.store, candidate)

    async def auto_resolve_contradictions(
        self, options: Optional[ContradictionOptions] = None,
    ) -> AutoResolveReport:
        if self._resolve_lock.locked():
            logger.info('Auto-resolve already running; waiting for it to finish')
        async with self._resolve_lock:
            return await contradiction.auto_resolve(
                self.store, options or self.config.contradiction)

    async def superseded_history(self) -> List[SupersededEntry]:
        records = await self.store.fetch_all()
        return contradiction.superseded_history(records)

    async def find_potential_conflicts(
        self, content: str, embedding: Sequence[float],
        threshold: Optional[float] = None,
    ) -> List[ConflictMatch]:
        records = await self.store.fetch_all()
        if threshold is None:
            threshold = self.config.conflict_threshold
        return contradiction.find_conflicts(records, content, embedding, threshold)

    # -----------------------------------------------------------------------
    # Structure
    # -----------------------------------------------------------------------

    async def cluster_knowledge(self, options: Optional[ClusterOptions] = None) -> List[Cluster]:
        records = await self.store.fetch_all()
        return cluster_records(records, options or self.config.clustering)

    async def analyze_patterns(self) -> FrequencyReport:
        records = await self.store.fetch_all()
        return analyze_frequency(records)

    async def generate_insights(self, options: Optional[ClusterOptions] = None) -> InsightReport:
        """Clusters, frequency stats, insights, anti-patterns and tag ideas from one snapshot."""
        records = await self.store.fetch_all()
        clusters = cluster_records(records, options or self.config.clustering)
        report = analyze_frequency(records)
        result = InsightReport(
            insights=generate_insights(clusters, report, records),
            anti_patterns=detect_anti_patterns(records),
            tag_suggestions=suggest_tags(clusters),
            clusters=[c.summary() for c in clusters],
        )
        logger.info('Insights: %s', result.summary)
        return result

    async def detect_anti_patterns(self) -> List[AntiPattern]:
        records = await self.store.fetch_all()
        return detect_anti_patterns(records)

    async def suggest_tags(self, options: Optional[ClusterOptions] = None) -> List[TagSuggestion]:
        records = await self.store.fetch_all()
        return suggest_tags(cluster_records(records, options or self.config.clustering))
