"""
Knowledge Quality — keeps a knowledge collection consistent and finds structure in it.

Usage:
    from knowledge_quality import QualityEngine, InMemoryStore, KnowledgeRecord

    store = InMemoryStore(records)
    engine = QualityEngine(store)

    candidates = await engine.detect_contradictions()
    report = await engine.auto_resolve_contradictions()
    insights = await engine.generate_insights()
"""

import logging

__version__ = "1.0.0"

from knowledge_quality.errors import (
    QualityError,
    NotFoundError,
    AlreadySupersededError,
    MalformedRecordError,
    InvalidOptionsError,
)
from knowledge_quality.records import Kind, KnowledgeRecord, SupersessionEntry
from knowledge_quality.config import (
    ClusterOptions,
    ContradictionOptions,
    EngineConfig,
    load_config,
)
from knowledge_quality.similarity import cosine_similarity, normalize
from knowledge_quality.contradiction import (
    ContradictionCandidate,
    Resolution,
    AutoResolveReport,
    detect_contradictions,
    resolve_one,
    auto_resolve,
    superseded_history,
    find_conflicts,
)
from knowledge_quality.clustering import Cluster, cluster_records
from knowledge_quality.patterns import FrequencyReport, analyze_frequency
from knowledge_quality.insights import (
    detect_anti_patterns,
    generate_insights,
    suggest_tags,
)
from knowledge_quality.store import InMemoryStore, KnowledgeStore
from knowledge_quality.engine import InsightReport, QualityEngine

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "QualityEngine",
    "InsightReport",
    "KnowledgeStore",
    "InMemoryStore",
    "Kind",
    "KnowledgeRecord",
    "SupersessionEntry",
    "ContradictionOptions",
    "ClusterOptions",
    "EngineConfig",
    "load_config",
    "cosine_similarity",
    "normalize",
    "ContradictionCandidate",
    "Resolution",
    "AutoResolveReport",
    "detect_contradictions",
    "resolve_one",
    "auto_resolve",
    "superseded_history",
    "find_conflicts",
    "Cluster",
    "cluster_records",
    "FrequencyReport",
    "analyze_frequency",
    "generate_insights",
    "detect_anti_patterns",
    "suggest_tags",
    "QualityError",
    "NotFoundError",
    "AlreadySupersededError",
    "MalformedRecordError",
    "InvalidOptionsError",
]
