"""
examples/demo.py — Knowledge quality engine in action

Walks one small project knowledge base through the whole engine:
spot contradicting records, resolve them, check a new record for
conflicts before storing it, then mine clusters, patterns and insights.

No embedding model required. Vectors are built by hand so that the
similarities are easy to reason about.
"""

import asyncio

import numpy as np

from knowledge_quality import InMemoryStore, Kind, KnowledgeRecord, QualityEngine
from knowledge_quality.config import configure_logging, load_config

DIM = 32
rng = np.random.default_rng(7)

TOPICS = {name: rng.normal(size=DIM) for name in ('cache', 'auth', 'db', 'deploy')}


def embed(topic: str, jitter: float = 0.15):
    """Topic direction plus noise, so records on one topic land close together."""
    v = TOPICS[topic] / np.linalg.norm(TOPICS[topic])
    v = v + rng.normal(scale=jitter / np.sqrt(DIM), size=DIM)
    return (v / np.linalg.norm(v)).tolist()


def record(rid, kind, content, topic, confidence=0.8, jitter=0.15, **kwargs):
    return KnowledgeRecord(id=rid, kind=kind, content=content, confidence=confidence,
                           embedding=embed(topic, jitter), **kwargs)


RECORDS = [
    record('cache-1', Kind.DECISION, 'Use Redis for session caching with a 1 hour TTL',
           'cache', 0.9, jitter=0.02, tags={'redis', 'cache'}, verified=True,
           access_count=12),
    record('cache-2', Kind.DECISION, 'Use Memcached for session caching',
           'cache', 0.55, jitter=0.02, tags={'cache'}, access_count=2),
    record('cache-3', Kind.SOLUTION, 'Redis cache warmup script runs after every deploy',
           'cache', 0.8, jitter=0.6, tags={'redis'}, access_count=4),
    record('auth-1', Kind.DECISION, 'JWT tokens expire after 24 hours',
           'auth', 0.85, tags={'auth', 'jwt'}, access_count=9),
    record('auth-2', Kind.PATTERN, 'Rotate the JWT signing secret monthly',
           'auth', 0.7, jitter=0.6, tags={'auth'}, access_count=3),
    record('db-err-1', Kind.ERROR, 'Connection pool exhausted under load on primary',
           'db', 0.7, tags={'db'}),
    record('db-err-2', Kind.ERROR, 'Connection pool exhausted under load on primary',
           'db', 0.6, jitter=0.6, tags={'db'}),
    record('db-err-3', Kind.ERROR, 'Connection pool exhausted under load on primary',
           'db', 0.65, jitter=0.6),
    record('db-fix', Kind.SOLUTION, 'Raise pgbouncer max connections to 50',
           'db', 0.75, jitter=0.6, tags={'db'}, related_ids={'db-err-1'}),
    record('deploy-1', Kind.INSIGHT, 'Blue-green deploys gave zero downtime',
           'deploy', 0.4),
]


async def main():
    configure_logging('WARNING')
    engine = QualityEngine(InMemoryStore(RECORDS), load_config())

    # ─── Stage 1: Find contradicting records ─────────────────────────────────

    print("=" * 60)
    print("Stage 1: Contradiction detection")
    print("=" * 60)

    candidates = await engine.detect_contradictions()
    for c in candidates:
        print(f"\n  {c.winner} beats {c.loser}  (sim={c.similarity:.3f}, "
              f"Δconf={c.confidence_delta:.2f})")
        print(f"    reason: {c.reason}")
    if not candidates:
        print("\n  No contradictions found.")

    # ─── Stage 2: Resolve them ───────────────────────────────────────────────

    print(f"\n{'=' * 60}")
    print("Stage 2: Auto-resolve")
    print("=" * 60)

    report = await engine.auto_resolve_contradictions()
    print(f"\n  detected={report.detected} resolved={report.resolved} "
          f"skipped={report.skipped} failed={report.failed}")

    for entry in await engine.superseded_history():
        print(f"  {entry.id}: {entry.original_confidence:.2f} → "
              f"{entry.current_confidence:.2f}, superseded by {entry.superseded_by}")

    left = await engine.detect_contradictions()
    print(f"\n  Contradictions remaining: {len(left)}")

    # ─── Stage 3: Check a new record before storing it ───────────────────────

    print(f"\n{'=' * 60}")
    print("Stage 3: Conflict check for a new record")
    print("=" * 60)

    draft = 'Use Redis for session caching with a 2 hour TTL'
    for m in await engine.find_potential_conflicts(draft, embed('cache', 0.02)):
        print(f"\n  {m.record.id} (sim={m.similarity:.3f}): {m.recommendation}")

    # ─── Stage 4: Structure, patterns and insights ───────────────────────────

    print(f"\n{'=' * 60}")
    print("Stage 4: Clusters, patterns, insights")
    print("=" * 60)

    print("\nClusters:")
    for cluster in await engine.cluster_knowledge():
        print(f"  [{cluster.size}] {cluster.centroid.content[:60]}  "
              f"kinds={sorted(cluster.kinds)}")

    patterns = await engine.analyze_patterns()
    print("\nRecurring errors:")
    for p in patterns.error_patterns:
        print(f"  {p.count}× {p.pattern[:60]}")
    print(f"Kinds: {patterns.kind_distribution}")

    insights = await engine.generate_insights()
    print("\nInsights:")
    for i in insights.insights:
        print(f"  [{i.priority:8s}] {i.title}")
    print("\nAnti-patterns:")
    for a in insights.anti_patterns:
        print(f"  [{a.severity:6s}] {a.title}: {a.description}")
    print("\nTag suggestions:")
    for t in insights.tag_suggestions:
        print(f"  {t.suggested_tag} (also {', '.join(t.alternatives)}) "
              f"for {t.cluster_size} records")

    print(f"\nSummary: {insights.summary}")


if __name__ == '__main__':
    asyncio.run(main())
