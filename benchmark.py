"""
benchmark.py — Scaling benchmark for the knowledge quality engine.

Three claims to support:

  Claim 1: Contradiction detection stays interactive at a few thousand records
    All-pairs detection is O(n²) but runs as one matrix product.
    Latency vs N, plus candidates found vs planted.

  Claim 2: Clustering cost is bounded by max_clusters
    Greedy centroid clustering stops once enough clusters are kept.
    Latency vs N for several max_clusters settings.

  Claim 3: Auto-resolve recovers planted contradictions
    Plant near-duplicate pairs with a confidence gap, run auto-resolve,
    check every planted loser ends up superseded by its partner and no
    record is superseded twice.

Run all:        python benchmark.py
Run one claim:  python benchmark.py --claim 1
"""

import asyncio
import argparse
import time
from pathlib import Path
from typing import List, Tuple

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from knowledge_quality import (
    ClusterOptions,
    InMemoryStore,
    Kind,
    KnowledgeRecord,
    QualityEngine,
    cluster_records,
    detect_contradictions,
)
from knowledge_quality.config import configure_logging

FIGDIR = Path(__file__).parent / 'benchmark_figures'
DARK_BG = '#0f1219'; DARK_AXES = '#0a0e17'
C0, C1, C2, C3 = '#00d4ff', '#ff6b35', '#2ecc71', '#e74c3c'
DIM = 384
KINDS = list(Kind)

def style(ax, title=''):
    ax.set_facecolor(DARK_AXES)
    ax.tick_params(colors='#9ca3af')
    ax.xaxis.label.set_color('#9ca3af')
    ax.yaxis.label.set_color('#9ca3af')
    if title: ax.set_title(title, color='white', fontsize=10)
    for s in ax.spines.values(): s.set_color('#2d3748')

def save_fig(fig, name):
    FIGDIR.mkdir(parents=True, exist_ok=True)
    fig.patch.set_facecolor(DARK_BG)
    p = FIGDIR / name
    plt.savefig(p, dpi=150, bbox_inches='tight', facecolor=DARK_BG)
    plt.close(fig)
    print(f"  → {p}")


# ---------------------------------------------------------------------------
# Synthetic collection
# Topics are random unit directions; records scatter around their topic
# at about 0.8 cosine to each other: close enough to cluster at 0.75,
# far enough that unplanted pairs stay below the 0.85 detection threshold.
# ---------------------------------------------------------------------------

def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v)

def build_records(n: int, n_topics: int = 20, n_planted: int = 0,
                  seed: int = 42) -> Tuple[List[KnowledgeRecord], List[Tuple[str, str]]]:
    """
    n background records plus n_planted contradicting pairs.
    Returns (records, [(winner_id, loser_id), ...]) for the planted pairs.
    """
    rng = np.random.default_rng(seed)
    topics = [_unit(rng.normal(size=DIM)) for _ in range(n_topics)]

    records = []
    for i in range(n):
        t = i % n_topics
        vec = _unit(topics[t] + rng.normal(scale=0.025, size=DIM))
        records.append(KnowledgeRecord(
            id=f'bg-{i}',
            kind=KINDS[i % len(KINDS)],
            content=f'topic {t} note {i}',
            confidence=float(rng.uniform(0.6, 0.8)),
            tags={f'topic-{t}'},
            embedding=vec.tolist(),
            access_count=int(rng.integers(0, 20)),
        ))

    planted = []
    for j in range(n_planted):
        base = _unit(rng.normal(size=DIM))
        twin = _unit(base + rng.normal(scale=0.01, size=DIM))
        winner, loser = f'win-{j}', f'lose-{j}'
        records.append(KnowledgeRecord(id=winner, kind=Kind.DECISION,
                                       content=f'decision {j}: keep',
                                       confidence=0.9, embedding=base.tolist()))
        records.append(KnowledgeRecord(id=loser, kind=Kind.DECISION,
                                       content=f'decision {j}: replace',
                                       confidence=0.5, embedding=twin.tolist()))
        planted.append((winner, loser))
    return records, planted

def timed(fn, *args, repeats: int = 3, **kwargs):
    lats, out = [], None
    for _ in range(repeats):
        t0 = time.perf_counter()
        out = fn(*args, **kwargs)
        lats.append((time.perf_counter() - t0) * 1000)
    return out, float(np.median(lats))


# ---------------------------------------------------------------------------
# Claim 1: Detection latency vs N
# ---------------------------------------------------------------------------

def claim1_detection_latency():
    print("\n── Claim 1: Contradiction detection vs N ──")
    scales = [100, 250, 500, 1000, 2000, 4000]
    n_planted = 10

    results = {}
    for n in scales:
        records, planted = build_records(n, n_planted=n_planted)
        found, ms = timed(detect_contradictions, records)
        hits = {(c.winner, c.loser) for c in found} & set(planted)
        results[n] = {'ms': ms, 'found': len(found), 'planted_hit': len(hits)}
        r = results[n]
        print(f"  N={n:5d}: {r['ms']:8.1f}ms  candidates={r['found']:4d}  "
              f"planted recovered={r['planted_hit']}/{n_planted}")

    fig, axes = plt.subplots(1, 2, figsize=(12, 4))

    ax = axes[0]
    ns = scales
    ax.plot(ns, [results[n]['ms'] for n in ns], 'o-', color=C0, lw=2.5, ms=6,
            label='detect_contradictions')
    ref = results[ns[0]]['ms']
    ax.plot(ns, [ref * (n / ns[0]) ** 2 for n in ns], ':', color='white',
            alpha=0.4, label='O(n²) reference')
    ax.set_xscale('log'); ax.set_yscale('log')
    ax.set_xlabel('N records'); ax.set_ylabel('Latency (ms)')
    ax.legend(fontsize=8)
    style(ax, 'Detection Latency vs N')

    ax = axes[1]
    ax.bar(range(len(ns)), [results[n]['found'] for n in ns], color=C1, alpha=0.85,
           label='candidates')
    ax.bar(range(len(ns)), [results[n]['planted_hit'] for n in ns], color=C2,
           alpha=0.85, label='planted recovered')
    ax.set_xticks(range(len(ns)))
    ax.set_xticklabels([f'{n}' for n in ns], fontsize=8)
    ax.set_xlabel('N records'); ax.set_ylabel('Pairs')
    ax.legend(fontsize=8)
    style(ax, 'Candidates vs Planted Pairs')

    fig.suptitle('Claim 1: Contradiction Detection at Scale', color='white',
                 fontsize=13, fontweight='bold')
    plt.tight_layout(rect=[0, 0, 1, 0.93])
    save_fig(fig, 'claim1_detection.png')
    return results


# ---------------------------------------------------------------------------
# Claim 2: Clustering latency vs N and max_clusters
# ---------------------------------------------------------------------------

def claim2_clustering_latency():
    print("\n── Claim 2: Clustering vs N ──")
    scales = [100, 250, 500, 1000, 2000, 4000]
    caps = [5, 10, 50]

    results = {cap: {} for cap in caps}
    for n in scales:
        records, _ = build_records(n)
        line = [f"  N={n:5d}:"]
        for cap in caps:
            opts = ClusterOptions(max_clusters=cap)
            clusters, ms = timed(cluster_records, records, opts)
            results[cap][n] = {'ms': ms, 'clusters': len(clusters),
                               'largest': clusters[0].size if clusters else 0}
            line.append(f"cap={cap:2d} {ms:7.1f}ms ({len(clusters)} clusters)")
        print("  ".join(line))

    fig, axes = plt.subplots(1, 2, figsize=(12, 4))

    ax = axes[0]
    for cap, color in zip(caps, (C0, C1, C2)):
        ax.plot(scales, [results[cap][n]['ms'] for n in scales], 'o-', color=color,
                lw=2, ms=5, label=f'max_clusters={cap}')
    ax.set_xscale('log'); ax.set_yscale('log')
    ax.set_xlabel('N records'); ax.set_ylabel('Latency (ms)')
    ax.legend(fontsize=8)
    style(ax, 'Clustering Latency vs N')

    ax = axes[1]
    cap = caps[1]
    ax.bar(range(len(scales)), [results[cap][n]['largest'] for n in scales],
           color=C3, alpha=0.85)
    ax.set_xticks(range(len(scales)))
    ax.set_xticklabels([f'{n}' for n in scales], fontsize=8)
    ax.set_xlabel('N records'); ax.set_ylabel('Members')
    style(ax, f'Largest Cluster Size (max_clusters={cap})')

    fig.suptitle('Claim 2: Greedy Clustering Cost', color='white',
                 fontsize=13, fontweight='bold')
    plt.tight_layout(rect=[0, 0, 1, 0.93])
    save_fig(fig, 'claim2_clustering.png')
    return results


# ---------------------------------------------------------------------------
# Claim 3: Auto-resolve correctness
# ---------------------------------------------------------------------------

async def _resolve_and_check(n: int, n_planted: int):
    records, planted = build_records(n, n_planted=n_planted, seed=n)
    store = InMemoryStore(records)
    engine = QualityEngine(store)

    t0 = time.perf_counter()
    report = await engine.auto_resolve_contradictions()
    ms = (time.perf_counter() - t0) * 1000

    after = {r.id: r for r in await store.fetch_all()}
    correct = sum(1 for w, l in planted if after[l].superseded_by == w)
    # Every superseded record has exactly one winner, and winners never lost
    winners = {r.superseded_by for r in after.values() if r.superseded}
    forest = all(not after[w].superseded for w in winners if w in after)
    return {'ms': ms, 'resolved': report.resolved, 'skipped': report.skipped,
            'failed': report.failed, 'correct': correct, 'forest': forest}

def claim3_auto_resolve():
    print("\n── Claim 3: Auto-resolve recovers planted pairs ──")
    settings = [(200, 10), (500, 25), (1000, 50), (2000, 100)]

    results = {}
    for n, k in settings:
        r = results[n] = asyncio.run(_resolve_and_check(n, k))
        print(f"  N={n:5d} planted={k:3d}: resolved={r['resolved']:3d} "
              f"correct={r['correct']:3d} skipped={r['skipped']} failed={r['failed']} "
              f"forest={'ok' if r['forest'] else 'BROKEN'}  {r['ms']:.1f}ms")

    fig, ax = plt.subplots(1, 1, figsize=(6, 4))
    ns = [n for n, _ in settings]
    ax.bar(range(len(ns)), [k for _, k in settings], color=C1, alpha=0.5,
           label='planted')
    ax.bar(range(len(ns)), [results[n]['correct'] for n in ns], color=C2,
           alpha=0.85, label='resolved correctly')
    ax.set_xticks(range(len(ns)))
    ax.set_xticklabels([f'{n}' for n in ns], fontsize=8)
    ax.set_xlabel('N background records'); ax.set_ylabel('Pairs')
    ax.legend(fontsize=8)
    style(ax, 'Planted Contradictions Resolved')

    fig.suptitle('Claim 3: Auto-Resolve Correctness', color='white',
                 fontsize=13, fontweight='bold')
    plt.tight_layout(rect=[0, 0, 1, 0.93])
    save_fig(fig, 'claim3_auto_resolve.png')
    return results


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

ALL = {1: claim1_detection_latency,
       2: claim2_clustering_latency,
       3: claim3_auto_resolve}

def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--claim', nargs='*', type=int, default=None)
    parser.add_argument('--log-level', default='WARNING')
    args = parser.parse_args()
    configure_logging(args.log_level)
    claims = args.claim if args.claim else sorted(ALL.keys())

    print(f"\n=== Knowledge Quality Benchmark (claims: {claims}) ===")
    t0 = time.time()
    for c in claims:
        if c in ALL:
            ALL[c]()
    print(f"\nTotal: {time.time()-t0:.1f}s  Figures: {FIGDIR}/")

if __name__ == '__main__':
    main()
