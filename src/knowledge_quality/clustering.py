"""
clustering.py — Single-pass greedy clustering seeded by usage.

Records are walked in access_count order, most-used first. Each record
not yet assigned opens a cluster and becomes its centroid; every other
unassigned record whose similarity to that centroid reaches the
threshold joins it. Membership is centroid-only: members are never
compared with each other, so a loose record can sit in a tight cluster.

Cost is O(n²) in the worst case, cut short once max_clusters clusters
have been kept.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from knowledge_quality.config import ClusterOptions
from knowledge_quality.records import KnowledgeRecord, kind_value
from knowledge_quality.similarity import similarity_matrix, stack_embeddings

logger = logging.getLogger(__name__)


@dataclass
class Cluster:
    centroid: KnowledgeRecord
    members: List[KnowledgeRecord] = field(default_factory=list)
    kinds: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def avg_confidence(self) -> float:
        if not self.members:
            return 0.0
        return sum(m.confidence for m in self.members) / len(self.members)

    @property
    def avg_access_count(self) -> float:
        if not self.members:
            return 0.0
        return sum(m.access_count for m in self.members) / len(self.members)

    def add(self, record: KnowledgeRecord):
        self.members.append(record)
        self.kinds.add(kind_value(record))
        self.tags.update(record.tags)

    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    def summary(self, preview: int = 100) -> Dict[str, Any]:
        return {
            'size': self.size,
            'kinds': sorted(self.kinds),
            'tags': sorted(self.tags),
            'avg_confidence': self.avg_confidence,
            'centroid': {'id': self.centroid.id,
                         'content': self.centroid.content[:preview]},
        }

    def to_dict(self) -> Dict[str, Any]:
        out = self.summary()
        out['avg_access_count'] = self.avg_access_count
        out['members'] = self.member_ids()
        return out


def cluster_records(
    records: Sequence[KnowledgeRecord],
    options: Optional[ClusterOptions] = None,
) -> List[Cluster]:
    """Group similar records. Largest cluster first; ties keep discovery order."""
    opts = options or ClusterOptions()
    usable, matrix = stack_embeddings([r for r in records if not r.superseded])
    if not usable:
        return []

    # Stable sort: equal access counts keep input order
    order = sorted(range(len(usable)),
                   key=lambda i: usable[i].access_count, reverse=True)
    sims = similarity_matrix(matrix)

    clusters: List[Cluster] = []
    assigned = [False] * len(usable)

    for seed in order:
        if assigned[seed]:
            continue
        cluster = Cluster(centroid=usable[seed])
        cluster.add(usable[seed])
        assigned[seed] = True

        for cand in order:
            if assigned[cand]:
                continue
            if sims[seed, cand] >= opts.similarity_threshold:
                cluster.add(usable[cand])
                assigned[cand] = True

        if cluster.size >= opts.min_cluster_size:
            clusters.append(cluster)
        if len(clusters) >= opts.max_clusters:
            break

    clusters.sort(key=lambda c: c.size, reverse=True)
    logger.debug('Clustered %d records into %d clusters', len(usable), len(clusters))
    return clusters
