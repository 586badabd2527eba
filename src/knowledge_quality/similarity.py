"""
similarity.py — Vector primitives shared by every quality component.

Single pairs go through cosine_similarity(). All-pairs work stacks the
embeddings into one (n, d) matrix and does a single normalized matmul:
O(n² · d) arithmetic but in BLAS rather than a Python double loop.
"""

import logging
from collections import Counter
from typing import List, Sequence, Tuple

import numpy as np

from knowledge_quality.records import KnowledgeRecord

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors. 0.0 if either is zero."""
    if a is None or b is None or len(a) == 0 or len(b) == 0:
        raise ValueError('Invalid vectors for similarity calculation')
    if len(a) != len(b):
        raise ValueError(
            f'Vector length mismatch for similarity: {len(a)} vs {len(b)}'
        )
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def normalize(vec: Sequence[float]) -> np.ndarray:
    """Scale to unit length. A zero vector is returned unchanged."""
    arr = np.asarray(vec, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr
    return arr / norm


def similarity_matrix(vectors: np.ndarray) -> np.ndarray:
    """
    All-pairs cosine similarity for an (n, d) matrix. Returns (n, n).

    Zero rows stay zero after normalization, so they score 0.0 against
    everything (including themselves), matching cosine_similarity().
    """
    if vectors.size == 0:
        return np.zeros((vectors.shape[0], vectors.shape[0]), dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms == 0, 1.0, norms)
    unit = vectors / safe
    sims = unit @ unit.T
    return np.clip(sims, -1.0, 1.0)


def stack_embeddings(
    records: Sequence[KnowledgeRecord],
) -> Tuple[List[KnowledgeRecord], np.ndarray]:
    """
    Keep records usable for similarity work and stack their embeddings.

    A record is usable when it is well formed and has an embedding of the
    collection's dominant dimension. Anything else is an expected transient
    state (not yet embedded, re-embedded with another model) and is skipped.
    """
    candidates = [r for r in records if r.has_embedding and r.is_well_formed()]
    if not candidates:
        return [], np.zeros((0, 0), dtype=np.float64)

    dim = Counter(len(r.embedding) for r in candidates).most_common(1)[0][0]
    kept = []
    for r in candidates:
        if len(r.embedding) == dim:
            kept.append(r)
        else:
            logger.debug('Skipping record %s: embedding dim %d != %d',
                         r.id, len(r.embedding), dim)
    matrix = np.asarray([r.embedding for r in kept], dtype=np.float64)
    return kept, matrix
