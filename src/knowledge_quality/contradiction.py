"""
contradiction.py — Semantic contradiction detection and resolution.

Two records contradict when their embeddings say they are about the same
thing (cosine >= threshold) but they disagree on how much to trust it
(|confidence delta| >= min delta). Resolution keeps both records: the
weaker one is marked superseded, loses 0.3 confidence (floored at 0.1),
and the winner gains an audit entry.

Detection is O(n²) over non-superseded, embedded records. The pair scan
runs on one similarity matrix, so a few thousand records take
milliseconds; only the emitted candidates are walked in Python.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from knowledge_quality.config import ContradictionOptions
from knowledge_quality.errors import (
    AlreadySupersededError,
    NotFoundError,
    QualityError,
)
from knowledge_quality.records import (
    KnowledgeRecord,
    SupersessionEntry,
    kind_value,
    well_formed,
)
from knowledge_quality.similarity import (
    cosine_similarity,
    similarity_matrix,
    stack_embeddings,
)
from knowledge_quality.store import KnowledgeStore

logger = logging.getLogger(__name__)

CONFIDENCE_PENALTY = 0.3
CONFIDENCE_FLOOR = 0.1


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ContradictionCandidate:
    a: str
    b: str
    similarity: float
    confidence_delta: float
    winner: str
    loser: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'a': self.a, 'b': self.b,
            'similarity': self.similarity,
            'confidence_delta': self.confidence_delta,
            'winner': self.winner, 'loser': self.loser,
            'reason': self.reason,
        }


@dataclass
class Resolution:
    winner: str
    loser: str
    resolved_at: float
    similarity: float
    original_confidence: float
    new_confidence: float
    reason: str
    action: str = 'superseded'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'winner': self.winner, 'loser': self.loser, 'action': self.action,
            'resolved_at': self.resolved_at, 'similarity': self.similarity,
            'original_confidence': self.original_confidence,
            'new_confidence': self.new_confidence, 'reason': self.reason,
        }


@dataclass
class AutoResolveReport:
    detected: int = 0
    resolved: int = 0
    failed: int = 0
    skipped: int = 0
    resolutions: List[Resolution] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'detected': self.detected,
            'resolved': self.resolved,
            'failed': self.failed,
            'skipped': self.skipped,
            'resolutions': [r.to_dict() for r in self.resolutions],
            'errors': [{'candidate': e['candidate'].to_dict(), 'error': e['error']}
                       for e in self.errors],
        }


@dataclass
class SupersededEntry:
    id: str
    content: str
    kind: str
    original_confidence: float
    current_confidence: float
    superseded_by: Optional[str]
    superseded_at: Optional[float]
    superseded_reason: Optional[str]
    superseded_by_record: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class ConflictMatch:
    record: KnowledgeRecord
    similarity: float
    recommendation: str
    same_content: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record': self.record.summary(),
            'similarity': self.similarity,
            'recommendation': self.recommendation,
            'same_content': self.same_content,
        }


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def describe_contradiction(a: KnowledgeRecord, b: KnowledgeRecord,
                           similarity: float, confidence_delta: float) -> str:
    """Deterministic, human-readable explanation of why a pair was flagged."""
    reasons = []
    if similarity > 0.95:
        reasons.append('Nearly identical content')
    elif similarity > 0.85:
        reasons.append('Highly similar content')

    if confidence_delta > 0.3:
        reasons.append('Large confidence difference')
    elif confidence_delta > 0.1:
        reasons.append('Moderate confidence difference')

    if a.verified != b.verified:
        reasons.append('Different verification status')
    if kind_value(a) != kind_value(b):
        reasons.append(f'Different kinds ({kind_value(a)} vs {kind_value(b)})')
    return ', '.join(reasons)


def pick_winner(a: KnowledgeRecord, b: KnowledgeRecord):
    """Higher confidence wins; on an exact tie the smaller id wins."""
    if a.confidence != b.confidence:
        return (a, b) if a.confidence > b.confidence else (b, a)
    return (a, b) if a.id <= b.id else (b, a)


def detect_contradictions(
    records: Sequence[KnowledgeRecord],
    options: Optional[ContradictionOptions] = None,
) -> List[ContradictionCandidate]:
    """
    Find near-duplicate pairs that disagree on confidence.

    Superseded, malformed and not-yet-embedded records are ignored.
    Related pairs (either direction) are never reported. Candidates come
    out in input order: (i, j) with i < j, rows first.
    """
    opts = options or ContradictionOptions()
    active = [r for r in records if not r.superseded]
    usable, matrix = stack_embeddings(active)
    n = len(usable)
    if n < 2:
        return []

    sims = similarity_matrix(matrix)
    rows, cols = np.nonzero(np.triu(sims >= opts.similarity_threshold, k=1))

    contradictions = []
    for i, j in zip(rows.tolist(), cols.tolist()):
        a, b = usable[i], usable[j]
        if opts.same_kind_only and kind_value(a) != kind_value(b):
            continue
        if a.is_related(b):
            continue
        delta = abs(a.confidence - b.confidence)
        if delta < opts.min_confidence_delta:
            continue
        similarity = float(sims[i, j])
        winner, loser = pick_winner(a, b)
        contradictions.append(ContradictionCandidate(
            a=a.id, b=b.id,
            similarity=similarity,
            confidence_delta=delta,
            winner=winner.id, loser=loser.id,
            reason=describe_contradiction(a, b, similarity, delta),
        ))

    logger.debug('Contradiction scan: %d records, %d candidates',
                 n, len(contradictions))
    return contradictions


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

async def resolve_one(store: KnowledgeStore, candidate: ContradictionCandidate,
                      now: Optional[float] = None) -> Resolution:
    """
    Supersede the candidate's loser with its winner.

    Both records are re-loaded from the store, so a candidate detected on
    an older snapshot is checked against current state. Raises
    NotFoundError if either record is gone and AlreadySupersededError if
    either one has already lost to something else.

    The loser is written first, then the winner's audit entry. If the
    winner write fails the loser's previous fields are written back before
    the error propagates.
    """
    winner = await store.get(candidate.winner)
    if winner is None:
        raise NotFoundError(candidate.winner)
    loser = await store.get(candidate.loser)
    if loser is None:
        raise NotFoundError(candidate.loser)
    if loser.superseded:
        raise AlreadySupersededError(loser.id, loser.superseded_by)
    if winner.superseded:
        raise AlreadySupersededError(winner.id, winner.superseded_by)

    resolved_at = time.time() if now is None else now
    new_confidence = max(CONFIDENCE_FLOOR, loser.confidence - CONFIDENCE_PENALTY)

    previous = {
        'superseded': loser.superseded,
        'superseded_by': loser.superseded_by,
        'superseded_at': loser.superseded_at,
        'superseded_reason': loser.superseded_reason,
        'original_confidence': loser.original_confidence,
        'confidence': loser.confidence,
    }
    await store.update_metadata(loser.id, {
        'superseded': True,
        'superseded_by': winner.id,
        'superseded_at': resolved_at,
        'superseded_reason': candidate.reason,
        'original_confidence': loser.confidence,
        'confidence': new_confidence,
    })
    supersedes = list(winner.supersedes)
    supersedes.append(SupersessionEntry(id=loser.id, reason=candidate.reason,
                                        resolved_at=resolved_at))
    try:
        await store.update_metadata(winner.id, {'supersedes': supersedes})
    except Exception:
        # A loser never points at a winner that lacks its audit entry
        try:
            await store.update_metadata(loser.id, previous)
        except Exception:
            logger.exception('Could not restore %s after failed write to %s',
                             loser.id, winner.id)
        raise

    logger.debug('Superseded %s by %s (%s)', loser.id, winner.id, candidate.reason)
    return Resolution(
        winner=winner.id,
        loser=loser.id,
        resolved_at=resolved_at,
        similarity=candidate.similarity,
        original_confidence=loser.confidence,
        new_confidence=new_confidence,
        reason=candidate.reason,
    )


async def auto_resolve(store: KnowledgeStore,
                       options: Optional[ContradictionOptions] = None,
                       now: Optional[float] = None) -> AutoResolveReport:
    """
    Detect over a fresh snapshot and resolve every candidate in turn.

    One bad pair never aborts the batch: lookup and store failures are
    collected in `errors`, and pairs whose records already lost earlier
    in the batch (or to a concurrent run) are counted as `skipped`.
    """
    records = await store.fetch_all()
    candidates = detect_contradictions([r for r in records if not r.superseded],
                                       options)
    report = AutoResolveReport(detected=len(candidates))

    for candidate in candidates:
        try:
            report.resolutions.append(await resolve_one(store, candidate, now=now))
        except AlreadySupersededError as e:
            logger.debug('Skipping %s/%s: %s', candidate.winner, candidate.loser, e)
            report.skipped += 1
        except QualityError as e:
            logger.warning('Failed to resolve %s/%s: %s',
                           candidate.winner, candidate.loser, e)
            report.errors.append({'candidate': candidate, 'error': str(e)})
        except Exception as e:
            # Store backends raise their own error types
            logger.exception('Store error resolving %s/%s',
                             candidate.winner, candidate.loser)
            report.errors.append({'candidate': candidate,
                                  'error': f'{type(e).__name__}: {e}'})

    report.resolved = len(report.resolutions)
    report.failed = len(report.errors)
    logger.info('Auto-resolve: %d detected, %d resolved, %d skipped, %d failed',
                report.detected, report.resolved, report.skipped, report.failed)
    return report


# ---------------------------------------------------------------------------
# History + pre-write checks
# ---------------------------------------------------------------------------

def superseded_history(records: Sequence[KnowledgeRecord]) -> List[SupersededEntry]:
    """Every superseded record, with a summary of the record that beat it."""
    records = well_formed(records)
    by_id = {r.id: r for r in records}
    history = []
    for r in records:
        if not r.superseded:
            continue
        winner = by_id.get(r.superseded_by) if r.superseded_by else None
        history.append(SupersededEntry(
            id=r.id,
            content=r.content,
            kind=kind_value(r),
            original_confidence=(r.original_confidence
                                 if r.original_confidence is not None
                                 else r.confidence),
            current_confidence=r.confidence,
            superseded_by=r.superseded_by,
            superseded_at=r.superseded_at,
            superseded_reason=r.superseded_reason,
            superseded_by_record=winner.summary() if winner else None,
        ))
    return history


def _normalized_text(text: str) -> str:
    return ' '.join(text.lower().split())


def find_conflicts(records: Sequence[KnowledgeRecord], content: str,
                   embedding: Sequence[float],
                   threshold: float = 0.85) -> List[ConflictMatch]:
    """
    Compare a not-yet-stored record against the active collection.

    Lets a caller update an existing record instead of creating one that
    would immediately be flagged as a contradiction.
    """
    if embedding is None or len(embedding) == 0:
        return []
    target = _normalized_text(content or '')
    conflicts = []
    for r in records:
        if r.superseded or not r.has_embedding or not r.is_well_formed():
            continue
        if len(r.embedding) != len(embedding):
            continue
        similarity = cosine_similarity(embedding, r.embedding)
        if similarity < threshold:
            continue
        conflicts.append(ConflictMatch(
            record=r,
            similarity=similarity,
            recommendation=(
                'Consider updating existing record instead of creating a new one'
                if similarity > 0.95 else 'Review for potential contradiction'
            ),
            same_content=bool(target) and _normalized_text(r.content) == target,
        ))
    conflicts.sort(key=lambda c: c.similarity, reverse=True)
    return conflicts
