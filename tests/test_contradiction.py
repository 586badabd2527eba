"""Tests for contradiction detection and resolution."""

import pytest

from knowledge_quality import (
    AlreadySupersededError,
    ContradictionOptions,
    InMemoryStore,
    Kind,
    NotFoundError,
)
from knowledge_quality.contradiction import (
    ContradictionCandidate,
    auto_resolve,
    describe_contradiction,
    detect_contradictions,
    find_conflicts,
    resolve_one,
    superseded_history,
)

from conftest import NOW, make_record, rotated

E = [1.0, 0.0, 0.0, 0.0]
E_CLOSE = [0.99, 0.0, 0.0, 0.0]
F = [0.0, 0.0, 1.0, 0.0]
F_CLOSE = [0.0, 0.0, 0.99, 0.01]


def _pair(conf_a=0.9, conf_b=0.6, **kwargs):
    return [make_record('A', confidence=conf_a, embedding=E, **kwargs),
            make_record('B', confidence=conf_b, embedding=E_CLOSE, **kwargs)]


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class TestDetect:
    def test_similar_pair_with_confidence_gap(self):
        found = detect_contradictions(_pair())
        assert len(found) == 1
        c = found[0]
        assert (c.a, c.b) == ('A', 'B')
        assert (c.winner, c.loser) == ('A', 'B')
        assert c.similarity > 0.85
        assert c.confidence_delta == pytest.approx(0.3)

    def test_winner_is_higher_confidence_regardless_of_order(self):
        records = list(reversed(_pair()))
        c = detect_contradictions(records)[0]
        assert (c.a, c.b) == ('B', 'A')
        assert (c.winner, c.loser) == ('A', 'B')

    def test_related_pairs_never_flagged(self):
        forward = _pair()
        forward[0].related_ids = {'B'}
        assert detect_contradictions(forward) == []

        backward = _pair()
        backward[1].related_ids = {'A'}
        assert detect_contradictions(backward) == []

    def test_similarity_threshold(self):
        records = [make_record('A', confidence=0.9, embedding=[1, 0, 0, 0]),
                   make_record('B', confidence=0.6, embedding=[0.7, 0.7, 0, 0])]
        assert detect_contradictions(
            records, ContradictionOptions(similarity_threshold=0.95)) == []

    def test_min_confidence_delta(self):
        assert detect_contradictions(_pair(0.85, 0.80)) == []

    def test_same_kind_only(self):
        records = [make_record('A', confidence=0.9, embedding=E, kind=Kind.SOLUTION),
                   make_record('B', confidence=0.6, embedding=E_CLOSE, kind=Kind.PATTERN)]
        assert len(detect_contradictions(records)) == 1
        assert detect_contradictions(
            records, ContradictionOptions(same_kind_only=True)) == []

    def test_superseded_records_ignored(self):
        records = _pair()
        records[1].superseded = True
        records[1].superseded_by = 'A'
        assert detect_contradictions(records) == []

    def test_records_without_embedding_ignored(self):
        records = _pair()
        records[1].embedding = None
        assert detect_contradictions(records) == []

    def test_tie_goes_to_smaller_id(self):
        records = [make_record('zeta', confidence=0.7, embedding=E),
                   make_record('alpha', confidence=0.7, embedding=E_CLOSE)]
        c = detect_contradictions(
            records, ContradictionOptions(min_confidence_delta=0.0))[0]
        assert (c.winner, c.loser) == ('alpha', 'zeta')

    def test_empty_and_single(self):
        assert detect_contradictions([]) == []
        assert detect_contradictions(_pair()[:1]) == []

    def test_raising_thresholds_never_adds_candidates(self):
        base = [0.0, 1.0, 0.0, 0.0]
        records = [
            make_record('a', confidence=0.95, embedding=E),
            make_record('b', confidence=0.80, embedding=rotated(E, base, 0.97)),
            make_record('c', confidence=0.55, embedding=rotated(E, base, 0.9)),
            make_record('d', confidence=0.30, embedding=rotated(E, base, 0.8)),
            make_record('e', confidence=0.65, embedding=F),
        ]
        counts = [len(detect_contradictions(records, ContradictionOptions(
            similarity_threshold=t))) for t in (0.5, 0.7, 0.85, 0.9, 0.95, 1.0)]
        assert counts == sorted(counts, reverse=True)

        counts = [len(detect_contradictions(records, ContradictionOptions(
            similarity_threshold=0.5, min_confidence_delta=d)))
            for d in (0.0, 0.1, 0.2, 0.4, 0.6, 1.0)]
        assert counts == sorted(counts, reverse=True)


class TestReason:
    def test_nearly_identical_large_gap(self):
        a = make_record('a', confidence=0.9)
        b = make_record('b', confidence=0.5)
        assert describe_contradiction(a, b, 0.99, 0.4) == \
            'Nearly identical content, Large confidence difference'

    def test_highly_similar_moderate_gap_with_notes(self):
        a = make_record('a', kind=Kind.DECISION, verified=True)
        b = make_record('b', kind=Kind.PATTERN, verified=False)
        assert describe_contradiction(a, b, 0.9, 0.2) == (
            'Highly similar content, Moderate confidence difference, '
            'Different verification status, Different kinds (decision vs pattern)'
        )

    def test_detected_reason_uses_bands(self):
        base = [0.0, 1.0, 0.0, 0.0]
        records = [make_record('a', confidence=0.9, embedding=E),
                   make_record('b', confidence=0.7, embedding=rotated(E, base, 0.9))]
        c = detect_contradictions(records)[0]
        assert c.reason == 'Highly similar content, Moderate confidence difference'


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class _LossyStore(InMemoryStore):
    """Store that behaves as if some ids were deleted after detection."""

    def __init__(self, records, gone):
        super().__init__(records)
        self.gone = set(gone)

    async def get(self, record_id):
        if record_id in self.gone:
            return None
        return await super().get(record_id)


class TestResolveOne:
    @pytest.mark.asyncio
    async def test_supersedes_loser_and_records_audit_trail(self):
        store = InMemoryStore(_pair())
        candidate = detect_contradictions(await store.fetch_all())[0]

        result = await resolve_one(store, candidate, now=NOW)

        assert (result.winner, result.loser, result.action) == ('A', 'B', 'superseded')
        a, b = await store.get('A'), await store.get('B')
        assert b.superseded is True
        assert b.superseded_by == 'A'
        assert b.superseded_at == NOW
        assert b.superseded_reason == candidate.reason
        assert b.confidence == pytest.approx(0.3)
        assert b.original_confidence == pytest.approx(0.6)
        assert a.superseded is False
        assert a.confidence == pytest.approx(0.9)
        assert len(a.supersedes) == 1
        assert a.supersedes[0].id == 'B'
        assert a.supersedes[0].resolved_at == NOW

    @pytest.mark.asyncio
    async def test_confidence_floor(self):
        store = InMemoryStore(_pair(0.9, 0.25))
        candidate = detect_contradictions(await store.fetch_all())[0]
        result = await resolve_one(store, candidate)
        assert result.new_confidence == pytest.approx(0.1)
        assert (await store.get('B')).confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_missing_record_names_id(self):
        store = InMemoryStore(_pair())
        candidate = detect_contradictions(await store.fetch_all())[0]
        store.delete('B')
        with pytest.raises(NotFoundError, match='B'):
            await resolve_one(store, candidate)
        assert (await store.get('A')).supersedes == []

    @pytest.mark.asyncio
    async def test_already_superseded_loser_is_refused(self):
        store = InMemoryStore(_pair())
        candidate = detect_contradictions(await store.fetch_all())[0]
        await resolve_one(store, candidate)
        with pytest.raises(AlreadySupersededError):
            await resolve_one(store, candidate)
        assert (await store.get('B')).confidence == pytest.approx(0.3)
        assert len((await store.get('A')).supersedes) == 1


class TestAutoResolve:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self):
        records = _pair() + [make_record('C', confidence=0.8, embedding=F),
                             make_record('D', confidence=0.4, embedding=F_CLOSE)]
        store = _LossyStore(records, gone={'D'})

        report = await auto_resolve(store)

        assert report.detected == 2
        assert report.resolved == 1
        assert report.failed == 1
        assert report.resolutions[0].loser == 'B'
        assert report.errors[0]['candidate'].loser == 'D'
        assert 'D' in report.errors[0]['error']

    @pytest.mark.asyncio
    async def test_record_superseded_once_per_batch(self):
        store = InMemoryStore([
            make_record('A', confidence=0.9, embedding=E),
            make_record('B', confidence=0.7, embedding=E),
            make_record('C', confidence=0.5, embedding=E),
        ])

        report = await auto_resolve(store)

        assert report.detected == 3
        assert report.resolved == 2
        assert report.skipped == 1
        c = await store.get('C')
        assert c.superseded_by == 'A'
        assert c.confidence == pytest.approx(0.2)
        assert [s.id for s in (await store.get('A')).supersedes] == ['B', 'C']
        assert (await store.get('B')).supersedes == []

    @pytest.mark.asyncio
    async def test_earlier_winner_can_lose_later_in_same_run(self):
        store = InMemoryStore([
            make_record('B', confidence=0.6, embedding=E),
            make_record('C', confidence=0.3, embedding=E),
            make_record('A', confidence=0.9, embedding=E),
        ])

        report = await auto_resolve(store)

        assert (report.resolved, report.skipped) == (2, 1)
        b, c = await store.get('B'), await store.get('C')
        assert c.superseded_by == 'B'
        assert c.confidence == pytest.approx(0.1)
        assert b.superseded_by == 'A'
        assert [s.id for s in b.supersedes] == ['C']
        assert (await store.get('A')).superseded is False

    @pytest.mark.asyncio
    async def test_second_run_finds_nothing(self):
        store = InMemoryStore(_pair())
        first = await auto_resolve(store)
        second = await auto_resolve(store)
        assert first.resolved == 1
        assert second.detected == 0

    @pytest.mark.asyncio
    async def test_empty_store(self):
        report = await auto_resolve(InMemoryStore())
        assert report.to_dict() == {'detected': 0, 'resolved': 0, 'failed': 0,
                                    'skipped': 0, 'resolutions': [], 'errors': []}


# ---------------------------------------------------------------------------
# History + conflicts
# ---------------------------------------------------------------------------

class TestHistory:
    @pytest.mark.asyncio
    async def test_history_includes_winner_summary(self):
        store = InMemoryStore(_pair())
        await auto_resolve(store)

        history = superseded_history(await store.fetch_all())

        assert len(history) == 1
        entry = history[0]
        assert entry.id == 'B'
        assert entry.original_confidence == pytest.approx(0.6)
        assert entry.current_confidence == pytest.approx(0.3)
        assert entry.superseded_by_record['id'] == 'A'
        assert entry.superseded_by_record['kind'] == 'solution'

    def test_winner_deleted(self):
        loser = make_record('B', superseded=True, superseded_by='gone')
        entry = superseded_history([loser])[0]
        assert entry.superseded_by == 'gone'
        assert entry.superseded_by_record is None
        assert entry.original_confidence == loser.confidence

    def test_no_superseded(self):
        assert superseded_history(_pair()) == []


class TestFindConflicts:
    def test_sorted_with_recommendations(self):
        base = [0.0, 1.0, 0.0, 0.0]
        records = [
            make_record('mid', content='Cache sessions in Redis',
                        embedding=rotated(E, base, 0.9)),
            make_record('top', content='Use Redis for caching', embedding=E),
            make_record('low', embedding=rotated(E, base, 0.5)),
        ]
        matches = find_conflicts(records, 'use redis for  caching', E)
        assert [m.record.id for m in matches] == ['top', 'mid']
        assert matches[0].recommendation.startswith('Consider updating')
        assert matches[0].same_content is True
        assert matches[1].recommendation == 'Review for potential contradiction'
        assert matches[1].same_content is False

    def test_skips_superseded_and_unembedded(self):
        records = [make_record('old', embedding=E, superseded=True),
                   make_record('raw', embedding=None)]
        assert find_conflicts(records, 'x', E) == []

    def test_threshold(self):
        base = [0.0, 1.0, 0.0, 0.0]
        records = [make_record('r', embedding=rotated(E, base, 0.8))]
        assert find_conflicts(records, 'x', E) == []
        assert len(find_conflicts(records, 'x', E, threshold=0.75)) == 1

    def test_candidate_serializes(self):
        c = ContradictionCandidate('a', 'b', 0.9, 0.2, 'a', 'b', 'why')
        assert c.to_dict()['winner'] == 'a'


# ---------------------------------------------------------------------------
# Store failures + malformed input
# ---------------------------------------------------------------------------

class _FlakyStore(InMemoryStore):
    """Store whose backend errors on writes to some ids."""

    def __init__(self, records, broken, only_field=None):
        super().__init__(records)
        self.broken = set(broken)
        self.only_field = only_field

    async def update_metadata(self, record_id, fields):
        if record_id in self.broken and (self.only_field is None
                                         or self.only_field in fields):
            raise ConnectionError(f'backend hiccup on {record_id}')
        await super().update_metadata(record_id, fields)


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_backend_error_is_reported_not_raised(self):
        records = _pair() + [make_record('C', confidence=0.8, embedding=F),
                             make_record('D', confidence=0.4, embedding=F_CLOSE)]
        store = _FlakyStore(records, broken={'D'})

        report = await auto_resolve(store)

        assert (report.detected, report.resolved, report.failed) == (2, 1, 1)
        assert report.resolutions[0].loser == 'B'
        assert report.errors[0]['candidate'].loser == 'D'
        assert report.errors[0]['error'].startswith('ConnectionError')
        assert (await store.get('D')).superseded is False

    @pytest.mark.asyncio
    async def test_failed_winner_write_restores_loser(self):
        store = _FlakyStore(_pair(), broken={'A'}, only_field='supersedes')
        candidate = detect_contradictions(await store.fetch_all())[0]

        with pytest.raises(ConnectionError):
            await resolve_one(store, candidate)

        b = await store.get('B')
        assert b.superseded is False
        assert b.superseded_by is None
        assert b.confidence == pytest.approx(0.6)
        assert b.original_confidence is None
        assert (await store.get('A')).supersedes == []

    @pytest.mark.asyncio
    async def test_batch_survives_failed_winner_write(self):
        store = _FlakyStore(_pair(), broken={'A'}, only_field='supersedes')
        report = await auto_resolve(store)
        assert (report.resolved, report.failed) == (0, 1)
        assert (await store.get('B')).superseded is False


class TestMalformedRecords:
    @pytest.mark.parametrize('broken', [
        {'confidence': None},
        {'related_ids': None},
        {'content': None},
        {'tags': None},
        {'created_at': None},
    ])
    def test_skipped_by_detection(self, broken):
        records = _pair() + [make_record('X', embedding=E, **broken)]
        found = detect_contradictions(records)
        assert [(c.winner, c.loser) for c in found] == [('A', 'B')]

    def test_skipped_by_conflict_check(self):
        records = [make_record('X', embedding=E, confidence=None),
                   make_record('ok', embedding=E)]
        assert [m.record.id for m in find_conflicts(records, 'x', E)] == ['ok']

    def test_skipped_by_history(self):
        records = [make_record('A'),
                   make_record('B', superseded=True, superseded_by='A'),
                   make_record('X', content=None, superseded=True,
                               superseded_by='A')]
        assert [h.id for h in superseded_history(records)] == ['B']
