import random
from collections import Counter

import pytest

from app.core.config import settings
from app.core.errors import DistributionError, NotFoundError, ValidationError
from app.schemas.events import DeadlineEvent
from app.schemas.review import AllocationRequest, AssignmentPair, DeliveredSubmission
from app.services.distributor_service import DistributorService, allocate_reviews

# --------------------------- helpers ---------------------------

def _subs(n: int, assignment_id: str = "A1"):
    return [DeliveredSubmission(assignmentId=assignment_id, submissionId=f"SUB-{i}", authorId=f"s-{i}")
            for i in range(1, n + 1)]

def _loads(result):
    return [len(v) for v in result.assignments.values()]


# ------------------------------- allocator ---------------------------------

@pytest.mark.parametrize("n", range(2, 11))
@pytest.mark.parametrize("k", [1, 2, 3])
def test_peer_allocation_never_assigns_own_submission(n, k):
    subs = _subs(n)
    author_of = {s.submissionId: s.authorId for s in subs}
    for seed in range(15):
        result = allocate_reviews(subs, [s.authorId for s in subs], seed=seed, reviews_per_reviewer=k)
        for p in result.pairs:
            assert author_of[p.submissionId] != p.reviewer


@pytest.mark.parametrize("n_subs,n_reviewers,k,cap", [
    (5, 5, 2, 2), (7, 3, 3, 1), (3, 10, 2, 1), (10, 4, 3, 2), (6, 6, 3, 3), (1, 4, 2, 2),
])
def test_load_balance_within_one(n_subs, n_reviewers, k, cap):
    subs = _subs(n_subs)
    mentors = [f"m-{i}" for i in range(n_reviewers)]
    for seed in range(20):
        result = allocate_reviews(subs, mentors, seed=seed, reviews_per_reviewer=k, max_reviewers_per_submission=cap)
        loads = _loads(result)
        assert max(loads) - min(loads) <= 1
        assert max(loads) <= k


@pytest.mark.parametrize("n", range(2, 12))
def test_peer_load_balance_and_no_duplicate_pairs(n):
    subs = _subs(n)
    for seed in range(20):
        result = allocate_reviews(subs, [s.authorId for s in subs], seed=seed)
        loads = _loads(result)
        assert max(loads) - min(loads) <= 1
        pairs = [(p.reviewer, p.submissionId) for p in result.pairs]
        assert len(pairs) == len(set(pairs))


@pytest.mark.parametrize("cap", [1, 2, 3])
def test_per_submission_cap_respected(cap):
    subs = _subs(6)
    result = allocate_reviews(subs, [f"m-{i}" for i in range(10)], seed=3,
                              reviews_per_reviewer=3, max_reviewers_per_submission=cap)
    counts = Counter(p.submissionId for p in result.pairs)
    assert max(counts.values()) <= cap


@pytest.mark.parametrize("cap", [1, 2])
@pytest.mark.parametrize("n", range(2, 12))
@pytest.mark.parametrize("k", [1, 2, 3])
def test_peer_pool_covers_every_submission(n, k, cap):
    subs = _subs(n)
    author_of = {s.submissionId: s.authorId for s in subs}
    for seed in range(40):
        result = allocate_reviews(subs, [s.authorId for s in subs], seed=seed,
                                  reviews_per_reviewer=k, max_reviewers_per_submission=cap)
        assert result.shortfall == 0
        assert {p.submissionId for p in result.pairs} == {s.submissionId for s in subs}
        loads = _loads(result)
        assert max(loads) - min(loads) <= 1
        assert max(Counter(p.submissionId for p in result.pairs).values()) <= cap
        assert all(author_of[p.submissionId] != p.reviewer for p in result.pairs)


def test_single_reviewer_per_submission_is_a_full_derangement():
    # tre autori, una review a testa: ognuno recensisce un altro
    subs = [DeliveredSubmission(assignmentId="A1", submissionId=f"SUB-s-{i}", authorId=f"s-{i}") for i in range(3)]
    result = allocate_reviews(subs, [s.authorId for s in subs], seed=2,
                              reviews_per_reviewer=1, max_reviewers_per_submission=1)
    assert result.shortfall == 0
    assert result.reviewerShortfall == 0
    assert sorted(len(v) for v in result.assignments.values()) == [1, 1, 1]
    assert all(v != [f"SUB-{r}"] for r, v in result.assignments.items())


def test_same_seed_same_allocation():
    subs = _subs(8)
    pool = [s.authorId for s in subs]
    first = allocate_reviews(subs, pool, seed=42)
    for _ in range(5):
        assert allocate_reviews(subs, pool, seed=42) == first


def test_input_order_does_not_change_allocation():
    subs = _subs(8)
    pool = [s.authorId for s in subs]
    shuffled_subs, shuffled_pool = subs[:], pool[:]
    random.Random(1).shuffle(shuffled_subs)
    random.Random(2).shuffle(shuffled_pool)
    assert allocate_reviews(subs, pool, seed=7) == allocate_reviews(shuffled_subs, shuffled_pool, seed=7)


def test_missing_seed_draws_one_and_reports_it():
    subs = _subs(4)
    result = allocate_reviews(subs, [s.authorId for s in subs])
    replay = allocate_reviews(subs, [s.authorId for s in subs], seed=result.seed)
    assert replay == result


def test_empty_reviewer_pool_reports_full_shortfall():
    result = allocate_reviews(_subs(4), [], seed=1)
    assert result.pairs == []
    assert result.assignments == {}
    assert result.shortfall == 4


def test_empty_submission_pool_has_no_shortfall():
    result = allocate_reviews([], ["m-1", "m-2"], seed=1)
    assert result.pairs == []
    assert result.shortfall == 0
    assert result.reviewerShortfall == 0


def test_single_author_reviewing_only_own_work_is_a_shortfall_not_an_error():
    result = allocate_reviews(_subs(1), ["s-1"], seed=0, reviews_per_reviewer=2)
    assert result.pairs == []
    assert result.shortfall == 1
    assert result.reviewerShortfall == 2


def test_small_pool_allocates_greedily_and_reports_reviewer_shortfall():
    # 2 studenti, K=3: ognuno puo' recensire solo l'altro
    result = allocate_reviews(_subs(2), ["s-1", "s-2"], seed=5, reviews_per_reviewer=3)
    assert sorted((p.reviewer, p.submissionId) for p in result.pairs) == [("s-1", "SUB-2"), ("s-2", "SUB-1")]
    assert result.shortfall == 0
    assert result.reviewerShortfall == 4


def test_invalid_parameters_rejected():
    with pytest.raises(ValidationError):
        allocate_reviews(_subs(3), ["m-1"], seed=1, reviews_per_reviewer=0)


# ------------------------------- rounds ---------------------------------

@pytest.mark.asyncio
async def test_start_round_defaults_pool_to_authors_and_persists(repos, admin, make_assignment, submit):
    a = await make_assignment()
    for author in ("s-1", "s-2", "s-3"):
        await submit(a.assignmentId, author)

    rnd = await DistributorService.start_round(
        a.assignmentId, AllocationRequest(seed=11), admin, repos.submissions, repos.allocations, repos.assignments,
    )
    assert rnd.roundNumber == 1
    assert rnd.mode == "automatic"
    assert rnd.seed == 11
    assert {p.reviewer for p in rnd.pairs} == {"s-1", "s-2", "s-3"}
    assert len(repos.allocations.rounds) == 1

    again = await DistributorService.start_round(
        a.assignmentId, AllocationRequest(seed=11), admin, repos.submissions, repos.allocations, repos.assignments,
    )
    assert again.roundNumber == 2
    assert again.pairs == rnd.pairs
    assert (await DistributorService.current_round(a.assignmentId, repos.allocations)).roundId == again.roundId


@pytest.mark.asyncio
async def test_start_round_uses_configured_k(repos, admin, make_assignment, submit, monkeypatch):
    monkeypatch.setattr(settings, "reviews_per_reviewer", 1)
    a = await make_assignment()
    for author in ("s-1", "s-2", "s-3", "s-4"):
        await submit(a.assignmentId, author)
    rnd = await DistributorService.start_round(
        a.assignmentId, AllocationRequest(seed=2), admin, repos.submissions, repos.allocations, repos.assignments,
    )
    assert Counter(p.reviewer for p in rnd.pairs) == {"s-1": 1, "s-2": 1, "s-3": 1, "s-4": 1}


@pytest.mark.asyncio
async def test_start_round_with_no_submissions_is_empty(repos, admin, make_assignment):
    a = await make_assignment()
    rnd = await DistributorService.start_round(
        a.assignmentId, AllocationRequest(reviewerPool=["m-1"]), admin,
        repos.submissions, repos.allocations, repos.assignments,
    )
    assert rnd.pairs == []
    assert rnd.shortfall == 0


@pytest.mark.asyncio
async def test_start_round_requires_admin(repos, student1, make_assignment):
    a = await make_assignment()
    with pytest.raises(PermissionError):
        await DistributorService.start_round(
            a.assignmentId, AllocationRequest(), student1, repos.submissions, repos.allocations, repos.assignments,
        )


@pytest.mark.asyncio
async def test_start_round_unknown_assignment(repos, admin):
    with pytest.raises(NotFoundError):
        await DistributorService.start_round(
            "nope", AllocationRequest(), admin, repos.submissions, repos.allocations, repos.assignments,
        )


@pytest.mark.asyncio
async def test_manual_ok_no_self_review(make_assignment, submit, manual_round):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    s2 = await submit(a.assignmentId, "s-2")
    rnd = await manual_round(a.assignmentId, [("s-1", s2.submissionId), ("s-2", s1.submissionId)])
    assert rnd.mode == "manual"
    assert rnd.shortfall == 0
    assert sorted((p.reviewer, p.submissionId) for p in rnd.pairs) == \
           sorted([("s-1", s2.submissionId), ("s-2", s1.submissionId)])


@pytest.mark.asyncio
async def test_manual_raises_if_self_review_present(make_assignment, submit, manual_round):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    with pytest.raises(DistributionError) as ei:
        await manual_round(a.assignmentId, [("s-1", s1.submissionId)])
    assert "assegnato alla propria submission" in str(ei.value)


@pytest.mark.asyncio
async def test_manual_raises_if_submission_not_found(make_assignment, submit, manual_round):
    a = await make_assignment()
    await submit(a.assignmentId, "s-1")
    with pytest.raises(DistributionError) as ei:
        await manual_round(a.assignmentId, [("s-1", "SUB-XXX")])
    assert "non trovata" in str(ei.value)


@pytest.mark.asyncio
async def test_manual_raises_on_duplicate_pair(make_assignment, submit, manual_round):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    with pytest.raises(DistributionError) as ei:
        await manual_round(a.assignmentId, [("m-1", s1.submissionId), ("m-1", s1.submissionId)])
    assert "duplicata" in str(ei.value)


@pytest.mark.asyncio
async def test_manual_requires_list(repos, admin, make_assignment):
    a = await make_assignment()
    with pytest.raises(DistributionError):
        await DistributorService.start_round(
            a.assignmentId, AllocationRequest(automatic_mode=False), admin,
            repos.submissions, repos.allocations, repos.assignments,
        )


@pytest.mark.asyncio
async def test_manual_reports_uncovered_submissions(make_assignment, submit, manual_round):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    await submit(a.assignmentId, "s-2")
    rnd = await manual_round(a.assignmentId, [("m-1", s1.submissionId)])
    assert rnd.shortfall == 1


@pytest.mark.asyncio
async def test_revoke_pair_of_current_round(repos, admin, make_assignment, submit, manual_round):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    await manual_round(a.assignmentId, [("m-1", s1.submissionId)])
    pair = AssignmentPair(reviewer="m-1", submissionId=s1.submissionId)

    rnd = await DistributorService.revoke(a.assignmentId, pair, admin, repos.allocations)
    assert pair in rnd.revoked
    assert not rnd.is_active("m-1", s1.submissionId)

    with pytest.raises(NotFoundError):
        await DistributorService.revoke(
            a.assignmentId, AssignmentPair(reviewer="m-9", submissionId=s1.submissionId), admin, repos.allocations,
        )


@pytest.mark.asyncio
async def test_deadline_handler_starts_round_as_system(repos, make_assignment, submit):
    a = await make_assignment()
    for author in ("s-1", "s-2"):
        await submit(a.assignmentId, author)
    handler = DistributorService.deadline_handler(repos.submissions, repos.allocations, repos.assignments)
    rnd = await handler(DeadlineEvent(assignmentId=a.assignmentId, seed=9))
    assert rnd.createdBy == "system"
    assert rnd.seed == 9
    assert len(rnd.pairs) == 2
