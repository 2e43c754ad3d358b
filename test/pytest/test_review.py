import pytest
import pytest_asyncio

from app.core.errors import (
    ConcurrentModificationError, DuplicateReviewError, NotFoundError, UnauthorizedReviewError, ValidationError,
)
from app.schemas.context import UserContext
from app.schemas.review import AssignmentPair, ReviewCreate
from app.services.distributor_service import DistributorService
from app.services.review_service import ReviewService
from app.services.submission_service import SubmissionService

from fakes import scores


def _member(user_id):
    return UserContext(user_id=user_id, role="member")


@pytest.fixture
def review(repos):
    async def _review(reviewer_id, submission_id, *points, comment=""):
        return await ReviewService.submit_review(
            submission_id, ReviewCreate(scores=scores(*points), comment=comment), _member(reviewer_id),
            repos.reviews, repos.submissions, repos.allocations, repos.assignments,
        )
    return _review


@pytest_asyncio.fixture
async def setup(make_assignment, submit, manual_round):
    """Due consegne, s-1 e s-2 si recensiscono a vicenda; m-1 recensisce entrambe."""
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    s2 = await submit(a.assignmentId, "s-2")
    await manual_round(a.assignmentId, [
        ("s-1", s2.submissionId), ("s-2", s1.submissionId),
        ("m-1", s1.submissionId), ("m-1", s2.submissionId),
    ])
    return a, s1, s2


# ------------------------------- submit ---------------------------------

@pytest.mark.asyncio
async def test_submit_review_returns_receipt(repos, setup, review):
    a, s1, s2 = setup
    receipt = await review("s-2", s1.submissionId, 20, 22, 25, 18, comment="Buon lavoro")
    assert receipt.total == 85
    assert receipt.maxTotal == 100
    assert receipt.revision == 1
    assert [s.criterionId for s in receipt.scores] == ["content", "understanding", "organization", "presentation"]

    stored = repos.reviews.reviews[0]
    assert stored["reviewerId"] == "s-2"
    assert stored["assignmentId"] == a.assignmentId
    assert stored["rubricVersion"] == 1
    assert stored["roundId"] == repos.allocations.rounds[0]["roundId"]


@pytest.mark.asyncio
async def test_review_does_not_touch_submission(repos, setup, review):
    _, s1, _ = setup
    await review("s-2", s1.submissionId, 20, 20, 20, 20)
    stored = await SubmissionService.load(s1.submissionId, repos.submissions)
    assert stored.state == "submitted"
    assert stored.version == s1.version


@pytest.mark.asyncio
async def test_self_review_is_unauthorized(setup, review):
    _, s1, _ = setup
    with pytest.raises(UnauthorizedReviewError):
        await review("s-1", s1.submissionId, 10, 10, 10, 10)


@pytest.mark.asyncio
async def test_review_without_assignment_is_unauthorized(setup, review):
    _, s1, _ = setup
    with pytest.raises(UnauthorizedReviewError):
        await review("s-3", s1.submissionId, 10, 10, 10, 10)


@pytest.mark.asyncio
async def test_review_without_any_round_is_unauthorized(make_assignment, submit, review):
    a = await make_assignment()
    s1 = await submit(a.assignmentId, "s-1")
    with pytest.raises(UnauthorizedReviewError):
        await review("s-2", s1.submissionId, 10, 10, 10, 10)


@pytest.mark.asyncio
async def test_revoked_pair_cannot_review(repos, admin, setup, review):
    a, s1, _ = setup
    await DistributorService.revoke(
        a.assignmentId, AssignmentPair(reviewer="m-1", submissionId=s1.submissionId), admin, repos.allocations,
    )
    with pytest.raises(UnauthorizedReviewError):
        await review("m-1", s1.submissionId, 10, 10, 10, 10)


@pytest.mark.asyncio
async def test_pairs_of_superseded_round_are_not_valid(repos, setup, manual_round, review):
    a, s1, s2 = setup
    await manual_round(a.assignmentId, [("s-1", s2.submissionId)])
    with pytest.raises(UnauthorizedReviewError):
        await review("s-2", s1.submissionId, 10, 10, 10, 10)


@pytest.mark.asyncio
async def test_second_review_is_duplicate(repos, setup, review):
    _, s1, _ = setup
    await review("s-2", s1.submissionId, 10, 10, 10, 10)
    with pytest.raises(DuplicateReviewError):
        await review("s-2", s1.submissionId, 12, 12, 12, 12)
    assert len(repos.reviews.reviews) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("points", [(26, 10, 10, 10), (-1, 10, 10, 10), (10, 10, 10)])
async def test_invalid_scores_store_nothing(repos, setup, review, points):
    _, s1, _ = setup
    with pytest.raises(ValidationError):
        await review("s-2", s1.submissionId, *points)
    assert repos.reviews.reviews == []


@pytest.mark.asyncio
async def test_review_of_unknown_submission(setup, review):
    with pytest.raises(NotFoundError):
        await review("s-2", "SUB-XXX", 10, 10, 10, 10)


# ------------------------------- amend ---------------------------------

@pytest.mark.asyncio
async def test_amend_creates_new_revision(repos, setup, review):
    _, s1, _ = setup
    await review("s-2", s1.submissionId, 10, 10, 10, 10, comment="prima")
    first_id = repos.reviews.reviews[0]["reviewId"]

    receipt = await ReviewService.amend_review(
        s1.submissionId, ReviewCreate(scores=scores(20, 20, 20, 20), comment="dopo"), _member("s-2"),
        repos.reviews, repos.submissions, repos.assignments,
    )
    assert receipt.revision == 2
    assert receipt.total == 80
    assert len(repos.reviews.reviews) == 2
    assert repos.reviews.reviews[1]["supersedes"] == first_id

    latest = await repos.reviews.for_submission(s1.submissionId)
    assert [r["comment"] for r in latest] == ["dopo"]


@pytest.mark.asyncio
async def test_amend_without_review(repos, setup):
    _, s1, _ = setup
    with pytest.raises(NotFoundError):
        await ReviewService.amend_review(
            s1.submissionId, ReviewCreate(scores=scores(1, 1, 1, 1)), _member("s-2"),
            repos.reviews, repos.submissions, repos.assignments,
        )


@pytest.mark.asyncio
async def test_amend_race_is_reported_as_conflict(repos, setup, review, monkeypatch):
    _, s1, _ = setup
    await review("s-2", s1.submissionId, 10, 10, 10, 10)
    stale = await repos.reviews.latest_for_pair("s-2", s1.submissionId)
    await ReviewService.amend_review(
        s1.submissionId, ReviewCreate(scores=scores(11, 11, 11, 11)), _member("s-2"),
        repos.reviews, repos.submissions, repos.assignments,
    )

    # la seconda richiesta ha letto la revisione 1 prima della prima scrittura
    async def stale_latest(reviewer_id, submission_id):
        return stale
    monkeypatch.setattr(repos.reviews, "latest_for_pair", stale_latest)
    with pytest.raises(ConcurrentModificationError):
        await ReviewService.amend_review(
            s1.submissionId, ReviewCreate(scores=scores(12, 12, 12, 12)), _member("s-2"),
            repos.reviews, repos.submissions, repos.assignments,
        )


# ------------------------------- reads ---------------------------------

@pytest.mark.asyncio
async def test_pending_list_excludes_done_and_revoked(repos, admin, setup, review):
    a, s1, s2 = setup
    pending = await ReviewService.list_my_pending(a.assignmentId, _member("m-1"), repos.reviews, repos.allocations)
    assert {p.submissionId for p in pending} == {s1.submissionId, s2.submissionId}

    await review("m-1", s1.submissionId, 10, 10, 10, 10)
    await DistributorService.revoke(
        a.assignmentId, AssignmentPair(reviewer="m-1", submissionId=s2.submissionId), admin, repos.allocations,
    )
    assert await ReviewService.list_my_pending(a.assignmentId, _member("m-1"), repos.reviews, repos.allocations) == []


@pytest.mark.asyncio
async def test_pending_list_without_round(repos, make_assignment):
    a = await make_assignment()
    assert await ReviewService.list_my_pending(a.assignmentId, _member("s-1"), repos.reviews, repos.allocations) == []


@pytest.mark.asyncio
async def test_author_sees_reviews_only_after_return(repos, admin, student1, setup, review):
    _, s1, _ = setup
    await review("s-2", s1.submissionId, 10, 10, 10, 10)

    with pytest.raises(PermissionError):
        await ReviewService.list_for_submission(s1.submissionId, student1, repos.reviews, repos.submissions)
    assert len(await ReviewService.list_for_submission(s1.submissionId, admin, repos.reviews, repos.submissions)) == 1

    sub = await SubmissionService.apply_grade(repos.submissions, s1, 100, 40, None, source="peer", graded_by="admin-1")
    await SubmissionService.release_submission(sub.submissionId, admin, repos.submissions, repos.assignments)
    visible = await ReviewService.list_for_submission(s1.submissionId, student1, repos.reviews, repos.submissions)
    assert [r.reviewerId for r in visible] == ["s-2"]


@pytest.mark.asyncio
async def test_list_by_assignment_admin_only(repos, admin, student1, setup, review):
    a, s1, s2 = setup
    await review("s-2", s1.submissionId, 10, 10, 10, 10)
    await review("s-1", s2.submissionId, 10, 10, 10, 10)
    await ReviewService.amend_review(
        s1.submissionId, ReviewCreate(scores=scores(5, 5, 5, 5)), _member("s-2"),
        repos.reviews, repos.submissions, repos.assignments,
    )
    assert len(await ReviewService.list_by_assignment(a.assignmentId, admin, repos.reviews)) == 2
    assert len(await ReviewService.list_by_assignment(a.assignmentId, admin, repos.reviews, include_superseded=True)) == 3
    with pytest.raises(PermissionError):
        await ReviewService.list_by_assignment(a.assignmentId, student1, repos.reviews)
