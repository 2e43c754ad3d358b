from __future__ import annotations
from typing import Annotated, Optional
from fastapi import APIRouter, Body, Depends

from app.core.config import settings
from app.core.deps import get_assignment_repository, get_publisher, get_repository, get_submission_repository
from app.core.errors import DomainError, to_http
from app.database.assignment_repo import AssignmentRepo
from app.database.review_repo import ReviewRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import UserContext
from app.schemas.grading import AggregationPolicy, GradeOutcome, OverrideRequest
from app.schemas.submission import Submission
from app.services.auth_service import AuthService
from app.services.grading_service import GradingService
from app.services.publisher_service import GradePublisher, notify_grade

router = APIRouter()

RepoDep = Annotated[ReviewRepo, Depends(get_repository)]
SubmissionRepoDep = Annotated[SubmissionRepo, Depends(get_submission_repository)]
AssignmentRepoDep = Annotated[AssignmentRepo, Depends(get_assignment_repository)]
PublisherDep = Annotated[Optional[GradePublisher], Depends(get_publisher)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


@router.post("/submissions/{submission_id}/grade/finalize", response_model=GradeOutcome)
async def finalize_grade(
        submission_id: str, user: UserDep, repo: RepoDep,
        submission_repo: SubmissionRepoDep, assignment_repo: AssignmentRepoDep, publisher: PublisherDep,
        policy: Optional[AggregationPolicy] = Body(None),
    ):
    policy = policy or AggregationPolicy(minimumReviewers=settings.minimum_reviewers)
    try:
        outcome = await GradingService.finalize_grade(
            submission_id, policy, user, repo, submission_repo, assignment_repo,
        )
    except (DomainError, PermissionError) as e:
        raise to_http(e)
    # insufficientReviews e overrideKept non sono errori: 200 con lo stato nel body
    if outcome.status == "finalized":
        await notify_grade(publisher, outcome.submission, "grade.finalized")
    return outcome


@router.post("/submissions/{submission_id}/grade/override", response_model=Submission)
async def override_grade(
        submission_id: str, payload: OverrideRequest, user: UserDep,
        submission_repo: SubmissionRepoDep, assignment_repo: AssignmentRepoDep, publisher: PublisherDep,
    ):
    try:
        sub = await GradingService.override_grade(submission_id, payload, user, submission_repo, assignment_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)
    await notify_grade(publisher, sub, "grade.overridden")
    return sub
