from __future__ import annotations
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.deps import (
    get_allocation_repository, get_assignment_repository, get_repository, get_submission_repository,
)
from app.core.errors import DomainError, to_http
from app.database.allocation_repo import AllocationRepo
from app.database.assignment_repo import AssignmentRepo
from app.database.review_repo import ReviewRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import UserContext
from app.schemas.review import (
    AllocationRequest, AllocationRound, AssignmentPair, Review, ReviewCreate, ReviewReceipt, RevokeRequest,
)
from app.services.auth_service import AuthService
from app.services.distributor_service import DistributorService
from app.services.review_service import ReviewService

router = APIRouter()

RepoDep = Annotated[ReviewRepo, Depends(get_repository)]
SubmissionRepoDep = Annotated[SubmissionRepo, Depends(get_submission_repository)]
AllocationRepoDep = Annotated[AllocationRepo, Depends(get_allocation_repository)]
AssignmentRepoDep = Annotated[AssignmentRepo, Depends(get_assignment_repository)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


@router.post("/assignments/{assignment_id}/allocations", response_model=AllocationRound,
             status_code=status.HTTP_201_CREATED)
async def start_allocation_round(
        assignment_id: str, payload: AllocationRequest, user: UserDep,
        submission_repo: SubmissionRepoDep, allocation_repo: AllocationRepoDep, assignment_repo: AssignmentRepoDep,
    ):
    try:
        return await DistributorService.start_round(
            assignment_id, payload, user, submission_repo, allocation_repo, assignment_repo,
        )
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.get("/assignments/{assignment_id}/allocations/current", response_model=AllocationRound)
async def get_current_round(assignment_id: str, user: UserDep, allocation_repo: AllocationRepoDep):
    res = await DistributorService.current_round(assignment_id, allocation_repo)
    if not res:
        raise HTTPException(status_code=404, detail="Nessun round di allocazione per questo assignment")
    return res


@router.post("/assignments/{assignment_id}/allocations/revoke", response_model=AllocationRound)
async def revoke_assignment(
        assignment_id: str, payload: RevokeRequest, user: UserDep, allocation_repo: AllocationRepoDep,
    ):
    try:
        pair = AssignmentPair(reviewer=payload.reviewer, submissionId=payload.submissionId)
        return await DistributorService.revoke(assignment_id, pair, user, allocation_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.get("/assignments/{assignment_id}/reviews/pending", response_model=list[AssignmentPair])
async def list_my_pending_reviews(
        assignment_id: str, user: UserDep, repo: RepoDep, allocation_repo: AllocationRepoDep,
    ):
    return await ReviewService.list_my_pending(assignment_id, user, repo, allocation_repo)


@router.get("/assignments/{assignment_id}/reviews", response_model=list[Review])
async def list_reviews_for_assignment(
        assignment_id: str,
        user: UserDep,
        repo: RepoDep,
        includeSuperseded: bool = Query(False),
    ):
    try:
        return await ReviewService.list_by_assignment(assignment_id, user, repo, includeSuperseded)
    except PermissionError as e:
        raise to_http(e)


@router.post("/submissions/{submission_id}/reviews", response_model=ReviewReceipt,
             status_code=status.HTTP_201_CREATED)
async def submit_review(
        submission_id: str, payload: ReviewCreate, user: UserDep, repo: RepoDep,
        submission_repo: SubmissionRepoDep, allocation_repo: AllocationRepoDep, assignment_repo: AssignmentRepoDep,
    ):
    try:
        return await ReviewService.submit_review(
            submission_id, payload, user, repo, submission_repo, allocation_repo, assignment_repo,
        )
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.post("/submissions/{submission_id}/reviews/amend", response_model=ReviewReceipt,
             status_code=status.HTTP_201_CREATED)
async def amend_review(
        submission_id: str, payload: ReviewCreate, user: UserDep, repo: RepoDep,
        submission_repo: SubmissionRepoDep, assignment_repo: AssignmentRepoDep,
    ):
    try:
        return await ReviewService.amend_review(submission_id, payload, user, repo, submission_repo, assignment_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.get("/submissions/{submission_id}/reviews", response_model=list[Review])
async def list_reviews_for_submission(
        submission_id: str, user: UserDep, repo: RepoDep, submission_repo: SubmissionRepoDep,
    ):
    try:
        return await ReviewService.list_for_submission(submission_id, user, repo, submission_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)
