from __future__ import annotations
from typing import Annotated, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.deps import get_assignment_repository, get_publisher, get_submission_repository
from app.core.errors import DomainError, to_http
from app.database.assignment_repo import AssignmentRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import UserContext
from app.schemas.submission import Submission, SubmissionBody, SubmitRequest
from app.services.auth_service import AuthService
from app.services.publisher_service import GradePublisher, notify_grade
from app.services.submission_service import SubmissionService

router = APIRouter()

SubmissionRepoDep = Annotated[SubmissionRepo, Depends(get_submission_repository)]
AssignmentRepoDep = Annotated[AssignmentRepo, Depends(get_assignment_repository)]
PublisherDep = Annotated[Optional[GradePublisher], Depends(get_publisher)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


@router.put("/assignments/{assignment_id}/submission", response_model=Submission)
async def save_draft(
        assignment_id: str, payload: SubmissionBody, user: UserDep,
        repo: SubmissionRepoDep, assignment_repo: AssignmentRepoDep,
    ):
    try:
        return await SubmissionService.save_draft(assignment_id, payload, user, repo, assignment_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.post("/assignments/{assignment_id}/submit", response_model=Submission, status_code=status.HTTP_201_CREATED)
async def submit_assignment(
        assignment_id: str, payload: SubmitRequest, user: UserDep,
        repo: SubmissionRepoDep, assignment_repo: AssignmentRepoDep,
    ):
    try:
        return await SubmissionService.submit_assignment(assignment_id, payload, user, repo, assignment_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.get("/assignments/{assignment_id}/submission", response_model=Submission)
async def get_my_submission(assignment_id: str, user: UserDep, repo: SubmissionRepoDep):
    res = await SubmissionService.get_my_submission(assignment_id, user, repo)
    if not res:
        raise HTTPException(status_code=404, detail="Nessuna submission per questo assignment")
    return res


@router.get("/assignments/{assignment_id}/submissions", response_model=list[Submission])
async def list_submissions(
        assignment_id: str,
        user: UserDep,
        repo: SubmissionRepoDep,
        state: Literal["draft", "submitted", "graded", "returned"] | None = Query(None),
    ):
    try:
        return await SubmissionService.list_submissions(assignment_id, user, repo, state)
    except PermissionError as e:
        raise to_http(e)


@router.get("/submissions/{submission_id}", response_model=Submission)
async def get_submission(submission_id: str, user: UserDep, repo: SubmissionRepoDep):
    try:
        return await SubmissionService.get_submission(submission_id, user, repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.post("/submissions/{submission_id}/release", response_model=Submission)
async def release_submission(
        submission_id: str, user: UserDep, repo: SubmissionRepoDep,
        assignment_repo: AssignmentRepoDep, publisher: PublisherDep,
    ):
    try:
        sub = await SubmissionService.release_submission(submission_id, user, repo, assignment_repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)
    await notify_grade(publisher, sub, "grade.released")
    return sub
