from __future__ import annotations
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status

from app.core.deps import get_assignment_repository
from app.core.errors import DomainError, to_http
from app.database.assignment_repo import AssignmentRepo
from app.schemas.assignment import Assignment, AssignmentCreate, AssignmentUpdate
from app.schemas.context import UserContext
from app.services.assignment_service import AssignmentService
from app.services.auth_service import AuthService

router = APIRouter()

AssignmentRepoDep = Annotated[AssignmentRepo, Depends(get_assignment_repository)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


@router.post("/clubs/{club_id}/assignments", response_model=Assignment, status_code=status.HTTP_201_CREATED)
async def create_assignment(club_id: str, payload: AssignmentCreate, user: UserDep, repo: AssignmentRepoDep):
    try:
        return await AssignmentService.create_assignment(club_id, payload, user, repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.get("/clubs/{club_id}/assignments", response_model=list[Assignment])
async def list_assignments(
        club_id: str,
        user: UserDep,
        repo: AssignmentRepoDep,
        includeRetired: bool = Query(False),
    ):
    return await AssignmentService.list_assignments(club_id, repo, includeRetired)


@router.get("/assignments/{assignment_id}", response_model=Assignment)
async def get_assignment(assignment_id: str, user: UserDep, repo: AssignmentRepoDep):
    try:
        return await AssignmentService.get_assignment(assignment_id, repo)
    except DomainError as e:
        raise to_http(e)


@router.patch("/assignments/{assignment_id}", response_model=Assignment)
async def update_assignment(assignment_id: str, payload: AssignmentUpdate, user: UserDep, repo: AssignmentRepoDep):
    try:
        return await AssignmentService.update_assignment(assignment_id, payload, user, repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)


@router.post("/assignments/{assignment_id}/retire", response_model=Assignment)
async def retire_assignment(assignment_id: str, user: UserDep, repo: AssignmentRepoDep):
    try:
        return await AssignmentService.retire_assignment(assignment_id, user, repo)
    except (DomainError, PermissionError) as e:
        raise to_http(e)
