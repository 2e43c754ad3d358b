from __future__ import annotations
from datetime import datetime, timezone
from typing import List
from uuid import uuid4
import logging

from app.core.errors import NotFoundError
from app.database.assignment_repo import AssignmentRepo
from app.schemas.assignment import Assignment, AssignmentCreate, AssignmentUpdate
from app.schemas.context import UserContext, is_admin
from app.schemas.rubric import default_rubric

logger = logging.getLogger(__name__)


class AssignmentService:

    @staticmethod
    async def create_assignment(club_id: str, data: AssignmentCreate, user: UserContext, repo: AssignmentRepo) -> Assignment:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori del club possono creare assignment")

        now = datetime.now(timezone.utc)
        assignment = Assignment(
            assignmentId=str(uuid4()),
            clubId=club_id,
            lessonId=data.lessonId,
            title=data.title.strip(),
            description=data.description.strip(),
            dueAt=data.dueAt,
            maxPoints=data.maxPoints,
            rubric=data.rubric or default_rubric(),
            createdBy=user.user_id,
            createdAt=now,
            updatedAt=now,
        )
        await repo.insert(assignment.model_dump())
        logger.info("Assignment %s creato nel club %s da %s", assignment.assignmentId, club_id, user.user_id)
        return assignment

    @staticmethod
    async def list_assignments(club_id: str, repo: AssignmentRepo, include_retired: bool = False) -> List[Assignment]:
        docs = await repo.list_by_club(club_id, include_retired)
        return [Assignment(**d) for d in docs]

    @staticmethod
    async def get_assignment(assignment_id: str, repo: AssignmentRepo) -> Assignment:
        d = await repo.get(assignment_id)
        if not d:
            raise NotFoundError(f"Assignment {assignment_id} non trovato")
        return Assignment(**d)

    @staticmethod
    async def update_assignment(assignment_id: str, patch: AssignmentUpdate, user: UserContext, repo: AssignmentRepo) -> Assignment:
        current = await AssignmentService.get_assignment(assignment_id, repo)
        if current.createdBy != user.user_id:
            raise PermissionError("Solo l'amministratore proprietario puo' modificare l'assignment")

        fields = patch.model_dump(exclude_unset=True, exclude={"rubric"})
        if patch.rubric is not None:
            # la rubrica e' versionata: ogni sostituzione incrementa la versione
            rubric = patch.rubric.model_copy(update={"version": current.rubric.version + 1})
            fields["rubric"] = rubric.model_dump()
        fields["updatedAt"] = datetime.now(timezone.utc)

        d = await repo.update(assignment_id, fields)
        if not d:
            raise NotFoundError(f"Assignment {assignment_id} non trovato")
        return Assignment(**d)

    @staticmethod
    async def retire_assignment(assignment_id: str, user: UserContext, repo: AssignmentRepo) -> Assignment:
        current = await AssignmentService.get_assignment(assignment_id, repo)
        if current.createdBy != user.user_id:
            raise PermissionError("Solo l'amministratore proprietario puo' ritirare l'assignment")
        d = await repo.update(assignment_id, {"retired": True, "updatedAt": datetime.now(timezone.utc)})
        logger.info("Assignment %s ritirato", assignment_id)
        return Assignment(**d)
