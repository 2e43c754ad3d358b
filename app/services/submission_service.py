from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4
import logging

from app.core.errors import DeadlinePassedError, NotFoundError, ValidationError
from app.database.assignment_repo import AssignmentRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.assignment import Assignment
from app.schemas.context import UserContext, is_admin
from app.schemas.submission import (
    GradeRecord, GradeSource, Submission, SubmissionBody, SubmitRequest, ensure_transition,
)
from app.services.assignment_service import AssignmentService

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    # le date senza timezone sono interpretate come UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


async def _open_assignment(assignment_id: str, repo: AssignmentRepo) -> Assignment:
    assignment = await AssignmentService.get_assignment(assignment_id, repo)
    if assignment.retired:
        raise ValidationError(f"Assignment {assignment_id} ritirato: non accetta consegne")
    return assignment


class SubmissionService:

    @staticmethod
    async def save_draft(
        assignment_id: str, body: SubmissionBody, user: UserContext,
        repo: SubmissionRepo, assignment_repo: AssignmentRepo,
    ) -> Submission:
        await _open_assignment(assignment_id, assignment_repo)
        now = datetime.now(timezone.utc)

        existing = await repo.get_by_author(assignment_id, user.user_id)
        if existing is None:
            sub = Submission(
                submissionId=str(uuid4()),
                assignmentId=assignment_id,
                authorId=user.user_id,
                content=body.content,
                fileRef=body.fileRef,
                state="draft",
                createdAt=now,
                updatedAt=now,
            )
            return Submission(**await repo.insert(sub.model_dump()))

        current = Submission(**existing)
        if current.state != "draft":
            raise ValidationError("La submission e' gia' stata consegnata e non e' piu' modificabile")
        d = await repo.update_versioned(
            current.submissionId, current.version,
            {"content": body.content, "fileRef": body.fileRef, "updatedAt": now},
        )
        return Submission(**d)

    @staticmethod
    async def submit_assignment(
        assignment_id: str, body: SubmitRequest, user: UserContext,
        repo: SubmissionRepo, assignment_repo: AssignmentRepo,
    ) -> Submission:
        """
        Consegna (draft -> submitted). Crea la submission se l'autore non aveva
        una bozza. Dopo la scadenza solo il proprietario dell'assignment puo'
        consegnare (override).
        """
        assignment = await _open_assignment(assignment_id, assignment_repo)
        author_id = body.authorId or user.user_id
        is_owner = assignment.createdBy == user.user_id
        if author_id != user.user_id and not is_owner:
            raise PermissionError("Si puo' consegnare solo la propria submission")

        existing = await repo.get_by_author(assignment_id, author_id)
        current = Submission(**existing) if existing else None
        if current is not None:
            ensure_transition(current.state, "submitted")

        content = body.content if body.content is not None else (current.content if current else None)
        file_ref = body.fileRef if body.fileRef is not None else (current.fileRef if current else None)
        if _blank(content) and _blank(file_ref):
            raise ValidationError("Serve un contenuto testuale o un file allegato")

        now = datetime.now(timezone.utc)
        if assignment.dueAt is not None and now > _as_utc(assignment.dueAt) and not is_owner:
            raise DeadlinePassedError(_as_utc(assignment.dueAt))

        if current is None:
            sub = Submission(
                submissionId=str(uuid4()),
                assignmentId=assignment_id,
                authorId=author_id,
                content=content,
                fileRef=file_ref,
                state="submitted",
                submittedAt=now,
                createdAt=now,
                updatedAt=now,
            )
            saved = Submission(**await repo.insert(sub.model_dump()))
        else:
            saved = Submission(**await repo.update_versioned(
                current.submissionId, current.version,
                {"content": content, "fileRef": file_ref, "state": "submitted",
                 "submittedAt": now, "updatedAt": now},
            ))
        logger.info("Submission %s consegnata (assignment=%s, autore=%s)", saved.submissionId, assignment_id, author_id)
        return saved

    @staticmethod
    async def apply_grade(
        repo: SubmissionRepo,
        submission: Submission,
        max_points: int,
        points: int,
        feedback: Optional[str],
        source: GradeSource,
        graded_by: str,
        release: bool = False,
    ) -> Submission:
        """
        Transizione verso 'graded' (o 'returned' se release) in un'unica
        scrittura condizionata alla versione letta. Il voto precedente resta
        in gradeHistory.
        """
        ensure_transition(submission.state, "graded")
        if not 0 <= points <= max_points:
            raise ValidationError(f"Punteggio {points} fuori range (0-{max_points})")

        now = datetime.now(timezone.utc)
        record = GradeRecord(points=points, feedback=feedback, source=source, gradedBy=graded_by, gradedAt=now)
        fields = {
            "state": "returned" if release else "graded",
            "earnedPoints": points,
            "feedback": feedback,
            "gradedAt": now,
            "gradedBy": graded_by,
            "gradeSource": source,
            "isOverride": source == "override",
            "updatedAt": now,
        }
        d = await repo.update_versioned(submission.submissionId, submission.version, fields, record.model_dump())
        logger.info(
            "Submission %s valutata: %s/%s (%s, da %s)",
            submission.submissionId, points, max_points, source, graded_by,
        )
        return Submission(**d)

    @staticmethod
    async def release_submission(
        submission_id: str, user: UserContext,
        repo: SubmissionRepo, assignment_repo: AssignmentRepo,
    ) -> Submission:
        current = await SubmissionService.load(submission_id, repo)
        assignment = await AssignmentService.get_assignment(current.assignmentId, assignment_repo)
        if not (is_admin(user) or assignment.createdBy == user.user_id):
            raise PermissionError("Solo gli amministratori possono restituire le valutazioni")
        ensure_transition(current.state, "returned")
        d = await repo.update_versioned(
            submission_id, current.version,
            {"state": "returned", "updatedAt": datetime.now(timezone.utc)},
        )
        logger.info("Submission %s restituita all'autore", submission_id)
        return Submission(**d)

    @staticmethod
    async def get_submission(submission_id: str, user: UserContext, repo: SubmissionRepo) -> Submission:
        sub = await SubmissionService.load(submission_id, repo)
        if sub.authorId != user.user_id and not is_admin(user):
            raise PermissionError("Accesso consentito solo all'autore o agli amministratori")
        return sub

    @staticmethod
    async def get_my_submission(assignment_id: str, user: UserContext, repo: SubmissionRepo) -> Submission | None:
        d = await repo.get_by_author(assignment_id, user.user_id)
        return Submission(**d) if d else None

    @staticmethod
    async def list_submissions(
        assignment_id: str, user: UserContext, repo: SubmissionRepo, state: str | None = None,
    ) -> List[Submission]:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono vedere tutte le submission")
        docs = await repo.list_by_assignment(assignment_id, state)
        return [Submission(**d) for d in docs]

    @staticmethod
    async def load(submission_id: str, repo: SubmissionRepo) -> Submission:
        d = await repo.get(submission_id)
        if not d:
            raise NotFoundError(f"Submission {submission_id} non trovata")
        return Submission(**d)
