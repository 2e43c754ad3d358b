from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Sequence
from uuid import uuid4
import logging

from app.core.errors import (
    ConcurrentModificationError, DuplicateReviewError, NotFoundError, UnauthorizedReviewError,
)
from app.database.allocation_repo import AllocationRepo
from app.database.assignment_repo import AssignmentRepo
from app.database.review_repo import ReviewRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import UserContext, is_admin
from app.schemas.review import AllocationRound, AssignmentPair, Review, ReviewCreate, ReviewReceipt
from app.schemas.rubric import CriterionScore, Rubric
from app.schemas.submission import Submission
from app.services.assignment_service import AssignmentService
from app.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)


def _receipt(review: Review, rubric: Rubric) -> ReviewReceipt:
    return ReviewReceipt(
        reviewId=review.reviewId,
        revision=review.revision,
        scores=review.scores,
        total=review.total,
        maxTotal=rubric.max_total,
    )


class ReviewService:

    @staticmethod
    async def submit_review(
        submission_id: str,
        payload: ReviewCreate,
        user: UserContext,
        repo: ReviewRepo,
        submission_repo: SubmissionRepo,
        allocation_repo: AllocationRepo,
        assignment_repo: AssignmentRepo,
    ) -> ReviewReceipt:
        """
        Registra la review di `user` sulla submission. Nessun effetto oltre
        alla persistenza: l'aggregazione del voto e' un passo separato.
        """
        sub = await SubmissionService.load(submission_id, submission_repo)
        if sub.authorId == user.user_id:
            raise UnauthorizedReviewError("Non si puo' recensire la propria submission")

        current = await allocation_repo.current(sub.assignmentId)
        if current is None or not AllocationRound(**current).is_active(user.user_id, submission_id):
            raise UnauthorizedReviewError(
                f"{user.user_id} non ha un'assegnazione valida per la submission {submission_id}"
            )
        if await repo.latest_for_pair(user.user_id, submission_id):
            raise DuplicateReviewError("Review gia' inviata: usare la correzione (amend)")

        assignment = await AssignmentService.get_assignment(sub.assignmentId, assignment_repo)
        scores = assignment.rubric.validate_scores(payload.scores)

        review = ReviewService._build(sub, user, scores, payload.comment, assignment.rubric, current["roundId"])
        # l'indice univoco su (reviewer, submission, revision) chiude la race
        await repo.insert(review.model_dump())
        logger.info("Review %s inviata da %s per %s", review.reviewId, user.user_id, submission_id)
        return _receipt(review, assignment.rubric)

    @staticmethod
    async def amend_review(
        submission_id: str,
        payload: ReviewCreate,
        user: UserContext,
        repo: ReviewRepo,
        submission_repo: SubmissionRepo,
        assignment_repo: AssignmentRepo,
    ) -> ReviewReceipt:
        """Nuova revisione che sostituisce l'ultima; le precedenti restano per audit."""
        sub = await SubmissionService.load(submission_id, submission_repo)
        latest = await repo.latest_for_pair(user.user_id, submission_id)
        if latest is None:
            raise NotFoundError("Nessuna review da correggere per questa submission")

        assignment = await AssignmentService.get_assignment(sub.assignmentId, assignment_repo)
        scores = assignment.rubric.validate_scores(payload.scores)

        review = ReviewService._build(
            sub, user, scores, payload.comment, assignment.rubric, latest.get("roundId"),
            revision=latest["revision"] + 1, supersedes=latest["reviewId"],
        )
        try:
            await repo.insert(review.model_dump())
        except DuplicateReviewError:
            raise ConcurrentModificationError("Review corretta da un'altra richiesta: rileggere e riprovare")
        logger.info("Review %s (rev %s) sostituisce %s", review.reviewId, review.revision, latest["reviewId"])
        return _receipt(review, assignment.rubric)

    @staticmethod
    async def list_my_pending(
        assignment_id: str, user: UserContext, repo: ReviewRepo, allocation_repo: AllocationRepo,
    ) -> List[AssignmentPair]:
        current = await allocation_repo.current(assignment_id)
        if current is None:
            return []
        rnd = AllocationRound(**current)
        done = await repo.reviewed_by(user.user_id, assignment_id)
        return [
            p for p in rnd.pairs
            if p.reviewer == user.user_id and p not in rnd.revoked and p.submissionId not in done
        ]

    @staticmethod
    async def list_for_submission(
        submission_id: str, user: UserContext, repo: ReviewRepo, submission_repo: SubmissionRepo,
    ) -> List[Review]:
        sub = await SubmissionService.load(submission_id, submission_repo)
        # l'autore vede le review solo dopo la restituzione del voto
        if not (is_admin(user) or (sub.authorId == user.user_id and sub.state == "returned")):
            raise PermissionError("Review non ancora consultabili")
        docs = await repo.for_submission(submission_id)
        return [Review(**d) for d in docs]

    @staticmethod
    async def list_by_assignment(
        assignment_id: str, user: UserContext, repo: ReviewRepo, include_superseded: bool = False,
    ) -> List[Review]:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono consultare le review di un assignment")
        docs = await repo.by_assignment(assignment_id, include_superseded)
        return [Review(**d) for d in docs]

    @staticmethod
    def _build(
        sub: Submission,
        user: UserContext,
        scores: Sequence[CriterionScore],
        comment: str,
        rubric: Rubric,
        round_id: str | None,
        revision: int = 1,
        supersedes: str | None = None,
    ) -> Review:
        return Review(
            reviewId=str(uuid4()),
            assignmentId=sub.assignmentId,
            submissionId=sub.submissionId,
            reviewerId=user.user_id,
            roundId=round_id,
            rubricVersion=rubric.version,
            scores=list(scores),
            comment=comment,
            revision=revision,
            supersedes=supersedes,
            createdAt=datetime.now(timezone.utc),
        )
