from __future__ import annotations
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple
import logging

from app.database.assignment_repo import AssignmentRepo
from app.database.review_repo import ReviewRepo
from app.database.submission_repo import SubmissionRepo
from app.schemas.context import UserContext, is_admin
from app.schemas.grading import AggregationPolicy, CriterionAggregate, GradeOutcome, OverrideRequest
from app.schemas.review import Review
from app.schemas.rubric import Rubric
from app.schemas.submission import Submission, ensure_transition
from app.services.assignment_service import AssignmentService
from app.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)


def aggregate_scores(reviews: Sequence[Review], rubric: Rubric) -> Tuple[List[CriterionAggregate], Fraction]:
    """
    Media aritmetica per criterio sulle review. Un criterio senza punteggi
    contribuisce 0 ed e' marcato incomplete. Ritorna anche il totale delle
    medie come frazione esatta.
    """
    aggregates = []
    total = Fraction(0)
    for crit in rubric.criteria:
        points = [s.points for r in reviews for s in r.scores if s.criterionId == crit.criterionId]
        mean = Fraction(sum(points), len(points)) if points else Fraction(0)
        total += mean
        aggregates.append(CriterionAggregate(
            criterionId=crit.criterionId,
            maxPoints=crit.maxPoints,
            reviewCount=len(points),
            mean=float(mean),
            incomplete=not points,
        ))
    return aggregates, total


def rescale(mean_total: Fraction, rubric_max: int, max_points: int) -> int:
    # round() su Fraction arrotonda al pari in caso di .5 esatto
    return round(mean_total / rubric_max * max_points)


def combined_feedback(reviews: Sequence[Review]) -> Optional[str]:
    parts = [f"[{r.reviewerId}] {r.comment.strip()}" for r in reviews if r.comment and r.comment.strip()]
    return "\n\n".join(parts) or None


class GradingService:

    @staticmethod
    async def finalize_grade(
        submission_id: str,
        policy: AggregationPolicy,
        user: UserContext,
        repo: ReviewRepo,
        submission_repo: SubmissionRepo,
        assignment_repo: AssignmentRepo,
    ) -> GradeOutcome:
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono finalizzare un voto")
        sub = await SubmissionService.load(submission_id, submission_repo)
        ensure_transition(sub.state, "graded")
        assignment = await AssignmentService.get_assignment(sub.assignmentId, assignment_repo)
        rubric = assignment.rubric

        latest = [Review(**d) for d in await repo.for_submission(submission_id)]
        # i punteggi dati su un'altra versione della rubrica non si confrontano
        reviews = [r for r in latest if r.rubricVersion == rubric.version]
        stale = len(latest) - len(reviews)
        criteria, mean_total = aggregate_scores(reviews, rubric)

        enough = len(reviews) >= policy.minimumReviewers and not any(c.incomplete for c in criteria)
        outcome = GradeOutcome(
            status="insufficientReviews",
            submissionId=submission_id,
            reviewCount=len(reviews),
            staleReviewCount=stale,
            criteria=criteria,
            rubricMeanTotal=float(mean_total),
            rubricMaxTotal=rubric.max_total,
            submission=sub,
        )
        if stale:
            logger.warning(
                "Submission %s: %s review su una versione precedente della rubrica (v%s), ignorate",
                submission_id, stale, rubric.version,
            )

        if sub.isOverride and not policy.force:
            logger.info("Submission %s: voto diretto presente, serve force per sostituirlo", submission_id)
            return outcome.model_copy(update={"status": "overrideKept"})
        # anche con force serve almeno una review
        if not reviews or not (enough or policy.force):
            logger.info(
                "Submission %s: review insufficienti (%s, minimo %s)",
                submission_id, len(reviews), policy.minimumReviewers,
            )
            return outcome

        final = rescale(mean_total, rubric.max_total, assignment.maxPoints)
        feedback = combined_feedback(reviews)

        already = (
            sub.state in ("graded", "returned")
            and sub.gradeSource == "peer"
            and sub.earnedPoints == final
            and sub.feedback == feedback
        )
        if not already:
            sub = await SubmissionService.apply_grade(
                submission_repo, sub, assignment.maxPoints, final, feedback,
                source="peer", graded_by=user.user_id,
            )
        return outcome.model_copy(update={"status": "finalized", "finalScore": final, "submission": sub})

    @staticmethod
    async def override_grade(
        submission_id: str,
        payload: OverrideRequest,
        user: UserContext,
        submission_repo: SubmissionRepo,
        assignment_repo: AssignmentRepo,
    ) -> Submission:
        """Voto diretto del docente, senza aggregazione; marcato come override."""
        if not is_admin(user):
            raise PermissionError("Solo gli amministratori possono assegnare un voto diretto")
        sub = await SubmissionService.load(submission_id, submission_repo)
        assignment = await AssignmentService.get_assignment(sub.assignmentId, assignment_repo)
        return await SubmissionService.apply_grade(
            submission_repo, sub, assignment.maxPoints, payload.points, payload.feedback,
            source="override", graded_by=user.user_id, release=payload.release,
        )
