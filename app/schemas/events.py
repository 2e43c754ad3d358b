from __future__ import annotations
from typing import List, Literal, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from app.schemas.submission import Submission, SubmissionState

GradeEventType = Literal["grade.finalized", "grade.overridden", "grade.released"]


class DeadlineEvent(BaseModel):
    """Messaggio di scadenza pubblicato dal servizio assignment."""
    assignmentId: str = Field(..., min_length=1)
    seed: Optional[int] = None
    reviewerPool: Optional[List[str]] = None


class GradeEvent(BaseModel):
    eventType: GradeEventType
    submissionId: str
    assignmentId: str
    authorId: str
    state: SubmissionState
    earnedPoints: Optional[int] = None
    isOverride: bool = False
    occurredAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_submission(cls, submission: Submission, event_type: GradeEventType) -> "GradeEvent":
        return cls(
            eventType=event_type,
            submissionId=submission.submissionId,
            assignmentId=submission.assignmentId,
            authorId=submission.authorId,
            state=submission.state,
            earnedPoints=submission.earnedPoints,
            isOverride=submission.isOverride,
        )
