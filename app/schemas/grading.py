from __future__ import annotations
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.schemas.submission import Submission

OutcomeStatus = Literal["finalized", "insufficientReviews", "overrideKept"]


class AggregationPolicy(BaseModel):
    minimumReviewers: int = Field(1, ge=1)
    force: bool = False


class CriterionAggregate(BaseModel):
    criterionId: str
    maxPoints: int
    reviewCount: int
    mean: float
    incomplete: bool = False


class GradeOutcome(BaseModel):
    status: OutcomeStatus
    submissionId: str
    reviewCount: int
    staleReviewCount: int = 0
    criteria: List[CriterionAggregate]
    rubricMeanTotal: float
    rubricMaxTotal: int
    finalScore: Optional[int] = None
    submission: Optional[Submission] = None


class OverrideRequest(BaseModel):
    points: int
    feedback: Optional[str] = None
    release: bool = False
