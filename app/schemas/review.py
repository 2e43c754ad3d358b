from __future__ import annotations
from typing import Dict, List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.schemas.rubric import CriterionScore

AllocationMode = Literal["automatic", "manual"]


class DeliveredSubmission(BaseModel):
    """Vista minima di una submission consegnata, input dell'allocatore."""
    assignmentId: str
    submissionId: str
    authorId: str


class AssignmentPair(BaseModel):
    reviewer: str
    submissionId: str


class AllocationResult(BaseModel):
    assignments: Dict[str, List[str]] = Field(default_factory=dict)
    pairs: List[AssignmentPair] = Field(default_factory=list)
    shortfall: int = 0
    reviewerShortfall: int = 0
    seed: int


class AllocationRequest(BaseModel):
    automatic_mode: bool = True
    reviewerPool: Optional[List[str]] = None
    seed: Optional[int] = None
    lista_assegnazioni: Optional[List[AssignmentPair]] = None


class AllocationRound(BaseModel):
    roundId: str
    assignmentId: str
    roundNumber: int
    mode: AllocationMode
    seed: Optional[int] = None
    pairs: List[AssignmentPair]
    revoked: List[AssignmentPair] = Field(default_factory=list)
    shortfall: int = 0
    reviewerShortfall: int = 0
    createdBy: str
    createdAt: datetime

    def is_active(self, reviewer: str, submission_id: str) -> bool:
        pair = AssignmentPair(reviewer=reviewer, submissionId=submission_id)
        return pair in self.pairs and pair not in self.revoked


class RevokeRequest(BaseModel):
    reviewer: str
    submissionId: str


class ReviewCreate(BaseModel):
    scores: List[CriterionScore] = Field(..., min_length=1)
    comment: str = ""


class Review(BaseModel):
    reviewId: str
    assignmentId: str
    submissionId: str
    reviewerId: str
    roundId: Optional[str] = None
    rubricVersion: int
    scores: List[CriterionScore]
    comment: str = ""
    revision: int = 1
    supersedes: Optional[str] = None
    createdAt: datetime

    @property
    def total(self) -> int:
        return sum(s.points for s in self.scores)


class ReviewReceipt(BaseModel):
    reviewId: str
    revision: int
    scores: List[CriterionScore]
    total: int
    maxTotal: int
