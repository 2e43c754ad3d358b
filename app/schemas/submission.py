from __future__ import annotations
from typing import Dict, FrozenSet, List, Literal, Optional
from datetime import datetime

from pydantic import BaseModel, Field

from app.core.errors import InvalidTransitionError

SubmissionState = Literal["draft", "submitted", "graded", "returned"]
GradeSource = Literal["peer", "override"]

# graded -> graded: ri-finalizzazione; returned -> graded: regrade
TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"submitted"}),
    "submitted": frozenset({"graded"}),
    "graded": frozenset({"graded", "returned"}),
    "returned": frozenset({"graded"}),
}


def ensure_transition(current: str, target: str) -> None:
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, target)


class GradeRecord(BaseModel):
    points: int
    feedback: Optional[str] = None
    source: GradeSource
    gradedBy: str
    gradedAt: datetime


class SubmissionBody(BaseModel):
    content: Optional[str] = None
    fileRef: Optional[str] = None


class SubmitRequest(SubmissionBody):
    # None -> l'autore e' il chiamante
    authorId: Optional[str] = None


class Submission(BaseModel):
    submissionId: str
    assignmentId: str
    authorId: str
    content: Optional[str] = None
    fileRef: Optional[str] = None
    state: SubmissionState = "draft"
    earnedPoints: Optional[int] = None
    feedback: Optional[str] = None
    submittedAt: Optional[datetime] = None
    gradedAt: Optional[datetime] = None
    gradedBy: Optional[str] = None
    gradeSource: Optional[GradeSource] = None
    isOverride: bool = False
    gradeHistory: List[GradeRecord] = Field(default_factory=list)
    version: int = 0
    createdAt: datetime
    updatedAt: Optional[datetime] = None
