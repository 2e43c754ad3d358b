from __future__ import annotations
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.rubric import Rubric, default_rubric


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    lessonId: Optional[str] = None
    dueAt: Optional[datetime] = None
    maxPoints: int = Field(100, gt=0)
    rubric: Optional[Rubric] = None


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    dueAt: Optional[datetime] = None
    maxPoints: Optional[int] = Field(None, gt=0)
    rubric: Optional[Rubric] = None


class Assignment(BaseModel):
    assignmentId: str
    clubId: str
    lessonId: Optional[str] = None
    title: str
    description: str
    dueAt: Optional[datetime] = None
    maxPoints: int = 100
    rubric: Rubric = Field(default_factory=default_rubric)
    createdBy: str
    createdAt: datetime
    updatedAt: Optional[datetime] = None
    retired: bool = False
