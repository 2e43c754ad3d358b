from typing import Optional

from fastapi import Request

from app.database.allocation_repo import AllocationRepo
from app.database.assignment_repo import AssignmentRepo
from app.database.review_repo import ReviewRepo
from app.database.submission_repo import SubmissionRepo
from app.services.publisher_service import GradePublisher


def _state(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"Repository {label} non inizializzato")
    return value


def get_assignment_repository(request: Request) -> AssignmentRepo:
    return _state(request, "assignment_repo", "Assignment")


def get_submission_repository(request: Request) -> SubmissionRepo:
    return _state(request, "submission_repo", "Submission")


def get_repository(request: Request) -> ReviewRepo:
    return _state(request, "review_repo", "Review")


def get_allocation_repository(request: Request) -> AllocationRepo:
    return _state(request, "allocation_repo", "Allocation")


def get_publisher(request: Request) -> Optional[GradePublisher]:
    # None quando la messaggistica e' disabilitata
    return getattr(request.app.state, "grade_publisher", None)
