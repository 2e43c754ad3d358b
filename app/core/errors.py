from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status


class DomainError(Exception):
    """Radice di tutti gli errori di dominio del servizio."""


class ValidationError(DomainError):
    """Input malformato o fuori range. Mai ritentato automaticamente."""


class InvalidTransitionError(ValidationError):
    """Transizione di stato non ammessa dalla macchina a stati della submission."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Transizione non ammessa: {current} -> {target}")
        self.current = current
        self.target = target


class DistributionError(ValidationError):
    """Raised when a manual allocation list is inconsistent."""


class NotFoundError(DomainError):
    pass


class UnauthorizedReviewError(DomainError):
    """Il reviewer non ha una assegnazione valida nel round corrente."""


class DuplicateReviewError(DomainError):
    """Esiste gia' una review per la coppia (reviewer, submission)."""


class DeadlinePassedError(DomainError):
    def __init__(self, deadline: datetime):
        super().__init__(f"Scadenza superata ({deadline.isoformat()})")
        self.deadline = deadline


class ConcurrentModificationError(DomainError):
    """Scrittura concorrente sullo stesso documento: rileggere e riprovare."""


def to_http(exc: Exception) -> HTTPException:
    """Traduce un errore di dominio nella risposta HTTP corrispondente."""
    detail: Optional[object] = str(exc)
    if isinstance(exc, PermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, UnauthorizedReviewError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (DuplicateReviewError, ConcurrentModificationError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, DeadlinePassedError):
        code = status.HTTP_409_CONFLICT
        detail = {"message": str(exc), "deadline": exc.deadline.isoformat()}
    elif isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=detail)
