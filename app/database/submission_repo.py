from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence

from app.schemas.review import DeliveredSubmission


class SubmissionRepo(ABC):
    """
    Store delle submission.

    NOTE:
    - Una sola submission per coppia (assignmentId, authorId): vincolo di unicita'
      garantito dallo storage, non da un check-then-insert.
    - Ogni scrittura successiva all'inserimento e' condizionata a `version`
      (optimistic locking): se la versione non coincide l'implementazione
      solleva ConcurrentModificationError e non scrive nulla.
    """

    @abstractmethod
    async def insert(self, doc: Mapping[str, Any]) -> dict:
        """
        Inserisce una nuova submission. Se esiste gia' una submission per
        (assignmentId, authorId) solleva ConcurrentModificationError.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, submission_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def get_by_author(self, assignment_id: str, author_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_by_assignment(self, assignment_id: str, state: Optional[str] = None) -> Sequence[dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_delivered_by_assignment(self, assignment_id: str) -> List[DeliveredSubmission]:
        """
        Ritorna {assignmentId, submissionId, authorId} per tutte le submission
        in stato 'submitted' dell'assignment.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_versioned(
        self,
        submission_id: str,
        expected_version: int,
        fields: Mapping[str, Any],
        history_entry: Optional[Mapping[str, Any]] = None,
    ) -> dict:
        """
        Applica `fields` (e accoda `history_entry` a gradeHistory) in un'unica
        scrittura atomica, incrementando `version`. Ritorna il documento
        aggiornato. Solleva ConcurrentModificationError se la versione
        corrente differisce da `expected_version`.
        """
        raise NotImplementedError
