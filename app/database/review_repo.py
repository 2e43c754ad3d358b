from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple


def latest_revisions(docs: Iterable[Mapping[str, Any]]) -> List[dict]:
    """Tiene solo l'ultima revisione per ogni coppia (reviewer, submission)."""
    best: Dict[Tuple[str, str], Mapping[str, Any]] = {}
    for d in docs:
        key = (d["reviewerId"], d["submissionId"])
        cur = best.get(key)
        if cur is None or d["revision"] > cur["revision"]:
            best[key] = d
    return sorted((dict(d) for d in best.values()), key=lambda d: (d["createdAt"], d["reviewerId"]))


class ReviewRepo(ABC):
    """
    Interfaccia astratta per la persistenza del dominio 'review'.

    NOTE:
    - Gli ID applicativi sono stringhe (UUID).
    - Una review non viene mai modificata: una correzione e' una nuova
      revisione (revision = precedente + 1) che la sostituisce ai fini
      dell'aggregazione; le revisioni precedenti restano per audit.
    - Unicita' su (reviewerId, submissionId, revision): l'inserimento di un
      doppione solleva DuplicateReviewError in modo atomico.
    - I metodi ritornano dict; la conversione verso i modelli Pydantic
      e' compito del service.
    """

    @abstractmethod
    async def insert(self, doc: Mapping[str, Any]) -> dict:
        """
        Inserisce una review (doc completo di reviewId e revision).
        Solleva DuplicateReviewError se la revisione per la coppia esiste gia'.
        """
        raise NotImplementedError

    @abstractmethod
    async def latest_for_pair(self, reviewer_id: str, submission_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def for_submission(self, submission_id: str, include_superseded: bool = False) -> Sequence[dict]:
        raise NotImplementedError

    @abstractmethod
    async def by_assignment(self, assignment_id: str, include_superseded: bool = False) -> Sequence[dict]:
        raise NotImplementedError

    @abstractmethod
    async def reviewed_by(self, reviewer_id: str, assignment_id: str) -> Set[str]:
        """submissionId gia' recensite dal reviewer per l'assignment."""
        raise NotImplementedError
