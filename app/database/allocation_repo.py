from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional


class AllocationRepo(ABC):
    """
    Round di allocazione persistiti. Il round con roundNumber piu' alto e'
    l'allocazione corrente dell'assignment; i precedenti restano per storico
    ma non autorizzano piu' nuove review.
    """

    @abstractmethod
    async def current(self, assignment_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def insert_round(self, doc: Mapping[str, Any]) -> dict:
        """
        Salva il round in un'unica scrittura. Se un altro round con lo stesso
        (assignmentId, roundNumber) e' stato salvato nel frattempo solleva
        ConcurrentModificationError.
        """
        raise NotImplementedError

    @abstractmethod
    async def revoke(self, round_id: str, pair: Mapping[str, str]) -> bool:
        """Aggiunge la coppia all'elenco revocato. True se il round esiste."""
        raise NotImplementedError
