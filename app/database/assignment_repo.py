from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence


class AssignmentRepo(ABC):

    @abstractmethod
    async def insert(self, doc: Mapping[str, Any]) -> dict:
        raise NotImplementedError

    @abstractmethod
    async def get(self, assignment_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_by_club(self, club_id: str, include_retired: bool = False) -> Sequence[dict]:
        raise NotImplementedError

    @abstractmethod
    async def update(self, assignment_id: str, fields: Mapping[str, Any]) -> Optional[dict]:
        """Aggiorna i campi e ritorna il documento aggiornato (None se assente)."""
        raise NotImplementedError
