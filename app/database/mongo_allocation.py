from __future__ import annotations
from typing import Any, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConcurrentModificationError
from app.database.allocation_repo import AllocationRepo

_NO_ID = {"_id": 0}


class MongoAllocationRepository(AllocationRepo):
    """Collection: 'allocation-rounds'"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db["allocation-rounds"]

    async def ensure_indexes(self):
        await self.col.create_index("roundId", unique=True)
        await self.col.create_index(
            [("assignmentId", 1), ("roundNumber", -1)],
            name="uniq_assignment_round",
            unique=True,
        )

    async def current(self, assignment_id: str) -> Optional[dict]:
        return await self.col.find_one(
            {"assignmentId": str(assignment_id)}, _NO_ID, sort=[("roundNumber", -1)]
        )

    async def insert_round(self, doc: Mapping[str, Any]) -> dict:
        try:
            await self.col.insert_one(dict(doc))
        except DuplicateKeyError:
            raise ConcurrentModificationError(
                f"Round {doc.get('roundNumber')} gia' creato per {doc.get('assignmentId')}"
            )
        return await self.col.find_one({"roundId": doc["roundId"]}, _NO_ID)

    async def revoke(self, round_id: str, pair: Mapping[str, str]) -> bool:
        res = await self.col.update_one(
            {"roundId": str(round_id)},
            {"$addToSet": {"revoked": {"reviewer": pair["reviewer"], "submissionId": pair["submissionId"]}}},
        )
        return res.matched_count == 1
