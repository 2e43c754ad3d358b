from __future__ import annotations
from typing import Any, List, Mapping, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.database.assignment_repo import AssignmentRepo

_NO_ID = {"_id": 0}


class MongoAssignmentRepository(AssignmentRepo):

    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db["assignments"]

    async def ensure_indexes(self):
        await self.col.create_index("assignmentId", unique=True)
        await self.col.create_index([("clubId", 1), ("retired", 1)])

    async def insert(self, doc: Mapping[str, Any]) -> dict:
        await self.col.insert_one(dict(doc))
        return await self.get(doc["assignmentId"])

    async def get(self, assignment_id: str) -> Optional[dict]:
        return await self.col.find_one({"assignmentId": str(assignment_id)}, _NO_ID)

    async def list_by_club(self, club_id: str, include_retired: bool = False) -> List[dict]:
        q: dict = {"clubId": str(club_id)}
        if not include_retired:
            q["retired"] = False
        cursor = self.col.find(q, _NO_ID).sort("createdAt", -1)
        return [d async for d in cursor]

    async def update(self, assignment_id: str, fields: Mapping[str, Any]) -> Optional[dict]:
        return await self.col.find_one_and_update(
            {"assignmentId": str(assignment_id)},
            {"$set": dict(fields)},
            projection=_NO_ID,
            return_document=ReturnDocument.AFTER,
        )
