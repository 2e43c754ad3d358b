from __future__ import annotations
from typing import Any, List, Mapping, Optional, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import DuplicateReviewError
from app.database.review_repo import ReviewRepo, latest_revisions

_NO_ID = {"_id": 0}


class MongoReviewRepository(ReviewRepo):

    def __init__(self, db: AsyncIOMotorDatabase):
        self.rev = db["reviews"]

    async def ensure_indexes(self):
        await self.rev.create_index("reviewId", unique=True)
        # il controllo "review duplicata" e' il vincolo stesso, non un check-then-insert
        await self.rev.create_index(
            [("reviewerId", 1), ("submissionId", 1), ("revision", 1)],
            name="uniq_reviewer_submission_revision",
            unique=True,
        )
        await self.rev.create_index("submissionId")
        await self.rev.create_index([("assignmentId", 1), ("reviewerId", 1)])

    async def insert(self, doc: Mapping[str, Any]) -> dict:
        try:
            await self.rev.insert_one(dict(doc))
        except DuplicateKeyError:
            raise DuplicateReviewError(
                f"Review gia' presente per {doc.get('reviewerId')} su {doc.get('submissionId')}"
            )
        return await self.rev.find_one({"reviewId": doc["reviewId"]}, _NO_ID)

    async def latest_for_pair(self, reviewer_id: str, submission_id: str) -> Optional[dict]:
        return await self.rev.find_one(
            {"reviewerId": str(reviewer_id), "submissionId": str(submission_id)},
            _NO_ID,
            sort=[("revision", -1)],
        )

    async def for_submission(self, submission_id: str, include_superseded: bool = False) -> List[dict]:
        cursor = self.rev.find({"submissionId": str(submission_id)}, _NO_ID).sort("createdAt", 1)
        docs = [d async for d in cursor]
        return docs if include_superseded else latest_revisions(docs)

    async def by_assignment(self, assignment_id: str, include_superseded: bool = False) -> List[dict]:
        cursor = self.rev.find({"assignmentId": str(assignment_id)}, _NO_ID).sort("createdAt", 1)
        docs = [d async for d in cursor]
        return docs if include_superseded else latest_revisions(docs)

    async def reviewed_by(self, reviewer_id: str, assignment_id: str) -> Set[str]:
        ids = await self.rev.distinct(
            "submissionId", {"reviewerId": str(reviewer_id), "assignmentId": str(assignment_id)}
        )
        return set(ids)
