from __future__ import annotations
from typing import Any, List, Mapping, Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConcurrentModificationError
from app.database.submission_repo import SubmissionRepo
from app.schemas.review import DeliveredSubmission

logger = logging.getLogger(__name__)

_NO_ID = {"_id": 0}


class MongoSubmissionRepository(SubmissionRepo):
    """
    Persistenza delle submission.
    Collection: 'submissions'
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db["submissions"]

    async def ensure_indexes(self):
        """
        Indici:
        - Unicita' per (assignmentId, authorId): una sola submission per autore/compito.
        - submissionId univoco (ID applicativo, mai _id di Mongo).
        - (assignmentId, state) per le liste del docente e dell'allocatore.
        """
        await self.col.create_index(
            [("assignmentId", 1), ("authorId", 1)],
            name="uniq_assignment_author",
            unique=True,
        )
        await self.col.create_index("submissionId", unique=True)
        await self.col.create_index([("assignmentId", 1), ("state", 1)])

    async def insert(self, doc: Mapping[str, Any]) -> dict:
        try:
            await self.col.insert_one(dict(doc))
        except DuplicateKeyError:
            # Stessa coppia (assignmentId, authorId) creata da una richiesta concorrente
            raise ConcurrentModificationError(
                f"Submission gia' esistente per {doc.get('authorId')} su {doc.get('assignmentId')}"
            )
        return await self.get(doc["submissionId"])

    async def get(self, submission_id: str) -> Optional[dict]:
        return await self.col.find_one({"submissionId": str(submission_id)}, _NO_ID)

    async def get_by_author(self, assignment_id: str, author_id: str) -> Optional[dict]:
        return await self.col.find_one(
            {"assignmentId": str(assignment_id), "authorId": str(author_id)}, _NO_ID
        )

    async def list_by_assignment(self, assignment_id: str, state: Optional[str] = None) -> List[dict]:
        q = {"assignmentId": str(assignment_id)}
        if state:
            q["state"] = state
        cursor = self.col.find(q, _NO_ID).sort("createdAt", 1)
        return [d async for d in cursor]

    async def list_delivered_by_assignment(self, assignment_id: str) -> List[DeliveredSubmission]:
        cursor = self.col.find(
            {"assignmentId": str(assignment_id), "state": "submitted"},
            {"_id": 0, "submissionId": 1, "authorId": 1, "assignmentId": 1},
        )
        out: List[DeliveredSubmission] = []
        async for doc in cursor:
            out.append(DeliveredSubmission(**doc))
        return out

    async def update_versioned(
        self,
        submission_id: str,
        expected_version: int,
        fields: Mapping[str, Any],
        history_entry: Optional[Mapping[str, Any]] = None,
    ) -> dict:
        update: dict = {"$set": dict(fields), "$inc": {"version": 1}}
        if history_entry is not None:
            update["$push"] = {"gradeHistory": dict(history_entry)}

        # Una sola scrittura su un solo documento: o passa tutto o niente
        doc = await self.col.find_one_and_update(
            {"submissionId": str(submission_id), "version": expected_version},
            update,
            projection=_NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            logger.debug("Version mismatch su %s (attesa %s)", submission_id, expected_version)
            raise ConcurrentModificationError(
                f"Submission {submission_id} modificata da un'altra richiesta: rileggere e riprovare"
            )
        return doc
