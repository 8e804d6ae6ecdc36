# backend/ecotrack/db/mongodb.py
# Store MongoDB (motor) : repositories asynchrones et transactions multi-documents.

from __future__ import annotations

import datetime as dt
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from ecotrack.core.settings import Settings
from ecotrack.db.base import (
    CHALLENGES,
    USER_CHALLENGES,
    ChallengeRepository,
    MembershipRepository,
    Session,
    Store,
    T,
    TransactionBody,
)
from ecotrack.db.indexes import ensure_indexes


class MongoChallengeRepository(ChallengeRepository):
    def __init__(self, coll: AsyncIOMotorCollection):
        self.coll = coll

    async def insert_one(self, doc: dict[str, Any]) -> ObjectId:
        result = await self.coll.insert_one(doc)
        return result.inserted_id

    async def find_one(self, challenge_id: ObjectId, *, session: Session = None) -> dict[str, Any] | None:
        return await self.coll.find_one({"_id": challenge_id}, session=session)

    async def find(self, query: dict[str, Any], *, skip: int, limit: int) -> list[dict[str, Any]]:
        cursor = self.coll.find(query).sort("startDate", ASCENDING).skip(skip).limit(limit)
        return await cursor.to_list(length=limit)

    async def count(self, query: dict[str, Any]) -> int:
        return await self.coll.count_documents(query)

    async def update_fields(self, challenge_id: ObjectId, fields: dict[str, Any], *,
                            guard: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self.coll.find_one_and_update(
            {"_id": challenge_id, **(guard or {})},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def delete_one(self, challenge_id: ObjectId, *, session: Session = None) -> bool:
        result = await self.coll.delete_one({"_id": challenge_id}, session=session)
        return result.deleted_count > 0

    async def increment_participants(self, challenge_id: ObjectId, at: dt.datetime, *, session: Session = None) -> None:
        await self.coll.update_one(
            {"_id": challenge_id},
            {"$inc": {"participants": 1}, "$set": {"updatedAt": at}},
            session=session,
        )


class MongoMembershipRepository(MembershipRepository):
    def __init__(self, coll: AsyncIOMotorCollection):
        self.coll = coll

    async def insert_one(self, doc: dict[str, Any], *, session: Session = None) -> ObjectId:
        # L'index unique (user, challenge) rejette un second join avec DuplicateKeyError
        result = await self.coll.insert_one(doc, session=session)
        return result.inserted_id

    async def count_for_challenge(self, challenge_id: ObjectId, *, session: Session = None) -> int:
        return await self.coll.count_documents({"challenge": challenge_id}, session=session)

    async def delete_for_challenge(self, challenge_id: ObjectId, *, session: Session = None) -> int:
        result = await self.coll.delete_many({"challenge": challenge_id}, session=session)
        return result.deleted_count


class MongoStore(Store):
    """Store MongoDB.

    Description:
        Les transactions exigent un replica set (ou un cluster shardé). Chaque opération est
        bornée par `timeoutMS` (timeout côté client de pymongo) ; la sélection de serveur par
        `serverSelectionTimeoutMS`. Les dates sont relues en UTC (`tz_aware=True`).
    """

    def __init__(self, client: AsyncIOMotorClient, db_name: str):
        self.client = client
        self.db: AsyncIOMotorDatabase = client[db_name]
        self.challenges = MongoChallengeRepository(self.db[CHALLENGES])
        self.memberships = MongoMembershipRepository(self.db[USER_CHALLENGES])

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoStore":
        client = AsyncIOMotorClient(
            settings.mongodb_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.store_timeout_ms,
            timeoutMS=settings.store_timeout_ms,
        )
        return cls(client, settings.mongodb_db)

    async def run_transaction(self, key: ObjectId, body: TransactionBody[T]) -> T:
        # with_transaction ne rejoue que les tentatives jamais validées (TransientTransactionError) :
        # un conflit d'écriture entre deux joins concurrents est réévalué sur un nouveau snapshot.
        async with await self.client.start_session() as session:
            return await session.with_transaction(
                body,
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
            )

    async def ensure_indexes(self) -> None:
        await ensure_indexes(self.db)

    async def ping(self) -> None:
        await self.db.command("ping")

    async def close(self) -> None:
        self.client.close()
