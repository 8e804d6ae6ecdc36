# backend/ecotrack/db/memory.py
# Store en mémoire (dev / tests) : mêmes invariants que MongoDB sans serveur.
#
# Pas d'isolation transactionnelle native ici : les transactions sont sérialisées par
# challenge (asyncio.Lock) et annulées via un journal d'undo en cas d'échec.

from __future__ import annotations

import asyncio
import copy
import datetime as dt
import re
from typing import Any, Callable

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from ecotrack.core.errors import StoreUnavailableError
from ecotrack.db.base import (
    ChallengeRepository,
    MembershipRepository,
    Store,
    T,
    TransactionBody,
)

_MISSING = object()


def _compare(value: Any, op: str, operand: Any) -> bool:
    if value is None or value is _MISSING:
        return False
    try:
        if op == "$gte":
            return value >= operand
        if op == "$lte":
            return value <= operand
        if op == "$gt":
            return value > operand
        if op == "$lt":
            return value < operand
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {op}")


def _match_condition(value: Any, cond: Any) -> bool:
    """Évalue une condition de champ (égalité ou opérateurs) ; un tableau matche si un élément matche."""
    if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
        if isinstance(value, list) and "$in" not in cond:
            return any(_match_condition(v, cond) for v in value)
        for op, operand in cond.items():
            if op == "$in":
                candidate = None if value is _MISSING else value
                if isinstance(candidate, list):
                    if not any(v in operand for v in candidate):
                        return False
                elif candidate not in operand:
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(operand, value, flags):
                    return False
            elif op == "$options":
                continue
            elif not _compare(value, op, operand):
                return False
        return True
    if isinstance(value, list):
        return cond in value
    return (None if value is _MISSING else value) == cond


def matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    """Sous-ensemble du langage de requête Mongo produit par `query_builder`."""
    for key, cond in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in cond):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in cond):
                return False
        elif not _match_condition(doc.get(key, _MISSING), cond):
            return False
    return True


def _duplicate(index_name: str, key: dict[str, Any]) -> DuplicateKeyError:
    return DuplicateKeyError(
        f"E11000 duplicate key error index: {index_name} dup key: {key}",
        code=11000,
    )


class MemorySession:
    """Journal d'undo d'une transaction en cours."""

    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()


class MemoryChallengeRepository(ChallengeRepository):
    def __init__(self) -> None:
        self.docs: dict[ObjectId, dict[str, Any]] = {}

    def _slug_taken(self, slug: Any, exclude: ObjectId | None = None) -> bool:
        return any(d.get("slug") == slug and _id != exclude for _id, d in self.docs.items())

    async def insert_one(self, doc: dict[str, Any]) -> ObjectId:
        if self._slug_taken(doc.get("slug")):
            raise _duplicate("uniq_challenge_slug", {"slug": doc.get("slug")})
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self.docs[stored["_id"]] = stored
        return stored["_id"]

    async def find_one(self, challenge_id: ObjectId, *, session: MemorySession | None = None) -> dict[str, Any] | None:
        doc = self.docs.get(challenge_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _filtered(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        return [d for d in self.docs.values() if matches(d, query)]

    async def find(self, query: dict[str, Any], *, skip: int, limit: int) -> list[dict[str, Any]]:
        found = sorted(
            self._filtered(query),
            key=lambda d: (d.get("startDate") is not None, d.get("startDate") or dt.datetime.min.replace(tzinfo=dt.timezone.utc)),
        )
        return [copy.deepcopy(d) for d in found[skip:skip + limit]]

    async def count(self, query: dict[str, Any]) -> int:
        return len(self._filtered(query))

    async def update_fields(self, challenge_id: ObjectId, fields: dict[str, Any], *,
                            guard: dict[str, Any] | None = None) -> dict[str, Any] | None:
        doc = self.docs.get(challenge_id)
        if doc is None or (guard and not matches(doc, guard)):
            return None
        if "slug" in fields and self._slug_taken(fields["slug"], exclude=challenge_id):
            raise _duplicate("uniq_challenge_slug", {"slug": fields["slug"]})
        doc.update(copy.deepcopy(fields))
        return copy.deepcopy(doc)

    async def delete_one(self, challenge_id: ObjectId, *, session: MemorySession | None = None) -> bool:
        doc = self.docs.pop(challenge_id, None)
        if doc is None:
            return False
        if session is not None:
            session.record(lambda: self.docs.setdefault(challenge_id, doc))
        return True

    async def increment_participants(self, challenge_id: ObjectId, at: dt.datetime, *, session: MemorySession | None = None) -> None:
        doc = self.docs.get(challenge_id)
        if doc is None:
            return
        previous_updated_at = doc.get("updatedAt")
        doc["participants"] = doc.get("participants", 0) + 1
        doc["updatedAt"] = at

        def _undo() -> None:
            doc["participants"] -= 1
            doc["updatedAt"] = previous_updated_at

        if session is not None:
            session.record(_undo)


class MemoryMembershipRepository(MembershipRepository):
    def __init__(self) -> None:
        self.docs: dict[ObjectId, dict[str, Any]] = {}

    async def insert_one(self, doc: dict[str, Any], *, session: MemorySession | None = None) -> ObjectId:
        pair = (doc.get("user"), doc.get("challenge"))
        if any((d.get("user"), d.get("challenge")) == pair for d in self.docs.values()):
            raise _duplicate("uniq_user_challenge_pair", {"user": pair[0], "challenge": pair[1]})
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self.docs[stored["_id"]] = stored
        if session is not None:
            session.record(lambda: self.docs.pop(stored["_id"], None))
        return stored["_id"]

    async def count_for_challenge(self, challenge_id: ObjectId, *, session: MemorySession | None = None) -> int:
        return sum(1 for d in self.docs.values() if d.get("challenge") == challenge_id)

    async def delete_for_challenge(self, challenge_id: ObjectId, *, session: MemorySession | None = None) -> int:
        removed = {_id: d for _id, d in self.docs.items() if d.get("challenge") == challenge_id}
        for _id in removed:
            del self.docs[_id]
        if session is not None:
            session.record(lambda: self.docs.update(removed))
        return len(removed)


class InMemoryStore(Store):
    """Store en mémoire, transactions sérialisées par challenge.

    Args:
        timeout_s (float): Attente maximale du verrou d'un challenge avant `StoreUnavailableError`.
    """

    def __init__(self, timeout_s: float = 5.0):
        self.timeout_s = timeout_s
        self.challenges = MemoryChallengeRepository()
        self.memberships = MemoryMembershipRepository()
        # Verrou par challenge + nombre de transactions qui le détiennent ou l'attendent
        self._locks: dict[ObjectId, tuple[asyncio.Lock, int]] = {}

    def _checkout_lock(self, key: ObjectId) -> asyncio.Lock:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        return lock

    def _release_lock(self, key: ObjectId) -> None:
        if key not in self._locks:
            return
        lock, users = self._locks[key]
        if users <= 1:
            del self._locks[key]
        else:
            self._locks[key] = (lock, users - 1)

    @property
    def lock_count(self) -> int:
        """Nombre de verrous de challenge actuellement référencés."""
        return len(self._locks)

    async def run_transaction(self, key: ObjectId, body: TransactionBody[T]) -> T:
        lock = self._checkout_lock(key)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout_s)
            except asyncio.TimeoutError as e:
                raise StoreUnavailableError("Transaction lock timeout") from e

            session = MemorySession()
            try:
                return await body(session)
            except BaseException:
                # Échec ou annulation : aucun effet partiel ne doit subsister
                session.rollback()
                raise
            finally:
                lock.release()
        finally:
            self._release_lock(key)

    async def ensure_indexes(self) -> None:
        # Unicité vérifiée à l'écriture par les repositories
        return None

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._locks.clear()
