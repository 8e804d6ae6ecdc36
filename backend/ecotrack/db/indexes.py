# ecotrack/db/indexes.py
"""
Idempotent index seeding for the EcoTrack collections.

- Matching by KEYS: if an index with same keys exists, keep it when options match.
- If options differ (unique), drop & recreate.
- Unique indexes carry the store-level invariants: one slug per challenge,
  one membership per (user, challenge) pair.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.operations import IndexModel

from ecotrack.db.base import CHALLENGES, USER_CHALLENGES

KeySpec = List[Tuple[str, int]]


def _normalize_key_from_mongo(key_doc: Dict[str, Any]) -> KeySpec:
    """Mongo returns an ordered mapping; convert to list of (field, direction)."""
    return [(k, int(v)) for k, v in key_doc.items()]


async def _find_existing_by_keys(coll: AsyncIOMotorCollection, keys: KeySpec) -> Optional[Dict[str, Any]]:
    async for ix in coll.list_indexes():
        if 'key' in ix and _normalize_key_from_mongo(ix['key']) == keys:
            return ix
    return None


async def ensure_index(db: AsyncIOMotorDatabase, coll_name: str, keys: KeySpec, *,
                       name: Optional[str] = None, unique: bool = False) -> None:
    coll = db[coll_name]
    existing = await _find_existing_by_keys(coll, keys)
    if existing and bool(existing.get('unique', False)) == unique:
        return
    if existing:
        await coll.drop_index(existing['name'])
    opts: Dict[str, Any] = {'unique': unique}
    if name:
        opts['name'] = name
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # ---------- challenges ----------
    await ensure_index(db, CHALLENGES, [('slug', ASCENDING)], name='uniq_challenge_slug', unique=True)
    await ensure_index(db, CHALLENGES, [('startDate', ASCENDING)])
    await ensure_index(db, CHALLENGES, [('category', ASCENDING)])

    # ---------- userChallenges ----------
    await ensure_index(db, USER_CHALLENGES, [('user', ASCENDING), ('challenge', ASCENDING)],
                       name='uniq_user_challenge_pair', unique=True)
    await ensure_index(db, USER_CHALLENGES, [('challenge', ASCENDING)])
