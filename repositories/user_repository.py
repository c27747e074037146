"""
User repository: async MongoDB access for the `users` collection.

Token consumption goes through ``consume_token``: a single
find_one_and_update whose filter requires the slot to still hold the
expected digest and to be unexpired. Checking and clearing therefore
happen in one server-side step, and only one of several concurrent
attempts with the same token can win.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase

from schemas.models.user import TokenKind, UserDoc
from shared.datetime_utils import Clock, utc_now
from shared.logging import get_logger

log = get_logger(__name__)

USERS_COLLECTION = "users"


class UserRepository:
    def __init__(self, db: AsyncDatabase, clock: Clock = utc_now) -> None:
        self._col = db[USERS_COLLECTION]
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)
        for kind in TokenKind:
            await self._col.create_index([(f"{kind.value}.value", ASCENDING)], sparse=True)

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({"email": email})
        return UserDoc.from_mongo(doc)

    async def find_by_token(self, kind: TokenKind, token_hash: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({f"{kind.value}.value": token_hash})
        return UserDoc.from_mongo(doc)

    async def insert(self, user: UserDoc) -> UserDoc:
        """Insert a new user; ``DuplicateKeyError`` propagates on an email clash."""
        now = self._clock()
        user.created_at = user.created_at or now
        user.updated_at = now
        result = await self._col.insert_one(user.to_mongo())
        user.id = result.inserted_id
        return user

    async def save_token_slot(self, user: UserDoc, kind: TokenKind) -> None:
        """Persist one token slot as it currently stands on *user*."""
        slot = user.token_slot(kind)
        now = self._clock()
        if slot is None:
            update: dict[str, Any] = {
                "$unset": {kind.value: ""},
                "$set": {"updated_at": now},
            }
        else:
            update = {"$set": {kind.value: slot.model_dump(), "updated_at": now}}
        await self._col.update_one({"_id": user.id}, update)

    async def consume_token(
        self,
        user: UserDoc,
        kind: TokenKind,
        token_hash: str,
        changes: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Optional[UserDoc]:
        """Apply *changes* and clear the slot, only if the token is still live.

        Returns:
            The updated user, or None when the token was already consumed,
            superseded or has expired in the meantime.
        """
        now = now or self._clock()
        doc = await self._col.find_one_and_update(
            {
                "_id": user.id,
                f"{kind.value}.value": token_hash,
                f"{kind.value}.expires_at": {"$gte": now},
            },
            {
                "$set": {**changes, "updated_at": now},
                "$unset": {kind.value: ""},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            log.warning("account_secret_consume_lost", user_id=str(user.id), kind=kind.value)
        return UserDoc.from_mongo(doc)
