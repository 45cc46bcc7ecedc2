"""
Local Fallback Store

Per-user collections on top of a KeyValueStore. Every collection lives under
``{resourceKind}_{userKey}`` so several local users never collide, plus one
shared ``users`` collection holding offline credentials.

Every public method is synchronous and performs at most one read and one
write per key. Callers must not await between reading a collection and
writing it back.
"""

import hashlib
import hmac
import secrets
import time
from typing import Any, Callable, Iterable, Optional

import structlog

from money_manager.models.finance import LocalUserRecord, UserSummary
from money_manager.services.storage.interface import (
    DuplicateUserError,
    InvalidCredentials,
    KeyValueStore,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

USERS_KEY = "users"

# Seeded the first time a user's category list is read locally
DEFAULT_CATEGORIES: tuple[dict, ...] = (
    {"id": "1", "name": "Salary", "type": "income", "color": "#10b981"},
    {"id": "2", "name": "Freelance", "type": "income", "color": "#34d399"},
    {"id": "3", "name": "Investment", "type": "income", "color": "#6ee7b7"},
    {"id": "4", "name": "Food", "type": "expense", "color": "#ef4444"},
    {"id": "5", "name": "Transport", "type": "expense", "color": "#f87171"},
    {"id": "6", "name": "Entertainment", "type": "expense", "color": "#fca5a5"},
    {"id": "7", "name": "Bills", "type": "expense", "color": "#dc2626"},
)

_PBKDF2_ITERATIONS = 120_000


class LocalIdGenerator:
    """
    Type-prefixed, timestamp-based ids (``inc_1735689600000``).

    Ids are strictly increasing within a process and skip any value already
    present in the target collection, so two creates in the same millisecond
    still get distinct ids.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def next_id(self, prefix: str, taken: Iterable[str] = ()) -> str:
        taken = set(taken)
        stamp = max(int(self._clock() * 1000), self._last + 1)
        while f"{prefix}_{stamp}" in taken:
            stamp += 1
        self._last = stamp
        return f"{prefix}_{stamp}"


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt),
        _PBKDF2_ITERATIONS,
    )
    return digest.hex()


class LocalStore:
    """Collection-level operations used by the local branch of every operation."""

    def __init__(
        self,
        kv: KeyValueStore,
        id_generator: Optional[LocalIdGenerator] = None,
    ):
        self._kv = kv
        self._ids = id_generator or LocalIdGenerator()

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    @staticmethod
    def collection_key(kind: str, user_key: str) -> str:
        return f"{kind}_{user_key}"

    def new_id(self, prefix: str, taken: Iterable[str] = ()) -> str:
        return self._ids.next_id(prefix, taken)

    # -- collections ---------------------------------------------------------

    def records(self, kind: str, user_key: str) -> list[dict]:
        records = self._kv.get(self.collection_key(kind, user_key), [])
        if not isinstance(records, list):
            logger.warning("local_collection_corrupt", kind=kind, user=user_key)
            return []
        return records

    def insert(
        self,
        kind: str,
        user_key: str,
        record: dict[str, Any],
        id_prefix: str,
    ) -> dict:
        """Append ``record`` with a freshly generated id. Returns the stored record."""
        key = self.collection_key(kind, user_key)
        records = self.records(kind, user_key)
        stored = {**record, "id": self.new_id(id_prefix, (r.get("id") for r in records))}
        records.append(stored)
        self._kv.set(key, records)
        logger.debug("local_record_inserted", kind=kind, id=stored["id"])
        return stored

    def update(
        self,
        kind: str,
        user_key: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict:
        """
        Merge ``changes`` into one record.

        Raises:
            NotFoundError: If no record has this id
        """
        key = self.collection_key(kind, user_key)
        records = self.records(kind, user_key)
        for index, record in enumerate(records):
            if str(record.get("id")) == str(record_id):
                records[index] = {**record, **changes, "id": record.get("id")}
                self._kv.set(key, records)
                return records[index]
        raise NotFoundError(f"{kind} record not found: {record_id}")

    def delete(self, kind: str, user_key: str, record_id: str) -> bool:
        """Remove one record. Returns False when it was not there."""
        key = self.collection_key(kind, user_key)
        records = self.records(kind, user_key)
        remaining = [r for r in records if str(r.get("id")) != str(record_id)]
        if len(remaining) == len(records):
            return False
        self._kv.set(key, remaining)
        return True

    def categories(self, user_key: str) -> list[dict]:
        """Category collection, seeded with the defaults when empty."""
        records = self.records("categories", user_key)
        if records:
            return records
        seeded = [dict(c) for c in DEFAULT_CATEGORIES]
        self._kv.set(self.collection_key("categories", user_key), seeded)
        logger.info("local_categories_seeded", user=user_key, count=len(seeded))
        return seeded

    # -- offline accounts ----------------------------------------------------

    def _users(self) -> list[dict]:
        users = self._kv.get(USERS_KEY, [])
        return users if isinstance(users, list) else []

    def register_user(self, username: str, email: str, password: str) -> UserSummary:
        """
        Create an offline account.

        Raises:
            DuplicateUserError: If the email is already registered locally
        """
        users = self._users()
        if any(u.get("email", "").lower() == email.lower() for u in users):
            raise DuplicateUserError("Email already exists")

        salt = secrets.token_hex(16)
        record = LocalUserRecord(
            id=self.new_id("user", (u.get("id") for u in users)),
            username=username,
            email=email,
            password_hash=_hash_password(password, salt),
            salt=salt,
        )
        users.append(record.model_dump())
        self._kv.set(USERS_KEY, users)
        return record.to_summary()

    def authenticate(self, email: str, password: str) -> UserSummary:
        """
        Check offline credentials.

        Raises:
            InvalidCredentials: If no local account matches
        """
        for raw in self._users():
            if raw.get("email", "").lower() != email.lower():
                continue
            record = LocalUserRecord(**raw)
            candidate = _hash_password(password, record.salt)
            if hmac.compare_digest(candidate, record.password_hash):
                return record.to_summary()
            break
        raise InvalidCredentials(
            "Invalid email or password. (Offline Mode - Create an account first)"
        )
