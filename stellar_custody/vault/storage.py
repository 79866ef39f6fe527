"""
Wallet Storage: persistence collaborators for wallet records.

Two backends share the ``WalletStore`` interface and are picked when the key
store is constructed:
- ``MemoryWalletStore``: process-local dictionaries (tests, demos).
- ``PostgresWalletStore``: asyncpg pool, table ``custody.stellar_wallets``.

Both enforce ``user_id`` and ``public_key`` uniqueness at the storage layer.
A duplicate ``user_id`` raises ``WalletAlreadyExists`` so that the key store
can resolve a concurrent create by re-reading the winner's record.

Security Note:
    Never log ``encrypted_secret``, ``nonce`` or ``auth_tag``. Only log
    wallet ids, user ids and public keys.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import asyncpg
import orjson

from .exceptions import StorageFailure, WalletAlreadyExists
from .models import WalletRecord

logger = logging.getLogger("stellar_custody.vault")


class WalletStore(ABC):
    """Durable home of wallet records."""

    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> Optional[WalletRecord]:
        """Return the record for ``user_id`` or None."""

    @abstractmethod
    async def insert(self, record: WalletRecord) -> WalletRecord:
        """Persist a new record atomically.

        Raises:
            WalletAlreadyExists: A record for ``record.user_id`` exists.
            StorageFailure: Any other storage error (including a public key
                collision). Nothing is written in that case.
        """

    @abstractmethod
    async def touch_last_used(self, wallet_id: str, timestamp: datetime) -> None:
        """Record a successful signing on ``wallet_id``."""

    @abstractmethod
    async def list_public_keys(self) -> list[str]:
        """Return every stored public key (monitoring)."""


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryWalletStore(WalletStore):
    """Dictionary-backed store with unique indexes on user id and public key."""

    def __init__(self):
        self._records: dict[str, WalletRecord] = {}  # wallet_id -> record
        self._by_user: dict[str, str] = {}  # user_id -> wallet_id
        self._by_public_key: dict[str, str] = {}  # public_key -> wallet_id
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def find_by_user_id(self, user_id: str) -> Optional[WalletRecord]:
        with self._lock:
            wallet_id = self._by_user.get(user_id)
            return self._records.get(wallet_id) if wallet_id else None

    async def insert(self, record: WalletRecord) -> WalletRecord:
        with self._lock:
            if record.user_id in self._by_user:
                raise WalletAlreadyExists(record.user_id)
            if record.public_key in self._by_public_key:
                raise StorageFailure(
                    f"public key {record.public_key} is already assigned"
                )
            if record.wallet_id in self._records:
                raise StorageFailure(
                    f"wallet id {record.wallet_id} is already assigned"
                )
            self._records[record.wallet_id] = record
            self._by_user[record.user_id] = record.wallet_id
            self._by_public_key[record.public_key] = record.wallet_id
        return record

    async def touch_last_used(self, wallet_id: str, timestamp: datetime) -> None:
        with self._lock:
            record = self._records.get(wallet_id)
            if record is None:
                raise StorageFailure(f"wallet {wallet_id} not found")
            self._records[wallet_id] = record.model_copy(
                update={"last_used_at": timestamp}
            )

    async def list_public_keys(self) -> list[str]:
        with self._lock:
            return [r.public_key for r in self._records.values()]


# ---------------------------------------------------------------------------
# PostgreSQL backend
# ---------------------------------------------------------------------------

USER_ID_CONSTRAINT = "stellar_wallets_user_id_key"

WALLET_SCHEMA = f"""
CREATE SCHEMA IF NOT EXISTS custody;

CREATE TABLE IF NOT EXISTS custody.stellar_wallets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    stellar_public_key VARCHAR(56) NOT NULL,
    encrypted_secret_key BYTEA NOT NULL,
    encryption_iv BYTEA NOT NULL,
    encryption_tag BYTEA NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_used TIMESTAMPTZ,
    CONSTRAINT {USER_ID_CONSTRAINT} UNIQUE (user_id),
    CONSTRAINT stellar_wallets_stellar_public_key_key UNIQUE (stellar_public_key)
);

CREATE TABLE IF NOT EXISTS custody.wallet_audit (
    id BIGSERIAL PRIMARY KEY,
    wallet_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    operation TEXT NOT NULL,
    details JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_SELECT_BY_USER = """
SELECT id, user_id, stellar_public_key, encrypted_secret_key,
       encryption_iv, encryption_tag, created_at, last_used
FROM custody.stellar_wallets
WHERE user_id = $1
"""

_INSERT_WALLET = """
INSERT INTO custody.stellar_wallets
    (id, user_id, stellar_public_key, encrypted_secret_key,
     encryption_iv, encryption_tag, created_at)
VALUES ($1, $2, $3, $4, $5, $6, $7)
"""

_TOUCH_WALLET = """
UPDATE custody.stellar_wallets
SET last_used = $2
WHERE id = $1
RETURNING user_id
"""

_SELECT_PUBLIC_KEYS = """
SELECT stellar_public_key
FROM custody.stellar_wallets
ORDER BY created_at
"""

_INSERT_AUDIT = """
INSERT INTO custody.wallet_audit (wallet_id, user_id, operation, details)
VALUES ($1, $2, $3, $4::jsonb)
"""

_DB_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


def _row_to_record(row: Any) -> WalletRecord:
    return WalletRecord(
        wallet_id=row["id"],
        user_id=row["user_id"],
        public_key=row["stellar_public_key"],
        encrypted_secret=bytes(row["encrypted_secret_key"]),
        nonce=bytes(row["encryption_iv"]),
        auth_tag=bytes(row["encryption_tag"]),
        created_at=row["created_at"],
        last_used_at=row["last_used"],
    )


class PostgresWalletStore(WalletStore):
    """Wallet records in PostgreSQL, accessed through an asyncpg pool.

    Inserts and touches write an audit row in the same transaction.
    """

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def ensure_schema(self) -> None:
        """Create the custody schema and tables if they do not exist."""
        try:
            async with self._db.acquire() as conn:
                await conn.execute(WALLET_SCHEMA)
        except _DB_ERRORS as err:
            raise StorageFailure("could not create custody schema") from err

    async def _audit(self, conn: Any, record_id: str, user_id: str, operation: str, **details) -> None:
        """Insert an audit log entry."""
        await conn.execute(
            _INSERT_AUDIT,
            record_id, user_id, operation,
            orjson.dumps(details).decode("utf-8"),
        )

    async def find_by_user_id(self, user_id: str) -> Optional[WalletRecord]:
        try:
            async with self._db.acquire() as conn:
                row = await conn.fetchrow(_SELECT_BY_USER, user_id)
        except _DB_ERRORS as err:
            raise StorageFailure(
                f"could not read wallet for user {user_id}"
            ) from err
        return _row_to_record(row) if row is not None else None

    async def insert(self, record: WalletRecord) -> WalletRecord:
        try:
            async with self._db.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        _INSERT_WALLET,
                        record.wallet_id, record.user_id, record.public_key,
                        record.encrypted_secret, record.nonce, record.auth_tag,
                        record.created_at,
                    )
                    await self._audit(
                        conn, record.wallet_id, record.user_id, "create",
                        public_key=record.public_key,
                    )
        except asyncpg.UniqueViolationError as err:
            if getattr(err, "constraint_name", None) == USER_ID_CONSTRAINT:
                raise WalletAlreadyExists(record.user_id) from err
            raise StorageFailure(
                f"could not insert wallet {record.wallet_id}: unique constraint"
            ) from err
        except _DB_ERRORS as err:
            raise StorageFailure(
                f"could not insert wallet {record.wallet_id}"
            ) from err
        logger.debug(
            "Wallet stored: user=%s wallet=%s", record.user_id, record.wallet_id,
        )
        return record

    async def touch_last_used(self, wallet_id: str, timestamp: datetime) -> None:
        try:
            async with self._db.acquire() as conn:
                async with conn.transaction():
                    user_id = await conn.fetchval(_TOUCH_WALLET, wallet_id, timestamp)
                    if user_id is not None:
                        await self._audit(conn, wallet_id, user_id, "sign")
        except _DB_ERRORS as err:
            raise StorageFailure(
                f"could not update wallet {wallet_id}"
            ) from err
        if user_id is None:
            raise StorageFailure(f"wallet {wallet_id} not found")

    async def list_public_keys(self) -> list[str]:
        try:
            async with self._db.acquire() as conn:
                rows = await conn.fetch(_SELECT_PUBLIC_KEYS)
        except _DB_ERRORS as err:
            raise StorageFailure("could not list wallet addresses") from err
        return [row["stellar_public_key"] for row in rows]
