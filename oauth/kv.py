"""Key-value stores for short-lived OAuth data.

Pending state tokens, registered clients and issued grants all live here,
never in process memory shared across requests. Two backends:

- MemoryKVStore: TTL-aware dict, for local development and tests
- SupabaseKVStore: rows in an ``oauth_kv`` table

``pop`` reads and removes a key in one step; single-use values (state
tokens, authorization codes) are only ever taken out with it.

Expected table (Postgres):

    create table oauth_kv (
        key text primary key,
        value text not null,
        expires_at timestamptz
    );
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def pop(self, key: str) -> Optional[str]: ...


class MemoryKVStore:
    """In-process store with per-key expiry.

    Expired entries are indistinguishable from missing ones. They are dropped
    when read and swept on every write.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _is_expired(self, expires_at: Optional[float], now: float) -> bool:
        return expires_at is not None and now >= expires_at

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if self._is_expired(expires_at, now)]
        for key in expired:
            del self._data[key]

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at, self._clock()):
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._purge_expired()
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def pop(self, key: str) -> Optional[str]:
        entry = self._data.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at, self._clock()):
            return None
        return value

    def __len__(self) -> int:
        return len(self._data)


def _is_expired_row(row: dict) -> bool:
    expires_at = row.get("expires_at")
    return bool(expires_at) and datetime.fromisoformat(expires_at) <= datetime.now(timezone.utc)


class SupabaseKVStore:
    """KV store backed by a Supabase table.

    The Supabase client is synchronous; queries run in a worker thread so
    they do not block the event loop.
    """

    def __init__(self, supabase_client, table: str = "oauth_kv"):
        self.supabase = supabase_client
        self.table = table

    async def _execute(self, query):
        return await asyncio.to_thread(query.execute)

    async def get(self, key: str) -> Optional[str]:
        response = await self._execute(
            self.supabase.table(self.table)
            .select("value, expires_at")
            .eq("key", key)
            .limit(1)
        )
        rows = response.data or []
        if not rows:
            return None

        row = rows[0]
        if _is_expired_row(row):
            logger.debug(f"[KV] Key expired: {key}")
            await self.delete(key)
            return None
        return row.get("value")

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        now = datetime.now(timezone.utc)
        await self._execute(self.supabase.table(self.table).delete().lt("expires_at", now.isoformat()))

        expires_at = None
        if ttl:
            expires_at = (now + timedelta(seconds=ttl)).isoformat()
        await self._execute(
            self.supabase.table(self.table).upsert(
                {"key": key, "value": value, "expires_at": expires_at},
                on_conflict="key",
            )
        )

    async def delete(self, key: str) -> None:
        await self._execute(self.supabase.table(self.table).delete().eq("key", key))

    async def pop(self, key: str) -> Optional[str]:
        # DELETE ... RETURNING: only one caller gets the row back
        response = await self._execute(self.supabase.table(self.table).delete().eq("key", key))
        rows = response.data or []
        if not rows or _is_expired_row(rows[0]):
            return None
        return rows[0].get("value")
