"""Local user identities.

Users are keyed by their Google subject id, namespaced as ``g-<sub>`` so ids
from other providers can never collide. Email and name are refreshed on
every login.

Expected table (Postgres):

    create table users (
        id text primary key,
        email text,
        name text,
        google_id text unique not null,
        updated_at timestamptz default now()
    );
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

GOOGLE_ID_PREFIX = "g-"


@dataclass
class UserIdentity:
    id: str
    email: str
    name: str
    google_id: str
    updated_at: Optional[str] = None


def local_user_id(google_id: str) -> str:
    return f"{GOOGLE_ID_PREFIX}{google_id}"


class IdentityStore(Protocol):
    async def upsert(self, google_id: str, email: str, name: str) -> UserIdentity: ...


class MemoryIdentityStore:
    def __init__(self):
        self.users: dict[str, UserIdentity] = {}

    async def upsert(self, google_id: str, email: str, name: str) -> UserIdentity:
        user = UserIdentity(
            id=local_user_id(google_id),
            email=email,
            name=name,
            google_id=google_id,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        self.users[google_id] = user
        return user


class SupabaseIdentityStore:
    """Identity store backed by the Supabase ``users`` table."""

    def __init__(self, supabase_client, table: str = "users"):
        self.supabase = supabase_client
        self.table = table

    async def upsert(self, google_id: str, email: str, name: str) -> UserIdentity:
        row = {
            "id": local_user_id(google_id),
            "email": email,
            "name": name,
            "google_id": google_id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        query = self.supabase.table(self.table).upsert(row, on_conflict="google_id")
        await asyncio.to_thread(query.execute)
        logger.info(f"[AUTH] Upserted user: {row['id']}")
        return UserIdentity(**row)
