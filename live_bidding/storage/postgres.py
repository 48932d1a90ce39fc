"""Postgres storage backend leveraging asyncpg."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import asyncpg
import orjson

from ..transport.timestamps import format_timestamp


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None

    def _encode(self, payload: dict[str, Any]) -> str:
        return orjson.dumps(payload).decode()

    def _decode(self, value: Any) -> dict[str, Any]:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, str):
            return orjson.loads(value)
        return value

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS auction_bids (
                        bid_id TEXT PRIMARY KEY,
                        auction_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        amount BIGINT NOT NULL,
                        placed_at TEXT NOT NULL,
                        data JSONB NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_auction_bids_auction_time
                    ON auction_bids (auction_id, placed_at DESC);
                    CREATE INDEX IF NOT EXISTS idx_auction_bids_user
                    ON auction_bids (user_id, placed_at DESC);
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS auto_bids (
                        user_id TEXT NOT NULL,
                        auction_id TEXT NOT NULL,
                        data JSONB NOT NULL,
                        updated_at TIMESTAMP DEFAULT NOW(),
                        PRIMARY KEY (user_id, auction_id)
                    );
                    CREATE TABLE IF NOT EXISTS auction_registrations (
                        auction_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        status TEXT NOT NULL,
                        PRIMARY KEY (auction_id, user_id)
                    );
                    CREATE TABLE IF NOT EXISTS auctions (
                        auction_id TEXT PRIMARY KEY,
                        data JSONB NOT NULL
                    );
                    CREATE TABLE IF NOT EXISTS users (
                        user_id TEXT PRIMARY KEY,
                        data JSONB NOT NULL
                    );
                    """
                )
        return self._pool

    async def append_bid(self, bid: dict[str, Any]) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """INSERT INTO auction_bids(bid_id, auction_id, user_id, amount, placed_at, data)
                   VALUES($1, $2, $3, $4, $5, $6)""",
                bid["bid_id"],
                bid["auction_id"],
                bid["user_id"],
                bid["amount"],
                bid["timestamp"],
                self._encode(bid),
            )
        return bid

    async def get_highest_bid(self, auction_id: str) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data FROM auction_bids WHERE auction_id=$1
                   ORDER BY amount DESC LIMIT 1""",
                auction_id,
            )
        if not row:
            return None
        return self._decode(row["data"])

    async def list_recent_bids(self, auction_id: str, limit: int) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT data FROM auction_bids WHERE auction_id=$1
                   ORDER BY placed_at DESC LIMIT $2""",
                auction_id,
                limit,
            )
        return [self._decode(row["data"]) for row in rows]

    async def list_user_bids(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT data FROM auction_bids WHERE user_id=$1
                   ORDER BY placed_at DESC LIMIT $2""",
                user_id,
                limit,
            )
        return [self._decode(row["data"]) for row in rows]

    async def list_auto_bids(
        self, auction_id: str, *, enabled_only: bool = True
    ) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT data FROM auto_bids
                   WHERE auction_id=$1 AND ($2 = FALSE OR (data->>'enabled')::boolean)
                   ORDER BY (data->>'max_amount')::bigint DESC""",
                auction_id,
                enabled_only,
            )
        return [self._decode(row["data"]) for row in rows]

    async def get_auto_bid(self, user_id: str, auction_id: str) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data FROM auto_bids WHERE user_id=$1 AND auction_id=$2""",
                user_id,
                auction_id,
            )
        if not row:
            return None
        return self._decode(row["data"])

    async def save_auto_bid(self, setting: dict[str, Any]) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """INSERT INTO auto_bids(user_id, auction_id, data) VALUES($1, $2, $3)
                   ON CONFLICT (user_id, auction_id)
                   DO UPDATE SET data=EXCLUDED.data, updated_at=NOW()
                   WHERE NOT COALESCE((auto_bids.data->>'enabled')::boolean, FALSE)
                      OR (EXCLUDED.data->>'enabled')::boolean
                   RETURNING data""",
                setting["user_id"],
                setting["auction_id"],
                self._encode(setting),
            )
            if row is None:
                # The stored setting is enabled and the update tried to disable it.
                row = await conn.fetchrow(
                    """SELECT data FROM auto_bids WHERE user_id=$1 AND auction_id=$2""",
                    setting["user_id"],
                    setting["auction_id"],
                )
        return self._decode(row["data"])

    async def has_approved_registration(self, auction_id: str, user_id: str) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.fetchval(
                """SELECT status FROM auction_registrations
                   WHERE auction_id=$1 AND user_id=$2""",
                auction_id,
                user_id,
            )
        return status == "approved"

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data FROM auctions WHERE auction_id=$1""",
                auction_id,
            )
        if not row:
            raise KeyError(auction_id)
        return self._decode(row["data"])

    async def update_auction_end_time(
        self, auction_id: str, new_end_time: datetime, extension: dict[str, Any]
    ) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """UPDATE auctions SET data = data
                       || jsonb_build_object(
                           'auction_end_time', $2::text,
                           'extension_count', COALESCE((data->>'extension_count')::int, 0) + 1,
                           'extension_history',
                           COALESCE(data->'extension_history', '[]'::jsonb) || jsonb_build_array($3::jsonb)
                       )
                   WHERE auction_id=$1
                   RETURNING data""",
                auction_id,
                format_timestamp(new_end_time),
                self._encode(extension),
            )
        if not row:
            raise KeyError(auction_id)
        return self._decode(row["data"])

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data FROM users WHERE user_id=$1""",
                user_id,
            )
        if not row:
            return None
        return self._decode(row["data"])
