"""Redis storage backend using redis-py asyncio client."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import orjson
from redis import asyncio as aioredis
from redis.exceptions import WatchError

from ..transport.timestamps import format_timestamp


class RedisStorage:
    def __init__(self, *, url: str, prefix: str = "bidding") -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix, *parts))

    async def append_bid(self, bid: dict[str, Any]) -> dict[str, Any]:
        raw = orjson.dumps(bid)
        async with self._redis.pipeline(transaction=True) as pipe:
            # Newest first so LRANGE 0..n-1 yields the most recent bids.
            pipe.lpush(self._key("bids", bid["auction_id"]), raw)
            pipe.zadd(self._key("bids-by-amount", bid["auction_id"]), {raw: bid["amount"]})
            pipe.lpush(self._key("user-bids", bid["user_id"]), raw)
            await pipe.execute()
        return bid

    async def get_highest_bid(self, auction_id: str) -> dict[str, Any] | None:
        top = await self._redis.zrevrange(self._key("bids-by-amount", auction_id), 0, 0)
        if not top:
            return None
        return orjson.loads(top[0])

    async def list_recent_bids(self, auction_id: str, limit: int) -> list[dict[str, Any]]:
        values = await self._redis.lrange(self._key("bids", auction_id), 0, limit - 1)
        return [orjson.loads(value) for value in values]

    async def list_user_bids(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        end = -1 if limit is None else limit - 1
        values = await self._redis.lrange(self._key("user-bids", user_id), 0, end)
        return [orjson.loads(value) for value in values]

    async def list_auto_bids(
        self, auction_id: str, *, enabled_only: bool = True
    ) -> list[dict[str, Any]]:
        values = await self._redis.hvals(self._key("auto-bids", auction_id))
        settings = [orjson.loads(value) for value in values]
        if enabled_only:
            settings = [setting for setting in settings if setting.get("enabled")]
        settings.sort(key=lambda setting: setting.get("max_amount", 0), reverse=True)
        return settings

    async def get_auto_bid(self, user_id: str, auction_id: str) -> dict[str, Any] | None:
        raw = await self._redis.hget(self._key("auto-bids", auction_id), user_id)
        if raw is None:
            return None
        return orjson.loads(raw)

    async def save_auto_bid(self, setting: dict[str, Any]) -> dict[str, Any]:
        key = self._key("auto-bids", setting["auction_id"])
        while True:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.hget(key, setting["user_id"])
                existing = orjson.loads(raw) if raw is not None else None
                # An enabled setting is never replaced by a disabled one.
                if existing and existing.get("enabled") and not setting.get("enabled"):
                    await pipe.unwatch()
                    return existing
                pipe.multi()
                pipe.hset(key, setting["user_id"], orjson.dumps(setting))
                try:
                    await pipe.execute()
                except WatchError:
                    continue
            return setting

    async def has_approved_registration(self, auction_id: str, user_id: str) -> bool:
        status = await self._redis.hget(self._key("registrations", auction_id), user_id)
        if isinstance(status, bytes):
            status = status.decode()
        return status == "approved"

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        raw = await self._redis.get(self._key("auction", auction_id))
        if raw is None:
            raise KeyError(auction_id)
        return orjson.loads(raw)

    async def update_auction_end_time(
        self, auction_id: str, new_end_time: datetime, extension: dict[str, Any]
    ) -> dict[str, Any]:
        key = self._key("auction", auction_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            # Optimistic lock so a concurrent metadata write is not clobbered.
            await pipe.watch(key)
            raw = await pipe.get(key)
            if raw is None:
                raise KeyError(auction_id)
            auction = orjson.loads(raw)
            auction["auction_end_time"] = format_timestamp(new_end_time)
            auction["extension_count"] = int(auction.get("extension_count") or 0) + 1
            auction.setdefault("extension_history", []).append(extension)
            pipe.multi()
            pipe.set(key, orjson.dumps(auction))
            await pipe.execute()
        return auction

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        raw = await self._redis.get(self._key("user", user_id))
        if raw is None:
            return None
        return orjson.loads(raw)
