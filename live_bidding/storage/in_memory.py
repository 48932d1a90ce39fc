"""In-memory storage backend for bids, auto-bid settings and auction metadata."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from datetime import datetime
from typing import Any

from ..transport.timestamps import format_timestamp


class InMemoryStorage:
    def __init__(self) -> None:
        self._bids: dict[str, list[dict[str, Any]]] = {}
        self._auto_bids: dict[tuple[str, str], dict[str, Any]] = {}
        self._registrations: dict[tuple[str, str], str] = {}
        self._auctions: dict[str, dict[str, Any]] = {}
        self._users: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    # Bid ledger

    async def append_bid(self, bid: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._bids.setdefault(bid["auction_id"], []).append(deepcopy(bid))
            return deepcopy(bid)

    async def get_highest_bid(self, auction_id: str) -> dict[str, Any] | None:
        async with self._lock:
            bids = self._bids.get(auction_id) or []
            highest = max(bids, key=lambda bid: bid["amount"], default=None)
            return deepcopy(highest) if highest else None

    async def list_recent_bids(self, auction_id: str, limit: int) -> list[dict[str, Any]]:
        async with self._lock:
            # Reversed first so equal timestamps still come out newest-first.
            bids = list(reversed(self._bids.get(auction_id) or []))
            bids.sort(key=lambda bid: bid["timestamp"], reverse=True)
            return [deepcopy(bid) for bid in bids[:limit]]

    async def list_user_bids(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        async with self._lock:
            bids = [
                bid
                for auction_bids in self._bids.values()
                for bid in auction_bids
                if bid["user_id"] == user_id
            ]
            bids.reverse()
            bids.sort(key=lambda bid: bid["timestamp"], reverse=True)
            if limit is not None:
                bids = bids[:limit]
            return [deepcopy(bid) for bid in bids]

    # Auto-bid settings

    async def list_auto_bids(
        self, auction_id: str, *, enabled_only: bool = True
    ) -> list[dict[str, Any]]:
        async with self._lock:
            settings = [
                setting
                for (_, setting_auction), setting in self._auto_bids.items()
                if setting_auction == auction_id and (setting["enabled"] or not enabled_only)
            ]
            settings.sort(key=lambda setting: setting["max_amount"], reverse=True)
            return [deepcopy(setting) for setting in settings]

    async def get_auto_bid(self, user_id: str, auction_id: str) -> dict[str, Any] | None:
        async with self._lock:
            setting = self._auto_bids.get((user_id, auction_id))
            return deepcopy(setting) if setting else None

    async def save_auto_bid(self, setting: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            key = (setting["user_id"], setting["auction_id"])
            existing = self._auto_bids.get(key)
            # An enabled setting is never replaced by a disabled one.
            if existing and existing["enabled"] and not setting["enabled"]:
                return deepcopy(existing)
            self._auto_bids[key] = deepcopy(setting)
            return deepcopy(setting)

    # Collections owned by other subsystems

    async def has_approved_registration(self, auction_id: str, user_id: str) -> bool:
        async with self._lock:
            return self._registrations.get((auction_id, user_id)) == "approved"

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        async with self._lock:
            try:
                return deepcopy(self._auctions[auction_id])
            except KeyError as exc:
                raise KeyError(f"auction {auction_id} not found") from exc

    async def update_auction_end_time(
        self, auction_id: str, new_end_time: datetime, extension: dict[str, Any]
    ) -> dict[str, Any]:
        async with self._lock:
            if auction_id not in self._auctions:
                raise KeyError(auction_id)
            auction = self._auctions[auction_id]
            auction["auction_end_time"] = format_timestamp(new_end_time)
            auction["extension_count"] = int(auction.get("extension_count") or 0) + 1
            auction.setdefault("extension_history", []).append(deepcopy(extension))
            return deepcopy(auction)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        async with self._lock:
            user = self._users.get(user_id)
            return deepcopy(user) if user else None

    # Seeding helpers standing in for the external subsystems

    async def put_user(self, user: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._users[user["user_id"]] = deepcopy(user)
            return deepcopy(user)

    async def put_auction(self, auction: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            self._auctions[auction["auction_id"]] = deepcopy(auction)
            return deepcopy(auction)

    async def put_registration(
        self, auction_id: str, user_id: str, status: str = "approved"
    ) -> None:
        async with self._lock:
            self._registrations[(auction_id, user_id)] = status
