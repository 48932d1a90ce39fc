"""Storage backend factory."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..config import ServerConfig
from .in_memory import InMemoryStorage


class BiddingStorage(Protocol):
    """Durable collections the bidding engine reads and appends to.

    Bids and auto-bid settings are owned here. Users, registrations and
    auctions belong to other subsystems; the engine only reads them, except
    for the end-time extension fields of an auction.
    """

    async def append_bid(self, bid: dict) -> dict: ...

    async def get_highest_bid(self, auction_id: str) -> dict | None: ...

    async def list_recent_bids(self, auction_id: str, limit: int) -> list[dict]: ...

    async def list_user_bids(self, user_id: str, limit: int | None = None) -> list[dict]: ...

    async def list_auto_bids(self, auction_id: str, *, enabled_only: bool = True) -> list[dict]:
        """Return settings for ``auction_id`` sorted by ``max_amount`` descending."""
        ...

    async def get_auto_bid(self, user_id: str, auction_id: str) -> dict | None: ...

    async def save_auto_bid(self, setting: dict) -> dict:
        """Upsert ``setting`` and return the row actually stored.

        An enabled row is never overwritten by a disabled one; the stored
        enabled row is returned instead.
        """
        ...

    async def has_approved_registration(self, auction_id: str, user_id: str) -> bool: ...

    async def get_auction(self, auction_id: str) -> dict: ...

    async def update_auction_end_time(
        self, auction_id: str, new_end_time: datetime, extension: dict
    ) -> dict: ...

    async def get_user(self, user_id: str) -> dict | None: ...


def build_storage(config: ServerConfig) -> BiddingStorage:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        from .redis import RedisStorage

        return RedisStorage(**options)
    if backend == "postgres":
        from .postgres import PostgresStorage

        return PostgresStorage(**options)
    if backend == "firestore":
        from .firestore import FirestoreStorage

        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
