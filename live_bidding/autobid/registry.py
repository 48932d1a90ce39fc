"""Auto-bid settings and the manual-bid floor they imply."""

from __future__ import annotations

import asyncio
import logging
from weakref import WeakValueDictionary

from ..auction.models import AutoBidSetting
from ..storage import BiddingStorage

logger = logging.getLogger(__name__)

DEFAULT_INCREMENT = 1000


class AutoBidSettingsError(ValueError):
    """Raised when an auto-bid settings update is not allowed."""


def floor_from_settings(settings: list[AutoBidSetting]) -> int:
    """Minimum manual bid given enabled settings sorted by max amount, descending.

    The top auto-bid counter-raises up to its own ceiling, so a manual bidder
    only has to clear the runner-up.
    """
    if len(settings) < 2:
        return 0
    return settings[1].max_amount + 1


class AutoBidRegistry:
    def __init__(self, storage: BiddingStorage) -> None:
        self._storage = storage
        self._locks: WeakValueDictionary[tuple[str, str], asyncio.Lock] = WeakValueDictionary()

    def lock_for(self, user_id: str, auction_id: str) -> asyncio.Lock:
        key = (user_id, auction_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def enabled_for_auction(self, auction_id: str) -> list[AutoBidSetting]:
        records = await self._storage.list_auto_bids(auction_id, enabled_only=True)
        settings = [AutoBidSetting.from_record(record) for record in records]
        settings.sort(key=lambda setting: setting.max_amount, reverse=True)
        return settings

    async def min_manual_bid(self, auction_id: str) -> int:
        return floor_from_settings(await self.enabled_for_auction(auction_id))

    async def get_settings(self, user_id: str, auction_id: str) -> AutoBidSetting:
        record = await self._storage.get_auto_bid(user_id, auction_id)
        if record is None:
            return AutoBidSetting(user_id=user_id, auction_id=auction_id)
        return AutoBidSetting.from_record(record)

    async def save_settings(
        self,
        user_id: str,
        auction_id: str,
        *,
        enabled: bool,
        max_amount: int = 0,
        increment: int = DEFAULT_INCREMENT,
    ) -> AutoBidSetting:
        if enabled:
            if max_amount <= 0:
                raise AutoBidSettingsError("maxAmount must be a positive amount")
            if increment <= 0:
                raise AutoBidSettingsError("increment must be a positive amount")
            setting = AutoBidSetting(user_id, auction_id, True, max_amount, increment)
        else:
            setting = AutoBidSetting(user_id, auction_id, False, 0, DEFAULT_INCREMENT)
        async with self.lock_for(user_id, auction_id):
            existing = await self._storage.get_auto_bid(user_id, auction_id)
            if existing and existing.get("enabled") and not enabled:
                raise AutoBidSettingsError("auto-bidding cannot be disabled once activated")
            stored = await self._storage.save_auto_bid(setting.to_record())
        if stored.get("enabled") and not enabled:
            # Another process enabled it between our read and the write.
            raise AutoBidSettingsError("auto-bidding cannot be disabled once activated")
        logger.info(
            "auto-bid saved auction=%s user=%s enabled=%s max=%s",
            auction_id,
            user_id,
            setting.enabled,
            setting.max_amount,
        )
        return AutoBidSetting.from_record(stored)
