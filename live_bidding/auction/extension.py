"""Anti-snipe extension of an auction's end time after late bids."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..storage import BiddingStorage
from ..transport.timestamps import format_timestamp, utcnow
from .fanout import ChannelHub
from .fsm import AuctionEvent, AuctionPhase, transition
from .models import AuctionInfo, Bid, ExtensionRecord
from .schedule import AuctionSchedule

logger = logging.getLogger(__name__)


def compute_extension(
    end_time: datetime,
    now: datetime,
    window: timedelta,
    cutoff: datetime,
) -> datetime | None:
    """Return the new end time, or ``None`` when no extension applies.

    Only bids landing strictly inside the final ``window`` extend; the result
    never moves past ``cutoff``.
    """
    remaining = end_time - now
    if remaining <= timedelta(0) or remaining >= window:
        return None
    new_end = min(max(end_time, now + window), cutoff)
    if new_end <= end_time:
        return None
    return new_end


class ExtensionController:
    def __init__(
        self,
        storage: BiddingStorage,
        hub: ChannelHub,
        schedule: AuctionSchedule,
    ) -> None:
        self._storage = storage
        self._hub = hub
        self._schedule = schedule

    async def evaluate(self, bid: Bid, *, now: datetime | None = None) -> datetime | None:
        now = now or utcnow()
        auction = AuctionInfo.from_record(await self._storage.get_auction(bid.auction_id))
        phase = self._schedule.phase(auction, now)
        if phase not in (AuctionPhase.OPEN, AuctionPhase.EXTENDED):
            return None
        end_time = self._schedule.end_time(auction)
        new_end = compute_extension(
            end_time,
            now,
            self._schedule.extension_window,
            self._schedule.day_cutoff(auction),
        )
        if new_end is None:
            return None
        record = ExtensionRecord(
            previous_end_time=end_time,
            new_end_time=new_end,
            extended_at=now,
            bid_id=bid.bid_id,
            user_id=bid.bidder.id,
            amount=bid.amount,
        )
        updated = AuctionInfo.from_record(
            await self._storage.update_auction_end_time(bid.auction_id, new_end, record.to_record())
        )
        logger.info(
            "auction=%s extended %s -> %s by bid %s",
            bid.auction_id,
            format_timestamp(end_time),
            format_timestamp(new_end),
            bid.bid_id,
        )
        await self._hub.broadcast(
            bid.auction_id,
            "auction-extended",
            {
                "auctionId": bid.auction_id,
                "previousEndTime": format_timestamp(end_time),
                "newEndTime": format_timestamp(new_end),
                "extensionCount": updated.extension_count,
                "phase": transition(phase, AuctionEvent.EXTENDED).value,
            },
        )
        return new_end
