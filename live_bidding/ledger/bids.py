"""Append-only bid ledger backed by the configured storage."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from ..auction.models import Bid, Bidder
from ..storage import BiddingStorage
from ..transport.timestamps import utcnow


@dataclass
class BidLedger:
    storage: BiddingStorage

    async def append(
        self,
        auction_id: str,
        bidder: Bidder,
        amount: int,
        *,
        now: datetime | None = None,
    ) -> Bid:
        bid = Bid(
            bid_id=f"bid_{uuid.uuid4().hex}",
            auction_id=auction_id,
            bidder=bidder,
            amount=amount,
            timestamp=now or utcnow(),
        )
        stored = await self.storage.append_bid(bid.to_record())
        return Bid.from_record(stored)

    async def highest(self, auction_id: str) -> Bid | None:
        record = await self.storage.get_highest_bid(auction_id)
        return Bid.from_record(record) if record else None

    async def recent(self, auction_id: str, limit: int = 50) -> list[Bid]:
        records = await self.storage.list_recent_bids(auction_id, limit)
        return [Bid.from_record(record) for record in records]

    async def for_user(self, user_id: str, limit: int | None = None) -> list[Bid]:
        records = await self.storage.list_user_bids(user_id, limit)
        return [Bid.from_record(record) for record in records]
