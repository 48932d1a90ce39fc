"""Transient per-auction bidding state, hydrated from the bid ledger on demand."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque
from weakref import WeakValueDictionary

from ..ledger.bids import BidLedger
from ..transport.timestamps import format_timestamp
from .models import Bid, Bidder

logger = logging.getLogger(__name__)

RECENT_BIDS_LIMIT = 50


@dataclass
class AuctionSessionState:
    auction_id: str
    current_bid: int = 0
    current_bidder: Bidder | None = None
    last_bid_time: datetime | None = None
    participants: set[str] = field(default_factory=set)
    recent_bids: Deque[Bid] = field(default_factory=lambda: deque(maxlen=RECENT_BIDS_LIMIT))

    def record_bid(self, bid: Bid) -> None:
        self.current_bid = bid.amount
        self.current_bidder = bid.bidder
        self.last_bid_time = bid.timestamp
        # Bounded deque: appendleft drops the oldest entry at capacity.
        self.recent_bids.appendleft(bid)

    def snapshot(self) -> dict[str, Any]:
        return {
            "auctionId": self.auction_id,
            "currentBid": self.current_bid,
            "currentBidder": self.current_bidder.to_dict() if self.current_bidder else None,
            "participantCount": len(self.participants),
            "recentBids": [bid.to_event() for bid in self.recent_bids],
        }

    def summary(self) -> dict[str, Any]:
        return {
            "auction_id": self.auction_id,
            "current_bid": self.current_bid,
            "current_bidder": self.current_bidder.to_dict() if self.current_bidder else None,
            "last_bid_time": format_timestamp(self.last_bid_time) if self.last_bid_time else None,
            "participants": len(self.participants),
            "recent_bids": len(self.recent_bids),
        }


class SessionRegistry:
    """Owner of every resident ``AuctionSessionState``.

    ``lock_for`` hands out one ``asyncio.Lock`` per auction. Holders of the lock
    keep it alive; once nobody references it the entry disappears from the
    weak map, so idle auctions do not accumulate locks.
    """

    def __init__(self, ledger: BidLedger, *, recent_limit: int = RECENT_BIDS_LIMIT) -> None:
        self._ledger = ledger
        self._recent_limit = recent_limit
        self._sessions: dict[str, AuctionSessionState] = {}
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def lock_for(self, auction_id: str) -> asyncio.Lock:
        lock = self._locks.get(auction_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[auction_id] = lock
        return lock

    def get(self, auction_id: str) -> AuctionSessionState | None:
        return self._sessions.get(auction_id)

    def active(self) -> list[AuctionSessionState]:
        return list(self._sessions.values())

    async def activate(self, auction_id: str) -> AuctionSessionState:
        async with self.lock_for(auction_id):
            return await self._activate_locked(auction_id)

    async def _activate_locked(self, auction_id: str) -> AuctionSessionState:
        session = self._sessions.get(auction_id)
        if session is not None:
            return session
        highest = await self._ledger.highest(auction_id)
        recent = await self._ledger.recent(auction_id, self._recent_limit)
        session = AuctionSessionState(
            auction_id=auction_id,
            recent_bids=deque(recent, maxlen=self._recent_limit),
        )
        if highest is not None:
            session.current_bid = highest.amount
            session.current_bidder = highest.bidder
            session.last_bid_time = highest.timestamp
        self._sessions[auction_id] = session
        logger.info(
            "auction=%s session hydrated current_bid=%s recent=%d",
            auction_id,
            session.current_bid,
            len(session.recent_bids),
        )
        return session

    async def join(self, auction_id: str, user_id: str) -> dict[str, Any]:
        async with self.lock_for(auction_id):
            session = await self._activate_locked(auction_id)
            session.participants.add(user_id)
            return session.snapshot()

    def leave(self, auction_id: str, user_id: str) -> int | None:
        """Drop ``user_id`` and evict the session once nobody is watching.

        Returns the remaining participant count, or ``None`` when the user was
        not a participant.
        """
        session = self._sessions.get(auction_id)
        if session is None or user_id not in session.participants:
            return None
        session.participants.discard(user_id)
        remaining = len(session.participants)
        if not remaining:
            self.evict(auction_id)
        return remaining

    def evict(self, auction_id: str) -> None:
        if self._sessions.pop(auction_id, None) is not None:
            logger.info("auction=%s session evicted", auction_id)

    def record_bid(self, auction_id: str, bid: Bid) -> None:
        session = self._sessions.get(auction_id)
        if session is None:
            # Last participant left while the bid was being persisted.
            logger.info("auction=%s bid %s recorded after eviction", auction_id, bid.bid_id)
            return
        session.record_bid(bid)
