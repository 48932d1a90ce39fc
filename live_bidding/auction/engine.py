"""Glue between validation, the ledger, session state and broadcast channels."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..ledger.bids import BidLedger
from .extension import ExtensionController
from .fanout import ChannelHub, Subscriber
from .models import Bid, Bidder
from .session import SessionRegistry
from .validator import BidRejected, BidValidator

logger = logging.getLogger(__name__)


class BidProcessingError(RuntimeError):
    """Infrastructure failure while handling a bid; nothing was applied."""

    code = "processing_failed"

    def __init__(self, message: str = "Error processing bid") -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class AuctionJoinError(RuntimeError):
    """Raised when session state for an auction could not be materialized."""


class BiddingEngine:
    def __init__(
        self,
        sessions: SessionRegistry,
        validator: BidValidator,
        ledger: BidLedger,
        extensions: ExtensionController,
        hub: ChannelHub,
    ) -> None:
        self._sessions = sessions
        self._validator = validator
        self._ledger = ledger
        self._extensions = extensions
        self._hub = hub

    async def join(self, auction_id: str, subscriber: Subscriber) -> dict[str, Any]:
        try:
            snapshot = await self._sessions.join(auction_id, subscriber.user_id)
        except Exception as exc:
            logger.exception("auction=%s join failed for user=%s", auction_id, subscriber.user_id)
            raise AuctionJoinError("Error joining auction") from exc
        self._hub.subscribe(auction_id, subscriber)
        await self._hub.send(subscriber, "auction-status", snapshot)
        await self._announce_count(auction_id, snapshot["participantCount"])
        return snapshot

    async def leave(self, auction_id: str, subscriber: Subscriber) -> None:
        remaining = self._detach(auction_id, subscriber)
        if remaining:
            await self._announce_count(auction_id, remaining)

    def disconnect(self, subscriber: Subscriber) -> dict[str, int]:
        """Drop ``subscriber`` from every channel without yielding.

        Returns the remaining participant count per auction still in session.
        """
        remaining: dict[str, int] = {}
        for auction_id in self._hub.unsubscribe_all(subscriber):
            count = self._leave_session(auction_id, subscriber.user_id)
            if count:
                remaining[auction_id] = count
        return remaining

    async def announce_counts(self, counts: dict[str, int]) -> None:
        for auction_id, count in counts.items():
            await self._announce_count(auction_id, count)

    async def place_bid(
        self,
        auction_id: str,
        bidder: Bidder,
        amount: int,
        *,
        now: datetime | None = None,
    ) -> Bid:
        async with self._sessions.lock_for(auction_id):
            try:
                await self._validator.validate(auction_id, bidder.id, amount, now=now)
                bid = await self._ledger.append(auction_id, bidder, amount, now=now)
            except BidRejected:
                raise
            except Exception as exc:
                logger.exception("auction=%s bid by user=%s failed", auction_id, bidder.id)
                raise BidProcessingError() from exc
            self._sessions.record_bid(auction_id, bid)
            logger.info("auction=%s accepted bid %s amount=%s user=%s", auction_id, bid.bid_id, amount, bidder.id)
            await self._hub.broadcast(auction_id, "bid-accepted", bid.to_event())
            try:
                await self._extensions.evaluate(bid, now=now)
            except Exception:
                # The bid stands; the end time simply stays where it was.
                logger.exception("auction=%s extension after bid %s failed", auction_id, bid.bid_id)
        return bid

    async def relay_timer(self, auction_id: str, time_left: Any) -> None:
        await self._hub.broadcast(auction_id, "timer-update", {"auctionId": auction_id, "timeLeft": time_left})

    async def announce_min_bid(self, auction_id: str, amount: int) -> None:
        await self._hub.broadcast(
            auction_id,
            "min-manual-bid-changed",
            {"auctionId": auction_id, "minManualBid": amount},
        )

    def _detach(self, auction_id: str, subscriber: Subscriber) -> int | None:
        if not self._hub.unsubscribe(auction_id, subscriber):
            return None
        return self._leave_session(auction_id, subscriber.user_id)

    def _leave_session(self, auction_id: str, user_id: str) -> int | None:
        # The same user may still be connected through another socket.
        if self._hub.is_watching(auction_id, user_id):
            return None
        return self._sessions.leave(auction_id, user_id)

    async def _announce_count(self, auction_id: str, count: int) -> None:
        await self._hub.broadcast(
            auction_id,
            "participant-count-changed",
            {"auctionId": auction_id, "count": count},
        )
