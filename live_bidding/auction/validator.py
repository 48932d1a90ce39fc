"""Accept/reject decision for an incoming manual bid."""

from __future__ import annotations

from datetime import datetime

from ..autobid.registry import AutoBidRegistry
from ..storage import BiddingStorage
from ..transport.timestamps import utcnow
from .fsm import AuctionPhase
from .models import AuctionInfo
from .schedule import AuctionSchedule
from .session import AuctionSessionState, SessionRegistry


class BidRejected(ValueError):
    """Base class for bids refused by validation; ``message`` is client-facing."""

    code = "bid_rejected"

    def __init__(self, message: str, *, minimum: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.minimum = minimum

    def to_payload(self) -> dict:
        payload: dict = {"code": self.code, "message": self.message}
        if self.minimum is not None:
            payload["minimumBid"] = self.minimum
        return payload


class InvalidBidAmountError(BidRejected):
    code = "invalid_amount"


class NotRegisteredError(BidRejected):
    code = "not_registered"


class AuctionNotActiveError(BidRejected):
    code = "auction_not_active"


class AuctionClosedError(BidRejected):
    code = "auction_closed"


class BidTooLowError(BidRejected):
    code = "bid_too_low"


class BelowAutoBidFloorError(BidTooLowError):
    code = "below_auto_bid_floor"


class BidValidator:
    """Runs the checks cheapest-first and stops at the first failure."""

    def __init__(
        self,
        storage: BiddingStorage,
        sessions: SessionRegistry,
        autobids: AutoBidRegistry,
        schedule: AuctionSchedule,
        *,
        accept_late_bids: bool = False,
    ) -> None:
        self._storage = storage
        self._sessions = sessions
        self._autobids = autobids
        self._schedule = schedule
        self._accept_late_bids = accept_late_bids

    async def validate(
        self,
        auction_id: str,
        user_id: str,
        amount: int,
        *,
        now: datetime | None = None,
    ) -> AuctionSessionState:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidBidAmountError("Bid amount must be a positive whole number")

        if not await self._storage.has_approved_registration(auction_id, user_id):
            raise NotRegisteredError("You are not registered for this auction")

        session = self._sessions.get(auction_id)
        if session is None:
            raise AuctionNotActiveError("Auction is not active; re-join the auction to bid")

        if amount <= session.current_bid:
            raise BidTooLowError(
                f"Bid must be higher than current bid of {session.current_bid:,}",
                minimum=session.current_bid + 1,
            )

        if not self._accept_late_bids:
            auction = AuctionInfo.from_record(await self._storage.get_auction(auction_id))
            if self._schedule.phase(auction, now or utcnow()) is AuctionPhase.CLOSED:
                raise AuctionClosedError("Auction has closed; bids are no longer accepted")

        floor = await self._autobids.min_manual_bid(auction_id)
        if floor and amount < floor:
            raise BelowAutoBidFloorError(
                f"Bid must be at least {floor:,} to clear standing auto-bids",
                minimum=floor,
            )
        return session
