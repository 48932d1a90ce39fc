"""Auction lifecycle finite state machine."""

from __future__ import annotations

from enum import Enum


class AuctionPhase(str, Enum):
    SCHEDULED = "scheduled"
    OPEN = "open"
    EXTENDED = "extended"
    CLOSED = "closed"


class AuctionEvent(str, Enum):
    OPENED = "opened"
    EXTENDED = "extended"
    EXPIRED = "expired"


_TRANSITIONS = {
    (AuctionPhase.SCHEDULED, AuctionEvent.OPENED): AuctionPhase.OPEN,
    (AuctionPhase.OPEN, AuctionEvent.EXTENDED): AuctionPhase.EXTENDED,
    (AuctionPhase.EXTENDED, AuctionEvent.EXTENDED): AuctionPhase.EXTENDED,
    (AuctionPhase.OPEN, AuctionEvent.EXPIRED): AuctionPhase.CLOSED,
    (AuctionPhase.EXTENDED, AuctionEvent.EXPIRED): AuctionPhase.CLOSED,
}


def transition(current: AuctionPhase, event: AuctionEvent) -> AuctionPhase:
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid transition from {current} via {event}") from exc
