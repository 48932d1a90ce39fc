"""Shared bidding data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ..transport.timestamps import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class Bidder:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Bid:
    bid_id: str
    auction_id: str
    bidder: Bidder
    amount: int
    timestamp: datetime

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Bid":
        return cls(
            bid_id=str(record["bid_id"]),
            auction_id=str(record["auction_id"]),
            bidder=Bidder(
                id=str(record["user_id"]),
                name=record.get("user_name") or "Previous Bidder",
            ),
            amount=int(record["amount"]),
            timestamp=parse_timestamp(record["timestamp"]),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "bid_id": self.bid_id,
            "auction_id": self.auction_id,
            "user_id": self.bidder.id,
            "user_name": self.bidder.name,
            "amount": self.amount,
            "timestamp": format_timestamp(self.timestamp),
        }

    def to_event(self) -> dict[str, Any]:
        return {
            "bidId": self.bid_id,
            "auctionId": self.auction_id,
            "currentBid": self.amount,
            "currentBidder": self.bidder.to_dict(),
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass(frozen=True)
class AutoBidSetting:
    user_id: str
    auction_id: str
    enabled: bool = False
    max_amount: int = 0
    increment: int = 1000

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AutoBidSetting":
        return cls(
            user_id=str(record["user_id"]),
            auction_id=str(record["auction_id"]),
            enabled=bool(record.get("enabled", False)),
            max_amount=int(record.get("max_amount", 0)),
            increment=int(record.get("increment", 1000)),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "auction_id": self.auction_id,
            "enabled": self.enabled,
            "max_amount": self.max_amount,
            "increment": self.increment,
        }

    def to_response(self) -> dict[str, Any]:
        return {
            "auctionId": self.auction_id,
            "enabled": self.enabled,
            "maxAmount": self.max_amount,
            "increment": self.increment,
        }


@dataclass(frozen=True)
class ExtensionRecord:
    previous_end_time: datetime
    new_end_time: datetime
    extended_at: datetime
    bid_id: str
    user_id: str
    amount: int

    def to_record(self) -> dict[str, Any]:
        return {
            "previous_end_time": format_timestamp(self.previous_end_time),
            "new_end_time": format_timestamp(self.new_end_time),
            "extended_at": format_timestamp(self.extended_at),
            "bid_id": self.bid_id,
            "user_id": self.user_id,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class AuctionInfo:
    """Read view of the property-owned auction record."""

    auction_id: str
    auction_date: date
    reserve_price: int = 0
    auction_end_time: datetime | None = None
    extension_count: int = 0
    extension_history: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AuctionInfo":
        raw_date = record["auction_date"]
        if isinstance(raw_date, datetime):
            auction_date = raw_date.date()
        elif isinstance(raw_date, date):
            auction_date = raw_date
        else:
            auction_date = date.fromisoformat(str(raw_date)[:10])
        end_time = record.get("auction_end_time")
        return cls(
            auction_id=str(record["auction_id"]),
            auction_date=auction_date,
            reserve_price=int(record.get("reserve_price") or 0),
            auction_end_time=parse_timestamp(end_time) if end_time else None,
            extension_count=int(record.get("extension_count") or 0),
            extension_history=tuple(record.get("extension_history") or ()),
        )
