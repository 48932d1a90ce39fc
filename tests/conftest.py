"""Shared fixtures and builders for the bidding tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from live_bidding.auction.engine import BiddingEngine
from live_bidding.auction.extension import ExtensionController
from live_bidding.auction.fanout import ChannelHub
from live_bidding.auction.models import Bid, Bidder
from live_bidding.auction.schedule import AuctionSchedule
from live_bidding.auction.session import SessionRegistry
from live_bidding.auction.validator import BidValidator
from live_bidding.autobid.registry import AutoBidRegistry
from live_bidding.ledger.bids import BidLedger
from live_bidding.storage.in_memory import InMemoryStorage
from live_bidding.transport.timestamps import format_timestamp

AUCTION_DATE = date(2026, 3, 10)


def at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    """UTC instant on the test auction date."""
    return datetime(2026, 3, 10, hour, minute, second, tzinfo=timezone.utc)


def make_bid(
    amount: int,
    user_id: str = "user_a",
    *,
    auction_id: str = "auction_x",
    timestamp: datetime | None = None,
    name: str | None = None,
) -> Bid:
    return Bid(
        bid_id=f"bid_{user_id}_{amount}",
        auction_id=auction_id,
        bidder=Bidder(id=user_id, name=name or user_id.title()),
        amount=amount,
        timestamp=timestamp or at(10),
    )


class RecordingSubscriber:
    """Channel member that keeps every event it is sent."""

    def __init__(self, user_id: str, *, fail: bool = False) -> None:
        self.user_id = user_id
        self.fail = fail
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.events.append((event, payload))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


async def seed_auction(
    storage: InMemoryStorage,
    auction_id: str = "auction_x",
    *,
    end_time: datetime | None = None,
    approved: tuple[str, ...] = ("user_a", "user_b", "user_c"),
) -> None:
    record: dict[str, Any] = {
        "auction_id": auction_id,
        "auction_date": AUCTION_DATE.isoformat(),
        "reserve_price": 500,
    }
    if end_time is not None:
        record["auction_end_time"] = format_timestamp(end_time)
    await storage.put_auction(record)
    for user_id in approved:
        await storage.put_registration(auction_id, user_id)
        await storage.put_user({"user_id": user_id, "name": user_id.title()})


def build_engine(storage, schedule: AuctionSchedule, hub: ChannelHub | None = None) -> BiddingEngine:
    hub = hub or ChannelHub()
    ledger = BidLedger(storage)
    sessions = SessionRegistry(ledger)
    validator = BidValidator(storage, sessions, AutoBidRegistry(storage), schedule)
    extensions = ExtensionController(storage, hub, schedule)
    return BiddingEngine(sessions, validator, ledger, extensions, hub)


@pytest.fixture
def schedule() -> AuctionSchedule:
    return AuctionSchedule(
        tz=timezone.utc,
        default_end_time=datetime.strptime("17:00:00", "%H:%M:%S").time(),
        day_end_time=datetime.strptime("23:59:59", "%H:%M:%S").time(),
        extension_window=timedelta(minutes=6),
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def hub() -> ChannelHub:
    return ChannelHub()


@pytest.fixture
def ledger(storage) -> BidLedger:
    return BidLedger(storage)


@pytest.fixture
def sessions(ledger) -> SessionRegistry:
    return SessionRegistry(ledger)


@pytest.fixture
def autobids(storage) -> AutoBidRegistry:
    return AutoBidRegistry(storage)


@pytest.fixture
def validator(storage, sessions, autobids, schedule) -> BidValidator:
    return BidValidator(storage, sessions, autobids, schedule)


@pytest.fixture
def extensions(storage, hub, schedule) -> ExtensionController:
    return ExtensionController(storage, hub, schedule)


@pytest.fixture
def engine(sessions, validator, ledger, extensions, hub) -> BiddingEngine:
    return BiddingEngine(sessions, validator, ledger, extensions, hub)


@pytest.fixture(scope="session")
def keypair() -> tuple[str, str]:
    private_key = Ed25519PrivateKey.generate()
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem
