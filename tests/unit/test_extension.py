"""Unit tests for anti-snipe extension and the auction lifecycle."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import RecordingSubscriber, at, make_bid, seed_auction
from live_bidding.auction.extension import ExtensionController, compute_extension
from live_bidding.auction.fsm import AuctionEvent, AuctionPhase, transition
from live_bidding.auction.models import AuctionInfo

WINDOW = timedelta(minutes=6)
CUTOFF = at(23, 59, 59)


class TestComputeExtension:
    """The pure end-time computation."""

    def test_bid_inside_window_pushes_end_time(self):
        """A bid five minutes before close moves the end one minute."""
        assert compute_extension(at(17), at(16, 55), WINDOW, CUTOFF) == at(17, 1)

    def test_bid_outside_window_changes_nothing(self):
        """Bids before the window leave the end time alone."""
        assert compute_extension(at(17), at(16, 50), WINDOW, CUTOFF) is None

    def test_bid_exactly_at_window_edge_changes_nothing(self):
        """The window boundary itself does not extend."""
        assert compute_extension(at(17), at(16, 54), WINDOW, CUTOFF) is None

    def test_bid_after_close_changes_nothing(self):
        """Bids at or after the end time never extend."""
        assert compute_extension(at(17), at(17), WINDOW, CUTOFF) is None
        assert compute_extension(at(17), at(17, 2), WINDOW, CUTOFF) is None

    def test_extension_is_capped_at_end_of_day(self):
        """The new end time stops at the day cutoff."""
        assert compute_extension(at(23, 58), at(23, 57), WINDOW, CUTOFF) == CUTOFF

    def test_end_already_at_cutoff_is_not_extended(self):
        """Nothing changes once the cutoff is reached."""
        assert compute_extension(CUTOFF, at(23, 58), WINDOW, CUTOFF) is None


class TestExtensionController:
    """Persisting and announcing extensions."""

    @pytest.mark.asyncio
    async def test_late_bid_extends_and_records_history(self, storage, hub, extensions):
        """The extension is stored with its history entry and broadcast."""
        await seed_auction(storage)
        watcher = RecordingSubscriber("user_a")
        hub.subscribe("auction_x", watcher)
        bid = make_bid(2500, "user_c", timestamp=at(16, 55))

        new_end = await extensions.evaluate(bid, now=at(16, 55))

        assert new_end == at(17, 1)
        auction = AuctionInfo.from_record(await storage.get_auction("auction_x"))
        assert auction.auction_end_time == at(17, 1)
        assert auction.extension_count == 1
        history = auction.extension_history[0]
        assert history["previous_end_time"] == "2026-03-10T17:00:00.000000Z"
        assert history["new_end_time"] == "2026-03-10T17:01:00.000000Z"
        assert history["bid_id"] == bid.bid_id
        assert history["user_id"] == "user_c"
        [event] = watcher.of("auction-extended")
        assert event["newEndTime"] == "2026-03-10T17:01:00.000000Z"
        assert event["extensionCount"] == 1
        assert event["phase"] == "extended"

    @pytest.mark.asyncio
    async def test_repeated_extensions_accumulate(self, storage, extensions):
        """Each late bid adds to the count and history."""
        await seed_auction(storage)

        await extensions.evaluate(make_bid(2500, "user_c"), now=at(16, 55))
        second = await extensions.evaluate(make_bid(2600, "user_a"), now=at(17, 0, 30))

        assert second == at(17, 6, 30)
        auction = AuctionInfo.from_record(await storage.get_auction("auction_x"))
        assert auction.extension_count == 2
        assert len(auction.extension_history) == 2

    @pytest.mark.asyncio
    async def test_early_bid_leaves_auction_untouched(self, storage, hub, extensions):
        """No write and no event for early bids."""
        await seed_auction(storage)
        watcher = RecordingSubscriber("user_a")
        hub.subscribe("auction_x", watcher)

        assert await extensions.evaluate(make_bid(2500), now=at(16, 50)) is None

        auction = AuctionInfo.from_record(await storage.get_auction("auction_x"))
        assert auction.auction_end_time is None
        assert auction.extension_count == 0
        assert watcher.events == []

    @pytest.mark.asyncio
    async def test_closed_auction_is_not_extended(self, hub, schedule):
        """Closed auctions are skipped before any write."""
        storage = AsyncMock()
        storage.get_auction.return_value = {
            "auction_id": "auction_x",
            "auction_date": "2026-03-10",
            "auction_end_time": "2026-03-10T17:00:00Z",
        }
        controller = ExtensionController(storage, hub, schedule)

        assert await controller.evaluate(make_bid(2500), now=at(17, 0, 5)) is None
        storage.update_auction_end_time.assert_not_called()


class TestLifecycle:
    """Auction phases."""

    def test_extension_is_re_entrant(self):
        """Extended auctions can extend again or close."""
        phase = transition(AuctionPhase.OPEN, AuctionEvent.EXTENDED)
        assert phase is AuctionPhase.EXTENDED
        assert transition(phase, AuctionEvent.EXTENDED) is AuctionPhase.EXTENDED
        assert transition(phase, AuctionEvent.EXPIRED) is AuctionPhase.CLOSED

    def test_closed_auction_cannot_be_extended(self):
        """Closed is terminal."""
        with pytest.raises(ValueError):
            transition(AuctionPhase.CLOSED, AuctionEvent.EXTENDED)

    def test_phase_follows_wall_clock(self, schedule):
        """Phase is derived from the auction date and end time."""
        auction = AuctionInfo.from_record({"auction_id": "auction_x", "auction_date": "2026-03-10"})
        extended = AuctionInfo.from_record(
            {
                "auction_id": "auction_x",
                "auction_date": "2026-03-10",
                "auction_end_time": "2026-03-10T17:01:00Z",
                "extension_count": 1,
            }
        )

        assert schedule.phase(auction, at(0) - timedelta(seconds=1)) is AuctionPhase.SCHEDULED
        assert schedule.phase(auction, at(12)) is AuctionPhase.OPEN
        assert schedule.phase(auction, at(17)) is AuctionPhase.CLOSED
        assert schedule.phase(extended, at(17, 0, 30)) is AuctionPhase.EXTENDED
        assert schedule.end_time(auction) == at(17)
        assert schedule.day_cutoff(auction) == at(23, 59, 59)
