"""Unit tests for in-memory auction session state."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import at, make_bid
from live_bidding.auction.session import AuctionSessionState, SessionRegistry


@pytest.fixture
def mock_ledger():
    ledger = AsyncMock()
    ledger.highest = AsyncMock(return_value=make_bid(2000, "user_b", name="Bea"))
    ledger.recent = AsyncMock(
        return_value=[
            make_bid(2000, "user_b", timestamp=at(10, 5), name="Bea"),
            make_bid(1000, "user_a", timestamp=at(10, 0), name="Ann"),
        ]
    )
    return ledger


class TestActivation:
    """Hydrating session state from the ledger."""

    @pytest.mark.asyncio
    async def test_hydrates_from_highest_and_recent_bids(self, mock_ledger):
        """The highest bid and recent history seed the session."""
        registry = SessionRegistry(mock_ledger)

        session = await registry.activate("auction_x")

        assert session.current_bid == 2000
        assert session.current_bidder.id == "user_b"
        assert session.current_bidder.name == "Bea"
        assert session.last_bid_time == at(10)
        assert [bid.amount for bid in session.recent_bids] == [2000, 1000]
        mock_ledger.recent.assert_awaited_once_with("auction_x", 50)

    @pytest.mark.asyncio
    async def test_empty_ledger_seeds_zero(self, mock_ledger):
        """An auction without bids starts at zero."""
        mock_ledger.highest.return_value = None
        mock_ledger.recent.return_value = []
        registry = SessionRegistry(mock_ledger)

        session = await registry.activate("auction_x")

        assert session.current_bid == 0
        assert session.current_bidder is None
        assert session.last_bid_time is None
        assert not session.recent_bids

    @pytest.mark.asyncio
    async def test_activating_twice_is_a_noop(self, mock_ledger):
        """A live session is not hydrated again."""
        registry = SessionRegistry(mock_ledger)
        first = await registry.activate("auction_x")
        first.record_bid(make_bid(3000, "user_c", timestamp=at(11)))

        second = await registry.activate("auction_x")

        assert second is first
        assert second.current_bid == 3000
        assert len(second.recent_bids) == 3
        mock_ledger.highest.assert_awaited_once()
        mock_ledger.recent.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_joins_hydrate_once(self, mock_ledger):
        """Simultaneous first joins read the ledger once."""
        async def slow_highest(auction_id):
            await asyncio.sleep(0.01)
            return make_bid(2000, "user_b")

        mock_ledger.highest.side_effect = slow_highest
        registry = SessionRegistry(mock_ledger)

        await asyncio.gather(
            registry.join("auction_x", "user_a"),
            registry.join("auction_x", "user_b"),
        )

        assert mock_ledger.highest.await_count == 1
        assert registry.get("auction_x").participants == {"user_a", "user_b"}


class TestMembership:
    """Joining and leaving a session."""

    @pytest.mark.asyncio
    async def test_join_returns_snapshot(self, mock_ledger):
        """Join hands back the client snapshot."""
        registry = SessionRegistry(mock_ledger)

        await registry.join("auction_x", "user_a")
        snapshot = await registry.join("auction_x", "user_c")

        assert snapshot["currentBid"] == 2000
        assert snapshot["currentBidder"] == {"id": "user_b", "name": "Bea"}
        assert snapshot["participantCount"] == 2
        assert [bid["currentBid"] for bid in snapshot["recentBids"]] == [2000, 1000]

    @pytest.mark.asyncio
    async def test_last_leave_evicts_session(self, mock_ledger):
        """The session goes away with its last participant."""
        registry = SessionRegistry(mock_ledger)
        await registry.join("auction_x", "user_a")
        await registry.join("auction_x", "user_b")

        assert registry.leave("auction_x", "user_a") == 1
        assert registry.get("auction_x") is not None
        assert registry.leave("auction_x", "user_b") == 0
        assert registry.get("auction_x") is None

    def test_leave_unknown_participant(self, mock_ledger):
        """Leaving an auction with no session is harmless."""
        registry = SessionRegistry(mock_ledger)

        assert registry.leave("auction_x", "user_a") is None

    @pytest.mark.asyncio
    async def test_rejoin_after_eviction_rehydrates_same_state(self, storage, ledger):
        """Re-hydration reproduces the evicted state."""
        await storage.append_bid(make_bid(1000, "user_a", timestamp=at(10)).to_record())
        await storage.append_bid(make_bid(2000, "user_b", timestamp=at(10, 1)).to_record())
        registry = SessionRegistry(ledger)
        before = await registry.join("auction_x", "user_a")
        registry.leave("auction_x", "user_a")
        assert registry.get("auction_x") is None

        after = await registry.join("auction_x", "user_a")

        assert after["currentBid"] == before["currentBid"] == 2000
        assert after["currentBidder"] == before["currentBidder"]
        assert after["recentBids"] == before["recentBids"]


class TestRecordBid:
    """Applying accepted bids to session state."""

    def test_record_bid_updates_current_state(self):
        """The current bid, bidder and time follow the accepted bid."""
        session = AuctionSessionState(auction_id="auction_x")
        bid = make_bid(2500, "user_c", timestamp=at(12))

        session.record_bid(bid)

        assert session.current_bid == 2500
        assert session.current_bidder.id == "user_c"
        assert session.last_bid_time == at(12)
        assert session.recent_bids[0] is bid

    def test_recent_bids_keep_fifty_most_recent(self):
        """Recent history is capped."""
        session = AuctionSessionState(auction_id="auction_x")
        for index in range(60):
            session.record_bid(
                make_bid(1000 + index, timestamp=at(10) + timedelta(seconds=index))
            )

        assert len(session.recent_bids) == 50
        assert session.recent_bids[0].amount == 1059
        assert session.recent_bids[-1].amount == 1010

    @pytest.mark.asyncio
    async def test_registry_record_after_eviction_is_ignored(self, mock_ledger):
        """A bid recorded after eviction does not resurrect the session."""
        registry = SessionRegistry(mock_ledger)

        registry.record_bid("auction_x", make_bid(5000))

        assert registry.get("auction_x") is None
