"""Wall-clock view of an auction: effective end time, day cutoff and phase."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from ..config import BiddingConfig
from .fsm import AuctionPhase
from .models import AuctionInfo


def resolve_timezone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


@dataclass(frozen=True)
class AuctionSchedule:
    tz: tzinfo
    default_end_time: time
    day_end_time: time
    extension_window: timedelta

    @classmethod
    def from_config(cls, config: BiddingConfig) -> "AuctionSchedule":
        return cls(
            tz=resolve_timezone(config.timezone),
            default_end_time=config.default_end_time,
            day_end_time=config.day_end_time,
            extension_window=timedelta(seconds=config.extension_window_seconds),
        )

    def _on_auction_date(self, auction: AuctionInfo, at: time) -> datetime:
        local = datetime.combine(auction.auction_date, at, tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def opens_at(self, auction: AuctionInfo) -> datetime:
        return self._on_auction_date(auction, time.min)

    def end_time(self, auction: AuctionInfo) -> datetime:
        """The stored end time, or the default closing time on the auction date."""
        if auction.auction_end_time is not None:
            return auction.auction_end_time
        return self._on_auction_date(auction, self.default_end_time)

    def day_cutoff(self, auction: AuctionInfo) -> datetime:
        """Latest instant an extension may reach: end of the auction date."""
        return self._on_auction_date(auction, self.day_end_time)

    def phase(self, auction: AuctionInfo, now: datetime) -> AuctionPhase:
        if now < self.opens_at(auction):
            return AuctionPhase.SCHEDULED
        if now >= self.end_time(auction):
            return AuctionPhase.CLOSED
        if auction.extension_count:
            return AuctionPhase.EXTENDED
        return AuctionPhase.OPEN
