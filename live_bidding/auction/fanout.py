"""Per-auction broadcast channels for connected clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    user_id: str

    async def send(self, event: str, payload: dict[str, Any]) -> None:  # pragma: no cover - protocol
        ...


class ChannelHub:
    """Room membership keyed by auction ID.

    Membership changes are synchronous so a disconnect can be applied without
    yielding to the event loop.
    """

    def __init__(self) -> None:
        self._channels: dict[str, set[Subscriber]] = {}

    def subscribe(self, auction_id: str, subscriber: Subscriber) -> None:
        self._channels.setdefault(auction_id, set()).add(subscriber)

    def unsubscribe(self, auction_id: str, subscriber: Subscriber) -> bool:
        members = self._channels.get(auction_id)
        if not members or subscriber not in members:
            return False
        members.discard(subscriber)
        if not members:
            del self._channels[auction_id]
        return True

    def unsubscribe_all(self, subscriber: Subscriber) -> list[str]:
        left = [
            auction_id
            for auction_id, members in self._channels.items()
            if subscriber in members
        ]
        for auction_id in left:
            self.unsubscribe(auction_id, subscriber)
        return left

    def is_watching(self, auction_id: str, user_id: str) -> bool:
        return any(member.user_id == user_id for member in self._channels.get(auction_id, ()))

    def members(self, auction_id: str) -> list[Subscriber]:
        return list(self._channels.get(auction_id, ()))

    def channels(self) -> Iterable[str]:
        return list(self._channels)

    async def broadcast(self, auction_id: str, event: str, payload: dict[str, Any]) -> None:
        members = self.members(auction_id)
        if not members:
            return
        results = await asyncio.gather(
            *(member.send(event, payload) for member in members),
            return_exceptions=True,
        )
        for member, result in zip(members, results):
            if isinstance(result, Exception):
                logger.warning(
                    "broadcast %s to user=%s in auction=%s failed: %s",
                    event,
                    member.user_id,
                    auction_id,
                    result,
                )
        logger.debug("auction=%s event=%s delivered to %d subscribers", auction_id, event, len(members))

    async def send(self, subscriber: Subscriber, event: str, payload: dict[str, Any]) -> None:
        try:
            await subscriber.send(event, payload)
        except Exception as exc:
            logger.warning("send %s to user=%s failed: %s", event, subscriber.user_id, exc)
