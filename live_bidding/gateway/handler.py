"""WebSocket connection handling: authentication, frame dispatch and error mapping."""

from __future__ import annotations

import logging
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect, status
from jsonschema import ValidationError

from ..auction.engine import AuctionJoinError, BiddingEngine, BidProcessingError
from ..auction.models import Bidder
from ..auction.validator import BidRejected
from ..transport.canonical_json import dumps_text
from ..validation.validator import SchemaRegistry
from .identity import AuthenticationError, IdentityResolver, bearer_from_header

logger = logging.getLogger(__name__)


class WebSocketSubscriber:
    """Channel member backed by one accepted WebSocket."""

    def __init__(self, websocket: WebSocket, bidder: Bidder) -> None:
        self.websocket = websocket
        self.bidder = bidder
        self.user_id = bidder.id

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        await self.websocket.send_text(dumps_text({"event": event, "data": payload}))


class GatewayConnection:
    def __init__(
        self,
        websocket: WebSocket,
        *,
        identity: IdentityResolver,
        engine: BiddingEngine,
        schemas: SchemaRegistry,
    ) -> None:
        self._websocket = websocket
        self._identity = identity
        self._engine = engine
        self._schemas = schemas
        self._subscriber: WebSocketSubscriber | None = None

    def _credential(self) -> str | None:
        header = bearer_from_header(self._websocket.headers.get("authorization"))
        return header or self._websocket.query_params.get("token")

    async def authenticate(self) -> bool:
        try:
            bidder = await self._identity.resolve(self._credential())
        except AuthenticationError as exc:
            logger.info("websocket authentication failed: %s", exc)
            await self._websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc))
            return False
        except Exception:
            logger.exception("identity lookup failed")
            await self._websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return False
        await self._websocket.accept()
        self._subscriber = WebSocketSubscriber(self._websocket, bidder)
        logger.info("user connected: %s", bidder.id)
        return True

    async def run(self) -> None:
        if not await self.authenticate():
            return
        try:
            while True:
                raw = await self._receive_frame()
                try:
                    await self.dispatch(raw)
                except WebSocketDisconnect:
                    raise
                except Exception:
                    logger.exception("unhandled error for user=%s", self._subscriber.user_id)
                    await self._emit("auction-error", {"message": "Error processing request"})
        except WebSocketDisconnect:
            pass
        finally:
            await self.close()

    async def _receive_frame(self) -> str | bytes | None:
        """Next client frame as text or bytes; ``None`` for an empty frame."""
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes")

    async def dispatch(self, raw: str | bytes | None) -> None:
        if self._subscriber is None:
            return
        if not raw:
            await self._emit("auction-error", {"message": "Malformed message"})
            return
        try:
            message = orjson.loads(raw)
            message_type = self._schemas.validate_message(message)
        except orjson.JSONDecodeError:
            await self._emit("auction-error", {"message": "Malformed message"})
            return
        except ValidationError as exc:
            await self._emit("auction-error", {"message": exc.message})
            return
        except ValueError as exc:
            await self._emit("auction-error", {"message": str(exc)})
            return
        auction_id = message["auctionId"]
        if message_type == "join-auction":
            await self._on_join(auction_id)
        elif message_type == "place-bid":
            await self._on_place_bid(auction_id, message["bidAmount"])
        elif message_type == "auction-timer":
            await self._engine.relay_timer(auction_id, message["timeLeft"])
        elif message_type == "leave-auction":
            await self._engine.leave(auction_id, self._subscriber)

    async def _on_join(self, auction_id: str) -> None:
        try:
            await self._engine.join(auction_id, self._subscriber)
        except AuctionJoinError as exc:
            await self._emit("auction-error", {"auctionId": auction_id, "message": str(exc)})

    async def _on_place_bid(self, auction_id: str, amount: int) -> None:
        try:
            await self._engine.place_bid(auction_id, self._subscriber.bidder, amount)
        except (BidRejected, BidProcessingError) as exc:
            await self._emit("bid-error", {"auctionId": auction_id, **exc.to_payload()})

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._subscriber.send(event, payload)
        except Exception as exc:
            logger.info("emit %s to user=%s failed: %s", event, self._subscriber.user_id, exc)

    async def close(self) -> None:
        if self._subscriber is None:
            return
        subscriber, self._subscriber = self._subscriber, None
        counts = self._engine.disconnect(subscriber)
        logger.info("user disconnected: %s", subscriber.user_id)
        await self._engine.announce_counts(counts)
