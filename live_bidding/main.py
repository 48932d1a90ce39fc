from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, WebSocket
from jsonschema import ValidationError

from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .auction.engine import BiddingEngine
from .auction.extension import ExtensionController
from .auction.fanout import ChannelHub
from .auction.models import Bidder
from .auction.schedule import AuctionSchedule
from .auction.session import SessionRegistry
from .auction.validator import BidValidator
from .autobid.registry import AutoBidRegistry, AutoBidSettingsError
from .config import ServerConfig, get_server_config
from .gateway.handler import GatewayConnection
from .gateway.identity import AuthenticationError, IdentityResolver, bearer_from_header
from .ledger.bids import BidLedger
from .storage import build_storage
from .validation.validator import SchemaRegistry, get_schema_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    bidding = server_config.bidding
    schema_registry = get_schema_registry()
    storage = build_storage(server_config)
    ledger = BidLedger(storage)
    autobids = AutoBidRegistry(storage)
    schedule = AuctionSchedule.from_config(bidding)
    hub = ChannelHub()
    sessions = SessionRegistry(ledger, recent_limit=bidding.recent_bids_limit)
    validator = BidValidator(
        storage,
        sessions,
        autobids,
        schedule,
        accept_late_bids=bidding.accept_late_bids,
    )
    extensions = ExtensionController(storage, hub, schedule)
    engine = BiddingEngine(sessions, validator, ledger, extensions, hub)
    identity = IdentityResolver(storage, server_config.auth.public_key)

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.storage = storage
    app.state.ledger = ledger
    app.state.autobids = autobids
    app.state.hub = hub
    app.state.sessions = sessions
    app.state.engine = engine
    app.state.identity = identity
    app.state.start_time = datetime.now(timezone.utc)

    yield


app = FastAPI(
    title="Live Bidding Server",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_ledger(request: Request) -> BidLedger:
    return request.app.state.ledger


def get_autobid_registry(request: Request) -> AutoBidRegistry:
    return request.app.state.autobids


def get_engine(request: Request) -> BiddingEngine:
    return request.app.state.engine


async def get_current_bidder(request: Request) -> Bidder:
    identity: IdentityResolver = request.app.state.identity
    token = bearer_from_header(request.headers.get("authorization"))
    try:
        return await identity.resolve(token)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail="Not authorized to access this route") from exc


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "live-bidding",
        "version": app.version,
        "storage_backend": settings.storage.backend,
        "bidding": {
            "extension_window_seconds": settings.bidding.extension_window_seconds,
            "accept_late_bids": settings.bidding.accept_late_bids,
        },
    }


@app.get("/ping", tags=["meta"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.get("/auctions/{auction_id}/bids", tags=["bids"])
async def bid_history(
    auction_id: str,
    bidder: Bidder = Depends(get_current_bidder),
    ledger: BidLedger = Depends(get_ledger),
    settings: ServerConfig = Depends(get_server_settings),
) -> dict[str, Any]:
    try:
        bids = await ledger.recent(auction_id, settings.bidding.bid_history_limit)
    except Exception as exc:
        logger.exception("bid history lookup failed for auction=%s", auction_id)
        raise HTTPException(status_code=500, detail="Error fetching bid history") from exc
    return {"auctionId": auction_id, "bids": [bid.to_event() for bid in bids]}


@app.get("/bids/mine", tags=["bids"])
async def my_bids(
    bidder: Bidder = Depends(get_current_bidder),
    ledger: BidLedger = Depends(get_ledger),
) -> dict[str, Any]:
    try:
        bids = await ledger.for_user(bidder.id)
    except Exception as exc:
        logger.exception("bid lookup failed for user=%s", bidder.id)
        raise HTTPException(status_code=500, detail="Error fetching your bids") from exc
    return {"userId": bidder.id, "bids": [bid.to_event() for bid in bids]}


@app.get("/auto-bid/settings/{auction_id}", tags=["auto-bid"])
async def get_auto_bid_settings(
    auction_id: str,
    bidder: Bidder = Depends(get_current_bidder),
    registry: AutoBidRegistry = Depends(get_autobid_registry),
) -> dict[str, Any]:
    setting = await registry.get_settings(bidder.id, auction_id)
    return setting.to_response()


@app.post("/auto-bid/settings", tags=["auto-bid"])
async def save_auto_bid_settings(
    payload: dict[str, Any] = Body(...),
    bidder: Bidder = Depends(get_current_bidder),
    schemas: SchemaRegistry = Depends(get_schema_service),
    registry: AutoBidRegistry = Depends(get_autobid_registry),
    engine: BiddingEngine = Depends(get_engine),
) -> dict[str, Any]:
    try:
        schemas.validate("auto_bid_settings", payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc
    auction_id = payload["auctionId"]
    floor_before = await registry.min_manual_bid(auction_id)
    try:
        setting = await registry.save_settings(
            bidder.id,
            auction_id,
            enabled=payload["enabled"],
            max_amount=payload.get("maxAmount", 0),
            increment=payload.get("increment", 1000),
        )
    except AutoBidSettingsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    floor_after = await registry.min_manual_bid(auction_id)
    if floor_after != floor_before:
        await engine.announce_min_bid(auction_id, floor_after)
    return {**setting.to_response(), "minManualBid": floor_after}


@app.websocket("/ws")
async def bidding_socket(websocket: WebSocket) -> None:
    connection = GatewayConnection(
        websocket,
        identity=websocket.app.state.identity,
        engine=websocket.app.state.engine,
        schemas=websocket.app.state.schema_registry,
    )
    await connection.run()
