"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
) -> dict:
    bidding = config.bidding
    return {
        "version": request.app.version,
        "storage_backend": config.storage.backend,
        "auth_configured": bool(config.auth.public_key),
        "token_ttl_seconds": config.auth.token_ttl_seconds,
        "bidding": {
            "extension_window_seconds": bidding.extension_window_seconds,
            "default_end_time": bidding.default_end_time.isoformat(),
            "day_end_time": bidding.day_end_time.isoformat(),
            "timezone": bidding.timezone,
            "recent_bids_limit": bidding.recent_bids_limit,
            "bid_history_limit": bidding.bid_history_limit,
            "accept_late_bids": bidding.accept_late_bids,
        },
    }
