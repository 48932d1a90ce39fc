"""Live session inspection endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..auction.fanout import ChannelHub
from ..auction.session import SessionRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _get_hub(request: Request) -> ChannelHub:
    return request.app.state.hub


@router.get("/stats")
async def stats(
    sessions: SessionRegistry = Depends(_get_sessions),
    hub: ChannelHub = Depends(_get_hub),
) -> dict[str, Any]:
    active = sessions.active()
    channels = list(hub.channels())
    return {
        "active_sessions": len(active),
        "total_participants": sum(len(session.participants) for session in active),
        "open_channels": len(channels),
        "connections": sum(len(hub.members(auction_id)) for auction_id in channels),
    }


@router.get("/sessions")
async def list_sessions(
    sessions: SessionRegistry = Depends(_get_sessions),
) -> list[dict[str, Any]]:
    return [session.summary() for session in sessions.active()]


@router.get("/sessions/{auction_id}")
async def get_session(
    auction_id: str,
    sessions: SessionRegistry = Depends(_get_sessions),
) -> dict[str, Any]:
    session = sessions.get(auction_id)
    if session is None:
        raise HTTPException(status_code=404, detail="auction session not active")
    return session.summary()
