"""Configuration helpers for the bidding server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"


@dataclass(frozen=True)
class AuthConfig:
    public_key: str
    token_ttl_seconds: int


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class BiddingConfig:
    extension_window_seconds: int
    default_end_time: time
    day_end_time: time
    timezone: str
    recent_bids_limit: int
    bid_history_limit: int
    accept_late_bids: bool


@dataclass(frozen=True)
class ServerConfig:
    auth: AuthConfig
    storage: StorageConfig
    bidding: BiddingConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def _parse_time(value: Any, default: str) -> time:
    if isinstance(value, time):
        return value
    # YAML 1.1 reads unquoted 17:00:00 as sexagesimal seconds.
    if isinstance(value, int):
        return time(value // 3600, value % 3600 // 60, value % 60)
    return time.fromisoformat(str(value or default))


def _read_public_key(auth: Mapping[str, Any]) -> str:
    key_path = auth.get("public_key_path")
    if key_path:
        return Path(key_path).read_text()
    return str(auth.get("public_key") or "")


def load_server_config(path: Path) -> ServerConfig:
    data = _load_yaml(path)
    auth = data.get("auth", {})
    storage = data.get("storage", {})
    bidding = data.get("bidding", {})
    return ServerConfig(
        auth=AuthConfig(
            public_key=_read_public_key(auth),
            token_ttl_seconds=int(auth.get("token_ttl_seconds", 3600)),
        ),
        storage=StorageConfig(
            backend=str(storage.get("backend", "in_memory")),
            options=dict(storage.get("options") or {}),
        ),
        bidding=BiddingConfig(
            extension_window_seconds=int(bidding.get("extension_window_seconds", 360)),
            default_end_time=_parse_time(bidding.get("default_end_time"), "17:00:00"),
            day_end_time=_parse_time(bidding.get("day_end_time"), "23:59:59"),
            timezone=str(bidding.get("timezone", "UTC")),
            recent_bids_limit=int(bidding.get("recent_bids_limit", 50)),
            bid_history_limit=int(bidding.get("bid_history_limit", 50)),
            accept_late_bids=bool(bidding.get("accept_late_bids", False)),
        ),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("LIVE_BIDDING_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return load_server_config(path)
