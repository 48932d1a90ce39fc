"""Bearer-token identity resolution against the user store."""

from __future__ import annotations

import logging

from ..auction.models import Bidder
from ..storage import BiddingStorage
from ..transport.tokens import TokenError, verify_token

logger = logging.getLogger(__name__)


class AuthenticationError(ValueError):
    """Raised when a bearer credential cannot be resolved to a user."""


def bearer_from_header(value: str | None) -> str | None:
    if not value:
        return None
    scheme, _, credential = value.partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        return None
    return credential.strip()


class IdentityResolver:
    def __init__(self, storage: BiddingStorage, public_key_pem: str) -> None:
        self._storage = storage
        self._public_key = public_key_pem

    async def resolve(self, token: str | None) -> Bidder:
        if not token:
            raise AuthenticationError("Authentication required")
        try:
            claims = verify_token(token, self._public_key)
        except TokenError as exc:
            logger.info("token rejected: %s", exc)
            raise AuthenticationError("Authentication failed") from exc
        user = await self._storage.get_user(str(claims["sub"]))
        if not user:
            raise AuthenticationError("User not found")
        name = user.get("name") or " ".join(
            part for part in (user.get("first_name"), user.get("last_name")) if part
        )
        return Bidder(id=str(claims["sub"]), name=name or str(claims.get("name") or ""))
