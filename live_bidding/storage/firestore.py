"""Firestore storage backend leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable

from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter
from google.oauth2 import service_account

from ..transport.timestamps import format_timestamp


class FirestoreStorage:
    def __init__(
        self,
        *,
        project_id: str,
        bids_collection: str = "auction_bids",
        auto_bids_collection: str = "auto_bids",
        registrations_collection: str = "auction_registrations",
        auctions_collection: str = "auctions",
        users_collection: str = "users",
        credentials_path: str | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        client_kwargs: dict[str, Any] = {"project": project_id}
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)
        self._bids = bids_collection
        self._auto_bids = auto_bids_collection
        self._registrations = registrations_collection
        self._auctions = auctions_collection
        self._users = users_collection

    def _collection(self, name: str):
        return self._client.collection(name)

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _stream(self, query) -> list[dict[str, Any]]:
        docs = await self._run(lambda: list(query.stream()))
        return [doc.to_dict() for doc in docs]

    def _auto_bid_doc_id(self, user_id: str, auction_id: str) -> str:
        return f"{auction_id}_{user_id}"

    async def append_bid(self, bid: dict[str, Any]) -> dict[str, Any]:
        await self._run(self._collection(self._bids).document(bid["bid_id"]).set, bid)
        return bid

    async def get_highest_bid(self, auction_id: str) -> dict[str, Any] | None:
        query = (
            self._collection(self._bids)
            .where(filter=FieldFilter("auction_id", "==", auction_id))
            .order_by("amount", direction=firestore.Query.DESCENDING)
            .limit(1)
        )
        bids = await self._stream(query)
        return bids[0] if bids else None

    async def list_recent_bids(self, auction_id: str, limit: int) -> list[dict[str, Any]]:
        query = (
            self._collection(self._bids)
            .where(filter=FieldFilter("auction_id", "==", auction_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return await self._stream(query)

    async def list_user_bids(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        query = (
            self._collection(self._bids)
            .where(filter=FieldFilter("user_id", "==", user_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        if limit is not None:
            query = query.limit(limit)
        return await self._stream(query)

    async def list_auto_bids(
        self, auction_id: str, *, enabled_only: bool = True
    ) -> list[dict[str, Any]]:
        query = self._collection(self._auto_bids).where(
            filter=FieldFilter("auction_id", "==", auction_id)
        )
        if enabled_only:
            query = query.where(filter=FieldFilter("enabled", "==", True))
        settings = await self._stream(query)
        settings.sort(key=lambda setting: setting.get("max_amount", 0), reverse=True)
        return settings

    async def get_auto_bid(self, user_id: str, auction_id: str) -> dict[str, Any] | None:
        doc_id = self._auto_bid_doc_id(user_id, auction_id)
        doc = await self._run(self._collection(self._auto_bids).document(doc_id).get)
        if not doc.exists:
            return None
        return doc.to_dict()

    async def save_auto_bid(self, setting: dict[str, Any]) -> dict[str, Any]:
        doc_id = self._auto_bid_doc_id(setting["user_id"], setting["auction_id"])
        doc_ref = self._collection(self._auto_bids).document(doc_id)

        @firestore.transactional
        def write(transaction) -> dict[str, Any]:
            snapshot = doc_ref.get(transaction=transaction)
            existing = snapshot.to_dict() if snapshot.exists else None
            # An enabled setting is never replaced by a disabled one.
            if existing and existing.get("enabled") and not setting.get("enabled"):
                return existing
            transaction.set(doc_ref, setting)
            return setting

        return await self._run(write, self._client.transaction())

    async def has_approved_registration(self, auction_id: str, user_id: str) -> bool:
        query = (
            self._collection(self._registrations)
            .where(filter=FieldFilter("auction_id", "==", auction_id))
            .where(filter=FieldFilter("user_id", "==", user_id))
            .where(filter=FieldFilter("status", "==", "approved"))
            .limit(1)
        )
        return bool(await self._stream(query))

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        doc = await self._run(self._collection(self._auctions).document(auction_id).get)
        if not doc.exists:
            raise KeyError(auction_id)
        return doc.to_dict()

    async def update_auction_end_time(
        self, auction_id: str, new_end_time: datetime, extension: dict[str, Any]
    ) -> dict[str, Any]:
        doc_ref = self._collection(self._auctions).document(auction_id)
        await self._run(
            doc_ref.update,
            {
                "auction_end_time": format_timestamp(new_end_time),
                "extension_count": firestore.Increment(1),
                "extension_history": firestore.ArrayUnion([extension]),
            },
        )
        return await self.get_auction(auction_id)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        doc = await self._run(self._collection(self._users).document(user_id).get)
        if not doc.exists:
            return None
        return doc.to_dict()
