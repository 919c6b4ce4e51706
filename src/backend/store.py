# ── src/backend/store.py ──────────────────────────────────────────────────────
"""
Record Store: keyed JSON documents grouped in collections.

Cosmos layout: one container per collection, `id` is both the document key
and the partition key. Documents handed to callers never
carry `id` or the Cosmos system properties; list/find return (key, doc) pairs.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from azure.cosmos import exceptions as cosmos_exc

from .errors import NotFound, StoreFailed

Document = Dict[str, Any]

_SYSTEM_FIELDS = ("id", "_rid", "_self", "_etag", "_attachments", "_ts")

# Push keys sort chronologically: 8 chars of millisecond time + 12 random chars
_PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


def new_push_key(now_ms: Optional[int] = None) -> str:
    ts = int(time.time() * 1000) if now_ms is None else now_ms
    head = []
    for _ in range(8):
        head.append(_PUSH_CHARS[ts % 64])
        ts //= 64
    tail = "".join(secrets.choice(_PUSH_CHARS) for _ in range(12))
    return "".join(reversed(head)) + tail


class RecordStore(Protocol):
    def get(self, collection: str, key: str) -> Optional[Document]:
        ...

    def set(self, collection: str, key: str, doc: Document) -> None:
        ...

    def push_key(self, collection: str) -> str:
        ...

    def update_fields(self, collection: str, key: str, partial: Document) -> Document:
        ...

    def remove(self, collection: str, key: str) -> None:
        ...

    def list(self, collection: str) -> List[Tuple[str, Document]]:
        ...

    def find_by_field(self, collection: str, field: str, value: Any) -> List[Tuple[str, Document]]:
        ...


def _strip(item: Document) -> Document:
    return {k: v for k, v in item.items() if k not in _SYSTEM_FIELDS}


def _pairs(items: Iterable[Document]) -> List[Tuple[str, Document]]:
    return [(str(it["id"]), _strip(it)) for it in items]


class CosmosRecordStore:
    """RecordStore backed by a Cosmos DatabaseProxy."""

    def __init__(self, database, containers: Dict[str, str]):
        # containers maps logical collection name -> Cosmos container name
        self._database = database
        self._names = dict(containers)
        self._clients: Dict[str, Any] = {}

    def _container(self, collection: str):
        if collection not in self._clients:
            name = self._names.get(collection, collection)
            self._clients[collection] = self._database.get_container_client(name)
        return self._clients[collection]

    def get(self, collection: str, key: str) -> Optional[Document]:
        try:
            item = self._container(collection).read_item(item=key, partition_key=key)
        except cosmos_exc.CosmosResourceNotFoundError:
            return None
        except cosmos_exc.CosmosHttpResponseError as e:
            logging.exception("Cosmos read failed for %s/%s", collection, key)
            raise StoreFailed(f"read {collection}/{key} failed: {e.message}", e)
        return _strip(item)

    def set(self, collection: str, key: str, doc: Document) -> None:
        body = {**_strip(doc), "id": key}
        try:
            self._container(collection).upsert_item(body)
        except cosmos_exc.CosmosHttpResponseError as e:
            logging.exception("Cosmos upsert failed for %s/%s", collection, key)
            raise StoreFailed(f"write {collection}/{key} failed: {e.message}", e)

    def push_key(self, collection: str) -> str:
        return new_push_key()

    def update_fields(self, collection: str, key: str, partial: Document) -> Document:
        # Read-merge-upsert; Cosmos patch caps operations per call
        current = self.get(collection, key)
        if current is None:
            raise NotFound(f"{collection}/{key} not found")
        current.update(_strip(partial))
        self.set(collection, key, current)
        return current

    def remove(self, collection: str, key: str) -> None:
        try:
            self._container(collection).delete_item(item=key, partition_key=key)
        except cosmos_exc.CosmosResourceNotFoundError:
            raise NotFound(f"{collection}/{key} not found")
        except cosmos_exc.CosmosHttpResponseError as e:
            logging.exception("Cosmos delete failed for %s/%s", collection, key)
            raise StoreFailed(f"delete {collection}/{key} failed: {e.message}", e)

    def list(self, collection: str) -> List[Tuple[str, Document]]:
        try:
            return _pairs(self._container(collection).read_all_items())
        except cosmos_exc.CosmosHttpResponseError as e:
            logging.exception("Cosmos scan failed for %s", collection)
            raise StoreFailed(f"list {collection} failed: {e.message}", e)

    def find_by_field(self, collection: str, field: str, value: Any) -> List[Tuple[str, Document]]:
        if not field.isidentifier():
            raise ValueError(f"Unsupported field name: {field}")
        query = f"SELECT * FROM c WHERE c.{field} = @v"
        try:
            items = self._container(collection).query_items(
                query=query,
                parameters=[{"name": "@v", "value": value}],
                enable_cross_partition_query=True,
            )
            return _pairs(items)
        except cosmos_exc.CosmosHttpResponseError as e:
            logging.exception("Cosmos query failed for %s.%s", collection, field)
            raise StoreFailed(f"query {collection} failed: {e.message}", e)
