"""Persistence of custom field definitions."""

import copy
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from docschema_mcp.models import SchemaField
from docschema_mcp.store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_SCHEMAS_COLLECTION = "_schemas"


class SchemaStore:
    """Custom field definitions, one meta-document per collection.

    Writes are read-modify-write merges without a transaction: concurrent
    edits by two operators resolve as last writer wins.
    """

    def __init__(
        self, store: DocumentStore, collection: str = DEFAULT_SCHEMAS_COLLECTION
    ) -> None:
        self._store = store
        self._collection = collection

    def load_custom_fields(self, collection: str) -> list[SchemaField]:
        """Load the custom fields persisted for a collection.

        Raises:
            StoreError: If the meta-collection cannot be read.
        """
        document = self._store.get(self._collection, collection)
        if not document:
            return []
        fields = [SchemaField.from_dict(raw) for raw in document.get("custom_fields") or []]
        for schema_field in fields:
            schema_field.is_custom = True
        return fields

    def save_custom_fields(self, collection: str, fields: list[SchemaField]) -> None:
        """Persist the full custom field list of a collection.

        Raises:
            StoreError: If the meta-collection cannot be written.
        """
        self._store.set_merge(
            self._collection,
            collection,
            {
                "custom_fields": [f.to_dict() for f in fields],
                "last_modified": datetime.now(timezone.utc),
            },
        )
        logger.info("Saved %d custom field(s) for %s", len(fields), collection)


class SchemaCache:
    """Read-through cache of custom fields keyed by collection name.

    Entries stay until invalidate() or clear() is called.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[SchemaField]] = {}
        self._lock = threading.Lock()

    def get(
        self, collection: str, loader: Callable[[str], list[SchemaField]]
    ) -> list[SchemaField]:
        """Get cached fields, loading them on a miss.

        Returns:
            A deep copy of the cached list.
        """
        with self._lock:
            cached = self._entries.get(collection)
        if cached is None:
            cached = loader(collection)
            with self._lock:
                self._entries[collection] = cached
        return copy.deepcopy(cached)

    def invalidate(self, collection: str) -> None:
        with self._lock:
            self._entries.pop(collection, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, collection: str) -> bool:
        with self._lock:
            return collection in self._entries
