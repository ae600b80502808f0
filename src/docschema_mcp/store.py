"""Document store abstraction and in-memory implementation."""

import copy
import threading
from typing import Any, Literal, Protocol

Direction = Literal["asc", "desc"]

# Default page size for unbounded queries
DEFAULT_QUERY_LIMIT = 1000


class _DeleteField:
    """Sentinel marking a field for removal in a merge update."""

    _instance: "_DeleteField | None" = None

    def __new__(cls) -> "_DeleteField":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __deepcopy__(self, memo: dict[int, Any]) -> "_DeleteField":
        return self


DELETE_FIELD = _DeleteField()


class StoreError(RuntimeError):
    """Raised when the document store cannot be reached or refuses access."""


class DocumentStore(Protocol):
    """Collection-scoped access to a schemaless document store.

    Documents are plain dicts carrying their identifier under the "id" key.
    """

    def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        """Get a single document, or None if it does not exist."""
        ...

    def query(
        self,
        collection: str,
        order_by: str | None = None,
        direction: Direction = "asc",
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[dict[str, Any]]:
        """Query documents, optionally ordered by a field.

        Documents lacking the order field are not returned when ordering.
        """
        ...

    def query_fresh(self, collection: str, limit: int) -> list[dict[str, Any]]:
        """Query documents directly from the source, bypassing any cache."""
        ...

    def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        """Create or replace a document."""
        ...

    def set_merge(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> None:
        """Merge top-level fields into a document.

        Fields whose value is DELETE_FIELD are removed.
        """
        ...


class MemoryDocumentStore:
    """Thread-safe in-memory document store."""

    def __init__(self, data: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        """Initialize the store.

        Args:
            data: Optional initial content, collection -> id -> document.
        """
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        for collection, documents in (data or {}).items():
            for document_id, document in documents.items():
                self.set(collection, document_id, document)

    def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
            if document is None:
                return None
            return self._export(document_id, document)

    def query(
        self,
        collection: str,
        order_by: str | None = None,
        direction: Direction = "asc",
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[dict[str, Any]]:
        with self._lock:
            items = list(self._collections.get(collection, {}).items())

            if order_by is not None:
                items = [(doc_id, doc) for doc_id, doc in items if order_by in doc]
                try:
                    items.sort(
                        key=lambda item: item[1][order_by], reverse=direction == "desc"
                    )
                except TypeError as e:
                    raise StoreError(
                        f"Cannot order '{collection}' by '{order_by}': {e}"
                    ) from e

            return [self._export(doc_id, doc) for doc_id, doc in items[:limit]]

    def query_fresh(self, collection: str, limit: int) -> list[dict[str, Any]]:
        return self.query(collection, limit=limit)

    def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        document = {
            key: copy.deepcopy(value)
            for key, value in data.items()
            if key != "id" and value is not DELETE_FIELD
        }
        with self._lock:
            self._collections.setdefault(collection, {})[document_id] = document

    def set_merge(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> None:
        with self._lock:
            document = self._collections.setdefault(collection, {}).setdefault(
                document_id, {}
            )
            for key, value in data.items():
                if key == "id":
                    continue
                if value is DELETE_FIELD:
                    document.pop(key, None)
                else:
                    document[key] = copy.deepcopy(value)

    @staticmethod
    def _export(document_id: str, document: dict[str, Any]) -> dict[str, Any]:
        return {"id": document_id, **copy.deepcopy(document)}
