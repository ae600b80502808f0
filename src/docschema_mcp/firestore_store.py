"""Cloud Firestore implementation of the document store."""

import logging
from typing import Any

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore

from docschema_mcp.store import DEFAULT_QUERY_LIMIT, DELETE_FIELD, Direction, StoreError

logger = logging.getLogger(__name__)


class FirestoreDocumentStore:
    """Document store backed by a google-cloud-firestore client.

    The server client keeps no local cache, so fresh queries are plain
    unordered queries against the backend.
    """

    def __init__(self, client: firestore.Client) -> None:
        """Initialize the store.

        Args:
            client: Firestore client.
        """
        self._client = client

    @classmethod
    def from_project(
        cls, project_id: str | None = None, database: str | None = None
    ) -> "FirestoreDocumentStore":
        """Create a store with a new client for the given project."""
        kwargs: dict[str, Any] = {}
        if project_id:
            kwargs["project"] = project_id
        if database:
            kwargs["database"] = database
        return cls(firestore.Client(**kwargs))

    def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        try:
            snapshot = self._client.collection(collection).document(document_id).get()
        except api_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to read {collection}/{document_id}: {e}") from e
        if not snapshot.exists:
            return None
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    def query(
        self,
        collection: str,
        order_by: str | None = None,
        direction: Direction = "asc",
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[dict[str, Any]]:
        query: Any = self._client.collection(collection)
        if order_by is not None:
            query = query.order_by(
                order_by,
                direction=(
                    firestore.Query.DESCENDING
                    if direction == "desc"
                    else firestore.Query.ASCENDING
                ),
            )
        query = query.limit(limit)
        try:
            return [
                {"id": snapshot.id, **(snapshot.to_dict() or {})}
                for snapshot in query.stream()
            ]
        except api_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e

    def query_fresh(self, collection: str, limit: int) -> list[dict[str, Any]]:
        return self.query(collection, limit=limit)

    def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        payload = {k: v for k, v in data.items() if k != "id" and v is not DELETE_FIELD}
        try:
            self._client.collection(collection).document(document_id).set(payload)
        except api_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to write {collection}/{document_id}: {e}") from e

    def set_merge(
        self, collection: str, document_id: str, data: dict[str, Any]
    ) -> None:
        payload = {
            k: firestore.DELETE_FIELD if v is DELETE_FIELD else v
            for k, v in data.items()
            if k != "id"
        }
        logger.debug(
            "Merging %d field(s) into %s/%s", len(payload), collection, document_id
        )
        try:
            self._client.collection(collection).document(document_id).set(
                payload, merge=True
            )
        except api_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Failed to update {collection}/{document_id}: {e}") from e
