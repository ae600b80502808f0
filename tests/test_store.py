"""Tests for store module."""

import copy

import pytest

from docschema_mcp.store import DELETE_FIELD, MemoryDocumentStore, StoreError


@pytest.fixture
def store() -> MemoryDocumentStore:
    """Store with a small materials collection."""
    return MemoryDocumentStore(
        {
            "materials": {
                "m1": {"nombre": "Cuerda", "createdAt": 1},
                "m2": {"nombre": "Mosquetón", "createdAt": 3},
                "m3": {"nombre": "Arnés", "createdAt": 2},
                "m4": {"nombre": "Casco"},
            }
        }
    )


class TestMemoryDocumentStore:
    """Tests for MemoryDocumentStore class."""

    def test_get(self, store: MemoryDocumentStore) -> None:
        """Documents are returned with their id."""
        assert store.get("materials", "m1") == {"id": "m1", "nombre": "Cuerda", "createdAt": 1}
        assert store.get("materials", "missing") is None
        assert store.get("unknown", "m1") is None

    def test_query_unordered(self, store: MemoryDocumentStore) -> None:
        """Unordered queries keep insertion order."""
        documents = store.query("materials")

        assert [d["id"] for d in documents] == ["m1", "m2", "m3", "m4"]

    def test_query_ordered_desc(self, store: MemoryDocumentStore) -> None:
        """Ordering skips documents lacking the order field."""
        documents = store.query("materials", order_by="createdAt", direction="desc")

        assert [d["id"] for d in documents] == ["m2", "m3", "m1"]

    def test_query_ordered_asc_with_limit(self, store: MemoryDocumentStore) -> None:
        """Ascending order honors the limit."""
        documents = store.query("materials", order_by="createdAt", limit=2)

        assert [d["id"] for d in documents] == ["m1", "m3"]

    def test_query_incomparable_values(self, store: MemoryDocumentStore) -> None:
        """Ordering mixed types raises StoreError."""
        store.set_merge("materials", "m4", {"createdAt": "ayer"})

        with pytest.raises(StoreError):
            store.query("materials", order_by="createdAt")

    def test_query_empty_collection(self, store: MemoryDocumentStore) -> None:
        """Unknown collections read as empty."""
        assert store.query("nothing") == []
        assert store.query_fresh("nothing", 10) == []

    def test_set_replaces(self, store: MemoryDocumentStore) -> None:
        """Set replaces the whole document."""
        store.set("materials", "m1", {"id": "ignored", "color": "rojo"})

        assert store.get("materials", "m1") == {"id": "m1", "color": "rojo"}

    def test_set_merge_updates_and_deletes(self, store: MemoryDocumentStore) -> None:
        """Merges update fields and apply deletes."""
        store.set_merge("materials", "m1", {"color": "rojo", "createdAt": DELETE_FIELD})

        assert store.get("materials", "m1") == {"id": "m1", "nombre": "Cuerda", "color": "rojo"}

    def test_set_merge_creates(self, store: MemoryDocumentStore) -> None:
        """Merging into a missing document creates it."""
        store.set_merge("_schemas", "materials", {"custom_fields": []})

        assert store.get("_schemas", "materials") == {"id": "materials", "custom_fields": []}

    def test_documents_are_copies(self, store: MemoryDocumentStore) -> None:
        """Mutating a returned document does not change the store."""
        data = {"tags": ["a"]}
        store.set("materials", "m5", data)
        data["tags"].append("b")
        document = store.get("materials", "m5")
        assert document is not None
        document["tags"].append("c")

        assert store.get("materials", "m5") == {"id": "m5", "tags": ["a"]}


class TestDeleteField:
    """Tests for the DELETE_FIELD sentinel."""

    def test_singleton_survives_copy(self) -> None:
        """Deep copies keep the sentinel identity."""
        assert copy.deepcopy(DELETE_FIELD) is DELETE_FIELD
        assert copy.deepcopy({"a": DELETE_FIELD})["a"] is DELETE_FIELD
