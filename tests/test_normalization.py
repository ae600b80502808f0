"""Tests for normalization module."""

import threading
from typing import Any

import pytest

from docschema_mcp.models import (
    NormalizationOptions,
    NormalizationStrategy,
)
from docschema_mcp.normalization import (
    NormalizationAnalyzer,
    NormalizationEngine,
    find_reference_fields,
)
from docschema_mcp.registry import SchemaRegistry
from docschema_mcp.sampling import DocumentSampler
from docschema_mcp.schema_store import SchemaStore
from docschema_mcp.store import MemoryDocumentStore, StoreError

FULL_STRATEGY = NormalizationStrategy(
    add_missing_fields=True,
    use_default_values=True,
    remove_unknown_fields=True,
    update_existing_fields=True,
)


class FailingWriteStore(MemoryDocumentStore):
    """Store that rejects merges into one document."""

    def __init__(self, failing_id: str, data: dict[str, Any] | None = None) -> None:
        super().__init__(data)
        self.failing_id = failing_id

    def set_merge(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        if document_id == self.failing_id:
            raise StoreError("write rejected")
        super().set_merge(collection, document_id, data)


class CancellingStore(MemoryDocumentStore):
    """Store that sets a cancel event on the first write."""

    def __init__(self, event: threading.Event, data: dict[str, Any] | None = None) -> None:
        super().__init__(data)
        self.event = event

    def set_merge(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self.event.set()
        super().set_merge(collection, document_id, data)


class EmptyFreshStore(MemoryDocumentStore):
    """Store whose fresh reads come back empty."""

    def query_fresh(self, collection: str, limit: int) -> list[dict[str, Any]]:
        return []


def _materials() -> dict[str, dict[str, Any]]:
    return {
        "m1": {
            "nombre": "Cuerda",
            "tipo": "cuerda",
            "estado": "disponible",
            "cantidad": "7",
            "cantidadDisponible": 2,
            "createdAt": 1,
        },
        "m2": {"nombre": "Arnés", "estado": 5, "basura": True, "createdAt": 2},
        "m3": {"nombre": "Casco", "cantidad": "muchos", "createdAt": 3},
        "m4": {"nombre": "Pie de gato", "tipo": "varios", "createdAt": 4},
    }


def _build(store: MemoryDocumentStore) -> tuple[SchemaRegistry, NormalizationAnalyzer]:
    sampler = DocumentSampler(store)
    registry = SchemaRegistry(store, SchemaStore(store), sampler, sample_size=20)
    return registry, NormalizationAnalyzer(store, registry, sampler)


def _engine(store: MemoryDocumentStore, registry: SchemaRegistry) -> NormalizationEngine:
    return NormalizationEngine(store, registry, pause_seconds=0)


def _snapshot(store: MemoryDocumentStore, *collections: str) -> dict[str, list[dict[str, Any]]]:
    return {name: store.query(name) for name in collections}


class TestFindReferenceFields:
    """Tests for find_reference_fields function."""

    def test_most_fields_first_wins(self) -> None:
        """The first document with the most fields is the reference."""
        documents = [
            {"id": "1", "a": 1},
            {"id": "2", "a": 1, "b": 2},
            {"id": "3", "c": 1, "d": 2},
        ]

        assert find_reference_fields(documents) == ["a", "b"]

    def test_empty(self) -> None:
        """No documents means no reference fields."""
        assert find_reference_fields([]) == []


class TestAnalyzeNeeds:
    """Tests for NormalizationAnalyzer.analyze_needs method."""

    def test_reference_document_is_complete(self) -> None:
        """The richest document never needs reference fields."""
        store = MemoryDocumentStore(
            {
                "items": {
                    "d1": {"a": 1},
                    "d2": {"a": 1, "b": 2},
                    "d3": {"a": 1, "b": 2, "c": 3},
                }
            }
        )
        _, analyzer = _build(store)
        needs = {n.document_id: n for n in analyzer.analyze_needs("items")}

        assert needs["d3"].needs_update is False
        assert needs["d3"].missing_fields == []
        assert needs["d2"].missing_fields == ["c"]
        assert needs["d1"].missing_fields == ["b", "c"]
        assert needs["d1"].reference_field_count == 3
        assert needs["d1"].field_count == 1

    def test_unknown_field_becomes_known_once_custom(self) -> None:
        """A one-off field is unknown until declared as a custom field."""
        store = MemoryDocumentStore(
            {
                "items": {
                    "r1": {"a": 1, "b": 2},
                    "r2": {"a": 1, "b": 2},
                    "r3": {"a": 1, "junk": 5},
                }
            }
        )
        registry, analyzer = _build(store)
        needs = {n.document_id: n for n in analyzer.analyze_needs("items")}

        assert needs["r3"].unknown_fields == ["junk"]
        assert needs["r3"].missing_fields == ["b"]
        assert needs["r1"].unknown_fields == []

        registry.add_custom_field("items", "junk", {"type": "number"})
        needs = {n.document_id: n for n in analyzer.analyze_needs("items")}

        assert needs["r3"].unknown_fields == []
        assert needs["r3"].invalid_fields == []

    def test_required_and_invalid_fields(self) -> None:
        """Missing required fields and type mismatches are reported."""
        store = MemoryDocumentStore({"materials": _materials()})
        _, analyzer = _build(store)
        needs = {n.document_id: n for n in analyzer.analyze_needs("materials")}

        assert set(needs["m3"].missing_fields) >= {"tipo", "estado"}
        assert [f.to_dict() for f in needs["m2"].invalid_fields] == [
            {"field_name": "estado", "current_type": "number", "expected_type": "string"}
        ]
        # Numeric strings are compatible with number fields
        assert needs["m1"].invalid_fields == []
        assert [f.field_name for f in needs["m3"].invalid_fields] == ["cantidad"]

    def test_reserved_fields_never_unknown(self) -> None:
        """Reserved names are never reported as unknown."""
        store = MemoryDocumentStore(
            {"items": {"d1": {"a": 1, "b": 1}, "d2": {"a": 1, "updatedAt": 5}}}
        )
        _, analyzer = _build(store)
        needs = {n.document_id: n for n in analyzer.analyze_needs("items")}

        assert needs["d2"].unknown_fields == []

    def test_sample_limit(self) -> None:
        """At most sample_limit documents are analyzed."""
        store = MemoryDocumentStore({"items": {f"d{i}": {"a": i} for i in range(10)}})
        _, analyzer = _build(store)

        assert len(analyzer.analyze_needs("items", sample_limit=4)) == 4

    def test_falls_back_to_sampling(self) -> None:
        """An empty fresh read is retried through the sampler."""
        store = EmptyFreshStore({"items": {"d1": {"a": 1}, "d2": {"b": 1}}})
        _, analyzer = _build(store)
        needs = analyzer.analyze_needs("items")

        assert {n.document_id for n in needs} == {"d1", "d2"}

    def test_empty_collection(self) -> None:
        """An empty collection has no needs."""
        _, analyzer = _build(MemoryDocumentStore())

        assert analyzer.analyze_needs("items") == []


class TestNormalize:
    """Tests for NormalizationEngine.normalize method."""

    def test_adds_missing_fields_with_defaults(self) -> None:
        """Missing declared fields are added with their defaults."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize("materials", NormalizationOptions())

        document = store.get("materials", "m4")
        assert document is not None
        assert document["estado"] == ""
        assert document["cantidad"] == 1
        assert document["cantidadDisponible"] == 1
        # m1 already carries every base field
        assert result.documents_updated == 3
        assert result.documents_skipped == 1
        assert result.documents_processed == 4

    def test_empty_values_without_defaults(self) -> None:
        """Without defaults, missing fields get empty values."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        options = NormalizationOptions(
            strategy=NormalizationStrategy(use_default_values=False)
        )
        _engine(store, registry).normalize("materials", options)

        document = store.get("materials", "m4")
        assert document is not None
        assert document["cantidad"] == 0

    def test_removes_unknown_and_coerces(self) -> None:
        """The full strategy removes unknown fields and coerces types."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        options = NormalizationOptions(strategy=FULL_STRATEGY)
        result = _engine(store, registry).normalize("materials", options)
        changes = {c.document_id: c for c in result.changes}

        m1 = store.get("materials", "m1")
        m2 = store.get("materials", "m2")
        m3 = store.get("materials", "m3")
        assert m1 is not None and m2 is not None and m3 is not None
        assert m1["cantidad"] == 7
        assert m2["estado"] == "5"
        assert "basura" not in m2
        assert m2["createdAt"] == 2
        # Unconvertible values are left alone
        assert m3["cantidad"] == "muchos"
        assert changes["m2"].fields_removed == ["basura"]
        assert changes["m2"].fields_updated == ["estado"]
        assert "cantidad" not in changes["m3"].fields_updated

    def test_keeps_custom_field_added_by_another_registry(self) -> None:
        """Custom fields registered elsewhere after caching are not removed."""
        data = _materials()
        data["m2"]["color"] = "rojo"
        store = MemoryDocumentStore({"materials": data})
        registry, analyzer = _build(store)
        other, _ = _build(store)
        registry.get_schema("materials")

        other.add_custom_field("materials", "color", {"type": "string"})
        options = NormalizationOptions(strategy=FULL_STRATEGY)
        needs = {n.document_id: n for n in analyzer.analyze_needs("materials")}
        result = _engine(store, registry).normalize("materials", options)
        changes = {c.document_id: c for c in result.changes}

        m2 = store.get("materials", "m2")
        assert m2 is not None
        assert m2["color"] == "rojo"
        assert "basura" not in m2
        assert needs["m2"].unknown_fields == ["basura"]
        assert changes["m2"].fields_removed == ["basura"]


    def test_idempotent(self) -> None:
        """A second run with the same strategy changes nothing."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        engine = _engine(store, registry)
        options = NormalizationOptions(strategy=FULL_STRATEGY)

        first = engine.normalize("materials", options)
        second = engine.normalize("materials", options)

        assert first.documents_updated > 0
        assert second.documents_updated == 0
        assert second.documents_skipped == 4
        assert second.changes == []

    def test_dry_run_changes_nothing(self) -> None:
        """Dry runs report changes without touching any collection."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, analyzer = _build(store)
        before = _snapshot(store, "materials", "_backups", "_schemas")
        needs_before = [n.to_dict() for n in analyzer.analyze_needs("materials")]

        options = NormalizationOptions(
            strategy=FULL_STRATEGY, dry_run=True, backup_before_change=True
        )
        result = _engine(store, registry).normalize("materials", options)

        assert result.documents_updated == 4
        assert result.backup_id is None
        assert _snapshot(store, "materials", "_backups", "_schemas") == before
        assert [n.to_dict() for n in analyzer.analyze_needs("materials")] == needs_before

    def test_failure_is_isolated(self) -> None:
        """A failing document is reported and the others still update."""
        data = {f"d{i}": {"nombre": f"m{i}"} for i in range(1, 5)}
        store = FailingWriteStore("d3", {"materials": data})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize("materials", NormalizationOptions())

        assert result.errors == [{"document_id": "d3", "error": "write rejected"}]
        assert [c.document_id for c in result.changes] == ["d1", "d2", "d4"]
        assert result.documents_updated == 3
        assert result.documents_processed == 3
        d3 = store.get("materials", "d3")
        assert d3 == {"id": "d3", "nombre": "m3"}

    def test_backup_before_change(self) -> None:
        """The backup holds every document as it was before the run."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        original = store.query("materials")
        options = NormalizationOptions(backup_before_change=True)
        result = _engine(store, registry).normalize("materials", options)

        assert result.backup_id is not None
        assert result.backup_id.startswith("backup_materials_")
        backup = store.get("_backups", result.backup_id)
        assert backup is not None
        assert backup["collection_name"] == "materials"
        assert backup["document_count"] == 4
        assert backup["documents"] == original
        assert "backup_id" in result.to_dict()

    def test_no_backup_by_default(self) -> None:
        """No backup is written unless requested."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize("materials", NormalizationOptions())

        assert result.backup_id is None
        assert "backup_id" not in result.to_dict()
        assert store.query("_backups") == []

    def test_batches_cover_every_document(self) -> None:
        """Batching processes every document."""
        data = {f"d{i}": {"nombre": f"m{i}"} for i in range(7)}
        store = MemoryDocumentStore({"materials": data})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize(
            "materials", NormalizationOptions(batch_size=3)
        )

        assert result.total_documents == 7
        assert result.documents_updated == 7

    def test_cancel_before_start(self) -> None:
        """A preset cancel event stops the run before any write."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        event = threading.Event()
        event.set()
        result = _engine(store, registry).normalize(
            "materials", NormalizationOptions(), cancel_event=event
        )

        assert result.cancelled is True
        assert result.documents_processed == 0
        assert store.query("materials") == MemoryDocumentStore(
            {"materials": _materials()}
        ).query("materials")

    def test_cancel_between_batches(self) -> None:
        """Cancellation stops at the next batch boundary."""
        event = threading.Event()
        store = CancellingStore(event, {"materials": _materials()})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize(
            "materials", NormalizationOptions(batch_size=2), cancel_event=event
        )

        assert result.cancelled is True
        assert result.documents_processed == 2
        assert result.to_dict()["cancelled"] is True

    def test_empty_collection(self) -> None:
        """An empty collection yields an empty result."""
        store = MemoryDocumentStore()
        registry, _ = _build(store)
        result = _engine(store, registry).normalize("materials", NormalizationOptions())

        assert result.total_documents == 0
        assert result.changes == []

    @pytest.mark.parametrize("batch_size", [0, -5])
    def test_non_positive_batch_size(self, batch_size: int) -> None:
        """Non-positive batch sizes fall back to one."""
        store = MemoryDocumentStore({"materials": _materials()})
        registry, _ = _build(store)
        result = _engine(store, registry).normalize(
            "materials", NormalizationOptions(batch_size=batch_size)
        )

        assert result.documents_processed == 4
