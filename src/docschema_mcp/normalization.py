"""Document normalization: needs analysis and batched conformance updates."""

import copy
import logging
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from docschema_mcp.inference import (
    coerce_value,
    detect_value_type,
    empty_value,
    is_type_compatible,
    matches_type,
)
from docschema_mcp.models import (
    CollectionSchema,
    DocumentChanges,
    DocumentNormalizationNeeds,
    FieldDefinition,
    InvalidField,
    NormalizationOptions,
    NormalizationResult,
)
from docschema_mcp.registry import SchemaRegistry
from docschema_mcp.sampling import DocumentSampler
from docschema_mcp.store import DELETE_FIELD, DocumentStore
from docschema_mcp.validation import is_reserved_name

logger = logging.getLogger(__name__)

DEFAULT_BACKUPS_COLLECTION = "_backups"


def _document_fields(document: dict[str, Any]) -> list[str]:
    return [key for key in document if key != "id"]


def find_reference_fields(documents: list[dict[str, Any]]) -> list[str]:
    """Get the fields of the document with the most fields.

    The first document wins ties. The reference stands in for the most
    complete shape currently in use.
    """
    reference: list[str] = []
    for document in documents:
        fields = _document_fields(document)
        if len(fields) > len(reference):
            reference = fields
    return reference


def analyze_documents_for_normalization(
    documents: list[dict[str, Any]], schema: CollectionSchema
) -> list[DocumentNormalizationNeeds]:
    """Work out what each document needs to conform to the schema.

    A detected field seen in only one of several analyzed documents is
    not treated as known, so one-off junk fields are reported as unknown
    unless they belong to the reference document.

    Args:
        documents: Documents to analyze.
        schema: Merged collection schema.

    Returns:
        One entry per document, in input order.
    """
    required = [f.name for f in schema.declared_fields if f.definition.required]
    reference = find_reference_fields(documents)
    reference_set = set(reference)

    occurrences = Counter(name for doc in documents for name in _document_fields(doc))
    detected = {f.name for f in schema.detected_fields}
    known = schema.known_field_names() | {
        name
        for name in detected
        if len(documents) == 1 or occurrences.get(name, 0) > 1
    }

    logger.debug("Reference document has %d field(s)", len(reference))

    results: list[DocumentNormalizationNeeds] = []
    for document in documents:
        fields = _document_fields(document)
        present = set(fields)

        missing_from_reference = [name for name in reference if name not in present]
        missing = list(
            dict.fromkeys(
                [name for name in required if name not in present] + missing_from_reference
            )
        )
        unknown = [
            name
            for name in fields
            if name not in known
            and name not in reference_set
            and not is_reserved_name(name)
        ]

        invalid: list[InvalidField] = []
        for name in fields:
            declared = schema.find_field(name)
            value = document[name]
            if declared is None or value is None:
                continue
            if not is_type_compatible(value, declared.definition.type):
                invalid.append(
                    InvalidField(
                        field_name=name,
                        current_type=detect_value_type(value),
                        expected_type=declared.definition.type.value,
                    )
                )

        results.append(
            DocumentNormalizationNeeds(
                document_id=str(document.get("id")),
                missing_fields=missing,
                unknown_fields=unknown,
                invalid_fields=invalid,
                needs_update=bool(missing or unknown or invalid),
                field_count=len(fields),
                reference_field_count=len(reference),
                missing_from_reference=missing_from_reference,
            )
        )
    return results


class NormalizationAnalyzer:
    """Read-only analysis of which documents need normalization."""

    def __init__(
        self,
        store: DocumentStore,
        registry: SchemaRegistry,
        sampler: DocumentSampler,
    ) -> None:
        self._store = store
        self._registry = registry
        self._sampler = sampler

    def analyze_needs(
        self, collection: str, sample_limit: int = 100
    ) -> list[DocumentNormalizationNeeds]:
        """Analyze a batch of documents against the collection schema.

        Args:
            collection: Collection name.
            sample_limit: Maximum number of documents to analyze.

        Returns:
            Needs per analyzed document; empty if no documents could be read.

        Raises:
            StoreError: If the custom field definitions cannot be read.
        """
        schema = self._registry.get_schema(collection, fresh=True)
        documents = self.load_documents(collection, sample_limit)
        if not documents:
            logger.warning("No documents could be read from %s", collection)
            return []

        needs = analyze_documents_for_normalization(documents, schema)
        logger.info(
            "%d of %d document(s) in %s need normalization",
            sum(1 for n in needs if n.needs_update),
            len(needs),
            collection,
        )
        return needs

    def load_documents(self, collection: str, limit: int) -> list[dict[str, Any]]:
        """Read documents fresh from the source, falling back to sampling.

        A store that reports no documents on one path but some on another
        has a consistency or permissions problem, so both are tried.
        """
        try:
            documents = self._store.query_fresh(collection, limit)
        except Exception as e:
            logger.warning("Fresh read of %s failed: %s", collection, e)
            documents = []

        if documents:
            return documents

        documents = self._sampler.sample(collection, limit)
        if documents:
            logger.warning(
                "Fresh read of %s returned nothing but sampling found %d document(s); "
                "check store consistency or permissions",
                collection,
                len(documents),
            )
        return documents[:limit]


class NormalizationEngine:
    """Apply normalization strategies to a collection in batches."""

    def __init__(
        self,
        store: DocumentStore,
        registry: SchemaRegistry,
        fetch_limit: int = 1000,
        pause_seconds: float = 0.1,
        backups_collection: str = DEFAULT_BACKUPS_COLLECTION,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Document store to normalize.
            registry: Source of collection schemas.
            fetch_limit: Maximum documents processed per run.
            pause_seconds: Pause between batches.
            backups_collection: Collection receiving backup snapshots.
        """
        self._store = store
        self._registry = registry
        self._fetch_limit = fetch_limit
        self._pause_seconds = pause_seconds
        self._backups_collection = backups_collection

    def normalize(
        self,
        collection: str,
        options: NormalizationOptions,
        cancel_event: threading.Event | None = None,
    ) -> NormalizationResult:
        """Normalize documents of a collection.

        Errors on individual documents are collected in the result and
        never abort the run. Cancellation is honored between batches.
        Custom fields are reloaded from the schema store first, so fields
        registered by another process are never removed as unknown.

        Args:
            collection: Collection name.
            options: Strategy, batch size, dry run and backup options.
            cancel_event: Optional event; when set, remaining batches are skipped.

        Returns:
            Aggregate result of the run.

        Raises:
            StoreError: If documents cannot be fetched or the backup fails.
        """
        schema = self._registry.get_schema(collection, fresh=True)
        documents = self._store.query(collection, limit=self._fetch_limit)
        result = NormalizationResult(total_documents=len(documents))

        logger.info(
            "Normalizing %d document(s) in %s (dry_run=%s)",
            len(documents),
            collection,
            options.dry_run,
        )

        if options.backup_before_change and not options.dry_run:
            result.backup_id = self.create_backup(collection, documents)

        batch_size = max(1, options.batch_size)
        for start in range(0, len(documents), batch_size):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.warning(
                    "Normalization of %s cancelled after %d document(s)",
                    collection,
                    start,
                )
                break

            for document in documents[start : start + batch_size]:
                document_id = str(document.get("id"))
                try:
                    changes = self.normalize_document(collection, document, schema, options)
                except Exception as e:
                    result.errors.append(
                        {"document_id": document_id, "error": str(e) or type(e).__name__}
                    )
                    logger.error("Failed to normalize %s/%s: %s", collection, document_id, e)
                    continue

                result.documents_processed += 1
                if changes.has_changes:
                    result.documents_updated += 1
                    result.changes.append(changes)
                else:
                    result.documents_skipped += 1

            if start + batch_size < len(documents):
                self._pause(cancel_event)

        logger.info(
            "Normalization of %s done: %d updated, %d skipped, %d error(s)",
            collection,
            result.documents_updated,
            result.documents_skipped,
            len(result.errors),
        )
        return result

    def _pause(self, cancel_event: threading.Event | None) -> None:
        if self._pause_seconds <= 0:
            return
        if cancel_event is not None:
            cancel_event.wait(self._pause_seconds)
        else:
            time.sleep(self._pause_seconds)

    def normalize_document(
        self,
        collection: str,
        document: dict[str, Any],
        schema: CollectionSchema,
        options: NormalizationOptions,
    ) -> DocumentChanges:
        """Compute and, outside dry run, apply the update for one document.

        The update is written as a merge without schema validation, since
        its purpose is to fix documents that do not conform yet.
        """
        strategy = options.strategy
        document_id = str(document.get("id"))
        changes = DocumentChanges(document_id=document_id)
        updates: dict[str, Any] = {}
        fields = _document_fields(document)
        present = set(fields)

        if strategy.add_missing_fields:
            for schema_field in schema.declared_fields:
                if schema_field.name not in present:
                    updates[schema_field.name] = initial_value(
                        schema_field.definition, strategy.use_default_values
                    )
                    changes.fields_added.append(schema_field.name)

        if strategy.remove_unknown_fields:
            known = schema.known_field_names()
            for name in fields:
                if name not in known and not is_reserved_name(name):
                    updates[name] = DELETE_FIELD
                    changes.fields_removed.append(name)

        if strategy.update_existing_fields:
            for name in fields:
                declared = schema.find_field(name)
                value = document[name]
                if declared is None or value is None:
                    continue
                if matches_type(value, declared.definition.type):
                    continue
                converted = coerce_value(value, declared.definition.type)
                if type(converted) is not type(value) or converted != value:
                    updates[name] = converted
                    changes.fields_updated.append(name)

        if updates and not options.dry_run:
            self._store.set_merge(collection, document_id, updates)
        return changes

    def create_backup(self, collection: str, documents: list[dict[str, Any]]) -> str:
        """Snapshot documents into the backups collection.

        Returns:
            Identifier of the backup record.
        """
        backup_id = f"backup_{collection}_{int(time.time() * 1000)}"
        self._store.set(
            self._backups_collection,
            backup_id,
            {
                "collection_name": collection,
                "timestamp": datetime.now(timezone.utc),
                "document_count": len(documents),
                "documents": documents,
            },
        )
        logger.info("Backed up %d document(s) of %s as %s", len(documents), collection, backup_id)
        return backup_id


def initial_value(definition: FieldDefinition, use_default_values: bool) -> Any:
    """Value given to a field added by normalization."""
    if use_default_values and definition.default is not None:
        return copy.deepcopy(definition.default)
    return empty_value(definition.type)
