"""Collection schema model and custom field administration."""

import logging
from collections.abc import Mapping
from typing import Any, TypedDict

from docschema_mcp.base_schemas import BASE_COLLECTIONS, get_base_fields, get_type_name
from docschema_mcp.inference import detect_value_type
from docschema_mcp.models import CollectionSchema, FieldDefinition, FieldType, SchemaField
from docschema_mcp.sampling import DocumentSampler
from docschema_mcp.schema import infer_schema_fields, list_field_names
from docschema_mcp.schema_store import SchemaCache, SchemaStore
from docschema_mcp.store import DocumentStore
from docschema_mcp.validation import check_custom_field

logger = logging.getLogger(__name__)

# Documents read by the field-name listing fallback
FALLBACK_LISTING_LIMIT = 20

# Coverage percentage below which a field is reported as low coverage
LOW_COVERAGE_THRESHOLD = 50

# Collections checked by list_collections() besides the compiled ones
COMMON_COLLECTIONS = [
    "usuarios",
    "actividades",
    "prestamos",
    "material_deportivo",
    "materials",
    "notificaciones",
    "mensajes",
    "conversaciones",
    "weatherHistory",
    "system",
    "googleApis",
]

# Collections hidden from list_collections()
HIDDEN_COLLECTIONS = frozenset({"configuracion"})

FIELD_TYPE_LABELS: dict[FieldType, tuple[str, str]] = {
    FieldType.STRING: ("Text", "Text string"),
    FieldType.NUMBER: ("Number", "Numeric value"),
    FieldType.BOOLEAN: ("Boolean", "True or false"),
    FieldType.ARRAY: ("Array", "List of items"),
    FieldType.OBJECT: ("Object", "Nested object"),
    FieldType.DATE: ("Date", "Date and time"),
}


class FieldConflictError(ValueError):
    """Raised when a custom field collides with an existing or base field."""


class FieldNotFoundError(LookupError):
    """Raised when a custom or detected field does not exist."""


class FieldCoverage(TypedDict):
    """How many sampled documents carry a field."""

    count: int
    percentage: int


class FieldStatistics(TypedDict):
    """Coverage and observed types per top-level field."""

    total_documents: int
    field_coverage: dict[str, FieldCoverage]
    data_types: dict[str, list[str]]


class SchemaRegistry:
    """Merged collection schemas: base, custom and detected fields."""

    def __init__(
        self,
        store: DocumentStore,
        schema_store: SchemaStore,
        sampler: DocumentSampler,
        sample_size: int = 50,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Document store holding the collections.
            schema_store: Persistence of custom field definitions.
            sampler: Sampler used to detect undeclared fields.
            sample_size: Document budget for field detection.
        """
        self._store = store
        self._schema_store = schema_store
        self._sampler = sampler
        self._sample_size = sample_size
        self._cache = SchemaCache()

    @property
    def cache(self) -> SchemaCache:
        return self._cache

    def get_schema(self, collection: str, fresh: bool = False) -> CollectionSchema:
        """Get the merged schema of a collection.

        Detected fields are recomputed from a fresh sample on every call.
        Sampling problems degrade to a plain field-name listing and never
        fail the call.

        Args:
            collection: Collection name.
            fresh: Reload custom fields from the schema store instead of the
                cache, picking up edits made by other processes.

        Returns:
            Schema with base, custom and detected fields.

        Raises:
            StoreError: If the custom field definitions cannot be read.
        """
        if fresh:
            self._cache.invalidate(collection)
        base_fields = get_base_fields(collection)
        custom_fields = self._cache.get(collection, self._schema_store.load_custom_fields)
        known = {f.name for f in base_fields} | {f.name for f in custom_fields}

        schema = CollectionSchema(
            collection_name=collection,
            type_name=get_type_name(collection),
            base_fields=base_fields,
            custom_fields=custom_fields,
            detected_fields=self._detect_fields(collection, known),
        )
        logger.debug(
            "Schema for %s: %d base, %d custom, %d detected",
            collection,
            len(schema.base_fields),
            len(schema.custom_fields),
            len(schema.detected_fields),
        )
        return schema

    def _detect_fields(self, collection: str, known: set[str]) -> list[SchemaField]:
        try:
            documents = self._sampler.sample(collection, self._sample_size)
            if not documents:
                logger.info("Insufficient data to detect fields in %s", collection)
                return []
            return [f for f in infer_schema_fields(documents) if f.name not in known]
        except Exception as e:
            logger.warning(
                "Field inference failed for %s, falling back to field listing: %s",
                collection,
                e,
            )

        try:
            documents = self._store.query(collection, limit=FALLBACK_LISTING_LIMIT)
        except Exception as e:
            logger.warning("Field listing failed for %s: %s", collection, e)
            return []

        return [
            SchemaField(
                name=name,
                definition=FieldDefinition(
                    type=FieldType.STRING,
                    required=False,
                    description="Detected by field name listing",
                ),
            )
            for name in list_field_names(documents)
            if name not in known
        ]

    def add_custom_field(
        self,
        collection: str,
        name: str,
        definition: FieldDefinition | Mapping[str, Any],
    ) -> SchemaField:
        """Register a custom field for a collection.

        Args:
            collection: Collection name.
            name: Field name.
            definition: Field definition or its dict form.

        Returns:
            The persisted custom field.

        Raises:
            FieldValidationError: If the name or definition is invalid.
            FieldConflictError: If a base or custom field has the same name.
            StoreError: If the schema store cannot be read or written.
        """
        check_custom_field(name, definition)
        if not isinstance(definition, FieldDefinition):
            definition = FieldDefinition.from_dict(dict(definition))

        base_names = {f.name for f in get_base_fields(collection)}
        custom_fields = self._schema_store.load_custom_fields(collection)
        if name in base_names or any(f.name == name for f in custom_fields):
            raise FieldConflictError(f"Field '{name}' already exists in '{collection}'")

        new_field = SchemaField(name=name, definition=definition, is_custom=True)
        self._schema_store.save_custom_fields(collection, [*custom_fields, new_field])
        self._cache.invalidate(collection)
        logger.info("Added custom field %s to %s", name, collection)
        return new_field

    def remove_custom_field(self, collection: str, name: str) -> None:
        """Remove a custom field from a collection.

        Raises:
            FieldConflictError: If the name is a base field.
            FieldNotFoundError: If no custom field has that name.
            StoreError: If the schema store cannot be read or written.
        """
        if any(f.name == name for f in get_base_fields(collection)):
            raise FieldConflictError(f"Cannot remove base field '{name}'")

        custom_fields = self._schema_store.load_custom_fields(collection)
        remaining = [f for f in custom_fields if f.name != name]
        if len(remaining) == len(custom_fields):
            raise FieldNotFoundError(
                f"Custom field '{name}' does not exist in '{collection}'"
            )

        self._schema_store.save_custom_fields(collection, remaining)
        self._cache.invalidate(collection)
        logger.info("Removed custom field %s from %s", name, collection)

    def promote_detected_field(
        self,
        collection: str,
        name: str,
        definition: FieldDefinition | Mapping[str, Any] | None = None,
    ) -> SchemaField:
        """Turn a detected field into a custom field.

        Args:
            collection: Collection name.
            name: Detected field name.
            definition: Definition to persist; defaults to the inferred one.

        Raises:
            FieldNotFoundError: If the field is not currently detected.
        """
        if definition is None:
            schema = self.get_schema(collection)
            detected = next((f for f in schema.detected_fields if f.name == name), None)
            if detected is None:
                raise FieldNotFoundError(
                    f"Field '{name}' is not a detected field of '{collection}'"
                )
            definition = detected.definition
        return self.add_custom_field(collection, name, definition)

    def field_statistics(self, collection: str, limit: int = 100) -> FieldStatistics:
        """Get coverage and observed types of top-level fields.

        Returns:
            Statistics, empty if the collection cannot be read.
        """
        try:
            documents = self._store.query(collection, limit=limit)
        except Exception as e:
            logger.warning("Could not read %s for statistics: %s", collection, e)
            documents = []

        counts: dict[str, int] = {}
        types: dict[str, list[str]] = {}
        for document in documents:
            for key, value in document.items():
                if key == "id":
                    continue
                counts[key] = counts.get(key, 0) + 1
                value_type = detect_value_type(value)
                if value_type not in types.setdefault(key, []):
                    types[key].append(value_type)

        total = len(documents)
        return FieldStatistics(
            total_documents=total,
            field_coverage={
                name: FieldCoverage(count=count, percentage=round(count / total * 100))
                for name, count in counts.items()
            },
            data_types=types,
        )

    def suggest_improvements(self, collection: str) -> dict[str, list[dict[str, Any]]]:
        """Suggest schema improvements from observed documents.

        Returns:
            Dict with undeclared detected fields, fields observed with
            several types and fields present in under half the documents.
        """
        schema = self.get_schema(collection)
        statistics = self.field_statistics(collection)

        inconsistent_types = []
        for name, observed in statistics["data_types"].items():
            observed = [t for t in observed if t not in ("null", "undefined")]
            if len(observed) > 1:
                inconsistent_types.append(
                    {
                        "field_name": name,
                        "detected_types": observed,
                        "suggested_type": "string" if "string" in observed else observed[0],
                    }
                )

        low_coverage = [
            {"field_name": name, "coverage": coverage["percentage"]}
            for name, coverage in statistics["field_coverage"].items()
            if coverage["percentage"] < LOW_COVERAGE_THRESHOLD
        ]

        return {
            "missing_fields": [f.to_dict() for f in schema.detected_fields],
            "inconsistent_types": inconsistent_types,
            "low_coverage_fields": low_coverage,
        }

    def list_collections(self) -> list[str]:
        """List collections worth administering.

        The store has no catalog operation, so this checks compiled and
        commonly used collection names and keeps those holding documents.
        Collections that exist under other names are not found.
        """
        found = set(BASE_COLLECTIONS)
        for name in COMMON_COLLECTIONS:
            try:
                if self._store.query(name, limit=1):
                    found.add(name)
            except Exception as e:
                logger.debug("Collection %s not accessible: %s", name, e)

        return sorted(
            name
            for name in found
            if not name.startswith("_") and name not in HIDDEN_COLLECTIONS
        )

    @staticmethod
    def available_field_types() -> list[dict[str, str]]:
        """Describe the field types operators can choose from."""
        return [
            {"value": field_type.value, "label": label, "description": description}
            for field_type, (label, description) in FIELD_TYPE_LABELS.items()
        ]
