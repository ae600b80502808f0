"""Data model for collection schemas and normalization runs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    """Declared type of a schema field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    DATE = "date"


@dataclass
class FieldValidation:
    """Optional constraints attached to a field definition."""

    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    enum: list[str] | None = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.min, self.max, self.min_length, self.max_length, self.enum)
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key in ("min", "max", "min_length", "max_length", "enum"):
            value = getattr(self, key)
            if value is not None:
                data[key] = list(value) if key == "enum" else value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldValidation":
        enum = data.get("enum")
        return cls(
            min=data.get("min"),
            max=data.get("max"),
            min_length=data.get("min_length"),
            max_length=data.get("max_length"),
            enum=list(enum) if enum is not None else None,
        )


@dataclass
class FieldDefinition:
    """Type and constraints of a single field."""

    type: FieldType
    required: bool = False
    default: Any = None
    description: str | None = None
    validation: FieldValidation | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict, omitting unset optional values."""
        data: dict[str, Any] = {"type": self.type.value, "required": self.required}
        if self.default is not None:
            data["default"] = self.default
        if self.description is not None:
            data["description"] = self.description
        if self.validation is not None and not self.validation.is_empty():
            data["validation"] = self.validation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldDefinition":
        """Build a definition from a plain dict.

        Raises:
            ValueError: If the type is not a supported field type.
        """
        validation = data.get("validation")
        return cls(
            type=FieldType(data["type"]),
            required=bool(data.get("required", False)),
            default=data.get("default"),
            description=data.get("description"),
            validation=FieldValidation.from_dict(validation) if validation else None,
        )


@dataclass
class SchemaField:
    """A named field definition."""

    name: str
    definition: FieldDefinition
    is_custom: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "definition": self.definition.to_dict(),
            "is_custom": self.is_custom,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchemaField":
        return cls(
            name=data["name"],
            definition=FieldDefinition.from_dict(data["definition"]),
            is_custom=bool(data.get("is_custom", False)),
        )


@dataclass
class CollectionSchema:
    """Merged schema of a collection: base, custom and detected fields."""

    collection_name: str
    type_name: str
    base_fields: list[SchemaField] = field(default_factory=list)
    custom_fields: list[SchemaField] = field(default_factory=list)
    detected_fields: list[SchemaField] = field(default_factory=list)
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def declared_fields(self) -> list[SchemaField]:
        """Base and custom fields, in that order."""
        return [*self.base_fields, *self.custom_fields]

    def known_field_names(self) -> set[str]:
        """Names declared by base or custom fields."""
        return {f.name for f in self.declared_fields}

    def find_field(self, name: str) -> SchemaField | None:
        """Find a declared (base or custom) field by name."""
        for schema_field in self.declared_fields:
            if schema_field.name == name:
                return schema_field
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection_name": self.collection_name,
            "type_name": self.type_name,
            "base_fields": [f.to_dict() for f in self.base_fields],
            "custom_fields": [f.to_dict() for f in self.custom_fields],
            "detected_fields": [f.to_dict() for f in self.detected_fields],
            "last_modified": self.last_modified.isoformat(),
        }


@dataclass
class FieldAnalysisResult:
    """Statistics gathered for one field path during a sampling run."""

    name: str
    types: set[str] = field(default_factory=set)
    examples: list[str] = field(default_factory=list)
    document_count: int = 0
    null_count: int = 0
    document_ids: list[str] = field(default_factory=list)
    min_string_length: int | None = None
    max_string_length: int | None = None

    def record_string_length(self, length: int) -> None:
        if self.min_string_length is None or length < self.min_string_length:
            self.min_string_length = length
        if self.max_string_length is None or length > self.max_string_length:
            self.max_string_length = length


@dataclass
class InvalidField:
    """A present field whose value does not match its declared type."""

    field_name: str
    current_type: str
    expected_type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "field_name": self.field_name,
            "current_type": self.current_type,
            "expected_type": self.expected_type,
        }


@dataclass
class DocumentNormalizationNeeds:
    """What a single document needs to conform to its collection schema."""

    document_id: str
    missing_fields: list[str] = field(default_factory=list)
    unknown_fields: list[str] = field(default_factory=list)
    invalid_fields: list[InvalidField] = field(default_factory=list)
    needs_update: bool = False
    field_count: int = 0
    reference_field_count: int = 0
    missing_from_reference: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "missing_fields": list(self.missing_fields),
            "unknown_fields": list(self.unknown_fields),
            "invalid_fields": [f.to_dict() for f in self.invalid_fields],
            "needs_update": self.needs_update,
            "field_count": self.field_count,
            "reference_field_count": self.reference_field_count,
            "missing_from_reference": list(self.missing_from_reference),
        }


@dataclass
class NormalizationStrategy:
    """Which kinds of changes a normalization run may apply."""

    add_missing_fields: bool = True
    use_default_values: bool = True
    remove_unknown_fields: bool = False
    update_existing_fields: bool = False


@dataclass
class NormalizationOptions:
    """Options for a normalization run."""

    strategy: NormalizationStrategy = field(default_factory=NormalizationStrategy)
    batch_size: int = 50
    dry_run: bool = False
    backup_before_change: bool = False


@dataclass
class DocumentChanges:
    """Fields added, removed and updated on one document."""

    document_id: str
    fields_added: list[str] = field(default_factory=list)
    fields_removed: list[str] = field(default_factory=list)
    fields_updated: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.fields_added or self.fields_removed or self.fields_updated)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "fields_added": list(self.fields_added),
            "fields_removed": list(self.fields_removed),
            "fields_updated": list(self.fields_updated),
        }


@dataclass
class NormalizationResult:
    """Record of what a normalization run did."""

    total_documents: int = 0
    documents_processed: int = 0
    documents_updated: int = 0
    documents_skipped: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    changes: list[DocumentChanges] = field(default_factory=list)
    backup_id: str | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_documents": self.total_documents,
            "documents_processed": self.documents_processed,
            "documents_updated": self.documents_updated,
            "documents_skipped": self.documents_skipped,
            "errors": [dict(e) for e in self.errors],
            "changes": [c.to_dict() for c in self.changes],
            "cancelled": self.cancelled,
        }
        if self.backup_id is not None:
            data["backup_id"] = self.backup_id
        return data
