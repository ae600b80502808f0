"""Schema inference module."""

from collections.abc import Mapping
from typing import Any

from docschema_mcp.inference import detect_value_type, serialize_example
from docschema_mcp.models import (
    FieldAnalysisResult,
    FieldDefinition,
    FieldType,
    FieldValidation,
    SchemaField,
)

# Maximum number of path segments visited in nested objects
MAX_DEPTH = 3

# Maximum number of example values kept per field
MAX_EXAMPLES = 5

# Observed types in precedence order, most specific first
TYPE_PRECEDENCE: list[tuple[tuple[str, ...], FieldType]] = [
    (("number",), FieldType.NUMBER),
    (("boolean",), FieldType.BOOLEAN),
    (("array",), FieldType.ARRAY),
    (("date", "timestamp"), FieldType.DATE),
    (("object",), FieldType.OBJECT),
]


def analyze_document_structure(
    document: Mapping[str, Any],
    stats: dict[str, FieldAnalysisResult],
    document_id: str,
    prefix: str = "",
) -> None:
    """Accumulate per-field statistics for one document.

    Nested objects are walked with dotted paths, down to MAX_DEPTH segments.

    Args:
        document: Document (or nested object) to walk.
        stats: Field statistics table, mutated in place.
        document_id: Identifier of the document being walked.
        prefix: Dotted path of the enclosing object.
    """
    depth = prefix.count(".") + 2 if prefix else 1

    for key, value in document.items():
        if not prefix and key == "id":
            continue
        path = f"{prefix}.{key}" if prefix else str(key)

        field_stats = stats.get(path)
        if field_stats is None:
            field_stats = stats[path] = FieldAnalysisResult(name=path)
        field_stats.document_count += 1
        field_stats.document_ids.append(document_id)

        value_type = detect_value_type(value)
        if value_type in ("null", "undefined"):
            field_stats.null_count += 1
            continue

        field_stats.types.add(value_type)
        if value_type == "string":
            field_stats.record_string_length(len(value))
        if len(field_stats.examples) < MAX_EXAMPLES:
            field_stats.examples.append(serialize_example(value))

        if value_type == "object" and depth < MAX_DEPTH:
            analyze_document_structure(value, stats, document_id, path)


def analyze_documents(
    documents: list[dict[str, Any]],
) -> dict[str, FieldAnalysisResult]:
    """Walk a sample of documents into a field statistics table."""
    stats: dict[str, FieldAnalysisResult] = {}
    for index, document in enumerate(documents):
        document_id = str(document.get("id", index))
        analyze_document_structure(document, stats, document_id)
    return stats


def primary_type(types: set[str]) -> FieldType:
    """Choose the declared type for a set of observed types."""
    for observed, field_type in TYPE_PRECEDENCE:
        if any(t in types for t in observed):
            return field_type
    return FieldType.STRING


def generate_validation(
    stats: FieldAnalysisResult, field_type: FieldType
) -> FieldValidation | None:
    """Derive validation bounds from observed values.

    Returns:
        Validation with length bounds for strings or value bounds for
        numbers, or None if nothing could be derived.
    """
    if not stats.examples:
        return None

    if field_type is FieldType.STRING:
        # Full lengths; examples are truncated
        if stats.min_string_length is None:
            return None
        return FieldValidation(
            min_length=stats.min_string_length, max_length=stats.max_string_length
        )

    if field_type is FieldType.NUMBER:
        numbers: list[float] = []
        for example in stats.examples:
            try:
                numbers.append(float(example))
            except ValueError:
                continue
        if numbers:
            return FieldValidation(min=min(numbers), max=max(numbers))

    return None


def infer_field_definition(
    stats: FieldAnalysisResult, total_documents: int
) -> FieldDefinition:
    """Infer a field definition from sampling statistics.

    Args:
        stats: Statistics gathered for the field.
        total_documents: Number of documents in the sample.

    Returns:
        Inferred definition. The field is optional if a null was seen or
        some sampled documents lack it.
    """
    field_type = primary_type(stats.types)
    is_optional = stats.null_count > 0 or stats.document_count < total_documents

    coverage = stats.document_count / total_documents * 100 if total_documents else 0.0
    description = (
        f"Detected automatically. Coverage: {coverage:.1f}% "
        f"({stats.document_count} docs)."
    )
    if stats.examples:
        description += f" Examples: {', '.join(stats.examples[:2])}"

    return FieldDefinition(
        type=field_type,
        required=not is_optional,
        description=description,
        validation=generate_validation(stats, field_type),
    )


def infer_schema_fields(documents: list[dict[str, Any]]) -> list[SchemaField]:
    """Infer schema fields from a sample of documents.

    Args:
        documents: Sampled documents.

    Returns:
        One detected field per observed path, sorted by name.
    """
    stats = analyze_documents(documents)
    total = len(documents)
    return [
        SchemaField(name=name, definition=infer_field_definition(field_stats, total))
        for name, field_stats in sorted(stats.items())
    ]


def list_field_names(documents: list[dict[str, Any]]) -> list[str]:
    """List top-level field names present in any document, without inference."""
    names: set[str] = set()
    for document in documents:
        names.update(key for key in document if key != "id")
    return sorted(names)
