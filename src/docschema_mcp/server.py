"""MCP Server implementation using FastMCP."""

import logging
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP

from docschema_mcp.context import get_analyzer, get_engine, get_registry
from docschema_mcp.models import NormalizationOptions, NormalizationStrategy
from docschema_mcp.registry import FieldConflictError, FieldNotFoundError
from docschema_mcp.settings import get_settings
from docschema_mcp.validation import FieldValidationError

logger = logging.getLogger(__name__)

mcp = FastMCP("docschema-mcp")


def _error_response(error: Exception) -> dict[str, Any]:
    if isinstance(error, FieldValidationError):
        return {"error": "Invalid custom field", "errors": error.errors}
    return {"error": str(error), "errors": [str(error)]}


@mcp.tool()
def list_collections() -> dict[str, Any]:
    """List collections available for schema administration.

    Returns:
        Dict with collections. Discovery is best-effort: compiled and
        commonly used collection names are checked.
    """
    return {"collections": get_registry().list_collections()}


@mcp.tool()
def get_schema(collection: str) -> dict[str, Any]:
    """Get the merged schema of a collection.

    Args:
        collection: Collection name.

    Returns:
        Dict with base_fields, custom_fields and detected_fields. Detected
        fields are inferred from a fresh sample of documents.
    """
    return get_registry().get_schema(collection).to_dict()


@mcp.tool()
def field_types() -> dict[str, Any]:
    """List the field types available for custom fields."""
    return {"types": get_registry().available_field_types()}


@mcp.tool()
def add_custom_field(
    collection: str,
    name: str,
    definition: dict[str, Any],
) -> dict[str, Any]:
    """Register a custom field for a collection.

    Args:
        collection: Collection name.
        name: Field name (letters, digits, underscores; 2-50 characters).
        definition: Dict with type (string, number, boolean, array, object,
            date), and optional required, default, description and
            validation (min, max, min_length, max_length, enum).

    Returns:
        Dict with the persisted field, or error and errors on rejection.
    """
    try:
        field = get_registry().add_custom_field(collection, name, definition)
    except (FieldValidationError, FieldConflictError) as e:
        return _error_response(e)
    return {"field": field.to_dict()}


@mcp.tool()
def remove_custom_field(collection: str, name: str) -> dict[str, Any]:
    """Remove a custom field from a collection.

    Args:
        collection: Collection name.
        name: Custom field name. Base fields cannot be removed.

    Returns:
        Dict with removed field name, or error on rejection.

    Notes:
        Documents keep their values; run normalize_collection with
        remove_unknown_fields to drop them.
    """
    try:
        get_registry().remove_custom_field(collection, name)
    except (FieldConflictError, FieldNotFoundError) as e:
        return _error_response(e)
    return {"removed": name}


@mcp.tool()
def promote_detected_field(
    collection: str,
    name: str,
    definition: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Turn a detected field into a custom field.

    Args:
        collection: Collection name.
        name: Detected field name.
        definition: Optional definition; defaults to the inferred one.

    Returns:
        Dict with the persisted field, or error and errors on rejection.
    """
    try:
        field = get_registry().promote_detected_field(collection, name, definition)
    except (FieldValidationError, FieldConflictError, FieldNotFoundError) as e:
        return _error_response(e)
    return {"field": field.to_dict()}


@mcp.tool()
def field_statistics(collection: str, limit: int = 100) -> dict[str, Any]:
    """Get coverage and observed types of top-level fields.

    Args:
        collection: Collection name.
        limit: Maximum number of documents to read.
    """
    return dict(get_registry().field_statistics(collection, limit=limit))


@mcp.tool()
def suggest_improvements(collection: str) -> dict[str, Any]:
    """Suggest schema improvements for a collection.

    Returns:
        Dict with missing_fields (detected but undeclared),
        inconsistent_types and low_coverage_fields.
    """
    return get_registry().suggest_improvements(collection)


@mcp.tool()
def analyze_normalization_needs(
    collection: str,
    limit: int | None = None,
    only_pending: bool = False,
) -> dict[str, Any]:
    """Analyze which documents need normalization.

    Args:
        collection: Collection name.
        limit: Maximum number of documents to analyze.
        only_pending: If True, only return documents that need an update.

    Returns:
        Dict with analyzed_count, needs_update_count and documents
        (missing_fields, unknown_fields, invalid_fields per document).
    """
    sample_limit = limit or get_settings().analysis_limit
    needs = get_analyzer().analyze_needs(collection, sample_limit)
    pending = [n for n in needs if n.needs_update]
    shown = pending if only_pending else needs
    return {
        "analyzed_count": len(needs),
        "needs_update_count": len(pending),
        "documents": [n.to_dict() for n in shown],
    }


@mcp.tool()
def normalize_collection(
    collection: str,
    add_missing_fields: bool = True,
    use_default_values: bool = True,
    remove_unknown_fields: bool = False,
    update_existing_fields: bool = False,
    batch_size: int | None = None,
    dry_run: bool = True,
    backup_before_change: bool = False,
) -> dict[str, Any]:
    """Bring documents of a collection into conformance with its schema.

    Args:
        collection: Collection name.
        add_missing_fields: Add declared fields missing from documents.
        use_default_values: Use configured defaults for added fields.
        remove_unknown_fields: Delete fields not declared as base or custom.
        update_existing_fields: Coerce values whose type does not match.
        batch_size: Documents per batch.
        dry_run: Only compute changes (default). Set False to apply them.
        backup_before_change: Snapshot documents before applying changes.

    Returns:
        Dict with document counts, per-document changes, errors and
        backup_id when a backup was taken.
    """
    options = NormalizationOptions(
        strategy=NormalizationStrategy(
            add_missing_fields=add_missing_fields,
            use_default_values=use_default_values,
            remove_unknown_fields=remove_unknown_fields,
            update_existing_fields=update_existing_fields,
        ),
        batch_size=batch_size or get_settings().batch_size,
        dry_run=dry_run,
        backup_before_change=backup_before_change,
    )
    return get_engine().normalize(collection, options).to_dict()


def main() -> None:
    """Entry point for the MCP server."""
    settings = get_settings()
    logging.basicConfig(
        stream=sys.stderr,
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Starting docschema-mcp with %s backend", settings.backend)
    mcp.run()


if __name__ == "__main__":
    main()
