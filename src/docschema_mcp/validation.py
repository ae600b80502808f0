"""Validation rules for custom field names and definitions."""

import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from docschema_mcp.inference import is_timestamp
from docschema_mcp.models import FieldDefinition, FieldType

FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MIN_FIELD_NAME_LENGTH = 2
MAX_FIELD_NAME_LENGTH = 50

RESERVED_FIELD_NAMES = frozenset({"id", "createdAt", "updatedAt", "__name__"})


class FieldValidationError(ValueError):
    """Raised when a field name or definition is invalid.

    Carries every problem found, not just the first.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def is_reserved_name(name: str) -> bool:
    """Check for reserved names and store-internal __markers__."""
    return name in RESERVED_FIELD_NAMES or (
        len(name) > 4 and name.startswith("__") and name.endswith("__")
    )


def validate_field_name(name: str, existing: Iterable[str] = ()) -> list[str]:
    """Validate a custom field name.

    Args:
        name: Proposed field name.
        existing: Names already known in the collection.

    Returns:
        List of error messages, empty if the name is valid.
    """
    errors: list[str] = []
    if not FIELD_NAME_PATTERN.match(name):
        errors.append(
            f"Field name '{name}' must start with a letter or underscore and "
            "contain only letters, digits and underscores"
        )
    if not MIN_FIELD_NAME_LENGTH <= len(name) <= MAX_FIELD_NAME_LENGTH:
        errors.append(
            f"Field name must be {MIN_FIELD_NAME_LENGTH}-{MAX_FIELD_NAME_LENGTH} "
            f"characters long (got {len(name)})"
        )
    if is_reserved_name(name):
        errors.append(f"Field name '{name}' is reserved")
    if name in set(existing):
        errors.append(f"Field '{name}' already exists")
    return errors


def _matches_runtime_type(value: Any, field_type: FieldType) -> bool:
    if field_type is FieldType.STRING:
        return isinstance(value, str)
    if field_type is FieldType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type is FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type is FieldType.ARRAY:
        return isinstance(value, list)
    if field_type is FieldType.OBJECT:
        return isinstance(value, Mapping)
    return isinstance(value, date) or is_timestamp(value)


def _checked_number(value: Any, label: str, errors: list[str]) -> float | None:
    """Return a numeric bound, or record an error and return None."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{label} must be a number")
        return None
    return value


def _checked_length(value: Any, label: str, errors: list[str]) -> int | None:
    """Return a length bound, or record an error and return None."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{label} must be an integer")
        return None
    if value < 0:
        errors.append(f"{label} must not be negative")
        return None
    return value


def validate_field_definition(definition: FieldDefinition | Mapping[str, Any]) -> list[str]:
    """Validate a field definition.

    Accepts either a FieldDefinition or its raw dict form, so an invalid
    type can be reported alongside every other problem.

    Returns:
        List of error messages, empty if the definition is valid.
    """
    if isinstance(definition, FieldDefinition):
        raw = definition.to_dict()
        raw["default"] = definition.default
    else:
        raw = dict(definition)

    errors: list[str] = []
    type_name = raw.get("type")
    type_value = getattr(type_name, "value", type_name)
    try:
        field_type: FieldType | None = FieldType(type_value)
    except (ValueError, TypeError):
        field_type = None
        valid = ", ".join(t.value for t in FieldType)
        errors.append(f"Invalid field type '{type_name}' (expected one of: {valid})")

    validation = raw.get("validation") or {}
    if not isinstance(validation, Mapping):
        errors.append("Validation rules must be an object")
        validation = {}

    minimum = _checked_number(validation.get("min"), "Minimum", errors)
    maximum = _checked_number(validation.get("max"), "Maximum", errors)
    min_length = _checked_length(validation.get("min_length"), "Minimum length", errors)
    max_length = _checked_length(validation.get("max_length"), "Maximum length", errors)
    enum = validation.get("enum")
    if enum is not None and not (
        isinstance(enum, list) and all(isinstance(item, str) for item in enum)
    ):
        errors.append("Allowed values must be a list of strings")
        enum = None

    if minimum is not None and maximum is not None and minimum > maximum:
        errors.append(f"Minimum ({minimum}) must not exceed maximum ({maximum})")
    if (minimum is not None or maximum is not None) and field_type not in (
        None,
        FieldType.NUMBER,
    ):
        errors.append("Min/max bounds only apply to number fields")
    if min_length is not None and max_length is not None and min_length > max_length:
        errors.append(
            f"Minimum length ({min_length}) must not exceed maximum length ({max_length})"
        )
    if enum is not None:
        if field_type not in (None, FieldType.STRING):
            errors.append("Allowed values only apply to string fields")
        if len(enum) == 0:
            errors.append("Allowed values list must not be empty")

    default = raw.get("default")
    if default is not None and field_type is not None:
        if not _matches_runtime_type(default, field_type):
            errors.append(f"Default value must be of type {field_type.value}")
        elif field_type is FieldType.NUMBER:
            if minimum is not None and default < minimum:
                errors.append(f"Default value {default} is below minimum {minimum}")
            if maximum is not None and default > maximum:
                errors.append(f"Default value {default} is above maximum {maximum}")
        elif field_type is FieldType.STRING:
            if min_length is not None and len(default) < min_length:
                errors.append("Default value is shorter than the minimum length")
            if max_length is not None and len(default) > max_length:
                errors.append("Default value is longer than the maximum length")
            if enum and default not in enum:
                errors.append(f"Default value '{default}' is not an allowed value")

    return errors


def check_custom_field(
    name: str, definition: FieldDefinition | Mapping[str, Any], existing: Iterable[str] = ()
) -> None:
    """Validate a custom field name and definition together.

    Raises:
        FieldValidationError: With every problem found.
    """
    errors = validate_field_name(name, existing) + validate_field_definition(definition)
    if errors:
        raise FieldValidationError(errors)
