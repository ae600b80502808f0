"""Runtime value type inference, compatibility checks and coercion."""

import json
import logging
import math
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from typing import Any

from docschema_mcp.models import FieldType

logger = logging.getLogger(__name__)

# Maximum length of a serialized example value
MAX_EXAMPLE_LENGTH = 100

# String values coerced to False for boolean fields
FALSE_STRINGS = frozenset({"", "false", "0", "no", "off"})


class _Missing:
    """Sentinel for a field that is absent from a document."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _timestamp_to_datetime(value: Any) -> datetime | None:
    """Convert a store-native timestamp to a datetime.

    Timestamps are duck-typed by their conversion capability rather than
    by class, so any client library's timestamp type is recognized.

    Returns:
        The converted datetime, or None if the value is not timestamp-like.
    """
    for attr in ("to_datetime", "ToDatetime"):
        convert = getattr(value, attr, None)
        if callable(convert):
            return convert()
    if callable(getattr(value, "timestamp_pb", None)) and isinstance(value, datetime):
        return value
    return None


def is_timestamp(value: Any) -> bool:
    """Check whether a value is a store-native timestamp."""
    if value is None or isinstance(value, (str, bytes, Mapping, list, tuple)):
        return False
    return _timestamp_to_datetime(value) is not None


def detect_value_type(value: Any) -> str:
    """Classify a runtime value into a structural type name.

    Timestamps are checked before dates and generic objects, since they
    are also datetimes or objects.

    Args:
        value: Any runtime value.

    Returns:
        One of null, undefined, string, number, boolean, array, date,
        timestamp, object, unknown.
    """
    if value is None:
        return "null"
    if value is MISSING:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (list, tuple)):
        return "array"
    if is_timestamp(value):
        return "timestamp"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, Mapping):
        return "object"
    return "unknown"


def _truncate(text: str, suffix: str = "") -> str:
    if len(text) <= MAX_EXAMPLE_LENGTH:
        return text
    return text[:MAX_EXAMPLE_LENGTH] + suffix


def serialize_example(value: Any) -> str:
    """Serialize a value into a short example string.

    Dates are ISO-8601, containers are JSON-encoded and truncated, other
    values are converted with str() and truncated.
    """
    try:
        converted = _timestamp_to_datetime(value)
        if converted is not None:
            return converted.isoformat()
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (Mapping, list, tuple)):
            return _truncate(json.dumps(value, default=str, ensure_ascii=False), "...")
        return _truncate(str(value))
    except (TypeError, ValueError, OverflowError):
        return "[unserializable]"


def is_number_like(value: Any) -> bool:
    """Check whether a value can be coerced to a number."""
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return True
        try:
            return not math.isnan(float(text))
        except ValueError:
            return False
    return False


def matches_type(value: Any, field_type: FieldType) -> bool:
    """Check whether a value's runtime type is exactly the declared type.

    Timestamps count as dates.
    """
    current = detect_value_type(value)
    if field_type is FieldType.DATE:
        return current in ("date", "timestamp")
    return current == field_type.value


def is_type_compatible(value: Any, field_type: FieldType) -> bool:
    """Permissive check of a value against a declared type.

    A date field accepts dates, timestamps and plain objects; a number
    field accepts anything coercible to a number.
    """
    if matches_type(value, field_type):
        return True
    if field_type is FieldType.DATE:
        return detect_value_type(value) == "object"
    if field_type is FieldType.NUMBER:
        return is_number_like(value)
    return False


def empty_value(field_type: FieldType) -> Any:
    """Get the type-appropriate empty value for a field type."""
    if field_type is FieldType.STRING:
        return ""
    if field_type is FieldType.NUMBER:
        return 0
    if field_type is FieldType.BOOLEAN:
        return False
    if field_type is FieldType.ARRAY:
        return []
    if field_type is FieldType.OBJECT:
        return {}
    return datetime.now(timezone.utc)


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    converted = _timestamp_to_datetime(value)
    if converted is not None:
        return converted.isoformat()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            number = float(text)
        if math.isnan(number):
            raise ValueError(f"not a number: {value!r}")
        return number
    raise TypeError(f"cannot convert {detect_value_type(value)} to number")


def _to_date(value: Any) -> datetime:
    converted = _timestamp_to_datetime(value)
    if converted is not None:
        return converted
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError(f"cannot convert {detect_value_type(value)} to date")


def coerce_value(value: Any, field_type: FieldType) -> Any:
    """Coerce a value to a declared field type.

    Values that cannot be converted are returned unchanged.

    Args:
        value: Current field value.
        field_type: Declared type to convert to.

    Returns:
        The converted value, or the original value on failure.
    """
    try:
        if field_type is FieldType.STRING:
            return _to_string(value)
        if field_type is FieldType.NUMBER:
            return _to_number(value)
        if field_type is FieldType.BOOLEAN:
            if isinstance(value, str):
                return value.strip().lower() not in FALSE_STRINGS
            return bool(value)
        if field_type is FieldType.ARRAY:
            if isinstance(value, list):
                return value
            if isinstance(value, tuple):
                return list(value)
            return [value]
        if field_type is FieldType.DATE:
            return _to_date(value)
        if isinstance(value, Mapping):
            return value
        return {"value": value}
    except (TypeError, ValueError, OverflowError, OSError) as e:
        logger.debug("Could not coerce %r to %s: %s", value, field_type.value, e)
        return value
