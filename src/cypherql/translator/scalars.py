"""
Scalar coercion for request values.

Values are checked against the declared scalar type before they are
bound as parameters. Error messages quote the offending value the way
GraphQL tooling prints it.
"""

import json
import math
from typing import Any, Optional

from cypherql.exceptions import QueryValidationError

_INT_MIN = -(2 ** 31)
_INT_MAX = 2 ** 31 - 1


def inspect_value(value: Any) -> str:
    """Print a value the way GraphQL error messages quote it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(inspect_value(v) for v in value) + "]"
    if isinstance(value, dict):
        if not value:
            return "{}"
        return "{ " + ", ".join(f"{k}: {inspect_value(v)}" for k, v in value.items()) + " }"
    return str(value)


def coerce_scalar(type_name: str, value: Any, enum_values: Optional[tuple] = None) -> Any:
    """
    Coerce one request value to a scalar type.

    Args:
        type_name: ID, String, Int, Float, Boolean or an enum name
        value: Raw value from the request
        enum_values: Allowed values when type_name is an enum

    Returns:
        The coerced Python value, or None for None

    Raises:
        QueryValidationError: If the value cannot represent the type
    """
    if value is None:
        return None

    if enum_values is not None:
        if not isinstance(value, str) or value not in enum_values:
            raise QueryValidationError(
                f'Enum "{type_name}" cannot represent value: {inspect_value(value)}'
            )
        return str(value)

    if type_name == "Int":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise QueryValidationError(f"Int cannot represent non-integer value: {inspect_value(value)}")
        if isinstance(value, float):
            if not value.is_integer():
                raise QueryValidationError(f"Int cannot represent non-integer value: {inspect_value(value)}")
            value = int(value)
        if value < _INT_MIN or value > _INT_MAX:
            raise QueryValidationError(
                f"Int cannot represent non 32-bit signed integer value: {inspect_value(value)}"
            )
        return value

    if type_name == "Float":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise QueryValidationError(f"Float cannot represent non numeric value: {inspect_value(value)}")
        return float(value)

    if type_name == "String":
        if not isinstance(value, str):
            raise QueryValidationError(f"String cannot represent a non string value: {inspect_value(value)}")
        return value

    if type_name == "Boolean":
        if not isinstance(value, bool):
            raise QueryValidationError(f"Boolean cannot represent a non boolean value: {inspect_value(value)}")
        return value

    if type_name == "ID":
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        raise QueryValidationError(f"ID cannot represent value: {inspect_value(value)}")

    raise QueryValidationError(f"Unknown scalar type '{type_name}'")


def coerce_list(type_name: str, value: Any, enum_values: Optional[tuple] = None) -> Optional[list]:
    """Coerce a list value item by item; a single value becomes a one-item list."""
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [coerce_scalar(type_name, v, enum_values) for v in value]


def coerce_non_negative_int(name: str, value: Any) -> Optional[int]:
    """
    Validate a paging argument (limit, offset, first).

    Raises:
        QueryValidationError: If the value is not a non-negative integer
    """
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryValidationError(
            f"Invalid {name}: expected a non-negative integer, got {inspect_value(value)}"
        )
    return value
