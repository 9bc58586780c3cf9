"""Shallow equality used for variable-change detection."""

import numbers
from datetime import date, time, timedelta
from typing import Any, Mapping
from uuid import UUID

# Immutable scalars compared by value; everything else by identity
_SCALAR_TYPES = (str, bytes, numbers.Number, date, time, timedelta, UUID, type(None))


def _same_value(left: Any, right: Any) -> bool:
    if left is right:
        return True
    # True and 1, or 1 and 1.0, are different variables
    if type(left) is not type(right):
        return False
    if isinstance(left, _SCALAR_TYPES):
        # NaN is the only scalar not equal to itself
        return left == right or (left != left and right != right)
    return False


def shallow_equal(left: Mapping[str, Any], right: Mapping[str, Any]) -> bool:
    """Compare two mappings one level deep.

    Keys must match exactly. Scalar values (strings, numbers, dates, UUIDs,
    None) compare by value when their types match, with NaN equal to NaN.
    Any other value, including nested dicts and lists, compares by
    identity. Variable builders are expected to return flat mappings of
    scalars.
    """
    if left is right:
        return True

    if len(left) != len(right):
        return False

    for key, value in left.items():
        if key not in right:
            return False
        if not _same_value(value, right[key]):
            return False

    return True
