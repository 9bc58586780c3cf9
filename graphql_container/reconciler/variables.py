"""Variable resolution and change detection."""

from typing import Any, Dict, Mapping, Optional

from ..config import VariableBuilder
from ..utils.equality import shallow_equal


def resolve_variables(
    builder: Optional[VariableBuilder], props: Mapping[str, Any]
) -> Optional[Dict[str, Any]]:
    """Build the variables for a request from the given properties.

    Returns None when no builder is declared, so the client sees "no
    variables" rather than an empty mapping.
    """
    if builder is None:
        return None
    return builder(props)


def variables_changed(
    builder: Optional[VariableBuilder],
    prev_props: Mapping[str, Any],
    next_props: Mapping[str, Any],
) -> bool:
    """Check whether a request must be redone for the new properties.

    Missing variables count as an empty mapping, and the comparison is
    shallow: nested values match only when they are the same object.
    """
    prev_vars = resolve_variables(builder, prev_props) or {}
    next_vars = resolve_variables(builder, next_props) or {}
    return not shallow_equal(prev_vars, next_vars)
