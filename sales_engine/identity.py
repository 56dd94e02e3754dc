"""
Identity Normalization

Foreign keys arrive either as scalars (42, "42") or as nested relation
objects ({"invoice_id": 42, ...}). Everything is reduced to a plain string id
here, before any record enters the aggregation code.
"""

from typing import Any, Iterable, Optional

# Tried in order after the caller's preferred keys
WELL_KNOWN_ID_KEYS = (
    "product_id",
    "invoice_id",
    "invoice_no",
    "return_number",
    "return_id",
    "supplier_id",
    "brand_id",
    "section_id",
    "salesman_id",
    "customer_code",
    "code",
)

MAX_DEPTH = 5


def _scalar_to_id(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def resolve_id(value: Any, preferred_keys: Optional[Iterable[str]] = None, _depth: int = 0) -> str:
    """
    Extract a scalar id from a raw value or a nested relation object.

    Lookup order for objects: preferred_keys, WELL_KNOWN_ID_KEYS, then 'id'.
    Matched values that are objects themselves are resolved recursively.

    Args:
        value: Scalar, None, or dict
        preferred_keys: Keys to try first on nested objects

    Returns:
        The id as a string, or "" when nothing usable is found. Never raises.
    """
    if value is None or _depth > MAX_DEPTH:
        return ""

    if not isinstance(value, dict):
        if isinstance(value, (list, tuple, set)):
            return ""
        return _scalar_to_id(value)

    candidates = list(preferred_keys or ()) + list(WELL_KNOWN_ID_KEYS) + ["id"]
    for key in candidates:
        if key not in value or value[key] is None:
            continue
        resolved = resolve_id(value[key], preferred_keys, _depth + 1)
        if resolved:
            return resolved

    return ""


def sort_key(identifier: str):
    """Numeric-aware ordering for ids: numbers first (by value), then text"""
    try:
        return (0, int(identifier), "")
    except (TypeError, ValueError):
        return (1, 0, str(identifier))
