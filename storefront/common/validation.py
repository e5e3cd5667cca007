from typing import Any, Dict, List, Optional

# Largest value a signed 64-bit INTEGER column accepts.
MAX_INT64 = 2**63 - 1


def as_int(
    value: Any,
    field: str,
    errors: List[Dict[str, str]],
    minimum: Optional[int] = None,
    maximum: int = MAX_INT64,
) -> Optional[int]:
    """Coerce a JSON/query value to int, recording a field error on failure."""
    if isinstance(value, bool) or value is None:
        errors.append({"field": field, "message": "must be an integer"})
        return None
    if isinstance(value, float) and not value.is_integer():
        errors.append({"field": field, "message": "must be an integer"})
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        errors.append({"field": field, "message": "must be an integer"})
        return None
    if minimum is not None and number < minimum:
        errors.append({"field": field, "message": f"must be at least {minimum}"})
        return None
    if number > maximum:
        errors.append({"field": field, "message": f"must be at most {maximum}"})
        return None
    return number
