"""Shared checks used by the per-type extractors."""

import re
from datetime import date
from typing import Any

from docflow.pipeline.exceptions import StructuralValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

LOW_CONFIDENCE_WARNING_THRESHOLD = 0.5


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def require_fields(data: dict[str, Any], fields: tuple[str, ...], entity: str) -> None:
    """Raise on the first required field that is missing or empty.

    Raises:
        StructuralValidationError: naming every missing field.
    """
    missing = [name for name in fields if is_blank(data.get(name))]
    if missing:
        raise StructuralValidationError(
            f"{entity} extraction is missing required field(s): {', '.join(missing)}",
            entity=entity,
            missing_fields=missing,
        )


def to_number(value: Any) -> float | None:
    """Parse numbers the way receipts print them ("1 234,50", "kr 99.90")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"[^\d,.\-]", "", value)
    if "," in cleaned and "." in cleaned:
        # The separator that comes last is the decimal one.
        decimal, grouping = (",", ".") if cleaned.rfind(",") > cleaned.rfind(".") else (".", ",")
        cleaned = cleaned.replace(grouping, "").replace(decimal, ".")
    elif cleaned.count(",") == 1:
        cleaned = cleaned.replace(",", ".")
    elif cleaned.count(",") > 1 or cleaned.count(".") > 1:
        cleaned = cleaned.replace(",", "").replace(".", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def require_numeric(data: dict[str, Any], name: str, entity: str) -> None:
    """Raise if a present value cannot be read as a number."""
    value = data.get(name)
    if value is None:
        return
    if to_number(value) is None:
        raise StructuralValidationError(
            f"{entity} field '{name}' must be numeric, got {value!r}",
            entity=entity,
            field=name,
        )


def date_format_warnings(data: dict[str, Any], fields: tuple[str, ...]) -> list[str]:
    warnings: list[str] = []
    for name in fields:
        value = data.get(name)
        if is_blank(value):
            continue
        if not isinstance(value, str) or not _ISO_DATE.match(value):
            warnings.append(f"Invalid date format for {name}: {value} (expected YYYY-MM-DD)")
    return warnings


def parse_iso_date(value: Any) -> date | None:
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def confidence_warning(confidence: float) -> list[str]:
    if confidence < LOW_CONFIDENCE_WARNING_THRESHOLD:
        return [f"Low confidence score: {confidence}"]
    return []


def compact(values: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None or an empty string."""
    return {key: value for key, value in values.items() if value is not None and value != ""}


def list_of_dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def list_of_strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if not is_blank(item)]
