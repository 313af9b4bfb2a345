from __future__ import annotations

import math
from collections.abc import Collection
from typing import Any

from ..excel.reader import is_blank
from ..models.process_error import ErrorType, ProcessError, Severity

"""Field-level checks used by the chunk validator.

Each ``check_*`` helper returns ``(normalized_value, error)`` where exactly
one side is meaningful: on success the error is None and the caller writes
the normalized value back into the product; on failure the value is None.
"""

TRUE_WORDS = frozenset({"true", "yes", "vrai", "oui"})
FALSE_WORDS = frozenset({"false", "no", "faux", "non"})


def parse_boolean(value: Any) -> bool | None:
    """Locale-tolerant boolean parser (English + French, case-insensitive)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
    return None


def parse_amount(value: Any) -> float | None:
    """Parse a price amount, accepting a decimal comma. Returns None if not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", ".", 1)
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def coerce_catalog_number(value: Any) -> str | None:
    """Catalog numbers are compared as strings; integral numeric cells are accepted."""
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


def check_boolean(
    value: Any, field: str, catalog_number: str, sheet_name: str | None = None
) -> tuple[bool | None, ProcessError | None]:
    if is_blank(value):
        return None, ProcessError(
            type=ErrorType.MISSING_FIELD,
            severity=Severity.ERROR,
            message=f'"{field}" cannot be empty. It must be "true" or "false".',
            field=field,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="EMPTY_BOOLEAN_FIELD",
        )
    parsed = parse_boolean(value)
    if parsed is None:
        return None, ProcessError(
            type=ErrorType.INVALID_VALUE,
            severity=Severity.ERROR,
            message=f'"{field}" must be "true" or "false". Found: "{value}"',
            field=field,
            value=value,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="INVALID_BOOLEAN_VALUE",
        )
    return parsed, None


def check_price_amount(
    value: Any, field: str, catalog_number: str, sheet_name: str | None = None
) -> tuple[float | None, ProcessError | None]:
    if is_blank(value):
        return None, ProcessError(
            type=ErrorType.MISSING_FIELD,
            severity=Severity.ERROR,
            message=f'"{field}" cannot be empty. It must be a valid number.',
            field=field,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="EMPTY_PRICE_AMOUNT",
        )
    amount = parse_amount(value)
    if amount is None:
        return None, ProcessError(
            type=ErrorType.INVALID_VALUE,
            severity=Severity.ERROR,
            message=f'"{field}" must be a valid number. Found: "{value}"',
            field=field,
            value=value,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="INVALID_PRICE_AMOUNT",
        )
    if amount < 0:
        return None, ProcessError(
            type=ErrorType.INVALID_VALUE,
            severity=Severity.ERROR,
            message=f'"{field}" cannot be negative. Found: "{value}"',
            field=field,
            value=value,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="NEGATIVE_PRICE_AMOUNT",
        )
    return amount, None


def check_currency(
    value: Any,
    currencies: Collection[str],
    field: str,
    catalog_number: str,
    sheet_name: str | None = None,
) -> tuple[str | None, ProcessError | None]:
    currency = str(value if value is not None else "").upper().strip()
    if currency not in currencies:
        return None, ProcessError(
            type=ErrorType.INVALID_VALUE,
            severity=Severity.ERROR,
            message=(
                f"Invalid currency. Expected one of [{', '.join(currencies)}], "
                f'found "{value if value is not None else ""}".'
            ),
            field=field,
            value=value,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="INVALID_CURRENCY",
        )
    return currency, None


def check_supplier_id(
    value: Any, expected: int, field: str, catalog_number: str, sheet_name: str | None = None
) -> ProcessError | None:
    parsed: float | None = None
    if not isinstance(value, bool) and not is_blank(value):
        try:
            parsed = float(str(value).strip())
        except ValueError:
            parsed = None
    if parsed is None or parsed != float(expected):
        return ProcessError(
            type=ErrorType.INVALID_VALUE,
            severity=Severity.ERROR,
            message=(
                f'Invalid supplier ID. Expected "{expected}", '
                f'found "{value if value is not None else ""}".'
            ),
            field=field,
            value=value,
            catalog_number=catalog_number,
            sheet_name=sheet_name,
            code="INVALID_SUPPLIER_ID",
        )
    return None
