from __future__ import annotations

import logging
import threading
from collections.abc import Collection, Iterable

from ..excel.reader import is_blank
from ..models.config_models import DEFAULT_CURRENCIES
from ..models.field_definition import FieldDefinition
from ..models.process_error import ErrorType, ProcessError, Severity
from ..models.processing_result import ChunkResult
from ..models.row_data import Product
from .regex_cache import RegexMatchCache, default_cache
from .schema import (
    BOOLEAN_FIELDS,
    BUY_AMOUNT,
    BUY_CURRENCY,
    CATALOG_NUMBER,
    OPTIONAL_ESSENTIAL_FIELDS,
    PROMOTION_AMOUNT,
    SUPPLIER_ID,
    FieldRuleSet,
)
from .validators import (
    check_boolean,
    check_currency,
    check_price_amount,
    check_supplier_id,
    coerce_catalog_number,
)

"""Per-chunk product validation.

Products are checked in input order. For every product the checks run in a
fixed sequence (duplicate, unrecognized fields, essential presence, supplier
id, currency, prices, booleans, additional fields) and accumulate errors;
only a missing catalog number short-circuits the remaining checks.

A catalog number claims its slot in the run-wide registry the first time it
is seen, even if that product later fails another check. Subsequent
occurrences are flagged against it.
"""

logger = logging.getLogger(__name__)

NOT_APPLICABLE = "n/a"


class CatalogNumberRegistry:
    """Run-scoped set of catalog numbers already claimed by earlier products."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, catalog_number: object) -> bool:
        return catalog_number in self._seen

    def claim(self, catalog_number: str) -> bool:
        """Atomically add; returns False when the number was already claimed."""
        with self._lock:
            if catalog_number in self._seen:
                return False
            self._seen.add(catalog_number)
            return True


class ChunkValidator:
    def __init__(
        self,
        supplier_id: int,
        rule_set: FieldRuleSet,
        registry: CatalogNumberRegistry,
        matcher: RegexMatchCache = default_cache,
        currencies: Collection[str] = DEFAULT_CURRENCIES,
    ) -> None:
        self.supplier_id = supplier_id
        self.rule_set = rule_set
        self.registry = registry
        self.matcher = matcher
        self.currencies = tuple(currencies)

    def validate(self, chunk: Iterable[Product]) -> ChunkResult:
        result = ChunkResult()
        seen_in_chunk: set[str] = set()
        for product in chunk:
            errors = self.validate_product(product, seen_in_chunk)
            result.errors.extend(errors)
            if any(e.severity is Severity.ERROR for e in errors):
                result.invalid.append(product)
            else:
                product.validated = True
                result.valid.append(product)
        return result

    def validate_product(self, product: Product, seen_in_chunk: set[str]) -> list[ProcessError]:
        sheet = product.sheet_name
        catalog_number = coerce_catalog_number(product.catalog_number)
        if not catalog_number:
            return [
                ProcessError(
                    type=ErrorType.MISSING_FIELD,
                    severity=Severity.ERROR,
                    message='Missing or invalid "catalog_number". This product cannot be fully processed.',
                    field=CATALOG_NUMBER,
                    sheet_name=sheet,
                    code="MISSING_OR_INVALID_CATALOG_NUMBER",
                )
            ]
        product[CATALOG_NUMBER] = catalog_number

        errors: list[ProcessError] = []
        duplicate = self._check_duplicate(catalog_number, sheet, seen_in_chunk)
        if duplicate is not None:
            errors.append(duplicate)

        errors.extend(self._check_unrecognized(product, catalog_number))
        errors.extend(self._check_essential(product, catalog_number))

        supplier_error = check_supplier_id(
            product.get(SUPPLIER_ID), self.supplier_id, SUPPLIER_ID, catalog_number, sheet
        )
        if supplier_error is not None:
            errors.append(supplier_error)

        currency, error = check_currency(
            product.get(BUY_CURRENCY), self.currencies, BUY_CURRENCY, catalog_number, sheet
        )
        if error is not None:
            errors.append(error)
        else:
            product[BUY_CURRENCY] = currency

        amount, error = check_price_amount(product.get(BUY_AMOUNT), BUY_AMOUNT, catalog_number, sheet)
        if error is not None:
            errors.append(error)
        else:
            product[BUY_AMOUNT] = amount

        # 空欄の販促価格は essential チェックで None 済み
        if product.get(PROMOTION_AMOUNT) is not None:
            amount, error = check_price_amount(
                product.get(PROMOTION_AMOUNT), PROMOTION_AMOUNT, catalog_number, sheet
            )
            if error is not None:
                errors.append(error)
            else:
                product[PROMOTION_AMOUNT] = amount

        for name in BOOLEAN_FIELDS:
            flag, error = check_boolean(product.get(name), name, catalog_number, sheet)
            if error is not None:
                errors.append(error)
            else:
                product[name] = flag

        errors.extend(self._check_additional(product, catalog_number))
        return errors

    def _check_duplicate(
        self, catalog_number: str, sheet: str, seen_in_chunk: set[str]
    ) -> ProcessError | None:
        if catalog_number in seen_in_chunk:
            return ProcessError(
                type=ErrorType.DUPLICATION,
                severity=Severity.ERROR,
                message=f'Duplicate catalog number "{catalog_number}" found within the current sheet/chunk.',
                field=CATALOG_NUMBER,
                catalog_number=catalog_number,
                sheet_name=sheet,
                code="CHUNK_DUPLICATE_CATALOG_NUMBER",
            )
        seen_in_chunk.add(catalog_number)
        if not self.registry.claim(catalog_number):
            return ProcessError(
                type=ErrorType.DUPLICATION,
                severity=Severity.ERROR,
                message=f'Duplicate catalog number "{catalog_number}" found across different parts of the file.',
                field=CATALOG_NUMBER,
                catalog_number=catalog_number,
                sheet_name=sheet,
                code="GLOBAL_DUPLICATE_CATALOG_NUMBER",
            )
        return None

    def _check_unrecognized(self, product: Product, catalog_number: str) -> list[ProcessError]:
        warnings = []
        for key in product:
            if is_blank(product[key]) or self.rule_set.is_known(key):
                continue
            warnings.append(
                ProcessError(
                    type=ErrorType.UNRECOGNIZED_FIELD,
                    severity=Severity.WARNING,
                    message=f'Unrecognized field: "{key}" found in product.',
                    field=key,
                    catalog_number=catalog_number,
                    sheet_name=product.sheet_name,
                    code="UNRECOGNIZED_PRODUCT_FIELD",
                )
            )
        return warnings

    def _check_essential(self, product: Product, catalog_number: str) -> list[ProcessError]:
        errors = []
        for name in self.rule_set.essential_fields:
            if is_blank(product.get(name)):
                if name in OPTIONAL_ESSENTIAL_FIELDS:
                    product[name] = None
                    continue
                errors.append(
                    ProcessError(
                        type=ErrorType.MISSING_FIELD,
                        severity=Severity.ERROR,
                        message=f'Missing essential field: "{name}".',
                        field=name,
                        catalog_number=catalog_number,
                        sheet_name=product.sheet_name,
                        code="MISSING_ESSENTIAL_FIELD",
                    )
                )
        return errors

    def _check_additional(self, product: Product, catalog_number: str) -> list[ProcessError]:
        errors = []
        for key in product.keys():
            rule = self.rule_set.rule_for(key)
            if rule is None:
                continue
            raw = product[key]
            text = "" if raw is None else str(raw).strip()
            name = rule.name

            if text.lower() == NOT_APPLICABLE:
                product[key] = [] if rule.is_constant else ""
                continue

            if not text:
                kind = "Constant" if rule.is_constant else "Variable"
                errors.append(
                    ProcessError(
                        type=ErrorType.MISSING_FIELD,
                        severity=Severity.ERROR,
                        message=f'{kind} field "{name}" cannot be empty.',
                        field=name,
                        catalog_number=catalog_number,
                        sheet_name=product.sheet_name,
                        code="EMPTY_CONSTANT_FIELD" if rule.is_constant else "EMPTY_VARIABLE_FIELD",
                    )
                )
                continue

            if not rule.is_constant:
                product[key] = text
                continue

            matched, unmatched = self.match_constant(rule, text)
            if unmatched:
                errors.append(
                    ProcessError(
                        type=ErrorType.INVALID_VALUE,
                        severity=Severity.ERROR,
                        message=f'Constant field "{name}" contains unrecognized values.',
                        field=name,
                        value=raw,
                        catalog_number=catalog_number,
                        sheet_name=product.sheet_name,
                        details=tuple(
                            f'Input value "{token}" does not match any allowed constant for "{name}".'
                            for token in unmatched
                        ),
                        code="UNRECOGNIZED_CONSTANT_VALUE",
                    )
                )
            product[key] = matched
        return errors

    def match_constant(self, rule: FieldDefinition, text: str) -> tuple[list[str], list[str]]:
        """Split a comma-separated value and map each token to a canonical name.

        Returns (distinct matched names in first-match order, unmatched tokens).
        """
        tokens = [t.strip() for t in text.split(",") if t.strip()]
        matched: dict[str, None] = {}
        unmatched: list[str] = []
        for token in tokens:
            canonical = self._match_token(rule, token)
            if canonical is None:
                unmatched.append(token)
            else:
                matched.setdefault(canonical, None)
        return list(matched), unmatched

    def _match_token(self, rule: FieldDefinition, token: str) -> str | None:
        for allowed in rule.allowed_values:
            for prop in allowed.properties:
                if self.matcher.matches(prop, token):
                    return allowed.name
            if self.matcher.matches(allowed.name, token):
                return allowed.name
        return None
