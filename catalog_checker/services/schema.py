from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from jsonschema.exceptions import ValidationError

from ..config.loader import validate_field_definitions
from ..models.field_definition import FieldDefinition

"""Schema resolution: essential fields + dynamic additional field rules.

The additional-field definitions are read once per run from the
field-definition source and frozen into a FieldRuleSet lookup keyed by field
name, so rows never re-parse the definitions document.
"""

logger = logging.getLogger(__name__)

CATALOG_NUMBER = "catalog_number"
SUPPLIER_ID = "supplier.id"
BUY_CURRENCY = "price.buy.currency"
BUY_AMOUNT = "price.buy.amount"
PROMOTION_AMOUNT = "price.promotion_price.amount"
DRY_ICE = "shipment.dry_ice"
AVAILABLE = "available"
DISPLAY = "display"

ESSENTIAL_FIELDS: tuple[str, ...] = (
    "name",
    CATALOG_NUMBER,
    "supplier_catalog_number",
    SUPPLIER_ID,
    BUY_CURRENCY,
    BUY_AMOUNT,
    PROMOTION_AMOUNT,
    DRY_ICE,
    "size",
    AVAILABLE,
    DISPLAY,
)

# 空欄なら null に正規化してスキップする任意項目
OPTIONAL_ESSENTIAL_FIELDS = frozenset({PROMOTION_AMOUNT})

BOOLEAN_FIELDS: tuple[str, ...] = (DRY_ICE, AVAILABLE, DISPLAY)


class SchemaNotFoundError(Exception):
    """No field-definition document exists under the configured name."""


class SchemaDocumentError(Exception):
    """The field-definition document exists but is malformed."""


class FieldDefinitionSource(Protocol):
    def load(self, document_name: str) -> list[dict[str, Any]] | None:
        """Return the stored definitions list, or None if the document is absent."""
        ...


@dataclass(frozen=True)
class FieldRuleSet:
    """Immutable per-run lookup of field rules."""
    rules: Mapping[str, FieldDefinition]
    essential_fields: tuple[str, ...] = ESSENTIAL_FIELDS
    known_fields: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "known_fields", frozenset(self.essential_fields) | frozenset(self.rules))

    @property
    def additional_names(self) -> list[str]:
        return list(self.rules)

    def is_known(self, key: str) -> bool:
        return key.strip() in self.known_fields

    def rule_for(self, key: str) -> FieldDefinition | None:
        return self.rules.get(key.strip())


def build_rule_set(document: list[dict[str, Any]]) -> FieldRuleSet:
    """Validate a definitions document and freeze it into a FieldRuleSet.

    Raises:
        SchemaDocumentError: the document does not match the expected shape
    """
    try:
        validate_field_definitions(document)
    except ValidationError as e:
        raise SchemaDocumentError(f"invalid field definitions: {e.message}") from e

    rules: dict[str, FieldDefinition] = {}
    for raw in document:
        definition = FieldDefinition.from_document(raw)
        if definition.name in rules:
            # 同名定義は先勝ち
            logger.warning("duplicate field definition '%s' ignored", definition.name)
            continue
        rules[definition.name] = definition
    return FieldRuleSet(rules=MappingProxyType(rules))


class SchemaResolver:
    """Exposes the essential field list and the current additional field rules."""

    def __init__(self, source: FieldDefinitionSource, document_name: str) -> None:
        self.source = source
        self.document_name = document_name

    @property
    def essential_fields(self) -> tuple[str, ...]:
        return ESSENTIAL_FIELDS

    def resolve(self) -> FieldRuleSet:
        """Load and freeze the field definitions for one run.

        Raises:
            SchemaNotFoundError: the definitions document does not exist
            SchemaDocumentError: the document is malformed
        """
        document = self.source.load(self.document_name)
        if document is None:
            raise SchemaNotFoundError(
                f"additional fields document '{self.document_name}' not found"
            )
        rule_set = build_rule_set(document)
        logger.debug(
            "resolved %d additional field rules from '%s'",
            len(rule_set.rules),
            self.document_name,
        )
        return rule_set
