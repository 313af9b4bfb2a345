from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Field definition models for deployment-configurable "additional" fields.

The definitions document stored in the field-definition source has the shape::

    [
      {"name": "species", "type": "constant",
       "value": [{"name": "Human", "properties": [{"name": "homo sapiens"}]}]},
      {"name": "application", "type": "variable", "value": []}
    ]

``constant`` fields are controlled vocabularies matched fuzzily, ``variable``
fields are free text that must be non-blank.
"""

__all__ = [
    "FieldKind",
    "AllowedValue",
    "FieldDefinition",
]


class FieldKind(str, Enum):
    CONSTANT = "constant"
    VARIABLE = "variable"


@dataclass(frozen=True)
class AllowedValue:
    """Canonical vocabulary entry plus its alternate names (properties)."""
    name: str
    properties: tuple[str, ...] = ()

    @staticmethod
    def from_document(raw: dict[str, Any]) -> AllowedValue:
        props = tuple(
            str(p["name"]) for p in (raw.get("properties") or []) if p.get("name") is not None
        )
        return AllowedValue(name=str(raw["name"]), properties=props)


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    kind: FieldKind
    allowed_values: tuple[AllowedValue, ...] = ()

    @property
    def is_constant(self) -> bool:
        return self.kind is FieldKind.CONSTANT

    @staticmethod
    def from_document(raw: dict[str, Any]) -> FieldDefinition:
        """Build a definition from one entry of the stored document.

        Field names are trimmed so they line up with trimmed header keys.
        """
        return FieldDefinition(
            name=str(raw["name"]).strip(),
            kind=FieldKind(raw["type"]),
            allowed_values=tuple(AllowedValue.from_document(v) for v in (raw.get("value") or [])),
        )
