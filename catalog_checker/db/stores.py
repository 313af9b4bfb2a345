from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import psycopg2

from ..config.loader import load_field_definitions_file

"""Persistence adapters used by the run and upload steps.

Live mode (psycopg2):
- product_extensions(name, fields jsonb): field-definition documents (read only)
- blue_prints(name, files text[]): already-validated fingerprints (append only)
- suppliers(id): supplier directory for the upload step

Local mode equivalents are used when no database is reachable: a YAML/JSON
field definitions file, a JSON file holding the fingerprint sets, and a
supplier id list from config.

cursor のトランザクション境界: 書き込み系は各操作で commit する。
"""

logger = logging.getLogger(__name__)

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS product_extensions (
        name   text PRIMARY KEY,
        fields jsonb NOT NULL DEFAULT '[]'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS blue_prints (
        name  text PRIMARY KEY,
        files text[] NOT NULL DEFAULT '{}'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS suppliers (
        id   bigint PRIMARY KEY,
        name text
    )
    """,
)

# 集合和 (既存なら追加しない)
BLUEPRINT_UPSERT_SQL = """
INSERT INTO blue_prints (name, files) VALUES (%s, ARRAY[%s]::text[])
ON CONFLICT (name) DO UPDATE
SET files = CASE
    WHEN %s = ANY(blue_prints.files) THEN blue_prints.files
    ELSE array_append(blue_prints.files, %s)
END
"""


class StoreError(Exception):
    """A persistence operation failed."""


def ensure_tables(cursor: Any) -> None:
    """Create the three tables when missing (idempotent)."""
    try:
        for ddl in DDL_STATEMENTS:
            cursor.execute(ddl)
        cursor.connection.commit()
    except psycopg2.Error as e:
        raise StoreError(f"failed to create tables: {e}") from e


class PostgresFieldDefinitionSource:
    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def load(self, document_name: str) -> list[dict[str, Any]] | None:
        try:
            self.cursor.execute(
                "SELECT fields FROM product_extensions WHERE name = %s", (document_name,)
            )
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise StoreError(f"failed to read field definitions '{document_name}': {e}") from e
        if row is None:
            return None
        fields = row[0]
        # jsonb は dict/list にデコード済み、text 列の場合のみ json 文字列
        if isinstance(fields, str):
            fields = json.loads(fields)
        if isinstance(fields, Mapping):
            fields = fields.get("fields")
        return fields


class PostgresBlueprintStore:
    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def contains(self, name: str, fingerprint: str) -> bool:
        try:
            self.cursor.execute(
                "SELECT 1 FROM blue_prints WHERE name = %s AND %s = ANY(files)",
                (name, fingerprint),
            )
            return self.cursor.fetchone() is not None
        except psycopg2.Error as e:
            raise StoreError(f"failed to query blueprint '{name}': {e}") from e

    def add(self, name: str, fingerprint: str) -> None:
        try:
            self.cursor.execute(BLUEPRINT_UPSERT_SQL, (name, fingerprint, fingerprint, fingerprint))
            self.cursor.connection.commit()
        except psycopg2.Error as e:
            try:
                self.cursor.connection.rollback()
            except psycopg2.Error:  # pragma: no cover
                logger.debug("rollback failed after blueprint error", exc_info=True)
            raise StoreError(f"failed to save blueprint '{name}': {e}") from e


class PostgresSupplierDirectory:
    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def exists(self, supplier_id: int) -> bool:
        try:
            self.cursor.execute("SELECT 1 FROM suppliers WHERE id = %s", (supplier_id,))
            return self.cursor.fetchone() is not None
        except psycopg2.Error as e:
            raise StoreError(f"failed to look up supplier {supplier_id}: {e}") from e


class InMemoryFieldDefinitionSource:
    def __init__(self, documents: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self.documents = dict(documents or {})

    @classmethod
    def from_file(cls, path: Path | None, document_name: str) -> InMemoryFieldDefinitionSource:
        """Local mode: the file holds the single named document. No file, no document."""
        if path is None or not path.exists():
            return cls()
        return cls({document_name: load_field_definitions_file(path)})

    def load(self, document_name: str) -> list[dict[str, Any]] | None:
        return self.documents.get(document_name)


class InMemoryBlueprintStore:
    def __init__(self, initial: Mapping[str, Iterable[str]] | None = None) -> None:
        self._files: dict[str, list[str]] = {k: list(dict.fromkeys(v)) for k, v in (initial or {}).items()}
        self._lock = threading.Lock()

    def files(self, name: str) -> list[str]:
        return list(self._files.get(name, []))

    def contains(self, name: str, fingerprint: str) -> bool:
        return fingerprint in self._files.get(name, [])

    def add(self, name: str, fingerprint: str) -> None:
        with self._lock:
            files = self._files.setdefault(name, [])
            if fingerprint not in files:
                files.append(fingerprint)


class JsonFileBlueprintStore(InMemoryBlueprintStore):
    """Fingerprint sets persisted as ``{"<name>": ["<hex>", ...]}`` in a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        initial: dict[str, list[str]] = {}
        if path.exists():
            try:
                initial = json.loads(path.read_text(encoding="utf-8")) or {}
            except json.JSONDecodeError as e:
                raise StoreError(f"invalid fingerprints file {path}: {e}") from e
        super().__init__(initial)

    def add(self, name: str, fingerprint: str) -> None:
        super().add(name, fingerprint)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(self._files, ensure_ascii=False, indent=2), encoding="utf-8"
            )
        except OSError as e:
            raise StoreError(f"failed to write fingerprints file {self.path}: {e}") from e


class InMemorySupplierDirectory:
    def __init__(self, supplier_ids: Iterable[int] = ()) -> None:
        self.supplier_ids = frozenset(int(s) for s in supplier_ids)

    def exists(self, supplier_id: int) -> bool:
        return supplier_id in self.supplier_ids
