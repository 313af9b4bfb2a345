from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..db.stores import (
    InMemoryBlueprintStore,
    InMemoryFieldDefinitionSource,
    InMemorySupplierDirectory,
    JsonFileBlueprintStore,
    PostgresBlueprintStore,
    PostgresFieldDefinitionSource,
    PostgresSupplierDirectory,
    StoreError,
    ensure_tables,
)
from ..logging.init import enable_debug, log_summary, setup_logging
from ..models.config_models import CheckerConfig
from ..models.process_error import Message
from ..models.run_outcome import RunOutcome, RunStatus
from ..services.orchestrator import ValidationRun
from ..services.progress import ProgressTracker
from ..services.regex_cache import RegexMatchCache
from ..services.reporter import to_jsonl, to_sse_frame
from ..services.summary import render_summary_line
from ..services.upload import StagedUpload, UploadError, stage_upload

"""CLI entrypoint.

Subcommands:
- upload: stage a catalog file in the temp directory (prints the reference)
- run:    validate a staged file, streaming messages to stdout
- check:  upload + run in one go

Logs go to stderr so stdout carries only the machine-readable output.
"""

logger = logging.getLogger("catalog_checker.cli")

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_VALIDATION_FAILED = 2

FRAMERS: dict[str, Callable[[Message], str]] = {
    "jsonl": to_jsonl,
    "sse": to_sse_frame,
}


@dataclass
class Stores:
    mode: str
    field_source: Any
    blueprints: Any
    suppliers: Any


@contextmanager
def _db_connection(cfg: CheckerConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper; tested via integration)
    """Context manager to provide a psycopg2 cursor.

    接続情報の優先順位:
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書きモードで読込済み)
           - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
           - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        2. config/checker.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    try:
        conn.autocommit = False  # 書き込みは store 側で明示 commit
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _local_stores(cfg: CheckerConfig) -> Stores:
    local = cfg.local_store
    fields_path = Path(local.field_definitions_file) if local.field_definitions_file else None
    blueprints = (
        JsonFileBlueprintStore(Path(local.fingerprints_file))
        if local.fingerprints_file
        else InMemoryBlueprintStore()
    )
    return Stores(
        mode="local",
        field_source=InMemoryFieldDefinitionSource.from_file(fields_path, cfg.field_definitions_document),
        blueprints=blueprints,
        suppliers=InMemorySupplierDirectory(local.suppliers),
    )


@contextmanager
def open_stores(cfg: CheckerConfig) -> Iterator[Stores]:
    """Live (PostgreSQL) stores when reachable, local stores otherwise.

    DISABLE_DB_CONNECT=1 forces local mode (tests / offline use).
    """
    with ExitStack() as stack:
        stores: Stores | None = None
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> local mode")
        else:
            try:
                cur = stack.enter_context(_db_connection(cfg))
                ensure_tables(cur)
                stores = Stores(
                    mode="live",
                    field_source=PostgresFieldDefinitionSource(cur),
                    blueprints=PostgresBlueprintStore(cur),
                    suppliers=PostgresSupplierDirectory(cur),
                )
            except (psycopg2.Error, StoreError) as e:
                logger.info("DB connection failed -> fallback to local mode: %s", e)
        if stores is None:
            stores = _local_stores(cfg)
        logger.debug("store mode=%s", stores.mode)
        yield stores


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv (override mode, DB settings take priority)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="catalog-checker", description="Supplier catalog upload + streaming validation"
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to checker.yml")
    sub = p.add_subparsers(dest="command", required=True)

    up = sub.add_parser("upload", help="Stage a catalog file in the temp directory")
    up.add_argument("--file", type=Path, required=True)
    up.add_argument("--supplier-id", required=True)

    run = sub.add_parser("run", help="Validate a staged file and stream the messages")
    run.add_argument("--supplier-id", required=True)
    run.add_argument("--file-ref", required=True, help="Reference returned by upload (/temp/<name>)")
    run.add_argument("--format", choices=sorted(FRAMERS), default="jsonl")

    check = sub.add_parser("check", help="Upload + run")
    check.add_argument("--file", type=Path, required=True)
    check.add_argument("--supplier-id", required=True)
    check.add_argument("--format", choices=sorted(FRAMERS), default="jsonl")
    return p


def _print_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _upload(cfg: CheckerConfig, stores: Stores, file: Path, supplier_id: Any) -> StagedUpload | None:
    try:
        staged = stage_upload(file, file.name, supplier_id, stores.suppliers, Path(cfg.temp_directory))
    except UploadError as e:
        logger.error("upload rejected (status=%d): %s", e.status, e)
        _print_json({**e.to_dict(), "status": e.status})
        return None
    return staged


def _exit_code(outcome: RunOutcome) -> int:
    if outcome.status is RunStatus.PASSED:
        return EXIT_SUCCESS
    if outcome.status is RunStatus.FAILED:
        return EXIT_VALIDATION_FAILED
    return EXIT_FATAL


def _run(cfg: CheckerConfig, stores: Stores, supplier_id: Any, file_ref: str, fmt: str) -> int:
    framer = FRAMERS[fmt]
    with ProgressTracker() as progress:
        run = ValidationRun(
            cfg,
            field_source=stores.field_source,
            blueprints=stores.blueprints,
            matcher=RegexMatchCache(cfg.regex_cache_size),
            progress=progress,
        )
        with run.stream(supplier_id, file_ref) as channel:
            for message in channel:
                sys.stdout.write(framer(message))
                sys.stdout.flush()

    outcome = run.outcome
    if outcome is None:  # pragma: no cover
        logger.error("run did not start")
        return EXIT_FATAL
    summary_line = render_summary_line(outcome.summary, outcome.elapsed_seconds)
    # log_summary が "SUMMARY " ラベルを付与する
    log_summary(summary_line[len("SUMMARY ") :])
    logger.info("mode=%s status=%s", stores.mode, outcome.status.value)
    return _exit_code(outcome)


def main(argv: list[str] | None = None) -> int:
    # stdout はメッセージストリーム専用
    setup_logging(sys.stderr)

    # None のときのみシステム引数を読む ([] はテストからの明示指定)
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)
    if args.debug:
        enable_debug()

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error("config: %s", e)
        return EXIT_FATAL

    try:
        with open_stores(cfg) as stores:
            if args.command == "upload":
                staged = _upload(cfg, stores, args.file, args.supplier_id)
                if staged is None:
                    return EXIT_FATAL
                _print_json(staged.to_dict())
                return EXIT_SUCCESS
            if args.command == "run":
                return _run(cfg, stores, args.supplier_id, args.file_ref, args.format)
            staged = _upload(cfg, stores, args.file, args.supplier_id)
            if staged is None:
                return EXIT_FATAL
            return _run(cfg, stores, staged.supplier_id, staged.file_ref, args.format)
    except (ConfigError, StoreError) as e:
        logger.error("store: %s", e)
        return EXIT_FATAL
