from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the supplier catalog checker.

These are the typed view of ``config/checker.yml`` produced by
``catalog_checker.config.loader.load_config``. Defaults here are the values
applied when a key is absent from the YAML file.
"""

DEFAULT_CURRENCIES: tuple[str, ...] = ("EUR", "USD", "GBP", "PLN", "JPY")


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class StreamConfig:
    """Outbound message stream tuning."""
    send_delay_ms: int = 0  # 送信間の待機 (consumer 側バッファリング対策)
    queue_size: int = 100  # producer/consumer 間キュー上限 (backpressure)
    itemized_diagnostics: bool = False  # True: 1件ずつ送信 / False: チャンク毎にまとめる
    display_batch_size: int = 50  # 表示用バッチ件数 (details 自体は切り詰めない)


@dataclass(frozen=True)
class LocalStoreConfig:
    """Stores used when no database is reachable (local mode)."""
    field_definitions_file: str | None = None
    fingerprints_file: str | None = None
    suppliers: tuple[int, ...] = ()


@dataclass(frozen=True)
class CheckerConfig:
    """Root configuration object for upload + validation runs."""
    temp_directory: str
    chunk_size: int = 500
    regex_cache_size: int = 1000
    currencies: tuple[str, ...] = DEFAULT_CURRENCIES
    fingerprint_sample_size: int = 1
    blueprint_name: str = "auto-checker"
    field_definitions_document: str = "product_additional_fields"
    stream: StreamConfig = field(default_factory=StreamConfig)
    local_store: LocalStoreConfig = field(default_factory=LocalStoreConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
