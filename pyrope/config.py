"""
Configuration management for Pyrope.

All configuration is done via environment variables or explicit
construction. Configuration objects are immutable: they are built once,
passed to every component constructor and never mutated afterwards.

Invariants:
    - All settings have sensible defaults for local development
    - Table names are always derived through TableConfig.full_name
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Changing the counters table name orphans existing counters
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# DynamoDB BatchWriteItem accepts at most 25 requests per call.
MAX_BATCH_SIZE = 25


class StoreBackend(Enum):
    """Supported store backends."""

    DYNAMODB = "dynamodb"
    MEMORY = "memory"


@dataclass(frozen=True)
class DynamoDBConfig:
    """DynamoDB client configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint (DynamoDB Local, dynalite, LocalStack)
        access_key_id: Static access key, falls back to the default chain
        secret_access_key: Static secret key
        session_token: Optional session token
        timeout_seconds: Upper bound for every single store request
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> DynamoDBConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", "us-east-1"),
            endpoint_url=os.getenv("AWS_DYNAMODB_ENDPOINT"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            session_token=os.getenv("AWS_SESSION_TOKEN"),
            timeout_seconds=float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class TableConfig:
    """Physical table naming.

    Attributes:
        prefix: Prepended to every table name (e.g. ``_test_``)
        suffix: Appended to every table name (e.g. ``-production``)
        counters_table: Base name of the table holding collection counters
        batch_size: Maximum requests per batch write
    """

    prefix: str = ""
    suffix: str = ""
    counters_table: str = "table_counters"
    batch_size: int = MAX_BATCH_SIZE

    @classmethod
    def from_env(cls) -> TableConfig:
        """Load configuration from environment variables."""
        return cls(
            prefix=os.getenv("PYROPE_TABLE_PREFIX", ""),
            suffix=os.getenv("PYROPE_TABLE_SUFFIX", ""),
            counters_table=os.getenv("PYROPE_COUNTERS_TABLE", "table_counters"),
            batch_size=int(os.getenv("PYROPE_BATCH_SIZE", str(MAX_BATCH_SIZE))),
        )

    def full_name(self, name: str) -> str:
        """Physical name of a logical table."""
        return f"{self.prefix}{name}{self.suffix}"

    @property
    def counters_table_name(self) -> str:
        return self.full_name(self.counters_table)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass(frozen=True)
class PyropeConfig:
    """Complete configuration.

    Attributes:
        store_backend: Which store backend to use
        dynamodb: DynamoDB configuration (if store_backend is DYNAMODB)
        tables: Table naming configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.DYNAMODB
    dynamodb: DynamoDBConfig = field(default_factory=DynamoDBConfig)
    tables: TableConfig = field(default_factory=TableConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> PyropeConfig:
        """Load complete configuration from environment variables.

        Returns:
            PyropeConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("PYROPE_STORE_BACKEND", "dynamodb").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid PYROPE_STORE_BACKEND '{backend_str}'. Must be one of: dynamodb, memory"
            )

        config = cls(
            store_backend=store_backend,
            dynamodb=DynamoDBConfig.from_env(),
            tables=TableConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.DYNAMODB:
            if not self.dynamodb.region:
                raise ValueError("AWS_REGION is required when PYROPE_STORE_BACKEND=dynamodb")
            if self.dynamodb.timeout_seconds <= 0:
                raise ValueError("DYNAMODB_TIMEOUT_SECONDS must be positive")

        if not 1 <= self.tables.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"PYROPE_BATCH_SIZE must be between 1 and {MAX_BATCH_SIZE}")

        if not self.tables.counters_table:
            raise ValueError("PYROPE_COUNTERS_TABLE must not be empty")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")

    def log_config(self) -> None:
        """Log the effective configuration (without secrets)."""
        logger.info(
            "Pyrope configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "dynamodb_region": self.dynamodb.region,
                "dynamodb_endpoint": self.dynamodb.endpoint_url or "AWS",
                "static_credentials": self.dynamodb.access_key_id is not None,
                "table_prefix": self.tables.prefix,
                "table_suffix": self.tables.suffix,
                "counters_table": self.tables.counters_table_name,
                "log_level": self.observability.log_level,
            },
        )
