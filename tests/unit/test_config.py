"""
Unit tests for configuration.

Tests cover:
- Environment loading
- Validation
- Table naming
"""

import logging

import pytest

from pyrope.config import (
    DynamoDBConfig,
    PyropeConfig,
    StoreBackend,
    TableConfig,
)


class TestTableConfig:
    """Tests for TableConfig."""

    def test_full_name_applies_prefix_and_suffix(self):
        """Physical names wrap the logical name."""
        tables = TableConfig(prefix="qtz-", suffix="-test")

        assert tables.full_name("contacts_users") == "qtz-contacts_users-test"
        assert tables.counters_table_name == "qtz-table_counters-test"

    def test_from_env(self, monkeypatch):
        """Table settings are read from the environment."""
        monkeypatch.setenv("PYROPE_TABLE_PREFIX", "_test_")
        monkeypatch.setenv("PYROPE_BATCH_SIZE", "10")

        tables = TableConfig.from_env()

        assert tables.prefix == "_test_"
        assert tables.suffix == ""
        assert tables.batch_size == 10

    def test_frozen(self):
        """Configuration cannot be mutated after construction."""
        tables = TableConfig()

        with pytest.raises(AttributeError):
            tables.prefix = "other"


class TestPyropeConfig:
    """Tests for the aggregate configuration."""

    def test_from_env_defaults(self, monkeypatch):
        """Defaults select DynamoDB in us-east-1."""
        for name in ("PYROPE_STORE_BACKEND", "AWS_REGION", "AWS_DYNAMODB_ENDPOINT"):
            monkeypatch.delenv(name, raising=False)

        config = PyropeConfig.from_env()

        assert config.store_backend == StoreBackend.DYNAMODB
        assert config.dynamodb.region == "us-east-1"
        assert config.dynamodb.endpoint_url is None

    def test_from_env_memory_backend(self, monkeypatch):
        """The backend is chosen by PYROPE_STORE_BACKEND."""
        monkeypatch.setenv("PYROPE_STORE_BACKEND", "MEMORY")

        assert PyropeConfig.from_env().store_backend == StoreBackend.MEMORY

    def test_invalid_backend(self, monkeypatch):
        """An unknown backend is rejected."""
        monkeypatch.setenv("PYROPE_STORE_BACKEND", "cassandra")

        with pytest.raises(ValueError, match="Invalid PYROPE_STORE_BACKEND"):
            PyropeConfig.from_env()

    def test_validate_batch_size(self):
        """Batch size must fit a single BatchWriteItem call."""
        config = PyropeConfig(tables=TableConfig(batch_size=26))

        with pytest.raises(ValueError, match="PYROPE_BATCH_SIZE"):
            config.validate()

    def test_validate_timeout(self):
        """Timeouts must be positive."""
        config = PyropeConfig(dynamodb=DynamoDBConfig(timeout_seconds=0))

        with pytest.raises(ValueError, match="DYNAMODB_TIMEOUT_SECONDS"):
            config.validate()

    def test_log_config_hides_secrets(self, caplog):
        """Logged configuration never contains credentials."""
        config = PyropeConfig(
            dynamodb=DynamoDBConfig(access_key_id="AKIA123", secret_access_key="s3cr3t")
        )

        with caplog.at_level(logging.INFO, logger="pyrope.config"):
            config.log_config()

        record = caplog.records[-1]
        assert record.static_credentials is True
        assert "s3cr3t" not in str(record.__dict__)
        assert "AKIA123" not in str(record.__dict__)
