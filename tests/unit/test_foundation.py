"""
Foundation Tests for FeedMill
============================

Test suite for core foundation components: database connection pooling,
logging and the exception hierarchy.
"""

import json
import logging
import logging.handlers
import sqlite3

import pytest

from feedmill.database.connection import DatabaseConnection
from feedmill.utils.logging import (
    ColoredConsoleFormatter,
    PerformanceLogger,
    StructuredFormatter,
    configure_application_logging,
    get_logger_for_component,
    setup_logger,
)
from feedmill.utils.exceptions import (
    CacheError,
    ConfigurationError,
    DatabaseError,
    ErrorCode,
    FeedFetchError,
    FeedMillError,
    FeedParseError,
    handle_exception,
    is_retryable_error,
)


class TestDatabaseConnection:
    """Test database connection management and pooling."""

    def test_connection_creation(self, tmp_path):
        """Test database connection creation."""
        db_manager = DatabaseConnection(str(tmp_path / "test.db"), pool_size=2)

        with db_manager.get_connection() as conn:
            assert conn.execute("SELECT 1").fetchone()[0] == 1
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

        db_manager.close_all_connections()

    def test_parent_directory_is_created(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "cache.db"
        db_manager = DatabaseConnection(str(db_path))
        assert db_path.parent.is_dir()
        db_manager.close_all_connections()

    def test_connection_pooling(self, tmp_path):
        """Test connection pool management."""
        db_manager = DatabaseConnection(str(tmp_path / "test.db"), pool_size=2)

        with db_manager.get_connection() as first:
            with db_manager.get_connection() as second:
                assert first is not second
                assert db_manager.pool.qsize() == 0

        # Sequential use keeps reusing the pooled connections
        for _ in range(3):
            with db_manager.get_connection() as conn:
                assert conn.execute("SELECT 1").fetchone()[0] == 1

        assert db_manager.pool.qsize() == 2
        db_manager.close_all_connections()

    def test_transaction_management(self, tmp_path):
        """Test transaction commit and rollback on errors."""
        db_manager = DatabaseConnection(str(tmp_path / "test.db"))
        with db_manager.get_connection() as conn:
            conn.execute("CREATE TABLE items (name TEXT)")
            conn.commit()

        with db_manager.transaction() as conn:
            conn.execute("INSERT INTO items VALUES ('kept')")

        with pytest.raises(ValueError):
            with db_manager.transaction() as conn:
                conn.execute("INSERT INTO items VALUES ('discarded')")
                raise ValueError("Test error")

        with db_manager.get_connection() as conn:
            rows = conn.execute("SELECT name FROM items").fetchall()
        assert [row["name"] for row in rows] == ["kept"]
        db_manager.close_all_connections()

    def test_execute_helpers(self, tmp_path):
        db_manager = DatabaseConnection(str(tmp_path / "test.db"))
        db_manager.execute_update("CREATE TABLE items (name TEXT)")
        assert db_manager.execute_update("INSERT INTO items VALUES (?)", ("a",)) == 1
        assert db_manager.execute_one("SELECT COUNT(*) FROM items")[0] == 1
        db_manager.close_all_connections()

    def test_database_info_without_cache_table(self, tmp_path):
        db_manager = DatabaseConnection(str(tmp_path / "test.db"))
        info = db_manager.get_database_info()
        assert info["article_count"] == 0
        assert info["schema_version"] == 0
        db_manager.close_all_connections()

    def test_sqlite_errors_propagate(self, tmp_path):
        db_manager = DatabaseConnection(str(tmp_path / "test.db"))
        with pytest.raises(sqlite3.OperationalError):
            db_manager.execute_one("SELECT * FROM missing_table")
        # Connection went back to the pool
        assert db_manager.pool.qsize() == db_manager.pool_size
        db_manager.close_all_connections()


class TestLogging:
    """Test logging system."""

    def test_logger_setup(self, tmp_path):
        """Test logger configuration with a JSON log file."""
        log_file = tmp_path / "test.log"
        logger = setup_logger(
            name="test_logger",
            level="INFO",
            log_file=str(log_file),
            console=False,
            structured=True,
        )

        logger.info("Test message")
        logger.error("Test error message", extra={"source": "https://a.example"})

        lines = log_file.read_text().splitlines()
        records = [json.loads(line) for line in lines]
        assert [r["message"] for r in records] == ["Test message", "Test error message"]
        assert records[1]["extra"]["source"] == "https://a.example"

    def test_logger_without_handlers_gets_null_handler(self):
        logger = setup_logger(name="test_silent", console=False)
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.NullHandler)

    def test_component_logger(self, caplog):
        """Test component-specific logger."""
        caplog.set_level(logging.INFO)
        logger = get_logger_for_component(
            "test_component", source="https://a.example/feed", article_id="a-1"
        )

        logger.info("Component test message")

        record = caplog.records[-1]
        assert record.name == "feedmill.test_component"
        assert record.component == "test_component"
        assert record.source == "https://a.example/feed"
        assert record.article_id == "a-1"

    def test_configure_application_logging(self, tmp_path):
        log_file = tmp_path / "app.log"
        configure_application_logging(
            log_level="DEBUG", log_file=str(log_file), enable_console=False
        )
        try:
            logger = logging.getLogger("feedmill")
            assert logger.level == logging.DEBUG
            assert any(
                isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers
            )
            assert logging.getLogger("aiohttp").level == logging.WARNING
        finally:
            setup_logger(name="feedmill", console=False)

    def test_formatters(self):
        record = logging.LogRecord("feedmill.x", logging.WARNING, __file__, 1, "hello %s", ("you",), None)
        record.component = "x"

        structured = json.loads(StructuredFormatter().format(record))
        assert structured["message"] == "hello you"
        assert structured["level"] == "WARNING"
        assert structured["extra"] == {"component": "x"}

        console = ColoredConsoleFormatter().format(record)
        assert "WARNING" in console
        assert "hello you" in console

    def test_performance_logger(self, caplog):
        """Test performance logging context manager."""
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("test")
        logger.setLevel(logging.INFO)

        with PerformanceLogger(logger, "test_operation", param1="value1") as perf:
            pass

        assert "Completed test_operation" in caplog.text
        assert perf.duration is not None and perf.duration >= 0

    def test_performance_logger_failure(self, caplog):
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("test")

        with pytest.raises(RuntimeError):
            with PerformanceLogger(logger, "doomed"):
                raise RuntimeError("nope")

        assert "Failed doomed" in caplog.text


class TestExceptions:
    """Test exception handling system."""

    def test_feedmill_error(self):
        """Test FeedMill error creation and serialization."""
        error = FeedMillError(
            message="Test error",
            error_code=ErrorCode.CONFIG_INVALID,
            context={"key": "value"},
            user_message="User-friendly message",
            recoverable=True,
        )

        assert str(error) == "[C001] Test error"
        assert error.user_message == "User-friendly message"
        assert error.recoverable is True

        error_dict = error.to_dict()
        assert error_dict["error_code"] == "C001"
        assert error_dict["context"]["key"] == "value"
        assert error_dict["error_type"] == "FeedMillError"

    def test_specific_errors(self):
        """Test specific error types."""
        db_error = DatabaseError(
            message="Connection failed",
            query="SELECT * FROM Articles",
            error_code=ErrorCode.DATABASE_CONNECTION,
        )
        assert db_error.context["query"] == "SELECT * FROM Articles"
        assert db_error.recoverable

        config_error = ConfigurationError(message="Invalid config", config_key="update_interval")
        assert config_error.context["config_key"] == "update_interval"
        assert config_error.error_code == ErrorCode.CONFIG_INVALID

        fetch_error = FeedFetchError("HTTP 500", feed_url="https://a.example")
        assert fetch_error.context["feed_url"] == "https://a.example"
        assert fetch_error.error_code == ErrorCode.FEED_NETWORK_ERROR

        parse_error = FeedParseError("bad xml", feed_url="https://a.example")
        assert parse_error.error_code == ErrorCode.FEED_PARSE_ERROR

        cache_error = CacheError("disk full", error_code=ErrorCode.DATABASE_TRANSACTION)
        assert isinstance(cache_error, DatabaseError)

    def test_exception_handling(self, caplog):
        """Test exception handling utility."""
        logger = logging.getLogger("test")

        handled_error = handle_exception(
            ValueError("Test value error"),
            logger,
            "test_operation",
            {"context_key": "context_value"},
        )

        assert isinstance(handled_error, FeedMillError)
        assert handled_error.context["operation"] == "test_operation"
        assert handled_error.context["context_key"] == "context_value"
        assert handled_error.context["original_exception_type"] == "ValueError"
        assert "Operation 'test_operation' failed" in caplog.text

    def test_exception_handling_classifies(self):
        logger = logging.getLogger("test")

        network = handle_exception(ConnectionError("reset"), logger, "fetch")
        assert network.error_code == ErrorCode.FEED_NETWORK_ERROR

        missing = handle_exception(FileNotFoundError("feedmill.toml"), logger, "load")
        assert isinstance(missing, ConfigurationError)

        original = CacheError("locked")
        assert handle_exception(original, logger, "write") is original

    def test_retryable_errors(self):
        """Test retryable error detection."""
        assert is_retryable_error(
            FeedMillError(
                message="Network timeout",
                error_code=ErrorCode.FEED_NETWORK_ERROR,
                recoverable=True,
            )
        )
        assert is_retryable_error(CacheError("busy", error_code=ErrorCode.DATABASE_TRANSACTION))
        assert not is_retryable_error(FeedParseError("bad xml", recoverable=False))
        assert not is_retryable_error(ConfigurationError("Invalid input"))
