"""
Database dialect capabilities.

The profiler generates SQL for two database kinds. PostgreSQL is the primary
target and uses its catalog statistics, TABLESAMPLE and ordered-set
aggregates. SQLite covers local files and falls back to portable constructs.
Anything else is rejected up front.
"""

import logging
import time
from contextlib import contextmanager
from typing import ContextManager, Optional

from profiling_framework.core.cancellation import CancellationToken
from profiling_framework.core.constants import DEFAULT_SCHEMAS, SQLITE_PROGRESS_STEPS
from profiling_framework.core.exceptions import UnsupportedDatabaseError

logger = logging.getLogger(__name__)

# SQLSTATE raised by PostgreSQL when statement_timeout fires or a query is cancelled
PG_QUERY_CANCELED = "57014"


class StatementGuard:
    """Per-statement timeout bookkeeping shared between a guard and the runner."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout
        self.timed_out = False


class SqlDialect:
    """Base dialect: capability flags and dialect-specific SQL fragments."""

    name: str = ""
    row_identity: str = ""
    supports_tablesample: bool = False
    supports_percentile_cont: bool = False
    supports_table_statistics: bool = False

    @property
    def default_schema(self) -> str:
        return DEFAULT_SCHEMAS[self.name]

    def random_function(self) -> str:
        return "random()"

    def float_cast(self, expression: str) -> str:
        return f"CAST({expression} AS FLOAT)"

    def text_cast(self, expression: str) -> str:
        return f"CAST({expression} AS TEXT)"

    def month_bucket(self, expression: str) -> str:
        raise NotImplementedError

    def estimated_size_query(self) -> Optional[str]:
        """SQL returning the table size in bytes, bound with ``:relation``."""
        return None

    def is_timeout_error(self, error: Exception) -> bool:
        return False

    def statement_guard(
        self,
        connection,
        guard: StatementGuard,
        cancel_token: Optional[CancellationToken] = None
    ) -> ContextManager[StatementGuard]:
        """Context manager enforcing the guard's timeout and the cancel token."""
        raise NotImplementedError


class PostgreSQLDialect(SqlDialect):
    """PostgreSQL: server-side statement_timeout and driver-level cancel."""

    name = "postgresql"
    row_identity = "ctid"
    supports_tablesample = True
    supports_percentile_cont = True
    supports_table_statistics = True

    def month_bucket(self, expression: str) -> str:
        return f"TO_CHAR(DATE_TRUNC('month', {expression}), 'YYYY-MM')"

    def estimated_size_query(self) -> Optional[str]:
        return "SELECT pg_total_relation_size(CAST(:relation AS regclass)) AS size_bytes"

    def is_timeout_error(self, error: Exception) -> bool:
        original = getattr(error, "orig", None)
        return getattr(original, "pgcode", None) == PG_QUERY_CANCELED

    @contextmanager
    def statement_guard(self, connection, guard, cancel_token=None):
        timeout_ms = max(1, int(guard.timeout * 1000))
        connection.exec_driver_sql(f"SET statement_timeout = {timeout_ms}")

        handle = None
        if cancel_token is not None:
            dbapi_connection = connection.connection.dbapi_connection
            handle = cancel_token.register(dbapi_connection.cancel)
        try:
            yield guard
        finally:
            if handle is not None:
                cancel_token.unregister(handle)


class SQLiteDialect(SqlDialect):
    """SQLite: progress handler enforces both timeout and cancellation."""

    name = "sqlite"
    row_identity = "rowid"

    def month_bucket(self, expression: str) -> str:
        return f"strftime('%Y-%m', {expression})"

    @contextmanager
    def statement_guard(self, connection, guard, cancel_token=None):
        dbapi_connection = connection.connection.dbapi_connection

        def progress_handler() -> int:
            if cancel_token is not None and cancel_token.is_cancelled:
                return 1
            if time.monotonic() > guard.deadline:
                guard.timed_out = True
                return 1
            return 0

        dbapi_connection.set_progress_handler(progress_handler, SQLITE_PROGRESS_STEPS)
        try:
            yield guard
        finally:
            dbapi_connection.set_progress_handler(None, SQLITE_PROGRESS_STEPS)


DIALECTS = {
    "postgresql": PostgreSQLDialect,
    "sqlite": SQLiteDialect,
}


def get_dialect(db_type: str) -> SqlDialect:
    """
    Return the dialect for a database kind.

    Raises:
        UnsupportedDatabaseError: If the kind has no dialect
    """
    dialect_class = DIALECTS.get((db_type or "").lower())
    if dialect_class is None:
        raise UnsupportedDatabaseError(db_type, supported=sorted(DIALECTS))
    return dialect_class()
