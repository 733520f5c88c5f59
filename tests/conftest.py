"""
Shared fixtures for the profiling tests.

Databases are plain SQLite files: DDL first (so primary keys, foreign keys and
declared types are exact), then pandas DataFrames appended with ``to_sql``.
"""

import sqlite3
from contextlib import contextmanager

import pytest

from profiling_framework.core.database import QueryRunner, create_profiling_engine
from profiling_framework.core.dialects import SQLiteDialect


def create_sqlite_database(db_path, ddl=(), tables=None):
    """Run the DDL statements, then append each DataFrame to its table."""
    conn = sqlite3.connect(str(db_path))
    try:
        for statement in ddl:
            conn.execute(statement)
        for name, frame in (tables or {}).items():
            frame.to_sql(name, conn, if_exists='append', index=False)
        conn.commit()
    finally:
        conn.close()
    return str(db_path)


@pytest.fixture(scope="session")
def make_database(tmp_path_factory):
    """Factory building a SQLite file under a fresh temp directory."""
    def _make(name, ddl=(), tables=None):
        db_path = tmp_path_factory.mktemp("db") / f"{name}.db"
        return create_sqlite_database(db_path, ddl, tables)
    return _make


@pytest.fixture
def open_runner():
    """Factory opening a QueryRunner on a SQLite file; engines are disposed after the test."""
    engines = []

    @contextmanager
    def _open(db_path, **kwargs):
        engine = create_profiling_engine(f"sqlite:///{db_path}")
        engines.append(engine)
        with engine.connect() as connection:
            connection = connection.execution_options(isolation_level="AUTOCOMMIT")
            yield QueryRunner(connection, SQLiteDialect(), **kwargs)

    yield _open

    for engine in engines:
        engine.dispose()
