"""
Table metadata read through the SQLAlchemy inspector.

Column lists, primary keys and unique indexes are read through
``sqlalchemy.inspect`` so the same code serves PostgreSQL and SQLite.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy.exc import CompileError

from profiling_framework.core.database import QueryRunner
from profiling_framework.core.exceptions import TableNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ColumnInfo:
    """Column metadata as declared in the database."""
    name: str
    data_type: str
    nullable: bool = True
    is_primary_key: bool = False

    def to_dict(self):
        return {
            "name": self.name,
            "data_type": self.data_type,
            "nullable": self.nullable,
            "is_primary_key": self.is_primary_key,
        }


@dataclass
class IndexInfo:
    primary_key_columns: List[str]
    has_unique_index: bool

    @property
    def primary_key_column(self) -> Optional[str]:
        """Single-column primary key, if that is what the table has."""
        if len(self.primary_key_columns) == 1:
            return self.primary_key_columns[0]
        return None


def type_name(column_type: Any, dialect: Any = None) -> str:
    """Render a reflected SQLAlchemy type as its SQL name."""
    try:
        return column_type.compile(dialect=dialect)
    except CompileError:
        logger.debug(f"Could not compile type {column_type!r}, using class name")
        return type(column_type).__name__.upper()


def ensure_table_exists(runner: QueryRunner, schema: str, table: str) -> None:
    """Raise TableNotFoundError unless the table exists."""
    exists = runner.inspect(
        f"has_table {schema}.{table}",
        lambda inspector: inspector.has_table(table, schema=schema)
    )
    if not exists:
        raise TableNotFoundError(schema, table)


def read_columns(runner: QueryRunner, schema: str, table: str) -> List[ColumnInfo]:
    """Columns of a table in ordinal order, with primary key flags."""
    dialect = runner.connection.dialect

    def operation(inspector):
        pk = inspector.get_pk_constraint(table, schema=schema) or {}
        pk_columns = set(pk.get("constrained_columns") or [])
        return [
            ColumnInfo(
                name=column["name"],
                data_type=type_name(column["type"], dialect),
                nullable=bool(column.get("nullable", True)),
                is_primary_key=column["name"] in pk_columns,
            )
            for column in inspector.get_columns(table, schema=schema)
        ]

    return runner.inspect(f"columns {schema}.{table}", operation)


def read_index_info(runner: QueryRunner, schema: str, table: str) -> IndexInfo:
    """Primary key columns and whether any unique index exists (the PK counts)."""
    def operation(inspector):
        pk = inspector.get_pk_constraint(table, schema=schema) or {}
        pk_columns = list(pk.get("constrained_columns") or [])
        indexes = inspector.get_indexes(table, schema=schema)
        has_unique = bool(pk_columns) or any(index.get("unique") for index in indexes)
        return IndexInfo(primary_key_columns=pk_columns, has_unique_index=has_unique)

    return runner.inspect(f"indexes {schema}.{table}", operation)
