"""
Sampling strategy selection for large tables.

The planner decides how many rows, and which ones, the sampled analyses
(pattern conformity, correlations) should read. The decision uses only
database-maintained statistics (row estimate, per-column distinct estimate,
null fraction, average width) and index metadata, never a full scan.

Decision table by row count:
    <= 1,000        full scan, every row
    <= 100,000      random sample, max(5,000, 10% of rows)
    <= 1,000,000    systematic sample, 10,000 rows
    >  1,000,000    adaptive sample, 15,000 rows

Planning never fails the caller: any error while reading statistics falls
back to a 1,000-row random sample and the error is kept in the reasons.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from profiling_framework.core.constants import (
    ADAPTIVE_SAMPLE_SIZE,
    ADAPTIVE_TABLESAMPLE_MAX_PERCENT,
    DEFAULT_SYSTEMATIC_INTERVAL,
    FALLBACK_SAMPLE_SIZE,
    FULL_SCAN_MAX_ROWS,
    HIGH_CARDINALITY_MIN_COLUMNS,
    HIGH_CARDINALITY_RATIO,
    HIGH_NULL_FRACTION,
    HIGH_NULL_MIN_COLUMNS,
    MAX_SAMPLE_SIZE,
    RANDOM_SAMPLE_FRACTION,
    RANDOM_SAMPLE_MAX_ROWS,
    RANDOM_SAMPLE_MIN_SIZE,
    REASON_SEPARATOR,
    SYSTEMATIC_SAMPLE_MAX_ROWS,
    SYSTEMATIC_SAMPLE_SIZE,
    SYSTEMATIC_TABLESAMPLE_PERCENT,
    UNIQUE_INDEX_SHRINK_FACTOR,
    UNIQUE_INDEX_SHRINK_THRESHOLD,
    WIDE_COLUMN_BYTES,
    WIDE_COLUMN_MIN_COLUMNS,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.dialects import SqlDialect
from profiling_framework.core.exceptions import AnalysisCancelledError, ProfilerError, ProfilingException
from profiling_framework.core.sql_utils import (
    SQLIdentifierValidator,
    create_safe_count_query,
    create_safe_select_query,
    qualified_table_name,
    quote_identifier,
)
from profiling_framework.profiler.column_classifier import is_numeric_type
from profiling_framework.profiler.table_metadata import IndexInfo, read_columns, read_index_info

logger = logging.getLogger(__name__)


class SamplingMode(Enum):
    FULL_SCAN = "full_scan"
    RANDOM = "random"
    SYSTEMATIC = "systematic"
    ADAPTIVE = "adaptive"


@dataclass
class ColumnStatistic:
    """Planner statistics for one column (from pg_stats on PostgreSQL)."""
    column_name: str
    distinct_values: float = 0.0
    null_fraction: float = 0.0
    average_width: int = 0
    correlation: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_name": self.column_name,
            "distinct_values": self.distinct_values,
            "null_fraction": self.null_fraction,
            "average_width": self.average_width,
            "correlation": self.correlation,
        }


@dataclass
class TableStatistics:
    total_rows: int
    column_statistics: List[ColumnStatistic] = field(default_factory=list)
    size_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "size_bytes": self.size_bytes,
            "column_statistics": [c.to_dict() for c in self.column_statistics],
        }


@dataclass
class SamplingStrategy:
    """
    Chosen sampling mode and size.

    ``reasons`` is an append-only trail: every rule that fired adds an entry,
    nothing is overwritten.
    """
    mode: SamplingMode
    sample_size: int
    reasons: List[str] = field(default_factory=list)
    primary_key_column: Optional[str] = None
    table_stats: Optional[TableStatistics] = None

    def add_reason(self, reason: str) -> None:
        self.reasons.append(reason)

    @property
    def reason(self) -> str:
        return REASON_SEPARATOR.join(self.reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "sample_size": self.sample_size,
            "reason": self.reason,
            "primary_key_column": self.primary_key_column,
            "table_stats": self.table_stats.to_dict() if self.table_stats else None,
        }


@dataclass
class SampleQuery:
    """Generated scan query and its bound parameters."""
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)

    def as_subquery(self, alias: str = "sampled") -> str:
        return f"({self.sql}) AS {alias}"


# ============================================================================
# Strategy decision (pure)
# ============================================================================

def choose_strategy(stats: TableStatistics, index_info: Optional[IndexInfo] = None) -> SamplingStrategy:
    """
    Apply the decision table and the complexity/index adjustments.

    Args:
        stats: Table row estimate and per-column statistics
        index_info: Primary key and unique index information, if known

    Returns:
        SamplingStrategy with its reasons trail
    """
    total_rows = max(0, int(stats.total_rows))

    if total_rows <= FULL_SCAN_MAX_ROWS:
        strategy = SamplingStrategy(SamplingMode.FULL_SCAN, total_rows)
        strategy.add_reason("Small table - full scan")
    elif total_rows <= RANDOM_SAMPLE_MAX_ROWS:
        size = max(RANDOM_SAMPLE_MIN_SIZE, int(total_rows * RANDOM_SAMPLE_FRACTION))
        strategy = SamplingStrategy(SamplingMode.RANDOM, size)
        strategy.add_reason("Medium table - random 10% sample")
    elif total_rows <= SYSTEMATIC_SAMPLE_MAX_ROWS:
        strategy = SamplingStrategy(SamplingMode.SYSTEMATIC, SYSTEMATIC_SAMPLE_SIZE)
        strategy.add_reason(f"Large table - systematic sample of {SYSTEMATIC_SAMPLE_SIZE:,} rows")
    else:
        strategy = SamplingStrategy(SamplingMode.ADAPTIVE, ADAPTIVE_SAMPLE_SIZE)
        strategy.add_reason(f"Very large table - adaptive sample of {ADAPTIVE_SAMPLE_SIZE:,} rows")

    strategy.table_stats = stats
    _adjust_for_complexity(strategy, stats)
    if index_info is not None:
        _adjust_for_indexes(strategy, index_info)
    return strategy


def _adjust_for_complexity(strategy: SamplingStrategy, stats: TableStatistics) -> None:
    columns = stats.column_statistics
    factors = 0

    high_cardinality = sum(
        1 for c in columns if c.distinct_values > stats.total_rows * HIGH_CARDINALITY_RATIO
    )
    if high_cardinality > HIGH_CARDINALITY_MIN_COLUMNS:
        factors += 1
        strategy.add_reason(f"High cardinality ({high_cardinality} columns)")

    high_nulls = sum(1 for c in columns if c.null_fraction > HIGH_NULL_FRACTION)
    if high_nulls > HIGH_NULL_MIN_COLUMNS:
        factors += 1
        strategy.add_reason(f"Many NULLs ({high_nulls} columns)")

    wide = sum(1 for c in columns if c.average_width > WIDE_COLUMN_BYTES)
    if wide > WIDE_COLUMN_MIN_COLUMNS:
        factors += 1
        strategy.add_reason(f"Wide columns ({wide} columns)")

    if factors:
        strategy.sample_size = min(strategy.sample_size * 2, MAX_SAMPLE_SIZE)
        strategy.add_reason(f"Sample size increased to {strategy.sample_size:,} for data complexity")


def _adjust_for_indexes(strategy: SamplingStrategy, index_info: IndexInfo) -> None:
    if index_info.primary_key_columns:
        strategy.primary_key_column = index_info.primary_key_column
        if strategy.mode is SamplingMode.RANDOM:
            strategy.mode = SamplingMode.SYSTEMATIC
            strategy.add_reason("Primary key available - systematic sampling")

    if index_info.has_unique_index and strategy.sample_size > UNIQUE_INDEX_SHRINK_THRESHOLD:
        strategy.sample_size = int(strategy.sample_size * UNIQUE_INDEX_SHRINK_FACTOR)
        strategy.add_reason(f"Reduced to {strategy.sample_size:,} for unique indexes")


def fallback_strategy(error: Exception) -> SamplingStrategy:
    """Safe default used when statistics cannot be read."""
    strategy = SamplingStrategy(SamplingMode.RANDOM, FALLBACK_SAMPLE_SIZE)
    strategy.add_reason(f"Error determining strategy, using fallback: {error}")
    return strategy


def systematic_interval(strategy: SamplingStrategy) -> int:
    """Every n-th key for systematic sampling."""
    if strategy.table_stats is None or strategy.sample_size <= 0:
        return DEFAULT_SYSTEMATIC_INTERVAL
    return max(1, strategy.table_stats.total_rows // strategy.sample_size)


def build_sample_query(dialect: SqlDialect, schema: str, table: str, strategy: SamplingStrategy) -> SampleQuery:
    """
    Generate the scan query for a strategy.

    Identifiers are quoted; limits and intervals are bound parameters.
    TABLESAMPLE percentages are computed here from trusted statistics.
    """
    source = qualified_table_name(schema, table)
    limit = {"sample_limit": int(strategy.sample_size)}

    if strategy.mode is SamplingMode.FULL_SCAN:
        return SampleQuery(create_safe_select_query(table, schema=schema))

    if strategy.mode is SamplingMode.SYSTEMATIC:
        interval = systematic_interval(strategy)
        if strategy.primary_key_column:
            key = quote_identifier(strategy.primary_key_column, "column")
            return SampleQuery(
                f"SELECT * FROM {source} WHERE {key} % :sample_interval = 0 LIMIT :sample_limit",
                {"sample_interval": interval, **limit}
            )
        if dialect.supports_tablesample:
            return SampleQuery(
                f"SELECT * FROM {source} WHERE ctid IN "
                f"(SELECT ctid FROM {source} TABLESAMPLE SYSTEM ({SYSTEMATIC_TABLESAMPLE_PERCENT:g})) "
                f"LIMIT :sample_limit",
                limit
            )
        return SampleQuery(
            f"SELECT * FROM {source} WHERE {dialect.row_identity} % :sample_interval = 0 LIMIT :sample_limit",
            {"sample_interval": interval, **limit}
        )

    if strategy.mode is SamplingMode.ADAPTIVE and dialect.supports_tablesample:
        total_rows = strategy.table_stats.total_rows if strategy.table_stats else 0
        total_rows = total_rows or strategy.sample_size
        percent = min(ADAPTIVE_TABLESAMPLE_MAX_PERCENT, strategy.sample_size * 100.0 / total_rows)
        return SampleQuery(
            f"SELECT * FROM (SELECT *, ROW_NUMBER() OVER (ORDER BY {dialect.random_function()}) AS rn "
            f"FROM {source} TABLESAMPLE SYSTEM ({percent:.2f})) AS adaptive_sample "
            f"WHERE rn <= :sample_limit",
            limit
        )

    return SampleQuery(
        f"SELECT * FROM {source} ORDER BY {dialect.random_function()} LIMIT :sample_limit",
        limit
    )


# ============================================================================
# Planner
# ============================================================================

class SamplingPlanner:
    """Reads table statistics and produces a SamplingStrategy plus its query."""

    def __init__(self, runner: QueryRunner):
        self.runner = runner
        self.dialect = runner.dialect

    def plan(self, schema: str, table: str) -> SamplingStrategy:
        """
        Choose a sampling strategy for a table.

        Only cancellation propagates; every other failure degrades to the
        fallback strategy.
        """
        try:
            stats = self.read_table_statistics(schema, table)
            index_info = read_index_info(self.runner, schema, table)
            strategy = choose_strategy(stats, index_info)

            if strategy.primary_key_column:
                columns = read_columns(self.runner, schema, table)
                numeric_keys = {
                    c.name for c in columns
                    if c.is_primary_key and is_numeric_type(c.data_type)
                    and SQLIdentifierValidator.is_valid(c.name)
                }
                if strategy.primary_key_column not in numeric_keys:
                    strategy.primary_key_column = None
        except AnalysisCancelledError:
            raise
        except ProfilingException as e:
            logger.warning(f"Sampling statistics unavailable for {schema}.{table}: {e.message}")
            return fallback_strategy(e)

        logger.info(
            f"Sampling plan for {schema}.{table}: {strategy.mode.value}, "
            f"{strategy.sample_size:,} rows ({strategy.reason})"
        )
        return strategy

    def read_table_statistics(self, schema: str, table: str) -> TableStatistics:
        if self.dialect.supports_table_statistics:
            return self._read_pg_statistics(schema, table)

        total_rows = self.runner.scalar(create_safe_count_query(table, schema))
        return TableStatistics(total_rows=int(total_rows or 0))

    def _read_pg_statistics(self, schema: str, table: str) -> TableStatistics:
        params = {"schema": schema, "table": table}
        row = self.runner.fetch_one(
            """
            SELECT CAST(c.reltuples AS BIGINT) AS row_count,
                   pg_total_relation_size(c.oid) AS size_bytes
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema AND c.relname = :table
            """,
            params
        )
        if row is None:
            raise ProfilerError(
                f"No catalog entry for {schema}.{table}",
                operation="sampling_statistics"
            )

        total_rows = int(row["row_count"])
        if total_rows < 0:
            # Never analyzed: reltuples is -1 until the first ANALYZE
            total_rows = int(self.runner.scalar(create_safe_count_query(table, schema)) or 0)

        column_rows = self.runner.fetch_all(
            """
            SELECT attname AS column_name, n_distinct, null_frac, avg_width, correlation
            FROM pg_stats
            WHERE schemaname = :schema AND tablename = :table
            """,
            params
        )

        columns = []
        for column_row in column_rows:
            n_distinct = float(column_row["n_distinct"] or 0)
            # Negative n_distinct is a fraction of the row count
            distinct_values = -n_distinct * total_rows if n_distinct < 0 else n_distinct
            columns.append(ColumnStatistic(
                column_name=column_row["column_name"],
                distinct_values=distinct_values,
                null_fraction=float(column_row["null_frac"] or 0),
                average_width=int(column_row["avg_width"] or 0),
                correlation=(
                    float(column_row["correlation"]) if column_row["correlation"] is not None else None
                ),
            ))

        return TableStatistics(total_rows=total_rows, column_statistics=columns,
                               size_bytes=row["size_bytes"])

    def sample_query(self, schema: str, table: str, strategy: SamplingStrategy) -> SampleQuery:
        return build_sample_query(self.dialect, schema, table, strategy)

    def fetch_sample(self, schema: str, table: str, strategy: SamplingStrategy) -> pd.DataFrame:
        """Read the planned sample into a DataFrame under the scan timeout."""
        query = self.sample_query(schema, table, strategy)
        frame = self.runner.read_frame(query.sql, query.params, timeout=self.runner.scan_timeout)
        logger.debug(f"Fetched {len(frame):,} sampled rows from {schema}.{table}")
        return frame
