"""
Cross-column relationship signals within one table.

Two checks run over the column set:

Status/date consistency
    A flag column in its active state ("true", "1", "sim", "ativo", ...)
    usually implies that a related date column is filled (``is_active`` and
    ``activated_at``). Active rows with a null date are counted as
    inconsistent.

Numeric correlation
    Pearson's r for every unordered pair of numeric-typed columns, from a
    bounded sample of rows where both values are present. Candidates are
    chosen by declared type, so high-cardinality measures are included;
    keys, id-named columns and status flags are left out.

Each pair is analyzed independently; a recoverable failure is logged and
recorded in ``RelationshipMetrics.skipped_pairs`` without affecting the
other pairs.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from profiling_framework.core.constants import (
    ACTIVE_FLAG_TOKENS,
    CORRELATION_SAMPLE_SIZE,
    MAX_ACTIVE_VALUES,
    MIN_COMMON_RADICAL_LENGTH,
    MIN_CORRELATION_SAMPLE,
    MIN_REPORTED_CORRELATION,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.exceptions import ProfilingException
from profiling_framework.core.sql_utils import qualified_table_name, quote_identifier
from profiling_framework.profiler.column_classifier import (
    has_id_hint,
    is_date_column,
    is_numeric_type,
    is_status_column,
)
from profiling_framework.profiler.pattern_matcher import normalize_name
from profiling_framework.profiler.profile_result import (
    Correlation,
    RelationshipMetrics,
    StatusDateRelationship,
)
from profiling_framework.profiler.sampling_planner import SampleQuery
from profiling_framework.profiler.table_metadata import ColumnInfo

logger = logging.getLogger(__name__)

STATUS_PREFIXES = ("st_", "fl_", "is_", "has_")
DATE_PREFIXES = ("dt_", "data_", "date_", "_at", "_date")
DEFAULT_RADICAL = "common"


def longest_common_substring(first: str, second: str) -> str:
    """Longest substring of ``first`` that also occurs in ``second`` (first found wins ties)."""
    longest = ""
    for i in range(len(first)):
        for j in range(i + len(longest) + 1, len(first) + 1):
            candidate = first[i:j]
            if candidate not in second:
                break
            longest = candidate
    return longest


def common_radical(status_column: str, date_column: str) -> str:
    """
    Shared name fragment of a status and a date column.

    >>> common_radical("fl_ativo", "dt_ativacao")
    'ativ'
    """
    status_name = normalize_name(status_column)
    for prefix in STATUS_PREFIXES:
        status_name = status_name.replace(prefix, "")

    date_name = normalize_name(date_column)
    for prefix in DATE_PREFIXES:
        date_name = date_name.replace(prefix, "")

    radical = longest_common_substring(status_name, date_name)
    if len(radical) < MIN_COMMON_RADICAL_LENGTH:
        return DEFAULT_RADICAL
    return radical


def pearson(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """
    Pearson correlation from sums of centred products.

    Returns None with fewer than MIN_CORRELATION_SAMPLE pairs or when either
    side has zero variance. The result is clamped to [-1, 1].
    """
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if xs.size != ys.size:
        raise ValueError(f"Sample sizes differ: {xs.size} != {ys.size}")
    if xs.size < MIN_CORRELATION_SAMPLE:
        return None

    dx = xs - xs.mean()
    dy = ys - ys.mean()
    sxx = float(np.sum(dx * dx))
    syy = float(np.sum(dy * dy))
    if sxx == 0 or syy == 0:
        return None

    r = float(np.sum(dx * dy)) / np.sqrt(sxx * syy)
    return float(np.clip(r, -1.0, 1.0))


def is_correlation_candidate(column: ColumnInfo) -> bool:
    """Numeric-typed measure: not a key, not id-named, not a status flag."""
    return (
        is_numeric_type(column.data_type)
        and not column.is_primary_key
        and not has_id_hint(column.name)
        and not is_status_column(column.name, column.data_type)
    )


def active_token_params() -> Dict[str, str]:
    return {f"active_{i}": token for i, token in enumerate(ACTIVE_FLAG_TOKENS)}


class RelationshipAnalyzer:
    """Status/date consistency and numeric correlations for one table."""

    def __init__(self, runner: QueryRunner, correlation_sample_size: int = CORRELATION_SAMPLE_SIZE):
        self.runner = runner
        self.dialect = runner.dialect
        self.correlation_sample_size = correlation_sample_size

    def analyze(
        self,
        schema: str,
        table: str,
        columns: List[ColumnInfo],
        sample_query: Optional[SampleQuery] = None
    ) -> RelationshipMetrics:
        """
        Run both relationship checks.

        Args:
            schema: Schema name
            table: Table name
            columns: Table columns
            sample_query: Planned sample used as the correlation source
        """
        metrics = RelationshipMetrics()
        metrics.status_date_relationships = self.status_date_relationships(schema, table, columns, metrics)

        numeric_columns = [c.name for c in columns if is_correlation_candidate(c)]
        metrics.correlations = self.correlations(schema, table, numeric_columns, metrics, sample_query)

        logger.info(
            f"Relationships {schema}.{table}: {len(metrics.status_date_relationships)} status/date, "
            f"{len(metrics.correlations)} correlations, {len(metrics.skipped_pairs)} skipped pairs"
        )
        return metrics

    # ------------------------------------------------------------------
    # Status / date
    # ------------------------------------------------------------------

    def status_date_relationships(self, schema: str, table: str, columns: List[ColumnInfo],
                                  metrics: RelationshipMetrics) -> List[StatusDateRelationship]:
        status_columns = [c for c in columns if is_status_column(c.name, c.data_type)]
        date_columns = [c for c in columns if is_date_column(c.name, c.data_type)]
        logger.debug(
            f"{schema}.{table}: {len(status_columns)} status columns, {len(date_columns)} date columns"
        )

        relationships = []
        for status_column in status_columns:
            for date_column in date_columns:
                if status_column.name == date_column.name:
                    continue
                try:
                    relationship = self.check_status_date(schema, table, status_column.name, date_column.name)
                except ProfilingException as e:
                    if not e.is_recoverable:
                        raise
                    pair = f"{status_column.name}<->{date_column.name}"
                    logger.warning(f"Skipping status/date pair {schema}.{table} {pair}: {e.message}")
                    metrics.skipped_pairs.append(pair)
                    continue
                if relationship is not None:
                    relationships.append(relationship)
        return relationships

    def check_status_date(self, schema: str, table: str, status_column: str,
                          date_column: str) -> Optional[StatusDateRelationship]:
        source = qualified_table_name(schema, table)
        status = quote_identifier(status_column, "column")
        date = quote_identifier(date_column, "column")
        params = active_token_params()
        active = (
            f"LOWER({self.dialect.text_cast(status)}) IN "
            f"({', '.join(':' + name for name in params)})"
        )

        row = self.runner.fetch_one(
            f"SELECT SUM(CASE WHEN {active} THEN 1 ELSE 0 END) AS active_count, "
            f"SUM(CASE WHEN {active} AND {date} IS NULL THEN 1 ELSE 0 END) AS inconsistent_count "
            f"FROM {source}",
            params,
            timeout=self.runner.scan_timeout
        ) or {}

        active_count = int(row.get("active_count") or 0)
        inconsistent_count = int(row.get("inconsistent_count") or 0)
        if active_count <= 0 or inconsistent_count <= 0:
            return None

        value_rows = self.runner.fetch_all(
            f"SELECT DISTINCT {self.dialect.text_cast(status)} AS status_value FROM {source} "
            f"WHERE {active} LIMIT :value_limit",
            {**params, "value_limit": MAX_ACTIVE_VALUES}
        )
        active_values = [str(r["status_value"]) for r in value_rows if r["status_value"]]

        logger.debug(
            f"Status/date {schema}.{table} {status_column}<->{date_column}: "
            f"{inconsistent_count}/{active_count} inconsistent"
        )
        return StatusDateRelationship(
            status_column=status_column,
            date_column=date_column,
            inconsistent_count=inconsistent_count,
            active_count=active_count,
            active_values=active_values,
            common_radical=common_radical(status_column, date_column),
        )

    # ------------------------------------------------------------------
    # Correlations
    # ------------------------------------------------------------------

    def correlations(self, schema: str, table: str, numeric_columns: List[str],
                     metrics: RelationshipMetrics,
                     sample_query: Optional[SampleQuery] = None) -> List[Correlation]:
        if len(numeric_columns) < 2:
            return []

        correlations = []
        for i, first in enumerate(numeric_columns):
            for second in numeric_columns[i + 1:]:
                try:
                    correlation = self.correlate(schema, table, first, second, sample_query)
                except ProfilingException as e:
                    if not e.is_recoverable:
                        raise
                    pair = f"{first}<->{second}"
                    logger.warning(f"Skipping correlation {schema}.{table} {pair}: {e.message}")
                    metrics.skipped_pairs.append(pair)
                    continue
                if correlation is not None:
                    correlations.append(correlation)

        correlations.sort(key=lambda c: abs(c.coefficient), reverse=True)
        return correlations

    def correlate(self, schema: str, table: str, first: str, second: str,
                  sample_query: Optional[SampleQuery] = None) -> Optional[Correlation]:
        x = quote_identifier(first, "column")
        y = quote_identifier(second, "column")
        params = {"correlation_limit": self.correlation_sample_size}
        if sample_query is not None:
            source = sample_query.as_subquery()
            params.update(sample_query.params)
        else:
            source = qualified_table_name(schema, table)

        rows = self.runner.fetch_all(
            f"SELECT {self.dialect.float_cast(x)} AS x, {self.dialect.float_cast(y)} AS y "
            f"FROM {source} WHERE {x} IS NOT NULL AND {y} IS NOT NULL LIMIT :correlation_limit",
            params,
            timeout=self.runner.scan_timeout
        )

        coefficient = pearson([r["x"] for r in rows], [r["y"] for r in rows])
        if coefficient is None or abs(coefficient) <= MIN_REPORTED_CORRELATION:
            return None
        return Correlation(
            column1=first,
            column2=second,
            coefficient=round(coefficient, 3),
            sample_size=len(rows),
        )
