"""
Table profiling engine.

Entry point that wires the analyzers together for one request. Each public
method borrows a single connection from the SQLAlchemy pool, runs its
statements sequentially under per-statement timeouts and returns a freshly
built result.

Failure handling follows the exception severities:
    - FATAL (unsupported database, invalid identifier) fails before any query
    - CRITICAL (timeout, lost connection, missing table, cancellation)
      propagates and no partial result is returned
    - RECOVERABLE failures of a single column, sub-analysis or column pair
      are logged, and the unit is omitted from the result
    - catalog column names outside the identifier allowlist are skipped
      like a failed column; caller-supplied names still fail fast
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

import pandas as pd
from sqlalchemy.engine import Engine

from profiling_framework.core.cancellation import CancellationToken
from profiling_framework.core.config import ProfilerConfig
from profiling_framework.core.constants import CONNECT_TIMEOUT
from profiling_framework.core.database import QueryRunner, create_profiling_engine, db_type_of
from profiling_framework.core.dialects import get_dialect
from profiling_framework.core.exceptions import InvalidIdentifierError, ProfilerError, ProfilingException
from profiling_framework.core.sql_utils import (
    SQLIdentifierValidator,
    create_safe_count_query,
    qualified_table_name,
    quote_identifier,
)
from profiling_framework.profiler.column_classifier import has_id_hint, is_numeric_type, is_text_type
from profiling_framework.profiler.column_profiler import ColumnProfiler, run_guarded
from profiling_framework.profiler.outlier_detector import OutlierDetector
from profiling_framework.profiler.pattern_matcher import PatternMatcher
from profiling_framework.profiler.profile_result import (
    ColumnProfile,
    OutlierSet,
    RelationshipMetrics,
    TableGeneralMetrics,
    TableProfile,
)
from profiling_framework.profiler.relationship_analyzer import RelationshipAnalyzer
from profiling_framework.profiler.sampling_planner import (
    SampleQuery,
    SamplingPlanner,
    SamplingStrategy,
    build_sample_query,
)
from profiling_framework.profiler.table_metadata import ColumnInfo, ensure_table_exists, read_columns
from profiling_framework.schema.discovery import SchemaDiscoverer, SchemaSnapshot

logger = logging.getLogger(__name__)


def usable_columns(columns: List[ColumnInfo], context: str) -> Tuple[List[ColumnInfo], Dict[str, str]]:
    """
    Split catalog columns into those usable in generated SQL and the rest.

    Catalog names are not caller input, so a name outside the identifier
    allowlist skips that column instead of failing the table.
    """
    usable = []
    rejected: Dict[str, str] = {}
    for column in columns:
        try:
            SQLIdentifierValidator.validate_identifier(column.name, "column")
        except InvalidIdentifierError as e:
            logger.warning(f"Skipping column {context}.{column.name}: {e.message}")
            rejected[column.name] = e.message
            continue
        usable.append(column)
    return usable, rejected


def wants_pattern_analysis(profile: ColumnProfile) -> bool:
    """Text-typed columns, whatever their classification (unique emails are UniqueId)."""
    return is_text_type(profile.data_type)


def wants_outlier_analysis(profile: ColumnProfile) -> bool:
    """Numeric-typed columns that are not identifiers."""
    return is_numeric_type(profile.data_type) and not has_id_hint(profile.column_name)


class TableProfilingEngine:
    """
    Facade over the sampling planner, column profiler, outlier detector,
    pattern matcher, relationship analyzer and schema discoverer.

    Example:
        >>> engine = TableProfilingEngine.from_connection_string("sqlite:///shop.db")
        >>> profile = engine.collect_basic_metrics("orders")
        >>> print(profile.general.total_rows)
    """

    def __init__(self, engine: Engine, config: Optional[ProfilerConfig] = None):
        """
        Args:
            engine: SQLAlchemy engine (the caller keeps ownership)
            config: Profiler settings (defaults when omitted)
        """
        self.engine = engine
        self.config = config or ProfilerConfig()
        self.db_type = db_type_of(engine)
        self.dialect = get_dialect(self.db_type)
        self.pattern_matcher = PatternMatcher(self.config.pattern_rules, self.config.pattern_sample_size)

    @classmethod
    def from_connection_string(cls, connection_string: str, config: Optional[ProfilerConfig] = None,
                               connect_timeout: int = CONNECT_TIMEOUT) -> "TableProfilingEngine":
        return cls(create_profiling_engine(connection_string, connect_timeout), config)

    def dispose(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def _runner(self, cancel_token: Optional[CancellationToken] = None) -> Iterator[QueryRunner]:
        """Borrow one AUTOCOMMIT connection for the duration of a request."""
        with self.engine.connect() as connection:
            connection = connection.execution_options(isolation_level="AUTOCOMMIT")
            yield QueryRunner(
                connection,
                self.dialect,
                cancel_token=cancel_token,
                metadata_timeout=self.config.metadata_timeout,
                scan_timeout=self.config.scan_timeout,
            )

    def _resolve_schema(self, schema: Optional[str]) -> str:
        return schema or self.config.schema or self.dialect.default_schema

    def _prepare(self, runner: QueryRunner, table: str, schema: Optional[str]) -> Tuple[str, List[ColumnInfo]]:
        schema = self._resolve_schema(schema)
        # Invalid identifiers fail here, before any statement runs
        qualified_table_name(schema, table)
        ensure_table_exists(runner, schema, table)
        return schema, read_columns(runner, schema, table)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def plan_sampling(self, table: str, schema: Optional[str] = None,
                      cancel_token: Optional[CancellationToken] = None) -> SamplingStrategy:
        """Choose the sampling strategy for a table."""
        with self._runner(cancel_token) as runner:
            schema, _ = self._prepare(runner, table, schema)
            return SamplingPlanner(runner).plan(schema, table)

    def sample_query(self, table: str, strategy: SamplingStrategy,
                     schema: Optional[str] = None) -> SampleQuery:
        """Scan query for a previously planned strategy."""
        schema = self._resolve_schema(schema)
        return build_sample_query(self.dialect, schema, table, strategy)

    def fetch_sample(self, table: str, strategy: Optional[SamplingStrategy] = None,
                     schema: Optional[str] = None,
                     cancel_token: Optional[CancellationToken] = None) -> pd.DataFrame:
        """Rows of the planned sample (planned here when no strategy is given)."""
        with self._runner(cancel_token) as runner:
            schema, _ = self._prepare(runner, table, schema)
            planner = SamplingPlanner(runner)
            return planner.fetch_sample(schema, table, strategy or planner.plan(schema, table))

    def collect_basic_metrics(self, table: str, schema: Optional[str] = None,
                              cancel_token: Optional[CancellationToken] = None) -> TableProfile:
        """
        Profile every column of a table plus table-wide metrics and relationships.

        Columns whose base counts fail, or whose catalog name cannot be used
        in generated SQL, are listed in ``skipped_columns``; the profile then
        reports ``is_partial``.
        """
        start = time.time()
        with self._runner(cancel_token) as runner:
            schema, columns = self._prepare(runner, table, schema)
            usable, rejected = usable_columns(columns, f"{schema}.{table}")
            logger.info(f"Collecting basic metrics for {schema}.{table} ({len(columns)} columns)")

            planner = SamplingPlanner(runner)
            strategy = planner.plan(schema, table)
            sample_query = planner.sample_query(schema, table, strategy)

            profiles, skipped = self._profile_columns(runner, schema, table, usable)
            skipped.update(rejected)
            general = self._general_metrics(runner, schema, table, columns, profiles,
                                            scan_duplicates=not rejected)
            relationships = RelationshipAnalyzer(runner, self.config.correlation_sample_size).analyze(
                schema, table, usable, sample_query
            )

        profile = TableProfile(
            schema_name=schema,
            table_name=table,
            collected_at=datetime.now(timezone.utc),
            columns=profiles,
            relationships=relationships,
            general=general,
            sampling_strategy=strategy,
            processing_seconds=time.time() - start,
            skipped_columns=skipped,
        )
        logger.info(
            f"Profiled {schema}.{table} in {profile.processing_seconds:.2f}s "
            f"({len(profiles)} columns, {len(skipped)} skipped)"
        )
        return profile

    def analyze_table_patterns(self, table: str, schema: Optional[str] = None,
                               cancel_token: Optional[CancellationToken] = None) -> List[ColumnProfile]:
        """
        Column profiles with pattern conformity for text columns and the
        first outlier page for numeric columns.

        Every column of the table is returned in ordinal order. A column that
        could not be profiled comes back empty with ``base_counts`` in its
        ``skipped_analyses``.
        """
        with self._runner(cancel_token) as runner:
            schema, columns = self._prepare(runner, table, schema)
            usable, _ = usable_columns(columns, f"{schema}.{table}")
            planner = SamplingPlanner(runner)
            sample_query = planner.sample_query(schema, table, planner.plan(schema, table))

            profiles, _ = self._profile_columns(runner, schema, table, usable)
            detector = OutlierDetector(runner)

            for profile in profiles:
                context = f"{schema}.{table}.{profile.column_name}"
                if profile.filled_count == 0:
                    continue
                if wants_pattern_analysis(profile):
                    matches = run_guarded(
                        profile, "pattern_matches", context,
                        lambda p=profile: self.pattern_matcher.analyze_column(
                            runner, schema, table, p.column_name, sample_query
                        )
                    )
                    profile.pattern_matches = matches or []
                elif wants_outlier_analysis(profile):
                    profile.outliers = run_guarded(
                        profile, "outliers", context,
                        lambda p=profile: detector.analyze(
                            schema, table, p.column_name, 0, self.config.outlier_page_size
                        )
                    )

        by_name = {p.column_name: p for p in profiles}
        return [
            by_name[c.name] if c.name in by_name
            else ColumnProfile(c.name, c.data_type, skipped_analyses=["base_counts"])
            for c in columns
        ]

    def analyze_table_relationships(self, table: str, schema: Optional[str] = None,
                                    cancel_token: Optional[CancellationToken] = None) -> RelationshipMetrics:
        """Status/date consistency and numeric correlations for a table."""
        with self._runner(cancel_token) as runner:
            schema, columns = self._prepare(runner, table, schema)
            usable, _ = usable_columns(columns, f"{schema}.{table}")
            planner = SamplingPlanner(runner)
            sample_query = planner.sample_query(schema, table, planner.plan(schema, table))

            return RelationshipAnalyzer(runner, self.config.correlation_sample_size).analyze(
                schema, table, usable, sample_query
            )

    def analyze_column_outliers(self, table: str, column: str, page: int = 0,
                                page_size: Optional[int] = None, schema: Optional[str] = None,
                                cancel_token: Optional[CancellationToken] = None) -> OutlierSet:
        """One page of 3-sigma outliers for a numeric column."""
        page_size = self.config.outlier_page_size if page_size is None else page_size
        if page < 0:
            raise ValueError(f"page must be >= 0, got {page}")
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")

        quote_identifier(column, "column")
        with self._runner(cancel_token) as runner:
            schema, columns = self._prepare(runner, table, schema)
            if column not in {c.name for c in columns}:
                raise ProfilerError(
                    f"Column '{column}' not found in {schema}.{table}",
                    operation="outliers", column=column
                )
            return OutlierDetector(runner).analyze(schema, table, column, page, page_size)

    def discover_schema(self, schema: Optional[str] = None,
                        cancel_token: Optional[CancellationToken] = None) -> SchemaSnapshot:
        """Tables, declared foreign keys and inferred relations of the database."""
        with self._runner(cancel_token) as runner:
            return SchemaDiscoverer(runner).discover(schema)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _profile_columns(self, runner: QueryRunner, schema: str, table: str,
                         columns: List[ColumnInfo]) -> Tuple[List[ColumnProfile], Dict[str, str]]:
        profiler = ColumnProfiler(runner, self.config.top_values_limit, self.config.histogram_buckets)
        profiles = []
        skipped: Dict[str, str] = {}

        for column in columns:
            runner.check_cancelled(f"profiling {schema}.{table}.{column.name}")
            try:
                profiles.append(profiler.profile(schema, table, column))
            except ProfilingException as e:
                if not e.is_recoverable:
                    raise
                logger.warning(f"Skipping column {schema}.{table}.{column.name}: {e.message}")
                skipped[column.name] = e.message
        return profiles, skipped

    def _general_metrics(self, runner: QueryRunner, schema: str, table: str,
                         columns: List[ColumnInfo], profiles: List[ColumnProfile],
                         scan_duplicates: bool = True) -> TableGeneralMetrics:
        source = qualified_table_name(schema, table)
        total_rows = int(runner.scalar(create_safe_count_query(table, schema)) or 0)

        total_cells = sum(p.total_rows for p in profiles)
        filled_cells = sum(p.filled_count for p in profiles)
        general = TableGeneralMetrics(
            total_rows=total_rows,
            total_columns=len(columns),
            columns_with_nulls=[p.column_name for p in profiles if p.null_count > 0],
            overall_completeness=(filled_cells / total_cells * 100) if total_cells else 100.0,
        )

        size_query = self.dialect.estimated_size_query()
        if size_query:
            try:
                size = runner.scalar(size_query, {"relation": f'"{schema}"."{table}"'})
                general.estimated_size_bytes = int(size) if size is not None else None
            except ProfilingException as e:
                if not e.is_recoverable:
                    raise
                logger.warning(f"Estimated size unavailable for {schema}.{table}: {e.message}")

        if not scan_duplicates:
            # Rows cannot be compared on a subset of their columns
            logger.warning(f"Duplicate scan skipped for {schema}.{table}: some column names are unusable")
        elif columns:
            column_list = ", ".join(quote_identifier(c.name, "column") for c in columns)
            try:
                duplicates = runner.scalar(
                    f"SELECT COALESCE(SUM(dup_count - 1), 0) FROM ("
                    f"SELECT COUNT(*) AS dup_count FROM {source} GROUP BY {column_list} "
                    f"HAVING COUNT(*) > 1) AS duplicate_groups",
                    timeout=runner.scan_timeout
                )
                general.duplicate_rows = int(duplicates or 0)
            except ProfilingException as e:
                if not e.is_recoverable:
                    raise
                logger.warning(f"Duplicate scan failed for {schema}.{table}: {e.message}")

        return general
