"""
Per-column profiling against the database.

For each column the profiler computes base counts (nulls, distinct values),
classifies the column, then runs the statistics that apply to its
classification: numeric moments, percentiles and histogram; date range and
monthly timeline; text lengths; boolean split; top values and anomalies.

Every statistic after the base counts is a guarded sub-analysis: a
recoverable failure is logged with its context, the block is left empty and
its name is recorded in ``ColumnProfile.skipped_analyses``. Critical errors
(timeouts, lost connections, cancellation) propagate to the caller.
"""

import logging
import math
from typing import Any, Callable, List

from profiling_framework.core.constants import (
    HISTOGRAM_BINS,
    MAX_TIMELINE_BUCKETS,
    PATTERN_VIOLATION_SEVERITY,
    SUSPICIOUS_FREQUENCY_MIN_FILLED,
    SUSPICIOUS_FREQUENCY_PERCENT,
    TOP_VALUES_LIMIT,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.exceptions import ProfilingException
from profiling_framework.core.sql_utils import qualified_table_name, quote_identifier
from profiling_framework.profiler.cells import Cell, CellKind
from profiling_framework.profiler.column_classifier import classify_column
from profiling_framework.profiler.numeric_summary import NumericColumnSummary
from profiling_framework.profiler.profile_result import (
    BooleanStats,
    ColumnProfile,
    DataQualityAnomaly,
    DateStats,
    NumericStats,
    TextStats,
    TimelineBucket,
    TypeClassification,
    ValueFrequency,
)
from profiling_framework.profiler.table_metadata import ColumnInfo

logger = logging.getLogger(__name__)

# Classifications whose top values carry no information
NO_TOP_VALUES = (TypeClassification.UNIQUE_ID, TypeClassification.DATETIME)


def run_guarded(profile: ColumnProfile, analysis: str, context: str,
                operation: Callable[[], Any]) -> Any:
    """
    Run one sub-analysis for a column.

    Recoverable failures are logged and recorded in
    ``profile.skipped_analyses``; None is returned in that case.
    """
    try:
        return operation()
    except ProfilingException as e:
        if not e.is_recoverable:
            raise
        logger.warning(f"Skipping {analysis} for {context}: {e.message}")
        profile.skipped_analyses.append(analysis)
        return None


def is_valid_email_pattern(value: str) -> bool:
    return "@" in value and "." in value and not value.startswith("@") and not value.endswith("@")


def detect_anomalies(top_values: List[ValueFrequency], filled_count: int,
                     column_name: str) -> List[DataQualityAnomaly]:
    """
    Flag suspicious frequencies and email-format violations among top values.

    Args:
        top_values: Most frequent values (percentages of total rows)
        filled_count: Non-null rows in the column
        column_name: Column name (email checks apply to *email* columns)
    """
    anomalies = []
    email_column = "email" in column_name.lower()

    for entry in top_values:
        if entry.percentage > SUSPICIOUS_FREQUENCY_PERCENT and filled_count > SUSPICIOUS_FREQUENCY_MIN_FILLED:
            anomalies.append(DataQualityAnomaly(
                anomaly_type="suspicious_frequency",
                description=(
                    f"Value '{entry.value}' appears in {entry.percentage:.1f}% of rows - "
                    f"possible default, duplication or entry error"
                ),
                severity=min(entry.percentage / 100.0, 1.0),
                value=entry.value,
            ))

        if email_column and not is_valid_email_pattern(entry.value):
            anomalies.append(DataQualityAnomaly(
                anomaly_type="pattern_violation",
                description=f"Value '{entry.value}' does not look like a valid email",
                severity=PATTERN_VIOLATION_SEVERITY,
                value=entry.value,
            ))

    return anomalies


def uniformity_score(top_values: List[ValueFrequency], filled_count: int) -> float:
    """Normalised Shannon entropy of the top values over the filled rows, in [0, 1]."""
    if not top_values or filled_count <= 0:
        return 1.0

    entropy = 0.0
    for entry in top_values:
        p = entry.count / filled_count
        if p > 0:
            entropy -= p * math.log2(p)

    max_entropy = math.log2(min(len(top_values), filled_count))
    if max_entropy <= 0:
        return 1.0
    return max(0.0, min(entropy / max_entropy, 1.0))


def recommend(profile: ColumnProfile) -> str:
    """One plain-English next step chosen by classification."""
    classification = profile.classification
    completeness = profile.completeness_rate
    cardinality = profile.cardinality_rate
    suspicious = any(a.anomaly_type == "suspicious_frequency" for a in profile.anomalies)

    if classification is TypeClassification.UNIQUE_ID:
        if cardinality >= 99.0:
            return "Unique identifier behaves as expected"
        return "Identifier column has duplicates - check integrity"

    if classification.is_numeric:
        if suspicious:
            concentrated = [v.value for v in profile.top_values if v.percentage > 30][:3]
            if concentrated:
                return (
                    f"Suspiciously concentrated values: {', '.join(concentrated)} - "
                    f"check whether this is expected or a collection error"
                )
            return "Numeric distribution has little variety - review the collection process"
        if completeness < 80:
            return "Many nulls in a numeric field - consider defaults or mandatory validation"
        return "Numeric distribution looks adequate"

    if classification is TypeClassification.DATETIME:
        if completeness < 90:
            return "Incomplete dates - consider automatic timestamps for new rows"
        return "Temporal data is complete"

    if classification is TypeClassification.BOOLEAN:
        stats = profile.boolean_stats
        imbalance = abs(stats.true_percentage - stats.false_percentage) if stats else 0.0
        if completeness < 95:
            return "Incomplete boolean values - consider a default value"
        if imbalance > 80:
            return "Boolean field is heavily unbalanced - check whether this is expected"
        return "Boolean field is balanced and complete"

    if classification is TypeClassification.CATEGORICAL:
        if cardinality > 50:
            return "Many distinct categories - consider grouping or reviewing the rules"
        if completeness < 95:
            return "Missing categorical values - validate against a list of allowed values"
        return "Categorization looks adequate"

    if completeness < 80:
        return "Consider rules for null values or mandatory validation"
    return "Data quality looks adequate"


class ColumnProfiler:
    """Compute the ColumnProfile of one column with SQL aggregates."""

    def __init__(self, runner: QueryRunner, top_values_limit: int = TOP_VALUES_LIMIT,
                 histogram_buckets: int = HISTOGRAM_BINS):
        self.runner = runner
        self.dialect = runner.dialect
        self.top_values_limit = top_values_limit
        self.histogram_buckets = histogram_buckets

    def profile(self, schema: str, table: str, column: ColumnInfo) -> ColumnProfile:
        """
        Profile one column.

        Raises:
            QueryExecutionError: When the base counts fail (the caller skips
                the column)
        """
        context = f"{schema}.{table}.{column.name}"
        profile = self.base_counts(schema, table, column)
        profile.classification = classify_column(
            column.name, column.data_type, profile.cardinality_rate, profile.distinct_count
        )
        logger.debug(
            f"Column {context}: {profile.classification.value}, "
            f"completeness={profile.completeness_rate:.1f}%, cardinality={profile.cardinality_rate:.1f}%"
        )

        if profile.filled_count > 0:
            self._collect_type_stats(schema, table, column, profile, context)

        if profile.classification not in NO_TOP_VALUES and profile.filled_count > 0:
            top_values = run_guarded(
                profile, "top_values", context,
                lambda: self.top_values(schema, table, column.name, profile)
            )
            if top_values is not None:
                profile.top_values = top_values
                profile.anomalies = detect_anomalies(top_values, profile.filled_count, column.name)

        profile.uniformity_score = uniformity_score(profile.top_values, profile.filled_count)
        profile.recommendation = recommend(profile)
        return profile

    def base_counts(self, schema: str, table: str, column: ColumnInfo) -> ColumnProfile:
        quoted = quote_identifier(column.name, "column")
        row = self.runner.fetch_one(
            f"SELECT COUNT(*) AS total_rows, COUNT({quoted}) AS filled, "
            f"COUNT(DISTINCT {quoted}) AS distinct_count "
            f"FROM {qualified_table_name(schema, table)}"
        ) or {}

        total = int(row.get("total_rows") or 0)
        filled = int(row.get("filled") or 0)
        distinct = int(row.get("distinct_count") or 0)

        return ColumnProfile(
            column_name=column.name,
            data_type=column.data_type,
            total_rows=total,
            null_count=total - filled,
            distinct_count=distinct,
            completeness_rate=(filled / total * 100) if total > 0 else 0.0,
            cardinality_rate=(distinct / filled * 100) if filled > 0 else 0.0,
        )

    def _collect_type_stats(self, schema: str, table: str, column: ColumnInfo,
                            profile: ColumnProfile, context: str) -> None:
        classification = profile.classification

        if classification.is_numeric:
            profile.numeric_stats = run_guarded(
                profile, "numeric_stats", context,
                lambda: self.numeric_stats(schema, table, column.name)
            )
        elif classification is TypeClassification.DATETIME:
            profile.date_stats = run_guarded(
                profile, "date_range", context,
                lambda: self.date_range(schema, table, column.name)
            )
            if profile.date_stats is not None:
                timeline = run_guarded(
                    profile, "timeline", context,
                    lambda: self.timeline(schema, table, column.name)
                )
                if timeline is not None:
                    profile.date_stats.timeline = timeline
        elif classification is TypeClassification.TEXT:
            profile.text_stats = run_guarded(
                profile, "text_stats", context,
                lambda: self.text_stats(schema, table, column.name)
            )
        elif classification is TypeClassification.BOOLEAN:
            profile.boolean_stats = run_guarded(
                profile, "boolean_stats", context,
                lambda: self.boolean_stats(schema, table, column.name, profile.total_rows)
            )

    # ------------------------------------------------------------------
    # Type-specific statistics
    # ------------------------------------------------------------------

    def numeric_stats(self, schema: str, table: str, column: str) -> NumericStats:
        summary = NumericColumnSummary(self.runner, schema, table, column)
        moments = summary.moments()
        stats = NumericStats(
            min_value=moments.min_value,
            max_value=moments.max_value,
            mean=moments.mean,
            std_dev=moments.std_dev,
        )
        if moments.count == 0:
            return stats

        stats.percentiles = summary.percentiles(moments.count)
        stats.histogram = summary.histogram(moments, self.histogram_buckets)

        fences = summary.iqr_outliers(stats.percentiles)
        if fences is not None:
            stats.iqr_lower_bound, stats.iqr_upper_bound, stats.iqr_outlier_count, stats.iqr_outlier_samples = fences
        return stats

    def date_range(self, schema: str, table: str, column: str) -> DateStats:
        quoted = quote_identifier(column, "column")
        row = self.runner.fetch_one(
            f"SELECT MIN({quoted}) AS min_date, MAX({quoted}) AS max_date "
            f"FROM {qualified_table_name(schema, table)} WHERE {quoted} IS NOT NULL"
        ) or {}
        return DateStats(
            min_date=Cell.from_value(row.get("min_date")).to_text() or None,
            max_date=Cell.from_value(row.get("max_date")).to_text() or None,
        )

    def timeline(self, schema: str, table: str, column: str) -> List[TimelineBucket]:
        """Monthly counts for the most recent buckets, oldest first."""
        quoted = quote_identifier(column, "column")
        rows = self.runner.fetch_all(
            f"SELECT {self.dialect.month_bucket(quoted)} AS period, COUNT(*) AS period_count "
            f"FROM {qualified_table_name(schema, table)} WHERE {quoted} IS NOT NULL "
            f"GROUP BY 1 ORDER BY 1 DESC LIMIT :bucket_limit",
            {"bucket_limit": MAX_TIMELINE_BUCKETS},
            timeout=self.runner.scan_timeout
        )
        buckets = [
            TimelineBucket(period=str(r["period"]), count=int(r["period_count"]))
            for r in rows if r["period"] is not None
        ]
        buckets.reverse()
        return buckets

    def text_stats(self, schema: str, table: str, column: str) -> TextStats:
        text_value = self.dialect.text_cast(quote_identifier(column, "column"))
        row = self.runner.fetch_one(
            f"SELECT MIN(LENGTH({text_value})) AS min_length, MAX(LENGTH({text_value})) AS max_length, "
            f"AVG({self.dialect.float_cast(f'LENGTH({text_value})')}) AS avg_length "
            f"FROM {qualified_table_name(schema, table)} "
            f"WHERE {text_value} IS NOT NULL AND {text_value} <> ''",
            timeout=self.runner.scan_timeout
        ) or {}
        return TextStats(
            min_length=int(row["min_length"]) if row.get("min_length") is not None else None,
            max_length=int(row["max_length"]) if row.get("max_length") is not None else None,
            avg_length=float(row["avg_length"]) if row.get("avg_length") is not None else None,
        )

    def boolean_stats(self, schema: str, table: str, column: str, total_rows: int) -> BooleanStats:
        quoted = quote_identifier(column, "column")
        row = self.runner.fetch_one(
            f"SELECT SUM(CASE WHEN {quoted} THEN 1 ELSE 0 END) AS true_count, "
            f"SUM(CASE WHEN NOT {quoted} THEN 1 ELSE 0 END) AS false_count, "
            f"SUM(CASE WHEN {quoted} IS NULL THEN 1 ELSE 0 END) AS null_count "
            f"FROM {qualified_table_name(schema, table)}"
        ) or {}

        true_count = int(row.get("true_count") or 0)
        false_count = int(row.get("false_count") or 0)
        null_count = int(row.get("null_count") or 0)

        def pct(count: int) -> float:
            return round(count * 100.0 / total_rows, 2) if total_rows > 0 else 0.0

        return BooleanStats(
            true_count=true_count,
            false_count=false_count,
            null_count=null_count,
            true_percentage=pct(true_count),
            false_percentage=pct(false_count),
            null_percentage=pct(null_count),
        )

    def top_values(self, schema: str, table: str, column: str,
                   profile: ColumnProfile) -> List[ValueFrequency]:
        """Most frequent non-null values with their share of total rows."""
        quoted = quote_identifier(column, "column")
        rows = self.runner.fetch_all(
            f"SELECT {quoted} AS value, COUNT(*) AS frequency "
            f"FROM {qualified_table_name(schema, table)} WHERE {quoted} IS NOT NULL "
            f"GROUP BY {quoted} ORDER BY frequency DESC LIMIT :top_limit",
            {"top_limit": self.top_values_limit},
            timeout=self.runner.scan_timeout
        )

        boolean = profile.classification is TypeClassification.BOOLEAN
        result = []
        for row in rows:
            cell = Cell.from_value(row["value"])
            if boolean and cell.kind is CellKind.INTEGER:
                cell = Cell(CellKind.BOOLEAN, bool(cell.value))
            count = int(row["frequency"])
            result.append(ValueFrequency(
                value=cell.to_text(),
                count=count,
                percentage=round(count * 100.0 / profile.total_rows, 2) if profile.total_rows else 0.0,
            ))
        return result
