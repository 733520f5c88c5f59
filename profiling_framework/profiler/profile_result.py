"""
Data structures for storing profiling results.

Contains the value objects produced by one analysis pass: table and column
profiles, type-specific statistic blocks, pattern conformity, outlier pages
and cross-column relationships. Every structure exposes ``to_dict()`` for
JSON output.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from profiling_framework.core.constants import (
    BOOLEAN_BALANCE_TOLERANCE,
    CORRELATION_STRENGTH_THRESHOLDS,
)
from profiling_framework.profiler.cells import Cell, cells_to_json


def convert_numpy_types(obj):
    """
    Recursively convert numpy types to Python native types for JSON serialization.

    Args:
        obj: Any object that might contain numpy types

    Returns:
        Object with numpy types converted to Python types
    """
    if isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {key: convert_numpy_types(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_numpy_types(item) for item in obj]
    elif isinstance(obj, tuple):
        return tuple(convert_numpy_types(item) for item in obj)
    else:
        return obj


def _round(value: Optional[float], digits: int = 4) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), digits)


class TypeClassification(Enum):
    """Semantic classification that selects which statistics apply to a column."""
    UNIQUE_ID = "UniqueId"
    NUMERIC = "Numeric"
    DATETIME = "DateTime"
    BOOLEAN = "Boolean"
    CATEGORICAL = "Categorical"
    TEXT = "Text"
    GEOGRAPHIC = "Geographic"
    OTHER = "Other"

    @property
    def is_numeric(self) -> bool:
        return self in (TypeClassification.NUMERIC, TypeClassification.GEOGRAPHIC)


# ============================================================================
# Type-specific statistic blocks
# ============================================================================

@dataclass
class HistogramBucket:
    """One linear histogram bucket; the last bucket of a histogram is closed on the right."""
    range_start: float
    range_end: float
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "range_start": _round(self.range_start),
            "range_end": _round(self.range_end),
            "count": int(self.count),
            "percentage": _round(self.percentage, 2),
        }


@dataclass
class NumericStats:
    """
    Descriptive statistics for a numeric column.

    Attributes:
        min_value: Minimum non-null value
        max_value: Maximum non-null value
        mean: Arithmetic mean
        std_dev: Population standard deviation
        percentiles: Continuous percentiles keyed p25, p50, p75, p90, p95
        histogram: Linear buckets between min and max
        iqr_lower_bound: Q1 - 1.5 x IQR
        iqr_upper_bound: Q3 + 1.5 x IQR
        iqr_outlier_count: Values outside the IQR fences
        iqr_outlier_samples: A few of those values, most extreme first
    """
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mean: Optional[float] = None
    std_dev: Optional[float] = None
    percentiles: Dict[str, float] = field(default_factory=dict)
    histogram: List[HistogramBucket] = field(default_factory=list)
    iqr_lower_bound: Optional[float] = None
    iqr_upper_bound: Optional[float] = None
    iqr_outlier_count: Optional[int] = None
    iqr_outlier_samples: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": _round(self.min_value),
            "max": _round(self.max_value),
            "mean": _round(self.mean),
            "std_dev": _round(self.std_dev),
            "percentiles": {k: _round(v) for k, v in self.percentiles.items()},
            "histogram": [bucket.to_dict() for bucket in self.histogram],
            "iqr_lower_bound": _round(self.iqr_lower_bound),
            "iqr_upper_bound": _round(self.iqr_upper_bound),
            "iqr_outlier_count": self.iqr_outlier_count,
            "iqr_outlier_samples": [_round(v) for v in self.iqr_outlier_samples],
        }


@dataclass
class TimelineBucket:
    """Row count for one calendar month (``YYYY-MM``)."""
    period: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"period": self.period, "count": int(self.count)}


@dataclass
class DateStats:
    min_date: Optional[str] = None
    max_date: Optional[str] = None
    timeline: List[TimelineBucket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_date": self.min_date,
            "max_date": self.max_date,
            "timeline": [bucket.to_dict() for bucket in self.timeline],
        }


@dataclass
class TextStats:
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    avg_length: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_length": self.min_length,
            "max_length": self.max_length,
            "avg_length": _round(self.avg_length, 2),
        }


@dataclass
class BooleanStats:
    """True/false/null split of a boolean column (percentages of total rows)."""
    true_count: int = 0
    false_count: int = 0
    null_count: int = 0
    true_percentage: float = 0.0
    false_percentage: float = 0.0
    null_percentage: float = 0.0

    @property
    def is_balanced(self) -> bool:
        return abs(self.true_percentage - self.false_percentage) <= BOOLEAN_BALANCE_TOLERANCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "true_count": int(self.true_count),
            "false_count": int(self.false_count),
            "null_count": int(self.null_count),
            "true_percentage": _round(self.true_percentage, 2),
            "false_percentage": _round(self.false_percentage, 2),
            "null_percentage": _round(self.null_percentage, 2),
            "is_balanced": self.is_balanced,
        }


@dataclass
class ValueFrequency:
    value: str
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "count": int(self.count), "percentage": _round(self.percentage, 2)}


@dataclass
class DataQualityAnomaly:
    """
    Anomaly found in a column's value distribution.

    Attributes:
        anomaly_type: suspicious_frequency or pattern_violation
        description: Human-readable explanation
        severity: 0.0 (informational) to 1.0 (severe)
        value: Offending value, when there is one
    """
    anomaly_type: str
    description: str
    severity: float
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.anomaly_type,
            "description": self.description,
            "severity": _round(self.severity, 2),
            "value": self.value,
        }


# ============================================================================
# Pattern and outlier results
# ============================================================================

@dataclass
class PatternMatch:
    """
    Conformity of a column sample to one pattern rule.

    Attributes:
        pattern_name: Rule name
        description: Rule description
        culture: Locale the rule belongs to
        conformity_percentage: matching_samples / total_samples x 100, in [0, 100]
        matching_samples: Sampled values matching the rule
        total_samples: Sampled values tested
        sample_matches: Up to 5 matching values
        sample_non_matches: Up to 5 non-matching values
    """
    pattern_name: str
    description: str
    culture: str
    conformity_percentage: float
    matching_samples: int
    total_samples: int
    sample_matches: List[str] = field(default_factory=list)
    sample_non_matches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_name": self.pattern_name,
            "description": self.description,
            "culture": self.culture,
            "conformity_percentage": self.conformity_percentage,
            "matching_samples": self.matching_samples,
            "total_samples": self.total_samples,
            "sample_matches": list(self.sample_matches),
            "sample_non_matches": list(self.sample_non_matches),
        }


@dataclass
class OutlierRow:
    """Flagged value plus the full row it came from."""
    value: float
    row: Dict[str, Cell] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "row": cells_to_json(self.row)}


@dataclass
class OutlierSet:
    """
    One page of 3-sigma outliers for a numeric column.

    Every item's value lies strictly outside [lower_bound, upper_bound].
    """
    column_name: str
    total_values: int
    outlier_count: int
    mean: Optional[float]
    std_dev: Optional[float]
    lower_bound: Optional[float]
    upper_bound: Optional[float]
    page: int = 0
    page_size: int = 20
    items: List[OutlierRow] = field(default_factory=list)

    @property
    def outlier_percentage(self) -> float:
        if self.total_values <= 0:
            return 0.0
        return self.outlier_count / self.total_values * 100

    @property
    def total_pages(self) -> int:
        if self.outlier_count <= 0:
            return 0
        return math.ceil(self.outlier_count / self.page_size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_name": self.column_name,
            "total_values": int(self.total_values),
            "outlier_count": int(self.outlier_count),
            "outlier_percentage": _round(self.outlier_percentage, 2),
            "mean": _round(self.mean),
            "std_dev": _round(self.std_dev),
            "lower_bound": _round(self.lower_bound),
            "upper_bound": _round(self.upper_bound),
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "items": [item.to_dict() for item in self.items],
        }


# ============================================================================
# Column and table profiles
# ============================================================================

@dataclass
class ColumnProfile:
    """
    Complete profile for a single column.

    Only the stat block matching ``classification`` is populated. Analyses
    that failed are listed in ``skipped_analyses`` and their block is left
    empty.
    """
    column_name: str
    data_type: str
    total_rows: int = 0
    null_count: int = 0
    distinct_count: int = 0
    completeness_rate: float = 0.0
    cardinality_rate: float = 0.0
    classification: TypeClassification = TypeClassification.OTHER

    numeric_stats: Optional[NumericStats] = None
    date_stats: Optional[DateStats] = None
    text_stats: Optional[TextStats] = None
    boolean_stats: Optional[BooleanStats] = None

    top_values: List[ValueFrequency] = field(default_factory=list)
    anomalies: List[DataQualityAnomaly] = field(default_factory=list)
    uniformity_score: Optional[float] = None
    recommendation: Optional[str] = None

    pattern_matches: List[PatternMatch] = field(default_factory=list)
    outliers: Optional[OutlierSet] = None

    skipped_analyses: List[str] = field(default_factory=list)

    @property
    def filled_count(self) -> int:
        return self.total_rows - self.null_count

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "column_name": self.column_name,
            "data_type": self.data_type,
            "total_rows": int(self.total_rows),
            "null_count": int(self.null_count),
            "distinct_count": int(self.distinct_count),
            "completeness_rate": _round(self.completeness_rate, 2),
            "cardinality_rate": _round(self.cardinality_rate, 2),
            "classification": self.classification.value,
            "top_values": [v.to_dict() for v in self.top_values],
            "anomalies": [a.to_dict() for a in self.anomalies],
            "uniformity_score": _round(self.uniformity_score, 3),
            "recommendation": self.recommendation,
            "pattern_matches": [p.to_dict() for p in self.pattern_matches],
            "skipped_analyses": list(self.skipped_analyses),
        }
        if self.numeric_stats is not None:
            result["numeric_stats"] = self.numeric_stats.to_dict()
        if self.date_stats is not None:
            result["date_stats"] = self.date_stats.to_dict()
        if self.text_stats is not None:
            result["text_stats"] = self.text_stats.to_dict()
        if self.boolean_stats is not None:
            result["boolean_stats"] = self.boolean_stats.to_dict()
        if self.outliers is not None:
            result["outliers"] = self.outliers.to_dict()
        return convert_numpy_types(result)


def correlation_strength(coefficient: float) -> str:
    """Qualitative label for the absolute value of a correlation coefficient."""
    magnitude = abs(coefficient)
    for threshold, label in CORRELATION_STRENGTH_THRESHOLDS:
        if magnitude >= threshold:
            return label
    return "very weak"


@dataclass
class Correlation:
    """Pearson correlation between two numeric columns."""
    column1: str
    column2: str
    coefficient: float
    sample_size: int

    @property
    def strength(self) -> str:
        return correlation_strength(self.coefficient)

    @property
    def direction(self) -> str:
        return "positive" if self.coefficient >= 0 else "negative"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column1": self.column1,
            "column2": self.column2,
            "coefficient": float(self.coefficient),
            "strength": self.strength,
            "direction": self.direction,
            "sample_size": int(self.sample_size),
        }


@dataclass
class StatusDateRelationship:
    """Flag column whose active state should imply a filled date column."""
    status_column: str
    date_column: str
    inconsistent_count: int
    active_count: int
    active_values: List[str] = field(default_factory=list)
    common_radical: str = "common"

    @property
    def inconsistency_percentage(self) -> float:
        if self.active_count <= 0:
            return 0.0
        return self.inconsistent_count / self.active_count * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_column": self.status_column,
            "date_column": self.date_column,
            "inconsistent_count": int(self.inconsistent_count),
            "active_count": int(self.active_count),
            "inconsistency_percentage": _round(self.inconsistency_percentage, 2),
            "active_values": list(self.active_values),
            "common_radical": self.common_radical,
        }


@dataclass
class RelationshipMetrics:
    status_date_relationships: List[StatusDateRelationship] = field(default_factory=list)
    correlations: List[Correlation] = field(default_factory=list)
    skipped_pairs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_date_relationships": [r.to_dict() for r in self.status_date_relationships],
            "correlations": [c.to_dict() for c in self.correlations],
            "skipped_pairs": list(self.skipped_pairs),
        }


@dataclass
class TableGeneralMetrics:
    """Table-wide counts derived from the column profiles and a duplicate scan."""
    total_rows: int = 0
    total_columns: int = 0
    columns_with_nulls: List[str] = field(default_factory=list)
    overall_completeness: float = 100.0
    estimated_size_bytes: Optional[int] = None
    duplicate_rows: Optional[int] = None

    @property
    def duplication_rate(self) -> Optional[float]:
        if self.duplicate_rows is None:
            return None
        if self.total_rows <= 0:
            return 0.0
        return self.duplicate_rows / self.total_rows * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": int(self.total_rows),
            "total_columns": int(self.total_columns),
            "columns_with_nulls": list(self.columns_with_nulls),
            "overall_completeness": _round(self.overall_completeness, 2),
            "estimated_size_bytes": self.estimated_size_bytes,
            "duplicate_rows": self.duplicate_rows,
            "duplication_rate": _round(self.duplication_rate, 2),
        }


@dataclass
class TableProfile:
    """
    Result of one table-level analysis.

    Built once per call and never merged with earlier runs. ``skipped_columns``
    maps column names whose base statistics failed to the error message, so
    callers can tell a partial profile from a complete one.
    """
    schema_name: str
    table_name: str
    collected_at: datetime
    columns: List[ColumnProfile] = field(default_factory=list)
    relationships: RelationshipMetrics = field(default_factory=RelationshipMetrics)
    general: TableGeneralMetrics = field(default_factory=TableGeneralMetrics)
    sampling_strategy: Optional[Any] = None
    processing_seconds: float = 0.0
    skipped_columns: Dict[str, str] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped_columns) or any(c.skipped_analyses for c in self.columns)

    def to_dict(self) -> Dict[str, Any]:
        return convert_numpy_types({
            "schema_name": self.schema_name,
            "table_name": self.table_name,
            "collected_at": self.collected_at.isoformat(),
            "processing_seconds": round(self.processing_seconds, 3),
            "is_partial": self.is_partial,
            "general": self.general.to_dict(),
            "sampling_strategy": self.sampling_strategy.to_dict() if self.sampling_strategy else None,
            "columns": [c.to_dict() for c in self.columns],
            "relationships": self.relationships.to_dict(),
            "skipped_columns": dict(self.skipped_columns),
        })
