"""
SQL-side aggregates for numeric columns.

Mean and standard deviation are computed in two passes so that only portable
aggregates are needed: the first pass returns count, mean, min and max, the
second binds the mean and averages squared deviations. The result is the
population standard deviation on every supported database.

Percentiles use PERCENTILE_CONT where the database has it and linear
interpolation between neighbouring ranks (the same definition) elsewhere.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from profiling_framework.core.constants import (
    HISTOGRAM_BINS,
    MAX_IQR_OUTLIER_SAMPLES,
    OUTLIER_IQR_MULTIPLIER,
    PERCENTILES,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.sql_utils import qualified_table_name, quote_identifier
from profiling_framework.profiler.profile_result import HistogramBucket

logger = logging.getLogger(__name__)


@dataclass
class NumericMoments:
    """Count, mean, population standard deviation and range of non-null values."""
    count: int
    mean: Optional[float] = None
    std_dev: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


def percentile_key(fraction: float) -> str:
    return f"p{int(round(fraction * 100))}"


def interpolate_percentile(lower: float, upper: float, fraction: float) -> float:
    return lower + (upper - lower) * fraction


def histogram_edges(min_value: float, max_value: float, bins: int) -> List[float]:
    """Bucket boundaries; the last edge is exactly max_value."""
    width = (max_value - min_value) / bins
    edges = [min_value + i * width for i in range(bins)]
    edges.append(max_value)
    return edges


class NumericColumnSummary:
    """Numeric aggregates for one column of one table."""

    def __init__(self, runner: QueryRunner, schema: str, table: str, column: str):
        self.runner = runner
        self.source = qualified_table_name(schema, table)
        self.quoted = quote_identifier(column, "column")
        self.value = runner.dialect.float_cast(self.quoted)
        self.label = f"{schema}.{table}.{column}"

    def moments(self) -> NumericMoments:
        first = self.runner.fetch_one(
            f"SELECT COUNT({self.quoted}) AS value_count, AVG({self.value}) AS mean, "
            f"MIN({self.value}) AS min_value, MAX({self.value}) AS max_value "
            f"FROM {self.source} WHERE {self.quoted} IS NOT NULL"
        ) or {}

        count = int(first.get("value_count") or 0)
        if count == 0:
            return NumericMoments(count=0)

        mean = float(first["mean"])
        min_value = float(first["min_value"])
        max_value = float(first["max_value"])

        if min_value == max_value:
            # Constant column: avoid rounding noise in the second pass
            return NumericMoments(count, mean, 0.0, min_value, max_value)

        variance = self.runner.scalar(
            f"SELECT AVG(({self.value} - :mean) * ({self.value} - :mean)) "
            f"FROM {self.source} WHERE {self.quoted} IS NOT NULL",
            {"mean": mean}
        )
        std_dev = math.sqrt(max(0.0, float(variance or 0.0)))
        return NumericMoments(count, mean, std_dev, min_value, max_value)

    def percentiles(self, count: int, fractions: Sequence[float] = PERCENTILES) -> Dict[str, float]:
        """Continuous percentiles keyed p25, p50 ... (empty when count is 0)."""
        if count <= 0:
            return {}

        if self.runner.dialect.supports_percentile_cont:
            select_list = ", ".join(
                f"PERCENTILE_CONT(:pct_{i}) WITHIN GROUP (ORDER BY {self.value}) AS {percentile_key(f)}"
                for i, f in enumerate(fractions)
            )
            row = self.runner.fetch_one(
                f"SELECT {select_list} FROM {self.source} WHERE {self.quoted} IS NOT NULL",
                {f"pct_{i}": f for i, f in enumerate(fractions)},
                timeout=self.runner.scan_timeout
            ) or {}
            return {
                percentile_key(f): float(row[percentile_key(f)])
                for f in fractions if row.get(percentile_key(f)) is not None
            }

        result = {}
        for fraction in fractions:
            position = fraction * (count - 1)
            offset = int(math.floor(position))
            rows = self.runner.fetch_all(
                f"SELECT {self.value} AS value FROM {self.source} "
                f"WHERE {self.quoted} IS NOT NULL ORDER BY {self.value} LIMIT 2 OFFSET :offset",
                {"offset": offset},
                timeout=self.runner.scan_timeout
            )
            if not rows:
                continue
            lower = float(rows[0]["value"])
            upper = float(rows[1]["value"]) if len(rows) > 1 else lower
            result[percentile_key(fraction)] = interpolate_percentile(lower, upper, position - offset)
        return result

    def histogram(self, moments: NumericMoments, bins: int = HISTOGRAM_BINS) -> List[HistogramBucket]:
        """
        Linear histogram between min and max in a single scan.

        Buckets are half-open except the last, which includes max. Empty when
        the column is constant or has no values.
        """
        if moments.count == 0 or moments.min_value == moments.max_value:
            return []

        edges = histogram_edges(moments.min_value, moments.max_value, bins)
        params = {}
        cases = []
        for i in range(bins):
            params[f"lo_{i}"] = edges[i]
            params[f"hi_{i}"] = edges[i + 1]
            upper_op = "<=" if i == bins - 1 else "<"
            cases.append(
                f"SUM(CASE WHEN {self.value} >= :lo_{i} AND {self.value} {upper_op} :hi_{i} "
                f"THEN 1 ELSE 0 END) AS b{i}"
            )

        row = self.runner.fetch_one(
            f"SELECT {', '.join(cases)} FROM {self.source} WHERE {self.quoted} IS NOT NULL",
            params,
            timeout=self.runner.scan_timeout
        ) or {}

        buckets = []
        for i in range(bins):
            count = int(row.get(f"b{i}") or 0)
            buckets.append(HistogramBucket(
                range_start=edges[i],
                range_end=edges[i + 1],
                count=count,
                percentage=round(count / moments.count * 100, 2),
            ))
        return buckets

    def iqr_outliers(self, percentiles: Dict[str, float]) -> Optional[Tuple[float, float, int, List[float]]]:
        """
        Tukey fences from p25/p75 with the count and a few extreme values.

        Returns:
            (lower_fence, upper_fence, outlier_count, samples) or None when the
            quartiles are unavailable
        """
        q1 = percentiles.get("p25")
        q3 = percentiles.get("p75")
        if q1 is None or q3 is None:
            return None

        iqr = q3 - q1
        lower = q1 - OUTLIER_IQR_MULTIPLIER * iqr
        upper = q3 + OUTLIER_IQR_MULTIPLIER * iqr
        median = percentiles.get("p50", (q1 + q3) / 2)
        params = {"lower": lower, "upper": upper}
        condition = f"{self.quoted} IS NOT NULL AND ({self.value} < :lower OR {self.value} > :upper)"

        count = int(self.runner.scalar(
            f"SELECT COUNT(*) FROM {self.source} WHERE {condition}", params,
            timeout=self.runner.scan_timeout
        ) or 0)

        samples: List[float] = []
        if count:
            rows = self.runner.fetch_all(
                f"SELECT {self.value} AS value FROM {self.source} WHERE {condition} "
                f"ORDER BY ABS({self.value} - :median) DESC LIMIT :sample_limit",
                {**params, "median": median, "sample_limit": MAX_IQR_OUTLIER_SAMPLES},
                timeout=self.runner.scan_timeout
            )
            samples = [float(r["value"]) for r in rows]

        logger.debug(f"IQR fences for {self.label}: [{lower:g}, {upper:g}], {count} outside")
        return lower, upper, count, samples
