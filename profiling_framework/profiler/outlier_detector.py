"""
Paginated 3-sigma outlier retrieval for numeric columns.

A value is an outlier when it lies strictly outside
[mean - 3 x stddev, mean + 3 x stddev], with the population standard
deviation over non-null values. Outlier rows are returned one page at a time,
most extreme first, together with the full row they belong to.

The 3-sigma rule assumes a roughly symmetric distribution; on skewed data it
flags one tail far more often than the other.
"""

import logging
import math

from profiling_framework.core.constants import DEFAULT_OUTLIER_PAGE_SIZE, OUTLIER_Z_SCORE_THRESHOLD
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.sql_utils import qualified_table_name, quote_identifier
from profiling_framework.profiler.cells import row_to_cells
from profiling_framework.profiler.numeric_summary import NumericColumnSummary
from profiling_framework.profiler.profile_result import OutlierRow, OutlierSet

logger = logging.getLogger(__name__)

# Alias of the flagged value in page queries
FLAGGED_VALUE_ALIAS = "__outlier_value"


class OutlierDetector:
    """Find and page through 3-sigma outliers of a numeric column."""

    def __init__(self, runner: QueryRunner, z_threshold: float = OUTLIER_Z_SCORE_THRESHOLD):
        self.runner = runner
        self.z_threshold = z_threshold

    def analyze(
        self,
        schema: str,
        table: str,
        column: str,
        page: int = 0,
        page_size: int = DEFAULT_OUTLIER_PAGE_SIZE
    ) -> OutlierSet:
        """
        Return one page of outliers.

        Args:
            schema: Schema name
            table: Table name
            column: Numeric column
            page: Zero-based page index
            page_size: Rows per page

        Returns:
            OutlierSet with the total outlier count and the requested page

        Raises:
            ValueError: If page is negative or page_size is below 1
        """
        if page < 0:
            raise ValueError(f"page must be >= 0, got {page}")
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")

        moments = NumericColumnSummary(self.runner, schema, table, column).moments()
        result = OutlierSet(
            column_name=column,
            total_values=moments.count,
            outlier_count=0,
            mean=moments.mean,
            std_dev=moments.std_dev,
            lower_bound=None,
            upper_bound=None,
            page=page,
            page_size=page_size,
        )

        if moments.count == 0 or not moments.std_dev:
            logger.debug(f"No outliers possible for {schema}.{table}.{column} (zero variance or no values)")
            if moments.mean is not None:
                result.lower_bound = result.upper_bound = moments.mean
            return result

        result.lower_bound = moments.mean - self.z_threshold * moments.std_dev
        result.upper_bound = moments.mean + self.z_threshold * moments.std_dev

        source = qualified_table_name(schema, table)
        quoted = quote_identifier(column, "column")
        value = self.runner.dialect.float_cast(quoted)
        condition = f"{quoted} IS NOT NULL AND ({value} < :lower OR {value} > :upper)"
        bounds = {"lower": result.lower_bound, "upper": result.upper_bound}

        result.outlier_count = int(self.runner.scalar(
            f"SELECT COUNT(*) FROM {source} WHERE {condition}", bounds,
            timeout=self.runner.scan_timeout
        ) or 0)

        total_pages = math.ceil(result.outlier_count / page_size)
        if page >= total_pages:
            return result

        rows = self.runner.fetch_all(
            f"SELECT *, {value} AS {FLAGGED_VALUE_ALIAS} FROM {source} WHERE {condition} "
            f"ORDER BY ABS({value} - :mean) DESC, {self.runner.dialect.row_identity} "
            f"LIMIT :page_limit OFFSET :page_offset",
            {**bounds, "mean": moments.mean, "page_limit": page_size, "page_offset": page * page_size},
            timeout=self.runner.scan_timeout
        )

        for row in rows:
            flagged = row.pop(FLAGGED_VALUE_ALIAS)
            result.items.append(OutlierRow(value=float(flagged), row=row_to_cells(row)))

        logger.info(
            f"Outliers {schema}.{table}.{column}: {result.outlier_count} total, "
            f"page {page + 1}/{total_pages} with {len(result.items)} rows"
        )
        return result
