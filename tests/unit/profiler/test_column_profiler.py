"""
Unit tests for per-column profiling.

The orders fixture has 200 rows with one column per classification:

    id          INTEGER PK      1..200                          UniqueId
    amount      REAL            0..9 repeated, 20 NULLs         Numeric
    quantity    INTEGER         constant 3                      Numeric
    created_at  TIMESTAMP       15th of Jan/Feb/Mar 2024        DateTime
    is_active   BOOLEAN         150 true, 40 false, 10 NULL     Boolean
    notes       TEXT            60 distinct notes, 10 NULLs     Text
    status      TEXT            paid/pending/cancelled          Categorical
    email       TEXT            150 addresses, 50 invalid       Text
    empty_col   TEXT            all NULL
"""

import math
from unittest.mock import Mock, patch

import pandas as pd
import pytest

from profiling_framework.core.dialects import PostgreSQLDialect
from profiling_framework.core.exceptions import QueryExecutionError, QueryTimeoutError
from profiling_framework.profiler.column_profiler import (
    ColumnProfiler,
    detect_anomalies,
    recommend,
    run_guarded,
    uniformity_score,
)
from profiling_framework.profiler.numeric_summary import NumericColumnSummary
from profiling_framework.profiler.profile_result import (
    BooleanStats,
    ColumnProfile,
    TypeClassification,
    ValueFrequency,
)
from profiling_framework.profiler.table_metadata import ColumnInfo

ROWS = 200

ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    amount REAL,
    quantity INTEGER,
    created_at TIMESTAMP,
    is_active BOOLEAN,
    notes TEXT,
    status TEXT,
    email TEXT,
    empty_col TEXT
)
"""


@pytest.fixture(scope="module")
def orders_db(make_database):
    months = ['2024-01-15', '2024-02-15', '2024-03-15']
    frame = pd.DataFrame({
        'id': range(1, ROWS + 1),
        'amount': [float(i % 10) for i in range(180)] + [None] * 20,
        'quantity': [3] * ROWS,
        'created_at': [months[i % 3] for i in range(ROWS)],
        'is_active': [True] * 150 + [False] * 40 + [None] * 10,
        'notes': [f"note {i % 60}" for i in range(190)] + [None] * 10,
        'status': ['paid'] * 120 + ['pending'] * 60 + ['cancelled'] * 20,
        'email': [f"user{i}@mail.com" for i in range(150)] + ['not-an-email'] * 50,
        'empty_col': [None] * ROWS,
    })
    return make_database("orders", ddl=[ORDERS_DDL], tables={'orders': frame})


def profile_column(runner, name, data_type, **kwargs):
    return ColumnProfiler(runner, **kwargs).profile('main', 'orders', ColumnInfo(name, data_type))


@pytest.mark.unit
class TestBaseCounts:
    """Counts shared by every column."""

    def test_counts(self, orders_db, open_runner):
        """Test total, null and distinct counts with the derived rates."""
        with open_runner(orders_db) as runner:
            profile = ColumnProfiler(runner).base_counts('main', 'orders', ColumnInfo('amount', 'REAL'))

        assert profile.total_rows == ROWS
        assert profile.null_count == 20
        assert profile.distinct_count == 10
        assert profile.completeness_rate == pytest.approx(90.0)
        assert profile.cardinality_rate == pytest.approx(10 / 180 * 100)

    def test_all_null_column(self, orders_db, open_runner):
        """Test an all-NULL column has zero rates and no statistic blocks."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'empty_col', 'TEXT')

        assert profile.completeness_rate == 0.0
        assert profile.cardinality_rate == 0.0
        assert profile.top_values == []
        assert profile.text_stats is None
        assert profile.uniformity_score == 1.0

    @pytest.mark.parametrize("name,data_type,expected", [
        ('id', 'INTEGER', TypeClassification.UNIQUE_ID),
        ('amount', 'REAL', TypeClassification.NUMERIC),
        ('created_at', 'TIMESTAMP', TypeClassification.DATETIME),
        ('is_active', 'BOOLEAN', TypeClassification.BOOLEAN),
        ('notes', 'TEXT', TypeClassification.TEXT),
        ('status', 'TEXT', TypeClassification.CATEGORICAL),
    ])
    def test_classify(self, orders_db, open_runner, name, data_type, expected):
        """Test classification from base counts."""
        with open_runner(orders_db) as runner:
            profile = ColumnProfiler(runner).profile('main', 'orders', ColumnInfo(name, data_type))
        assert profile.classification is expected


@pytest.mark.unit
class TestNumericStats:
    """Moments, percentiles, histogram and IQR fences."""

    def test_moments(self, orders_db, open_runner):
        """Test min, max, mean and population standard deviation."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'amount', 'REAL').numeric_stats

        assert stats.min_value == 0.0
        assert stats.max_value == 9.0
        assert stats.mean == pytest.approx(4.5)
        assert stats.std_dev == pytest.approx(math.sqrt(8.25))

    def test_percentiles(self, orders_db, open_runner):
        """Test interpolated percentiles over the 180 non-null values."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'amount', 'REAL').numeric_stats

        assert set(stats.percentiles) == {'p25', 'p50', 'p75', 'p90', 'p95'}
        assert stats.percentiles['p25'] == pytest.approx(2.0)
        assert stats.percentiles['p50'] == pytest.approx(4.5)
        assert stats.percentiles['p75'] == pytest.approx(7.0)

    def test_histogram(self, orders_db, open_runner):
        """Test buckets span min to max and count every value once."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'amount', 'REAL').numeric_stats

        assert len(stats.histogram) == 20
        assert stats.histogram[0].range_start == 0.0
        assert stats.histogram[-1].range_end == 9.0
        assert sum(bucket.count for bucket in stats.histogram) == 180
        assert stats.histogram[-1].count == 18

    def test_iqr_fences(self, orders_db, open_runner):
        """Test Tukey fences from the quartiles."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'amount', 'REAL').numeric_stats

        assert stats.iqr_lower_bound == pytest.approx(-5.5)
        assert stats.iqr_upper_bound == pytest.approx(14.5)
        assert stats.iqr_outlier_count == 0
        assert stats.iqr_outlier_samples == []

    def test_constant_column(self, orders_db, open_runner):
        """Test a constant column has zero deviation and no histogram."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'quantity', 'INTEGER').numeric_stats

        assert stats.std_dev == 0.0
        assert stats.mean == 3.0
        assert stats.histogram == []

    def test_custom_bucket_count(self, orders_db, open_runner):
        """Test the configured histogram bucket count is used."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'amount', 'REAL', histogram_buckets=5).numeric_stats
        assert len(stats.histogram) == 5

    def test_percentile_cont_on_postgres(self):
        """Test PostgreSQL percentiles come from one PERCENTILE_CONT query."""
        runner = Mock()
        runner.dialect = PostgreSQLDialect()
        runner.fetch_one.return_value = {'p25': 1.0, 'p50': 2.0, 'p75': 3.0, 'p90': 4.0, 'p95': None}

        result = NumericColumnSummary(runner, 'public', 'orders', 'amount').percentiles(100)

        assert result == {'p25': 1.0, 'p50': 2.0, 'p75': 3.0, 'p90': 4.0}
        sql = runner.fetch_one.call_args[0][0]
        assert 'PERCENTILE_CONT(:pct_0) WITHIN GROUP' in sql
        runner.fetch_all.assert_not_called()


@pytest.mark.unit
class TestOtherStats:
    """Date, text and boolean blocks."""

    def test_date_range_and_timeline(self, orders_db, open_runner):
        """Test the date range and monthly buckets, oldest first."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'created_at', 'TIMESTAMP')

        stats = profile.date_stats
        assert stats.min_date.startswith('2024-01-15')
        assert stats.max_date.startswith('2024-03-15')
        assert [(b.period, b.count) for b in stats.timeline] == [
            ('2024-01', 67), ('2024-02', 67), ('2024-03', 66)
        ]
        assert profile.top_values == []
        assert profile.recommendation == "Temporal data is complete"

    def test_text_lengths(self, orders_db, open_runner):
        """Test length statistics over non-empty values."""
        with open_runner(orders_db) as runner:
            stats = profile_column(runner, 'notes', 'TEXT').text_stats

        assert stats.min_length == 6
        assert stats.max_length == 7
        assert stats.avg_length == pytest.approx(1290 / 190)

    def test_boolean_split(self, orders_db, open_runner):
        """Test true/false/null counts as percentages of total rows."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'is_active', 'BOOLEAN')

        stats = profile.boolean_stats
        assert (stats.true_count, stats.false_count, stats.null_count) == (150, 40, 10)
        assert (stats.true_percentage, stats.false_percentage, stats.null_percentage) == (75.0, 20.0, 5.0)
        assert not stats.is_balanced
        assert [v.value for v in profile.top_values] == ['true', 'false']


@pytest.mark.unit
class TestTopValuesAndAnomalies:
    """Frequent values, anomalies, uniformity and recommendations."""

    def test_no_top_values_for_identifiers(self, orders_db, open_runner):
        """Test identifiers skip the frequency scan."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'id', 'INTEGER')

        assert profile.classification is TypeClassification.UNIQUE_ID
        assert profile.top_values == []
        assert profile.recommendation == "Unique identifier behaves as expected"

    def test_categorical_top_values(self, orders_db, open_runner):
        """Test counts, share of total rows and the suspicious frequency flag."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'status', 'TEXT')

        assert [(v.value, v.count, v.percentage) for v in profile.top_values] == [
            ('paid', 120, 60.0), ('pending', 60, 30.0), ('cancelled', 20, 10.0)
        ]
        assert len(profile.anomalies) == 1
        assert profile.anomalies[0].anomaly_type == 'suspicious_frequency'
        assert profile.anomalies[0].value == 'paid'
        assert profile.anomalies[0].severity == pytest.approx(0.6)
        assert profile.recommendation == "Categorization looks adequate"

    def test_email_violation(self, orders_db, open_runner):
        """Test invalid addresses among top values of an email column."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'email', 'TEXT')

        assert profile.top_values[0].value == 'not-an-email'
        violations = [a for a in profile.anomalies if a.anomaly_type == 'pattern_violation']
        assert [a.value for a in violations] == ['not-an-email']
        assert violations[0].severity == 0.7

    def test_top_values_limit(self, orders_db, open_runner):
        """Test the configured limit caps the frequency list."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'email', 'TEXT', top_values_limit=3)
        assert len(profile.top_values) == 3

    def test_numeric_profile(self, orders_db, open_runner):
        """Test a balanced numeric column is fully uniform."""
        with open_runner(orders_db) as runner:
            profile = profile_column(runner, 'amount', 'REAL')

        assert len(profile.top_values) == 10
        assert all(v.percentage == 9.0 for v in profile.top_values)
        assert profile.anomalies == []
        assert profile.uniformity_score == pytest.approx(1.0)
        assert profile.recommendation == "Numeric distribution looks adequate"

    def test_profile_serializes(self, orders_db, open_runner):
        """Test the full profile converts to a dict."""
        with open_runner(orders_db) as runner:
            data = profile_column(runner, 'amount', 'REAL').to_dict()

        assert data['classification'] == 'Numeric'
        assert data['numeric_stats']['mean'] == 4.5
        assert data['skipped_analyses'] == []


@pytest.mark.unit
class TestGuardedAnalyses:
    """Recoverable failures skip one block; critical ones propagate."""

    def test_recoverable_failure_recorded(self):
        """Test a QueryExecutionError is logged, recorded and turned into None."""
        profile = ColumnProfile('amount', 'REAL')
        result = run_guarded(profile, 'numeric_stats', 'main.orders.amount',
                             Mock(side_effect=QueryExecutionError("bad cast")))

        assert result is None
        assert profile.skipped_analyses == ['numeric_stats']

    def test_critical_failure_propagates(self):
        """Test a timeout is not swallowed."""
        profile = ColumnProfile('amount', 'REAL')
        with pytest.raises(QueryTimeoutError):
            run_guarded(profile, 'numeric_stats', 'main.orders.amount',
                        Mock(side_effect=QueryTimeoutError("SELECT 1", 5)))
        assert profile.skipped_analyses == []

    def test_failed_block_does_not_stop_profile(self, orders_db, open_runner):
        """Test the rest of the column profile survives a failed block."""
        with patch.object(ColumnProfiler, 'numeric_stats', side_effect=QueryExecutionError("boom")):
            with open_runner(orders_db) as runner:
                profile = profile_column(runner, 'amount', 'REAL')

        assert profile.numeric_stats is None
        assert profile.skipped_analyses == ['numeric_stats']
        assert len(profile.top_values) == 10


@pytest.mark.unit
class TestHelpers:
    """Pure helpers for anomalies, uniformity and recommendations."""

    def test_suspicious_frequency_needs_enough_rows(self):
        """Test the frequency rule needs more than 100 filled rows."""
        top = [ValueFrequency('x', 90, 90.0)]
        assert detect_anomalies(top, 100, 'code') == []
        assert detect_anomalies(top, 101, 'code')[0].anomaly_type == 'suspicious_frequency'

    def test_uniformity(self):
        """Test entropy-based uniformity bounds."""
        assert uniformity_score([], 0) == 1.0
        assert uniformity_score([ValueFrequency('a', 10, 100.0)], 10) == 1.0
        even = [ValueFrequency('a', 50, 50.0), ValueFrequency('b', 50, 50.0)]
        skewed = [ValueFrequency('a', 99, 99.0), ValueFrequency('b', 1, 1.0)]
        assert uniformity_score(even, 100) == pytest.approx(1.0)
        assert 0.0 < uniformity_score(skewed, 100) < 0.1

    @pytest.mark.parametrize("classification,kwargs,expected", [
        (TypeClassification.UNIQUE_ID, {'cardinality_rate': 90.0},
         "Identifier column has duplicates - check integrity"),
        (TypeClassification.NUMERIC, {'completeness_rate': 50.0},
         "Many nulls in a numeric field - consider defaults or mandatory validation"),
        (TypeClassification.DATETIME, {'completeness_rate': 70.0},
         "Incomplete dates - consider automatic timestamps for new rows"),
        (TypeClassification.CATEGORICAL, {'completeness_rate': 100.0, 'cardinality_rate': 60.0},
         "Many distinct categories - consider grouping or reviewing the rules"),
        (TypeClassification.TEXT, {'completeness_rate': 60.0},
         "Consider rules for null values or mandatory validation"),
        (TypeClassification.TEXT, {'completeness_rate': 100.0},
         "Data quality looks adequate"),
    ])
    def test_recommend(self, classification, kwargs, expected):
        """Test the recommendation rule per classification."""
        profile = ColumnProfile('c', 'TEXT', classification=classification, **kwargs)
        assert recommend(profile) == expected

    def test_recommend_unbalanced_boolean(self):
        """Test a heavily unbalanced boolean column."""
        profile = ColumnProfile('flag', 'BOOLEAN', classification=TypeClassification.BOOLEAN,
                                completeness_rate=100.0,
                                boolean_stats=BooleanStats(true_percentage=95.0, false_percentage=5.0))
        assert recommend(profile) == "Boolean field is heavily unbalanced - check whether this is expected"
