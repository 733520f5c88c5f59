"""
Unit tests for status/date consistency and numeric correlations.
"""

from unittest.mock import Mock, patch

import pandas as pd
import pytest

from profiling_framework.core.dialects import SQLiteDialect
from profiling_framework.core.exceptions import QueryExecutionError, QueryTimeoutError
from profiling_framework.profiler.profile_result import Correlation, correlation_strength
from profiling_framework.profiler.relationship_analyzer import (
    RelationshipAnalyzer,
    common_radical,
    is_correlation_candidate,
    longest_common_substring,
    pearson,
)
from profiling_framework.profiler.sampling_planner import SamplingMode, SamplingStrategy, build_sample_query
from profiling_framework.profiler.table_metadata import ColumnInfo

ACCOUNT_COLUMNS = [
    ColumnInfo('id', 'INTEGER', is_primary_key=True),
    ColumnInfo('is_active', 'INTEGER'),
    ColumnInfo('st_conta', 'TEXT'),
    ColumnInfo('activated_at', 'TEXT'),
    ColumnInfo('amount', 'REAL'),
    ColumnInfo('fee', 'REAL'),
    ColumnInfo('discount', 'REAL'),
    ColumnInfo('noise', 'REAL'),
]


@pytest.fixture(scope="module")
def accounts_db(make_database):
    amount = [float(v) for v in range(1, 11)]
    return make_database(
        "accounts",
        ddl=["""
            CREATE TABLE accounts (
                id INTEGER PRIMARY KEY, is_active INTEGER, st_conta TEXT, activated_at TEXT,
                amount REAL, fee REAL, discount REAL, noise REAL
            )
        """],
        tables={'accounts': pd.DataFrame({
            'id': range(1, 11),
            # six active rows, two of them without an activation date
            'is_active': [1, 1, 1, 1, 1, 1, 0, 0, 0, 0],
            'st_conta': ['ativo'] * 5 + ['inativo'] * 5,
            'activated_at': ['2024-01-01'] * 4 + [None] * 6,
            'amount': amount,
            'fee': [v * 2 for v in amount],
            'discount': [11 - v for v in amount],
            'noise': [2.0, 1.0] * 5,
        })}
    )


@pytest.mark.unit
class TestPearson:
    """Correlation coefficient edge cases."""

    def test_perfect_correlations(self):
        """Test +1 and -1 for exact linear relations."""
        x = [1, 2, 3, 4, 5]
        assert pearson(x, [2, 4, 6, 8, 10]) == pytest.approx(1.0)
        assert pearson(x, [5, 4, 3, 2, 1]) == pytest.approx(-1.0)

    def test_symmetric(self):
        """Test r(x, y) == r(y, x)."""
        x = [1.0, 2.5, 3.0, 7.5, 4.0]
        y = [10.0, 8.0, 9.5, 1.0, 6.0]
        assert pearson(x, y) == pytest.approx(pearson(y, x))

    def test_within_range(self):
        """Test the result stays in [-1, 1]."""
        r = pearson([1, 2, 3, 4], [1.1, 1.9, 3.2, 3.9])
        assert -1.0 <= r <= 1.0

    def test_too_few_pairs(self):
        """Test fewer than three pairs give None."""
        assert pearson([1, 2], [2, 4]) is None

    def test_zero_variance(self):
        """Test a constant side gives None."""
        assert pearson([1, 2, 3], [5, 5, 5]) is None

    def test_length_mismatch(self):
        """Test differently sized samples are rejected."""
        with pytest.raises(ValueError):
            pearson([1, 2, 3], [1, 2])

    @pytest.mark.parametrize("coefficient,label", [
        (0.95, "very strong"), (-0.75, "strong"), (0.5, "moderate"), (0.31, "weak"), (-0.2, "very weak"),
    ])
    def test_strength_labels(self, coefficient, label):
        """Test qualitative strength by absolute value."""
        assert correlation_strength(coefficient) == label

    def test_direction(self):
        """Test the sign gives the direction."""
        assert Correlation('a', 'b', -0.8, 100).direction == "negative"
        assert Correlation('a', 'b', 0.8, 100).to_dict()['direction'] == "positive"


@pytest.mark.unit
class TestCommonRadical:
    """Shared name fragment of status and date columns."""

    def test_portuguese_names(self):
        """Test prefixes are stripped before matching."""
        assert common_radical("fl_ativo", "dt_ativacao") == "ativ"

    def test_english_names(self):
        """Test the same for English naming."""
        assert common_radical("is_active", "activated_at") == "activ"

    def test_short_fragment_falls_back(self):
        """Test fragments shorter than three characters give 'common'."""
        assert common_radical("is_paid", "created_at") == "common"

    def test_longest_common_substring(self):
        """Test the first longest fragment wins."""
        assert longest_common_substring("abcxyz", "xyzabc") == "abc"
        assert longest_common_substring("abc", "def") == ""


@pytest.mark.unit
class TestStatusDate:
    """Active flags with missing dates."""

    def test_inconsistencies_found(self, accounts_db, open_runner):
        """Test both status columns are paired with the date column."""
        with open_runner(accounts_db) as runner:
            metrics = RelationshipAnalyzer(runner).analyze('main', 'accounts', ACCOUNT_COLUMNS)

        by_status = {r.status_column: r for r in metrics.status_date_relationships}
        assert set(by_status) == {'is_active', 'st_conta'}

        flag = by_status['is_active']
        assert flag.date_column == 'activated_at'
        assert (flag.active_count, flag.inconsistent_count) == (6, 2)
        assert flag.inconsistency_percentage == pytest.approx(100 * 2 / 6)
        assert flag.active_values == ['1']
        assert flag.common_radical == 'activ'

        text_flag = by_status['st_conta']
        assert (text_flag.active_count, text_flag.inconsistent_count) == (5, 1)
        assert text_flag.active_values == ['ativo']
        assert text_flag.common_radical == 'common'

    def test_consistent_pair_not_reported(self):
        """Test a pair without inconsistent rows is left out."""
        columns = [ColumnInfo('is_active', 'INTEGER'), ColumnInfo('created_at', 'TEXT')]
        analyzer = RelationshipAnalyzer(runner=Mock(dialect=SQLiteDialect()))
        analyzer.runner.fetch_one.return_value = {'active_count': 6, 'inconsistent_count': 0}

        metrics = analyzer.analyze('main', 'accounts', columns)

        assert metrics.status_date_relationships == []
        analyzer.runner.fetch_all.assert_not_called()

    def test_critical_error_propagates(self):
        """Test a timeout aborts the analysis instead of skipping the pair."""
        runner = Mock(dialect=SQLiteDialect())
        runner.fetch_one.side_effect = QueryTimeoutError("SELECT ...", 30)
        columns = [ColumnInfo('is_active', 'INTEGER'), ColumnInfo('activated_at', 'TEXT')]

        with pytest.raises(QueryTimeoutError):
            RelationshipAnalyzer(runner).analyze('main', 'accounts', columns)


@pytest.mark.unit
class TestCorrelations:
    """Pairwise numeric correlations."""

    def test_only_numeric_columns(self, accounts_db, open_runner):
        """Test every unordered pair of numeric columns, strongest first."""
        with open_runner(accounts_db) as runner:
            metrics = RelationshipAnalyzer(runner).analyze('main', 'accounts', ACCOUNT_COLUMNS)

        pairs = {(c.column1, c.column2): c for c in metrics.correlations}
        assert len(pairs) == 6
        assert pairs[('amount', 'fee')].coefficient == 1.0
        assert pairs[('amount', 'discount')].coefficient == -1.0
        assert pairs[('amount', 'noise')].coefficient == pytest.approx(-0.174, abs=1e-3)
        assert all(c.sample_size == 10 for c in metrics.correlations)

        magnitudes = [abs(c.coefficient) for c in metrics.correlations]
        assert magnitudes == sorted(magnitudes, reverse=True)

    @pytest.mark.parametrize("column,expected", [
        (ColumnInfo('weight', 'REAL'), True),
        (ColumnInfo('total', 'NUMERIC(12, 2)'), True),
        (ColumnInfo('pk', 'INTEGER', is_primary_key=True), False),
        (ColumnInfo('customer_id', 'INTEGER'), False),
        (ColumnInfo('is_active', 'INTEGER'), False),
        (ColumnInfo('title', 'TEXT'), False),
    ])
    def test_candidates_by_declared_type(self, column, expected):
        """Test measures are chosen by type, whatever their cardinality."""
        assert is_correlation_candidate(column) is expected

    def test_fewer_than_two_numeric_columns(self, accounts_db, open_runner):
        """Test no correlation queries run with a single numeric measure."""
        columns = [c for c in ACCOUNT_COLUMNS if c.name not in ('fee', 'discount', 'noise')]
        with open_runner(accounts_db) as runner:
            metrics = RelationshipAnalyzer(runner).analyze('main', 'accounts', columns)
        assert metrics.correlations == []

    def test_failed_pair_skipped(self, accounts_db, open_runner):
        """Test a broken pair is recorded while the others still run."""
        columns = [ColumnInfo('amount', 'REAL'), ColumnInfo('fee', 'REAL'), ColumnInfo('discount', 'REAL')]

        with open_runner(accounts_db) as runner:
            fetch_all = runner.fetch_all

            def failing_fetch_all(sql, params=None, **kwargs):
                if '"discount"' in sql:
                    raise QueryExecutionError("column read failed", sql=sql, params=params)
                return fetch_all(sql, params, **kwargs)

            with patch.object(runner, 'fetch_all', side_effect=failing_fetch_all):
                metrics = RelationshipAnalyzer(runner).analyze('main', 'accounts', columns)

        assert [(c.column1, c.column2) for c in metrics.correlations] == [('amount', 'fee')]
        assert metrics.skipped_pairs == ['amount<->discount', 'fee<->discount']

    def test_critical_pair_failure_propagates(self, accounts_db, open_runner):
        """Test a timeout on one pair aborts the whole correlation pass."""
        columns = [ColumnInfo('amount', 'REAL'), ColumnInfo('fee', 'REAL')]

        with open_runner(accounts_db) as runner:
            with patch.object(runner, 'fetch_all', side_effect=QueryTimeoutError("SELECT ...", 30)):
                with pytest.raises(QueryTimeoutError):
                    RelationshipAnalyzer(runner).analyze('main', 'accounts', columns)

    def test_sample_query_source(self, accounts_db, open_runner):
        """Test correlations read from the planned sample."""
        strategy = SamplingStrategy(SamplingMode.RANDOM, 5)
        with open_runner(accounts_db) as runner:
            query = build_sample_query(runner.dialect, 'main', 'accounts', strategy)
            correlation = RelationshipAnalyzer(runner).correlate('main', 'accounts', 'amount', 'fee', query)

        assert correlation.sample_size == 5
        assert correlation.coefficient == 1.0

    def test_sample_size_cap(self, accounts_db, open_runner):
        """Test the configured correlation sample size limits the rows read."""
        with open_runner(accounts_db) as runner:
            correlation = RelationshipAnalyzer(runner, correlation_sample_size=4).correlate(
                'main', 'accounts', 'amount', 'discount'
            )
        assert correlation.sample_size == 4

    def test_to_dict(self, accounts_db, open_runner):
        """Test metrics serialize."""
        with open_runner(accounts_db) as runner:
            data = RelationshipAnalyzer(runner).analyze('main', 'accounts', ACCOUNT_COLUMNS).to_dict()

        assert data['correlations'][0]['strength'] == "very strong"
        assert data['skipped_pairs'] == []
