"""
Unit tests for declared and implicit relationship discovery.
"""

from unittest.mock import Mock

import pandas as pd
import pytest

from profiling_framework.core.dialects import SQLiteDialect
from profiling_framework.core.exceptions import QueryExecutionError
from profiling_framework.profiler.table_metadata import ColumnInfo
from profiling_framework.schema.discovery import (
    Relation,
    RelationType,
    SchemaDiscoverer,
    TableInfo,
    implicit_importance,
    infer_implicit_relations,
    rank_relations,
)


def table(name, *columns, schema='main'):
    return TableInfo(schema, name, [ColumnInfo(c, 'INTEGER') for c in columns])


def declared(source_table, source_column, target_table, target_column='id', schema='main'):
    return Relation(
        source_schema=schema, source_table=source_table, source_column=source_column,
        target_schema=schema, target_table=target_table, target_column=target_column,
        relation_type=RelationType.FK_DECLARED, confidence=1.0, detection_method="foreign key",
        evidence="Declared constraint fk_test", importance=10, constraint_name="fk_test",
    )


@pytest.mark.unit
class TestImplicitRelations:
    """Naming-pattern inference over collected metadata."""

    def test_id_prefix_convention(self):
        """Test id_<table> points at <table>.id."""
        tables = [table('customer', 'id', 'name'), table('documents', 'id', 'id_customer')]
        relations = infer_implicit_relations(tables)

        assert len(relations) == 1
        relation = relations[0]
        assert relation.name == "documents.id_customer -> customer.id"
        assert relation.relation_type is RelationType.IMPLICIT
        assert relation.confidence == 0.8
        assert relation.importance == 8
        assert relation.detection_method == "naming pattern"
        assert relation.join_condition == "main.documents.id_customer = main.customer.id"

    def test_id_suffix_convention(self):
        """Test <table>_id points at <table>.id."""
        tables = [table('customer', 'id'), table('orders', 'id', 'customer_id')]
        relations = infer_implicit_relations(tables)
        assert [r.name for r in relations] == ["orders.customer_id -> customer.id"]

    def test_case_insensitive(self):
        """Test table and column names are matched case-insensitively."""
        tables = [table('Customer', 'ID'), table('Documents', 'ID_CUSTOMER')]
        relations = infer_implicit_relations(tables)

        assert len(relations) == 1
        assert relations[0].target_table == 'Customer'
        assert relations[0].target_column == 'ID'

    def test_declared_not_duplicated(self):
        """Test a pair already covered by a foreign key is not inferred again."""
        tables = [table('customer', 'id'), table('orders', 'id', 'customer_id')]
        relations = infer_implicit_relations(tables, [declared('orders', 'customer_id', 'customer')])
        assert relations == []

    def test_self_reference_skipped(self):
        """Test a column naming its own table is ignored."""
        assert infer_implicit_relations([table('category', 'id', 'category_id')]) == []

    def test_target_needs_id_column(self):
        """Test the referenced table must have an id column."""
        tables = [table('customer', 'code'), table('orders', 'customer_id')]
        assert infer_implicit_relations(tables) == []

    def test_unknown_target(self):
        """Test names pointing at no table are ignored."""
        assert infer_implicit_relations([table('orders', 'id', 'warehouse_id')]) == []

    def test_own_schema_preferred(self):
        """Test the source's schema wins when several schemas hold the target."""
        tables = [
            table('customer', 'id', schema='sales'),
            table('customer', 'id', schema='crm'),
            table('tickets', 'id', 'customer_id', schema='crm'),
        ]
        relations = infer_implicit_relations(tables)

        assert len(relations) == 1
        assert relations[0].target_schema == 'crm'

    def test_importance_bounds(self):
        """Test importance stays within [2, 10]."""
        assert implicit_importance(0.0) == 2
        assert implicit_importance(0.8) == 8
        assert implicit_importance(1.0) == 10


@pytest.mark.unit
class TestRanking:
    """Combined ordering of declared and inferred relations."""

    def test_declared_before_implicit(self):
        """Test importance first, then confidence, then name."""
        implicit = infer_implicit_relations([table('customer', 'id'), table('documents', 'id_customer')])
        fk_b = declared('orders', 'customer_id', 'customer')
        fk_a = declared('invoices', 'customer_id', 'customer')

        ranked = rank_relations(implicit + [fk_b, fk_a])

        assert [r.name for r in ranked] == [
            "invoices.customer_id -> customer.id",
            "orders.customer_id -> customer.id",
            "documents.id_customer -> customer.id",
        ]

    def test_to_dict(self):
        """Test relation serialization."""
        data = declared('orders', 'customer_id', 'customer').to_dict()
        assert data['relation_type'] == "FK_DECLARED"
        assert data['join_condition'] == "main.orders.customer_id = main.customer.id"
        assert data['constraint_name'] == "fk_test"


@pytest.fixture(scope="module")
def shop_db(make_database):
    return make_database(
        "shop",
        ddl=[
            "CREATE TABLE customer (id INTEGER PRIMARY KEY, name TEXT)",
            "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER REFERENCES customer(id), total REAL)",
            "CREATE TABLE documents (id INTEGER PRIMARY KEY, id_customer INTEGER, title TEXT)",
            "CREATE TABLE category (id INTEGER PRIMARY KEY, category_id INTEGER)",
        ],
        tables={
            'customer': pd.DataFrame({'id': [1, 2], 'name': ['Ana', 'Bruno']}),
            'orders': pd.DataFrame({'id': [1, 2], 'customer_id': [1, 2], 'total': [10.0, 20.0]}),
        }
    )


@pytest.mark.unit
class TestSchemaDiscoverer:
    """Discovery through the SQLAlchemy inspector on SQLite."""

    def test_discover(self, shop_db, open_runner):
        """Test tables, the declared foreign key and the inferred relation."""
        with open_runner(shop_db) as runner:
            snapshot = SchemaDiscoverer(runner).discover()

        assert snapshot.schemas == ['main']
        assert {t.table_name for t in snapshot.tables} == {'customer', 'orders', 'documents', 'category'}

        assert [r.name for r in snapshot.declared_foreign_keys] == ["orders.customer_id -> customer.id"]
        assert snapshot.declared_foreign_keys[0].target_schema == 'main'
        assert [r.name for r in snapshot.implicit_relations] == ["documents.id_customer -> customer.id"]
        assert [r.relation_type for r in snapshot.ranked_relations] == [
            RelationType.FK_DECLARED, RelationType.IMPLICIT
        ]

    def test_related_relations(self, shop_db, open_runner):
        """Test filtering the ranked relations by table."""
        with open_runner(shop_db) as runner:
            snapshot = SchemaDiscoverer(runner).discover('main')

        assert len(snapshot.related_relations('customer')) == 2
        assert [r.source_table for r in snapshot.related_relations('DOCUMENTS')] == ['documents']
        assert snapshot.related_relations('category') == []
        assert snapshot.related_relations('customer', schema='other') == []

    def test_snapshot_to_dict(self, shop_db, open_runner):
        """Test the snapshot serializes."""
        with open_runner(shop_db) as runner:
            data = SchemaDiscoverer(runner).discover().to_dict()

        assert data['ranked_relations'][0]['importance'] == 10
        assert data['skipped_tables'] == {}

    def test_unreadable_table_skipped(self):
        """Test a table whose metadata fails is recorded and the rest continue."""
        runner = Mock(dialect=SQLiteDialect())

        def inspect(description, operation):
            if description == "schemas":
                return ['main']
            if description == "tables main":
                return ['broken']
            raise QueryExecutionError("metadata failed")

        runner.inspect.side_effect = inspect
        snapshot = SchemaDiscoverer(runner).discover()

        assert snapshot.tables == []
        assert snapshot.skipped_tables == {'main.broken': "metadata failed"}
