"""
Database-level relationship discovery.

Collects every base table of the non-system schemas with its columns, reads
declared foreign keys from constraint metadata and infers undeclared
relations from column naming conventions:

    documents.id_customer  ->  customer.id
    orders.customer_id     ->  customer.id

Inference is a pure function over the collected metadata so it can be
tested without a database. Declared and inferred relations are ranked
together by importance, then confidence, then name.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from profiling_framework.core.constants import (
    DECLARED_FK_CONFIDENCE,
    DECLARED_FK_IMPORTANCE,
    NAMING_PATTERN_CONFIDENCE,
    SYSTEM_SCHEMAS,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.exceptions import ProfilingException
from profiling_framework.core.sql_utils import quote_identifier
from profiling_framework.profiler.table_metadata import ColumnInfo, read_columns

logger = logging.getLogger(__name__)

# Naming conventions for implicit references, tried in order
IMPLICIT_NAME_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("id_<table>", re.compile(r"^id_(?P<target>.+)$", re.IGNORECASE)),
    ("<table>_id", re.compile(r"^(?P<target>.+)_id$", re.IGNORECASE)),
]


class RelationType(Enum):
    FK_DECLARED = "FK_DECLARED"
    IMPLICIT = "IMPLICIT"


@dataclass
class TableInfo:
    """A base table and its columns."""
    schema_name: str
    table_name: str
    columns: List[ColumnInfo] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def find_column(self, name: str) -> Optional[ColumnInfo]:
        """Case-insensitive column lookup."""
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_name": self.schema_name,
            "table_name": self.table_name,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass
class Relation:
    """
    A relationship between two table columns.

    Declared foreign keys and naming-pattern inferences share this shape and
    are told apart by ``relation_type`` and ``detection_method``.
    """
    source_schema: str
    source_table: str
    source_column: str
    target_schema: str
    target_table: str
    target_column: str
    relation_type: RelationType
    confidence: float
    detection_method: str
    evidence: str
    importance: int
    constraint_name: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.source_table}.{self.source_column} -> {self.target_table}.{self.target_column}"

    @property
    def join_condition(self) -> str:
        return (
            f"{self.source_schema}.{self.source_table}.{self.source_column} = "
            f"{self.target_schema}.{self.target_table}.{self.target_column}"
        )

    def pair_key(self) -> Tuple[str, str, str, str, str, str]:
        return (
            self.source_schema.lower(), self.source_table.lower(), self.source_column.lower(),
            self.target_schema.lower(), self.target_table.lower(), self.target_column.lower(),
        )

    def involves(self, table: str, schema: Optional[str] = None) -> bool:
        lowered = table.lower()
        source = self.source_table.lower() == lowered and (schema is None or self.source_schema == schema)
        target = self.target_table.lower() == lowered and (schema is None or self.target_schema == schema)
        return source or target

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source_schema": self.source_schema,
            "source_table": self.source_table,
            "source_column": self.source_column,
            "target_schema": self.target_schema,
            "target_table": self.target_table,
            "target_column": self.target_column,
            "relation_type": self.relation_type.value,
            "confidence": self.confidence,
            "detection_method": self.detection_method,
            "evidence": self.evidence,
            "importance": self.importance,
            "join_condition": self.join_condition,
            "constraint_name": self.constraint_name,
        }


def implicit_importance(confidence: float) -> int:
    """Importance of an inferred relation: round(confidence x 8) + 2, within [2, 10]."""
    return max(2, min(10, int(round(confidence * 8)) + 2))


def rank_relations(relations: Iterable[Relation]) -> List[Relation]:
    """Sort by importance desc, confidence desc, then name."""
    return sorted(relations, key=lambda r: (-r.importance, -r.confidence, r.name))


def infer_implicit_relations(
    tables: List[TableInfo],
    declared: Optional[List[Relation]] = None
) -> List[Relation]:
    """
    Infer relations from ``id_<table>`` and ``<table>_id`` column names.

    The referenced table must exist (case-insensitive) and have an ``id``
    column. Self references and pairs already covered by a declared foreign
    key are skipped. When several schemas hold a table of that name, the
    source's own schema wins.

    Args:
        tables: Collected tables with their columns
        declared: Declared foreign keys

    Returns:
        Inferred relations in table/column order
    """
    by_name: Dict[str, List[TableInfo]] = {}
    for table in tables:
        by_name.setdefault(table.table_name.lower(), []).append(table)

    covered: Set[Tuple[str, ...]] = {relation.pair_key() for relation in (declared or [])}
    relations = []

    for source in tables:
        for column in source.columns:
            for pattern_label, pattern in IMPLICIT_NAME_PATTERNS:
                match = pattern.match(column.name)
                if not match:
                    continue

                target = _resolve_target(by_name.get(match.group("target").lower(), []), source)
                if target is None or target is source:
                    continue
                target_column = target.find_column("id")
                if target_column is None:
                    continue

                relation = Relation(
                    source_schema=source.schema_name,
                    source_table=source.table_name,
                    source_column=column.name,
                    target_schema=target.schema_name,
                    target_table=target.table_name,
                    target_column=target_column.name,
                    relation_type=RelationType.IMPLICIT,
                    confidence=NAMING_PATTERN_CONFIDENCE,
                    detection_method="naming pattern",
                    evidence=(
                        f"Column '{column.name}' follows the {pattern_label} convention "
                        f"and table '{target.table_name}' has an '{target_column.name}' column"
                    ),
                    importance=implicit_importance(NAMING_PATTERN_CONFIDENCE),
                )
                if relation.pair_key() in covered:
                    break
                covered.add(relation.pair_key())
                relations.append(relation)
                break

    return relations


def _resolve_target(candidates: List[TableInfo], source: TableInfo) -> Optional[TableInfo]:
    if not candidates:
        return None
    for candidate in candidates:
        if candidate.schema_name == source.schema_name:
            return candidate
    return candidates[0]


@dataclass
class SchemaSnapshot:
    """Tables and relations of a database (or of one schema)."""
    schemas: List[str] = field(default_factory=list)
    tables: List[TableInfo] = field(default_factory=list)
    declared_foreign_keys: List[Relation] = field(default_factory=list)
    implicit_relations: List[Relation] = field(default_factory=list)
    ranked_relations: List[Relation] = field(default_factory=list)
    skipped_tables: Dict[str, str] = field(default_factory=dict)

    def related_relations(self, table: str, schema: Optional[str] = None) -> List[Relation]:
        """Ranked relations in which the table is the source or the target."""
        return [r for r in self.ranked_relations if r.involves(table, schema)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemas": list(self.schemas),
            "tables": [t.to_dict() for t in self.tables],
            "declared_foreign_keys": [r.to_dict() for r in self.declared_foreign_keys],
            "implicit_relations": [r.to_dict() for r in self.implicit_relations],
            "ranked_relations": [r.to_dict() for r in self.ranked_relations],
            "skipped_tables": dict(self.skipped_tables),
        }


class SchemaDiscoverer:
    """Read tables and foreign keys through the SQLAlchemy inspector."""

    def __init__(self, runner: QueryRunner):
        self.runner = runner

    def discover(self, schema: Optional[str] = None) -> SchemaSnapshot:
        """
        Build a schema snapshot.

        Args:
            schema: Restrict discovery to one schema (default: every
                non-system schema)
        """
        snapshot = SchemaSnapshot(schemas=self.list_schemas(schema))

        for schema_name in snapshot.schemas:
            table_names = self.runner.inspect(
                f"tables {schema_name}",
                lambda inspector, s=schema_name: inspector.get_table_names(schema=s)
            )
            for table_name in table_names:
                self.runner.check_cancelled(f"schema discovery at {schema_name}.{table_name}")
                try:
                    columns = read_columns(self.runner, schema_name, table_name)
                    foreign_keys = self.declared_foreign_keys(schema_name, table_name)
                except ProfilingException as e:
                    if not e.is_recoverable:
                        raise
                    logger.warning(f"Skipping table {schema_name}.{table_name} in discovery: {e.message}")
                    snapshot.skipped_tables[f"{schema_name}.{table_name}"] = e.message
                    continue
                snapshot.tables.append(TableInfo(schema_name, table_name, columns))
                snapshot.declared_foreign_keys.extend(foreign_keys)

        snapshot.implicit_relations = infer_implicit_relations(snapshot.tables, snapshot.declared_foreign_keys)
        snapshot.ranked_relations = rank_relations(
            snapshot.declared_foreign_keys + snapshot.implicit_relations
        )

        logger.info(
            f"Discovered {len(snapshot.tables)} tables in {len(snapshot.schemas)} schemas: "
            f"{len(snapshot.declared_foreign_keys)} declared foreign keys, "
            f"{len(snapshot.implicit_relations)} implicit relations"
        )
        return snapshot

    def list_schemas(self, schema: Optional[str] = None) -> List[str]:
        if schema:
            quote_identifier(schema, "schema")
            return [schema]
        names = self.runner.inspect("schemas", lambda inspector: inspector.get_schema_names())
        return [
            name for name in names
            if name not in SYSTEM_SCHEMAS and not name.startswith(("pg_temp", "pg_toast"))
        ]

    def declared_foreign_keys(self, schema: str, table: str) -> List[Relation]:
        foreign_keys = self.runner.inspect(
            f"foreign keys {schema}.{table}",
            lambda inspector: inspector.get_foreign_keys(table, schema=schema)
        )

        relations = []
        for fk in foreign_keys:
            target_schema = fk.get("referred_schema") or schema
            target_table = fk["referred_table"]
            for source_column, target_column in zip(fk["constrained_columns"], fk["referred_columns"]):
                relations.append(Relation(
                    source_schema=schema,
                    source_table=table,
                    source_column=source_column,
                    target_schema=target_schema,
                    target_table=target_table,
                    target_column=target_column,
                    relation_type=RelationType.FK_DECLARED,
                    confidence=DECLARED_FK_CONFIDENCE,
                    detection_method="foreign key",
                    evidence=f"Declared constraint {fk.get('name') or '(unnamed)'}",
                    importance=DECLARED_FK_IMPORTANCE,
                    constraint_name=fk.get("name"),
                ))
        return relations
