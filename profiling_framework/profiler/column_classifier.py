"""
Column type classification from declared types and naming conventions.

Declared SQL types are grouped into families with anchored regexes, and
column names are matched against keyword patterns. The classification order
keeps value- and date-named columns with high cardinality (amounts,
timestamps) from being mistaken for identifiers.
"""

import re
from typing import List

from profiling_framework.core.constants import (
    CATEGORICAL_MAX_CARDINALITY,
    CATEGORICAL_MAX_DISTINCT,
    UNIQUE_ID_CARDINALITY,
)
from profiling_framework.profiler.profile_result import TypeClassification


# Declared type families (matched against the lower-cased type name)
TYPE_FAMILIES = {
    'datetime': re.compile(r'^(timestamp|datetime|date|time|smalldatetime)\b'),
    'boolean': re.compile(r'^(bool|boolean|bit)\b'),
    'numeric': re.compile(
        r'^(tinyint|smallint|mediumint|bigint|int|integer|int2|int4|int8|'
        r'decimal|numeric|number|float|float4|float8|real|double|money|'
        r'smallserial|serial|bigserial)\b'
    ),
    'text': re.compile(
        r'^(varchar|character varying|character|char|nchar|nvarchar|'
        r'text|ntext|string|clob|citext|uuid|enum)\b'
    ),
}

# Name hints
DATE_NAME_PATTERN = re.compile(r'dt_|date|created_at|updated_at')
VALUE_NAME_PATTERN = re.compile(r'vl_|valor|price|preco|renda|amount|value')
ID_NAME_PATTERN = re.compile(r'(^|_)(id|uuid|guid)(_|$)|uuid|guid')
GEOGRAPHIC_NAME_PATTERN = re.compile(r'(^|_)(lat|lon|lng|latitude|longitude|coord\w*)(_|$)')

# Status/date hints used by the relationship analyzer
STATUS_NAME_KEYWORDS: List[str] = [
    "st_", "situacao_", "status_", "fl_", "in_", "is_", "has_", "ativo", "active"
]
DATE_NAME_KEYWORDS: List[str] = [
    "dt_", "data_", "date_", "timestamp_", "_at", "_date", "_time"
]


def type_family(data_type: str) -> str:
    """Return datetime, boolean, numeric, text or other for a declared type."""
    normalized = (data_type or "").strip().lower()
    for family, pattern in TYPE_FAMILIES.items():
        if pattern.match(normalized):
            return family
    return "other"


def is_numeric_type(data_type: str) -> bool:
    return type_family(data_type) == "numeric"


def is_datetime_type(data_type: str) -> bool:
    return type_family(data_type) == "datetime"


def is_boolean_type(data_type: str) -> bool:
    return type_family(data_type) == "boolean"


def is_text_type(data_type: str) -> bool:
    return type_family(data_type) == "text"


def is_value_field(column_name: str) -> bool:
    return bool(VALUE_NAME_PATTERN.search(column_name.lower()))


def is_date_field(column_name: str) -> bool:
    return bool(DATE_NAME_PATTERN.search(column_name.lower()))


def has_id_hint(column_name: str) -> bool:
    return bool(ID_NAME_PATTERN.search(column_name.lower()))


def is_geographic_name(column_name: str) -> bool:
    return bool(GEOGRAPHIC_NAME_PATTERN.search(column_name.lower()))


def is_status_column(column_name: str, data_type: str) -> bool:
    """Boolean-typed columns and flag-named columns (st_, fl_, is_, ativo ...)."""
    if is_boolean_type(data_type):
        return True
    name = column_name.lower()
    return any(keyword in name for keyword in STATUS_NAME_KEYWORDS)


def is_date_column(column_name: str, data_type: str) -> bool:
    """Date/time typed columns and date-named columns (dt_, _at, _date ...)."""
    if is_datetime_type(data_type):
        return True
    name = column_name.lower()
    return any(keyword in name for keyword in DATE_NAME_KEYWORDS)


def classify_column(
    column_name: str,
    data_type: str,
    cardinality_rate: float,
    distinct_count: int
) -> TypeClassification:
    """
    Classify a column in priority order.

    1. Date/time type or date-like name -> DateTime
    2. Cardinality >= 95% and not value/date named -> UniqueId
    3. id/uuid/guid name and not value/date named -> UniqueId
    4. Boolean type -> Boolean
    5. Numeric type -> Numeric (Geographic when named like lat/lon)
    6. Cardinality <= 10% and <= 50 distinct -> Categorical
    7. Text type -> Text
    8. Anything else -> Other

    Args:
        column_name: Column name
        data_type: Declared SQL type
        cardinality_rate: Distinct / filled values, as a percentage
        distinct_count: Number of distinct non-null values

    Returns:
        TypeClassification
    """
    family = type_family(data_type)
    date_named = is_date_field(column_name)
    # Coordinates are measurements, excluded from the ID rules like amounts
    value_named = is_value_field(column_name) or is_geographic_name(column_name)

    if family == "datetime" or date_named:
        return TypeClassification.DATETIME

    if not value_named:
        if cardinality_rate >= UNIQUE_ID_CARDINALITY:
            return TypeClassification.UNIQUE_ID
        if has_id_hint(column_name):
            return TypeClassification.UNIQUE_ID

    if family == "boolean":
        return TypeClassification.BOOLEAN

    if family == "numeric":
        if is_geographic_name(column_name):
            return TypeClassification.GEOGRAPHIC
        return TypeClassification.NUMERIC

    if cardinality_rate <= CATEGORICAL_MAX_CARDINALITY and distinct_count <= CATEGORICAL_MAX_DISTINCT:
        return TypeClassification.CATEGORICAL

    if family == "text":
        return TypeClassification.TEXT

    return TypeClassification.OTHER
