"""
SQL identifier validation and safe query construction.

Identifiers (schema, table, column names) cannot be bound as parameters, so
every name that ends up inside generated SQL passes through
SQLIdentifierValidator first and is then double-quoted with embedded quotes
doubled. Literal values are never formatted into SQL; callers bind them.
"""

import re
from typing import List, Optional

from profiling_framework.core.constants import MAX_SQL_IDENTIFIER_LENGTH
from profiling_framework.core.exceptions import InvalidIdentifierError


class SQLIdentifierValidator:
    """
    Allowlist validator for SQL identifiers.

    Accepted characters are unicode letters, digits, underscore, dollar sign,
    space and hyphen. The first character may not be a space or hyphen.
    """

    IDENTIFIER_PATTERN = re.compile(r'^[\w$][\w$ \-]*$', re.UNICODE)

    @classmethod
    def validate_identifier(cls, identifier: str, kind: str = "identifier") -> str:
        """
        Validate an identifier against the allowlist.

        Args:
            identifier: Name to validate
            kind: What the name refers to (schema, table, column), used in errors

        Returns:
            The identifier unchanged

        Raises:
            InvalidIdentifierError: If the identifier is empty, too long or
                contains characters outside the allowlist
        """
        if not isinstance(identifier, str) or not identifier:
            raise InvalidIdentifierError(str(identifier), kind, "must be a non-empty string")

        if len(identifier) > MAX_SQL_IDENTIFIER_LENGTH:
            raise InvalidIdentifierError(
                identifier, kind,
                f"exceeds maximum length of {MAX_SQL_IDENTIFIER_LENGTH} characters"
            )

        if not cls.IDENTIFIER_PATTERN.match(identifier):
            raise InvalidIdentifierError(identifier, kind, "contains forbidden characters")

        return identifier

    @classmethod
    def is_valid(cls, identifier: str) -> bool:
        try:
            cls.validate_identifier(identifier)
        except InvalidIdentifierError:
            return False
        return True


def quote_identifier(identifier: str, kind: str = "identifier") -> str:
    """Validate and double-quote a single identifier."""
    SQLIdentifierValidator.validate_identifier(identifier, kind)
    return '"' + identifier.replace('"', '""') + '"'


def qualified_table_name(schema: Optional[str], table: str) -> str:
    """Return the quoted, schema-qualified table reference."""
    quoted_table = quote_identifier(table, "table")
    if schema:
        return f"{quote_identifier(schema, 'schema')}.{quoted_table}"
    return quoted_table


def create_safe_select_query(
    table: str,
    columns: Optional[List[str]] = None,
    schema: Optional[str] = None
) -> str:
    """
    Build a SELECT over a table with every identifier quoted.

    Args:
        table: Table name
        columns: Columns to select (None selects all)
        schema: Optional schema name

    Returns:
        SQL string without any literal values
    """
    if columns:
        column_list = ", ".join(quote_identifier(c, "column") for c in columns)
    else:
        column_list = "*"
    return f"SELECT {column_list} FROM {qualified_table_name(schema, table)}"


def create_safe_count_query(table: str, schema: Optional[str] = None) -> str:
    """Build a ``SELECT COUNT(*)`` over a quoted table reference."""
    return f"SELECT COUNT(*) AS row_count FROM {qualified_table_name(schema, table)}"
