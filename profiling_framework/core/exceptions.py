"""
Profiling Framework Exception Hierarchy.

This module defines the exception hierarchy used by the table profiling
engine. Every error carries a severity so callers can decide whether the
whole analysis is lost or only a single unit (column, pattern rule, column
pair) is dropped from the result.

Exception Severity Levels:
    - FATAL: Unsupported configuration, nothing is attempted
    - CRITICAL: Connectivity, timeout or cancellation, no partial result
    - RECOVERABLE: A single unit failed, log it and omit it from the result
    - WARNING: Non-critical issue, log and continue
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """
    Classify error severity for handling decisions.

    Attributes:
        FATAL: Unrecoverable configuration error, stop before any query runs
        CRITICAL: Request-level error, the table profile is discarded
        RECOVERABLE: Unit-level error, continue with the other units
        WARNING: Non-critical issue, log and continue
    """
    FATAL = "fatal"
    CRITICAL = "critical"
    RECOVERABLE = "recoverable"
    WARNING = "warning"


class ProfilingException(Exception):
    """
    Base exception for all profiling errors with enhanced context.

    Attributes:
        message (str): Human-readable error message
        severity (ErrorSeverity): Error severity level
        details (Dict[str, Any]): Additional context (schema, table, column, query)
        original_exception (Optional[Exception]): Original exception if wrapping

    Example:
        >>> try:
        ...     run_query()
        ... except Exception as e:
        ...     raise ProfilingException(
        ...         "Column statistics failed",
        ...         severity=ErrorSeverity.RECOVERABLE,
        ...         details={'column': 'email'},
        ...         original_exception=e
        ...     )
    """

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.RECOVERABLE,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        """
        Initialize profiling exception.

        Args:
            message: Human-readable error description
            severity: Error severity level (default: RECOVERABLE)
            details: Additional context dictionary
            original_exception: Original exception if this wraps another error
        """
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.details = details or {}
        self.original_exception = original_exception

    @property
    def is_recoverable(self) -> bool:
        """True when the failure only affects a single analysis unit."""
        return self.severity in (ErrorSeverity.RECOVERABLE, ErrorSeverity.WARNING)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for logging/reporting.

        Returns:
            Dictionary containing exception details suitable for JSON serialization
        """
        return {
            'type': self.__class__.__name__,
            'message': self.message,
            'severity': self.severity.value,
            'details': self.details,
            'original_error': str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors (Fatal)
# ============================================================================

class ConfigError(ProfilingException):
    """
    Configuration errors (fatal - nothing is analyzed).

    Raised when:
    - Configuration file not found
    - Invalid YAML syntax
    - Invalid configuration structure

    Attributes:
        field (Optional[str]): Specific config field that caused error
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            severity=ErrorSeverity.FATAL,
            details={'field': field} if field else {}
        )
        self.field = field


class YAMLSizeError(ConfigError):
    """
    YAML file too large (security protection).

    Example:
        >>> raise YAMLSizeError(
        ...     "Config file exceeds 10MB limit",
        ...     file_size=15000000,
        ...     max_size=10000000
        ... )
    """

    def __init__(self, message: str, file_size: Optional[int] = None, max_size: Optional[int] = None):
        super().__init__(message)
        self.details.update({
            'file_size': file_size,
            'max_size': max_size
        })


class ConfigValidationError(ConfigError):
    """
    Configuration value is present but invalid.

    Example:
        >>> raise ConfigValidationError(
        ...     "scan_timeout must be positive",
        ...     field="profiler.scan_timeout",
        ...     expected="integer > 0",
        ...     actual="-5"
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None
    ):
        super().__init__(message, field)
        self.details.update({
            'expected': expected,
            'actual': actual
        })


class UnsupportedDatabaseError(ProfilingException):
    """
    Database kind or capability not supported by the profiler.

    Raised before any query is issued so no partial result is produced.

    Example:
        >>> raise UnsupportedDatabaseError("mysql", supported=["postgresql", "sqlite"])
    """

    def __init__(self, db_type: str, supported: Optional[list] = None):
        supported = supported or []
        super().__init__(
            f"Unsupported database type '{db_type}'. Supported: {', '.join(supported)}",
            severity=ErrorSeverity.FATAL,
            details={'db_type': db_type, 'supported': supported}
        )
        self.db_type = db_type


class InvalidIdentifierError(ProfilingException):
    """
    Schema, table or column name rejected by the identifier validator.

    Example:
        >>> raise InvalidIdentifierError('orders"; DROP', "table", "contains forbidden characters")
    """

    def __init__(self, identifier: str, kind: str, reason: str):
        super().__init__(
            f"Invalid {kind} name '{identifier[:50]}': {reason}",
            severity=ErrorSeverity.FATAL,
            details={'identifier': identifier[:100], 'kind': kind, 'reason': reason}
        )
        self.identifier = identifier
        self.kind = kind


# ============================================================================
# Database Errors (Critical)
# ============================================================================

class DatabaseError(ProfilingException):
    """
    Database connection errors.

    Raised when:
    - Cannot connect to database
    - Authentication fails
    - The connection is lost in the middle of an analysis

    Example:
        >>> raise DatabaseError(
        ...     "Failed to connect to PostgreSQL",
        ...     connection_string="postgresql://***@localhost:5432/mydb",
        ...     error_code="08001"
        ... )
    """

    def __init__(
        self,
        message: str,
        connection_string: Optional[str] = None,
        error_code: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            details={
                'connection_string': connection_string,
                'error_code': error_code
            },
            original_exception=original_exception
        )


class QueryTimeoutError(DatabaseError):
    """
    Statement exceeded its explicit timeout.

    Example:
        >>> raise QueryTimeoutError("SELECT COUNT(*) FROM ...", timeout=30)
    """

    def __init__(self, sql: str, timeout: float, original_exception: Optional[Exception] = None):
        super().__init__(
            f"Query exceeded timeout of {timeout:g}s",
            original_exception=original_exception
        )
        self.details.update({'sql': sql, 'timeout': timeout})
        self.timeout = timeout


class TableNotFoundError(DatabaseError):
    """Requested table does not exist in the given schema."""

    def __init__(self, schema: str, table: str):
        super().__init__(f"Table not found: {schema}.{table}")
        self.details.update({'schema': schema, 'table': table})


class AnalysisCancelledError(ProfilingException):
    """
    Analysis was cancelled through its cancellation token.

    Partial results computed before the cancellation are discarded.
    """

    def __init__(self, message: str = "Analysis cancelled", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, severity=ErrorSeverity.CRITICAL, details=details)


# ============================================================================
# Analysis Errors (Recoverable)
# ============================================================================

class QueryExecutionError(ProfilingException):
    """
    A single analysis query failed (bad cast, division by zero, missing function).

    The failing unit is omitted while the rest of the analysis continues.
    Details keep the statement and its parameters so the failure can be
    reproduced.
    """

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.RECOVERABLE,
            details={'sql': sql, 'params': params},
            original_exception=original_exception
        )


class ProfilerError(ProfilingException):
    """
    Data profiling errors.

    Raised when profiling operations fail (statistical calculations,
    pattern detection, outlier detection, etc.).

    Example:
        >>> raise ProfilerError(
        ...     "Failed to calculate correlation: insufficient data",
        ...     operation="correlation_analysis",
        ...     column="sales"
        ... )
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        column: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.RECOVERABLE,
            details={
                'operation': operation,
                'column': column
            },
            original_exception=original_exception
        )
