"""
Profiling Framework Constants.

This module defines the thresholds, limits and defaults used throughout the
table profiling engine. Centralizing these values keeps the heuristics in one
documented place instead of scattering magic numbers across the analyzers.
"""

# ============================================================================
# Configuration Security Limits
# ============================================================================

# Maximum YAML configuration file size (10MB)
# Security measure: Prevents DoS attacks via huge YAML files that could
# consume excessive memory during parsing
MAX_YAML_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB in bytes

# Maximum YAML nesting depth
# Security measure: Prevents stack overflow from deeply nested YAML structures
MAX_YAML_NESTING_DEPTH: int = 20

# Maximum number of keys in YAML mapping
# Security measure: Prevents memory exhaustion from YAML with millions of keys
MAX_YAML_KEY_COUNT: int = 10_000

# Maximum reasonable string length inside a configuration file
MAX_STRING_LENGTH: int = 10 * 1024 * 1024


# ============================================================================
# SQL Identifier Constants
# ============================================================================

# Maximum length for SQL identifiers (PostgreSQL standard)
# Rationale: PostgreSQL truncates identifiers at 63 characters
MAX_SQL_IDENTIFIER_LENGTH: int = 63

# Schemas that never hold user tables
SYSTEM_SCHEMAS: tuple = ("pg_catalog", "information_schema", "pg_toast")

# Default schema per supported database kind
DEFAULT_SCHEMAS: dict = {
    "postgresql": "public",
    "sqlite": "main",
}


# ============================================================================
# Database Constants
# ============================================================================

# Timeout for lightweight metadata, count and statistics queries (seconds)
# Rationale: these touch catalogs or a single aggregate and should return fast
METADATA_QUERY_TIMEOUT: int = 30

# Timeout for sample scans, percentiles and histograms (seconds)
SCAN_QUERY_TIMEOUT: int = 300  # 5 minutes

# Connection timeout passed to the driver (seconds)
CONNECT_TIMEOUT: int = 30

# SQLite progress handler granularity (virtual machine instructions)
SQLITE_PROGRESS_STEPS: int = 1_000


# ============================================================================
# Sampling Planner Constants
# ============================================================================

# Row-count thresholds for the sampling decision table
FULL_SCAN_MAX_ROWS: int = 1_000
RANDOM_SAMPLE_MAX_ROWS: int = 100_000
SYSTEMATIC_SAMPLE_MAX_ROWS: int = 1_000_000

# Sample sizes per strategy
RANDOM_SAMPLE_MIN_SIZE: int = 5_000
RANDOM_SAMPLE_FRACTION: float = 0.10
SYSTEMATIC_SAMPLE_SIZE: int = 10_000
ADAPTIVE_SAMPLE_SIZE: int = 15_000

# Complexity adjustments
# Rationale: high cardinality, sparse or wide columns need more rows to be
# represented, so the sample doubles (bounded) when any of them show up
HIGH_CARDINALITY_RATIO: float = 0.8
HIGH_CARDINALITY_MIN_COLUMNS: int = 3
HIGH_NULL_FRACTION: float = 0.5
HIGH_NULL_MIN_COLUMNS: int = 2
WIDE_COLUMN_BYTES: int = 100
WIDE_COLUMN_MIN_COLUMNS: int = 1
MAX_SAMPLE_SIZE: int = 50_000

# Unique index adjustment
UNIQUE_INDEX_SHRINK_THRESHOLD: int = 20_000
UNIQUE_INDEX_SHRINK_FACTOR: float = 0.8

# Fallback when table statistics cannot be read
FALLBACK_SAMPLE_SIZE: int = 1_000

# Systematic interval when no row count is known
DEFAULT_SYSTEMATIC_INTERVAL: int = 100

# TABLESAMPLE percentages (PostgreSQL)
SYSTEMATIC_TABLESAMPLE_PERCENT: float = 10.0
ADAPTIVE_TABLESAMPLE_MAX_PERCENT: float = 50.0

# Separator used when rendering the sampling rationale trail
REASON_SEPARATOR: str = " | "


# ============================================================================
# Column Profiler Constants
# ============================================================================

# Percentiles to calculate for numeric columns
PERCENTILES: list = [0.25, 0.50, 0.75, 0.90, 0.95]

# Number of linear buckets for numeric histograms
HISTOGRAM_BINS: int = 20

# IQR multiplier for outlier detection (Tukey's fence)
# Rationale: 1.5 × IQR is standard statistical practice
OUTLIER_IQR_MULTIPLIER: float = 1.5

# Number of IQR outlier values kept as samples
MAX_IQR_OUTLIER_SAMPLES: int = 5

# Number of most frequent values reported per column
TOP_VALUES_LIMIT: int = 10

# Maximum number of monthly buckets in a date timeline
MAX_TIMELINE_BUCKETS: int = 50

# Classification thresholds
UNIQUE_ID_CARDINALITY: float = 95.0
CATEGORICAL_MAX_CARDINALITY: float = 10.0
CATEGORICAL_MAX_DISTINCT: int = 50

# Anomaly thresholds
# Rationale: one value holding most of a reasonably filled column usually
# means a default or placeholder leaked into the data
SUSPICIOUS_FREQUENCY_PERCENT: float = 50.0
SUSPICIOUS_FREQUENCY_MIN_FILLED: int = 100
PATTERN_VIOLATION_SEVERITY: float = 0.7

# Boolean balance tolerance (percentage points between true and false)
BOOLEAN_BALANCE_TOLERANCE: float = 20.0


# ============================================================================
# Outlier Detector Constants
# ============================================================================

# Z-score threshold for outlier detection
# Rationale: 3 standard deviations captures 99.7% of normal distribution
OUTLIER_Z_SCORE_THRESHOLD: float = 3.0

# Default page size for paginated outlier retrieval
DEFAULT_OUTLIER_PAGE_SIZE: int = 20


# ============================================================================
# Pattern Matcher Constants
# ============================================================================

# Maximum number of non-null values sampled per text column
PATTERN_SAMPLE_SIZE: int = 10_000

# Maximum number of matching / non-matching examples kept per rule
MAX_PATTERN_EXAMPLES: int = 5

# Default locale attached to pattern rules
DEFAULT_PATTERN_CULTURE: str = "pt-BR"


# ============================================================================
# Relationship Analyzer Constants
# ============================================================================

# Maximum co-non-null rows read per numeric column pair
CORRELATION_SAMPLE_SIZE: int = 1_000

# Minimum rows needed before a coefficient is reported
MIN_CORRELATION_SAMPLE: int = 3

# Coefficients at or below this magnitude are not reported
MIN_REPORTED_CORRELATION: float = 0.1

# Strength labels by absolute coefficient (checked in order)
CORRELATION_STRENGTH_THRESHOLDS: list = [
    (0.9, "very strong"),
    (0.7, "strong"),
    (0.5, "moderate"),
    (0.3, "weak"),
]

# Distinct active-indicating values reported per status column
MAX_ACTIVE_VALUES: int = 10

# Lower-cased text forms of a flag in its "active" state
ACTIVE_FLAG_TOKENS: list = ["true", "t", "1", "y", "yes", "s", "sim", "ativo", "active"]

# Minimum length of a shared name fragment between status and date columns
MIN_COMMON_RADICAL_LENGTH: int = 3


# ============================================================================
# Schema Discovery Constants
# ============================================================================

# Confidence and importance for declared foreign keys
DECLARED_FK_CONFIDENCE: float = 1.0
DECLARED_FK_IMPORTANCE: int = 10

# Confidence for relations inferred from column naming
NAMING_PATTERN_CONFIDENCE: float = 0.8


# ============================================================================
# Logging Constants
# ============================================================================

# Default log message format
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Log date format
LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
