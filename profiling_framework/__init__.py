"""
Table data-quality profiling engine.

Profiles relational tables (PostgreSQL, SQLite) without prior knowledge of
their columns: completeness, cardinality, descriptive statistics, 3-sigma
outliers, format conformity, cross-column signals and cross-table relations.

Key Components:
- TableProfilingEngine: Facade exposing the table and schema analyses
- ProfilerConfig: Read-only settings loaded from YAML
- CancellationToken: Cooperative cancellation for long analyses
"""

from profiling_framework.core.cancellation import CancellationToken
from profiling_framework.core.config import ProfilerConfig
from profiling_framework.profiler.engine import TableProfilingEngine

__version__ = "0.1.0"

__all__ = [
    'CancellationToken',
    'ProfilerConfig',
    'TableProfilingEngine',
    '__version__',
]
