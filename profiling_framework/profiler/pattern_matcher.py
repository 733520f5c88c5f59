"""
Regex-based format conformity for text columns.

Each rule is scored against a sample of non-null values. The conformity
percentage is the share of sampled values that match the rule; only rules
with a non-zero share are reported, best first.

Rule sets are immutable: the matcher receives a tuple of frozen PatternRule
instances at construction and compiles them once. A rule whose regex does not
compile is logged and skipped so the remaining rules still run.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from profiling_framework.core.constants import (
    DEFAULT_PATTERN_CULTURE,
    MAX_PATTERN_EXAMPLES,
    PATTERN_SAMPLE_SIZE,
)
from profiling_framework.core.database import QueryRunner
from profiling_framework.core.sql_utils import qualified_table_name, quote_identifier
from profiling_framework.profiler.profile_result import PatternMatch
from profiling_framework.profiler.sampling_planner import SampleQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternRule:
    """
    A named format rule.

    Attributes:
        name: Display name (e.g. "Email")
        regex: Regular expression, matched case-insensitively
        description: What a conforming value looks like
        culture: Locale the format belongs to
        column_keywords: When set, the rule only applies to columns whose
            name contains one of these keywords
    """
    name: str
    regex: str
    description: str = ""
    culture: str = DEFAULT_PATTERN_CULTURE
    column_keywords: Tuple[str, ...] = ()


DEFAULT_PATTERN_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        "Email",
        r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
        "Email address",
    ),
    PatternRule(
        "CPF",
        r"^\d{3}\.\d{3}\.\d{3}-\d{2}$|^\d{11}$",
        "Brazilian individual taxpayer number (000.000.000-00)",
    ),
    PatternRule(
        "CNPJ",
        r"^\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}$|^\d{14}$",
        "Brazilian company taxpayer number (00.000.000/0000-00)",
    ),
    PatternRule(
        "Phone BR",
        r"^\(\d{2}\)\s?\d{4,5}-?\d{4}$|^\d{10,11}$",
        "Brazilian phone number ((00) 00000-0000)",
    ),
    PatternRule(
        "CEP",
        r"^\d{5}-?\d{3}$",
        "Brazilian postal code (00000-000)",
    ),
    PatternRule(
        "Code",
        r"^[A-Z]{2,4}-?\d{3,6}$",
        "Alphanumeric code (ABC-1234)",
    ),
    PatternRule(
        "URL",
        r"^https?://[^\s/$.?#].[^\s]*$",
        "HTTP or HTTPS URL",
    ),
    PatternRule(
        "UUID",
        r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
        "UUID (8-4-4-4-12 hex)",
    ),
    PatternRule(
        "ISO Date",
        r"^\d{4}-\d{2}-\d{2}$",
        "ISO 8601 date (YYYY-MM-DD)",
    ),
    PatternRule(
        "Time",
        r"^\d{2}:\d{2}(:\d{2})?$",
        "Time of day (HH:MM or HH:MM:SS)",
    ),
)


def normalize_name(column_name: str) -> str:
    """Lower-case and strip accents so keyword checks ignore diacritics."""
    decomposed = unicodedata.normalize("NFKD", column_name or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


class PatternMatcher:
    """Score text values against an immutable set of format rules."""

    def __init__(self, rules: Optional[Sequence[PatternRule]] = None,
                 sample_size: int = PATTERN_SAMPLE_SIZE):
        """
        Args:
            rules: Rules to apply; None or empty uses DEFAULT_PATTERN_RULES
            sample_size: Maximum number of non-null values read per column
        """
        self.rules: Tuple[PatternRule, ...] = tuple(rules) if rules else DEFAULT_PATTERN_RULES
        self.sample_size = sample_size
        self._compiled: List[Tuple[PatternRule, re.Pattern]] = []

        for rule in self.rules:
            try:
                self._compiled.append((rule, re.compile(rule.regex, re.IGNORECASE)))
            except re.error as e:
                logger.warning(f"Skipping pattern rule '{rule.name}': invalid regex ({e})")

    @property
    def active_rules(self) -> Tuple[PatternRule, ...]:
        """Rules that compiled successfully."""
        return tuple(rule for rule, _ in self._compiled)

    def rules_for_column(self, column_name: str) -> List[Tuple[PatternRule, re.Pattern]]:
        name = normalize_name(column_name)
        return [
            (rule, pattern) for rule, pattern in self._compiled
            if not rule.column_keywords
            or any(normalize_name(keyword) in name for keyword in rule.column_keywords)
        ]

    def score(self, values: Iterable, column_name: str = "") -> List[PatternMatch]:
        """
        Score sampled values against every applicable rule.

        Args:
            values: Raw sampled values (None and blank values are dropped)
            column_name: Column name, used to select keyword-scoped rules

        Returns:
            PatternMatch list with conformity > 0, highest conformity first
        """
        sample = []
        for value in values:
            if value is None:
                continue
            stripped = str(value).strip()
            if stripped:
                sample.append(stripped)

        if not sample:
            return []

        total = len(sample)
        matches = []
        for rule, pattern in self.rules_for_column(column_name):
            matching_count = 0
            sample_matches: List[str] = []
            sample_non_matches: List[str] = []

            for value in sample:
                if pattern.match(value):
                    matching_count += 1
                    if len(sample_matches) < MAX_PATTERN_EXAMPLES:
                        sample_matches.append(value)
                elif len(sample_non_matches) < MAX_PATTERN_EXAMPLES:
                    sample_non_matches.append(value)

            conformity = round(matching_count / total * 100, 2)
            if conformity > 0:
                matches.append(PatternMatch(
                    pattern_name=rule.name,
                    description=rule.description,
                    culture=rule.culture,
                    conformity_percentage=conformity,
                    matching_samples=matching_count,
                    total_samples=total,
                    sample_matches=sample_matches,
                    sample_non_matches=sample_non_matches,
                ))

        matches.sort(key=lambda m: m.conformity_percentage, reverse=True)
        return matches

    def analyze_column(
        self,
        runner: QueryRunner,
        schema: str,
        table: str,
        column: str,
        sample_query: Optional[SampleQuery] = None
    ) -> List[PatternMatch]:
        """
        Read up to ``sample_size`` non-null values of a column and score them.

        When a planned sample query is given, values are read from it as a
        subquery instead of from the base table.
        """
        quoted = quote_identifier(column, "column")
        params = {"pattern_limit": self.sample_size}

        if sample_query is not None:
            source = sample_query.as_subquery()
            params.update(sample_query.params)
        else:
            source = qualified_table_name(schema, table)

        rows = runner.fetch_all(
            f"SELECT {runner.dialect.text_cast(quoted)} AS value FROM {source} "
            f"WHERE {quoted} IS NOT NULL LIMIT :pattern_limit",
            params,
            timeout=runner.scan_timeout
        )
        matches = self.score((row["value"] for row in rows), column)
        logger.debug(
            f"Pattern analysis {schema}.{table}.{column}: {len(rows)} values, "
            f"{len(matches)} matching rules"
        )
        return matches
