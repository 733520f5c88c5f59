"""Configuration parsing and validation."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from profiling_framework.core.constants import (
    CORRELATION_SAMPLE_SIZE,
    DEFAULT_OUTLIER_PAGE_SIZE,
    DEFAULT_PATTERN_CULTURE,
    HISTOGRAM_BINS,
    MAX_STRING_LENGTH,
    MAX_YAML_FILE_SIZE,
    MAX_YAML_KEY_COUNT,
    MAX_YAML_NESTING_DEPTH,
    METADATA_QUERY_TIMEOUT,
    PATTERN_SAMPLE_SIZE,
    SCAN_QUERY_TIMEOUT,
    TOP_VALUES_LIMIT,
)
from profiling_framework.core.exceptions import (
    ConfigError,
    ConfigValidationError,
    YAMLSizeError,
)
from profiling_framework.profiler.pattern_matcher import DEFAULT_PATTERN_RULES, PatternRule


class ProfilerConfig:
    """
    Read-only settings for a profiling engine.

    Loaded once at construction; analyzers receive the values they need and
    never write back, so one config can serve concurrent requests.
    """

    MAX_YAML_FILE_SIZE = MAX_YAML_FILE_SIZE
    MAX_YAML_NESTING_DEPTH = MAX_YAML_NESTING_DEPTH
    MAX_YAML_KEYS = MAX_YAML_KEY_COUNT

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize from configuration dictionary.

        Args:
            config_dict: Configuration dictionary; settings are read from the
                ``profiler`` section (None or {} gives all defaults)
        """
        self.raw_config = config_dict or {}
        if not isinstance(self.raw_config, dict):
            raise ConfigError("Configuration root must be a mapping")
        self._parse_config()

    @classmethod
    def from_yaml(cls, config_path: str) -> "ProfilerConfig":
        """
        Load configuration from YAML file with security validations.

        Security protections:
        - File size limit: 10 MB
        - Nesting depth limit: 20 levels
        - Total keys limit: 10,000 keys

        Raises:
            ConfigError: If file not found or invalid
            YAMLSizeError: If file exceeds size limit
            ConfigValidationError: If YAML structure is too complex or a value is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        file_size = os.path.getsize(config_file)
        if file_size > cls.MAX_YAML_FILE_SIZE:
            raise YAMLSizeError(
                f"Configuration file too large: {file_size:,} bytes. "
                f"Maximum allowed: {cls.MAX_YAML_FILE_SIZE:,} bytes",
                file_size=file_size,
                max_size=cls.MAX_YAML_FILE_SIZE
            )

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file: {str(e)}")
        except UnicodeDecodeError as e:
            raise ConfigError(f"Invalid file encoding (expected UTF-8): {str(e)}")

        if config_dict is not None:
            cls._validate_yaml_structure(config_dict)

        return cls(config_dict)

    @classmethod
    def _validate_yaml_structure(cls, obj: Any, current_depth: int = 0, total_keys: List[int] = None) -> None:
        """
        Validate YAML structure to prevent DoS attacks.

        Args:
            obj: Object to validate (dict, list, or primitive)
            current_depth: Current nesting depth
            total_keys: Mutable list with single element tracking total key count

        Raises:
            ConfigValidationError: If structure is too complex
        """
        if total_keys is None:
            total_keys = [0]

        if current_depth > cls.MAX_YAML_NESTING_DEPTH:
            raise ConfigValidationError(
                f"YAML nesting depth exceeds maximum of {cls.MAX_YAML_NESTING_DEPTH} levels."
            )

        if isinstance(obj, dict):
            total_keys[0] += len(obj)
            if total_keys[0] > cls.MAX_YAML_KEYS:
                raise ConfigValidationError(
                    f"YAML structure contains more than {cls.MAX_YAML_KEYS:,} keys/items."
                )
            for key, value in obj.items():
                if isinstance(key, str) and len(key) > 1000:
                    raise ConfigValidationError(
                        f"YAML key exceeds maximum length of 1000 characters: '{key[:50]}...'"
                    )
                cls._validate_yaml_structure(value, current_depth + 1, total_keys)

        elif isinstance(obj, list):
            total_keys[0] += len(obj)
            if total_keys[0] > cls.MAX_YAML_KEYS:
                raise ConfigValidationError(
                    f"YAML structure contains more than {cls.MAX_YAML_KEYS:,} keys/items."
                )
            for item in obj:
                cls._validate_yaml_structure(item, current_depth + 1, total_keys)

        elif isinstance(obj, str):
            if len(obj) > MAX_STRING_LENGTH:
                raise ConfigValidationError(
                    f"YAML contains string exceeding maximum length ({MAX_STRING_LENGTH:,} bytes)"
                )

    def _parse_config(self) -> None:
        """Parse and validate the ``profiler`` and ``database`` sections."""
        section = self.raw_config.get("profiler") or {}
        if not isinstance(section, dict):
            raise ConfigValidationError(
                "'profiler' section must be a mapping",
                field="profiler", expected="mapping", actual=type(section).__name__
            )
        self._section = section

        self.metadata_timeout: float = self._positive_number("metadata_timeout", METADATA_QUERY_TIMEOUT)
        self.scan_timeout: float = self._positive_number("scan_timeout", SCAN_QUERY_TIMEOUT)
        self.pattern_sample_size: int = self._positive_int("pattern_sample_size", PATTERN_SAMPLE_SIZE)
        self.correlation_sample_size: int = self._positive_int("correlation_sample_size", CORRELATION_SAMPLE_SIZE)
        self.outlier_page_size: int = self._positive_int("outlier_page_size", DEFAULT_OUTLIER_PAGE_SIZE)
        self.top_values_limit: int = self._positive_int("top_values_limit", TOP_VALUES_LIMIT)
        self.histogram_buckets: int = self._positive_int("histogram_buckets", HISTOGRAM_BINS)
        self.pattern_rules: Tuple[PatternRule, ...] = self._parse_pattern_rules()

        database = self.raw_config.get("database") or {}
        if not isinstance(database, dict):
            raise ConfigValidationError(
                "'database' section must be a mapping",
                field="database", expected="mapping", actual=type(database).__name__
            )
        self.connection_string: Optional[str] = database.get("connection_string")
        self.schema: Optional[str] = database.get("schema")

    def _positive_number(self, key: str, default: float) -> float:
        value = self._section.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigValidationError(
                f"'profiler.{key}' must be a positive number",
                field=f"profiler.{key}", expected="number > 0", actual=repr(value)
            )
        return value

    def _positive_int(self, key: str, default: int) -> int:
        value = self._section.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigValidationError(
                f"'profiler.{key}' must be a positive integer",
                field=f"profiler.{key}", expected="integer > 0", actual=repr(value)
            )
        return value

    def _parse_pattern_rules(self) -> Tuple[PatternRule, ...]:
        """
        Build the immutable rule tuple.

        Configured rules are appended to the defaults unless
        ``use_default_patterns`` is false. Regex validity is not checked here;
        the matcher skips malformed rules so one bad rule cannot block the rest.
        """
        use_defaults = self._section.get("use_default_patterns", True)
        configured = self._section.get("pattern_rules") or []
        if not isinstance(configured, list):
            raise ConfigValidationError(
                "'profiler.pattern_rules' must be a list",
                field="profiler.pattern_rules", expected="list", actual=type(configured).__name__
            )

        rules = list(DEFAULT_PATTERN_RULES) if use_defaults else []
        for index, entry in enumerate(configured):
            field = f"profiler.pattern_rules[{index}]"
            if not isinstance(entry, dict) or not entry.get("name") or not entry.get("regex"):
                raise ConfigValidationError(
                    f"{field} must define 'name' and 'regex'",
                    field=field, expected="{name, regex}", actual=repr(entry)[:100]
                )
            keywords = entry.get("column_keywords") or []
            if not isinstance(keywords, list):
                raise ConfigValidationError(
                    f"{field}.column_keywords must be a list",
                    field=f"{field}.column_keywords", expected="list", actual=repr(keywords)[:100]
                )
            rules.append(PatternRule(
                name=str(entry["name"]),
                regex=str(entry["regex"]),
                description=str(entry.get("description", "")),
                culture=str(entry.get("culture", DEFAULT_PATTERN_CULTURE)),
                column_keywords=tuple(str(k) for k in keywords),
            ))
        return tuple(rules)
