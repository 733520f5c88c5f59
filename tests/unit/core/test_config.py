"""
Unit tests for ProfilerConfig loading and validation.
"""

from dataclasses import FrozenInstanceError

import pytest
import yaml

from profiling_framework.core.config import ProfilerConfig
from profiling_framework.core.constants import (
    CORRELATION_SAMPLE_SIZE,
    DEFAULT_OUTLIER_PAGE_SIZE,
    HISTOGRAM_BINS,
    METADATA_QUERY_TIMEOUT,
    PATTERN_SAMPLE_SIZE,
    SCAN_QUERY_TIMEOUT,
    TOP_VALUES_LIMIT,
)
from profiling_framework.core.exceptions import ConfigError, ConfigValidationError, YAMLSizeError
from profiling_framework.profiler.pattern_matcher import DEFAULT_PATTERN_RULES


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


@pytest.mark.unit
class TestDefaults:
    """Config without any file or section."""

    def test_all_defaults(self):
        """Test every setting falls back to its constant."""
        config = ProfilerConfig()

        assert config.metadata_timeout == METADATA_QUERY_TIMEOUT
        assert config.scan_timeout == SCAN_QUERY_TIMEOUT
        assert config.pattern_sample_size == PATTERN_SAMPLE_SIZE
        assert config.correlation_sample_size == CORRELATION_SAMPLE_SIZE
        assert config.outlier_page_size == DEFAULT_OUTLIER_PAGE_SIZE
        assert config.top_values_limit == TOP_VALUES_LIMIT
        assert config.histogram_buckets == HISTOGRAM_BINS
        assert config.pattern_rules == DEFAULT_PATTERN_RULES
        assert config.connection_string is None
        assert config.schema is None

    def test_empty_sections(self):
        """Test explicit null sections behave like missing ones."""
        config = ProfilerConfig({'profiler': None, 'database': None})
        assert config.scan_timeout == SCAN_QUERY_TIMEOUT

    def test_root_must_be_mapping(self):
        """Test a list root is rejected."""
        with pytest.raises(ConfigError):
            ProfilerConfig(["not", "a", "mapping"])


@pytest.mark.unit
class TestValues:
    """Configured values and their validation."""

    def test_overrides(self):
        """Test configured values replace defaults."""
        config = ProfilerConfig({
            'profiler': {
                'metadata_timeout': 5,
                'scan_timeout': 12.5,
                'pattern_sample_size': 500,
                'outlier_page_size': 50,
            },
            'database': {
                'connection_string': 'sqlite:///shop.db',
                'schema': 'main',
            },
        })

        assert config.metadata_timeout == 5
        assert config.scan_timeout == 12.5
        assert config.pattern_sample_size == 500
        assert config.outlier_page_size == 50
        assert config.connection_string == 'sqlite:///shop.db'
        assert config.schema == 'main'

    @pytest.mark.parametrize("key,value", [
        ('scan_timeout', 0),
        ('scan_timeout', -5),
        ('metadata_timeout', 'fast'),
        ('pattern_sample_size', 2.5),
        ('outlier_page_size', 0),
        ('top_values_limit', True),
    ])
    def test_invalid_values(self, key, value):
        """Test non-positive, non-numeric and boolean values are rejected."""
        with pytest.raises(ConfigValidationError) as exc_info:
            ProfilerConfig({'profiler': {key: value}})
        assert exc_info.value.field == f"profiler.{key}"
        assert exc_info.value.details['actual'] == repr(value)

    def test_profiler_section_must_be_mapping(self):
        """Test a scalar profiler section is rejected."""
        with pytest.raises(ConfigValidationError):
            ProfilerConfig({'profiler': 'yes'})


@pytest.mark.unit
class TestPatternRules:
    """Configured pattern rules."""

    def test_rules_appended_to_defaults(self):
        """Test configured rules come after the built-in ones."""
        config = ProfilerConfig({'profiler': {'pattern_rules': [
            {'name': 'Order Number', 'regex': r'^ORD-\d{6}$', 'column_keywords': ['order']},
        ]}})

        assert len(config.pattern_rules) == len(DEFAULT_PATTERN_RULES) + 1
        rule = config.pattern_rules[-1]
        assert rule.name == 'Order Number'
        assert rule.column_keywords == ('order',)
        assert rule.culture == 'pt-BR'

    def test_defaults_disabled(self):
        """Test use_default_patterns: false keeps only configured rules."""
        config = ProfilerConfig({'profiler': {
            'use_default_patterns': False,
            'pattern_rules': [{'name': 'SKU', 'regex': '^SKU[0-9]+$', 'culture': 'en-US'}],
        }})

        assert [r.name for r in config.pattern_rules] == ['SKU']
        assert config.pattern_rules[0].culture == 'en-US'

    def test_rules_are_immutable(self):
        """Test the rule set is a tuple of frozen rules."""
        config = ProfilerConfig()
        assert isinstance(config.pattern_rules, tuple)
        with pytest.raises(FrozenInstanceError):
            config.pattern_rules[0].name = 'changed'

    def test_rule_requires_name_and_regex(self):
        """Test incomplete rules are rejected."""
        with pytest.raises(ConfigValidationError, match=r"pattern_rules\[0\]"):
            ProfilerConfig({'profiler': {'pattern_rules': [{'name': 'No regex'}]}})

    def test_rules_must_be_list(self):
        """Test a mapping in place of the list is rejected."""
        with pytest.raises(ConfigValidationError):
            ProfilerConfig({'profiler': {'pattern_rules': {'name': 'x', 'regex': 'y'}}})

    def test_keywords_must_be_list(self):
        """Test column_keywords must be a list."""
        with pytest.raises(ConfigValidationError):
            ProfilerConfig({'profiler': {'pattern_rules': [
                {'name': 'x', 'regex': 'y', 'column_keywords': 'order'},
            ]}})


@pytest.mark.unit
class TestFromYaml:
    """Loading from YAML files."""

    def test_load(self, tmp_path):
        """Test values are read from the file."""
        path = write_yaml(tmp_path / "profiler.yaml", {'profiler': {'scan_timeout': 60}})
        assert ProfilerConfig.from_yaml(path).scan_timeout == 60

    def test_empty_file(self, tmp_path):
        """Test an empty file gives defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert ProfilerConfig.from_yaml(str(path)).scan_timeout == SCAN_QUERY_TIMEOUT

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            ProfilerConfig.from_yaml(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        """Test a syntax error raises ConfigError."""
        path = tmp_path / "broken.yaml"
        path.write_text("profiler: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Failed to parse"):
            ProfilerConfig.from_yaml(str(path))

    def test_file_too_large(self, tmp_path, monkeypatch):
        """Test the size guard."""
        path = write_yaml(tmp_path / "big.yaml", {'profiler': {'scan_timeout': 60}})
        monkeypatch.setattr(ProfilerConfig, "MAX_YAML_FILE_SIZE", 5)
        with pytest.raises(YAMLSizeError):
            ProfilerConfig.from_yaml(path)

    def test_nesting_too_deep(self, tmp_path):
        """Test the nesting depth guard."""
        nested = {}
        current = nested
        for _ in range(ProfilerConfig.MAX_YAML_NESTING_DEPTH + 2):
            current['level'] = {}
            current = current['level']
        path = write_yaml(tmp_path / "deep.yaml", nested)

        with pytest.raises(ConfigValidationError, match="nesting depth"):
            ProfilerConfig.from_yaml(path)

    def test_too_many_keys(self, tmp_path, monkeypatch):
        """Test the key count guard."""
        monkeypatch.setattr(ProfilerConfig, "MAX_YAML_KEYS", 10)
        path = write_yaml(tmp_path / "wide.yaml", {f"key_{i}": i for i in range(20)})
        with pytest.raises(ConfigValidationError, match="keys"):
            ProfilerConfig.from_yaml(path)
