"""
Property-based tests for Audit Logger module.

Uses Hypothesis to check output formats, level filtering, masking of
sensitive values and the error context attached by ``log_error``.
"""

import json
from io import StringIO

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from sld_core.audit_logger import AuditLogger
from sld_core.enums import LogLevel
from sld_core.exceptions import AdapterError


# Strategies for generating valid test data

@st.composite
def log_level_strategy(draw) -> LogLevel:
    """Generate valid LogLevel values."""
    return draw(st.sampled_from(list(LogLevel)))


@st.composite
def component_name_strategy(draw) -> str:
    """Generate valid component names."""
    return draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-"),
        min_size=1,
        max_size=50,
    ))


@st.composite
def message_strategy(draw) -> str:
    """Generate valid log messages."""
    return draw(st.text(
        alphabet=st.characters(
            whitelist_categories=('L', 'N', 'P', 'S', 'Z'),
            blacklist_characters='\x00\n\r',
        ),
        min_size=1,
        max_size=200,
    ))


SENSITIVE_PATTERNS = [
    'token', 'secret', 'password', 'api_key', 'auth', 'authorization',
    'credential', 'private_key', 'access_token',
]


@st.composite
def non_sensitive_key_strategy(draw) -> str:
    """Generate keys that are NOT sensitive."""
    key = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"),
        min_size=1,
        max_size=20,
    ))
    for pattern in SENSITIVE_PATTERNS:
        assume(pattern not in key)
    return key


@st.composite
def sensitive_key_strategy(draw) -> str:
    """Generate keys that ARE sensitive."""
    base = draw(st.sampled_from(SENSITIVE_PATTERNS + ['credentials']))
    prefix = draw(st.sampled_from(['', 'my_', 'user_', 'app_']))
    suffix = draw(st.sampled_from(['', '_value', '_data', '_1']))
    return f"{prefix}{base}{suffix}"


@st.composite
def simple_value_strategy(draw):
    """Generate simple JSON-serializable values."""
    return draw(st.one_of(
        st.text(min_size=0, max_size=50),
        st.integers(min_value=-1000, max_value=1000),
        st.booleans(),
        st.none(),
    ))


@st.composite
def non_sensitive_data_strategy(draw) -> dict:
    """Generate data dictionaries without sensitive keys."""
    return draw(st.dictionaries(
        non_sensitive_key_strategy(),
        simple_value_strategy(),
        max_size=5,
    ))


class TestOutputFormatProperty:
    """
    Property-based tests for JSON, text and dual output.
    """

    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
        data=non_sensitive_data_strategy(),
    )
    @settings(max_examples=100)
    def test_dual_format_produces_both_outputs(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: dict,
    ) -> None:
        """
        *For any* log entry when output_format is "both", the logger SHALL produce
        both a valid JSON string and a human-readable text line.
        """
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output, min_level=LogLevel.DEBUG)

        logger.log(level, component, message, data)

        lines = output.getvalue().strip().split('\n')
        assert len(lines) == 2

        parsed_json = json.loads(lines[0])
        assert parsed_json["level"] == level.value
        assert parsed_json["component"] == component
        assert parsed_json["message"] == message
        assert parsed_json["data"] == data
        assert "timestamp" in parsed_json

        text_line = lines[1]
        assert level.value.upper() in text_line
        assert f"[{component}]" in text_line
        assert message in text_line

    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=50)
    def test_json_only_format(self, level: LogLevel, component: str, message: str) -> None:
        """
        *For any* log entry when output_format is "json", the logger SHALL produce
        exactly one JSON line.
        """
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output, min_level=LogLevel.DEBUG)

        logger.log(level, component, message)

        lines = [l for l in output.getvalue().strip().split('\n') if l]
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == message

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValueError):
            AuditLogger(output_format="xml")


class TestLevelFilteringProperty:
    """
    Entries below the minimum level are neither written nor kept.
    """

    @given(
        min_level=log_level_strategy(),
        level=log_level_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_entries_below_min_level_dropped(
        self, min_level: LogLevel, level: LogLevel, message: str
    ) -> None:
        """
        *For any* pair of levels, an entry SHALL be emitted exactly when its
        level is at or above the logger's minimum level.
        """
        order = list(LogLevel)
        output = StringIO()
        logger = AuditLogger(output_format="text", output_stream=output, min_level=min_level)

        entry = logger.log(level, "Test", message)

        if order.index(level) >= order.index(min_level):
            assert entry is not None
            assert len(logger.entries) == 1
            assert output.getvalue()
        else:
            assert entry is None
            assert logger.entries == []
            assert output.getvalue() == ""

    def test_from_config_falls_back_to_info(self) -> None:
        logger = AuditLogger.from_config("verbose", "json", StringIO())
        assert logger.min_level == LogLevel.INFO
        assert logger.output_format == "json"

    def test_from_config_parses_level(self) -> None:
        logger = AuditLogger.from_config("DEBUG", "text", StringIO())
        assert logger.min_level == LogLevel.DEBUG


class TestSensitiveDataMaskingProperty:
    """
    Property-based tests for masking of sensitive values.
    """

    @given(key=sensitive_key_strategy(), value=st.text(min_size=1, max_size=50))
    @settings(max_examples=100)
    def test_sensitive_data_masked(self, key: str, value: str) -> None:
        """
        *For any* data containing a sensitive key, the logged value SHALL be
        replaced by the mask.
        """
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        logger.info("Test", "message", {key: value})

        parsed = json.loads(output.getvalue().strip())
        assert parsed["data"][key] == AuditLogger.MASK_VALUE

    @given(data=non_sensitive_data_strategy())
    @settings(max_examples=100)
    def test_non_sensitive_data_not_masked(self, data: dict) -> None:
        """
        *For any* data without sensitive keys, masking SHALL leave it unchanged.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        assert logger.mask_sensitive_data(data) == data

    @given(outer=non_sensitive_key_strategy(), key=sensitive_key_strategy())
    @settings(max_examples=50)
    def test_nested_sensitive_data_masked(self, outer: str, key: str) -> None:
        """
        *For any* nested dictionary or list of dictionaries, sensitive keys
        SHALL be masked at every depth.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        masked = logger.mask_sensitive_data({
            outer: {key: "value"},
            "items": [{key: "value"}, "plain"],
        })

        assert masked[outer][key] == AuditLogger.MASK_VALUE
        assert masked["items"][0][key] == AuditLogger.MASK_VALUE
        assert masked["items"][1] == "plain"


class TestErrorContextProperty:
    """
    ``log_error`` attaches the exception's type, message and code.
    """

    @given(message=message_strategy(), component=component_name_strategy())
    @settings(max_examples=50)
    def test_error_logs_include_error_context(self, message: str, component: str) -> None:
        """
        *For any* SldError logged through log_error, the entry SHALL carry its
        message, type and code.
        """
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        error = AdapterError(code="socket_not_found", message=message)

        entry = logger.log_error(component, "Operation failed", error=error)

        assert entry is not None
        assert entry.level == LogLevel.ERROR
        assert entry.data["error_message"] == message
        assert entry.data["error_type"] == "AdapterError"
        assert entry.data["error_code"] == "socket_not_found"

    def test_error_logs_without_code(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        entry = logger.log_error("Test", "failed", error=RuntimeError("boom"))
        assert entry.data["error_type"] == "RuntimeError"
        assert "error_code" not in entry.data

    @given(data=non_sensitive_data_strategy())
    @settings(max_examples=50)
    def test_error_logs_preserve_additional_data(self, data: dict) -> None:
        """
        *For any* additional context, log_error SHALL keep every key and not
        mutate the caller's dictionary.
        """
        assume("error_message" not in data and "error_type" not in data)
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        original = dict(data)

        entry = logger.log_error("Test", "failed", error=ValueError("x"), additional_data=data)

        for key, value in original.items():
            assert entry.data[key] == value
        assert data == original

    def test_clear_entries(self) -> None:
        logger = AuditLogger(output_format="text", output_stream=StringIO())
        logger.info("Test", "one")
        logger.clear_entries()
        assert logger.entries == []
