"""Tests for tripweave.core.normalize coercers."""

from __future__ import annotations

import pytest

from tripweave.ai.privacy import RiskLevel
from tripweave.core.normalize import (
    as_bool,
    as_dict,
    as_dict_list,
    as_enum,
    as_float,
    as_int,
    as_str,
    as_str_list,
    parse_optional_json,
)


class TestParseOptionalJson:
    """The single place where a JSON decode failure is swallowed."""

    @pytest.mark.parametrize("text", [None, "", "   ", "not json", "{broken", 42])
    def test_absent_or_invalid(self, text) -> None:
        assert parse_optional_json(text) is None

    def test_valid_object(self) -> None:
        assert parse_optional_json('{"Make": "Fujifilm"}') == {"Make": "Fujifilm"}

    def test_already_decoded(self) -> None:
        data = {"width": 10}
        assert parse_optional_json(data) is data


class TestCoercers:
    """Malformed model values fall back to the given default."""

    def test_as_dict(self) -> None:
        assert as_dict({"a": 1}) == {"a": 1}
        assert as_dict(["a"]) == {}
        assert as_dict(None) == {}

    def test_as_dict_list_drops_non_mappings(self) -> None:
        assert as_dict_list([{"a": 1}, "x", 3, {"b": 2}]) == [{"a": 1}, {"b": 2}]
        assert as_dict_list("nope") == []

    def test_as_str(self) -> None:
        assert as_str("x") == "x"
        assert as_str(3) == "3"
        assert as_str(True, "d") == "d"
        assert as_str(None, "d") == "d"

    def test_as_str_list(self) -> None:
        assert as_str_list(["a", "", 1, "b"]) == ["a", "b"]
        assert as_str_list("single") == ["single"]
        assert as_str_list("  ") == []
        assert as_str_list(None) == []

    @pytest.mark.parametrize(
        "value, expected",
        [
            (0.5, 0.5),
            ("0.75", 0.75),
            (" 2 ", 1.0),
            (-3, 0.0),
            ("abc", 0.3),
            (None, 0.3),
            (True, 0.3),
            (float("nan"), 0.3),
        ],
    )
    def test_as_float_clamps(self, value, expected) -> None:
        assert as_float(value, 0.3, 0.0, 1.0) == expected

    def test_as_int(self) -> None:
        assert as_int("7", 5, 1, 10) == 7
        assert as_int(12, 5, 1, 10) == 10
        assert as_int(6.6, 5) == 7
        assert as_int("seven", 5) == 5

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, True),
            (False, False),
            ("false", False),
            ("YES", True),
            ("0", False),
            ("maybe", True),
            (None, True),
            (0, True),
        ],
    )
    def test_as_bool_defaults_to_true(self, value, expected) -> None:
        """Explicit false is respected; anything unrecognised keeps the default."""
        assert as_bool(value, True) is expected

    def test_as_enum_case_insensitive(self) -> None:
        assert as_enum("HIGH", RiskLevel, RiskLevel.MEDIUM) is RiskLevel.HIGH
        assert as_enum(RiskLevel.LOW, RiskLevel, RiskLevel.MEDIUM) is RiskLevel.LOW
        assert as_enum("extreme", RiskLevel, RiskLevel.MEDIUM) is RiskLevel.MEDIUM
        assert as_enum(None, RiskLevel, RiskLevel.MEDIUM) is RiskLevel.MEDIUM
