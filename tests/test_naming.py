import re

import pytest

from codebase_understanding.naming import (
    classify_casing,
    extend_prefix_to_word,
    extend_suffix_to_word,
    extract_name_pattern,
    name_pattern_regex,
    split_identifier,
)


class TestCasing:
    """Test identifier casing classification."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("UserService", "PascalCase"),
            ("fetchUser", "camelCase"),
            ("fetch", "camelCase"),
            ("fetch_user", "snake_case"),
            ("fetch-user", "kebab_case"),
            ("MAX_SIZE", "ALL_CAPS"),
            ("MAX", "ALL_CAPS"),
            ("HTTP", "ALL_CAPS"),
            ("HTTP2", "ALL_CAPS"),
            ("A", "PascalCase"),
            ("Http", "PascalCase"),
            ("$scope", None),
        ],
    )
    def test_classify_casing(self, name, expected):
        """Test the first matching style wins."""
        assert classify_casing(name) == expected

    @pytest.mark.parametrize(
        "identifier, expected",
        [
            ("fetchUserName", ["fetch", "user", "name"]),
            ("HTTPServer", ["httpserver"]),
            ("user_name", ["user", "name"]),
            ("MAX_SIZE", ["max", "size"]),
            ("kebab-case", ["kebab", "case"]),
            ("plain", ["plain"]),
        ],
    )
    def test_split_identifier(self, identifier, expected):
        """Test identifiers split on their casing boundaries."""
        assert split_identifier(identifier) == expected


class TestNamePatterns:
    """Test file-name pattern extraction."""

    @pytest.mark.parametrize(
        "basename, expected",
        [
            ("UserController", "*Controller"),
            ("Controller", "PascalCase"),
            ("user.test", "test"),
            ("useAuth", "useHook"),
            ("userProfile", "camelCase"),
            ("user-profile", "kebab-case"),
            ("user_profile", "snake_case"),
            ("README.v2", "*"),
        ],
    )
    def test_extract_name_pattern(self, basename, expected):
        """Test role suffixes take precedence over casing."""
        assert extract_name_pattern(basename) == expected

    def test_name_pattern_regex(self):
        """Test pattern regexes match identifiers in that shape."""
        assert re.search(name_pattern_regex("*Controller"), "class OrderController {}")
        assert re.search(name_pattern_regex("useHook"), "const x = useAuth()")
        assert not re.search(name_pattern_regex("*Controller"), "class Controllers {}")


class TestAffixExtension:
    """Test growing affixes to whole words."""

    def test_suffix_grows_to_capitalized_word(self):
        """Test a suffix fragment grows to the enclosing word."""
        names = ["UserService", "OrderService", "AuthService"]
        assert extend_suffix_to_word(names, "rvice") == "Service"

    def test_suffix_stops_at_separator(self):
        """Test growth stops before an underscore."""
        assert extend_suffix_to_word(["user_model", "order_model"], "del") == "model"

    def test_prefix_stops_at_word_boundary(self):
        """Test a prefix grows until the next word starts."""
        assert extend_prefix_to_word(["handleClick", "handleSubmit"], "han") == "handle"
