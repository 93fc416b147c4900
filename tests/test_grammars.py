import json

import pytest

from codebase_understanding.errors import LanguageConfigError
from codebase_understanding.grammars import LanguageRegistry


class TestLanguageRegistry:
    """Test the shipped language rules and their lookup."""

    def test_detects_by_extension(self):
        """Test extensions map to languages case-insensitively."""
        registry = LanguageRegistry()
        assert registry.detect_language("src/app.py") == "python"
        assert registry.detect_language("src/View.TSX") == "typescript"
        assert registry.detect_language("README") is None

    def test_rules_and_grammar_overrides(self):
        """Test rules expose node kinds, dotted name paths and dialect grammars."""
        registry = LanguageRegistry()

        typescript = registry.get_language_config("typescript")
        assert typescript.grammar_for(".tsx") == "tsx"
        assert typescript.grammar_for(".ts") == "typescript"
        assert typescript.rule_for("interface_declaration")["kind"] == "interface"
        assert typescript.rule_for("call_expression") is None

        assert registry.get_language_config("c").name_path("function_definition") == ["declarator", "declarator"]
        assert not registry.get_language_config("markdown").is_parseable

    def test_custom_rules_file(self, tmp_path):
        """Test a rules file with a tag-only language loads without a grammar."""
        path = tmp_path / "languages.json"
        path.write_text(json.dumps({"lua": {"extensions": [".LUA"]}}))

        registry = LanguageRegistry(path)

        assert registry.detect_language("init.lua") == "lua"
        assert registry.get_language_config("lua").name_path("chunk") == []

    @pytest.mark.parametrize(
        "content, reason",
        [
            (None, "No such file"),
            ("{not json", "invalid JSON"),
            ('{"lua": {"grammar": "lua"}}', "unexpected shape"),
        ],
    )
    def test_unreadable_rules(self, tmp_path, content, reason):
        """Test missing, malformed or incomplete rules raise a configuration error."""
        path = tmp_path / "languages.json"
        if content is not None:
            path.write_text(content)

        with pytest.raises(LanguageConfigError, match=reason):
            LanguageRegistry(path)
