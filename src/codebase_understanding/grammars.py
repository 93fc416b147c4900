"""Per-language extraction rules loaded from the shipped ``languages.json``.

Each entry names the extensions a language owns, the tree-sitter grammar
that parses it (absent for languages that are only tagged) and the syntax
node types that become code nodes, keyed by syntax type:

    "function_definition": {"kind": "function", "name_field": "name"}

``name_field`` may be dotted (``declarator.declarator``) to reach a nested
identifier. ``value_types`` and ``requires_field`` narrow a rule to syntax
nodes whose ``value`` child has one of the listed types or that carry the
given field.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import LanguageConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "languages.json"


@dataclass
class LanguageConfig:
    """Extensions, grammar and code-node rules of one language."""

    name: str
    extensions: List[str]
    grammar: Optional[str] = None
    node_rules: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    grammar_overrides: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "LanguageConfig":
        return cls(
            name=name,
            extensions=[extension.lower() for extension in data["extensions"]],
            grammar=data.get("tree_sitter_language"),
            node_rules=dict(data.get("node_types", {})),
            grammar_overrides=dict(data.get("grammar_overrides", {})),
        )

    @property
    def is_parseable(self) -> bool:
        return self.grammar is not None

    def grammar_for(self, extension: str) -> Optional[str]:
        """Grammar for a file extension; dialects such as ``.tsx`` override the default."""
        return self.grammar_overrides.get(extension, self.grammar)

    def rule_for(self, syntax_type: str) -> Optional[Dict[str, Any]]:
        """Code-node rule for a syntax node type, or None if it yields no code node."""
        return self.node_rules.get(syntax_type)

    def name_path(self, syntax_type: str) -> List[str]:
        """Field names leading from the syntax node to its identifier."""
        rule = self.node_rules.get(syntax_type) or {}
        name_field = rule.get("name_field")
        return name_field.split(".") if name_field else []


def load_languages(config_path: Path) -> Dict[str, LanguageConfig]:
    """Read every language entry of a ``languages.json`` file.

    Raises:
        LanguageConfigError: The file is missing, is not JSON, or an entry
            lacks its extensions.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {name: LanguageConfig.from_dict(name, entry) for name, entry in data.items()}
    except OSError as e:
        logger.error(f"Cannot read language rules from {config_path}: {e}")
        raise LanguageConfigError(str(config_path), str(e)) from e
    except json.JSONDecodeError as e:
        logger.error(f"Language rules in {config_path} are not valid JSON: {e}")
        raise LanguageConfigError(str(config_path), f"invalid JSON: {e}") from e
    except (AttributeError, KeyError, TypeError) as e:
        logger.error(f"Language rules in {config_path} have an unexpected shape: {e}")
        raise LanguageConfigError(str(config_path), f"unexpected shape: {e}") from e


class LanguageRegistry:
    """Languages by name and by file extension.

    When two languages claim an extension the later entry in the file wins.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.languages = load_languages(self.config_path)
        self.extension_map: Dict[str, str] = {
            extension: language.name
            for language in self.languages.values()
            for extension in language.extensions
        }
        parseable = sum(1 for language in self.languages.values() if language.is_parseable)
        logger.info(f"Loaded {len(self.languages)} languages, {parseable} with a grammar")

    def detect_language(self, file_path: str) -> Optional[str]:
        """Language owning the file's extension, or None."""
        extension = Path(file_path).suffix.lower()
        language = self.extension_map.get(extension)
        if language is None:
            logger.debug(f"No language for extension {extension!r}")
        return language

    def get_language_config(self, language: str) -> Optional[LanguageConfig]:
        return self.languages.get(language)
