"""Tree-sitter parser management."""

import logging
from typing import Any, Dict, Optional

import tree_sitter_c as tsc
import tree_sitter_c_sharp as tscsharp
import tree_sitter_cpp as tscpp
import tree_sitter_go as tsgo
import tree_sitter_java as tsjava
import tree_sitter_javascript as tsjavascript
import tree_sitter_php as tsphp
import tree_sitter_python as tspython
import tree_sitter_rust as tsrust
import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Parser

from .grammars import LanguageRegistry

logger = logging.getLogger(__name__)


class ParserManager:
    """Owns one tree-sitter parser per grammar.

    A manager is created per analysis run and handed to the analyzers that
    parse source; nothing about it is process-global.
    """

    # Grammar module mapping
    GRAMMAR_MODULES = {
        "python": tspython,
        "javascript": tsjavascript,
        "typescript": tstypescript,
        "tsx": tstypescript,
        "php": tsphp,
        "go": tsgo,
        "rust": tsrust,
        "java": tsjava,
        "cpp": tscpp,
        "c": tsc,
        "c_sharp": tscsharp,
    }

    # Modules that use non-standard language function names
    LANGUAGE_FUNCTION_OVERRIDES = {
        "typescript": "language_typescript",
        "tsx": "language_tsx",
        "php": "language_php",
    }

    def __init__(self, registry: LanguageRegistry):
        self.registry = registry
        self.parsers: Dict[str, Parser] = {}
        self._unavailable: set = set()

    def _init_grammar(self, grammar: str) -> Optional[Parser]:
        """Create the parser for one grammar identifier."""
        module = self.GRAMMAR_MODULES.get(grammar)
        if not module:
            logger.warning(f"No module found for grammar: {grammar}")
            return None

        lang_func_name = self.LANGUAGE_FUNCTION_OVERRIDES.get(grammar, "language")
        lang_func = getattr(module, lang_func_name, None)
        if not lang_func:
            logger.warning(f"Module for {grammar} has no function '{lang_func_name}'")
            return None

        try:
            language = Language(lang_func())
            parser = Parser()
            parser.language = language
        except Exception as e:
            logger.error(f"Error initializing grammar {grammar}: {e}")
            return None

        logger.debug(f"Initialized parser for {grammar}")
        return parser

    def get_parser(self, grammar: str) -> Optional[Parser]:
        """Parser for a grammar, created on first use."""
        if grammar in self.parsers:
            return self.parsers[grammar]
        if grammar in self._unavailable:
            return None
        parser = self._init_grammar(grammar)
        if parser is None:
            self._unavailable.add(grammar)
            return None
        self.parsers[grammar] = parser
        return parser

    def parse(self, source: bytes, language: str, extension: str = "") -> Optional[Any]:
        """Parse source bytes of a file written in ``language``.

        Args:
            source: File content as bytes
            language: Registry language name
            extension: File extension, used to pick dialect grammars

        Returns:
            Tree-sitter tree, or None when the language has no grammar
        """
        lang_config = self.registry.get_language_config(language)
        if lang_config is None or not lang_config.is_parseable:
            return None
        grammar = lang_config.grammar_for(extension)
        parser = self.get_parser(grammar)
        if parser is None:
            return None
        return parser.parse(source)
