"""Language-specific call-site extraction using a strategy per language.

Each extractor knows which AST node types are call sites in its grammar
and how to recover the called name from one.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class CallExtractor(ABC):
    """Base class for language-specific call extraction."""

    def __init__(self, language: str):
        self.language = language

    @abstractmethod
    def get_call_node_types(self) -> List[str]:
        """Return AST node types that represent function/method calls."""
        pass

    @abstractmethod
    def extract_call_target_name(self, call_node: Any) -> Optional[str]:
        """Extract the bare function/method name being called."""
        pass


class FunctionFieldExtractor(CallExtractor):
    """Calls whose callee sits in a ``function`` field.

    The callee is either a plain identifier or a member access whose last
    segment lives in ``member_fields[member_type]``.
    """

    def __init__(self, language: str, call_types: List[str], member_fields: Dict[str, str]):
        super().__init__(language)
        self.call_types = call_types
        self.member_fields = member_fields

    def get_call_node_types(self) -> List[str]:
        return self.call_types

    def extract_call_target_name(self, call_node: Any) -> Optional[str]:
        try:
            func_node = call_node.child_by_field_name("function")
            if func_node is None:
                return None
            if func_node.type == "identifier":
                return func_node.text.decode("utf-8")
            member_field = self.member_fields.get(func_node.type)
            if member_field:
                name_node = func_node.child_by_field_name(member_field)
                if name_node is not None:
                    return name_node.text.decode("utf-8")
        except Exception as e:
            logger.debug(f"Error extracting {self.language} call target: {e}")
        return None


class PHPExtractor(CallExtractor):
    """PHP calls: ``fn()``, ``Ns\\fn()`` and ``$obj->method()``."""

    def __init__(self):
        super().__init__("php")

    def get_call_node_types(self) -> List[str]:
        return ["function_call_expression", "member_call_expression"]

    def extract_call_target_name(self, call_node: Any) -> Optional[str]:
        try:
            if call_node.type == "member_call_expression":
                name_node = call_node.child_by_field_name("name")
                if name_node is not None:
                    return name_node.text.decode("utf-8")

            elif call_node.type == "function_call_expression":
                function_node = call_node.child_by_field_name("function")
                if function_node is None:
                    return None
                if function_node.type == "qualified_name":
                    names = [child for child in function_node.children if child.type == "name"]
                    return names[-1].text.decode("utf-8") if names else None
                return function_node.text.decode("utf-8")
        except Exception as e:
            logger.debug(f"Error extracting PHP call target: {e}")
        return None


class JavaExtractor(CallExtractor):
    """Java method invocations carry the callee in a ``name`` field."""

    def __init__(self):
        super().__init__("java")

    def get_call_node_types(self) -> List[str]:
        return ["method_invocation"]

    def extract_call_target_name(self, call_node: Any) -> Optional[str]:
        try:
            name_node = call_node.child_by_field_name("name")
            if name_node is not None:
                return name_node.text.decode("utf-8")
        except Exception as e:
            logger.debug(f"Error extracting Java call target: {e}")
        return None


class ExtractorRegistry:
    """Registry for language-specific call extractors."""

    _extractors: Dict[str, CallExtractor] = {
        "python": FunctionFieldExtractor("python", ["call"], {"attribute": "attribute"}),
        "javascript": FunctionFieldExtractor(
            "javascript", ["call_expression"], {"member_expression": "property"}
        ),
        "typescript": FunctionFieldExtractor(
            "typescript", ["call_expression"], {"member_expression": "property"}
        ),
        "php": PHPExtractor(),
        "go": FunctionFieldExtractor("go", ["call_expression"], {"selector_expression": "field"}),
        "rust": FunctionFieldExtractor(
            "rust",
            ["call_expression"],
            {"field_expression": "field", "scoped_identifier": "name"},
        ),
        "java": JavaExtractor(),
        "cpp": FunctionFieldExtractor(
            "cpp", ["call_expression"], {"field_expression": "field", "qualified_identifier": "name"}
        ),
        "c": FunctionFieldExtractor("c", ["call_expression"], {"field_expression": "field"}),
        "c_sharp": FunctionFieldExtractor(
            "c_sharp", ["invocation_expression"], {"member_access_expression": "name"}
        ),
    }

    @classmethod
    def get_extractor(cls, language: str) -> Optional[CallExtractor]:
        """Get the call extractor for a language.

        Args:
            language: Programming language name

        Returns:
            CallExtractor instance or None if not supported
        """
        return cls._extractors.get(language)
