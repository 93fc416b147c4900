"""Analyzer contract shared by every pipeline plugin."""

from abc import ABC
from typing import List

from ..context import SharedAnalysisContext
from ..models import FileNode


class Analyzer(ABC):
    """Base class for pipeline analyzers.

    Every lifecycle hook has a no-op default, so an analyzer overrides only
    the phases it contributes to. The coordinator calls each hook exactly
    once per phase (``analyze_file`` once per file).

    Attributes:
        id: Unique analyzer id, referenced by other analyzers' ``dependencies``
        name: Human readable name for logs
        priority: Lower runs first among analyzers whose dependencies are met
        dependencies: Ids of analyzers that must be ordered before this one
    """

    id: str = ""
    name: str = ""
    priority: int = 100
    dependencies: List[str] = []

    def initialize(self, context: SharedAnalysisContext) -> None:
        """Reset analyzer-local state and register patterns (INITIALIZATION)."""
        pass

    def analyze_file(self, file: FileNode, content: str, context: SharedAnalysisContext) -> None:
        """Inspect one file (CONTENT_ANALYSIS)."""
        pass

    def process_relationships(self, context: SharedAnalysisContext) -> None:
        """Resolve candidates against the global view (RELATIONSHIP_MAPPING)."""
        pass

    def discover_patterns(self, context: SharedAnalysisContext) -> None:
        """Emit statistical patterns (PATTERN_DISCOVERY)."""
        pass

    def integrate(self, context: SharedAnalysisContext) -> None:
        """Write cross-cutting results and metrics (INTEGRATION)."""
        pass

    def cleanup(self) -> None:
        """Release analyzer-local buffers (CLEANUP)."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, priority={self.priority})"
