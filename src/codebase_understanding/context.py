"""Shared analysis context: the blackboard every analyzer reads and writes."""

import gc
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import blake3

from .config import AnalysisOptions
from .errors import PhaseTransitionError
from .models import (
    PHASE_ORDER,
    CodebaseUnderstanding,
    CodeNode,
    CodePattern,
    Concept,
    FileSystemTree,
    IndexingPhase,
    LanguageStructure,
    PatternDefinition,
    PatternMatch,
    Relationship,
    SemanticUnit,
)

logger = logging.getLogger(__name__)


@dataclass
class CachedContent:
    """A cached file body and the number of open readers."""

    content: str
    ref_count: int
    loaded_at: float


@dataclass
class AnalysisEvent:
    kind: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


class SharedAnalysisContext:
    """Working set for one analysis run.

    The coordinator is the only caller of ``advance_phase``; analyzers read
    ``current_phase`` and mutate the collections during the phase they are
    invoked for.
    """

    def __init__(self, root_path: Path, options: Optional[AnalysisOptions] = None):
        """Initialize the context.

        Args:
            root_path: Absolute root of the analyzed tree
            options: Analysis options for this run
        """
        self.root_path = Path(root_path)
        self.options = options or AnalysisOptions()
        self.current_phase = IndexingPhase.INITIALIZATION

        self.file_system = FileSystemTree.empty(self.root_path.name)
        self.languages = LanguageStructure()
        self.code_nodes: Dict[str, CodeNode] = {}
        self.relationships: List[Relationship] = []
        self.patterns: List[CodePattern] = []
        self.concepts: List[Concept] = []
        self.semantic_units: List[SemanticUnit] = []

        self.processed_files: set = set()
        self.failed_files: List[str] = []
        self.metrics: Dict[str, float] = {}
        self.events: List[AnalysisEvent] = []

        # Set by the coordinator on incremental runs
        self.previous_understanding: Optional[CodebaseUnderstanding] = None

        self._content_cache: Dict[str, CachedContent] = {}
        self._nodes_by_file: Dict[str, List[str]] = {}
        self._pattern_registry: Dict[str, PatternDefinition] = {}
        self._compiled_patterns: Dict[str, "re.Pattern[str]"] = {}

    # Phases

    def advance_phase(self, phase: IndexingPhase) -> None:
        """Move strictly forward to ``phase``.

        Raises:
            PhaseTransitionError: If ``phase`` is not after the current phase
        """
        if PHASE_ORDER.index(phase) <= PHASE_ORDER.index(self.current_phase):
            raise PhaseTransitionError(self.current_phase.value, phase.value)
        previous = self.current_phase
        self.current_phase = phase
        self.record_event("phase-transition", {"from": previous.value, "to": phase.value})
        logger.info(f"Phase: {previous.value} -> {phase.value}")

    # File content cache

    def get_file_content(self, relative_path: str) -> str:
        """Acquire a file's content, loading it on first access.

        Every call must be paired with ``release_file_content``; prefer
        ``file_content`` which guarantees the release.
        """
        cached = self._content_cache.get(relative_path)
        if cached is not None:
            cached.ref_count += 1
            return cached.content

        content = (self.root_path / relative_path).read_text(encoding="utf-8")
        self._content_cache[relative_path] = CachedContent(
            content=content, ref_count=1, loaded_at=time.time()
        )
        return content

    def release_file_content(self, relative_path: str) -> None:
        """Drop one reference; the entry is evicted when none remain."""
        cached = self._content_cache.get(relative_path)
        if cached is None:
            return
        cached.ref_count -= 1
        if cached.ref_count <= 0:
            del self._content_cache[relative_path]

    @contextmanager
    def file_content(self, relative_path: str) -> Iterator[str]:
        """Scope-bound content acquisition."""
        content = self.get_file_content(relative_path)
        try:
            yield content
        finally:
            self.release_file_content(relative_path)

    def cache_ref_count(self, relative_path: str) -> int:
        cached = self._content_cache.get(relative_path)
        return cached.ref_count if cached else 0

    @property
    def cached_file_count(self) -> int:
        return len(self._content_cache)

    def request_memory_release(self) -> int:
        """Purge unreferenced cache entries and ask the collector to run.

        Returns:
            Number of cache entries purged
        """
        stale = [path for path, entry in self._content_cache.items() if entry.ref_count <= 0]
        for path in stale:
            del self._content_cache[path]
        collected = gc.collect()
        logger.debug(f"Memory release: purged {len(stale)} cache entries, collected {collected} objects")
        return len(stale)

    # Pattern registry

    def register_pattern(self, definition: PatternDefinition) -> str:
        """Register a regex pattern definition.

        Returns:
            The pattern id. A blank id is replaced by one derived from type and name.
        """
        if not definition.id:
            digest = blake3.blake3(f"{definition.type}:{definition.name}".encode()).hexdigest()
            definition.id = f"pattern-{digest[:12]}"
        self._pattern_registry[definition.id] = definition
        self._compiled_patterns[definition.id] = re.compile(definition.regex, re.MULTILINE)
        logger.debug(f"Registered pattern {definition.id} ({definition.type}): {definition.name}")
        return definition.id

    def get_pattern(self, pattern_id: str) -> Optional[PatternDefinition]:
        return self._pattern_registry.get(pattern_id)

    def registered_patterns(self, pattern_type: Optional[str] = None) -> List[PatternDefinition]:
        return [
            definition
            for definition in self._pattern_registry.values()
            if pattern_type is None or definition.type == pattern_type
        ]

    def find_matching_patterns(self, content: str, pattern_type: Optional[str] = None) -> List[PatternMatch]:
        """Run every registered pattern of ``pattern_type`` against ``content``.

        Args:
            content: Text to search
            pattern_type: Restrict to definitions of this type (all when None)

        Returns:
            One entry per regex match, in registration then position order
        """
        matches = []
        for definition in self.registered_patterns(pattern_type):
            compiled = self._compiled_patterns[definition.id]
            for found in compiled.finditer(content):
                matches.append(
                    PatternMatch(
                        pattern_id=definition.id,
                        match=found.group(0),
                        groups=list(found.groups()),
                        index=found.start(),
                        confidence=definition.confidence,
                    )
                )
        return matches

    # Metrics and events

    def record_metric(self, name: str, value: float) -> None:
        self.metrics[name] = value

    def record_event(self, kind: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.events.append(AnalysisEvent(kind=kind, timestamp=time.time(), data=data or {}))

    # Collections

    def add_code_node(self, node: CodeNode) -> None:
        if node.id not in self.code_nodes:
            self._nodes_by_file.setdefault(node.path, []).append(node.id)
        self.code_nodes[node.id] = node

    def nodes_for_file(self, relative_path: str) -> List[CodeNode]:
        """Code nodes owned by a file, in extraction order."""
        return [self.code_nodes[node_id] for node_id in self._nodes_by_file.get(relative_path, [])]

    def add_relationships(self, relationships: List[Relationship]) -> int:
        """Merge relationships, collapsing duplicate ids.

        Returns:
            Number of relationships actually added
        """
        known = {rel.id for rel in self.relationships}
        added = 0
        for rel in relationships:
            if rel.id in known:
                continue
            known.add(rel.id)
            self.relationships.append(rel)
            added += 1
        return added
