"""Code element extraction with tree-sitter and call-site resolution."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import blake3

from ..call_extractors import ExtractorRegistry
from ..context import SharedAnalysisContext
from ..grammars import LanguageConfig, LanguageRegistry
from ..models import (
    CodeNode,
    CodeNodeType,
    DataHints,
    FileNode,
    IndexingPhase,
    Location,
    NodeMetadata,
    Relationship,
    RelationshipMetadata,
    RelationshipType,
    Resolved,
    relationship_id,
    stable_id,
)
from ..parsing import ParserManager
from .base import Analyzer

logger = logging.getLogger(__name__)

# Structural hints about the data role a code element plays
SOURCE_HINT = re.compile(r"\b(fetch|input|read\w*|recv|request|resolve)\s*\(")
SINK_HINT = re.compile(r"\b(write\w*|emit|send|print|save)\s*\(")
TRANSFORM_HINT = re.compile(r"\b(map|filter|reduce|sorted)\s*\(")
RETURN_HINT = re.compile(r"\breturn\b")
STORE_HINT = re.compile(r"\b(self|this)\.\w+\s*=[^=]")
ASYNC_HINT = re.compile(r"\basync\b")

CALLABLE_TYPES = {CodeNodeType.FUNCTION, CodeNodeType.METHOD}
METHOD_OWNERS = {CodeNodeType.CLASS, CodeNodeType.INTERFACE}
EXPORT_PARENTS = {"export_statement", "export_declaration"}


@dataclass
class CallCandidate:
    """A call site awaiting resolution against the global node index."""

    source_id: str
    path: str
    callee: str
    line: int
    context: str


def compute_data_hints(text: str) -> DataHints:
    return DataHints(
        is_data_source=bool(SOURCE_HINT.search(text)),
        is_data_sink=bool(SINK_HINT.search(text)),
        is_data_transformer=bool(RETURN_HINT.search(text) and TRANSFORM_HINT.search(text)),
        is_data_store=bool(STORE_HINT.search(text)),
    )


class CodeStructureAnalyzer(Analyzer):
    """Extracts code nodes from parseable files and links call sites.

    Namespaces, classes, interfaces, functions, methods, enums, type
    aliases and modules become ``CodeNode``s with parent/child links. A
    function nested directly in a class or interface is a method.
    """

    id = "code-structure"
    name = "Code Structure"
    priority = 20
    dependencies = ["language-detector"]

    def __init__(self, registry: LanguageRegistry, parser_manager: ParserManager):
        self.registry = registry
        self.parser_manager = parser_manager
        self._call_candidates: List[CallCandidate] = []
        self._previous_nodes: Dict[str, List[CodeNode]] = {}
        self._previous_calls: Dict[str, List[Relationship]] = {}
        self._reused_files = 0
        self._parsed_files = 0

    def initialize(self, context: SharedAnalysisContext) -> None:
        self._call_candidates = []
        self._previous_nodes = {}
        self._previous_calls = {}
        self._reused_files = 0
        self._parsed_files = 0

        previous = context.previous_understanding
        if previous is not None:
            for node in previous.code_nodes.values():
                self._previous_nodes.setdefault(node.path, []).append(node)
            for rel in previous.relationships:
                if rel.type == RelationshipType.CALLS:
                    self._previous_calls.setdefault(rel.source_id, []).append(rel)

    # Content analysis

    def analyze_file(self, file: FileNode, content: str, context: SharedAnalysisContext) -> None:
        if not file.language:
            return

        if self._reuse_previous(file, context):
            return

        lang_config = self.registry.get_language_config(file.language)
        if lang_config is None or not lang_config.is_parseable:
            return

        source = content.encode("utf-8")
        tree = self.parser_manager.parse(source, file.language, file.extension)
        if tree is None:
            logger.debug(f"Parser not available for {file.language}")
            return

        if tree.root_node.has_error:
            logger.warning(f"Parse errors in {file.path}")

        extractor = ExtractorRegistry.get_extractor(file.language)
        call_types = set(extractor.get_call_node_types()) if extractor else set()
        lines = content.splitlines()
        ordinals: Dict[str, int] = {}

        stack = [(tree.root_node, None)]
        while stack:
            node, parent = stack.pop()
            current = parent

            code_node = self._build_node(node, parent, file, lang_config, ordinals)
            if code_node is not None:
                context.add_code_node(code_node)
                if parent is not None:
                    parent.children_ids.append(code_node.id)
                current = code_node

            if node.type in call_types and current is not None:
                callee = extractor.extract_call_target_name(node)
                if callee:
                    line = node.start_point[0] + 1
                    self._call_candidates.append(
                        CallCandidate(
                            source_id=current.id,
                            path=file.path,
                            callee=callee,
                            line=line,
                            context=lines[line - 1].strip() if line <= len(lines) else "",
                        )
                    )

            stack.extend((child, current) for child in reversed(node.children))

        self._parsed_files += 1
        logger.debug(f"Extracted {len(context.nodes_for_file(file.path))} code nodes from {file.path}")

    def _reuse_previous(self, file: FileNode, context: SharedAnalysisContext) -> bool:
        """Copy nodes of an unchanged file from the previous understanding."""
        previous = context.previous_understanding
        targets = context.options.target_files
        if previous is None or targets is None or file.path in targets:
            return False

        for node in self._previous_nodes.get(file.path, []):
            context.add_code_node(node)
            for rel in self._previous_calls.get(node.id, []):
                self._call_candidates.append(
                    CallCandidate(
                        source_id=rel.source_id,
                        path=file.path,
                        callee=rel.metadata.target_name or "",
                        line=rel.metadata.line or 0,
                        context=rel.metadata.context or "",
                    )
                )
        self._reused_files += 1
        return True

    def _build_node(
        self,
        node: Any,
        parent: Optional[CodeNode],
        file: FileNode,
        lang_config: LanguageConfig,
        ordinals: Dict[str, int],
    ) -> Optional[CodeNode]:
        spec = lang_config.rule_for(node.type)
        if spec is None:
            return None

        value_types = spec.get("value_types")
        if value_types:
            value = node.child_by_field_name("value")
            if value is None or value.type not in value_types:
                return None
        required = spec.get("requires_field")
        if required and node.child_by_field_name(required) is None:
            return None

        name = self._extract_node_name(node, lang_config)
        if not name:
            return None

        node_type = CodeNodeType(spec["kind"])
        if node_type == CodeNodeType.FUNCTION and parent is not None and parent.type in METHOD_OWNERS:
            node_type = CodeNodeType.METHOD

        qualified_name = f"{parent.qualified_name}.{name}" if parent else name
        key = f"{node_type.value}:{qualified_name}"
        ordinal = ordinals.get(key, 0)
        ordinals[key] = ordinal + 1

        text = node.text or b""
        decoded = text.decode("utf-8", errors="replace")
        first_line = decoded.split("\n", 1)[0]

        return CodeNode(
            id=stable_id(f"{file.path}:{key}:{ordinal}"),
            name=name,
            qualified_name=qualified_name,
            type=node_type,
            path=file.path,
            location=Location(
                start_line=node.start_point[0] + 1,
                end_line=node.end_point[0] + 1,
                start_column=node.start_point[1],
                end_column=node.end_point[1],
            ),
            content_hash=blake3.blake3(text).hexdigest(),
            parent_id=parent.id if parent else None,
            metadata=NodeMetadata(
                language=file.language,
                syntax_type=node.type,
                is_async=bool(ASYNC_HINT.search(first_line)),
                is_exported=self._is_exported(node, name, file.language),
                parameter_count=self._count_parameters(node),
                data_hints=compute_data_hints(decoded),
            ),
        )

    def _extract_node_name(self, node: Any, lang_config: LanguageConfig) -> Optional[str]:
        name_path = lang_config.name_path(node.type)
        if not name_path:
            return None

        current = node
        for field_name in name_path:
            current = current.child_by_field_name(field_name)
            if current is None:
                return None
        return current.text.decode("utf-8")

    @staticmethod
    def _is_exported(node: Any, name: str, language: str) -> bool:
        if language in ("javascript", "typescript"):
            ancestor = node.parent
            # const x = () => {} sits two levels below the export
            for _ in range(3):
                if ancestor is None:
                    break
                if ancestor.type in EXPORT_PARENTS:
                    return True
                ancestor = ancestor.parent
            return False
        if language == "python":
            return not name.startswith("_")
        if language == "go":
            return name[:1].isupper()
        return False

    @staticmethod
    def _count_parameters(node: Any) -> int:
        candidates = [node, node.child_by_field_name("value"), node.child_by_field_name("declarator")]
        for candidate in candidates:
            if candidate is None:
                continue
            params = candidate.child_by_field_name("parameters")
            if params is not None:
                return params.named_child_count
        return 0

    # Relationship mapping

    def process_relationships(self, context: SharedAnalysisContext) -> None:
        if context.current_phase != IndexingPhase.RELATIONSHIP_MAPPING:
            return

        thresholds = context.options.thresholds
        by_name: Dict[str, List[CodeNode]] = {}
        for node in context.code_nodes.values():
            if node.type in CALLABLE_TYPES:
                by_name.setdefault(node.name, []).append(node)

        relationships = []
        unresolved = 0
        for candidate in self._call_candidates:
            named = [n for n in by_name.get(candidate.callee, []) if n.id != candidate.source_id]
            targets = [n for n in named if n.path == candidate.path] or named
            if not targets:
                unresolved += 1
                continue

            ambiguous = len(targets) > 1
            confidence = thresholds.call_confidence
            if ambiguous:
                confidence *= thresholds.ambiguity_discount

            for target in sorted(targets, key=lambda n: n.id):
                relationships.append(
                    Relationship(
                        id=relationship_id(RelationshipType.CALLS, candidate.source_id, target.id),
                        type=RelationshipType.CALLS,
                        source_id=candidate.source_id,
                        target=Resolved(target.id),
                        weight=1.0,
                        confidence=confidence,
                        metadata=RelationshipMetadata(
                            target_name=candidate.callee,
                            context=candidate.context,
                            line=candidate.line,
                            candidate_count=len(targets),
                            ambiguous=ambiguous,
                        ),
                    )
                )

        added = context.add_relationships(relationships)
        context.record_metric("call_relationships", added)
        context.record_metric("unresolved_calls", unresolved)
        logger.info(f"Resolved {added} call relationships ({unresolved} unresolved call sites dropped)")

    def integrate(self, context: SharedAnalysisContext) -> None:
        context.record_metric("code_node_count", len(context.code_nodes))
        context.record_metric("parsed_files", self._parsed_files)
        context.record_metric("reused_files", self._reused_files)

    def cleanup(self) -> None:
        self._call_candidates = []
