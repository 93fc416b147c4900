"""Structural, naming and organization pattern discovery."""

import logging
import re
from typing import Dict, FrozenSet, List, Optional, Set

from ..context import SharedAnalysisContext
from ..models import (
    CodeNode,
    CodePattern,
    FileNode,
    IndexingPhase,
    PatternDefinition,
    PatternInstance,
    RelationshipType,
    stable_id,
)
from ..naming import CASING_STYLES, classify_casing, extend_prefix_to_word, extend_suffix_to_word
from .base import Analyzer

logger = logging.getLogger(__name__)

STRUCTURE_DEFINITIONS = [
    PatternDefinition(
        id="structure-controller",
        type="structure",
        name="Controller class",
        regex=r"class\s+([A-Z][a-zA-Z0-9]*Controller)\b",
        description="Controller class pattern often found in MVC architectures",
        confidence=0.85,
        category="architecture",
    ),
    PatternDefinition(
        id="structure-service",
        type="structure",
        name="Service class",
        regex=r"class\s+([A-Z][a-zA-Z0-9]*Service)\b",
        description="Service class pattern often found in service-oriented architectures",
        confidence=0.85,
        category="architecture",
    ),
    PatternDefinition(
        id="structure-factory",
        type="structure",
        name="Factory pattern",
        regex=r"class\s+([A-Z][a-zA-Z0-9]*Factory)\b",
        description="Factory design pattern",
        confidence=0.8,
        category="design_pattern",
    ),
]

# Directory names that say nothing about feature organization
COMMON_DIRECTORY_NAMES = {
    "src", "source", "lib", "app", "components", "utils", "helpers", "services",
    "models", "views", "controllers", "config", "docs", "test", "tests", "specs",
    "__tests__", "public", "static", "assets", "images", "styles", "css",
}

MVC_DIRECTORIES = ("models", "views", "controllers")

# Directory names read as architectural layers
LAYER_DIRECTORIES = {
    "model", "models", "view", "views", "controller", "controllers", "service", "services",
    "repository", "repositories", "data", "ui", "core", "domain", "presentation",
}

MIN_AFFIX_LENGTH = 3
MAX_AFFIX_LENGTH = 5


class PatternAnalyzer(Analyzer):
    """Lets structural, naming and organization patterns emerge from code nodes."""

    id = "pattern-analyzer"
    name = "Pattern Analyzer"
    priority = 30
    dependencies = ["code-structure"]

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self._nodes_by_type: Dict[str, List[str]] = {}
        self._casing: Dict[str, List[str]] = {}
        self._prefixes: Dict[str, List[str]] = {}
        self._suffixes: Dict[str, List[str]] = {}
        self._names: Dict[str, str] = {}
        self._total_nodes = 0

    def initialize(self, context: SharedAnalysisContext) -> None:
        self._reset()
        for style, pattern in CASING_STYLES:
            context.register_pattern(
                PatternDefinition(
                    id=f"naming-{style}",
                    type="naming",
                    name=style,
                    regex=pattern.pattern,
                    description=f"{style} naming convention",
                    confidence=0.9,
                )
            )
        for definition in STRUCTURE_DEFINITIONS:
            context.register_pattern(definition)

    def analyze_file(self, file: FileNode, content: str, context: SharedAnalysisContext) -> None:
        if not file.language:
            return

        matches = context.find_matching_patterns(content, "structure")
        file.metadata.structure_matches = [match.groups[0] or match.match for match in matches]

        for node in context.nodes_for_file(file.path):
            self._observe(node)

    def _observe(self, node: CodeNode) -> None:
        self._total_nodes += 1
        self._nodes_by_type.setdefault(node.type.value, []).append(node.id)

        name = node.name
        if not name or len(name) <= 1:
            return
        self._names[node.id] = name

        style = classify_casing(name)
        if style:
            self._casing.setdefault(style, []).append(node.id)

        # Affixes from 3 characters up to half the name, capped at 5
        longest = min(len(name) // 2, MAX_AFFIX_LENGTH)
        for i in range(MIN_AFFIX_LENGTH, longest + 1):
            self._prefixes.setdefault(name[:i], []).append(node.id)
            self._suffixes.setdefault(name[-i:], []).append(node.id)

    def discover_patterns(self, context: SharedAnalysisContext) -> None:
        if context.current_phase != IndexingPhase.PATTERN_DISCOVERY:
            return

        patterns: List[CodePattern] = []
        patterns.extend(self._structural_patterns(context))
        patterns.extend(self._naming_patterns(context))
        patterns.extend(self._organization_patterns(context))
        patterns.sort(key=lambda p: (-p.frequency, -p.confidence, p.name))

        context.patterns.extend(patterns)
        self._register_discovered(context, patterns)
        context.record_event(
            "patterns-discovered",
            {"analyzer": self.id, "count": len(patterns)},
        )
        logger.info(f"Discovered {len(patterns)} code patterns")

    def _structural_patterns(self, context: SharedAnalysisContext) -> List[CodePattern]:
        floor = context.options.thresholds.structural_floor
        patterns = []
        for node_type, node_ids in sorted(self._nodes_by_type.items()):
            if len(node_ids) < floor:
                continue
            patterns.append(
                CodePattern(
                    id=stable_id(f"structural:{node_type}"),
                    type="structural",
                    name=f"{node_type} structure",
                    description=f"Common structure for {node_type} elements",
                    instances=[PatternInstance(node_id) for node_id in node_ids],
                    confidence=0.6,
                    frequency=len(node_ids),
                    importance=0.5,
                    signature=node_type,
                )
            )
        return patterns

    def _naming_patterns(self, context: SharedAnalysisContext) -> List[CodePattern]:
        thresholds = context.options.thresholds
        total = self._total_nodes
        if total == 0:
            return []

        patterns = []

        dominant, instances = None, []
        for style, _ in CASING_STYLES:
            ids = self._casing.get(style, [])
            if len(ids) > len(instances):
                dominant, instances = style, ids
        if dominant and len(instances) / total > thresholds.naming_share:
            patterns.append(
                CodePattern(
                    id=stable_id(f"naming:{dominant}"),
                    type="naming",
                    name=f"{dominant} convention",
                    description=f"Names predominantly use {dominant} convention",
                    instances=[PatternInstance(node_id) for node_id in instances],
                    confidence=len(instances) / total,
                    frequency=len(instances),
                    importance=0.7,
                    signature=dominant,
                )
            )

        significance = max(thresholds.affix_floor, total * thresholds.affix_share)
        patterns.extend(self._affix_patterns(self._prefixes, "prefix", significance, total))
        patterns.extend(self._affix_patterns(self._suffixes, "suffix", significance, total))
        return patterns

    def _affix_patterns(
        self, tallies: Dict[str, List[str]], kind: str, significance: float, total: int
    ) -> List[CodePattern]:
        """Emit one pattern per significant affix.

        Nested affixes observed on exactly the same nodes (``ice``, ``vice``,
        ``rvice``) collapse to the longest, which is then grown to the
        enclosing identifier word (``Service``).
        """
        by_instances: Dict[FrozenSet[str], str] = {}
        for affix, node_ids in tallies.items():
            if len(node_ids) < significance:
                continue
            key = frozenset(node_ids)
            kept = by_instances.get(key)
            if kept is None or len(affix) > len(kept) or (len(affix) == len(kept) and affix < kept):
                by_instances[key] = affix

        emitted: Dict[str, CodePattern] = {}
        for key, affix in by_instances.items():
            node_ids = sorted(key)
            names = [self._names[node_id] for node_id in node_ids]
            if kind == "prefix":
                word = extend_prefix_to_word(names, affix)
                label = f"{word}* prefix convention"
                description = f'Names commonly start with "{word}"'
            else:
                word = extend_suffix_to_word(names, affix)
                label = f"*{word} suffix convention"
                description = f'Names commonly end with "{word}"'

            existing = emitted.get(label)
            if existing is not None and existing.frequency >= len(node_ids):
                continue
            emitted[label] = CodePattern(
                id=stable_id(f"naming:{label}"),
                type="naming",
                name=label,
                description=description,
                instances=[PatternInstance(node_id) for node_id in node_ids],
                confidence=len(node_ids) / total,
                frequency=len(node_ids),
                importance=0.6,
                signature=f"{kind}:{word}",
            )
        return [emitted[label] for label in sorted(emitted)]

    def _organization_patterns(self, context: SharedAnalysisContext) -> List[CodePattern]:
        thresholds = context.options.thresholds
        directories = [d for d in context.file_system.iter_directories() if d.path != "."]
        patterns = []

        feature_dirs = [
            d for d in directories
            if d.name.lower() not in COMMON_DIRECTORY_NAMES
            and len(d.children) > 1
            and d.subdirectories()
        ]
        if len(feature_dirs) >= thresholds.feature_directory_floor:
            patterns.append(
                CodePattern(
                    id=stable_id("organization:feature-based"),
                    type="organization",
                    name="Feature-based organization",
                    description="Code is organized by feature/domain rather than technical concerns",
                    instances=[PatternInstance(d.id) for d in feature_dirs],
                    confidence=0.7,
                    frequency=len(feature_dirs),
                    importance=0.8,
                    signature="directory_structure:feature_based",
                )
            )

        names = {d.name.lower() for d in directories}
        if all(name in names for name in MVC_DIRECTORIES):
            patterns.append(
                CodePattern(
                    id=stable_id("organization:mvc"),
                    type="organization",
                    name="MVC pattern",
                    description="Code follows Model-View-Controller architectural pattern",
                    instances=[PatternInstance(d.id) for d in directories if d.name.lower() in MVC_DIRECTORIES],
                    confidence=0.9,
                    frequency=3,
                    importance=0.9,
                    signature="directory_structure:mvc",
                )
            )

        layered = self._layered_pattern(context, directories)
        if layered is not None:
            patterns.append(layered)
        return patterns

    def _layered_pattern(self, context: SharedAnalysisContext, directories: List) -> Optional[CodePattern]:
        """Layer directories whose imports between each other mostly run one way.

        A pair of layers counts as one-way when files of one import files of
        the other and never the reverse; more than the configured share of
        all layer pairs must be one-way.
        """
        layers = sorted({d.name.lower() for d in directories if d.name.lower() in LAYER_DIRECTORIES})
        if len(layers) < 2:
            return None

        def layer_of(path: str) -> Optional[str]:
            for segment in path.split("/")[:-1]:
                if segment.lower() in layers:
                    return segment.lower()
            return None

        depends_on: Dict[str, Set[str]] = {layer: set() for layer in layers}
        for rel in context.relationships:
            if rel.type != RelationshipType.IMPORTS or not rel.is_resolved:
                continue
            source = layer_of(rel.source_id[len("file:"):])
            target = layer_of(rel.metadata.resolved_path or rel.target_id[len("file:"):])
            if source and target and source != target:
                depends_on[source].add(target)

        one_way = 0
        for i, first in enumerate(layers):
            for second in layers[i + 1:]:
                if (second in depends_on[first]) != (first in depends_on[second]):
                    one_way += 1
        pairs = len(layers) * (len(layers) - 1) / 2
        if one_way <= pairs * context.options.thresholds.layered_one_way_share:
            return None

        # Layers that import the most and are imported the least sit on top
        ordered = sorted(
            layers,
            key=lambda layer: (sum(layer in deps for deps in depends_on.values()) - len(depends_on[layer]), layer),
        )
        return CodePattern(
            id=stable_id("organization:layered"),
            type="organization",
            name="Layered architecture",
            description=f"Imports run one way through the layers {' > '.join(ordered)}",
            instances=[PatternInstance(d.id) for d in directories if d.name.lower() in layers],
            confidence=0.75,
            frequency=len(layers),
            importance=0.85,
            signature="directory_structure:layered",
        )


    @staticmethod
    def _register_discovered(context: SharedAnalysisContext, patterns: List[CodePattern]) -> None:
        """Expose discovered naming conventions to later queries."""
        for pattern in patterns:
            if pattern.type != "naming" or not pattern.signature:
                continue
            if pattern.signature.startswith("prefix:"):
                regex = rf"\b{re.escape(pattern.signature[7:])}\w*"
            elif pattern.signature.startswith("suffix:"):
                regex = rf"\w*{re.escape(pattern.signature[7:])}\b"
            else:
                continue
            context.register_pattern(
                PatternDefinition(
                    id="",
                    type="naming_convention",
                    name=pattern.name,
                    regex=regex,
                    description=pattern.description,
                    confidence=pattern.confidence,
                )
            )

    def integrate(self, context: SharedAnalysisContext) -> None:
        context.record_metric("total_patterns", len(context.patterns))
        by_type: Dict[str, int] = {}
        for pattern in context.patterns:
            by_type[pattern.type] = by_type.get(pattern.type, 0) + 1
        for pattern_type, count in sorted(by_type.items()):
            context.record_metric(f"patterns_{pattern_type}", count)

    def cleanup(self) -> None:
        self._reset()
