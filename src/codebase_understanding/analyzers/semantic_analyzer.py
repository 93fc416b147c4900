"""Concept extraction and semantic unit grouping over identifier words."""

import logging
from typing import Dict, List, Set

from ..context import SharedAnalysisContext
from ..models import CodeNodeType, Concept, IndexingPhase, SemanticProperties, SemanticUnit, stable_id
from ..naming import split_identifier
from .base import Analyzer

logger = logging.getLogger(__name__)

# Generic programming vocabulary that never names a domain concept
COMMON_WORDS = {
    "get", "set", "add", "remove", "create", "delete", "update", "fetch",
    "init", "start", "stop", "handle", "process", "execute", "run", "parse",
    "load", "save", "build", "make", "test", "check", "validate", "verify",
    "format", "convert", "transform", "calculate", "compute", "count",
    "index", "key", "value", "item", "element", "node", "component", "module",
    "util", "helper", "service", "factory", "provider", "manager", "controller",
    "model", "view", "template", "function", "method", "callback", "event",
    "listener", "handler", "config", "setup", "main", "app", "default",
    "container", "wrapper", "context", "store", "state", "props",
    "param", "arg", "input", "output", "result", "response", "request", "data",
    "info", "error", "warning", "log", "debug", "temp", "tmp", "flag", "enabled",
    "disabled", "active", "visible", "hidden", "selected", "current", "next",
    "prev", "first", "last", "new", "old", "min", "max", "sum", "avg",
}

MAX_UNIT_CONCEPTS = 3

# Unit type for the most common node type among a unit's members
UNIT_TYPES = {
    CodeNodeType.MODULE: "module",
    CodeNodeType.CLASS: "class",
    CodeNodeType.INTERFACE: "interface",
    CodeNodeType.FUNCTION: "function",
    CodeNodeType.METHOD: "service",
    CodeNodeType.VARIABLE: "datastore",
    CodeNodeType.PROPERTY: "schema",
    CodeNodeType.ENUM: "enum",
    CodeNodeType.NAMESPACE: "namespace",
}


def unit_type(node_types: List[CodeNodeType]) -> str:
    """Type of a semantic unit from its members' node types.

    Ties go to the type seen first; unknown or empty membership is a component.
    """
    counts: Dict[CodeNodeType, int] = {}
    for node_type in node_types:
        counts[node_type] = counts.get(node_type, 0) + 1
    if not counts:
        return "component"
    dominant = max(counts, key=lambda node_type: counts[node_type])
    return UNIT_TYPES.get(dominant, "component")



def concept_words(name: str) -> List[str]:
    """Significant lowercase words of an identifier, in order, without repeats."""
    words = []
    for word in split_identifier(name):
        if len(word) <= 2 or word in COMMON_WORDS or word in words:
            continue
        words.append(word)
    return words


def jaccard(left: Set[str], right: Set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


class SemanticAnalyzer(Analyzer):
    """Promotes recurring identifier words to concepts and groups nodes into units.

    Runs once every code node is known, during PATTERN_DISCOVERY. Disabled
    by ``AnalysisOptions.semantic_analysis = False``.
    """

    id = "semantic-analyzer"
    name = "Semantic Analyzer"
    priority = 50
    dependencies = ["code-structure"]

    def discover_patterns(self, context: SharedAnalysisContext) -> None:
        if context.current_phase != IndexingPhase.PATTERN_DISCOVERY:
            return
        if not context.options.semantic_analysis:
            logger.info("Semantic analysis disabled")
            return

        concepts = self.extract_concepts(context)
        units = self.build_semantic_units(context, concepts)
        context.concepts.extend(concepts)
        context.semantic_units.extend(units)
        context.record_event(
            "semantics-analyzed",
            {"analyzer": self.id, "concepts": len(concepts), "units": len(units)},
        )
        logger.info(f"Extracted {len(concepts)} concepts and {len(units)} semantic units")

    def extract_concepts(self, context: SharedAnalysisContext) -> List[Concept]:
        thresholds = context.options.thresholds
        total = len(context.code_nodes)
        if total == 0:
            return []

        occurrences: Dict[str, List[str]] = {}
        for node_id in sorted(context.code_nodes):
            node = context.code_nodes[node_id]
            if not node.name:
                continue
            for word in concept_words(node.name):
                occurrences.setdefault(word, []).append(node_id)

        significance = max(thresholds.concept_floor, total * thresholds.concept_share)
        concepts = []
        for word in sorted(occurrences):
            node_ids = occurrences[word]
            if len(node_ids) < significance:
                continue
            share = len(node_ids) / total
            concepts.append(
                Concept(
                    id=stable_id(f"concept:{word}"),
                    name=word[:1].upper() + word[1:],
                    description=f"Concept extracted from {len(node_ids)} code elements",
                    code_node_ids=node_ids,
                    importance=share,
                    confidence=min(share, 0.9),
                )
            )

        self._link_related(concepts, thresholds.concept_jaccard)
        return concepts

    @staticmethod
    def _link_related(concepts: List[Concept], threshold: float) -> None:
        members = [set(concept.code_node_ids) for concept in concepts]
        for i, first in enumerate(concepts):
            for j in range(i + 1, len(concepts)):
                if jaccard(members[i], members[j]) > threshold:
                    second = concepts[j]
                    first.related_concepts.append(second.id)
                    second.related_concepts.append(first.id)

    def build_semantic_units(
        self, context: SharedAnalysisContext, concepts: List[Concept]
    ) -> List[SemanticUnit]:
        """Group nodes of overlapping concepts into named units.

        Each concept with enough nodes seeds a group; groups overlapping by
        more than the configured share of the smaller one merge until no
        such pair remains.
        """
        thresholds = context.options.thresholds
        node_concepts: Dict[str, List[str]] = {}
        for concept in concepts:
            for node_id in concept.code_node_ids:
                node_concepts.setdefault(node_id, []).append(concept.id)

        groups: List[Set[str]] = [
            set(concept.code_node_ids)
            for concept in concepts
            if len(concept.code_node_ids) >= thresholds.unit_seed_floor
        ]

        merged = True
        while merged:
            merged = False
            for i in range(len(groups)):
                for j in range(i + 1, len(groups)):
                    overlap = len(groups[i] & groups[j])
                    if overlap / min(len(groups[i]), len(groups[j])) > thresholds.unit_overlap:
                        groups[i] |= groups.pop(j)
                        merged = True
                        break
                if merged:
                    break

        by_id = {concept.id: concept for concept in concepts}
        units = []
        for group in groups:
            if len(group) < 2:
                continue

            counts: Dict[str, int] = {}
            for node_id in group:
                for concept_id in node_concepts.get(node_id, []):
                    counts[concept_id] = counts.get(concept_id, 0) + 1
            ranked = sorted(counts.items(), key=lambda item: (-item[1], by_id[item[0]].name))
            dominant = [concept_id for concept_id, _ in ranked[:MAX_UNIT_CONCEPTS]]

            lead = by_id[dominant[0]] if dominant else None
            node_ids = sorted(group)
            node_types = [context.code_nodes[node_id].type for node_id in node_ids if node_id in context.code_nodes]
            units.append(
                SemanticUnit(
                    id=stable_id("unit:" + ",".join(node_ids)),
                    name=f"{lead.name} Module" if lead else "Unknown Unit",
                    type=unit_type(node_types),
                    description=f"A group of {len(node_ids)} related code elements",
                    code_node_ids=node_ids,
                    concepts=dominant,
                    confidence=0.7,
                    properties=SemanticProperties(
                        cohesion=ranked[0][1] / len(group) if ranked else 0.0,
                        size=len(group),
                    ),
                )
            )
        return units

    def integrate(self, context: SharedAnalysisContext) -> None:
        context.record_metric("concept_count", len(context.concepts))
        context.record_metric("semantic_unit_count", len(context.semantic_units))
