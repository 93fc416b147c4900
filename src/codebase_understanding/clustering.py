"""Similarity-based clustering of code nodes."""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from .config import ClusterOptions
from .models import (
    ClusteringAlgorithm,
    ClusteringMetric,
    CodeCluster,
    CodebaseUnderstanding,
    CodeNode,
    stable_id,
)
from .naming import classify_casing, split_identifier

logger = logging.getLogger(__name__)

# Verb-like prefixes; matched only at a word boundary (getUser, is_valid)
MEANINGFUL_PREFIXES = ["get", "set", "is", "has", "on", "do", "to", "use"]

COMMON_SUFFIXES = [
    "Component",
    "Service",
    "Provider",
    "Controller",
    "Model",
    "View",
    "Helper",
    "Utils",
    "Factory",
]

KMEDOIDS_MAX_ITERATIONS = 20


def extract_prefix(name: str) -> Optional[str]:
    for prefix in MEANINGFUL_PREFIXES:
        if name.startswith(prefix) and len(name) > len(prefix):
            following = name[len(prefix)]
            if following.isupper() or following == "_":
                return prefix
    return None


def extract_suffix(name: str) -> Optional[str]:
    for suffix in COMMON_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    if "." in name:
        return name.rsplit(".", 1)[1] or None
    return None


@dataclass
class NodeFeatures:
    """Per-node values the pairwise metrics compare."""

    node: CodeNode
    prefix: Optional[str]
    suffix: Optional[str]
    convention: Optional[str]
    words: Set[str]
    child_types: Counter
    relationship_types: Set[str] = field(default_factory=set)
    incoming: int = 0
    relationship_total: int = 0
    units: Set[str] = field(default_factory=set)
    unit_concepts: Set[str] = field(default_factory=set)


class CodeClusteringEngine:
    """Partitions code nodes by combined pairwise similarity."""

    def cluster(self, understanding: CodebaseUnderstanding, options: Optional[ClusterOptions] = None) -> List[CodeCluster]:
        """Cluster the code nodes of an understanding.

        Args:
            understanding: Finished understanding
            options: Algorithm, metrics, minimum similarity and cluster cap

        Returns:
            Clusters with at least two members, largest first
        """
        options = options or ClusterOptions()
        node_ids, matrix = self.build_similarity_matrix(understanding, options.metrics)
        if len(node_ids) < 2:
            return []

        if options.algorithm == ClusteringAlgorithm.DBSCAN:
            groups = self._dbscan(matrix, options.min_similarity)
        elif options.algorithm == ClusteringAlgorithm.KMEANS:
            groups = self._kmedoids(matrix, options.min_similarity, options.max_clusters)
        else:
            groups = self._hierarchical(matrix, options.min_similarity)

        groups = [group for group in groups if len(group) > 1]
        groups.sort(key=lambda group: (-len(group), min(group)))
        groups = groups[: options.max_clusters]

        clusters = [self._make_cluster(understanding, node_ids, matrix, group) for group in groups]
        logger.info(f"Discovered {len(clusters)} natural clusters ({options.algorithm.value})")
        return clusters

    # Similarity matrix

    def build_similarity_matrix(
        self, understanding: CodebaseUnderstanding, metrics: List[ClusteringMetric]
    ) -> Tuple[List[str], np.ndarray]:
        node_ids = sorted(understanding.code_nodes)
        features = self._collect_features(understanding, node_ids)

        size = len(node_ids)
        matrix = np.zeros((size, size), dtype=np.float64)
        for i in range(size):
            for j in range(i + 1, size):
                similarity = self._similarity(features[i], features[j], metrics)
                matrix[i, j] = similarity
                matrix[j, i] = similarity
        return node_ids, matrix

    def _collect_features(self, understanding: CodebaseUnderstanding, node_ids: List[str]) -> List[NodeFeatures]:
        nodes = understanding.code_nodes
        features: Dict[str, NodeFeatures] = {}
        for node_id in node_ids:
            node = nodes[node_id]
            name = node.name or ""
            features[node_id] = NodeFeatures(
                node=node,
                prefix=extract_prefix(name),
                suffix=extract_suffix(name),
                convention=classify_casing(name),
                words=set(split_identifier(name)) if name else set(),
                child_types=Counter(
                    nodes[child].type.value for child in node.children_ids if child in nodes
                ),
            )

        for rel in understanding.relationships:
            target_id = rel.target_id
            source = features.get(rel.source_id)
            if source is not None:
                source.relationship_types.add(rel.type.value)
                source.relationship_total += 1
            target = features.get(target_id)
            if target is not None:
                target.relationship_types.add(rel.type.value)
                target.relationship_total += 1
                target.incoming += 1

        for unit in understanding.semantic_units:
            for node_id in unit.code_node_ids:
                entry = features.get(node_id)
                if entry is not None:
                    entry.units.add(unit.id)
                    entry.unit_concepts.update(unit.concepts)

        return [features[node_id] for node_id in node_ids]

    def _similarity(self, a: NodeFeatures, b: NodeFeatures, metrics: List[ClusteringMetric]) -> float:
        # Different node kinds never cluster together
        if a.node.type != b.node.type:
            return 0.0

        total, weights = 0.0, 0.0
        for metric in metrics:
            similarity, weight = self._apply_metric(a, b, metric)
            total += similarity * weight
            weights += weight
        return total / weights if weights > 0 else 0.0

    def _apply_metric(self, a: NodeFeatures, b: NodeFeatures, metric: ClusteringMetric) -> Tuple[float, float]:
        if metric == ClusteringMetric.NAMING_PATTERN:
            return self._naming_similarity(a, b)
        if metric == ClusteringMetric.STRUCTURAL_SIMILARITY:
            return self._structural_similarity(a, b)
        if metric == ClusteringMetric.RELATIONSHIP_GRAPH:
            return self._relationship_similarity(a, b)
        if metric == ClusteringMetric.SEMANTIC_SIMILARITY:
            return self._semantic_similarity(a, b)
        if metric == ClusteringMetric.CONTENT_SIMILARITY:
            return self._content_similarity(a, b)
        return 0.0, 0.0

    @staticmethod
    def _naming_similarity(a: NodeFeatures, b: NodeFeatures) -> Tuple[float, float]:
        if not a.node.name or not b.node.name:
            return 0.0, 0.0
        prefix = 1.0 if a.prefix and a.prefix == b.prefix else 0.0
        suffix = 1.0 if a.suffix and a.suffix == b.suffix else 0.0
        convention = 1.0 if a.convention == b.convention else 0.0
        union = a.words | b.words
        words = len(a.words & b.words) / len(union) if union else 0.0
        return prefix * 0.3 + suffix * 0.3 + convention * 0.1 + words * 0.3, 1.0

    @staticmethod
    def _structural_similarity(a: NodeFeatures, b: NodeFeatures) -> Tuple[float, float]:
        meta_a, meta_b = a.node.metadata, b.node.metadata
        compared = [
            meta_a.language == meta_b.language,
            meta_a.syntax_type == meta_b.syntax_type,
            meta_a.is_async == meta_b.is_async,
            meta_a.is_exported == meta_b.is_exported,
            meta_a.parameter_count == meta_b.parameter_count,
        ]
        metadata = 0.4 + 0.6 * (sum(compared) / len(compared))

        count_a, count_b = sum(a.child_types.values()), sum(b.child_types.values())
        max_children = max(count_a, count_b)
        if max_children == 0:
            children = 1.0
        else:
            count_similarity = 1 - abs(count_a - count_b) / max_children
            if count_a == 0 or count_b == 0:
                children = count_similarity
            else:
                kinds = set(a.child_types) | set(b.child_types)
                diff = sum(abs(a.child_types[k] - b.child_types[k]) for k in kinds)
                children = count_similarity * 0.5 + (1 - diff / (2 * max_children)) * 0.5

        lines_a, lines_b = a.node.location.line_count, b.node.location.line_count
        location = 1 - abs(lines_a - lines_b) / max(lines_a, lines_b, 1)

        return metadata * 0.4 + children * 0.4 + location * 0.2, 1.0

    @staticmethod
    def _relationship_similarity(a: NodeFeatures, b: NodeFeatures) -> Tuple[float, float]:
        if a.relationship_total == 0 or b.relationship_total == 0:
            return 0.0, 0.0
        common = len(a.relationship_types & b.relationship_types)
        types = common / max(len(a.relationship_types), len(b.relationship_types))
        ratio_a = a.incoming / a.relationship_total
        ratio_b = b.incoming / b.relationship_total
        return types * 0.7 + (1 - abs(ratio_a - ratio_b)) * 0.3, 1.0

    @staticmethod
    def _semantic_similarity(a: NodeFeatures, b: NodeFeatures) -> Tuple[float, float]:
        if not a.units or not b.units:
            return 0.0, 0.0
        units = len(a.units & b.units) / max(len(a.units), len(b.units))
        largest = max(len(a.unit_concepts), len(b.unit_concepts))
        concepts = len(a.unit_concepts & b.unit_concepts) / largest if largest else 0.0
        return units * 0.5 + concepts * 0.5, 1.0

    @staticmethod
    def _content_similarity(a: NodeFeatures, b: NodeFeatures) -> Tuple[float, float]:
        if not a.node.content_hash or not b.node.content_hash:
            return 0.0, 0.0
        if a.node.content_hash == b.node.content_hash:
            return 1.0, 0.5
        lines_a, lines_b = a.node.location.line_count, b.node.location.line_count
        return 1 - abs(lines_a - lines_b) / max(lines_a, lines_b, 1), 0.5

    # Algorithms

    @staticmethod
    def _hierarchical(matrix: np.ndarray, min_similarity: float) -> List[List[int]]:
        """Average-linkage agglomeration until no pair reaches ``min_similarity``."""
        size = matrix.shape[0]
        linkage = matrix.copy()
        np.fill_diagonal(linkage, -np.inf)
        members: Dict[int, List[int]] = {i: [i] for i in range(size)}
        active = np.ones(size, dtype=bool)

        while len(members) > 1:
            masked = np.where(np.outer(active, active), linkage, -np.inf)
            flat = int(np.argmax(masked))
            i, j = divmod(flat, size)
            if masked[i, j] < min_similarity:
                break
            if i > j:
                i, j = j, i

            size_i, size_j = len(members[i]), len(members[j])
            merged_row = (linkage[i] * size_i + linkage[j] * size_j) / (size_i + size_j)
            linkage[i, :] = merged_row
            linkage[:, i] = merged_row
            linkage[i, i] = -np.inf
            active[j] = False
            linkage[j, :] = -np.inf
            linkage[:, j] = -np.inf
            members[i].extend(members.pop(j))

        return [sorted(group) for group in members.values()]

    @staticmethod
    def _dbscan(matrix: np.ndarray, min_similarity: float) -> List[List[int]]:
        """Density expansion with one neighbor per core point; isolated nodes are noise."""
        size = matrix.shape[0]
        neighbors = matrix >= min_similarity
        np.fill_diagonal(neighbors, False)
        visited = np.zeros(size, dtype=bool)
        groups = []

        for start in range(size):
            if visited[start]:
                continue
            visited[start] = True
            if not neighbors[start].any():
                continue

            group = [start]
            frontier = [int(k) for k in np.flatnonzero(neighbors[start])]
            while frontier:
                current = frontier.pop(0)
                if visited[current]:
                    continue
                visited[current] = True
                group.append(current)
                frontier.extend(int(k) for k in np.flatnonzero(neighbors[current]) if not visited[k])
            groups.append(sorted(group))
        return groups

    @staticmethod
    def _kmedoids(matrix: np.ndarray, min_similarity: float, max_clusters: int) -> List[List[int]]:
        """k-medoids over ``1 - similarity`` with farthest-first seeding.

        Members less similar to their medoid than ``min_similarity`` are
        left out as noise.
        """
        size = matrix.shape[0]
        k = max(1, min(max_clusters, size, int(round(math.sqrt(size / 2)))))
        distance = 1.0 - matrix
        np.fill_diagonal(distance, 0.0)

        medoids = [int(np.argmax(matrix.sum(axis=1)))]
        while len(medoids) < k:
            nearest = distance[:, medoids].min(axis=1)
            nearest[medoids] = -1.0
            medoids.append(int(np.argmax(nearest)))

        assignment = np.argmin(distance[:, medoids], axis=1)
        for _ in range(KMEDOIDS_MAX_ITERATIONS):
            updated = []
            for cluster_index in range(len(medoids)):
                members = np.flatnonzero(assignment == cluster_index)
                if len(members) == 0:
                    updated.append(medoids[cluster_index])
                    continue
                costs = distance[np.ix_(members, members)].sum(axis=1)
                updated.append(int(members[int(np.argmin(costs))]))
            new_assignment = np.argmin(distance[:, updated], axis=1)
            if updated == medoids and np.array_equal(new_assignment, assignment):
                break
            medoids, assignment = updated, new_assignment

        groups = []
        for cluster_index, medoid in enumerate(medoids):
            members = [
                int(i) for i in np.flatnonzero(assignment == cluster_index)
                if i == medoid or matrix[i, medoid] >= min_similarity
            ]
            groups.append(sorted(members))
        return groups

    # Presentation

    def _make_cluster(
        self,
        understanding: CodebaseUnderstanding,
        node_ids: List[str],
        matrix: np.ndarray,
        group: List[int],
    ) -> CodeCluster:
        members = [node_ids[i] for i in group]
        nodes = [understanding.code_nodes[node_id] for node_id in members]

        type_counts = Counter(node.type.value for node in nodes)
        dominant_type = min(type_counts.items(), key=lambda item: (-item[1], item[0]))[0]
        naming_patterns = self.detect_naming_patterns(nodes)

        sub = matrix[np.ix_(group, group)]
        pairs = len(group) * (len(group) - 1) / 2
        average = float(np.triu(sub, k=1).sum() / pairs) if pairs else 0.0

        suffix = next((p.split(":", 1)[1] for p in naming_patterns if p.startswith("suffix:")), None)
        label = f"{suffix} {dominant_type}" if suffix else dominant_type
        return CodeCluster(
            id=stable_id("cluster:" + ",".join(members)),
            name=f"{label} cluster ({len(members)} nodes)",
            description=f"A cluster of {len(members)} {dominant_type} nodes with similar characteristics",
            node_ids=members,
            dominant_type=dominant_type,
            naming_patterns=naming_patterns,
            confidence=0.7,
            average_similarity=average,
        )

    @staticmethod
    def detect_naming_patterns(nodes: List[CodeNode]) -> List[str]:
        """Naming regularities shared by a cluster's members."""
        patterns = []
        total = len(nodes)
        checks = [
            ("prefix", [extract_prefix(node.name or "") for node in nodes], 0.5),
            ("suffix", [extract_suffix(node.name or "") for node in nodes], 0.5),
            ("convention", [classify_casing(node.name or "") for node in nodes], 0.7),
        ]
        for label, values, share in checks:
            counts = Counter(value for value in values if value)
            if not counts:
                continue
            value, count = min(counts.items(), key=lambda item: (-item[1], item[0]))
            if count >= total * share:
                patterns.append(f"{label}:{value}")
        return patterns
