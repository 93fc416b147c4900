"""Data-flow graph construction over code nodes and their relationships."""

import logging
import re
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .config import DataFlowOptions
from .models import (
    CodebaseUnderstanding,
    CodeNode,
    DataFlow,
    DataFlowGraph,
    DataFlowPath,
    DataFlowType,
    DataNode,
    DataNodeRole,
    Relationship,
    RelationshipType,
    stable_id,
)

logger = logging.getLogger(__name__)

# Name fragments suggesting a role, checked in role precedence order
ROLE_NAME_INDICATORS = [
    (DataNodeRole.SOURCE, ("input", "source", "api", "fetch", "get", "provider", "read", "load")),
    (DataNodeRole.SINK, ("output", "sink", "save", "write", "send", "writer", "emit", "print")),
    (DataNodeRole.TRANSFORMER, ("transform", "convert", "format", "parse", "map", "process", "processor")),
    (DataNodeRole.STORE, ("store", "state", "cache", "repository", "database", "db")),
]

FLOW_RELATIONSHIP_TYPES = {
    RelationshipType.CALLS,
    RelationshipType.USES,
    RelationshipType.DEPENDS_ON,
    RelationshipType.REFERENCES,
    RelationshipType.EXTENDS,
    RelationshipType.IMPLEMENTS,
}

DIRECT_FLOW_TYPES = {
    DataFlowType.ASSIGNMENT,
    DataFlowType.RETURN,
    DataFlowType.PARAMETER,
    DataFlowType.EVENT_EMISSION,
    DataFlowType.STATE_MUTATION,
}

ASYNC_MARKERS = ("async", "await", "promise", "then(", "callback", "eventemitter")
CONDITIONAL_MARKERS = ("if ", "if(", "else", "switch", "case ", "try", "catch", "?", "||", "&&")
TRANSFORMATION_MARKERS = ("map", "filter", "reduce", "sort")

RETURN_STATEMENT = re.compile(r"^return\b")
# Single = with no call or comparison on its left; group 1 is the assigned expression
ASSIGNMENT = re.compile(r"^[^=()]*[^=!<>()]=(?![=>])(.*)$")


def _role_hint(node: CodeNode, role: DataNodeRole) -> bool:
    hints = node.metadata.data_hints
    return {
        DataNodeRole.SOURCE: hints.is_data_source,
        DataNodeRole.SINK: hints.is_data_sink,
        DataNodeRole.TRANSFORMER: hints.is_data_transformer,
        DataNodeRole.STORE: hints.is_data_store,
    }[role]


def _name_indicates(name: str, role: DataNodeRole) -> bool:
    lowered = name.lower()
    for candidate, fragments in ROLE_NAME_INDICATORS:
        if candidate == role:
            return any(fragment in lowered for fragment in fragments)
    return False


def determine_role(node: CodeNode) -> Optional[DataNodeRole]:
    """Role of a code node from its structural hints or name, if any."""
    for role, _ in ROLE_NAME_INDICATORS:
        if _role_hint(node, role) or _name_indicates(node.name or "", role):
            return role
    return None


def role_confidence(node: CodeNode, role: DataNodeRole) -> float:
    confidence = 0.7
    if _role_hint(node, role):
        confidence += 0.2
    if _name_indicates(node.name or "", role):
        confidence += 0.15
    if role.value in (node.name or "").lower():
        confidence += 0.1
    return min(0.95, confidence)


class DataFlowConstructor:
    """Builds data nodes, typed flows and multi-hop paths for an understanding."""

    def build(self, understanding: CodebaseUnderstanding, options: Optional[DataFlowOptions] = None) -> DataFlowGraph:
        """Construct the data-flow graph.

        Args:
            understanding: Understanding with code nodes and relationships
            options: Async/conditional toggles, minimum confidence and path depth

        Returns:
            Data-flow graph with nodes, flows and paths
        """
        options = options or DataFlowOptions()
        graph = DataFlowGraph()

        by_code_node: Dict[str, DataNode] = {}
        for node_id in sorted(understanding.code_nodes):
            node = understanding.code_nodes[node_id]
            role = determine_role(node)
            if role is None:
                continue
            data_node = DataNode(
                id=stable_id(f"data:{node.id}"),
                name=node.name or node.id,
                node_id=node.id,
                role=role,
                confidence=role_confidence(node, role),
                node_type=node.type.value,
            )
            graph.nodes[data_node.id] = data_node
            by_code_node[node.id] = data_node

        # Top-level data nodes per file; file imports flow between these
        by_file: Dict[str, List[DataNode]] = {}
        for node_id, data_node in by_code_node.items():
            node = understanding.code_nodes[node_id]
            if node.parent_id is None or node.parent_id not in understanding.code_nodes:
                by_file.setdefault(node.path, []).append(data_node)

        for rel in understanding.relationships:
            if rel.type == RelationshipType.IMPORTS:
                graph.flows.extend(self._import_flows(rel, understanding, by_file, options))
                continue
            flow = self._flow_for(rel, understanding, by_code_node, options)
            if flow is not None:
                graph.flows.append(flow)

        graph.paths = self._discover_paths(graph, options)
        logger.info(
            f"Data flow: {len(graph.nodes)} nodes, {len(graph.flows)} flows, {len(graph.paths)} paths"
        )
        return graph

    def _flow_for(
        self,
        rel: Relationship,
        understanding: CodebaseUnderstanding,
        by_code_node: Dict[str, DataNode],
        options: DataFlowOptions,
    ) -> Optional[DataFlow]:
        if rel.type not in FLOW_RELATIONSHIP_TYPES or not rel.is_resolved:
            return None
        source = by_code_node.get(rel.source_id)
        target = by_code_node.get(rel.target_id)
        if source is None or target is None:
            return None

        context = rel.metadata.context or ""
        flow_type = self._flow_type(target, context.lower())
        return self._make_flow(
            f"flow:{rel.id}", rel, flow_type, source, target, understanding.code_nodes[rel.source_id], options
        )

    def _import_flows(
        self,
        rel: Relationship,
        understanding: CodebaseUnderstanding,
        by_file: Dict[str, List[DataNode]],
        options: DataFlowOptions,
    ) -> List[DataFlow]:
        """Flows from the data nodes an imported file exposes to those of the importer.

        Only the imported names are used as sources when the import lists
        them; bare or namespace imports draw on every top-level data node.
        """
        if not rel.is_resolved:
            return []
        exporter = rel.metadata.resolved_path or rel.target_id[len("file:"):]
        importer = rel.source_id[len("file:"):]
        targets = by_file.get(importer, [])
        exposed = by_file.get(exporter, [])
        if not targets or not exposed:
            return []

        names = set(rel.metadata.imported_names)
        sources = [node for node in exposed if node.name in names] or exposed
        flow_type = DataFlowType.EXPORT if rel.metadata.import_type == "re_export" else DataFlowType.IMPORT

        flows = []
        for source in sources:
            source_node = understanding.code_nodes[source.node_id]
            for target in targets:
                flow = self._make_flow(
                    f"flow:{rel.id}:{source.id}:{target.id}", rel, flow_type, source, target, source_node, options
                )
                if flow is not None:
                    flows.append(flow)
        return flows

    def _make_flow(
        self,
        key: str,
        rel: Relationship,
        flow_type: DataFlowType,
        source: DataNode,
        target: DataNode,
        source_node: CodeNode,
        options: DataFlowOptions,
    ) -> Optional[DataFlow]:
        context = rel.metadata.context or ""
        lowered = context.lower()
        is_async = source_node.metadata.is_async or any(marker in lowered for marker in ASYNC_MARKERS)
        is_conditional = any(marker in lowered for marker in CONDITIONAL_MARKERS)
        if is_async and not options.include_async_flows:
            return None
        if is_conditional and not options.include_conditional_flows:
            return None

        confidence = 0.65
        if flow_type in DIRECT_FLOW_TYPES:
            confidence += 0.2
        if context:
            confidence += 0.1
        confidence = min(0.95, confidence)
        if confidence < options.min_confidence:
            return None

        return DataFlow(
            id=stable_id(key),
            type=flow_type,
            source_id=source.id,
            target_id=target.id,
            confidence=confidence,
            is_async=is_async,
            is_conditional=is_conditional,
            transformations=[t for t in TRANSFORMATION_MARKERS if f"{t}(" in lowered],
            relationship_type=rel.type.value,
            context=context or None,
        )

    @staticmethod
    def _flow_type(target: DataNode, context: str) -> DataFlowType:
        """Kind of a call-site flow, read from the lowercased source line."""
        if "emit(" in context or "dispatch(" in context:
            return DataFlowType.EVENT_EMISSION
        if ".on(" in context or "addeventlistener" in context:
            return DataFlowType.EVENT_HANDLING
        if target.role == DataNodeRole.STORE:
            return DataFlowType.STATE_MUTATION
        if RETURN_STATEMENT.match(context):
            return DataFlowType.RETURN
        assignment = ASSIGNMENT.match(context)
        if assignment and "(" in assignment.group(1):
            return DataFlowType.ASSIGNMENT

        name = re.escape(target.name.lower())
        if re.search(rf"\([^)]*\b{name}\b(?!\s*\()", context):
            return DataFlowType.PARAMETER
        if re.search(rf"\.{name}\b(?!\s*\()", context):
            return DataFlowType.PROPERTY_ACCESS
        return DataFlowType.METHOD_CALL

    def _discover_paths(self, graph: DataFlowGraph, options: DataFlowOptions) -> List[DataFlowPath]:
        """Chains from entry sources to sinks or dead ends, up to ``max_depth`` nodes."""
        digraph = nx.DiGraph()
        digraph.add_nodes_from(sorted(graph.nodes))
        best: Dict[Tuple[str, str], DataFlow] = {}
        for flow in graph.flows:
            key = (flow.source_id, flow.target_id)
            if flow.source_id == flow.target_id:
                continue
            if key not in best or flow.confidence > best[key].confidence:
                best[key] = flow
        for (source_id, target_id) in sorted(best):
            digraph.add_edge(source_id, target_id)

        entries = [
            node_id for node_id in sorted(graph.nodes)
            if graph.nodes[node_id].role == DataNodeRole.SOURCE and digraph.in_degree(node_id) == 0
        ]
        exits = {
            node_id for node_id in digraph.nodes
            if graph.nodes[node_id].role == DataNodeRole.SINK or digraph.out_degree(node_id) == 0
        }

        cutoff = max(1, options.max_depth - 1)
        paths = []
        seen = set()
        for entry in entries:
            targets = exits - {entry}
            if not targets:
                continue
            for node_path in nx.all_simple_paths(digraph, entry, targets, cutoff=cutoff):
                key = tuple(node_path)
                if key in seen:
                    continue
                seen.add(key)
                flows = [best[(node_path[i], node_path[i + 1])] for i in range(len(node_path) - 1)]
                paths.append(self._make_path(graph, node_path, flows))

        paths.sort(key=lambda p: (-p.confidence, p.name, p.id))
        return paths

    @staticmethod
    def _make_path(graph: DataFlowGraph, node_path: List[str], flows: List[DataFlow]) -> DataFlowPath:
        entry = graph.nodes[node_path[0]]
        exit_node = graph.nodes[node_path[-1]]

        average = sum(flow.confidence for flow in flows) / len(flows)
        penalty = max(0.0, (len(flows) - 2) * 0.03)
        confidence = max(0.5, min(0.95, average - penalty))

        description = (
            f"Data flows from {entry.name} ({entry.role.value}) to {exit_node.name} ({exit_node.role.value})"
        )
        if len(node_path) > 2:
            description += f" through {len(node_path) - 2} intermediate steps"
        transformations = [t for flow in flows for t in flow.transformations]
        if transformations:
            description += f" with {', '.join(transformations)} transformations"

        return DataFlowPath(
            id=stable_id("path:" + "->".join(node_path)),
            name=f"{entry.name} to {exit_node.name}",
            description=description,
            node_ids=list(node_path),
            flow_ids=[flow.id for flow in flows],
            entry_points=[node_path[0]],
            exit_points=[node_path[-1]],
            confidence=confidence,
        )
