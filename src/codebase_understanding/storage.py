"""JSON persistence for codebase understandings."""

import json
import logging
import os
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union

from .errors import StoreCorruptError, StoreNotFoundError, StoreWriteError
from .models import (
    CodebaseUnderstanding,
    CodeCluster,
    CodeNode,
    CodeNodeType,
    CodePattern,
    Concept,
    DataFlow,
    DataFlowGraph,
    DataFlowPath,
    DataFlowType,
    DataHints,
    DataNode,
    DataNodeRole,
    DirectoryNode,
    FileMetadata,
    FileNode,
    FileSystemTree,
    LanguageDetails,
    LanguageStructure,
    Location,
    NodeMetadata,
    PatternInstance,
    Relationship,
    RelationshipMetadata,
    RelationshipType,
    Resolved,
    SemanticProperties,
    SemanticUnit,
    Unresolved,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _dict_factory(items: List[tuple]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in items}


def _encode(obj: Any) -> Any:
    return asdict(obj, dict_factory=_dict_factory)


# Encoding


def _encode_tree_node(node: Union[DirectoryNode, FileNode]) -> Dict[str, Any]:
    if isinstance(node, DirectoryNode):
        return {
            "kind": "directory",
            "path": node.path,
            "name": node.name,
            "children": [_encode_tree_node(child) for child in node.children],
        }
    data = _encode(node)
    data["kind"] = "file"
    return data


def _encode_relationship(rel: Relationship) -> Dict[str, Any]:
    if isinstance(rel.target, Resolved):
        target = {"kind": "resolved", "id": rel.target.id}
    else:
        target = {"kind": "unresolved", "name": rel.target.name}
    return {
        "id": rel.id,
        "type": rel.type.value,
        "source_id": rel.source_id,
        "target": target,
        "weight": rel.weight,
        "confidence": rel.confidence,
        "metadata": _encode(rel.metadata),
    }


def understanding_to_dict(understanding: CodebaseUnderstanding) -> Dict[str, Any]:
    """Encode an understanding as JSON-ready data.

    Associative maps keyed by id or name are flattened to ordered
    ``[key, value]`` pairs.
    """
    tree = understanding.file_system
    return {
        "version": FORMAT_VERSION,
        "id": understanding.id,
        "root_path": understanding.root_path,
        "created_at": understanding.created_at,
        "updated_at": understanding.updated_at,
        "file_system": {
            "root": _encode_tree_node(tree.root),
            "file_count": tree.file_count,
            "directory_count": tree.directory_count,
            "language_counts": tree.language_counts,
            "file_extensions": tree.file_extensions,
            "total_size": tree.total_size,
            "relationship_type_distribution": tree.relationship_type_distribution,
        },
        "languages": {
            "languages": [[name, _encode(details)] for name, details in understanding.languages.languages.items()],
            "dominant": understanding.languages.dominant,
            "paradigms": understanding.languages.paradigms,
        },
        "code_nodes": [[node_id, _encode(node)] for node_id, node in understanding.code_nodes.items()],
        "relationships": [_encode_relationship(rel) for rel in understanding.relationships],
        "patterns": [_encode(pattern) for pattern in understanding.patterns],
        "concepts": [_encode(concept) for concept in understanding.concepts],
        "semantic_units": [_encode(unit) for unit in understanding.semantic_units],
        "clusters": [_encode(cluster) for cluster in understanding.clusters],
        "data_flow": {
            "nodes": [[node_id, _encode(node)] for node_id, node in understanding.data_flow.nodes.items()],
            "flows": [_encode(flow) for flow in understanding.data_flow.flows],
            "paths": [_encode(path) for path in understanding.data_flow.paths],
        },
        "metrics": understanding.metrics,
    }


# Decoding


def _decode_file(data: Dict[str, Any]) -> FileNode:
    return FileNode(
        path=data["path"],
        name=data["name"],
        extension=data["extension"],
        content_hash=data["content_hash"],
        size=data["size"],
        created=data["created"],
        modified=data["modified"],
        language=data.get("language"),
        metadata=FileMetadata(**data.get("metadata", {})),
    )


def _decode_tree_node(data: Dict[str, Any]) -> Union[DirectoryNode, FileNode]:
    if data["kind"] == "directory":
        return DirectoryNode(
            path=data["path"],
            name=data["name"],
            children=[_decode_tree_node(child) for child in data["children"]],
        )
    if data["kind"] == "file":
        return _decode_file(data)
    raise ValueError(f"Unknown tree node kind: {data['kind']}")


def _decode_code_node(data: Dict[str, Any]) -> CodeNode:
    metadata = dict(data.get("metadata", {}))
    hints = DataHints(**metadata.pop("data_hints", {}))
    return CodeNode(
        id=data["id"],
        name=data["name"],
        qualified_name=data["qualified_name"],
        type=CodeNodeType(data["type"]),
        path=data["path"],
        location=Location(**data["location"]),
        content_hash=data["content_hash"],
        parent_id=data.get("parent_id"),
        children_ids=list(data.get("children_ids", [])),
        confidence=data.get("confidence", 1.0),
        metadata=NodeMetadata(data_hints=hints, **metadata),
    )


def _decode_relationship(data: Dict[str, Any]) -> Relationship:
    target_data = data["target"]
    if target_data["kind"] == "resolved":
        target = Resolved(target_data["id"])
    elif target_data["kind"] == "unresolved":
        target = Unresolved(target_data["name"])
    else:
        raise ValueError(f"Unknown relationship target kind: {target_data['kind']}")
    return Relationship(
        id=data["id"],
        type=RelationshipType(data["type"]),
        source_id=data["source_id"],
        target=target,
        weight=data["weight"],
        confidence=data["confidence"],
        metadata=RelationshipMetadata(**data.get("metadata", {})),
    )


def _decode_pattern(data: Dict[str, Any]) -> CodePattern:
    fields = dict(data)
    fields["instances"] = [PatternInstance(**instance) for instance in data.get("instances", [])]
    return CodePattern(**fields)


def _decode_unit(data: Dict[str, Any]) -> SemanticUnit:
    fields = dict(data)
    fields["properties"] = SemanticProperties(**data.get("properties", {}))
    return SemanticUnit(**fields)


def _decode_data_flow(data: Dict[str, Any]) -> DataFlowGraph:
    nodes = {}
    for node_id, node in data.get("nodes", []):
        fields = dict(node)
        fields["role"] = DataNodeRole(node["role"])
        nodes[node_id] = DataNode(**fields)
    flows = []
    for flow in data.get("flows", []):
        fields = dict(flow)
        fields["type"] = DataFlowType(flow["type"])
        flows.append(DataFlow(**fields))
    paths = [DataFlowPath(**path) for path in data.get("paths", [])]
    return DataFlowGraph(nodes=nodes, flows=flows, paths=paths)


def understanding_from_dict(data: Dict[str, Any]) -> CodebaseUnderstanding:
    """Rebuild an understanding from ``understanding_to_dict`` output."""
    tree_data = data["file_system"]
    root = _decode_tree_node(tree_data["root"])
    if not isinstance(root, DirectoryNode):
        raise ValueError("File system root must be a directory")
    tree = FileSystemTree(
        root=root,
        file_count=tree_data["file_count"],
        directory_count=tree_data["directory_count"],
        language_counts=dict(tree_data.get("language_counts", {})),
        file_extensions=dict(tree_data.get("file_extensions", {})),
        total_size=tree_data.get("total_size", 0),
        relationship_type_distribution=dict(tree_data.get("relationship_type_distribution", {})),
    )

    language_data = data["languages"]
    languages = LanguageStructure(
        languages={name: LanguageDetails(**details) for name, details in language_data["languages"]},
        dominant=language_data.get("dominant"),
        paradigms=dict(language_data.get("paradigms", {})),
    )

    return CodebaseUnderstanding(
        id=data["id"],
        root_path=data["root_path"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
        file_system=tree,
        languages=languages,
        code_nodes={node_id: _decode_code_node(node) for node_id, node in data["code_nodes"]},
        relationships=[_decode_relationship(rel) for rel in data["relationships"]],
        patterns=[_decode_pattern(pattern) for pattern in data["patterns"]],
        concepts=[Concept(**concept) for concept in data["concepts"]],
        semantic_units=[_decode_unit(unit) for unit in data["semantic_units"]],
        clusters=[CodeCluster(**cluster) for cluster in data.get("clusters", [])],
        data_flow=_decode_data_flow(data.get("data_flow", {})),
        metrics=dict(data.get("metrics", {})),
    )


class UnderstandingStore:
    """Saves and loads understandings as JSON documents."""

    def save(self, understanding: CodebaseUnderstanding, path: Path) -> None:
        """Write an understanding, creating parent directories as needed.

        Raises:
            StoreWriteError: If the document cannot be written
        """
        path = Path(path)
        temp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = understanding_to_dict(understanding)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving understanding to {path}: {e}")
            raise StoreWriteError(str(path), str(e)) from e
        logger.info(f"Saved understanding {understanding.id} to {path}")

    def load(self, path: Path) -> CodebaseUnderstanding:
        """Read an understanding.

        Raises:
            StoreNotFoundError: If no document exists at ``path``
            StoreCorruptError: If the document is not valid JSON or has an unexpected shape
        """
        path = Path(path)
        if not path.exists():
            raise StoreNotFoundError(str(path))

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(str(path), f"invalid JSON: {e}") from e
        except UnicodeDecodeError as e:
            raise StoreCorruptError(str(path), f"not UTF-8 text: {e}") from e
        except OSError as e:
            raise StoreCorruptError(str(path), str(e)) from e

        if not isinstance(data, dict):
            raise StoreCorruptError(str(path), "document is not an object")
        version = data.get("version")
        if version != FORMAT_VERSION:
            raise StoreCorruptError(str(path), f"unsupported format version {version!r}")

        try:
            understanding = understanding_from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StoreCorruptError(str(path), f"unexpected shape: {e}") from e

        logger.info(f"Loaded understanding {understanding.id} from {path}")
        return understanding
