"""Data models for the codebase understanding."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Union

import blake3


class IndexingPhase(str, Enum):
    """Pipeline phases, in execution order."""

    INITIALIZATION = "initialization"
    DISCOVERY = "discovery"
    CONTENT_ANALYSIS = "content_analysis"
    RELATIONSHIP_MAPPING = "relationship_mapping"
    PATTERN_DISCOVERY = "pattern_discovery"
    INTEGRATION = "integration"
    CLEANUP = "cleanup"


PHASE_ORDER: List[IndexingPhase] = list(IndexingPhase)


class CodeNodeType(str, Enum):
    """Kinds of syntactic/semantic code elements."""

    NAMESPACE = "namespace"
    CLASS = "class"
    INTERFACE = "interface"
    FUNCTION = "function"
    METHOD = "method"
    PROPERTY = "property"
    VARIABLE = "variable"
    CONSTANT = "constant"
    ENUM = "enum"
    TYPE = "type"
    IMPORT = "import"
    EXPORT = "export"
    MODULE = "module"
    TEST = "test"
    COMMENT = "comment"
    UNKNOWN = "unknown"


class RelationshipType(str, Enum):
    """Typed directed edges between entities."""

    CONTAINS = "contains"
    IMPORTS = "imports"
    EXPORTS = "exports"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    CALLS = "calls"
    REFERENCES = "references"
    CREATES = "creates"
    USES = "uses"
    TESTS = "tests"
    SIMILAR_TO = "similar_to"
    DEPENDS_ON = "depends_on"


class DataFlowType(str, Enum):
    """Kinds of data movement between data-flow nodes."""

    ASSIGNMENT = "assignment"
    PARAMETER = "parameter"
    RETURN = "return"
    PROPERTY_ACCESS = "property_access"
    METHOD_CALL = "method_call"
    EVENT_EMISSION = "event_emission"
    EVENT_HANDLING = "event_handling"
    STATE_MUTATION = "state_mutation"
    IMPORT = "import"
    EXPORT = "export"


class DataNodeRole(str, Enum):
    """Role a code element plays in data flow."""

    SOURCE = "source"
    TRANSFORMER = "transformer"
    SINK = "sink"
    STORE = "store"


class ClusteringAlgorithm(str, Enum):
    """Partitioning algorithms supported by the clustering engine."""

    HIERARCHICAL = "hierarchical"
    DBSCAN = "dbscan"
    KMEANS = "kmeans"


class ClusteringMetric(str, Enum):
    """Similarity metrics combined into the clustering matrix."""

    NAMING_PATTERN = "naming_pattern"
    STRUCTURAL_SIMILARITY = "structural_similarity"
    RELATIONSHIP_GRAPH = "relationship_graph"
    SEMANTIC_SIMILARITY = "semantic_similarity"
    CONTENT_SIMILARITY = "content_similarity"


# File system


@dataclass
class FileMetadata:
    """Per-file facts recorded by analyzers."""

    name_pattern: Optional[str] = None
    header_patterns: List[str] = field(default_factory=list)
    paradigm_evidence: List[str] = field(default_factory=list)
    import_examples: List[str] = field(default_factory=list)
    structure_matches: List[str] = field(default_factory=list)
    external_imports: List[str] = field(default_factory=list)
    detection_method: Optional[str] = None


@dataclass
class FileNode:
    """A file in the analyzed tree. ``path`` is relative to the root, posix style."""

    path: str
    name: str
    extension: str
    content_hash: str
    size: int
    created: float
    modified: float
    language: Optional[str] = None
    metadata: FileMetadata = field(default_factory=FileMetadata)

    @property
    def id(self) -> str:
        return file_id(self.path)

    @property
    def directory(self) -> str:
        parent = self.path.rsplit("/", 1)[0] if "/" in self.path else "."
        return parent


@dataclass
class DirectoryNode:
    """A directory with its direct children."""

    path: str
    name: str
    children: List[Union["DirectoryNode", FileNode]] = field(default_factory=list)

    @property
    def id(self) -> str:
        return directory_id(self.path)

    def subdirectories(self) -> List["DirectoryNode"]:
        return [child for child in self.children if isinstance(child, DirectoryNode)]

    def files(self) -> List[FileNode]:
        return [child for child in self.children if isinstance(child, FileNode)]


@dataclass
class FileSystemTree:
    """Recursive directory/file structure of one codebase snapshot."""

    root: DirectoryNode
    file_count: int = 0
    directory_count: int = 0
    language_counts: Dict[str, int] = field(default_factory=dict)
    file_extensions: Dict[str, int] = field(default_factory=dict)
    total_size: int = 0
    relationship_type_distribution: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def empty(cls, root_name: str = ".") -> "FileSystemTree":
        return cls(root=DirectoryNode(path=".", name=root_name))

    def iter_files(self) -> Iterator[FileNode]:
        """Yield every file node, depth first in child order."""
        stack: List[DirectoryNode] = [self.root]
        while stack:
            directory = stack.pop()
            for child in directory.children:
                if isinstance(child, FileNode):
                    yield child
            stack.extend(reversed(directory.subdirectories()))

    def iter_directories(self) -> Iterator[DirectoryNode]:
        """Yield every directory node including the root."""
        stack: List[DirectoryNode] = [self.root]
        while stack:
            directory = stack.pop()
            yield directory
            stack.extend(reversed(directory.subdirectories()))

    def find_file(self, path: str) -> Optional[FileNode]:
        directory = self.find_directory(path.rsplit("/", 1)[0] if "/" in path else ".")
        if directory is None:
            return None
        for child in directory.files():
            if child.path == path:
                return child
        return None

    def find_directory(self, path: str) -> Optional[DirectoryNode]:
        if path in ("", "."):
            return self.root
        current = self.root
        walked = ""
        for part in path.split("/"):
            walked = f"{walked}/{part}" if walked else part
            match = None
            for child in current.subdirectories():
                if child.path == walked:
                    match = child
                    break
            if match is None:
                return None
            current = match
        return current

    def find_or_create_directory(self, path: str) -> DirectoryNode:
        """Return the directory at ``path``, creating any missing parents."""
        if path in ("", "."):
            return self.root
        current = self.root
        walked = ""
        for part in path.split("/"):
            walked = f"{walked}/{part}" if walked else part
            match = None
            for child in current.subdirectories():
                if child.path == walked:
                    match = child
                    break
            if match is None:
                match = DirectoryNode(path=walked, name=part)
                current.children.append(match)
                self.directory_count += 1
            current = match
        return current

    def add_file(self, file_node: FileNode) -> None:
        """Insert a file, replacing any existing node with the same path."""
        directory = self.find_or_create_directory(file_node.directory)
        for index, child in enumerate(directory.children):
            if isinstance(child, FileNode) and child.path == file_node.path:
                directory.children[index] = file_node
                return
        directory.children.append(file_node)
        self.file_count += 1
        self.total_size += file_node.size
        if file_node.extension:
            self.file_extensions[file_node.extension] = (
                self.file_extensions.get(file_node.extension, 0) + 1
            )

    def remove_file(self, path: str) -> Optional[FileNode]:
        """Detach a file node; its directories stay in place."""
        file_node = self.find_file(path)
        if file_node is None:
            return None
        directory = self.find_directory(file_node.directory)
        directory.children = [child for child in directory.children if child is not file_node]
        self.file_count -= 1
        self.total_size -= file_node.size
        if file_node.extension in self.file_extensions:
            self.file_extensions[file_node.extension] -= 1
            if self.file_extensions[file_node.extension] <= 0:
                del self.file_extensions[file_node.extension]
        return file_node


# Languages


@dataclass
class LanguageDetails:
    """Aggregate facts for one detected language."""

    name: str
    extensions: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    file_count: int = 0
    total_size: int = 0
    paradigms: List[str] = field(default_factory=list)


@dataclass
class LanguageStructure:
    """Language name to details, plus the single dominant language."""

    languages: Dict[str, LanguageDetails] = field(default_factory=dict)
    dominant: Optional[str] = None
    paradigms: Dict[str, int] = field(default_factory=dict)


# Code elements


@dataclass
class Location:
    """1-based line span, 0-based columns."""

    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass
class DataHints:
    """Structural hints about the data-flow role of a code element."""

    is_data_source: bool = False
    is_data_sink: bool = False
    is_data_transformer: bool = False
    is_data_store: bool = False


@dataclass
class NodeMetadata:
    """Typed metadata attached to every code node."""

    language: Optional[str] = None
    syntax_type: Optional[str] = None
    is_async: bool = False
    is_exported: bool = False
    parameter_count: int = 0
    data_hints: DataHints = field(default_factory=DataHints)


@dataclass
class CodeNode:
    """A syntactic element keyed by a stable id."""

    id: str
    name: str
    qualified_name: str
    type: CodeNodeType
    path: str
    location: Location
    content_hash: str
    parent_id: Optional[str] = None
    children_ids: List[str] = field(default_factory=list)
    confidence: float = 1.0
    metadata: NodeMetadata = field(default_factory=NodeMetadata)


# Relationships


@dataclass(frozen=True)
class Resolved:
    """Relationship endpoint matched to a concrete entity id."""

    id: str


@dataclass(frozen=True)
class Unresolved:
    """Relationship endpoint known only by name."""

    name: str


RelationshipTarget = Union[Resolved, Unresolved]

UNRESOLVED_PREFIX = "unresolved:"


@dataclass
class RelationshipMetadata:
    """Typed metadata for relationship edges."""

    containment_type: Optional[str] = None
    import_path: Optional[str] = None
    import_type: Optional[str] = None
    imported_names: List[str] = field(default_factory=list)
    resolved_path: Optional[str] = None
    source_name: Optional[str] = None
    target_name: Optional[str] = None
    reason: Optional[str] = None
    name_pattern: Optional[str] = None
    context: Optional[str] = None
    line: Optional[int] = None
    candidate_count: int = 1
    ambiguous: bool = False
    unresolved: bool = False


@dataclass
class Relationship:
    """Typed directed edge between two entity ids."""

    id: str
    type: RelationshipType
    source_id: str
    target: RelationshipTarget
    weight: float = 1.0
    confidence: float = 1.0
    metadata: RelationshipMetadata = field(default_factory=RelationshipMetadata)

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.target, Resolved)

    @property
    def target_id(self) -> str:
        """Concrete id, or the synthetic ``unresolved:<name>`` id."""
        if isinstance(self.target, Resolved):
            return self.target.id
        return f"{UNRESOLVED_PREFIX}{self.target.name}"


# Patterns, concepts and units


@dataclass
class PatternDefinition:
    """A named regex registered into the shared pattern registry."""

    id: str
    type: str
    name: str
    regex: str
    description: str = ""
    confidence: float = 0.8
    category: Optional[str] = None


@dataclass
class PatternMatch:
    """One match of a registered pattern against file content."""

    pattern_id: str
    match: str
    groups: List[Optional[str]]
    index: int
    confidence: float


@dataclass
class PatternInstance:
    node_id: str
    score: float = 1.0


@dataclass
class CodePattern:
    """A discovered regularity with its instances."""

    id: str
    type: str
    name: str
    description: str
    instances: List[PatternInstance] = field(default_factory=list)
    confidence: float = 0.0
    frequency: int = 0
    importance: float = 0.0
    signature: Optional[str] = None


@dataclass
class Concept:
    """A recurring identifier word linking the code nodes that contain it."""

    id: str
    name: str
    description: str
    code_node_ids: List[str] = field(default_factory=list)
    importance: float = 0.0
    confidence: float = 0.0
    related_concepts: List[str] = field(default_factory=list)


@dataclass
class SemanticProperties:
    cohesion: float = 0.0
    size: int = 0


@dataclass
class SemanticUnit:
    """A cohesive grouping of code nodes sharing concept membership."""

    id: str
    name: str
    type: str
    description: str
    code_node_ids: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)
    confidence: float = 0.7
    properties: SemanticProperties = field(default_factory=SemanticProperties)


@dataclass
class CodeCluster:
    """A similarity-based grouping of code nodes."""

    id: str
    name: str
    description: str
    node_ids: List[str] = field(default_factory=list)
    dominant_type: str = CodeNodeType.UNKNOWN.value
    naming_patterns: List[str] = field(default_factory=list)
    confidence: float = 0.7
    average_similarity: float = 0.0


# Data flow


@dataclass
class DataNode:
    id: str
    name: str
    node_id: str
    role: DataNodeRole
    confidence: float
    node_type: Optional[str] = None


@dataclass
class DataFlow:
    id: str
    type: DataFlowType
    source_id: str
    target_id: str
    confidence: float
    is_async: bool = False
    is_conditional: bool = False
    transformations: List[str] = field(default_factory=list)
    relationship_type: Optional[str] = None
    context: Optional[str] = None


@dataclass
class DataFlowPath:
    """An ordered chain of flows from entry to exit."""

    id: str
    name: str
    description: str
    node_ids: List[str] = field(default_factory=list)
    flow_ids: List[str] = field(default_factory=list)
    entry_points: List[str] = field(default_factory=list)
    exit_points: List[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class DataFlowGraph:
    nodes: Dict[str, DataNode] = field(default_factory=dict)
    flows: List[DataFlow] = field(default_factory=list)
    paths: List[DataFlowPath] = field(default_factory=list)


# Aggregate


@dataclass
class IndexingStats:
    """Summary counters returned with every analysis result."""

    files_indexed: int = 0
    failed_files: List[str] = field(default_factory=list)
    nodes_extracted: int = 0
    patterns_discovered: int = 0
    relationships_identified: int = 0
    concepts_extracted: int = 0
    semantic_units: int = 0
    clusters_found: int = 0
    data_flows_discovered: int = 0
    data_flow_paths_identified: int = 0
    time_taken_ms: float = 0.0
    memory_usage_bytes: int = 0


@dataclass
class CodebaseUnderstanding:
    """Aggregate root produced for one codebase snapshot."""

    id: str
    root_path: str
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    file_system: FileSystemTree = field(default_factory=FileSystemTree.empty)
    languages: LanguageStructure = field(default_factory=LanguageStructure)
    code_nodes: Dict[str, CodeNode] = field(default_factory=dict)
    relationships: List[Relationship] = field(default_factory=list)
    patterns: List[CodePattern] = field(default_factory=list)
    concepts: List[Concept] = field(default_factory=list)
    semantic_units: List[SemanticUnit] = field(default_factory=list)
    clusters: List[CodeCluster] = field(default_factory=list)
    data_flow: DataFlowGraph = field(default_factory=DataFlowGraph)
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass
class AnalysisResult:
    understanding: CodebaseUnderstanding
    stats: IndexingStats


def file_id(path: str) -> str:
    return f"file:{path}"


def directory_id(path: str) -> str:
    return f"directory:{path}"


def stable_id(text: str, length: int = 16) -> str:
    """Deterministic short id derived from ``text``."""
    return blake3.blake3(text.encode("utf-8")).hexdigest()[:length]


def relationship_id(
    rel_type: RelationshipType, source_id: str, target_id: str, discriminator: str = ""
) -> str:
    return stable_id(f"{rel_type.value}|{source_id}|{target_id}|{discriminator}")
