"""Containment, import, inheritance and similarity relationships.

Relationships are built in three passes. During content analysis each file
yields containment edges plus speculative import and inheritance
candidates found by regex. At relationship mapping the candidates are
resolved against the global file and class index, and files sharing a
naming pattern or a directory are linked as similar.
"""

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..context import SharedAnalysisContext
from ..models import (
    CodeNodeType,
    FileNode,
    IndexingPhase,
    PatternDefinition,
    Relationship,
    RelationshipMetadata,
    RelationshipType,
    Resolved,
    Unresolved,
    directory_id,
    file_id,
    relationship_id,
)
from ..naming import extract_name_pattern, name_pattern_regex
from .base import Analyzer

logger = logging.getLogger(__name__)

ES_IMPORT = re.compile(
    r"\bimport\s+(?:type\s+)?(?P<names>\{[^}]+\}|[^;\n]+?)\s+from\s+['\"](?P<path>[^'\"]+)['\"]"
)
SIDE_EFFECT_IMPORT = re.compile(r"^\s*import\s+['\"](?P<path>[^'\"]+)['\"]", re.MULTILINE)
EXPORT_FROM = re.compile(
    r"\bexport\s+(?:type\s+)?(?P<names>\*(?:\s+as\s+\w+)?|\{[^}]*\})\s+from\s+['\"](?P<path>[^'\"]+)['\"]"
)
REQUIRE_CALL = re.compile(r"require\s*\(\s*['\"](?P<path>[^'\"]+)['\"]\s*\)")
IMPORTED_NAME = re.compile(r"^[\w$]+$")
PYTHON_IMPORT = re.compile(r"^[ \t]*(?:from\s+(\S+)\s+)?import\s+([^\n#]+)", re.MULTILINE)
PYTHON_MODULE_NAME = re.compile(r"^[\w.]+$")

EXTENDS_DECLARATION = re.compile(r"\b(class|interface)\s+(\w+)(?:\s+extends\s+([^\s{]+))?")
IMPLEMENTS_DECLARATION = re.compile(r"\bclass\s+(\w+)(?:\s+extends\s+[^\s{]+)?(?:\s+implements\s+([^{]+))?")
PYTHON_CLASS = re.compile(r"^\s*class\s+(\w+)\s*\(([^)]*)\)", re.MULTILINE)

SCRIPT_LANGUAGES = {"javascript", "typescript"}

# Tried in order when resolving an import specifier to a file
SOURCE_EXTENSIONS = [".js", ".ts", ".jsx", ".tsx", ".json", ".mjs", ".cjs", ".py"]
INDEX_FORMS = ["/index.js", "/index.ts", "/index.jsx", "/index.tsx", "/__init__.py"]

INHERITABLE_TYPES = {CodeNodeType.CLASS, CodeNodeType.INTERFACE}


@dataclass
class ImportCandidate:
    path: str
    import_path: str
    import_type: str
    line: int
    names: List[str] = field(default_factory=list)


@dataclass
class InheritanceCandidate:
    path: str
    class_name: str
    base_name: str
    type: RelationshipType


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def python_import_to_path(module: Optional[str], name: str) -> str:
    """Convert a Python import to a slash-separated specifier.

    ``from ..core import x`` becomes ``../core``; ``from . import views``
    becomes ``./views``; ``import pkg.mod`` becomes ``pkg/mod``.
    """
    target = module if module else name
    dots = len(target) - len(target.lstrip("."))
    rest = target[dots:].replace(".", "/")
    if dots == 0:
        return rest
    if not rest:
        rest = name.split(".")[0]
    prefix = "./" if dots == 1 else "../" * (dots - 1)
    return f"{prefix}{rest}"


def python_import_paths(module: Optional[str], names: str) -> List[str]:
    """Specifiers named by one Python import statement.

    ``import a, b as c`` names two modules, ``from pkg import x, y`` names
    ``pkg`` once and ``from . import views, models`` names each sibling.
    """
    if module and module.strip("."):
        return [python_import_to_path(module, "")]

    paths = []
    for part in names.strip().strip("()\\").split(","):
        name = part.strip().split(" as ")[0].strip()
        if not PYTHON_MODULE_NAME.match(name):
            continue
        import_path = python_import_to_path(module, name)
        if import_path and import_path not in paths:
            paths.append(import_path)
    return paths


def python_imported_names(module: Optional[str], names: str) -> List[str]:
    """Bindings pulled out of a module by ``from pkg import a, b``.

    Plain ``import x`` and relative sibling imports bind modules rather than
    names, so they yield nothing.
    """
    if not module or not module.strip("."):
        return []
    imported = []
    for part in names.strip().strip("()\\").split(","):
        name = part.strip().split(" as ")[0].strip()
        if name.isidentifier() and name not in imported:
            imported.append(name)
    return imported


def script_imported_names(clause: Optional[str]) -> List[str]:
    """Names bound by an ES import or re-export clause.

    ``React, { useState as useLocal }`` yields ``React`` and ``useState``;
    namespace forms such as ``* as api`` bind no single exported name.
    """
    if not clause:
        return []
    imported = []
    for part in re.split(r"[{},]", clause):
        part = part.strip()
        if not part or part.startswith("*"):
            continue
        name = part.split(" as ")[0].strip()
        if name.startswith("type "):
            name = name[5:].strip()
        if IMPORTED_NAME.match(name) and name not in imported:
            imported.append(name)
    return imported


def _base_name(reference: str) -> str:
    """Last dotted segment of a type reference, generics stripped."""
    match = re.match(r"[\w.$]+", reference.strip())
    if not match:
        return ""
    return match.group(0).rsplit(".", 1)[-1]


class RelationshipAnalyzer(Analyzer):
    """Builds the relationship graph between directories, files and code nodes."""

    id = "relationship-analyzer"
    name = "Relationship Analyzer"
    priority = 40
    dependencies = ["code-structure"]

    def __init__(self):
        self._containment: Dict[str, Relationship] = {}
        self._imports: List[ImportCandidate] = []
        self._inheritance: List[InheritanceCandidate] = []
        self._name_patterns: Dict[str, List[str]] = {}
        self._directory_extensions: Dict[str, List[str]] = {}
        self._resolved_inheritance: List[Relationship] = []

    def initialize(self, context: SharedAnalysisContext) -> None:
        self.cleanup()

    # Candidate generation

    def analyze_file(self, file: FileNode, content: str, context: SharedAnalysisContext) -> None:
        self._add_directory_containment(file)

        stem = file.name[: -len(file.extension)] if file.extension else file.name
        pattern = extract_name_pattern(stem)
        file.metadata.name_pattern = pattern
        self._name_patterns.setdefault(pattern, []).append(file.path)
        key = f"{file.directory}|{file.extension}"
        self._directory_extensions.setdefault(key, []).append(file.path)

        if not content.strip():
            return
        self._detect_imports(file, content)
        self._detect_inheritance(file, content)

    def _add_containment(self, source_id: str, target_id: str, containment_type: str) -> None:
        rel_id = relationship_id(RelationshipType.CONTAINS, source_id, target_id)
        if rel_id in self._containment:
            return
        self._containment[rel_id] = Relationship(
            id=rel_id,
            type=RelationshipType.CONTAINS,
            source_id=source_id,
            target=Resolved(target_id),
            weight=1.0,
            confidence=1.0,
            metadata=RelationshipMetadata(containment_type=containment_type),
        )

    def _add_directory_containment(self, file: FileNode) -> None:
        directory = file.directory
        self._add_containment(directory_id(directory), file.id, "directory_file")
        while directory != ".":
            parent = posixpath.dirname(directory) or "."
            self._add_containment(directory_id(parent), directory_id(directory), "directory_directory")
            directory = parent

    def _detect_imports(self, file: FileNode, content: str) -> None:
        if file.language in SCRIPT_LANGUAGES:
            script_imports = (
                (ES_IMPORT, "es_import"),
                (SIDE_EFFECT_IMPORT, "side_effect_import"),
                (EXPORT_FROM, "re_export"),
                (REQUIRE_CALL, "require"),
            )
            for regex, import_type in script_imports:
                for match in regex.finditer(content):
                    self._imports.append(
                        ImportCandidate(
                            path=file.path,
                            import_path=match.group("path"),
                            import_type=import_type,
                            line=_line_of(content, match.start()),
                            names=script_imported_names(match.groupdict().get("names")),
                        )
                    )
        elif file.language == "python":
            for match in PYTHON_IMPORT.finditer(content):
                line = _line_of(content, match.start())
                names = python_imported_names(match.group(1), match.group(2))
                for import_path in python_import_paths(match.group(1), match.group(2)):
                    self._imports.append(
                        ImportCandidate(
                            path=file.path,
                            import_path=import_path,
                            import_type="python_import",
                            line=line,
                            names=names,
                        )
                    )

    def _detect_inheritance(self, file: FileNode, content: str) -> None:
        if file.language == "python":
            for match in PYTHON_CLASS.finditer(content):
                for base in match.group(2).split(","):
                    base = base.strip()
                    if not base or "=" in base or base == "object":
                        continue
                    self._inheritance.append(
                        InheritanceCandidate(file.path, match.group(1), base, RelationshipType.EXTENDS)
                    )
            return

        for match in EXTENDS_DECLARATION.finditer(content):
            if match.group(3):
                self._inheritance.append(
                    InheritanceCandidate(file.path, match.group(2), match.group(3), RelationshipType.EXTENDS)
                )
        for match in IMPLEMENTS_DECLARATION.finditer(content):
            if not match.group(2):
                continue
            for interface in match.group(2).split(","):
                interface = interface.strip()
                if interface:
                    self._inheritance.append(
                        InheritanceCandidate(file.path, match.group(1), interface, RelationshipType.IMPLEMENTS)
                    )

    # Resolution

    def process_relationships(self, context: SharedAnalysisContext) -> None:
        if context.current_phase != IndexingPhase.RELATIONSHIP_MAPPING:
            return

        containment = self._code_containment(context)
        imports = self._resolve_imports(context)
        inheritance = self._resolve_inheritance(context)
        similarity = self._detect_similarity()
        self._resolved_inheritance = inheritance

        added = context.add_relationships(containment + imports + inheritance + similarity)

        context.record_metric("relationship_count", len(context.relationships))
        context.record_metric("containment_relationships", len(containment))
        context.record_metric("import_export_relationships", len(imports))
        context.record_metric("inheritance_relationships", len(inheritance))
        context.record_metric("similarity_relationships", len(similarity))
        context.record_event(
            "relationships-processed",
            {
                "containment": len(containment),
                "imports": len(imports),
                "inheritance": len(inheritance),
                "similarity": len(similarity),
            },
        )
        logger.info(
            f"Mapped {added} relationships: {len(containment)} containment, {len(imports)} imports, "
            f"{len(inheritance)} inheritance, {len(similarity)} similarity"
        )

    def _code_containment(self, context: SharedAnalysisContext) -> List[Relationship]:
        for node in context.code_nodes.values():
            if node.parent_id and node.parent_id in context.code_nodes:
                self._add_containment(node.parent_id, node.id, "code_code")
            else:
                self._add_containment(file_id(node.path), node.id, "file_code")
        return list(self._containment.values())

    def _resolve_imports(self, context: SharedAnalysisContext) -> List[Relationship]:
        thresholds = context.options.thresholds
        known_files = sorted(f.path for f in context.file_system.iter_files())
        known_set = set(known_files)

        relationships = []
        unresolved = 0
        for candidate in self._imports:
            targets = self.resolve_import_path(candidate.path, candidate.import_path, known_files, known_set)
            if not targets:
                unresolved += 1
                source_file = context.file_system.find_file(candidate.path)
                if source_file and candidate.import_path not in source_file.metadata.external_imports:
                    source_file.metadata.external_imports.append(candidate.import_path)
                continue

            ambiguous = len(targets) > 1
            confidence = thresholds.import_confidence
            if ambiguous:
                confidence *= thresholds.ambiguity_discount

            source_id = file_id(candidate.path)
            for target in targets:
                target_id = file_id(target)
                relationships.append(
                    Relationship(
                        id=relationship_id(RelationshipType.IMPORTS, source_id, target_id, candidate.import_path),
                        type=RelationshipType.IMPORTS,
                        source_id=source_id,
                        target=Resolved(target_id),
                        weight=1.0,
                        confidence=confidence,
                        metadata=RelationshipMetadata(
                            import_path=candidate.import_path,
                            import_type=candidate.import_type,
                            imported_names=list(candidate.names),
                            resolved_path=target,
                            line=candidate.line,
                            candidate_count=len(targets),
                            ambiguous=ambiguous,
                        ),
                    )
                )

        context.record_metric("unresolved_imports", unresolved)
        return relationships

    @staticmethod
    def resolve_import_path(
        source_path: str, import_path: str, known_files: List[str], known_set: Set[str]
    ) -> List[str]:
        """Resolve an import specifier to the known file paths it may denote.

        Args:
            source_path: Relative path of the importing file
            import_path: Specifier as written (``./util``, ``/lib/a``, ``lodash``)
            known_files: Sorted relative paths of every discovered file
            known_set: The same paths as a set

        Returns:
            Candidate file paths, deduplicated, in the order tried
        """

        def existing_forms(base: str) -> List[str]:
            base = "" if base == "." else base
            forms = [base] + [base + ext for ext in SOURCE_EXTENSIONS]
            forms += [(base + index).lstrip("/") for index in INDEX_FORMS]
            found = []
            for form in forms:
                if form and form in known_set and form not in found:
                    found.append(form)
            return found

        if import_path.startswith("/"):
            return existing_forms(posixpath.normpath(import_path.lstrip("/")))

        if import_path in (".", "..") or import_path.startswith(("./", "../")):
            directory = posixpath.dirname(source_path)
            base = posixpath.normpath(posixpath.join(directory, import_path))
            if base == ".." or base.startswith("../"):
                return []
            return existing_forms(base)

        found = existing_forms(f"node_modules/{import_path}")
        if found:
            return found

        suffixes = [f"{import_path}{ext}" for ext in SOURCE_EXTENSIONS]
        suffixes += [f"{import_path}{index}" for index in INDEX_FORMS]
        found = [
            path for path in known_files
            if any(path == suffix or path.endswith(f"/{suffix}") for suffix in suffixes)
        ]
        if found:
            return found

        basename = posixpath.basename(import_path)
        names = {f"{basename}{ext}" for ext in SOURCE_EXTENSIONS}
        return [path for path in known_files if posixpath.basename(path) in names]

    def _resolve_inheritance(self, context: SharedAnalysisContext) -> List[Relationship]:
        thresholds = context.options.thresholds
        by_name: Dict[str, List[str]] = {}
        for node in sorted(context.code_nodes.values(), key=lambda n: (n.path, n.location.start_line, n.id)):
            if node.type in INHERITABLE_TYPES:
                by_name.setdefault(node.name, []).append(node.id)

        relationships = []
        for candidate in self._inheritance:
            base = _base_name(candidate.base_name)
            if not base:
                continue

            source_id = self._class_node_id(context, candidate.path, candidate.class_name)
            targets = [target for target in by_name.get(base, []) if target != source_id]

            if not targets:
                relationships.append(
                    Relationship(
                        id=relationship_id(candidate.type, source_id, f"unresolved:{base}"),
                        type=candidate.type,
                        source_id=source_id,
                        target=Unresolved(base),
                        weight=1.0,
                        confidence=thresholds.inheritance_confidence * thresholds.unresolved_discount,
                        metadata=RelationshipMetadata(
                            source_name=candidate.class_name,
                            target_name=candidate.base_name,
                            unresolved=True,
                        ),
                    )
                )
                continue

            ambiguous = len(targets) > 1
            confidence = thresholds.inheritance_confidence
            if ambiguous:
                confidence *= thresholds.ambiguity_discount
            for target in targets:
                relationships.append(
                    Relationship(
                        id=relationship_id(candidate.type, source_id, target),
                        type=candidate.type,
                        source_id=source_id,
                        target=Resolved(target),
                        weight=1.0,
                        confidence=confidence,
                        metadata=RelationshipMetadata(
                            source_name=candidate.class_name,
                            target_name=candidate.base_name,
                            candidate_count=len(targets),
                            ambiguous=ambiguous,
                        ),
                    )
                )
        return relationships

    @staticmethod
    def _class_node_id(context: SharedAnalysisContext, path: str, class_name: str) -> str:
        for node in context.nodes_for_file(path):
            if node.name == class_name and node.type in INHERITABLE_TYPES:
                return node.id
        return f"{file_id(path)}#{class_name}"

    def _detect_similarity(self) -> List[Relationship]:
        relationships = []

        for pattern, paths in sorted(self._name_patterns.items()):
            if pattern == "*" or len(paths) < 2:
                continue
            relationships.extend(self._link_pairwise(sorted(paths), 0.8, 0.7, "name_pattern", pattern))

        for key, paths in sorted(self._directory_extensions.items()):
            if len(paths) < 2:
                continue
            relationships.extend(
                self._link_pairwise(sorted(paths), 0.7, 0.6, "same_directory_same_extension", None)
            )
        return relationships

    @staticmethod
    def _link_pairwise(
        paths: List[str], weight: float, confidence: float, reason: str, pattern: Optional[str]
    ) -> List[Relationship]:
        links = []
        for i, first in enumerate(paths):
            for second in paths[i + 1 :]:
                source_id, target_id = file_id(first), file_id(second)
                links.append(
                    Relationship(
                        id=relationship_id(RelationshipType.SIMILAR_TO, source_id, target_id, reason),
                        type=RelationshipType.SIMILAR_TO,
                        source_id=source_id,
                        target=Resolved(target_id),
                        weight=weight,
                        confidence=confidence,
                        metadata=RelationshipMetadata(reason=reason, name_pattern=pattern),
                    )
                )
        return links

    # Pattern registration

    def discover_patterns(self, context: SharedAnalysisContext) -> None:
        if context.current_phase != IndexingPhase.PATTERN_DISCOVERY:
            return

        thresholds = context.options.thresholds
        registered = 0

        import_counts: Dict[str, int] = {}
        for candidate in self._imports:
            import_counts[candidate.import_path] = import_counts.get(candidate.import_path, 0) + 1
        for import_path, count in sorted(import_counts.items()):
            if count >= thresholds.common_import_floor:
                context.register_pattern(
                    PatternDefinition(
                        id="",
                        type="import_pattern",
                        name=f"Common import: {import_path}",
                        regex=re.escape(import_path),
                        description=f"Files commonly import from {import_path} ({count} imports)",
                        confidence=0.8,
                    )
                )
                registered += 1

        for pattern, paths in sorted(self._name_patterns.items()):
            if pattern != "*" and len(paths) >= thresholds.common_name_pattern_floor:
                context.register_pattern(
                    PatternDefinition(
                        id="",
                        type="naming_pattern",
                        name=f"File pattern: {pattern}",
                        regex=name_pattern_regex(pattern),
                        description=f"{len(paths)} files follow the {pattern} naming pattern",
                        confidence=0.7,
                    )
                )
                registered += 1

        base_counts: Dict[tuple, int] = {}
        for rel in self._resolved_inheritance:
            if rel.is_resolved:
                key = (rel.type, rel.target_id)
                base_counts[key] = base_counts.get(key, 0) + 1
        for (rel_type, target_id), count in sorted(base_counts.items()):
            base_node = context.code_nodes.get(target_id)
            if base_node is None or count < thresholds.common_base_floor:
                continue
            label = "base class" if rel_type == RelationshipType.EXTENDS else "interface"
            keyword = "extends" if rel_type == RelationshipType.EXTENDS else "implements"
            context.register_pattern(
                PatternDefinition(
                    id="",
                    type="inheritance_pattern",
                    name=f"Common {label}: {base_node.name}",
                    regex=rf"\b{keyword}\s+{re.escape(base_node.name)}\b",
                    description=f"{count} classes {keyword} {base_node.name}",
                    confidence=0.8,
                )
            )
            registered += 1

        context.record_metric("relationship_patterns", registered)

    def integrate(self, context: SharedAnalysisContext) -> None:
        distribution: Dict[str, int] = {}
        for rel in context.relationships:
            distribution[rel.type.value] = distribution.get(rel.type.value, 0) + 1
        context.file_system.relationship_type_distribution = dict(sorted(distribution.items()))

    def cleanup(self) -> None:
        self._containment = {}
        self._imports = []
        self._inheritance = []
        self._name_patterns = {}
        self._directory_extensions = {}
        self._resolved_inheritance = []
