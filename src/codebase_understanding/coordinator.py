"""Pipeline coordinator: analyzer ordering and the phase state machine."""

import heapq
import logging
import time
import tracemalloc
from pathlib import Path
from typing import Dict, List, Optional

from .analyzers.base import Analyzer
from .analyzers.code_structure import CodeStructureAnalyzer
from .analyzers.language_detector import LanguageDetectorAnalyzer
from .analyzers.pattern_analyzer import PatternAnalyzer
from .analyzers.relationship_analyzer import RelationshipAnalyzer
from .analyzers.semantic_analyzer import SemanticAnalyzer
from .clustering import CodeClusteringEngine
from .config import AnalysisOptions
from .context import SharedAnalysisContext
from .data_flow import DataFlowConstructor
from .discovery import FileDiscovery
from .errors import AnalyzerConfigurationError, PhaseExecutionError
from .grammars import LanguageRegistry
from .models import (
    AnalysisResult,
    CodebaseUnderstanding,
    FileNode,
    IndexingPhase,
    IndexingStats,
    stable_id,
)
from .parsing import ParserManager

logger = logging.getLogger(__name__)


def build_default_analyzers(registry: LanguageRegistry) -> List[Analyzer]:
    """The standard analyzer set with a parser manager scoped to one run."""
    parser_manager = ParserManager(registry)
    return [
        LanguageDetectorAnalyzer(registry),
        CodeStructureAnalyzer(registry, parser_manager),
        PatternAnalyzer(),
        RelationshipAnalyzer(),
        SemanticAnalyzer(),
    ]


def stats_for(understanding: CodebaseUnderstanding) -> IndexingStats:
    """Counts of everything an understanding holds, with no run figures filled in."""
    return IndexingStats(
        nodes_extracted=len(understanding.code_nodes),
        patterns_discovered=len(understanding.patterns),
        relationships_identified=len(understanding.relationships),
        concepts_extracted=len(understanding.concepts),
        semantic_units=len(understanding.semantic_units),
        clusters_found=len(understanding.clusters),
        data_flows_discovered=len(understanding.data_flow.flows),
        data_flow_paths_identified=len(understanding.data_flow.paths),
    )


def order_analyzers(analyzers: List[Analyzer], selected: Optional[List[str]] = None) -> List[Analyzer]:
    """Order analyzers by dependencies, then ascending priority.

    Args:
        analyzers: Registered analyzers
        selected: Optional analyzer ids to run; their dependencies are pulled in

    Returns:
        Analyzers in execution order

    Raises:
        AnalyzerConfigurationError: On duplicate ids, unknown dependencies or cycles
    """
    by_id: Dict[str, Analyzer] = {}
    for analyzer in analyzers:
        if not analyzer.id:
            raise AnalyzerConfigurationError(f"Analyzer {analyzer!r} has no id")
        if analyzer.id in by_id:
            raise AnalyzerConfigurationError(f"Duplicate analyzer id '{analyzer.id}'")
        by_id[analyzer.id] = analyzer

    for analyzer in analyzers:
        for dependency in analyzer.dependencies:
            if dependency not in by_id:
                raise AnalyzerConfigurationError(
                    f"Analyzer '{analyzer.id}' depends on unknown analyzer '{dependency}'"
                )

    if selected is not None:
        unknown = [analyzer_id for analyzer_id in selected if analyzer_id not in by_id]
        if unknown:
            raise AnalyzerConfigurationError(f"Unknown analyzers requested: {', '.join(unknown)}")
        wanted = set()
        pending = list(selected)
        while pending:
            analyzer_id = pending.pop()
            if analyzer_id in wanted:
                continue
            wanted.add(analyzer_id)
            pending.extend(by_id[analyzer_id].dependencies)
        by_id = {analyzer_id: a for analyzer_id, a in by_id.items() if analyzer_id in wanted}

    remaining = {analyzer_id: set(a.dependencies) for analyzer_id, a in by_id.items()}
    ready = [(a.priority, analyzer_id) for analyzer_id, a in by_id.items() if not remaining[analyzer_id]]
    heapq.heapify(ready)

    ordered = []
    while ready:
        _, analyzer_id = heapq.heappop(ready)
        ordered.append(by_id[analyzer_id])
        del remaining[analyzer_id]
        for other_id, deps in remaining.items():
            if analyzer_id in deps:
                deps.discard(analyzer_id)
                if not deps:
                    heapq.heappush(ready, (by_id[other_id].priority, other_id))

    if remaining:
        raise AnalyzerConfigurationError(
            f"Dependency cycle between analyzers: {', '.join(sorted(remaining))}"
        )
    return ordered


class PipelineCoordinator:
    """Drives one analysis run through every phase.

    The coordinator is the only caller of ``advance_phase``. Per-file hook
    failures are logged and skipped; failures in batch phases abort the run
    with ``PhaseExecutionError``. Analyzer ``cleanup`` always runs.
    """

    def __init__(
        self,
        analyzers: Optional[List[Analyzer]] = None,
        registry: Optional[LanguageRegistry] = None,
        clustering: Optional[CodeClusteringEngine] = None,
        data_flow: Optional[DataFlowConstructor] = None,
    ):
        self.registry = registry or LanguageRegistry()
        self.analyzers = analyzers if analyzers is not None else build_default_analyzers(self.registry)
        self.clustering = clustering or CodeClusteringEngine()
        self.data_flow = data_flow or DataFlowConstructor()
        self.context: Optional[SharedAnalysisContext] = None

    def run(
        self,
        root_path: Path,
        options: Optional[AnalysisOptions] = None,
        previous: Optional[CodebaseUnderstanding] = None,
    ) -> AnalysisResult:
        """Analyze a tree.

        Args:
            root_path: Root directory of the codebase
            options: Analysis options
            previous: Prior understanding to reuse on incremental runs

        Returns:
            The assembled understanding and run statistics
        """
        root_path = Path(root_path).resolve()
        options = options or AnalysisOptions()
        ordered = order_analyzers(self.analyzers, options.analyzers_to_run)

        context = SharedAnalysisContext(root_path, options)
        context.previous_understanding = previous
        self.context = context

        started_tracing = not tracemalloc.is_tracing()
        if started_tracing:
            tracemalloc.start()
        tracemalloc.reset_peak()
        start_time = time.perf_counter()

        logger.info(f"Analyzing {root_path} with {len(ordered)} analyzers: {[a.id for a in ordered]}")
        try:
            self._run_batch_phase(ordered, "initialize", context)

            context.advance_phase(IndexingPhase.DISCOVERY)
            files = self._discover(root_path, options, context)

            context.advance_phase(IndexingPhase.CONTENT_ANALYSIS)
            self._analyze_content(ordered, files, context)

            context.advance_phase(IndexingPhase.RELATIONSHIP_MAPPING)
            self._run_batch_phase(ordered, "process_relationships", context)

            context.advance_phase(IndexingPhase.PATTERN_DISCOVERY)
            self._run_batch_phase(ordered, "discover_patterns", context)

            context.advance_phase(IndexingPhase.INTEGRATION)
            self._run_batch_phase(ordered, "integrate", context)
            understanding = self._assemble(context, previous)
            self._integrate_downstream(understanding, options, context)

            context.advance_phase(IndexingPhase.CLEANUP)
        finally:
            for analyzer in ordered:
                try:
                    analyzer.cleanup()
                except Exception as e:
                    logger.error(f"Cleanup failed for analyzer {analyzer.id}: {e}", exc_info=True)
            _, peak_memory = tracemalloc.get_traced_memory()
            if started_tracing:
                tracemalloc.stop()

        stats = stats_for(understanding)
        stats.files_indexed = len(context.processed_files)
        stats.failed_files = sorted(set(context.failed_files))
        stats.time_taken_ms = (time.perf_counter() - start_time) * 1000
        stats.memory_usage_bytes = peak_memory
        logger.info(
            f"Analysis complete: {stats.files_indexed} files, {stats.nodes_extracted} nodes, "
            f"{stats.relationships_identified} relationships, {stats.patterns_discovered} patterns "
            f"in {stats.time_taken_ms:.0f}ms"
        )
        return AnalysisResult(understanding=understanding, stats=stats)

    def _run_batch_phase(self, ordered: List[Analyzer], hook: str, context: SharedAnalysisContext) -> None:
        for analyzer in ordered:
            try:
                getattr(analyzer, hook)(context)
            except Exception as e:
                logger.error(
                    f"Analyzer {analyzer.id} failed during {context.current_phase.value}: {e}",
                    exc_info=True,
                )
                raise PhaseExecutionError(context.current_phase.value, analyzer.id, e) from e

    def _discover(
        self, root_path: Path, options: AnalysisOptions, context: SharedAnalysisContext
    ) -> List[FileNode]:
        discovery = FileDiscovery(root_path, options)
        try:
            files = discovery.discover()
        except OSError as e:
            raise PhaseExecutionError(IndexingPhase.DISCOVERY.value, None, e) from e

        for file_node in files:
            context.file_system.add_file(file_node)
        context.record_metric("discovered_files", len(files))
        return files

    def _analyze_content(
        self, ordered: List[Analyzer], files: List[FileNode], context: SharedAnalysisContext
    ) -> None:
        batch_size = max(1, context.options.batch_size)
        total = len(files)
        for batch_start in range(0, total, batch_size):
            batch = files[batch_start:batch_start + batch_size]
            for file_node in batch:
                self._analyze_file(ordered, file_node, context)
            context.request_memory_release()
            logger.info(f"Content analysis: {min(batch_start + batch_size, total)}/{total} files")

    def _analyze_file(self, ordered: List[Analyzer], file_node: FileNode, context: SharedAnalysisContext) -> None:
        try:
            with context.file_content(file_node.path) as content:
                for analyzer in ordered:
                    try:
                        analyzer.analyze_file(file_node, content, context)
                    except Exception as e:
                        logger.error(
                            f"Analyzer {analyzer.id} failed on {file_node.path}: {e}", exc_info=True
                        )
                        context.failed_files.append(file_node.path)
        except UnicodeDecodeError:
            logger.warning(f"Skipping undecodable file {file_node.path}")
            self._drop_file(file_node, context)
            return
        except OSError as e:
            logger.warning(f"Skipping unreadable file {file_node.path}: {e}")
            self._drop_file(file_node, context)
            return
        context.processed_files.add(file_node.path)

    @staticmethod
    def _drop_file(file_node: FileNode, context: SharedAnalysisContext) -> None:
        context.file_system.remove_file(file_node.path)
        context.failed_files.append(file_node.path)

    def _assemble(
        self, context: SharedAnalysisContext, previous: Optional[CodebaseUnderstanding]
    ) -> CodebaseUnderstanding:
        now = time.time()
        root = str(context.root_path)
        return CodebaseUnderstanding(
            id=previous.id if previous else stable_id(f"understanding:{root}"),
            root_path=root,
            created_at=previous.created_at if previous else now,
            updated_at=now,
            file_system=context.file_system,
            languages=context.languages,
            code_nodes=dict(sorted(context.code_nodes.items())),
            relationships=list(context.relationships),
            patterns=list(context.patterns),
            concepts=list(context.concepts),
            semantic_units=list(context.semantic_units),
            metrics=context.metrics,
        )

    def _integrate_downstream(
        self, understanding: CodebaseUnderstanding, options: AnalysisOptions, context: SharedAnalysisContext
    ) -> None:
        """Clustering and data-flow construction over the assembled understanding."""
        try:
            if options.cluster is not None:
                understanding.clusters = self.clustering.cluster(understanding, options.cluster)
            if options.data_flow:
                understanding.data_flow = self.data_flow.build(understanding, options.data_flow_options())
        except Exception as e:
            logger.error(f"Integration failed: {e}", exc_info=True)
            raise PhaseExecutionError(IndexingPhase.INTEGRATION.value, None, e) from e

        context.record_metric("cluster_count", len(understanding.clusters))
        context.record_metric("data_flow_count", len(understanding.data_flow.flows))
        context.record_metric("data_flow_path_count", len(understanding.data_flow.paths))
