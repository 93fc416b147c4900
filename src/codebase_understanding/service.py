"""Caller-facing API for building and maintaining codebase understandings."""

import dataclasses
import logging
import time
from pathlib import Path
from typing import List, Optional

from .clustering import CodeClusteringEngine
from .config import AnalysisOptions, ClusterOptions, DataFlowOptions
from .coordinator import PipelineCoordinator, build_default_analyzers, stats_for
from .data_flow import DataFlowConstructor
from .discovery import FileDiscovery
from .grammars import LanguageRegistry
from .hash_tracker import HashTracker
from .models import AnalysisResult, CodebaseUnderstanding, CodeCluster, DataFlowGraph
from .storage import UnderstandingStore

logger = logging.getLogger(__name__)


class UnderstandingService:
    """Entry point wiring discovery, the analysis pipeline and the store."""

    def __init__(
        self,
        registry: Optional[LanguageRegistry] = None,
        store: Optional[UnderstandingStore] = None,
    ):
        self.registry = registry or LanguageRegistry()
        self.store = store or UnderstandingStore()
        self.clustering = CodeClusteringEngine()
        self.data_flow = DataFlowConstructor()

    def _coordinator(self) -> PipelineCoordinator:
        # Fresh analyzers and parser manager per run
        return PipelineCoordinator(
            analyzers=build_default_analyzers(self.registry),
            registry=self.registry,
            clustering=self.clustering,
            data_flow=self.data_flow,
        )

    def analyze(self, root_path: Path, options: Optional[AnalysisOptions] = None) -> AnalysisResult:
        """Run a full analysis of ``root_path``."""
        return self._coordinator().run(Path(root_path), options or AnalysisOptions())

    def update(
        self,
        root_path: Path,
        existing: CodebaseUnderstanding,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        """Bring an existing understanding up to date with the tree.

        Only added and modified files are parsed again; everything global is
        re-derived. An unchanged tree returns ``existing`` with a fresh
        ``updated_at``; its stats report the existing counts with no files indexed.
        """
        start_time = time.perf_counter()
        root_path = Path(root_path)
        options = options or AnalysisOptions()

        current_files = FileDiscovery(root_path, options).discover_paths()
        tracker = HashTracker(root_path, existing.file_system)
        plan = tracker.plan(current_files)

        if not plan.has_changes:
            existing.updated_at = time.time()
            logger.info("No changes detected, understanding is up to date")
            stats = stats_for(existing)
            stats.time_taken_ms = (time.perf_counter() - start_time) * 1000
            return AnalysisResult(understanding=existing, stats=stats)

        incremental = dataclasses.replace(options, target_files=plan.files_to_analyze)
        result = self._coordinator().run(root_path, incremental, previous=existing)
        result.understanding.metrics["cache_hit_rate"] = plan.get_cache_hit_rate()
        result.understanding.metrics["deleted_files"] = len(plan.deleted)
        return result

    def cluster(self, understanding: CodebaseUnderstanding, options: Optional[ClusterOptions] = None) -> List[CodeCluster]:
        return self.clustering.cluster(understanding, options or ClusterOptions())

    def analyze_data_flows(
        self, understanding: CodebaseUnderstanding, options: Optional[DataFlowOptions] = None
    ) -> DataFlowGraph:
        return self.data_flow.build(understanding, options or DataFlowOptions())

    def save(self, understanding: CodebaseUnderstanding, path: Path) -> None:
        self.store.save(understanding, Path(path))

    def load(self, path: Path) -> CodebaseUnderstanding:
        return self.store.load(Path(path))
