"""Analysis options, significance thresholds and environment configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ClusteringAlgorithm, ClusteringMetric

# Directory names never analyzed, wherever they appear in a path
DEFAULT_EXCLUDES = {
    "node_modules",
    ".git",
    "__pycache__",
    ".pytest_cache",
    "venv",
    ".venv",
    "dist",
    "build",
    ".next",
    ".nuxt",
    "vendor",
    "coverage",
    ".idea",
    ".vscode",
    ".mypy_cache",
    ".tox",
}

# Extensions skipped at discovery because their content is not text
BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp", ".pdf",
    ".zip", ".gz", ".tar", ".tgz", ".bz2", ".7z", ".jar", ".class",
    ".so", ".dll", ".dylib", ".exe", ".o", ".a", ".pyc", ".pyo",
    ".woff", ".woff2", ".ttf", ".eot", ".otf", ".mp3", ".mp4", ".wav",
    ".mov", ".avi", ".sqlite", ".db",
}

TEST_DIRECTORY_NAMES = {"test", "tests", "__tests__", "spec"}


@dataclass
class AnalysisThresholds:
    """Significance constants used across analyzers."""

    ambiguity_discount: float = 0.9
    unresolved_discount: float = 0.5
    import_confidence: float = 0.7
    inheritance_confidence: float = 0.8
    call_confidence: float = 0.8
    naming_share: float = 0.30
    affix_share: float = 0.10
    affix_floor: int = 3
    structural_floor: int = 3
    feature_directory_floor: int = 3
    layered_one_way_share: float = 0.6
    concept_share: float = 0.05
    concept_floor: int = 3
    concept_jaccard: float = 0.3
    unit_overlap: float = 0.5
    unit_seed_floor: int = 3
    common_import_floor: int = 3
    common_name_pattern_floor: int = 3
    common_base_floor: int = 2


@dataclass
class ClusterOptions:
    algorithm: ClusteringAlgorithm = ClusteringAlgorithm.HIERARCHICAL
    metrics: List[ClusteringMetric] = field(
        default_factory=lambda: [
            ClusteringMetric.NAMING_PATTERN,
            ClusteringMetric.STRUCTURAL_SIMILARITY,
            ClusteringMetric.RELATIONSHIP_GRAPH,
        ]
    )
    min_similarity: float = 0.6
    max_clusters: int = 50


@dataclass
class DataFlowOptions:
    max_depth: int = 5
    include_async_flows: bool = True
    include_conditional_flows: bool = True
    min_confidence: float = 0.6


@dataclass
class AnalysisOptions:
    """Caller-facing options for analyze/update."""

    max_depth: Optional[int] = None
    exclude: List[str] = field(default_factory=list)
    follow_gitignore: bool = True
    semantic_analysis: bool = True
    include_tests: bool = True
    include_async_flows: bool = True
    include_conditional_flows: bool = True
    data_flow_min_confidence: float = 0.6
    data_flow: bool = True
    cluster: Optional[ClusterOptions] = field(default_factory=ClusterOptions)
    batch_size: int = 100
    max_file_size: int = 1024 * 1024
    target_files: Optional[List[str]] = None
    analyzers_to_run: Optional[List[str]] = None
    thresholds: AnalysisThresholds = field(default_factory=AnalysisThresholds)

    def data_flow_options(self) -> DataFlowOptions:
        return DataFlowOptions(
            include_async_flows=self.include_async_flows,
            include_conditional_flows=self.include_conditional_flows,
            min_confidence=self.data_flow_min_confidence,
        )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def get_env_config() -> Dict[str, Any]:
    """Get configuration from environment variables."""
    max_depth = os.getenv("MAX_DEPTH")
    exclude = os.getenv("EXCLUDE_PATTERNS", "")
    return {
        "workspace_path": Path(os.getenv("WORKSPACE_PATH", "/workspace")),
        "output_path": Path(os.getenv("OUTPUT_PATH", "/index/understanding.json")),
        "exclude_patterns": [p.strip() for p in exclude.split(",") if p.strip()],
        "max_depth": int(max_depth) if max_depth else None,
        "incremental": _env_flag("INCREMENTAL", "true"),
        "semantic_analysis": _env_flag("SEMANTIC_ANALYSIS", "true"),
        "include_tests": _env_flag("INCLUDE_TESTS", "true"),
        "batch_size": int(os.getenv("BATCH_SIZE", "100")),
        "cluster_algorithm": os.getenv("CLUSTER_ALGORITHM", "hierarchical").lower(),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
    }


def options_from_env(env_config: Dict[str, Any]) -> AnalysisOptions:
    """Build analysis options from ``get_env_config()`` output."""
    algorithm = ClusteringAlgorithm(env_config["cluster_algorithm"])
    return AnalysisOptions(
        max_depth=env_config["max_depth"],
        exclude=list(env_config["exclude_patterns"]),
        semantic_analysis=env_config["semantic_analysis"],
        include_tests=env_config["include_tests"],
        batch_size=env_config["batch_size"],
        cluster=ClusterOptions(algorithm=algorithm),
    )
