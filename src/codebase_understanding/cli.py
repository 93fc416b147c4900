"""Command-line entry point - analyzes a workspace and saves its understanding."""

import logging
import os
import sys

from .config import get_env_config, options_from_env
from .errors import StoreLoadError, UnderstandingError
from .service import UnderstandingService

logger = logging.getLogger(__name__)


def run() -> int:
    """Analyze ``WORKSPACE_PATH`` and write the understanding to ``OUTPUT_PATH``.

    Returns:
        Process exit code, 0 on success and 1 on failure
    """
    try:
        env_config = get_env_config()
        options = options_from_env(env_config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    workspace_path = env_config["workspace_path"]
    output_path = env_config["output_path"]
    incremental = env_config["incremental"]

    logger.info(f"Workspace path: {workspace_path}")
    logger.info(f"Output path: {output_path}")
    logger.info(f"Incremental: {incremental}")

    if not workspace_path.is_dir():
        logger.error(f"Workspace path does not exist: {workspace_path}")
        return 1

    service = UnderstandingService()

    try:
        existing = None
        if incremental:
            try:
                existing = service.load(output_path)
            except StoreLoadError as e:
                logger.warning(f"{e}; falling back to full analysis")

        if existing is not None:
            logger.info("Using incremental analysis mode")
            result = service.update(workspace_path, existing, options)
        else:
            logger.info("Using full analysis mode")
            result = service.analyze(workspace_path, options)

        service.save(result.understanding, output_path)
    except UnderstandingError as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        return 1
    except Exception as e:
        logger.error(f"Fatal error during analysis: {e}", exc_info=True)
        return 1

    stats = result.stats
    understanding = result.understanding
    logger.info("=" * 80)
    logger.info("Analysis Complete!")
    logger.info(f"Workspace: {workspace_path}")
    logger.info(f"Dominant language: {understanding.languages.dominant or 'none'}")
    logger.info(f"Files indexed: {stats.files_indexed}")
    logger.info(f"Code nodes: {stats.nodes_extracted}")
    logger.info(f"Relationships: {stats.relationships_identified}")
    logger.info(f"Patterns: {stats.patterns_discovered}")
    logger.info(f"Concepts: {stats.concepts_extracted}")
    logger.info(f"Semantic units: {stats.semantic_units}")
    logger.info(f"Clusters: {stats.clusters_found}")
    logger.info(f"Data flows: {stats.data_flows_discovered} ({stats.data_flow_paths_identified} paths)")
    logger.info(f"Time: {stats.time_taken_ms:.0f}ms, peak memory: {stats.memory_usage_bytes / 1024 / 1024:.1f}MB")
    logger.info(f"Failed files: {len(stats.failed_files)}")
    logger.info("=" * 80)

    if stats.failed_files:
        logger.warning(f"Failed to analyze {len(stats.failed_files)} files:")
        for failed_file in stats.failed_files:
            logger.warning(f"  - {failed_file}")

    return 0


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(run())


if __name__ == "__main__":
    main()
