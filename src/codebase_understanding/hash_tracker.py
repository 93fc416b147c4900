"""Content-hash change detection for incremental updates."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

import blake3

from .models import FileSystemTree

logger = logging.getLogger(__name__)


def compute_file_hash(file_path: Path) -> str:
    """Compute the Blake3 hash of a file's contents.

    Args:
        file_path: Path to the file

    Returns:
        Hexadecimal hash string, empty when the file cannot be read
    """
    try:
        with open(file_path, "rb") as f:
            return blake3.blake3(f.read()).hexdigest()
    except OSError as e:
        logger.error(f"Error computing hash for {file_path}: {e}")
        return ""


@dataclass
class ChangePlan:
    """Files grouped by how they differ from the stored snapshot."""

    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.deleted)

    @property
    def files_to_analyze(self) -> List[str]:
        return sorted(self.added + self.modified)

    def get_cache_hit_rate(self) -> float:
        """Share of current files reused from the snapshot, as a percentage."""
        total = len(self.added) + len(self.modified) + len(self.unchanged)
        if total == 0:
            return 0.0
        return (len(self.unchanged) / total) * 100


class HashTracker:
    """Compares a stored file-system snapshot with the current tree."""

    def __init__(self, root_path: Path, stored: FileSystemTree):
        """Initialize the tracker.

        Args:
            root_path: Root of the analyzed tree
            stored: File system snapshot from the previous understanding
        """
        self.root_path = Path(root_path)
        self.stored_hashes: Dict[str, str] = {
            file_node.path: file_node.content_hash for file_node in stored.iter_files()
        }

    def has_file_changed(self, relative_path: str) -> bool:
        """Check if a file is new or differs from its stored hash."""
        if relative_path not in self.stored_hashes:
            return True
        current_hash = compute_file_hash(self.root_path / relative_path)
        return current_hash != self.stored_hashes[relative_path]

    def plan(self, current_files: Iterable[str]) -> ChangePlan:
        """Plan which files need re-analysis.

        Args:
            current_files: Relative paths of every file discovered now

        Returns:
            Change plan with added, modified, deleted and unchanged files
        """
        plan = ChangePlan()
        current = sorted(set(current_files))
        for relative_path in current:
            if relative_path not in self.stored_hashes:
                plan.added.append(relative_path)
            elif self.has_file_changed(relative_path):
                plan.modified.append(relative_path)
            else:
                plan.unchanged.append(relative_path)

        current_set = set(current)
        plan.deleted = sorted(path for path in self.stored_hashes if path not in current_set)

        logger.info(
            f"Incremental update plan: {len(plan.added)} added, {len(plan.modified)} modified, "
            f"{len(plan.deleted)} deleted, {len(plan.unchanged)} cached "
            f"({plan.get_cache_hit_rate():.1f}% hit rate)"
        )
        return plan
