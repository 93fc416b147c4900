"""File discovery: tree walk with exclusion globs, gitignore and test filtering."""

import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

from gitignore_parser import parse_gitignore

from .config import BINARY_EXTENSIONS, DEFAULT_EXCLUDES, TEST_DIRECTORY_NAMES, AnalysisOptions
from .hash_tracker import compute_file_hash
from .models import FileNode

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192


def load_gitignore(root_path: Path) -> Optional[Callable[[str], bool]]:
    """Build a matcher from the root ``.gitignore``.

    Args:
        root_path: Root of the analyzed tree

    Returns:
        Callable taking an absolute path, or None when there is no usable .gitignore
    """
    root = Path(root_path).resolve()
    gitignore_path = root / ".gitignore"
    if not gitignore_path.exists():
        return None

    try:
        matcher = parse_gitignore(gitignore_path, base_dir=str(root))
    except Exception as e:
        logger.warning(f"Error parsing .gitignore: {e}")
        return None
    logger.info(f"Loaded .gitignore from {gitignore_path}")
    return matcher


def matches_exclude(rel_path: str, pattern: str) -> bool:
    """Match a relative posix path against one exclusion glob."""
    if pattern.startswith("**/") and not pattern.endswith("/**") and matches_exclude(rel_path, pattern[3:]):
        # Leading **/ also matches zero directories: **/*.ts covers a.ts at the root
        return True
    if pattern.endswith("/**"):
        # Directory recursive: vendor/** matches vendor/anything/deep
        dir_prefix = pattern[:-3]
        if dir_prefix.startswith("**/"):
            name = dir_prefix[3:]
            return name in rel_path.split("/")[:-1]
        return rel_path.startswith(dir_prefix + "/") or rel_path == dir_prefix
    if pattern.endswith("/*"):
        # Directory single level: vendor/* matches vendor/file but not vendor/sub/file
        dir_prefix = pattern[:-2]
        if rel_path.startswith(dir_prefix + "/"):
            return "/" not in rel_path[len(dir_prefix) + 1:]
        return False
    if "*" in pattern or "?" in pattern or "[" in pattern:
        return PurePosixPath(rel_path).match(pattern) or fnmatch.fnmatch(rel_path, pattern)
    # Exact match or directory name
    return rel_path == pattern or rel_path.startswith(pattern + "/")


def is_test_path(rel_path: str) -> bool:
    """Check whether a path names a test file or lives in a test directory."""
    parts = rel_path.split("/")
    if any(part in TEST_DIRECTORY_NAMES for part in parts[:-1]):
        return True
    name = parts[-1]
    stem = name.split(".", 1)[0]
    return (
        name.startswith("test_")
        or stem.endswith("_test")
        or ".test." in name
        or ".spec." in name
    )


def _looks_binary(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return b"\x00" in f.read(BINARY_SNIFF_BYTES)
    except OSError:
        return True


class FileDiscovery:
    """Walks a root directory and yields the files an analysis run covers."""

    def __init__(self, root_path: Path, options: Optional[AnalysisOptions] = None):
        """Initialize discovery.

        Args:
            root_path: Root of the tree to walk
            options: Analysis options (exclusions, depth, test filter)
        """
        self.root_path = Path(root_path)
        self.resolved_root = self.root_path.resolve()
        self.options = options or AnalysisOptions()
        self.exclude_patterns = list(self.options.exclude)
        self.gitignore_matcher = load_gitignore(self.root_path) if self.options.follow_gitignore else None

    def is_excluded(self, rel_path: str) -> bool:
        if any(part in DEFAULT_EXCLUDES for part in rel_path.split("/")):
            return True
        return any(matches_exclude(rel_path, pattern) for pattern in self.exclude_patterns)

    def is_ignored(self, rel_path: str) -> bool:
        if self.gitignore_matcher is None:
            return False
        return self.gitignore_matcher(str(self.resolved_root / rel_path))

    def discover_paths(self) -> List[str]:
        """Relative posix paths of every included file, sorted."""
        if not self.root_path.is_dir():
            raise FileNotFoundError(f"Root path is not a directory: {self.root_path}")

        max_depth = self.options.max_depth
        selected = []
        skipped = 0

        for dirpath, dirnames, filenames in os.walk(self.root_path):
            rel_dir = Path(dirpath).relative_to(self.root_path).as_posix()
            depth = 0 if rel_dir == "." else rel_dir.count("/") + 1

            kept_dirs = []
            for dirname in sorted(dirnames):
                rel = dirname if rel_dir == "." else f"{rel_dir}/{dirname}"
                if self.is_excluded(rel):
                    continue
                if max_depth is not None and depth + 1 > max_depth:
                    continue
                kept_dirs.append(dirname)
            dirnames[:] = kept_dirs

            for filename in sorted(filenames):
                rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                if not self._should_include(rel):
                    skipped += 1
                    continue
                selected.append(rel)

        logger.info(f"Discovered {len(selected)} files ({skipped} skipped) under {self.root_path}")
        return sorted(selected)

    def _should_include(self, rel_path: str) -> bool:
        if rel_path == ".gitignore" or self.is_excluded(rel_path) or self.is_ignored(rel_path):
            return False
        if not self.options.include_tests and is_test_path(rel_path):
            return False

        full_path = self.root_path / rel_path
        if full_path.is_symlink() or not full_path.is_file():
            return False
        if full_path.suffix.lower() in BINARY_EXTENSIONS:
            return False
        try:
            size = full_path.stat().st_size
        except OSError as e:
            logger.warning(f"Cannot stat {rel_path}: {e}")
            return False
        if size > self.options.max_file_size:
            logger.debug(f"Skipping large file {rel_path} ({size} bytes)")
            return False
        return not _looks_binary(full_path)

    def build_file_node(self, rel_path: str) -> FileNode:
        full_path = self.root_path / rel_path
        stat = full_path.stat()
        name = full_path.name
        return FileNode(
            path=rel_path,
            name=name,
            extension=full_path.suffix,
            content_hash=compute_file_hash(full_path),
            size=stat.st_size,
            created=stat.st_ctime,
            modified=stat.st_mtime,
        )

    def discover(self) -> List[FileNode]:
        """File nodes for every included file, in path order."""
        return [self.build_file_node(rel_path) for rel_path in self.discover_paths()]
