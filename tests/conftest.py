import logging
from pathlib import Path
from typing import Dict

import pytest

from codebase_understanding.models import (
    CodeNode,
    CodeNodeType,
    FileNode,
    Location,
    NodeMetadata,
)
from codebase_understanding.service import UnderstandingService


@pytest.fixture(autouse=True)
def quiet_logging(caplog):
    caplog.set_level(logging.WARNING)


@pytest.fixture
def write_tree(tmp_path):
    """Write ``{relative path: content}`` under a fresh workspace and return its root."""
    root = tmp_path / "workspace"
    root.mkdir()

    def _write(files: Dict[str, str]) -> Path:
        for rel_path, content in files.items():
            path = root / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def service():
    return UnderstandingService()


@pytest.fixture
def make_node():
    def _make(
        node_id: str,
        name: str,
        node_type: CodeNodeType = CodeNodeType.FUNCTION,
        path: str = "src/module.ts",
        lines: int = 10,
        syntax_type: str = "function_declaration",
    ) -> CodeNode:
        return CodeNode(
            id=node_id,
            name=name,
            qualified_name=name,
            type=node_type,
            path=path,
            location=Location(start_line=1, end_line=lines),
            content_hash=f"hash-{node_id}",
            metadata=NodeMetadata(language="typescript", syntax_type=syntax_type),
        )

    return _make


@pytest.fixture
def make_file():
    def _make(path: str, language: str = "typescript") -> FileNode:
        name = path.rsplit("/", 1)[-1]
        extension = "." + name.rsplit(".", 1)[1] if "." in name else ""
        return FileNode(
            path=path,
            name=name,
            extension=extension,
            content_hash="",
            size=0,
            created=0.0,
            modified=0.0,
            language=language,
        )

    return _make
