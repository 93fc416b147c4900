import pytest

from codebase_understanding.config import AnalysisOptions
from codebase_understanding.discovery import FileDiscovery, is_test_path, matches_exclude


class TestPatternMatching:
    """Test exclusion pattern semantics."""

    @pytest.mark.parametrize(
        "path, pattern, expected",
        [
            ("vendor/lib/a.js", "vendor/**", True),
            ("src/vendor/a.js", "vendor/**", False),
            ("src/generated/deep/a.py", "**/generated/**", True),
            ("vendor/a.js", "vendor/*", True),
            ("vendor/lib/a.js", "vendor/*", False),
            ("dist/app.min.js", "*.min.js", True),
            ("src/app.js", "*.min.js", False),
            ("a.ts", "**/*.ts", True),
            ("src/deep/a.ts", "**/*.ts", True),
            ("a.py", "**/*.ts", False),
            ("generated.py", "**/generated.py", True),
            ("docs/index.md", "docs", True),
            ("docsite/index.md", "docs", False),
        ],
    )
    def test_matches_exclude(self, path, pattern, expected):
        """Test exclusion globs."""
        assert matches_exclude(path, pattern) is expected

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("tests/helpers.py", True),
            ("src/__tests__/app.js", True),
            ("test_app.py", True),
            ("app_test.go", True),
            ("src/app.test.ts", True),
            ("src/app.spec.js", True),
            ("src/contest.py", False),
            ("src/latest.py", False),
        ],
    )
    def test_is_test_path(self, path, expected):
        """Test test file detection."""
        assert is_test_path(path) is expected


class TestFileDiscovery:
    """Test tree walking."""

    def test_default_excludes_and_binaries_skipped(self, write_tree):
        """Test dependency folders and binary files are never discovered."""
        root = write_tree({
            "src/app.py": "x = 1\n",
            "node_modules/pkg/index.js": "module.exports = 1;\n",
            ".git/config": "[core]\n",
            "assets/logo.png": "not really a png",
        })
        (root / "data.bin").write_bytes(b"\x00\x01\x02")

        assert FileDiscovery(root).discover_paths() == ["src/app.py"]

    def test_gitignore_respected(self, write_tree):
        """Test .gitignore rules and negations apply and .gitignore itself is skipped."""
        root = write_tree({
            ".gitignore": "# build output\n*.log\n/build_out/\n!keep.log\n",
            "keep.log": "kept\n",
            "src/app.py": "x = 1\n",
            "debug.log": "trace\n",
            "build_out/bundle.js": "x\n",
        })

        assert FileDiscovery(root).discover_paths() == ["keep.log", "src/app.py"]

        options = AnalysisOptions(follow_gitignore=False)
        assert FileDiscovery(root, options).discover_paths() == [
            "build_out/bundle.js",
            "debug.log",
            "keep.log",
            "src/app.py",
        ]

    def test_include_tests_toggle(self, write_tree):
        """Test test files are dropped when include_tests is off."""
        root = write_tree({
            "src/app.py": "x = 1\n",
            "tests/test_app.py": "def test_x():\n    pass\n",
            "src/app.spec.ts": "it('works', () => {});\n",
        })

        assert len(FileDiscovery(root).discover_paths()) == 3
        options = AnalysisOptions(include_tests=False)
        assert FileDiscovery(root, options).discover_paths() == ["src/app.py"]

    def test_max_depth(self, write_tree):
        """Test max_depth bounds directory nesting."""
        root = write_tree({
            "top.py": "x = 1\n",
            "a/mid.py": "x = 1\n",
            "a/b/deep.py": "x = 1\n",
        })

        assert FileDiscovery(root, AnalysisOptions(max_depth=0)).discover_paths() == ["top.py"]
        assert FileDiscovery(root, AnalysisOptions(max_depth=1)).discover_paths() == ["a/mid.py", "top.py"]
        assert len(FileDiscovery(root).discover_paths()) == 3

    def test_max_file_size(self, write_tree):
        """Test files above the size limit are skipped."""
        root = write_tree({"small.py": "x = 1\n", "large.py": "x = 1\n" * 100})

        options = AnalysisOptions(max_file_size=100)
        assert FileDiscovery(root, options).discover_paths() == ["small.py"]

    def test_file_nodes_carry_hash(self, write_tree):
        """Test discovered file nodes have content hashes and sizes."""
        root = write_tree({"src/app.py": "x = 1\n"})

        (file_node,) = FileDiscovery(root).discover()

        assert file_node.path == "src/app.py"
        assert file_node.id == "file:src/app.py"
        assert file_node.extension == ".py"
        assert file_node.size == 6
        assert len(file_node.content_hash) == 64

    def test_missing_root(self, tmp_path):
        """Test a missing root raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            FileDiscovery(tmp_path / "missing").discover_paths()

    def test_recursive_glob_excludes_root_files(self, write_tree):
        """Test a **/ exclusion also drops matching files at the root."""
        root = write_tree({"a.ts": "export const a = 1;\n", "src/b.ts": "export const b = 1;\n", "main.py": "x = 1\n"})

        options = AnalysisOptions(exclude=["**/*.ts"])
        assert FileDiscovery(root, options).discover_paths() == ["main.py"]
