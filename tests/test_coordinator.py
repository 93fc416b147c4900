import pytest

from codebase_understanding.analyzers.base import Analyzer
from codebase_understanding.config import AnalysisOptions
from codebase_understanding.coordinator import (
    PipelineCoordinator,
    build_default_analyzers,
    order_analyzers,
)
from codebase_understanding.errors import AnalyzerConfigurationError, PhaseExecutionError
from codebase_understanding.grammars import LanguageRegistry
from codebase_understanding.models import IndexingPhase


class StubAnalyzer(Analyzer):
    """Analyzer recording every hook call, optionally failing in one."""

    def __init__(self, analyzer_id, priority=100, dependencies=None, fail_in=None, calls=None):
        self.id = analyzer_id
        self.name = analyzer_id
        self.priority = priority
        self.dependencies = dependencies or []
        self.fail_in = fail_in
        self.calls = calls if calls is not None else []
        self.phases = {}

    def _hook(self, hook, context=None):
        self.calls.append((self.id, hook))
        if context is not None:
            self.phases[hook] = context.current_phase
        if self.fail_in == hook:
            raise RuntimeError(f"{self.id} failed in {hook}")

    def initialize(self, context):
        self._hook("initialize", context)

    def analyze_file(self, file, content, context):
        self.calls.append((self.id, "analyze_file", file.path))
        self.phases["analyze_file"] = context.current_phase
        if self.fail_in == "analyze_file":
            raise ValueError("bad file")

    def process_relationships(self, context):
        self._hook("process_relationships", context)

    def discover_patterns(self, context):
        self._hook("discover_patterns", context)

    def integrate(self, context):
        self._hook("integrate", context)

    def cleanup(self):
        self._hook("cleanup")


class TestOrderAnalyzers:
    """Test dependency and priority ordering."""

    def test_dependencies_before_priority(self):
        """Test a dependency runs first even with a worse priority."""
        analyzers = [
            StubAnalyzer("a", priority=30),
            StubAnalyzer("b", priority=10, dependencies=["c"]),
            StubAnalyzer("c", priority=20),
        ]
        assert [a.id for a in order_analyzers(analyzers)] == ["c", "b", "a"]

    def test_ties_broken_by_id(self):
        """Test equal priorities order by id."""
        analyzers = [StubAnalyzer("zeta"), StubAnalyzer("alpha")]
        assert [a.id for a in order_analyzers(analyzers)] == ["alpha", "zeta"]

    def test_selected_pulls_in_dependencies(self):
        """Test selecting an analyzer also schedules what it depends on."""
        analyzers = [
            StubAnalyzer("a", priority=30),
            StubAnalyzer("b", priority=10, dependencies=["c"]),
            StubAnalyzer("c", priority=20),
        ]
        assert [a.id for a in order_analyzers(analyzers, ["b"])] == ["c", "b"]

    def test_cycle_rejected(self):
        """Test dependency cycles raise a configuration error."""
        analyzers = [StubAnalyzer("a", dependencies=["b"]), StubAnalyzer("b", dependencies=["a"])]
        with pytest.raises(AnalyzerConfigurationError, match="cycle"):
            order_analyzers(analyzers)

    def test_unknown_dependency_rejected(self):
        """Test a dependency on a missing analyzer raises."""
        with pytest.raises(AnalyzerConfigurationError, match="unknown analyzer 'ghost'"):
            order_analyzers([StubAnalyzer("a", dependencies=["ghost"])])

    def test_duplicate_id_rejected(self):
        """Test two analyzers with one id raise."""
        with pytest.raises(AnalyzerConfigurationError, match="Duplicate"):
            order_analyzers([StubAnalyzer("a"), StubAnalyzer("a")])

    def test_unknown_selection_rejected(self):
        """Test selecting an unregistered analyzer raises."""
        with pytest.raises(AnalyzerConfigurationError, match="ghost"):
            order_analyzers([StubAnalyzer("a")], ["ghost"])

    def test_default_analyzer_order(self):
        """Test the built-in analyzers run in their documented order."""
        ordered = order_analyzers(build_default_analyzers(LanguageRegistry()))
        assert [a.id for a in ordered] == [
            "language-detector",
            "code-structure",
            "pattern-analyzer",
            "relationship-analyzer",
            "semantic-analyzer",
        ]


class TestPipelineRun:
    """Test the phase pipeline with stub analyzers."""

    def test_hooks_called_once_per_phase(self, write_tree):
        """Test each hook runs in its own phase, analyze_file once per file."""
        root = write_tree({"a.py": "x = 1\n", "b.py": "y = 2\n"})
        calls = []
        first = StubAnalyzer("first", priority=1, calls=calls)
        second = StubAnalyzer("second", priority=2, calls=calls)

        coordinator = PipelineCoordinator(analyzers=[second, first])
        result = coordinator.run(root)

        assert calls == [
            ("first", "initialize"),
            ("second", "initialize"),
            ("first", "analyze_file", "a.py"),
            ("second", "analyze_file", "a.py"),
            ("first", "analyze_file", "b.py"),
            ("second", "analyze_file", "b.py"),
            ("first", "process_relationships"),
            ("second", "process_relationships"),
            ("first", "discover_patterns"),
            ("second", "discover_patterns"),
            ("first", "integrate"),
            ("second", "integrate"),
            ("first", "cleanup"),
            ("second", "cleanup"),
        ]
        assert first.phases == {
            "initialize": IndexingPhase.INITIALIZATION,
            "analyze_file": IndexingPhase.CONTENT_ANALYSIS,
            "process_relationships": IndexingPhase.RELATIONSHIP_MAPPING,
            "discover_patterns": IndexingPhase.PATTERN_DISCOVERY,
            "integrate": IndexingPhase.INTEGRATION,
        }
        assert coordinator.context.current_phase == IndexingPhase.CLEANUP
        assert coordinator.context.cached_file_count == 0
        assert result.stats.files_indexed == 2

    def test_batch_failure_aborts_run(self, write_tree):
        """Test a failing batch hook surfaces as PhaseExecutionError after cleanup."""
        root = write_tree({"a.py": "x = 1\n"})
        calls = []
        healthy = StubAnalyzer("healthy", priority=1, calls=calls)
        broken = StubAnalyzer("broken", priority=2, fail_in="process_relationships", calls=calls)

        with pytest.raises(PhaseExecutionError) as exc_info:
            PipelineCoordinator(analyzers=[healthy, broken]).run(root)

        error = exc_info.value
        assert error.phase == "relationship_mapping"
        assert error.analyzer_id == "broken"
        assert isinstance(error.cause, RuntimeError)
        assert ("healthy", "discover_patterns") not in calls
        assert ("healthy", "cleanup") in calls
        assert ("broken", "cleanup") in calls

    def test_file_failure_is_skipped(self, write_tree):
        """Test a per-file analyzer failure is recorded and the run continues."""
        root = write_tree({"a.py": "x = 1\n", "b.py": "y = 2\n"})
        calls = []
        broken = StubAnalyzer("broken", priority=1, fail_in="analyze_file", calls=calls)
        healthy = StubAnalyzer("healthy", priority=2, calls=calls)

        result = PipelineCoordinator(analyzers=[broken, healthy]).run(root)

        assert result.stats.failed_files == ["a.py", "b.py"]
        assert ("healthy", "analyze_file", "a.py") in calls
        assert ("healthy", "integrate") in calls

    def test_missing_root_fails_discovery(self, tmp_path):
        """Test a missing root aborts in the discovery phase."""
        with pytest.raises(PhaseExecutionError) as exc_info:
            PipelineCoordinator(analyzers=[StubAnalyzer("a")]).run(tmp_path / "missing")
        assert exc_info.value.phase == "discovery"


class TestFullAnalysis:
    """Test full runs with the built-in analyzers."""

    def test_stats_reported(self, write_tree, service):
        """Test statistics cover files, nodes and resources."""
        root = write_tree({
            "src/app.py": "def main():\n    return helper()\n\n\ndef helper():\n    return 1\n",
            "src/style.css": "body { color: red; }\n",
        })

        result = service.analyze(root)

        stats = result.stats
        assert stats.files_indexed == 2
        assert stats.nodes_extracted == 2
        assert stats.relationships_identified == len(result.understanding.relationships)
        assert stats.patterns_discovered == len(result.understanding.patterns)
        assert stats.time_taken_ms > 0
        assert stats.memory_usage_bytes > 0
        assert stats.failed_files == []

    def test_calls_resolved(self, write_tree, service):
        """Test a call to a function in the same file becomes a CALLS edge."""
        root = write_tree({"app.py": "def main():\n    return helper()\n\n\ndef helper():\n    return 1\n"})

        result = service.analyze(root)

        understanding = result.understanding
        calls = [rel for rel in understanding.relationships if rel.type.value == "calls"]
        assert len(calls) == 1
        assert understanding.code_nodes[calls[0].source_id].name == "main"
        assert understanding.code_nodes[calls[0].target_id].name == "helper"
        assert calls[0].confidence == pytest.approx(0.8)
        assert calls[0].metadata.context == "return helper()"

    def test_excluded_paths_absent(self, write_tree, service):
        """Test excluded files leave no file or code nodes behind."""
        root = write_tree({
            "src/app.py": "def main():\n    return 1\n",
            "generated/api/client.py": "def call_api():\n    return 1\n",
            "node_modules/lib/index.js": "function lib() {}\n",
        })

        result = service.analyze(root, AnalysisOptions(exclude=["generated/**"]))

        understanding = result.understanding
        paths = [f.path for f in understanding.file_system.iter_files()]
        assert paths == ["src/app.py"]
        assert {node.path for node in understanding.code_nodes.values()} == {"src/app.py"}
        for rel in understanding.relationships:
            assert "generated" not in rel.source_id
            assert "generated" not in rel.target_id

    def test_undecodable_file_dropped(self, write_tree, service):
        """Test a file that is not valid UTF-8 is skipped and removed from the tree."""
        root = write_tree({"good.py": "def ok():\n    return 1\n"})
        (root / "bad.py").write_bytes(b"def broken():\n    return '\xff\xfe'\n")

        result = service.analyze(root)

        assert result.stats.failed_files == ["bad.py"]
        assert result.understanding.file_system.find_file("bad.py") is None
        assert result.understanding.file_system.file_count == 1

    def test_analysis_is_idempotent(self, write_tree, service):
        """Test two runs on an unchanged tree agree on ids and confidences."""
        root = write_tree({
            "src/UserService.ts": "import { log } from './log';\n\nexport class UserService {\n  find() {\n    return log();\n  }\n}\n",
            "src/OrderService.ts": "import { log } from './log';\n\nexport class OrderService {\n}\n",
            "src/log.ts": "export function log() {\n  return 1;\n}\n",
        })

        first = service.analyze(root).understanding
        second = service.analyze(root).understanding

        assert first.id == second.id
        assert list(first.code_nodes) == list(second.code_nodes)
        assert {r.id: r.confidence for r in first.relationships} == {r.id: r.confidence for r in second.relationships}
        assert [(p.id, p.confidence) for p in first.patterns] == [(p.id, p.confidence) for p in second.patterns]
        assert [c.id for c in first.concepts] == [c.id for c in second.concepts]
        assert [c.id for c in first.clusters] == [c.id for c in second.clusters]

    def test_selected_analyzers_only(self, write_tree, service):
        """Test analyzers_to_run limits the pipeline to the chosen analyzers."""
        root = write_tree({"app.py": "def main():\n    return 1\n"})

        result = service.analyze(root, AnalysisOptions(analyzers_to_run=["language-detector"]))

        assert result.understanding.languages.dominant == "python"
        assert result.understanding.code_nodes == {}
