from codebase_understanding.analyzers.pattern_analyzer import PatternAnalyzer
from codebase_understanding.config import AnalysisOptions
from codebase_understanding.context import SharedAnalysisContext
from codebase_understanding.models import IndexingPhase


def discover_for_names(tmp_path, make_node, make_file, names):
    """Run the pattern analyzer over function nodes with the given names."""
    context = SharedAnalysisContext(tmp_path, AnalysisOptions())
    for index, name in enumerate(names):
        context.add_code_node(make_node(f"n{index:03d}", name, path="src/names.ts"))

    analyzer = PatternAnalyzer()
    analyzer.initialize(context)
    context.advance_phase(IndexingPhase.CONTENT_ANALYSIS)
    analyzer.analyze_file(make_file("src/names.ts"), "", context)
    context.advance_phase(IndexingPhase.PATTERN_DISCOVERY)
    analyzer.discover_patterns(context)
    return context


class TestNamingConvention:
    """Test dominant casing style detection."""

    def test_exactly_thirty_percent_is_not_emitted(self, tmp_path, make_node, make_file):
        """Test a dominant style at exactly 30% produces no convention pattern."""
        names = [
            "Alpha", "Bravo", "Charlie",
            "deltaEcho", "foxtrotGolf",
            "india_juliet", "kilo_lima",
            "MAX_SIZE", "MIN_SIZE",
            "$weird",
        ]
        context = discover_for_names(tmp_path, make_node, make_file, names)

        conventions = [p for p in context.patterns if p.name.endswith(" convention") and "fix" not in p.name]
        assert conventions == []

    def test_above_thirty_percent_is_emitted(self, tmp_path, make_node, make_file):
        """Test a dominant style above 30% produces a convention pattern."""
        names = [
            "Alpha", "Bravo", "Charlie", "Delta",
            "deltaEcho", "foxtrotGolf",
            "india_juliet", "kilo_lima",
            "MAX_SIZE", "MIN_SIZE",
        ]
        context = discover_for_names(tmp_path, make_node, make_file, names)

        convention = next(p for p in context.patterns if p.name == "PascalCase convention")
        assert convention.frequency == 4
        assert convention.confidence == 0.4
        assert convention.importance == 0.7

    def test_short_constants_count_as_all_caps(self, tmp_path, make_node, make_file):
        """Test capitalised abbreviations are ALL_CAPS rather than PascalCase."""
        names = ["MAX", "MIN", "HTTP", "Alpha"]
        context = discover_for_names(tmp_path, make_node, make_file, names)

        convention = next(p for p in context.patterns if p.name.endswith("convention") and "fix" not in p.name)
        assert convention.name == "ALL_CAPS convention"
        assert convention.frequency == 3


class TestAffixPatterns:
    """Test prefix and suffix conventions."""

    def test_prefix_grows_to_word(self, tmp_path, make_node, make_file):
        """Test a shared prefix is reported as its whole leading word."""
        names = ["handleClick", "handleSubmit", "handleChange", "renderList", "renderItem"]
        context = discover_for_names(tmp_path, make_node, make_file, names)

        prefixes = [p for p in context.patterns if p.signature and p.signature.startswith("prefix:")]
        assert [p.name for p in prefixes] == ["handle* prefix convention"]
        assert prefixes[0].frequency == 3

    def test_discovered_affix_is_registered(self, tmp_path, make_node, make_file):
        """Test discovered affixes are exposed as naming_convention patterns."""
        names = ["handleClick", "handleSubmit", "handleChange"]
        context = discover_for_names(tmp_path, make_node, make_file, names)

        registered = context.registered_patterns("naming_convention")
        assert [d.name for d in registered] == ["handle* prefix convention"]
        assert context.find_matching_patterns("handleResize()", "naming_convention")

    def test_below_significance_is_ignored(self, tmp_path, make_node, make_file):
        """Test an affix shared by fewer than three names is not a pattern."""
        context = discover_for_names(tmp_path, make_node, make_file, ["loadUser", "loadOrder"])
        assert not [p for p in context.patterns if p.signature and p.signature.startswith("prefix:")]


class TestServiceProject:
    """Test pattern discovery end to end on a small TypeScript project."""

    def test_single_service_suffix_pattern(self, write_tree, service):
        """Test six *Service classes among ten files yield one suffix pattern."""
        files = {}
        for name in ["User", "Order", "Payment", "Email", "Auth", "Cache"]:
            files[f"src/services/{name}Service.ts"] = f"export class {name}Service {{\n}}\n"
        for name in ["AppRouter", "Logger", "Config", "Database"]:
            files[f"src/core/{name}.ts"] = f"export class {name} {{\n}}\n"
        root = write_tree(files)

        result = service.analyze(root)

        suffixes = [
            p for p in result.understanding.patterns
            if p.signature and p.signature.startswith("suffix:")
        ]
        assert len(suffixes) == 1
        assert suffixes[0].name == "*Service suffix convention"
        assert suffixes[0].frequency == 6
        assert suffixes[0].confidence == 0.6

    def test_structure_matches_recorded(self, write_tree, service):
        """Test structural regexes tag files with matched class names."""
        root = write_tree({"src/UserController.ts": "export class UserController {\n}\n"})

        result = service.analyze(root)

        file_node = result.understanding.file_system.find_file("src/UserController.ts")
        assert file_node.metadata.structure_matches == ["UserController"]

    def test_mvc_organization(self, write_tree, service):
        """Test models/views/controllers directories yield the MVC pattern."""
        root = write_tree({
            "app/models/user.py": "class User:\n    pass\n",
            "app/views/user_view.py": "def render():\n    return 1\n",
            "app/controllers/user_controller.py": "def index():\n    return 1\n",
        })

        result = service.analyze(root)

        mvc = next(p for p in result.understanding.patterns if p.name == "MVC pattern")
        assert mvc.type == "organization"
        assert mvc.confidence == 0.9
        assert sorted(i.node_id for i in mvc.instances) == [
            "directory:app/controllers",
            "directory:app/models",
            "directory:app/views",
        ]

    def test_layered_architecture(self, write_tree, service):
        """Test layer directories importing each other one way yield the layered pattern."""
        root = write_tree({
            "controllers/orderController.ts": (
                "import { OrderService } from '../services/orderService';\n"
                "import { OrderRepository } from '../repositories/orderRepository';\n"
                "export class OrderController {}\n"
            ),
            "services/orderService.ts": (
                "import { OrderRepository } from '../repositories/orderRepository';\n"
                "export class OrderService {}\n"
            ),
            "repositories/orderRepository.ts": "export class OrderRepository {}\n",
        })

        result = service.analyze(root)

        layered = next(p for p in result.understanding.patterns if p.name == "Layered architecture")
        assert layered.type == "organization"
        assert layered.confidence == 0.75
        assert layered.description.endswith("controllers > services > repositories")
        assert sorted(i.node_id for i in layered.instances) == [
            "directory:controllers",
            "directory:repositories",
            "directory:services",
        ]

    def test_two_way_layer_imports_not_layered(self, write_tree, service):
        """Test layers importing each other in both directions are not layered."""
        root = write_tree({
            "services/orderService.ts": "import { Order } from '../models/order';\nexport class OrderService {}\n",
            "models/order.ts": "import { OrderService } from '../services/orderService';\nexport class Order {}\n",
        })

        result = service.analyze(root)

        assert not any(p.name == "Layered architecture" for p in result.understanding.patterns)

    def test_pattern_metrics_recorded(self, write_tree, service):
        """Test integration records pattern counts by type."""
        root = write_tree({
            f"src/{name}.py": f"def {name}_one():\n    return 1\n\ndef {name}_two():\n    return 2\n"
            for name in ["alpha", "beta"]
        })

        result = service.analyze(root)

        metrics = result.understanding.metrics
        assert metrics["total_patterns"] == len(result.understanding.patterns)
        assert metrics["patterns_structural"] == 1
