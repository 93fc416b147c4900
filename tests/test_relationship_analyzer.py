import pytest

from codebase_understanding.analyzers.relationship_analyzer import (
    RelationshipAnalyzer,
    python_import_paths,
    python_import_to_path,
    python_imported_names,
    script_imported_names,
)
from codebase_understanding.coordinator import PipelineCoordinator
from codebase_understanding.models import RelationshipType, Resolved, Unresolved


def relationships_of(understanding, rel_type):
    return [rel for rel in understanding.relationships if rel.type == rel_type]


class TestImportResolution:
    """Test import specifier resolution."""

    def test_relative_import_single_target(self, write_tree, service):
        """Test ./util resolves to one edge without discount."""
        root = write_tree({
            "src/a.ts": "import { helper } from './util';\n\nexport const run = () => helper();\n",
            "src/util.ts": "export function helper() {\n  return 1;\n}\n",
        })

        result = service.analyze(root)

        imports = relationships_of(result.understanding, RelationshipType.IMPORTS)
        assert len(imports) == 1
        assert imports[0].source_id == "file:src/a.ts"
        assert imports[0].target == Resolved("file:src/util.ts")
        assert imports[0].confidence == pytest.approx(0.7)
        assert imports[0].metadata.ambiguous is False

    def test_relative_import_ambiguous_targets(self, write_tree, service):
        """Test a file and an index module both matching produce discounted edges."""
        root = write_tree({
            "src/a.ts": "import { helper } from './util';\n",
            "src/util.ts": "export function helper() {\n  return 1;\n}\n",
            "src/util/index.ts": "export function helper() {\n  return 2;\n}\n",
        })

        result = service.analyze(root)

        imports = relationships_of(result.understanding, RelationshipType.IMPORTS)
        assert sorted(rel.target_id for rel in imports) == ["file:src/util.ts", "file:src/util/index.ts"]
        for rel in imports:
            assert rel.confidence == pytest.approx(0.63)
            assert rel.metadata.ambiguous is True
            assert rel.metadata.candidate_count == 2

    def test_unresolved_import_is_recorded_as_external(self, write_tree, service):
        """Test package imports with no local file are counted, not linked."""
        root = write_tree({"src/a.ts": "import React from 'react';\n"})

        result = service.analyze(root)

        assert relationships_of(result.understanding, RelationshipType.IMPORTS) == []
        assert result.understanding.metrics["unresolved_imports"] == 1
        file_node = result.understanding.file_system.find_file("src/a.ts")
        assert file_node.metadata.external_imports == ["react"]

    def test_python_relative_import(self, write_tree, service):
        """Test Python package-relative imports resolve to sibling modules."""
        root = write_tree({
            "pkg/models.py": "class User:\n    pass\n",
            "pkg/views.py": "from .models import User\n\n\ndef show():\n    return User()\n",
        })

        result = service.analyze(root)

        imports = relationships_of(result.understanding, RelationshipType.IMPORTS)
        assert [(rel.source_id, rel.target_id) for rel in imports] == [
            ("file:pkg/views.py", "file:pkg/models.py")
        ]
        assert imports[0].metadata.import_type == "python_import"

    def test_import_escaping_root_is_dropped(self):
        """Test specifiers resolving above the root produce no candidates."""
        known = ["a.ts"]
        assert RelationshipAnalyzer.resolve_import_path("a.ts", "../outside", known, set(known)) == []

    def test_bare_import_falls_back_to_suffix_match(self):
        """Test bare specifiers match files by path suffix."""
        known = ["lib/utils/strings.ts", "src/app.ts"]
        targets = RelationshipAnalyzer.resolve_import_path("src/app.ts", "utils/strings", known, set(known))
        assert targets == ["lib/utils/strings.ts"]

    @pytest.mark.parametrize(
        "module, name, expected",
        [
            (None, "os.path", "os/path"),
            (".models", "User", "./models"),
            ("..core.base", "Base", "../core/base"),
            (".", "views", "./views"),
        ],
    )
    def test_python_import_to_path(self, module, name, expected):
        """Test Python imports convert to slash-separated specifiers."""
        assert python_import_to_path(module, name) == expected

    @pytest.mark.parametrize(
        "module, names, expected",
        [
            (None, "a, b as c", ["a", "b"]),
            (None, "os.path  ", ["os/path"]),
            ("pkg.mod", "x, y", ["pkg/mod"]),
            ("pkg", "*", ["pkg"]),
            (".", "views, models", ["./views", "./models"]),
            ("..", "(", []),
        ],
    )
    def test_python_import_paths(self, module, names, expected):
        """Test every module named by an import statement is returned."""
        assert python_import_paths(module, names) == expected

    @pytest.mark.parametrize(
        "clause, expected",
        [
            ("React, { useState as useLocal, type Props }", ["React", "useState", "Props"]),
            ("* as api", []),
            ("{ a, a }", ["a"]),
            (None, []),
        ],
    )
    def test_script_imported_names(self, clause, expected):
        """Test exported names are read from import and re-export clauses."""
        assert script_imported_names(clause) == expected

    def test_python_imported_names(self):
        """Test only from-imports of a named module bind names."""
        assert python_imported_names("pkg.mod", "(load, save as store)") == ["load", "save"]
        assert python_imported_names("pkg", "*") == []
        assert python_imported_names(None, "os, sys") == []
        assert python_imported_names(".", "views") == []

    def test_imported_names_kept_on_edge(self, write_tree, service):
        """Test the names an import binds are recorded on its edge."""
        root = write_tree({
            "src/a.ts": "import { fetchUsers, saveUsers as save } from './api'\n",
            "src/api.ts": "export function fetchUsers() {}\nexport function saveUsers() {}\n",
            "main.py": "from helpers import load, dump\n",
            "helpers.py": "def load():\n    return 1\n",
        })

        result = service.analyze(root)

        names = {
            rel.source_id: rel.metadata.imported_names
            for rel in relationships_of(result.understanding, RelationshipType.IMPORTS)
        }
        assert names == {"file:src/a.ts": ["fetchUsers", "saveUsers"], "file:main.py": ["load", "dump"]}


    def test_semicolon_free_imports_each_detected(self, write_tree, service):
        """Test consecutive imports without semicolons each produce an edge."""
        root = write_tree({
            "src/a.ts": (
                "import x from './b'\n"
                "import * as y from './c'\n"
                "import type { Z } from './d'\n"
                "import './setup'\n"
                "export { w } from './e'\n"
                "export * from './f'\n"
                "\nexport const run = () => x\n"
            ),
            "src/b.ts": "export default 1\n",
            "src/c.ts": "export const c = 1\n",
            "src/d.ts": "export interface Z {}\n",
            "src/setup.ts": "export const ready = true\n",
            "src/e.ts": "export const w = 1\n",
            "src/f.ts": "export const f = 1\n",
        })

        result = service.analyze(root)

        imports = relationships_of(result.understanding, RelationshipType.IMPORTS)
        assert sorted(rel.target_id for rel in imports) == [
            "file:src/b.ts",
            "file:src/c.ts",
            "file:src/d.ts",
            "file:src/e.ts",
            "file:src/f.ts",
            "file:src/setup.ts",
        ]
        import_types = {rel.target_id: rel.metadata.import_type for rel in imports}
        assert import_types["file:src/setup.ts"] == "side_effect_import"
        assert import_types["file:src/f.ts"] == "re_export"
        assert import_types["file:src/b.ts"] == "es_import"

    def test_python_multi_module_import(self, write_tree, service):
        """Test import a, b links both modules."""
        root = write_tree({
            "app.py": "import alpha, beta\n\n\ndef run():\n    return alpha\n",
            "alpha.py": "x = 1\n",
            "beta.py": "y = 2\n",
        })

        result = service.analyze(root)

        imports = relationships_of(result.understanding, RelationshipType.IMPORTS)
        assert sorted(rel.target_id for rel in imports) == ["file:alpha.py", "file:beta.py"]


class TestInheritance:
    """Test extends and implements resolution."""

    def test_resolved_extends(self, write_tree, service):
        """Test a class extending a known class links the two class nodes."""
        root = write_tree({
            "src/base.ts": "export class BaseRepository {\n}\n",
            "src/users.ts": "export class UserRepository extends BaseRepository {\n}\n",
        })

        result = service.analyze(root)

        understanding = result.understanding
        extends = relationships_of(understanding, RelationshipType.EXTENDS)
        assert len(extends) == 1
        assert understanding.code_nodes[extends[0].source_id].name == "UserRepository"
        assert understanding.code_nodes[extends[0].target_id].name == "BaseRepository"
        assert extends[0].confidence == pytest.approx(0.8)

    def test_unresolved_base_keeps_name(self, write_tree, service):
        """Test an unknown base class becomes an unresolved target at reduced confidence."""
        root = write_tree({"src/widget.ts": "export class Widget extends Component {\n}\n"})

        result = service.analyze(root)

        extends = relationships_of(result.understanding, RelationshipType.EXTENDS)
        assert len(extends) == 1
        assert extends[0].target == Unresolved("Component")
        assert extends[0].target_id == "unresolved:Component"
        assert extends[0].confidence == pytest.approx(0.4)
        assert extends[0].metadata.unresolved is True

    def test_implements_multiple_interfaces(self, write_tree, service):
        """Test every implemented interface gets its own edge."""
        root = write_tree({
            "src/contracts.ts": "export interface Readable {\n}\nexport interface Closable {\n}\n",
            "src/stream.ts": "export class FileStream implements Readable, Closable {\n}\n",
        })

        result = service.analyze(root)

        understanding = result.understanding
        implements = relationships_of(understanding, RelationshipType.IMPLEMENTS)
        targets = sorted(understanding.code_nodes[rel.target_id].name for rel in implements)
        assert targets == ["Closable", "Readable"]

    def test_python_base_classes(self, write_tree, service):
        """Test Python class bases are linked, keyword arguments ignored."""
        root = write_tree({
            "app/base.py": "class Model:\n    pass\n",
            "app/user.py": "from .base import Model\n\n\nclass User(Model, metaclass=type):\n    pass\n",
        })

        result = service.analyze(root)

        understanding = result.understanding
        extends = relationships_of(understanding, RelationshipType.EXTENDS)
        assert [understanding.code_nodes[rel.target_id].name for rel in extends] == ["Model"]


class TestSimilarity:
    """Test SIMILAR_TO links between files."""

    def test_controller_naming_pattern(self, write_tree, service):
        """Test files sharing the *Controller pattern are linked with weight 0.8."""
        root = write_tree({
            "src/UserController.ts": "export class UserController {\n}\n",
            "src/OrderController.ts": "export class OrderController {\n}\n",
        })

        result = service.analyze(root)

        similar = [
            rel for rel in relationships_of(result.understanding, RelationshipType.SIMILAR_TO)
            if rel.metadata.reason == "name_pattern"
        ]
        assert len(similar) == 1
        assert {similar[0].source_id, similar[0].target_id} == {
            "file:src/OrderController.ts",
            "file:src/UserController.ts",
        }
        assert similar[0].weight == 0.8
        assert similar[0].confidence == 0.7
        assert similar[0].metadata.name_pattern == "*Controller"

    def test_same_directory_same_extension(self, write_tree, service):
        """Test siblings with the same extension are linked with weight 0.7."""
        root = write_tree({
            "lib/alpha.py": "def alpha():\n    return 1\n",
            "lib/beta.py": "def beta():\n    return 2\n",
            "lib/notes.md": "# notes\n",
        })

        result = service.analyze(root)

        siblings = [
            rel for rel in relationships_of(result.understanding, RelationshipType.SIMILAR_TO)
            if rel.metadata.reason == "same_directory_same_extension"
        ]
        assert [(rel.source_id, rel.target_id, rel.weight) for rel in siblings] == [
            ("file:lib/alpha.py", "file:lib/beta.py", 0.7)
        ]


class TestContainment:
    """Test CONTAINS edges."""

    def test_containment_forms_forest(self, write_tree, service):
        """Test every non-root directory, file and code node has exactly one parent."""
        root = write_tree({
            "src/app/main.py": "class App:\n    def run(self):\n        return 1\n",
            "src/lib/util.py": "def helper():\n    return 2\n",
            "README.md": "# readme\n",
        })

        result = service.analyze(root)

        understanding = result.understanding
        incoming = {}
        for rel in relationships_of(understanding, RelationshipType.CONTAINS):
            incoming[rel.target_id] = incoming.get(rel.target_id, 0) + 1

        entities = [d.id for d in understanding.file_system.iter_directories() if d.path != "."]
        entities += [f.id for f in understanding.file_system.iter_files()]
        entities += list(understanding.code_nodes)

        assert entities
        for entity_id in entities:
            assert incoming.get(entity_id) == 1, entity_id
        assert "directory:." not in incoming

    def test_method_contained_by_class(self, write_tree, service):
        """Test nested code nodes are contained by their parent node."""
        root = write_tree({"main.py": "class App:\n    def run(self):\n        return 1\n"})

        result = service.analyze(root)

        understanding = result.understanding
        by_name = {node.name: node for node in understanding.code_nodes.values()}
        edges = {
            (rel.source_id, rel.target_id): rel.metadata.containment_type
            for rel in relationships_of(understanding, RelationshipType.CONTAINS)
        }
        assert edges[(by_name["App"].id, by_name["run"].id)] == "code_code"
        assert edges[("file:main.py", by_name["App"].id)] == "file_code"


class TestRelationshipPatterns:
    """Test relationship-derived pattern registration."""

    def test_common_import_and_name_patterns_registered(self, write_tree):
        """Test recurring imports and file-name patterns are registered."""
        files = {"src/util.ts": "export function helper() {\n  return 1;\n}\n"}
        for name in ["User", "Order", "Billing"]:
            files[f"src/{name}Service.ts"] = (
                f"import {{ helper }} from './util';\n\nexport class {name}Service {{\n}}\n"
            )
        root = write_tree(files)

        coordinator = PipelineCoordinator()
        coordinator.run(root)

        context = coordinator.context
        imports = context.registered_patterns("import_pattern")
        assert [d.name for d in imports] == ["Common import: ./util"]
        naming = context.registered_patterns("naming_pattern")
        assert [d.name for d in naming] == ["File pattern: *Service"]
        assert context.find_matching_patterns("class PaymentService {}", "naming_pattern")

    def test_common_base_class_registered(self, write_tree):
        """Test a base class extended by two classes is registered."""
        root = write_tree({
            "src/base.ts": "export class Entity {\n}\n",
            "src/user.ts": "export class User extends Entity {\n}\n",
            "src/order.ts": "export class Order extends Entity {\n}\n",
        })

        coordinator = PipelineCoordinator()
        coordinator.run(root)

        inheritance = coordinator.context.registered_patterns("inheritance_pattern")
        assert [d.name for d in inheritance] == ["Common base class: Entity"]
