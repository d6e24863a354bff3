"""
Tests for the reactive sheet: edits, recomputation and dependency errors.
"""

from linecalc.config import DisplayOptions
from linecalc.render import AssignmentNode, CombinedNode, ErrorRenderNode, MathResultNode, TextNode
from linecalc.sheet import Sheet, node_references, result_column, same_render
from linecalc.parser import parse_line


class TestLoad:
    def test_top_down_evaluation(self, sheet):
        sheet.load("price = 10\nqty = 3\ntotal = price * qty =>")
        assert isinstance(sheet.lines[0].render, AssignmentNode)
        assert sheet.lines[2].render.display() == "total = 30"
        assert sheet.store.value("total").value == 30

    def test_builtin_named_variables(self, sheet):
        sheet.load(["total = 5", "count = 2", "range = 3", "total - count =>", "total * range =>"])
        assert sheet.store.names() == ["total", "count", "range"]
        assert sheet.lines[3].render.result == "3"
        assert sheet.lines[4].render.result == "15"

    def test_load_replaces_everything(self, sheet):
        sheet.load(["x = 1"])
        sheet.load(["y = 2"])
        assert "x" not in sheet.store
        assert sheet.text() == "y = 2"

    def test_results_follow_lines(self, sheet):
        sheet.load(["# header", "2 + 2 =>", "just words"])
        kinds = [render.type for render in sheet.results()]
        assert kinds == ["text", "mathResult", "text"]

    def test_display_options(self):
        sheet = Sheet(options=DisplayOptions(precision=2))
        sheet.load(["1/3 =>"])
        assert sheet.lines[0].render.result == "0.33"


class TestReactivity:
    """Editing a line recomputes every line that reads what it changed."""

    def test_dependent_updates(self, sheet):
        sheet.load(["price = 10", "qty = 3", "total = price * qty =>"])
        changed = sheet.set_line(0, "price = 20")
        assert sheet.lines[2].render.display() == "total = 60"
        assert any(isinstance(render, CombinedNode) for render in changed)

    def test_transitive_updates(self, sheet):
        sheet.load(["a = 1", "b = a * 2", "c = b + 1 =>"])
        sheet.set_line(0, "a = 5")
        assert sheet.lines[2].render.result == "11"

    def test_unchanged_value_reports_nothing(self, sheet):
        sheet.load(["a = 1", "b = a + 1 =>"])
        assert sheet.set_line(0, "a = 1") == []

    def test_dependency_through_function(self, sheet):
        sheet.load(["rate = 2", "f(x) = x * rate", "y = f(3) =>"])
        sheet.set_line(0, "rate = 10")
        assert sheet.lines[2].render.result == "30"

    def test_redefining_function(self, sheet):
        sheet.load(["f(x) = x + 1", "f(1) =>"])
        sheet.set_line(0, "f(x) = x * 10")
        assert sheet.lines[1].render.result == "10"

    def test_plain_text_becomes_math(self, sheet):
        sheet.load(["x + 1"])
        assert isinstance(sheet.lines[0].render, TextNode)
        sheet.insert_line(0, "x = 2")
        assert isinstance(sheet.lines[1].render, MathResultNode)
        assert sheet.lines[1].render.result == "3"


class TestDependencyErrors:
    def test_cycle_is_rejected(self, sheet):
        sheet.load(["a = 1", "b = a + 1"])
        sheet.set_line(0, "a = b + 1")
        render = sheet.lines[0].render
        assert isinstance(render, ErrorRenderNode)
        assert render.message == "Circular dependency detected: a -> b -> a"
        assert sheet.store.value("a").value == 1

    def test_self_reference(self, sheet):
        sheet.load(["x = 5"])
        sheet.set_line(0, "x = x + 1")
        assert sheet.lines[0].render.message == "Circular dependency detected: x -> x"
        assert sheet.store.value("x").value == 5

    def test_error_propagates_to_dependents(self, sheet):
        sheet.load(["a = 10", "b = 100 / a", "c = b + 1 =>"])
        assert sheet.lines[2].render.result == "11"
        sheet.set_line(0, "a = 0")
        assert sheet.lines[1].render.message == "Division by zero"
        assert sheet.lines[2].render.message == "Source value has an error: b"
        assert sheet.store.get("b").has_error

    def test_recovers_after_fix(self, sheet):
        sheet.load(["a = 10", "b = 100 / a", "c = b + 1 =>"])
        sheet.set_line(0, "a = 0")
        sheet.set_line(0, "a = 50")
        assert sheet.lines[2].render.result == "3"

    def test_failed_edit_reaches_dependents(self, sheet):
        sheet.load(["a = 10", "b = a * 2 =>"])
        sheet.set_line(0, "a = 1 / 0")
        assert sheet.lines[0].render.message == "Division by zero"
        assert sheet.lines[1].render.message == "Source value has an error: a"
        assert sheet.store.get("a").has_error

    def test_edit_that_stops_parsing_reaches_dependents(self, sheet):
        sheet.load(["a = 10", "b = a * 2 =>"])
        sheet.set_line(0, "a = 1 m + 1 kg")
        assert sheet.lines[0].render.category == "semantic"
        assert "a" in sheet.store
        assert sheet.lines[1].render.message == "Source value has an error: a"

        sheet.set_line(0, "a = 4")
        assert sheet.lines[1].render.display() == "b = 8"

    def test_failed_first_assignment_creates_nothing(self, sheet):
        sheet.load(["x = 1 / 0"])
        assert isinstance(sheet.lines[0].render, ErrorRenderNode)
        assert "x" not in sheet.store

    def test_self_reference_on_new_variable(self, sheet):
        sheet.load(["a = a + 1 =>"])
        assert sheet.lines[0].render.message == "Circular dependency detected: a -> a"
        assert "a" not in sheet.store


class TestLineEdits:
    def test_remove_definition(self, sheet):
        sheet.load(["x = 5", "y = x + 1 =>"])
        sheet.remove_line(0)
        assert "x" not in sheet.store
        assert sheet.lines[0].render.message == "Undefined variable: x"
        assert sheet.lines[0].render.line_number == 0

    def test_remove_keeps_name_defined_elsewhere(self, sheet):
        sheet.load(["x = 5", "x = 6", "x + 1 =>"])
        sheet.remove_line(0)
        assert sheet.store.value("x").value == 6

    def test_insert_renumbers(self, sheet):
        sheet.load(["1 + 1 =>", "2 + 2 =>"])
        sheet.insert_line(0, "# title")
        assert [line.render.line_number for line in sheet.lines] == [0, 1, 2]

    def test_renaming_assignment_deletes_old_name(self, sheet):
        sheet.load(["x = 5"])
        sheet.set_line(0, "y = 5")
        assert "x" not in sheet.store
        assert "y" in sheet.store

    def test_append_at_end(self, sheet):
        sheet.append_line("2 * 3 =>")
        assert len(sheet.lines) == 1
        assert sheet.lines[0].render.result == "6"


class TestHelpers:
    def test_result_column(self):
        assert result_column("2 + 2 =>") == 6
        assert result_column("x = 5   ") == 5

    def test_node_references(self):
        assert node_references(parse_line("total = price * qty =>")) == {"price", "qty"}
        assert node_references(parse_line("f(x) = x * rate")) == {"rate"}

    def test_same_render_ignores_value(self):
        assert same_render(MathResultNode("1", "1", None), MathResultNode("1", "1", object()))
        assert not same_render(MathResultNode("1", "1"), MathResultNode("1", "2"))
        assert same_render(None, None)
