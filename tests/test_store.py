"""Tests for the variable store and its dependency graph."""

import pytest

from linecalc.errors import CircularDependencyError, EvaluationError
from linecalc.store import DependencyGraph, VariableStore
from linecalc.values import ErrorValue, NumberValue


class TestDependencyGraph:
    def setup_method(self):
        self.graph = DependencyGraph()
        self.graph.set_dependencies("b", ["a"])
        self.graph.set_dependencies("c", ["b"])

    def test_direct_relations(self):
        assert self.graph.dependencies("c") == {"b"}
        assert self.graph.dependents("a") == {"b"}

    def test_transitive_dependents(self):
        assert self.graph.transitive_dependents("a") == {"b", "c"}

    def test_cycle_path(self):
        assert self.graph.find_cycle("a", ["c"]) == ["a", "c", "b", "a"]

    def test_self_reference(self):
        assert self.graph.find_cycle("x", ["x"]) == ["x", "x"]

    def test_no_cycle(self):
        assert self.graph.find_cycle("d", ["c"]) is None

    def test_remove(self):
        self.graph.remove("c")
        assert self.graph.transitive_dependents("a") == {"b"}


class TestVariableStore:
    def setup_method(self):
        self.store = VariableStore()

    def test_assign_and_read(self):
        self.store.assign("x", NumberValue(5), "5")
        assert "x" in self.store
        assert len(self.store) == 1
        assert self.store.value("x").value == 5
        assert self.store.get("x").raw_value == "5"

    def test_reassign_keeps_created_at(self):
        first = self.store.assign("x", NumberValue(1))
        second = self.store.assign("x", NumberValue(2))
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at

    def test_cycle_rejected_without_change(self):
        self.store.assign("a", NumberValue(1))
        self.store.assign("b", NumberValue(2), sources=["a"])
        with pytest.raises(CircularDependencyError) as info:
            self.store.assign("a", NumberValue(3), sources=["b"])
        assert info.value.message == "Circular dependency detected: a -> b -> a"
        assert self.store.value("a").value == 1

    def test_error_value_rejected(self):
        with pytest.raises(EvaluationError):
            self.store.assign("x", ErrorValue.runtime_error("Division by zero"))
        assert "x" not in self.store

    def test_mark_error(self):
        self.store.assign("x", NumberValue(1))
        self.store.mark_error("x", ErrorValue.runtime_error("broken"))
        assert self.store.get("x").has_error

    def test_mark_error_of_unknown_name_is_ignored(self):
        self.store.mark_error("ghost", ErrorValue.runtime_error("broken"))
        assert "ghost" not in self.store

    def test_delete(self):
        self.store.assign("x", NumberValue(1))
        assert self.store.delete("x")
        assert not self.store.delete("x")

    def test_snapshot_is_a_copy(self):
        self.store.assign("x", NumberValue(1))
        snapshot = self.store.snapshot()
        self.store.assign("x", NumberValue(2))
        assert snapshot["x"].value.value == 1

    def test_mapping_view_is_live(self):
        view = self.store.as_mapping()
        self.store.assign("x", NumberValue(1))
        assert view["x"].value == 1
        assert list(view) == ["x"]
        assert view.get("missing") is None

    def test_clear(self):
        self.store.assign("x", NumberValue(1))
        self.store.clear()
        assert len(self.store) == 0
