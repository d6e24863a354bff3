"""
Variable store and dependency graph.

The store is an explicit object handed to each evaluation; nothing here is
a module-level singleton. An assignment either commits completely or is
rejected without touching the store.
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Set

from .errors import CircularDependencyError, EvaluationError
from .values import ErrorValue, SemanticValue

logger = logging.getLogger(__name__)


def _now() -> datetime.datetime:
    return datetime.datetime.now()


@dataclass
class Variable:
    name: str
    value: SemanticValue
    raw_value: str = ""
    created_at: datetime.datetime = field(default_factory=_now)
    updated_at: datetime.datetime = field(default_factory=_now)

    @property
    def has_error(self) -> bool:
        return isinstance(self.value, ErrorValue)


class DependencyGraph:
    """Edges from each variable to the variables its expression reads."""

    def __init__(self):
        self._sources: Dict[str, Set[str]] = {}

    def set_dependencies(self, name: str, sources: Iterable[str]) -> None:
        self._sources[name] = set(sources)

    def remove(self, name: str) -> None:
        self._sources.pop(name, None)

    def dependencies(self, name: str) -> Set[str]:
        return set(self._sources.get(name, ()))

    def dependents(self, name: str) -> Set[str]:
        """Variables that read ``name`` directly."""
        return {dependent for dependent, sources in self._sources.items() if name in sources}

    def transitive_dependents(self, name: str) -> Set[str]:
        found: Set[str] = set()
        pending = [name]
        while pending:
            for dependent in self.dependents(pending.pop()):
                if dependent not in found:
                    found.add(dependent)
                    pending.append(dependent)
        found.discard(name)
        return found

    def find_cycle(self, name: str, sources: Iterable[str]) -> Optional[List[str]]:
        """
        The cycle that giving ``name`` these sources would create, if any.

        The path starts and ends at ``name``: ``["a", "b", "a"]``.
        """
        visited: Set[str] = set()

        def visit(current: str, path: List[str]) -> Optional[List[str]]:
            if current == name:
                return path + [current]
            if current in visited:
                return None
            visited.add(current)
            for source in sorted(self._sources.get(current, ())):
                cycle = visit(source, path + [current])
                if cycle is not None:
                    return cycle
            return None

        for source in sorted(set(sources)):
            cycle = visit(source, [name])
            if cycle is not None:
                return cycle
        return None


class VariableStore:
    """Current variable values plus the graph of who reads whom."""

    def __init__(self):
        self._variables: Dict[str, Variable] = {}
        self.graph = DependencyGraph()

    def __contains__(self, name: str) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def get(self, name: str) -> Optional[Variable]:
        return self._variables.get(name)

    def value(self, name: str) -> Optional[SemanticValue]:
        variable = self._variables.get(name)
        return variable.value if variable is not None else None

    def names(self) -> List[str]:
        return list(self._variables)

    def snapshot(self) -> Dict[str, Variable]:
        """Read-only copy of ``name -> Variable`` for display panels."""
        return {name: Variable(**vars(variable)) for name, variable in self._variables.items()}

    def as_mapping(self) -> Mapping[str, SemanticValue]:
        return _ValueView(self._variables)

    def check_cycle(self, name: str, sources: Iterable[str]) -> None:
        cycle = self.graph.find_cycle(name, sources)
        if cycle is not None:
            logger.warning(f"Rejected assignment to {name}: cycle {' -> '.join(cycle)}")
            raise CircularDependencyError(cycle)

    def assign(
        self, name: str, value: SemanticValue, raw_value: str = "", sources: Iterable[str] = ()
    ) -> Variable:
        """
        Commit a new value for ``name``.

        Raises CircularDependencyError if the sources lead back to ``name``,
        or EvaluationError if the value is an error. The store is unchanged
        in both cases.
        """
        sources = set(sources)
        self.check_cycle(name, sources)
        if isinstance(value, ErrorValue):
            raise EvaluationError(value.message)

        existing = self._variables.get(name)
        now = _now()
        if existing is None:
            variable = Variable(name, value, raw_value, now, now)
        else:
            variable = Variable(name, value, raw_value, existing.created_at, now)
        self._variables[name] = variable
        self.graph.set_dependencies(name, sources)
        logger.debug(f"Committed {name} = {value.to_string()}")
        return variable

    def mark_error(self, name: str, error: ErrorValue) -> None:
        """Put an existing variable into the error state after a failed recompute."""
        variable = self._variables.get(name)
        if variable is None:
            return
        variable.value = error
        variable.updated_at = _now()
        logger.info(f"Variable {name} now has an error: {error.message}")

    def delete(self, name: str) -> bool:
        if self._variables.pop(name, None) is None:
            return False
        self.graph.remove(name)
        logger.info(f"Deleted variable {name}")
        return True

    def clear(self) -> None:
        self._variables.clear()
        self.graph = DependencyGraph()


class _ValueView(Mapping[str, SemanticValue]):
    """Live ``name -> value`` view used as an evaluation scope."""

    def __init__(self, variables: Dict[str, Variable]):
        self._variables = variables

    def __getitem__(self, name: str) -> SemanticValue:
        return self._variables[name].value

    def __iter__(self) -> Iterator[str]:
        return iter(self._variables)

    def __len__(self) -> int:
        return len(self._variables)
