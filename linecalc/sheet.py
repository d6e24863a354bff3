"""
Reactive sheet: the document lines, their variables and their results.

Every edit is one synchronous pass: the edited line is parsed and
evaluated, its assignment (if any) is committed to the store, and then
every line reading a changed name is recomputed in document order until
nothing else changes. The cycle check before each assignment keeps that sweep
finite.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .ast import (
    EXPRESSION_NODES,
    ASTNode,
    CombinedAssignmentNode,
    ErrorNode,
    FunctionDefinitionNode,
    PlainTextNode,
    SolveNode,
    VariableAssignmentNode,
)
from .components import collect_function_calls, collect_variables
from .config import DisplayOptions, EngineLimits
from .errors import CircularDependencyError, EvaluationError
from .evaluators import EvaluatorRegistry
from .expression import EvaluationContext, UserFunction
from .fx import RateProvider
from .parser import TRIGGER, assignment_name, parse_line
from .render import ErrorRenderNode, RenderNode
from .store import VariableStore
from .values import ErrorType, ErrorValue

logger = logging.getLogger(__name__)

ASSIGNMENT_NODES = (VariableAssignmentNode, CombinedAssignmentNode)


@dataclass
class Line:
    text: str
    node: Optional[ASTNode] = None
    render: Optional[RenderNode] = None
    defines: Optional[str] = None
    function: Optional[str] = None
    references: Set[str] = field(default_factory=set)


def result_column(text: str) -> int:
    """Column where a line's result decoration goes."""
    stripped = text.rstrip()
    if stripped.endswith(TRIGGER):
        return len(stripped) - len(TRIGGER)
    return len(stripped)


def node_references(node: ASTNode) -> Set[str]:
    """Variable and function names a node reads."""
    if isinstance(node, EXPRESSION_NODES):
        return collect_variables(node.components) | collect_function_calls(node.components)
    if isinstance(node, FunctionDefinitionNode):
        params = {param.name for param in node.params}
        names = collect_variables(node.components) | collect_function_calls(node.components)
        for param in node.params:
            if param.default is not None:
                names |= collect_variables(param.default)
        return names - params - {node.name}
    if isinstance(node, SolveNode):
        names = set()
        for components in (node.left, node.right) + tuple(c for _, c in node.bindings):
            names |= collect_variables(components) | collect_function_calls(components)
        return names - {node.variable} - {name for name, _ in node.bindings}
    return set()


class Sheet:
    """A document of calculator lines with live recomputation."""

    def __init__(
        self,
        options: Optional[DisplayOptions] = None,
        limits: Optional[EngineLimits] = None,
        rates: Optional[RateProvider] = None,
        registry: Optional[EvaluatorRegistry] = None,
    ):
        self.lines: List[Line] = []
        self.store = VariableStore()
        self.functions: Dict[str, UserFunction] = {}
        self.registry = registry or EvaluatorRegistry()
        self.options = options
        self.limits = limits
        self.rates = rates

    def context(self) -> EvaluationContext:
        return EvaluationContext(
            self.store.as_mapping(), self.functions, self.options, self.limits, self.rates
        )

    # --- Queries ---

    def results(self) -> List[Optional[RenderNode]]:
        return [line.render for line in self.lines]

    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    # --- Edits ---

    def load(self, source: Union[str, Iterable[str]]) -> List[RenderNode]:
        """Replace the whole document and evaluate it top to bottom."""
        texts = source.splitlines() if isinstance(source, str) else list(source)
        self.lines = []
        self.store.clear()
        self.functions.clear()
        changed = []
        for text in texts:
            self.lines.append(Line(text))
            changed.extend(self._edit(len(self.lines) - 1))
        logger.info(f"Loaded sheet with {len(self.lines)} lines and {len(self.store)} variables")
        return changed

    def set_line(self, index: int, text: str) -> List[RenderNode]:
        """Replace (or append, at the end) one line."""
        if index == len(self.lines):
            self.lines.append(Line(text))
        else:
            self.lines[index].text = text
        return self._edit(index)

    def append_line(self, text: str) -> List[RenderNode]:
        return self.set_line(len(self.lines), text)

    def insert_line(self, index: int, text: str) -> List[RenderNode]:
        self.lines.insert(index, Line(text))
        changed = self._renumber(index + 1)
        return self._edit(index) + changed

    def remove_line(self, index: int) -> List[RenderNode]:
        line = self.lines.pop(index)
        changed = self._renumber(index)
        dirty: Set[str] = set()
        if line.defines and not self._defined_elsewhere(line.defines, "defines"):
            self.store.delete(line.defines)
            dirty.add(line.defines)
        if line.function and not self._defined_elsewhere(line.function, "function"):
            self.functions.pop(line.function, None)
            dirty.add(line.function)
        return changed + self._propagate(dirty, origin=None)

    # --- Evaluation ---

    def _edit(self, index: int) -> List[RenderNode]:
        before = self.lines[index].render
        render, dirty = self._evaluate_line(index)
        changed = [] if same_render(render, before) else [render]
        return changed + self._propagate(dirty, origin=index)

    def _evaluate_line(self, index: int) -> Tuple[RenderNode, Set[str]]:
        """Parse and evaluate one line; returns its render and the names it changed."""
        line = self.lines[index]
        context = self.context()
        node = parse_line(line.text, index, context)
        column = result_column(line.text)
        previous_name, previous_function = line.defines, line.function
        line.node = node
        line.references = node_references(node)
        line.defines = node.name if isinstance(node, ASSIGNMENT_NODES) else None
        if isinstance(node, ErrorNode) and previous_name and assignment_name(line.text) == previous_name:
            # A defining line that stops parsing keeps its variable, in the error state
            line.defines = previous_name
        line.function = node.name if isinstance(node, FunctionDefinitionNode) else None

        dirty: Set[str] = set()
        if isinstance(node, FunctionDefinitionNode):
            self.functions[node.name] = UserFunction.from_node(node)
            dirty.add(node.name)

        render = self._check_cycle(node, column)
        if render is None:
            render = self.registry.evaluate(node, self.context(), column)
            if render is None:
                render = ErrorRenderNode("Line could not be evaluated", "runtime", index, column)
            if isinstance(node, ASSIGNMENT_NODES):
                render, committed = self._commit(node, render, column)
                dirty |= committed
            elif line.defines is not None:
                dirty |= self._mark_failed(line.defines, render)

        if previous_name and previous_name != line.defines:
            if not self._defined_elsewhere(previous_name, "defines"):
                self.store.delete(previous_name)
                dirty.add(previous_name)
        if previous_function and previous_function != line.function:
            if not self._defined_elsewhere(previous_function, "function"):
                self.functions.pop(previous_function, None)
                dirty.add(previous_function)

        line.render = render
        return render, dirty

    def _check_cycle(self, node: ASTNode, column: int) -> Optional[ErrorRenderNode]:
        """Reject an assignment that would read itself, before evaluating it."""
        if not isinstance(node, ASSIGNMENT_NODES):
            return None
        try:
            self.store.check_cycle(node.name, self._sources(node))
        except CircularDependencyError as e:
            return ErrorRenderNode(e.message, "runtime", node.line_number, column)
        return None

    def _commit(self, node: ASTNode, render: RenderNode, column: int) -> Tuple[RenderNode, Set[str]]:
        name = node.name
        previous = self.store.value(name)
        if isinstance(render, ErrorRenderNode):
            return render, self._mark_failed(name, render)

        try:
            self.store.assign(name, render.value, node_raw_text(node), self._sources(node))
        except (CircularDependencyError, EvaluationError) as e:
            return ErrorRenderNode(e.message, "runtime", node.line_number, column), set()
        if previous is None or not previous.equals(render.value):
            return render, {name}
        return render, set()

    def _mark_failed(self, name: str, render: RenderNode) -> Set[str]:
        """
        Put an existing variable whose line failed into the error state.

        Returns the names whose readers must recompute. A variable that
        never held a value is not created.
        """
        previous = self.store.value(name)
        if previous is None:
            logger.info(f"Assignment to {name} rejected: {render.message}")
            return set()
        already_failed = isinstance(previous, ErrorValue)
        self.store.mark_error(name, ErrorValue(ErrorType.RUNTIME, render.message))
        return set() if already_failed else {name}

    def _sources(self, node: ASTNode) -> Set[str]:
        """Variables an assignment reads, including through user functions it calls."""
        sources = collect_variables(node.components)
        seen: Set[str] = set()
        pending = list(collect_function_calls(node.components))
        while pending:
            name = pending.pop()
            function = self.functions.get(name)
            if function is None or name in seen:
                continue
            seen.add(name)
            params = {param.name for param in function.params}
            sources |= collect_variables(function.components) - params
            pending.extend(collect_function_calls(function.components))
        return sources

    def _propagate(self, dirty: Set[str], origin: Optional[int]) -> List[RenderNode]:
        """Recompute lines that read a changed name, in document order."""
        changed: List[RenderNode] = []
        passes = 0
        while dirty and passes <= len(self.lines):
            passes += 1
            next_dirty: Set[str] = set()
            for index, line in enumerate(self.lines):
                if index == origin or not self._mentions(line, dirty):
                    continue
                before = line.render
                render, names = self._evaluate_line(index)
                next_dirty |= names
                if not same_render(render, before):
                    changed.append(render)
            logger.debug(f"Recompute pass {passes}: {sorted(dirty)} -> {sorted(next_dirty)}")
            dirty = next_dirty
            origin = None
        return changed

    def _mentions(self, line: Line, names: Set[str]) -> bool:
        if line.references & names:
            return True
        # Plain text may read as math once the names it mentions exist
        if isinstance(line.node, (PlainTextNode, ErrorNode)):
            return any(name in line.text for name in names)
        return False

    def _defined_elsewhere(self, name: str, attribute: str) -> bool:
        return any(getattr(line, attribute) == name for line in self.lines)

    def _renumber(self, start: int) -> List[RenderNode]:
        """Move render nodes after an insert or removal to their new line numbers."""
        changed = []
        for index in range(start, len(self.lines)):
            line = self.lines[index]
            if line.render is not None and line.render.line_number != index:
                line.render = dataclasses.replace(line.render, line_number=index)
                changed.append(line.render)
        return changed


def node_raw_text(node: ASTNode) -> str:
    if isinstance(node, VariableAssignmentNode):
        return node.raw_value
    return node.expression


def same_render(a: Optional[RenderNode], b: Optional[RenderNode]) -> bool:
    """Compare render nodes by what they show, ignoring the carried value objects."""
    if a is None or b is None:
        return a is b
    if type(a) is not type(b):
        return False
    return all(
        getattr(a, f.name) == getattr(b, f.name) for f in dataclasses.fields(a) if f.name != "value"
    )
