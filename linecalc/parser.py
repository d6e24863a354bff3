"""
Line parser for the calculator sheet.

``parse_line`` classifies one line of text and builds its syntax node. It
never raises: every failure becomes an ``ErrorNode`` carrying a message and
one of the categories parse, syntax or semantic.

Lines are tried in this order:

    empty                       -> PlainText
    # ... or // ...             -> Comment
    @view ...                   -> ViewDirective
    name(a, b=2) = body         -> FunctionDefinition (no trigger)
    solve x in lhs = rhs        -> Solve
    name = expr                 -> VariableAssignment
    name = expr =>              -> CombinedAssignment
    expr =>                     -> Expression
    anything else               -> Expression if it reads as math, else PlainText
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from .ast import (
    PERCENT_TARGET,
    ASTNode,
    CombinedAssignmentNode,
    CommentNode,
    Components,
    ConversionTarget,
    ErrorNode,
    ExpressionNode,
    FunctionDefinitionNode,
    FunctionParam,
    PlainTextNode,
    SolveNode,
    VariableAssignmentNode,
    ViewDirectiveNode,
)
from .builtins import BUILTIN_NAMES, CONSTANTS
from .components import (
    build_components,
    collect_function_calls,
    collect_variables,
    contains_operator,
    normalize_name,
    walk_literals,
)
from .config import check_line_length
from .errors import LineCalcError, ParseError, UnitError
from .expression import EvaluationContext, evaluate_expression
from .lowering import has_percentage_phrase
from .temporal import MONTHS, WEEKDAYS, DateValue, DurationValue, TimeValue, parse_zone
from .tokenizer import KEYWORDS, tokenize
from .units import default_registry
from .values import CurrencyValue, ErrorType, ErrorValue, UnitValue, resolve_currency

logger = logging.getLogger(__name__)

TRIGGER = "=>"

_NAME = re.compile(r"^[^\W\d]\w*(?:\s+[^\W\d]\w*)*$")
_PARAM = re.compile(r"^[^\W\d]\w*$")
_FUNCTION_DEFINITION = re.compile(r"^([^\W\d]\w*)\s*\(([^()]*)\)\s*=(?![=>])\s*(.*)$")
_SOLVE = re.compile(r"^solve\s+([^\W\d]\w*)\s+in\s+(.+)$", re.IGNORECASE)
_WHERE_CLAUSE = re.compile(r"\s+where\s+", re.IGNORECASE)
_AS_PERCENT = re.compile(r"^(.+?)\s+as\s*%$", re.IGNORECASE)
_OF_IS_PERCENT = re.compile(r"^(.+?)\s+of\s+(.+?)\s+is\s*%$", re.IGNORECASE)
_CONVERSION = re.compile(r"\s(to|in|as)\s+")
_ZERO_DENOMINATOR = re.compile(r"/\s*0+(?:\.0*)?(?![\d.])")
_RANGE_SNIPPET = re.compile(r"\S*\s*\.\.\.?\s*\S*")
_PERCENT_HINT = re.compile(r"%|\b(?:of|on|off)\b", re.IGNORECASE)
_DATE_HINT = re.compile(
    r"\d{4}-\d{2}-\d{2}|\b(?:today|tomorrow|yesterday|now|"
    + "|".join(sorted(set(MONTHS) | set(WEEKDAYS), key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)


# ============================================================
# Assignment and suffix splitting
# ============================================================


def find_assignment(text: str) -> Optional[int]:
    """Position of the first ``=`` that is not part of ``==``, ``=>``, ``<=``, ``>=`` or ``!=``."""
    for position, char in enumerate(text):
        if char != "=":
            continue
        before = text[position - 1] if position > 0 else ""
        after = text[position + 1] if position + 1 < len(text) else ""
        if before and before in "<>!=":
            continue
        if after and after in "=>":
            continue
        return position
    return None


def is_valid_name(name: str) -> bool:
    """Variable names are one or more words; keywords and constants are reserved."""
    if not _NAME.match(name):
        return False
    words = name.split()
    if any(word.lower() in KEYWORDS for word in words):
        return False
    return name not in CONSTANTS


def assignment_name(text: str) -> Optional[str]:
    """The variable a line assigns to, judged from its shape alone."""
    body = text.strip()
    if body.endswith(TRIGGER):
        body = body[: -len(TRIGGER)].rstrip()
    position = find_assignment(body)
    if position is None:
        return None
    name = normalize_name(body[:position])
    return name if is_valid_name(name) else None


def parse_conversion_target(text: str) -> Optional[ConversionTarget]:
    """The conversion target named by ``text``, or None if it names nothing."""
    text = text.strip()
    if not text:
        return None
    if text == "%":
        return PERCENT_TARGET

    zone = parse_zone(text)
    if zone is not None:
        return ConversionTarget("zone", text, zone=zone)

    currency = resolve_currency(text)
    if currency is not None:
        return ConversionTarget("currency", text, currency=currency)

    if _ZERO_DENOMINATOR.search(text):
        raise ParseError("Invalid conversion target: denominator must be non-zero")
    try:
        unit = default_registry().parse(text)
    except UnitError:
        return None
    return ConversionTarget("unit", text, unit=unit)


def split_conversion(text: str) -> Tuple[str, Optional[ConversionTarget]]:
    """Split ``expr to target`` into the expression text and its target."""
    match = _OF_IS_PERCENT.match(text)
    if match:
        return f"({match.group(1)}) / ({match.group(2)})", PERCENT_TARGET

    match = _AS_PERCENT.match(text)
    if match:
        return match.group(1), PERCENT_TARGET

    for match in _CONVERSION.finditer(text):
        head = text[: match.start()].strip()
        tail = text[match.end():].strip()
        if not head or not tail:
            continue
        target = parse_conversion_target(tail)
        if target is not None:
            _reject_chained_conversion(head, tail)
            return head, target
    return text, None


def _reject_chained_conversion(head: str, tail: str) -> None:
    for match in _CONVERSION.finditer(head):
        inner = head[match.end():].strip()
        if inner and parse_conversion_target(inner) is not None:
            raise ParseError(
                f"Only one conversion target is allowed per line: '{inner}' then '{tail}'"
            )


# ============================================================
# Parser
# ============================================================


class LineParser:
    """Builds the syntax node for one line."""

    def __init__(self, text: str, line_number: int, context: EvaluationContext):
        self.text = text
        self.line_number = line_number
        self.context = context

    def parse(self) -> ASTNode:
        check_line_length(self.text, self.context.limits)

        stripped = self.text.strip()
        if not stripped:
            return PlainTextNode("", self.line_number)
        if stripped.startswith("#") or stripped.startswith("//"):
            return CommentNode(stripped, self.line_number)
        if stripped.startswith("@view"):
            arguments = stripped[len("@view"):].strip()
            return ViewDirectiveNode("view", arguments, self.line_number)

        triggered = stripped.endswith(TRIGGER)
        body = stripped[: -len(TRIGGER)].rstrip() if triggered else stripped
        if triggered and not body:
            return ErrorNode("Missing expression before '=>'", "syntax", self.line_number)

        if not triggered:
            definition = self._parse_function_definition(body)
            if definition is not None:
                return definition

        solve = _SOLVE.match(body)
        if solve:
            return self._parse_solve(solve.group(1), solve.group(2))

        position = find_assignment(body)
        if position is not None:
            node = self._parse_assignment(body[:position].strip(), body[position + 1:].strip(), triggered)
            if node is not None:
                return node

        if triggered:
            return self._parse_expression(body)
        return self._parse_untriggered(body)

    # --- Building ---

    def _build(self, text: str, extra_functions: Sequence[str] = ()) -> Components:
        if not text.strip():
            raise ParseError("Missing expression")
        function_names = self.context.function_names() | set(extra_functions)
        tokens = tokenize(
            text,
            function_names,
            self.context.options,
            self.context.limits,
            variable_names=self.context.variables.keys(),
        )
        return build_components(tokens, text, function_names)

    def _fallback_error(self, text: str, error: LineCalcError) -> ErrorNode:
        """Error node for text the component builder rejected."""
        if ".." in text:
            snippet = _RANGE_SNIPPET.search(text).group(0).strip()
            return ErrorNode(f'Invalid range expression near "{snippet}"', "parse", self.line_number)
        if _PERCENT_HINT.search(text):
            return ErrorNode(
                f"Could not understand percentage expression: {text}", "parse", self.line_number
            )
        if _DATE_HINT.search(text):
            return ErrorNode(f"Could not understand date expression: {text}", "parse", self.line_number)
        return ErrorNode(error.message, "parse", self.line_number)

    def _validate(self, components: Components, target: Optional[ConversionTarget]) -> Optional[ErrorNode]:
        """Type-check the expression, treating unknown names as symbols."""
        if collect_function_calls(components) or has_percentage_phrase(components):
            return None
        if any(
            isinstance(literal.value, (DateValue, TimeValue, DurationValue))
            for literal in walk_literals(components)
        ):
            return None
        value = evaluate_expression(components, target, self.context.symbolic())
        if isinstance(value, ErrorValue) and value.error_type == ErrorType.TYPE:
            logger.debug(f"Line {self.line_number} rejected at parse time: {value.message}")
            return ErrorNode(value.message, "semantic", self.line_number)
        return None

    def _parse_rhs(self, text: str) -> Tuple[str, Components, Optional[ConversionTarget]]:
        expression_text, target = split_conversion(text)
        return expression_text, self._build(expression_text), target

    # --- Line kinds ---

    def _parse_function_definition(self, body: str) -> Optional[ASTNode]:
        match = _FUNCTION_DEFINITION.match(body)
        if not match:
            return None
        name, params_text, function_body = match.groups()
        if name in BUILTIN_NAMES:
            return None

        params: List[FunctionParam] = []
        defaults_started = False
        if params_text.strip():
            for raw in params_text.split(","):
                param_name, _, default_text = raw.partition("=")
                param_name = param_name.strip()
                if not _PARAM.match(param_name):
                    return None
                if any(param.name == param_name for param in params):
                    return ErrorNode(f"Duplicate parameter: '{param_name}'", "syntax", self.line_number)
                default = None
                if default_text.strip():
                    try:
                        default = self._build(default_text.strip())
                    except LineCalcError as e:
                        return ErrorNode(f"Invalid default for '{param_name}': {e.message}", "parse", self.line_number)
                    defaults_started = True
                elif defaults_started:
                    return ErrorNode(
                        f"Parameter '{param_name}' without a default follows one with a default",
                        "syntax",
                        self.line_number,
                    )
                params.append(FunctionParam(param_name, default))

        if not function_body.strip():
            return ErrorNode(f"Missing body for function {name}()", "syntax", self.line_number)
        try:
            components = self._build(function_body, extra_functions=(name,))
        except LineCalcError as e:
            return self._fallback_error(function_body, e)
        return FunctionDefinitionNode(name, tuple(params), function_body.strip(), components, self.line_number)

    def _parse_solve(self, variable: str, rest: str) -> ASTNode:
        parts = _WHERE_CLAUSE.split(rest, maxsplit=1)
        equation = parts[0]
        position = find_assignment(equation)
        if position is None:
            return ErrorNode("Solve needs an equation with '='", "syntax", self.line_number)

        bindings: List[Tuple[str, Components]] = []
        if len(parts) > 1:
            for raw in parts[1].split(","):
                name, separator, value_text = raw.partition("=")
                name = normalize_name(name)
                if not separator or not is_valid_name(name) or not value_text.strip():
                    return ErrorNode(f"Invalid solve binding: '{raw.strip()}'", "syntax", self.line_number)
                try:
                    bindings.append((name, self._build(value_text.strip())))
                except LineCalcError as e:
                    return self._fallback_error(value_text, e)

        left_text = equation[:position].strip()
        right_text = equation[position + 1:].strip()
        if not left_text or not right_text:
            return ErrorNode("Solve needs an expression on both sides of '='", "syntax", self.line_number)
        try:
            left = self._build(left_text)
            right = self._build(right_text)
        except LineCalcError as e:
            return self._fallback_error(equation, e)
        return SolveNode(variable, equation.strip(), left, right, tuple(bindings), self.line_number)

    def _parse_assignment(self, name_text: str, value_text: str, triggered: bool) -> Optional[ASTNode]:
        name = normalize_name(name_text)
        if not is_valid_name(name):
            if name_text and (triggered or name in CONSTANTS):
                return ErrorNode(f"Invalid variable name: '{name_text}'", "syntax", self.line_number)
            return None
        if not value_text:
            return ErrorNode("Missing expression after '='", "syntax", self.line_number)

        try:
            expression_text, components, target = self._parse_rhs(value_text)
        except LineCalcError as e:
            return self._fallback_error(value_text, e)

        error = self._validate(components, target)
        if error is not None:
            return error

        if triggered:
            return CombinedAssignmentNode(name, value_text, components, target, self.line_number)
        parsed_value = None
        if target is None and len(components) == 1 and components[0].type == "literal":
            parsed_value = components[0].value
        return VariableAssignmentNode(name, value_text, components, parsed_value, target, self.line_number)

    def _parse_expression(self, body: str) -> ASTNode:
        try:
            _, components, target = self._parse_rhs(body)
        except LineCalcError as e:
            return self._fallback_error(body, e)
        error = self._validate(components, target)
        if error is not None:
            return error
        return ExpressionNode(body, components, target, self.line_number)

    def _parse_untriggered(self, body: str) -> ASTNode:
        """Lines without a trigger evaluate only when they clearly read as math."""
        try:
            _, components, target = self._parse_rhs(body)
        except LineCalcError:
            return PlainTextNode(body, self.line_number)
        if not self._reads_as_math(components, target):
            return PlainTextNode(body, self.line_number)
        error = self._validate(components, target)
        if error is not None:
            return error
        return ExpressionNode(body, components, target, self.line_number)

    def _reads_as_math(self, components: Components, target: Optional[ConversionTarget]) -> bool:
        literals = list(walk_literals(components))
        if not literals:
            return False
        for name in collect_variables(components):
            if self.context.lookup(name) is None and name not in CONSTANTS:
                return False
        if target is not None:
            return True
        if contains_operator(components, ("+", "-", "*", "/", "^")) or collect_function_calls(components):
            return True
        return len(components) == 1 and isinstance(literals[0].value, (UnitValue, CurrencyValue))


def parse_line(text: str, line_number: int = 0, context: Optional[EvaluationContext] = None) -> ASTNode:
    """Parse one line of a sheet into its syntax node."""
    context = context or EvaluationContext()
    try:
        return LineParser(text, line_number, context).parse()
    except LineCalcError as e:
        logger.debug(f"Line {line_number} failed to parse: {e.message}")
        return ErrorNode(e.message, "parse", line_number)
    except Exception as e:
        logger.error(f"Unexpected error parsing line {line_number}: {e}", exc_info=True)
        return ErrorNode(f"Could not parse line: {e}", "parse", line_number)
