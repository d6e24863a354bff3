"""
Component tree construction.

Turns a token stream into nested component sequences. Each level has the
grammar::

    level     := listing ("where" COMPARATOR listing)?
    listing   := range ("," range)*
    range     := sequence (".." sequence ("step" sequence)?)?
    sequence  := operand (operator operand)*

Operator precedence inside a sequence is applied later by the evaluator.
Implicit multiplication is made explicit here: number-then-parenthesis,
parenthesis-then-parenthesis and literal-then-name.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .ast import (
    INDEX_FUNCTION,
    LIST_FUNCTION,
    RANGE_FUNCTION,
    WHERE_FUNCTION,
    Component,
    Components,
    FunctionComponent,
    LiteralComponent,
    OperatorComponent,
    ParenthesesComponent,
    VariableComponent,
)
from .errors import ParseError
from .temporal import DurationValue, is_time_dimension
from .tokenizer import Token, TokenType
from .units import CompositeUnit, default_registry
from .values import UnitValue

logger = logging.getLogger(__name__)

_OPERAND_TYPES = ("literal", "variable", "function", "parentheses")

_SEQUENCE_END = (
    TokenType.COMMA,
    TokenType.RANGE,
    TokenType.RPAREN,
    TokenType.RBRACKET,
    TokenType.EOF,
)


def normalize_name(name: str) -> str:
    """Collapse internal whitespace so ``base  price`` and ``base price`` match."""
    return re.sub(r"\s+", " ", name.strip())


class ComponentBuilder:
    """Recursive builder over a token list."""

    def __init__(self, tokens: Sequence[Token], source: str = "", function_names: Iterable[str] = ()):
        self._tokens = list(tokens)
        self._source = source
        self._function_names: Set[str] = set(function_names)
        self._index = 0

    def build(self) -> Components:
        components = self._parse_level()
        token = self._peek()
        if token.type == TokenType.RPAREN:
            raise ParseError("Unmatched closing parenthesis", token.position, self._source)
        if token.type == TokenType.RBRACKET:
            raise ParseError("Unmatched closing bracket", token.position, self._source)
        if token.type != TokenType.EOF:
            raise ParseError(f"Unexpected '{token.value}'", token.position, self._source)
        return components

    # --- Token helpers ---

    def _peek(self, offset: int = 0) -> Token:
        index = min(self._index + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.type != TokenType.EOF:
            self._index += 1
        return token

    def _check(self, token_type: TokenType, value: Optional[str] = None) -> bool:
        token = self._peek()
        return token.type == token_type and (value is None or token.value == value)

    def _match(self, token_type: TokenType, value: Optional[str] = None) -> bool:
        if self._check(token_type, value):
            self._advance()
            return True
        return False

    def _consume(self, token_type: TokenType, message: str) -> Token:
        if self._check(token_type):
            return self._advance()
        token = self._peek()
        raise ParseError(message, token.position, self._source)

    # --- Levels ---

    def _parse_level(self) -> Components:
        listing = self._parse_listing()
        if not self._check(TokenType.KEYWORD, "where"):
            return listing
        self._advance()
        if not self._check(TokenType.COMPARATOR):
            raise ParseError("Unsupported where predicate", self._peek().position, self._source)
        comparator = self._advance().value
        predicate = self._parse_listing()
        if not predicate:
            raise ParseError("Unsupported where predicate", self._peek().position, self._source)
        return (FunctionComponent(WHERE_FUNCTION, (listing, predicate), comparator),)

    def _parse_listing(self) -> Components:
        items = [self._parse_range()]
        while self._match(TokenType.COMMA):
            items.append(self._parse_range())
        if len(items) == 1:
            return items[0]
        if any(not item for item in items):
            raise ParseError("Empty list item", self._peek().position, self._source)
        return (FunctionComponent(LIST_FUNCTION, tuple(items)),)

    def _parse_range(self) -> Components:
        start = self._parse_sequence()
        if not self._check(TokenType.RANGE):
            return start
        position = self._advance().position
        end = self._parse_sequence()
        if not start or not end:
            raise ParseError("Range needs a start and an end", position, self._source)
        args: Tuple[Components, ...] = (start, end)
        if self._match(TokenType.KEYWORD, "step"):
            step = self._parse_sequence()
            if not step:
                raise ParseError("Missing range step", position, self._source)
            args = (start, end, step)
        return (FunctionComponent(RANGE_FUNCTION, args),)

    # --- Sequences ---

    def _parse_sequence(self) -> Components:
        components: List[Component] = []
        while True:
            token = self._peek()
            if token.type in _SEQUENCE_END:
                break
            if token.type == TokenType.KEYWORD and token.value in ("where", "step"):
                break
            if token.type == TokenType.COMPARATOR:
                break
            self._parse_item(components)
        _validate_sequence(components, self._source)
        return tuple(components)

    def _parse_item(self, components: List[Component]) -> None:
        token = self._advance()

        if token.type == TokenType.VALUE:
            literal = LiteralComponent(token.semantic, token.value)
            if self._merge_duration(components, literal):
                return
            self._append_operand(components, literal, implicit=False)
            return

        if token.type == TokenType.IDENTIFIER:
            self._append_operand(
                components, self._parse_identifier(token), implicit=_ends_with_literal(components)
            )
            return

        if token.type == TokenType.LPAREN:
            children = self._parse_level()
            self._consume(TokenType.RPAREN, "Missing closing parenthesis")
            implicit = bool(components) and components[-1].type in ("literal", "parentheses")
            self._append_operand(components, ParenthesesComponent(children), implicit=implicit)
            return

        if token.type == TokenType.LBRACKET:
            self._parse_bracket(components, token)
            return

        if token.type == TokenType.OPERATOR:
            components.append(OperatorComponent(token.value))
            return

        if token.type == TokenType.KEYWORD:
            if token.value in ("of", "on", "off"):
                components.append(OperatorComponent(token.value))
                return
            if token.value == "per":
                components.append(OperatorComponent("/"))
                self._parse_per_unit(components)
                return

        raise ParseError(f"Unexpected '{token.value}'", token.position, self._source)

    def _append_operand(self, components: List[Component], operand: Component, implicit: bool) -> None:
        if components and components[-1].type in _OPERAND_TYPES:
            if not implicit:
                raise ParseError(
                    f"Missing operator before '{_component_text(operand)}'", None, self._source
                )
            components.append(OperatorComponent("*"))
        components.append(operand)

    def _merge_duration(self, components: List[Component], literal: LiteralComponent) -> bool:
        """Fold ``1 day 2 hours`` into a single duration literal."""
        if not components or components[-1].type != "literal":
            return False
        previous = components[-1]
        left = _as_duration(previous.value)
        right = _as_duration(literal.value)
        if left is None or right is None:
            return False
        components[-1] = LiteralComponent(left.merged(right), f"{previous.text} {literal.text}")
        return True

    def _parse_identifier(self, token: Token) -> Component:
        name = normalize_name(token.value)
        if self._check(TokenType.LPAREN):
            self._advance()
            args = self._parse_arguments()
            return FunctionComponent(name, args)
        if name in self._function_names and self._starts_operand():
            # Single trailing argument without parentheses: "abs -4"
            return FunctionComponent(name, (self._parse_bare_argument(),))
        return VariableComponent(name)

    def _parse_arguments(self) -> Tuple[Components, ...]:
        if self._match(TokenType.RPAREN):
            return ()
        args = [self._parse_argument()]
        while self._match(TokenType.COMMA):
            args.append(self._parse_argument())
        self._consume(TokenType.RPAREN, "Missing closing parenthesis after arguments")
        if any(not arg for arg in args):
            raise ParseError("Empty function argument", self._peek().position, self._source)
        return tuple(args)

    def _parse_argument(self) -> Components:
        argument = self._parse_range()
        if self._match(TokenType.KEYWORD, "where"):
            if not self._check(TokenType.COMPARATOR):
                raise ParseError("Unsupported where predicate", self._peek().position, self._source)
            comparator = self._advance().value
            predicate = self._parse_range()
            return (FunctionComponent(WHERE_FUNCTION, (argument, predicate), comparator),)
        return argument

    def _starts_operand(self) -> bool:
        token = self._peek()
        if token.type in (TokenType.VALUE, TokenType.IDENTIFIER, TokenType.LBRACKET):
            return True
        return token.type == TokenType.OPERATOR and token.value == "-"

    def _parse_bare_argument(self) -> Components:
        components: List[Component] = []
        while self._match(TokenType.OPERATOR, "-"):
            components.append(OperatorComponent("-"))
        token = self._peek()
        if token.type not in (TokenType.VALUE, TokenType.IDENTIFIER, TokenType.LBRACKET):
            raise ParseError("Missing function argument", token.position, self._source)
        self._parse_item(components)
        return tuple(components)

    def _parse_bracket(self, components: List[Component], token: Token) -> None:
        inner = self._parse_level()
        self._consume(TokenType.RBRACKET, "Missing closing bracket")
        if components and components[-1].type in ("variable", "function", "parentheses"):
            target = components.pop()
            if not inner:
                raise ParseError("Missing index", token.position, self._source)
            components.append(FunctionComponent(INDEX_FUNCTION, ((target,), inner)))
            return
        if len(inner) == 1 and inner[0].type == "function" and inner[0].name == LIST_FUNCTION:
            literal = inner[0]
        else:
            literal = FunctionComponent(LIST_FUNCTION, (inner,) if inner else ())
        self._append_operand(components, literal, implicit=False)

    def _parse_per_unit(self, components: List[Component]) -> None:
        token = self._peek()
        if token.type != TokenType.IDENTIFIER:
            return
        unit = default_registry().get(token.value)
        if unit is None:
            return
        self._advance()
        components.append(LiteralComponent(UnitValue(1, CompositeUnit.of(unit)), token.value))


def _ends_with_literal(components: List[Component]) -> bool:
    return bool(components) and components[-1].type == "literal"


def _as_duration(value) -> Optional[DurationValue]:
    if isinstance(value, DurationValue):
        return value
    if is_time_dimension(value):
        return DurationValue.from_unit_value(value)
    return None


def _validate_sequence(components: Sequence[Component], source: str) -> None:
    """Operators need operands on both sides; only '-' and '+' may be unary."""
    expect_operand = True
    for component in components:
        if component.type == "operator":
            if expect_operand and component.operator not in ("-", "+"):
                raise ParseError(f"Unexpected operator '{component.operator}'", None, source)
            expect_operand = True
        else:
            expect_operand = False
    if components and expect_operand:
        raise ParseError("Expression ends with an operator", None, source)


def _component_text(component: Component) -> str:
    return components_to_text((component,))


def components_to_text(components: Iterable[Component]) -> str:
    """Canonical text for a component sequence."""
    parts = []
    for component in components:
        kind = component.type
        if kind == "literal":
            parts.append(component.text)
        elif kind == "variable":
            parts.append(component.name)
        elif kind == "operator":
            parts.append(component.operator)
        elif kind == "parentheses":
            parts.append(f"({components_to_text(component.children)})")
        elif component.name == LIST_FUNCTION:
            parts.append(", ".join(components_to_text(arg) for arg in component.args))
        elif component.name == RANGE_FUNCTION:
            text = f"{components_to_text(component.args[0])}..{components_to_text(component.args[1])}"
            if len(component.args) > 2:
                text += f" step {components_to_text(component.args[2])}"
            parts.append(text)
        elif component.name == INDEX_FUNCTION:
            parts.append(
                f"{components_to_text(component.args[0])}[{components_to_text(component.args[1])}]"
            )
        elif component.name == WHERE_FUNCTION:
            parts.append(
                f"{components_to_text(component.args[0])} where "
                f"{component.modifier} {components_to_text(component.args[1])}"
            )
        else:
            args = ", ".join(components_to_text(arg) for arg in component.args)
            parts.append(f"{component.name}({args})")
    return " ".join(parts)


def collect_variables(components: Iterable[Component]) -> Set[str]:
    """Names referenced anywhere in the tree, through groups and arguments."""
    names: Set[str] = set()
    for component in components:
        if component.type == "variable":
            names.add(component.name)
        elif component.type == "parentheses":
            names |= collect_variables(component.children)
        elif component.type == "function":
            for arg in component.args:
                names |= collect_variables(arg)
    return names


def collect_function_calls(components: Iterable[Component]) -> Set[str]:
    names: Set[str] = set()
    for component in components:
        if component.type == "parentheses":
            names |= collect_function_calls(component.children)
        elif component.type == "function":
            if not component.name.startswith("__"):
                names.add(component.name)
            for arg in component.args:
                names |= collect_function_calls(arg)
    return names


def walk_literals(components: Iterable[Component]):
    """Yield every literal component in the tree."""
    for component in components:
        if component.type == "literal":
            yield component
        elif component.type == "parentheses":
            yield from walk_literals(component.children)
        elif component.type == "function":
            for arg in component.args:
                yield from walk_literals(arg)


def contains_operator(components: Iterable[Component], operators: Sequence[str]) -> bool:
    for component in components:
        if component.type == "operator" and component.operator in operators:
            return True
        if component.type == "parentheses" and contains_operator(component.children, operators):
            return True
        if component.type == "function" and any(
            contains_operator(arg, operators) for arg in component.args
        ):
            return True
    return False


def build_components(
    tokens: Sequence[Token], source: str = "", function_names: Iterable[str] = ()
) -> Components:
    """Builds the component tree for a tokenized expression."""
    return ComponentBuilder(tokens, source, function_names).build()
