"""
Tokenizer (lexer) for calculator lines.

Literals are resolved while scanning: a number together with its unit,
currency or percent sign becomes a single VALUE token carrying its
``SemanticValue``, as do date and time literals. Identifiers may span
several words (``base price``); a phrase ends at a keyword or a function
name.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .config import DEFAULT_DISPLAY_OPTIONS, DisplayOptions, EngineLimits, check_line_length
from .errors import TokenizerError, UnitError
from .temporal import DurationValue, match_date_literal, match_duration_word, match_time_literal
from .units import CompositeUnit, UnitRegistry, default_registry
from .values import (
    CURRENCY_CODES,
    CURRENCY_SYMBOLS,
    CurrencyValue,
    NumberValue,
    PercentageValue,
    SemanticValue,
    UnitValue,
)

logger = logging.getLogger(__name__)


class TokenType(Enum):
    """Token types produced by the tokenizer."""

    # Literals with a resolved value
    VALUE = "VALUE"

    # Names and words
    IDENTIFIER = "IDENTIFIER"
    KEYWORD = "KEYWORD"

    # Operators
    OPERATOR = "OPERATOR"
    COMPARATOR = "COMPARATOR"
    PERCENT = "PERCENT"

    # Delimiters
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    LBRACKET = "LBRACKET"
    RBRACKET = "RBRACKET"
    COMMA = "COMMA"
    RANGE = "RANGE"

    # Special
    EOF = "EOF"


@dataclass
class Token:
    """A token produced by the tokenizer."""

    type: TokenType
    value: str
    position: int
    semantic: Optional[SemanticValue] = None


KEYWORDS = frozenset({"of", "on", "off", "as", "is", "to", "in", "per", "step", "where"})

OPERATOR_ALIASES = {
    "+": "+",
    "-": "-",
    "−": "-",
    "*": "*",
    "×": "*",
    "·": "*",
    "/": "/",
    "÷": "/",
    "^": "^",
}

COMPARATORS = (">=", "<=", "==", "!=", ">", "<", "=")

_NUMBER = re.compile(r"(?:\d+(?:\.\d+)?|\.\d+)(?:[eE][+-]?\d+)?")
_WORD = re.compile(r"[^\W\d]\w*")
_NEXT_WORD = re.compile(r"[ \t]+([^\W\d]\w*)")
_UNIT_TERM_RE = re.compile(r"[A-Za-z°µμΩ]+(?:\^(?:\(-?\d+\)|-?\d+)|[²³])?")
_UNIT_SEPARATOR = re.compile(r"\s*([*·/])\s*")
_CURRENCY_CODE = re.compile(r"\s*([A-Z]{3})\b")
_CALL_OPEN = re.compile(r"\s*\(")


def _is_whitespace(ch: str) -> bool:
    return ch in (" ", "\t", "\n", "\r")


class Tokenizer:
    """Tokenizer for one calculator line."""

    def __init__(
        self,
        source: str,
        function_names: Iterable[str] = (),
        options: Optional[DisplayOptions] = None,
        limits: Optional[EngineLimits] = None,
        registry: Optional[UnitRegistry] = None,
        variable_names: Iterable[str] = (),
    ):
        self._source = source
        self._function_names: FrozenSet[str] = frozenset(function_names)
        self._variable_names: FrozenSet[str] = frozenset(variable_names)
        self._options = options or DEFAULT_DISPLAY_OPTIONS
        self._limits = limits
        self._registry = registry or default_registry()
        self._position = 0
        self._tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """Tokenizes the source line and returns all tokens."""
        check_line_length(self._source, self._limits)

        while not self._is_at_end():
            self._scan_token()

        self._tokens.append(Token(TokenType.EOF, "", self._position))
        return self._tokens

    def _is_at_end(self) -> bool:
        return self._position >= len(self._source)

    def _peek(self) -> str:
        if self._is_at_end():
            return "\0"
        return self._source[self._position]

    def _peek_next(self) -> str:
        if self._position + 1 >= len(self._source):
            return "\0"
        return self._source[self._position + 1]

    def _add_token(
        self,
        token_type: TokenType,
        value: str,
        position: int,
        semantic: Optional[SemanticValue] = None,
    ) -> None:
        self._tokens.append(Token(token_type, value, position, semantic))

    def _add_value(self, semantic: SemanticValue, start: int, end: int) -> None:
        self._add_token(TokenType.VALUE, self._source[start:end].strip(), start, semantic)
        self._position = end

    def _scan_token(self) -> None:
        ch = self._peek()
        start = self._position

        if _is_whitespace(ch):
            self._position += 1
            return

        if ch.isdigit() or (ch == "." and self._peek_next().isdigit()):
            self._scan_numeric(start)
            return

        if ch in CURRENCY_SYMBOLS:
            self._scan_currency_prefix(start)
            return

        if _WORD.match(self._source, start):
            self._scan_word(start)
            return

        if self._source.startswith("...", start):
            raise TokenizerError("Unexpected '...'", start, self._source)
        if self._source.startswith("..", start):
            self._position += 2
            self._add_token(TokenType.RANGE, "..", start)
            return

        if self._source.startswith("**", start):
            self._position += 2
            self._add_token(TokenType.OPERATOR, "^", start)
            return

        for comparator in COMPARATORS:
            if self._source.startswith(comparator, start):
                self._position += len(comparator)
                self._add_token(TokenType.COMPARATOR, "==" if comparator == "=" else comparator, start)
                return

        single_char_tokens = {
            "(": TokenType.LPAREN,
            ")": TokenType.RPAREN,
            "[": TokenType.LBRACKET,
            "]": TokenType.RBRACKET,
            ",": TokenType.COMMA,
            "%": TokenType.PERCENT,
        }
        if ch in single_char_tokens:
            self._position += 1
            self._add_token(single_char_tokens[ch], ch, start)
            return

        if ch in OPERATOR_ALIASES:
            self._position += 1
            self._add_token(TokenType.OPERATOR, OPERATOR_ALIASES[ch], start)
            return

        raise TokenizerError(f"Unexpected character: '{ch}'", start, self._source)

    # --- Numbers and number-led literals ---

    def _scan_numeric(self, start: int) -> None:
        # Dates and times win over plain numbers ("2024-01-05", "9am")
        date = match_date_literal(self._source, start, self._options)
        if date is not None:
            self._add_value(date[0], start, date[1])
            return
        time = match_time_literal(self._source, start)
        if time is not None:
            self._add_value(time[0], start, time[1])
            return

        match = _NUMBER.match(self._source, start)
        if not match:
            raise TokenizerError("Invalid number", start, self._source)
        number = float(match.group(0))
        self._position = match.end()
        value, end = self._scan_number_suffix(number, match.end())
        self._add_value(value, start, end)

    def _scan_number_suffix(self, number: float, pos: int) -> Tuple[SemanticValue, int]:
        source = self._source

        # Percent sign, optionally separated by spaces
        percent = re.compile(r"\s*%").match(source, pos)
        if percent:
            return PercentageValue(number), percent.end()

        # Attached currency symbol: 10$, 10€
        if pos < len(source) and source[pos] in CURRENCY_SYMBOLS:
            return CurrencyValue(source[pos], number), pos + 1

        code = _CURRENCY_CODE.match(source, pos)
        if code and code.group(1) in CURRENCY_CODES:
            return CurrencyValue(code.group(1), number), code.end()

        duration = match_duration_word(source, pos)
        if duration is not None:
            part, end = duration
            return DurationValue({part: number}), end

        unit = self._match_unit(pos)
        if unit is not None:
            composite, end = unit
            return UnitValue(number, composite), end

        return NumberValue(number), pos

    def _match_unit(self, pos: int) -> Optional[Tuple[CompositeUnit, int]]:
        """Longest run of unit terms after a number that the registry accepts."""
        source = self._source
        match = re.compile(r"\s*").match(source, pos)
        cursor = match.end()

        # Collect (end, text-so-far) for every term boundary
        candidates: List[int] = []
        while True:
            term = _UNIT_TERM_RE.match(source, cursor)
            if not term:
                break
            word = re.match(r"[A-Za-z°µμΩ]+", term.group(0)).group(0)
            if word.lower() in KEYWORDS:
                break
            if word in self._function_names and _CALL_OPEN.match(source, term.end()):
                break
            candidates.append(term.end())
            separator = _UNIT_SEPARATOR.match(source, term.end())
            if not separator:
                break
            cursor = separator.end()

        start = match.end()
        for end in reversed(candidates):
            text = source[start:end]
            try:
                return self._registry.parse(text), end
            except UnitError:
                continue
        return None

    # --- Currency ---

    def _scan_currency_prefix(self, start: int) -> None:
        symbol = self._source[start]
        match = re.compile(r"\s*((?:\d+(?:\.\d+)?|\.\d+)(?:[eE][+-]?\d+)?)").match(
            self._source, start + 1
        )
        if not match:
            raise TokenizerError(f"Expected an amount after '{symbol}'", start, self._source)
        self._add_value(CurrencyValue(symbol, float(match.group(1))), start, match.end())

    # --- Words ---

    def _scan_word(self, start: int) -> None:
        date = match_date_literal(self._source, start, self._options)
        if date is not None:
            self._add_value(date[0], start, date[1])
            return

        word = _WORD.match(self._source, start).group(0)
        if word.lower() in KEYWORDS:
            self._position = start + len(word)
            self._add_token(TokenType.KEYWORD, word.lower(), start)
            return

        words = [(word, start + len(word))]
        end = start + len(word)
        while True:
            following = _NEXT_WORD.match(self._source, end)
            if not following or following.group(1).lower() in KEYWORDS:
                break
            words.append((following.group(1), following.end()))
            end = following.end()

        # A known variable wins over the generic phrase rule
        for count in range(len(words), 0, -1):
            name = " ".join(w for w, _ in words[:count])
            if name in self._variable_names:
                self._position = words[count - 1][1]
                self._add_token(TokenType.IDENTIFIER, name, start)
                return

        phrase = [words[0]]
        if word not in self._function_names:
            for candidate in words[1:]:
                if candidate[0] in self._function_names:
                    break
                phrase.append(candidate)

        self._position = phrase[-1][1]
        self._add_token(TokenType.IDENTIFIER, " ".join(w for w, _ in phrase), start)


def tokenize(
    source: str,
    function_names: Iterable[str] = (),
    options: Optional[DisplayOptions] = None,
    limits: Optional[EngineLimits] = None,
    variable_names: Iterable[str] = (),
) -> List[Token]:
    """Tokenizes a calculator line."""
    return Tokenizer(
        source, function_names, options, limits, variable_names=variable_names
    ).tokenize()
