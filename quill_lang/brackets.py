from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import MalformedInputError

QUOTES = ('"', "'")
DELIMS = frozenset("+-*=/")
TOP_LEVEL = -1


@dataclass
class BracketState:
    """Result of a single left-to-right pass over a buffer.

    Quote characters toggle a quoted region that suppresses every other
    rule. Escape sequences are not modelled: a backslash-escaped quote
    still closes the region.

    Operator and comma positions are kept per round group, keyed by the
    offset of the group's open bracket (``TOP_LEVEL`` outside any round
    group), and dropped when the group closes.
    """

    round: int = 0
    curly: int = 0
    square: int = 0
    rounds: int = 0
    curlies: int = 0
    round_open: List[int] = field(default_factory=list)
    curly_open: List[int] = field(default_factory=list)
    square_open: List[int] = field(default_factory=list)
    commas: Dict[int, int] = field(default_factory=dict)
    delims: Dict[int, int] = field(default_factory=dict)
    last_round_close: int = -1
    last_curly_close: int = -1
    last_semicolon: int = -1
    quote: Optional[str] = None

    @property
    def open_round(self) -> bool:
        return self.round > 0

    @property
    def open_curly(self) -> bool:
        return self.curly > 0

    @property
    def open_square(self) -> bool:
        return self.square > 0

    @property
    def open_quote(self) -> bool:
        return self.quote is not None

    @property
    def number_of_rounds(self) -> int:
        return self.rounds

    @property
    def last_open_round(self) -> int:
        return self.round_open[-1] if self.round_open else -1

    @property
    def last_open_curly(self) -> int:
        return self.curly_open[-1] if self.curly_open else -1

    @property
    def last_close_round(self) -> int:
        return self.last_round_close

    @property
    def last_close_curly(self) -> int:
        return self.last_curly_close

    @property
    def last_comma(self) -> int:
        return self.commas.get(self._group(), -1)

    @property
    def last_delim(self) -> int:
        return self.delims.get(self._group(), -1)

    def _group(self) -> int:
        return self.round_open[-1] if self.round_open else TOP_LEVEL

    def balanced(self) -> bool:
        return (
            self.round == 0
            and self.curly == 0
            and self.square == 0
            and not self.round_open
            and not self.curly_open
            and not self.square_open
        )


def scan(text: str) -> BracketState:
    """Scans ``text`` and returns its bracket state.

    Raises MalformedInputError on a closer without a matching opener.
    """
    state = BracketState()
    prev_char = " "
    for pos, ch in enumerate(text):
        if state.quote is not None:
            if ch == state.quote:
                state.quote = None
            continue
        if ch in QUOTES:
            state.quote = ch
            continue

        if ch == "(":
            state.round += 1
            state.round_open.append(pos)
        elif ch == ")":
            if not state.round_open:
                raise MalformedInputError("Unbalanced ')'", pos)
            state.round -= 1
            state.rounds += 1
            opened = state.round_open.pop()
            state.commas.pop(opened, None)
            state.delims.pop(opened, None)
            state.last_round_close = pos
        elif ch == "{":
            state.curly += 1
            state.curly_open.append(pos)
        elif ch == "}":
            if not state.curly_open:
                raise MalformedInputError("Unbalanced '}'", pos)
            state.curly -= 1
            state.curlies += 1
            state.curly_open.pop()
            state.last_curly_close = pos
        elif ch == "[":
            state.square += 1
            state.square_open.append(pos)
        elif ch == "]":
            if not state.square_open:
                raise MalformedInputError("Unbalanced ']'", pos)
            state.square -= 1
            state.square_open.pop()
        elif ch == ",":
            state.commas[state._group()] = pos
        elif ch in (";", "\n") or (ch == ">" and prev_char == "-"):
            state.last_semicolon = pos
        elif ch in DELIMS:
            state.delims[state._group()] = pos
        prev_char = ch
    return state


def index_of_opening_round(line: str) -> int:
    """Offset of the round bracket opening the call that ends ``line``.

    Walks backwards from a trailing ``)``; returns -1 when the line does
    not end with one or the bracket is never found.
    """
    if not line.endswith(")"):
        return -1
    quote = None
    round_depth = 0
    curly_depth = 0
    for i in range(len(line) - 1, -1, -1):
        ch = line[i]
        if quote is not None:
            if ch == quote:
                quote = None
            continue
        if ch in QUOTES:
            quote = ch
            continue
        if ch == "(":
            round_depth += 1
        elif ch == ")":
            round_depth -= 1
        elif ch == "{":
            curly_depth += 1
        elif ch == "}":
            curly_depth -= 1
        if round_depth == 0 and curly_depth == 0:
            return i
    return -1
