import re

from .brackets import BracketState

_CONSTRUCTOR = re.compile(r"(.*\s+new|.*\(new|.*\{new|.*=new|.*,new|new)")


def _rightmost(*positions: int) -> int:
    return max(max(positions), -1)


def statement_begin(state: BracketState) -> int:
    """Offset just before the statement the cursor is in, or -1."""
    return _rightmost(
        state.last_delim,
        state.last_open_round,
        state.last_comma,
        state.last_open_curly,
        state.last_close_curly,
        state.last_semicolon,
    )


def statement_begin_in(buffer: str, word: str, state: BracketState) -> int:
    """Same as statement_begin, relative to the last occurrence of ``word``."""
    idx = buffer.rfind(word)
    if idx < 0:
        return -1
    return _rightmost(
        state.last_delim - idx,
        state.last_open_round - idx,
        state.last_comma - idx,
        state.last_open_curly - idx,
        state.last_close_curly - idx,
        state.last_semicolon - idx,
    )


def constructor_statement(fragment: str) -> bool:
    return _CONSTRUCTOR.fullmatch(fragment) is not None
