import logging
import re
from typing import Dict, Iterable, List, Tuple

from pygments.console import codes, esc
from pygments.formatters.terminal import TERMINAL_COLORS
from pygments.lexers import get_lexer_by_name
from pygments.lexers.special import TextLexer
from pygments.token import Token
from pygments.util import ClassNotFound

from .models import DEFAULT_COLORS, DEFAULT_SYNTAX, is_style_spec

logger = logging.getLogger(__name__)

RESET = "\x1b[0m"


class StyleResolver:
    """Resolves short style keys (``ti``, ``me``) to SGR parameter strings."""

    def __init__(self, spec: str = DEFAULT_COLORS):
        if not is_style_spec(spec):
            spec = DEFAULT_COLORS
        self.styles: Dict[str, str] = {}
        for part in spec.split(":"):
            key, _, value = part.partition("=")
            self.styles[key] = value

    def resolve(self, key: str) -> str:
        return self.styles.get(key.lstrip("."), "")


class StyledText:
    """Text made of ``(sgr, text)`` fragments."""

    def __init__(self, fragments: Iterable[Tuple[str, str]] = ()):
        self.fragments: List[Tuple[str, str]] = [(s, t) for s, t in fragments if t]

    @classmethod
    def plain(cls, text: str, sgr: str = "") -> "StyledText":
        return cls([(sgr, text)])

    def __str__(self) -> str:
        return "".join(t for _, t in self.fragments)

    def __len__(self) -> int:
        return len(str(self))

    def __eq__(self, other) -> bool:
        if isinstance(other, StyledText):
            return self.fragments == other.fragments
        return NotImplemented

    def __repr__(self) -> str:
        return f"StyledText({self.fragments!r})"

    def style_matches(self, pattern: "re.Pattern", sgr: str) -> "StyledText":
        """Restyles every region of the text matched by ``pattern``."""
        text = str(self)
        styles = [s for s, t in self.fragments for _ in t]
        for m in pattern.finditer(text):
            for i in range(m.start(), m.end()):
                styles[i] = sgr
        out: List[Tuple[str, str]] = []
        for style, ch in zip(styles, text):
            if out and out[-1][0] == style:
                out[-1] = (style, out[-1][1] + ch)
            else:
                out.append((style, ch))
        return StyledText(out)

    def to_ansi(self) -> str:
        return "".join(
            f"\x1b[{s}m{t}{RESET}" if s else t for s, t in self.fragments
        )


def _sgr_for(color: str) -> str:
    parts = []
    if color.startswith("*"):
        parts.append("01")
        color = color.strip("*")
    if color.startswith("_"):
        parts.append("04")
        color = color.strip("_")
    code = codes.get(color)
    if code:
        parts.append(code[len(esc):-1])
    return ";".join(parts)


class SyntaxHighlighter:
    """Highlights source text with a pygments lexer and the terminal palette."""

    def __init__(self, syntax: str = DEFAULT_SYNTAX):
        try:
            self.lexer = get_lexer_by_name(syntax, stripnl=False, ensurenl=False)
        except ClassNotFound:
            logger.debug("No lexer named %r, highlighting disabled", syntax)
            self.lexer = TextLexer(stripnl=False, ensurenl=False)

    def highlight(self, text: str) -> StyledText:
        return StyledText(
            (self._style(ttype), value) for ttype, value in self.lexer.get_tokens(text)
        )

    def _style(self, ttype) -> str:
        colors = TERMINAL_COLORS.get(ttype)
        while colors is None and ttype is not Token:
            ttype = ttype.parent
            colors = TERMINAL_COLORS.get(ttype)
        if not colors:
            return ""
        return _sgr_for(colors[0])
