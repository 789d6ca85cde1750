import os
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .interpreter import QuillInterpreter

OPTIONS_VARIABLE = "QUILL_OPTIONS"
CANONICAL_NAMES = "canonicalNames"
RESTRICTED_COMPLETION = "restrictedCompletion"
NO_SYNTAX_CHECK = "noSyntaxCheck"
SYNTAX = "syntax"
COLORS = "colors"

DEFAULT_SYNTAX = "python"
DEFAULT_COLORS = "ti=1;34:me=31"

_STYLE_SPEC = re.compile(r"^[a-z]{2}=[0-9;]*(:[a-z]{2}=[0-9;]*)*$")


def is_style_spec(value: Any) -> bool:
    return isinstance(value, str) and bool(_STYLE_SPEC.match(value))


@dataclass
class ConsoleOptions:
    canonical_names: bool = False
    restricted_completion: bool = False
    no_syntax_check: bool = False
    syntax: str = DEFAULT_SYNTAX
    colors: str = DEFAULT_COLORS

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> "ConsoleOptions":
        options = options if isinstance(options, Mapping) else {}
        colors = options.get(COLORS, os.environ.get("QUILL_COLORS"))
        return cls(
            canonical_names=bool(options.get(CANONICAL_NAMES, False)),
            restricted_completion=bool(options.get(RESTRICTED_COMPLETION, False)),
            no_syntax_check=bool(options.get(NO_SYNTAX_CHECK, False)),
            syntax=str(options.get(SYNTAX, DEFAULT_SYNTAX)),
            colors=colors if is_style_spec(colors) else DEFAULT_COLORS,
        )


@dataclass(frozen=True)
class ReturnValue:
    value: Any


@dataclass(frozen=True)
class LoopSignal:
    kind: str  # "break" or "continue"


@dataclass(eq=False)
class Closure:
    params: List[str]
    body: List[Any]
    interpreter: "QuillInterpreter" = field(repr=False)
    implicit_it: bool = False

    def __call__(self, *args):
        return self.interpreter.invoke_closure(self, list(args))

    def call(self, *args):
        return self(*args)
