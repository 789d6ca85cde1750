import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from lark import Tree
from lark.exceptions import (
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
)

from .catalog import SymbolCatalog
from .exceptions import CompilationFailedError, SyntaxErrorInfo
from .grammar import get_parser
from .interfaces import IOHandler, NullIO
from .interpreter import QuillInterpreter
from .scope import ScopeManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class CompileFailure:
    error: CompilationFailedError


@dataclass(frozen=True)
class RuntimeFailure:
    error: BaseException


Outcome = Union[Ok, CompileFailure, RuntimeFailure]


def _end_position(source: str):
    lines = source.split("\n")
    return len(lines), len(lines[-1]) + 1


def describe_syntax_error(source: str, err: UnexpectedInput) -> SyntaxErrorInfo:
    if isinstance(err, UnexpectedEOF) or (
        isinstance(err, UnexpectedToken) and err.token.type == "$END"
    ):
        line, column = _end_position(source)
        return SyntaxErrorInfo(line, column, "Unexpected end of input")
    line, column = err.line, err.column
    if line is None or line < 1:
        line, column = _end_position(source)
    if isinstance(err, UnexpectedCharacters):
        message = f"Unexpected character: '{err.char}'"
    elif isinstance(err, UnexpectedToken):
        message = f"Unexpected input: '{err.token}'"
    else:
        message = "Unexpected input"
    return SyntaxErrorInfo(line, column, message)


class QuillEvaluator:
    """Compiles and runs Quill source, reporting a typed Outcome.

    Every compilation gets a fresh script name (``ScriptN.quill``) that
    appears in compile failure messages.
    """

    _scripts = itertools.count(1)

    def __init__(self, catalog: Optional[SymbolCatalog] = None):
        self.catalog = catalog if catalog is not None else SymbolCatalog()

    def compile(self, source: str) -> Tree:
        script = f"Script{next(self._scripts)}.quill"
        try:
            return get_parser().parse(source)
        except UnexpectedInput as e:
            info = describe_syntax_error(source, e)
            raise CompilationFailedError(
                self._startup_failed(script, source, info), [info]
            ) from e

    def _startup_failed(self, script: str, source: str, info: SyntaxErrorInfo) -> str:
        lines = source.split("\n")
        text = lines[info.line - 1] if 0 < info.line <= len(lines) else ""
        caret = " " * max(info.column - 1, 0) + "^"
        return (
            "startup failed:\n"
            f"{script}: {info.line}: {info.message} @ line {info.line}, column {info.column}.\n"
            f"   {text}\n"
            f"   {caret}\n"
            "\n"
            "1 error\n"
        )

    def execute(
        self,
        source: str,
        scope: ScopeManager,
        io_handler: Optional[IOHandler] = None,
    ) -> Outcome:
        try:
            tree = self.compile(source)
        except CompilationFailedError as e:
            return CompileFailure(e)
        interpreter = QuillInterpreter(
            scope=scope,
            catalog=self.catalog.fork(),
            io_handler=io_handler if io_handler is not None else NullIO(),
        )
        try:
            return Ok(interpreter.run(tree))
        except Exception as e:
            logger.debug("Evaluation failed: %s: %s", type(e).__name__, e)
            return RuntimeFailure(e)
