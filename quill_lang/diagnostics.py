import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Pattern

from .boundary import constructor_statement, statement_begin
from .brackets import index_of_opening_round, scan
from .completer import ParsedLine
from .evaluator import CompileFailure, RuntimeFailure
from .exceptions import MissingPropertyError, NullReferenceError, SyntaxErrorInfo
from .models import ConsoleOptions
from .styles import StyledText, StyleResolver, SyntaxHighlighter

if TYPE_CHECKING:
    from .inspector import Inspector

logger = logging.getLogger(__name__)

BLOCK_HEADER = re.compile(r"\s*(for|while|else\s+if|if)\s*\(.*")
OPAQUE_HEADER = re.compile(r"\s*(switch|catch)\s*\(.*")
PARAMETER_LIST = re.compile(r"\(\s*\w+\s*[,\s*\w+]*\)")
EMPTY_PARAMETER_LIST = re.compile(r"\(\s*\)")
MESSAGE_HEADER = re.compile(r"^[a-zA-Z() ]{3,}:(\s+|$)")
SCRIPT_LINE = re.compile(r".*Script[0-9]+\.quill: .*")
TYPE_CALL = re.compile(r"[A-Z]+\w+\s*\(.*")

WRAP_AT = 80
HARD_WRAP_AT = 100


@dataclass
class Diagnostic:
    """Description lines plus an optional caret offset or name to highlight."""

    lines: List[StyledText] = field(default_factory=list)
    error_index: int = -1
    error_pattern: Optional[Pattern] = None

    @property
    def empty(self) -> bool:
        return not self.lines and self.error_index < 0 and self.error_pattern is None


def qualified_name(cls: type) -> str:
    module = getattr(cls, "__module__", None) or ""
    if module == "builtins":
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"


def wrap_line(line: str) -> List[str]:
    chunks = []
    start = 0
    for i in range(WRAP_AT, len(line)):
        if (line[i] == " " and i - start > WRAP_AT) or i - start > HARD_WRAP_AT:
            chunks.append(line[start:i])
            start = i
    chunks.append(line[start:])
    return chunks


def format_exception_message(
    exc: BaseException,
    highlighter: SyntaxHighlighter,
    resolver: StyleResolver,
) -> List[StyledText]:
    """Highlighted class name, then the message wrapped and styled."""
    out = [highlighter.highlight(qualified_name(type(exc)))]
    message = str(exc)
    if not message:
        return out
    me, ti = resolver.resolve(".me"), resolver.resolve(".ti")
    for line in re.split(r"\r?\n", message):
        if not line.strip():
            continue
        for i, chunk in enumerate(wrap_line(line)):
            text = StyledText.plain(chunk, me)
            if i == 0:
                text = text.style_matches(MESSAGE_HEADER, ti)
            out.append(text)
    return out


def error_index(
    message: str, info: SyntaxErrorInfo, equation_lines: List[str], cutted_size: int
) -> int:
    """Absolute buffer offset of a syntax error reported inside a snippet.

    The compiler message quotes the failing source line right after the
    ``ScriptN.quill:`` line; the lengths of the snippet lines before it
    are added to where the snippet starts in the buffer.
    """
    source_line = None
    lines = message.split("\n")
    for i, line in enumerate(lines):
        if SCRIPT_LINE.fullmatch(line) and i + 1 < len(lines):
            source_line = lines[i + 1].strip()
            break
    total = 0
    if source_line is not None:
        for line in equation_lines:
            if source_line in line:
                break
            total += len(line) + 1
    return cutted_size + total + info.column - 1


def is_null_failure(error: BaseException) -> bool:
    if isinstance(error, NullReferenceError):
        return True
    return isinstance(error, (AttributeError, TypeError)) and "NoneType" in str(error)


def check_syntax(
    inspector: "Inspector", head: str, options: Optional[ConsoleOptions] = None
) -> Diagnostic:
    """Runs the call expression ending ``head`` and maps any failure back.

    Returns an empty diagnostic when ``head`` does not end with a closed
    call or the expression runs cleanly.
    """
    options = options or ConsoleOptions()
    out = Diagnostic()
    opening = index_of_opening_round(head)
    if opening == -1:
        return out
    inspector.load_statement_vars(head)
    eqsep = statement_begin(scan(head[:opening]))
    end = len(head)
    rest = head[eqsep + 1 :]
    if eqsep > 0 and constructor_statement(head[:eqsep]):
        eqsep = head[:eqsep].rfind("new") - 1
    elif BLOCK_HEADER.fullmatch(rest):
        eqsep = opening
        end -= 1
    elif OPAQUE_HEADER.fullmatch(rest):
        return out

    raw = head[eqsep + 1 : end]
    equation = raw.strip()
    if PARAMETER_LIST.fullmatch(equation) or EMPTY_PARAMETER_LIST.fullmatch(equation):
        return out
    equation_lines = re.split(r"\r?\n", equation)
    cutted_size = eqsep + 1 + len(raw) - len(raw.lstrip())

    outcome = inspector.execute(equation)
    highlighter = SyntaxHighlighter(options.syntax)
    resolver = StyleResolver(options.colors)
    if isinstance(outcome, CompileFailure):
        error = outcome.error
        for info in error.errors:
            out.error_index = error_index(str(error), info, equation_lines, cutted_size)
        out.lines = format_exception_message(error, highlighter, resolver)
    elif isinstance(outcome, RuntimeFailure):
        error = outcome.error
        if is_null_failure(error):
            logger.debug("Null failure ignored: %s", error)
            return out
        out.lines = format_exception_message(error, highlighter, resolver)
        if isinstance(error, MissingPropertyError):
            out.error_pattern = re.compile(rf"\b{re.escape(error.property)}\b")
        elif isinstance(error, re.error) and isinstance(error.pattern, str):
            idx = head.rfind(error.pattern)
            if idx >= 0 and error.pos is not None:
                out.error_index = idx + error.pos
    return out


# --- Method descriptions ---


def trim_name(name: str) -> str:
    idx = name.rfind("(")
    return name[:idx] if idx > 0 else name


def annotation_name(annotation: Any, canonical: bool) -> str:
    if inspect.isclass(annotation):
        return qualified_name(annotation) if canonical else annotation.__name__
    text = annotation if isinstance(annotation, str) else repr(annotation)
    text = text.replace("typing.", "")
    if canonical:
        return text
    return re.sub(r"\b(?:\w+\.)+(\w+)", r"\1", text)


def _parameter(param: inspect.Parameter, canonical: bool) -> str:
    text = param.name
    if param.kind is inspect.Parameter.VAR_POSITIONAL:
        text = "*" + text
    elif param.kind is inspect.Parameter.VAR_KEYWORD:
        text = "**" + text
    if param.annotation is not inspect.Parameter.empty:
        text += ": " + annotation_name(param.annotation, canonical)
    if param.default is not inspect.Parameter.empty:
        text += "=" + repr(param.default)
    return text


def format_signature(
    name: str, target: Any, canonical: bool, drop_first: bool = False
) -> str:
    try:
        signature = inspect.signature(target)
    except (TypeError, ValueError):
        return f"{name}(...)"
    params = list(signature.parameters.values())
    if drop_first and params and params[0].kind in (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        params = params[1:]
    text = f"{name}({', '.join(_parameter(p, canonical) for p in params)})"
    if signature.return_annotation is not inspect.Signature.empty:
        text += " -> " + annotation_name(signature.return_annotation, canonical)
    return text


def method_signatures(cls: type, method_name: str, canonical: bool) -> List[str]:
    """Signatures of ``method_name`` along the MRO, most derived first."""
    out: List[str] = []
    for klass in inspect.getmro(cls):
        raw = vars(klass).get(method_name)
        if raw is None:
            continue
        if isinstance(raw, staticmethod):
            text = "static " + format_signature(method_name, raw.__func__, canonical)
        elif isinstance(raw, classmethod):
            text = "static " + format_signature(
                method_name, raw.__func__, canonical, drop_first=True
            )
        elif callable(raw):
            text = format_signature(method_name, raw, canonical, drop_first=True)
        else:
            continue
        if text not in out:
            out.append(text)
    return out


def constructor_signature(cls: type, canonical: bool) -> str:
    name = qualified_name(cls) if canonical else cls.__name__
    return format_signature(name, cls, canonical)


def describe_method(
    inspector: "Inspector", head: str, options: Optional[ConsoleOptions] = None
) -> Diagnostic:
    """Signatures of the method or constructor being called at the end of ``head``."""
    options = options or ConsoleOptions()
    out = Diagnostic()
    buffer = head[:-1] if head.endswith("(") else head
    eqsep = statement_begin(scan(buffer))
    varsep = buffer.rfind(".")
    cls = None
    constructor = False
    method_name = None
    if varsep > 0 and varsep > eqsep:
        inspector.load_statement_vars(buffer)
        method_name = buffer[varsep + 1 :]
        ior = index_of_opening_round(buffer[:varsep])
        if 0 < ior < eqsep:
            eqsep = ior
        receiver = buffer[eqsep + 1 : varsep].strip()
        if TYPE_CALL.fullmatch(receiver):
            receiver = "new " + receiver
        if not options.restricted_completion or scan(receiver).number_of_rounds == 0:
            cls = inspector.evaluate_type(receiver)
    else:
        words = ParsedLine.parse(head).words
        if (
            len(words) > 1
            and constructor_statement(words[-2])
            and TYPE_CALL.fullmatch(words[-1])
            and scan(words[-1]).open_round
        ):
            constructor = True
            cls = inspector.evaluate_type(trim_name(words[-1]))
    if cls is None:
        return out

    highlighter = SyntaxHighlighter(options.syntax)
    canonical = options.canonical_names
    out.lines.append(highlighter.highlight(qualified_name(cls)))
    if constructor:
        signatures = [constructor_signature(cls, canonical)]
    else:
        signatures = method_signatures(cls, method_name, canonical)
    out.lines.extend(highlighter.highlight(s) for s in signatures)
    return out
