import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

from .boundary import constructor_statement, statement_begin, statement_begin_in
from .brackets import QUOTES, scan
from .candidates import (
    CandidateKind,
    CompletionCandidate,
    do_candidates,
    domain_entries,
)
from .exceptions import ClassResolutionError, MalformedInputError
from .inspector import Inspector

if TYPE_CHECKING:
    from .session import SessionContext

logger = logging.getLogger(__name__)

KEY_WORDS = ("print", "println")
FIRST_WORDS = ("def", "import", "print", "println")
_NEW_WORD = re.compile(r"(new|\w+=new)")
_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")


@dataclass
class ParsedLine:
    """A buffer cut at the cursor and split into whitespace separated words.

    Whitespace inside quotes does not split. The last word is the one
    being completed; it is empty when the cursor follows whitespace.
    """

    line: str
    cursor: int
    words: List[str] = field(default_factory=list)
    word_start: int = 0

    @classmethod
    def parse(cls, line: str, cursor: Optional[int] = None) -> "ParsedLine":
        cursor = len(line) if cursor is None else max(0, min(cursor, len(line)))
        head = line[:cursor]
        words: List[str] = []
        current = ""
        start = 0
        quote = None
        for pos, ch in enumerate(head):
            if quote is not None:
                current += ch
                if ch == quote:
                    quote = None
                continue
            if ch in QUOTES:
                quote = ch
            elif ch.isspace():
                if current:
                    words.append(current)
                current = ""
                start = pos + 1
                continue
            if not current:
                start = pos
            current += ch
        words.append(current)
        return cls(line, cursor, words, start)

    @property
    def word(self) -> str:
        return self.words[-1]

    @property
    def word_index(self) -> int:
        return len(self.words) - 1

    @property
    def buffer(self) -> str:
        return self.line[: self.cursor]

    @property
    def span(self) -> Tuple[int, int]:
        return self.word_start, self.cursor


def get_completions(
    context: "SessionContext", buffer: str, cursor: Optional[int] = None
) -> List[CompletionCandidate]:
    """Completion candidates for ``buffer`` at ``cursor``; never raises."""
    line = ParsedLine.parse(buffer, cursor)
    out: List[CompletionCandidate] = []
    try:
        if line.word_index == 0:
            do_candidates(out, FIRST_WORDS, "", line.word, CandidateKind.PLAIN, line.span)
        first = line.words[0]
        if first in ("import", "def") and line.word_index > 0:
            if line.word_index == 1:
                if first == "import":
                    complete_package(context, line, CandidateKind.PACKAGE, out)
                else:
                    do_candidates(out, context.methods, "", line.word, CandidateKind.PLAIN, line.span)
            return out
        complete_script(context, line, out)
    except MalformedInputError as e:
        logger.debug("Malformed input at %d: %s", e.position, e)
        return []
    except Exception as e:
        logger.debug("Completion failed: %s: %s", type(e).__name__, e)
        return []
    return out


def complete_package(
    context: "SessionContext",
    line: ParsedLine,
    kind: CandidateKind,
    out: List[CompletionCandidate],
) -> None:
    word = line.word
    param, cur_buf = word, ""
    idx = word.rfind(".")
    if idx > -1:
        param = word[idx + 1 :]
        cur_buf = word[: idx + 1]
    entries = domain_entries(cur_buf, kind, context.registry)
    do_candidates(out, entries, cur_buf, param, kind, line.span, entries)


def _member_candidates(
    context: "SessionContext",
    out: List[CompletionCandidate],
    cls: Optional[type],
    cur_buf: str,
    hint: str,
    span: Tuple[int, int],
    static: bool = False,
    extra_fields=(),
) -> None:
    if cls is None:
        return
    members = context.registry.members_of(cls)
    do_candidates(out, members.methods(static), cur_buf, hint, CandidateKind.METHOD, span)
    do_candidates(
        out, set(members.fields(static)) | set(extra_fields), cur_buf, hint, CandidateKind.PLAIN, span
    )


def _instance_attributes(value) -> List[str]:
    try:
        return [k for k in vars(value) if isinstance(k, str) and not k.startswith("_")]
    except TypeError:
        return []


def _constructor_position(line: ParsedLine) -> bool:
    if line.word_index == 1 and _NEW_WORD.fullmatch(line.words[0]):
        return True
    return line.word_index > 1 and constructor_statement(line.words[line.word_index - 1])


def complete_script(
    context: "SessionContext", line: ParsedLine, out: List[CompletionCandidate]
) -> None:
    restricted = context.options.restricted_completion
    word = line.word
    buffer = line.buffer
    span = line.span
    state = scan(buffer)
    if state.open_quote:
        return
    inspector = Inspector(context)
    inspector.load_statement_vars(buffer)
    eqsep = statement_begin(state)

    if state.number_of_rounds > 0 and state.last_close_round > eqsep:
        # receiver is a call result: expr().member
        varsep = buffer.rfind(".")
        if varsep > 0 and varsep > state.last_close_round and not restricted:
            cls = inspector.evaluate_type(buffer[eqsep + 1 : varsep])
            vs = word.rfind(".")
            _member_candidates(context, out, cls, word[: vs + 1], word[vs + 1 :], span)
        return

    if "(" not in word and _constructor_position(line):
        _complete_constructor(context, line, out)
        return

    add_key_words = eqsep in (state.last_semicolon, state.last_open_curly)
    varsep = word.rfind(".")
    eqsep = statement_begin_in(buffer, word, state)
    param = word[eqsep + 1 :]
    if varsep < 0 or varsep < eqsep:
        cur_buf = word[: eqsep + 1]
        if not param.strip():
            return
        if add_key_words:
            do_candidates(out, KEY_WORDS, cur_buf, param, CandidateKind.METHOD, span)
        do_candidates(out, inspector.variables(), cur_buf, param, CandidateKind.PLAIN, span)
        statics = context.catalog.static_types()
        do_candidates(out, statics, cur_buf, param, CandidateKind.STATIC_MEMBER, span, statics)
        return

    first_method = param.find(".") == param.rfind(".")
    var = param[: param.find(".")]
    cur_buf = word[: varsep + 1]
    hint = word[varsep + 1 :]
    receiver = word[eqsep + 1 : varsep]
    if var in context.catalog:
        if first_method:
            _member_candidates(context, out, context.catalog.resolve(var), cur_buf, hint, span, static=True)
        elif not restricted:
            _member_candidates(context, out, inspector.evaluate_type(receiver), cur_buf, hint, span)
    elif inspector.has_variable(var):
        if first_method:
            value = inspector.get_variable(var)
            if value is not None:
                _member_candidates(
                    context, out, type(value), cur_buf, hint, span,
                    extra_fields=_instance_attributes(value),
                )
        elif not restricted:
            _member_candidates(context, out, inspector.evaluate_type(receiver), cur_buf, hint, span)
    else:
        _complete_static_path(context, receiver, cur_buf, hint, span, out)


def _complete_static_path(
    context: "SessionContext",
    receiver: str,
    cur_buf: str,
    hint: str,
    span: Tuple[int, int],
    out: List[CompletionCandidate],
) -> None:
    registry = context.registry
    try:
        cls = registry.resolve_by_name(receiver)
    except ClassResolutionError:
        cls = None
    if cls is not None:
        _member_candidates(context, out, cls, cur_buf, hint, span, static=True)
        return
    entries = domain_entries(receiver + ".", CandidateKind.STATIC_MEMBER, registry)
    do_candidates(out, entries, cur_buf, hint, CandidateKind.STATIC_MEMBER, span, entries)
    try:
        functions = registry.module_members(receiver)
    except ClassResolutionError as e:
        logger.debug("No module %s: %s", receiver, e.cause or e)
        return
    do_candidates(out, functions.static_methods, cur_buf, hint, CandidateKind.METHOD, span)
    do_candidates(out, functions.static_fields, cur_buf, hint, CandidateKind.PLAIN, span)


def _complete_constructor(
    context: "SessionContext", line: ParsedLine, out: List[CompletionCandidate]
) -> None:
    word = line.word
    registry = context.registry
    constructors = context.catalog.constructors()
    if _LOWER.match(word):
        idx = word.rfind(".")
        if idx > 0 and _UPPER.match(word[idx + 1 :]):
            try:
                registry.resolve_by_name(word)
                do_candidates(out, ["("], word, "(", CandidateKind.PLAIN, line.span)
            except ClassResolutionError:
                param = word[: idx + 1]
                entries = domain_entries(param, CandidateKind.CONSTRUCTOR, registry)
                do_candidates(
                    out, entries, param, word[idx + 1 :], CandidateKind.CONSTRUCTOR, line.span, entries
                )
        else:
            complete_package(context, line, CandidateKind.CONSTRUCTOR, out)
            if idx < 0:
                do_candidates(
                    out, constructors, "", word, CandidateKind.CONSTRUCTOR, line.span, constructors
                )
    else:
        do_candidates(out, constructors, "", word, CandidateKind.CONSTRUCTOR, line.span, constructors)
