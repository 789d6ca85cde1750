"""prompt_toolkit front end for a ScriptEngine session."""

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.application import get_app
from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.lexers import PygmentsLexer
from prompt_toolkit.styles import Style
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .diagnostics import Diagnostic

if TYPE_CHECKING:
    from .session import ScriptEngine

logger = logging.getLogger(__name__)

PROMPT_STYLE = Style.from_dict(
    {
        "prompt": "#00aa00 bold",
        "bottom-toolbar": "noreverse",
    }
)


class QuillCompleter(Completer):
    """Feeds engine completion candidates to prompt_toolkit."""

    def __init__(self, engine: "ScriptEngine"):
        self.engine = engine

    def get_completions(
        self, document: Document, complete_event: CompleteEvent
    ) -> Iterable[Completion]:
        cursor = document.cursor_position
        for candidate in self.engine.get_completions(document.text, cursor):
            yield Completion(
                candidate.value,
                start_position=candidate.start - cursor,
                display=candidate.display,
                display_meta=candidate.kind.value,
            )


def render_lines(diagnostic: Diagnostic) -> str:
    return "\n".join(text.to_ansi() for text in diagnostic.lines)


class StatusLine:
    """Bottom toolbar text: the method being called, else the syntax check."""

    def __init__(self, engine: "ScriptEngine"):
        self.engine = engine

    def __call__(self, document: Document) -> Optional[ANSI]:
        head = document.text_before_cursor
        if not head.strip():
            return None
        diagnostic = self.engine.describe_method(head)
        if diagnostic.empty and head.rstrip().endswith(")"):
            diagnostic = self.engine.get_diagnostic(head.rstrip())
        if diagnostic.empty or not diagnostic.lines:
            return None
        return ANSI(render_lines(diagnostic))


def lexer_for(syntax: str) -> Optional[PygmentsLexer]:
    try:
        return PygmentsLexer(type(get_lexer_by_name(syntax)))
    except ClassNotFound:
        logger.debug("No lexer named %r, input highlighting disabled", syntax)
        return None


def create_session(engine: "ScriptEngine") -> PromptSession:  # pragma: no cover
    status = StatusLine(engine)
    return PromptSession(
        completer=QuillCompleter(engine),
        complete_while_typing=False,
        lexer=lexer_for(engine.options().syntax),
        bottom_toolbar=lambda: status(get_app().current_buffer.document),
        style=PROMPT_STYLE,
    )
