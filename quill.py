"""Quill entrypoint module exposing the public API and CLI."""

import argparse
import logging
import os
import sys

from quill_lang import (
    QUILL_GRAMMAR,
    ConsoleIO,
    ConsoleOptions,
    Diagnostic,
    QuillError,
    ScriptEngine,
    format_value,
)
from quill_lang.console import create_session
from quill_lang.models import NO_SYNTAX_CHECK, OPTIONS_VARIABLE, RESTRICTED_COMPLETION
from quill_lang.styles import StyleResolver

__all__ = [
    "QUILL_GRAMMAR",
    "QuillError",
    "ScriptEngine",
    "ConsoleOptions",
    "render_diagnostic",
    "run_command",
    "run_repl",
    "main",
]

PROMPT = "quill> "


def render_diagnostic(diagnostic: Diagnostic, head: str, color: bool = True) -> str:
    lines = []
    if diagnostic.error_index >= 0:
        lines.append(head)
        lines.append(" " * diagnostic.error_index + "^")
    if diagnostic.error_pattern is not None:
        match = diagnostic.error_pattern.search(head)
        if match:
            lines.append(head)
            lines.append(" " * match.start() + "~" * (match.end() - match.start()))
    for text in diagnostic.lines:
        lines.append(text.to_ansi() if color else str(text))
    return "\n".join(lines)


def run_command(engine: ScriptEngine, text: str) -> bool:
    """Runs one console meta-command; returns False when ``text`` is not one."""
    command, _, arg = text.partition(" ")
    io = engine.io
    color = sys.stdout.isatty()
    if command == ":complete":
        for candidate in engine.get_completions(arg):
            io.emit(candidate.value)
    elif command == ":check":
        io.emit(render_diagnostic(engine.get_diagnostic(arg), arg, color))
    elif command == ":describe":
        io.emit(render_diagnostic(engine.describe_method(arg), arg, color))
    elif command == ":imports":
        for statement in engine.execute("import"):
            io.emit(statement)
    elif command == ":vars":
        for name, value in sorted(engine.find().items()):
            io.emit(f"{name} = {format_value(value)}")
    elif command == ":del":
        engine.delete(*arg.split())
    else:
        return False
    return True


def run_repl(engine: ScriptEngine):  # pragma: no cover
    print("Quill console. Tab completes, ':check <expr>' diagnoses, 'exit' leaves.")
    session = create_session(engine)
    style = StyleResolver(engine.options().colors)
    while True:
        try:
            text = session.prompt(PROMPT).strip()
            if not text:
                continue
            if text in ("exit", "quit"):
                break
            if text.startswith(":") and run_command(engine, text):
                continue
            result = engine.execute(text)
            if result is not None:
                engine.io.emit(format_value(result))
        except KeyboardInterrupt:
            continue
        except EOFError:
            break
        except Exception as e:
            sgr = style.resolve("me")
            message = f"{type(e).__name__}: {e}"
            engine.io.emit(f"\x1b[{sgr}m{message}\x1b[0m" if sgr else message)


def main():
    parser = argparse.ArgumentParser(description="Quill interactive console")
    parser.add_argument("script", nargs="?", help="Path to a Quill script")
    parser.add_argument("args", nargs="*", help="Arguments bound to _args")
    parser.add_argument(
        "--restricted",
        action="store_true",
        help="Never evaluate expressions while completing",
    )
    parser.add_argument(
        "--no-syntax-check", action="store_true", help="Disable inline diagnostics"
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    engine = ScriptEngine(io_handler=ConsoleIO())
    engine.put(
        OPTIONS_VARIABLE,
        {
            RESTRICTED_COMPLETION: args.restricted,
            NO_SYNTAX_CHECK: args.no_syntax_check,
        },
    )

    if not args.script:
        run_repl(engine)
        return

    try:
        engine.execute_file(os.path.abspath(args.script), args.args)
    except Exception as e:
        print(f"FATAL ERROR\n{e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
