from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import quill_lang
from quill_lang.models import OPTIONS_VARIABLE


ROOT = Path(__file__).resolve().parents[1]
FIXTURES = ROOT / "tests" / "fixtures"


@dataclass
class _ExecResult:
    stdout: str
    error: Exception | None
    engine: quill_lang.ScriptEngine


def _execute_fixture(
    fixture_name: str,
    *,
    args: Sequence[Any] = (),
    options: dict[str, Any] | None = None,
) -> _ExecResult:
    fixture_path = FIXTURES / fixture_name
    if not fixture_path.exists():
        raise FileNotFoundError(f"Missing fixture: {fixture_path}")

    io_handler = quill_lang.BufferIO()
    engine = quill_lang.ScriptEngine(io_handler=io_handler)
    if options:
        engine.put(OPTIONS_VARIABLE, dict(options))

    err: Exception | None = None
    try:
        engine.execute_file(str(fixture_path), args)
    except Exception as e:
        err = e

    return _ExecResult(stdout=io_handler.getvalue(), error=err, engine=engine)
