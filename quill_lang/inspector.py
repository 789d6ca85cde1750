import contextlib
import inspect
import logging
import re
from collections.abc import Mapping
from dataclasses import replace
from io import StringIO
from typing import TYPE_CHECKING, Any, List, Optional

from .brackets import scan
from .evaluator import Ok, Outcome
from .exceptions import ClassResolutionError, SpeculativeEvaluationError
from .interfaces import NullIO
from .interpreter import QuillInterpreter
from .models import Closure
from .scope import ScopeManager

if TYPE_CHECKING:
    from .session import SessionContext

logger = logging.getLogger(__name__)

PATTERN_FOR = re.compile(r"^for\s*\((.*?);.*")
PATTERN_FOR_IN = re.compile(r"^for\s*\((.*?)\s+in\s+(.*?)\).*")
PATTERN_FOR_EACH = re.compile(r"^for\s*\((.*?):(.*?)\).*")
PATTERN_CLOSURE_HEADER = re.compile(r".*\{\s*([\w\s,]*?)\s*->.*")
PATTERN_TYPED = re.compile(r"\w+\s+\w+.*")

_SKIPPED = [
    re.compile(r"^(if|while)\s*\(.*"),
    re.compile(r"(}\s*|^)else(\s*\{|$)"),
    re.compile(r"(}\s*|^)else\s+if\s*\(.*"),
    re.compile(r"^break[;]+"),
    re.compile(r"^case\s+.*:"),
    re.compile(r"^default\s+:"),
    re.compile(r"([{}])"),
]


def strip_var_type(statement: str) -> str:
    """``String s = 'a'`` -> ``s = 'a'``."""
    if PATTERN_TYPED.fullmatch(statement):
        return statement[statement.index(" ") + 1 :]
    return statement


def first_element(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return next(iter(value.items()), None)
    try:
        return next(iter(value), None)
    except TypeError:
        return None


class Inspector:
    """Speculative evaluation against a private snapshot of the session.

    Built per request: live bindings are cloned in one cache batch and
    recorded method definitions are re-run into the snapshot, so nothing
    evaluated here can reach the live session values.
    """

    def __init__(self, context: "SessionContext"):
        self.context = context
        self.restricted = context.options.restricted_completion
        cloner = context.cloner
        cloner.mark_cache()
        try:
            variables = {name: cloner.clone(value) for name, value in context.scope.items()}
        finally:
            cloner.purge_cache()
        self.scope = ScopeManager(variables)
        catalog = context.catalog.fork()
        for name in context.catalog.imports:
            catalog.import_(name)
        self.interpreter = QuillInterpreter(scope=self.scope, catalog=catalog, io_handler=NullIO())
        for name, value in list(self.scope.globals.items()):
            self.scope.globals[name] = self._rebind(value)
        for name, definition in context.methods.items():
            outcome = self.execute(definition)
            if not isinstance(outcome, Ok):
                logger.debug("Method %s not restored: %s", name, outcome)

    def _rebind(self, value: Any) -> Any:
        """Points session closures at the snapshot instead of the live scope.

        Covers bound closures and closures held directly in a cloned list
        or dict. Nested containers are shared with the session and are
        left untouched.
        """
        if isinstance(value, Closure):
            return self._rebind_closure(value)
        if type(value) is list:
            for i, item in enumerate(value):
                if isinstance(item, Closure):
                    value[i] = self._rebind_closure(item)
        elif type(value) is dict:
            for key, item in value.items():
                if isinstance(item, Closure):
                    value[key] = self._rebind_closure(item)
        return value

    def _rebind_closure(self, closure: Closure) -> Closure:
        return replace(closure, interpreter=self.interpreter)

    def execute(self, statement: str) -> Outcome:
        source = self.context.import_source() + statement
        sink = StringIO()
        with contextlib.redirect_stdout(sink), contextlib.redirect_stderr(sink):
            return self.context.evaluator.execute(source, self.scope, NullIO())

    def evaluate(self, expression: str) -> Any:
        outcome = self.execute(expression)
        if not isinstance(outcome, Ok):
            raise SpeculativeEvaluationError(expression, outcome)
        return outcome.value

    def evaluate_type(self, expression: str) -> Optional[type]:
        try:
            value = self.evaluate(expression)
            if value is not None:
                return value if inspect.isclass(value) else type(value)
        except SpeculativeEvaluationError as e:
            logger.debug("%s: %s", e, e.outcome)
        expression = expression.strip()
        if "." not in expression:
            try:
                value = self.evaluate(expression + ".class")
            except SpeculativeEvaluationError:
                return None
            return value if inspect.isclass(value) else None
        try:
            return self.context.registry.resolve_by_name(expression)
        except ClassResolutionError as e:
            logger.debug("Cannot resolve %s: %s", expression, e.cause or e)
            return None

    def load_statement_vars(self, line: str) -> None:
        """Seeds loop and closure variables of ``line`` into the snapshot."""
        if self.restricted:
            return
        for raw in re.split(r"\r?\n", line):
            statement = raw.strip()
            try:
                self._load_statement(statement)
            except Exception as e:
                logger.debug("Skipped seeding %r: %s", statement, e)

    def _load_statement(self, statement: str) -> None:
        if not statement or any(p.fullmatch(statement) for p in _SKIPPED):
            return
        for_in = PATTERN_FOR_IN.fullmatch(statement) or PATTERN_FOR_EACH.fullmatch(statement)
        if for_in:
            name = strip_var_type(for_in.group(1).strip())
            outcome = self.execute(for_in.group(2))
            value = outcome.value if isinstance(outcome, Ok) else None
            self.scope.set(name, first_element(value))
            return
        for_classic = PATTERN_FOR.fullmatch(statement)
        closure = PATTERN_CLOSURE_HEADER.fullmatch(statement)
        if for_classic:
            statement = strip_var_type(for_classic.group(1).strip())
            if "=" not in statement:
                statement += " = null"
        elif closure:
            for name in closure.group(1).split(","):
                if name.strip():
                    self.scope.set(name.strip(), None)
            return
        elif "=" in statement:
            statement = strip_var_type(statement)
        state = scan(statement)
        if "=" in statement and not (state.open_round or state.open_curly or state.open_square):
            rhs = statement[statement.index("=") + 1 :].strip()
            if rhs and rhs != "new":
                outcome = self.execute(statement)
                if not isinstance(outcome, Ok):
                    logger.debug("Seeding %r failed: %s", statement, outcome)

    def variables(self) -> List[str]:
        return list(self.scope.keys())

    def has_variable(self, name: str) -> bool:
        return self.scope.has_variable(name)

    def get_variable(self, name: str) -> Any:
        return self.scope.get_variable(name)
