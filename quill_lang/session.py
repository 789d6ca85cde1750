import fnmatch
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .catalog import SymbolCatalog, strip_import
from .cloner import Cloner, ObjectCloner
from .completer import get_completions
from .diagnostics import Diagnostic, check_syntax, describe_method
from .evaluator import Ok, QuillEvaluator
from .exceptions import QuillError
from .inspector import Inspector
from .interfaces import ConsoleIO, IOHandler
from .models import OPTIONS_VARIABLE, Closure, ConsoleOptions
from .scope import ScopeManager
from .types import TypeRegistry, default_registry

logger = logging.getLogger(__name__)

REGEX_VAR = r"[a-zA-Z_]+[a-zA-Z0-9_]*"
REGEX_SYSTEM_VAR = re.compile(r"[A-Z]+[A-Z_]*")
PATTERN_FUNCTION_DEF = re.compile(
    rf"^def\s+({REGEX_VAR})\s*\(([a-zA-Z0-9_ ,]*)\)\s*\{{(.*)?}}(|\n)$", re.DOTALL
)
PATTERN_IMPORT = re.compile(r"^import\s+(.+)$", re.DOTALL)
PATTERN_DEF_NAME = re.compile(rf"def\s+({REGEX_VAR})")


def import_source(imports: Dict[str, str]) -> str:
    """Import statements to prepend to a script, one per line."""
    if not imports:
        return ""
    return "\n".join(imports.values()) + "\n"


@dataclass
class SessionContext:
    """Everything a completion or diagnostic request reads from the session."""

    scope: ScopeManager
    catalog: SymbolCatalog
    evaluator: QuillEvaluator
    cloner: Cloner
    options: ConsoleOptions = field(default_factory=ConsoleOptions)
    imports: Dict[str, str] = field(default_factory=dict)
    methods: Dict[str, str] = field(default_factory=dict)

    @property
    def registry(self) -> TypeRegistry:
        return self.catalog.registry

    def import_source(self) -> str:
        return import_source(self.imports)


class ScriptEngine:
    """A console session: live bindings, imports and method definitions.

    Statements run through the evaluator with every recorded import
    prepended. Completion and diagnostics see the session only through
    the SessionContext returned by ``context()``.
    """

    def __init__(
        self,
        io_handler: Optional[IOHandler] = None,
        registry: Optional[TypeRegistry] = None,
        cloner: Optional[Cloner] = None,
        variables: Optional[Dict[str, Any]] = None,
    ):
        self.io = io_handler if io_handler is not None else ConsoleIO()
        self.catalog = SymbolCatalog(registry if registry is not None else default_registry())
        self.evaluator = QuillEvaluator(self.catalog)
        self.scope = ScopeManager(variables)
        self.cloner = cloner if cloner is not None else ObjectCloner()
        self.imports: Dict[str, str] = {}
        self.methods: Dict[str, str] = {}

    # --- Execution ---

    def execute(self, statement: str) -> Any:
        statement = statement.strip()
        if statement == "import":
            return list(self.imports)
        if statement == "def":
            return dict(self.methods)
        named = PATTERN_DEF_NAME.fullmatch(statement)
        if named:
            return self.methods.get(named.group(1))
        imported = PATTERN_IMPORT.match(statement)
        if imported:
            self._run(statement)
            name = strip_import(imported.group(1))
            self.imports[name] = statement
            self.catalog.import_(name)
            return None
        result = self._run(self.import_source() + statement)
        function = PATTERN_FUNCTION_DEF.match(statement)
        if function:
            self.methods[function.group(1)] = statement
        return result

    def _run(self, source: str) -> Any:
        outcome = self.evaluator.execute(source, self.scope, self.io)
        if isinstance(outcome, Ok):
            return outcome.value
        raise outcome.error

    def execute_file(self, path: str, args: Sequence[Any] = ()) -> Any:
        self.put("_args", list(args))
        with open(path, "r", encoding="utf-8") as f:
            source = f.read()
        return self._run(self.import_source() + source)

    def call(self, closure: Closure, *args) -> Any:
        if not callable(closure):
            raise QuillError(f"Not callable: {closure!r}")
        return closure(*args)

    def import_source(self) -> str:
        return import_source(self.imports)

    # --- Bindings ---

    def put(self, name: str, value: Any) -> None:
        self.scope.globals[name] = value

    def get(self, name: str) -> Any:
        return self.scope.get_variable(name)

    def has_variable(self, name: str) -> bool:
        return name in self.scope.globals

    def find(self, pattern: Optional[str] = None) -> Dict[str, Any]:
        if pattern is None:
            return dict(self.scope.items())
        return {name: self.get(name) for name in self._find(pattern)}

    def _find(self, pattern: str) -> List[str]:
        if "." not in pattern and "*" in pattern:
            return [v for v in self.scope.keys() if fnmatch.fnmatchcase(v, pattern)]
        regex = re.compile(pattern)
        return [v for v in self.scope.keys() if regex.fullmatch(v)]

    def delete(self, *names: str) -> None:
        for name in names:
            if name is None:
                continue
            if name in self.imports:
                del self.imports[name]
                self.catalog.remove_import(name)
            elif self.has_variable(name):
                self.scope.remove(name)
                self.methods.pop(name, None)
            elif "." not in name and "*" in name:
                for var in self._find(name):
                    if var == "_" or REGEX_SYSTEM_VAR.fullmatch(var):
                        continue
                    self.scope.remove(var)
                    self.methods.pop(var, None)

    # --- Console support ---

    def options(self) -> ConsoleOptions:
        return ConsoleOptions.from_mapping(self.get(OPTIONS_VARIABLE))

    def context(self) -> SessionContext:
        return SessionContext(
            scope=self.scope,
            catalog=self.catalog,
            evaluator=self.evaluator,
            cloner=self.cloner,
            options=self.options(),
            imports=dict(self.imports),
            methods=dict(self.methods),
        )

    def get_completions(self, buffer: str, cursor: Optional[int] = None):
        return get_completions(self.context(), buffer, cursor)

    def get_diagnostic(self, head: str) -> Diagnostic:
        """Syntax diagnostic for ``head``; empty when checking is disabled."""
        context = self.context()
        if context.options.no_syntax_check:
            return Diagnostic()
        try:
            return check_syntax(Inspector(context), head, context.options)
        except Exception as e:
            logger.debug("Diagnostic failed: %s: %s", type(e).__name__, e)
            return Diagnostic()

    def describe_method(self, head: str) -> Diagnostic:
        context = self.context()
        try:
            return describe_method(Inspector(context), head, context.options)
        except Exception as e:
            logger.debug("Method description failed: %s: %s", type(e).__name__, e)
            return Diagnostic()
