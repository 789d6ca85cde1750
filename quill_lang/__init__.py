from .grammar import QUILL_GRAMMAR
from .exceptions import (
    QuillError,
    SecurityError,
    MalformedInputError,
    ClassResolutionError,
    SpeculativeEvaluationError,
    MissingPropertyError,
    MissingMethodError,
    NullReferenceError,
    CompilationFailedError,
)
from .interfaces import IOHandler, ConsoleIO, NullIO, BufferIO
from .models import ConsoleOptions, Closure
from .scope import ScopeManager
from .brackets import BracketState, scan, index_of_opening_round
from .boundary import statement_begin, statement_begin_in, constructor_statement
from .types import Members, TypeRegistry, ReflectionTypeRegistry
from .catalog import SymbolCatalog
from .cloner import Cloner, ObjectCloner
from .interpreter import QuillInterpreter, format_value
from .evaluator import Ok, CompileFailure, RuntimeFailure, QuillEvaluator
from .candidates import CandidateKind, CompletionCandidate
from .inspector import Inspector
from .completer import ParsedLine, get_completions
from .diagnostics import Diagnostic, check_syntax, describe_method
from .session import SessionContext, ScriptEngine

__all__ = [
    "QUILL_GRAMMAR",
    "QuillError",
    "SecurityError",
    "MalformedInputError",
    "ClassResolutionError",
    "SpeculativeEvaluationError",
    "MissingPropertyError",
    "MissingMethodError",
    "NullReferenceError",
    "CompilationFailedError",
    "IOHandler",
    "ConsoleIO",
    "NullIO",
    "BufferIO",
    "ConsoleOptions",
    "Closure",
    "ScopeManager",
    "BracketState",
    "scan",
    "index_of_opening_round",
    "statement_begin",
    "statement_begin_in",
    "constructor_statement",
    "Members",
    "TypeRegistry",
    "ReflectionTypeRegistry",
    "SymbolCatalog",
    "Cloner",
    "ObjectCloner",
    "QuillInterpreter",
    "format_value",
    "Ok",
    "CompileFailure",
    "RuntimeFailure",
    "QuillEvaluator",
    "CandidateKind",
    "CompletionCandidate",
    "Inspector",
    "ParsedLine",
    "get_completions",
    "Diagnostic",
    "check_syntax",
    "describe_method",
    "SessionContext",
    "ScriptEngine",
]
