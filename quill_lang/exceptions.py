from typing import List, Optional


class QuillError(Exception):
    """Base exception for the console runtime."""

    pass


class SecurityError(QuillError):
    """Raised when a script attempts a forbidden action."""

    pass


class MalformedInputError(QuillError):
    """Raised by the bracket scanner when a closer has no matching opener."""

    def __init__(self, message: str, position: int = -1):
        super().__init__(message)
        self.position = position


class ClassResolutionError(QuillError):
    """A type or package name could not be resolved against the host."""

    def __init__(self, name: str, cause: Optional[BaseException] = None):
        super().__init__(f"Unable to resolve: {name}")
        self.name = name
        self.cause = cause


class SpeculativeEvaluationError(QuillError):
    """A speculative run of a sub-expression failed."""

    def __init__(self, expression: str, outcome=None):
        super().__init__(f"Speculative evaluation failed: {expression}")
        self.expression = expression
        self.outcome = outcome


class MissingPropertyError(QuillError):
    def __init__(self, prop: str, owner: Optional[str] = None):
        message = f"No such property: {prop}"
        if owner:
            message += f" for class: {owner}"
        super().__init__(message)
        self.property = prop
        self.owner = owner


class MissingMethodError(QuillError):
    def __init__(self, method: str, owner: str):
        super().__init__(
            f"No signature of method: {owner}.{method}() is applicable"
        )
        self.method = method
        self.owner = owner


class NullReferenceError(QuillError):
    """Navigation through a null value."""

    pass


class SyntaxErrorInfo:
    __slots__ = ("line", "column", "message")

    def __init__(self, line: int, column: int, message: str):
        self.line = line
        self.column = column
        self.message = message

    def __repr__(self) -> str:
        return f"SyntaxErrorInfo(line={self.line}, column={self.column})"


class CompilationFailedError(QuillError):
    """Startup failure of a script: one or more syntax errors."""

    def __init__(self, message: str, errors: List[SyntaxErrorInfo]):
        super().__init__(message)
        self.errors = errors


class CastError(QuillError):
    """A value does not fit the type it was declared with."""

    def __init__(self, value, target: str):
        super().__init__(
            f"Cannot cast object '{value}' with class "
            f"'{type(value).__name__}' to class '{target}'"
        )
        self.target = target
