from typing import Any, Dict, Iterator, List

from .exceptions import MissingPropertyError, QuillError


class ScopeManager:
    """Binding store: session globals plus a stack of closure frames."""

    def __init__(self, variables: Dict[str, Any] = None):
        self.globals: Dict[str, Any] = dict(variables or {})
        self.stack: List[Dict[str, Any]] = []

    def push_frame(self, frame: Dict[str, Any]) -> None:
        self.stack.append(frame)

    def pop_frame(self) -> None:
        if self.stack:
            self.stack.pop()

    def has_variable(self, name: str) -> bool:
        return any(name in frame for frame in self.stack) or name in self.globals

    def get(self, name: str) -> Any:
        for frame in reversed(self.stack):
            if name in frame:
                return frame[name]
        if name in self.globals:
            return self.globals[name]
        raise MissingPropertyError(name)

    def get_variable(self, name: str) -> Any:
        return self.globals.get(name)

    def set(self, name: str, value: Any) -> None:
        for frame in reversed(self.stack):
            if name in frame:
                frame[name] = value
                return
        if name in self.globals:
            self.globals[name] = value
            return
        if self.stack:
            self.stack[-1][name] = value
        else:
            self.globals[name] = value

    def declare(self, name: str, value: Any) -> None:
        if self.stack:
            self.stack[-1][name] = value
        else:
            self.globals[name] = value

    def remove(self, name: str) -> None:
        if name not in self.globals:
            raise QuillError(f"Unknown variable '{name}'")
        del self.globals[name]

    def keys(self) -> Iterator[str]:
        return iter(list(self.globals))

    def items(self):
        return list(self.globals.items())
