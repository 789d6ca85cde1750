from abc import ABC, abstractmethod


class IOHandler(ABC):
    """Abstracts I/O so interpreters can be hosted in different frontends."""

    @abstractmethod
    def emit(self, message: str, newline: bool = True) -> None: ...


class ConsoleIO(IOHandler):
    """Console-backed I/O used by the CLI and REPL."""

    def emit(self, message: str, newline: bool = True) -> None:
        print(message, end="\n" if newline else "", flush=not newline)


class NullIO(IOHandler):
    """Discard sink used while evaluating speculatively."""

    def emit(self, message: str, newline: bool = True) -> None:
        pass


class BufferIO(IOHandler):
    """Collects emitted output in memory."""

    def __init__(self):
        self.lines = []
        self._partial = ""

    def emit(self, message: str, newline: bool = True) -> None:
        if newline:
            self.lines.append(self._partial + message)
            self._partial = ""
        else:
            self._partial += message

    def getvalue(self) -> str:
        text = "\n".join(self.lines)
        if self.lines:
            text += "\n"
        return text + self._partial
