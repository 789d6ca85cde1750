import builtins
import importlib
import importlib.util
import inspect
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from lark import Token, Tree
from lark.visitors import Interpreter

from .catalog import SymbolCatalog
from .exceptions import (
    CastError,
    ClassResolutionError,
    MissingMethodError,
    MissingPropertyError,
    NullReferenceError,
    QuillError,
    SecurityError,
)
from .grammar import get_parser
from .interfaces import IOHandler, ConsoleIO
from .models import Closure, LoopSignal, ReturnValue
from .scope import ScopeManager
from .types import DECLARED_TYPE_ALIASES, is_compatible, is_public

FORBIDDEN_BUILTINS = frozenset(
    {"breakpoint", "compile", "eval", "exec", "exit", "globals", "help", "input", "locals", "quit", "vars"}
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0", "\\": "\\", '"': '"', "'": "'", "$": "$"}
_DOUBLE_QUOTED = re.compile(
    r"\\(.)|\$\{([^}]*)\}|\$([A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)", re.DOTALL
)
_SINGLE_QUOTED = re.compile(r"\\(.)", re.DOTALL)


def format_value(value: Any) -> str:
    """Renders a value the way the console prints it."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        if not value:
            return "[:]"
        return "[" + ", ".join(f"{format_value(k)}:{format_value(v)}" for k, v in value.items()) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return str(value)


def type_name(value: Any) -> str:
    cls = value if inspect.isclass(value) else type(value)
    module = getattr(cls, "__module__", "builtins")
    if module == "builtins":
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"


class QuillInterpreter(Interpreter):
    def __init__(
        self,
        scope: Optional[ScopeManager] = None,
        catalog: Optional[SymbolCatalog] = None,
        io_handler: Optional[IOHandler] = None,
    ):
        self.scope = scope if scope is not None else ScopeManager()
        self.catalog = catalog if catalog is not None else SymbolCatalog()
        self.registry = self.catalog.registry
        self.io = io_handler if io_handler is not None else ConsoleIO()
        self._global_types: Dict[str, type] = {}
        self._type_stack: List[Dict[str, type]] = []

    def run(self, tree: Tree) -> Any:
        return self.visit(tree)

    # --- Root & Blocks ---

    def start(self, tree):
        result = self._run(tree.children)
        if isinstance(result, ReturnValue):
            return result.value
        if isinstance(result, LoopSignal):
            raise QuillError(f"'{result.kind}' used outside of a loop")
        return result

    def _run(self, statements):
        result = None
        for stmt in statements:
            result = self.visit(stmt)
            if isinstance(result, (ReturnValue, LoopSignal)):
                return result
        return result

    def block(self, tree):
        return self._run(tree.children)

    def expr_stmt(self, tree):
        return self.visit(tree.children[0])

    # --- Declarations ---

    def import_stmt(self, tree):
        name = ".".join(str(t) for t in tree.children[0].children)
        if len(tree.children) > 1:
            self.registry.import_module(name)
            self.catalog.import_(name + ".*")
        elif not self.catalog.import_(name):
            raise ClassResolutionError(name)
        return None

    def func_def(self, tree):
        name = str(tree.children[0])
        params_node = tree.children[1]
        params = [str(p) for p in params_node.children] if params_node else []
        body = tree.children[2]
        self.scope.declare(name, Closure(params, body.children, self))
        return None

    def declaration(self, tree):
        if len(tree.children) == 3:
            type_token, name_token, value_node = tree.children
            declared = self.resolve_type(str(type_token))
        else:
            name_token, value_node = tree.children
            declared = None
        name = str(name_token)
        value = self.visit(value_node)
        if declared is not None:
            target = self._type_stack[-1] if self._type_stack else self._global_types
            target[name] = declared
            self._enforce(value, declared, str(type_token))
        self.scope.declare(name, value)
        return value

    def resolve_type(self, name: str) -> type:
        if name in DECLARED_TYPE_ALIASES:
            return DECLARED_TYPE_ALIASES[name]
        if "." in name:
            return self.registry.resolve_by_name(name)
        cls = self.catalog.resolve(name)
        if cls is None:
            raise ClassResolutionError(name)
        return cls

    def _enforce(self, value: Any, declared: type, spelling: str) -> None:
        if not is_compatible(value, declared):
            raise CastError(value, spelling)

    def _lookup_declared_type(self, name: str) -> Optional[type]:
        for frame in reversed(self._type_stack):
            if name in frame:
                return frame[name]
        return self._global_types.get(name)

    # --- Assignment ---

    def assign(self, tree):
        return self._store(tree.children[0], None, self.visit(tree.children[1]))

    def assign_add(self, tree):
        return self._store(tree.children[0], "add", self.visit(tree.children[1]))

    def assign_sub(self, tree):
        return self._store(tree.children[0], "sub", self.visit(tree.children[1]))

    def assign_mul(self, tree):
        return self._store(tree.children[0], "mul", self.visit(tree.children[1]))

    def assign_div(self, tree):
        return self._store(tree.children[0], "div", self.visit(tree.children[1]))

    def _store(self, target, op: Optional[str], value: Any) -> Any:
        rule = target.data
        if rule == "target_var":
            name = str(target.children[0])
            if op:
                value = self.binary(op, self.lookup(name), value)
            declared = self._lookup_declared_type(name)
            if declared is not None:
                self._enforce(value, declared, declared.__name__)
            self.scope.set(name, value)
        elif rule == "target_attr":
            obj = self.visit(target.children[0])
            name = str(target.children[1])
            if op:
                value = self.binary(op, self.get_property(obj, name), value)
            self.set_property(obj, name, value)
        elif rule == "target_item":
            obj = self.visit(target.children[0])
            key = self.visit(target.children[1])
            if op:
                value = self.binary(op, self.get_index(obj, key), value)
            if obj is None:
                raise NullReferenceError("Cannot invoke method putAt() on null object")
            obj[key] = value
        else:
            raise QuillError(f"Invalid assignment target: {rule}")
        return value

    # --- Flow Control ---

    def if_stmt(self, tree):
        if self.visit(tree.children[0]):
            return self.visit(tree.children[1])
        if len(tree.children) > 2:
            return self.visit(tree.children[2])
        return None

    def while_stmt(self, tree):
        condition, body = tree.children
        while self.visit(condition):
            result = self.visit(body)
            if isinstance(result, ReturnValue):
                return result
            if isinstance(result, LoopSignal) and result.kind == "break":
                break
        return None

    def for_stmt(self, tree):
        control, body = tree.children
        if control.data == "for_each":
            return self._for_each(control, body)
        return self._for_classic(control, body)

    def _for_each(self, control, body):
        name = str(control.children[-2])
        iterable = self.visit(control.children[-1])
        if iterable is None:
            return None
        if isinstance(iterable, Mapping):
            iterable = iterable.items()
        for item in iterable:
            self.scope.set(name, item)
            result = self.visit(body)
            if isinstance(result, ReturnValue):
                return result
            if isinstance(result, LoopSignal) and result.kind == "break":
                break
        return None

    def _for_classic(self, control, body):
        init, condition, update = control.children
        if init is not None:
            self.visit(init)
        while condition is None or self.visit(condition):
            result = self.visit(body)
            if isinstance(result, ReturnValue):
                return result
            if isinstance(result, LoopSignal) and result.kind == "break":
                break
            if update is not None:
                self.visit(update)
        return None

    def break_stmt(self, tree):
        return LoopSignal("break")

    def continue_stmt(self, tree):
        return LoopSignal("continue")

    def return_stmt(self, tree):
        return ReturnValue(self.visit(tree.children[0]) if tree.children else None)

    def try_stmt(self, tree):
        body = tree.children[0]
        catches = [c for c in tree.children[1:] if c.data == "catch_clause"]
        final = next((c for c in tree.children[1:] if c.data == "finally_clause"), None)
        try:
            return self.visit(body)
        except Exception as e:
            for clause in catches:
                if len(clause.children) == 3:
                    caught = self.resolve_type(str(clause.children[0]))
                    if not isinstance(e, caught):
                        continue
                self.scope.declare(str(clause.children[-2]), e)
                return self.visit(clause.children[-1])
            raise
        finally:
            if final is not None:
                self.visit(final.children[0])

    # --- Closures ---

    def closure(self, tree):
        params: List[str] = []
        has_arrow = False
        body = []
        for child in tree.children:
            if isinstance(child, Tree) and child.data == "closure_params":
                params = [str(p) for p in child.children]
            elif isinstance(child, Token) and child.type == "ARROW":
                has_arrow = True
            else:
                body.append(child)
        return Closure(params, body, self, implicit_it=not has_arrow)

    def invoke_closure(self, closure: Closure, args: List[Any]) -> Any:
        if closure.implicit_it:
            if len(args) > 1:
                raise MissingMethodError("call", "Closure")
            frame = {"it": args[0] if args else None}
        else:
            if len(args) != len(closure.params):
                raise MissingMethodError("call", "Closure")
            frame = dict(zip(closure.params, args))
        self.scope.push_frame(frame)
        self._type_stack.append({})
        try:
            result = self._run(closure.body)
        except RecursionError as e:
            raise QuillError("Recursion depth exceeded") from e
        finally:
            self._type_stack.pop()
            self.scope.pop_frame()
        if isinstance(result, ReturnValue):
            return result.value
        if isinstance(result, LoopSignal):
            raise QuillError(f"'{result.kind}' used outside of a loop")
        return result

    # --- Names, Properties & Calls ---

    def lookup(self, name: str) -> Any:
        if self.scope.has_variable(name):
            return self.scope.get(name)
        cls = self.catalog.resolve(name)
        if cls is not None:
            return cls
        if is_public(name) and hasattr(builtins, name):
            if name in FORBIDDEN_BUILTINS:
                raise SecurityError(f"Access to '{name}' is forbidden")
            return getattr(builtins, name)
        if name.isidentifier() and importlib.util.find_spec(name) is not None:
            return importlib.import_module(name)
        raise MissingPropertyError(name)

    def _check_attribute(self, obj: Any, name: str) -> None:
        if not is_public(name):
            raise SecurityError(f"Attribute access forbidden: {name}")
        if isinstance(obj, (QuillInterpreter, ScopeManager)):
            raise SecurityError("Attribute access forbidden on this object")
        if isinstance(obj, Closure) and name != "call":
            raise SecurityError("Attribute access forbidden on closures")

    def get_property(self, obj: Any, name: str) -> Any:
        if name == "class":
            return obj if inspect.isclass(obj) else type(obj)
        if obj is None:
            raise NullReferenceError(f"Cannot get property '{name}' on null object")
        self._check_attribute(obj, name)
        try:
            return getattr(obj, name)
        except AttributeError:
            if isinstance(obj, Mapping):
                return obj.get(name)
            raise MissingPropertyError(name, type_name(obj)) from None

    def set_property(self, obj: Any, name: str, value: Any) -> None:
        if obj is None:
            raise NullReferenceError(f"Cannot set property '{name}' on null object")
        self._check_attribute(obj, name)
        if isinstance(obj, dict):
            obj[name] = value
            return
        try:
            setattr(obj, name, value)
        except AttributeError:
            raise MissingPropertyError(name, type_name(obj)) from None

    def get_index(self, obj: Any, key: Any) -> Any:
        if obj is None:
            raise NullReferenceError("Cannot invoke method getAt() on null object")
        if isinstance(obj, Mapping) and key not in obj and not hasattr(type(obj), "__missing__"):
            return None
        return obj[key]

    def invoke_method(self, obj: Any, name: str, args: List[Any]) -> Any:
        if obj is None:
            raise NullReferenceError(f"Cannot invoke method {name}() on null object")
        self._check_attribute(obj, name)
        if isinstance(obj, Closure):
            return obj(*args)
        try:
            method = getattr(obj, name)
        except AttributeError:
            raise MissingMethodError(name, type_name(obj)) from None
        if not callable(method):
            raise MissingMethodError(name, type_name(obj))
        return method(*args)

    def _args(self, node) -> List[Any]:
        return [self.visit(c) for c in node.children] if node is not None else []

    def var(self, tree):
        return self.lookup(str(tree.children[0]))

    def get_attr(self, tree):
        return self.get_property(self.visit(tree.children[0]), str(tree.children[1]))

    def safe_attr(self, tree):
        obj = self.visit(tree.children[0])
        if obj is None:
            return None
        return self.get_property(obj, str(tree.children[1]))

    def get_item(self, tree):
        return self.get_index(self.visit(tree.children[0]), self.visit(tree.children[1]))

    def call_method(self, tree):
        receiver, name, args_node, closure_node = tree.children
        obj = self.visit(receiver)
        args = self._args(args_node)
        if closure_node is not None:
            args.append(self.visit(closure_node))
        return self.invoke_method(obj, str(name), args)

    def call_method_closure(self, tree):
        receiver, name, closure_node = tree.children
        obj = self.visit(receiver)
        return self.invoke_method(obj, str(name), [self.visit(closure_node)])

    def safe_call(self, tree):
        receiver, name, args_node = tree.children
        obj = self.visit(receiver)
        if obj is None:
            return None
        return self.invoke_method(obj, str(name), self._args(args_node))

    def call(self, tree):
        name_token, args_node, closure_node = tree.children
        name = str(name_token)
        args = self._args(args_node)
        if closure_node is not None:
            args.append(self.visit(closure_node))
        if name in ("print", "println") and not self.scope.has_variable(name):
            text = " ".join(format_value(a) for a in args)
            self.io.emit(text, newline=name == "println")
            return None
        try:
            target = self.lookup(name)
        except MissingPropertyError:
            raise MissingMethodError(name, "Script") from None
        if not callable(target):
            raise MissingMethodError(name, type_name(target))
        try:
            return target(*args)
        except RecursionError as e:
            raise QuillError("Recursion depth exceeded") from e

    def new_instance(self, tree):
        dotted, args_node = tree.children
        name = ".".join(str(t) for t in dotted.children)
        cls = self.resolve_type(name)
        return cls(*self._args(args_node))

    # --- Literals ---

    def number(self, tree):
        s = str(tree.children[0])
        return float(s) if "." in s else int(s)

    def string(self, tree):
        return self.decode_string(str(tree.children[0]))

    def decode_string(self, literal: str) -> str:
        quote, body = literal[0], literal[1:-1]
        if quote == "'":
            return _SINGLE_QUOTED.sub(self._escape, body)
        return _DOUBLE_QUOTED.sub(self._interpolate, body)

    def _escape(self, m) -> str:
        return _ESCAPES.get(m.group(1), m.group(0))

    def _interpolate(self, m) -> str:
        if m.group(1) is not None:
            return self._escape(m)
        source = m.group(2) if m.group(2) is not None else m.group(3)
        return format_value(self.evaluate_fragment(source))

    def evaluate_fragment(self, source: str) -> Any:
        tree = get_parser().parse(source)
        result = self._run(tree.children)
        return result.value if isinstance(result, ReturnValue) else result

    def true(self, _):
        return True

    def false(self, _):
        return False

    def null(self, _):
        return None

    def list_lit(self, tree):
        return [self.visit(c) for c in tree.children]

    def empty_map(self, _):
        return {}

    def map_lit(self, tree):
        out = {}
        for entry in tree.children:
            key_token, value_node = entry.children
            if key_token.type == "STRING":
                key = self.decode_string(str(key_token))
            elif key_token.type == "NUMBER":
                key = float(key_token) if "." in key_token else int(key_token)
            else:
                key = str(key_token)
            out[key] = self.visit(value_node)
        return out

    # --- Operators ---

    def binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "add":
            if isinstance(left, str) and not isinstance(right, str):
                return left + format_value(right)
            if isinstance(left, list) and not isinstance(right, list):
                return left + [right]
            return left + right
        if op == "sub":
            return left - right
        if op == "mul":
            return left * right
        if op == "div":
            return left / right
        if op == "mod":
            return left % right
        raise QuillError(f"Unknown operator: {op}")

    def add(self, t):
        return self.binary("add", self.visit(t.children[0]), self.visit(t.children[1]))

    def sub(self, t):
        return self.binary("sub", self.visit(t.children[0]), self.visit(t.children[1]))

    def mul(self, t):
        return self.binary("mul", self.visit(t.children[0]), self.visit(t.children[1]))

    def div(self, t):
        return self.binary("div", self.visit(t.children[0]), self.visit(t.children[1]))

    def mod(self, t):
        return self.binary("mod", self.visit(t.children[0]), self.visit(t.children[1]))

    def neg(self, t):
        return -self.visit(t.children[0])

    def not_(self, t):
        return not self.visit(t.children[0])

    def and_(self, t):
        return bool(self.visit(t.children[0])) and bool(self.visit(t.children[1]))

    def or_(self, t):
        return bool(self.visit(t.children[0])) or bool(self.visit(t.children[1]))

    def ternary(self, t):
        if self.visit(t.children[0]):
            return self.visit(t.children[1])
        return self.visit(t.children[2])

    def elvis(self, t):
        value = self.visit(t.children[0])
        return value if value else self.visit(t.children[1])

    def eq(self, t):
        return self.visit(t.children[0]) == self.visit(t.children[1])

    def ne(self, t):
        return self.visit(t.children[0]) != self.visit(t.children[1])

    def lt(self, t):
        return self.visit(t.children[0]) < self.visit(t.children[1])

    def gt(self, t):
        return self.visit(t.children[0]) > self.visit(t.children[1])

    def le(self, t):
        return self.visit(t.children[0]) <= self.visit(t.children[1])

    def ge(self, t):
        return self.visit(t.children[0]) >= self.visit(t.children[1])

    def contains(self, t):
        return self.visit(t.children[0]) in self.visit(t.children[1])

    def instanceof(self, t):
        value = self.visit(t.children[0])
        cls = self.visit(t.children[1])
        if not inspect.isclass(cls):
            raise QuillError(f"instanceof needs a class, got {type_name(cls)}")
        return isinstance(value, cls)

    def pattern(self, t):
        return re.compile(str(self.visit(t.children[0])))

    def find(self, t):
        text = self.visit(t.children[0])
        pattern = self.visit(t.children[1])
        return re.search(pattern, str(text))

    def match(self, t):
        text = self.visit(t.children[0])
        pattern = self.visit(t.children[1])
        return re.fullmatch(pattern, str(text)) is not None
