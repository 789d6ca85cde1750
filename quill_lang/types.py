import importlib
import inspect
import logging
import numbers
import sys
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Optional, Set, Tuple

from .exceptions import ClassResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Members:
    """Public member names of a class, split by binding."""

    instance_methods: FrozenSet[str] = frozenset()
    static_methods: FrozenSet[str] = frozenset()
    instance_fields: FrozenSet[str] = frozenset()
    static_fields: FrozenSet[str] = frozenset()

    def methods(self, static: bool = False) -> FrozenSet[str]:
        return self.static_methods if static else self.instance_methods

    def fields(self, static: bool = False) -> FrozenSet[str]:
        return self.static_fields if static else self.instance_fields

    @property
    def has_static(self) -> bool:
        return bool(self.static_methods or self.static_fields)


class TypeRegistry(ABC):
    """Host type discovery used by the catalog and the completers."""

    @abstractmethod
    def resolve_by_name(self, name: str) -> type: ...

    @abstractmethod
    def members_of(self, cls: type) -> Members: ...

    @abstractmethod
    def list_under_package(
        self, package: str, recursive: bool = False
    ) -> Dict[str, type]: ...

    @abstractmethod
    def loaded_packages(self) -> Set[str]: ...

    def module_members(self, name: str) -> Members:
        raise ClassResolutionError(name)


def is_public(name: str) -> bool:
    return bool(name) and not name.startswith("_")


def is_public_path(name: str) -> bool:
    return all(is_public(part) for part in name.split("."))


def is_constructible(cls: Any) -> bool:
    if not inspect.isclass(cls):
        return False
    if inspect.isabstract(cls) or getattr(cls, "_is_protocol", False):
        return False
    return True


def _is_static_method(raw: Any) -> bool:
    return isinstance(
        raw,
        (
            staticmethod,
            classmethod,
            types.ClassMethodDescriptorType,
            types.BuiltinFunctionType,
        ),
    )


def _annotations(cls: type) -> Set[str]:
    names: Set[str] = set()
    for klass in cls.__mro__:
        try:
            names.update(inspect.get_annotations(klass))
        except Exception as e:
            logger.debug("Annotations of %r unavailable: %s", klass, e)
    return names


def _collect_members(cls: type) -> Members:
    instance_methods, static_methods = set(), set()
    instance_fields, static_fields = set(), set()
    annotated = _annotations(cls)
    for name in dir(cls):
        if not is_public(name):
            continue
        try:
            raw = inspect.getattr_static(cls, name)
        except AttributeError:
            continue
        if _is_static_method(raw):
            static_methods.add(name)
        elif inspect.isclass(raw):
            continue
        elif inspect.isfunction(raw) or inspect.ismethoddescriptor(raw):
            instance_methods.add(name)
        elif inspect.isdatadescriptor(raw) or name in annotated:
            instance_fields.add(name)
        elif callable(raw):
            instance_methods.add(name)
        else:
            static_fields.add(name)
    for name in annotated:
        if is_public(name) and name not in static_methods | instance_methods:
            instance_fields.add(name)
            static_fields.discard(name)
    return Members(
        frozenset(instance_methods),
        frozenset(static_methods),
        frozenset(instance_fields),
        frozenset(static_fields),
    )


@lru_cache(maxsize=1024)
def _cached_members(cls: type) -> Members:
    return _collect_members(cls)


class ReflectionTypeRegistry(TypeRegistry):
    """TypeRegistry backed by the running interpreter's import system.

    Package listings only look at modules already present in
    ``sys.modules``; submodules are never imported speculatively.
    """

    def __init__(self):
        self._packages: Dict[Tuple[str, bool], Tuple[int, Dict[str, type]]] = {}

    def loaded_packages(self) -> Set[str]:
        return {name for name in list(sys.modules) if is_public_path(name)}

    def import_module(self, name: str) -> types.ModuleType:
        if name in sys.modules:
            return sys.modules[name]
        try:
            return importlib.import_module(name)
        except Exception as e:
            raise ClassResolutionError(name, e) from e

    def _split(self, name: str) -> Tuple[types.ModuleType, str, Any]:
        """Longest importable module prefix, then attribute walk."""
        parts = name.split(".")
        for i in range(len(parts), 0, -1):
            module_name = ".".join(parts[:i])
            try:
                module = self.import_module(module_name)
            except ClassResolutionError:
                continue
            target: Any = module
            try:
                for attr in parts[i:]:
                    if not is_public(attr):
                        raise ClassResolutionError(name)
                    target = getattr(target, attr)
            except AttributeError as e:
                raise ClassResolutionError(name, e) from e
            return module, ".".join(parts[i:]), target
        raise ClassResolutionError(name)

    def resolve_by_name(self, name: str) -> type:
        if not name or not is_public_path(name):
            raise ClassResolutionError(name)
        _, _, target = self._split(name)
        if not inspect.isclass(target):
            raise ClassResolutionError(name)
        return target

    def members_of(self, cls: type) -> Members:
        try:
            return _cached_members(cls)
        except TypeError:
            return _collect_members(cls)

    def list_under_package(
        self, package: str, recursive: bool = False
    ) -> Dict[str, type]:
        """Public classes reachable under ``package`` by qualified name.

        ``package`` may also name a class, in which case its nested
        classes are listed.
        """
        package = package.rstrip(".")
        key = (package, recursive)
        generation = len(sys.modules)
        cached = self._packages.get(key)
        if cached is not None and cached[0] == generation:
            return cached[1]

        module, attr_path, target = self._split(package)
        if attr_path:
            if not inspect.isclass(target):
                raise ClassResolutionError(package)
            out = self._nested_classes(package, target)
        else:
            out = self._module_classes(package, module)
            if recursive:
                prefix = package + "."
                for name, sub in list(sys.modules.items()):
                    if name.startswith(prefix) and is_public_path(name) and sub:
                        out.update(self._module_classes(name, sub))
        self._packages[key] = (generation, out)
        return out

    def _module_classes(self, name: str, module: types.ModuleType) -> Dict[str, type]:
        exported = getattr(module, "__all__", None)
        out: Dict[str, type] = {}
        if exported is not None:
            for attr in exported:
                obj = getattr(module, attr, None)
                if is_public(attr) and inspect.isclass(obj):
                    out[f"{name}.{attr}"] = obj
            if out:
                return out
        namespace = self._public_classes(module)
        for attr, obj in namespace.items():
            owner = getattr(obj, "__module__", None) or ""
            if owner == name or owner.startswith(name + "."):
                out[f"{name}.{attr}"] = obj
        if not out:
            # C extension and builtin modules report foreign owners
            out = {f"{name}.{attr}": obj for attr, obj in namespace.items()}
        return out

    def _public_classes(self, module: types.ModuleType) -> Dict[str, type]:
        out = {}
        for attr in dir(module):
            if not is_public(attr):
                continue
            try:
                obj = getattr(module, attr)
            except Exception as e:
                logger.debug("Skipping %s.%s: %s", module.__name__, attr, e)
                continue
            if inspect.isclass(obj):
                out[attr] = obj
        return out

    def _nested_classes(self, name: str, cls: type) -> Dict[str, type]:
        out = {}
        for attr, raw in vars(cls).items():
            if is_public(attr) and inspect.isclass(raw):
                out[f"{name}.{attr}"] = raw
        return out

    def module_members(self, name: str) -> Members:
        """Module-level functions and constants, reported as static members."""
        if not is_public_path(name):
            raise ClassResolutionError(name)
        module = self.import_module(name)
        functions, constants = set(), set()
        for attr in dir(module):
            if not is_public(attr):
                continue
            try:
                obj = getattr(module, attr)
            except Exception as e:
                logger.debug("Skipping %s.%s: %s", name, attr, e)
                continue
            if inspect.isclass(obj) or inspect.ismodule(obj):
                continue
            if callable(obj):
                functions.add(attr)
            else:
                constants.add(attr)
        return Members(
            static_methods=frozenset(functions), static_fields=frozenset(constants)
        )


DEFAULT_REGISTRY: Optional[ReflectionTypeRegistry] = None


def default_registry() -> ReflectionTypeRegistry:
    global DEFAULT_REGISTRY
    if DEFAULT_REGISTRY is None:
        DEFAULT_REGISTRY = ReflectionTypeRegistry()
    return DEFAULT_REGISTRY


# Declared-type spellings accepted in ``Type name = value`` besides catalog names
DECLARED_TYPE_ALIASES: Dict[str, type] = {
    "String": str,
    "CharSequence": str,
    "Integer": int,
    "int": int,
    "Long": int,
    "long": int,
    "short": int,
    "byte": int,
    "Double": float,
    "double": float,
    "Float": float,
    "float": float,
    "Boolean": bool,
    "boolean": bool,
    "Number": numbers.Number,
    "List": list,
    "Map": dict,
    "Set": set,
    "Object": object,
}


def is_compatible(value: Any, declared: type) -> bool:
    if value is None or isinstance(value, declared):
        return True
    if declared is float and isinstance(value, int) and not isinstance(value, bool):
        return True
    return False
