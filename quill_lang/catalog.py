import logging
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from .exceptions import ClassResolutionError
from .types import TypeRegistry, default_registry, is_constructible

logger = logging.getLogger(__name__)

DEFAULT_IMPORTS = (
    "builtins.*",
    "collections.*",
    "io.*",
    "pathlib.*",
    "datetime.*",
    "decimal.Decimal",
    "fractions.Fraction",
)

_DEFAULT_TIERS: Dict[Tuple[str, ...], Mapping[str, type]] = {}


def strip_import(name: str) -> str:
    return name.strip().rstrip(";").strip()


class SymbolCatalog:
    """Short type name -> class.

    The default tier is shared for the life of the process; the session
    tier is rebuilt from the ordered import list whenever a wildcard
    import is removed.
    """

    def __init__(
        self,
        registry: Optional[TypeRegistry] = None,
        defaults: Tuple[str, ...] = DEFAULT_IMPORTS,
        default_tier: Optional[Mapping[str, type]] = None,
    ):
        self.registry = registry if registry is not None else default_registry()
        self.defaults = tuple(defaults)
        if default_tier is None:
            default_tier = self._default_tier()
        self._defaults = default_tier
        self._session: Dict[str, type] = {}
        self._imports: List[str] = []

    def _default_tier(self) -> Mapping[str, type]:
        # Only the stock registry's tier is safe to share between catalogs
        shared = self.registry is default_registry()
        if shared and self.defaults in _DEFAULT_TIERS:
            return _DEFAULT_TIERS[self.defaults]
        tier: Dict[str, type] = {}
        for name in self.defaults:
            self._register(name, tier)
        frozen = MappingProxyType(tier)
        if shared:
            _DEFAULT_TIERS[self.defaults] = frozen
        return frozen

    # --- Lookup ---

    def resolve(self, short_name: str) -> Optional[type]:
        if short_name in self._session:
            return self._session[short_name]
        return self._defaults.get(short_name)

    def __contains__(self, short_name: str) -> bool:
        return short_name in self._session or short_name in self._defaults

    def names(self) -> Set[str]:
        return set(self._defaults) | set(self._session)

    def items(self) -> Iterator[Tuple[str, type]]:
        merged = dict(self._defaults)
        merged.update(self._session)
        return iter(merged.items())

    @property
    def imports(self) -> List[str]:
        return list(self._imports)

    def constructors(self) -> Set[str]:
        return {name for name, cls in self.items() if is_constructible(cls)}

    def static_types(self) -> Set[str]:
        out = set()
        for name, cls in self.items():
            try:
                if self.registry.members_of(cls).has_static:
                    out.add(name)
            except Exception as e:
                logger.debug("Members of %s unavailable: %s", name, e)
        return out

    # --- Session tier ---

    def import_(self, name: str) -> bool:
        """Registers an import; returns False when nothing resolved."""
        name = strip_import(name)
        if name not in self._imports:
            self._imports.append(name)
        return self._register(name, self._session)

    def import_package(self, package: str) -> bool:
        return self.import_(package.rstrip(".*") + ".*")

    def import_type(self, qualified_name: str) -> bool:
        return self.import_(qualified_name)

    def remove_import(self, name: str) -> None:
        name = strip_import(name)
        if name not in self._imports:
            return
        self._imports.remove(name)
        if name.endswith(".*"):
            self.rebuild()
        else:
            simple = name.rsplit(".", 1)[-1]
            self._session.pop(simple, None)
            # remaining imports may still provide the name; replay order wins
            for other in self._imports:
                if other.endswith(".*") or other.rsplit(".", 1)[-1] == simple:
                    provided: Dict[str, type] = {}
                    self._register(other, provided)
                    if simple in provided:
                        self._session[simple] = provided[simple]

    def rebuild(self) -> None:
        self._session.clear()
        for name in self._imports:
            self._register(name, self._session)

    def fork(self) -> "SymbolCatalog":
        """A catalog sharing the default tier, with an empty session tier."""
        return SymbolCatalog(self.registry, self.defaults, self._defaults)

    def _register(self, name: str, target: Dict[str, type]) -> bool:
        try:
            if name.endswith(".*"):
                classes = self.registry.list_under_package(name[:-2])
                for qualified, cls in classes.items():
                    target[qualified.rsplit(".", 1)[-1]] = cls
                return bool(classes)
            cls = self.registry.resolve_by_name(name)
            target[name.rsplit(".", 1)[-1]] = cls
            return True
        except ClassResolutionError as e:
            logger.debug("Import %s not resolved: %s", name, e.cause or e)
            return False
