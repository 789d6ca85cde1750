import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Collection, Dict, Iterable, List, Optional, Set, Tuple

from .exceptions import ClassResolutionError
from .types import TypeRegistry, is_constructible

logger = logging.getLogger(__name__)

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")


class CandidateKind(Enum):
    PACKAGE = "package"
    STATIC_MEMBER = "static"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    PLAIN = "plain"


@dataclass(frozen=True)
class CompletionCandidate:
    value: str
    display: str
    kind: CandidateKind
    start: int = 0
    end: int = 0
    suffix: str = ""


def suffix_for(name: str, kind: CandidateKind, known_type: Optional[bool] = None) -> str:
    """Trailing punctuation for a candidate.

    ``known_type`` overrides the case rule for path segments: True for a
    type, False for a module, None when unknown.
    """
    if kind is CandidateKind.PACKAGE:
        # Python classes can be lower-case (deque, dict); a known class ends
        # an import path, so it takes no "." whatever its case
        if known_type is not None:
            return "" if known_type else "."
        return "." if _LOWER.match(name) else ""
    if kind in (CandidateKind.CONSTRUCTOR, CandidateKind.STATIC_MEMBER):
        if known_type is not None:
            return "(" if known_type else "."
        if _UPPER.match(name):
            return "("
        if _LOWER.match(name):
            return "."
        return ""
    if kind is CandidateKind.METHOD:
        return "("
    return ""


def _known_type(name: str, types: Collection[str]) -> Optional[bool]:
    if isinstance(types, Mapping):
        return types.get(name)
    return True if name in types else None


def do_candidates(
    out: List[CompletionCandidate],
    names: Optional[Iterable[str]],
    cur_buf: str,
    hint: str,
    kind: CandidateKind,
    span: Tuple[int, int] = (0, 0),
    types: Collection[str] = (),
) -> None:
    """Appends the names starting with ``hint``, each with its suffix.

    ``types`` is either a set of names known to be types or a mapping of
    name to whether it is a type, as returned by ``domain_entries``.
    """
    if names is None:
        return
    for name in sorted({n for n in names if n is not None}):
        if not name.startswith(hint):
            continue
        suffix = suffix_for(name, kind, _known_type(name, types))
        out.append(
            CompletionCandidate(
                cur_buf + name + suffix, name, kind, span[0], span[1], suffix
            )
        )


def names(domain: str, registry: TypeRegistry) -> Set[str]:
    """Next segments of the loaded packages starting with ``domain``."""
    out = set()
    for package in registry.loaded_packages():
        if package.startswith(domain) and len(package) > len(domain):
            idx = package.find(".", len(domain))
            if idx < 0:
                idx = len(package)
            out.add(package[len(domain) : idx])
    return out


def _accepts(cls: type, kind: CandidateKind, registry: TypeRegistry) -> bool:
    if kind is CandidateKind.CONSTRUCTOR:
        return is_constructible(cls)
    if kind is CandidateKind.STATIC_MEMBER:
        return registry.members_of(cls).has_static
    return True


def _type_segments(
    domain: str, classes: Dict[str, type], kind: CandidateKind, registry: TypeRegistry
) -> Dict[str, bool]:
    out: Dict[str, bool] = {}
    for qualified, cls in classes.items():
        if not qualified.startswith(domain):
            continue
        try:
            if not _accepts(cls, kind, registry):
                continue
        except Exception as e:
            logger.debug("Skipping %s: %s", qualified, e)
            continue
        idx = qualified.find(".", len(domain))
        if idx < 0:
            idx = len(qualified)
        segment = qualified[len(domain) : idx]
        out[segment] = out.get(segment, False) or idx == len(qualified)
    return out


def domain_entries(
    domain: str, kind: CandidateKind, registry: TypeRegistry
) -> Dict[str, bool]:
    """Next-segment names under ``domain``, mapped to whether each is a type."""
    if not domain:
        return {p.split(".")[0]: False for p in registry.loaded_packages()}
    if not domain.endswith("."):
        domain += "."
    segments = [s for s in domain.split(".") if s]
    if len(segments) < 2:
        out = {n: False for n in names(domain, registry)}
        try:
            classes = registry.list_under_package(domain)
        except ClassResolutionError as e:
            logger.debug("No types under %s: %s", domain, e.cause or e)
            return out
        out.update(_type_segments(domain, classes, kind, registry))
        return out
    try:
        classes = registry.list_under_package(domain, recursive=True)
    except ClassResolutionError as e:
        logger.debug("No types under %s: %s", domain, e.cause or e)
        return {n: False for n in names(domain, registry)}
    return _type_segments(domain, classes, kind, registry)


def next_domain(domain: str, kind: CandidateKind, registry: TypeRegistry) -> Set[str]:
    return set(domain_entries(domain, kind, registry))
