"""Scope selection: turn a codebase and a ScopeSpec into an ordered working set."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archrules.errors import RuleConfigError
from archrules.model.codebase import VALID_DECLARATION_KINDS, normalize_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from archrules.model.codebase import Codebase, Element

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_FILES = "files"
TARGET_DECLARATIONS = "declarations"
VALID_TARGETS: frozenset[str] = frozenset({TARGET_FILES, TARGET_DECLARATIONS})

DEFAULT_TEST_MARKERS: tuple[str, ...] = ("/test/", "/tests/", "/testFixtures/")

# ---------------------------------------------------------------------------
# Package patterns
# ---------------------------------------------------------------------------


def compile_package_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a dotted package pattern.

    ``..`` is a wildcard for any number of package segments:

    - ``..domain..`` matches any package with a ``domain`` segment
    - ``com.acme..`` matches ``com.acme`` and everything below it
    - ``..error`` matches packages ending in an ``error`` segment

    A pattern without ``..`` matches as a run of whole segments anywhere in
    the package, so ``handler.command`` matches ``app.handler.command.x``.
    """
    if not pattern or not pattern.strip("."):
        msg = f"Invalid package pattern '{pattern}'"
        raise RuleConfigError(msg)

    if ".." not in pattern:
        body = re.escape(pattern)
        return re.compile(rf"(?:^|\.){body}(?:\.|$)")

    leading = pattern.startswith("..")
    trailing = pattern.endswith("..")
    core = pattern.strip(".")
    parts = [re.escape(p) for p in core.split("..")]
    for part in parts:
        if not part or part.startswith("\\.") or part.endswith("\\."):
            msg = f"Invalid package pattern '{pattern}'"
            raise RuleConfigError(msg)
    body = r"(?:\..*)?\.".join(parts) if len(parts) > 1 else parts[0]
    prefix = r"(?:.*\.)?" if leading else ""
    suffix = r"(?:\..*)?" if trailing else ""
    return re.compile(rf"^{prefix}{body}{suffix}$")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScopeSpec:
    """Selection criteria for a rule's working set.

    Filters are conjunctive.  Each tuple filter lists alternatives that are
    OR-ed: ``path_contains=("/error/", "/errors/")`` keeps an element if its
    path contains either.  Empty filters are ignored.
    """

    target: str = TARGET_DECLARATIONS
    directory: str | None = None
    path_contains: tuple[str, ...] = ()
    path_ends_with: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()
    name_prefixes: tuple[str, ...] = ()
    name_suffixes: tuple[str, ...] = ()
    name_pattern: str | None = None
    kinds: frozenset[str] = frozenset()
    roles: frozenset[str] = frozenset()
    modifiers: frozenset[str] = frozenset()
    include_members: bool = True
    exclude_paths: tuple[str, ...] = ()
    exclude_names: tuple[str, ...] = ()
    exclude_name_suffixes: tuple[str, ...] = ()
    exclude_modifiers: frozenset[str] = frozenset()
    exclude_tests: bool = False
    test_markers: tuple[str, ...] = DEFAULT_TEST_MARKERS

    _name_re: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )
    _package_res: tuple[re.Pattern[str], ...] = field(
        default=(), init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if self.target not in VALID_TARGETS:
            msg = f"Invalid scope target '{self.target}', must be one of {sorted(VALID_TARGETS)}"
            raise RuleConfigError(msg)

        unknown = self.kinds - VALID_DECLARATION_KINDS
        if unknown:
            msg = (
                f"Invalid declaration kind(s) {sorted(unknown)}, "
                f"must be among {sorted(VALID_DECLARATION_KINDS)}"
            )
            raise RuleConfigError(msg)

        if self.target == TARGET_FILES:
            declaration_only = {
                "kinds": self.kinds,
                "roles": self.roles,
                "modifiers": self.modifiers,
                "exclude_modifiers": self.exclude_modifiers,
            }
            used = sorted(k for k, v in declaration_only.items() if v)
            if used:
                msg = f"Scope filters {used} only apply to declarations, not files"
                raise RuleConfigError(msg)

        # Paths are compared in normalized form.
        for attr in ("path_contains", "path_ends_with", "exclude_paths", "test_markers"):
            object.__setattr__(self, attr, tuple(normalize_path(p) for p in getattr(self, attr)))
        if self.directory is not None:
            object.__setattr__(self, "directory", normalize_path(self.directory).rstrip("/"))

        if self.name_pattern is not None:
            try:
                name_re = re.compile(self.name_pattern)
            except re.error as exc:
                msg = f"Invalid scope name_pattern '{self.name_pattern}': {exc}"
                raise RuleConfigError(msg) from exc
            object.__setattr__(self, "_name_re", name_re)

        object.__setattr__(
            self, "_package_res", tuple(compile_package_pattern(p) for p in self.packages)
        )

    # -- matching -----------------------------------------------------------

    def is_test_path(self, path: str) -> bool:
        return any(marker in path for marker in self.test_markers)

    def _path_matches(self, path: str) -> bool:
        if self.directory and not (
            path == self.directory or path.startswith(self.directory + "/")
        ):
            return False
        if self.path_contains and not any(p in path for p in self.path_contains):
            return False
        if self.path_ends_with and not any(path.endswith(p) for p in self.path_ends_with):
            return False
        if self.exclude_paths and any(p in path for p in self.exclude_paths):
            return False
        return not (self.exclude_tests and self.is_test_path(path))

    def _name_matches(self, name: str) -> bool:
        if self.name_prefixes and not name.startswith(self.name_prefixes):
            return False
        if self.name_suffixes and not name.endswith(self.name_suffixes):
            return False
        if self._name_re is not None and self._name_re.search(name) is None:
            return False
        if name in self.exclude_names:
            return False
        return not (self.exclude_name_suffixes and name.endswith(self.exclude_name_suffixes))

    def _package_matches(self, package: str) -> bool:
        if not self._package_res:
            return True
        return any(rx.search(package) for rx in self._package_res)

    def matches(self, element: Element) -> bool:
        """Return True if *element* passes every positive filter and no exclude."""
        if not self._path_matches(element.path):
            return False
        if not self._package_matches(element.package):
            return False
        if not self._name_matches(element.name):
            return False
        if self.target == TARGET_FILES:
            return True

        # Declaration-only filters.
        if self.kinds and element.kind not in self.kinds:
            return False
        if self.roles and element.role not in self.roles:
            return False
        if self.modifiers and not self.modifiers <= element.modifiers:
            return False
        return not (self.exclude_modifiers and self.exclude_modifiers & element.modifiers)


@dataclass(frozen=True)
class Scope:
    """An ordered, deduplicated, immutable working set."""

    spec: ScopeSpec
    elements: tuple[Element, ...] = ()

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(self.elements)

    @property
    def is_empty(self) -> bool:
        return not self.elements

    def without(self, excluded_ids: Iterable[str]) -> Scope:
        """Return a copy of this scope minus the elements with the given ids."""
        drop = set(excluded_ids)
        return Scope(
            spec=self.spec,
            elements=tuple(e for e in self.elements if e.element_id not in drop),
        )


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def _candidates(codebase: Codebase, spec: ScopeSpec) -> Iterator[Element]:
    if spec.target == TARGET_FILES:
        yield from codebase.units
    else:
        yield from codebase.iter_declarations(nested=spec.include_members)


def select(codebase: Codebase, spec: ScopeSpec) -> Scope:
    """Select the elements of *codebase* matching *spec*, in model order.

    Pure: the same codebase and spec always produce an identical scope.  An
    empty result is returned as an empty scope, not raised.
    """
    # Only the same model element reached twice is a duplicate; distinct
    # declarations that compare equal are both kept.
    seen: set[int] = set()
    elements: list[Element] = []
    for element in _candidates(codebase, spec):
        if not spec.matches(element):
            continue
        key = id(element)
        if key in seen:
            continue
        seen.add(key)
        elements.append(element)
    return Scope(spec=spec, elements=tuple(elements))


class ScopeSelector:
    """Caches scopes per spec for one codebase.

    Several rules commonly share a selection ("all production classes"), so
    each distinct spec is computed once per run.
    """

    def __init__(self, codebase: Codebase) -> None:
        self._codebase = codebase
        self._cache: dict[ScopeSpec, Scope] = {}

    @property
    def codebase(self) -> Codebase:
        return self._codebase

    def select(self, spec: ScopeSpec) -> Scope:
        scope = self._cache.get(spec)
        if scope is None:
            scope = select(self._codebase, spec)
            self._cache[spec] = scope
            logger.debug("Selected %d %s for %r", len(scope), spec.target, spec)
        return scope
