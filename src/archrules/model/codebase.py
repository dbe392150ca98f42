"""Immutable codebase model: source units, declarations, imports.

The model is produced by an external ingestion provider and consumed
read-only by the engine.  Nothing here parses source code.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_DECLARATION_KINDS: frozenset[str] = frozenset(
    {"class", "interface", "function", "property", "object"}
)
FILE_KIND = "file"

_DUPLICATE_SLASHES_RE = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """Unify separators so path rules behave the same on every platform.

    ``src\\domain\\.\\Foo.kt`` and ``./src//domain/Foo.kt`` both become
    ``src/domain/Foo.kt``.
    """
    normalized = path.strip().replace("\\", "/")
    normalized = _DUPLICATE_SLASHES_RE.sub("/", normalized)
    while "/./" in normalized:
        normalized = normalized.replace("/./", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Import:
    """A fully qualified name imported by a source unit."""

    name: str
    line: int | None = None


@dataclass(frozen=True)
class Annotation:
    """An annotation attached to a declaration (name plus raw arguments)."""

    name: str
    arguments: tuple[str, ...] = ()

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class Declaration:
    """A class, interface, function, property, or object in a source unit.

    ``path`` is a back-reference to the owning :class:`SourceUnit` by key;
    the unit itself is looked up through :meth:`Codebase.unit`.  Capability
    checks (modifiers, annotations, role) are plain data resolved when the
    model is built.

    ``owner`` is the dotted name of the enclosing declarations for a nested
    member (``InvoiceService.Builder``), empty at top level.  ``ordinal`` is
    the declaration's position path within its unit (``"1.0"`` for the first
    member of the second top-level declaration); it keeps ids distinct when
    the provider supplies no line span.
    """

    name: str
    kind: str
    path: str
    package: str = ""
    modifiers: frozenset[str] = frozenset()
    annotations: tuple[Annotation, ...] = ()
    has_doc: bool = False
    return_type: str | None = None
    parents: tuple[str, ...] = ()
    members: tuple[Declaration, ...] = ()
    line_start: int | None = None
    line_end: int | None = None
    role: str | None = None
    owner: str = ""
    ordinal: str = ""

    @property
    def qualified_name(self) -> str:
        return ".".join(part for part in (self.package, self.owner, self.name) if part)

    @property
    def element_id(self) -> str:
        """Stable identity used for exemptions and reports."""
        if self.line_start is not None:
            return f"{self.path}:{self.line_start}:{self.qualified_name}"
        if self.ordinal:
            return f"{self.path}#{self.ordinal}:{self.qualified_name}"
        return f"{self.path}:{self.qualified_name}"

    @property
    def line(self) -> int | None:
        return self.line_start

    def has_modifier(self, modifier: str) -> bool:
        return modifier in self.modifiers

    def has_annotation(self, name: str) -> bool:
        """Match by simple or fully qualified annotation name."""
        return any(a.name == name or a.simple_name == name for a in self.annotations)

    def iter_members(self) -> Iterator[Declaration]:
        """Yield nested members depth-first, in declaration order."""
        for member in self.members:
            yield member
            yield from member.iter_members()


@dataclass(frozen=True)
class SourceUnit:
    """A single source file: normalized path, raw text, imports, declarations."""

    path: str
    text: str = ""
    package: str = ""
    imports: tuple[Import, ...] = ()
    declarations: tuple[Declaration, ...] = ()

    kind = FILE_KIND

    @property
    def name(self) -> str:
        """File name without directory and extension (``Foo`` for ``a/Foo.kt``)."""
        base = self.path.rsplit("/", 1)[-1]
        return base.split(".", 1)[0] if "." in base else base

    @property
    def qualified_name(self) -> str:
        return self.path

    @property
    def element_id(self) -> str:
        return self.path

    @property
    def line(self) -> int | None:
        return None

    def iter_declarations(self, *, nested: bool = True) -> Iterator[Declaration]:
        """Yield declarations in order, optionally including nested members."""
        for decl in self.declarations:
            yield decl
            if nested:
                yield from decl.iter_members()


Element = SourceUnit | Declaration


@dataclass(frozen=True)
class Codebase:
    """An immutable snapshot of every source unit known to the provider.

    Units keep the order they were supplied in; that order drives scope order
    and therefore report order.
    """

    units: tuple[SourceUnit, ...] = ()
    _index: dict[str, SourceUnit] = field(
        default_factory=dict, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        index: dict[str, SourceUnit] = {}
        for unit in self.units:
            index.setdefault(unit.path, unit)
        object.__setattr__(self, "_index", index)

    def __len__(self) -> int:
        return len(self.units)

    def unit(self, path: str) -> SourceUnit | None:
        """Return the unit at *path*, or ``None`` if it is not in the model."""
        return self._index.get(path)

    def iter_declarations(self, *, nested: bool = True) -> Iterator[Declaration]:
        for unit in self.units:
            yield from unit.iter_declarations(nested=nested)

    def contains(self, element: Element) -> bool:
        """Return True if *element* belongs to this model."""
        if isinstance(element, SourceUnit):
            return self._index.get(element.path) is element
        return any(d is element for d in self.iter_declarations())