"""Predicate engine: composable, pure checks over one declaration or source unit.

Two layers:

- **structural** predicates read model data only (name shape, kind, role,
  modifiers, package, annotations, declared type, docs, parents, imports,
  members);
- **textual** predicates scan raw source text with regular expressions,
  optionally restricted to a declaration's own line span.  They are the
  explicit escape hatch for properties the model cannot express and should
  be combined with a structural filter.

Every predicate returns a :class:`Match`.  Reasons describe the observed fact
("name 'x' does not match ...") rather than the verdict, so the same text
reads correctly whether a rule fails on a match (``none``) or on a miss
(``all``).  Patterns are compiled at construction; a bad pattern raises
:class:`~archrules.errors.RuleConfigError` before any evaluation happens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, ClassVar

from archrules.engine.scope import TARGET_DECLARATIONS, TARGET_FILES, compile_package_pattern
from archrules.errors import ModelError, RuleConfigError
from archrules.model.codebase import VALID_DECLARATION_KINDS, Declaration, SourceUnit

if TYPE_CHECKING:
    from archrules.model.codebase import Codebase, Element

BOTH_TARGETS: frozenset[str] = frozenset({TARGET_FILES, TARGET_DECLARATIONS})
DECLARATIONS_ONLY: frozenset[str] = frozenset({TARGET_DECLARATIONS})

TEXT_WITHIN_UNIT = "unit"
TEXT_WITHIN_DECLARATION = "declaration"
_VALID_WITHIN: frozenset[str] = frozenset({TEXT_WITHIN_UNIT, TEXT_WITHIN_DECLARATION})

MEMBER_QUANTIFIERS: frozenset[str] = frozenset({"all", "any", "none"})

_FRAGMENT_LIMIT = 120


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Match:
    """Outcome of one predicate evaluation."""

    matched: bool
    reason: str | None = None
    fragment: str | None = None
    line: int | None = None

    def __bool__(self) -> bool:
        return self.matched

    def negate(self) -> Match:
        return replace(self, matched=not self.matched)


def _clip(text: str) -> str:
    text = text.strip()
    if len(text) > _FRAGMENT_LIMIT:
        return text[: _FRAGMENT_LIMIT - 3] + "..."
    return text


def _compile(pattern: str, context: str, flags: int = 0) -> re.Pattern[str]:
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        msg = f"{context}: invalid pattern '{pattern}': {exc}"
        raise RuleConfigError(msg) from exc


def _as_tuple(value: str | tuple[str, ...]) -> tuple[str, ...]:
    return (value,) if isinstance(value, str) else tuple(value)


def owning_unit(element: Element, codebase: Codebase) -> SourceUnit:
    """Resolve the source unit an element lives in, or raise ModelError."""
    if isinstance(element, SourceUnit):
        return element
    unit = codebase.unit(element.path)
    if unit is None:
        msg = (
            f"Declaration '{element.qualified_name}' references unit "
            f"'{element.path}' which is not in the model"
        )
        raise ModelError(msg)
    return unit


def _text_window(element: Element, codebase: Codebase, within: str) -> tuple[str, int]:
    """Return the text to scan and the line number of its first line."""
    unit = owning_unit(element, codebase)
    if within == TEXT_WITHIN_UNIT or not isinstance(element, Declaration):
        return unit.text, 1
    if element.line_start is None:
        return unit.text, 1
    lines = unit.text.splitlines(keepends=True)
    end = element.line_end if element.line_end is not None else element.line_start
    return "".join(lines[element.line_start - 1 : end]), element.line_start


def _line_of(text: str, pos: int, base: int) -> int:
    return base + text.count("\n", 0, pos)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class Predicate:
    """Base class for all predicates.

    Subclasses are frozen dataclasses and must be deterministic and free of
    side effects.  Combine them with ``&``, ``|`` and ``~``.
    """

    targets: ClassVar[frozenset[str]] = BOTH_TARGETS

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__

    def check_target(self, target: str) -> None:
        """Raise RuleConfigError if this predicate cannot run on *target* elements."""
        if target not in self.targets:
            msg = f"Predicate '{self.describe()}' does not apply to {target}"
            raise RuleConfigError(msg)

    def __and__(self, other: Predicate) -> AllOf:
        return AllOf((self, other))

    def __or__(self, other: Predicate) -> AnyOf:
        return AnyOf((self, other))

    def __invert__(self) -> Not:
        return Not(self)


# ---------------------------------------------------------------------------
# Structural predicates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NameMatches(Predicate):
    """Simple name matches a regular expression (``re.search`` semantics)."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile(self.pattern, "name_matches"))

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        if self._regex.search(element.name):
            return Match(True, f"name '{element.name}' matches '{self.pattern}'")
        return Match(False, f"name '{element.name}' does not match '{self.pattern}'")

    def describe(self) -> str:
        return f"name matches '{self.pattern}'"


@dataclass(frozen=True)
class NameStartsWith(Predicate):
    prefixes: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefixes", _as_tuple(self.prefixes))

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        if element.name.startswith(self.prefixes):
            return Match(True, f"name '{element.name}' starts with {list(self.prefixes)}")
        return Match(False, f"name '{element.name}' does not start with {list(self.prefixes)}")

    def describe(self) -> str:
        return f"name starts with {list(self.prefixes)}"


@dataclass(frozen=True)
class NameEndsWith(Predicate):
    suffixes: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "suffixes", _as_tuple(self.suffixes))

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        if element.name.endswith(self.suffixes):
            return Match(True, f"name '{element.name}' ends with {list(self.suffixes)}")
        return Match(False, f"name '{element.name}' does not end with {list(self.suffixes)}")

    def describe(self) -> str:
        return f"name ends with {list(self.suffixes)}"


@dataclass(frozen=True)
class NameContains(Predicate):
    fragments: tuple[str, ...]
    ignore_case: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "fragments", _as_tuple(self.fragments))

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        name = element.name.lower() if self.ignore_case else element.name
        for fragment in self.fragments:
            needle = fragment.lower() if self.ignore_case else fragment
            if needle in name:
                return Match(True, f"name '{element.name}' contains '{fragment}'")
        return Match(False, f"name '{element.name}' contains none of {list(self.fragments)}")

    def describe(self) -> str:
        return f"name contains {list(self.fragments)}"


@dataclass(frozen=True)
class KindIs(Predicate):
    kinds: frozenset[str]

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def __post_init__(self) -> None:
        kinds = frozenset(_as_tuple(self.kinds)) if isinstance(self.kinds, str) else self.kinds
        unknown = kinds - VALID_DECLARATION_KINDS
        if not kinds or unknown:
            msg = f"kind: invalid kind(s) {sorted(unknown) or '[]'}"
            raise RuleConfigError(msg)
        object.__setattr__(self, "kinds", kinds)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        ok = element.kind in self.kinds
        verb = "is" if ok else "is not"
        return Match(ok, f"'{element.name}' {verb} a {'/'.join(sorted(self.kinds))}")

    def describe(self) -> str:
        return f"kind in {sorted(self.kinds)}"


@dataclass(frozen=True)
class HasRole(Predicate):
    role: str

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        role = getattr(element, "role", None)
        if role == self.role:
            return Match(True, f"'{element.name}' has role '{self.role}'")
        return Match(False, f"'{element.name}' has role '{role}', not '{self.role}'")

    def describe(self) -> str:
        return f"role is '{self.role}'"


@dataclass(frozen=True)
class HasModifier(Predicate):
    modifier: str

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        if element.has_modifier(self.modifier):
            return Match(True, f"'{element.name}' has modifier '{self.modifier}'")
        return Match(False, f"'{element.name}' lacks modifier '{self.modifier}'")

    def describe(self) -> str:
        return f"has modifier '{self.modifier}'"


@dataclass(frozen=True)
class InPackage(Predicate):
    """Package path matches a dotted pattern (``..domain..``, ``com.acme..``)."""

    pattern: str
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_package_pattern(self.pattern))

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        if self._regex.search(element.package):
            return Match(True, f"package '{element.package}' matches '{self.pattern}'")
        return Match(False, f"package '{element.package}' does not match '{self.pattern}'")

    def describe(self) -> str:
        return f"resides in package '{self.pattern}'"


@dataclass(frozen=True)
class HasAnnotation(Predicate):
    name: str

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        if element.has_annotation(self.name):
            return Match(True, f"'{element.name}' is annotated with @{self.name}")
        return Match(False, f"'{element.name}' is not annotated with @{self.name}")

    def describe(self) -> str:
        return f"has annotation @{self.name}"


@dataclass(frozen=True)
class ReturnTypeContains(Predicate):
    """Declared return (or property) type name contains a fragment."""

    fragment: str

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        type_name = element.return_type
        if type_name is None:
            return Match(False, f"'{element.name}' has no declared type")
        if self.fragment in type_name:
            return Match(True, f"'{element.name}' has type '{type_name}'", fragment=type_name)
        return Match(
            False,
            f"'{element.name}' has type '{type_name}' without '{self.fragment}'",
            fragment=type_name,
        )

    def describe(self) -> str:
        return f"type contains '{self.fragment}'"


@dataclass(frozen=True)
class HasDoc(Predicate):
    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        if element.has_doc:
            return Match(True, f"'{element.name}' is documented")
        return Match(False, f"'{element.name}' has no documentation")

    def describe(self) -> str:
        return "has documentation"


def _simple_type_name(type_name: str) -> str:
    return type_name.split("<", 1)[0].strip().rsplit(".", 1)[-1]


@dataclass(frozen=True)
class HasParent(Predicate):
    """A declared supertype has this simple name (generics ignored)."""

    name: str

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        for parent in element.parents:
            if _simple_type_name(parent) == self.name:
                return Match(True, f"'{element.name}' extends '{parent}'")
        return Match(False, f"'{element.name}' does not extend '{self.name}'")

    def describe(self) -> str:
        return f"has parent '{self.name}'"


@dataclass(frozen=True)
class ImportsMatching(Predicate):
    """The (owning) unit imports a name containing or matching a pattern.

    ``excluding`` lists substrings that disqualify an otherwise matching
    import, e.g. ``.application.`` excluding ``.platform.application``.
    """

    pattern: str
    regex: bool = False
    excluding: tuple[str, ...] = ()
    _regex: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if not self.pattern:
            msg = "imports: pattern must be a non-empty string"
            raise RuleConfigError(msg)
        object.__setattr__(self, "excluding", _as_tuple(self.excluding))
        if self.regex:
            object.__setattr__(self, "_regex", _compile(self.pattern, "imports"))

    def _hit(self, name: str) -> bool:
        if self._regex is not None:
            hit = self._regex.search(name) is not None
        else:
            hit = self.pattern in name
        return hit and not any(ex in name for ex in self.excluding)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        unit = owning_unit(element, codebase)
        for imp in unit.imports:
            if self._hit(imp.name):
                return Match(True, f"imports '{imp.name}'", fragment=imp.name, line=imp.line)
        return Match(False, f"no import matches '{self.pattern}'")

    def describe(self) -> str:
        return f"imports '{self.pattern}'"


@dataclass(frozen=True)
class Members(Predicate):
    """Quantify a predicate over a declaration's direct members.

    ``Members(NameStartsWith("handle"), kind="function", quantifier="all")``
    holds when every member function's name starts with ``handle``.
    """

    predicate: Predicate
    kind: str | None = None
    quantifier: str = "all"

    targets: ClassVar[frozenset[str]] = DECLARATIONS_ONLY

    def __post_init__(self) -> None:
        if self.quantifier not in MEMBER_QUANTIFIERS:
            msg = (
                f"members: invalid quantifier '{self.quantifier}', "
                f"must be one of {sorted(MEMBER_QUANTIFIERS)}"
            )
            raise RuleConfigError(msg)
        if self.kind is not None and self.kind not in VALID_DECLARATION_KINDS:
            msg = f"members: invalid kind '{self.kind}'"
            raise RuleConfigError(msg)

    def check_target(self, target: str) -> None:
        super().check_target(target)
        self.predicate.check_target(TARGET_DECLARATIONS)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        assert isinstance(element, Declaration)
        label = self.kind or "member"
        members = [m for m in element.members if self.kind is None or m.kind == self.kind]

        for member in members:
            result = self.predicate.evaluate(member, codebase)
            reason = f"{label} '{member.name}': {result.reason}"
            line = result.line if result.line is not None else member.line_start
            if self.quantifier == "all" and not result:
                return Match(False, reason, fragment=result.fragment, line=line)
            if self.quantifier == "any" and result:
                return Match(True, reason, fragment=result.fragment, line=line)
            if self.quantifier == "none" and result:
                return Match(False, reason, fragment=result.fragment, line=line)

        if self.quantifier == "any":
            return Match(False, f"no {label} of '{element.name}' satisfies {self.predicate.describe()}")
        return Match(True, f"{self.quantifier} {label}s of '{element.name}' checked")

    def describe(self) -> str:
        return f"{self.quantifier} {self.kind or 'member'}s: {self.predicate.describe()}"


# ---------------------------------------------------------------------------
# Textual predicates
# ---------------------------------------------------------------------------


def _check_within(within: str, context: str) -> None:
    if within not in _VALID_WITHIN:
        msg = f"{context}: invalid 'within' value '{within}', must be one of {sorted(_VALID_WITHIN)}"
        raise RuleConfigError(msg)


@dataclass(frozen=True)
class TextMatches(Predicate):
    """Raw source text contains a match for a regular expression.

    ``within="declaration"`` restricts the search to the declaration's own
    line span, so unrelated code elsewhere in the file cannot match.
    """

    pattern: str
    within: str = TEXT_WITHIN_UNIT
    ignore_case: bool = False
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        _check_within(self.within, "text_matches")
        flags = re.MULTILINE | (re.IGNORECASE if self.ignore_case else 0)
        object.__setattr__(self, "_regex", _compile(self.pattern, "text_matches", flags))

    def check_target(self, target: str) -> None:
        super().check_target(target)
        if target == TARGET_FILES and self.within == TEXT_WITHIN_DECLARATION:
            msg = f"Predicate '{self.describe()}' cannot be scoped to a declaration on files"
            raise RuleConfigError(msg)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        text, base = _text_window(element, codebase, self.within)
        found = self._regex.search(text)
        if found is None:
            return Match(False, f"text does not match '{self.pattern}'")
        return Match(
            True,
            f"text matches '{self.pattern}'",
            fragment=_clip(found.group(0)),
            line=_line_of(text, found.start(), base),
        )

    def describe(self) -> str:
        return f"text matches '{self.pattern}' (within {self.within})"


@dataclass(frozen=True)
class TextPaired(Predicate):
    """Every occurrence of *anchor* has *companion* within *window* characters.

    Holds vacuously when the anchor never occurs.  A miss reports the first
    unpaired anchor occurrence as the fragment.
    """

    anchor: str
    companion: str
    window: int = 200
    within: str = TEXT_WITHIN_UNIT
    _anchor_re: re.Pattern[str] = field(init=False, repr=False, compare=False, hash=False)
    _companion_re: re.Pattern[str] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        _check_within(self.within, "text_paired")
        if self.window < 0:
            msg = f"text_paired: window must be non-negative, got {self.window}"
            raise RuleConfigError(msg)
        object.__setattr__(
            self, "_anchor_re", _compile(self.anchor, "text_paired.anchor", re.MULTILINE)
        )
        object.__setattr__(
            self, "_companion_re", _compile(self.companion, "text_paired.companion", re.MULTILINE)
        )

    def check_target(self, target: str) -> None:
        super().check_target(target)
        if target == TARGET_FILES and self.within == TEXT_WITHIN_DECLARATION:
            msg = f"Predicate '{self.describe()}' cannot be scoped to a declaration on files"
            raise RuleConfigError(msg)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        text, base = _text_window(element, codebase, self.within)
        count = 0
        for found in self._anchor_re.finditer(text):
            count += 1
            lo = max(0, found.start() - self.window)
            hi = min(len(text), found.end() + self.window)
            if self._companion_re.search(text[lo:hi]) is None:
                return Match(
                    False,
                    f"'{self.anchor}' is not paired with '{self.companion}' "
                    f"within {self.window} characters",
                    fragment=_clip(found.group(0)),
                    line=_line_of(text, found.start(), base),
                )
        return Match(True, f"{count} occurrence(s) of '{self.anchor}' paired with '{self.companion}'")

    def describe(self) -> str:
        return f"'{self.anchor}' paired with '{self.companion}' within {self.window}"


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def _first_located(matches: list[Match]) -> tuple[str | None, int | None]:
    for m in matches:
        if m.fragment is not None or m.line is not None:
            return m.fragment, m.line
    return None, None


@dataclass(frozen=True)
class AllOf(Predicate):
    """Short-circuit AND, evaluated in declaration order."""

    parts: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            msg = "all_of: at least one predicate is required"
            raise RuleConfigError(msg)
        object.__setattr__(self, "parts", tuple(self.parts))

    def check_target(self, target: str) -> None:
        for part in self.parts:
            part.check_target(target)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        results: list[Match] = []
        for part in self.parts:
            result = part.evaluate(element, codebase)
            if not result:
                return result
            results.append(result)
        fragment, line = _first_located(results)
        reason = "; ".join(r.reason for r in results if r.reason) or None
        return Match(True, reason, fragment=fragment, line=line)

    def describe(self) -> str:
        return "(" + " and ".join(p.describe() for p in self.parts) + ")"

    def __and__(self, other: Predicate) -> AllOf:
        return AllOf((*self.parts, other))


@dataclass(frozen=True)
class AnyOf(Predicate):
    """Short-circuit OR, evaluated in declaration order."""

    parts: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            msg = "any_of: at least one predicate is required"
            raise RuleConfigError(msg)
        object.__setattr__(self, "parts", tuple(self.parts))

    def check_target(self, target: str) -> None:
        for part in self.parts:
            part.check_target(target)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        results: list[Match] = []
        for part in self.parts:
            result = part.evaluate(element, codebase)
            if result:
                return result
            results.append(result)
        fragment, line = _first_located(results)
        reason = "; ".join(r.reason for r in results if r.reason) or None
        return Match(False, reason, fragment=fragment, line=line)

    def describe(self) -> str:
        return "(" + " or ".join(p.describe() for p in self.parts) + ")"

    def __or__(self, other: Predicate) -> AnyOf:
        return AnyOf((*self.parts, other))


@dataclass(frozen=True)
class Not(Predicate):
    inner: Predicate

    def check_target(self, target: str) -> None:
        self.inner.check_target(target)

    def evaluate(self, element: Element, codebase: Codebase) -> Match:
        return self.inner.evaluate(element, codebase).negate()

    def describe(self) -> str:
        return f"not {self.inner.describe()}"

    def __invert__(self) -> Predicate:
        return self.inner


def all_of(*parts: Predicate) -> AllOf:
    return AllOf(parts)


def any_of(*parts: Predicate) -> AnyOf:
    return AnyOf(parts)


def not_(inner: Predicate) -> Not:
    return Not(inner)
