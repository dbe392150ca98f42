"""Quantified rules: scope + predicate + quantifier + exemptions + enforcement."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archrules.engine.predicates import owning_unit
from archrules.errors import RuleConfigError
from archrules.model.codebase import Declaration, normalize_path

if TYPE_CHECKING:
    from archrules.engine.predicates import Predicate
    from archrules.engine.scope import ScopeSpec
    from archrules.model.codebase import Codebase, Element

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

QUANTIFIER_ALL = "all"
QUANTIFIER_NONE = "none"
QUANTIFIER_ANY = "any"
QUANTIFIER_EXACTLY = "exactly"
VALID_QUANTIFIERS: frozenset[str] = frozenset(
    {QUANTIFIER_ALL, QUANTIFIER_NONE, QUANTIFIER_ANY, QUANTIFIER_EXACTLY}
)

ENFORCED = "enforced"
INFORMATIONAL = "informational"
DISABLED = "disabled"
VALID_ENFORCEMENTS: frozenset[str] = frozenset({ENFORCED, INFORMATIONAL, DISABLED})

DEFAULT_EXEMPTION_MARKER = "archrules:allow"

# ---------------------------------------------------------------------------
# Exemptions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Exemptions:
    """Elements removed from a rule's scope before the quantifier runs.

    - ``names``: element ids, qualified names, or simple names;
    - ``path_suffixes``: elements whose path ends with one of these;
    - ``marker``: an inline comment token.  A bare ``archrules:allow``
      exempts the element from every rule; ``archrules:allow=rule-a,rule-b``
      only from the listed rules.  For declarations the marker is searched in
      the declaration's line span and the line directly above it, minus the
      lines that belong to its members; for files, anywhere in the file.
    """

    names: tuple[str, ...] = ()
    path_suffixes: tuple[str, ...] = ()
    marker: str | None = None
    _marker_re: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", tuple(self.names))
        object.__setattr__(
            self, "path_suffixes", tuple(normalize_path(s) for s in self.path_suffixes)
        )
        if self.marker is not None:
            if not self.marker.strip():
                msg = "exempt.marker must be a non-empty token"
                raise RuleConfigError(msg)
            marker_re = re.compile(re.escape(self.marker) + r"(?:=([\w.,-]+))?")
            object.__setattr__(self, "_marker_re", marker_re)

    @property
    def is_empty(self) -> bool:
        return not (self.names or self.path_suffixes or self.marker)

    def _marker_text(self, element: Element, codebase: Codebase) -> str:
        unit = owning_unit(element, codebase)
        if not isinstance(element, Declaration) or element.line_start is None:
            return unit.text
        lines = unit.text.splitlines()
        start = element.line_start
        end = element.line_end if element.line_end is not None else start

        # A member's span and the line above it carry the member's own marker.
        claimed: set[int] = set()
        for member in element.members:
            if member.line_start is None:
                continue
            member_end = member.line_end if member.line_end is not None else member.line_start
            claimed.update(range(member.line_start - 1, member_end + 1))
        claimed -= {start - 1, start}

        numbers = [n for n in range(max(start - 1, 1), end + 1) if n not in claimed]
        return "\n".join(lines[n - 1] for n in numbers if n <= len(lines))

    def exempts(self, element: Element, codebase: Codebase, rule_name: str) -> bool:
        """Return True if *element* is exempt from the rule named *rule_name*."""
        if self.names and (
            element.element_id in self.names
            or element.qualified_name in self.names
            or element.name in self.names
        ):
            return True
        if self.path_suffixes and element.path.endswith(self.path_suffixes):
            return True
        if self._marker_re is None:
            return False
        for found in self._marker_re.finditer(self._marker_text(element, codebase)):
            listed = found.group(1)
            if listed is None or rule_name in listed.split(","):
                return True
        return False


# ---------------------------------------------------------------------------
# Rule
# ---------------------------------------------------------------------------

_DEFAULT_MESSAGES: dict[str, str] = {
    QUANTIFIER_ALL: "must satisfy: {predicate}",
    QUANTIFIER_NONE: "must never: {predicate}",
    QUANTIFIER_ANY: "at least one element must satisfy: {predicate}",
    QUANTIFIER_EXACTLY: "exactly {count} element(s) must satisfy: {predicate}",
}


@dataclass(frozen=True)
class Rule:
    """A read-only, checkable architectural assertion.

    ``none`` is kept distinct from ``all`` over a negated predicate because the
    violation reads differently ("must never import X" against "must always
    avoid X") and the violating match carries the offending fragment.
    """

    name: str
    scope: ScopeSpec
    predicate: Predicate
    quantifier: str = QUANTIFIER_ALL
    count: int | None = None
    message: str = ""
    description: str = ""
    exemptions: Exemptions = field(default_factory=Exemptions)
    enforcement: str = ENFORCED
    require_non_empty: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            msg = "Rule name must be a non-empty string"
            raise RuleConfigError(msg)

        if self.quantifier not in VALID_QUANTIFIERS:
            msg = (
                f"Rule '{self.name}': unknown quantifier '{self.quantifier}', "
                f"must be one of {sorted(VALID_QUANTIFIERS)}"
            )
            raise RuleConfigError(msg)

        if self.quantifier == QUANTIFIER_EXACTLY:
            if self.count is None or self.count < 0:
                msg = f"Rule '{self.name}': 'exactly' requires a non-negative count"
                raise RuleConfigError(msg)
        elif self.count is not None:
            msg = f"Rule '{self.name}': count is only valid with the 'exactly' quantifier"
            raise RuleConfigError(msg)

        if self.enforcement not in VALID_ENFORCEMENTS:
            msg = (
                f"Rule '{self.name}': invalid enforcement '{self.enforcement}', "
                f"must be one of {sorted(VALID_ENFORCEMENTS)}"
            )
            raise RuleConfigError(msg)

        try:
            self.predicate.check_target(self.scope.target)
        except RuleConfigError as exc:
            msg = f"Rule '{self.name}': {exc}"
            raise RuleConfigError(msg) from exc

    @property
    def informational(self) -> bool:
        return self.enforcement == INFORMATIONAL

    @property
    def disabled(self) -> bool:
        return self.enforcement == DISABLED

    @property
    def violation_message(self) -> str:
        if self.message:
            return self.message
        if self.description:
            return self.description
        template = _DEFAULT_MESSAGES[self.quantifier]
        return template.format(predicate=self.predicate.describe(), count=self.count)
