"""Violations, per-rule results, the run report, and its formatters.

Reports are deterministic: rules appear in registration order and violations
in scope order, and no timing or environment data is included, so two runs
over an unchanged model render byte-identical output.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass

from archrules.engine.rules import ENFORCED, INFORMATIONAL

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OUTCOME_PASSED = "passed"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ERROR = "error"
OUTCOME_DISABLED = "disabled"
VALID_OUTCOMES: frozenset[str] = frozenset(
    {OUTCOME_PASSED, OUTCOME_FAILED, OUTCOME_SKIPPED, OUTCOME_ERROR, OUTCOME_DISABLED}
)

SEVERITY_ERROR = "error"
SEVERITY_WARN = "warn"

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """A single rule violation tied to one element of the rule's scope."""

    rule_name: str
    element_id: str
    element_kind: str  # "file" | "class" | "interface" | ...
    element_name: str
    path: str
    line: int | None
    message: str  # the rule's message
    reason: str | None = None  # what the predicate observed
    fragment: str | None = None  # matched text, for textual and import predicates
    severity: str = SEVERITY_ERROR

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}" if self.line is not None else self.path


@dataclass(frozen=True)
class RuleResult:
    """Outcome of evaluating one rule."""

    rule_name: str
    outcome: str
    quantifier: str
    enforcement: str = ENFORCED
    violations: tuple[Violation, ...] = ()
    scope_size: int = 0
    exempted: int = 0
    matched: int = 0
    detail: str | None = None

    @property
    def informational(self) -> bool:
        return self.enforcement == INFORMATIONAL

    @property
    def is_blocking(self) -> bool:
        """True if this result should fail the run."""
        return self.enforcement == ENFORCED and self.outcome in (OUTCOME_FAILED, OUTCOME_ERROR)

    @property
    def is_warning(self) -> bool:
        """True for an informational rule that failed: reported, not enforced."""
        return self.informational and self.outcome == OUTCOME_FAILED


@dataclass(frozen=True)
class Report:
    """Ordered per-rule outcomes of one run."""

    results: tuple[RuleResult, ...] = ()

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def result(self, rule_name: str) -> RuleResult | None:
        for r in self.results:
            if r.rule_name == rule_name:
                return r
        return None

    @property
    def violations(self) -> list[Violation]:
        return [v for r in self.results for v in r.violations]

    @property
    def passed(self) -> bool:
        return not any(r.is_blocking for r in self.results)

    @property
    def exit_code(self) -> int:
        """0 when no enforced rule failed or errored, 1 otherwise."""
        return 0 if self.passed else 1

    def counts(self) -> dict[str, int]:
        """Number of rules per outcome, every outcome present."""
        counter = Counter(r.outcome for r in self.results)
        return {outcome: counter.get(outcome, 0) for outcome in sorted(VALID_OUTCOMES)}


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_MARKS: dict[str, str] = {
    OUTCOME_PASSED: "✓",
    OUTCOME_FAILED: "✗",
    OUTCOME_SKIPPED: "-",
    OUTCOME_ERROR: "!",
    OUTCOME_DISABLED: "·",
}


def format_rich(report: Report, *, show_passed: bool = False) -> str:
    """Format a report as human-readable text.

    Example output::

        Rules: 3 evaluated (1 passed, 1 failed, 1 skipped)

        ✗ ports-are-named-port [all]
          Ports must end with 'Port'
          src/app/port/Helper.kt:3 → bazHelper: name 'bazHelper' does not match ...

        - orphan-rule [all] skipped: scope matched no elements

        1 violation in 1 failing rule
    """
    counts = report.counts()
    summary_parts = [f"{counts[o]} {o}" for o in sorted(counts) if counts[o]]
    lines: list[str] = [f"Rules: {len(report)} evaluated ({', '.join(summary_parts) or 'none'})", ""]

    warnings = 0
    for r in report.results:
        if r.outcome == OUTCOME_PASSED and not show_passed:
            continue
        mark = "⚠" if r.is_warning else _MARKS[r.outcome]
        header = f"{mark} {r.rule_name} [{r.quantifier}]"
        if r.informational:
            header += " (informational)"
        if r.outcome in (OUTCOME_SKIPPED, OUTCOME_ERROR, OUTCOME_DISABLED):
            header += f" {r.outcome}"
            if r.detail:
                header += f": {r.detail}"
            lines.append(header)
            lines.append("")
            continue
        lines.append(header)
        if r.violations:
            lines.append(f"  {r.violations[0].message}")
        elif r.detail:
            lines.append(f"  {r.detail}")
        for v in r.violations:
            text = f"  {v.location} → {v.element_name}"
            if v.reason:
                text += f": {v.reason}"
            lines.append(text)
            if v.fragment:
                lines.append(f"    | {v.fragment}")
            if r.is_warning:
                warnings += 1
        lines.append("")

    blocking = [r for r in report.results if r.is_blocking]
    blocking_violations = sum(len(r.violations) for r in blocking)
    if blocking:
        lines.append(
            f"{blocking_violations} violation(s) in {len(blocking)} failing rule(s)"
            + (f", {warnings} warning(s)" if warnings else "")
        )
    else:
        lines.append(
            "✓ No enforced rule failed" + (f" ({warnings} warning(s))" if warnings else "")
        )
    return "\n".join(lines)


def _violation_to_dict(v: Violation) -> dict[str, object]:
    return {
        "element_id": v.element_id,
        "element_kind": v.element_kind,
        "element_name": v.element_name,
        "path": v.path,
        "line": v.line,
        "message": v.message,
        "reason": v.reason,
        "fragment": v.fragment,
        "severity": v.severity,
    }


def report_to_dict(report: Report) -> dict[str, object]:
    rules: list[dict[str, object]] = []
    for r in report.results:
        rules.append(
            {
                "rule_name": r.rule_name,
                "outcome": r.outcome,
                "quantifier": r.quantifier,
                "enforcement": r.enforcement,
                "scope_size": r.scope_size,
                "exempted": r.exempted,
                "matched": r.matched,
                "detail": r.detail,
                "violations": [_violation_to_dict(v) for v in r.violations],
            }
        )
    return {
        "rules": rules,
        "summary": {
            "rules_evaluated": len(report),
            "outcomes": report.counts(),
            "violations_count": len(report.violations),
            "passed": report.passed,
        },
    }


def format_json(report: Report) -> str:
    """Format a report as structured JSON with ``rules`` and ``summary``."""
    return json.dumps(report_to_dict(report), indent=2)


def format_porcelain(report: Report) -> str:
    """Format a report as one colon-separated line per finding.

    Format: ``rule_name:outcome:severity:path:line:element_name``

    Rules that did not pass but have no violations (skipped, error, a failed
    ``any``) get a single line with empty location fields.  Passed and
    disabled rules produce no output.
    """
    lines: list[str] = []
    for r in report.results:
        if r.outcome in (OUTCOME_PASSED, OUTCOME_DISABLED):
            continue
        if not r.violations:
            lines.append(f"{r.rule_name}:{r.outcome}::::")
            continue
        for v in r.violations:
            line = str(v.line) if v.line is not None else ""
            lines.append(f"{r.rule_name}:{r.outcome}:{v.severity}:{v.path}:{line}:{v.element_name}")
    return "\n".join(lines)
