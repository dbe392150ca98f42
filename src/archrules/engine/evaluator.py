"""Rule evaluation: quantifier semantics, per-rule isolation, and the parallel run."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from archrules.engine.report import (
    OUTCOME_DISABLED,
    OUTCOME_ERROR,
    OUTCOME_FAILED,
    OUTCOME_PASSED,
    OUTCOME_SKIPPED,
    SEVERITY_ERROR,
    SEVERITY_WARN,
    Report,
    RuleResult,
    Violation,
)
from archrules.engine.rules import (
    QUANTIFIER_ALL,
    QUANTIFIER_ANY,
    QUANTIFIER_EXACTLY,
    QUANTIFIER_NONE,
)
from archrules.engine.scope import ScopeSelector, select
from archrules.errors import ModelError, RuleConfigError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from archrules.engine.predicates import Match
    from archrules.engine.rules import Rule
    from archrules.engine.scope import Scope
    from archrules.model.codebase import Codebase, Element

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancelToken:
    """Cooperative, coarse-grained cancellation checked between rules."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Single-rule state machine
# ---------------------------------------------------------------------------

STATE_UNEVALUATED = "unevaluated"
STATE_EVALUATING = "evaluating"


class RuleRun:
    """One evaluation of one rule: ``unevaluated -> evaluating -> terminal``.

    The terminal state is the outcome of the produced :class:`RuleResult`.
    A run can be finished exactly once.
    """

    def __init__(self, rule: Rule) -> None:
        self.rule = rule
        self.state = STATE_UNEVALUATED
        self.result: RuleResult | None = None

    def start(self) -> None:
        if self.state != STATE_UNEVALUATED:
            msg = f"Rule '{self.rule.name}' cannot start from state '{self.state}'"
            raise RuntimeError(msg)
        self.state = STATE_EVALUATING

    def finish(self, outcome: str, **kwargs: object) -> RuleResult:
        if self.result is not None:
            msg = f"Rule '{self.rule.name}' already finished as '{self.state}'"
            raise RuntimeError(msg)
        self.result = RuleResult(
            rule_name=self.rule.name,
            outcome=outcome,
            quantifier=self.rule.quantifier,
            enforcement=self.rule.enforcement,
            **kwargs,  # type: ignore[arg-type]
        )
        self.state = outcome
        return self.result


# ---------------------------------------------------------------------------
# Quantifiers
# ---------------------------------------------------------------------------


def _violation(rule: Rule, element: Element, match: Match) -> Violation:
    line = match.line if match.line is not None else element.line
    return Violation(
        rule_name=rule.name,
        element_id=element.element_id,
        element_kind=element.kind,
        element_name=element.name,
        path=element.path,
        line=line,
        message=rule.violation_message,
        reason=match.reason,
        fragment=match.fragment,
        severity=SEVERITY_WARN if rule.informational else SEVERITY_ERROR,
    )


def _quantify(
    rule: Rule, scope: Scope, codebase: Codebase
) -> tuple[bool, list[Violation], int, str | None]:
    """Evaluate the predicate over *scope*.

    Returns ``(passed, violations, matched_count, detail)``.
    """
    quantifier = rule.quantifier
    violations: list[Violation] = []
    matched = 0

    for element in scope:
        match = rule.predicate.evaluate(element, codebase)
        if match:
            matched += 1
        if quantifier == QUANTIFIER_ALL and not match:
            violations.append(_violation(rule, element, match))
        elif quantifier in (QUANTIFIER_NONE, QUANTIFIER_EXACTLY) and match:
            violations.append(_violation(rule, element, match))
        elif quantifier == QUANTIFIER_ANY and match:
            # One witness is enough.
            return True, [], matched, None

    if quantifier in (QUANTIFIER_ALL, QUANTIFIER_NONE):
        return not violations, violations, matched, None

    if quantifier == QUANTIFIER_ANY:
        if scope.is_empty:
            return False, [], 0, "scope is empty, nothing can satisfy the predicate"
        return False, [], 0, f"none of {len(scope)} element(s) satisfy the predicate"

    # exactly(n)
    assert rule.count is not None
    if matched == rule.count:
        return True, [], matched, None
    detail = f"expected exactly {rule.count} matching element(s), found {matched}"
    # Too many: every match is a violation.  Too few: there is no element to blame.
    return False, violations if matched > rule.count else [], matched, detail


def _exempted_ids(rule: Rule, scope: Scope, codebase: Codebase) -> list[str]:
    if rule.exemptions.is_empty:
        return []
    return [e.element_id for e in scope if rule.exemptions.exempts(e, codebase, rule.name)]


def evaluate_rule(
    rule: Rule,
    codebase: Codebase,
    *,
    scope: Scope | None = None,
    cancel: CancelToken | None = None,
) -> RuleResult:
    """Evaluate one rule against *codebase* and return its result.

    Never raises for violations or for a defect in the model: a
    :class:`~archrules.errors.ModelError` or any unexpected exception becomes
    an ``error`` outcome so other rules still report.  ``MemoryError`` is not
    caught.
    """
    run = RuleRun(rule)

    if rule.disabled:
        return run.finish(OUTCOME_DISABLED, detail="rule is disabled")
    if cancel is not None and cancel.cancelled:
        return run.finish(OUTCOME_SKIPPED, detail="run cancelled before evaluation")

    run.start()
    started = time.perf_counter()
    try:
        if scope is None:
            scope = select(codebase, rule.scope)
        scope_size = len(scope)

        # An empty scope always fails `any`, so only the other quantifiers skip.
        if rule.require_non_empty and scope.is_empty and rule.quantifier != QUANTIFIER_ANY:
            logger.warning("Rule '%s' skipped: scope matched no elements", rule.name)
            return run.finish(OUTCOME_SKIPPED, detail="scope matched no elements")

        exempted = _exempted_ids(rule, scope, codebase)
        effective = scope.without(exempted) if exempted else scope

        passed, violations, matched, detail = _quantify(rule, effective, codebase)
    except MemoryError:
        raise
    except ModelError as exc:
        logger.warning("Rule '%s' hit a model error: %s", rule.name, exc)
        return run.finish(OUTCOME_ERROR, detail=f"model error: {exc}")
    except Exception as exc:
        logger.exception("Rule '%s' crashed during evaluation", rule.name)
        return run.finish(OUTCOME_ERROR, detail=f"{type(exc).__name__}: {exc}")

    logger.debug(
        "Rule '%s': scope=%d exempted=%d matched=%d violations=%d (%.1f ms)",
        rule.name,
        scope_size,
        len(exempted),
        matched,
        len(violations),
        (time.perf_counter() - started) * 1000,
    )
    return run.finish(
        OUTCOME_PASSED if passed else OUTCOME_FAILED,
        violations=tuple(violations),
        scope_size=scope_size,
        exempted=len(exempted),
        matched=matched,
        detail=detail,
    )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def _check_unique_names(rules: Sequence[Rule]) -> None:
    seen: set[str] = set()
    for rule in rules:
        if rule.name in seen:
            msg = f"Duplicate rule name: '{rule.name}'"
            raise RuleConfigError(msg)
        seen.add(rule.name)


def run_rules(
    codebase: Codebase,
    rules: Sequence[Rule],
    *,
    max_workers: int = 1,
    cancel: CancelToken | None = None,
) -> Report:
    """Evaluate every rule against *codebase* and return the ordered report.

    Scopes are selected up front, shared between rules with identical
    specs.  With ``max_workers > 1`` rules are evaluated on a thread pool;
    the report is always in registration order regardless of completion
    order.
    """
    _check_unique_names(rules)
    if max_workers < 1:
        msg = f"max_workers must be at least 1, got {max_workers}"
        raise ValueError(msg)

    selector = ScopeSelector(codebase)
    scopes: list[Scope | None] = []
    for rule in rules:
        # Disabled rules never touch the model.
        scopes.append(None if rule.disabled else selector.select(rule.scope))

    if max_workers == 1 or len(rules) < 2:
        results = [
            evaluate_rule(rule, codebase, scope=scope, cancel=cancel)
            for rule, scope in zip(rules, scopes)
        ]
        return Report(results=tuple(results))

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_map = {
            executor.submit(evaluate_rule, rule, codebase, scope=scope, cancel=cancel): idx
            for idx, (rule, scope) in enumerate(zip(rules, scopes))
        }
        ordered: list[RuleResult | None] = [None] * len(rules)
        for future, idx in future_map.items():
            ordered[idx] = future.result()

    logger.debug("Evaluated %d rules on %d workers", len(rules), max_workers)
    return Report(results=tuple(r for r in ordered if r is not None))
