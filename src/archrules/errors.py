"""Exception hierarchy shared by the model, engine, and runner."""

from __future__ import annotations


class ArchRulesError(Exception):
    """Base class for all archrules errors."""


class RuleConfigError(ArchRulesError, ValueError):
    """Raised when a rule, scope, or predicate is misconfigured.

    Always raised while the rule is being built, never while it is evaluated,
    so a malformed rule cannot silently report "no violations".
    """


class ModelError(ArchRulesError):
    """Raised when the codebase model is internally inconsistent.

    The evaluator turns this into an ``error`` outcome for the affected rule
    instead of aborting the whole run.
    """


class CheckError(ArchRulesError):
    """Raised by the runner when the rules or model cannot be loaded."""
