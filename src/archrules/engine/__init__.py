"""Engine domain: scope selection, predicates, quantified rules, evaluation, reports."""

from archrules.engine.evaluator import CancelToken, RuleRun, evaluate_rule, run_rules
from archrules.engine.predicates import (
    AllOf,
    AnyOf,
    HasAnnotation,
    HasDoc,
    HasModifier,
    HasParent,
    HasRole,
    ImportsMatching,
    InPackage,
    KindIs,
    Match,
    Members,
    NameContains,
    NameEndsWith,
    NameMatches,
    NameStartsWith,
    Not,
    Predicate,
    ReturnTypeContains,
    TextMatches,
    TextPaired,
    all_of,
    any_of,
    not_,
)
from archrules.engine.report import (
    Report,
    RuleResult,
    Violation,
    format_json,
    format_porcelain,
    format_rich,
)
from archrules.engine.rule_loader import load_rules, parse_predicate, parse_rules
from archrules.engine.rules import Exemptions, Rule
from archrules.engine.scope import Scope, ScopeSelector, ScopeSpec, select

__all__ = [
    "AllOf",
    "AnyOf",
    "CancelToken",
    "Exemptions",
    "HasAnnotation",
    "HasDoc",
    "HasModifier",
    "HasParent",
    "HasRole",
    "ImportsMatching",
    "InPackage",
    "KindIs",
    "Match",
    "Members",
    "NameContains",
    "NameEndsWith",
    "NameMatches",
    "NameStartsWith",
    "Not",
    "Predicate",
    "Report",
    "ReturnTypeContains",
    "Rule",
    "RuleResult",
    "RuleRun",
    "Scope",
    "ScopeSelector",
    "ScopeSpec",
    "TextMatches",
    "TextPaired",
    "Violation",
    "all_of",
    "any_of",
    "evaluate_rule",
    "format_json",
    "format_porcelain",
    "format_rich",
    "load_rules",
    "not_",
    "parse_predicate",
    "parse_rules",
    "run_rules",
    "select",
]
