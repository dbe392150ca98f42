"""Load rule definitions from ``rules.yml``.

Schema (version 1)::

    version: 1
    rules:
      - name: ports-are-named-port
        description: Ports end with Port
        message: "Port interfaces must be named *Port"
        scope:
          target: declarations
          path_contains: /port/
          kind: interface
          exclude_tests: true
        all:
          name_matches: "^[A-Z][a-zA-Z]+Port$"
        exempt:
          names: [LegacyGateway]
          marker: true
        enforcement: informational
        require_non_empty: true

Each rule has exactly one quantifier key (``all``, ``none``, ``any`` or
``exactly``).  ``exactly`` takes ``{count: N, where: <predicate>}``.  A
predicate mapping with several keys is the conjunction of its keys, in the
order they are written.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import yaml

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
    Members,
    NameContains,
    NameEndsWith,
    NameMatches,
    NameStartsWith,
    Not,
    ReturnTypeContains,
    TextMatches,
    TextPaired,
)
from archrules.engine.rules import (
    DEFAULT_EXEMPTION_MARKER,
    ENFORCED,
    QUANTIFIER_ALL,
    QUANTIFIER_ANY,
    QUANTIFIER_EXACTLY,
    QUANTIFIER_NONE,
    Exemptions,
    Rule,
)
from archrules.engine.scope import DEFAULT_TEST_MARKERS, TARGET_DECLARATIONS, ScopeSpec
from archrules.errors import RuleConfigError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from archrules.engine.predicates import Predicate
    from archrules.settings import EngineSettings

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})

_QUANTIFIER_KEYS: tuple[str, ...] = (
    QUANTIFIER_ALL,
    QUANTIFIER_NONE,
    QUANTIFIER_ANY,
    QUANTIFIER_EXACTLY,
)

# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _str_list(value: object, context: str) -> tuple[str, ...]:
    """Accept a single string or a list of strings."""
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    msg = f"{context} must be a string or a list of strings"
    raise RuleConfigError(msg)


def _str(value: object, context: str) -> str:
    if not isinstance(value, str) or not value:
        msg = f"{context} must be a non-empty string"
        raise RuleConfigError(msg)
    return value


def _bool(value: object, context: str) -> bool:
    if not isinstance(value, bool):
        msg = f"{context} must be true or false"
        raise RuleConfigError(msg)
    return value


def _mapping(value: object, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        msg = f"{context} must be a mapping"
        raise RuleConfigError(msg)
    return value


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _parse_imports(value: object, context: str) -> Predicate:
    if isinstance(value, str):
        return ImportsMatching(value)
    data = _mapping(value, context)
    excluding = _str_list(data.get("excluding", []), f"{context}.excluding")
    if "regex" in data:
        return ImportsMatching(_str(data["regex"], f"{context}.regex"), regex=True, excluding=excluding)
    if "contains" in data:
        return ImportsMatching(_str(data["contains"], f"{context}.contains"), excluding=excluding)
    msg = f"{context} requires 'contains' or 'regex'"
    raise RuleConfigError(msg)


def _parse_text_matches(value: object, context: str) -> Predicate:
    if isinstance(value, str):
        return TextMatches(value)
    data = _mapping(value, context)
    return TextMatches(
        _str(data.get("pattern"), f"{context}.pattern"),
        within=str(data.get("within", "unit")),
        ignore_case=_bool(data.get("ignore_case", False), f"{context}.ignore_case"),
    )


def _parse_text_paired(value: object, context: str) -> Predicate:
    data = _mapping(value, context)
    window = data.get("window", 200)
    if not isinstance(window, int) or isinstance(window, bool):
        msg = f"{context}.window must be an integer"
        raise RuleConfigError(msg)
    return TextPaired(
        _str(data.get("anchor"), f"{context}.anchor"),
        _str(data.get("companion"), f"{context}.companion"),
        window=window,
        within=str(data.get("within", "unit")),
    )


def _parse_members(value: object, context: str) -> Predicate:
    data = dict(_mapping(value, context))
    kind = data.pop("kind", None)
    if kind is not None:
        kind = _str(kind, f"{context}.kind")
    keys = [k for k in ("all", "any", "none") if k in data]
    if len(keys) != 1 or len(data) != 1:
        msg = f"{context} must have 'kind' and exactly one of 'all', 'any' or 'none'"
        raise RuleConfigError(msg)
    quantifier = keys[0]
    inner = _parse_predicate(data[quantifier], f"{context}.{quantifier}")
    return Members(inner, kind=kind, quantifier=quantifier)


def _parse_list(value: object, context: str) -> tuple[Predicate, ...]:
    if not isinstance(value, list) or not value:
        msg = f"{context} must be a non-empty list of predicates"
        raise RuleConfigError(msg)
    return tuple(_parse_predicate(item, f"{context}[{i}]") for i, item in enumerate(value))


def _parse_has_doc(value: object, context: str) -> Predicate:
    return HasDoc() if _bool(value, context) else Not(HasDoc())


_SIMPLE_PREDICATES: dict[str, Callable[[object, str], Predicate]] = {
    "name_matches": lambda v, c: NameMatches(_str(v, c)),
    "name_starts_with": lambda v, c: NameStartsWith(_str_list(v, c)),
    "name_ends_with": lambda v, c: NameEndsWith(_str_list(v, c)),
    "name_contains": lambda v, c: NameContains(_str_list(v, c)),
    "kind": lambda v, c: KindIs(frozenset(_str_list(v, c))),
    "role": lambda v, c: HasRole(_str(v, c)),
    "has_modifier": lambda v, c: HasModifier(_str(v, c)),
    "in_package": lambda v, c: InPackage(_str(v, c)),
    "has_annotation": lambda v, c: HasAnnotation(_str(v, c)),
    "return_type_contains": lambda v, c: ReturnTypeContains(_str(v, c)),
    "has_doc": _parse_has_doc,
    "has_parent": lambda v, c: HasParent(_str(v, c)),
    "imports": _parse_imports,
    "text_matches": _parse_text_matches,
    "text_paired": _parse_text_paired,
    "members": _parse_members,
    "all_of": lambda v, c: AllOf(_parse_list(v, c)),
    "any_of": lambda v, c: AnyOf(_parse_list(v, c)),
    "not": lambda v, c: Not(_parse_predicate(v, c)),
}

VALID_PREDICATE_KEYS: frozenset[str] = frozenset(_SIMPLE_PREDICATES)


def _parse_predicate(data: object, context: str) -> Predicate:
    """Parse a predicate expression mapping."""
    mapping = _mapping(data, context)
    if not mapping:
        msg = f"{context} must contain at least one predicate"
        raise RuleConfigError(msg)

    parts: list[Predicate] = []
    for key, value in mapping.items():
        factory = _SIMPLE_PREDICATES.get(key)
        if factory is None:
            msg = (
                f"{context}: unknown predicate '{key}', "
                f"must be one of {sorted(VALID_PREDICATE_KEYS)}"
            )
            raise RuleConfigError(msg)
        parts.append(factory(value, f"{context}.{key}"))

    return parts[0] if len(parts) == 1 else AllOf(tuple(parts))


def parse_predicate(data: object) -> Predicate:
    """Parse a standalone predicate expression (public for tests and tooling)."""
    return _parse_predicate(data, "predicate")


# ---------------------------------------------------------------------------
# Scope and exemptions
# ---------------------------------------------------------------------------

_SCOPE_LIST_KEYS: dict[str, str] = {
    "path_contains": "path_contains",
    "path_ends_with": "path_ends_with",
    "package": "packages",
    "packages": "packages",
    "name_prefix": "name_prefixes",
    "name_prefixes": "name_prefixes",
    "name_suffix": "name_suffixes",
    "name_suffixes": "name_suffixes",
    "exclude_paths": "exclude_paths",
    "exclude_names": "exclude_names",
    "exclude_name_suffixes": "exclude_name_suffixes",
    "test_markers": "test_markers",
}

_SCOPE_SET_KEYS: dict[str, str] = {
    "kind": "kinds",
    "kinds": "kinds",
    "role": "roles",
    "roles": "roles",
    "modifiers": "modifiers",
    "exclude_modifiers": "exclude_modifiers",
}

_SCOPE_BOOL_KEYS: frozenset[str] = frozenset({"include_members", "exclude_tests"})

_SCOPE_STR_KEYS: frozenset[str] = frozenset({"target", "directory", "name_pattern"})


def _parse_scope(
    name: str, data: object, test_markers: tuple[str, ...]
) -> ScopeSpec:
    context = f"Rule '{name}': scope"
    mapping = _mapping(data if data is not None else {}, context)

    kwargs: dict[str, Any] = {"target": TARGET_DECLARATIONS, "test_markers": test_markers}
    for key, value in mapping.items():
        if key in _SCOPE_LIST_KEYS:
            kwargs[_SCOPE_LIST_KEYS[key]] = _str_list(value, f"{context}.{key}")
        elif key in _SCOPE_SET_KEYS:
            kwargs[_SCOPE_SET_KEYS[key]] = frozenset(_str_list(value, f"{context}.{key}"))
        elif key in _SCOPE_BOOL_KEYS:
            kwargs[key] = _bool(value, f"{context}.{key}")
        elif key in _SCOPE_STR_KEYS:
            kwargs[key] = _str(value, f"{context}.{key}")
        else:
            msg = f"{context}: unknown key '{key}'"
            raise RuleConfigError(msg)

    try:
        return ScopeSpec(**kwargs)
    except RuleConfigError as exc:
        msg = f"Rule '{name}': {exc}"
        raise RuleConfigError(msg) from exc


def _parse_exemptions(name: str, data: object, default_marker: str) -> Exemptions:
    if data is None:
        return Exemptions()
    context = f"Rule '{name}': exempt"
    mapping = _mapping(data, context)
    unknown = set(mapping) - {"names", "path_suffixes", "marker"}
    if unknown:
        msg = f"{context}: unknown key(s) {sorted(unknown)}"
        raise RuleConfigError(msg)

    marker_raw = mapping.get("marker")
    marker: str | None
    if marker_raw is None or marker_raw is False:
        marker = None
    elif marker_raw is True:
        marker = default_marker
    else:
        marker = _str(marker_raw, f"{context}.marker")

    return Exemptions(
        names=_str_list(mapping.get("names", []), f"{context}.names"),
        path_suffixes=_str_list(mapping.get("path_suffixes", []), f"{context}.path_suffixes"),
        marker=marker,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _parse_rule(
    idx: int,
    rule_data: object,
    *,
    test_markers: tuple[str, ...],
    default_marker: str,
    default_require_non_empty: bool,
) -> Rule:
    if not isinstance(rule_data, dict):
        msg = f"rules.yml: rule at index {idx} must be a mapping"
        raise RuleConfigError(msg)

    name = rule_data.get("name")
    if name is None or not isinstance(name, str) or not name.strip():
        msg = f"rules.yml: rule at index {idx} missing required 'name' field"
        raise RuleConfigError(msg)

    present = [k for k in _QUANTIFIER_KEYS if k in rule_data]
    if len(present) != 1:
        msg = f"rules.yml: rule '{name}' must have exactly one of 'all', 'none', 'any' or 'exactly'"
        raise RuleConfigError(msg)
    quantifier = present[0]

    count: int | None = None
    if quantifier == QUANTIFIER_EXACTLY:
        exactly = _mapping(rule_data[quantifier], f"Rule '{name}': exactly")
        raw_count = exactly.get("count")
        if not isinstance(raw_count, int) or isinstance(raw_count, bool):
            msg = f"Rule '{name}': exactly.count must be an integer"
            raise RuleConfigError(msg)
        count = raw_count
        predicate = _parse_predicate(exactly.get("where"), f"Rule '{name}': exactly.where")
    else:
        predicate = _parse_predicate(rule_data[quantifier], f"Rule '{name}': {quantifier}")

    require_non_empty = rule_data.get("require_non_empty", default_require_non_empty)

    return Rule(
        name=name,
        scope=_parse_scope(name, rule_data.get("scope"), test_markers),
        predicate=predicate,
        quantifier=quantifier,
        count=count,
        message=str(rule_data.get("message", "")),
        description=str(rule_data.get("description", "")),
        exemptions=_parse_exemptions(name, rule_data.get("exempt"), default_marker),
        enforcement=str(rule_data.get("enforcement", ENFORCED)),
        require_non_empty=_bool(require_non_empty, f"Rule '{name}': require_non_empty"),
    )


def parse_rules(data: object, settings: EngineSettings | None = None) -> list[Rule]:
    """Validate an already-loaded ``rules.yml`` document and build rules.

    Raises :class:`~archrules.errors.RuleConfigError` on any schema error.
    """
    if not isinstance(data, dict):
        msg = "rules.yml must be a YAML mapping"
        raise RuleConfigError(msg)

    version = data.get("version")
    if version is None:
        msg = "rules.yml: missing required 'version' field"
        raise RuleConfigError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"rules.yml: unsupported version {version}, expected one of {expected}"
        raise RuleConfigError(msg)

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        msg = "rules.yml: 'rules' must be a list"
        raise RuleConfigError(msg)

    test_markers = settings.test_markers if settings is not None else DEFAULT_TEST_MARKERS
    default_marker = (
        settings.exemption_marker if settings is not None else DEFAULT_EXEMPTION_MARKER
    )
    default_require = settings.require_non_empty if settings is not None else False

    seen_names: set[str] = set()
    rules: list[Rule] = []
    for idx, rule_data in enumerate(rules_data):
        rule = _parse_rule(
            idx,
            rule_data,
            test_markers=test_markers,
            default_marker=default_marker,
            default_require_non_empty=default_require,
        )
        if rule.name in seen_names:
            msg = f"rules.yml: Duplicate rule name '{rule.name}'"
            raise RuleConfigError(msg)
        seen_names.add(rule.name)
        rules.append(rule)

    return rules


def load_rules(rules_path: Path, settings: EngineSettings | None = None) -> list[Rule]:
    """Parse ``rules.yml`` and return validated Rule objects.

    Raises ``RuleConfigError`` (a ``ValueError``) on schema errors and
    unreadable YAML.
    """
    with rules_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            msg = f"rules.yml: invalid YAML: {exc}"
            raise RuleConfigError(msg) from exc

    rules = parse_rules(data, settings)
    logger.debug("Loaded %d rule(s) from %s", len(rules), rules_path)
    return rules
