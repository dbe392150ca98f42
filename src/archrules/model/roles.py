"""Role tags: resolve a declaration's architectural role once, at load time.

A role replaces ad hoc "anything ending in Port" checks scattered across
rules.  Resolution order: explicit role from the provider, then a ``Role``
annotation argument, then the longest matching name suffix.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from archrules.model.codebase import Annotation

# Longest suffix wins, so "CommandPort" resolves to "port" before "Port".
ROLE_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("CommandHandler", "handler"),
    ("QueryHandler", "handler"),
    ("EventHandler", "handler"),
    ("CommandPort", "port"),
    ("QueryPort", "port"),
    ("Repository", "repository"),
    ("Projection", "projection"),
    ("Exception", "error"),
    ("Adapter", "adapter"),
    ("Handler", "handler"),
    ("Service", "service"),
    ("UseCase", "use_case"),
    ("Command", "command"),
    ("Mapper", "mapper"),
    ("Query", "query"),
    ("Event", "event"),
    ("Error", "error"),
    ("Port", "port"),
    ("Dto", "dto"),
    ("DTO", "dto"),
)

VALID_ROLES: frozenset[str] = frozenset(role for _, role in ROLE_SUFFIXES)

ROLE_ANNOTATION = "Role"


def role_from_name(name: str) -> str | None:
    """Return the role implied by *name*'s suffix, or ``None``."""
    best: tuple[int, str] | None = None
    for suffix, role in ROLE_SUFFIXES:
        if name.endswith(suffix) and (best is None or len(suffix) > best[0]):
            best = (len(suffix), role)
    return best[1] if best is not None else None


def resolve_role(
    name: str,
    annotations: Iterable[Annotation] = (),
    explicit: str | None = None,
) -> str | None:
    """Resolve the role for one declaration."""
    if explicit:
        return explicit
    for annotation in annotations:
        if annotation.simple_name == ROLE_ANNOTATION and annotation.arguments:
            return annotation.arguments[0].strip("\"'").lower()
    return role_from_name(name)
