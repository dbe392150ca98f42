"""Model domain: the immutable codebase snapshot and its loader."""

from archrules.model.codebase import (
    VALID_DECLARATION_KINDS,
    Annotation,
    Codebase,
    Declaration,
    Element,
    Import,
    SourceUnit,
    normalize_path,
)
from archrules.model.loader import load_codebase, parse_codebase
from archrules.model.roles import VALID_ROLES, resolve_role, role_from_name

__all__ = [
    "VALID_DECLARATION_KINDS",
    "VALID_ROLES",
    "Annotation",
    "Codebase",
    "Declaration",
    "Element",
    "Import",
    "SourceUnit",
    "load_codebase",
    "normalize_path",
    "parse_codebase",
    "resolve_role",
    "role_from_name",
]
