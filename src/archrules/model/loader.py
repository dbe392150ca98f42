"""Snapshot loader: read the ingestion provider's model file into a Codebase.

The provider writes ``.archrules/model.yml`` (or ``.json``)::

    units:
      - path: contexts/billing/domain/Invoice.kt
        package: com.acme.billing.domain
        text: |
          package com.acme.billing.domain
          ...
        imports:
          - com.acme.billing.contracts.InvoiceDto
          - { name: kotlinx.datetime.Instant, line: 4 }
        declarations:
          - name: Invoice
            kind: class
            modifiers: [data]
            annotations: [Deprecated, { name: Role, arguments: [entity] }]
            doc: true
            lines: [6, 20]
            members:
              - { name: total, kind: property, return_type: Money }

Declarations inherit the unit's path and package.  Roles are resolved here,
once, so rules never re-derive them.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import yaml

from archrules.model.codebase import (
    VALID_DECLARATION_KINDS,
    Annotation,
    Codebase,
    Declaration,
    Import,
    SourceUnit,
    normalize_path,
)
from archrules.model.roles import resolve_role

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Roles describe types; functions and properties never carry one by suffix.
_ROLE_KINDS: frozenset[str] = frozenset({"class", "interface", "object"})


def _str_tuple(value: object, context: str) -> tuple[str, ...]:
    """Accept a string or list of strings and return a tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(item) for item in value)
    msg = f"{context}: expected a string or a list of strings"
    raise ValueError(msg)


def _parse_import(data: object, context: str) -> Import:
    if isinstance(data, str):
        return Import(name=data)
    if isinstance(data, dict) and isinstance(data.get("name"), str):
        line = data.get("line")
        return Import(name=data["name"], line=int(line) if line is not None else None)
    msg = f"{context}: import must be a string or a mapping with 'name'"
    raise ValueError(msg)


def _parse_annotation(data: object, context: str) -> Annotation:
    if isinstance(data, str):
        return Annotation(name=data)
    if isinstance(data, dict) and isinstance(data.get("name"), str):
        arguments = _str_tuple(data.get("arguments"), f"{context} annotation arguments")
        return Annotation(name=data["name"], arguments=arguments)
    msg = f"{context}: annotation must be a string or a mapping with 'name'"
    raise ValueError(msg)


def _parse_lines(data: dict[str, Any], context: str) -> tuple[int | None, int | None]:
    """Read a line span from ``lines: [start, end]`` or ``line_start``/``line_end``."""
    lines = data.get("lines")
    if lines is not None:
        if not isinstance(lines, list) or len(lines) != 2:
            msg = f"{context}: 'lines' must be a [start, end] pair"
            raise ValueError(msg)
        start, end = int(lines[0]), int(lines[1])
    else:
        start_raw = data.get("line_start")
        end_raw = data.get("line_end")
        start = int(start_raw) if start_raw is not None else None
        end = int(end_raw) if end_raw is not None else start
    if start is not None and start < 1:
        msg = f"{context}: line numbers start at 1, got {start}"
        raise ValueError(msg)
    if start is not None and end is not None and end < start:
        msg = f"{context}: line span ends before it starts ({start}-{end})"
        raise ValueError(msg)
    return start, end


def _parse_declaration(
    data: object,
    *,
    path: str,
    package: str,
    context: str,
    owner: str = "",
    ordinal: str = "",
) -> Declaration:
    if not isinstance(data, dict):
        msg = f"{context}: declaration must be a mapping"
        raise ValueError(msg)

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = f"{context}: declaration missing required 'name' field"
        raise ValueError(msg)
    context = f"{context} '{name}'"

    kind = str(data.get("kind", "class"))
    if kind not in VALID_DECLARATION_KINDS:
        msg = f"{context}: invalid kind '{kind}', must be one of {sorted(VALID_DECLARATION_KINDS)}"
        raise ValueError(msg)

    annotations_raw = data.get("annotations") or []
    if not isinstance(annotations_raw, list):
        msg = f"{context}: 'annotations' must be a list"
        raise ValueError(msg)
    annotations = tuple(_parse_annotation(a, context) for a in annotations_raw)

    members_raw = data.get("members") or []
    if not isinstance(members_raw, list):
        msg = f"{context}: 'members' must be a list"
        raise ValueError(msg)
    member_owner = f"{owner}.{name}" if owner else name
    members = tuple(
        _parse_declaration(
            m,
            path=path,
            package=package,
            context=f"{context} member {idx}",
            owner=member_owner,
            ordinal=f"{ordinal}.{idx}",
        )
        for idx, m in enumerate(members_raw)
    )

    line_start, line_end = _parse_lines(data, context)
    return_type = data.get("return_type")
    explicit_role = data.get("role")
    role = (
        resolve_role(name, annotations, str(explicit_role) if explicit_role else None)
        if kind in _ROLE_KINDS or explicit_role
        else None
    )

    return Declaration(
        name=name,
        kind=kind,
        path=path,
        package=package,
        modifiers=frozenset(_str_tuple(data.get("modifiers"), f"{context} modifiers")),
        annotations=annotations,
        has_doc=bool(data.get("doc", False)),
        return_type=str(return_type) if return_type is not None else None,
        parents=_str_tuple(data.get("parents"), f"{context} parents"),
        members=members,
        line_start=line_start,
        line_end=line_end,
        role=role,
        owner=owner,
        ordinal=ordinal,
    )


def _parse_unit(data: object, idx: int) -> SourceUnit:
    if not isinstance(data, dict):
        msg = f"model: unit at index {idx} must be a mapping"
        raise ValueError(msg)

    raw_path = data.get("path")
    if not isinstance(raw_path, str) or not raw_path.strip():
        msg = f"model: unit at index {idx} missing required 'path' field"
        raise ValueError(msg)
    path = normalize_path(raw_path)
    package = str(data.get("package") or "")
    context = f"model unit '{path}'"

    imports_raw = data.get("imports") or []
    if not isinstance(imports_raw, list):
        msg = f"{context}: 'imports' must be a list"
        raise ValueError(msg)

    decls_raw = data.get("declarations") or []
    if not isinstance(decls_raw, list):
        msg = f"{context}: 'declarations' must be a list"
        raise ValueError(msg)

    return SourceUnit(
        path=path,
        text=str(data.get("text") or ""),
        package=package,
        imports=tuple(_parse_import(i, context) for i in imports_raw),
        declarations=tuple(
            _parse_declaration(
                d,
                path=path,
                package=package,
                context=f"{context} declaration {n}",
                ordinal=str(n),
            )
            for n, d in enumerate(decls_raw)
        ),
    )


def parse_codebase(data: object) -> Codebase:
    """Build a :class:`Codebase` from already-decoded snapshot data.

    Raises ``ValueError`` on malformed input.  Duplicate unit paths keep the
    first occurrence and log a warning.
    """
    if data is None:
        return Codebase()
    if not isinstance(data, dict):
        msg = "model must be a mapping with a 'units' list"
        raise ValueError(msg)

    units_raw = data.get("units") or []
    if not isinstance(units_raw, list):
        msg = "model: 'units' must be a list"
        raise ValueError(msg)

    units: list[SourceUnit] = []
    seen: set[str] = set()
    for idx, unit_data in enumerate(units_raw):
        unit = _parse_unit(unit_data, idx)
        if unit.path in seen:
            logger.warning("Duplicate unit path in model, keeping first: %s", unit.path)
            continue
        seen.add(unit.path)
        units.append(unit)

    return Codebase(units=tuple(units))


def load_codebase(model_path: Path) -> Codebase:
    """Read a YAML or JSON model snapshot from disk."""
    text = model_path.read_text(encoding="utf-8")
    if model_path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    codebase = parse_codebase(data)
    logger.debug("Loaded %d units from %s", len(codebase), model_path)
    return codebase
