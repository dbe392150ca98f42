"""Shared test fixtures for archrules."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from archrules.model.codebase import (
    Annotation,
    Codebase,
    Declaration,
    Import,
    SourceUnit,
)

if TYPE_CHECKING:
    from pathlib import Path


PORT_DIR = "app/src/main/kotlin/com/acme/port"
DOMAIN_DIR = "contexts/billing/src/main/kotlin/com/acme/billing/domain"
TEST_DIR = "contexts/billing/src/test/kotlin/com/acme/billing/domain"


def _ports() -> list[SourceUnit]:
    units: list[SourceUnit] = []
    for name, kind in (("FooPort", "interface"), ("BarPort", "interface"), ("bazHelper", "class")):
        path = f"{PORT_DIR}/{name}.kt"
        units.append(
            SourceUnit(
                path=path,
                package="com.acme.port",
                text=f"package com.acme.port\n\n{kind} {name} {{\n}}\n",
                declarations=(
                    Declaration(
                        name=name,
                        kind=kind,
                        path=path,
                        package="com.acme.port",
                        line_start=3,
                        line_end=4,
                        role="port" if name.endswith("Port") else None,
                    ),
                ),
            )
        )
    return units


def _domain() -> list[SourceUnit]:
    invoice_path = f"{DOMAIN_DIR}/Invoice.kt"
    money_path = f"{DOMAIN_DIR}/Money.kt"
    test_path = f"{TEST_DIR}/InvoiceTest.kt"
    invoice_text = (
        "package com.acme.billing.domain\n"
        "\n"
        "import com.acme.billing.contracts.InvoiceDto\n"
        "import kotlinx.datetime.Instant\n"
        "\n"
        "/** An issued invoice. */\n"
        "data class Invoice(val id: String) {\n"
        "    fun total(): Money = Money.ZERO\n"
        "    fun toDto(): InvoiceDto = InvoiceDto(id)\n"
        "}\n"
    )
    money_text = (
        "package com.acme.billing.domain\n"
        "\n"
        "@JvmInline\n"
        "value class Money(val cents: Long) {\n"
        "    companion object { val ZERO = Money(0) }\n"
        "}\n"
    )
    test_text = (
        "package com.acme.billing.domain\n"
        "\n"
        "import com.acme.billing.contracts.InvoiceDto\n"
        "\n"
        "class InvoiceTest {\n"
        "    fun mapsToDto() { Thread.sleep(10) }\n"
        "}\n"
    )
    invoice = SourceUnit(
        path=invoice_path,
        package="com.acme.billing.domain",
        text=invoice_text,
        imports=(
            Import("com.acme.billing.contracts.InvoiceDto", line=3),
            Import("kotlinx.datetime.Instant", line=4),
        ),
        declarations=(
            Declaration(
                name="Invoice",
                kind="class",
                path=invoice_path,
                package="com.acme.billing.domain",
                modifiers=frozenset({"data", "public"}),
                has_doc=True,
                line_start=7,
                line_end=10,
                members=(
                    Declaration(
                        name="total",
                        kind="function",
                        path=invoice_path,
                        package="com.acme.billing.domain",
                        return_type="Money",
                        line_start=8,
                        line_end=8,
                    ),
                    Declaration(
                        name="toDto",
                        kind="function",
                        path=invoice_path,
                        package="com.acme.billing.domain",
                        return_type="InvoiceDto",
                        line_start=9,
                        line_end=9,
                    ),
                ),
            ),
        ),
    )
    money = SourceUnit(
        path=money_path,
        package="com.acme.billing.domain",
        text=money_text,
        declarations=(
            Declaration(
                name="Money",
                kind="class",
                path=money_path,
                package="com.acme.billing.domain",
                modifiers=frozenset({"value"}),
                annotations=(Annotation("JvmInline"),),
                line_start=4,
                line_end=6,
            ),
        ),
    )
    test = SourceUnit(
        path=test_path,
        package="com.acme.billing.domain",
        text=test_text,
        imports=(Import("com.acme.billing.contracts.InvoiceDto", line=3),),
        declarations=(
            Declaration(
                name="InvoiceTest",
                kind="class",
                path=test_path,
                package="com.acme.billing.domain",
                line_start=5,
                line_end=7,
            ),
        ),
    )
    return [invoice, money, test]


@pytest.fixture()
def ports_codebase() -> Codebase:
    """Three port-directory declarations: FooPort, BarPort, bazHelper."""
    return Codebase(units=tuple(_ports()))


@pytest.fixture()
def domain_codebase() -> Codebase:
    """A billing domain with one contracts import, plus a test file that also has one."""
    return Codebase(units=tuple(_domain()))


@pytest.fixture()
def codebase() -> Codebase:
    """Ports and billing domain together."""
    return Codebase(units=tuple(_ports() + _domain()))


MODEL_YML = f"""\
units:
  - path: {PORT_DIR}/FooPort.kt
    package: com.acme.port
    text: |
      package com.acme.port

      interface FooPort {{
      }}
    declarations:
      - {{ name: FooPort, kind: interface, lines: [3, 4] }}
  - path: {PORT_DIR}/bazHelper.kt
    package: com.acme.port
    text: |
      package com.acme.port

      class bazHelper {{
      }}
    declarations:
      - {{ name: bazHelper, kind: class, lines: [3, 4] }}
  - path: {DOMAIN_DIR}/Invoice.kt
    package: com.acme.billing.domain
    text: |
      package com.acme.billing.domain

      import com.acme.billing.contracts.InvoiceDto

      data class Invoice(val id: String)
    imports:
      - {{ name: com.acme.billing.contracts.InvoiceDto, line: 3 }}
    declarations:
      - {{ name: Invoice, kind: class, modifiers: [data], lines: [5, 5] }}
"""

RULES_YML = """\
version: 1
rules:
  - name: ports-named-port
    description: Port interfaces end with Port
    message: "Ports must be named *Port"
    scope:
      path_contains: /port/
    all:
      name_matches: "^[A-Z][a-zA-Z]+Port$"
  - name: domain-no-contracts
    message: "Domain must not import contracts"
    scope:
      target: files
      path_contains: /domain/
      exclude_tests: true
    none:
      imports: .contracts.
    enforcement: informational
"""


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create a project with ``.archrules/`` holding a model and rules."""
    config_dir = tmp_path / ".archrules"
    config_dir.mkdir()
    (config_dir / "model.yml").write_text(MODEL_YML)
    (config_dir / "rules.yml").write_text(RULES_YML)
    return tmp_path
