"""Tests for the predicate engine."""

from __future__ import annotations

import pytest

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
    ReturnTypeContains,
    TextMatches,
    TextPaired,
    all_of,
    any_of,
    not_,
    owning_unit,
)
from archrules.engine.scope import TARGET_DECLARATIONS, TARGET_FILES
from archrules.errors import ModelError, RuleConfigError
from archrules.model.codebase import Codebase, Declaration, SourceUnit


def _decl(codebase: Codebase, name: str) -> Declaration:
    return next(d for d in codebase.iter_declarations() if d.name == name)


def _unit(codebase: Codebase, name: str) -> SourceUnit:
    return next(u for u in codebase.units if u.name == name)


# ---------------------------------------------------------------------------
# Structural predicates
# ---------------------------------------------------------------------------


class TestNamePredicates:
    def test_name_matches(self, ports_codebase: Codebase) -> None:
        pred = NameMatches(r"^[A-Z][a-zA-Z]+Port$")
        assert pred.evaluate(_decl(ports_codebase, "FooPort"), ports_codebase)
        result = pred.evaluate(_decl(ports_codebase, "bazHelper"), ports_codebase)
        assert not result
        assert result.reason == "name 'bazHelper' does not match '^[A-Z][a-zA-Z]+Port$'"

    def test_invalid_regex_fails_at_construction(self) -> None:
        with pytest.raises(RuleConfigError, match="invalid pattern"):
            NameMatches("([")

    def test_starts_ends_contains(self, ports_codebase: Codebase) -> None:
        foo = _decl(ports_codebase, "FooPort")
        assert NameStartsWith(("Bar", "Foo")).evaluate(foo, ports_codebase)
        assert NameEndsWith("Port").evaluate(foo, ports_codebase)
        assert not NameContains(("helper",)).evaluate(foo, ports_codebase)
        baz = _decl(ports_codebase, "bazHelper")
        assert NameContains(("HELPER",), ignore_case=True).evaluate(baz, ports_codebase)

    def test_name_predicates_apply_to_files(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        assert NameEndsWith(("Invoice",)).evaluate(invoice, domain_codebase)


class TestDeclarationPredicates:
    def test_kind(self, ports_codebase: Codebase) -> None:
        pred = KindIs(frozenset({"interface"}))
        assert pred.evaluate(_decl(ports_codebase, "FooPort"), ports_codebase)
        assert not pred.evaluate(_decl(ports_codebase, "bazHelper"), ports_codebase)

    def test_kind_validation(self) -> None:
        with pytest.raises(RuleConfigError):
            KindIs(frozenset({"enum"}))

    def test_role(self, ports_codebase: Codebase) -> None:
        assert HasRole("port").evaluate(_decl(ports_codebase, "BarPort"), ports_codebase)
        result = HasRole("port").evaluate(_decl(ports_codebase, "bazHelper"), ports_codebase)
        assert not result
        assert "has role 'None'" in (result.reason or "")

    def test_modifier_annotation_doc(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        money = _decl(domain_codebase, "Money")
        assert HasModifier("data").evaluate(invoice, domain_codebase)
        assert not HasModifier("data").evaluate(money, domain_codebase)
        assert HasAnnotation("JvmInline").evaluate(money, domain_codebase)
        assert HasDoc().evaluate(invoice, domain_codebase)
        assert not HasDoc().evaluate(money, domain_codebase)

    def test_in_package(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        assert InPackage("..domain..").evaluate(invoice, domain_codebase)
        assert not InPackage("..application..").evaluate(invoice, domain_codebase)

    def test_return_type(self, domain_codebase: Codebase) -> None:
        to_dto = _decl(domain_codebase, "toDto")
        result = ReturnTypeContains("Dto").evaluate(to_dto, domain_codebase)
        assert result
        assert result.fragment == "InvoiceDto"
        missing = ReturnTypeContains("Dto").evaluate(_decl(domain_codebase, "Invoice"), domain_codebase)
        assert not missing
        assert missing.reason == "'Invoice' has no declared type"

    def test_has_parent_ignores_generics_and_qualifiers(self) -> None:
        decl = Declaration(
            name="InvoiceHandler",
            kind="class",
            path="a/InvoiceHandler.kt",
            parents=("com.acme.CommandHandler<CreateInvoice>", "Closeable"),
        )
        codebase = Codebase(units=(SourceUnit(path="a/InvoiceHandler.kt", declarations=(decl,)),))
        assert HasParent("CommandHandler").evaluate(decl, codebase)
        assert HasParent("Closeable").evaluate(decl, codebase)
        assert not HasParent("Handler").evaluate(decl, codebase)


class TestImports:
    def test_contains(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        result = ImportsMatching(".contracts.").evaluate(invoice, domain_codebase)
        assert result
        assert result.fragment == "com.acme.billing.contracts.InvoiceDto"
        assert result.line == 3

    def test_declaration_uses_owning_unit(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        assert ImportsMatching("kotlinx.").evaluate(invoice, domain_codebase)

    def test_regex_and_excluding(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        assert ImportsMatching(r"\.contracts\.\w+Dto$", regex=True).evaluate(
            invoice, domain_codebase
        )
        excluded = ImportsMatching(".contracts.", excluding=("billing.contracts",))
        assert not excluded.evaluate(invoice, domain_codebase)

    def test_missing_unit_is_a_model_error(self) -> None:
        orphan = Declaration(name="Ghost", kind="class", path="gone/Ghost.kt")
        with pytest.raises(ModelError, match="not in the model"):
            ImportsMatching("x").evaluate(orphan, Codebase())

    def test_owning_unit(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        assert owning_unit(invoice, domain_codebase) is _unit(domain_codebase, "Invoice")


class TestMembers:
    def test_all_functions(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        pred = Members(NameStartsWith(("to", "total")), kind="function")
        assert pred.evaluate(invoice, domain_codebase)

    def test_all_reports_first_failing_member(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        result = Members(ReturnTypeContains("Money"), kind="function").evaluate(
            invoice, domain_codebase
        )
        assert not result
        assert result.reason is not None
        assert result.reason.startswith("function 'toDto'")
        assert result.line == 9

    def test_any_and_none(self, domain_codebase: Codebase) -> None:
        invoice = _decl(domain_codebase, "Invoice")
        returns_dto = ReturnTypeContains("Dto")
        assert Members(returns_dto, kind="function", quantifier="any").evaluate(
            invoice, domain_codebase
        )
        assert not Members(returns_dto, kind="function", quantifier="none").evaluate(
            invoice, domain_codebase
        )

    def test_no_members(self, domain_codebase: Codebase) -> None:
        money = _decl(domain_codebase, "Money")
        pred = HasDoc()
        assert Members(pred, kind="function").evaluate(money, domain_codebase)
        assert not Members(pred, kind="function", quantifier="any").evaluate(
            money, domain_codebase
        )

    def test_invalid_quantifier(self) -> None:
        with pytest.raises(RuleConfigError):
            Members(HasDoc(), quantifier="most")


# ---------------------------------------------------------------------------
# Textual predicates
# ---------------------------------------------------------------------------


class TestTextMatches:
    def test_unit_text(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        result = TextMatches(r"^data class \w+").evaluate(invoice, domain_codebase)
        assert result
        assert result.fragment == "data class Invoice"
        assert result.line == 7

    def test_declaration_window(self, domain_codebase: Codebase) -> None:
        total = _decl(domain_codebase, "total")
        pred = TextMatches(r"InvoiceDto", within="declaration")
        # The import and toDto both mention InvoiceDto; total's own line does not.
        assert not pred.evaluate(total, domain_codebase)
        assert TextMatches(r"InvoiceDto").evaluate(total, domain_codebase)

    def test_declaration_window_reports_absolute_line(self, domain_codebase: Codebase) -> None:
        to_dto = _decl(domain_codebase, "toDto")
        result = TextMatches(r"InvoiceDto\(", within="declaration").evaluate(
            to_dto, domain_codebase
        )
        assert result.line == 9

    def test_ignore_case(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        assert TextMatches("AN ISSUED", ignore_case=True).evaluate(invoice, domain_codebase)
        assert not TextMatches("AN ISSUED").evaluate(invoice, domain_codebase)

    def test_invalid_within(self) -> None:
        with pytest.raises(RuleConfigError, match="within"):
            TextMatches("x", within="function")

    def test_declaration_window_rejected_on_files(self) -> None:
        with pytest.raises(RuleConfigError):
            TextMatches("x", within="declaration").check_target(TARGET_FILES)

    def test_fragment_is_clipped(self) -> None:
        unit = SourceUnit(path="a/Long.kt", text="x" * 500)
        result = TextMatches("x+").evaluate(unit, Codebase(units=(unit,)))
        assert result.fragment is not None
        assert len(result.fragment) == 120
        assert result.fragment.endswith("...")


class TestTextPaired:
    def test_paired(self) -> None:
        unit = SourceUnit(
            path="a/T.kt",
            text="// wait for the debounce window\nThread.sleep(100)\n",
        )
        codebase = Codebase(units=(unit,))
        assert TextPaired(r"Thread\.sleep", r"//").evaluate(unit, codebase)

    def test_unpaired_reports_anchor(self, domain_codebase: Codebase) -> None:
        test = _unit(domain_codebase, "InvoiceTest")
        result = TextPaired(r"Thread\.sleep\(", r"//", window=20).evaluate(test, domain_codebase)
        assert not result
        assert result.fragment == "Thread.sleep("
        assert result.line == 6

    def test_no_anchor_holds(self, domain_codebase: Codebase) -> None:
        money = _unit(domain_codebase, "Money")
        assert TextPaired(r"Thread\.sleep", r"//").evaluate(money, domain_codebase)

    def test_negative_window(self) -> None:
        with pytest.raises(RuleConfigError):
            TextPaired("a", "b", window=-1)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class TestComposition:
    def test_operators(self, ports_codebase: Codebase) -> None:
        foo = _decl(ports_codebase, "FooPort")
        is_port = NameEndsWith("Port")
        is_foo = NameStartsWith("Foo")
        assert (is_port & is_foo).evaluate(foo, ports_codebase)
        assert (is_foo | NameStartsWith("Bar")).evaluate(foo, ports_codebase)
        assert not (~is_port).evaluate(foo, ports_codebase)
        assert isinstance(is_port & is_foo, AllOf)
        assert isinstance(is_port | is_foo, AnyOf)
        assert isinstance(~is_port, Not)

    def test_double_negation(self) -> None:
        inner = HasDoc()
        assert ~~inner is inner

    def test_chained_and_flattens(self) -> None:
        a, b, c = NameEndsWith("a"), NameEndsWith("b"), NameEndsWith("c")
        assert (a & b & c).parts == (a, b, c)
        assert (a | b | c).parts == (a, b, c)

    def test_short_circuit_order(self) -> None:
        orphan = Declaration(name="Ghost", kind="class", path="gone/Ghost.kt")
        empty = Codebase()
        # The model-dependent predicate is never reached.
        assert not all_of(NameStartsWith("X"), ImportsMatching("y")).evaluate(orphan, empty)
        assert any_of(NameStartsWith("G"), ImportsMatching("y")).evaluate(orphan, empty)
        with pytest.raises(ModelError):
            all_of(NameStartsWith("G"), ImportsMatching("y")).evaluate(orphan, empty)

    def test_all_of_keeps_located_fragment(self, domain_codebase: Codebase) -> None:
        invoice = _unit(domain_codebase, "Invoice")
        pred = all_of(NameStartsWith("Inv"), ImportsMatching(".contracts."))
        result = pred.evaluate(invoice, domain_codebase)
        assert result
        assert result.fragment == "com.acme.billing.contracts.InvoiceDto"
        assert result.line == 3

    def test_empty_composites_rejected(self) -> None:
        with pytest.raises(RuleConfigError):
            AllOf(())
        with pytest.raises(RuleConfigError):
            AnyOf(())

    def test_negate_flips_only_the_verdict(self) -> None:
        match = Match(True, "because", fragment="f", line=2)
        assert not_(HasDoc()) == Not(HasDoc())
        assert match.negate() == Match(False, "because", fragment="f", line=2)

    def test_target_checks_propagate(self) -> None:
        with pytest.raises(RuleConfigError):
            (NameEndsWith("x") & HasModifier("data")).check_target(TARGET_FILES)
        (NameEndsWith("x") & HasModifier("data")).check_target(TARGET_DECLARATIONS)
        with pytest.raises(RuleConfigError):
            Not(KindIs(frozenset({"class"}))).check_target(TARGET_FILES)

    def test_determinism(self, codebase: Codebase) -> None:
        pred = any_of(TextMatches("class"), ImportsMatching("kotlinx"))
        first = [pred.evaluate(d, codebase) for d in codebase.iter_declarations()]
        second = [pred.evaluate(d, codebase) for d in codebase.iter_declarations()]
        assert first == second
