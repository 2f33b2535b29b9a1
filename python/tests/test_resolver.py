"""Tests for doke.grammar.resolver -- target kinds, format strings, frontmatter lookups."""

import pytest

from doke.errors import UnresolvedPlaceholder
from doke.grammar.loader import parse_pattern
from doke.grammar.resolver import ValueResolver, render_value, resolve
from doke.grammar.types import EnumConst, Resource, Rule, Scalar, TargetSpec


def _rule(target: TargetSpec, pattern: str = "{who}", declared_in: str = "Greeting") -> Rule:
    return Rule(parse_pattern(pattern), target, declared_in)


def test_string_literal():
    assert resolve(_rule(TargetSpec.string("hello")), {"who": Scalar("x")}) == Scalar("hello")


def test_numeric_literals():
    assert resolve(_rule(TargetSpec.integer(0)), {}) == Scalar(0)
    assert resolve(_rule(TargetSpec.floating(2.5)), {}) == Scalar(2.5)


def test_constant():
    assert resolve(_rule(TargetSpec.constant("stats/health")), {}) == EnumConst("stats/health")


def test_type_ref_makes_resource_from_binding():
    binding = {"op": EnumConst("+"), "amount": Scalar(4)}
    value = resolve(_rule(TargetSpec.type_ref("StatModifier")), binding)
    assert value == Resource("StatModifier", {"op": EnumConst("+"), "amount": Scalar(4)})
    assert value.abstract_type is None


def test_type_ref_keeps_matched_abstract_type():
    value = ValueResolver().resolve(_rule(TargetSpec.type_ref("StatModifier")), {}, matched_type="Modifier")
    assert value.abstract_type == "Modifier"
    same = ValueResolver().resolve(_rule(TargetSpec.type_ref("StatModifier")), {}, matched_type="StatModifier")
    assert same.abstract_type is None


def test_format_from_binding():
    rule = _rule(TargetSpec.format("Hi {who}!"))
    assert resolve(rule, {"who": Scalar("Arthur")}) == Scalar("Hi Arthur!")


def test_format_falls_back_to_frontmatter():
    rule = _rule(TargetSpec.format("{who} wields {name}"))
    value = resolve(rule, {"who": Scalar("Arthur")}, {"name": "Excalibur", "who": "nobody"})
    assert value == Scalar("Arthur wields Excalibur")


def test_format_renders_nested_values():
    rule = _rule(TargetSpec.format("{op}{amount} {stat}"))
    binding = {
        "op": EnumConst("+"),
        "amount": Scalar(4),
        "stat": Resource("Stat", {}),
    }
    assert resolve(rule, binding) == Scalar("+4 Stat")


def test_format_brace_escapes():
    rule = _rule(TargetSpec.format("{{literal}} {who}"))
    assert resolve(rule, {"who": Scalar("x")}) == Scalar("{literal} x")


def test_unresolved_placeholder():
    rule = _rule(TargetSpec.format("{who} and {missing}"))
    with pytest.raises(UnresolvedPlaceholder) as exc:
        resolve(rule, {"who": Scalar("x")})
    assert exc.value.name == "missing"


def test_render_value():
    assert render_value(Scalar(True)) == "true"
    assert render_value(Scalar(None)) == ""
    assert render_value([Scalar(1), EnumConst("b")]) == "1, b"
