"""Tests for doke.grammar.assembler -- children fields, groups, errors, idempotence."""

import pytest

from doke.document.statements import build
from doke.errors import MissingRequiredChild, ParseError, UnknownTypeReference
from doke.grammar.assembler import AssemblyTrace, ResourceAssembler, assemble
from doke.grammar.loader import load_definitions, parse_children_spec
from doke.grammar.registry import RegistryBuilder, TypeRegistry
from doke.grammar.types import EnumConst, Resource, Scalar


COMMON = """
StatOperator:
  Adds: "+"
  Removes: "-"
Stat:
  health: stats/health
Target:
  you: 0
Name:
  - "Name: {value}"
Condition:
  - "when {event}"
Focus:
  - "using {thing}"
"""

MODIFIERS = """
StatModifier:
  - "{op:StatOperator} {amount:int} {stat:Stat} to {target:Target}"
Modifier:
  - "Makes you jump incontrollably": JumpIncontrollablyModifier
Damage:
  - "Deals {damage:int} damage to {target:Target}"
  - pattern: "Deals {damage:int} damage"
    children:
      - conditions?: [Condition]
Spell:
  - pattern: "Casts {spell}"
    children:
      - focus: Focus
"""

ROOT_CHILDREN = parse_children_spec([{"name": "Name"}, {"modifiers?": ["Modifier"]}])

BODY = (
    "Name: Excalibur\n"
    "\n"
    "Modifiers:\n"
    "- Adds 4 health to you\n"
    "- Makes you jump incontrollably\n"
    "- Deals 10 damage\n"
    "    - when struck\n"
)


def _registry() -> TypeRegistry:
    builder = RegistryBuilder()
    builder.add_source(load_definitions(COMMON, "common.yaml"), source="common.yaml")
    builder.add_source(load_definitions(MODIFIERS, "modifiers.yaml"), contributes_to="Modifier", source="modifiers.yaml")
    return builder.build()


def _assemble(body: str, children=ROOT_CHILDREN, **options) -> Resource:
    return ResourceAssembler(_registry(), **options).assemble("Item", build(body), children, line=1)


def test_assemble_item():
    value = _assemble(BODY)
    assert value == Resource("Item", {
        "name": Resource("Name", {"value": Scalar("Excalibur")}),
        "modifiers": [
            Resource("StatModifier", {
                "op": EnumConst("+"),
                "amount": Scalar(4),
                "stat": EnumConst("stats/health"),
                "target": Scalar(0),
            }),
            Resource("JumpIncontrollablyModifier", {}),
            Resource("Damage", {
                "damage": Scalar(10),
                "conditions": [Resource("Condition", {"event": Scalar("struck")})],
            }),
        ],
    })
    assert [m.abstract_type for m in value.fields["modifiers"]] == ["Modifier"] * 3


def test_assemble_is_idempotent():
    registry = _registry()
    statements = build(BODY)
    first = assemble("Item", statements, ROOT_CHILDREN, registry)
    second = assemble("Item", statements, ROOT_CHILDREN, registry)
    assert first == second
    assert first is not second


def test_assembler_reused_across_documents():
    """Each call sees only its own statements, even when object ids are recycled."""
    registry = RegistryBuilder().add_source(load_definitions({"A": ["a {x}"], "B": ["b {x}"]})).build()
    children = parse_children_spec([{"items?": ["A"]}])
    assembler = ResourceAssembler(registry)
    for i in range(50):
        if i % 2 == 0:
            value = assembler.assemble("Doc", build("- a one\n- a two\n"), children)
            expected = ["one", "two"]
        else:
            value = assembler.assemble("Doc", build("- b three\n- a four\n"), children)
            expected = ["four"]
        assert [item.fields["x"] for item in value.fields["items"]] == [Scalar(x) for x in expected]


def test_array_field_without_matches_is_empty():
    value = _assemble("Name: Excalibur\n")
    assert value.fields["modifiers"] == []


def test_missing_required_field():
    with pytest.raises(MissingRequiredChild) as exc:
        _assemble("- Adds 4 health to you\n")
    assert exc.value.field_name == "name"
    assert exc.value.line == 1


def test_missing_required_nested_field_reports_parent_line():
    body = "Name: Excalibur\n\n- Casts fireball\n"
    with pytest.raises(MissingRequiredChild) as exc:
        _assemble(body)
    assert exc.value.field_name == "focus"
    assert exc.value.line == 3


def test_rule_children_are_assembled():
    body = "Name: Excalibur\n- Casts fireball\n    - using a staff\n"
    spell = _assemble(body).fields["modifiers"][0]
    assert spell == Resource("Spell", {
        "spell": Scalar("fireball"),
        "focus": Resource("Focus", {"thing": Scalar("a staff")}),
    })


def test_type_children_apply_to_every_rule():
    builder = RegistryBuilder()
    builder.add_source(load_definitions(COMMON, "common.yaml"))
    builder.add_source(load_definitions(MODIFIERS, "modifiers.yaml"), contributes_to="Modifier")
    builder.set_children("Modifier", parse_children_spec([{"conditions?": ["Condition"]}]))
    body = "Name: x\n- Adds 4 health to you\n    - when hit\n"
    value = ResourceAssembler(builder.build()).assemble("Item", build(body), ROOT_CHILDREN)
    (modifier,) = value.fields["modifiers"]
    assert modifier.fields["conditions"] == [Resource("Condition", {"event": Scalar("hit")})]


def test_claimed_statement_not_reused():
    children = parse_children_spec([{"primary": "Modifier"}, {"others?": ["Modifier"]}])
    body = "- Adds 4 health to you\n- Makes you jump incontrollably\n"
    value = _assemble(body, children=children)
    assert value.fields["primary"].type_name == "StatModifier"
    assert [m.type_name for m in value.fields["others"]] == ["JumpIncontrollablyModifier"]


def test_heading_group_label_is_transparent():
    body = "# Name: Excalibur\n## Modifiers:\n- Makes you jump incontrollably\n"
    value = _assemble(body)
    assert value.fields["name"] == Resource("Name", {"value": Scalar("Excalibur")})
    assert len(value.fields["modifiers"]) == 1


def test_unrelated_prose_is_ignored():
    value = _assemble("A sword of legend.\n\n" + BODY)
    assert len(value.fields["modifiers"]) == 3


def test_exhaustive_rejects_unmatched_statement():
    with pytest.raises(ParseError) as exc:
        _assemble("A sword of legend.\n\n" + BODY, exhaustive=True)
    assert exc.value.line == 1
    assert exc.value.cause is None


def test_capture_error_surfaces_as_parse_error():
    body = "Name: Excalibur\n- Deals lots damage\n"
    with pytest.raises(ParseError) as exc:
        _assemble(body)
    err = exc.value
    assert err.line == 2
    assert err.text == "Deals lots damage"
    assert err.chain[0] == ("Modifier", "Deals lots damage")
    assert err.chain[-1] == ("int", "lots")


def test_unknown_constant_surfaces_as_parse_error():
    with pytest.raises(ParseError) as exc:
        _assemble("Name: x\n- Adds 4 stamina to you\n")
    assert "stamina" in str(exc.value)


def test_builtin_typed_field():
    children = parse_children_spec([{"title": "String"}])
    value = _assemble("The Sword\n", children=children)
    assert value.fields["title"] == Scalar("The Sword")


def test_unknown_field_type():
    children = parse_children_spec([{"gems": ["Gem"]}])
    with pytest.raises(UnknownTypeReference):
        _assemble("x\n", children=children)


def test_frontmatter_hook_prepopulates_root():
    hooks = {"Item": lambda fm: {"rarity": fm.get("rarity"), "source": Scalar("hook")}}
    value = _assemble(BODY, frontmatter={"rarity": "legendary"}, hooks=hooks)
    assert value.fields["rarity"] == Scalar("legendary")
    assert value.fields["source"] == Scalar("hook")
    assert value.fields["name"].type_name == "Name"


def test_case_insensitive_assembly():
    value = _assemble("name: Excalibur\n- adds 4 HEALTH to you\n", case_sensitive=False)
    assert value.fields["modifiers"][0].fields["stat"] == EnumConst("stats/health")


def test_trace_records_statement_outcomes():
    trace = AssemblyTrace()
    _assemble(BODY, trace=trace)
    matched = [(st.text, st.field_name) for st in trace.statements if st.outcome == "matched"]
    assert ("Name: Excalibur", "name") in matched
    assert ("Adds 4 health to you", "modifiers") in matched
    assert "line 1" in trace.format()
    assert len(trace.matches) > 0
