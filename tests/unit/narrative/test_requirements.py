"""Tests for requirement parsing and evaluation."""

import pytest

from engine.progress import ProgressSnapshot
from narrative.requirements import (
    BeatRequirement,
    CharacterRequirement,
    FlagRequirement,
    ItemRequirement,
    RelationshipRequirement,
    StatRequirement,
    UnknownRequirement,
    evaluate,
    evaluate_all,
    missing_requirements,
    parse_requirement,
)


def _snapshot(**overrides) -> ProgressSnapshot:
    base = dict(
        story_id="s",
        player_id="p",
        current_beat_id="start",
        accessible_beats=["start", "cellar"],
        revealed_characters=["mara"],
        discovered_items=["lantern"],
        stat_values={"trust": 5, "courage": 2},
        relationship_values={"mara": 10},
        flags={"door_open": True, "alarm": False},
    )
    base.update(overrides)
    return ProgressSnapshot(**base)


class TestParse:
    def test_stat_defaults_operator(self):
        req = parse_requirement({"type": "stat", "condition": "trust", "value": 5})
        assert req == StatRequirement(condition="trust", value=5, operator=">=")

    def test_relationship(self):
        req = parse_requirement({"type": "relationship", "condition": "mara", "value": 3, "operator": "<"})
        assert isinstance(req, RelationshipRequirement)
        assert req.operator == "<"

    def test_membership_types(self):
        assert isinstance(parse_requirement({"type": "beat", "condition": "a"}), BeatRequirement)
        assert isinstance(parse_requirement({"type": "item", "condition": "a"}), ItemRequirement)
        assert isinstance(parse_requirement({"type": "character", "condition": "a"}), CharacterRequirement)

    def test_flag_defaults_to_true(self):
        assert parse_requirement({"type": "flag", "condition": "x"}) == FlagRequirement(condition="x", value=True)

    def test_unknown_type_is_preserved(self):
        req = parse_requirement({"type": "objective", "condition": "start_objective"})
        assert isinstance(req, UnknownRequirement)
        assert req.type == "objective"
        assert req.condition == "start_objective"

    def test_non_numeric_stat_value_is_unknown(self):
        req = parse_requirement({"type": "stat", "condition": "trust", "value": "lots"})
        assert isinstance(req, UnknownRequirement)

    def test_numeric_string_value_is_accepted(self):
        req = parse_requirement({"type": "stat", "condition": "trust", "value": "4"})
        assert req == StatRequirement(condition="trust", value=4.0)


class TestEvaluate:
    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            (">=", 5, True),
            (">=", 6, False),
            ("<=", 5, True),
            (">", 5, False),
            ("<", 6, True),
            ("==", 5, True),
            ("!=", 5, False),
        ],
    )
    def test_stat_operators(self, operator, value, expected):
        req = StatRequirement(condition="trust", value=value, operator=operator)
        assert evaluate(req, _snapshot()) is expected

    def test_missing_stat_defaults_to_zero(self):
        assert evaluate(StatRequirement(condition="wisdom", value=0), _snapshot())
        assert not evaluate(StatRequirement(condition="wisdom", value=1), _snapshot())
        assert evaluate(StatRequirement(condition="wisdom", value=1, operator="<"), _snapshot())

    def test_relationship_reads_relationship_values(self):
        assert evaluate(RelationshipRequirement(condition="mara", value=10), _snapshot())
        assert not evaluate(RelationshipRequirement(condition="trust", value=1), _snapshot())

    def test_unknown_operator_fails_closed(self):
        assert not evaluate(StatRequirement(condition="trust", value=0, operator="~="), _snapshot())

    def test_flag_must_equal_asserted_value(self):
        snap = _snapshot()
        assert evaluate(FlagRequirement(condition="door_open", value=True), snap)
        assert evaluate(FlagRequirement(condition="alarm", value=False), snap)
        assert not evaluate(FlagRequirement(condition="alarm", value=True), snap)

    def test_unset_flag_matches_nothing(self):
        snap = _snapshot()
        assert not evaluate(FlagRequirement(condition="has_key", value=True), snap)
        assert not evaluate(FlagRequirement(condition="has_key", value=False), snap)

    def test_membership(self):
        snap = _snapshot()
        assert evaluate(BeatRequirement(condition="cellar"), snap)
        assert not evaluate(BeatRequirement(condition="attic"), snap)
        assert evaluate(ItemRequirement(condition="lantern"), snap)
        assert not evaluate(ItemRequirement(condition="key"), snap)
        assert evaluate(CharacterRequirement(condition="mara"), snap)
        assert not evaluate(CharacterRequirement(condition="oren"), snap)

    def test_unknown_type_fails_closed(self):
        req = parse_requirement({"type": "unknown_type", "condition": "anything", "value": 1})
        assert evaluate(req, _snapshot()) is False

    def test_evaluate_does_not_mutate_snapshot(self):
        snap = _snapshot()
        before = snap.copy()
        for raw in (
            {"type": "stat", "condition": "nope", "value": 1},
            {"type": "relationship", "condition": "ghost", "value": 1},
            {"type": "flag", "condition": "missing", "value": True},
            {"type": "beat", "condition": "attic"},
            {"type": "unknown_type", "condition": "x"},
        ):
            evaluate(parse_requirement(raw), snap)
        assert snap == before

    def test_evaluate_all_is_and(self):
        snap = _snapshot()
        ok = StatRequirement(condition="trust", value=5)
        bad = ItemRequirement(condition="key")
        assert evaluate_all([], snap)
        assert evaluate_all([ok], snap)
        assert not evaluate_all([ok, bad], snap)

    def test_missing_requirements_labels_in_order(self):
        reqs = [
            FlagRequirement(condition="has_key"),
            StatRequirement(condition="trust", value=1),
            ItemRequirement(condition="key"),
        ]
        assert missing_requirements(reqs, _snapshot()) == ["flag:has_key", "item:key"]
