"""Tests for reachability expansion."""

import pytest

from engine.errors import EmptyStoryGraph
from engine.progress import ProgressSnapshot
from narrative import expand, expand_to_fixed_point, find_starting_beat
from story.models import StoryGraph


def _chain_story() -> StoryGraph:
    return StoryGraph.from_dict({
        "metadata": {"id": "chain"},
        "beats": [
            {"id": "start", "act": 1},
            {
                "id": "middle",
                "act": 1,
                "entryRequirements": [{"type": "stat", "condition": "trust", "value": 5, "operator": ">="}],
            },
            {"id": "ending", "act": 2, "entryRequirements": [{"type": "beat", "condition": "middle"}]},
            {"id": "epilogue", "act": 3, "entryRequirements": [{"type": "beat", "condition": "ending"}]},
            {"id": "orphan", "act": 2},
        ],
    })


def _snapshot(trust: float = 0, accessible: list[str] | None = None) -> ProgressSnapshot:
    return ProgressSnapshot(
        story_id="chain",
        player_id="p1",
        current_beat_id="start",
        accessible_beats=accessible or ["start"],
        stat_values={"trust": trust},
    )


def test_find_starting_beat_uses_lowest_act():
    story = StoryGraph.from_dict({
        "metadata": {"id": "x"},
        "beats": [{"id": "late", "act": 2}, {"id": "first", "act": 1}, {"id": "also_first", "act": 1}],
    })
    assert find_starting_beat(story) == "first"
    # Graph order is untouched.
    assert [b.id for b in story.beats] == ["late", "first", "also_first"]


def test_find_starting_beat_empty_graph_raises():
    with pytest.raises(EmptyStoryGraph):
        find_starting_beat(StoryGraph.from_dict({"metadata": {"id": "empty"}, "beats": []}))


def test_expand_is_single_pass():
    story = _chain_story()
    snap = _snapshot(trust=5)

    first = expand(story, snap)
    assert first == ["start", "middle"]

    snap.accessible_beats = first
    second = expand(story, snap)
    assert second == ["start", "middle", "ending"]


def test_expand_does_not_mutate_snapshot():
    snap = _snapshot(trust=5)
    expand(_chain_story(), snap)
    assert snap.accessible_beats == ["start"]


def test_expand_never_adds_beats_without_requirements():
    result = expand(_chain_story(), _snapshot(trust=100))
    assert "orphan" not in result


def test_expand_keeps_existing_members():
    snap = _snapshot(trust=0, accessible=["start", "ending"])
    result = expand(_chain_story(), snap)
    assert result[:2] == ["start", "ending"]
    # "ending" is already there, so "epilogue" can unlock in this pass.
    assert result == ["start", "ending", "epilogue"]


def test_expand_to_fixed_point_resolves_chains():
    snap = _snapshot(trust=5)
    result = expand_to_fixed_point(_chain_story(), snap)
    assert result == ["start", "middle", "ending", "epilogue"]
    assert snap.accessible_beats == ["start"]


def test_expand_to_fixed_point_respects_round_limit():
    result = expand_to_fixed_point(_chain_story(), _snapshot(trust=5), max_rounds=2)
    assert result == ["start", "middle", "ending"]


def test_expand_adds_beats_with_declared_empty_requirements():
    story = StoryGraph.from_dict({
        "metadata": {"id": "chain"},
        "beats": [
            {"id": "start", "act": 1},
            {"id": "open", "act": 1, "entryRequirements": []},
            {"id": "undeclared", "act": 1},
        ],
    })
    assert story.get_beat("open").entry_requirements == ()
    assert story.get_beat("undeclared").entry_requirements is None
    assert expand(story, _snapshot()) == ["start", "open"]
