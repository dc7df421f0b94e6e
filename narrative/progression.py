"""Reachability helpers: which beats a player may enter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from engine.errors import EmptyStoryGraph

from .requirements import evaluate_all

if TYPE_CHECKING:
    from engine.progress import ProgressSnapshot
    from story.models import StoryGraph

logger = logging.getLogger(__name__)


def find_starting_beat(story: StoryGraph) -> str:
    """Return the id of the lowest-act beat; ties go to authoring order."""
    if not story.beats:
        raise EmptyStoryGraph(story.id)
    return min(story.beats, key=lambda beat: beat.act).id


def expand(story: StoryGraph, snapshot: ProgressSnapshot) -> list[str]:
    """One reachability pass. Returns the new accessible-beat list.

    Requirements are judged against the snapshot as it was when the pass
    started, so a beat unlocked here cannot unlock another beat until the
    next call. Beats that declare no entry requirements are never added; a
    declared empty list always passes.
    """
    accessible = list(snapshot.accessible_beats)
    known = set(accessible)
    for beat in story.beats:
        if beat.id in known or beat.entry_requirements is None:
            continue
        if evaluate_all(beat.entry_requirements, snapshot):
            accessible.append(beat.id)
            known.add(beat.id)

    newly = accessible[len(snapshot.accessible_beats):]
    if newly:
        logger.debug("Unlocked beats for %s/%s: %s", snapshot.story_id, snapshot.player_id, newly)
    return accessible


def expand_to_fixed_point(
    story: StoryGraph,
    snapshot: ProgressSnapshot,
    max_rounds: int | None = None,
) -> list[str]:
    """Repeat single passes until nothing new unlocks.

    Opt-in only; the regular update path unlocks one hop per update.
    """
    working = snapshot.copy()
    rounds = 0
    while max_rounds is None or rounds < max_rounds:
        accessible = expand(story, working)
        rounds += 1
        if len(accessible) == len(working.accessible_beats):
            break
        working.accessible_beats = accessible
    return list(working.accessible_beats)
