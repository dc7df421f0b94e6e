"""Build the player-safe view of a story from a progress snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from engine.errors import EmptyStoryGraph

from .requirements import Requirement, evaluate_all, missing_requirements

if TYPE_CHECKING:
    from engine.progress import ProgressSnapshot
    from story.models import Beat, Character, Ending, Item, Objective, QuickAction, StoryGraph, StoryMetadata

logger = logging.getLogger(__name__)


def _requirement_dict(req: Requirement) -> dict[str, Any]:
    data: dict[str, Any] = {"type": req.type, "condition": req.condition}
    for attr in ("value", "operator"):
        if hasattr(req, attr):
            data[attr] = getattr(req, attr)
    return data


@dataclass
class BeatView:
    """A beat with its actions and objectives already filtered."""

    beat: Beat
    quick_actions: list[QuickAction] = field(default_factory=list)
    objectives: list[Objective] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.beat.id

    def to_dict(self) -> dict[str, Any]:
        beat = self.beat
        return {
            "id": beat.id,
            "act": beat.act,
            "title": beat.title,
            "description": beat.description,
            "setting": dict(beat.setting),
            "entryRequirements": [_requirement_dict(r) for r in beat.entry_requirements or ()],
            "narrativeGuidance": dict(beat.narrative_guidance),
            "quickActions": [
                {
                    "id": a.id,
                    "label": a.label,
                    "description": a.description,
                    "icon": a.icon,
                    "visible": a.visible,
                    "effects": dict(a.effects),
                }
                for a in self.quick_actions
            ],
            "objectives": [
                {
                    "id": o.id,
                    "description": o.description,
                    "type": o.type,
                    "visible": o.visible,
                    "completionHints": list(o.completion_hints),
                    "weight": o.weight,
                }
                for o in self.objectives
            ],
            "hiddenTriggers": [dict(t) for t in beat.hidden_triggers],
            "exitConditions": [
                {
                    "requirements": [_requirement_dict(r) for r in e.requirements],
                    "nextBeat": e.next_beat_id,
                    "narrative": e.narrative,
                    "automatic": e.automatic,
                }
                for e in beat.exit_conditions
            ],
        }


@dataclass
class EndingView:
    ending: Ending
    can_be_reached: bool
    missing_requirements: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.ending.id

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.ending.id,
            "title": self.ending.title,
            "description": self.ending.description,
            "category": self.ending.category,
            "requirements": [_requirement_dict(r) for r in self.ending.requirements],
            "canBeReached": self.can_be_reached,
        }
        if self.missing_requirements:
            data["missingRequirements"] = list(self.missing_requirements)
        return data


@dataclass
class PlayerView:
    """The only artifact handed to narration. Contains no unearned content."""

    metadata: StoryMetadata
    current_beat: BeatView
    accessible_beats: list[BeatView]
    revealed_characters: list[Character]
    discovered_items: list[Item]
    available_endings: list[EndingView]
    progress_state: ProgressSnapshot
    ai_guidance: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        meta = self.metadata
        return {
            "metadata": {
                "id": meta.id,
                "title": meta.title,
                "description": meta.description,
                "author": meta.author,
                "gameStyle": meta.game_style,
                "difficulty": meta.difficulty,
                "estimatedLength": meta.estimated_length,
                "tags": list(meta.tags),
            },
            "currentBeat": self.current_beat.to_dict(),
            "accessibleBeats": [b.to_dict() for b in self.accessible_beats],
            "revealedCharacters": [
                {
                    "id": c.id,
                    "name": c.name,
                    "description": c.description,
                    "role": c.role,
                    "personality": list(c.personality),
                    **c.details,
                }
                for c in self.revealed_characters
            ],
            "discoveredItems": [
                {
                    "id": i.id,
                    "name": i.name,
                    "description": i.description,
                    "type": i.type,
                    "properties": list(i.properties),
                    "effects": dict(i.effects),
                    "acquisitionMethod": i.acquisition_method,
                }
                for i in self.discovered_items
            ],
            "availableEndings": [e.to_dict() for e in self.available_endings],
            "progressState": self.progress_state.to_dict(),
            "aiGuidance": dict(self.ai_guidance),
        }


def _visible_action(action: QuickAction, snapshot: ProgressSnapshot) -> bool:
    # Declared requirements override the static flag.
    if action.requirements is not None:
        return evaluate_all(action.requirements, snapshot)
    return action.visible


def build_beat_view(beat: Beat, snapshot: ProgressSnapshot) -> BeatView:
    return BeatView(
        beat=beat,
        quick_actions=[a for a in beat.quick_actions if _visible_action(a, snapshot)],
        objectives=[o for o in beat.objectives if o.visible or o.is_required],
    )


def build_ending_view(ending: Ending, snapshot: ProgressSnapshot) -> EndingView:
    missing = missing_requirements(ending.requirements, snapshot)
    return EndingView(ending=ending, can_be_reached=not missing, missing_requirements=missing)


def resolve_current_beat(story: StoryGraph, snapshot: ProgressSnapshot) -> Beat:
    """Find the current beat, repairing a dangling pointer in place."""
    if not story.beats:
        raise EmptyStoryGraph(story.id)

    beat = story.get_beat(snapshot.current_beat_id)
    if beat is None:
        beat = story.beats[0]
        logger.warning(
            "Corrupted current beat %r for %s/%s, falling back to %r",
            snapshot.current_beat_id,
            snapshot.story_id,
            snapshot.player_id,
            beat.id,
        )
        snapshot.current_beat_id = beat.id

    if beat.id not in snapshot.accessible_beats:
        snapshot.accessible_beats.append(beat.id)
    return beat


def project(story: StoryGraph, snapshot: ProgressSnapshot) -> PlayerView:
    """Restrict ``story`` to what the player behind ``snapshot`` has earned.

    The only mutation is the current-beat repair done by
    ``resolve_current_beat``.
    """
    current = resolve_current_beat(story, snapshot)

    accessible = set(snapshot.accessible_beats)
    revealed = set(snapshot.revealed_characters)
    discovered = set(snapshot.discovered_items)

    return PlayerView(
        metadata=story.metadata,
        current_beat=build_beat_view(current, snapshot),
        accessible_beats=[build_beat_view(b, snapshot) for b in story.beats if b.id in accessible],
        revealed_characters=[c for c in story.characters if c.id in revealed],
        discovered_items=[i for i in story.items if i.id in discovered],
        available_endings=[build_ending_view(e, snapshot) for e in story.endings],
        progress_state=snapshot.copy(),
        ai_guidance=dict(story.ai_guidance),
    )
