"""Data models for a loaded story graph.

The graph is the spoiler-complete definition of a story. It is built once from
an already-validated mapping and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from narrative.requirements import Requirement, parse_requirements


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_number(value: Any, default: float = 0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(value: Any) -> list:
    if isinstance(value, list):
        return list(value)
    return []


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    return {}


def _numeric_map(value: Any) -> dict[str, float]:
    return {_as_text(k): _as_number(v) for k, v in _as_mapping(value).items()}


@dataclass(frozen=True)
class StoryMetadata:
    id: str
    title: str = ""
    description: str = ""
    author: str = ""
    game_style: str = ""
    difficulty: str = ""
    estimated_length: int = 0
    tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> StoryMetadata:
        return cls(
            id=_as_text(data.get("id", "")),
            title=_as_text(data.get("title", "")),
            description=_as_text(data.get("description", "")),
            author=_as_text(data.get("author", "")),
            game_style=_as_text(data.get("gameStyle", data.get("game_style", ""))),
            difficulty=_as_text(data.get("difficulty", "")),
            estimated_length=int(_as_number(data.get("estimatedLength", data.get("estimated_length", 0)))),
            tags=tuple(_as_text(t) for t in _as_list(data.get("tags"))),
        )


@dataclass(frozen=True)
class QuickAction:
    id: str
    label: str = ""
    description: str = ""
    icon: str = ""
    visible: bool = False
    # None means "no requirements declared"; an empty tuple is a declared,
    # always-satisfied gate.
    requirements: tuple[Requirement, ...] | None = None
    effects: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> QuickAction:
        raw_reqs = data.get("requirements")
        return cls(
            id=_as_text(data.get("id", "")),
            label=_as_text(data.get("label", "")),
            description=_as_text(data.get("description", "")),
            icon=_as_text(data.get("icon", "")),
            visible=bool(data.get("visible", False)),
            requirements=parse_requirements(raw_reqs) if raw_reqs is not None else None,
            effects=_as_mapping(data.get("effects")),
        )


@dataclass(frozen=True)
class Objective:
    id: str
    description: str = ""
    type: str = "optional"  # "required" | "optional"
    visible: bool = False
    completion_hints: tuple[str, ...] = ()
    weight: float = 1

    @property
    def is_required(self) -> bool:
        return self.type == "required"

    @classmethod
    def from_dict(cls, data: dict) -> Objective:
        return cls(
            id=_as_text(data.get("id", "")),
            description=_as_text(data.get("description", "")),
            type=_as_text(data.get("type", "optional")) or "optional",
            visible=bool(data.get("visible", False)),
            completion_hints=tuple(_as_text(h) for h in _as_list(data.get("completionHints"))),
            weight=_as_number(data.get("weight", 1), default=1),
        )


@dataclass(frozen=True)
class ExitCondition:
    next_beat_id: str
    requirements: tuple[Requirement, ...] = ()
    narrative: str = ""
    automatic: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> ExitCondition:
        return cls(
            next_beat_id=_as_text(data.get("nextBeat", data.get("next_beat_id", ""))),
            requirements=parse_requirements(data.get("requirements")),
            narrative=_as_text(data.get("narrative", "")),
            automatic=bool(data.get("automatic", False)),
        )


@dataclass(frozen=True)
class Beat:
    id: str
    act: int = 1
    title: str = ""
    description: str = ""
    setting: dict[str, Any] = field(default_factory=dict)
    # None when the beat declares no entry gate at all; such beats never unlock
    # through expansion. An empty tuple is a declared gate that always passes.
    entry_requirements: tuple[Requirement, ...] | None = None
    exit_conditions: tuple[ExitCondition, ...] = ()
    quick_actions: tuple[QuickAction, ...] = ()
    objectives: tuple[Objective, ...] = ()
    narrative_guidance: dict[str, Any] = field(default_factory=dict)
    hidden_triggers: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> Beat:
        raw_entry = data.get("entryRequirements")
        return cls(
            id=_as_text(data.get("id", "")),
            act=int(_as_number(data.get("act", 1), default=1)),
            title=_as_text(data.get("title", "")),
            description=_as_text(data.get("description", "")),
            setting=_as_mapping(data.get("setting")),
            entry_requirements=parse_requirements(raw_entry) if raw_entry is not None else None,
            exit_conditions=tuple(ExitCondition.from_dict(e) for e in _as_list(data.get("exitConditions"))),
            quick_actions=tuple(QuickAction.from_dict(a) for a in _as_list(data.get("quickActions"))),
            objectives=tuple(Objective.from_dict(o) for o in _as_list(data.get("objectives"))),
            narrative_guidance=_as_mapping(data.get("narrativeGuidance")),
            hidden_triggers=tuple(_as_mapping(t) for t in _as_list(data.get("hiddenTriggers"))),
        )


@dataclass(frozen=True)
class Character:
    id: str
    name: str = ""
    description: str = ""
    role: str = ""
    personality: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)  # stats, secrets, dialogue trees...

    @classmethod
    def from_dict(cls, data: dict) -> Character:
        known = {"id", "name", "description", "role", "personality"}
        return cls(
            id=_as_text(data.get("id", "")),
            name=_as_text(data.get("name", "")),
            description=_as_text(data.get("description", "")),
            role=_as_text(data.get("role", "")),
            personality=tuple(_as_text(p) for p in _as_list(data.get("personality"))),
            details={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class Item:
    id: str
    name: str = ""
    description: str = ""
    type: str = ""
    properties: tuple[str, ...] = ()
    effects: dict[str, Any] = field(default_factory=dict)
    acquisition_method: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Item:
        return cls(
            id=_as_text(data.get("id", "")),
            name=_as_text(data.get("name", "")),
            description=_as_text(data.get("description", "")),
            type=_as_text(data.get("type", "")),
            properties=tuple(_as_text(p) for p in _as_list(data.get("properties"))),
            effects=_as_mapping(data.get("effects")),
            acquisition_method=_as_text(data.get("acquisitionMethod", "")),
        )


@dataclass(frozen=True)
class Ending:
    id: str
    title: str = ""
    description: str = ""
    category: str = "neutral"  # "good" | "bad" | "neutral" | "secret"
    requirements: tuple[Requirement, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> Ending:
        return cls(
            id=_as_text(data.get("id", "")),
            title=_as_text(data.get("title", "")),
            description=_as_text(data.get("description", "")),
            category=_as_text(data.get("category", "neutral")) or "neutral",
            requirements=parse_requirements(data.get("requirements")),
        )


@dataclass(frozen=True)
class StoryGraph:
    """A fully loaded story. Beat order is authoring order."""

    metadata: StoryMetadata
    beats: tuple[Beat, ...] = ()
    characters: tuple[Character, ...] = ()
    items: tuple[Item, ...] = ()
    endings: tuple[Ending, ...] = ()
    player_stats: dict[str, float] = field(default_factory=dict)
    relationships: dict[str, float] = field(default_factory=dict)
    ai_guidance: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.metadata.id

    def get_beat(self, beat_id: str) -> Beat | None:
        for beat in self.beats:
            if beat.id == beat_id:
                return beat
        return None

    @classmethod
    def from_dict(cls, data: dict) -> StoryGraph:
        mechanics = _as_mapping(data.get("hiddenMechanics"))
        return cls(
            metadata=StoryMetadata.from_dict(_as_mapping(data.get("metadata"))),
            beats=tuple(Beat.from_dict(b) for b in _as_list(data.get("beats"))),
            characters=tuple(Character.from_dict(c) for c in _as_list(data.get("characters"))),
            items=tuple(Item.from_dict(i) for i in _as_list(data.get("items"))),
            endings=tuple(Ending.from_dict(e) for e in _as_list(data.get("endings"))),
            player_stats=_numeric_map(mechanics.get("playerStats")),
            relationships=_numeric_map(mechanics.get("relationships")),
            ai_guidance=_as_mapping(data.get("aiGuidance")),
        )
