"""Requirement language and its evaluator.

A requirement is a typed gate on a player's progress. Every variant is a frozen
dataclass; ``evaluate`` matches them exhaustively and never mutates the
snapshot it reads. Anything the parser does not recognise becomes an
``UnknownRequirement``, which always evaluates to False.
"""

from __future__ import annotations

import logging
import operator as op
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from engine.progress import ProgressSnapshot

logger = logging.getLogger(__name__)

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": op.ge,
    "<=": op.le,
    ">": op.gt,
    "<": op.lt,
    "==": op.eq,
    "!=": op.ne,
}

DEFAULT_OPERATOR = ">="


@dataclass(frozen=True)
class StatRequirement:
    condition: str
    value: float
    operator: str = DEFAULT_OPERATOR
    type: str = "stat"


@dataclass(frozen=True)
class RelationshipRequirement:
    condition: str
    value: float
    operator: str = DEFAULT_OPERATOR
    type: str = "relationship"


@dataclass(frozen=True)
class FlagRequirement:
    condition: str
    value: bool = True
    type: str = "flag"


@dataclass(frozen=True)
class BeatRequirement:
    condition: str
    type: str = "beat"


@dataclass(frozen=True)
class ItemRequirement:
    condition: str
    type: str = "item"


@dataclass(frozen=True)
class CharacterRequirement:
    condition: str
    type: str = "character"


@dataclass(frozen=True)
class UnknownRequirement:
    """A gate we cannot interpret. Kept so it can be reported, never satisfied."""

    type: str
    condition: str = ""
    raw: tuple[tuple[str, Any], ...] = ()


Requirement = Union[
    StatRequirement,
    RelationshipRequirement,
    FlagRequirement,
    BeatRequirement,
    ItemRequirement,
    CharacterRequirement,
    UnknownRequirement,
]


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_requirement(data: dict[str, Any]) -> Requirement:
    """Build a typed requirement from its authored mapping."""
    req_type = str(data.get("type", "") or "")
    condition = str(data.get("condition", "") or "")
    raw = tuple(sorted((str(k), v) for k, v in data.items() if isinstance(v, (str, int, float, bool))))

    if req_type in ("stat", "relationship"):
        value = _numeric(data.get("value", 0))
        operator = str(data.get("operator") or DEFAULT_OPERATOR)
        if value is None:
            logger.debug("Non-numeric value on %s:%s, treating as unknown", req_type, condition)
            return UnknownRequirement(type=req_type, condition=condition, raw=raw)
        cls = StatRequirement if req_type == "stat" else RelationshipRequirement
        return cls(condition=condition, value=value, operator=operator)
    if req_type == "flag":
        return FlagRequirement(condition=condition, value=data.get("value", True))
    if req_type == "beat":
        return BeatRequirement(condition=condition)
    if req_type == "item":
        return ItemRequirement(condition=condition)
    if req_type == "character":
        return CharacterRequirement(condition=condition)
    return UnknownRequirement(type=req_type, condition=condition, raw=raw)


def parse_requirements(data: Any) -> tuple[Requirement, ...]:
    if not isinstance(data, list):
        return ()
    return tuple(parse_requirement(item) for item in data if isinstance(item, dict))


def compare(actual: float, expected: float, operator: str) -> bool:
    fn = _COMPARATORS.get(operator)
    if fn is None:
        return False
    return fn(actual, expected)


def evaluate(requirement: Requirement, snapshot: ProgressSnapshot) -> bool:
    """Return True if ``requirement`` holds for ``snapshot``. Fails closed."""
    match requirement:
        case StatRequirement(condition=key, value=value, operator=operator):
            return compare(snapshot.stat_values.get(key, 0), value, operator)
        case RelationshipRequirement(condition=key, value=value, operator=operator):
            return compare(snapshot.relationship_values.get(key, 0), value, operator)
        case FlagRequirement(condition=key, value=value):
            if key not in snapshot.flags:
                return False
            return snapshot.flags[key] == value
        case BeatRequirement(condition=key):
            return key in snapshot.accessible_beats
        case ItemRequirement(condition=key):
            return key in snapshot.discovered_items
        case CharacterRequirement(condition=key):
            return key in snapshot.revealed_characters
        case UnknownRequirement(type=req_type, condition=key):
            logger.debug("Unknown requirement type %r on %r, failing closed", req_type, key)
            return False
        case _:
            logger.warning("Unhandled requirement object %r, failing closed", requirement)
            return False


def evaluate_all(requirements: Iterable[Requirement], snapshot: ProgressSnapshot) -> bool:
    """AND-combine a requirement list. An empty list is satisfied."""
    return all(evaluate(req, snapshot) for req in requirements)


def requirement_label(requirement: Requirement) -> str:
    return f"{requirement.type}:{requirement.condition}"


def missing_requirements(requirements: Iterable[Requirement], snapshot: ProgressSnapshot) -> list[str]:
    """Labels (``type:condition``) of every failing requirement, in order."""
    return [requirement_label(req) for req in requirements if not evaluate(req, snapshot)]
