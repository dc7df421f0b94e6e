"""Narrative gating: requirements, reachability, player-safe projection."""

from .progression import (
    expand,
    expand_to_fixed_point,
    find_starting_beat,
)
from .projection import PlayerView, project
from .requirements import (
    Requirement,
    evaluate,
    evaluate_all,
    missing_requirements,
    parse_requirement,
)

__all__ = [
    "PlayerView",
    "Requirement",
    "evaluate",
    "evaluate_all",
    "expand",
    "expand_to_fixed_point",
    "find_starting_beat",
    "missing_requirements",
    "parse_requirement",
    "project",
]
