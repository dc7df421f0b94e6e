"""Errors raised by the progression engine.

Problems with the story graph itself propagate. Problems with one player's
progress record are repaired where a safe default exists (dangling current
beat, malformed persisted column) and only surface when none does.
"""

from __future__ import annotations


class StoryEngineError(Exception):
    """Base class for engine failures."""


class StoryNotFound(StoryEngineError):
    """Raised when the story provider has no story with this id."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story not found: {story_id}")


class SessionNotFound(StoryEngineError):
    """Raised when a player has no cached or persisted progress for a story."""

    def __init__(self, story_id: str, player_id: str):
        self.story_id = story_id
        self.player_id = player_id
        super().__init__(f"No story session found for player {player_id} and story {story_id}")


class EmptyStoryGraph(StoryEngineError):
    """Raised when a story has no beats at all."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story has no beats available: {story_id}")
