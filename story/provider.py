"""Where the engine gets full story graphs from."""

from __future__ import annotations

import logging
from typing import Protocol

from engine.errors import StoryNotFound

from .models import StoryGraph

logger = logging.getLogger(__name__)


class StoryProvider(Protocol):
    async def load_full_story(self, story_id: str) -> StoryGraph:
        """Return the complete graph or raise ``StoryNotFound``."""
        ...


class InMemoryStoryProvider:
    """Serves graphs registered up front. Counts loads so callers can see cache hits."""

    def __init__(self, stories: dict[str, StoryGraph | dict] | None = None):
        self._stories: dict[str, StoryGraph] = {}
        self.load_count = 0
        for story_id, story in (stories or {}).items():
            self.add(story_id, story)

    def add(self, story_id: str, story: StoryGraph | dict) -> StoryGraph:
        graph = story if isinstance(story, StoryGraph) else StoryGraph.from_dict(story)
        self._stories[story_id] = graph
        return graph

    async def load_full_story(self, story_id: str) -> StoryGraph:
        self.load_count += 1
        graph = self._stories.get(story_id)
        if graph is None:
            logger.warning("Story %s requested but not registered", story_id)
            raise StoryNotFound(story_id)
        return graph
