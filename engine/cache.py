"""In-process caches for progress snapshots and loaded story graphs.

Entries live until evicted or cleared; there is no expiry.
"""

from __future__ import annotations

import asyncio
import logging

from story.models import StoryGraph

from .progress import ProgressSnapshot

logger = logging.getLogger(__name__)

SessionKey = tuple[str, str]


class SessionCache:
    """Snapshots keyed by (story, player), graphs keyed by story.

    Stored snapshots are treated as published: writers replace the entry
    with a fresh object instead of mutating the cached one.
    """

    def __init__(self) -> None:
        self._progress: dict[SessionKey, ProgressSnapshot] = {}
        self._stories: dict[str, StoryGraph] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}

    # ── Progress ────────────────────────────────────────────────

    def get_progress(self, story_id: str, player_id: str) -> ProgressSnapshot | None:
        return self._progress.get((story_id, player_id))

    def put_progress(self, snapshot: ProgressSnapshot) -> None:
        self._progress[snapshot.key] = snapshot

    def evict_progress(self, story_id: str, player_id: str) -> bool:
        # Locks outlive eviction; a queued writer may still be waiting on one.
        removed = self._progress.pop((story_id, player_id), None) is not None
        if removed:
            logger.debug("Evicted progress for %s/%s", story_id, player_id)
        return removed

    def lock_for(self, story_id: str, player_id: str) -> asyncio.Lock:
        """The writer lock for one session, created on first use."""
        key = (story_id, player_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ── Stories ─────────────────────────────────────────────────

    def get_story(self, story_id: str) -> StoryGraph | None:
        return self._stories.get(story_id)

    def put_story(self, story_id: str, story: StoryGraph) -> None:
        self._stories[story_id] = story

    def evict_story(self, story_id: str) -> bool:
        return self._stories.pop(story_id, None) is not None

    # ── Bulk ────────────────────────────────────────────────────

    def clear(self) -> None:
        self._progress.clear()
        self._stories.clear()
        logger.info("Cleared all progress and story caches")

    @property
    def session_count(self) -> int:
        return len(self._progress)

    @property
    def story_count(self) -> int:
        return len(self._stories)
