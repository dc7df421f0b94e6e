"""Progress session manager.

Each mutating call: lock session -> copy snapshot -> change -> expand ->
project -> persist -> publish. Readers only ever see published snapshots.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from narrative.progression import expand, expand_to_fixed_point, find_starting_beat
from narrative.projection import PlayerView, project
from story.models import StoryGraph
from story.provider import StoryProvider

from .cache import SessionCache
from .errors import SessionNotFound
from .progress import PersistedProgress, ProgressSnapshot, ProgressStore, ProgressUpdate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressiveStoryLoader:
    """Reveals a story to one player at a time, as they earn it."""

    def __init__(
        self,
        provider: StoryProvider,
        store: ProgressStore,
        cache: SessionCache | None = None,
        config: dict | None = None,
    ):
        cfg = (config or {}).get("engine", {})
        self._provider = provider
        self._store = store
        self._cache = cache if cache is not None else SessionCache()
        self._spoiler_prevention = bool(cfg.get("enable_spoiler_prevention", True))
        self._max_lookahead = int(cfg.get("max_lookahead_beats", 3))

    @property
    def cache(self) -> SessionCache:
        return self._cache

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize_story(self, story_id: str, player_id: str) -> PlayerView:
        """Start a fresh session; any previous progress for the pair is replaced."""
        async with self._cache.lock_for(story_id, player_id):
            story = await self._provider.load_full_story(story_id)
            self._cache.put_story(story_id, story)

            start = find_starting_beat(story)
            snapshot = ProgressSnapshot(
                story_id=story_id,
                player_id=player_id,
                current_beat_id=start,
                accessible_beats=[start],
                stat_values=dict(story.player_stats),
                relationship_values=dict(story.relationships),
            )
            view = project(story, snapshot)
            await self._persist(snapshot)
            self._cache.put_progress(snapshot)

        logger.info("Initialized story %s for player %s at beat %s", story_id, player_id, start)
        return view

    async def load_story_session(self, story_id: str, player_id: str) -> PlayerView:
        """Resume a session from cache, or from the store on a cache miss.

        On a cache miss relationship values are reset to the story's declared
        baselines; stored relationship progress is not used. This is pending
        product confirmation and must not be changed silently.
        """
        async with self._cache.lock_for(story_id, player_id):
            story = await self._get_story(story_id)
            snapshot = self._cache.get_progress(story_id, player_id)
            if snapshot is None:
                snapshot = await self._load_persisted(story, story_id, player_id)
                changed = True
            else:
                changed = False

            working = snapshot.copy()
            view = project(story, working)
            if working.current_beat_id != snapshot.current_beat_id or working.accessible_beats != snapshot.accessible_beats:
                await self._persist(working)
                changed = True
            if changed:
                self._cache.put_progress(working)
        return view

    async def update_story_progress(
        self,
        story_id: str,
        player_id: str,
        updates: ProgressUpdate | dict | None = None,
    ) -> PlayerView:
        """Apply one action's changes and unlock whatever one pass allows."""
        if updates is None:
            updates = ProgressUpdate()
        elif isinstance(updates, dict):
            updates = ProgressUpdate.from_dict(updates)

        async with self._cache.lock_for(story_id, player_id):
            story = await self._get_story(story_id)
            current = self._cache.get_progress(story_id, player_id)
            if current is None:
                current = await self._load_persisted(story, story_id, player_id)

            working = current.copy()
            updates.apply_to(working)
            if updates.completed_objectives:
                logger.info(
                    "Objectives completed by %s in %s: %s",
                    player_id,
                    story_id,
                    ", ".join(updates.completed_objectives),
                )

            before = len(working.accessible_beats)
            working.accessible_beats = expand(story, working)
            working.last_updated = _now()

            view = project(story, working)
            await self._persist(working)
            self._cache.put_progress(working)

        unlocked = view.progress_state.accessible_beats[before:]
        if unlocked:
            logger.info("Player %s unlocked %s in %s", player_id, unlocked, story_id)
        return view

    async def resolve_reachable(self, story_id: str, player_id: str) -> PlayerView:
        """Unlock everything reachable right now, ignoring one-hop pacing."""
        async with self._cache.lock_for(story_id, player_id):
            story = await self._get_story(story_id)
            current = self._cache.get_progress(story_id, player_id)
            if current is None:
                current = await self._load_persisted(story, story_id, player_id)

            working = current.copy()
            working.accessible_beats = expand_to_fixed_point(story, working)
            working.last_updated = _now()
            view = project(story, working)
            await self._persist(working)
            self._cache.put_progress(working)
        return view

    # ── Read-only queries ───────────────────────────────────────

    async def get_accessible_beats(self, story_id: str, player_id: str) -> list[str]:
        snapshot = self._cache.get_progress(story_id, player_id)
        if snapshot is not None:
            return list(snapshot.accessible_beats)

        record = await self._store.get_progress(story_id, player_id)
        if record is None:
            return []
        return record.decode_list("completed_beats")

    async def can_access_beat(self, story_id: str, player_id: str, beat_id: str) -> bool:
        return beat_id in await self.get_accessible_beats(story_id, player_id)

    async def get_hidden_mechanics_state(self, story_id: str, player_id: str) -> dict[str, float]:
        snapshot = self._cache.get_progress(story_id, player_id)
        if snapshot is not None:
            return dict(snapshot.stat_values)

        record = await self._store.get_progress(story_id, player_id)
        if record is None:
            return {}
        return record.decode_numbers("ending_implications")

    async def get_current_beat_id(self, story_id: str, player_id: str) -> str | None:
        snapshot = self._cache.get_progress(story_id, player_id)
        if snapshot is not None:
            return snapshot.current_beat_id
        record = await self._store.get_progress(story_id, player_id)
        return record.current_beat_id if record else None

    # ── Cache control ───────────────────────────────────────────

    async def clear_progress_cache(self, story_id: str, player_id: str) -> None:
        self._cache.evict_progress(story_id, player_id)

    async def clear_all_caches(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Cache counters plus the configured spoiler settings.

        ``spoiler_prevention_enabled`` and ``max_lookahead_beats`` are reported
        for operators only. Gating never reads them.
        """
        return {
            "active_sessions": self._cache.session_count,
            "cached_stories": self._cache.story_count,
            "spoiler_prevention_enabled": self._spoiler_prevention,
            "max_lookahead_beats": self._max_lookahead,
        }

    # ── Internals ───────────────────────────────────────────────

    async def _get_story(self, story_id: str) -> StoryGraph:
        story = self._cache.get_story(story_id)
        if story is None:
            story = await self._provider.load_full_story(story_id)
            self._cache.put_story(story_id, story)
        return story

    async def _load_persisted(self, story: StoryGraph, story_id: str, player_id: str) -> ProgressSnapshot:
        record = await self._store.get_progress(story_id, player_id)
        if record is None:
            raise SessionNotFound(story_id, player_id)

        snapshot = record.to_snapshot()
        snapshot.relationship_values = dict(story.relationships)
        logger.info(
            "Cold-loaded %s/%s from store; relationships reset to story baselines",
            story_id,
            player_id,
        )
        return snapshot

    async def _persist(self, snapshot: ProgressSnapshot) -> None:
        await self._store.put_progress(PersistedProgress.from_snapshot(snapshot))
        logger.debug("Persisted progress for %s/%s", snapshot.story_id, snapshot.player_id)
