"""Player progress: the in-memory snapshot and its durable form.

Snapshot = per (story, player) record that drives every gating decision
Persisted = the store's row shape (JSON text columns, legacy field names)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(ts: Any) -> datetime | None:
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, str) and ts.strip():
        raw = ts.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _append_unique(target: list[str], values: list[str] | tuple[str, ...]) -> list[str]:
    """Append members not already present. Returns the ones actually added."""
    added = []
    for value in values:
        if value not in target:
            target.append(value)
            added.append(value)
    return added


# ── Snapshot ────────────────────────────────────────────────────


@dataclass
class ProgressSnapshot:
    """Everything the engine knows about one player in one story.

    The list fields behave as insertion-ordered sets.
    """

    story_id: str
    player_id: str
    current_beat_id: str
    accessible_beats: list[str] = field(default_factory=list)
    revealed_characters: list[str] = field(default_factory=list)
    discovered_items: list[str] = field(default_factory=list)
    unlocked_endings: list[str] = field(default_factory=list)
    stat_values: dict[str, float] = field(default_factory=dict)
    relationship_values: dict[str, float] = field(default_factory=dict)
    flags: dict[str, Any] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=_now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.story_id, self.player_id)

    def copy(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            story_id=self.story_id,
            player_id=self.player_id,
            current_beat_id=self.current_beat_id,
            accessible_beats=list(self.accessible_beats),
            revealed_characters=list(self.revealed_characters),
            discovered_items=list(self.discovered_items),
            unlocked_endings=list(self.unlocked_endings),
            stat_values=dict(self.stat_values),
            relationship_values=dict(self.relationship_values),
            flags=dict(self.flags),
            last_updated=self.last_updated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyId": self.story_id,
            "playerId": self.player_id,
            "currentBeatId": self.current_beat_id,
            "accessibleBeats": list(self.accessible_beats),
            "revealedCharacters": list(self.revealed_characters),
            "discoveredItems": list(self.discovered_items),
            "unlockedEndings": list(self.unlocked_endings),
            "hiddenMechanicsState": dict(self.stat_values),
            "relationshipsState": dict(self.relationship_values),
            "gameFlags": dict(self.flags),
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass
class ProgressUpdate:
    """A batch of changes produced by one player action."""

    new_beat_id: str = ""
    stat_changes: dict[str, float] = field(default_factory=dict)
    relationship_changes: dict[str, float] = field(default_factory=dict)
    flag_changes: dict[str, Any] = field(default_factory=dict)
    revealed_characters: list[str] = field(default_factory=list)
    discovered_items: list[str] = field(default_factory=list)
    unlocked_endings: list[str] = field(default_factory=list)
    completed_objectives: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ProgressUpdate:
        return cls(
            new_beat_id=str(data.get("newBeatId", data.get("new_beat_id", "")) or ""),
            stat_changes=dict(data.get("statChanges", data.get("stat_changes")) or {}),
            relationship_changes=dict(data.get("relationshipChanges", data.get("relationship_changes")) or {}),
            flag_changes=dict(data.get("flagChanges", data.get("flag_changes")) or {}),
            revealed_characters=list(data.get("revealedCharacters", data.get("revealed_characters")) or []),
            discovered_items=list(data.get("discoveredItems", data.get("discovered_items")) or []),
            unlocked_endings=list(data.get("unlockedEndings", data.get("unlocked_endings")) or []),
            completed_objectives=list(data.get("completedObjectives", data.get("completed_objectives")) or []),
        )

    def apply_to(self, snapshot: ProgressSnapshot) -> None:
        """Mutate ``snapshot`` in place. Deltas are additive, members idempotent."""
        if self.new_beat_id:
            snapshot.current_beat_id = self.new_beat_id
            _append_unique(snapshot.accessible_beats, [self.new_beat_id])

        for stat, change in self.stat_changes.items():
            snapshot.stat_values[stat] = snapshot.stat_values.get(stat, 0) + change

        for character, change in self.relationship_changes.items():
            snapshot.relationship_values[character] = snapshot.relationship_values.get(character, 0) + change

        snapshot.flags.update(self.flag_changes)

        _append_unique(snapshot.revealed_characters, self.revealed_characters)
        _append_unique(snapshot.discovered_items, self.discovered_items)
        _append_unique(snapshot.unlocked_endings, self.unlocked_endings)


# ── Persisted form ──────────────────────────────────────────────


@dataclass
class PersistedProgress:
    """Row shape shared with older stores.

    The legacy column names do not describe their contents:
    ``completed_beats`` holds accessible beats, ``met_characters`` holds
    revealed characters, ``discovered_secrets`` holds discovered items and
    ``ending_implications`` holds stat values. Relationships are not stored.
    """

    story_id: str
    player_id: str
    current_beat_id: str
    completed_beats: str = "[]"
    visited_locations: str = "[]"
    met_characters: str = "[]"
    discovered_secrets: str = "[]"
    ending_implications: str = "{}"
    game_flags: str = "{}"
    unlocked_endings: str = "[]"
    last_played: str = ""
    total_play_time: int = 0
    schema_version: int = SCHEMA_VERSION

    @property
    def id(self) -> str:
        return f"{self.story_id}:{self.player_id}"

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> PersistedProgress:
        return cls(
            story_id=snapshot.story_id,
            player_id=snapshot.player_id,
            current_beat_id=snapshot.current_beat_id,
            completed_beats=json.dumps(list(snapshot.accessible_beats)),
            met_characters=json.dumps(list(snapshot.revealed_characters)),
            discovered_secrets=json.dumps(list(snapshot.discovered_items)),
            ending_implications=json.dumps(dict(snapshot.stat_values)),
            game_flags=json.dumps(dict(snapshot.flags)),
            unlocked_endings=json.dumps(list(snapshot.unlocked_endings)),
            last_played=snapshot.last_updated.isoformat(),
        )

    def decode_list(self, field_name: str) -> list[str]:
        """Parse a JSON list column. Malformed data yields ``[]``."""
        value = _decode_json(self, field_name, list)
        return [str(v) for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)]

    def decode_numbers(self, field_name: str) -> dict[str, float]:
        value = _decode_json(self, field_name, dict)
        return {
            str(k): v
            for k, v in value.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }

    def decode_flags(self, field_name: str = "game_flags") -> dict[str, Any]:
        value = _decode_json(self, field_name, dict)
        return {str(k): v for k, v in value.items()}

    def to_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            story_id=self.story_id,
            player_id=self.player_id,
            current_beat_id=self.current_beat_id,
            accessible_beats=self.decode_list("completed_beats"),
            revealed_characters=self.decode_list("met_characters"),
            discovered_items=self.decode_list("discovered_secrets"),
            unlocked_endings=self.decode_list("unlocked_endings"),
            stat_values=self.decode_numbers("ending_implications"),
            relationship_values={},
            flags=self.decode_flags(),
            last_updated=_parse_iso(self.last_played) or _now(),
        )


def _decode_json(record: PersistedProgress, field_name: str, expected: type) -> Any:
    raw = getattr(record, field_name, None)
    if isinstance(raw, expected):
        return raw
    if raw is None or raw == "":
        return expected()
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        value = None
    if not isinstance(value, expected):
        logger.warning(
            "Malformed persisted field %s for %s, using empty %s",
            field_name,
            record.id,
            expected.__name__,
        )
        return expected()
    return value


# ── Stores ──────────────────────────────────────────────────────


class ProgressStore(Protocol):
    async def get_progress(self, story_id: str, player_id: str) -> PersistedProgress | None: ...

    async def put_progress(self, record: PersistedProgress) -> None: ...


class InMemoryProgressStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self) -> None:
        self._rows: dict[str, PersistedProgress] = {}

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> InMemoryProgressStore:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        pass

    async def get_progress(self, story_id: str, player_id: str) -> PersistedProgress | None:
        row = self._rows.get(f"{story_id}:{player_id}")
        if row is None:
            return None
        return PersistedProgress(**row.__dict__)

    async def put_progress(self, record: PersistedProgress) -> None:
        self._rows[record.id] = PersistedProgress(**record.__dict__)

    def __len__(self) -> int:
        return len(self._rows)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS story_progress (
    id TEXT PRIMARY KEY,
    story_id TEXT NOT NULL,
    player_id TEXT NOT NULL,
    current_beat_id TEXT NOT NULL,
    completed_beats TEXT NOT NULL DEFAULT '[]',      -- accessible beats
    visited_locations TEXT NOT NULL DEFAULT '[]',
    met_characters TEXT NOT NULL DEFAULT '[]',
    discovered_secrets TEXT NOT NULL DEFAULT '[]',   -- discovered items
    ending_implications TEXT NOT NULL DEFAULT '{}',  -- stat values
    game_flags TEXT NOT NULL DEFAULT '{}',
    unlocked_endings TEXT NOT NULL DEFAULT '[]',
    last_played TEXT,
    total_play_time INTEGER NOT NULL DEFAULT 0,
    schema_version INTEGER NOT NULL DEFAULT 1,
    UNIQUE(story_id, player_id)
);
"""

# Columns added after the first schema; older databases get them on open.
_V2_COLUMNS = {
    "game_flags": "TEXT NOT NULL DEFAULT '{}'",
    "unlocked_endings": "TEXT NOT NULL DEFAULT '[]'",
    "schema_version": "INTEGER NOT NULL DEFAULT 1",
}

_COLUMNS = (
    "id",
    "story_id",
    "player_id",
    "current_beat_id",
    "completed_beats",
    "visited_locations",
    "met_characters",
    "discovered_secrets",
    "ending_implications",
    "game_flags",
    "unlocked_endings",
    "last_played",
    "total_play_time",
    "schema_version",
)


class SqliteProgressStore:
    """Progress rows in a SQLite database."""

    def __init__(self, db_path: str | Path):
        self._path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.executescript(_SCHEMA)
        await self._migrate()
        await self._db.commit()
        logger.debug("Progress DB ready at %s", self._path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> SqliteProgressStore:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _migrate(self) -> None:
        cursor = await self._db.execute("PRAGMA table_info(story_progress)")
        existing = {row[1] for row in await cursor.fetchall()}
        for column, ddl in _V2_COLUMNS.items():
            if column not in existing:
                await self._db.execute(f"ALTER TABLE story_progress ADD COLUMN {column} {ddl}")
                logger.info("Added column %s to story_progress", column)

    async def put_progress(self, record: PersistedProgress) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in _COLUMNS if c not in ("id", "story_id", "player_id"))
        await self._db.execute(
            f"INSERT INTO story_progress ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(story_id, player_id) DO UPDATE SET {updates}",
            (
                record.id,
                record.story_id,
                record.player_id,
                record.current_beat_id,
                record.completed_beats,
                record.visited_locations,
                record.met_characters,
                record.discovered_secrets,
                record.ending_implications,
                record.game_flags,
                record.unlocked_endings,
                record.last_played,
                record.total_play_time,
                record.schema_version,
            ),
        )
        await self._db.commit()

    async def get_progress(self, story_id: str, player_id: str) -> PersistedProgress | None:
        cursor = await self._db.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM story_progress WHERE story_id = ? AND player_id = ? LIMIT 1",
            (story_id, player_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        data = dict(zip(_COLUMNS, row))
        data.pop("id")
        data["last_played"] = data.get("last_played") or ""
        data["total_play_time"] = int(data.get("total_play_time") or 0)
        data["schema_version"] = int(data.get("schema_version") or 1)
        return PersistedProgress(**data)
