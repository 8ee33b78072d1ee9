"""
Summary Store - Versioned Summaries and the Event Log

One summary row per thread plus an append-only event log.
Writes are compare-and-set on the version column:
- First save of a thread inserts version 1 (fails if another writer won)
- Later saves update only while the stored version is still the one read
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Any

import asyncpg

from threadmem.core.database import db
from threadmem.core.logger import Logger
from threadmem.services.summary_memory.data_models import Summary, SummaryEvent, EventType, utc_now
from threadmem.services.summary_memory.errors import StorageError, VersionConflict

logger = Logger("SummaryStore")

STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


# ═══════════════════════════════════════════════════════════════════════════════
# Schema
# ═══════════════════════════════════════════════════════════════════════════════

async def ensure_tables():
    """Create summary memory tables if they don't exist."""
    if not db.pool:
        return

    async with db.pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS summaries (
                thread_id TEXT PRIMARY KEY,
                version INT NOT NULL DEFAULT 1,
                digest_text TEXT,
                facts JSONB NOT NULL DEFAULT '{}',
                decisions JSONB NOT NULL DEFAULT '[]',
                todos JSONB NOT NULL DEFAULT '[]',
                goals JSONB NOT NULL DEFAULT '[]',
                constraints JSONB NOT NULL DEFAULT '[]',
                glossary JSONB NOT NULL DEFAULT '{}',
                deltas JSONB NOT NULL DEFAULT '[]',
                last_processed_message_id TEXT,
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS summary_events (
                id BIGSERIAL PRIMARY KEY,
                thread_id TEXT NOT NULL,
                event_type TEXT NOT NULL
                    CHECK (event_type IN ('created', 'updated', 'error', 'reconcile')),
                from_version INT,
                to_version INT,
                details JSONB NOT NULL DEFAULT '{}',
                message_ids TEXT[] NOT NULL DEFAULT '{}',
                created_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_summary_events_thread
            ON summary_events(thread_id, id DESC);
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS summary_prompts (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                prompt TEXT NOT NULL,
                model TEXT,
                provider TEXT,
                temperature REAL DEFAULT 0.2,
                max_tokens INT DEFAULT 1000,
                is_active BOOLEAN DEFAULT FALSE,
                created_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)

        logger.info("📦 Summary memory tables initialized")


# ═══════════════════════════════════════════════════════════════════════════════
# Store Interface
# ═══════════════════════════════════════════════════════════════════════════════

class SummaryStore(ABC):

    @abstractmethod
    async def get(self, thread_id: str) -> Optional[Summary]:
        ...

    @abstractmethod
    async def save(self, thread_id: str, summary: Summary, expected_version: int) -> Summary:
        """Persist summary as version expected_version + 1 or raise VersionConflict."""

    @abstractmethod
    async def append_event(self, event: SummaryEvent):
        ...

    @abstractmethod
    async def list_events(self, thread_id: str, limit: int = 50) -> List[SummaryEvent]:
        """Most recent events first."""

    @abstractmethod
    async def clear(self, thread_id: str) -> bool:
        """Drop a thread's summary and events when its conversation is deleted."""

    async def get_or_create(self, thread_id: str) -> Summary:
        """Stored summary, or an empty unsaved one (version 0) for a new thread."""
        summary = await self.get(thread_id)
        return summary if summary is not None else Summary.create_empty(thread_id)

    async def is_already_processed(self, thread_id: str, message_id: str) -> bool:
        summary = await self.get(thread_id)
        return summary is not None and summary.last_processed_message_id == message_id


# ═══════════════════════════════════════════════════════════════════════════════
# PostgreSQL
# ═══════════════════════════════════════════════════════════════════════════════

SUMMARY_COLUMNS = """
    thread_id, version, digest_text, facts, decisions, todos, goals,
    constraints, glossary, deltas, last_processed_message_id, created_at, updated_at
"""


def _load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def row_to_summary(row) -> Summary:
    return Summary.from_dict({
        "thread_id": row["thread_id"],
        "version": row["version"],
        "digest_text": row["digest_text"],
        "facts": _load_json(row["facts"], {}),
        "decisions": _load_json(row["decisions"], []),
        "todos": _load_json(row["todos"], []),
        "goals": _load_json(row["goals"], []),
        "constraints": _load_json(row["constraints"], []),
        "glossary": _load_json(row["glossary"], {}),
        "deltas": _load_json(row["deltas"], []),
        "last_processed_message_id": row["last_processed_message_id"],
        "created_at": _iso(row["created_at"]),
        "updated_at": _iso(row["updated_at"]),
    })


def row_to_event(row) -> SummaryEvent:
    return SummaryEvent(
        thread_id=row["thread_id"],
        event_type=EventType(row["event_type"]),
        from_version=row["from_version"],
        to_version=row["to_version"],
        details=_load_json(row["details"], {}),
        message_ids=list(row["message_ids"] or []),
        created_at=_iso(row["created_at"]),
    )


class PostgresSummaryStore(SummaryStore):
    """asyncpg-backed store; uses the shared pool unless one is given."""

    def __init__(self, pool: asyncpg.Pool = None):
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        pool = self._pool or db.pool
        if not pool:
            raise StorageError("PostgreSQL is not connected")
        return pool

    async def get(self, thread_id: str) -> Optional[Summary]:
        try:
            row = await self.pool.fetchrow(
                f"SELECT {SUMMARY_COLUMNS} FROM summaries WHERE thread_id = $1", thread_id
            )
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to load summary {thread_id}: {e}") from e
        return row_to_summary(row) if row else None

    async def save(self, thread_id: str, summary: Summary, expected_version: int) -> Summary:
        params = (
            thread_id,
            expected_version,
            summary.digest_text,
            json.dumps({k: v.to_dict() for k, v in summary.facts.items()}, ensure_ascii=False),
            json.dumps([d.to_dict() for d in summary.decisions], ensure_ascii=False),
            json.dumps([t.to_dict() for t in summary.todos], ensure_ascii=False),
            json.dumps(summary.goals, ensure_ascii=False),
            json.dumps(summary.constraints, ensure_ascii=False),
            json.dumps(summary.glossary, ensure_ascii=False),
            json.dumps([d.to_dict() for d in summary.deltas], ensure_ascii=False),
            summary.last_processed_message_id,
        )

        try:
            if expected_version == 0:
                row = await self.pool.fetchrow(f"""
                    INSERT INTO summaries (
                        thread_id, version, digest_text, facts, decisions, todos, goals,
                        constraints, glossary, deltas, last_processed_message_id, created_at, updated_at
                    )
                    VALUES ($1, $2 + 1, $3, $4::jsonb, $5::jsonb, $6::jsonb, $7::jsonb,
                            $8::jsonb, $9::jsonb, $10::jsonb, $11, NOW(), NOW())
                    ON CONFLICT (thread_id) DO NOTHING
                    RETURNING {SUMMARY_COLUMNS}
                """, *params)
            else:
                row = await self.pool.fetchrow(f"""
                    UPDATE summaries SET
                        version = $2 + 1,
                        digest_text = $3,
                        facts = $4::jsonb,
                        decisions = $5::jsonb,
                        todos = $6::jsonb,
                        goals = $7::jsonb,
                        constraints = $8::jsonb,
                        glossary = $9::jsonb,
                        deltas = $10::jsonb,
                        last_processed_message_id = $11,
                        updated_at = NOW()
                    WHERE thread_id = $1 AND version = $2
                    RETURNING {SUMMARY_COLUMNS}
                """, *params)

            if row is None:
                actual = await self.pool.fetchval(
                    "SELECT version FROM summaries WHERE thread_id = $1", thread_id
                )
                raise VersionConflict(thread_id, expected_version, actual)
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to save summary {thread_id}: {e}") from e

        return row_to_summary(row)

    async def append_event(self, event: SummaryEvent):
        try:
            await self.pool.execute("""
                INSERT INTO summary_events
                (thread_id, event_type, from_version, to_version, details, message_ids, created_at)
                VALUES ($1, $2, $3, $4, $5::jsonb, $6, NOW())
            """, event.thread_id, event.event_type.value, event.from_version, event.to_version,
                 json.dumps(event.details, ensure_ascii=False, default=str), list(event.message_ids))
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to append event for {event.thread_id}: {e}") from e

    async def list_events(self, thread_id: str, limit: int = 50) -> List[SummaryEvent]:
        try:
            rows = await self.pool.fetch("""
                SELECT thread_id, event_type, from_version, to_version, details, message_ids, created_at
                FROM summary_events
                WHERE thread_id = $1
                ORDER BY id DESC
                LIMIT $2
            """, thread_id, limit)
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to list events for {thread_id}: {e}") from e
        return [row_to_event(r) for r in rows]

    async def clear(self, thread_id: str) -> bool:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("DELETE FROM summary_events WHERE thread_id = $1", thread_id)
                    result = await conn.execute("DELETE FROM summaries WHERE thread_id = $1", thread_id)
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to clear summary {thread_id}: {e}") from e
        return result.endswith(" 1")


# ═══════════════════════════════════════════════════════════════════════════════
# In-Memory
# ═══════════════════════════════════════════════════════════════════════════════

class InMemorySummaryStore(SummaryStore):
    """Process-local store used without a database and in tests."""

    def __init__(self):
        self._summaries: Dict[str, Dict] = {}
        self._events: Dict[str, List[SummaryEvent]] = {}
        self._lock = asyncio.Lock()

    async def get(self, thread_id: str) -> Optional[Summary]:
        async with self._lock:
            data = self._summaries.get(thread_id)
            return Summary.from_dict(json.loads(json.dumps(data))) if data else None

    async def save(self, thread_id: str, summary: Summary, expected_version: int) -> Summary:
        async with self._lock:
            stored = self._summaries.get(thread_id)
            actual = stored["version"] if stored else 0
            if actual != expected_version:
                raise VersionConflict(thread_id, expected_version, actual if stored else None)

            now = utc_now()
            data = summary.to_dict()
            data["thread_id"] = thread_id
            data["version"] = expected_version + 1
            data["created_at"] = stored["created_at"] if stored else now
            data["updated_at"] = now
            self._summaries[thread_id] = json.loads(json.dumps(data))
            return Summary.from_dict(json.loads(json.dumps(data)))

    async def append_event(self, event: SummaryEvent):
        async with self._lock:
            self._events.setdefault(event.thread_id, []).append(SummaryEvent.from_dict(event.to_dict()))

    async def list_events(self, thread_id: str, limit: int = 50) -> List[SummaryEvent]:
        async with self._lock:
            events = self._events.get(thread_id, [])
            return [SummaryEvent.from_dict(e.to_dict()) for e in reversed(events)][:limit]

    async def clear(self, thread_id: str) -> bool:
        async with self._lock:
            self._events.pop(thread_id, None)
            return self._summaries.pop(thread_id, None) is not None


def create_summary_store() -> SummaryStore:
    """Postgres when connected, otherwise in-memory."""
    if db.pool:
        return PostgresSummaryStore()
    logger.warn("⚠️ DATABASE_URL not connected, summaries are kept in memory")
    return InMemorySummaryStore()
