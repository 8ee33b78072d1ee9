"""
Collaborator Adapters

Read-only access to the conversation store, the source of the active
extraction template, and the per-thread enablement policy.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import asyncpg

from threadmem.core.config import settings
from threadmem.core.database import db
from threadmem.core.logger import Logger
from threadmem.services.summary_memory.data_models import ExtractionTemplate
from threadmem.services.summary_memory.errors import StorageError
from threadmem.services.summary_memory.prompts import DEFAULT_EXTRACTION_PROMPT
from threadmem.services.summary_memory.store import STORAGE_ERRORS

logger = Logger("Collaborators")

TABLE_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$')


# ═══════════════════════════════════════════════════════════════════════════════
# Conversation Store
# ═══════════════════════════════════════════════════════════════════════════════

class ConversationStore(ABC):

    @abstractmethod
    async def get_message_text(self, message_id: str) -> Optional[str]:
        """Text of a message, or None when it does not exist."""


class PostgresConversationStore(ConversationStore):
    """Reads messages(id, role, content); never writes."""

    def __init__(self, pool: asyncpg.Pool = None, table: str = None):
        table = table or settings.MESSAGES_TABLE
        if not TABLE_NAME_PATTERN.match(table):
            raise ValueError(f"Invalid messages table name: {table}")
        self._pool = pool
        self.table = table

    async def get_message_text(self, message_id: str) -> Optional[str]:
        pool = self._pool or db.pool
        if not pool:
            raise StorageError("PostgreSQL is not connected")
        try:
            return await pool.fetchval(
                f"SELECT content FROM {self.table} WHERE id::text = $1", message_id
            )
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to load message {message_id}: {e}") from e


class InMemoryConversationStore(ConversationStore):

    def __init__(self, messages: Dict[str, str] = None):
        self.messages: Dict[str, str] = dict(messages or {})

    def add(self, message_id: str, content: str):
        self.messages[message_id] = content

    async def get_message_text(self, message_id: str) -> Optional[str]:
        return self.messages.get(message_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Template Sources
# ═══════════════════════════════════════════════════════════════════════════════

class TemplateSource(ABC):

    @abstractmethod
    async def get_active_template(self) -> Optional[ExtractionTemplate]:
        ...


class SettingsTemplateSource(TemplateSource):
    """Template from SUMMARY_* settings; blank instructions mean none is active."""

    def __init__(self, instructions: Optional[str] = None):
        if instructions is None:
            instructions = settings.SUMMARY_PROMPT if settings.SUMMARY_PROMPT is not None else DEFAULT_EXTRACTION_PROMPT
        self.instructions = instructions

    async def get_active_template(self) -> Optional[ExtractionTemplate]:
        if not self.instructions.strip():
            return None
        return ExtractionTemplate(
            instructions=self.instructions,
            model=settings.SUMMARY_MODEL,
            temperature=settings.SUMMARY_TEMPERATURE,
            max_output_tokens=settings.SUMMARY_MAX_TOKENS,
            provider=settings.AI_PROVIDER,
            name="settings",
        )


class PostgresTemplateSource(TemplateSource):
    """Newest active row of summary_prompts."""

    def __init__(self, pool: asyncpg.Pool = None):
        self._pool = pool

    async def get_active_template(self) -> Optional[ExtractionTemplate]:
        pool = self._pool or db.pool
        if not pool:
            raise StorageError("PostgreSQL is not connected")
        try:
            row = await pool.fetchrow("""
                SELECT name, prompt, model, provider, temperature, max_tokens
                FROM summary_prompts
                WHERE is_active = TRUE
                ORDER BY id DESC
                LIMIT 1
            """)
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to load active prompt: {e}") from e

        if not row or not (row["prompt"] or "").strip():
            return None
        return ExtractionTemplate(
            instructions=row["prompt"],
            model=row["model"],
            temperature=row["temperature"] if row["temperature"] is not None else settings.SUMMARY_TEMPERATURE,
            max_output_tokens=row["max_tokens"] or settings.SUMMARY_MAX_TOKENS,
            provider=row["provider"],
            name=row["name"],
        )


class FallbackTemplateSource(TemplateSource):
    """First source that yields a template wins."""

    def __init__(self, sources: List[TemplateSource]):
        self.sources = sources

    async def get_active_template(self) -> Optional[ExtractionTemplate]:
        for source in self.sources:
            template = await source.get_active_template()
            if template:
                return template
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# Enablement Policy
# ═══════════════════════════════════════════════════════════════════════════════

class EnablementPolicy(ABC):

    @abstractmethod
    async def is_enabled_for_thread(self, thread_id: str) -> bool:
        ...


class SettingsEnablementPolicy(EnablementPolicy):
    """Global SUMMARY_ENABLED switch plus a list of opted-out threads."""

    def __init__(self, enabled: bool = None, disabled_threads: List[str] = None):
        self.enabled = settings.SUMMARY_ENABLED if enabled is None else enabled
        self.disabled_threads = set(disabled_threads if disabled_threads is not None else settings.disabled_threads_list)

    async def is_enabled_for_thread(self, thread_id: str) -> bool:
        return self.enabled and thread_id not in self.disabled_threads
