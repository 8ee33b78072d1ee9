"""
Summary Memory Service - Main Orchestrator

Processes one user/assistant exchange at a time:
1. Validate the message ids and load both texts
2. Load the thread summary and skip already-processed turns
3. Extract a candidate with the active template
4. Merge, compile the digest, save with compare-and-set (retry on conflict)
5. Log a created/updated event

Every failure is returned as a ProcessingResult; only cancellation propagates.
"""

import time
from typing import List, Optional

from redis.exceptions import RedisError

from threadmem.core.config import settings
from threadmem.core.database import db, get_cache
from threadmem.core.logger import Logger
from threadmem.services.summary_memory.collaborators import (
    ConversationStore,
    TemplateSource,
    EnablementPolicy,
    PostgresConversationStore,
    InMemoryConversationStore,
    PostgresTemplateSource,
    SettingsTemplateSource,
    FallbackTemplateSource,
    SettingsEnablementPolicy,
)
from threadmem.services.summary_memory.data_models import (
    Summary,
    SummaryEvent,
    EventType,
    FailureKind,
    ProcessingResult,
    utc_now,
)
from threadmem.services.summary_memory.digest import compile_digest
from threadmem.services.summary_memory.errors import (
    ExtractionError,
    InputValidationError,
    MissingTemplateError,
    StorageError,
    VersionConflict,
)
from threadmem.services.summary_memory.extractor import ExtractionClient
from threadmem.services.summary_memory.merger import SummaryMerger, diff_summaries, summary_merger
from threadmem.services.summary_memory.store import SummaryStore, create_summary_store

logger = Logger("SummaryMemoryService")

DIGEST_CACHE_PREFIX = "summary:digest:"


def digest_cache_key(thread_id: str) -> str:
    return f"{DIGEST_CACHE_PREFIX}{thread_id}"


# ═══════════════════════════════════════════════════════════════════════════════
# Main Service
# ═══════════════════════════════════════════════════════════════════════════════

class SummaryMemoryService:
    """
    Incremental summary memory for conversation threads.

    Collaborators are injected; same-thread races are settled by the
    store's version check with a bounded number of re-merges.
    """

    def __init__(
        self,
        store: SummaryStore,
        extraction_client: ExtractionClient,
        conversations: ConversationStore,
        templates: TemplateSource,
        policy: EnablementPolicy = None,
        merger: SummaryMerger = None,
        digest_max_chars: int = None,
        save_attempts: int = None,
        digest_cache_ttl: int = None,
    ):
        self.store = store
        self.extraction_client = extraction_client
        self.conversations = conversations
        self.templates = templates
        self.policy = policy or SettingsEnablementPolicy()
        self.merger = merger or summary_merger
        self.digest_max_chars = digest_max_chars or settings.SUMMARY_DIGEST_MAX_CHARS
        self.save_attempts = max(1, save_attempts or settings.SUMMARY_SAVE_ATTEMPTS)
        self.digest_cache_ttl = digest_cache_ttl if digest_cache_ttl is not None else settings.SUMMARY_DIGEST_CACHE_TTL

    # ─────────────────────────────────────────────────────────────────────────
    # Processing
    # ─────────────────────────────────────────────────────────────────────────

    async def process_turn(
        self,
        thread_id: str,
        user_message_id: str,
        assistant_message_id: str,
    ) -> ProcessingResult:
        start_time = time.time()
        try:
            result = await self._process_turn(thread_id, user_message_id, assistant_message_id)
        except StorageError as e:
            logger.error(f"Storage unavailable while processing {thread_id}: {e}")
            await self._log_error_event(
                thread_id, FailureKind.STORAGE, str(e), [user_message_id, assistant_message_id]
            )
            result = ProcessingResult.failed(FailureKind.STORAGE, str(e))
        except Exception as e:
            logger.error(f"❌ Unexpected error while processing {thread_id}", e)
            error = f"{type(e).__name__}: {e}"
            await self._log_error_event(
                thread_id, FailureKind.INTERNAL, error, [user_message_id, assistant_message_id]
            )
            result = ProcessingResult.failed(FailureKind.INTERNAL, error)

        result.processing_time_ms = (time.time() - start_time) * 1000
        return result

    async def _process_turn(self, thread_id: str, user_message_id: str, assistant_message_id: str) -> ProcessingResult:
        message_ids = [user_message_id, assistant_message_id]

        # 1. Input validation, no event is logged for rejected input
        try:
            user_text, assistant_text = await self._load_texts(thread_id, user_message_id, assistant_message_id)
        except InputValidationError as e:
            logger.warn(f"Rejected turn for {thread_id!r}: {e}")
            return ProcessingResult.failed(FailureKind.INVALID_INPUT, str(e))

        # 2. Load and check idempotency
        if await self.store.is_already_processed(thread_id, assistant_message_id):
            logger.debug(f"Turn {assistant_message_id} already processed for {thread_id}")
            return ProcessingResult(success=True, summary=await self.store.get(thread_id), skipped=True)
        current = await self.store.get_or_create(thread_id)

        # 3. Extract
        try:
            template = await self._resolve_template()
        except MissingTemplateError as e:
            logger.warn(f"⚠️ {e} for {thread_id}")
            await self._log_error_event(thread_id, FailureKind.MISSING_TEMPLATE, str(e), message_ids, current.version)
            return ProcessingResult.failed(FailureKind.MISSING_TEMPLATE, str(e), self._visible(current))

        try:
            candidate = await self.extraction_client.extract(user_text, assistant_text, template)
        except ExtractionError as e:
            logger.error(f"❌ Extraction failed for {thread_id}: {e}")
            await self._log_error_event(thread_id, FailureKind.EXTRACTION, str(e), message_ids, current.version)
            return ProcessingResult.failed(FailureKind.EXTRACTION, str(e), self._visible(current))

        # 4. Merge and save, re-merging onto the fresh state on conflict
        for attempt in range(1, self.save_attempts + 1):
            merged = self.merger.merge(current, candidate, assistant_message_id, now=utc_now())
            merged.last_processed_message_id = assistant_message_id
            merged.digest_text = compile_digest(merged, self.digest_max_chars)

            try:
                saved = await self.store.save(thread_id, merged, current.version)
            except VersionConflict as e:
                logger.warn(f"🔁 {e} (attempt {attempt}/{self.save_attempts})")
                current = await self.store.get_or_create(thread_id)
                if current.last_processed_message_id == assistant_message_id:
                    return ProcessingResult(success=True, summary=current, skipped=True, attempts=attempt)
                continue

            # 5. Event log
            changes = diff_summaries(current, saved)
            event_type = EventType.CREATED if saved.version == 1 else EventType.UPDATED
            await self._append_event(SummaryEvent(
                thread_id=thread_id,
                event_type=event_type,
                from_version=current.version,
                to_version=saved.version,
                details={"added": changes.added_facts, "changes": changes.to_dict()},
                message_ids=message_ids,
            ))
            await self._cache_digest(saved)

            logger.info(f"✅ Summary {thread_id} v{saved.version}: {changes.describe()}")
            return ProcessingResult(success=True, summary=saved, changes=changes, attempts=attempt)

        error = f"Gave up after {self.save_attempts} version conflicts"
        logger.error(f"❌ {error} on {thread_id}")
        await self._log_error_event(thread_id, FailureKind.PERSISTENCE, error, message_ids, current.version)
        result = ProcessingResult.failed(FailureKind.PERSISTENCE, error, self._visible(current))
        result.attempts = self.save_attempts
        return result

    async def _load_texts(self, thread_id: str, user_message_id: str, assistant_message_id: str):
        if not _is_id(thread_id):
            raise InputValidationError("thread_id is required")
        if not _is_id(user_message_id) or not _is_id(assistant_message_id):
            raise InputValidationError("user and assistant message ids are required")

        user_text = await self.conversations.get_message_text(user_message_id)
        assistant_text = await self.conversations.get_message_text(assistant_message_id)
        if not user_text or not user_text.strip():
            raise InputValidationError(f"User message {user_message_id} is missing or empty")
        if not assistant_text or not assistant_text.strip():
            raise InputValidationError(f"Assistant message {assistant_message_id} is missing or empty")
        return user_text, assistant_text

    async def _resolve_template(self):
        template = await self.templates.get_active_template()
        if template is None:
            raise MissingTemplateError("No active extraction template")
        return template

    @staticmethod
    def _visible(summary: Summary) -> Optional[Summary]:
        return summary if summary.is_persisted else None

    # ─────────────────────────────────────────────────────────────────────────
    # Events and cache
    # ─────────────────────────────────────────────────────────────────────────

    async def _append_event(self, event: SummaryEvent):
        try:
            await self.store.append_event(event)
        except Exception as e:
            logger.error(f"Failed to append {event.event_type.value} event for {event.thread_id}", e)

    async def _log_error_event(
        self,
        thread_id: str,
        kind: FailureKind,
        error: str,
        message_ids: List[str],
        version: Optional[int] = None,
    ):
        await self._append_event(SummaryEvent(
            thread_id=thread_id,
            event_type=EventType.ERROR,
            from_version=version,
            to_version=version,
            details={"kind": kind.value, "error": error},
            message_ids=[m for m in message_ids if m],
        ))

    async def _cache_digest(self, summary: Summary):
        try:
            await get_cache().set_if_newer(
                digest_cache_key(summary.thread_id), summary.version, summary.digest_text or "", self.digest_cache_ttl
            )
        except RedisError as e:
            logger.warn(f"Failed to cache digest for {summary.thread_id}: {e}")

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    async def get_digest(self, thread_id: str) -> Optional[str]:
        """Digest text for injection into the next turn."""
        cache = get_cache()
        try:
            cached = await cache.get_versioned(digest_cache_key(thread_id))
        except RedisError as e:
            logger.warn(f"Digest cache read failed for {thread_id}: {e}")
            cached = None
        if cached is not None:
            return cached[1]

        summary = await self.store.get(thread_id)
        if summary is None:
            return None
        await self._cache_digest(summary)
        return summary.digest_text

    async def get_summary(self, thread_id: str) -> Optional[Summary]:
        return await self.store.get(thread_id)

    async def list_events(self, thread_id: str, limit: int = 50) -> List[SummaryEvent]:
        return await self.store.list_events(thread_id, limit)

    async def is_enabled_for_thread(self, thread_id: str) -> bool:
        return await self.policy.is_enabled_for_thread(thread_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────────────

    async def reconcile(self, thread_id: str) -> ProcessingResult:
        """Recompile the digest from the structured fields and save it."""
        start_time = time.time()
        summary = await self.store.get(thread_id)
        if summary is None:
            return ProcessingResult.failed(FailureKind.INVALID_INPUT, f"No summary for thread {thread_id}")

        for attempt in range(1, self.save_attempts + 1):
            updated = summary.clone()
            updated.digest_text = compile_digest(updated, self.digest_max_chars)
            try:
                saved = await self.store.save(thread_id, updated, summary.version)
            except VersionConflict as e:
                logger.warn(f"🔁 {e} during reconcile (attempt {attempt}/{self.save_attempts})")
                summary = await self.store.get(thread_id)
                if summary is None:
                    return ProcessingResult.failed(FailureKind.INVALID_INPUT, f"Summary for {thread_id} was cleared")
                continue

            await self._append_event(SummaryEvent(
                thread_id=thread_id,
                event_type=EventType.RECONCILE,
                from_version=summary.version,
                to_version=saved.version,
                details={"digest_changed": summary.digest_text != saved.digest_text},
            ))
            await self._cache_digest(saved)
            logger.info(f"🔧 Reconciled {thread_id} v{saved.version}")
            return ProcessingResult(
                success=True, summary=saved, attempts=attempt,
                processing_time_ms=(time.time() - start_time) * 1000,
            )

        error = f"Gave up reconcile after {self.save_attempts} version conflicts"
        await self._log_error_event(thread_id, FailureKind.PERSISTENCE, error, [], summary.version)
        return ProcessingResult.failed(FailureKind.PERSISTENCE, error, summary)

    async def clear_thread(self, thread_id: str) -> bool:
        """Forget a thread's summary when its conversation is deleted."""
        removed = await self.store.clear(thread_id)
        try:
            await get_cache().delete(digest_cache_key(thread_id))
        except RedisError as e:
            logger.warn(f"Failed to drop cached digest for {thread_id}: {e}")
        if removed:
            logger.info(f"🗑️ Cleared summary for {thread_id}")
        return removed


def _is_id(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


# ═══════════════════════════════════════════════════════════════════════════════
# Singleton
# ═══════════════════════════════════════════════════════════════════════════════

_service: Optional[SummaryMemoryService] = None


def build_summary_memory_service() -> SummaryMemoryService:
    """Wire the service against Postgres when connected, in-memory otherwise."""
    if db.pool:
        conversations = PostgresConversationStore()
        templates = FallbackTemplateSource([PostgresTemplateSource(), SettingsTemplateSource()])
    else:
        conversations = InMemoryConversationStore()
        templates = SettingsTemplateSource()

    return SummaryMemoryService(
        store=create_summary_store(),
        extraction_client=ExtractionClient(),
        conversations=conversations,
        templates=templates,
    )


def get_summary_memory_service() -> SummaryMemoryService:
    global _service
    if _service is None:
        _service = build_summary_memory_service()
    return _service


def set_summary_memory_service(service: Optional[SummaryMemoryService]):
    global _service
    _service = service
