"""
Summary Memory Service - Incremental Thread Summaries

Keeps a compact, versioned, structured memory of a long-running
conversation by folding in one user/assistant exchange at a time.

Architecture:
    Message Pair → Extraction → Merge → Digest → CAS Save → Event Log
"""

from threadmem.services.summary_memory.data_models import (
    FactKind,
    FactValue,
    FactEntry,
    DecisionEntry,
    TodoEntry,
    TodoStatus,
    DeltaEntry,
    Summary,
    Candidate,
    ExtractionTemplate,
    SummaryEvent,
    EventType,
    SummaryChanges,
    FailureKind,
    ProcessingResult,
)
from threadmem.services.summary_memory.errors import (
    SummaryMemoryError,
    InputValidationError,
    MissingTemplateError,
    ExtractionError,
    VersionConflict,
    StorageError,
)
from threadmem.services.summary_memory.merger import merge, diff_summaries, SummaryMerger
from threadmem.services.summary_memory.digest import compile_digest
from threadmem.services.summary_memory.service import (
    SummaryMemoryService,
    get_summary_memory_service,
    set_summary_memory_service,
)
from threadmem.services.summary_memory.worker import SummaryWorker

__all__ = [
    # Data models
    "FactKind",
    "FactValue",
    "FactEntry",
    "DecisionEntry",
    "TodoEntry",
    "TodoStatus",
    "DeltaEntry",
    "Summary",
    "Candidate",
    "ExtractionTemplate",
    "SummaryEvent",
    "EventType",
    "SummaryChanges",
    "FailureKind",
    "ProcessingResult",
    # Errors
    "SummaryMemoryError",
    "InputValidationError",
    "MissingTemplateError",
    "ExtractionError",
    "VersionConflict",
    "StorageError",
    # Engine
    "merge",
    "diff_summaries",
    "SummaryMerger",
    "compile_digest",
    "SummaryMemoryService",
    "get_summary_memory_service",
    "set_summary_memory_service",
    "SummaryWorker",
]
