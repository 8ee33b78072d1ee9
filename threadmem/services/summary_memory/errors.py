"""Exceptions raised inside the summary memory pipeline."""

from typing import Optional


class SummaryMemoryError(Exception):
    """Base class for summary memory failures."""


class InputValidationError(SummaryMemoryError):
    """Message ids are missing or their texts are empty."""


class MissingTemplateError(SummaryMemoryError):
    """No active extraction template is configured."""


class ExtractionError(SummaryMemoryError):
    """The extraction oracle failed or returned malformed output."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class VersionConflict(SummaryMemoryError):
    """The stored summary moved past the version the writer read."""

    def __init__(self, thread_id: str, expected_version: int, actual_version: Optional[int] = None):
        self.thread_id = thread_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on thread {thread_id}: expected {expected_version}, "
            f"found {actual_version if actual_version is not None else 'unknown'}"
        )


class StorageError(SummaryMemoryError):
    """The summary or conversation store is unavailable."""
