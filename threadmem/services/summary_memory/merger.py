"""
Summary Merger - Additive Updates to a Thread Summary

Merge rules:
- Facts: new subject is inserted, known subject gets the new value and source id
- Decisions / TODOs: appended unless the text already exists (case-insensitive)
- Goals / Constraints: ordered set union (case-sensitive)
- Glossary: upsert, newest definition wins
- Deltas: one entry per merge, bounded ring
"""

from typing import Iterable, List, Optional

from threadmem.core.config import settings
from threadmem.core.logger import Logger
from threadmem.services.summary_memory.data_models import (
    Summary,
    Candidate,
    FactEntry,
    FactValue,
    DecisionEntry,
    TodoEntry,
    DeltaEntry,
    SummaryChanges,
    utc_now,
)

logger = Logger("SummaryMerger")

DEFAULT_MAX_DELTAS = 20


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════

def _append_unique_ci(existing_texts: List[str], new_texts: Iterable[str]) -> List[str]:
    """Return the texts from new_texts not already present, ignoring case."""
    seen = {t.lower() for t in existing_texts}
    added = []
    for text in new_texts:
        key = text.lower()
        if key in seen:
            continue
        seen.add(key)
        added.append(text)
    return added


def _union(existing: List[str], new_items: Iterable[str]) -> List[str]:
    result = list(existing)
    seen = set(result)
    for item in new_items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# Merge
# ═══════════════════════════════════════════════════════════════════════════════

def merge(
    current: Summary,
    candidate: Candidate,
    message_id: str,
    now: Optional[str] = None,
    max_deltas: int = DEFAULT_MAX_DELTAS,
) -> Summary:
    """
    Merge a candidate into a copy of the current summary.

    Pure: the input summary is not modified. version, digest_text and
    last_processed_message_id are left for the caller to set.
    """
    now = now or utc_now()
    merged = current.clone()

    for subject, raw_value in (candidate.facts or {}).items():
        value = FactValue.from_raw(raw_value)
        entry = merged.facts.get(subject)
        if entry is None:
            merged.facts[subject] = FactEntry(value=value, source_message_ids=[message_id])
        else:
            entry.value = value
            if message_id not in entry.source_message_ids:
                entry.source_message_ids.append(message_id)

    for text in _append_unique_ci([d.text for d in merged.decisions], candidate.decisions or []):
        merged.decisions.append(DecisionEntry(text=text, source_message_id=message_id, recorded_at=now))

    for text in _append_unique_ci([t.text for t in merged.todos], candidate.todos or []):
        merged.todos.append(TodoEntry(text=text, source_message_id=message_id))

    merged.goals = _union(merged.goals, candidate.goals or [])
    merged.constraints = _union(merged.constraints, candidate.constraints or [])
    merged.glossary.update(candidate.glossary or {})

    changes = diff_summaries(current, merged)
    details = f"Processed message pair ending with {message_id}"
    if not changes.is_empty:
        details += f" ({changes.describe()})"
    merged.deltas.append(DeltaEntry(action="updated", details=details, timestamp=now))
    if max_deltas > 0 and len(merged.deltas) > max_deltas:
        merged.deltas = merged.deltas[-max_deltas:]

    return merged


def diff_summaries(before: Summary, after: Summary) -> SummaryChanges:
    """Compute what changed between two states of the same summary."""
    changes = SummaryChanges()

    for subject, entry in after.facts.items():
        previous = before.facts.get(subject)
        if previous is None:
            changes.added_facts.append(subject)
        elif len(entry.source_message_ids) > len(previous.source_message_ids):
            changes.updated_facts.append(subject)

    changes.new_decisions = max(0, len(after.decisions) - len(before.decisions))
    changes.new_todos = max(0, len(after.todos) - len(before.todos))
    changes.new_goals = max(0, len(after.goals) - len(before.goals))
    changes.new_constraints = max(0, len(after.constraints) - len(before.constraints))
    changes.glossary_terms = [
        term for term, definition in after.glossary.items()
        if before.glossary.get(term) != definition
    ]
    return changes


# ═══════════════════════════════════════════════════════════════════════════════
# Summary Merger
# ═══════════════════════════════════════════════════════════════════════════════

class SummaryMerger:
    """Merge engine bound to the configured delta ring size."""

    def __init__(self, max_deltas: int = None):
        self.max_deltas = max_deltas if max_deltas is not None else settings.SUMMARY_MAX_DELTAS

    def merge(self, current: Summary, candidate: Candidate, message_id: str, now: Optional[str] = None) -> Summary:
        merged = merge(current, candidate, message_id, now=now, max_deltas=self.max_deltas)
        logger.debug(f"Merged candidate into {current.thread_id} from {message_id}")
        return merged


summary_merger = SummaryMerger()
