"""
Digest Compiler

Renders a Summary as a short single-line text for injection into later
turns. Sections are joined with " | " and the result never exceeds the
configured character limit.
"""

from threadmem.services.summary_memory.data_models import Summary

DEFAULT_MAX_CHARS = 1500
SEPARATOR = " | "
ELLIPSIS = "..."


def compile_digest(summary: Summary, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    parts = []

    if summary.goals:
        parts.append(f"Goals: {', '.join(summary.goals[:3])}")

    if summary.facts:
        facts = [f"{subject}: {entry.value.render()}" for subject, entry in list(summary.facts.items())[:5]]
        parts.append(f"Facts: {'; '.join(facts)}")

    if summary.decisions:
        parts.append(f"Decisions: {'; '.join(d.text for d in summary.decisions[-3:])}")

    open_todos = summary.open_todos_count
    if open_todos:
        parts.append(f"TODOs: {open_todos} items")

    if summary.constraints:
        parts.append(f"Constraints: {', '.join(summary.constraints[:2])}")

    return truncate(SEPARATOR.join(parts), max_chars)


def truncate(text: str, max_chars: int) -> str:
    """Hard-truncate to max_chars, marking the cut with a trailing ellipsis."""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(ELLIPSIS):
        return text[:max_chars]
    return text[:max_chars - len(ELLIPSIS)] + ELLIPSIS
