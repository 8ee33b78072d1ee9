"""
Data Models for Incremental Thread Summaries

Defines the core types for:
- Tagged fact values (text / number / boolean / record)
- The versioned per-thread Summary and its entries
- Candidates produced by the extraction oracle
- Audit events and processing results
"""

from __future__ import annotations
import copy
import json
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Annotated, List, Dict, Optional, Any, Union
from enum import Enum

from pydantic import AllowInfNan, BaseModel, ConfigDict, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════

class FactKind(str, Enum):
    """Discriminator for fact values."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    RECORD = "record"


class TodoStatus(str, Enum):
    OPEN = "open"
    DONE = "done"


class EventType(str, Enum):
    """Kinds of audit events written to the event log."""
    CREATED = "created"
    UPDATED = "updated"
    ERROR = "error"
    RECONCILE = "reconcile"


class FailureKind(str, Enum):
    """Why a processing call did not produce a new summary."""
    INVALID_INPUT = "invalid_input"         # Rejected before any work, no event
    MISSING_TEMPLATE = "missing_template"   # No active extraction template
    EXTRACTION = "extraction"               # Oracle error or malformed candidate
    PERSISTENCE = "persistence"             # Version conflicts exhausted
    STORAGE = "storage"                     # Store unavailable (transient)
    INTERNAL = "internal"                   # Unexpected error in a collaborator


# ═══════════════════════════════════════════════════════════════════════════════
# Fact Values
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FactValue:
    """
    A fact value tagged with its kind.
    Records hold a flat or nested JSON object.
    """
    kind: FactKind
    value: Any

    @classmethod
    def from_raw(cls, raw: Any) -> FactValue:
        # bool is a subclass of int, check it first
        if isinstance(raw, bool):
            return cls(FactKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(FactKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(FactKind.TEXT, raw)
        if isinstance(raw, dict):
            return cls(FactKind.RECORD, copy.deepcopy(raw))
        raise TypeError(f"Unsupported fact value type: {type(raw).__name__}")

    def render(self) -> str:
        """Plain-text rendering used by the digest."""
        if self.kind == FactKind.BOOLEAN:
            return "yes" if self.value else "no"
        if self.kind == FactKind.NUMBER:
            if isinstance(self.value, float) and self.value.is_integer():
                return str(int(self.value))
            return str(self.value)
        if self.kind == FactKind.RECORD:
            return ", ".join(f"{k}={_render_scalar(v)}" for k, v in self.value.items())
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict) -> FactValue:
        return cls(FactKind(data["kind"]), data["value"])


def _render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


# ═══════════════════════════════════════════════════════════════════════════════
# Summary Entries
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class FactEntry:
    value: FactValue
    source_message_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value.to_dict(),
            "source_message_ids": list(self.source_message_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> FactEntry:
        return cls(
            value=FactValue.from_dict(data["value"]),
            source_message_ids=list(data.get("source_message_ids", [])),
        )


@dataclass
class DecisionEntry:
    text: str
    source_message_id: str
    recorded_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> DecisionEntry:
        return cls(**data)


@dataclass
class TodoEntry:
    text: str
    source_message_id: str
    status: TodoStatus = TodoStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['status'] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> TodoEntry:
        data = data.copy()
        data['status'] = TodoStatus(data.get('status', 'open'))
        return cls(**data)


@dataclass
class DeltaEntry:
    """One line of the per-thread change log."""
    action: str
    details: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> DeltaEntry:
        return cls(**data)


# ═══════════════════════════════════════════════════════════════════════════════
# Summary
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Summary:
    """
    Durable structured memory for one conversation thread.

    version 0 means nothing has been persisted for the thread yet;
    the first successful save produces version 1.
    """
    thread_id: str
    version: int = 0
    digest_text: Optional[str] = None

    facts: Dict[str, FactEntry] = field(default_factory=dict)
    decisions: List[DecisionEntry] = field(default_factory=list)
    todos: List[TodoEntry] = field(default_factory=list)
    goals: List[str] = field(default_factory=list)
    constraints: List[str] = field(default_factory=list)
    glossary: Dict[str, str] = field(default_factory=dict)

    deltas: List[DeltaEntry] = field(default_factory=list)
    last_processed_message_id: Optional[str] = None

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "version": self.version,
            "digest_text": self.digest_text,
            "facts": {k: v.to_dict() for k, v in self.facts.items()},
            "decisions": [d.to_dict() for d in self.decisions],
            "todos": [t.to_dict() for t in self.todos],
            "goals": list(self.goals),
            "constraints": list(self.constraints),
            "glossary": dict(self.glossary),
            "deltas": [d.to_dict() for d in self.deltas],
            "last_processed_message_id": self.last_processed_message_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_dict(cls, data: Dict) -> Summary:
        return cls(
            thread_id=data["thread_id"],
            version=data.get("version", 0),
            digest_text=data.get("digest_text"),
            facts={k: FactEntry.from_dict(v) for k, v in (data.get("facts") or {}).items()},
            decisions=[DecisionEntry.from_dict(d) for d in data.get("decisions") or []],
            todos=[TodoEntry.from_dict(t) for t in data.get("todos") or []],
            goals=list(data.get("goals") or []),
            constraints=list(data.get("constraints") or []),
            glossary=dict(data.get("glossary") or {}),
            deltas=[DeltaEntry.from_dict(d) for d in data.get("deltas") or []],
            last_processed_message_id=data.get("last_processed_message_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    @classmethod
    def create_empty(cls, thread_id: str) -> Summary:
        """Create a new, not yet persisted summary for a thread."""
        return cls(thread_id=thread_id)

    def clone(self) -> Summary:
        return Summary.from_dict(copy.deepcopy(self.to_dict()))

    @property
    def is_persisted(self) -> bool:
        return self.version > 0

    @property
    def open_todos_count(self) -> int:
        return sum(1 for t in self.todos if t.status == TodoStatus.OPEN)


# ═══════════════════════════════════════════════════════════════════════════════
# Candidate (oracle output)
# ═══════════════════════════════════════════════════════════════════════════════

FiniteStrictFloat = Annotated[StrictFloat, AllowInfNan(False)]
RawFactValue = Union[StrictBool, StrictInt, FiniteStrictFloat, StrictStr, Dict[str, Any]]


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(_has_non_finite(v) for v in value.values())
    if isinstance(value, list):
        return any(_has_non_finite(v) for v in value)
    return False


class Candidate(BaseModel):
    """
    Unmerged structured output for a single turn.
    Every section is optional; types are checked strictly, never coerced.
    """
    model_config = ConfigDict(extra="ignore")

    facts: Optional[Dict[StrictStr, RawFactValue]] = None
    decisions: Optional[List[StrictStr]] = None
    todos: Optional[List[StrictStr]] = None
    goals: Optional[List[StrictStr]] = None
    constraints: Optional[List[StrictStr]] = None
    glossary: Optional[Dict[StrictStr, StrictStr]] = None

    @field_validator("decisions", "todos", "goals", "constraints")
    @classmethod
    def drop_blank_items(cls, v):
        if v is None:
            return v
        return [item.strip() for item in v if item.strip()]

    @field_validator("facts", "glossary")
    @classmethod
    def require_named_keys(cls, v):
        if v is None:
            return v
        cleaned = {}
        for key, value in v.items():
            if not key.strip():
                raise ValueError("keys must be non-empty")
            cleaned[key.strip()] = value
        return cleaned

    @field_validator("facts")
    @classmethod
    def reject_non_finite_records(cls, v):
        if v is None:
            return v
        for key, value in v.items():
            if isinstance(value, dict) and _has_non_finite(value):
                raise ValueError(f"fact {key!r} contains a non-finite number")
        return v

    @property
    def is_empty(self) -> bool:
        return not any([self.facts, self.decisions, self.todos, self.goals, self.constraints, self.glossary])


# ═══════════════════════════════════════════════════════════════════════════════
# Templates, Events, Results
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ExtractionTemplate:
    """Instruction template and model settings for the extraction oracle."""
    instructions: str
    model: Optional[str] = None
    temperature: float = 0.2
    max_output_tokens: int = 1000
    provider: Optional[str] = None
    name: str = "default"


@dataclass
class SummaryEvent:
    """Append-only audit record for one processing attempt."""
    thread_id: str
    event_type: EventType
    from_version: Optional[int] = None
    to_version: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    message_ids: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['event_type'] = self.event_type.value
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> SummaryEvent:
        data = data.copy()
        data['event_type'] = EventType(data['event_type'])
        return cls(**data)


@dataclass
class SummaryChanges:
    """What one merge added or updated."""
    added_facts: List[str] = field(default_factory=list)
    updated_facts: List[str] = field(default_factory=list)
    new_decisions: int = 0
    new_todos: int = 0
    new_goals: int = 0
    new_constraints: int = 0
    glossary_terms: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added_facts or self.updated_facts or self.new_decisions or self.new_todos
                    or self.new_goals or self.new_constraints or self.glossary_terms)

    def describe(self) -> str:
        parts = []
        if self.added_facts:
            parts.append(f"+{len(self.added_facts)} facts")
        if self.updated_facts:
            parts.append(f"~{len(self.updated_facts)} facts")
        if self.new_decisions:
            parts.append(f"+{self.new_decisions} decisions")
        if self.new_todos:
            parts.append(f"+{self.new_todos} todos")
        if self.new_goals:
            parts.append(f"+{self.new_goals} goals")
        if self.new_constraints:
            parts.append(f"+{self.new_constraints} constraints")
        if self.glossary_terms:
            parts.append(f"{len(self.glossary_terms)} glossary terms")
        return ", ".join(parts) if parts else "no changes"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProcessingResult:
    """
    Outcome of one process_turn call.
    Failures are values, not exceptions.
    """
    success: bool
    summary: Optional[Summary] = None
    skipped: bool = False               # Duplicate turn, nothing done
    changes: Optional[SummaryChanges] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    attempts: int = 0
    processing_time_ms: float = 0.0

    @classmethod
    def failed(cls, failure: FailureKind, error: str, summary: Optional[Summary] = None) -> ProcessingResult:
        return cls(success=False, summary=summary, failure=failure, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "summary": self.summary.to_dict() if self.summary else None,
            "changes": self.changes.to_dict() if self.changes else None,
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
            "attempts": self.attempts,
            "processing_time_ms": self.processing_time_ms,
        }
