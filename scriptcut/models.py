"""
Data models for transcripts, time ranges, and edit timelines.

Transcripts and matches are produced and consumed by the alignment engine;
operations and timelines are the persisted records behind undo/redo.
Persisted types serialize to the camelCase JSON layout used on disk.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .exceptions import TranscriptFormatError

# Maximum length for status strings accepted from tool arguments
_MAX_STATUS_LENGTH = 32

# Fractional seconds longer than microseconds (e.g. nanosecond stamps)
_FRACTION_RE = re.compile(r'(\.\d{6})\d+')


# ============================================================================
# ENUMS
# ============================================================================

class OperationStatus(Enum):
    """Lifecycle state of a recorded editing operation."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_string(cls, value: str) -> 'OperationStatus':
        """Convert a string to OperationStatus, accepting names and values.

        Examples:
            OperationStatus.from_string("failed")     -> OperationStatus.FAILED
            OperationStatus.from_string("COMPLETED")  -> OperationStatus.COMPLETED
        """
        if not isinstance(value, str):
            raise TypeError(f"Expected str, got {type(value).__name__}")
        if '\x00' in value or len(value) > _MAX_STATUS_LENGTH:
            raise ValueError("Invalid operation status")
        lowered = value.strip().lower()
        try:
            return cls(lowered)
        except ValueError:
            raise ValueError(
                f"Invalid operation status: '{value}'. "
                f"Valid statuses: {', '.join(s.value for s in cls)}"
            )

    @property
    def glyph(self) -> str:
        """Single-character marker used in history listings."""
        if self == OperationStatus.FAILED:
            return "✗"
        if self == OperationStatus.PENDING:
            return "…"
        return "✓"


# ============================================================================
# SERIALIZATION HELPERS
# ============================================================================

def format_datetime(value: datetime) -> str:
    """Render a datetime as ISO-8601."""
    return value.isoformat()


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, tolerating 'Z' and sub-microsecond digits."""
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    text = _FRACTION_RE.sub(r'\1', text)
    return datetime.fromisoformat(text)


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    if key not in data:
        raise TranscriptFormatError(f"{kind} is missing required field '{key}'")
    return data[key]


def _seconds(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise TranscriptFormatError(f"Field '{key}' must be a number, got {value!r}")


# ============================================================================
# TRANSCRIPT MODELS
# ============================================================================

@dataclass(frozen=True)
class TranscriptWord:
    """A single spoken word with its start/end time in seconds."""
    word: str
    start: float
    end: float

    def to_dict(self) -> Dict[str, Any]:
        return {"word": self.word, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranscriptWord':
        return cls(
            word=str(_require(data, "word", "Word")),
            start=_seconds(_require(data, "start", "Word"), "start"),
            end=_seconds(_require(data, "end", "Word"), "end"),
        )


@dataclass
class TranscriptSegment:
    """A run of spoken text, optionally refined to word-level timestamps."""
    text: str
    start: float
    end: float
    words: List[TranscriptWord] = field(default_factory=list)

    @property
    def has_words(self) -> bool:
        return len(self.words) > 0

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"text": self.text, "start": self.start, "end": self.end}
        if self.words:
            data["words"] = [w.to_dict() for w in self.words]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranscriptSegment':
        words = data.get("words") or []
        return cls(
            text=str(_require(data, "text", "Segment")),
            start=_seconds(_require(data, "start", "Segment"), "start"),
            end=_seconds(_require(data, "end", "Segment"), "end"),
            words=[TranscriptWord.from_dict(w) for w in words],
        )


@dataclass
class Transcript:
    """Time-stamped decomposition of a recording's speech."""
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    duration: float = 0.0
    language: Optional[str] = None

    @classmethod
    def from_segments(
        cls,
        segments: List[TranscriptSegment],
        language: Optional[str] = None,
        text: Optional[str] = None,
    ) -> 'Transcript':
        """Build a transcript whose duration is the end of its last segment."""
        duration = segments[-1].end if segments else 0.0
        if text is None:
            text = " ".join(s.text.strip() for s in segments)
        return cls(text=text, segments=list(segments), duration=max(0.0, duration), language=language)

    @property
    def has_word_timestamps(self) -> bool:
        return any(s.has_words for s in self.segments)

    @property
    def word_count(self) -> int:
        return sum(len(s.words) for s in self.segments)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "duration": self.duration,
        }
        if self.language:
            data["language"] = self.language
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transcript':
        segments = [TranscriptSegment.from_dict(s) for s in data.get("segments") or []]
        if not segments:
            duration = 0.0
        elif data.get("duration") is not None:
            duration = _seconds(data["duration"], "duration")
        else:
            duration = segments[-1].end
        return cls(
            text=str(data.get("text", "")),
            segments=segments,
            duration=max(0.0, duration),
            language=data.get("language") or None,
        )


# ============================================================================
# ALIGNMENT MODELS
# ============================================================================

@dataclass
class TimeRange:
    """A [start, end] interval in seconds on one media file's timeline."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def is_degenerate(self) -> bool:
        """True when the range ends before it starts."""
        return self.start > self.end

    def to_dict(self) -> Dict[str, float]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimeRange':
        return cls(start=float(data["start"]), end=float(data["end"]))


@dataclass
class TranscriptMatch:
    """A located occurrence of search text inside a transcript."""
    text: str
    start: float
    end: float
    confidence: float  # 1.0 word-level, 0.8 segment-level

    @property
    def is_word_level(self) -> bool:
        return self.confidence >= 1.0

    def to_range(self) -> TimeRange:
        return TimeRange(self.start, self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
        }


@dataclass
class ScriptMatchResult:
    """Outcome of matching every script line against a transcript."""
    matches: List[TranscriptMatch] = field(default_factory=list)
    unmatched_script: List[str] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def all_lines_matched(self) -> bool:
        return not self.unmatched_script


# ============================================================================
# TIMELINE MODELS
# ============================================================================

OperationInput = Union[str, List[str]]


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Operation:
    """One recorded editing step on a timeline.

    Only ``status`` and ``error`` may change after creation.
    """
    operation: str
    description: str
    input: OperationInput
    output: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    duration: Optional[int] = None  # milliseconds
    status: OperationStatus = OperationStatus.COMPLETED
    error: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def inputs(self) -> List[str]:
        """Input file references as a list regardless of stored shape."""
        if isinstance(self.input, str):
            return [self.input]
        return list(self.input)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "timestamp": format_datetime(self.timestamp),
            "operation": self.operation,
            "description": self.description,
            "input": self.input if isinstance(self.input, str) else list(self.input),
            "output": self.output,
            "parameters": dict(self.parameters),
            "status": self.status.value,
        }
        if self.duration is not None:
            data["duration"] = int(self.duration)
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Operation':
        raw_input = data.get("input", "")
        if isinstance(raw_input, list):
            op_input: OperationInput = [str(i) for i in raw_input]
        else:
            op_input = "" if raw_input is None else str(raw_input)
        duration = data.get("duration")
        return cls(
            id=data["id"],
            timestamp=parse_datetime(data["timestamp"]),
            operation=data["operation"],
            description=data.get("description", ""),
            input=op_input,
            output=data.get("output", ""),
            parameters=dict(data.get("parameters") or {}),
            duration=int(duration) if duration is not None else None,
            status=OperationStatus.from_string(data.get("status", "completed")),
            error=data.get("error"),
        )


@dataclass
class Timeline:
    """A navigable history of editing operations with an undo/redo cursor.

    ``current_index`` is -1 at the base state (``base_file``) and otherwise
    indexes the operation whose output is current.
    """
    name: str
    id: str = field(default_factory=_new_id)
    created: datetime = field(default_factory=datetime.now)
    modified: datetime = field(default_factory=datetime.now)
    current_index: int = -1
    operations: List[Operation] = field(default_factory=list)
    base_file: Optional[str] = None

    @property
    def operation_count(self) -> int:
        return len(self.operations)

    @property
    def can_undo(self) -> bool:
        return self.current_index >= 0

    @property
    def can_redo(self) -> bool:
        return self.current_index < len(self.operations) - 1

    @property
    def at_base(self) -> bool:
        return self.current_index < 0

    @property
    def current_output(self) -> Optional[str]:
        """Output file at the cursor, or the base file before any operation."""
        if self.current_index >= 0:
            return self.operations[self.current_index].output
        return self.base_file

    @property
    def position(self) -> str:
        """Human-readable cursor position, e.g. '2/5'."""
        return f"{self.current_index + 1}/{len(self.operations)}"

    def find_operation(self, operation_id: str) -> Optional[Operation]:
        for op in self.operations:
            if op.id == operation_id:
                return op
        return None

    def to_summary(self) -> 'TimelineSummary':
        return TimelineSummary(
            id=self.id,
            name=self.name,
            created=self.created,
            modified=self.modified,
            operation_count=len(self.operations),
            current_index=self.current_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "created": format_datetime(self.created),
            "modified": format_datetime(self.modified),
            "currentIndex": self.current_index,
            "operations": [op.to_dict() for op in self.operations],
        }
        if self.base_file is not None:
            data["baseFile"] = self.base_file
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Timeline':
        operations = [Operation.from_dict(op) for op in data.get("operations") or []]
        current_index = int(data.get("currentIndex", -1))
        # Clamp records written by other tools into the valid cursor range
        current_index = max(-1, min(current_index, len(operations) - 1))
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            created=parse_datetime(data["created"]),
            modified=parse_datetime(data["modified"]),
            current_index=current_index,
            operations=operations,
            base_file=data.get("baseFile"),
        )


@dataclass
class TimelineSummary:
    """Listing entry for a stored timeline."""
    id: str
    name: str
    created: datetime
    modified: datetime
    operation_count: int
    current_index: int

    @property
    def position(self) -> str:
        return f"{self.current_index + 1}/{self.operation_count}"


@dataclass
class TimelineStatistics:
    """Aggregates over a timeline's operations."""
    total_operations: int = 0
    completed_operations: int = 0
    failed_operations: int = 0
    pending_operations: int = 0
    total_duration: int = 0  # milliseconds, over operations with a duration
    average_duration: float = 0.0  # milliseconds
    operations_by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalOperations": self.total_operations,
            "completedOperations": self.completed_operations,
            "failedOperations": self.failed_operations,
            "pendingOperations": self.pending_operations,
            "totalDuration": self.total_duration,
            "averageDuration": self.average_duration,
            "operationsByType": dict(self.operations_by_type),
        }


# ============================================================================
# NAVIGATION RESULTS
# ============================================================================

@dataclass
class UndoResult:
    timeline: Timeline
    previous_output: Optional[str]


@dataclass
class RedoResult:
    timeline: Timeline
    next_output: Optional[str]


@dataclass
class JumpResult:
    timeline: Timeline
    output: Optional[str]


@dataclass
class TimelineState:
    """Snapshot of a timeline's cursor and the output it points at."""
    timeline: Timeline
    current_output: Optional[str]
    can_undo: bool
    can_redo: bool
