"""
scriptcut - script-driven edit planning for spoken-word video.

This package provides tools to:
- Locate spoken phrases in time-stamped transcripts
- Turn a script or a phrase into keep/remove time ranges
- Plan trim-and-concatenate cuts and export them as EDL/CSV
- Record editing operations on timelines with undo/redo
"""

from .alignment import (
    KEEP_MERGE_THRESHOLD,
    REMOVE_PADDING,
    calculate_ranges_after_removal,
    calculate_timestamps_to_keep,
    calculate_timestamps_to_remove,
    find_text_in_transcript,
    match_to_script,
    normalize_text,
)
from .edit_plan import EditPlan, plan_removal, plan_script_trim, to_csv, to_edl
from .exceptions import (
    DegenerateIntervalError,
    InvalidIndexError,
    ScriptCutError,
    TimelineNotFoundError,
    TimelineStorageError,
    TranscriptFormatError,
)
from .intervals import (
    drop_degenerate,
    invert_time_ranges,
    merge_ranges,
    pad_ranges,
    validate_ranges,
)
from .models import (
    # Timeline models
    Operation,
    OperationStatus,
    ScriptMatchResult,
    TimeRange,
    Timeline,
    TimelineStatistics,
    TimelineSummary,
    # Transcript models
    Transcript,
    TranscriptMatch,
    TranscriptSegment,
    TranscriptWord,
)
from .timeline import TimelineManager, TimelineStore
from .transcript_io import (
    TranscriptCache,
    format_as_srt,
    format_as_text,
    load_subtitles,
    load_transcript,
    parse_srt,
    parse_vtt,
    save_transcript,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",

    # Models
    "TranscriptWord",
    "TranscriptSegment",
    "Transcript",
    "TimeRange",
    "TranscriptMatch",
    "ScriptMatchResult",
    "OperationStatus",
    "Operation",
    "Timeline",
    "TimelineSummary",
    "TimelineStatistics",

    # Errors
    "ScriptCutError",
    "TimelineNotFoundError",
    "InvalidIndexError",
    "DegenerateIntervalError",
    "TranscriptFormatError",
    "TimelineStorageError",

    # Intervals
    "merge_ranges",
    "invert_time_ranges",
    "pad_ranges",
    "drop_degenerate",
    "validate_ranges",

    # Alignment
    "KEEP_MERGE_THRESHOLD",
    "REMOVE_PADDING",
    "normalize_text",
    "find_text_in_transcript",
    "match_to_script",
    "calculate_timestamps_to_keep",
    "calculate_timestamps_to_remove",
    "calculate_ranges_after_removal",

    # Edit plans
    "EditPlan",
    "plan_removal",
    "plan_script_trim",
    "to_edl",
    "to_csv",

    # Transcript I/O
    "load_transcript",
    "save_transcript",
    "load_subtitles",
    "parse_srt",
    "parse_vtt",
    "format_as_text",
    "format_as_srt",
    "TranscriptCache",

    # Timelines
    "TimelineStore",
    "TimelineManager",
]
