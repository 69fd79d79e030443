"""
Edit plans - the cut list handed to the trim/concatenate executor.

A plan records which ranges of the source survive a transcript-driven edit.
The executor (an FFmpeg wrapper, outside this package) trims each keep-range
into its own segment file and concatenates them in order.

Usage:
    plan = plan_script_trim(transcript, script, source="take1.mp4")
    write_plan(plan, "take1_cut.plan.json")
    print(to_edl(plan, title="Take 1"))
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .alignment import (
    KEEP_MERGE_THRESHOLD,
    calculate_timestamps_to_remove,
    match_to_script,
)
from .intervals import drop_degenerate, invert_time_ranges, merge_ranges, total_length
from .models import TimeRange, Transcript

logger = logging.getLogger(__name__)

MODE_REMOVE = "remove"
MODE_KEEP = "keep"


@dataclass
class EditPlan:
    """Keep/remove ranges computed for one source recording."""
    source: str
    mode: str  # "remove" or "keep"
    source_duration: float
    keep_ranges: List[TimeRange] = field(default_factory=list)
    removed_ranges: List[TimeRange] = field(default_factory=list)
    unmatched_script: List[str] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.keep_ranges)

    @property
    def kept_duration(self) -> float:
        return total_length(self.keep_ranges)

    @property
    def removed_duration(self) -> float:
        return max(0.0, self.source_duration - self.kept_duration)

    @property
    def is_empty(self) -> bool:
        """True when nothing of the source would survive."""
        return not self.keep_ranges

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "mode": self.mode,
            "sourceDuration": self.source_duration,
            "keptDuration": round(self.kept_duration, 3),
            "keepRanges": [r.to_dict() for r in self.keep_ranges],
            "removedRanges": [r.to_dict() for r in self.removed_ranges],
            "unmatchedScript": list(self.unmatched_script),
        }


def plan_removal(transcript: Transcript, text_to_remove: str, source: str = "") -> EditPlan:
    """Plan cutting every occurrence of ``text_to_remove`` from the source.

    Padded remove-ranges are merged before inversion, so the keep-ranges
    never contain inverted gaps.
    """
    removed = merge_ranges(calculate_timestamps_to_remove(transcript, text_to_remove))
    if removed:
        keep = drop_degenerate(invert_time_ranges(removed, transcript.duration))
    else:
        keep = [TimeRange(0.0, transcript.duration)] if transcript.duration > 0 else []

    plan = EditPlan(
        source=source,
        mode=MODE_REMOVE,
        source_duration=transcript.duration,
        keep_ranges=keep,
        removed_ranges=removed,
    )
    logger.debug("Removal plan for %r: %d removed, %d kept", text_to_remove, len(removed), len(keep))
    return plan


def plan_script_trim(transcript: Transcript, script: str, source: str = "") -> EditPlan:
    """Plan keeping only the parts of the source that the script references."""
    matched = match_to_script(transcript, script)
    keep = merge_ranges((m.to_range() for m in matched.matches), threshold=KEEP_MERGE_THRESHOLD)
    unmatched = matched.unmatched_script
    removed = drop_degenerate(invert_time_ranges(keep, transcript.duration)) if keep else []

    plan = EditPlan(
        source=source,
        mode=MODE_KEEP,
        source_duration=transcript.duration,
        keep_ranges=keep,
        removed_ranges=removed,
        unmatched_script=unmatched,
    )
    logger.debug(
        "Script plan: %d keep-range(s) merged at %.1fs, %d unmatched line(s)",
        len(keep), KEEP_MERGE_THRESHOLD, len(unmatched),
    )
    return plan


def segment_output_paths(output: str, count: int) -> List[str]:
    """Per-segment file paths the executor writes before concatenating."""
    p = Path(output)
    return [str(p.parent / f"{p.stem}_segment_{i}{p.suffix}") for i in range(count)]


def plan_output_path(output: str) -> str:
    """Path of the JSON plan stored beside the requested media output."""
    p = Path(output)
    return str(p.parent / f"{p.stem}.plan.json")


def write_plan(plan: EditPlan, path: str) -> str:
    Path(path).write_text(json.dumps(plan.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


# ============================================================================
# EXPORT
# ============================================================================

def to_smpte(seconds: float, fps: float = 30.0) -> str:
    """Convert seconds to an HH:MM:SS:FF non-drop-frame timecode string.

    Frames are counted at the actual rate and labelled at the nominal
    integer rate, so 29.97 fps counts frames 0-29 per timecode second.
    """
    if fps <= 0:
        raise ValueError(f"Frame rate must be positive, got {fps}")
    nominal = max(1, int(round(fps)))
    total_frames = int(round(max(0.0, seconds) * fps))
    frames = total_frames % nominal
    total_secs = total_frames // nominal
    secs = total_secs % 60
    total_mins = total_secs // 60
    mins = total_mins % 60
    hours = total_mins // 60
    return f"{hours:02d}:{mins:02d}:{secs:02d}:{frames:02d}"


def to_edl(plan: EditPlan, title: str = "Script Cut", fps: float = 30.0) -> str:
    """Render keep-ranges as a CMX 3600-style EDL.

    Source in/out are the ranges on the original; record in/out place them
    back to back on the edited output.
    """
    clip_name = Path(plan.source).name if plan.source else "SOURCE"
    edl = f"TITLE: {title}\nFCM: NON-DROP FRAME\n\n"
    record = 0.0
    for i, r in enumerate(plan.keep_ranges, 1):
        record_out = record + r.duration
        edl += (
            f"{i:03d}  AX       V     C        "
            f"{to_smpte(r.start, fps)} {to_smpte(r.end, fps)} "
            f"{to_smpte(record, fps)} {to_smpte(record_out, fps)}\n"
        )
        edl += f"* FROM CLIP NAME: {clip_name}\n\n"
        record = record_out
    return edl


def to_csv(plan: EditPlan) -> str:
    """Render keep-ranges as CSV rows of seconds."""
    csv = "Segment,Start,End,Duration\n"
    for i, r in enumerate(plan.keep_ranges, 1):
        csv += f"{i},{r.start:.3f},{r.end:.3f},{r.duration:.3f}\n"
    return csv
