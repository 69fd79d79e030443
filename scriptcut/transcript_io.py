"""
Transcript I/O - JSON records, subtitle import, and text/SRT rendering.

Transcripts arrive from an external transcription provider as JSON in the
Whisper verbose-json shape, or as SRT/WebVTT subtitle files. Subtitles carry
no word timing, so alignment against them is segment-level only.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import TranscriptFormatError
from .models import Transcript, TranscriptSegment, TranscriptWord

logger = logging.getLogger(__name__)

_CUE_BLOCK_SPLIT = re.compile(r'\n\s*\n')
_VTT_TAG = re.compile(r'<[^>]+>')


# ============================================================================
# JSON RECORDS
# ============================================================================

def transcript_from_dict(data: Dict[str, Any]) -> Transcript:
    """Build a Transcript from a JSON record.

    Whisper returns word timestamps at the top level rather than per
    segment; when segments carry no words of their own, each top-level word
    is attached to every segment whose time span contains it.
    """
    if not isinstance(data, dict):
        raise TranscriptFormatError("Transcript record must be a JSON object")

    transcript = Transcript.from_dict(data)

    top_level_words = data.get("words") or []
    if top_level_words and not transcript.has_word_timestamps:
        words = [TranscriptWord.from_dict(w) for w in top_level_words]
        for segment in transcript.segments:
            segment.words = [
                w for w in words
                if w.start >= segment.start and w.end <= segment.end
            ]

    return transcript


def load_transcript(path: str, max_size: Optional[int] = None) -> Transcript:
    """Load a transcript JSON file.

    Raises:
        FileNotFoundError: When the file does not exist.
        TranscriptFormatError: When the file is oversized, not JSON, or not
            a transcript record.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Transcript not found: {path}")
    if max_size is not None and p.stat().st_size > max_size:
        raise TranscriptFormatError(
            f"Transcript too large ({p.stat().st_size} bytes). Maximum: {max_size} bytes"
        )

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise TranscriptFormatError(f"Invalid transcript JSON in {path}: {e.msg}") from e

    transcript = transcript_from_dict(data)
    logger.debug("Loaded transcript %s (%d segments)", path, len(transcript.segments))
    return transcript


def save_transcript(transcript: Transcript, path: str) -> None:
    """Write a transcript as indented JSON."""
    Path(path).write_text(
        json.dumps(transcript.to_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


# ============================================================================
# SUBTITLE IMPORT
# ============================================================================

def _parse_cue_time(stamp: str) -> float:
    """Parse 'HH:MM:SS,mmm', 'HH:MM:SS.mmm' or 'MM:SS.mmm' into seconds."""
    parts = stamp.strip().replace(',', '.').split(':')
    try:
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
        if len(parts) == 2:
            return int(parts[0]) * 60 + float(parts[1])
    except ValueError:
        pass
    raise TranscriptFormatError(f"Invalid cue timestamp: {stamp!r}")


def _parse_cue_line(line: str) -> tuple:
    start_str, end_str = line.split('-->', 1)
    # VTT cue settings ("align:start position:10%") follow the end stamp
    end_str = end_str.strip().split()[0] if end_str.strip() else end_str
    return _parse_cue_time(start_str), _parse_cue_time(end_str)


def _cues_to_transcript(blocks: List[str], strip_tags: bool, language: Optional[str]) -> Transcript:
    segments = []
    for block in blocks:
        lines = block.strip().split('\n')
        ts_line = None
        text_lines = []
        for line in lines:
            if '-->' in line:
                ts_line = line
            elif ts_line is not None:
                clean = _VTT_TAG.sub('', line) if strip_tags else line
                if clean.strip():
                    text_lines.append(clean.strip())
        if not ts_line or not text_lines:
            continue
        start, end = _parse_cue_line(ts_line)
        segments.append(TranscriptSegment(text=' '.join(text_lines), start=start, end=end))

    segments.sort(key=lambda s: s.start)
    return Transcript.from_segments(segments, language=language)


def parse_srt(text: str, language: Optional[str] = None) -> Transcript:
    """Parse SRT subtitles into a segment-level transcript."""
    blocks = _CUE_BLOCK_SPLIT.split(text.replace('\r\n', '\n').strip())
    return _cues_to_transcript(blocks, strip_tags=False, language=language)


def parse_vtt(text: str, language: Optional[str] = None) -> Transcript:
    """Parse WebVTT subtitles into a segment-level transcript."""
    text = text.replace('\r\n', '\n')
    # Strip WEBVTT header
    text = re.sub(r'^WEBVTT.*?\n', '', text, flags=re.MULTILINE)
    # Remove NOTE blocks
    text = re.sub(r'NOTE\n.*?\n\n', '', text, flags=re.DOTALL)
    blocks = _CUE_BLOCK_SPLIT.split(text.strip())
    return _cues_to_transcript(blocks, strip_tags=True, language=language)


def load_subtitles(path: str, language: Optional[str] = None) -> Transcript:
    """Load an .srt or .vtt file as a transcript, choosing the parser by extension."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Subtitle file not found: {path}")
    text = p.read_text(encoding="utf-8-sig")
    suffix = p.suffix.lower()
    if suffix == ".srt":
        return parse_srt(text, language=language)
    if suffix == ".vtt":
        return parse_vtt(text, language=language)
    raise TranscriptFormatError(f"Unsupported subtitle format '{suffix}'. Allowed: .srt, .vtt")


# ============================================================================
# RENDERING
# ============================================================================

def format_time(seconds: float) -> str:
    """Format seconds as M:SS.mmm."""
    total_ms = int(round(seconds * 1000))
    mins, rem = divmod(total_ms, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{mins}:{secs:02d}.{ms:03d}"


def format_srt_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm."""
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    mins, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{mins:02d}:{secs:02d},{ms:03d}"


def format_as_text(transcript: Transcript) -> str:
    """One '[start - end] text' line per segment."""
    return "\n".join(
        f"[{format_time(s.start)} - {format_time(s.end)}] {s.text.strip()}"
        for s in transcript.segments
    )


def format_as_srt(transcript: Transcript) -> str:
    """Render segments as numbered SRT cues."""
    blocks = []
    for i, s in enumerate(transcript.segments, 1):
        blocks.append(
            f"{i}\n{format_srt_time(s.start)} --> {format_srt_time(s.end)}\n{s.text.strip()}\n"
        )
    return "\n".join(blocks)


# ============================================================================
# CACHE
# ============================================================================

@dataclass
class _CacheEntry:
    mtime: float
    transcript: Transcript


class TranscriptCache:
    """Caller-owned cache of loaded transcripts keyed by resolved path.

    An entry is reloaded when the file's modification time changes.

    Usage:
        cache = TranscriptCache(max_size=50 * 1024 * 1024)
        transcript = cache.get("talk.json")
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, path: str) -> Transcript:
        key = str(Path(path).resolve())
        mtime = os.stat(key).st_mtime
        entry = self._entries.get(key)
        if entry is not None and entry.mtime == mtime:
            return entry.transcript
        transcript = load_transcript(key, max_size=self.max_size)
        self._entries[key] = _CacheEntry(mtime=mtime, transcript=transcript)
        return transcript

    def invalidate(self, path: str) -> None:
        self._entries.pop(str(Path(path).resolve()), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, path: str) -> bool:
        return str(Path(path).resolve()) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
