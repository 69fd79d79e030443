"""
Transcript alignment - locate spoken text and turn matches into cut ranges.

Every function here is a pure function of its arguments: no caching and no
shared state, so callers may use them concurrently without locking.

Usage:
    matches = find_text_in_transcript(transcript, "quick brown")
    keep = calculate_timestamps_to_keep(transcript, script)
    remove = calculate_timestamps_to_remove(transcript, "um")
    keep_after_cut = calculate_ranges_after_removal(transcript, "um")
"""

import logging
from typing import List, Sequence

from .intervals import drop_degenerate, invert_time_ranges, merge_ranges
from .models import (
    ScriptMatchResult,
    TimeRange,
    Transcript,
    TranscriptMatch,
    TranscriptWord,
)

logger = logging.getLogger(__name__)

# Matches closer than this (seconds) are joined into one keep-range
KEEP_MERGE_THRESHOLD = 0.5

# Padding (seconds) on each side of a removed match so word edges are not clipped
REMOVE_PADDING = 0.1

WORD_LEVEL_CONFIDENCE = 1.0
SEGMENT_LEVEL_CONFIDENCE = 0.8

__all__ = [
    "KEEP_MERGE_THRESHOLD",
    "REMOVE_PADDING",
    "normalize_text",
    "find_text_in_transcript",
    "match_to_script",
    "calculate_timestamps_to_keep",
    "calculate_timestamps_to_remove",
    "calculate_ranges_after_removal",
    "invert_time_ranges",
]


def normalize_text(text: str) -> str:
    """Lowercase and trim text for comparison."""
    return text.strip().lower()


def find_text_in_transcript(transcript: Transcript, search_text: str) -> List[TranscriptMatch]:
    """Find every occurrence of ``search_text`` in the transcript.

    Segments with word timestamps yield one match per word window that
    contains the search text (overlapping windows are all reported). Segments
    without words yield a single segment-wide match at lower confidence.

    Results follow transcript order, not time order.
    """
    needle = normalize_text(search_text)
    if not needle:
        return []

    matches: List[TranscriptMatch] = []
    for segment in transcript.segments:
        if needle not in normalize_text(segment.text):
            continue
        if segment.has_words:
            matches.extend(_word_level_matches(segment.words, needle))
        else:
            matches.append(TranscriptMatch(
                text=segment.text,
                start=segment.start,
                end=segment.end,
                confidence=SEGMENT_LEVEL_CONFIDENCE,
            ))

    logger.debug("Found %d match(es) for %r", len(matches), search_text)
    return matches


def _word_level_matches(words: Sequence[TranscriptWord], needle: str) -> List[TranscriptMatch]:
    """Slide a window the size of the search phrase across the segment's words."""
    window = len(needle.split())
    normalized = [normalize_text(w.word) for w in words]
    matches = []

    for i in range(len(words) - window + 1):
        candidate = " ".join(normalized[i:i + window])
        if needle in candidate:
            span = words[i:i + window]
            matches.append(TranscriptMatch(
                text=" ".join(w.word.strip() for w in span),
                start=span[0].start,
                end=span[-1].end,
                confidence=WORD_LEVEL_CONFIDENCE,
            ))

    return matches


def match_to_script(transcript: Transcript, script: str) -> ScriptMatchResult:
    """Match each non-blank script line against the transcript.

    A line either resolves through :func:`find_text_in_transcript` or is
    reported unmatched; there is no fuzzy or partial matching.
    """
    result = ScriptMatchResult()
    for raw_line in script.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        line_matches = find_text_in_transcript(transcript, line)
        if line_matches:
            result.matches.extend(line_matches)
        else:
            result.unmatched_script.append(line)

    if result.unmatched_script:
        logger.debug("%d script line(s) unmatched", len(result.unmatched_script))
    return result


def calculate_timestamps_to_keep(transcript: Transcript, script: str) -> List[TimeRange]:
    """Coalesced ranges covering all audio referenced by the script."""
    matches = match_to_script(transcript, script).matches
    return merge_ranges((m.to_range() for m in matches), threshold=KEEP_MERGE_THRESHOLD)


def calculate_timestamps_to_remove(transcript: Transcript, text_to_remove: str) -> List[TimeRange]:
    """Padded ranges for every occurrence of ``text_to_remove``.

    The ranges are not merged; overlapping occurrences stay separate.
    """
    return [
        TimeRange(max(0.0, m.start - REMOVE_PADDING), m.end + REMOVE_PADDING)
        for m in find_text_in_transcript(transcript, text_to_remove)
    ]


def calculate_ranges_after_removal(transcript: Transcript, text_to_remove: str) -> List[TimeRange]:
    """Keep-ranges left after cutting every occurrence of ``text_to_remove``.

    Remove-ranges are merged before inversion so overlapping occurrences
    cannot produce inverted gaps; zero-length leftovers are dropped.
    """
    removed = merge_ranges(calculate_timestamps_to_remove(transcript, text_to_remove))
    return drop_degenerate(invert_time_ranges(removed, transcript.duration))
