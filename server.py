#!/usr/bin/env python3
"""
scriptcut MCP Server - Transcript-driven edit planning with undo/redo timelines.

Finds spoken text in transcripts, turns scripts and phrases into cut lists
for a trim/concatenate executor, and records editing operations on
timelines that support undo, redo, and jumps.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Sequence

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    TextContent,
    Tool,
)

from scriptcut.alignment import find_text_in_transcript, match_to_script
from scriptcut.edit_plan import (
    EditPlan,
    plan_output_path,
    plan_removal,
    plan_script_trim,
    segment_output_paths,
    to_csv,
    to_edl,
    write_plan,
)
from scriptcut.exceptions import ScriptCutError, TimelineNotFoundError, TimelineStorageError
from scriptcut.intervals import invert_time_ranges, merge_ranges
from scriptcut.logging_setup import setup_logging
from scriptcut.models import OperationStatus, TimeRange, Timeline, Transcript
from scriptcut.timeline import TimelineManager, TimelineStore
from scriptcut.transcript_io import (
    format_as_srt,
    format_as_text,
    load_subtitles,
    load_transcript,
    save_transcript,
)

logger = logging.getLogger("scriptcut.server")

server = Server("scriptcut-mcp-server")
WORKDIR = os.environ.get("SCRIPTCUT_WORKDIR", os.getcwd())
LOG_LEVEL = os.environ.get("SCRIPTCUT_LOG_LEVEL", "INFO").upper()

# Maximum transcript/subtitle size accepted for parsing (50 MB).
MAX_TRANSCRIPT_SIZE = int(os.environ.get("SCRIPTCUT_MAX_TRANSCRIPT_SIZE", 50 * 1024 * 1024))

TRANSCRIPT_EXTENSIONS = ('.json',)
SUBTITLE_EXTENSIONS = ('.srt', '.vtt')

TIMELINES = TimelineManager(TimelineStore(WORKDIR))


# ============================================================================
# SECURITY UTILITIES
# ============================================================================

def _validate_filepath(filepath: str, allowed_extensions: tuple[str, ...] | None = None) -> str:
    """Validate a user-provided file path against traversal and size attacks.

    Resolves symlinks, blocks null bytes, enforces extension whitelist, and
    checks file size before any parsing takes place.

    Raises:
        ValueError: For invalid paths (null bytes, bad extensions, oversized).
        FileNotFoundError: When the resolved path does not exist.
    """
    if '\x00' in filepath:
        raise ValueError("Invalid file path: null byte detected")

    resolved = Path(filepath).resolve()

    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    if not resolved.is_file():
        raise ValueError(f"Not a regular file: {filepath}")

    if allowed_extensions and resolved.suffix.lower() not in allowed_extensions:
        raise ValueError(
            f"Invalid file type '{resolved.suffix}'. "
            f"Allowed: {', '.join(allowed_extensions)}"
        )

    if resolved.stat().st_size > MAX_TRANSCRIPT_SIZE:
        size_mb = resolved.stat().st_size / (1024 * 1024)
        raise ValueError(
            f"File too large ({size_mb:.1f} MB). Maximum: {MAX_TRANSCRIPT_SIZE // (1024 * 1024)} MB"
        )

    return str(resolved)


def _validate_output_path(output_path: str) -> str:
    """Validate an output path: resolve traversal, block null bytes, ensure parent exists."""
    if '\x00' in output_path:
        raise ValueError("Invalid output path: null byte detected")

    resolved = Path(output_path).resolve()

    if not resolved.parent.exists():
        raise ValueError(f"Output directory does not exist: {resolved.parent}")

    return str(resolved)


def _require_text(arguments: dict, key: str) -> str:
    """Fetch a required non-blank string argument."""
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value


# ============================================================================
# UTILITIES
# ============================================================================

def format_duration(seconds: float) -> str:
    """Format seconds into human-readable duration."""
    if seconds < 1:
        return f"{seconds*1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    return f"{int(seconds // 60)}m {seconds % 60:.1f}s"


def format_range(r: TimeRange) -> str:
    return f"{r.start:.2f}s - {r.end:.2f}s"


def _load_any_transcript(filepath: str) -> Transcript:
    """Load a transcript from JSON, or from SRT/VTT subtitles."""
    filepath = _validate_filepath(filepath, TRANSCRIPT_EXTENSIONS + SUBTITLE_EXTENSIONS)
    if Path(filepath).suffix.lower() in SUBTITLE_EXTENSIONS:
        return load_subtitles(filepath)
    return load_transcript(filepath, max_size=MAX_TRANSCRIPT_SIZE)


def _parse_ranges(raw: Any) -> list[TimeRange]:
    """Parse a list of {start, end} objects from tool arguments."""
    if not isinstance(raw, list):
        raise ValueError("'ranges' must be a list of {start, end} objects")
    ranges = []
    for item in raw:
        if not isinstance(item, dict) or "start" not in item or "end" not in item:
            raise ValueError("Each range needs 'start' and 'end' (seconds)")
        ranges.append(TimeRange(float(item["start"]), float(item["end"])))
    return ranges


def _cursor_footer(tl: Timeline) -> str:
    return f"\nCan undo: {tl.can_undo}\nCan redo: {tl.can_redo}"


def _plan_table(plan: EditPlan, output: str) -> str:
    """Markdown table of keep-ranges with the segment files the executor writes."""
    result = "| # | Keep | Duration | Segment file |\n|---|------|----------|--------------|\n"
    for i, (r, seg) in enumerate(zip(plan.keep_ranges, segment_output_paths(output, plan.segment_count)), 1):
        result += f"| {i} | {format_range(r)} | {format_duration(r.duration)} | `{seg}` |\n"
    return result


def _record_target(arguments: dict) -> OperationStatus | None:
    """Validate the optional timeline recording before anything is written.

    Returns the status to record with, or None when no timeline was given.
    """
    timeline_id = arguments.get("timeline_id")
    if not timeline_id:
        return None
    status = OperationStatus.from_string(arguments.get("status", "pending"))
    TIMELINES.load_timeline(timeline_id)
    return status


def _record_plan(arguments: dict, status: OperationStatus | None, operation: str, description: str,
                 plan: EditPlan, plan_path: str, output: str, extra: dict) -> str:
    """Record a computed plan on a timeline when the caller asked for it.

    The plan file is removed again if recording fails.
    """
    if status is None:
        return ""
    try:
        tl = TIMELINES.add_operation(
            arguments["timeline_id"],
            operation=operation,
            description=description,
            input=plan.source,
            output=output,
            parameters={
                **extra,
                "planPath": plan_path,
                "keepRanges": [r.to_dict() for r in plan.keep_ranges],
                "removedRanges": [r.to_dict() for r in plan.removed_ranges],
            },
            status=status,
        )
    except Exception:
        Path(plan_path).unlink(missing_ok=True)
        raise
    op = tl.operations[tl.current_index]
    return (
        f"\n## Timeline\n"
        f"- **Recorded**: `{op.id}` ({op.status.value}) on {tl.name}\n"
        f"- **Position**: {tl.position}\n"
    )


# ============================================================================
# MCP RESOURCES - Saved timelines
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """Expose saved editing timelines as MCP resources."""
    resources = []
    for summary in TIMELINES.list_timelines():
        resources.append(Resource(
            uri=f"timeline://{summary.id}",
            name=summary.name,
            description=f"Editing timeline: {summary.name} ({summary.operation_count} operations)",
            mimeType="text/plain",
        ))
    return resources


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Return the history of a saved timeline."""
    timeline_id = str(uri).replace("timeline://", "")
    try:
        return TIMELINES.get_history(timeline_id)
    except ScriptCutError as e:
        return str(e)


# ============================================================================
# MCP PROMPTS - Pre-built workflows
# ============================================================================

@server.list_prompts()
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="script-trim",
            description="Cut a recording down to the lines of a script, recording the edit on a timeline",
            arguments=[
                PromptArgument(name="transcript_path", description="Path to transcript JSON or SRT/VTT", required=True),
                PromptArgument(name="input", description="Source video path", required=True),
            ],
        ),
        Prompt(
            name="remove-filler",
            description="Find and remove a filler phrase (e.g. 'um', 'you know') everywhere it is spoken",
            arguments=[
                PromptArgument(name="transcript_path", description="Path to transcript JSON or SRT/VTT", required=True),
                PromptArgument(name="phrase", description="Phrase to remove", required=True),
            ],
        ),
        Prompt(
            name="timeline-review",
            description="Review an editing timeline - history, statistics, and where undo/redo would land",
            arguments=[
                PromptArgument(name="timeline_id", description="Timeline ID", required=True),
            ],
        ),
    ]


@server.get_prompt()
async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
    args = arguments or {}
    transcript_path = args.get("transcript_path", "<path to transcript>")

    if name == "script-trim":
        source = args.get("input", "<path to source video>")
        return GetPromptResult(
            description="Trim a recording to a script",
            messages=[PromptMessage(
                role="user",
                content=TextContent(
                    type="text",
                    text=f"""Help me cut my recording down to my script.

Transcript: {transcript_path}
Source video: {source}

Please:
1. Ask me for the script, one line per sentence
2. Use `match_script` to show which lines were found and which were not
3. Suggest rewording for unmatched lines so they match what was actually said
4. Create a timeline with `create_timeline` using the source video as base file
5. Run `trim_to_script` with the timeline id and summarize the kept segments"""
                ),
            )],
        )

    elif name == "remove-filler":
        phrase = args.get("phrase", "um")
        return GetPromptResult(
            description="Remove a spoken phrase everywhere",
            messages=[PromptMessage(
                role="user",
                content=TextContent(
                    type="text",
                    text=f"""Remove every occurrence of a phrase from my recording.

Transcript: {transcript_path}
Phrase: {phrase}

Please:
1. Use `find_in_transcript` to list every occurrence with timestamps
2. Point out matches with segment-level confidence (they cut the whole segment)
3. Confirm with me, then run `remove_by_transcript`
4. Report how much time was removed and how many segments remain"""
                ),
            )],
        )

    elif name == "timeline-review":
        timeline_id = args.get("timeline_id", "<timeline id>")
        return GetPromptResult(
            description="Review an editing timeline",
            messages=[PromptMessage(
                role="user",
                content=TextContent(
                    type="text",
                    text=f"""Review my editing timeline.

Timeline: {timeline_id}

Please:
1. Use `view_timeline` to show the history and the current position
2. Use `get_timeline_stats` for operation counts and durations
3. Flag any failed or pending operations
4. Tell me which output `undo` and `redo` would restore"""
                ),
            )],
        )

    raise ValueError(f"Unknown prompt: {name}")


# ============================================================================
# TOOL DEFINITIONS
# ============================================================================

_TRANSCRIPT_PATH = {"type": "string", "description": "Path to transcript JSON (or .srt/.vtt subtitles)"}
_TIMELINE_ID = {"type": "string", "description": "Timeline ID"}
_RANGES = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {"start": {"type": "number"}, "end": {"type": "number"}},
        "required": ["start", "end"],
    },
    "description": "Time ranges in seconds",
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        # ===== TRANSCRIPT TOOLS =====
        Tool(
            name="analyze_transcript",
            description="Summarize a transcript: duration, segments, word-level timing, language",
            inputSchema={
                "type": "object",
                "properties": {"transcript_path": _TRANSCRIPT_PATH},
                "required": ["transcript_path"]
            }
        ),
        Tool(
            name="find_in_transcript",
            description="Search for spoken text in a transcript and get timestamps",
            inputSchema={
                "type": "object",
                "properties": {
                    "transcript_path": _TRANSCRIPT_PATH,
                    "search_text": {"type": "string", "description": "Text to search for"}
                },
                "required": ["transcript_path", "search_text"]
            }
        ),
        Tool(
            name="match_script",
            description="Match each script line against a transcript and report unmatched lines",
            inputSchema={
                "type": "object",
                "properties": {
                    "transcript_path": _TRANSCRIPT_PATH,
                    "script": {"type": "string", "description": "Script text, one line per sentence"}
                },
                "required": ["transcript_path", "script"]
            }
        ),
        Tool(
            name="format_transcript",
            description="Render a transcript as timestamped text or SRT subtitles",
            inputSchema={
                "type": "object",
                "properties": {
                    "transcript_path": _TRANSCRIPT_PATH,
                    "format": {"type": "string", "enum": ["text", "srt"], "default": "text"},
                    "output_path": {"type": "string", "description": "Optional file to write"}
                },
                "required": ["transcript_path"]
            }
        ),
        Tool(
            name="import_subtitles",
            description="Convert SRT/VTT subtitles into a transcript JSON file",
            inputSchema={
                "type": "object",
                "properties": {
                    "subtitle_path": {"type": "string", "description": "Path to .srt or .vtt file"},
                    "output_path": {"type": "string", "description": "Transcript JSON to write"},
                    "language": {"type": "string", "description": "Language code (e.g., 'en')"}
                },
                "required": ["subtitle_path", "output_path"]
            }
        ),

        # ===== PLANNING TOOLS =====
        Tool(
            name="remove_by_transcript",
            description="Plan removing every occurrence of spoken text; writes the cut list beside the output",
            inputSchema={
                "type": "object",
                "properties": {
                    "input": {"type": "string", "description": "Input video file path"},
                    "output": {"type": "string", "description": "Output video file path"},
                    "transcript_path": _TRANSCRIPT_PATH,
                    "text_to_remove": {"type": "string", "description": "Text to find and remove"},
                    "timeline_id": {"type": "string", "description": "Record the edit on this timeline (optional)"},
                    "status": {"type": "string", "enum": ["pending", "completed", "failed"], "default": "pending"}
                },
                "required": ["input", "output", "transcript_path", "text_to_remove"]
            }
        ),
        Tool(
            name="trim_to_script",
            description="Plan keeping only the portions that match a script; writes the cut list beside the output",
            inputSchema={
                "type": "object",
                "properties": {
                    "input": {"type": "string", "description": "Input video file path"},
                    "output": {"type": "string", "description": "Output video file path"},
                    "transcript_path": _TRANSCRIPT_PATH,
                    "script": {"type": "string", "description": "Script text to keep"},
                    "timeline_id": {"type": "string", "description": "Record the edit on this timeline (optional)"},
                    "status": {"type": "string", "enum": ["pending", "completed", "failed"], "default": "pending"}
                },
                "required": ["input", "output", "transcript_path", "script"]
            }
        ),
        Tool(
            name="invert_ranges",
            description="Compute the complement of time ranges within a total duration",
            inputSchema={
                "type": "object",
                "properties": {
                    "ranges": _RANGES,
                    "total_duration": {"type": "number", "description": "Total duration in seconds"},
                    "merge_first": {"type": "boolean", "default": True, "description": "Merge overlapping ranges before inverting"}
                },
                "required": ["ranges", "total_duration"]
            }
        ),
        Tool(
            name="export_cut_list",
            description="Export a script or removal cut as EDL or CSV",
            inputSchema={
                "type": "object",
                "properties": {
                    "transcript_path": _TRANSCRIPT_PATH,
                    "script": {"type": "string", "description": "Script to keep (keep mode)"},
                    "text_to_remove": {"type": "string", "description": "Text to remove (remove mode)"},
                    "format": {"type": "string", "enum": ["edl", "csv"], "default": "edl"},
                    "fps": {"type": "number", "default": 30},
                    "source": {"type": "string", "description": "Source clip name for the EDL"}
                },
                "required": ["transcript_path"]
            }
        ),

        # ===== TIMELINE TOOLS =====
        Tool(
            name="create_timeline",
            description="Create a new timeline for tracking video editing operations with undo/redo support",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name for the timeline"},
                    "base_file": {"type": "string", "description": "Base video file (optional)"}
                },
                "required": ["name"]
            }
        ),
        Tool(
            name="add_to_timeline",
            description="Add an operation to the timeline (discards any redo history)",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline_id": _TIMELINE_ID,
                    "operation": {"type": "string", "description": "Operation name (e.g., 'trim', 'blur', 'text_overlay')"},
                    "description": {"type": "string", "description": "Description of what was done"},
                    "input": {
                        "oneOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
                        "description": "Input file path(s)"
                    },
                    "output": {"type": "string", "description": "Output file path"},
                    "parameters": {"type": "object", "description": "Operation parameters"},
                    "duration_ms": {"type": "integer", "description": "How long the operation took (ms)"},
                    "status": {"type": "string", "enum": ["pending", "completed", "failed"], "default": "completed"},
                    "error": {"type": "string", "description": "Error message for failed operations"}
                },
                "required": ["timeline_id", "operation", "description", "input", "output"]
            }
        ),
        Tool(
            name="view_timeline",
            description="View timeline history and current state",
            inputSchema={
                "type": "object",
                "properties": {"timeline_id": _TIMELINE_ID},
                "required": ["timeline_id"]
            }
        ),
        Tool(
            name="undo",
            description="Undo the last operation in the timeline",
            inputSchema={
                "type": "object",
                "properties": {"timeline_id": _TIMELINE_ID},
                "required": ["timeline_id"]
            }
        ),
        Tool(
            name="redo",
            description="Redo the next operation in the timeline",
            inputSchema={
                "type": "object",
                "properties": {"timeline_id": _TIMELINE_ID},
                "required": ["timeline_id"]
            }
        ),
        Tool(
            name="jump_to_timeline_point",
            description="Jump to a specific point in the timeline",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline_id": _TIMELINE_ID,
                    "index": {"type": "integer", "description": "Operation index (0-based, -1 for before first operation)"}
                },
                "required": ["timeline_id", "index"]
            }
        ),
        Tool(
            name="list_timelines",
            description="List all editing timelines",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="get_timeline_stats",
            description="Get statistics about timeline operations (total, completed, failed, duration, etc.)",
            inputSchema={
                "type": "object",
                "properties": {"timeline_id": _TIMELINE_ID},
                "required": ["timeline_id"]
            }
        ),
        Tool(
            name="update_operation_status",
            description="Mark a recorded operation as completed or failed once its render finishes",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline_id": _TIMELINE_ID,
                    "operation_id": {"type": "string", "description": "Operation ID"},
                    "status": {"type": "string", "enum": ["pending", "completed", "failed"]},
                    "error": {"type": "string", "description": "Error message (for failed)"}
                },
                "required": ["timeline_id", "operation_id", "status"]
            }
        ),
        Tool(
            name="clear_timeline",
            description="Remove all operations from a timeline",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline_id": _TIMELINE_ID,
                    "keep_base": {"type": "boolean", "default": True, "description": "Keep the base file reference"}
                },
                "required": ["timeline_id"]
            }
        ),
        Tool(
            name="delete_timeline",
            description="Delete a timeline and its history",
            inputSchema={
                "type": "object",
                "properties": {"timeline_id": _TIMELINE_ID},
                "required": ["timeline_id"]
            }
        ),
    ]


# ============================================================================
# TOOL HANDLERS - Each tool gets its own function
# ============================================================================

# ----- TRANSCRIPT HANDLERS -----

async def handle_analyze_transcript(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    timing = "word-level" if transcript.has_word_timestamps else "segment-level only"
    return [TextContent(type="text", text=f"""# Transcript Analysis

- **Duration**: {format_duration(transcript.duration)}
- **Segments**: {len(transcript.segments)}
- **Words with timestamps**: {transcript.word_count}
- **Timing**: {timing}
- **Language**: {transcript.language or "unknown"}
""")]


async def handle_find_in_transcript(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    search_text = _require_text(arguments, "search_text")
    matches = find_text_in_transcript(transcript, search_text)

    if not matches:
        return [TextContent(type="text", text=f"No matches found for: {search_text}")]

    result = f"# Found {len(matches)} match(es) for '{search_text}'\n\n"
    result += "| # | Start | End | Text | Confidence |\n|---|-------|-----|------|------------|\n"
    for i, m in enumerate(matches, 1):
        result += f"| {i} | {m.start:.2f}s | {m.end:.2f}s | {m.text.strip()} | {m.confidence:.0%} |\n"
    return [TextContent(type="text", text=result)]


async def handle_match_script(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    outcome = match_to_script(transcript, _require_text(arguments, "script"))

    result = (
        f"# Script Match\n\n"
        f"- **Matches**: {outcome.matched_count}\n"
        f"- **Unmatched lines**: {len(outcome.unmatched_script)}\n\n"
    )
    if outcome.matches:
        result += "## Matches\n\n| Start | End | Text |\n|-------|-----|------|\n"
        for m in sorted(outcome.matches, key=lambda m: m.start):
            result += f"| {m.start:.2f}s | {m.end:.2f}s | {m.text.strip()} |\n"
        result += "\n"
    if outcome.unmatched_script:
        result += "## Unmatched Lines\n\n"
        result += "\n".join(f"- {line}" for line in outcome.unmatched_script)
        result += "\n\nUnmatched lines are skipped by `trim_to_script`. Reword them to match the transcript exactly."
    return [TextContent(type="text", text=result)]


async def handle_format_transcript(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    fmt = arguments.get("format", "text")
    if fmt == "srt":
        rendered = format_as_srt(transcript)
    elif fmt == "text":
        rendered = format_as_text(transcript)
    else:
        raise ValueError(f"Unknown format: {fmt}. Valid: text, srt")

    if arguments.get("output_path"):
        output_path = _validate_output_path(arguments["output_path"])
        Path(output_path).write_text(rendered, encoding="utf-8")
        return [TextContent(type="text", text=f"Saved {fmt} transcript to: `{output_path}`")]
    return [TextContent(type="text", text=f"```{fmt}\n{rendered}\n```")]


async def handle_import_subtitles(arguments: dict) -> Sequence[TextContent]:
    subtitle_path = _validate_filepath(arguments["subtitle_path"], SUBTITLE_EXTENSIONS)
    output_path = _validate_output_path(arguments["output_path"])
    transcript = load_subtitles(subtitle_path, language=arguments.get("language"))
    save_transcript(transcript, output_path)
    return [TextContent(type="text", text=(
        f"# Subtitles Imported\n\n"
        f"- **Segments**: {len(transcript.segments)}\n"
        f"- **Duration**: {format_duration(transcript.duration)}\n\n"
        f"Saved to: `{output_path}`\n\n"
        f"**Note**: Subtitles have no word timing, so matches cut whole cues."
    ))]


# ----- PLANNING HANDLERS -----

async def handle_remove_by_transcript(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    output = _validate_output_path(_require_text(arguments, "output"))
    text_to_remove = _require_text(arguments, "text_to_remove")

    status = _record_target(arguments)

    plan = plan_removal(transcript, text_to_remove, source=arguments["input"])
    if not plan.removed_ranges:
        return [TextContent(type="text", text=f"No matching text found to remove: {text_to_remove}")]
    if plan.is_empty:
        return [TextContent(type="text", text="Removing specified text would result in empty video")]

    plan_path = write_plan(plan, plan_output_path(output))
    result = (
        f"# Removal Plan\n\n"
        f"- **Removed**: {len(plan.removed_ranges)} range(s), {format_duration(plan.removed_duration)}\n"
        f"- **Kept**: {plan.segment_count} segment(s), {format_duration(plan.kept_duration)}\n\n"
        f"{_plan_table(plan, output)}\n"
        f"Cut list saved to: `{plan_path}`\n"
    )
    result += _record_plan(
        arguments, status, "remove_by_transcript", f"Remove '{text_to_remove}'", plan, plan_path, output,
        {"textToRemove": text_to_remove, "transcriptPath": arguments["transcript_path"]},
    )
    return [TextContent(type="text", text=result)]


async def handle_trim_to_script(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    output = _validate_output_path(_require_text(arguments, "output"))
    script = _require_text(arguments, "script")

    status = _record_target(arguments)

    plan = plan_script_trim(transcript, script, source=arguments["input"])
    if plan.is_empty:
        return [TextContent(type="text", text="No matching text found in script")]

    plan_path = write_plan(plan, plan_output_path(output))
    result = (
        f"# Script Trim Plan\n\n"
        f"- **Kept**: {plan.segment_count} segment(s), {format_duration(plan.kept_duration)}\n"
        f"- **Removed**: {format_duration(plan.removed_duration)}\n\n"
        f"{_plan_table(plan, output)}\n"
    )
    if plan.unmatched_script:
        result += "## Unmatched Lines\n\n" + "\n".join(f"- {line}" for line in plan.unmatched_script) + "\n\n"
    result += f"Cut list saved to: `{plan_path}`\n"
    result += _record_plan(
        arguments, status, "trim_to_script", "Trim to script", plan, plan_path, output,
        {"script": script, "transcriptPath": arguments["transcript_path"]},
    )
    return [TextContent(type="text", text=result)]


async def handle_invert_ranges(arguments: dict) -> Sequence[TextContent]:
    ranges = _parse_ranges(arguments["ranges"])
    total = float(arguments["total_duration"])
    if total < 0:
        raise ValueError("'total_duration' must be >= 0")
    if arguments.get("merge_first", True):
        ranges = merge_ranges(ranges)
    inverted = invert_time_ranges(ranges, total)

    result = f"# Inverted Ranges ({len(inverted)})\n\n| # | Start | End | Note |\n|---|-------|-----|------|\n"
    for i, r in enumerate(inverted, 1):
        note = "degenerate (start > end)" if r.is_degenerate else ""
        result += f"| {i} | {r.start:.3f}s | {r.end:.3f}s | {note} |\n"
    return [TextContent(type="text", text=result)]


async def handle_export_cut_list(arguments: dict) -> Sequence[TextContent]:
    transcript = _load_any_transcript(arguments["transcript_path"])
    source = arguments.get("source", "")
    if arguments.get("script"):
        plan = plan_script_trim(transcript, arguments["script"], source=source)
    elif arguments.get("text_to_remove"):
        plan = plan_removal(transcript, arguments["text_to_remove"], source=source)
    else:
        raise ValueError("Provide either 'script' or 'text_to_remove'")

    if plan.is_empty:
        return [TextContent(type="text", text="Cut list is empty - nothing would be kept")]

    fmt = arguments.get("format", "edl")
    if fmt == "edl":
        fps = float(arguments.get("fps", 30))
        if fps <= 0:
            raise ValueError(f"'fps' must be positive, got {fps:g}")
        title = Path(source).stem if source else "Script Cut"
        return [TextContent(type="text", text=f"```edl\n{to_edl(plan, title=title, fps=fps)}```")]
    if fmt == "csv":
        return [TextContent(type="text", text=f"```csv\n{to_csv(plan)}```")]
    raise ValueError(f"Unknown format: {fmt}. Valid: edl, csv")


# ----- TIMELINE HANDLERS -----

async def handle_create_timeline(arguments: dict) -> Sequence[TextContent]:
    tl = TIMELINES.create_timeline(_require_text(arguments, "name"), arguments.get("base_file"))
    result = (
        f"Successfully created timeline:\n"
        f"- ID: {tl.id}\n"
        f"- Name: {tl.name}\n"
        f"- Created: {tl.created.strftime('%Y-%m-%d %H:%M:%S')}"
    )
    if tl.base_file is not None:
        result += f"\n- Base file: {tl.base_file}"
    return [TextContent(type="text", text=result)]


async def handle_add_to_timeline(arguments: dict) -> Sequence[TextContent]:
    op_input = arguments["input"]
    if not isinstance(op_input, (str, list)):
        raise ValueError("'input' must be a string or a list of strings")
    duration = arguments.get("duration_ms")

    tl = TIMELINES.add_operation(
        arguments["timeline_id"],
        operation=_require_text(arguments, "operation"),
        description=arguments["description"],
        input=op_input,
        output=arguments["output"],
        parameters=arguments.get("parameters") or {},
        duration=int(duration) if duration is not None else None,
        status=OperationStatus.from_string(arguments.get("status", "completed")),
        error=arguments.get("error"),
    )
    op = tl.operations[tl.current_index]
    return [TextContent(type="text", text=(
        f"Successfully added operation to timeline:\n"
        f"- Operation: {op.operation}\n"
        f"- Operation ID: {op.id}\n"
        f"- Description: {op.description}\n"
        f"- Timeline position: {tl.position}"
        f"{_cursor_footer(tl)}"
    ))]


async def handle_view_timeline(arguments: dict) -> Sequence[TextContent]:
    return [TextContent(type="text", text=TIMELINES.get_history(arguments["timeline_id"]))]


async def handle_undo(arguments: dict) -> Sequence[TextContent]:
    before = TIMELINES.load_timeline(arguments["timeline_id"]).current_index
    outcome = TIMELINES.undo(arguments["timeline_id"])
    tl = outcome.timeline

    if before < 0:
        result = "Already at the beginning of the timeline"
        if outcome.previous_output is not None:
            result += f"\nBase file: {outcome.previous_output}"
        return [TextContent(type="text", text=result)]

    result = f"Successfully undone. Timeline position: {tl.position}"
    if outcome.previous_output is not None:
        result += f"\nCurrent output: {outcome.previous_output}"
    result += _cursor_footer(tl)
    return [TextContent(type="text", text=result)]


async def handle_redo(arguments: dict) -> Sequence[TextContent]:
    outcome = TIMELINES.redo(arguments["timeline_id"])
    tl = outcome.timeline

    if outcome.next_output is None:
        return [TextContent(type="text", text="Already at the end of the timeline. Nothing to redo.")]

    result = (
        f"Successfully redone. Timeline position: {tl.position}\n"
        f"Current output: {outcome.next_output}"
        f"{_cursor_footer(tl)}"
    )
    return [TextContent(type="text", text=result)]


async def handle_jump_to_timeline_point(arguments: dict) -> Sequence[TextContent]:
    index = arguments["index"]
    if isinstance(index, bool) or not isinstance(index, (int, float)) or int(index) != index:
        raise ValueError(f"'index' must be an integer, got {index!r}")
    outcome = TIMELINES.jump_to(arguments["timeline_id"], int(index))
    tl = outcome.timeline

    result = f"Jumped to timeline position {tl.position}"
    if tl.at_base:
        result += "\nAt base state (before any operations)"
        if outcome.output is not None:
            result += f"\nBase file: {outcome.output}"
    else:
        result += f"\nCurrent output: {outcome.output}"
    result += _cursor_footer(tl)
    return [TextContent(type="text", text=result)]


async def handle_list_timelines(arguments: dict) -> Sequence[TextContent]:
    summaries = TIMELINES.list_timelines()
    if not summaries:
        return [TextContent(type="text", text="No timelines found.\n\nCreate one with: create_timeline")]

    result = "# Editing Timelines\n\n| Name | ID | Modified | Operations | Position |\n|------|----|----------|------------|----------|\n"
    for s in summaries:
        result += (
            f"| {s.name} | `{s.id}` | {s.modified.strftime('%Y-%m-%d %H:%M:%S')} | "
            f"{s.operation_count} | {s.position} |\n"
        )
    return [TextContent(type="text", text=result)]


async def handle_get_timeline_stats(arguments: dict) -> Sequence[TextContent]:
    stats = TIMELINES.get_statistics(arguments["timeline_id"])
    result = (
        f"# Timeline Statistics\n\n"
        f"- **Total operations**: {stats.total_operations}\n"
        f"- **Completed**: {stats.completed_operations}\n"
        f"- **Failed**: {stats.failed_operations}\n"
        f"- **Pending**: {stats.pending_operations}\n\n"
        f"- **Total duration**: {stats.total_duration / 1000.0:.2f}s\n"
        f"- **Average duration**: {stats.average_duration / 1000.0:.2f}s\n\n"
    )
    if stats.operations_by_type:
        result += "## Operations by Type\n\n| Operation | Count |\n|-----------|-------|\n"
        for op_type, count in sorted(stats.operations_by_type.items()):
            result += f"| {op_type} | {count} |\n"
    return [TextContent(type="text", text=result)]


async def handle_update_operation_status(arguments: dict) -> Sequence[TextContent]:
    status = OperationStatus.from_string(arguments["status"])
    tl = TIMELINES.update_operation_status(
        arguments["timeline_id"],
        arguments["operation_id"],
        status,
        error=arguments.get("error"),
    )
    return [TextContent(type="text", text=(
        f"Operation `{arguments['operation_id']}` on {tl.name} is now {status.value}"
    ))]


async def handle_clear_timeline(arguments: dict) -> Sequence[TextContent]:
    keep_base = arguments.get("keep_base", True)
    tl = TIMELINES.clear_timeline(arguments["timeline_id"], keep_base=keep_base)
    result = f"Cleared all operations from {tl.name}"
    if tl.base_file is not None:
        result += f"\nBase file: {tl.base_file}"
    return [TextContent(type="text", text=result)]


async def handle_delete_timeline(arguments: dict) -> Sequence[TextContent]:
    TIMELINES.delete_timeline(arguments["timeline_id"])
    return [TextContent(type="text", text=f"Deleted timeline {arguments['timeline_id']}")]


# ============================================================================
# TOOL DISPATCH
# ============================================================================

TOOL_HANDLERS = {
    # Transcript
    "analyze_transcript": handle_analyze_transcript,
    "find_in_transcript": handle_find_in_transcript,
    "match_script": handle_match_script,
    "format_transcript": handle_format_transcript,
    "import_subtitles": handle_import_subtitles,
    # Planning
    "remove_by_transcript": handle_remove_by_transcript,
    "trim_to_script": handle_trim_to_script,
    "invert_ranges": handle_invert_ranges,
    "export_cut_list": handle_export_cut_list,
    # Timeline
    "create_timeline": handle_create_timeline,
    "add_to_timeline": handle_add_to_timeline,
    "view_timeline": handle_view_timeline,
    "undo": handle_undo,
    "redo": handle_redo,
    "jump_to_timeline_point": handle_jump_to_timeline_point,
    "list_timelines": handle_list_timelines,
    "get_timeline_stats": handle_get_timeline_stats,
    "update_operation_status": handle_update_operation_status,
    "clear_timeline": handle_clear_timeline,
    "delete_timeline": handle_delete_timeline,
}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> Sequence[TextContent]:
    handler = TOOL_HANDLERS.get(name)
    if not handler:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
    try:
        return await handler(arguments)
    except TimelineNotFoundError as e:
        logger.warning("%s: %s", name, e)
        return [TextContent(type="text", text=f"Not found: {e}")]
    except TimelineStorageError as e:
        logger.warning("%s: %s", name, e)
        return [TextContent(type="text", text=f"Storage error: {e}")]
    except FileNotFoundError as e:
        logger.warning("%s: %s", name, e)
        return [TextContent(type="text", text=f"File not found: {e}")]
    except KeyError as e:
        logger.warning("%s: missing argument %s", name, e)
        return [TextContent(type="text", text=f"Validation error: missing argument {e}")]
    except ValueError as e:
        logger.warning("%s: %s", name, e)
        return [TextContent(type="text", text=f"Validation error: {e}")]
    except Exception as e:
        logger.exception("Tool %s failed", name)
        return [TextContent(type="text", text=f"Error: {type(e).__name__}")]


# ============================================================================
# MAIN
# ============================================================================

async def main():
    setup_logging(LOG_LEVEL, os.environ.get("SCRIPTCUT_LOG_FILE"))
    logger.info("Timelines stored under %s", TIMELINES.store.directory)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main_sync():
    """Synchronous entry point for use as a console script."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    main_sync()
