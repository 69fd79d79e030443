"""
Edit timelines - a persisted operation log with undo/redo.

Each timeline is one JSON record under ``<base_dir>/.mcp-video-timelines/``.
Every mutation is a load -> modify -> save cycle; TimelineManager serializes
those cycles per timeline id, and TimelineStore replaces records atomically.

Usage:
    manager = TimelineManager(TimelineStore("/path/to/project"))
    tl = manager.create_timeline("Interview cut", base_file="raw.mp4")
    manager.add_operation(tl.id, "trim", "Trim intro", "raw.mp4", "trim.mp4")
    result = manager.undo(tl.id)   # result.previous_output == "raw.mp4"
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from .exceptions import (
    InvalidIndexError,
    ScriptCutError,
    TimelineNotFoundError,
    TimelineStorageError,
)
from .models import (
    JumpResult,
    Operation,
    OperationInput,
    OperationStatus,
    RedoResult,
    Timeline,
    TimelineState,
    TimelineStatistics,
    TimelineSummary,
    UndoResult,
)

logger = logging.getLogger(__name__)

TIMELINES_DIRNAME = ".mcp-video-timelines"

_HISTORY_RULE = "=" * 80


# ============================================================================
# STORAGE
# ============================================================================

class TimelineStore:
    """Durable key -> record store with one JSON file per timeline."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.directory = self.base_dir / TIMELINES_DIRNAME

    def _path(self, timeline_id: str) -> Path:
        if not timeline_id or '\x00' in timeline_id or '/' in timeline_id \
                or '\\' in timeline_id or timeline_id in ('.', '..'):
            raise TimelineNotFoundError(timeline_id)
        return self.directory / f"{timeline_id}.json"

    def exists(self, timeline_id: str) -> bool:
        try:
            return self._path(timeline_id).is_file()
        except TimelineNotFoundError:
            return False

    def load(self, timeline_id: str) -> Timeline:
        path = self._path(timeline_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise TimelineNotFoundError(timeline_id)
        try:
            return Timeline.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError) as e:
            raise TimelineStorageError(f"Failed to parse timeline {timeline_id}: {e}") from e

    def save(self, timeline: Timeline, touch: bool = True) -> None:
        """Replace the whole record, stamping ``modified`` unless ``touch`` is False."""
        self.directory.mkdir(parents=True, exist_ok=True)
        if touch:
            timeline.modified = datetime.now()
        payload = json.dumps(timeline.to_dict(), indent=2, ensure_ascii=False)

        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path(timeline.id))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def delete(self, timeline_id: str) -> None:
        try:
            self._path(timeline_id).unlink()
        except FileNotFoundError:
            raise TimelineNotFoundError(timeline_id)

    def ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.stem for p in self.directory.glob("*.json")
            if p.is_file() and not p.name.startswith(".tmp-")
        )


# ============================================================================
# MANAGER
# ============================================================================

class TimelineManager:
    """Undo/redo state machine over stored timelines.

    ``current_index`` ranges over -1 (base file) .. len(operations) - 1.
    Undo before the first operation and redo past the last are no-ops.
    """

    def __init__(self, store: Optional[TimelineStore] = None):
        self.store = store or TimelineStore()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, timeline_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(timeline_id, threading.Lock())
        with lock:
            yield

    def _mutate(self, timeline_id: str, change: Callable[[Timeline], Any]) -> Any:
        """Run ``change`` inside a locked load -> modify -> save cycle.

        ``change`` returns the call's result; raising from it aborts the
        cycle before anything is written.
        """
        with self._locked(timeline_id):
            timeline = self.store.load(timeline_id)
            result = change(timeline)
            self.store.save(timeline)
            return result

    # ----- lifecycle -----

    def create_timeline(self, name: str, base_file: Optional[str] = None) -> Timeline:
        now = datetime.now()
        timeline = Timeline(name=name, created=now, modified=now, base_file=base_file)
        self.store.save(timeline, touch=False)
        logger.info("Created timeline %s (%s)", timeline.id, name)
        return timeline

    def load_timeline(self, timeline_id: str) -> Timeline:
        return self.store.load(timeline_id)

    def delete_timeline(self, timeline_id: str) -> None:
        with self._locked(timeline_id):
            self.store.delete(timeline_id)
        with self._locks_guard:
            self._locks.pop(timeline_id, None)
        logger.info("Deleted timeline %s", timeline_id)

    def clear_timeline(self, timeline_id: str, keep_base: bool = True) -> Timeline:
        """Drop every operation and return to the base state."""
        def change(tl: Timeline) -> Timeline:
            tl.operations = []
            tl.current_index = -1
            if not keep_base:
                tl.base_file = None
            return tl

        timeline = self._mutate(timeline_id, change)
        logger.info("Cleared timeline %s (keep_base=%s)", timeline_id, keep_base)
        return timeline

    def list_timelines(self) -> List[TimelineSummary]:
        """Summaries of all readable timelines, most recently modified first."""
        summaries = []
        for timeline_id in self.store.ids():
            try:
                summaries.append(self.store.load(timeline_id).to_summary())
            except ScriptCutError as e:
                logger.warning("Skipping unreadable timeline %s: %s", timeline_id, e)
        summaries.sort(key=lambda s: s.modified, reverse=True)
        return summaries

    # ----- recording -----

    def add_operation(
        self,
        timeline_id: str,
        operation: str,
        description: str,
        input: OperationInput,
        output: str,
        parameters: Optional[Dict[str, Any]] = None,
        duration: Optional[int] = None,
        status: OperationStatus = OperationStatus.COMPLETED,
        error: Optional[str] = None,
    ) -> Timeline:
        """Append an operation at the cursor.

        Operations after the cursor (the redo branch) are discarded first.
        """
        def change(tl: Timeline) -> Timeline:
            if tl.current_index < len(tl.operations) - 1:
                dropped = len(tl.operations) - (tl.current_index + 1)
                tl.operations = tl.operations[:tl.current_index + 1]
                logger.info("Discarded %d redo operation(s) on timeline %s", dropped, tl.id)
            tl.operations.append(Operation(
                operation=operation,
                description=description,
                input=input,
                output=output,
                parameters=dict(parameters or {}),
                duration=duration,
                status=status,
                error=error,
            ))
            tl.current_index = len(tl.operations) - 1
            return tl

        timeline = self._mutate(timeline_id, change)
        logger.info("Recorded '%s' on timeline %s at %s", operation, timeline_id, timeline.position)
        return timeline

    def update_operation_status(
        self,
        timeline_id: str,
        operation_id: str,
        status: OperationStatus,
        error: Optional[str] = None,
    ) -> Timeline:
        """Set the status (and error) of a previously recorded operation.

        For callers that record an edit as pending before it runs and settle
        it afterwards. Nothing else about the operation changes.
        """
        def change(tl: Timeline) -> Timeline:
            op = tl.find_operation(operation_id)
            if op is None:
                raise ValueError(f"Operation not found on timeline {timeline_id}: {operation_id}")
            op.status = status
            op.error = error
            return tl

        timeline = self._mutate(timeline_id, change)
        logger.info("Operation %s on timeline %s is now %s", operation_id, timeline_id, status.value)
        return timeline

    # ----- navigation -----

    def undo(self, timeline_id: str) -> UndoResult:
        with self._locked(timeline_id):
            timeline = self.store.load(timeline_id)
            if timeline.current_index < 0:
                return UndoResult(timeline=timeline, previous_output=timeline.base_file)
            timeline.current_index -= 1
            self.store.save(timeline)
        logger.info("Undo on timeline %s -> %s", timeline_id, timeline.position)
        return UndoResult(timeline=timeline, previous_output=timeline.current_output)

    def redo(self, timeline_id: str) -> RedoResult:
        with self._locked(timeline_id):
            timeline = self.store.load(timeline_id)
            if timeline.current_index >= len(timeline.operations) - 1:
                return RedoResult(timeline=timeline, next_output=None)
            timeline.current_index += 1
            self.store.save(timeline)
        logger.info("Redo on timeline %s -> %s", timeline_id, timeline.position)
        return RedoResult(timeline=timeline, next_output=timeline.current_output)

    def jump_to(self, timeline_id: str, index: int) -> JumpResult:
        """Move the cursor to an absolute position (-1 is the base file)."""
        def change(tl: Timeline) -> JumpResult:
            if index < -1 or index >= len(tl.operations):
                raise InvalidIndexError(index, len(tl.operations))
            tl.current_index = index
            return JumpResult(timeline=tl, output=tl.current_output)

        result = self._mutate(timeline_id, change)
        logger.info("Jumped timeline %s to %s", timeline_id, result.timeline.position)
        return result

    def get_current_state(self, timeline_id: str) -> TimelineState:
        timeline = self.store.load(timeline_id)
        return TimelineState(
            timeline=timeline,
            current_output=timeline.current_output,
            can_undo=timeline.can_undo,
            can_redo=timeline.can_redo,
        )

    # ----- reporting -----

    def get_statistics(self, timeline_id: str) -> TimelineStatistics:
        timeline = self.store.load(timeline_id)
        stats = TimelineStatistics(total_operations=len(timeline.operations))
        timed = 0

        for op in timeline.operations:
            if op.status == OperationStatus.COMPLETED:
                stats.completed_operations += 1
            elif op.status == OperationStatus.FAILED:
                stats.failed_operations += 1
            else:
                stats.pending_operations += 1

            if op.duration is not None:
                stats.total_duration += op.duration
                timed += 1

            stats.operations_by_type[op.operation] = stats.operations_by_type.get(op.operation, 0) + 1

        if timed:
            stats.average_duration = stats.total_duration / timed
        return stats

    def get_history(self, timeline_id: str) -> str:
        """Render the timeline as a readable history with a cursor marker."""
        tl = self.store.load(timeline_id)
        lines = [
            f"Timeline: {tl.name} ({tl.id})",
            f"Created: {tl.created.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Modified: {tl.modified.strftime('%Y-%m-%d %H:%M:%S')}",
            "",
        ]
        if tl.base_file is not None:
            lines += [f"Base file: {tl.base_file}", ""]

        lines += ["OPERATIONS:", _HISTORY_RULE]

        if not tl.operations:
            lines.append("No operations yet")
        for i, op in enumerate(tl.operations):
            marker = "▶" if i == tl.current_index else " "
            lines += [
                f"{marker} {i + 1}. [{op.status.glyph}] {op.operation} - {op.description}",
                f"     Time: {op.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
                f"     Input: {', '.join(op.inputs)}",
                f"     Output: {op.output}",
            ]
            if op.duration is not None:
                lines.append(f"     Duration: {op.duration / 1000.0:.2f}s")
            if op.error is not None:
                lines.append(f"     Error: {op.error}")
            lines.append("")

        lines += [
            "",
            f"Current position: {tl.position}",
            f"Can undo: {tl.can_undo}",
            f"Can redo: {tl.can_redo}",
        ]
        return "\n".join(lines)
