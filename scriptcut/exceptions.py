"""Exceptions raised by the scriptcut library."""


class ScriptCutError(Exception):
    """Base exception class."""

    pass


class TimelineNotFoundError(ScriptCutError, LookupError):
    """Requested timeline id has no stored record."""

    def __init__(self, timeline_id: str):
        self.timeline_id = timeline_id
        super().__init__(f"Timeline not found: {timeline_id}")


class InvalidIndexError(ScriptCutError, ValueError):
    """Timeline cursor target outside [-1, len(operations) - 1]."""

    def __init__(self, index: int, operation_count: int):
        self.index = index
        self.operation_count = operation_count
        super().__init__(
            f"Invalid timeline index: {index} "
            f"(valid range: -1 to {operation_count - 1})"
        )


class DegenerateIntervalError(ScriptCutError, ValueError):
    """A time range ends before it starts."""

    def __init__(self, start: float, end: float):
        self.start = start
        self.end = end
        super().__init__(f"Degenerate time range: start {start:.3f}s > end {end:.3f}s")


class TranscriptFormatError(ScriptCutError, ValueError):
    """Transcript record or subtitle text could not be interpreted."""

    pass


class TimelineStorageError(ScriptCutError):
    """Stored timeline record is unreadable."""

    pass
