"""Logging configuration for the MCP server process."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Route log records to stderr (and optionally a file).

    Stdout carries the MCP stdio transport, so the console handler is bound
    to a stderr console.

    Args:
        level: Log level name.
        log_file: Optional log file path.
    """
    handlers = []

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        markup=False,
        show_path=False,
    )
    console_handler.setLevel(level)
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # The MCP SDK logs every request at INFO
    logging.getLogger("mcp").setLevel(logging.WARNING)
