"""Utility functions for CLI operations."""

import json
import sys
from typing import Any, Optional, Sequence, TextIO

from cli.constants import GREEN, RESET
from common.types import UploadResult


class UploadProgressPrinter:
    """Bus listener that renders chunk progress on one terminal line."""

    def __init__(self, label: str = "Uploading", stream: Optional[TextIO] = None):
        """
        Initialize the printer.

        Args:
            label: Text shown before the counters
            stream: Output stream (defaults to stdout)
        """
        self.label = label
        self.stream = stream or sys.stdout
        self._uploaded = 0
        self._line_open = False

    def on_progress(self, chunk_length: int, percent: int) -> None:
        """Listener for 'progress' events."""
        self._uploaded += chunk_length
        self.stream.write(
            f"\r{self.label}: {format_file_size(self._uploaded)} ({GREEN}{percent}%{RESET})"
        )
        self.stream.flush()
        self._line_open = True
        if percent >= 100:
            self.finish()

    def on_file_ready(self, result: UploadResult) -> None:
        """Listener for 'fileReady' events; resets the counter for the next file."""
        self.finish()
        self._uploaded = 0

    def on_remote_progress(self, file_hash: str, size: Any, percent: Any) -> None:
        """Listener for the transcoder's '*:progress' events."""
        self.stream.write(f"\r{self.label} {file_hash}: {GREEN}{percent}%{RESET}")
        self.stream.flush()
        self._line_open = True

    def finish(self) -> None:
        """Terminate the progress line."""
        if self._line_open:
            self.stream.write('\n')
            self.stream.flush()
            self._line_open = False


def format_upload_results(results: Sequence[UploadResult]) -> str:
    """Render upload records as one 'path -> hash (size)' line each."""
    if not results:
        return "No files uploaded"
    return "\n".join(
        f"{GREEN}✓{RESET} {result.path} -> {result.content_hash} ({format_file_size(result.size)})"
        for result in results
    )


def format_json(data: Any) -> str:
    """Pretty-print a JSON-compatible value."""
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"
