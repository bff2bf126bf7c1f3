"""Command parser for CLI input."""

import shlex

from cli.constants import SEARCH_KEYS
from cli.models import (
    AddTranscodeCommand,
    CommandRequest,
    MetadataCommand,
    PinCommand,
    SearchCommand,
    TranscodeCommand,
    UploadCommand,
    UploadDirCommand,
    VideoCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "upload":
        return _parse_upload(tokens[1:])
    elif command_name == "upload-dir":
        return _parse_upload_dir(tokens[1:])
    elif command_name == "transcode":
        return _parse_transcode(tokens[1:])
    elif command_name == "add-transcode":
        return _parse_add_transcode(tokens[1:])
    elif command_name == "pin":
        return _parse_pin(tokens[1:])
    elif command_name == "metadata":
        return _parse_metadata(tokens[1:])
    elif command_name == "video":
        return _parse_video(tokens[1:])
    elif command_name == "search":
        return _parse_search(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_upload(args: list[str]) -> UploadCommand:
    """Parse 'upload <file...>' command."""
    if not args:
        raise ParseError("upload requires at least one file")
    return UploadCommand(files=tuple(args))


def _parse_upload_dir(args: list[str]) -> UploadDirCommand:
    """Parse 'upload-dir <directory>' command."""
    if len(args) != 1:
        raise ParseError("upload-dir requires exactly 1 argument: <directory>")
    return UploadDirCommand(directory=args[0])


def _parse_transcode(args: list[str]) -> TranscodeCommand:
    """Parse 'transcode <hash> [author]' command."""
    if len(args) not in (1, 2):
        raise ParseError("transcode requires <hash> and an optional [author]")
    author = args[1] if len(args) > 1 else None
    return TranscodeCommand(file_hash=args[0], author=author)


def _parse_add_transcode(args: list[str]) -> AddTranscodeCommand:
    """Parse 'add-transcode <file...>' command."""
    if not args:
        raise ParseError("add-transcode requires at least one file")
    return AddTranscodeCommand(files=tuple(args))


def _parse_pin(args: list[str]) -> PinCommand:
    """Parse 'pin <hash> [size]' command."""
    if len(args) not in (1, 2):
        raise ParseError("pin requires <hash> and an optional [size]")
    size = 0
    if len(args) > 1:
        try:
            size = int(args[1])
        except ValueError:
            raise ParseError(f"pin size must be an integer, got '{args[1]}'")
        if size < 0:
            raise ParseError("pin size must not be negative")
    return PinCommand(file_hash=args[0], size=size)


def _parse_metadata(args: list[str]) -> MetadataCommand:
    """Parse 'metadata <hash>' command."""
    if len(args) != 1:
        raise ParseError("metadata requires exactly 1 argument: <hash>")
    return MetadataCommand(file_hash=args[0])


def _parse_video(args: list[str]) -> VideoCommand:
    """Parse 'video <id>' command."""
    if len(args) != 1:
        raise ParseError("video requires exactly 1 argument: <id>")
    return VideoCommand(video_id=args[0])


def _parse_search(args: list[str]) -> SearchCommand:
    """Parse 'search key=value...' command."""
    options = []
    seen = set()
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise ParseError(f"search filters must look like key=value, got '{arg}'")
        if key not in SEARCH_KEYS:
            raise ParseError(f"Unknown search filter '{key}' (expected one of: {', '.join(SEARCH_KEYS)})")
        if key in seen:
            raise ParseError(f"Duplicate search filter '{key}'")
        seen.add(key)
        options.append((key, value))
    return SearchCommand(options=tuple(options))
