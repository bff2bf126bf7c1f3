"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class UploadCommand:
    """Upload local files."""

    files: tuple[str, ...]
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class UploadDirCommand:
    """Upload a local directory."""

    directory: str
    command: Literal["upload-dir"] = "upload-dir"


@dataclass(frozen=True)
class TranscodeCommand:
    """Signal the transcoder for an uploaded hash."""

    file_hash: str
    author: str | None = None
    command: Literal["transcode"] = "transcode"


@dataclass(frozen=True)
class AddTranscodeCommand:
    """Upload files and transcode the first one."""

    files: tuple[str, ...]
    command: Literal["add-transcode"] = "add-transcode"


@dataclass(frozen=True)
class PinCommand:
    """Ask the transcoder to pin a hash."""

    file_hash: str
    size: int = 0
    command: Literal["pin"] = "pin"


@dataclass(frozen=True)
class MetadataCommand:
    """Fetch media metadata for a hash."""

    file_hash: str
    command: Literal["metadata"] = "metadata"


@dataclass(frozen=True)
class VideoCommand:
    """Fetch a video record from the metadata index."""

    video_id: str
    command: Literal["video"] = "video"


@dataclass(frozen=True)
class SearchCommand:
    """Search the metadata index."""

    options: tuple[tuple[str, str], ...]
    command: Literal["search"] = "search"


CommandRequest = (
    UploadCommand
    | UploadDirCommand
    | TranscodeCommand
    | AddTranscodeCommand
    | PinCommand
    | MetadataCommand
    | VideoCommand
    | SearchCommand
)
