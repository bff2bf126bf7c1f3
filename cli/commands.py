"""Command handler functions for CLI operations."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from common.logging_config import get_logger
from common.protocol import (
    PIN_PROGRESS,
    TRANSCODING_DOWNSAMPLE_READY,
    TRANSCODING_PROGRESS,
    TRANSCODING_STARTED,
)
from cli.config import Config
from cli.constants import GREEN, RED, RESET
from cli.models import (
    AddTranscodeCommand,
    MetadataCommand,
    PinCommand,
    SearchCommand,
    TranscodeCommand,
    UploadCommand,
    UploadDirCommand,
    VideoCommand,
)
from cli.utils import UploadProgressPrinter, format_file_size, format_json, format_upload_results
from metadb.client import VideosClient
from uploader.event_bus import JobEventBus
from uploader.exceptions import UploaderError
from uploader.kubo_engine import KuboEngine
from uploader.uploader import Uploader

logger = get_logger(__name__)


_config: Optional[Config] = None
_db_client: Optional[VideosClient] = None


def get_config() -> Config:
    """
    Get or create global Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_db_client() -> VideosClient:
    """
    Get or create global VideosClient instance.

    Returns:
        VideosClient instance
    """
    global _db_client
    if _db_client is None:
        logger.debug("Creating new VideosClient instance")
        config = get_config()
        retry = config.get_retry_config()
        _db_client = VideosClient(
            provider=config.get_db_provider(),
            timeout=config.get_timeout(),
            max_retries=retry['max_retries'],
            retry_backoff_multiplier=retry['retry_backoff_multiplier']
        )
    return _db_client


@asynccontextmanager
async def open_uploader(config: Config) -> AsyncIterator[Uploader]:
    """Start a KuboEngine-backed Uploader for the duration of one command."""
    settings = config.to_settings()
    engine = KuboEngine(
        api_url=settings.kubo_api_url,
        topic_prefix=settings.topic_prefix,
        chunk_size=settings.chunk_size,
        request_timeout=config.get_timeout()
    )
    await engine.start()
    uploader = Uploader(engine, settings)
    try:
        yield uploader
    finally:
        await uploader.close()
        await engine.close()


def _run(action: Callable[[Uploader], Awaitable[str]], uploader: Optional[Uploader]) -> str:
    """Run an uploader action to completion and turn failures into messages."""
    async def main() -> str:
        if uploader is not None:
            return await action(uploader)
        async with open_uploader(get_config()) as opened:
            return await action(opened)

    try:
        return asyncio.run(main())
    except UploaderError as e:
        logger.error(f"Command failed: {e}")
        return f"{RED}Error:{RESET} {e}"


def _watch_upload(bus: JobEventBus, printer: UploadProgressPrinter) -> None:
    bus.on('progress', printer.on_progress)
    bus.on('fileReady', printer.on_file_ready)


def _watch_remote(bus: JobEventBus, printer: UploadProgressPrinter) -> None:
    bus.on(TRANSCODING_STARTED, lambda file_hash, author: print(f"Transcoding {file_hash} started"))
    bus.on(TRANSCODING_PROGRESS, printer.on_remote_progress)
    bus.on(PIN_PROGRESS, printer.on_remote_progress)
    bus.on(TRANSCODING_DOWNSAMPLE_READY, lambda file_hash, size: print(f"\nDownsample {size} of {file_hash} ready"))


def handle_upload(cmd: UploadCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'upload' command.

    Args:
        cmd: UploadCommand with files
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Upload results or error message
    """
    logger.info(f"Executing upload command: {len(cmd.files)} files")

    async def action(up: Uploader) -> str:
        printer = UploadProgressPrinter()
        bus = up.add(list(cmd.files))
        _watch_upload(bus, printer)
        results, = await bus.result()
        printer.finish()
        return format_upload_results(results)

    return _run(action, uploader)


def handle_upload_dir(cmd: UploadDirCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'upload-dir' command.

    Args:
        cmd: UploadDirCommand with directory
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Directory root hash or error message
    """
    logger.info(f"Executing upload-dir command: {cmd.directory}")

    async def action(up: Uploader) -> str:
        result = await up.add_directory(cmd.directory)
        return f"{GREEN}✓{RESET} {result.path} -> {result.content_hash} ({format_file_size(result.size)})"

    return _run(action, uploader)


def handle_transcode(cmd: TranscodeCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'transcode' command.

    Args:
        cmd: TranscodeCommand with file_hash and optional author
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Transcoding result or error message
    """
    logger.info(f"Executing transcode command: {cmd.file_hash}")
    options = {'author': cmd.author} if cmd.author else {}

    async def action(up: Uploader) -> str:
        printer = UploadProgressPrinter(label="Transcoding")
        bus = up.transcode(cmd.file_hash, **options)
        _watch_remote(bus, printer)
        file_hash, result = await bus.result()
        printer.finish()
        return f"{GREEN}Transcoded{RESET} {file_hash}:\n{format_json(result)}"

    return _run(action, uploader)


def handle_add_transcode(cmd: AddTranscodeCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'add-transcode' command.

    Args:
        cmd: AddTranscodeCommand with files
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Upload and transcoding results or error message
    """
    logger.info(f"Executing add-transcode command: {len(cmd.files)} files")

    async def action(up: Uploader) -> str:
        printer = UploadProgressPrinter()
        uploaded: list = []
        bus = up.add_and_transcode(list(cmd.files))
        _watch_upload(bus, printer)
        bus.on('done', uploaded.extend)
        _watch_remote(bus, printer)
        file_hash, result = await bus.result()
        printer.finish()
        return f"{format_upload_results(uploaded)}\n{GREEN}Transcoded{RESET} {file_hash}:\n{format_json(result)}"

    return _run(action, uploader)


def handle_pin(cmd: PinCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'pin' command.

    Args:
        cmd: PinCommand with file_hash and size
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Success or error message
    """
    logger.info(f"Executing pin command: {cmd.file_hash}")

    async def action(up: Uploader) -> str:
        printer = UploadProgressPrinter(label="Pinning")
        bus = up.pin_file(cmd.file_hash, size=cmd.size)
        _watch_remote(bus, printer)
        file_hash, = await bus.result()
        printer.finish()
        return f"{GREEN}✓{RESET} Pinned {file_hash}"

    return _run(action, uploader)


def handle_metadata(cmd: MetadataCommand, uploader: Optional[Uploader] = None) -> str:
    """
    Handle 'metadata' command.

    Args:
        cmd: MetadataCommand with file_hash
        uploader: Optional Uploader for dependency injection (testing)

    Returns:
        Metadata as JSON or error message
    """
    logger.info(f"Executing metadata command: {cmd.file_hash}")

    async def action(up: Uploader) -> str:
        data = await up.get_metadata(cmd.file_hash)
        return format_json(data)

    return _run(action, uploader)


def handle_video(cmd: VideoCommand, client: Optional[VideosClient] = None) -> str:
    """
    Handle 'video' command.

    Args:
        cmd: VideoCommand with video_id
        client: Optional VideosClient for dependency injection (testing)

    Returns:
        Video record as JSON or error message
    """
    if client is None:
        client = get_db_client()
    return _query(lambda: client.get(cmd.video_id))


def handle_search(cmd: SearchCommand, client: Optional[VideosClient] = None) -> str:
    """
    Handle 'search' command.

    Args:
        cmd: SearchCommand with key/value filters
        client: Optional VideosClient for dependency injection (testing)

    Returns:
        Search results as JSON or error message
    """
    logger.info(f"Executing search command: {dict(cmd.options)}")
    if client is None:
        client = get_db_client()
    return _query(lambda: client.search(**dict(cmd.options)))


def _query(call: Callable[[], Any]) -> str:
    try:
        return format_json(call())
    except UploaderError as e:
        logger.error(f"Metadata query failed: {e}")
        return f"{RED}Error:{RESET} {e}"
