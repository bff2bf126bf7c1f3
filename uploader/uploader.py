"""
Uploader facade: upload, pin, transcode and metadata use cases.

Every use case returns (or awaits) a JobEventBus. Option bags are validated
synchronously before any I/O; everything after that reports through the bus.
"""

import asyncio
from typing import Any, Coroutine, Dict, Optional, Sequence, Set, Union

from common.constants import DEFAULT_AUTHOR, EMPTY_HASH_RESULT
from common.logging_config import get_logger
from common.protocol import (
    CMD_GET_METADATA,
    CMD_PIN,
    CMD_TRANSCODE,
    TRANSCODING_DONE,
    TRANSCODING_ERROR,
)
from common.types import FileUnit, UploadResult
from uploader.chunked_uploader import ChunkedUploader
from uploader.command_channel import CommandChannel
from uploader.config import (
    MetaDataOptions,
    PinOptions,
    TranscodeOptions,
    UploaderSettings,
    validate_options,
)
from uploader.engine import StorageEngine
from uploader.event_bus import JobEventBus
from uploader.exceptions import JobTimeoutError, UploaderError, ValidationError
from uploader.file_source import Source, normalize
from uploader.job_registry import (
    KIND_METADATA,
    KIND_PIN,
    KIND_TRANSCODE,
    TERMINAL_EVENTS,
    JobDescriptor,
    JobRegistry,
)
from uploader.peer_signaler import PeerSignaler, resolve_peer_id

logger = get_logger(__name__)


class Uploader:
    """
    Uploads files into the storage engine and signals the transcoding worker.
    """

    def __init__(self, engine: StorageEngine, settings: Optional[UploaderSettings] = None):
        """
        Initialize the uploader.

        Args:
            engine: Storage engine handle, shared by every job
            settings: Process-wide settings (defaults when omitted)
        """
        self.settings = settings or UploaderSettings()
        self.engine = engine
        self.registry = JobRegistry(self.settings.max_active_jobs)
        self.chunked_uploader = ChunkedUploader(engine, self.settings.chunk_size)
        self.signaler = PeerSignaler(
            engine,
            connect_retries=self.settings.connect_retries,
            backoff=self.settings.retry_backoff_multiplier
        )
        self.channel = CommandChannel(
            engine,
            self.registry,
            send_retries=self.settings.send_retries,
            backoff=self.settings.retry_backoff_multiplier
        )
        self._tasks: Set[asyncio.Task] = set()

    def add(self, files: Union[Source, Sequence[Source]], bus: Optional[JobEventBus] = None) -> JobEventBus:
        """
        Upload one or more paths / file objects to the local storage node.

        Raises:
            NotFoundError: If a path does not exist
            ValidationError: If a file exceeds max_file_size
        """
        if isinstance(files, (list, tuple)):
            sources = list(files)
        else:
            sources = [files]

        units = [normalize(source) for source in sources]
        for unit in units:
            if unit.size > self.settings.max_file_size:
                raise ValidationError(
                    f"{unit.name} is {unit.size} bytes, larger than max_file_size={self.settings.max_file_size}"
                )
        return self.upload(units, bus)

    def upload(self, units: Sequence[FileUnit], bus: Optional[JobEventBus] = None) -> JobEventBus:
        """Ingest already-normalized units. See ChunkedUploader.ingest for events."""
        return self.chunked_uploader.ingest(units, bus)

    async def add_directory(self, dir_path: str) -> UploadResult:
        """Upload a whole directory and return the directory's record."""
        return await self.chunked_uploader.add_directory(dir_path)

    def transcode(self, file_hash: str, bus: Optional[JobEventBus] = None, **options: Any) -> JobEventBus:
        """
        Signal the worker to transcode file_hash.

        Options: author, transcoder, transcoder_id, size, timeout.

        Events: uploader:progress(hash, chunkSize, percent), transcoding:started(hash, author),
        transcoding:progress(hash, size, percent), transcoding:downsample:ready(hash, size),
        transcoding:done(hash, result), transcoding:error(err).

        An empty file_hash emits transcoding:done('', {"test": 1}) right away
        without touching the network.

        Raises:
            ValidationError: If options are invalid
            JobLimitError: If too many jobs are active
        """
        opts = validate_options(TranscodeOptions, options)
        bus = self._job_bus(KIND_TRANSCODE, file_hash, bus)

        if file_hash == '':
            logger.info("Empty hash, emitting placeholder transcoding result")
            bus.emit(TRANSCODING_DONE, '', dict(EMPTY_HASH_RESULT))
            return bus

        logger.info(f"Signaling transcoder for {file_hash}...")
        job = self._create_job(KIND_TRANSCODE, file_hash, opts, bus, author=opts.author, size=opts.size)
        self._spawn(self._signal(job, CMD_TRANSCODE, {'hash': file_hash, 'author': opts.author, 'size': opts.size}))
        return bus

    def pin_file(self, file_hash: str, bus: Optional[JobEventBus] = None, **options: Any) -> JobEventBus:
        """
        Ask the worker to pin file_hash.

        Options: author, transcoder, transcoder_id, size, timeout.
        Events: pin:progress(hash, chunkSize, percent), pin:done(hash), pin:error(err).

        Raises:
            ValidationError: If options are invalid
            JobLimitError: If too many jobs are active
        """
        opts = validate_options(PinOptions, options)
        bus = self._job_bus(KIND_PIN, file_hash, bus)

        logger.info(f"Signaling pin for {file_hash}...")
        job = self._create_job(KIND_PIN, file_hash, opts, bus, author=opts.author, size=opts.size)
        self._spawn(self._signal(job, CMD_PIN, {'hash': file_hash, 'author': opts.author, 'size': opts.size}))
        return bus

    async def get_metadata(self, file_hash: str, **options: Any) -> Any:
        """
        Ask the worker for the media metadata of file_hash.

        Options: transcoder, transcoder_id, timeout.

        Returns:
            The ``data`` field of the worker's getMetaData:done reply

        Raises:
            ValidationError: If options are invalid
            RemoteError: If the worker reports getMetaData:error
            ConnectError, SendError: If the worker can't be reached
            JobTimeoutError: If the timeout elapses first
        """
        opts = validate_options(MetaDataOptions, options)
        bus = self._job_bus(KIND_METADATA, file_hash, None)

        logger.info(f"Signaling transcoder getMetaData for {file_hash}...")
        job = self._create_job(KIND_METADATA, file_hash, opts, bus)
        self._spawn(self._signal(job, CMD_GET_METADATA, {'hash': file_hash}))

        try:
            _, data = await bus.result()
        except asyncio.CancelledError:
            bus.cancel()
            raise
        return data

    def add_and_transcode(self, files: Union[Source, Sequence[Source]]) -> JobEventBus:
        """
        Upload files, then signal the worker to transcode the first one.

        Upload and transcoding events share one bus; it closes on error,
        transcoding:done or transcoding:error.
        """
        bus = JobEventBus(
            name="add-and-transcode",
            terminal_events=('error', TRANSCODING_DONE, TRANSCODING_ERROR)
        )

        def on_uploaded(results):
            try:
                self.signal_transcoder(results, bus)
            except UploaderError as e:
                logger.error(f"Could not signal transcoder after upload: {e}")
                bus.emit(TRANSCODING_ERROR, e)

        bus.on('done', on_uploaded)
        return self.add(files, bus)

    def signal_transcoder(
        self,
        files: Union[UploadResult, Sequence[UploadResult]],
        bus: Optional[JobEventBus] = None
    ) -> JobEventBus:
        """Transcode the first uploaded file; an empty list sends the empty hash."""
        if isinstance(files, UploadResult):
            file = files
        elif files:
            file = files[0]
        else:
            file = None

        if file is None:
            return self.transcode('', bus=bus, author=DEFAULT_AUTHOR)
        return self.transcode(file.content_hash, bus=bus, author=DEFAULT_AUTHOR, size=file.size)

    async def close(self) -> None:
        """Stop listening, cancel outstanding jobs and wait for signaling tasks."""
        self.channel.stop()
        for job in self.registry.active():
            job.bus.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _job_bus(self, kind: str, file_hash: str, bus: Optional[JobEventBus]) -> JobEventBus:
        terminal = TERMINAL_EVENTS[kind]
        if bus is None:
            return JobEventBus(name=f"{kind}:{file_hash or '<empty>'}", terminal_events=terminal)
        bus.add_terminal_events(*terminal)
        return bus

    def _create_job(
        self,
        kind: str,
        file_hash: str,
        opts: Union[TranscodeOptions, MetaDataOptions],
        bus: JobEventBus,
        author: str = DEFAULT_AUTHOR,
        size: int = 0
    ) -> JobDescriptor:
        address = opts.transcoder or self.settings.default_transcoder
        peer_id = opts.transcoder_id or resolve_peer_id(address)
        job = JobDescriptor(
            kind=kind,
            content_hash=file_hash,
            worker_address=address,
            worker_peer_id=peer_id,
            bus=bus,
            author=author,
            size=size,
            extra=dict(opts.model_extra or {})
        )
        self.registry.register(job)
        self.channel.start()

        timeout = opts.timeout or self.settings.job_timeout
        if timeout:
            handle = asyncio.get_running_loop().call_later(timeout, self._expire, job, timeout)
            bus.add_close_callback(lambda event, args: handle.cancel())
        return job

    def _expire(self, job: JobDescriptor, timeout: float) -> None:
        if job.bus.closed:
            return
        logger.warning(f"{job.kind} job for {job.content_hash} timed out after {timeout}s")
        job.bus.emit(job.error_event, JobTimeoutError(
            f"No reply from {job.worker_peer_id} for {job.kind} {job.content_hash} within {timeout}s"
        ))

    async def _signal(self, job: JobDescriptor, command_name: str, args: Dict[str, Any]) -> None:
        try:
            peer = await self.signaler.locate(job.worker_address, job.worker_peer_id)
            if job.bus.closed:
                logger.info(f"{job.kind} job for {job.content_hash} closed before sending")
                return
            logger.info(f"Sending {command_name} msg to {peer.peer_id} for {job.content_hash}")
            await self.channel.send(peer.peer_id, command_name, args)
        except UploaderError as e:
            job.bus.emit(job.error_event, e)
        except Exception as e:
            logger.error(f"Signaling {command_name} for {job.content_hash} failed: {e}", exc_info=True)
            job.bus.emit(job.error_event, e)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
