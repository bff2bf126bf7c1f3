"""Custom exception classes for the uploader."""

from typing import Any, Optional


class UploaderError(Exception):
    """
    Base exception class for all uploader errors.
    """
    pass


class ValidationError(UploaderError):
    """
    Raised synchronously when caller-supplied options do not match their schema.
    """

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class UploadIOError(UploaderError):
    """
    Raised when a local file cannot be read.
    """
    pass


class NotFoundError(UploadIOError):
    """
    Raised when a source path does not exist.
    """
    pass


class EngineError(UploaderError):
    """
    Raised by storage engine adapters when the engine rejects a request.
    """
    pass


class ConnectError(UploaderError):
    """
    Raised when the worker peer cannot be connected to or listed.
    """
    pass


class PeerNotFoundError(ConnectError):
    """
    Raised when the worker peer is not among the connected peers.
    """
    pass


class SendError(UploaderError):
    """
    Raised when a command cannot be transmitted to a peer.
    """
    pass


class ParseError(UploaderError):
    """
    Raised when an inbound peer message is malformed. Logged and dropped by the channel.
    """
    pass


class RemoteError(UploaderError):
    """
    Raised when the worker reports a failure; ``cause`` holds the reported error.
    """

    def __init__(self, command: str, content_hash: Optional[str], cause: Any = None):
        super().__init__(f"{command} for {content_hash or '<no hash>'}: {cause}")
        self.command = command
        self.content_hash = content_hash
        self.cause = cause


class JobTimeoutError(UploaderError):
    """
    Raised when a job receives no terminal event from the worker in time.
    """
    pass


class JobCancelledError(UploaderError):
    """
    Raised when awaiting a job that was cancelled.
    """
    pass


class JobLimitError(UploaderError):
    """
    Raised when the registry of active jobs is full.
    """
    pass
