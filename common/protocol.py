"""Peer protocol message definitions (serialization formats)."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json


# Outbound commands understood by the transcoding worker.
CMD_TRANSCODE = "transcode"
CMD_PIN = "pin"
CMD_GET_METADATA = "getMetaData"

# Inbound commands sent back by the worker.
TRANSCODING_ERROR = "transcoding:error"
TRANSCODING_STARTED = "transcoding:started"
TRANSCODING_PROGRESS = "transcoding:progress"
UPLOADER_PROGRESS = "uploader:progress"
TRANSCODING_DOWNSAMPLE_READY = "transcoding:downsample:ready"
TRANSCODING_DONE = "transcoding:done"
PIN_ERROR = "pin:error"
PIN_PROGRESS = "pin:progress"
PIN_DONE = "pin:done"
GET_METADATA_ERROR = "getMetaData:error"
GET_METADATA_DONE = "getMetaData:done"

INBOUND_COMMANDS = (
    TRANSCODING_ERROR,
    TRANSCODING_STARTED,
    TRANSCODING_PROGRESS,
    UPLOADER_PROGRESS,
    TRANSCODING_DOWNSAMPLE_READY,
    TRANSCODING_DONE,
    PIN_ERROR,
    PIN_PROGRESS,
    PIN_DONE,
    GET_METADATA_ERROR,
    GET_METADATA_DONE,
)


def _to_text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode('utf-8')
    return str(value)


@dataclass(frozen=True)
class ProtocolCommand:
    """A named command plus its JSON-encoded argument payload."""
    command_name: str
    args_payload: bytes = b"{}"

    @classmethod
    def create(cls, command_name: str, args: Optional[Dict[str, Any]] = None) -> 'ProtocolCommand':
        """Build a command from a plain argument dict."""
        payload = json.dumps(args or {}, separators=(',', ':')).encode('utf-8')
        return cls(command_name=command_name, args_payload=payload)

    def args(self) -> Dict[str, Any]:
        """Decode the argument payload."""
        return json.loads(self.args_payload.decode('utf-8'))

    def to_json(self) -> bytes:
        """Serialize to the JSON envelope carried by the transport."""
        return json.dumps({
            'payload': self.command_name,
            'args': self.args_payload.decode('utf-8')
        }).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'ProtocolCommand':
        """Deserialize from the JSON envelope."""
        obj = json.loads(data)
        return cls(
            command_name=_to_text(obj['payload']),
            args_payload=_to_text(obj['args']).encode('utf-8')
        )


@dataclass(frozen=True)
class InboundEvent:
    """A parsed message received from a peer."""
    peer_id: str
    command_name: str
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def content_hash(self) -> Optional[str]:
        value = self.args.get('hash')
        return value if isinstance(value, str) else None


def parse_inbound(peer_id: str, raw: Any) -> InboundEvent:
    """
    Turn a raw message into an InboundEvent.

    ``raw`` is either a ProtocolCommand or any object exposing ``payload`` and
    ``args`` attributes holding bytes or text.

    Raises:
        ParseError: If the command name or the JSON args cannot be decoded
    """
    from uploader.exceptions import ParseError

    try:
        if isinstance(raw, ProtocolCommand):
            command_name, args_text = raw.command_name, raw.args_payload.decode('utf-8')
        else:
            command_name, args_text = _to_text(raw.payload), _to_text(raw.args)
    except (AttributeError, UnicodeDecodeError) as e:
        raise ParseError(f"Malformed command from {peer_id}: {e}") from e

    try:
        args = json.loads(args_text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Couldn't parse args of '{command_name}' from {peer_id}: {args_text!r}") from e

    if not isinstance(args, dict):
        raise ParseError(f"Args of '{command_name}' from {peer_id} are not an object: {args_text!r}")

    return InboundEvent(peer_id=peer_id, command_name=command_name, args=args)
