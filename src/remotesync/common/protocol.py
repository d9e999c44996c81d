"""
Protocol for the RemoteSync link

Frame Format:
┌──────────────┬──────────────────────────────────┐
│ Header (4B)  │ Record (JSON, UTF-8)             │
│ Record Length│ exactly one message per frame    │
└──────────────┴──────────────────────────────────┘

Records are tagged by their "type" field:
    {"type": "Hello", "name": "..."}
    {"type": "Clipboard", "text": "..."}
    {"type": "File", "name": "...", "data": "<base64>"}
    {"type": "BringToFront"}
"""
import json
import base64
import struct
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from remotesync.common.errors import DecodeError, FrameTooLargeError, OutgoingTooLargeError

logger = logging.getLogger(__name__)

HEADER_SIZE = 4

# Base64 inflates file payloads by a third, so this allows files of ~190MB
MAX_MESSAGE_SIZE = 256 * 1024 * 1024
# One full frame plus one socket read of the next
MAX_BUFFER_SIZE = MAX_MESSAGE_SIZE + HEADER_SIZE + 65536


class MessageType:
    """Record tags"""
    HELLO = "Hello"
    CLIPBOARD = "Clipboard"
    FILE = "File"
    BRING_TO_FRONT = "BringToFront"


@dataclass
class Hello:
    """Identity handshake sent by the connecting side"""
    name: str
    type: str = field(default=MessageType.HELLO, init=False, repr=False)

    def to_dict(self) -> dict:
        return {'type': self.type, 'name': self.name}

    @classmethod
    def from_dict(cls, data: dict) -> 'Hello':
        return cls(name=_require_str(data, 'name'))


@dataclass
class Clipboard:
    """Clipboard text"""
    text: str
    type: str = field(default=MessageType.CLIPBOARD, init=False, repr=False)

    def to_dict(self) -> dict:
        return {'type': self.type, 'text': self.text}

    @classmethod
    def from_dict(cls, data: dict) -> 'Clipboard':
        return cls(text=_require_str(data, 'text'))


@dataclass
class File:
    """A whole file. data is carried as base64 text on the wire."""
    name: str
    data: bytes
    type: str = field(default=MessageType.FILE, init=False, repr=False)

    def __repr__(self) -> str:
        return f"File(name={self.name!r}, size={len(self.data)})"

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'name': self.name,
            'data': base64.b64encode(self.data).decode('ascii')
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'File':
        name = _require_str(data, 'name')
        encoded = _require_str(data, 'data')
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Invalid base64 file data: {e}") from e
        return cls(name=name, data=raw)


@dataclass
class BringToFront:
    """Ask the peer to raise its window"""
    type: str = field(default=MessageType.BRING_TO_FRONT, init=False, repr=False)

    def to_dict(self) -> dict:
        return {'type': self.type}

    @classmethod
    def from_dict(cls, data: dict) -> 'BringToFront':
        return cls()


Message = Union[Hello, Clipboard, File, BringToFront]

_MESSAGE_CLASSES = {
    MessageType.HELLO: Hello,
    MessageType.CLIPBOARD: Clipboard,
    MessageType.FILE: File,
    MessageType.BRING_TO_FRONT: BringToFront,
}


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"Field '{key}' missing or not a string")
    return value


def _safe_json_parse(data: bytes, expected_keys: Optional[List[str]] = None) -> Tuple[bool, Any]:
    """
    Parse JSON without raising

    Returns: (True, parsed) on success or (False, error description)
    """
    try:
        parsed = json.loads(data.decode('utf-8'))
    except UnicodeDecodeError as e:
        return (False, f"Invalid UTF-8: {e}")
    except json.JSONDecodeError as e:
        return (False, f"Invalid JSON: {e}")

    if expected_keys:
        if not isinstance(parsed, dict):
            return (False, "Expected a JSON object")
        missing = [k for k in expected_keys if k not in parsed]
        if missing:
            return (False, f"Missing keys: {', '.join(missing)}")

    return (True, parsed)


def encode_message(message: Message) -> bytes:
    """Encode a message into one wire record (no frame header)"""
    return json.dumps(message.to_dict(), separators=(',', ':')).encode('utf-8')


def decode_message(record: bytes) -> Message:
    """
    Decode one wire record

    Raises: DecodeError for malformed records and unknown tags
    """
    success, result = _safe_json_parse(record, expected_keys=['type'])
    if not success:
        raise DecodeError(result)

    tag = result['type']
    msg_class = _MESSAGE_CLASSES.get(tag) if isinstance(tag, str) else None
    if msg_class is None:
        raise DecodeError(f"Unknown message type: {tag!r}")
    return msg_class.from_dict(result)


def build_frame(message: Message) -> bytes:
    """
    Encode a message and prepend the frame header

    Raises: OutgoingTooLargeError if the record exceeds MAX_MESSAGE_SIZE
    """
    record = encode_message(message)
    if len(record) > MAX_MESSAGE_SIZE:
        raise OutgoingTooLargeError(
            f"Message of {len(record)} bytes exceeds limit of {MAX_MESSAGE_SIZE}"
        )
    return struct.pack('>I', len(record)) + record


class MessageParser:
    """Reassemble frames from a byte stream"""

    def __init__(self, max_message_size: int = MAX_MESSAGE_SIZE):
        self.buffer = bytearray()
        self.max_message_size = max_message_size
        self.max_buffer_size = max_message_size + (MAX_BUFFER_SIZE - MAX_MESSAGE_SIZE)

    def feed(self, data: bytes) -> bool:
        """
        Feed data into the parser buffer

        Returns: False (and drops the data) if it would overflow the buffer
        """
        if len(self.buffer) + len(data) > self.max_buffer_size:
            logger.warning("Parser buffer overflow, dropping %d bytes", len(data))
            return False
        self.buffer.extend(data)
        return True

    def parse_one(self) -> Optional[bytes]:
        """
        Try to take one complete record from the buffer

        Returns: the record bytes, or None if incomplete
        Raises: FrameTooLargeError if the header announces an oversized frame
        """
        if len(self.buffer) < HEADER_SIZE:
            return None

        msg_len = struct.unpack('>I', self.buffer[:HEADER_SIZE])[0]
        if msg_len > self.max_message_size:
            raise FrameTooLargeError(
                f"Frame of {msg_len} bytes exceeds limit of {self.max_message_size}"
            )

        total_needed = HEADER_SIZE + msg_len
        if len(self.buffer) < total_needed:
            return None

        record = bytes(self.buffer[HEADER_SIZE:total_needed])
        del self.buffer[:total_needed]
        return record
