"""Common modules for RemoteSync"""
from .protocol import (
    MessageType,
    Hello,
    Clipboard,
    File,
    BringToFront,
    MessageParser,
    encode_message,
    decode_message,
    build_frame,
)
from .discovery import Peer, PeerBrowser, ServiceAdvertiser
from .link import Link, LinkRole

__all__ = [
    'MessageType',
    'Hello',
    'Clipboard',
    'File',
    'BringToFront',
    'MessageParser',
    'encode_message',
    'decode_message',
    'build_frame',
    'Peer',
    'PeerBrowser',
    'ServiceAdvertiser',
    'Link',
    'LinkRole',
]
