"""
Qt Signals for thread-safe communication between SyncAgent and UI.

The SyncAgent reports events from its accept, reader and browser
threads, while the UI runs in the main Qt thread. These signals bridge
the two safely.
"""
from typing import Callable, Dict

from PySide6.QtCore import QObject, Signal


class SyncSignals(QObject):
    """
    Signal hub for sync-related events.

    All signals are thread-safe and can be emitted from any thread.
    """

    # Link established
    # Args: peer_name (str)
    connected = Signal(str)

    # Link gone
    disconnected = Signal()

    # Discovered peers changed
    # Args: peers (list of Peer)
    peers_changed = Signal(list)

    # Clipboard text received
    # Args: text (str)
    remote_clipboard = Signal(str)

    # File received
    # Args: name (str), data (bytes)
    remote_file = Signal(str, object)

    # Peer asked us to raise our window
    bring_to_front = Signal()

    # A background action (such as connecting) failed
    # Args: message (str)
    action_failed = Signal(str)

    def as_callbacks(self) -> Dict[str, Callable]:
        """Keyword arguments wiring a SyncAgent to these signals"""
        return {
            'on_connected': self.connected.emit,
            'on_disconnected': self.disconnected.emit,
            'on_peers': self.peers_changed.emit,
            'on_remote_clipboard': self.remote_clipboard.emit,
            'on_remote_file': self.remote_file.emit,
            'on_bring_to_front': self.bring_to_front.emit,
        }
