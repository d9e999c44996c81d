"""
RemoteSyncApp - Qt tray application

Runs a SyncAgent behind a system tray icon. Agent callbacks arrive on
worker threads and reach the UI through SyncSignals, so every slot here
runs on the Qt main thread.
"""

import logging
import sys
import threading
from typing import Callable, List, Optional

from PySide6.QtCore import QObject
from PySide6.QtWidgets import QApplication

from remotesync.agent import SyncAgent
from remotesync.common.discovery import Peer
from remotesync.common.errors import RemoteSyncError, get_error_from_exception
from remotesync.common.user_config import SyncConfig

from .signals import SyncSignals
from .tray import SyncTray

logger = logging.getLogger(__name__)


def _preview(text: str, limit: int = 60) -> str:
    text = text.replace('\n', ' ').replace('\r', '')
    return text[:limit] + "..." if len(text) > limit else text


class RemoteSyncApp(QObject):
    """
    Main application class for the tray UI.

    Manages:
    - Qt application lifecycle
    - the SyncAgent and its browsing session
    - routing agent events to the tray and the clipboard
    """

    def __init__(self, user_config: SyncConfig, agent_factory: Callable[..., SyncAgent] = SyncAgent):
        super().__init__()

        self.user_config = user_config
        self._agent_factory = agent_factory

        # Signal bridge for thread-safe communication
        self.signals = SyncSignals()

        self._app: Optional[QApplication] = None
        self._tray: Optional[SyncTray] = None
        self.agent: Optional[SyncAgent] = None

    @property
    def tray(self) -> Optional[SyncTray]:
        return self._tray

    def setup(self):
        """Create the agent and the tray and wire them together"""
        self._app = QApplication.instance() or QApplication(sys.argv)
        self._app.setApplicationName("RemoteSync")
        self._app.setQuitOnLastWindowClosed(False)  # Keep running in tray

        self.agent = self._agent_factory(
            port=self.user_config.port,
            host_name=self.user_config.device_name or None,
            retry_policy=self.user_config.retry_policy(),
            drop_link_on_decode_error=self.user_config.drop_link_on_decode_error,
            **self.signals.as_callbacks()
        )
        self._tray = SyncTray(self._app)
        self._connect_signals()

    def start(self) -> int:
        """
        Show the tray, start browsing and run the Qt event loop.

        Returns:
            Exit code from Qt application
        """
        self.setup()
        self._tray.show()
        self._run_action(self.agent.start_browse)

        logger.info("Tray app started")
        try:
            return self._app.exec()
        finally:
            self.stop()

    def stop(self):
        logger.info("Stopping tray app...")
        if self.agent:
            self.agent.shutdown()
        if self._tray:
            self._tray.hide()

    def _connect_signals(self):
        """Connect agent signals and tray actions."""
        self.signals.connected.connect(self._on_connected)
        self.signals.disconnected.connect(self._on_disconnected)
        self.signals.peers_changed.connect(self._on_peers_changed)
        self.signals.remote_clipboard.connect(self._on_remote_clipboard)
        self.signals.remote_file.connect(self._on_remote_file)
        self.signals.bring_to_front.connect(self._on_bring_to_front)
        self.signals.action_failed.connect(self._on_action_failed)

        self._tray.share_action.triggered.connect(self._toggle_share)
        self._tray.peer_selected.connect(self.connect_to_peer)
        self._tray.send_clipboard_action.triggered.connect(self.send_clipboard)
        self._tray.send_file_action.triggered.connect(lambda: self._run_action(self.agent.pick_and_send_file))
        self._tray.screenshot_action.triggered.connect(
            lambda: self._run_action(self.agent.capture_screenshot_and_send)
        )
        self._tray.front_action.triggered.connect(lambda: self._run_action(self.agent.send_bring_to_front))
        self._tray.disconnect_action.triggered.connect(self.agent.disconnect)

    # ========== Agent events ==========

    def _on_connected(self, peer_name: str):
        self._tray.update_connection_status(True, peer_name)
        self._tray.set_hosting(self.agent.is_hosting)
        self._tray.notify("Connected", peer_name)

    def _on_disconnected(self):
        # A hosting session ends with its link
        self._tray.update_connection_status(False)
        self._tray.set_hosting(self.agent.is_hosting)

    def _on_peers_changed(self, peers: List[Peer]):
        self._tray.set_peers(peers)

    def _on_remote_clipboard(self, text: str):
        QApplication.clipboard().setText(text)
        self._tray.notify("Text received", _preview(text))

    def _on_remote_file(self, name: str, data: bytes):
        saved = self._run_action(self.agent.save_received_file, name, data)
        if saved:
            self._tray.notify("File saved", saved)

    def _on_bring_to_front(self):
        self._tray.notify("RemoteSync", "Your peer is asking for attention")

    def _on_action_failed(self, message: str):
        self._tray.notify("RemoteSync", message, warning=True)

    # ========== User actions ==========

    def _run_action(self, action: Callable, *args):
        """Run an agent call, turning RemoteSync errors into a notification"""
        try:
            return action(*args)
        except RemoteSyncError as e:
            logger.warning(f"{action.__name__} failed: {e}")
            self._show_error(e)
            return None

    def _show_error(self, exc: RemoteSyncError):
        error = get_error_from_exception(exc)
        self.signals.action_failed.emit(f"{exc}\n{error.suggestion}")

    def _toggle_share(self, checked: bool):
        if checked:
            self._run_action(self.agent.start_host)
        else:
            self.agent.stop_host()
        self._tray.set_hosting(self.agent.is_hosting)

    def send_clipboard(self):
        text = QApplication.clipboard().text()
        if not text:
            self._tray.notify("RemoteSync", "Clipboard is empty")
            return
        self._run_action(self.agent.send_clipboard, text)

    def connect_to_peer(self, peer: Peer) -> threading.Thread:
        """Dial a peer off the UI thread. Failures come back as action_failed."""
        def dial():
            try:
                self.agent.connect_to(peer.host, peer.port)
            except RemoteSyncError as e:
                logger.warning(f"Could not connect to {peer.name}: {e}")
                self._show_error(e)

        worker = threading.Thread(target=dial, name="remotesync-dial", daemon=True)
        worker.start()
        return worker
