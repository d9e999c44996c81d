"""
SyncTray - System tray icon for RemoteSync.
Shows the link status and offers every send action in its menu.
"""

import logging
import platform
from typing import List

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QAction, QColor, QIcon, QPainter, QPixmap
from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon

from remotesync.common.discovery import Peer

logger = logging.getLogger(__name__)

IS_MAC = platform.system() == "Darwin"


def create_tray_icon(connected: bool = False, hosting: bool = False) -> QIcon:
    """Two overlapping screens, green while linked"""
    size = 32 if IS_MAC else 16
    pixmap = QPixmap(size, size)
    pixmap.fill(Qt.transparent)

    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing)

    color = QColor("#107c10") if connected else QColor("#666666")
    painter.setPen(Qt.NoPen)
    painter.setBrush(color)

    s = size / 16.0

    painter.drawRoundedRect(int(1 * s), int(2 * s), int(9 * s), int(7 * s), int(1 * s), int(1 * s))
    painter.drawRoundedRect(int(6 * s), int(7 * s), int(9 * s), int(7 * s), int(1 * s), int(1 * s))

    # Screen faces
    painter.setBrush(QColor("#ffffff"))
    painter.drawRect(int(2 * s), int(3 * s), int(7 * s), int(5 * s))
    painter.drawRect(int(7 * s), int(8 * s), int(7 * s), int(5 * s))

    # Sharing dot
    if hosting:
        painter.setBrush(QColor("#0078d4"))
        painter.drawEllipse(int(11 * s), int(1 * s), int(4 * s), int(4 * s))

    painter.end()
    return QIcon(pixmap)


class SyncTray(QSystemTrayIcon):
    """
    System tray icon with the RemoteSync menu.

    The tray only displays state. RemoteSyncApp connects the menu actions
    to the agent.
    """

    # Args: peer (Peer)
    peer_selected = Signal(object)

    def __init__(self, app: QApplication, parent=None):
        super().__init__(parent)

        self.app = app

        self._connected = False
        self._hosting = False
        self._peer_name = ""

        self.setIcon(create_tray_icon())
        self.setToolTip("RemoteSync - Not connected")
        self._setup_menu()

    def _setup_menu(self):
        menu = QMenu()

        # Status (disabled, just for display)
        self.status_action = QAction("Not connected", menu)
        self.status_action.setEnabled(False)
        menu.addAction(self.status_action)

        menu.addSeparator()

        self.share_action = QAction("Share this device", menu)
        self.share_action.setCheckable(True)
        menu.addAction(self.share_action)

        self.devices_menu = menu.addMenu("Connect to")
        self.set_peers([])

        menu.addSeparator()

        self.send_clipboard_action = QAction("Send clipboard", menu)
        self.send_file_action = QAction("Send file...", menu)
        self.screenshot_action = QAction("Send screenshot", menu)
        self.front_action = QAction("Bring peer to front", menu)
        self.disconnect_action = QAction("Disconnect", menu)
        self._link_actions = [
            self.send_clipboard_action,
            self.send_file_action,
            self.screenshot_action,
            self.front_action,
            self.disconnect_action,
        ]
        for action in self._link_actions:
            action.setEnabled(False)
            menu.addAction(action)

        menu.addSeparator()

        self.quit_action = QAction("Quit", menu)
        self.quit_action.triggered.connect(self.app.quit)
        menu.addAction(self.quit_action)

        self.menu = menu
        self.setContextMenu(menu)

    def set_peers(self, peers: List[Peer]):
        """Rebuild the Connect to submenu"""
        self.devices_menu.clear()
        if not peers:
            placeholder = self.devices_menu.addAction("No devices found")
            placeholder.setEnabled(False)
            return
        for peer in peers:
            action = self.devices_menu.addAction(f"{peer.name} ({peer.host})")
            action.triggered.connect(lambda checked=False, p=peer: self.peer_selected.emit(p))

    def set_hosting(self, hosting: bool):
        self._hosting = hosting
        self.share_action.setChecked(hosting)
        self._update_icon()

    def update_connection_status(self, connected: bool, peer_name: str = ""):
        self._connected = connected
        self._peer_name = peer_name
        self._update_icon()

        for action in self._link_actions:
            action.setEnabled(connected)

        if connected:
            self.setToolTip(f"RemoteSync - {peer_name}")
            self.status_action.setText(f"Connected to {peer_name}")
        else:
            self.setToolTip("RemoteSync - Not connected")
            self.status_action.setText("Not connected")

    def notify(self, title: str, message: str, warning: bool = False):
        icon = QSystemTrayIcon.Warning if warning else QSystemTrayIcon.Information
        self.showMessage(title, message, icon, 3000)

    def _update_icon(self):
        self.setIcon(create_tray_icon(connected=self._connected, hosting=self._hosting))
