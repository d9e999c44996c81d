"""
Desktop implementation of the platform capabilities

- host name and LAN address come from the socket module
- file dialogs use Qt (a QApplication must be running)
- screenshots use `screencapture` on macOS and Pillow's ImageGrab elsewhere
"""
import socket
import logging
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import ImageGrab
from PySide6.QtWidgets import QApplication, QFileDialog

from remotesync import config
from remotesync.common.errors import PlatformUnsupportedError, UserCancelledError
from .base import PlatformServices
from . import get_platform_info

logger = logging.getLogger(__name__)


def _screenshot_path() -> Path:
    name = f"screenshot_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.jpg"
    return config.TEMP_DIR / name


class DesktopPlatform(PlatformServices):
    """Capabilities backed by the local desktop session"""

    def __init__(self, save_dir: Optional[Path] = None):
        self.save_dir = save_dir or Path.home() / 'Downloads'

    def get_host_name(self) -> str:
        try:
            name = socket.gethostname()
        except OSError:
            name = ""
        return name or "Unknown"

    def get_local_ip(self) -> str:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            # Doesn't actually connect, just determines the local interface
            s.connect(('8.8.8.8', 80))
            return s.getsockname()[0]
        except OSError:
            return '127.0.0.1'
        finally:
            s.close()

    def _require_qt(self):
        if QApplication.instance() is None:
            raise PlatformUnsupportedError("File dialogs need a running Qt application")

    def pick_file(self) -> Optional[Path]:
        self._require_qt()
        path, _ = QFileDialog.getOpenFileName(None, "Send file")
        return Path(path) if path else None

    def choose_save_path(self, suggested_name: str) -> Optional[Path]:
        self._require_qt()
        path, _ = QFileDialog.getSaveFileName(None, "Save file", str(self.save_dir / suggested_name))
        return Path(path) if path else None

    def capture_screenshot(self) -> Path:
        if not get_platform_info().supports_screenshot:
            raise PlatformUnsupportedError(
                f"Screenshot capture is not supported on {get_platform_info().display_name}"
            )
        path = _screenshot_path()
        if sys.platform == 'darwin':
            return self._capture_macos(path)
        return self._capture_imagegrab(path)

    def _capture_macos(self, path: Path) -> Path:
        # Interactive selection, no sound
        result = subprocess.run(
            ['screencapture', '-i', '-x', '-t', 'jpg', str(path)],
            check=False
        )
        if result.returncode != 0 or not path.exists():
            raise UserCancelledError("Screenshot cancelled or failed")
        return path

    def _capture_imagegrab(self, path: Path) -> Path:
        try:
            image = ImageGrab.grab()
        except OSError as e:
            raise PlatformUnsupportedError(f"Screenshot capture is not supported here: {e}") from e
        image.convert('RGB').save(path, 'JPEG', quality=90)
        logger.debug(f"Screenshot saved to {path}")
        return path
