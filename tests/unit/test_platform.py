"""
Unit tests for the platform layer - Desktop capabilities
"""
import pytest
import sys

from PIL import Image

from remotesync import config
from remotesync.common.errors import PlatformUnsupportedError
from remotesync.platform import get_platform_info, get_platform_services
from remotesync.platform.desktop import DesktopPlatform


class TestPlatformInfo:

    def test_current_platform_described(self):
        info = get_platform_info()
        assert info.name
        assert info.display_name

    def test_services_are_desktop(self):
        assert isinstance(get_platform_services(), DesktopPlatform)


class TestDesktopPlatform:

    def test_host_name(self):
        assert DesktopPlatform().get_host_name()

    def test_local_ip_is_ipv4(self):
        parts = DesktopPlatform().get_local_ip().split('.')
        assert len(parts) == 4
        assert all(p.isdigit() for p in parts)

    def test_default_save_dir(self):
        assert DesktopPlatform().save_dir.name == 'Downloads'

    def test_dialogs_need_qt_application(self):
        platform = DesktopPlatform()
        with pytest.raises(PlatformUnsupportedError):
            platform.pick_file()
        with pytest.raises(PlatformUnsupportedError):
            platform.choose_save_path("a.txt")


@pytest.mark.skipif(sys.platform == 'darwin', reason="macOS uses screencapture")
class TestImageGrabScreenshot:

    def test_capture_writes_jpeg(self, monkeypatch):
        monkeypatch.setattr(
            "remotesync.platform.desktop.ImageGrab.grab",
            lambda: Image.new('RGBA', (8, 8), (255, 0, 0, 255))
        )
        path = DesktopPlatform().capture_screenshot()
        try:
            assert path.parent == config.TEMP_DIR
            assert path.suffix == '.jpg'
            with Image.open(path) as image:
                assert image.format == 'JPEG'
        finally:
            path.unlink(missing_ok=True)

    def test_grab_failure_is_unsupported(self, monkeypatch):
        def no_display():
            raise OSError("X connection failed")

        monkeypatch.setattr("remotesync.platform.desktop.ImageGrab.grab", no_display)
        with pytest.raises(PlatformUnsupportedError):
            DesktopPlatform().capture_screenshot()
