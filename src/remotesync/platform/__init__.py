"""
Platform abstraction layer with auto-detection

Describes the current platform and provides the desktop capability
implementation used by the sync agent.
"""
import sys

from .base import PlatformServices, PlatformInfo

_PLATFORM = sys.platform

if _PLATFORM == "win32":
    _platform_info = PlatformInfo(
        name="windows",
        display_name="Windows",
        supports_screenshot=True,
    )
elif _PLATFORM == "darwin":
    _platform_info = PlatformInfo(
        name="macos",
        display_name="macOS",
        supports_screenshot=True,
    )
elif _PLATFORM.startswith("linux"):
    _platform_info = PlatformInfo(
        name="linux",
        display_name="Linux",
        # ImageGrab needs an X11 display (or gnome-screenshot on Wayland)
        supports_screenshot=True,
    )
else:
    _platform_info = PlatformInfo(
        name=_PLATFORM,
        display_name=_PLATFORM,
        supports_screenshot=False,
    )


def get_platform_info() -> PlatformInfo:
    """Get information about the current platform"""
    return _platform_info


def get_platform_services() -> PlatformServices:
    """Create the capability implementation for this desktop"""
    from .desktop import DesktopPlatform
    return DesktopPlatform()


__all__ = [
    'PlatformServices',
    'PlatformInfo',
    'get_platform_info',
    'get_platform_services',
]
