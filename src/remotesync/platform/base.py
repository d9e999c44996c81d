"""
Base classes for platform abstraction
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class PlatformInfo:
    """Information about a platform"""
    name: str
    display_name: str
    supports_screenshot: bool


class PlatformServices(ABC):
    """
    Desktop capabilities the sync agent calls into

    All platform implementations must inherit from this class.
    """

    @abstractmethod
    def get_host_name(self) -> str:
        """Local display identity (the machine's host name)"""

    @abstractmethod
    def get_local_ip(self) -> str:
        """Address other devices on the LAN can reach us at"""

    @abstractmethod
    def pick_file(self) -> Optional[Path]:
        """
        Ask the user for a file to send

        Returns:
            The chosen path, or None if the dialog was dismissed
        """

    @abstractmethod
    def choose_save_path(self, suggested_name: str) -> Optional[Path]:
        """
        Ask the user where to save a received file

        Args:
            suggested_name: File name to pre-fill

        Returns:
            The chosen path, or None if the dialog was dismissed
        """

    @abstractmethod
    def capture_screenshot(self) -> Path:
        """
        Capture a screenshot into a temporary image file

        Returns:
            Path of the image (the caller deletes it)

        Raises:
            PlatformUnsupportedError: no capture facility on this platform
            UserCancelledError: the user aborted an interactive capture
        """


__all__ = ['PlatformServices', 'PlatformInfo']
