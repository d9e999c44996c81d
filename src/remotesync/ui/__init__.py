"""
RemoteSync UI Package

Bridges agent events into a Qt tray application.
"""

from .signals import SyncSignals
from .tray import SyncTray
from .app import RemoteSyncApp

__all__ = ["SyncSignals", "SyncTray", "RemoteSyncApp"]
