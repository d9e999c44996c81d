"""
Configuration for RemoteSync
"""
import os
import sys
import tempfile
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Network Settings
PORT = 18765
BUFFER_SIZE = 65536  # 64KB socket reads

# Peer Discovery
SERVICE_TYPE = "_remotesync._tcp.local."
SERVICE_PREFIX = "RemoteSync-"
BROWSE_POLL_INTERVAL = 0.5  # seconds the browser waits for the next event
RESOLVE_TIMEOUT_MS = 3000

# Connect policy
CONNECT_TIMEOUT = 15.0  # seconds per attempt
CONNECT_MAX_ATTEMPTS = 3
CONNECT_RETRY_DELAY = 0.5  # seconds between attempts

# Link
OUTBOUND_QUEUE_SIZE = 32
SEND_TIMEOUT = 5.0  # seconds to wait for room in a full outbound queue

# Paths
TEMP_DIR = Path(tempfile.gettempdir()) / 'remotesync'
TEMP_DIR.mkdir(parents=True, exist_ok=True)

# Logging
LOG_LEVEL = "INFO"
LOG_FILE = TEMP_DIR / "remotesync.log"


def get_data_dir() -> Path:
    """Platform-specific directory for user data (config file).

    Works the same when the application is frozen, where __file__ points
    into a temporary unpack directory.
    """
    if sys.platform == 'win32':
        base = Path(os.environ.get('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    d = base / 'RemoteSync'
    d.mkdir(parents=True, exist_ok=True)
    return d
