"""
Session state shared by the agent's threads

Everything describing "what is running right now" lives in one record
behind one lock, and every transition that touches several fields happens
in a single critical section. Callers get back what they need to act on
(links to close, discovery handles to stop) and do the slow work outside
the lock.
"""
import socket
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

from remotesync.common.discovery import PeerBrowser, ServiceAdvertiser
from remotesync.common.errors import AlreadyActiveError
from remotesync.common.link import Link, LinkRole


@dataclass
class HostingSession:
    """Handles owned by one hosting session"""
    listener: socket.socket
    advertiser: Optional[ServiceAdvertiser] = None
    identity: str = ""
    port: int = field(init=False)

    def __post_init__(self):
        # The listener is closed once a peer is accepted
        self.port = self.listener.getsockname()[1]


class SessionState:
    """Hosting/browsing flags, the active link and its peer name"""

    def __init__(self):
        self._lock = threading.RLock()
        self._hosting = False
        self._hosting_session: Optional[HostingSession] = None
        self._browser: Optional[PeerBrowser] = None
        self._link: Optional[Link] = None
        self._peer_name: Optional[str] = None

    # ========== Read access ==========

    @property
    def hosting(self) -> bool:
        with self._lock:
            return self._hosting

    @property
    def browsing(self) -> bool:
        with self._lock:
            return self._browser is not None

    @property
    def browser(self) -> Optional[PeerBrowser]:
        with self._lock:
            return self._browser

    @property
    def link(self) -> Optional[Link]:
        with self._lock:
            return self._link

    @property
    def peer_name(self) -> Optional[str]:
        with self._lock:
            return self._peer_name

    @property
    def hosting_session(self) -> Optional[HostingSession]:
        with self._lock:
            return self._hosting_session

    def connection(self) -> Tuple[Optional[Link], Optional[str]]:
        """The active link and peer name, read together"""
        with self._lock:
            return self._link, self._peer_name

    # ========== Hosting ==========

    def claim_hosting(self):
        """
        Mark hosting as started

        Raises: AlreadyActiveError if a hosting session is running
        """
        with self._lock:
            if self._hosting:
                raise AlreadyActiveError("Already hosting")
            self._hosting = True

    def set_hosting_session(self, session: HostingSession) -> bool:
        """Attach listener/advertiser. False if hosting was stopped meanwhile."""
        with self._lock:
            if not self._hosting:
                return False
            self._hosting_session = session
            return True

    def end_hosting(self, session: Optional[HostingSession] = None) -> Tuple[Optional[HostingSession], Optional[Link]]:
        """
        Clear the hosting flag and take the session handles

        With a session given, only that session is ended; a newer one is
        left alone. Returns the session and any host-role link to close.
        """
        with self._lock:
            if session is not None and session is not self._hosting_session:
                return None, None
            ended = self._hosting_session
            self._hosting = False
            self._hosting_session = None

            host_link = None
            if self._link is not None and self._link.role is LinkRole.HOST:
                host_link = self._link
                self._link = None
                self._peer_name = None
            return ended, host_link

    # ========== Browsing ==========

    def set_browser(self, browser: PeerBrowser) -> bool:
        """Install the browser. False if one is already installed."""
        with self._lock:
            if self._browser is not None:
                return False
            self._browser = browser
            return True

    def take_browser(self) -> Optional[PeerBrowser]:
        with self._lock:
            browser = self._browser
            self._browser = None
            return browser

    # ========== Link ==========

    def install_link(self, link: Link, peer_name: Optional[str] = None) -> Optional[Link]:
        """
        Make a link the active one

        Returns: the previously active link, which the caller must close
        """
        with self._lock:
            previous = self._link
            self._link = link
            self._peer_name = peer_name
            link.peer_name = peer_name
            return previous if previous is not link else None

    def set_peer_name(self, link: Link, name: str) -> bool:
        """Record the handshake name. False if the link is no longer active."""
        with self._lock:
            if self._link is not link:
                return False
            self._peer_name = name
            link.peer_name = name
            return True

    def clear_link(self, link: Optional[Link] = None) -> Optional[Link]:
        """
        Drop the active link and peer name

        With a link given, only clears if that link is still the active
        one. Returns the link that was cleared, or None.
        """
        with self._lock:
            if self._link is None:
                self._peer_name = None
                return None
            if link is not None and self._link is not link:
                return None
            cleared = self._link
            self._link = None
            self._peer_name = None
            return cleared
