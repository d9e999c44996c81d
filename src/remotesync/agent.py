"""
Core Sync Agent - discovery and the single link between two devices

Host role:
- binds the sharing port, advertises it over mDNS
- accepts exactly one connection per hosting session and waits for Hello

Client role:
- browses for sharing devices
- dials one (bounded attempts, each with a timeout), sends Hello

Either way the connected socket becomes a Link, the only active one, and
clipboard text, files and bring-to-front requests travel over it.
"""
import socket
import threading
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from zeroconf import ServiceBrowser, Zeroconf

from remotesync import config
from remotesync.common.discovery import Peer, PeerBrowser, ServiceAdvertiser
from remotesync.common.errors import (
    BindError,
    ConnectError,
    DecodeError,
    DiscoveryError,
    ErrorCode,
    FileIOError,
    NotConnectedError,
    UserCancelledError,
    classify_exception,
    get_error,
)
from remotesync.common.link import Link, LinkRole
from remotesync.common.protocol import (
    BringToFront,
    Clipboard,
    File,
    Hello,
    Message,
    build_frame,
)
from remotesync.common.retry import RetryPolicy
from remotesync.common.state import HostingSession, SessionState
from remotesync.platform import PlatformServices, get_platform_services

logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5  # seconds between checks that hosting is still on


class SyncAgent:
    """
    Main sync agent that handles:
    - Hosting (listen + advertise) and browsing (discover peers)
    - Connecting to a discovered peer with retry
    - The single active link and the send operations that use it
    """

    def __init__(self,
                 on_connected: Optional[Callable[[str], None]] = None,
                 on_disconnected: Optional[Callable[[], None]] = None,
                 on_peers: Optional[Callable[[List[Peer]], None]] = None,
                 on_remote_clipboard: Optional[Callable[[str], None]] = None,
                 on_remote_file: Optional[Callable[[str, bytes], None]] = None,
                 on_bring_to_front: Optional[Callable[[], None]] = None,
                 port: int = config.PORT,
                 host_name: Optional[str] = None,
                 platform: Optional[PlatformServices] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 drop_link_on_decode_error: bool = False,
                 service_type: str = config.SERVICE_TYPE,
                 bind_address: str = '0.0.0.0',
                 zeroconf_factory: Callable[[], Zeroconf] = Zeroconf,
                 browser_factory: Callable[..., ServiceBrowser] = ServiceBrowser):
        """
        Initialize the sync agent

        Args:
            on_connected: Link established (peer display name)
            on_disconnected: Link gone
            on_peers: Discovered peer list changed (full list)
            on_remote_clipboard: Clipboard text received
            on_remote_file: File received (name, bytes)
            on_bring_to_front: Peer asked us to raise our window
            port: Port to listen on when hosting (0 picks a free one)
            host_name: Override for the local display identity
            platform: Desktop capabilities (defaults to the local desktop)
            retry_policy: Attempts, per-attempt timeout and delay for connect_to
            drop_link_on_decode_error: Close the link on a malformed message
                                       instead of logging and skipping it
        """
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.on_peers = on_peers
        self.on_remote_clipboard = on_remote_clipboard
        self.on_remote_file = on_remote_file
        self.on_bring_to_front = on_bring_to_front

        self.port = port
        self.service_type = service_type
        self.bind_address = bind_address
        self.retry_policy = retry_policy or RetryPolicy()
        self.drop_link_on_decode_error = drop_link_on_decode_error

        self._host_name = host_name
        self._platform = platform
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory
        self._state = SessionState()

    @property
    def platform(self) -> PlatformServices:
        if self._platform is None:
            self._platform = get_platform_services()
        return self._platform

    # ========== Status ==========

    def get_host_name(self) -> str:
        """Local display identity"""
        return self._host_name or self.platform.get_host_name()

    @property
    def is_hosting(self) -> bool:
        return self._state.hosting

    @property
    def is_browsing(self) -> bool:
        return self._state.browsing

    @property
    def is_connected(self) -> bool:
        return self._state.link is not None

    @property
    def peer_name(self) -> Optional[str]:
        return self._state.peer_name

    @property
    def hosting_port(self) -> Optional[int]:
        """Port actually bound by the current hosting session"""
        session = self._state.hosting_session
        return session.port if session else None

    # ========== Host role ==========

    def start_host(self, host_identity: Optional[str] = None):
        """
        Start sharing: listen, advertise, accept one peer

        Raises:
            AlreadyActiveError: already hosting
            BindError: the port could not be bound
            DiscoveryError: the service could not be advertised
        """
        self._state.claim_hosting()
        try:
            session = self._open_hosting_session(host_identity)
        except BaseException:
            self._state.end_hosting()
            raise

        if not self._state.set_hosting_session(session):
            # stop_host() ran while we were starting
            self._release_hosting(session)
            return

        threading.Thread(
            target=self._accept_once,
            args=(session,),
            name="remotesync-accept",
            daemon=True
        ).start()
        logger.info(f"Hosting as {session.identity} on port {session.port}")

    def _open_hosting_session(self, host_identity: Optional[str]) -> HostingSession:
        """Bind and advertise. Leaves nothing open when it raises."""
        identity = host_identity or self.get_host_name()

        try:
            listener = self._bind_listener()
        except OSError as e:
            raise BindError(f"Failed to bind port {self.port}: {e}") from e

        try:
            session = HostingSession(listener=listener, identity=identity)
            advertiser = ServiceAdvertiser(self.service_type, zeroconf_factory=self._zeroconf_factory)
            advertiser.start(identity, self.platform.get_local_ip(), session.port)
        except BaseException:
            listener.close()
            raise
        session.advertiser = advertiser
        return session

    def stop_host(self):
        """Stop sharing. Always succeeds."""
        session, host_link = self._state.end_hosting()
        if host_link is not None:
            host_link.close()
            self._emit(self.on_disconnected)
        if session is not None:
            self._release_hosting(session)
            logger.info("Hosting stopped")

    def _bind_listener(self) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.bind_address, self.port))
            listener.listen(1)
            listener.settimeout(ACCEPT_POLL_INTERVAL)  # For clean shutdown
        except OSError:
            listener.close()
            raise
        return listener

    def _accept_once(self, session: HostingSession):
        """Accept a single peer for this hosting session"""
        conn = None
        while self._state.hosting_session is session:
            try:
                conn, addr = session.listener.accept()
                break
            except socket.timeout:
                continue
            except OSError as e:
                if self._state.hosting_session is session:
                    logger.error(f"Accept failed: {e}")
                break

        if conn is None:
            self._end_hosting_session(session)
            return

        # No second client for this session
        session.listener.close()

        if self._state.hosting_session is not session:
            logger.info(f"Dropping connection from {addr}, hosting stopped")
            conn.close()
            return

        logger.info(f"Connection from {addr}")
        link = Link(
            conn,
            LinkRole.HOST,
            on_message=self._dispatch,
            on_closed=lambda closed: self._on_host_link_closed(closed, session),
            on_decode_error=self._on_decode_error,
        )
        self._install_link(link, None)
        link.start()

    def _on_host_link_closed(self, link: Link, session: HostingSession):
        self._on_link_closed(link)
        self._end_hosting_session(session)

    def _end_hosting_session(self, session: HostingSession):
        ended, host_link = self._state.end_hosting(session)
        if host_link is not None:
            host_link.close()
        if ended is not None:
            self._release_hosting(ended)
            logger.info("Hosting session ended")

    def _release_hosting(self, session: HostingSession):
        if session.advertiser is not None:
            session.advertiser.stop()
        try:
            # Wakes a blocked accept() on Linux, close() alone does not
            session.listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            session.listener.close()
        except OSError:
            pass

    # ========== Client role ==========

    def start_browse(self):
        """
        Start looking for sharing devices. A no-op if already browsing.

        Raises: DiscoveryError if the mDNS session cannot be created
        """
        if self._state.browsing:
            return

        browser = PeerBrowser(
            self.service_type,
            zeroconf_factory=self._zeroconf_factory,
            browser_factory=self._browser_factory,
        )
        if not self._state.set_browser(browser):
            return

        try:
            browser.start(self._on_peers_changed)
        except DiscoveryError:
            self._state.take_browser()
            raise

    def stop_browse(self):
        """Stop looking for sharing devices. Always succeeds."""
        browser = self._state.take_browser()
        if browser is not None:
            browser.stop()

    def get_peers(self) -> List[Peer]:
        browser = self._state.browser
        return browser.get_peers() if browser else []

    def connect_to(self, host: str, port: int = config.PORT):
        """
        Dial a sharing device and make it the active link

        Raises: ConnectError once every attempt has failed
        """
        policy = self.retry_policy
        sock = None
        last_error = ""
        last_code = ErrorCode.UNKNOWN

        for attempt in range(1, policy.max_attempts + 1):
            try:
                sock = socket.create_connection((host, port), timeout=policy.attempt_timeout)
                break
            except socket.timeout:
                last_code = ErrorCode.CONNECTION_TIMEOUT
                error = get_error(last_code)
                last_error = f"{error.message}. {error.suggestion}."
            except OSError as e:
                last_code = classify_exception(e)
                last_error = f"{get_error(last_code).message} ({e})"

            logger.warning(f"Connect attempt {attempt}/{policy.max_attempts} to {host}:{port} failed: {last_error}")
            if policy.should_retry(attempt):
                time.sleep(policy.get_delay(attempt))

        if sock is None:
            raise ConnectError(policy.max_attempts, last_error, last_code)

        try:
            sock.sendall(build_frame(Hello(name=self.get_host_name())))
        except OSError as e:
            sock.close()
            raise ConnectError(attempt, f"Handshake failed: {e}", classify_exception(e)) from e

        link = Link(
            sock,
            LinkRole.CLIENT,
            on_message=self._dispatch,
            on_closed=self._on_link_closed,
            on_decode_error=self._on_decode_error,
        )
        self._install_link(link, host)
        logger.info(f"Connected to {host}:{port}")
        self._emit(self.on_connected, host)
        link.start()

    # ========== Link lifecycle ==========

    def disconnect(self):
        """Drop the active link, whatever its role. Always succeeds."""
        link = self._state.clear_link()
        if link is not None:
            link.close()
            logger.info(f"Disconnected from {link.peer_name or link.remote_address}")
        self._emit(self.on_disconnected)

    def shutdown(self):
        """Stop everything this agent started"""
        if self.is_connected:
            self.disconnect()
        self.stop_browse()
        self.stop_host()

    def _install_link(self, link: Link, peer_name: Optional[str]):
        previous = self._state.install_link(link, peer_name)
        if previous is not None:
            logger.info(f"Replacing active link {previous}")
            previous.close()

    def _on_link_closed(self, link: Link):
        if self._state.clear_link(link) is not None:
            self._emit(self.on_disconnected)

    def _on_decode_error(self, link: Link, error: DecodeError) -> bool:
        peer = link.peer_name or link.remote_address
        if self.drop_link_on_decode_error:
            logger.warning(f"Malformed message from {peer}, closing link: {error}")
            return False
        logger.warning(f"Ignoring malformed message from {peer}: {error}")
        return True

    def _dispatch(self, link: Link, message: Message):
        """Handle a message received on a link"""
        if isinstance(message, Hello):
            if link.role is not LinkRole.HOST:
                logger.debug(f"Ignoring Hello from {message.name} on client link")
                return
            if self._state.set_peer_name(link, message.name):
                logger.info(f"Peer identified as {message.name}")
                self._emit(self.on_connected, message.name)

        elif isinstance(message, Clipboard):
            logger.info(f"Received text from peer ({len(message.text)} chars)")
            self._emit(self.on_remote_clipboard, message.text)

        elif isinstance(message, File):
            logger.info(f"Received file {message.name} ({len(message.data)} bytes)")
            self._emit(self.on_remote_file, message.name, message.data)

        elif isinstance(message, BringToFront):
            self._emit(self.on_bring_to_front)

    def _on_peers_changed(self, peers: List[Peer]):
        self._emit(self.on_peers, peers)

    def _emit(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Event callback failed")

    # ========== Sending ==========

    def _active_link(self) -> Link:
        link = self._state.link
        if link is None:
            raise NotConnectedError()
        return link

    def _send(self, message: Message):
        link = self._active_link()
        link.send(message)
        logger.debug(f"Queued {message!r}")

    def send_clipboard(self, text: str):
        """
        Send clipboard text to the peer

        Raises: NotConnectedError, SendFailedError
        """
        self._send(Clipboard(text=text))

    def send_bring_to_front(self):
        """Ask the peer to raise its window"""
        self._send(BringToFront())

    def send_file_bytes(self, name: str, data: bytes):
        """
        Send an in-memory file as one message

        Raises: NotConnectedError, SendFailedError (OutgoingTooLargeError
        when the encoded file exceeds the frame limit)
        """
        self._send(File(name=name, data=data))
        logger.info(f"Sent file {name} ({len(data)} bytes)")

    def send_file(self, path: Union[str, Path]):
        """
        Read a whole file and send it as one message

        Raises: NotConnectedError, FileIOError, SendFailedError
                (OutgoingTooLargeError for files over the frame limit)
        """
        path = Path(path)
        self._active_link()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileIOError(f"Could not read {path}: {e}", e) from e
        self.send_file_bytes(path.name, data)

    def pick_and_send_file(self) -> Optional[Path]:
        """
        Ask the user for a file and send it

        Returns: the file sent, or None if the picker was dismissed
        """
        path = self.platform.pick_file()
        if path is None:
            return None
        self.send_file(path)
        return path

    def capture_screenshot_and_send(self) -> Optional[str]:
        """
        Capture a screenshot and send it as a JPEG file

        Returns: the file name sent, or None if the capture was cancelled
        Raises: PlatformUnsupportedError where capture is unavailable
        """
        self._active_link()
        try:
            path = self.platform.capture_screenshot()
        except UserCancelledError:
            logger.info("Screenshot cancelled")
            return None

        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileIOError(f"Could not read screenshot {path}: {e}", e) from e
        finally:
            path.unlink(missing_ok=True)

        self.send_file_bytes(path.name, data)
        return path.name

    def save_received_file(self, name: str, data: bytes) -> Optional[str]:
        """
        Ask the user where to save a received file and write it

        Returns: the saved path, or None if the save dialog was dismissed
        Raises: FileIOError if the file cannot be written
        """
        path = self.platform.choose_save_path(name)
        if path is None:
            return None
        try:
            path.write_bytes(data)
        except OSError as e:
            raise FileIOError(f"Could not save {path}: {e}", e) from e
        logger.info(f"Saved {name} to {path}")
        return str(path)
