"""
Peer discovery using mDNS/Zeroconf (Bonjour)

The advertiser publishes this device while it is sharing; the browser
keeps a table of every sharing device on the LAN and reports the full
list whenever it changes.
"""
import queue
import logging
import threading
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from zeroconf import (
    Error as ZeroconfError,
    IPVersion,
    ServiceBrowser,
    ServiceInfo,
    ServiceStateChange,
    Zeroconf,
)

from remotesync import config
from remotesync.common.errors import AlreadyActiveError, DiscoveryError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1"

# Wakes the browser worker without an mDNS event
_WAKE = object()


@dataclass
class Peer:
    """A sharing device found on the network"""
    name: str
    host: str
    port: int

    def to_dict(self) -> dict:
        return asdict(self)


def short_host_name(host_identity: str) -> str:
    """Host name up to the first domain separator ("Mac2.local" -> "Mac2")"""
    short = host_identity.split('.')[0].strip()
    return short or "Unknown"


def service_instance_name(host_identity: str, service_type: str = config.SERVICE_TYPE) -> str:
    """Fully-qualified service name advertised for a host"""
    return f"{config.SERVICE_PREFIX}{short_host_name(host_identity)}.{service_type}"


def display_name(fullname: str) -> str:
    """
    Derive the name shown to users from a fully-qualified service name

    "RemoteSync-Mac2._remotesync._tcp.local." -> "Mac2". Names without the
    RemoteSync prefix are shown unchanged.
    """
    if not fullname.startswith(config.SERVICE_PREFIX):
        return fullname
    return fullname[len(config.SERVICE_PREFIX):].split('.')[0]


class PeerTable:
    """Discovered peers keyed by fully-qualified service name"""

    def __init__(self):
        self._peers: Dict[str, Peer] = {}

    def resolve(self, fullname: str, host: str, port: int) -> Optional[List[Peer]]:
        """Insert or update a peer. Returns the new snapshot, or None if nothing changed."""
        peer = Peer(name=display_name(fullname), host=host, port=port)
        if self._peers.get(fullname) == peer:
            return None
        self._peers[fullname] = peer
        return self.snapshot()

    def remove(self, fullname: str) -> Optional[List[Peer]]:
        """Remove a peer. Returns the new snapshot, or None if it was unknown."""
        if self._peers.pop(fullname, None) is None:
            return None
        return self.snapshot()

    def snapshot(self) -> List[Peer]:
        return list(self._peers.values())

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, fullname: str) -> bool:
        return fullname in self._peers


def peer_address(info: ServiceInfo) -> Optional[str]:
    """Best address for a resolved service, preferring IPv4"""
    addresses = info.parsed_addresses(IPVersion.V4Only) or info.parsed_addresses()
    if addresses:
        return addresses[0]
    if info.server:
        return info.server.rstrip('.')
    return None


class ServiceAdvertiser:
    """Publishes this device as a RemoteSync service"""

    def __init__(self, service_type: str = config.SERVICE_TYPE,
                 zeroconf_factory: Callable[[], Zeroconf] = Zeroconf):
        self.service_type = service_type
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: Optional[Zeroconf] = None
        self._service_info: Optional[ServiceInfo] = None
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._service_info is not None

    @property
    def service_name(self) -> Optional[str]:
        return self._service_info.name if self._service_info else None

    def start(self, host_identity: str, address: str, port: int):
        """
        Register the service

        Raises: AlreadyActiveError if already advertising,
                DiscoveryError if zeroconf refuses the registration
        """
        with self._lock:
            if self._service_info is not None:
                raise AlreadyActiveError("Already advertising")

            short = short_host_name(host_identity)
            zc = None
            try:
                info = ServiceInfo(
                    self.service_type,
                    service_instance_name(host_identity, self.service_type),
                    parsed_addresses=[address],
                    port=port,
                    properties={'version': PROTOCOL_VERSION},
                    server=f"{short}.local.",
                )
                zc = self._zeroconf_factory()
                zc.register_service(info, allow_name_change=True)
            except (ZeroconfError, OSError, ValueError) as e:
                if zc is not None:
                    zc.close()
                raise DiscoveryError(f"Failed to register service: {e}") from e

            self._zeroconf = zc
            self._service_info = info
            logger.info(f"Registered service: {info.name} at {address}:{port}")

    def stop(self):
        """Withdraw the service. No-op when not advertising."""
        with self._lock:
            info, zc = self._service_info, self._zeroconf
            self._service_info = None
            self._zeroconf = None

        if info is None:
            return

        try:
            zc.unregister_service(info)
        except (ZeroconfError, OSError) as e:
            logger.warning(f"Failed to unregister service: {e}")
        finally:
            zc.close()
        logger.info(f"Unregistered service: {info.name}")


class _BrowseSession:
    """
    Everything one start()/stop() cycle of a PeerBrowser owns

    Built before the ServiceBrowser so events delivered while it is being
    constructed land in this session's queue.
    """

    def __init__(self, zeroconf: Zeroconf, on_peers_changed: Callable[[List[Peer]], None]):
        self.zeroconf = zeroconf
        self.on_peers_changed = on_peers_changed
        self.events: "queue.Queue" = queue.Queue()
        self.cancelled = threading.Event()
        self.table = PeerTable()
        self.browser: Optional[ServiceBrowser] = None

    def on_service_state_change(self, zeroconf: Zeroconf, service_type: str,
                                name: str, state_change: ServiceStateChange):
        """Runs on a zeroconf thread, so only queue the event"""
        self.events.put((service_type, name, state_change))


class PeerBrowser:
    """
    Scans the LAN for RemoteSync services

    zeroconf callbacks only queue events. A dedicated worker thread waits
    on that queue with a short timeout, resolves services and reports the
    full peer list after every change.
    """

    def __init__(self, service_type: str = config.SERVICE_TYPE,
                 poll_interval: float = config.BROWSE_POLL_INTERVAL,
                 resolve_timeout_ms: int = config.RESOLVE_TIMEOUT_MS,
                 zeroconf_factory: Callable[[], Zeroconf] = Zeroconf,
                 browser_factory: Callable[..., ServiceBrowser] = ServiceBrowser):
        self.service_type = service_type
        self.poll_interval = poll_interval
        self.resolve_timeout_ms = resolve_timeout_ms
        self._zeroconf_factory = zeroconf_factory
        self._browser_factory = browser_factory

        self._session: Optional[_BrowseSession] = None
        self._worker: Optional[threading.Thread] = None
        self._last_table = PeerTable()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    def get_peers(self) -> List[Peer]:
        session = self._session
        table = session.table if session is not None else self._last_table
        return table.snapshot()

    def start(self, on_peers_changed: Callable[[List[Peer]], None]) -> bool:
        """
        Start browsing

        Returns: False if already browsing (nothing new is started)
        Raises: DiscoveryError if the zeroconf session cannot be created
        """
        with self._lock:
            if self._worker is not None:
                return False

            zc = None
            try:
                zc = self._zeroconf_factory()
                session = _BrowseSession(zc, on_peers_changed)
                session.browser = self._browser_factory(
                    zc,
                    self.service_type,
                    handlers=[session.on_service_state_change]
                )
            except (ZeroconfError, OSError) as e:
                if zc is not None:
                    zc.close()
                raise DiscoveryError(f"Failed to browse for services: {e}") from e

            self._session = session
            self._worker = threading.Thread(
                target=self._run,
                args=(session,),
                name="remotesync-browser",
                daemon=True
            )
            self._worker.start()

        logger.info(f"Browsing for {self.service_type}")
        return True

    def stop(self):
        """Stop browsing. No-op when not browsing."""
        with self._lock:
            worker, session = self._worker, self._session
            if worker is None:
                return
            self._worker = None
            self._session = None
            self._last_table = session.table
            session.cancelled.set()
            session.events.put(_WAKE)

        # The worker may be mid-resolve, which is bounded by resolve_timeout_ms
        worker.join(timeout=self.resolve_timeout_ms / 1000.0 + self.poll_interval * 2)
        if worker.is_alive():
            logger.warning("Browser worker did not exit in time")

        try:
            session.browser.cancel()
        finally:
            session.zeroconf.close()
        logger.info("Browsing stopped")

    def _run(self, session: _BrowseSession):
        while not session.cancelled.is_set():
            try:
                item = session.events.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if item is _WAKE or session.cancelled.is_set():
                continue
            self._handle_event(session, *item)
        logger.debug("Browser worker exiting")

    def _handle_event(self, session: _BrowseSession, service_type: str, name: str,
                      state_change: ServiceStateChange):
        if state_change is ServiceStateChange.Removed:
            snapshot = session.table.remove(name)
            if snapshot is not None:
                logger.info(f"Lost peer: {name}")
                self._emit(session, snapshot)
            return

        info = session.zeroconf.get_service_info(service_type, name, timeout=self.resolve_timeout_ms)
        if info is None:
            logger.debug(f"Could not resolve {name}")
            return
        if session.cancelled.is_set():
            return

        host = peer_address(info)
        if host is None or info.port is None:
            logger.debug(f"Resolved {name} without an address")
            return

        is_new = name not in session.table
        snapshot = session.table.resolve(name, host, info.port)
        if snapshot is None:
            return
        if is_new:
            logger.info(f"Discovered peer: {name} at {host}:{info.port}")
        self._emit(session, snapshot)

    def _emit(self, session: _BrowseSession, snapshot: List[Peer]):
        try:
            session.on_peers_changed(snapshot)
        except Exception:
            logger.exception("Peer list callback failed")
