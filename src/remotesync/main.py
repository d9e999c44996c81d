"""
RemoteSync - Command Line Entry Point

Commands:
    remotesync name                  Show this device's name
    remotesync host                  Share this device and wait for a peer
    remotesync browse                List sharing devices on the network
    remotesync connect HOST          Connect to a sharing device
    remotesync tray                  Run in the system tray
    remotesync config                Show/edit configuration

While connected, every line typed is sent as clipboard text.
"/front" asks the peer to raise its window, "/file PATH" sends a file,
"/shot" sends a screenshot and "/quit" leaves.
"""
import sys
import logging
import signal
import argparse
import threading
from pathlib import Path
from typing import List

from remotesync import config
from remotesync.agent import SyncAgent
from remotesync.common.discovery import Peer
from remotesync.common.errors import RemoteSyncError, get_error_from_exception
from remotesync.common.user_config import SyncConfig, get_config_manager, print_config
from remotesync.platform import get_platform_info

logger = logging.getLogger(__name__)


def setup_logging(level: str = config.LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.LOG_FILE)
        ]
    )


def _preview(text: str) -> str:
    preview = text[:50] + "..." if len(text) > 50 else text
    return preview.replace('\n', ' ').replace('\r', '')


def _unique_path(directory: Path, name: str) -> Path:
    """A path in directory for name that does not overwrite anything"""
    target = directory / Path(name).name
    counter = 1
    while target.exists():
        target = directory / f"{Path(name).stem} ({counter}){Path(name).suffix}"
        counter += 1
    return target


class Console:
    """
    Terminal front end for a SyncAgent

    Prints agent events as they arrive and turns typed lines into sends.
    """

    def __init__(self, user_config: SyncConfig, port: int = None, save_dir: Path = None):
        self.save_dir = save_dir or Path.home() / 'Downloads'
        self.agent = SyncAgent(
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
            on_peers=self._on_peers,
            on_remote_clipboard=self._on_remote_clipboard,
            on_remote_file=self._on_remote_file,
            on_bring_to_front=self._on_bring_to_front,
            port=user_config.port if port is None else port,
            host_name=user_config.device_name or None,
            retry_policy=user_config.retry_policy(),
            drop_link_on_decode_error=user_config.drop_link_on_decode_error,
        )

    # ========== Agent events ==========

    def _on_connected(self, peer_name: str):
        print(f"\n[OK] Connected to {peer_name}")
        print("     Type text to send it. /front, /file PATH, /shot, /quit\n")

    def _on_disconnected(self):
        print("\n[--] Disconnected")

    def _on_peers(self, peers: List[Peer]):
        print(f"\nSharing devices ({len(peers)}):")
        for peer in peers:
            print(f"  - {peer.name:<20} {peer.host}:{peer.port}")

    def _on_remote_clipboard(self, text: str):
        print(f"<< Text ({len(text)} chars): {_preview(text)}")

    def _on_remote_file(self, name: str, data: bytes):
        try:
            self.save_dir.mkdir(parents=True, exist_ok=True)
            target = _unique_path(self.save_dir, name)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Could not save {name}: {e}")
            print(f"X Could not save {name}: {e}")
            return
        print(f"<< File {name} ({len(data)} bytes) saved to {target}")

    def _on_bring_to_front(self):
        print("<< Peer asked for attention")

    # ========== Input ==========

    def handle_line(self, line: str) -> bool:
        """Act on one typed line. Returns False to leave."""
        line = line.rstrip('\r\n')
        if not line:
            return True
        if line == '/quit':
            return False

        try:
            if line == '/front':
                self.agent.send_bring_to_front()
                print(">> Sent bring-to-front")
            elif line.startswith('/file '):
                path = Path(line[len('/file '):].strip()).expanduser()
                self.agent.send_file(path)
                print(f">> Sent file {path.name}")
            elif line == '/shot':
                name = self.agent.capture_screenshot_and_send()
                print(f">> Sent screenshot {name}" if name else ">> Screenshot cancelled")
            else:
                self.agent.send_clipboard(line)
                print(f">> Sent text ({len(line)} chars)")
        except RemoteSyncError as e:
            print(f"X {e}")
            print(f"  {get_error_from_exception(e).suggestion}")
        return True

    def run(self):
        """Read stdin until EOF or /quit"""
        for line in sys.stdin:
            if not self.handle_line(line):
                break

    def stop(self):
        self.agent.shutdown()


def _install_signal_handlers(console: Console):
    def signal_handler(sig, frame):
        print("\nShutting down...")
        console.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def _fail(exc: RemoteSyncError):
    error = get_error_from_exception(exc)
    print(f"\n[ERROR] {exc}")
    if error.suggestion:
        print(f"  Suggestion: {error.suggestion}")
    sys.exit(1)


def cmd_name(args, user_config: SyncConfig):
    """Show the name other devices see"""
    console = Console(user_config)
    print(console.agent.get_host_name())


def cmd_host(args, user_config: SyncConfig):
    """Share this device until a peer connects, then chat"""
    console = Console(user_config, port=args.port)
    _install_signal_handlers(console)

    try:
        console.agent.start_host()
    except RemoteSyncError as e:
        _fail(e)

    print("\n" + "=" * 50)
    print(f"  RemoteSync - {get_platform_info().display_name}")
    print("=" * 50)
    print(f"  Sharing as: {console.agent.get_host_name()}")
    print(f"  Port: {console.agent.hosting_port}")
    print("=" * 50)
    print("\nWaiting for a device to connect. Press Ctrl+C to stop.\n")

    try:
        console.run()
    finally:
        console.stop()


def cmd_browse(args, user_config: SyncConfig):
    """List sharing devices until interrupted"""
    console = Console(user_config)
    _install_signal_handlers(console)

    try:
        console.agent.start_browse()
    except RemoteSyncError as e:
        _fail(e)

    print("Looking for sharing devices. Press Ctrl+C to stop.")
    try:
        threading.Event().wait()
    finally:
        console.stop()


def cmd_connect(args, user_config: SyncConfig):
    """Connect to a sharing device, then chat"""
    console = Console(user_config)
    _install_signal_handlers(console)

    print(f"Connecting to {args.host}:{args.port}...")
    try:
        console.agent.connect_to(args.host, args.port)
    except RemoteSyncError as e:
        _fail(e)

    try:
        console.run()
    finally:
        console.stop()


def cmd_tray(args, user_config: SyncConfig):
    """Run the system tray application"""
    from remotesync.ui import RemoteSyncApp

    sys.exit(RemoteSyncApp(user_config).start())


def cmd_config(args, user_config: SyncConfig):
    """Show or modify configuration"""
    config_mgr = get_config_manager()

    if args.reset:
        config_mgr.reset()
        print("[OK] Configuration reset to defaults.")
        print_config(config_mgr.get(), config_mgr.path)
        return

    if args.set:
        key, value = args.set
        if config_mgr.set(key, value):
            print(f"[OK] Set {key} = {getattr(config_mgr.get(), key)}")
        else:
            print(f"[ERROR] Could not set {key} = {value}")
            print("\nAvailable keys:")
            for k in config_mgr.get().to_dict():
                print(f"  - {k}")
            sys.exit(1)
        return

    print_config(config_mgr.get(), config_mgr.path)


def main(argv: List[str] = None):
    parser = argparse.ArgumentParser(
        prog='remotesync',
        description='RemoteSync - share clipboard text and files on your LAN',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  remotesync host                          Share this device
  remotesync browse                        Find sharing devices
  remotesync connect 192.168.1.5           Connect to a device
  remotesync tray                          Run in the system tray
  remotesync config --set port 18800       Change the sharing port
"""
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    subparsers.add_parser('name', help="Show this device's name")

    host_parser = subparsers.add_parser('host', help='Share this device')
    host_parser.add_argument('--port', type=int, default=None, help='Port (default: from config)')

    subparsers.add_parser('browse', help='List sharing devices')

    connect_parser = subparsers.add_parser('connect', help='Connect to a sharing device')
    connect_parser.add_argument('host', help='Address of the sharing device')
    connect_parser.add_argument('--port', type=int, default=config.PORT, help=f'Port (default: {config.PORT})')

    subparsers.add_parser('tray', help='Run in the system tray')

    config_parser = subparsers.add_parser('config', help='Show/edit configuration')
    config_parser.add_argument('--reset', action='store_true', help='Reset to default configuration')
    config_parser.add_argument('--set', nargs=2, metavar=('KEY', 'VALUE'), help='Set a configuration value')

    args = parser.parse_args(argv)

    user_config = get_config_manager().get()
    setup_logging('DEBUG' if args.verbose else user_config.log_level)

    commands = {
        'name': cmd_name,
        'host': cmd_host,
        'browse': cmd_browse,
        'connect': cmd_connect,
        'tray': cmd_tray,
        'config': cmd_config,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return
    handler(args, user_config)


if __name__ == '__main__':
    main()
