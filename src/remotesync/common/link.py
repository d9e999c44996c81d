"""
Link - the single live connection between two peers

One socket, two threads:
- writer drains a bounded outbound queue in FIFO order
- reader reassembles frames, decodes them and hands each message over

Either side ending (EOF, read error, write error, close()) tears the
whole link down and fires on_closed exactly once.
"""
import queue
import socket
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from remotesync import config
from remotesync.common.errors import DecodeError, FrameTooLargeError, SendFailedError
from remotesync.common.protocol import Message, MessageParser, build_frame, decode_message

logger = logging.getLogger(__name__)

# Tells the writer to exit
_STOP = object()


class LinkRole(Enum):
    """Which side of the connection we are"""
    HOST = "host"      # accepted the socket, waits for Hello
    CLIENT = "client"  # dialed out, sent Hello


class Link:
    """
    Message pump over one connected socket

    Args:
        sock: Connected socket (ownership passes to the link)
        role: HOST or CLIENT
        on_message: Called from the reader thread for every decoded message
        on_closed: Called once, from whichever thread ends the link
        on_decode_error: Called for malformed records. Return True to keep
                         the link open, False to close it.
    """

    def __init__(self,
                 sock: socket.socket,
                 role: LinkRole,
                 on_message: Callable[['Link', Message], None],
                 on_closed: Optional[Callable[['Link'], None]] = None,
                 on_decode_error: Optional[Callable[['Link', DecodeError], bool]] = None,
                 peer_name: Optional[str] = None,
                 queue_size: int = config.OUTBOUND_QUEUE_SIZE,
                 send_timeout: float = config.SEND_TIMEOUT):
        self.sock = sock
        self.role = role
        self.peer_name = peer_name
        self.send_timeout = send_timeout
        self._on_message = on_message
        self._on_closed = on_closed
        self._on_decode_error = on_decode_error

        self._outbound: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._closed_notified = False
        self._reader: Optional[threading.Thread] = None
        self._writer: Optional[threading.Thread] = None

        try:
            self.remote_address = sock.getpeername()
        except OSError:
            self.remote_address = None

    def __repr__(self) -> str:
        return f"Link(role={self.role.value}, peer={self.peer_name!r}, remote={self.remote_address})"

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def start(self):
        """Start the reader and writer threads. No-op once the link is closed."""
        with self._close_lock:
            if self._closed.is_set():
                logger.debug(f"Not starting closed link: {self}")
                return
            # Blocking mode for both threads; close() unblocks them
            self.sock.settimeout(None)
            self._writer = threading.Thread(
                target=self._write_loop, name=f"remotesync-{self.role.value}-writer", daemon=True
            )
            self._reader = threading.Thread(
                target=self._read_loop, name=f"remotesync-{self.role.value}-reader", daemon=True
            )
            self._writer.start()
            self._reader.start()
        logger.debug(f"Link started: {self}")

    def send(self, message: Message):
        """
        Queue a message for the peer

        Raises: SendFailedError if the link is closed or the queue stays full
        """
        if self.is_closed:
            raise SendFailedError("Send failed: connection closed")

        frame = build_frame(message)
        try:
            self._outbound.put(frame, timeout=self.send_timeout)
        except queue.Full:
            raise SendFailedError("Send failed: outbound queue full")

        if self.is_closed:
            raise SendFailedError("Send failed: connection closed")

    def close(self):
        """Close the link. Safe to call from any thread, any number of times."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            started = self._reader is not None

        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        try:
            self._outbound.put_nowait(_STOP)
        except queue.Full:
            pass  # writer checks the closed flag after every frame

        # A reader that never started cannot release the socket itself
        if not started:
            self._release()

    def join(self, timeout: Optional[float] = None):
        """Wait for both threads to finish"""
        for thread in (self._writer, self._reader):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)

    def _write_loop(self):
        while True:
            frame = self._outbound.get()
            if frame is _STOP or self.is_closed:
                break
            try:
                self.sock.sendall(frame)
            except OSError as e:
                if not self.is_closed:
                    logger.warning(f"Write to peer failed: {e}")
                self.close()
                break

    def _read_loop(self):
        parser = MessageParser()
        try:
            while not self.is_closed:
                try:
                    data = self.sock.recv(config.BUFFER_SIZE)
                except OSError as e:
                    if not self.is_closed:
                        logger.info(f"Read from peer failed: {e}")
                    break
                if not data:
                    logger.debug("Peer closed the connection")
                    break

                if not parser.feed(data):
                    logger.error("Inbound buffer overflow, closing link")
                    break
                if not self._drain(parser):
                    break
        finally:
            self.close()
            self._release()

    def _drain(self, parser: MessageParser) -> bool:
        """Dispatch every complete frame. Returns False to end the link."""
        while True:
            try:
                record = parser.parse_one()
            except FrameTooLargeError as e:
                logger.error(f"{e}, closing link")
                return False
            if record is None:
                return True

            try:
                message = decode_message(record)
            except DecodeError as e:
                keep_open = self._on_decode_error(self, e) if self._on_decode_error else True
                if not keep_open:
                    return False
                continue

            try:
                self._on_message(self, message)
            except Exception:
                logger.exception(f"Error dispatching {message!r}")

    def _release(self):
        try:
            self.sock.close()
        except OSError:
            pass

        with self._close_lock:
            if self._closed_notified:
                return
            self._closed_notified = True

        logger.info(f"Link closed: {self}")
        if self._on_closed:
            try:
                self._on_closed(self)
            except Exception:
                logger.exception("Link close callback failed")
