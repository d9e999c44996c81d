"""
Unit tests for agent.py - Hosting, browsing, connecting and sending
"""
import pytest
import socket
import sys
import time

from fixtures.events import wait_until
from remotesync.common.discovery import Peer
from remotesync.common.errors import (
    AlreadyActiveError, BindError, ConnectError, DiscoveryError,
    ErrorCode, FileIOError, NotConnectedError, SendFailedError,
)
from remotesync.common import protocol
from remotesync.common.retry import RetryPolicy


def _free_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.fixture
def pair(make_agent):
    """A host "MacA" and a client "MacB" connected over localhost"""
    host, host_events = make_agent("MacA")
    client, client_events = make_agent("MacB")
    host.start_host()
    client.connect_to('127.0.0.1', host.hosting_port)
    assert host_events.wait_count('connected')
    return host, host_events, client, client_events


class TestNotConnected:
    """Every send needs an active link"""

    def test_send_clipboard(self, make_agent):
        agent, _ = make_agent()
        with pytest.raises(NotConnectedError):
            agent.send_clipboard("hello")

    def test_send_bring_to_front(self, make_agent):
        agent, _ = make_agent()
        with pytest.raises(NotConnectedError):
            agent.send_bring_to_front()

    def test_send_file(self, make_agent, sample_file):
        agent, _ = make_agent()
        with pytest.raises(NotConnectedError):
            agent.send_file(sample_file)

    def test_send_file_bytes(self, make_agent):
        agent, _ = make_agent()
        with pytest.raises(NotConnectedError):
            agent.send_file_bytes("a.txt", b"data")

    def test_screenshot(self, make_agent):
        agent, _ = make_agent()
        with pytest.raises(NotConnectedError):
            agent.capture_screenshot_and_send()

    def test_disconnect_without_link_still_reports(self, make_agent):
        agent, events = make_agent()
        agent.disconnect()
        assert events.of('disconnected') == [('disconnected',)]


class TestHosting:

    def test_second_start_raises_and_first_survives(self, make_agent):
        host, host_events = make_agent("MacA")
        client, _ = make_agent("MacB")
        host.start_host()
        port = host.hosting_port

        with pytest.raises(AlreadyActiveError):
            host.start_host()

        assert host.is_hosting
        assert host.hosting_port == port
        client.connect_to('127.0.0.1', port)
        assert host_events.wait_count('connected')

    def test_advertises_while_hosting(self, make_agent, network):
        host, _ = make_agent("MacA.local")
        host.start_host()
        info = network.services["RemoteSync-MacA._remotesync._tcp.local."]
        assert info.port == host.hosting_port

        host.stop_host()
        assert network.services == {}
        assert not host.is_hosting
        assert host.hosting_port is None

    def test_stop_when_idle(self, make_agent):
        agent, events = make_agent()
        agent.stop_host()
        assert not agent.is_hosting
        assert events.events == []

    def test_restart_after_stop(self, make_agent):
        host, _ = make_agent()
        host.start_host()
        host.stop_host()
        host.start_host()
        assert host.is_hosting

    def test_bind_failure_rolls_back(self, make_agent):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(('127.0.0.1', 0))
        blocker.listen(1)
        try:
            host, _ = make_agent(port=blocker.getsockname()[1])
            with pytest.raises(BindError) as exc_info:
                host.start_host()
            assert exc_info.value.code is ErrorCode.PORT_IN_USE
            assert not host.is_hosting
        finally:
            blocker.close()

    def test_advertise_failure_rolls_back(self, make_agent, network):
        host, _ = make_agent()
        network.fail_register = True
        with pytest.raises(DiscoveryError):
            host.start_host()
        assert not host.is_hosting

        network.fail_register = False
        host.start_host()
        assert host.is_hosting

    def test_unexpected_failure_rolls_back(self, make_agent, monkeypatch):
        host, _ = make_agent()

        def broken_ip():
            raise RuntimeError("no interfaces")

        monkeypatch.setattr(host.platform, 'get_local_ip', broken_ip)
        with pytest.raises(RuntimeError):
            host.start_host()
        assert not host.is_hosting
        assert host.hosting_port is None

        monkeypatch.undo()
        host.start_host()
        assert host.is_hosting


class TestBrowsing:

    def test_second_start_is_noop(self, make_agent, network):
        agent, _ = make_agent()
        agent.start_browse()
        agent.start_browse()
        assert agent.is_browsing
        assert len(network.instances) == 1

    def test_second_start_adds_no_duplicate_events(self, make_agent):
        host, _ = make_agent("MacA")
        client, client_events = make_agent("MacB")
        client.start_browse()
        client.start_browse()
        host.start_host()

        assert client_events.wait_count('peers')
        time.sleep(0.3)
        assert client_events.of('peers') == [('peers', [Peer("MacA", "127.0.0.1", host.hosting_port)])]

    def test_stop_browse(self, make_agent, network):
        agent, _ = make_agent()
        agent.start_browse()
        agent.stop_browse()
        assert not agent.is_browsing
        assert network.open_instances == []

    def test_stop_when_idle(self, make_agent):
        agent, _ = make_agent()
        agent.stop_browse()

    def test_browse_failure(self, make_agent, network):
        agent, _ = make_agent()
        network.fail_create = True
        with pytest.raises(DiscoveryError):
            agent.start_browse()
        assert not agent.is_browsing

    def test_sees_host(self, make_agent):
        host, _ = make_agent("MacA")
        client, client_events = make_agent("MacB")
        client.start_browse()
        host.start_host()

        expected = [Peer("MacA", "127.0.0.1", host.hosting_port)]
        assert client_events.wait_for(lambda: any(e[1] == expected for e in client_events.of('peers')))
        assert client.get_peers() == expected


class TestConnect:

    def test_refused_after_all_attempts(self, make_agent):
        policy = RetryPolicy(max_attempts=3, attempt_timeout=1.0, initial_delay=0.05)
        agent, events = make_agent(retry_policy=policy)
        port = _free_port()

        started = time.monotonic()
        with pytest.raises(ConnectError) as exc_info:
            agent.connect_to('127.0.0.1', port)
        elapsed = time.monotonic() - started

        assert exc_info.value.attempts == 3
        assert "refused" in exc_info.value.last_error.lower()
        assert exc_info.value.code is ErrorCode.CONNECTION_REFUSED
        assert elapsed <= policy.worst_case_duration() + 1.0
        assert not agent.is_connected
        assert events.of('connected') == []

    @pytest.mark.skipif(sys.platform != 'linux', reason="relies on Linux dropping SYNs for a full backlog")
    def test_timeout_reported_separately(self, make_agent):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(('127.0.0.1', 0))
        listener.listen(0)
        port = listener.getsockname()[1]
        fillers = []
        for _ in range(3):
            s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            s.setblocking(False)
            s.connect_ex(('127.0.0.1', port))
            fillers.append(s)
        time.sleep(0.1)

        policy = RetryPolicy(max_attempts=2, attempt_timeout=0.3, initial_delay=0.05)
        agent, events = make_agent(retry_policy=policy)
        try:
            started = time.monotonic()
            with pytest.raises(ConnectError) as exc_info:
                agent.connect_to('127.0.0.1', port)
            elapsed = time.monotonic() - started
        finally:
            for s in fillers:
                s.close()
            listener.close()

        assert exc_info.value.code is ErrorCode.CONNECTION_TIMEOUT
        assert "timed out" in exc_info.value.last_error.lower()
        assert elapsed <= policy.worst_case_duration() + 0.5
        assert not agent.is_connected
        assert events.of('connected') == []

    def test_disconnect_from_connected_callback(self, make_agent):
        host, host_events = make_agent("MacA")
        client, client_events = make_agent("MacB")
        client.on_connected = lambda name: client.disconnect()
        host.start_host()

        client.connect_to('127.0.0.1', host.hosting_port)

        assert not client.is_connected
        assert client_events.wait_count('disconnected')
        assert host_events.wait_count('disconnected')

    def test_client_reports_dialed_host(self, pair):
        host, host_events, client, client_events = pair
        assert client_events.of('connected') == [('connected', '127.0.0.1')]
        assert client.peer_name == '127.0.0.1'

    def test_host_reports_handshake_name(self, pair):
        host, host_events, client, client_events = pair
        assert host_events.of('connected') == [('connected', 'MacB')]
        assert host.peer_name == 'MacB'

    def test_new_connection_replaces_old(self, make_agent, pair):
        host, host_events, client, client_events = pair
        other, other_events = make_agent("MacC")
        other.start_host()

        client.connect_to('127.0.0.1', other.hosting_port)
        assert other_events.wait_count('connected')
        assert client.peer_name == '127.0.0.1'
        # the old host sees its link end
        assert host_events.wait_count('disconnected')
        # replacing a link is not a disconnect for the client
        assert client_events.of('disconnected') == []


class TestTraffic:

    def test_clipboard_both_ways(self, pair, sample_text):
        host, host_events, client, client_events = pair
        client.send_clipboard(sample_text)
        host.send_clipboard("reply")
        assert host_events.wait_for(lambda: host_events.of('clipboard') == [('clipboard', sample_text)])
        assert client_events.wait_for(lambda: client_events.of('clipboard') == [('clipboard', 'reply')])

    def test_bring_to_front(self, pair):
        host, host_events, client, client_events = pair
        host.send_bring_to_front()
        assert client_events.wait_count('front')

    def test_file_contents_arrive_exactly(self, pair, sample_file):
        host, host_events, client, client_events = pair
        client.send_file(sample_file)
        assert host_events.wait_count('file')
        assert host_events.of('file') == [('file', 'sample.txt', sample_file.read_bytes())]

    def test_missing_file(self, pair, temp_dir):
        host, host_events, client, client_events = pair
        with pytest.raises(FileIOError) as exc_info:
            client.send_file(temp_dir / "missing.txt")
        assert exc_info.value.code is ErrorCode.FILE_NOT_FOUND

    def test_pick_and_send(self, pair, sample_file):
        host, host_events, client, client_events = pair
        client.platform.pick_result = sample_file
        assert client.pick_and_send_file() == sample_file
        assert host_events.wait_count('file')

    def test_pick_dismissed(self, pair):
        host, host_events, client, client_events = pair
        client.platform.pick_result = None
        assert client.pick_and_send_file() is None

    def test_screenshot_sent_and_removed(self, pair, temp_dir):
        host, host_events, client, client_events = pair
        shot = temp_dir / "screenshot.jpg"
        shot.write_bytes(b"\xff\xd8fake jpeg")
        client.platform.screenshot_result = shot

        assert client.capture_screenshot_and_send() == "screenshot.jpg"
        assert not shot.exists()
        assert host_events.wait_for(
            lambda: host_events.of('file') == [('file', 'screenshot.jpg', b"\xff\xd8fake jpeg")]
        )

    def test_oversized_file_is_send_error(self, pair, monkeypatch):
        host, host_events, client, client_events = pair
        monkeypatch.setattr(protocol, 'MAX_MESSAGE_SIZE', 64)
        with pytest.raises(SendFailedError) as exc_info:
            client.send_file_bytes("big.bin", b"x" * 100)
        assert exc_info.value.code is ErrorCode.OUTGOING_TOO_LARGE
        assert client.is_connected

    def test_screenshot_cancelled(self, pair):
        host, host_events, client, client_events = pair
        client.platform.screenshot_cancelled = True
        assert client.capture_screenshot_and_send() is None

    def test_callback_error_keeps_link(self, make_agent):
        host, host_events = make_agent("MacA")
        calls = []

        def flaky(text):
            calls.append(text)
            if len(calls) == 1:
                raise RuntimeError("UI exploded")

        host.on_remote_clipboard = flaky
        client, _ = make_agent("MacB")
        host.start_host()
        client.connect_to('127.0.0.1', host.hosting_port)
        client.send_clipboard("one")
        client.send_clipboard("two")
        assert wait_until(lambda: len(calls) == 2)
        assert host.is_connected


class TestSaveReceivedFile:

    def test_saves_to_chosen_path(self, make_agent, temp_dir):
        agent, _ = make_agent()
        agent.platform.save_result = temp_dir / "out.bin"
        assert agent.save_received_file("out.bin", b"\x01\x02") == str(temp_dir / "out.bin")
        assert (temp_dir / "out.bin").read_bytes() == b"\x01\x02"
        assert agent.platform.save_requests == ["out.bin"]

    def test_dismissed(self, make_agent):
        agent, _ = make_agent()
        agent.platform.save_result = None
        assert agent.save_received_file("out.bin", b"data") is None

    def test_write_failure(self, make_agent, temp_dir):
        agent, _ = make_agent()
        agent.platform.save_result = temp_dir / "no" / "such" / "dir" / "out.bin"
        with pytest.raises(FileIOError):
            agent.save_received_file("out.bin", b"data")


class TestEndToEnd:

    def test_full_session(self, make_agent):
        host, host_events = make_agent("MacA")
        client, client_events = make_agent("MacB")

        host.start_host()
        client.start_browse()
        port = host.hosting_port
        assert client_events.wait_for(
            lambda: any(e[1] == [Peer("MacA", "127.0.0.1", port)] for e in client_events.of('peers'))
        )

        peer = client.get_peers()[0]
        client.connect_to(peer.host, peer.port)
        assert host_events.wait_for(lambda: host_events.of('connected') == [('connected', 'MacB')])
        assert client_events.of('connected') == [('connected', '127.0.0.1')]

        client.send_clipboard("hello")
        assert host_events.wait_for(lambda: host_events.of('clipboard') == [('clipboard', 'hello')])

        host.disconnect()
        assert host_events.wait_count('disconnected')
        assert client_events.wait_count('disconnected')

        with pytest.raises(NotConnectedError):
            host.send_clipboard("gone")
        with pytest.raises(NotConnectedError):
            client.send_clipboard("gone")

        # one peer per hosting session: the host stops sharing
        assert client_events.wait_for(lambda: client_events.of('peers')[-1][1] == [])
        assert not host.is_hosting

    def test_stop_host_drops_link(self, pair):
        host, host_events, client, client_events = pair
        host.stop_host()
        assert host_events.of('disconnected') == [('disconnected',)]
        assert client_events.wait_count('disconnected')
        assert not client.is_connected

    def test_client_disconnect_ends_hosting(self, pair):
        host, host_events, client, client_events = pair
        client.disconnect()
        assert host_events.wait_count('disconnected')
        assert wait_until(lambda: not host.is_hosting)
        assert len(host_events.of('disconnected')) == 1
