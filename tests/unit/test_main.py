"""
Unit tests for main.py - Terminal front end
"""
import pytest

from remotesync.common.user_config import ConfigManager, SyncConfig
from remotesync.main import Console, _unique_path, main


@pytest.fixture
def console(temp_dir):
    c = Console(SyncConfig(device_name="Desk"), port=0, save_dir=temp_dir)
    yield c
    c.stop()


class TestConsole:

    def test_quit(self, console):
        assert console.handle_line("/quit\n") is False

    def test_blank_line_ignored(self, console):
        assert console.handle_line("\n") is True

    def test_send_without_link_reports_error(self, console, capsys):
        assert console.handle_line("hello\n") is True
        assert "Not connected" in capsys.readouterr().out

    def test_front_without_link_reports_error(self, console, capsys):
        console.handle_line("/front\n")
        assert "Not connected" in capsys.readouterr().out

    def test_device_name_from_config(self, console):
        assert console.agent.get_host_name() == "Desk"

    def test_shot_without_link_reports_error(self, console, capsys):
        assert console.handle_line("/shot\n") is True
        assert "Not connected" in capsys.readouterr().out

    def test_shot_sends_screenshot(self, console, capsys, monkeypatch):
        monkeypatch.setattr(console.agent, 'capture_screenshot_and_send', lambda: "screenshot.jpg")
        console.handle_line("/shot\n")
        assert "Sent screenshot screenshot.jpg" in capsys.readouterr().out

    def test_shot_cancelled(self, console, capsys, monkeypatch):
        monkeypatch.setattr(console.agent, 'capture_screenshot_and_send', lambda: None)
        console.handle_line("/shot\n")
        assert "Screenshot cancelled" in capsys.readouterr().out

    def test_received_file_saved(self, console, temp_dir):
        console._on_remote_file("note.txt", b"hi")
        console._on_remote_file("note.txt", b"again")
        assert (temp_dir / "note.txt").read_bytes() == b"hi"
        assert (temp_dir / "note (1).txt").read_bytes() == b"again"

    def test_received_file_name_cannot_escape(self, temp_dir):
        assert _unique_path(temp_dir, "../../etc/passwd") == temp_dir / "passwd"


class TestArgumentParsing:

    def test_no_command_prints_help(self, capsys, monkeypatch, temp_dir):
        monkeypatch.setattr("remotesync.main.get_config_manager", lambda: ConfigManager(temp_dir / "config.json"))
        monkeypatch.setattr("remotesync.main.setup_logging", lambda level: None)
        main([])
        assert "usage: remotesync" in capsys.readouterr().out

    def test_unknown_command_exits(self):
        with pytest.raises(SystemExit):
            main(["teleport"])
