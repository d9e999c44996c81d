"""
Global test fixtures for RemoteSync tests
"""
import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator, List

from fixtures.events import EventRecorder
from fixtures.fake_zeroconf import FakeNetwork
from fixtures.mock_platform import MockPlatform
from remotesync.agent import SyncAgent
from remotesync.common.retry import RetryPolicy


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files"""
    path = Path(tempfile.mkdtemp(prefix="remotesync_test_"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def sample_file(temp_dir: Path) -> Path:
    """Create a sample text file for testing"""
    file_path = temp_dir / "sample.txt"
    file_path.write_text("Hello, World! This is a test file.")
    return file_path


@pytest.fixture
def sample_text() -> str:
    """Sample text for clipboard testing"""
    return "Hello, this is a clipboard sync test message!"


@pytest.fixture
def network() -> FakeNetwork:
    """An in-memory mDNS network"""
    return FakeNetwork()


@pytest.fixture
def make_agent(network: FakeNetwork):
    """Factory for agents on the fake network, shut down after the test"""
    agents: List[SyncAgent] = []

    def factory(name: str = "TestHost", **kwargs):
        recorder = EventRecorder()
        kwargs.setdefault('port', 0)
        kwargs.setdefault('bind_address', '127.0.0.1')
        kwargs.setdefault('retry_policy', RetryPolicy(max_attempts=2, attempt_timeout=1.0, initial_delay=0.05))
        agent = SyncAgent(
            platform=MockPlatform(host_name=name),
            zeroconf_factory=network.zeroconf_factory,
            browser_factory=network.browser_factory,
            **recorder.callbacks(),
            **kwargs
        )
        agents.append(agent)
        return agent, recorder

    yield factory

    for agent in agents:
        agent.shutdown()
