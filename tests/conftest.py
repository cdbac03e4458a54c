"""
Pytest configuration and shared fixtures for kcl tests.
"""

import logging
import os
from pathlib import Path
from typing import Callable

import pytest
import structlog

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kcl.utils.config import KclConfig, ProduceConfig, ProducerConfig
from tests.fixtures.streaming_fixtures import StdinPipe
from tests.utils.mock_helpers import FakeDeliveryClient


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging so every test starts from the library defaults."""
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    for handler in root.handlers[:]:
        if handler.__class__.__module__.startswith("rich"):
            root.removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture
def isolated_env(tmp_path, monkeypatch) -> Path:
    """No config files or KCL_* variables from the developer's machine."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("KCL_"):
            monkeypatch.delenv(key)
    return tmp_path


@pytest.fixture
def fake_client() -> FakeDeliveryClient:
    """Auto-resolving delivery client."""
    return FakeDeliveryClient()


@pytest.fixture
def manual_client() -> FakeDeliveryClient:
    """Delivery client whose submissions the test resolves."""
    return FakeDeliveryClient(auto_resolve=False)


@pytest.fixture
def producer_config() -> ProducerConfig:
    return ProducerConfig(brokers=["broker-1:9092", "broker-2:9092"], client_id="kcl-test")


@pytest.fixture
def kcl_config(producer_config) -> KclConfig:
    return KclConfig(producer=producer_config, produce=ProduceConfig())


@pytest.fixture
def input_file(tmp_path) -> Callable[[bytes], Path]:
    """Factory writing bytes to a temporary input file."""
    def _write(data: bytes, name: str = "records.txt") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def stdin_pipe():
    """Pipe whose read end is used as standard input."""
    pipe = StdinPipe()
    yield pipe
    pipe.close()
