"""Shared test fixtures for the Chatline test suite."""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from chatline.config.models.chat import ChatConfig
from chatline.config.models.connection import TransportConfig
from chatline.connection.backoff import FixedDelayPolicy
from chatline.connection.manager import ConnectionManager
from chatline.runtime.scheduler import ManualScheduler
from chatline.storage.backends.inmemory import InMemoryBackend
from chatline.storage.preferences import PreferenceStore
from chatline.storage.store import SessionStore
from chatline.transport.mock import MockTransport

# =============================================================================
# Configuration fixtures
# =============================================================================


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "development.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            toml_file = test_config_dir / filename
            toml_file.write_text(content)

    return _create_toml_files


class EnvOverrideContext:
    """Context manager for temporarily setting environment variables."""

    def __init__(self, overrides: dict[str, str]) -> None:
        self.overrides = overrides
        self.original_env: dict[str, str | None] = {}

    def __enter__(self) -> None:
        for key, value in self.overrides.items():
            self.original_env[key] = os.environ.get(key)
            os.environ[key] = value

    def __exit__(self, *args: Any) -> None:
        for key in self.overrides:
            if self.original_env[key] is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = self.original_env[key]


@pytest.fixture
def env_override() -> Generator[Callable[[dict[str, str]], EnvOverrideContext], None, None]:
    """Context manager for temporarily setting environment variables.

    Usage:
        def test_something(env_override):
            with env_override({"CHATLINE_DEBUG": "true"}):
                # test code here
    """

    def _env_override(overrides: dict[str, str]) -> EnvOverrideContext:
        return EnvOverrideContext(overrides)

    yield _env_override


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache and TOML source before and after each test."""
    from chatline.config import get_settings
    from chatline.config.settings import set_toml_config

    get_settings.cache_clear()
    set_toml_config({})
    yield
    get_settings.cache_clear()
    set_toml_config({})


# =============================================================================
# Runtime and storage fixtures
# =============================================================================


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Virtual-clock scheduler; nothing fires until advance()."""
    return ManualScheduler()


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def session_store(backend: InMemoryBackend) -> SessionStore:
    return SessionStore(backend, key_prefix="test")


@pytest.fixture
def preference_store(backend: InMemoryBackend) -> PreferenceStore:
    return PreferenceStore(backend, key_prefix="test")


# =============================================================================
# Transport and connection fixtures
# =============================================================================


class MockTransportFactory:
    """Transport factory that records every MockTransport it creates.

    Keyword arguments are passed to each new MockTransport.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.created: list[MockTransport] = []
        self.configs: list[TransportConfig] = []

    def __call__(self, config: TransportConfig) -> MockTransport:
        transport = MockTransport(**self.kwargs)
        self.created.append(transport)
        self.configs.append(config)
        return transport

    @property
    def latest(self) -> MockTransport:
        return self.created[-1]


@pytest.fixture
def transport_config() -> TransportConfig:
    return TransportConfig(
        region="eu-west-1",
        instance_id="instance-1",
        contact_flow_id="flow-1",
    )


@pytest.fixture
def transport_factory() -> MockTransportFactory:
    return MockTransportFactory()


@pytest.fixture
def connection(
    transport_factory: MockTransportFactory,
    scheduler: ManualScheduler,
    transport_config: TransportConfig,
) -> ConnectionManager:
    """Connection manager configured but not yet connected."""
    manager = ConnectionManager(
        transport_factory,
        scheduler=scheduler,
        policy=FixedDelayPolicy(delay_seconds=5.0),
        recovery_delay_seconds=0.0,
    )
    manager.configure(transport_config)
    return manager


@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig(
        max_message_length=100,
        typing_stop_delay_seconds=3.0,
        agent_typing_timeout_seconds=3.0,
    )
