"""Shared pytest fixtures for all tests."""

import pytest

from fluxion.config import Config
from fluxion.relay.rooms import RoomRegistry
from fluxion.session import Role, Session
from fluxion.transfer.crypto import generate_key

from fakes import LoopbackNetwork


@pytest.fixture
def registry():
    """Fresh relay room registry."""
    return RoomRegistry()


@pytest.fixture
def network():
    """Loopback network for FakeTransports."""
    return LoopbackNetwork()


@pytest.fixture
def fast_config(tmp_path):
    """
    Config with the pacing delays shortened for tests.

    Returns:
        Config writing received files under tmp_path/downloads
    """
    return Config(
        metadata_delay=0.0,
        buffer_poll_interval=0.001,
        negotiation_timeout=5.0,
        linger_timeout=2.0,
        output_dir=tmp_path / 'downloads',
    )


@pytest.fixture
def key():
    return generate_key()


@pytest.fixture
def sender_session():
    return Session(Role.SENDER)


@pytest.fixture
def receiver_session():
    return Session(Role.RECEIVER)
