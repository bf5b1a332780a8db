"""
Pytest configuration and shared fixtures
"""

import itertools
import sys
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wg_provisioner.config import settings_from_mapping
from wg_provisioner.exceptions import ReloadFailedError
from wg_provisioner.networking.interface_controller import InterfaceController
from wg_provisioner.networking.wireguard_keys import KeyProvider


class FakeKeyProvider(KeyProvider):
    """Deterministic key material: public key is 'pub-' + private key"""

    def __init__(self):
        self._counter = itertools.count(1)

    def generate_keypair(self):
        private_key = f"priv{next(self._counter)}"
        return private_key, self.derive_public(private_key)

    def generate_shared_secret(self):
        return f"psk{next(self._counter)}"

    def derive_public(self, private_key):
        return f"pub-{private_key}"


class RecordingInterfaceController(InterfaceController):
    """Records reload calls; fails when fail=True"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.reloads = []

    def reload(self, path):
        self.reloads.append(Path(path))
        if self.fail:
            raise ReloadFailedError("wg-quick up wg0 failed: RTNETLINK answers: Operation not supported")


@pytest.fixture(scope="session")
def test_prefix():
    """Test overlay network prefix"""
    return "10.0.0"


@pytest.fixture
def settings_data(tmp_path):
    """Raw startup configuration pointing at temporary files"""
    return {
        "server_address": "10.0.0.1",
        "public_endpoint": "203.0.113.9",
        "max_users": 3,
        "interface_config_path": str(tmp_path / "wireguard" / "wg0.conf"),
        "peer_store_path": str(tmp_path / ".peers.db"),
        "listen_port": 51820,
        "clients_dir": str(tmp_path / "clients"),
        "reload_interface": False,
    }


@pytest.fixture
def settings(settings_data):
    """Validated startup configuration"""
    return settings_from_mapping(settings_data)


@pytest.fixture
def key_provider():
    return FakeKeyProvider()


@pytest.fixture
def interface_controller():
    return RecordingInterfaceController()


@pytest.fixture
def failing_interface_controller():
    return RecordingInterfaceController(fail=True)
