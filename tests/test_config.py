"""
Unit tests for startup configuration loading and validation
"""

import json
from ipaddress import IPv4Address
from pathlib import Path

import pytest
from pydantic import ValidationError

from wg_provisioner.config import (
    CONFIG_PATH_ENV,
    load_settings,
    settings_from_mapping,
)
from wg_provisioner.exceptions import InvalidConfigurationError


@pytest.fixture
def legacy_data(tmp_path):
    """Configuration using the legacy config.json key names"""
    return {
        "server_ip": "10.8.0.1",
        "public_ip": "198.51.100.20",
        "max_users": 10,
        "wg_conf_path": str(tmp_path / "wg0.conf"),
        "peers_db_path": str(tmp_path / ".peers.db"),
        "listen_port": 51820,
    }


class TestSettingsValidation:
    """Unit tests for ProvisionerSettings"""

    def test_canonical_keys(self, settings, tmp_path):
        assert settings.server_address == IPv4Address("10.0.0.1")
        assert settings.public_endpoint == IPv4Address("203.0.113.9")
        assert settings.interface_config_path == tmp_path / "wireguard" / "wg0.conf"
        assert settings.max_users == 3

    def test_legacy_keys_accepted(self, legacy_data):
        """
        Given a legacy config.json
        When validating
        Then should map the old key names onto the canonical fields
        """
        settings = settings_from_mapping(legacy_data)

        assert settings.server_address == IPv4Address("10.8.0.1")
        assert settings.public_endpoint == IPv4Address("198.51.100.20")
        assert settings.interface_config_path.name == "wg0.conf"
        assert settings.peer_store_path.name == ".peers.db"

    def test_defaults(self, legacy_data):
        settings = settings_from_mapping(legacy_data)

        assert settings.clients_dir == Path("clients")
        assert settings.dns == "8.8.8.8"
        assert settings.egress_interface == "eth0"
        assert settings.reload_interface is True
        assert settings.use_sudo is False
        assert settings.lock_timeout is None
        assert settings.key_backend == "cryptography"

    def test_derived_values(self, settings, tmp_path):
        assert settings.network_prefix == "10.0.0"
        assert settings.server_octet == 1
        assert settings.lock_path == tmp_path / ".peers.db.lock"

    @pytest.mark.parametrize("key,value", [
        ("server_address", "10.0.0"),
        ("server_address", "not-an-ip"),
        ("server_address", "::1"),
        ("public_endpoint", 167772161),
        ("max_users", 0),
        ("max_users", -5),
        ("max_users", True),
        ("listen_port", 0),
        ("listen_port", 70000),
        ("listen_port", False),
        ("lock_timeout", 0),
        ("key_backend", "openssl"),
    ])
    def test_invalid_values_rejected(self, settings_data, key, value):
        """
        Given an invalid field value
        When validating
        Then should raise InvalidConfigurationError naming the field
        """
        settings_data[key] = value

        with pytest.raises(InvalidConfigurationError, match=key):
            settings_from_mapping(settings_data)

    def test_missing_required_field(self, settings_data):
        del settings_data["max_users"]

        with pytest.raises(InvalidConfigurationError, match="max_users"):
            settings_from_mapping(settings_data)

    def test_unknown_key_rejected(self, settings_data):
        settings_data["max_user"] = 5

        with pytest.raises(InvalidConfigurationError, match="max_user"):
            settings_from_mapping(settings_data)

    def test_settings_are_immutable(self, settings):
        with pytest.raises(ValidationError):
            settings.max_users = 100


class TestLoadSettings:
    """Unit tests for load_settings"""

    def test_load_from_file(self, tmp_path, legacy_data):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(legacy_data))

        settings = load_settings(path)

        assert settings.max_users == 10

    def test_load_from_environment(self, tmp_path, legacy_data, monkeypatch):
        path = tmp_path / "provisioner.json"
        path.write_text(json.dumps(legacy_data))
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        settings = load_settings()

        assert settings.listen_port == 51820

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidConfigurationError, match="not found"):
            load_settings(tmp_path / "absent.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(InvalidConfigurationError, match="Cannot read"):
            load_settings(path)

    def test_non_object_json(self, tmp_path):
        """
        Given a JSON document that is not an object
        When loading
        Then should raise InvalidConfigurationError
        """
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")

        with pytest.raises(InvalidConfigurationError, match="JSON object"):
            load_settings(path)
