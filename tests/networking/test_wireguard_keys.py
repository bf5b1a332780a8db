"""
Tests for WireGuard key material providers.

This module tests:
- X25519 keypair generation with the cryptography package
- Public key derivation from stored private keys
- wg(8) tool backend with subprocess mocked
- Key format validation
"""

import base64
import subprocess
from unittest.mock import Mock, patch

import pytest

from wg_provisioner.exceptions import KeyGenerationFailedError
from wg_provisioner.networking.wireguard_keys import (
    CryptographyKeyProvider,
    WgToolKeyProvider,
    get_key_provider,
    validate_private_key_format,
    validate_public_key_format,
)

WG_PRIVATE = base64.b64encode(bytes(range(32))).decode()
WG_PUBLIC = base64.b64encode(bytes(range(32, 64))).decode()
WG_PSK = base64.b64encode(bytes(range(64, 96))).decode()


class TestCryptographyKeyProvider:
    """Test suite for in-process key generation."""

    def test_keypair_generation(self):
        """
        Given no existing keys
        When generating keypair
        Then should return 44-character base64 private and public keys
        """
        private_key, public_key = CryptographyKeyProvider().generate_keypair()

        assert len(private_key) == 44
        assert len(public_key) == 44
        assert len(base64.b64decode(private_key)) == 32
        assert len(base64.b64decode(public_key)) == 32

    def test_keypairs_are_unique(self):
        provider = CryptographyKeyProvider()

        keys = {provider.generate_keypair()[0] for _ in range(5)}

        assert len(keys) == 5

    def test_derive_public_matches_generation(self):
        """
        Given a generated keypair
        When deriving the public key from the private key
        Then should reproduce the generated public key
        """
        provider = CryptographyKeyProvider()
        private_key, public_key = provider.generate_keypair()

        assert provider.derive_public(private_key) == public_key

    def test_shared_secret_format(self):
        secret = CryptographyKeyProvider().generate_shared_secret()

        assert validate_public_key_format(secret)

    @pytest.mark.parametrize("private_key", ["not base64!!", base64.b64encode(b"short").decode()])
    def test_invalid_private_key(self, private_key):
        with pytest.raises(KeyGenerationFailedError):
            CryptographyKeyProvider().derive_public(private_key)


class TestWgToolKeyProvider:
    """Test suite for the wg(8) backend."""

    def _completed(self, stdout):
        return Mock(stdout=stdout, stderr="", returncode=0)

    def test_generate_keypair_runs_genkey_then_pubkey(self):
        provider = WgToolKeyProvider()

        with patch("wg_provisioner.networking.wireguard_keys.subprocess.run") as mock_run:
            mock_run.side_effect = [self._completed(WG_PRIVATE + "\n"), self._completed(WG_PUBLIC + "\n")]
            private_key, public_key = provider.generate_keypair()

        assert (private_key, public_key) == (WG_PRIVATE, WG_PUBLIC)
        assert mock_run.call_args_list[0].args[0] == ["wg", "genkey"]
        assert mock_run.call_args_list[1].args[0] == ["wg", "pubkey"]
        assert mock_run.call_args_list[1].kwargs["input"] == WG_PRIVATE + "\n"

    def test_generate_shared_secret(self):
        with patch("wg_provisioner.networking.wireguard_keys.subprocess.run") as mock_run:
            mock_run.return_value = self._completed(WG_PSK + "\n")

            assert WgToolKeyProvider().generate_shared_secret() == WG_PSK
            assert mock_run.call_args.args[0] == ["wg", "genpsk"]

    def test_missing_binary(self):
        with patch(
            "wg_provisioner.networking.wireguard_keys.subprocess.run",
            side_effect=FileNotFoundError()
        ):
            with pytest.raises(KeyGenerationFailedError, match="not found"):
                WgToolKeyProvider().generate_keypair()

    def test_command_failure(self):
        """
        Given wg exiting non-zero
        When generating key material
        Then should raise KeyGenerationFailedError with stderr
        """
        error = subprocess.CalledProcessError(1, ["wg", "genpsk"], stderr="permission denied\n")

        with patch("wg_provisioner.networking.wireguard_keys.subprocess.run", side_effect=error):
            with pytest.raises(KeyGenerationFailedError, match="permission denied"):
                WgToolKeyProvider().generate_shared_secret()

    def test_timeout(self):
        with patch(
            "wg_provisioner.networking.wireguard_keys.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["wg", "genkey"], 10)
        ):
            with pytest.raises(KeyGenerationFailedError, match="timed out"):
                WgToolKeyProvider().generate_keypair()

    def test_command_not_executable(self):
        with patch(
            "wg_provisioner.networking.wireguard_keys.subprocess.run",
            side_effect=PermissionError(13, "Permission denied", "wg")
        ):
            with pytest.raises(KeyGenerationFailedError, match="could not be started"):
                WgToolKeyProvider().generate_shared_secret()

    @pytest.mark.parametrize("output", ["", "not-a-key\n", "A" * 45 + "\n"])
    def test_malformed_key_output(self, output):
        """
        Given wg printing something other than a base64 key
        When generating key material
        Then should raise KeyGenerationFailedError instead of returning it
        """
        with patch("wg_provisioner.networking.wireguard_keys.subprocess.run") as mock_run:
            mock_run.return_value = self._completed(output)

            with pytest.raises(KeyGenerationFailedError, match="malformed key"):
                WgToolKeyProvider().generate_keypair()

    def test_malformed_public_key_output(self):
        with patch("wg_provisioner.networking.wireguard_keys.subprocess.run") as mock_run:
            mock_run.side_effect = [self._completed(WG_PRIVATE + "\n"), self._completed("garbage\n")]

            with pytest.raises(KeyGenerationFailedError, match="pubkey returned a malformed key"):
                WgToolKeyProvider().generate_keypair()


class TestKeyProviderFactory:

    def test_backends(self):
        assert isinstance(get_key_provider("cryptography"), CryptographyKeyProvider)
        assert isinstance(get_key_provider("wg"), WgToolKeyProvider)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_key_provider("openssl")


class TestKeyValidation:
    """Test suite for key format validation."""

    def test_valid_keys(self):
        private_key, public_key = CryptographyKeyProvider().generate_keypair()

        assert validate_public_key_format(public_key)
        assert validate_private_key_format(private_key)

    @pytest.mark.parametrize("key", [None, 123, "", "too_short", "A" * 43 + "!", "A" * 45])
    def test_invalid_keys(self, key):
        assert not validate_public_key_format(key)
        assert not validate_private_key_format(key)
