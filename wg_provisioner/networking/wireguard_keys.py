"""
WireGuard key material providers.

The provisioning engine consumes key generation as an opaque capability:
- Generating X25519 keypairs for peers and the server interface
- Generating preshared keys
- Deriving a public key from a stored private key

Keys are exchanged as base64 strings, the format WireGuard config files use.
"""

import base64
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives import serialization

from wg_provisioner.exceptions import KeyGenerationFailedError

logger = logging.getLogger(__name__)

KEY_BYTES = 32


class KeyProvider(ABC):
    """Source of WireGuard key material"""

    @abstractmethod
    def generate_keypair(self) -> Tuple[str, str]:
        """Return (private_key, public_key) in base64"""

    @abstractmethod
    def generate_shared_secret(self) -> str:
        """Return a base64 preshared key"""

    @abstractmethod
    def derive_public(self, private_key: str) -> str:
        """Return the base64 public key for a base64 private key"""


class CryptographyKeyProvider(KeyProvider):
    """In-process X25519 key generation using the cryptography package"""

    def generate_keypair(self) -> Tuple[str, str]:
        """
        Generate a new WireGuard keypair using X25519.

        Returns:
            Tuple[str, str]: (private_key, public_key), 44 base64 characters each
        """
        try:
            private_key_obj = X25519PrivateKey.generate()
            private_key_bytes = private_key_obj.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption()
            )
        except Exception as e:
            raise KeyGenerationFailedError(f"Failed to generate keypair: {e}")

        private_key = base64.b64encode(private_key_bytes).decode("ascii")
        return private_key, self.derive_public(private_key)

    def generate_shared_secret(self) -> str:
        return base64.b64encode(os.urandom(KEY_BYTES)).decode("ascii")

    def derive_public(self, private_key: str) -> str:
        """
        Derive the public key from a private key.

        Raises:
            KeyGenerationFailedError: If the private key is invalid
        """
        try:
            private_key_bytes = base64.b64decode(private_key, validate=True)
        except (ValueError, TypeError) as e:
            raise KeyGenerationFailedError(f"Invalid private key format: {e}")

        if len(private_key_bytes) != KEY_BYTES:
            raise KeyGenerationFailedError(
                f"Invalid private key length: expected {KEY_BYTES} bytes, "
                f"got {len(private_key_bytes)}"
            )

        public_key_obj = X25519PrivateKey.from_private_bytes(private_key_bytes).public_key()
        public_key_bytes = public_key_obj.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return base64.b64encode(public_key_bytes).decode("ascii")


class WgToolKeyProvider(KeyProvider):
    """Key generation through the wg(8) command line tool"""

    def __init__(self, wg_binary: str = "wg", timeout: int = 10):
        self.wg_binary = wg_binary
        self.timeout = timeout

    def _run(self, args: List[str], stdin: Optional[str] = None) -> str:
        try:
            result = subprocess.run(
                [self.wg_binary, *args],
                input=stdin,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise KeyGenerationFailedError(f"{self.wg_binary} command not found")
        except OSError as e:
            raise KeyGenerationFailedError(f"{self.wg_binary} {args[0]} could not be started: {e}")
        except subprocess.CalledProcessError as e:
            raise KeyGenerationFailedError(
                f"{self.wg_binary} {args[0]} failed: {e.stderr.strip()}"
            )
        except subprocess.TimeoutExpired:
            raise KeyGenerationFailedError(f"{self.wg_binary} {args[0]} timed out")
        return result.stdout.strip()

    def _key_output(self, args: List[str], validator, stdin: Optional[str] = None) -> str:
        key = self._run(args, stdin=stdin)
        if not validator(key):
            raise KeyGenerationFailedError(
                f"{self.wg_binary} {args[0]} returned a malformed key"
            )
        return key

    def generate_keypair(self) -> Tuple[str, str]:
        private_key = self._key_output(["genkey"], validate_private_key_format)
        return private_key, self.derive_public(private_key)

    def generate_shared_secret(self) -> str:
        return self._key_output(["genpsk"], validate_public_key_format)

    def derive_public(self, private_key: str) -> str:
        return self._key_output(["pubkey"], validate_public_key_format, stdin=private_key + "\n")


def get_key_provider(backend: str = "cryptography") -> KeyProvider:
    """Build the provider named by the key_backend setting"""
    if backend == "wg":
        return WgToolKeyProvider()
    if backend == "cryptography":
        return CryptographyKeyProvider()
    raise ValueError(f"Unknown key backend: {backend}")


def validate_public_key_format(public_key) -> bool:
    """
    Validate that a public key matches the WireGuard base64 format.

    Returns:
        bool: True if it is 44 characters decoding to 32 bytes
    """
    if public_key is None or not isinstance(public_key, str):
        return False

    if len(public_key) != 44:
        return False

    try:
        return len(base64.b64decode(public_key, validate=True)) == KEY_BYTES
    except (ValueError, TypeError):
        return False


def validate_private_key_format(private_key) -> bool:
    """
    Validate that a private key matches the WireGuard base64 format.

    Returns:
        bool: True if valid, False otherwise
    """
    if not validate_public_key_format(private_key):
        return False

    try:
        X25519PrivateKey.from_private_bytes(base64.b64decode(private_key))
        return True
    except ValueError:
        return False
