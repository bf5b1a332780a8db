"""
WireGuard Configuration Manager

Renders and writes the server interface configuration and client profiles.

Security considerations:
- Config file permissions: 0600 (owner read/write only)
- Atomic config updates to prevent corruption: a peer block is either
  fully present or absent
- Server key material is generated only when the interface section is first
  created and never rewritten afterwards
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from wg_provisioner.exceptions import ConfigWriteFailedError, InvalidConfigurationError
from wg_provisioner.networking.wireguard_keys import KeyProvider
from wg_provisioner.services.atomic_file import atomic_write_text

logger = logging.getLogger(__name__)

PERSISTENT_KEEPALIVE = 25
DEFAULT_DNS = "8.8.8.8"
CLIENT_PROFILE_SUFFIX = ".conf"

FORWARD_RULES = (
    "iptables {op} FORWARD -i %i -j ACCEPT; "
    "iptables {op} FORWARD -o %i -j ACCEPT; "
    "iptables -t nat {op} POSTROUTING -o {egress} -j MASQUERADE"
)


class WireGuardPeer:
    """Represents a labelled [Peer] section of the server configuration"""

    def __init__(
        self,
        comment: str,
        public_key: str,
        preshared_key: str,
        allowed_ips: str
    ):
        """
        Initialize peer section

        Args:
            comment: Label written above the section (the peer name)
            public_key: Peer's WireGuard public key
            preshared_key: Preshared key shared with the peer
            allowed_ips: Address routed to the peer (CIDR notation)
        """
        self.comment = comment
        self.public_key = public_key
        self.preshared_key = preshared_key
        self.allowed_ips = allowed_ips

    def to_config_section(self) -> str:
        """
        Convert peer to WireGuard config section

        Returns:
            Formatted section, preceded by a blank line and the label
        """
        lines = [
            "",
            f"# {self.comment}",
            "[Peer]",
            f"PublicKey = {self.public_key}",
            f"PresharedKey = {self.preshared_key}",
            f"AllowedIPs = {self.allowed_ips}",
        ]
        return "\n".join(lines) + "\n"


class WireGuardConfigManager:
    """
    WireGuard configuration file manager

    Attributes:
        key_provider: Source of interface key material
        egress_interface: Interface used by the NAT hooks
    """

    def __init__(self, key_provider: KeyProvider, egress_interface: str = "eth0"):
        self.key_provider = key_provider
        self.egress_interface = egress_interface

    # ------------------------------------------------------------------
    # Server configuration
    # ------------------------------------------------------------------

    def render_interface_section(
        self,
        server_address: str,
        listen_port: int,
        private_key: str
    ) -> str:
        lines = [
            "[Interface]",
            f"Address = {server_address}/24",
            f"ListenPort = {listen_port}",
            f"PrivateKey = {private_key}",
            "",
            "# Allow forwarding (required for NAT)",
            "PostUp = " + FORWARD_RULES.format(op="-A", egress=self.egress_interface),
            "PostDown = " + FORWARD_RULES.format(op="-D", egress=self.egress_interface),
        ]
        return "\n".join(lines) + "\n"

    def ensure_interface_section(
        self,
        path: Union[str, Path],
        server_address: str,
        listen_port: int
    ) -> bool:
        """
        Create the server configuration if it does not exist yet

        Args:
            path: Server configuration path
            server_address: Server overlay address
            listen_port: UDP listen port

        Returns:
            True if the document already existed (nothing was changed)

        Raises:
            KeyGenerationFailedError: If interface keys cannot be generated
            ConfigWriteFailedError: If the document cannot be written
        """
        path = Path(path)
        if path.exists():
            return True

        logger.warning(f"{path} not found. Creating it with basic interface config")
        private_key, _ = self.key_provider.generate_keypair()
        content = self.render_interface_section(str(server_address), listen_port, private_key)

        try:
            atomic_write_text(path, content, mode=0o600, prefix=".wg_")
        except OSError as e:
            raise ConfigWriteFailedError(path, str(e))

        logger.info(f"Created {path} with default interface")
        return False

    def render_peer_section(
        self,
        comment: str,
        public_key: str,
        shared_secret: str,
        allowed_address: str
    ) -> str:
        return WireGuardPeer(
            comment=comment,
            public_key=public_key,
            preshared_key=shared_secret,
            allowed_ips=f"{allowed_address}/32"
        ).to_config_section()

    def append_peer_section(
        self,
        path: Union[str, Path],
        comment: str,
        public_key: str,
        shared_secret: str,
        allowed_address: str
    ) -> None:
        """
        Append a labelled peer section to the server configuration

        The whole document is rewritten atomically, so a failure leaves the
        previous content in place.

        Raises:
            ConfigWriteFailedError: On any I/O error
        """
        section = self.render_peer_section(comment, public_key, shared_secret, allowed_address)
        self.append_section(path, section)
        logger.info(f"Added peer {comment} ({allowed_address}) to {path}")

    def append_section(self, path: Union[str, Path], section: str) -> None:
        """
        Append an already rendered section to the server configuration

        Raises:
            ConfigWriteFailedError: On any I/O error
        """
        path = Path(path)
        current = self.snapshot(path)
        if current and not current.endswith("\n"):
            current += "\n"
        self._write(path, current + section)

    def snapshot(self, path: Union[str, Path]) -> str:
        """
        Read the current document

        Raises:
            ConfigWriteFailedError: If the document cannot be read
        """
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise ConfigWriteFailedError(path, f"cannot read: {e}")

    def restore(self, path: Union[str, Path], content: str) -> None:
        """Put back a snapshot taken before a failed transaction"""
        self._write(Path(path), content)
        logger.warning(f"Restored {path} to its previous content")

    def read_server_private_key(self, path: Union[str, Path]) -> str:
        """
        Extract the [Interface] PrivateKey

        Raises:
            InvalidConfigurationError: If the document has no interface key
        """
        in_interface = False
        for raw in self.snapshot(path).splitlines():
            line = raw.strip()
            if line.startswith("["):
                in_interface = line == "[Interface]"
                continue
            if in_interface and line.startswith("PrivateKey"):
                key, sep, value = line.partition("=")
                if sep and key.strip() == "PrivateKey" and value.strip():
                    return value.strip()

        raise InvalidConfigurationError(
            f"Server configuration {path} has no [Interface] PrivateKey"
        )

    def server_public_key(self, path: Union[str, Path]) -> str:
        return self.key_provider.derive_public(self.read_server_private_key(path))

    def peer_labels(self, path: Union[str, Path]) -> List[str]:
        """
        Labels of the peer sections present in the server configuration

        Returns:
            Comment labels directly preceding a [Peer] header, in file order
        """
        labels: List[str] = []
        previous: Optional[str] = None
        for raw in self.snapshot(path).splitlines():
            line = raw.strip()
            if not line:
                continue
            if line == "[Peer]" and previous and previous.startswith("#"):
                labels.append(previous.lstrip("#").strip())
            previous = line
        return labels

    def _write(self, path: Path, content: str) -> None:
        try:
            atomic_write_text(path, content, mode=0o600, prefix=".wg_")
        except OSError as e:
            raise ConfigWriteFailedError(path, str(e))

    # ------------------------------------------------------------------
    # Client profiles
    # ------------------------------------------------------------------

    @staticmethod
    def render_client_profile(
        private_key: str,
        address: str,
        server_public_key: str,
        endpoint_host: str,
        endpoint_port: int,
        network_prefix: str,
        shared_secret: str,
        comment: Optional[str] = None,
        dns: str = DEFAULT_DNS
    ) -> str:
        """
        Render a standalone client profile (full-tunnel over the overlay)

        Returns:
            Client configuration document
        """
        lines = [
            "[Interface]",
            f"PrivateKey = {private_key}",
            f"Address = {address}/32",
            f"DNS = {dns}",
            "",
        ]
        if comment:
            lines.append(f"# {comment}")
        lines += [
            "[Peer]",
            f"PublicKey = {server_public_key}",
            f"PresharedKey = {shared_secret}",
            f"Endpoint = {endpoint_host}:{endpoint_port}",
            f"AllowedIPs = {network_prefix}.0/24",
            f"PersistentKeepalive = {PERSISTENT_KEEPALIVE}",
        ]
        return "\n".join(lines) + "\n"

    @staticmethod
    def client_profile_path(directory: Union[str, Path], name: str) -> Path:
        return Path(directory) / f"{name}{CLIENT_PROFILE_SUFFIX}"

    def write_client_profile(
        self,
        directory: Union[str, Path],
        name: str,
        document: str
    ) -> Path:
        """
        Write a client profile to <directory>/<name>.conf

        Returns:
            Path of the written profile

        Raises:
            ConfigWriteFailedError: If the profile cannot be written
        """
        target = self.client_profile_path(directory, name)
        try:
            atomic_write_text(target, document, mode=0o600, prefix=".client_")
        except OSError as e:
            raise ConfigWriteFailedError(target, str(e))

        logger.info(f"Client config saved to: {target}")
        return target
