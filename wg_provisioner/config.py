"""
Provisioner Startup Configuration

Typed configuration for the provisioning core, validated once at startup.
Accepts the keys of the legacy config.json (server_ip, public_ip,
wg_conf_path, peers_db_path) as aliases of the canonical field names.
"""

import json
import logging
import os
from ipaddress import IPv4Address
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from wg_provisioner.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "WG_PROVISIONER_CONFIG"
DEFAULT_CONFIG_PATH = "config.json"


class ProvisionerSettings(BaseModel):
    """Startup configuration for peer provisioning"""
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    server_address: IPv4Address = Field(
        ...,
        validation_alias=AliasChoices("server_address", "server_ip"),
        description="Server address inside the overlay (e.g., 10.0.0.1)",
    )
    public_endpoint: IPv4Address = Field(
        ...,
        validation_alias=AliasChoices("public_endpoint", "public_ip"),
        description="Public address clients connect to",
    )
    max_users: int = Field(..., gt=0, description="Maximum number of peers")
    interface_config_path: Path = Field(
        ...,
        validation_alias=AliasChoices("interface_config_path", "wg_conf_path"),
        description="Server WireGuard configuration (e.g., /etc/wireguard/wg0.conf)",
    )
    peer_store_path: Path = Field(
        ...,
        validation_alias=AliasChoices("peer_store_path", "peers_db_path"),
        description="Peer record store (name=address per line)",
    )
    listen_port: int = Field(..., gt=0, le=65535, description="UDP listen port")

    clients_dir: Path = Field(
        Path("clients"), description="Directory receiving client profiles"
    )
    dns: str = Field("8.8.8.8", description="Resolver pushed to clients")
    egress_interface: str = Field(
        "eth0", description="Interface used by the NAT hooks"
    )
    reload_interface: bool = Field(
        True, description="Apply changes to the live interface with wg-quick"
    )
    use_sudo: bool = Field(False, description="Prefix wg-quick with sudo")
    lock_timeout: Optional[float] = Field(
        None, gt=0, description="Seconds to wait for the lock (None blocks)"
    )
    key_backend: Literal["cryptography", "wg"] = Field(
        "cryptography", description="Key generation backend"
    )

    @field_validator("server_address", "public_endpoint", mode="before")
    @classmethod
    def validate_ipv4(cls, v):
        """Require dotted-quad IPv4 strings"""
        if isinstance(v, IPv4Address):
            return v
        if not isinstance(v, str):
            raise ValueError("must be an IPv4 address string")
        return IPv4Address(v.strip())

    @field_validator("max_users", "listen_port", mode="before")
    @classmethod
    def reject_bool(cls, v):
        """Reject booleans that would otherwise coerce to 0/1"""
        if isinstance(v, bool):
            raise ValueError("must be an integer")
        return v

    @property
    def network_prefix(self) -> str:
        """First three octets of the server address (e.g., '10.0.0')"""
        return str(self.server_address).rsplit(".", 1)[0]

    @property
    def server_octet(self) -> int:
        return int(str(self.server_address).rsplit(".", 1)[1])

    @property
    def lock_path(self) -> Path:
        return self.peer_store_path.with_name(self.peer_store_path.name + ".lock")


def load_settings(path: Optional[Union[str, Path]] = None) -> ProvisionerSettings:
    """
    Load and validate the startup configuration

    Args:
        path: JSON configuration file. Defaults to $WG_PROVISIONER_CONFIG,
            then ./config.json

    Returns:
        Validated ProvisionerSettings

    Raises:
        InvalidConfigurationError: If the file is missing, unreadable,
            not JSON, or fails validation
    """
    config_path = Path(path or os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise InvalidConfigurationError(
            f"Configuration file '{config_path}' not found"
        )
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidConfigurationError(
            f"Cannot read configuration file '{config_path}': {e}"
        )

    if not isinstance(raw, dict):
        raise InvalidConfigurationError(
            f"Configuration file '{config_path}' must contain a JSON object"
        )

    settings = settings_from_mapping(raw)
    logger.info(
        f"Loaded configuration from {config_path}: "
        f"server={settings.server_address}, endpoint={settings.public_endpoint}, "
        f"max_users={settings.max_users}"
    )
    return settings


def settings_from_mapping(data: dict) -> ProvisionerSettings:
    """Validate a configuration mapping, raising InvalidConfigurationError"""
    try:
        return ProvisionerSettings.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidConfigurationError(f"Invalid configuration: {problems}")
