"""
Peer Provisioning Models

Pydantic models for peer records and provisioning requests/responses.

Security considerations:
- Peer names restricted to a safe identifier alphabet, since they are
  written into configuration comments and used as file names
- Addresses validated as IPv4
"""

import re
from ipaddress import IPv4Address
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PEER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,20}$")


def is_valid_peer_name(name) -> bool:
    """Check a peer name against the identifier pattern"""
    return isinstance(name, str) and PEER_NAME_PATTERN.fullmatch(name) is not None


class PeerRecord(BaseModel):
    """One committed name -> address assignment"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., description="Unique peer name")
    address: IPv4Address = Field(..., description="Assigned overlay address")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Validate name format (3-20 alphanumerics, dashes, underscores)"""
        if not is_valid_peer_name(v):
            raise ValueError(
                "name must be 3-20 characters of letters, digits, '_' or '-'"
            )
        return v

    def to_line(self) -> str:
        """Serialize as a peer-store line"""
        return f"{self.name}={self.address}\n"

    @classmethod
    def from_line(cls, line: str) -> "PeerRecord":
        """
        Parse a 'name=address' peer-store line

        Raises:
            ValueError: If the line is malformed
        """
        name, sep, address = line.strip().partition("=")
        if not sep:
            raise ValueError(f"missing '=' in {line.strip()!r}")
        return cls(name=name, address=address.strip())


class ProvisioningResult(BaseModel):
    """Outcome of a successful provisioning call"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Provisioned peer name")
    address: IPv4Address = Field(..., description="Assigned overlay address")
    profile_path: str = Field(..., description="Location of the client profile")
    reloaded: bool = Field(
        True, description="Whether the live interface picked up the change"
    )
    reload_error: Optional[str] = Field(
        None, description="Reload failure detail when reloaded is False"
    )


class ProvisionPeerRequest(BaseModel):
    """Request to provision a new peer"""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Peer name (3-20 letters, digits, '_' or '-')",
    )
