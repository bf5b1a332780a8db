"""
Peer provisioning models and schemas
"""

from .peer import (
    PEER_NAME_PATTERN,
    PeerRecord,
    ProvisioningResult,
    ProvisionPeerRequest,
    is_valid_peer_name,
)

__all__ = [
    "PEER_NAME_PATTERN",
    "PeerRecord",
    "ProvisioningResult",
    "ProvisionPeerRequest",
    "is_valid_peer_name",
]
