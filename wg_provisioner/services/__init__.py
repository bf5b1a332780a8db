"""
Provisioning services: address pool, peer store, configuration writer and
the transactional provisioning engine.
"""

from wg_provisioner.services.ip_pool_manager import AddressPool, next_free, used_octets
from wg_provisioner.services.peer_store import PeerStore
from wg_provisioner.services.provisioning_lock import ProvisioningLock
from wg_provisioner.services.wireguard_config_manager import WireGuardConfigManager
from wg_provisioner.services.wireguard_provisioning_service import (
    WireGuardProvisioningService,
)

__all__ = [
    "AddressPool",
    "next_free",
    "used_octets",
    "PeerStore",
    "ProvisioningLock",
    "WireGuardConfigManager",
    "WireGuardProvisioningService",
]
