"""
WireGuard Networking Package

External capabilities consumed by the provisioning engine: key material
generation and live interface reloads.
"""

from wg_provisioner.networking.wireguard_keys import (
    KeyProvider,
    CryptographyKeyProvider,
    WgToolKeyProvider,
    get_key_provider,
    validate_public_key_format,
    validate_private_key_format,
)

from wg_provisioner.networking.interface_controller import (
    InterfaceController,
    WgQuickInterfaceController,
    NoopInterfaceController,
)

__all__ = [
    "KeyProvider",
    "CryptographyKeyProvider",
    "WgToolKeyProvider",
    "get_key_provider",
    "validate_public_key_format",
    "validate_private_key_format",
    "InterfaceController",
    "WgQuickInterfaceController",
    "NoopInterfaceController",
]
