"""
WireGuard Peer Provisioning Service

Orchestrates one transactional "add peer" operation.

Workflow:
1. Validate the peer name, then (under the lock) uniqueness and capacity
2. Allocate the first free address from the pool
3. Generate peer key material; create the server interface section if absent
4. Stage the peer section and client profile in memory
5. Commit: record in the peer store, append the server peer section, write
   the client profile; any failure restores all three
6. Reload the live interface (failure is reported, never unwound)

Security considerations:
- Cross-process serialisation through an exclusive flock
- Atomic file replacement for every document touched
- Peer private keys only ever land in the 0600 client profile
"""

import logging
from typing import Dict, List, Optional, Tuple

from wg_provisioner.config import ProvisionerSettings
from wg_provisioner.exceptions import (
    CapacityExceededError,
    DuplicateNameError,
    InvalidNameError,
    ReloadFailedError,
)
from wg_provisioner.models.peer import PeerRecord, ProvisioningResult, is_valid_peer_name
from wg_provisioner.networking.interface_controller import (
    InterfaceController,
    NoopInterfaceController,
    WgQuickInterfaceController,
)
from wg_provisioner.networking.wireguard_keys import KeyProvider, get_key_provider
from wg_provisioner.services.ip_pool_manager import AddressPool
from wg_provisioner.services.peer_store import PeerStore
from wg_provisioner.services.provisioning_lock import ProvisioningLock
from wg_provisioner.services.wireguard_config_manager import WireGuardConfigManager

logger = logging.getLogger(__name__)


class WireGuardProvisioningService:
    """
    WireGuard peer provisioning engine

    Collaborators are injected so the transaction logic can run without real
    cryptographic or networking primitives.

    Attributes:
        settings: Validated startup configuration
        peer_store: Durable name -> address records
        address_pool: Address allocation policy
        key_provider: Key material capability
        config_manager: Server configuration / client profile writer
        interface_controller: Live interface reload capability
    """

    def __init__(
        self,
        settings: ProvisionerSettings,
        peer_store: Optional[PeerStore] = None,
        key_provider: Optional[KeyProvider] = None,
        config_manager: Optional[WireGuardConfigManager] = None,
        interface_controller: Optional[InterfaceController] = None,
        address_pool: Optional[AddressPool] = None
    ):
        self.settings = settings
        self.peer_store = peer_store or PeerStore(
            settings.peer_store_path, settings.max_users
        )
        self.key_provider = key_provider or get_key_provider(settings.key_backend)
        self.config_manager = config_manager or WireGuardConfigManager(
            key_provider=self.key_provider,
            egress_interface=settings.egress_interface
        )
        if interface_controller is None:
            if settings.reload_interface:
                interface_controller = WgQuickInterfaceController(use_sudo=settings.use_sudo)
            else:
                interface_controller = NoopInterfaceController()
        self.interface_controller = interface_controller
        self.address_pool = address_pool or AddressPool(
            prefix=settings.network_prefix,
            reserved=[settings.server_octet]
        )

        logger.info(
            f"Initialized WireGuard provisioning service: "
            f"network={self.address_pool.network}, "
            f"endpoint={settings.public_endpoint}:{settings.listen_port}, "
            f"max_users={settings.max_users}"
        )

    def _lock(self) -> ProvisioningLock:
        return ProvisioningLock(self.settings.lock_path, self.settings.lock_timeout)

    def provision_peer(self, name: str) -> ProvisioningResult:
        """
        Provision a new WireGuard peer

        Args:
            name: Peer name, 3-20 letters, digits, '_' or '-'

        Returns:
            ProvisioningResult with the assigned address and profile path

        Raises:
            InvalidNameError: If name fails the identifier pattern
            DuplicateNameError: If the peer already exists
            CapacityExceededError: If max_users peers already exist
            PoolExhaustedError: If no address is free
            KeyGenerationFailedError: If key material cannot be produced
            ConfigWriteFailedError: If a document cannot be written
            LockTimeoutError: If lock_timeout is set and elapses
        """
        if not is_valid_peer_name(name):
            raise InvalidNameError(name)

        settings = self.settings
        config_path = settings.interface_config_path

        with self._lock():
            logger.info(f"Provisioning peer: name={name}")

            # Validating
            if self.peer_store.exists(name):
                raise DuplicateNameError(name, self.peer_store.existing_address(name))
            if self.peer_store.count() >= settings.max_users:
                raise CapacityExceededError(settings.max_users)

            # Allocating
            address = self.address_pool.allocate(self.peer_store.occupied_addresses())
            record = PeerRecord(name=name, address=address)

            # Generating
            private_key, public_key = self.key_provider.generate_keypair()
            shared_secret = self.key_provider.generate_shared_secret()
            self.config_manager.ensure_interface_section(
                config_path, str(settings.server_address), settings.listen_port
            )

            # Staging
            peer_section = self.config_manager.render_peer_section(
                name, public_key, shared_secret, str(address)
            )
            profile = self._render_profile(record, private_key, shared_secret)
            store_snapshot = self.peer_store.snapshot()
            config_snapshot = self.config_manager.snapshot(config_path)

            # Committing
            self.peer_store.append(record)
            try:
                self.config_manager.append_section(config_path, peer_section)
                profile_path = self.config_manager.write_client_profile(
                    settings.clients_dir, name, profile
                )
            except Exception as e:
                logger.error(f"Failed to commit peer {name}, rolling back: {e}")
                self._rollback(name, store_snapshot, config_snapshot)
                raise

            # Reloading
            reloaded, reload_error = self._reload()

        logger.info(f"Successfully provisioned peer {name} with IP {address}")

        return ProvisioningResult(
            name=name,
            address=address,
            profile_path=str(profile_path),
            reloaded=reloaded,
            reload_error=reload_error
        )

    def reconcile(self) -> List[str]:
        """
        Re-derive missing server peer sections from the peer store

        A crash between the store commit and the section write leaves a
        record with no [Peer] block. Each such peer gets fresh key material,
        a new section and a rewritten client profile.

        Returns:
            Names of the repaired peers
        """
        settings = self.settings
        config_path = settings.interface_config_path

        with self._lock():
            records = self.peer_store.load()
            if not records:
                return []

            self.config_manager.ensure_interface_section(
                config_path, str(settings.server_address), settings.listen_port
            )
            present = set(self.config_manager.peer_labels(config_path))
            missing = [r for r in records if r.name not in present]

            for record in missing:
                private_key, public_key = self.key_provider.generate_keypair()
                shared_secret = self.key_provider.generate_shared_secret()
                profile = self._render_profile(record, private_key, shared_secret)

                self.config_manager.append_peer_section(
                    config_path, record.name, public_key, shared_secret, str(record.address)
                )
                self.config_manager.write_client_profile(
                    settings.clients_dir, record.name, profile
                )
                logger.warning(f"Re-derived configuration for peer {record.name}")

            if missing:
                self._reload()

        return [r.name for r in missing]

    def reload_interface(self) -> Tuple[bool, Optional[str]]:
        """
        Retry the reload step for an already committed peer

        Returns:
            (reloaded, reload_error) as reported on ProvisioningResult
        """
        with self._lock():
            return self._reload()

    def get_pool_stats(self) -> Dict[str, int]:
        """
        Get IP pool statistics

        Returns:
            Dictionary with pool statistics
        """
        return self.address_pool.get_pool_stats(self.peer_store.occupied_addresses())

    def _render_profile(self, record: PeerRecord, private_key: str, shared_secret: str) -> str:
        settings = self.settings
        return self.config_manager.render_client_profile(
            private_key=private_key,
            address=str(record.address),
            server_public_key=self.config_manager.server_public_key(
                settings.interface_config_path
            ),
            endpoint_host=str(settings.public_endpoint),
            endpoint_port=settings.listen_port,
            network_prefix=settings.network_prefix,
            shared_secret=shared_secret,
            comment=record.name,
            dns=settings.dns
        )

    def _reload(self) -> Tuple[bool, Optional[str]]:
        try:
            self.interface_controller.reload(self.settings.interface_config_path)
        except ReloadFailedError as e:
            logger.error(f"Reload failed, peer stays committed: {e}")
            return False, str(e)
        return True, None

    def _rollback(
        self,
        name: str,
        store_snapshot: str,
        config_snapshot: str
    ) -> None:
        # The client profile is the last write and is atomic, so it never
        # exists here.
        steps = (
            ("server configuration", lambda: self.config_manager.restore(
                self.settings.interface_config_path, config_snapshot)),
            ("peer store", lambda: self.peer_store.restore(store_snapshot)),
        )
        for label, undo in steps:
            try:
                undo()
            except Exception as e:
                logger.error(f"Rollback of {label} for peer {name} failed: {e}", exc_info=True)
