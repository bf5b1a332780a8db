"""
Provisioning error taxonomy

Every failure the provisioning core can raise derives from ProvisioningError,
so callers (the HTTP layer, scripts) can catch one base class and map the
concrete subclass to a response.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base exception for provisioning errors"""
    pass


class InvalidConfigurationError(ProvisioningError):
    """Raised when the startup configuration is missing or malformed"""
    pass


class InvalidNameError(ProvisioningError):
    """Raised when a peer name does not match the identifier pattern"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid peer name {name!r}: must be 3-20 characters of "
            f"letters, digits, '_' or '-'"
        )


class DuplicateNameError(ProvisioningError):
    """Raised when attempting to provision an already-provisioned peer"""

    def __init__(self, name: str, existing_address: Optional[str] = None):
        self.name = name
        self.existing_address = existing_address
        message = f"Peer {name} is already provisioned"
        if existing_address:
            message += f" with IP {existing_address}"
        super().__init__(message)


class DuplicateAddressError(ProvisioningError):
    """Raised when a record would reuse an address already in the store"""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address {address} is already assigned")


class CapacityExceededError(ProvisioningError):
    """Raised when the store already holds max_users records"""

    def __init__(self, max_users: int):
        self.max_users = max_users
        super().__init__(f"Peer capacity reached ({max_users} peers)")


class PoolExhaustedError(ProvisioningError):
    """Raised when IP address pool is exhausted"""

    def __init__(self, pool_range: str, allocated_count: int):
        self.pool_range = pool_range
        self.allocated_count = allocated_count
        super().__init__(
            f"IP pool exhausted: {allocated_count} addresses allocated "
            f"from range {pool_range}"
        )


class ConfigWriteFailedError(ProvisioningError):
    """Raised when a configuration document cannot be written"""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Failed to write {path}: {reason}")


class KeyGenerationFailedError(ProvisioningError):
    """Raised when key material cannot be generated or derived"""
    pass


class ReloadFailedError(ProvisioningError):
    """Raised when the live interface cannot be reloaded"""
    pass


class LockTimeoutError(ProvisioningError):
    """Raised when the provisioning lock is not acquired within the bound"""

    def __init__(self, lock_path, timeout: float):
        self.lock_path = str(lock_path)
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for lock {lock_path}"
        )
