"""
IP Address Pool Manager

Computes free overlay addresses for WireGuard peers.
The pool is derived, never stored: it is a pure function of the peer store
snapshot, the /24 network prefix and the upper bound (254).

Security considerations:
- prefix.1 (server) is never handed out
- Network/broadcast addresses excluded
- Addresses outside the prefix are ignored rather than trusted
"""

import ipaddress
import logging
from typing import Dict, Iterable, Optional, Set

from wg_provisioner.exceptions import PoolExhaustedError

logger = logging.getLogger(__name__)

FIRST_HOST_OCTET = 2
DEFAULT_UPPER_BOUND = 254


def next_free(used: Set[int], upper_bound: int = DEFAULT_UPPER_BOUND) -> Optional[int]:
    """
    First-fit search for a free last octet

    Args:
        used: Last-octet values already assigned
        upper_bound: Highest allocatable octet (inclusive)

    Returns:
        Smallest integer in [2, upper_bound] not in used, or None
    """
    for octet in range(FIRST_HOST_OCTET, upper_bound + 1):
        if octet not in used:
            return octet
    return None


def used_octets(addresses: Iterable, prefix: str) -> Set[int]:
    """
    Extract last octets of addresses sharing the network prefix

    Args:
        addresses: IPv4 addresses (IPv4Address objects or strings)
        prefix: First three octets, e.g. "10.0.0"

    Returns:
        Set of last-octet values inside the prefix
    """
    octets: Set[int] = set()
    for address in addresses:
        try:
            ip = ipaddress.IPv4Address(str(address).split("/")[0])
        except ValueError:
            logger.warning(f"Ignoring malformed address {address!r}")
            continue

        head, _, last = str(ip).rpartition(".")
        if head != prefix:
            continue
        octets.add(int(last))
    return octets


class AddressPool:
    """
    First-fit address pool over prefix.2 .. prefix.upper_bound

    Attributes:
        prefix: First three octets of the overlay network
        upper_bound: Highest allocatable last octet
        reserved: Last octets never handed out (e.g., the server's own)
    """

    def __init__(
        self,
        prefix: str,
        upper_bound: int = DEFAULT_UPPER_BOUND,
        reserved: Optional[Iterable[int]] = None
    ):
        """
        Initialize address pool

        Args:
            prefix: Network prefix (e.g., "10.0.0")
            upper_bound: Highest allocatable last octet
            reserved: Additional reserved last octets

        Raises:
            ValueError: If prefix is not three octets
        """
        try:
            ipaddress.IPv4Network(f"{prefix}.0/24")
        except ValueError as e:
            raise ValueError(f"Invalid network prefix {prefix!r}: {e}")

        self.prefix = prefix
        self.upper_bound = upper_bound
        self.reserved: Set[int] = set(reserved or ())

    @property
    def network(self) -> str:
        return f"{self.prefix}.0/24"

    def used(self, addresses: Iterable) -> Set[int]:
        """Octets in use by addresses plus the reserved ones"""
        return used_octets(addresses, self.prefix) | self.reserved

    def allocate(self, addresses: Iterable) -> ipaddress.IPv4Address:
        """
        Pick the next free address for a store snapshot

        Args:
            addresses: Every address occupied in the peer store

        Returns:
            Allocated IPv4 address

        Raises:
            PoolExhaustedError: If every address in range is used
        """
        addresses = list(addresses)
        octet = next_free(self.used(addresses), self.upper_bound)
        if octet is None:
            raise PoolExhaustedError(
                pool_range=f"{self.prefix}.{FIRST_HOST_OCTET}-{self.prefix}.{self.upper_bound}",
                allocated_count=len(addresses)
            )

        address = ipaddress.IPv4Address(f"{self.prefix}.{octet}")
        logger.debug(f"Next free address in {self.network}: {address}")
        return address

    def get_pool_stats(self, addresses: Iterable) -> Dict[str, int]:
        """
        Get pool statistics

        Returns:
            Dictionary with pool statistics
        """
        in_range = set(range(FIRST_HOST_OCTET, self.upper_bound + 1))
        total = len(in_range)
        reserved = len(self.reserved & in_range)
        assigned = used_octets(addresses, self.prefix)
        allocated = len((assigned & in_range) - self.reserved)
        available = total - reserved - allocated

        return {
            "total_addresses": total,
            "reserved_addresses": reserved,
            "allocated_addresses": allocated,
            "available_addresses": available,
            "utilization_percent": int((allocated / total) * 100) if total > 0 else 0
        }
