"""
Peer Record Store

Durable name -> address assignments, one 'name=address' line per peer.
The store is the single source of truth for allocation and capacity and is
re-read from disk on every call; nothing is cached between operations.

Lines the record codec rejects (hand edits, legacy names) are never dropped:
appends extend the original text, every non-blank line counts toward
capacity, and any dotted-quad address on a line counts as used.

Callers mutating the store must hold the ProvisioningLock.
"""

import logging
import re
from ipaddress import IPv4Address
from pathlib import Path
from typing import List, Optional, Set, Union

from wg_provisioner.exceptions import (
    CapacityExceededError,
    ConfigWriteFailedError,
    DuplicateAddressError,
    DuplicateNameError,
)
from wg_provisioner.models.peer import PeerRecord
from wg_provisioner.services.atomic_file import atomic_write_text

logger = logging.getLogger(__name__)

DOTTED_QUAD = re.compile(r"\d+\.\d+\.\d+\.\d+")


def _entry_lines(content: str) -> List[str]:
    return [line for line in content.splitlines() if line.strip()]


def _entry_name(line: str) -> str:
    return line.partition("=")[0].strip()


def _line_addresses(line: str) -> Set[IPv4Address]:
    found: Set[IPv4Address] = set()
    for candidate in DOTTED_QUAD.findall(line):
        try:
            found.add(IPv4Address(candidate))
        except ValueError:
            continue
    return found


class PeerStore:
    """
    Flat-file peer record store

    Attributes:
        path: Backing file
        max_users: Capacity enforced on append
    """

    def __init__(self, path: Union[str, Path], max_users: int):
        self.path = Path(path)
        self.max_users = max_users

    def snapshot(self) -> str:
        """
        Raw store content, creating an empty store when missing

        Raises:
            ConfigWriteFailedError: If the store cannot be read or created
        """
        try:
            if not self.path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.touch(mode=0o600)
                logger.info(f"Created empty peer store at {self.path}")
                return ""
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigWriteFailedError(self.path, f"cannot read: {e}")

    def load(self) -> List[PeerRecord]:
        """
        Parse persisted records

        Blank lines are skipped. Malformed lines are logged and left out of
        the result but stay in the file.

        Returns:
            Records in file order
        """
        records: List[PeerRecord] = []
        for lineno, line in enumerate(self.snapshot().splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(PeerRecord.from_line(line))
            except ValueError as e:
                logger.warning(f"Skipping malformed line {lineno} in {self.path}: {e}")
        return records

    def exists(self, name: str) -> bool:
        """Case-sensitive match against the name of every stored line"""
        return any(_entry_name(line) == name for line in _entry_lines(self.snapshot()))

    def count(self) -> int:
        """Number of non-blank lines, parsed or not"""
        return len(_entry_lines(self.snapshot()))

    def occupied_addresses(self) -> Set[IPv4Address]:
        """Every well-formed IPv4 address appearing on any stored line"""
        occupied: Set[IPv4Address] = set()
        for line in _entry_lines(self.snapshot()):
            occupied |= _line_addresses(line)
        return occupied

    def existing_address(self, name: str) -> Optional[str]:
        """Address text recorded for name, even on a line that does not parse"""
        for line in _entry_lines(self.snapshot()):
            if _entry_name(line) == name:
                return line.partition("=")[2].strip() or None
        return None

    def append(self, record: PeerRecord) -> None:
        """
        Durably append a record

        Capacity and uniqueness are re-checked against a fresh read so the
        check and the write happen under the same lock. The existing text is
        kept byte for byte.

        Raises:
            CapacityExceededError: If the store is full
            DuplicateNameError: If the name is taken
            DuplicateAddressError: If the address is taken
            ConfigWriteFailedError: If the store cannot be written
        """
        content = self.snapshot()
        lines = _entry_lines(content)

        if len(lines) >= self.max_users:
            raise CapacityExceededError(self.max_users)

        for line in lines:
            if _entry_name(line) == record.name:
                raise DuplicateNameError(record.name, line.partition("=")[2].strip() or None)
            if record.address in _line_addresses(line):
                raise DuplicateAddressError(str(record.address))

        if content and not content.endswith("\n"):
            content += "\n"
        self._write(content + record.to_line())
        logger.info(f"Recorded peer {record.name} -> {record.address}")

    def restore(self, content: str) -> None:
        """Rewrite a previously taken snapshot (transaction rollback)"""
        self._write(content)
        logger.warning(f"Restored peer store {self.path} to its previous content")

    def _write(self, content: str) -> None:
        try:
            atomic_write_text(self.path, content, mode=0o600, prefix=".peers_")
        except OSError as e:
            raise ConfigWriteFailedError(self.path, str(e))
