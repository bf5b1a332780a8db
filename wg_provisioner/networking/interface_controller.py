"""
WireGuard Interface Controller

Applies a configuration document to the live interface.

wg-quick derives the interface name from the file stem, so reloading
/etc/wireguard/wg0.conf brings wg0 down and back up.

Note:
    Requires root privileges (or use_sudo=True with a matching sudoers rule).
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from wg_provisioner.exceptions import ReloadFailedError

logger = logging.getLogger(__name__)


class InterfaceController(ABC):
    """Applies a server configuration to the network stack"""

    @abstractmethod
    def reload(self, path: Union[str, Path]) -> None:
        """
        Bring the interface down then up from the document at path

        Raises:
            ReloadFailedError: If the interface could not be brought up
        """


class WgQuickInterfaceController(InterfaceController):
    """Reload through `wg-quick down` / `wg-quick up`"""

    def __init__(self, use_sudo: bool = False, timeout: int = 30):
        self.use_sudo = use_sudo
        self.timeout = timeout

    def _command(self, action: str, path: Path) -> List[str]:
        cmd = ["wg-quick", action, str(path)]
        return ["sudo", *cmd] if self.use_sudo else cmd

    def _run(self, action: str, path: Path) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                self._command(action, path),
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise ReloadFailedError("wg-quick command not found")
        except OSError as e:
            raise ReloadFailedError(f"wg-quick {action} could not be started: {e}")
        except subprocess.TimeoutExpired:
            raise ReloadFailedError(f"wg-quick {action} timed out")

    def reload(self, path: Union[str, Path]) -> None:
        path = Path(path)
        interface = path.stem

        down = self._run("down", path)
        if down.returncode != 0:
            # Not up yet on first provisioning.
            logger.warning(
                f"wg-quick down {interface} failed (continuing): {down.stderr.strip()}"
            )

        up = self._run("up", path)
        if up.returncode != 0:
            raise ReloadFailedError(
                f"wg-quick up {interface} failed: {up.stderr.strip()}"
            )

        logger.info(f"Reloaded WireGuard interface {interface}")


class NoopInterfaceController(InterfaceController):
    """Leaves the live interface untouched"""

    def reload(self, path: Union[str, Path]) -> None:
        logger.info(f"Interface reload disabled; skipping {path}")
