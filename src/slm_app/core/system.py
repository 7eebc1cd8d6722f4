"""OS-level actions requested over the protocol."""

from __future__ import annotations

import logging
import subprocess
from typing import Sequence

log = logging.getLogger("slm_app")


class RebootRunner:
    def __init__(self, command: Sequence[str], timeout_s: int = 30) -> None:
        self.command = list(command)
        self.timeout_s = timeout_s

    def reboot(self) -> None:
        log.warning("Rebooting: %s", " ".join(self.command))
        try:
            completed = subprocess.run(
                self.command,
                check=False,
                text=True,
                capture_output=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError:
            raise RuntimeError(f"missing command: {self.command[0]}") from None
        except subprocess.TimeoutExpired:
            raise RuntimeError(f"timeout: {' '.join(self.command)}") from None
        if completed.returncode != 0:
            raise RuntimeError(
                f"reboot command exited with {completed.returncode}: {completed.stderr.strip()}"
            )
