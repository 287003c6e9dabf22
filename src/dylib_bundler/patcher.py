"""
Patcher adapters: edit a Mach-O binary's load commands in place.

Every operation returns True on success. Callers treat False as fatal.
"""

import subprocess
from abc import ABC, abstractmethod
from typing import List

from .error_handling import ErrorCategory, get_error_handler


class BasePatcher(ABC):
    """Rewrites library references, rpath entries and install ids."""

    @abstractmethod
    def rewrite_reference(self, target: str, old: str, new: str) -> bool:
        pass

    @abstractmethod
    def rewrite_rpath(self, target: str, old: str, new: str) -> bool:
        pass

    @abstractmethod
    def set_install_id(self, target: str, install_id: str) -> bool:
        pass


class InstallNameToolPatcher(BasePatcher):
    """Patcher backed by ``install_name_tool``."""

    def __init__(self, install_name_tool: str = "install_name_tool"):
        self.install_name_tool = install_name_tool
        self.error_handler = get_error_handler()

    def _run(self, arguments: List[str], target: str) -> bool:
        command = [self.install_name_tool, *arguments, str(target)]
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, errors="replace", check=False
            )
        except OSError as e:
            self.error_handler.error(
                ErrorCategory.MUTATION,
                f"Could not run {self.install_name_tool}",
                "patcher",
                "_run",
                details={"target": target, "reason": str(e)},
            )
            return False

        if result.returncode != 0:
            self.error_handler.error(
                ErrorCategory.MUTATION,
                f"{self.install_name_tool} failed on {target}",
                "patcher",
                "_run",
                details={
                    "arguments": arguments,
                    "returncode": result.returncode,
                    "stderr": result.stderr.strip(),
                },
            )
            return False
        return True

    def rewrite_reference(self, target: str, old: str, new: str) -> bool:
        return self._run(["-change", old, new], target)

    def rewrite_rpath(self, target: str, old: str, new: str) -> bool:
        return self._run(["-rpath", old, new], target)

    def set_install_id(self, target: str, install_id: str) -> bool:
        return self._run(["-id", install_id], target)
