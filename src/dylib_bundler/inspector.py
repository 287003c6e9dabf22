"""
Inspector adapters: read a Mach-O binary's load commands.

The default implementation runs ``otool -l`` and scrapes its text output
for library references (LC_LOAD_DYLIB and friends) and LC_RPATH entries.
"""

import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .error_handling import (
    ConfigurationError,
    DiscoveryError,
    ErrorCategory,
    get_error_handler,
    log_parsing_warning,
    report_fatal,
)
from .filesystem import FileSystem

DYLIB_COMMANDS = ("LC_LOAD_DYLIB", "LC_LOAD_WEAK_DYLIB", "LC_REEXPORT_DYLIB")
RPATH_COMMAND = "LC_RPATH"
NOT_FOUND_MARKERS = ("can't open file", "No such file")


def _command_name(line: str) -> Optional[str]:
    parts = line.split()
    if len(parts) == 2 and parts[0] == "cmd":
        return parts[1]
    return None


def _field_value(line: str, key: str) -> Optional[str]:
    """Extract ``value`` from a line shaped like ``key value (offset N)``."""
    start = line.find(key + " ")
    end = line.rfind(" (")
    if start == -1 or end == -1 or end <= start:
        return None
    return line[start + len(key) + 1 : end]


def parse_dylib_references(output: str, file_path: str = "") -> List[str]:
    """
    Collect the ``name`` lines following each library load command.

    Returned lines keep otool's trailing ``(offset N)`` annotation so callers
    see the raw reference line.
    """
    lines = []
    searching = False
    for line in output.splitlines():
        if _command_name(line) in DYLIB_COMMANDS:
            if searching:
                log_parsing_warning(
                    "Library load command without a name before next command",
                    "inspector",
                    "parse_dylib_references",
                    file_path=file_path,
                    line=line,
                )
            searching = True
        elif searching:
            found = line.find("name ")
            if found != -1:
                lines.append(line[found + 5 :])
                searching = False
            elif _command_name(line) is not None:
                log_parsing_warning(
                    "Library load command without a name",
                    "inspector",
                    "parse_dylib_references",
                    file_path=file_path,
                    line=line,
                )
                searching = False
    return lines


def parse_rpaths(output: str, file_path: str = "") -> List[str]:
    """Collect LC_RPATH ``path`` values in load-command order."""
    rpaths = []
    raw_lines = output.splitlines()
    pos = 0
    while pos < len(raw_lines):
        line = raw_lines[pos]
        pos += 1
        if _command_name(line) != RPATH_COMMAND:
            continue
        # cmdsize sits between the command and its path
        pos += 1
        if pos >= len(raw_lines):
            log_parsing_warning(
                "Truncated LC_RPATH command",
                "inspector",
                "parse_rpaths",
                file_path=file_path,
            )
            break
        rpath = _field_value(raw_lines[pos], "path")
        if rpath is None:
            log_parsing_warning(
                "Unexpected LC_RPATH format",
                "inspector",
                "parse_rpaths",
                file_path=file_path,
                line=raw_lines[pos],
            )
            continue
        rpaths.append(rpath)
        pos += 1
    return rpaths


class BaseInspector(ABC):
    """Reads library references and rpath entries out of a binary."""

    @abstractmethod
    def inspect(self, path: str) -> List[str]:
        """Return raw dependency reference lines; DiscoveryError if unreadable."""
        pass

    @abstractmethod
    def inspect_rpaths(self, path: str) -> List[str]:
        """Return rpath entries in order; empty (with a warning) if missing."""
        pass


class OtoolInspector(BaseInspector):
    """Inspector backed by ``otool -l``."""

    def __init__(
        self, otool: str = "otool", filesystem: Optional[FileSystem] = None
    ):
        self.otool = otool
        self.filesystem = filesystem or FileSystem()
        self.error_handler = get_error_handler()

    def _run(self, path: str) -> Tuple[str, str, int]:
        command = [self.otool, "-l", str(path)]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as e:
            raise report_fatal(
                ConfigurationError(f"Inspector tool not found: {self.otool}", path),
                "inspector",
                "_run",
            ) from e
        return result.stdout, result.stderr, result.returncode

    def inspect(self, path: str) -> List[str]:
        stdout, stderr, _ = self._run(path)
        combined = stdout + stderr
        if not stdout or any(marker in combined for marker in NOT_FOUND_MARKERS):
            raise report_fatal(
                DiscoveryError(
                    f"Cannot find file {path} to read its dependencies", path
                ),
                "inspector",
                "inspect",
            )
        return parse_dylib_references(stdout, path)

    def inspect_rpaths(self, path: str) -> List[str]:
        if not self.filesystem.exists(path):
            self.error_handler.warning(
                ErrorCategory.DISCOVERY,
                f"Can't collect rpaths for nonexistent file '{path}'",
                "inspector",
                "inspect_rpaths",
            )
            return []
        stdout, _, _ = self._run(path)
        return parse_rpaths(stdout, path)
