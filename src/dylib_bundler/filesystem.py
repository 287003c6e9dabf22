"""Filesystem primitives used while building the bundle."""

import os
import shutil
import stat
from pathlib import Path

from .error_handling import ErrorCategory, get_error_handler


class FileSystem:
    """Thin wrapper over the local filesystem; failures are reported as False."""

    def __init__(self):
        self.error_handler = get_error_handler()

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def real_path(self, path: str) -> str:
        return os.path.realpath(path)

    def copy(self, source: str, destination: str) -> bool:
        try:
            shutil.copy2(source, destination)
        except OSError as e:
            self._report("copy", f"Failed to copy {source} to {destination}", e)
            return False
        return True

    def make_writable(self, path: str) -> bool:
        try:
            mode = Path(path).stat().st_mode
            Path(path).chmod(mode | stat.S_IWUSR)
        except OSError as e:
            self._report("make_writable", f"Failed to make {path} writable", e)
            return False
        return True

    def make_directories(self, path: str) -> bool:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._report("make_directories", f"Failed to create {path}", e)
            return False
        return True

    def remove_recursive(self, path: str) -> bool:
        try:
            if Path(path).is_dir() and not Path(path).is_symlink():
                shutil.rmtree(path)
            else:
                Path(path).unlink()
        except OSError as e:
            self._report("remove_recursive", f"Failed to remove {path}", e)
            return False
        return True

    def _report(self, function: str, message: str, exception: Exception) -> None:
        self.error_handler.error(
            ErrorCategory.FILESYSTEM,
            message,
            "filesystem",
            function,
            details={"reason": str(exception)},
        )
