"""
Error handling system for dylib-bundler.

Fatal conditions are BundlerError subclasses that abort the run. Recoverable
anomalies (a malformed otool line, an rpath that leads nowhere) go through the
ErrorHandler, which logs them to stderr and counts them per category so the
run summary can report how many were seen.
"""

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorLevel(Enum):
    """Severity of a reported diagnostic."""

    WARNING = "WARNING"
    ERROR = "ERROR"


class ErrorCategory(Enum):
    """Which stage of a run a diagnostic belongs to."""

    CONFIGURATION = "CONFIGURATION"
    DISCOVERY = "DISCOVERY"
    PARSING = "PARSING"
    MUTATION = "MUTATION"
    FILESYSTEM = "FILESYSTEM"


class BundlerError(Exception):
    """Base class for fatal bundling errors. Always aborts the run."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class ConfigurationError(BundlerError):
    """Bad output directory setup or an unresolvable library location."""

    category = ErrorCategory.CONFIGURATION


class DiscoveryError(BundlerError):
    """A target or transitive dependency could not be read."""

    category = ErrorCategory.DISCOVERY


class MutationError(BundlerError):
    """A copy or a metadata rewrite failed."""

    category = ErrorCategory.MUTATION


@dataclass
class Diagnostic:
    """One reported warning or error."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        where = f"{self.module}.{self.function}"
        text = f"[{self.category.value}] {self.message} ({where})"
        if self.details:
            pairs = ", ".join(f"{k}={v}" for k, v in self.details.items())
            text += f" | {pairs}"
        return text


class ErrorHandler:
    """
    Central sink for warnings and errors raised during a run.

    Warnings are logged and the run continues. Fatal conditions are logged
    here and then raised as BundlerError subclasses by the caller.
    """

    def __init__(
        self,
        logger_name: str = "dylib_bundler",
        log_level: int = logging.WARNING,
    ):
        """
        Initialize error handler.

        Args:
            logger_name: Name for the logger
            log_level: Logging level
        """
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(log_level)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.logger.addHandler(handler)

        self.error_stats: Dict[str, int] = {}

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Diagnostic:
        """Log a diagnostic and count it under ``CATEGORY_LEVEL``."""
        diagnostic = Diagnostic(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
        )

        stat_key = f"{category.value}_{level.value}"
        self.error_stats[stat_key] = self.error_stats.get(stat_key, 0) + 1

        if level == ErrorLevel.ERROR:
            self.logger.error(diagnostic.render())
        else:
            self.logger.warning(diagnostic.render())
        return diagnostic

    def warning(
        self,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        **kwargs,
    ) -> Diagnostic:
        """Handle warning level error."""
        return self.handle_error(
            ErrorLevel.WARNING, category, message, module, function, **kwargs
        )

    def error(
        self,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        **kwargs,
    ) -> Diagnostic:
        """Handle error level error."""
        return self.handle_error(
            ErrorLevel.ERROR, category, message, module, function, **kwargs
        )

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        return self.error_stats.copy()

    def count(self, level: ErrorLevel) -> int:
        """Total diagnostics reported at ``level`` across all categories."""
        suffix = "_" + level.value
        return sum(n for key, n in self.error_stats.items() if key.endswith(suffix))


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        ErrorHandler: Global error handler
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING,
    logger_name: str = "dylib_bundler",
) -> ErrorHandler:
    """Replace the global error handler with a freshly configured one."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level)
    return _global_error_handler


def log_parsing_warning(
    message: str,
    module: str,
    function: str,
    file_path: Optional[str] = None,
    line: Optional[str] = None,
):
    """
    Report malformed tool output. The offending entry is skipped.

    Args:
        message: Warning message
        module: Module name
        function: Function name
        file_path: Binary whose metadata was being read
        line: The anomalous output line
    """
    details = {}
    if file_path is not None:
        details["file_path"] = file_path
    if line is not None:
        details["line"] = line

    get_error_handler().warning(
        ErrorCategory.PARSING, message, module, function, details=details
    )


def report_fatal(error: BundlerError, module: str, function: str) -> BundlerError:
    """
    Log a fatal error through the handler and hand it back for raising.

    Usage: ``raise report_fatal(MutationError(...), "installer", "install")``
    """
    details = {"path": error.path} if error.path else {}
    get_error_handler().error(
        error.category, error.message, module, function, details=details
    )
    return error
