"""
Structured logging configuration for dylib-bundler.

Provides consistent, machine-readable logging of every discovery, copy and
rewrite step so a run can be audited afterwards.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", "dylib_bundler"),
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class BundleEventLogger:
    """Structured logger for bundling events."""

    def __init__(self, name: str = "dylib_bundler"):
        self.logger = logging.getLogger(name)
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        """Setup logger with structured formatting."""
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        dest_dir: Optional[str] = None,
        total_targets: Optional[int] = None,
    ) -> None:
        """Set run context for logging."""
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if dest_dir:
            self.run_context["dest_dir"] = dest_dir
        if total_targets is not None:
            self.run_context["total_targets"] = total_targets

    def clear_run_context(self) -> None:
        """Clear run context."""
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level.lower())(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        """Log info level event."""
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        """Log warning level event."""
        self._log("warning", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        """Log debug level event."""
        self._log("debug", event_type, **kwargs)


# Global logger instances
_resolver_logger = BundleEventLogger("dylib_bundler.resolver")
_installer_logger = BundleEventLogger("dylib_bundler.installer")
_rewriter_logger = BundleEventLogger("dylib_bundler.rewriter")

_ALL_LOGGERS = [_resolver_logger, _installer_logger, _rewriter_logger]


def get_resolver_logger() -> BundleEventLogger:
    """Get dependency discovery logger."""
    return _resolver_logger


def get_installer_logger() -> BundleEventLogger:
    """Get bundle copy logger."""
    return _installer_logger


def get_rewriter_logger() -> BundleEventLogger:
    """Get metadata rewrite logger."""
    return _rewriter_logger


def log_binary_inspected(binary: str, reference_count: int) -> None:
    """Log that a binary's load commands were read."""
    get_resolver_logger().debug(
        "binary_inspected", binary=binary, reference_count=reference_count
    )


def log_dependency_added(reference: str, owner: str, merged: bool) -> None:
    """Log a dependency reference accepted into the registry."""
    get_resolver_logger().debug(
        "dependency_added", reference=reference, owner=owner, merged=merged
    )


def log_dependency_excluded(reference: str, owner: str, reason: str) -> None:
    """Log a dependency reference rejected by the bundle policy."""
    get_resolver_logger().debug(
        "dependency_excluded", reference=reference, owner=owner, reason=reason
    )


def log_rpaths_collected(binary: str, rpaths: list) -> None:
    """Log the rpath entries recorded for a binary."""
    get_resolver_logger().debug(
        "rpaths_collected", binary=binary, rpath_count=len(rpaths), rpaths=rpaths
    )


def log_file_copied(source: str, destination: str, skipped: bool) -> None:
    """Log a library copy into the bundle."""
    logger = get_installer_logger()
    if skipped:
        logger.info("copy_skipped_existing", source=source, destination=destination)
    else:
        logger.info("file_copied", source=source, destination=destination)


def log_reference_rewritten(target: str, old: str, new: str, kind: str) -> None:
    """Log a single metadata edit."""
    get_rewriter_logger().info(
        "reference_rewritten", target=target, old=old, new=new, kind=kind
    )


def set_run_context(
    run_id: Optional[str] = None,
    dest_dir: Optional[str] = None,
    total_targets: Optional[int] = None,
) -> None:
    """Set global run context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, dest_dir, total_targets)


def clear_run_context() -> None:
    """Clear global run context."""
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING", enable_json: bool = True) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.WARNING)

    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
        if not enable_json:
            for handler in logger.logger.handlers:
                handler.setFormatter(
                    logging.Formatter("%(name)s - %(levelname)s - %(message)s")
                )
