"""
Centralized logging configuration for the repository layer.

Every store message carries the collection it ran against and the
repository operation that issued it, both as a ``[collection] [operation]``
message prefix and as ``collection`` / ``operation`` attributes on the log
record (the JSON format emits them as fields).

Supports a debug_mode flag for verbose logging of every store round-trip.
"""

import logging
import os
import sys
from typing import Any, MutableMapping, Optional, Tuple

from .config import Config


# Global debug mode flag - can be set via environment or at runtime
_GLOBAL_DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"


def set_global_debug_mode(enabled: bool) -> None:
    """Set global debug mode."""
    global _GLOBAL_DEBUG_MODE
    _GLOBAL_DEBUG_MODE = enabled


def is_debug_mode() -> bool:
    """Check if debug mode is enabled globally."""
    return _GLOBAL_DEBUG_MODE


class StoreLogger(logging.LoggerAdapter):
    """
    Logger adapter bound to one collection and, optionally, one operation.

    Repositories hold a collection-level logger and ``bind()`` it to the
    operation being run, so retry and failure messages name both:

        [users] [count] Retrying <unknown> in 0 seconds as it raised AutoReconnect: ...
    """

    def __init__(
        self,
        name: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        debug_mode: Optional[bool] = None
    ):
        """
        Args:
            name: Logger name (usually __name__)
            collection: Collection name the messages concern
            operation: Repository operation (e.g., "find", "update")
            debug_mode: If True, enables DEBUG level for this logger.
                       If None, uses global debug mode setting.
        """
        super().__init__(
            logging.getLogger(name),
            {"collection": collection, "operation": operation},
        )
        self._debug_mode = debug_mode if debug_mode is not None else is_debug_mode()
        if self._debug_mode:
            self.logger.setLevel(logging.DEBUG)

    @property
    def collection(self) -> Optional[str]:
        return self.extra["collection"]

    @property
    def operation(self) -> Optional[str]:
        return self.extra["operation"]

    def bind(self, operation: str) -> "StoreLogger":
        """Same logger and collection, tagged with another operation."""
        return StoreLogger(
            self.logger.name,
            collection=self.collection,
            operation=operation,
            debug_mode=self._debug_mode,
        )

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        tags = [f"[{tag}]" for tag in (self.collection, self.operation) if tag]
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        if tags:
            return f"{' '.join(tags)} {msg}", kwargs
        return msg, kwargs


def setup_logging(level: Optional[str] = None, format: Optional[str] = None) -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); default Config.LOG_LEVEL
        format: Log format ("simple" or "json"); default Config.LOG_FORMAT
    """
    level = level or Config.LOG_LEVEL
    format = format or Config.LOG_FORMAT
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    # Records from outside the repositories carry no store context
    defaults = {"collection": "-", "operation": "-"}
    if format == "json":
        # JSON format for production (parseable by log aggregators)
        formatter = logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", '
            '"collection": "%(collection)s", "operation": "%(operation)s", "message": "%(message)s"}',
            defaults=defaults,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            defaults=defaults,
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # pymongo's own command logging is noisy at DEBUG
    logging.getLogger("pymongo").setLevel(max(log_level, logging.INFO))


def get_logger(
    name: str,
    collection: Optional[str] = None,
    operation: Optional[str] = None,
    debug_mode: Optional[bool] = None
) -> StoreLogger:
    """Get a store logger for a module, optionally bound to a collection and operation."""
    return StoreLogger(name, collection, operation, debug_mode)
