"""
Centralized error handling for the repository layer.

Classifies store failures as transient (retryable) or permanent, and provides
a context manager for logging failures without swallowing them.

The repository never wraps or translates store errors: callers see the
original pymongo exception.
"""

import logging
from typing import Optional, Union

from pymongo.errors import ConnectionFailure

from .logger import StoreLogger


def transient_cause(error: BaseException) -> Optional[OSError]:
    """
    Return the I/O or socket error underlying a connection failure.

    pymongo raises ConnectionFailure subclasses (AutoReconnect, NetworkTimeout)
    chained from the OSError the socket layer produced; socket.error and
    IOError are both OSError.

    Args:
        error: Exception raised by a store operation

    Returns:
        The chained OSError, or None if the failure is not connectivity-class
    """
    if not isinstance(error, ConnectionFailure):
        return None
    cause = error.__cause__
    if isinstance(cause, OSError):
        return cause
    return None


def is_transient_failure(error: BaseException) -> bool:
    """
    Check whether a store failure qualifies for retry.

    Only connection failures whose root cause is an I/O or socket error are
    transient. Duplicate keys, validation, authorization and connection
    failures without an I/O cause (e.g. server selection timeouts) are not.
    """
    return transient_cause(error) is not None


def log_on_exception(
    logger: Union[logging.Logger, StoreLogger],
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them silently.

    Usage:
        with log_on_exception(self._logger, "update_many", level=logging.ERROR):
            collection.update_many(...)

    Args:
        logger: Logger instance to use
        operation: Operation description for the log message
        level: Log level (default: WARNING)
        include_traceback: Whether to include stack trace in log
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None:
                kind = "transient" if is_transient_failure(exc_val) else "permanent"
                # A StoreLogger bound to this operation already tags it
                tagged = isinstance(logger, StoreLogger) and logger.operation == operation
                prefix = "" if tagged else f"[{operation}] "
                message = f"{prefix}Failed ({kind}): {exc_type.__name__}: {exc_val}"
                if include_traceback:
                    logger.log(level, message, exc_info=True)
                else:
                    logger.log(level, message)
            # Return False to not suppress the exception
            return False

    return ExceptionLogger()
