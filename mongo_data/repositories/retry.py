"""
Resilient Executor

Runs a store operation under a bounded retry policy: up to three attempts,
no backoff, retrying only transient connectivity failures. Any other failure
propagates on the first attempt, and an exhausted retry re-raises the store's
original error.

The policy holds configuration only; a fresh tenacity controller is created
per call, so one policy is safe to share between concurrent calls.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from tenacity import (
    AsyncRetrying,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_none,
)

from mongo_data.common.error_handling import is_transient_failure, log_on_exception
from mongo_data.common.logger import StoreLogger

T = TypeVar("T")

MAX_ATTEMPTS = 3


class RetryPolicy:
    """
    Bounded retry for store operations.

    Usage:
        policy = RetryPolicy()
        doc = policy.execute(lambda: collection.find_one({"_id": oid}), "find_one")
        doc = await policy.execute_async(lambda: async_collection.find_one(...))
    """

    def __init__(
        self,
        is_transient: Callable[[BaseException], bool] = is_transient_failure,
        max_attempts: int = MAX_ATTEMPTS,
        logger: Optional[Union[logging.Logger, StoreLogger]] = None,
    ):
        """
        Args:
            is_transient: Classifier deciding whether a failure is retried
            max_attempts: Total attempts including the first one
            logger: Logger for retry and failure messages
        """
        self.is_transient = is_transient
        self.max_attempts = max_attempts
        self._logger = logger or logging.getLogger(__name__)

    def _bound_logger(self, name: str) -> Union[logging.Logger, StoreLogger]:
        if isinstance(self._logger, StoreLogger):
            return self._logger.bind(name)
        return self._logger

    def _controller_kwargs(self, logger: Union[logging.Logger, StoreLogger]) -> dict:
        return {
            "retry": retry_if_exception(self.is_transient),
            "stop": stop_after_attempt(self.max_attempts),
            "wait": wait_none(),
            "reraise": True,
            "before_sleep": before_sleep_log(logger, logging.WARNING),
        }

    def execute(self, operation: Callable[[], T], name: str = "operation") -> T:
        """
        Run a blocking operation with retries.

        Args:
            operation: Zero-argument callable performing the store call
            name: Operation name for log messages

        Returns:
            The operation's result from the first successful attempt

        Raises:
            The original store exception when it is not transient or when
            all attempts failed
        """
        logger = self._bound_logger(name)
        with log_on_exception(logger, name):
            for attempt in Retrying(**self._controller_kwargs(logger)):
                with attempt:
                    return operation()

    async def execute_async(
        self,
        operation: Callable[[], Union[Awaitable[T], T]],
        name: str = "operation",
    ) -> T:
        """
        Run an asynchronous operation with retries.

        The awaitable returned by ``operation`` is awaited inside the attempt,
        so the retry decision is made on the resolved outcome rather than on
        the act of starting the call. Plain return values are accepted too.
        """
        logger = self._bound_logger(name)
        with log_on_exception(logger, name):
            async for attempt in AsyncRetrying(**self._controller_kwargs(logger)):
                with attempt:
                    result: Any = operation()
                    if inspect.isawaitable(result):
                        result = await result
                    return result
