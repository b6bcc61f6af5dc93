"""Operation poller - waits for remote operations to reach a terminal status."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from shardctl.core.domain.context import DEFAULT_MAX_POLL_INTERVAL
from shardctl.core.domain.errors import (
    OperationCancelledError,
    OperationTimeoutError,
    TransientFetchError,
    UnexpectedStateError,
)
from shardctl.core.domain.models import OperationKind, PendingOperation

logger = structlog.get_logger(__name__)

StatusFetcher = Callable[[], Awaitable[Any]]


def _status_value(status: Any) -> str:
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


class OperationPoller:
    """
    Generic watcher for asynchronous remote operations.

    The poller knows nothing about clusters: it samples a status fetch
    function until the status equals the target, leaves the pending set,
    or the operation deadline passes.

    Timing:
    - the first sample happens `delay` seconds after the operation started
    - later samples back off from `min_interval`, doubling up to
      `max_interval`, and never come closer than `min_interval`
    - nothing waits past the operation deadline
    """

    def __init__(self, max_interval: float = DEFAULT_MAX_POLL_INTERVAL):
        """
        Args:
            max_interval: Upper bound of the backoff between samples
        """
        self._max_interval = max_interval

    async def wait_for(
        self,
        fetch_status: StatusFetcher,
        pending: Iterable[Any],
        target: Any,
        delay: float,
        min_interval: float,
        timeout: float,
        target_id: str = "",
        kind: OperationKind = OperationKind.UPDATE,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Wait until `fetch_status` reports `target`.

        Args:
            fetch_status: Coroutine function returning the current status
            pending: Statuses that may still resolve to the target
            target: Status that completes the operation
            delay: Seconds before the first sample
            min_interval: Minimum seconds between samples
            timeout: Seconds before giving up
            target_id: ID of the watched resource, for diagnostics
            kind: Operation kind, for diagnostics
            cancel_event: Event that stops the wait when set

        Returns:
            The status that matched the target

        Raises:
            OperationTimeoutError: Timeout elapsed while status was pending
            UnexpectedStateError: Status left the pending set without hitting target
            TransientFetchError: `fetch_status` raised
            OperationCancelledError: `cancel_event` was set
        """
        operation = PendingOperation(
            kind=kind,
            target_id=target_id,
            pending=frozenset(pending),
            target=target,
            deadline=time.monotonic() + timeout,
            metadata={"timeout": timeout},
        )
        return await self.wait(
            operation,
            fetch_status,
            delay=delay,
            min_interval=min_interval,
            cancel_event=cancel_event,
        )

    async def wait(
        self,
        operation: PendingOperation,
        fetch_status: StatusFetcher,
        delay: float,
        min_interval: float,
        cancel_event: Optional[asyncio.Event] = None,
        max_interval: Optional[float] = None,
    ) -> Any:
        """Wait for an already opened pending operation. See `wait_for`."""
        ceiling = self._max_interval if max_interval is None else max_interval
        pending_values = {_status_value(s) for s in operation.pending}
        target_value = _status_value(operation.target)
        interval = max(min_interval, 0.0)
        last_status: Optional[str] = None

        logger.debug(
            "poll_started",
            kind=operation.kind.value,
            target_id=operation.target_id,
            target=target_value,
            pending=sorted(pending_values),
        )

        try:
            await self._pause(operation, delay, cancel_event, last_status)

            while True:
                status = await self._fetch(operation, fetch_status, last_status)
                last_status = _status_value(status)

                logger.debug(
                    "poll_status_observed",
                    kind=operation.kind.value,
                    target_id=operation.target_id,
                    status=last_status,
                )

                if last_status == target_value:
                    logger.info(
                        "poll_completed",
                        kind=operation.kind.value,
                        target_id=operation.target_id,
                        status=last_status,
                    )
                    return status

                if last_status not in pending_values:
                    raise UnexpectedStateError(
                        operation.target_id,
                        last_status,
                        sorted(pending_values | {target_value}),
                    )

                await self._pause(operation, interval, cancel_event, last_status)
                interval = max(min_interval, min(interval * 2, ceiling))

        except asyncio.CancelledError:
            logger.info(
                "poll_cancelled",
                kind=operation.kind.value,
                target_id=operation.target_id,
                last_status=last_status,
            )
            raise

    async def _fetch(
        self,
        operation: PendingOperation,
        fetch_status: StatusFetcher,
        last_status: Optional[str],
    ) -> Any:
        """Sample the status once, bounded by the operation deadline."""
        remaining = operation.deadline - time.monotonic()
        if remaining <= 0:
            raise self._timeout(operation, last_status)

        try:
            return await asyncio.wait_for(fetch_status(), timeout=remaining)
        except asyncio.TimeoutError:
            raise self._timeout(operation, last_status) from None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "poll_fetch_failed",
                kind=operation.kind.value,
                target_id=operation.target_id,
                error=str(e),
            )
            raise TransientFetchError(operation.target_id, e) from e

    async def _pause(
        self,
        operation: PendingOperation,
        seconds: float,
        cancel_event: Optional[asyncio.Event],
        last_status: Optional[str],
    ) -> None:
        """Sleep up to `seconds`, stopping at the deadline or on cancellation."""
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError(operation.target_id, last_status)

        remaining = operation.deadline - time.monotonic()
        wait = min(seconds, max(remaining, 0.0))

        if cancel_event is None:
            await asyncio.sleep(wait)
        else:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass
            else:
                logger.info(
                    "poll_cancel_requested",
                    kind=operation.kind.value,
                    target_id=operation.target_id,
                )
                raise OperationCancelledError(operation.target_id, last_status)

        if time.monotonic() >= operation.deadline:
            raise self._timeout(operation, last_status)

    def _timeout(self, operation: PendingOperation, last_status: Optional[str]) -> OperationTimeoutError:
        logger.warning(
            "poll_timeout",
            kind=operation.kind.value,
            target_id=operation.target_id,
            last_status=last_status,
        )
        return OperationTimeoutError(
            operation.target_id,
            float(operation.metadata.get("timeout", 0.0)),
            last_status,
        )
