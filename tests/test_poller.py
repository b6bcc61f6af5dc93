import asyncio
import time

import pytest

from shardctl.core.domain.errors import (
    OperationCancelledError,
    OperationTimeoutError,
    TransientFetchError,
    UnexpectedStateError,
)
from shardctl.core.domain.models import ClusterStatus
from shardctl.core.domain.services.poller import OperationPoller


class _StatusSequence:
    def __init__(self, *statuses) -> None:
        self._statuses = list(statuses)
        self.calls = 0
        self.call_times: list[float] = []

    async def __call__(self):
        self.calls += 1
        self.call_times.append(time.monotonic())
        if len(self._statuses) > 1:
            return self._statuses.pop(0)
        return self._statuses[0]


@pytest.mark.asyncio
async def test_wait_for_returns_when_target_reached() -> None:
    fetch = _StatusSequence(ClusterStatus.BUILDING, ClusterStatus.BUILDING, ClusterStatus.ACTIVE)

    result = await OperationPoller(max_interval=0.01).wait_for(
        fetch,
        pending=[ClusterStatus.BUILDING],
        target=ClusterStatus.ACTIVE,
        delay=0,
        min_interval=0,
        timeout=1,
    )

    assert result == ClusterStatus.ACTIVE
    assert fetch.calls == 3


@pytest.mark.asyncio
async def test_wait_for_waits_delay_before_first_sample() -> None:
    fetch = _StatusSequence(ClusterStatus.ACTIVE)
    started = time.monotonic()

    await OperationPoller().wait_for(
        fetch,
        pending=[ClusterStatus.BUILDING],
        target=ClusterStatus.ACTIVE,
        delay=0.05,
        min_interval=0,
        timeout=1,
    )

    assert fetch.call_times[0] - started >= 0.045


@pytest.mark.asyncio
async def test_wait_for_timeout_shorter_than_delay_never_samples() -> None:
    fetch = _StatusSequence(ClusterStatus.ACTIVE)
    started = time.monotonic()

    with pytest.raises(OperationTimeoutError) as exc:
        await OperationPoller().wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0.5,
            min_interval=0,
            timeout=0.05,
            target_id="c-1",
        )

    assert fetch.calls <= 1
    assert time.monotonic() - started < 0.5
    assert exc.value.target_id == "c-1"
    assert isinstance(exc.value, TimeoutError)


@pytest.mark.asyncio
async def test_wait_for_times_out_while_pending() -> None:
    fetch = _StatusSequence(ClusterStatus.BUILDING)

    with pytest.raises(OperationTimeoutError) as exc:
        await OperationPoller(max_interval=0.02).wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0,
            min_interval=0.01,
            timeout=0.1,
        )

    assert exc.value.last_status == "BUILDING"
    assert fetch.calls >= 2


@pytest.mark.asyncio
async def test_wait_for_fails_fast_on_unexpected_status() -> None:
    fetch = _StatusSequence(ClusterStatus.ERROR)
    started = time.monotonic()

    with pytest.raises(UnexpectedStateError) as exc:
        await OperationPoller().wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0,
            min_interval=0,
            timeout=10,
        )

    assert fetch.calls == 1
    assert exc.value.status == "ERROR"
    assert time.monotonic() - started < 1


@pytest.mark.asyncio
async def test_wait_for_wraps_fetch_errors() -> None:
    async def fetch():
        raise ConnectionError("connection reset")

    with pytest.raises(TransientFetchError) as exc:
        await OperationPoller().wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0,
            min_interval=0,
            timeout=1,
        )

    assert isinstance(exc.value.cause, ConnectionError)


@pytest.mark.asyncio
async def test_wait_for_respects_min_interval() -> None:
    fetch = _StatusSequence(
        ClusterStatus.BUILDING, ClusterStatus.BUILDING, ClusterStatus.ACTIVE
    )

    await OperationPoller(max_interval=0.05).wait_for(
        fetch,
        pending=[ClusterStatus.BUILDING],
        target=ClusterStatus.ACTIVE,
        delay=0,
        min_interval=0.03,
        timeout=1,
    )

    gaps = [b - a for a, b in zip(fetch.call_times, fetch.call_times[1:])]
    assert all(gap >= 0.025 for gap in gaps)


@pytest.mark.asyncio
async def test_wait_for_accepts_plain_strings() -> None:
    fetch = _StatusSequence("DELETING", "DELETED")

    result = await OperationPoller().wait_for(
        fetch,
        pending=[ClusterStatus.ACTIVE, ClusterStatus.DELETING],
        target=ClusterStatus.DELETED,
        delay=0,
        min_interval=0,
        timeout=1,
    )

    assert result == "DELETED"


@pytest.mark.asyncio
async def test_wait_for_stops_on_cancel_event() -> None:
    fetch = _StatusSequence(ClusterStatus.BUILDING)
    cancel_event = asyncio.Event()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.05)
        cancel_event.set()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(OperationCancelledError):
        await OperationPoller().wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0,
            min_interval=1,
            timeout=5,
            cancel_event=cancel_event,
        )
    await canceller

    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_task_cancellation_propagates() -> None:
    fetch = _StatusSequence(ClusterStatus.BUILDING)

    task = asyncio.create_task(
        OperationPoller().wait_for(
            fetch,
            pending=[ClusterStatus.BUILDING],
            target=ClusterStatus.ACTIVE,
            delay=0,
            min_interval=1,
            timeout=5,
        )
    )
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
