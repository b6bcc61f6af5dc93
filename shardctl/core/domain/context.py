"""Explicit context passed to every lifecycle service."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from shardctl.core.domain.models import ClusterStatus, OperationKind, PendingOperation

if TYPE_CHECKING:
    from shardctl.core.ports.outbound.control_plane import IControlPlanePort

DEFAULT_CREATE_TIMEOUT = 30 * 60.0
DEFAULT_DELETE_TIMEOUT = 30 * 60.0
DEFAULT_UPDATE_TIMEOUT = 30 * 60.0
DEFAULT_POLL_DELAY = 10.0
DEFAULT_MIN_POLL_INTERVAL = 3.0
DEFAULT_MAX_POLL_INTERVAL = 10.0


@dataclass(frozen=True)
class TimeoutPolicy:
    """Timing budgets for remote operations, in seconds."""

    create: float = DEFAULT_CREATE_TIMEOUT
    delete: float = DEFAULT_DELETE_TIMEOUT
    update: float = DEFAULT_UPDATE_TIMEOUT
    delay: float = DEFAULT_POLL_DELAY
    min_interval: float = DEFAULT_MIN_POLL_INTERVAL
    max_interval: float = DEFAULT_MAX_POLL_INTERVAL

    def timeout_for(self, kind: OperationKind) -> float:
        """Get the timeout budget of an operation kind."""
        if kind == OperationKind.CREATE:
            return self.create
        if kind == OperationKind.DELETE:
            return self.delete
        return self.update


@dataclass
class ClusterContext:
    """
    Per-call context for one cluster resource.

    Carries the authenticated remote client, the region and the timing
    policy. Nothing here is shared between clusters; independent callers
    build their own context.
    """

    client: "IControlPlanePort"
    region: Optional[str] = None
    timeouts: TimeoutPolicy = field(default_factory=TimeoutPolicy)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        """Stop any in-flight wait. Already issued remote calls are not undone."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self.cancel_event.is_set()

    def pending_operation(
        self,
        kind: OperationKind,
        target_id: str,
        pending: Iterable[ClusterStatus],
        target: ClusterStatus,
    ) -> PendingOperation:
        """Open a fresh timeout window for one remote operation."""
        return PendingOperation(
            kind=kind,
            target_id=target_id,
            pending=frozenset(pending),
            target=target,
            deadline=time.monotonic() + self.timeouts.timeout_for(kind),
            metadata={"timeout": self.timeouts.timeout_for(kind)},
        )
