"""Exception hierarchy for cluster lifecycle operations."""

from typing import Any, Optional

from shardctl.core.domain.models import ActionKind, ClusterStatus


class ShardctlError(Exception):
    """Base exception for shardctl errors."""

    pass


# === Desired state errors ===


class ClusterValidationError(ShardctlError):
    """Desired state is invalid. Raised before any remote call."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ImmutableFieldError(ClusterValidationError):
    """Immutable fields changed; the cluster has to be replaced."""

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(
            f"Immutable fields changed, cluster must be re-created: {', '.join(fields)}"
        )


class ShrinkOptionsError(ClusterValidationError):
    """Shrink options do not name the instances to remove."""

    def __init__(self, shard_id: str, reason: str):
        self.shard_id = shard_id
        self.reason = reason
        super().__init__(f"Invalid shrink options for shard {shard_id}: {reason}")


# === Remote errors ===


class ClusterNotFoundError(ShardctlError):
    """Cluster does not exist on the control plane."""

    def __init__(self, cluster_id: str):
        self.cluster_id = cluster_id
        super().__init__(f"Cluster not found: {cluster_id}")


class ShardNotFoundError(ShardctlError):
    """Shard has no instances on the control plane."""

    def __init__(self, cluster_id: str, shard_id: str):
        self.cluster_id = cluster_id
        self.shard_id = shard_id
        super().__init__(f"Shard {shard_id} not found in cluster {cluster_id}")


class RemoteAPIError(ShardctlError):
    """Control plane rejected a request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotReadyError(ShardctlError):
    """Action attempted while the cluster is not Active."""

    def __init__(self, cluster_id: str, status: ClusterStatus):
        self.cluster_id = cluster_id
        self.status = status
        super().__init__(
            f"Cluster {cluster_id} is not ready for changes (status: {status.value})"
        )


# === Polling errors ===


class PollError(ShardctlError):
    """Remote operation did not reach its target status."""

    def __init__(self, message: str, target_id: str = "", last_status: Optional[str] = None):
        self.target_id = target_id
        self.last_status = last_status
        super().__init__(message)


class OperationTimeoutError(PollError, TimeoutError):
    """Timeout elapsed while the operation was still pending."""

    def __init__(self, target_id: str, timeout: float, last_status: Optional[str] = None):
        self.timeout = timeout
        super().__init__(
            f"Timeout after {timeout:g}s waiting for {target_id} "
            f"(last status: {last_status or 'unknown'})",
            target_id=target_id,
            last_status=last_status,
        )


class UnexpectedStateError(PollError):
    """Operation entered a status it cannot recover from."""

    def __init__(self, target_id: str, status: str, expected: list[str]):
        self.status = status
        self.expected = expected
        super().__init__(
            f"{target_id} entered unexpected status {status} "
            f"(expected one of: {', '.join(expected)})",
            target_id=target_id,
            last_status=status,
        )


class TransientFetchError(PollError):
    """Fetching the operation status failed."""

    def __init__(self, target_id: str, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause), target_id=target_id)


class OperationCancelledError(PollError):
    """Polling stopped by the caller. The remote operation keeps running."""

    def __init__(self, target_id: str, last_status: Optional[str] = None):
        super().__init__(
            f"Waiting for {target_id} was cancelled",
            target_id=target_id,
            last_status=last_status,
        )


# === Lifecycle errors ===


class ClusterCreateError(ShardctlError):
    """Cluster was submitted but did not become ready."""

    def __init__(self, cluster_id: str, cause: BaseException):
        self.cluster_id = cluster_id
        self.cause = cause
        super().__init__(f"Error waiting for cluster {cluster_id} to become ready: {cause}")


class ClusterDeleteError(ShardctlError):
    """Cluster deletion did not complete."""

    def __init__(self, cluster_id: str, cause: BaseException):
        self.cluster_id = cluster_id
        self.cause = cause
        super().__init__(f"Error waiting for cluster {cluster_id} to delete: {cause}")


# === Update action errors ===


class ClusterActionError(ShardctlError):
    """An update action failed. The cluster keeps whatever state the remote reports."""

    description = "updating"

    def __init__(
        self,
        cluster_id: str,
        cause: BaseException,
        shard_id: Optional[str] = None,
        action: Optional[ActionKind] = None,
    ):
        self.cluster_id = cluster_id
        self.shard_id = shard_id
        self.cause = cause
        self.action = action
        if shard_id:
            target = f"shard {shard_id} of cluster {cluster_id}"
        else:
            target = f"cluster {cluster_id}"
        super().__init__(f"Error {self.description} {target}: {cause}")


class ConfigAttachError(ClusterActionError):
    description = "updating configuration for"


class AutoexpandUpdateError(ClusterActionError):
    description = "updating disk_autoexpand for"


class WalAutoexpandUpdateError(ClusterActionError):
    description = "updating wal_disk_autoexpand for"


class ApplyCapabilitiesError(ClusterActionError):
    description = "applying capabilities to"


class MonitoringToggleError(ClusterActionError):
    description = "updating cloud_monitoring_enabled for"


class VolumeResizeError(ClusterActionError):
    description = "resizing volume for"


class WalVolumeResizeError(ClusterActionError):
    description = "resizing wal_volume for"


class FlavorResizeError(ClusterActionError):
    description = "changing flavor for"


class GrowError(ClusterActionError):
    description = "growing"


class ShrinkError(ClusterActionError):
    description = "shrinking"


ACTION_ERRORS: dict[ActionKind, type[ClusterActionError]] = {
    ActionKind.ATTACH_CONFIGURATION: ConfigAttachError,
    ActionKind.DETACH_CONFIGURATION: ConfigAttachError,
    ActionKind.UPDATE_AUTOEXPAND: AutoexpandUpdateError,
    ActionKind.UPDATE_WAL_AUTOEXPAND: WalAutoexpandUpdateError,
    ActionKind.APPLY_CAPABILITIES: ApplyCapabilitiesError,
    ActionKind.UPDATE_CLOUD_MONITORING: MonitoringToggleError,
    ActionKind.RESIZE_VOLUME: VolumeResizeError,
    ActionKind.RESIZE_WAL_VOLUME: WalVolumeResizeError,
    ActionKind.RESIZE_FLAVOR: FlavorResizeError,
    ActionKind.GROW: GrowError,
    ActionKind.SHRINK: ShrinkError,
}


class UpdateFailedError(ShardctlError):
    """
    Update cycle stopped at its first failing action.

    Actions before the failing one are applied; the remaining ones
    were never issued.
    """

    def __init__(
        self,
        cluster_id: str,
        action: Any,
        cause: BaseException,
        abandoned: Optional[list[Any]] = None,
    ):
        self.cluster_id = cluster_id
        self.action = action
        self.shard_id: Optional[str] = getattr(action, "shard_id", None)
        self.cause = cause
        self.abandoned = abandoned or []
        where = f"shard {self.shard_id} of cluster {cluster_id}" if self.shard_id else f"cluster {cluster_id}"
        super().__init__(
            f"Update of {where} failed at {action.kind.value}: {cause}"
            + (f" ({len(self.abandoned)} remaining actions abandoned)" if self.abandoned else "")
        )
