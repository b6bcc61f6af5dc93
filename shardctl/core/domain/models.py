"""Domain models for sharded database clusters."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


LEADER_ROLE = "leader"
IMPORTED_VOLUME_TYPE = "IMPORTED"


class ClusterStatus(str, Enum):
    """Cluster status as reported by the control plane."""

    BUILDING = "BUILDING"
    ACTIVE = "ACTIVE"
    DELETING = "DELETING"
    DELETED = "DELETED"
    ERROR = "ERROR"
    # Anything outside the known set
    UNKNOWN = "UNKNOWN"


class CapabilityStatus(str, Enum):
    """Status of a capability applied to a cluster."""

    ACTIVE = "ACTIVE"
    ERROR = "ERROR"


class OperationKind(str, Enum):
    """Long-running operation kinds, each with its own timeout budget."""

    CREATE = "create"
    DELETE = "delete"
    UPDATE = "update"


class ActionKind(str, Enum):
    """Remote cluster actions issued during updates."""

    ATTACH_CONFIGURATION = "attach_configuration"
    DETACH_CONFIGURATION = "detach_configuration"
    UPDATE_AUTOEXPAND = "update_autoexpand"
    UPDATE_WAL_AUTOEXPAND = "update_wal_autoexpand"
    APPLY_CAPABILITIES = "apply_capabilities"
    UPDATE_CLOUD_MONITORING = "update_cloud_monitoring"
    RESIZE_VOLUME = "resize_volume"
    RESIZE_WAL_VOLUME = "resize_wal_volume"
    RESIZE_FLAVOR = "resize_flavor"
    GROW = "grow"
    SHRINK = "shrink"


# === Desired state ===


class Datastore(BaseModel):
    """Datastore of the cluster. Immutable once created."""

    type: str = ""
    version: str = ""

    model_config = {"frozen": True}


class Network(BaseModel):
    """Network binding of a shard."""

    uuid: Optional[str] = None
    port: Optional[str] = None  # deprecated
    subnet_id: Optional[str] = None
    security_groups: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class WalVolume(BaseModel):
    """Write-ahead log volume of shard instances."""

    size: Optional[int] = None
    volume_type: Optional[str] = None

    model_config = {"frozen": True}


class AutoExpand(BaseModel):
    """Disk autoresize settings."""

    enabled: bool = False
    max_disk_size: int = 0

    model_config = {"frozen": True}


class CapabilitySpec(BaseModel):
    """Capability requested for the cluster."""

    name: str
    settings: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class RestorePoint(BaseModel):
    """Backup to restore the cluster from."""

    backup_id: str

    model_config = {"frozen": True}


class ShardSpec(BaseModel):
    """Declared shard of a cluster."""

    shard_id: str
    size: int = 1
    flavor_id: str = ""
    volume_size: Optional[int] = None
    volume_type: Optional[str] = None
    wal_volume: Optional[WalVolume] = None
    networks: list[Network] = Field(default_factory=list)
    availability_zone: Optional[str] = None

    # Instance ids to remove when the shard shrinks
    shrink_options: list[str] = Field(default_factory=list)


class ClusterSpec(BaseModel):
    """Desired state of a cluster with shards."""

    name: str
    datastore: Datastore = Field(default_factory=Datastore)
    shards: list[ShardSpec] = Field(default_factory=list)

    floating_ip_enabled: bool = False
    keypair: Optional[str] = None
    cloud_monitoring_enabled: bool = False
    disk_autoexpand: Optional[AutoExpand] = None
    wal_disk_autoexpand: Optional[AutoExpand] = None
    configuration_id: Optional[str] = None
    capabilities: list[CapabilitySpec] = Field(default_factory=list)
    restore_point: Optional[RestorePoint] = None

    def shard_ids(self) -> list[str]:
        """Get shard ids in declared order."""
        return [s.shard_id for s in self.shards]

    def get_shard(self, shard_id: str) -> Optional[ShardSpec]:
        """Get a declared shard by id."""
        for shard in self.shards:
            if shard.shard_id == shard_id:
                return shard
        return None


# === Create requests ===


class Volume(BaseModel):
    """Instance data volume."""

    size: Optional[int] = None
    volume_type: Optional[str] = None

    model_config = {"frozen": True}


class InstanceCreateRequest(BaseModel):
    """Creation descriptor of a single cluster instance."""

    shard_id: str
    flavor_id: str
    volume: Volume
    wal_volume: Optional[WalVolume] = None
    networks: list[Network] = Field(default_factory=list)
    availability_zone: Optional[str] = None
    keypair: Optional[str] = None

    model_config = {"frozen": True}


class ClusterCreateRequest(BaseModel):
    """Request that creates the whole cluster in one call."""

    name: str
    datastore: Datastore
    instances: list[InstanceCreateRequest]
    floating_ip_enabled: bool = False
    cloud_monitoring_enabled: bool = False
    disk_autoexpand: Optional[AutoExpand] = None
    wal_disk_autoexpand: Optional[AutoExpand] = None
    capabilities: list[CapabilitySpec] = Field(default_factory=list)
    restore_point: Optional[RestorePoint] = None


# === Remote truth ===


class ClusterInstance(BaseModel):
    """Instance of a cluster as reported by the control plane."""

    instance_id: str
    shard_id: str
    ips: list[str] = Field(default_factory=list)
    role: Optional[str] = None
    status: Optional[str] = None
    flavor_id: Optional[str] = None
    volume_size: Optional[int] = None
    wal_volume_size: Optional[int] = None

    model_config = {"frozen": True}

    def is_leader(self) -> bool:
        """Check if the control plane reports this instance as shard leader."""
        return (self.role or "").lower() == LEADER_ROLE


class ClusterTopology(BaseModel):
    """Cluster status and instance list reported by the control plane."""

    cluster_id: str
    status: ClusterStatus
    name: str = ""
    datastore: Optional[Datastore] = None
    configuration_id: Optional[str] = None
    disk_autoexpand: Optional[AutoExpand] = None
    wal_disk_autoexpand: Optional[AutoExpand] = None
    cloud_monitoring_enabled: Optional[bool] = None
    instances: list[ClusterInstance] = Field(default_factory=list)

    def shard_instances(self, shard_id: str) -> list[ClusterInstance]:
        """Get instances of one shard in remote-reported order."""
        return [i for i in self.instances if i.shard_id == shard_id]


class ClusterCapability(BaseModel):
    """Capability as reported by the control plane."""

    name: str
    status: str = ""
    settings: dict[str, str] = Field(default_factory=dict)


# === Reconciled state ===


class InstanceView(BaseModel):
    """Observed instance of a reconciled shard."""

    instance_id: str
    ips: list[str] = Field(default_factory=list)


class ReconciledShardView(BaseModel):
    """Shard rebuilt from remote topology, ready to be persisted."""

    shard_id: str
    size: int
    instances: list[InstanceView] = Field(default_factory=list)

    # Observed when the control plane reports them
    flavor_id: Optional[str] = None
    volume_size: Optional[int] = None
    wal_volume: Optional[WalVolume] = None

    # Carried over from the last known declaration
    volume_type: Optional[str] = None
    networks: list[Network] = Field(default_factory=list)
    availability_zone: Optional[str] = None

    def to_shard_spec(self) -> ShardSpec:
        """Convert to a shard declaration for the next update cycle."""
        return ShardSpec(
            shard_id=self.shard_id,
            size=self.size,
            flavor_id=self.flavor_id or "",
            volume_size=self.volume_size,
            volume_type=self.volume_type,
            wal_volume=self.wal_volume,
            networks=list(self.networks),
            availability_zone=self.availability_zone,
        )


class ClusterState(BaseModel):
    """Last known state of a cluster, persisted between calls."""

    cluster_id: str
    status: ClusterStatus = ClusterStatus.ACTIVE
    region: Optional[str] = None
    name: str
    datastore: Datastore = Field(default_factory=Datastore)
    shards: list[ReconciledShardView] = Field(default_factory=list)

    floating_ip_enabled: bool = False
    keypair: Optional[str] = None
    cloud_monitoring_enabled: bool = False
    disk_autoexpand: Optional[AutoExpand] = None
    wal_disk_autoexpand: Optional[AutoExpand] = None
    configuration_id: Optional[str] = None
    capabilities: list[CapabilitySpec] = Field(default_factory=list)
    restore_point: Optional[RestorePoint] = None

    def to_spec(self) -> ClusterSpec:
        """Convert to the `previous` declaration of the next update cycle."""
        return ClusterSpec(
            name=self.name,
            datastore=self.datastore,
            shards=[s.to_shard_spec() for s in self.shards],
            floating_ip_enabled=self.floating_ip_enabled,
            keypair=self.keypair,
            cloud_monitoring_enabled=self.cloud_monitoring_enabled,
            disk_autoexpand=self.disk_autoexpand,
            wal_disk_autoexpand=self.wal_disk_autoexpand,
            configuration_id=self.configuration_id,
            capabilities=list(self.capabilities),
            restore_point=self.restore_point,
        )

    def instance_count(self) -> int:
        """Get total number of instances across shards."""
        return sum(s.size for s in self.shards)


@dataclass
class PendingOperation:
    """A remote operation being watched until it reaches a terminal status."""

    kind: OperationKind
    target_id: str
    pending: frozenset[ClusterStatus]
    target: ClusterStatus
    deadline: float
    metadata: dict[str, Any] = field(default_factory=dict)
