"""Control plane outbound port interface."""

import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from shardctl.core.domain.models import (
    ActionKind,
    ClusterCapability,
    ClusterCreateRequest,
    ClusterTopology,
)

ENV_ENDPOINT = "SHARDCTL_ENDPOINT"
ENV_TOKEN = "SHARDCTL_TOKEN"
ENV_REGION = "SHARDCTL_REGION"


class ControlPlaneSettings(BaseModel):
    """Connection settings of the control plane client."""

    endpoint: str = ""
    token: Optional[str] = None
    region: Optional[str] = None
    base_path: str = "/v1.0"
    request_timeout: float = 60.0
    verify_ssl: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> "ControlPlaneSettings":
        """
        Build settings from SHARDCTL_* environment variables.

        Non-None keyword overrides win over the environment.
        """
        values: dict[str, Any] = {
            "endpoint": os.environ.get(ENV_ENDPOINT, ""),
            "token": os.environ.get(ENV_TOKEN),
            "region": os.environ.get(ENV_REGION),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class IControlPlanePort(ABC):
    """
    Outbound port for the cloud database control plane.

    All calls are plain request/response. Completion of long-running
    work is only ever observed through later `get` calls.

    Implementations raise:
    - ClusterNotFoundError when the cluster does not exist
    - RemoteAPIError for any other rejected request
    """

    @abstractmethod
    async def create(self, request: ClusterCreateRequest) -> str:
        """
        Submit a new cluster.

        Args:
            request: Flat create request with every instance of every shard

        Returns:
            ID of the new cluster
        """
        pass

    @abstractmethod
    async def get(self, cluster_id: str) -> ClusterTopology:
        """
        Get cluster status and instance topology.

        Args:
            cluster_id: ID of the cluster

        Returns:
            Topology with status, per-instance shard id, IPs and role
        """
        pass

    @abstractmethod
    async def delete(self, cluster_id: str) -> None:
        """
        Request cluster deletion.

        Args:
            cluster_id: ID of the cluster
        """
        pass

    @abstractmethod
    async def act(self, cluster_id: str, kind: ActionKind, payload: dict[str, Any]) -> None:
        """
        Issue an update action against the cluster.

        Args:
            cluster_id: ID of the cluster
            kind: Action to perform
            payload: Action arguments
        """
        pass

    @abstractmethod
    async def get_capabilities(self, cluster_id: str) -> list[ClusterCapability]:
        """
        Get capabilities applied to the cluster.

        Args:
            cluster_id: ID of the cluster

        Returns:
            Capabilities with their current status
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release client resources."""
        pass
