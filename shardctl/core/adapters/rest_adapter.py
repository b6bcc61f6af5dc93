"""REST control plane adapter implementation."""

import json
from typing import Any, Optional

import aiohttp
import structlog

from shardctl.core.domain.errors import ClusterNotFoundError, RemoteAPIError
from shardctl.core.domain.models import (
    ActionKind,
    AutoExpand,
    ClusterCapability,
    ClusterCreateRequest,
    ClusterInstance,
    ClusterStatus,
    ClusterTopology,
    Datastore,
    InstanceCreateRequest,
)
from shardctl.core.ports.outbound.control_plane import ControlPlaneSettings, IControlPlanePort

logger = structlog.get_logger(__name__)

AUTH_HEADER = "X-Auth-Token"


def _serialize_autoexpand(
    body: dict[str, Any], autoexpand: Optional[AutoExpand], flag: str, size: str
) -> None:
    if autoexpand is None:
        return
    body[flag] = 1 if autoexpand.enabled else 0
    body[size] = autoexpand.max_disk_size


def _serialize_instance(instance: InstanceCreateRequest) -> dict[str, Any]:
    data: dict[str, Any] = {
        "shard_id": instance.shard_id,
        "flavorRef": instance.flavor_id,
        "volume": instance.volume.model_dump(exclude_none=True),
        "nics": [],
    }
    security_groups: list[str] = []
    for network in instance.networks:
        nic = {
            "net-id": network.uuid,
            "port-id": network.port,
            "subnet-id": network.subnet_id,
        }
        data["nics"].append({k: v for k, v in nic.items() if v})
        security_groups.extend(network.security_groups)
    if security_groups:
        data["security_groups"] = security_groups
    if instance.wal_volume is not None:
        data["walvolume"] = instance.wal_volume.model_dump(exclude_none=True)
    if instance.availability_zone:
        data["availability_zone"] = instance.availability_zone
    if instance.keypair:
        data["key_name"] = instance.keypair
    return data


def serialize_create_request(request: ClusterCreateRequest) -> dict[str, Any]:
    """Build the wire body of a create call."""
    body: dict[str, Any] = {
        "name": request.name,
        "datastore": request.datastore.model_dump(),
        "instances": [_serialize_instance(i) for i in request.instances],
        "allow_remote_access": request.floating_ip_enabled,
        "cloud_monitoring_enabled": request.cloud_monitoring_enabled,
    }
    _serialize_autoexpand(body, request.disk_autoexpand, "disk_autoexpand", "max_disk_size")
    _serialize_autoexpand(
        body, request.wal_disk_autoexpand, "wal_autoexpand", "wal_max_disk_size"
    )
    if request.capabilities:
        body["capabilities"] = [
            {"name": c.name, "params": dict(c.settings)} for c in request.capabilities
        ]
    if request.restore_point is not None:
        body["restorePoint"] = {"backupRef": request.restore_point.backup_id}
    return {"cluster": body}


def _parse_autoexpand(data: dict[str, Any], flag: str, size: str) -> Optional[AutoExpand]:
    if data.get(flag) is None:
        return None
    return AutoExpand(enabled=bool(data[flag]), max_disk_size=int(data.get(size) or 0))


def _parse_status(cluster_id: str, raw: Any) -> ClusterStatus:
    try:
        return ClusterStatus(raw)
    except ValueError:
        logger.warning("unknown_cluster_status", cluster_id=cluster_id, status=raw)
        return ClusterStatus.UNKNOWN


def parse_topology(cluster_id: str, data: dict[str, Any]) -> ClusterTopology:
    """Parse the body of a get call."""
    cluster = data.get("cluster", data)
    instances = []
    for raw in cluster.get("instances", []):
        wal_volume = raw.get("wal_volume") or {}
        ips = raw.get("ip") or []
        instances.append(
            ClusterInstance(
                instance_id=raw["id"],
                shard_id=raw.get("shard_id", ""),
                ips=[ips] if isinstance(ips, str) else list(ips),
                role=raw.get("role"),
                status=raw.get("status"),
                flavor_id=(raw.get("flavor") or {}).get("id"),
                volume_size=(raw.get("volume") or {}).get("size"),
                wal_volume_size=wal_volume.get("size"),
            )
        )

    datastore = cluster.get("datastore")
    return ClusterTopology(
        cluster_id=cluster.get("id", cluster_id),
        status=_parse_status(cluster_id, cluster.get("status")),
        name=cluster.get("name", ""),
        datastore=Datastore(**datastore) if datastore else None,
        configuration_id=cluster.get("configuration_id") or None,
        disk_autoexpand=_parse_autoexpand(cluster, "disk_autoexpand", "max_disk_size"),
        wal_disk_autoexpand=_parse_autoexpand(cluster, "wal_autoexpand", "wal_max_disk_size"),
        cloud_monitoring_enabled=cluster.get("cloud_monitoring_enabled"),
        instances=instances,
    )


def serialize_action(kind: ActionKind, payload: dict[str, Any]) -> dict[str, Any]:
    """Build the wire body of an action call."""
    if kind == ActionKind.ATTACH_CONFIGURATION:
        return {"configuration_attach": {"configuration_id": payload["configuration_id"]}}
    if kind == ActionKind.DETACH_CONFIGURATION:
        return {"configuration_detach": {"configuration_id": payload["configuration_id"]}}
    if kind == ActionKind.UPDATE_AUTOEXPAND:
        return {
            "update_autoexpand": {
                "volume_autoresize": {
                    "data": {
                        "enabled": 1 if payload["autoexpand"] else 0,
                        "max_size": payload.get("max_disk_size", 0),
                    }
                }
            }
        }
    if kind == ActionKind.UPDATE_WAL_AUTOEXPAND:
        return {
            "update_autoexpand": {
                "volume_autoresize": {
                    "wal": {
                        "enabled": 1 if payload["autoexpand"] else 0,
                        "max_size": payload.get("max_disk_size", 0),
                    }
                }
            }
        }
    if kind == ActionKind.APPLY_CAPABILITIES:
        return {
            "apply_capability": {
                "capabilities": [
                    {"name": c["name"], "params": c.get("settings", {})}
                    for c in payload["capabilities"]
                ]
            }
        }
    if kind == ActionKind.UPDATE_CLOUD_MONITORING:
        return {"cloud_monitoring": {"enable": payload["enabled"]}}
    if kind == ActionKind.RESIZE_VOLUME:
        return {"resize": {"volume": {"size": payload["size"]}, "shard_id": payload["shard_id"]}}
    if kind == ActionKind.RESIZE_WAL_VOLUME:
        return {
            "resize": {"wal_volume": {"size": payload["size"]}, "shard_id": payload["shard_id"]}
        }
    if kind == ActionKind.RESIZE_FLAVOR:
        return {"resize": {"flavorRef": payload["flavor_id"], "shard_id": payload["shard_id"]}}
    if kind == ActionKind.GROW:
        return {"grow": [_serialize_instance(i) for i in payload["instances"]]}
    if kind == ActionKind.SHRINK:
        return {"shrink": [{"id": instance_id} for instance_id in payload["instance_ids"]]}
    raise ValueError(f"Unsupported action: {kind.value}")


class RestControlPlaneAdapter(IControlPlanePort):
    """
    HTTP client of the cloud database control plane.

    Endpoints, relative to `endpoint + base_path`:
    - POST   /clusters
    - GET    /clusters/{id}
    - DELETE /clusters/{id}
    - POST   /clusters/{id}/action
    - GET    /clusters/{id}/capabilities

    Requests are authenticated with the X-Auth-Token header.
    """

    def __init__(self, settings: ControlPlaneSettings):
        """
        Initialize REST adapter.

        Args:
            settings: Endpoint, token and timeout settings
        """
        self._settings = settings
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        """Get base URL of the control plane API."""
        return f"{self._settings.endpoint.rstrip('/')}{self._settings.base_path}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json", "Accept": "application/json"}
            if self._settings.token:
                headers[AUTH_HEADER] = self._settings.token
            kwargs: dict[str, Any] = {}
            if not self._settings.verify_ssl:
                kwargs["connector"] = aiohttp.TCPConnector(ssl=False)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout),
                headers=headers,
                json_serialize=lambda x: json.dumps(x, default=str),
                **kwargs,
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        cluster_id: Optional[str] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body

        logger.debug("control_plane_request", method=method, url=url)

        try:
            async with self._get_session().request(method, url, **kwargs) as response:
                text = await response.text()
                if response.status == 404 and cluster_id is not None:
                    raise ClusterNotFoundError(cluster_id)
                if response.status >= 400:
                    logger.warning(
                        "control_plane_request_failed",
                        method=method,
                        url=url,
                        status=response.status,
                    )
                    raise RemoteAPIError(
                        f"{method} {path} failed with status {response.status}: {text}",
                        status_code=response.status,
                        details=self._decode(text),
                    )
                return self._decode(text)
        except aiohttp.ClientError as e:
            logger.error("control_plane_unreachable", method=method, url=url, error=str(e))
            raise RemoteAPIError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _decode(text: str) -> dict[str, Any]:
        if not text:
            return {}
        try:
            data = json.loads(text)
        except ValueError:
            return {"raw": text}
        return data if isinstance(data, dict) else {"data": data}

    # === Port ===

    async def create(self, request: ClusterCreateRequest) -> str:
        data = await self._request("POST", "/clusters", body=serialize_create_request(request))
        cluster_id = data.get("cluster", {}).get("id")
        if not cluster_id:
            raise RemoteAPIError("Create response carries no cluster id", details=data)
        logger.info("cluster_submitted", cluster_id=cluster_id, name=request.name)
        return cluster_id

    async def get(self, cluster_id: str) -> ClusterTopology:
        data = await self._request("GET", f"/clusters/{cluster_id}", cluster_id=cluster_id)
        return parse_topology(cluster_id, data)

    async def delete(self, cluster_id: str) -> None:
        await self._request("DELETE", f"/clusters/{cluster_id}", cluster_id=cluster_id)

    async def act(self, cluster_id: str, kind: ActionKind, payload: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/clusters/{cluster_id}/action",
            cluster_id=cluster_id,
            body=serialize_action(kind, payload),
        )

    async def get_capabilities(self, cluster_id: str) -> list[ClusterCapability]:
        data = await self._request(
            "GET", f"/clusters/{cluster_id}/capabilities", cluster_id=cluster_id
        )
        return [
            ClusterCapability(
                name=c["name"],
                status=c.get("status", ""),
                settings={k: str(v) for k, v in (c.get("params") or {}).items()},
            )
            for c in data.get("capabilities", [])
        ]

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
