"""Core data models for kubehatch."""

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

NAMESPACE_PREFIX = "vcluster-"
SECRET_PREFIX = "vc-"

# vcluster-<name> must remain a valid namespace (63 chars max)
_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]{0,51}[a-z0-9])?$")


def namespace_for(cluster_name: str) -> str:
    """Host namespace that backs a virtual cluster."""
    return NAMESPACE_PREFIX + cluster_name


def secret_name_for(cluster_name: str) -> str:
    """Name of the secret holding a virtual cluster's kubeconfig."""
    return SECRET_PREFIX + cluster_name


class ClusterStatus(str, Enum):
    """Virtual cluster status, derived at query time."""

    PENDING = "Pending"
    RUNNING = "Running"
    UNKNOWN = "Unknown"


class VirtualClusterSpec(BaseModel):
    """User request for a new virtual cluster."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Cluster name, also the namespace suffix")
    replica_count: int = Field(1, description="1 for single instance, 3 for HA")
    expose_externally: bool = Field(False, description="Publish via a LoadBalancer service")

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not _NAME_PATTERN.match(value):
            raise ValueError(
                f"Invalid cluster name {value!r}: must be lowercase alphanumerics or '-', "
                "start and end alphanumeric, at most 53 characters"
            )
        return value

    @field_validator("replica_count")
    @classmethod
    def validate_replicas(cls, value: int) -> int:
        if value not in (1, 3):
            raise ValueError("replica_count must be 1 or 3")
        return value

    @classmethod
    def from_flags(cls, name: str, ha: bool, load_balancer: bool) -> "VirtualClusterSpec":
        """Build a spec from the HA and LoadBalancer toggles."""
        return cls(name=name, replica_count=3 if ha else 1, expose_externally=load_balancer)

    @property
    def namespace(self) -> str:
        return namespace_for(self.name)

    @property
    def high_availability(self) -> bool:
        return self.replica_count > 1

    def to_vcluster_config(self) -> dict[str, Any]:
        """Render the declarative config consumed by ``vcluster create``."""
        spec: dict[str, Any] = {"replicas": self.replica_count}
        if self.expose_externally:
            spec["service"] = {"type": "LoadBalancer"}

        return {
            "apiVersion": "v1",
            "kind": "VirtualCluster",
            "metadata": {"name": self.name},
            "spec": spec,
        }


class VirtualClusterRecord(BaseModel):
    """Presentable view of an existing virtual cluster."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    name: str
    status: ClusterStatus = ClusterStatus.UNKNOWN
    high_availability: bool = Field(False, alias="ha")
    externally_exposed: bool = Field(False, alias="loadBalancer")
    endpoint: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
    owner: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def namespace(self) -> str:
        return namespace_for(self.name)

    def to_api(self) -> dict[str, Any]:
        """JSON representation with camelCase keys and unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExternalEndpoint(BaseModel):
    """Reachable address of a virtual cluster's API service."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int

    @property
    def uri(self) -> str:
        """Canonical https URI, omitting the default port."""
        if self.port == 443:
            return f"https://{self.host}"
        return f"https://{self.host}:{self.port}"


class ProvisioningRequest(BaseModel):
    """Scope for the artifacts of one creation request."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    working_directory: Path
    uploaded_credentials_path: Path | None = None

    @property
    def config_path(self) -> Path:
        return self.working_directory / "vcluster.yaml"

    def kubeconfig_path(self, cluster_name: str) -> Path:
        """Durable location of the final kubeconfig for a cluster."""
        return self.working_directory / ".vcluster" / cluster_name / "kubeconfig.yaml"


class KubeconfigResponse(BaseModel):
    """Body returned by the create endpoint."""

    kubeconfig: str
