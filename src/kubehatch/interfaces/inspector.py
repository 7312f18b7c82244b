"""Resource inspector interface for host cluster reads."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class NamespaceInfo:
    """Normalized namespace information."""

    name: str
    created_at: datetime
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class WorkloadStatus:
    """Replica counts of a stateful workload."""

    desired_replicas: int
    ready_replicas: int

    @property
    def running(self) -> bool:
        return self.desired_replicas > 0 and self.ready_replicas == self.desired_replicas


@dataclass
class IngressPoint:
    """One load-balancer ingress entry."""

    ip: str | None = None
    hostname: str | None = None

    @property
    def address(self) -> str | None:
        return self.ip or self.hostname or None


@dataclass
class ServiceInfo:
    """Normalized service information."""

    name: str
    namespace: str
    service_type: str
    ports: list[int] = field(default_factory=list)
    ingress: list[IngressPoint] = field(default_factory=list)
    cluster_ip: str | None = None

    @property
    def first_port(self) -> int | None:
        return self.ports[0] if self.ports else None

    @property
    def external_address(self) -> str | None:
        """First ingress address, preferring ip over hostname."""
        for point in self.ingress:
            if point.address:
                return point.address
        return None

    @property
    def is_load_balancer(self) -> bool:
        return self.service_type == "LoadBalancer"


class ResourceInspector(ABC):
    """Abstract interface for reading host cluster objects.

    All methods return normalized dataclasses. A missing object raises
    ResourceNotFoundError; unexpected tool output raises ParseError.
    """

    @abstractmethod
    def list_namespaces(self) -> list[NamespaceInfo]:
        """List all namespaces on the host cluster.

        Raises:
            SubprocessFailureError: If the listing fails
            ParseError: If the output is malformed
        """

    @abstractmethod
    def get_workload_status(self, name: str, namespace: str) -> WorkloadStatus:
        """Get replica status of a StatefulSet.

        Raises:
            ResourceNotFoundError: If the workload does not exist yet
            SubprocessFailureError: If the lookup fails
            ParseError: If the output is malformed
        """

    @abstractmethod
    def get_service(self, name: str, namespace: str) -> ServiceInfo:
        """Get a service.

        Raises:
            ResourceNotFoundError: If the service does not exist yet
            SubprocessFailureError: If the lookup fails
            ParseError: If the output is malformed
        """

    @abstractmethod
    def get_secret_field(self, name: str, namespace: str, key: str) -> str:
        """Get the raw (base64) value of one secret data field.

        Returns:
            The encoded value, or an empty string when the field is unset

        Raises:
            ResourceNotFoundError: If the secret does not exist yet
            SubprocessFailureError: If the lookup fails
        """

    @abstractmethod
    def annotate_namespace(self, namespace: str, key: str, value: str) -> None:
        """Set an annotation on a namespace, overwriting any previous value.

        Raises:
            SubprocessFailureError: If the update fails
        """
