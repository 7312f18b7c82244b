"""kubectl wrapper implementing the ResourceInspector interface."""

from datetime import datetime
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError

from kubehatch.clients.command import CommandExecutor, CommandResult
from kubehatch.core.exceptions import (
    ParseError,
    ResourceNotFoundError,
    SubprocessFailureError,
)
from kubehatch.interfaces.inspector import (
    IngressPoint,
    NamespaceInfo,
    ResourceInspector,
    ServiceInfo,
    WorkloadStatus,
)
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


# Declared shapes of the `kubectl get -o json` output we rely on. Anything
# not listed here is ignored.


class _ObjectMeta(BaseModel):
    name: str
    creation_timestamp: datetime = Field(alias="creationTimestamp")
    annotations: dict[str, str] = Field(default_factory=dict)


class _Namespace(BaseModel):
    metadata: _ObjectMeta


class _NamespaceList(BaseModel):
    items: list[_Namespace] = Field(default_factory=list)


class _StatefulSetSpec(BaseModel):
    replicas: int = 0


class _StatefulSetStatus(BaseModel):
    ready_replicas: int = Field(0, alias="readyReplicas")


class _StatefulSet(BaseModel):
    spec: _StatefulSetSpec = Field(default_factory=_StatefulSetSpec)
    status: _StatefulSetStatus = Field(default_factory=_StatefulSetStatus)


class _ServicePort(BaseModel):
    port: int


class _ServiceSpec(BaseModel):
    type: str = "ClusterIP"
    cluster_ip: str | None = Field(None, alias="clusterIP")
    ports: list[_ServicePort] = Field(default_factory=list)


class _Ingress(BaseModel):
    ip: str | None = None
    hostname: str | None = None


class _LoadBalancerStatus(BaseModel):
    ingress: list[_Ingress] = Field(default_factory=list)


class _ServiceStatus(BaseModel):
    load_balancer: _LoadBalancerStatus = Field(
        default_factory=_LoadBalancerStatus, alias="loadBalancer"
    )


class _Service(BaseModel):
    spec: _ServiceSpec = Field(default_factory=_ServiceSpec)
    status: _ServiceStatus = Field(default_factory=_ServiceStatus)


class _Secret(BaseModel):
    data: dict[str, str] | None = None


def _is_not_found(result: CommandResult) -> bool:
    text = result.text
    return "NotFound" in text or "not found" in text


class KubectlClient(ResourceInspector):
    """Reads and annotates host cluster objects through kubectl."""

    def __init__(
        self,
        executor: CommandExecutor,
        credentials_path: str | None = None,
        kubectl: str = "kubectl",
    ):
        """Initialize kubectl client.

        Args:
            executor: Command executor
            credentials_path: Host kubeconfig (optional, in-cluster config otherwise)
            kubectl: kubectl executable
        """
        self.executor = executor
        self.credentials_path = credentials_path
        self.kubectl = kubectl

        logger.debug("kubectl_client_initialized", credentials_path=credentials_path)

    def _run(self, args: list[str]) -> CommandResult:
        if self.credentials_path:
            args = ["--kubeconfig", self.credentials_path, *args]
        # kubectl may rely on the in-cluster service variables when no
        # credentials file is configured
        return self.executor.run(self.kubectl, args, keep_service_env=True)

    def _get(self, kind: str, name: str, namespace: str) -> bytes:
        result = self._run(["get", kind, name, "-n", namespace, "-o", "json"])
        if result.success:
            return result.output
        if _is_not_found(result):
            raise ResourceNotFoundError(f"{kind} {namespace}/{name} not found")
        raise SubprocessFailureError(
            f"kubectl get {kind} {namespace}/{name} failed",
            output=result.output,
            returncode=result.returncode,
        )

    @staticmethod
    def _decode(model: type[M], output: bytes, what: str) -> M:
        try:
            return model.model_validate_json(output)
        except ValidationError as e:
            logger.error("kubectl_output_parse_failed", target=what, error=str(e))
            raise ParseError(f"Failed to parse {what}: {e}") from e

    def list_namespaces(self) -> list[NamespaceInfo]:
        """List all namespaces on the host cluster.

        Returns:
            Normalized namespace information

        Raises:
            SubprocessFailureError: If kubectl fails
            ParseError: If the output is malformed
        """
        result = self._run(["get", "namespaces", "-o", "json"])
        if not result.success:
            raise SubprocessFailureError(
                "kubectl get namespaces failed",
                output=result.output,
                returncode=result.returncode,
            )

        listing = self._decode(_NamespaceList, result.output, "namespace list")
        namespaces = [
            NamespaceInfo(
                name=item.metadata.name,
                created_at=item.metadata.creation_timestamp,
                annotations=item.metadata.annotations,
            )
            for item in listing.items
        ]

        logger.debug("namespaces_retrieved", count=len(namespaces))
        return namespaces

    def get_workload_status(self, name: str, namespace: str) -> WorkloadStatus:
        """Get replica status of a StatefulSet.

        Args:
            name: StatefulSet name
            namespace: Namespace

        Returns:
            Desired and ready replica counts

        Raises:
            ResourceNotFoundError: If the StatefulSet does not exist yet
            SubprocessFailureError: If kubectl fails
            ParseError: If the output is malformed
        """
        output = self._get("statefulset", name, namespace)
        sts = self._decode(_StatefulSet, output, f"statefulset {namespace}/{name}")
        return WorkloadStatus(
            desired_replicas=sts.spec.replicas,
            ready_replicas=sts.status.ready_replicas,
        )

    def get_service(self, name: str, namespace: str) -> ServiceInfo:
        """Get a service.

        Args:
            name: Service name
            namespace: Namespace

        Returns:
            Normalized service information

        Raises:
            ResourceNotFoundError: If the service does not exist yet
            SubprocessFailureError: If kubectl fails
            ParseError: If the output is malformed
        """
        output = self._get("service", name, namespace)
        svc = self._decode(_Service, output, f"service {namespace}/{name}")
        return ServiceInfo(
            name=name,
            namespace=namespace,
            service_type=svc.spec.type,
            ports=[p.port for p in svc.spec.ports],
            ingress=[
                IngressPoint(ip=i.ip or None, hostname=i.hostname or None)
                for i in svc.status.load_balancer.ingress
            ],
            cluster_ip=svc.spec.cluster_ip or None,
        )

    def get_secret_field(self, name: str, namespace: str, key: str) -> str:
        """Get the encoded value of a secret data field.

        Args:
            name: Secret name
            namespace: Namespace
            key: Data field

        Returns:
            Base64 value, empty when the field is not populated yet

        Raises:
            ResourceNotFoundError: If the secret does not exist yet
            SubprocessFailureError: If kubectl fails
            ParseError: If the output is malformed
        """
        output = self._get("secret", name, namespace)
        secret = self._decode(_Secret, output, f"secret {namespace}/{name}")
        return (secret.data or {}).get(key, "").strip()

    def annotate_namespace(self, namespace: str, key: str, value: str) -> None:
        """Set a namespace annotation, overwriting any previous value.

        Args:
            namespace: Namespace
            key: Annotation key
            value: Annotation value

        Raises:
            SubprocessFailureError: If kubectl fails
        """
        result = self._run(["annotate", "namespace", namespace, f"{key}={value}", "--overwrite"])
        if not result.success:
            raise SubprocessFailureError(
                f"Failed to annotate namespace {namespace}",
                output=result.output,
                returncode=result.returncode,
            )
        logger.info("namespace_annotated", namespace=namespace, key=key, value=value)
