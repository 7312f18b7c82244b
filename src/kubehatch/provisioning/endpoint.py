"""Network endpoint discovery for virtual cluster API services."""

from enum import Enum

from kubehatch.core.config import PollSettings
from kubehatch.core.exceptions import (
    EndpointUnavailableError,
    ParseError,
    ResourceNotFoundError,
    SubprocessFailureError,
)
from kubehatch.core.models import ExternalEndpoint
from kubehatch.interfaces.inspector import ResourceInspector, ServiceInfo
from kubehatch.utils.logging import get_logger
from kubehatch.utils.retry import CancellationToken, poll_until

logger = get_logger(__name__)

# Lookup failures that mean "try again later" while a service is converging
_TRANSIENT_ERRORS = (ResourceNotFoundError, ParseError, SubprocessFailureError)


class ResolutionMode(str, Enum):
    """Which address of a service to resolve."""

    INTERNAL = "internal"
    EXTERNAL = "external"


def _external_endpoint(service: ServiceInfo) -> ExternalEndpoint | None:
    address = service.external_address
    port = service.first_port
    if address is None or port is None:
        return None
    return ExternalEndpoint(host=address, port=port)


class EndpointResolver:
    """Derives a reachable address for a virtual cluster's service.

    External resolution prefers the load-balancer ingress (ip, then hostname)
    and polls until it is assigned. Internal resolution uses the ClusterIP and
    is a single attempt. In both modes the first declared port is used.
    """

    def __init__(self, inspector: ResourceInspector, poll: PollSettings | None = None):
        """Initialize endpoint resolver.

        Args:
            inspector: Host cluster resource inspector
            poll: External ingress polling window (10s interval, 3 minutes by default)
        """
        self.inspector = inspector
        self.poll = poll or PollSettings(interval_seconds=10.0, timeout_seconds=180.0)

    def resolve(
        self,
        namespace: str,
        service_name: str,
        mode: ResolutionMode,
        cancel: CancellationToken | None = None,
    ) -> ExternalEndpoint:
        """Resolve a service endpoint.

        Args:
            namespace: Service namespace
            service_name: Service name
            mode: Internal (ClusterIP) or external (load-balancer ingress)
            cancel: Optional cancellation token for the external poll

        Returns:
            Resolved endpoint

        Raises:
            EndpointUnavailableError: Internal address or port is missing
            ProvisioningTimeoutError: External ingress not assigned before the deadline
        """
        if mode == ResolutionMode.INTERNAL:
            return self._resolve_internal(namespace, service_name)
        return self._resolve_external(namespace, service_name, cancel)

    def _resolve_internal(self, namespace: str, service_name: str) -> ExternalEndpoint:
        try:
            service = self.inspector.get_service(service_name, namespace)
        except ResourceNotFoundError as e:
            raise EndpointUnavailableError(f"Service {namespace}/{service_name} not found") from e

        if not service.cluster_ip or service.cluster_ip == "None":
            raise EndpointUnavailableError(f"Service {namespace}/{service_name} has no ClusterIP")
        if service.first_port is None:
            raise EndpointUnavailableError(f"Service {namespace}/{service_name} has no ports")

        endpoint = ExternalEndpoint(host=service.cluster_ip, port=service.first_port)
        logger.info("internal_endpoint_resolved", namespace=namespace, endpoint=endpoint.uri)
        return endpoint

    def _resolve_external(
        self, namespace: str, service_name: str, cancel: CancellationToken | None
    ) -> ExternalEndpoint:
        logger.info(
            "polling_external_endpoint",
            namespace=namespace,
            service=service_name,
            timeout_seconds=self.poll.timeout_seconds,
        )

        def attempt() -> ExternalEndpoint | None:
            return _external_endpoint(self.inspector.get_service(service_name, namespace))

        endpoint = poll_until(
            attempt,
            self.poll,
            f"external endpoint of {namespace}/{service_name}",
            cancel=cancel,
            retry_on=_TRANSIENT_ERRORS,
        )
        logger.info("external_endpoint_resolved", namespace=namespace, endpoint=endpoint.uri)
        return endpoint

    def lookup_external(self, namespace: str, service_name: str) -> ExternalEndpoint | None:
        """Single-attempt external lookup; None when not (yet) available."""
        try:
            return _external_endpoint(self.inspector.get_service(service_name, namespace))
        except _TRANSIENT_ERRORS as e:
            logger.debug(
                "external_endpoint_lookup_failed",
                namespace=namespace,
                service=service_name,
                error=str(e),
            )
            return None
