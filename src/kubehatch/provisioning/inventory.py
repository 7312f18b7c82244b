"""Enumeration of existing virtual clusters."""

from __future__ import annotations

from collections.abc import Iterable

from kubehatch.core.exceptions import (
    ParseError,
    ResourceNotFoundError,
    SubprocessFailureError,
)
from kubehatch.core.models import (
    NAMESPACE_PREFIX,
    ClusterStatus,
    VirtualClusterRecord,
)
from kubehatch.interfaces.inspector import NamespaceInfo, ResourceInspector
from kubehatch.provisioning.endpoint import EndpointResolver
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PRIVILEGED_IDENTITIES = ("default", "admin")


def is_visible(
    record: VirtualClusterRecord,
    identity: str,
    privileged: Iterable[str] = DEFAULT_PRIVILEGED_IDENTITIES,
) -> bool:
    """Whether ``identity`` may see ``record``.

    Privileged identities see everything; everyone else sees unowned
    clusters and their own.
    """
    return identity in privileged or not record.owner or record.owner == identity


class InventoryBuilder:
    """Builds VirtualClusterRecords from live host cluster objects.

    Nothing is cached: every call reconstructs state from namespaces, the
    control-plane StatefulSet, the API service and the owner annotation.
    """

    def __init__(
        self,
        inspector: ResourceInspector,
        resolver: EndpointResolver,
        owner_annotation: str = "kubehatch.io/owner",
        privileged_identities: Iterable[str] = DEFAULT_PRIVILEGED_IDENTITIES,
    ):
        """Initialize inventory builder.

        Args:
            inspector: Host cluster resource inspector
            resolver: Endpoint resolver for load-balanced clusters
            owner_annotation: Namespace annotation holding the owner
            privileged_identities: Identities that see every cluster
        """
        self.inspector = inspector
        self.resolver = resolver
        self.owner_annotation = owner_annotation
        self.privileged_identities = tuple(privileged_identities)

    def list(self, identity: str) -> list[VirtualClusterRecord]:
        """List the virtual clusters visible to ``identity``.

        Args:
            identity: Requesting identity

        Returns:
            Visible records, in namespace listing order

        Raises:
            SubprocessFailureError: If namespaces cannot be listed
            ParseError: If the namespace listing is malformed
        """
        namespaces = self.inspector.list_namespaces()
        logger.debug("processing_namespaces", count=len(namespaces))

        records = []
        for namespace in namespaces:
            if not namespace.name.startswith(NAMESPACE_PREFIX):
                continue

            record = self._build_record(namespace)
            if is_visible(record, identity, self.privileged_identities):
                records.append(record)
                logger.debug(
                    "cluster_listed",
                    cluster_name=record.name,
                    status=record.status,
                    owner=record.owner,
                )
            else:
                logger.debug(
                    "cluster_hidden",
                    cluster_name=record.name,
                    owner=record.owner,
                    identity=identity,
                )

        logger.info("clusters_listed", identity=identity, count=len(records))
        return records

    def _build_record(self, namespace: NamespaceInfo) -> VirtualClusterRecord:
        cluster_name = namespace.name[len(NAMESPACE_PREFIX):]
        owner = namespace.annotations.get(self.owner_annotation) or None

        try:
            return self._inspect(cluster_name, namespace, owner)
        except (SubprocessFailureError, ParseError) as e:
            logger.warning(
                "cluster_inspection_failed",
                cluster_name=cluster_name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return VirtualClusterRecord(
                name=cluster_name,
                status=ClusterStatus.UNKNOWN,
                created_at=namespace.created_at,
                owner=owner,
            )

    def _inspect(
        self, cluster_name: str, namespace: NamespaceInfo, owner: str | None
    ) -> VirtualClusterRecord:
        status = ClusterStatus.PENDING
        high_availability = False
        try:
            workload = self.inspector.get_workload_status(cluster_name, namespace.name)
        except ResourceNotFoundError:
            # not created yet
            workload = None

        if workload is not None:
            high_availability = workload.desired_replicas > 1
            if workload.running:
                status = ClusterStatus.RUNNING

        exposed = False
        endpoint = None
        try:
            service = self.inspector.get_service(cluster_name, namespace.name)
        except ResourceNotFoundError:
            service = None

        if service is not None and service.ports and service.is_load_balancer:
            exposed = True
            external = self.resolver.lookup_external(namespace.name, cluster_name)
            if external is not None:
                endpoint = external.uri

        return VirtualClusterRecord(
            name=cluster_name,
            status=status,
            high_availability=high_availability,
            externally_exposed=exposed,
            endpoint=endpoint,
            created_at=namespace.created_at,
            owner=owner,
        )
