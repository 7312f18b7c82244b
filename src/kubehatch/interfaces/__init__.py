"""Interface definitions for host cluster access."""

from kubehatch.interfaces.inspector import (
    IngressPoint,
    NamespaceInfo,
    ResourceInspector,
    ServiceInfo,
    WorkloadStatus,
)

__all__ = [
    "IngressPoint",
    "NamespaceInfo",
    "ResourceInspector",
    "ServiceInfo",
    "WorkloadStatus",
]
