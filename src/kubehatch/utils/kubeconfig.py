"""Kubeconfig parsing and server endpoint rewriting.

Only ``clusters[*].cluster.server`` is modelled; every other key of the
document is carried through untouched.
"""

from typing import Annotated, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kubehatch.core.exceptions import KubeconfigError
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)


class ClusterConnection(BaseModel):
    """The ``cluster`` mapping of a kubeconfig cluster entry."""

    model_config = ConfigDict(extra="allow")

    server: str | None = None


class ClusterEntry(BaseModel):
    """One item of the ``clusters`` list."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    cluster: ClusterConnection | None = None


class KubeconfigDocument(BaseModel):
    """Partial kubeconfig schema.

    Cluster entries that are not mappings are kept as-is and skipped when
    reading or rewriting servers.
    """

    model_config = ConfigDict(extra="allow")

    clusters: list[Annotated[ClusterEntry | Any, Field(union_mode="left_to_right")]]

    @classmethod
    def parse(cls, data: bytes | str) -> "KubeconfigDocument":
        """Parse a kubeconfig YAML document.

        Raises:
            KubeconfigError: If the document is not YAML or has no clusters list
        """
        try:
            raw = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise KubeconfigError(f"Failed to parse kubeconfig: {e}") from e

        if not isinstance(raw, dict) or "clusters" not in raw:
            raise KubeconfigError("kubeconfig missing 'clusters' field")

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise KubeconfigError(f"Unexpected kubeconfig structure: {e}") from e

    @property
    def entries(self) -> list[ClusterEntry]:
        return [entry for entry in self.clusters if isinstance(entry, ClusterEntry)]

    @property
    def servers(self) -> list[str]:
        return [
            entry.cluster.server
            for entry in self.entries
            if entry.cluster is not None and entry.cluster.server is not None
        ]

    def set_server(self, endpoint: str) -> None:
        """Point every cluster entry at ``endpoint``."""
        for entry in self.entries:
            if entry.cluster is None:
                continue
            entry.cluster.server = endpoint

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def to_yaml(self) -> bytes:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False).encode()


def rewrite_server(data: bytes, endpoint: str) -> bytes:
    """Return ``data`` with every cluster server replaced by ``endpoint``.

    Args:
        data: Kubeconfig YAML
        endpoint: New server URI

    Returns:
        Rewritten kubeconfig YAML

    Raises:
        KubeconfigError: If the document cannot be parsed
    """
    document = KubeconfigDocument.parse(data)
    document.set_server(endpoint)
    logger.debug("kubeconfig_server_rewritten", endpoint=endpoint, clusters=len(document.entries))
    return document.to_yaml()
