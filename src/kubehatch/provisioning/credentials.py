"""Kubeconfig retrieval for virtual clusters."""

import base64
import binascii
from pathlib import Path

from kubehatch.clients.vcluster import VclusterCLI
from kubehatch.core.config import PollSettings
from kubehatch.core.exceptions import (
    CredentialTimeoutError,
    KubeconfigError,
    ParseError,
    ProvisioningTimeoutError,
    ResourceNotFoundError,
    SubprocessFailureError,
)
from kubehatch.core.models import secret_name_for
from kubehatch.interfaces.inspector import ResourceInspector
from kubehatch.provisioning.endpoint import EndpointResolver, ResolutionMode
from kubehatch.utils.kubeconfig import rewrite_server
from kubehatch.utils.logging import get_logger
from kubehatch.utils.retry import CancellationToken, poll_until

logger = get_logger(__name__)

SECRET_KUBECONFIG_KEY = "config"


class CredentialRetriever:
    """Obtains a virtual cluster's kubeconfig.

    The primary path is ``vcluster connect --print``. When that keeps failing
    for its whole window the kubeconfig secret (``vc-<name>``) is polled
    instead. If an external endpoint is wanted, the server address of every
    cluster entry is rewritten to the load-balancer address afterwards.
    """

    def __init__(
        self,
        vcluster: VclusterCLI,
        inspector: ResourceInspector,
        resolver: EndpointResolver,
        credentials_path: str | None = None,
        connect_poll: PollSettings | None = None,
        secret_poll: PollSettings | None = None,
    ):
        """Initialize credential retriever.

        Args:
            vcluster: vcluster CLI wrapper
            inspector: Host cluster resource inspector
            resolver: Endpoint resolver used for the external rewrite
            credentials_path: Host kubeconfig (optional)
            connect_poll: Window for the connect path (10s / 3 minutes by default)
            secret_poll: Window for the secret fallback (15s / 2 minutes by default)
        """
        self.vcluster = vcluster
        self.inspector = inspector
        self.resolver = resolver
        self.credentials_path = credentials_path
        self.connect_poll = connect_poll or PollSettings(
            interval_seconds=10.0, timeout_seconds=180.0
        )
        self.secret_poll = secret_poll or PollSettings(interval_seconds=15.0, timeout_seconds=120.0)

    def fetch(
        self,
        cluster_name: str,
        namespace: str,
        want_external_endpoint: bool,
        cancel: CancellationToken | None = None,
        strict_endpoint: bool = False,
    ) -> bytes:
        """Retrieve a kubeconfig for a virtual cluster.

        Args:
            cluster_name: Virtual cluster name
            namespace: Host namespace of the virtual cluster
            want_external_endpoint: Rewrite servers to the load-balancer address
            cancel: Optional cancellation token
            strict_endpoint: Propagate external resolution failures instead of
                returning the unmodified document

        Returns:
            Kubeconfig document

        Raises:
            CredentialTimeoutError: Neither path produced a kubeconfig
            ProvisioningTimeoutError: strict_endpoint is set and no external
                endpoint was assigned in time
        """
        try:
            document = self._fetch_via_connect(cluster_name, namespace, cancel)
        except ProvisioningTimeoutError:
            if cancel is not None and cancel.cancelled:
                raise
            logger.warning(
                "vcluster_connect_timed_out",
                cluster_name=cluster_name,
                fallback="secret",
            )
            document = self._fetch_via_secret(cluster_name, namespace, cancel)

        if want_external_endpoint:
            document = self._apply_external_endpoint(
                document, cluster_name, namespace, cancel, strict_endpoint
            )

        return document

    def fetch_live(self, cluster_name: str, namespace: str) -> bytes:
        """Retrieve a kubeconfig for the read path.

        The external rewrite is applied when the cluster's service is of type
        LoadBalancer.
        """
        try:
            load_balanced = self.inspector.get_service(cluster_name, namespace).is_load_balancer
        except (ResourceNotFoundError, ParseError, SubprocessFailureError) as e:
            logger.debug("service_type_lookup_failed", cluster_name=cluster_name, error=str(e))
            load_balanced = False

        return self.fetch(cluster_name, namespace, want_external_endpoint=load_balanced)

    def _fetch_via_connect(
        self, cluster_name: str, namespace: str, cancel: CancellationToken | None
    ) -> bytes:
        logger.info("fetching_kubeconfig_via_connect", cluster_name=cluster_name)

        def attempt() -> bytes | None:
            result = self.vcluster.connect_print(cluster_name, namespace, self.credentials_path)
            if not result.success:
                logger.debug(
                    "vcluster_connect_not_ready",
                    cluster_name=cluster_name,
                    returncode=result.returncode,
                    output=result.text,
                )
                return None
            if not result.output.strip():
                return None
            return result.output

        document = poll_until(
            attempt,
            self.connect_poll,
            f"vcluster connect for {cluster_name}",
            cancel=cancel,
        )
        logger.info("kubeconfig_retrieved", cluster_name=cluster_name, source="connect")
        return document

    def _fetch_via_secret(
        self, cluster_name: str, namespace: str, cancel: CancellationToken | None
    ) -> bytes:
        secret_name = secret_name_for(cluster_name)
        logger.info(
            "fetching_kubeconfig_via_secret",
            cluster_name=cluster_name,
            secret=secret_name,
            namespace=namespace,
        )

        def attempt() -> bytes | None:
            try:
                encoded = self.inspector.get_secret_field(
                    secret_name, namespace, SECRET_KUBECONFIG_KEY
                )
            except ResourceNotFoundError:
                logger.debug("kubeconfig_secret_absent", secret=secret_name, namespace=namespace)
                return None
            except (SubprocessFailureError, ParseError) as e:
                logger.debug("kubeconfig_secret_lookup_failed", secret=secret_name, error=str(e))
                return None

            if not encoded:
                logger.debug("kubeconfig_secret_empty", secret=secret_name)
                return None

            try:
                decoded = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                # partial writes are plausible, keep polling
                logger.warning("kubeconfig_secret_decode_failed", secret=secret_name, error=str(e))
                return None

            return decoded or None

        document = poll_until(
            attempt,
            self.secret_poll,
            f"kubeconfig secret {namespace}/{secret_name}",
            cancel=cancel,
            timeout_error=CredentialTimeoutError,
        )
        logger.info("kubeconfig_retrieved", cluster_name=cluster_name, source="secret")
        return document

    def _apply_external_endpoint(
        self,
        document: bytes,
        cluster_name: str,
        namespace: str,
        cancel: CancellationToken | None,
        strict: bool,
    ) -> bytes:
        try:
            endpoint = self.resolver.resolve(
                namespace, cluster_name, ResolutionMode.EXTERNAL, cancel=cancel
            )
        except ProvisioningTimeoutError as e:
            if strict:
                raise
            logger.warning(
                "external_endpoint_unavailable",
                cluster_name=cluster_name,
                error=str(e),
            )
            return document

        try:
            return rewrite_server(document, endpoint.uri)
        except KubeconfigError as e:
            logger.warning(
                "kubeconfig_endpoint_rewrite_failed",
                cluster_name=cluster_name,
                endpoint=endpoint.uri,
                error=str(e),
            )
            return document

    def save(self, document: bytes, path: Path) -> Path:
        """Write a kubeconfig to its durable per-request location."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(document)
        logger.info("kubeconfig_written", path=str(path))
        return path
