"""Provisioning state machine for virtual clusters."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, NoReturn

import yaml

from kubehatch.clients.vcluster import VclusterCLI
from kubehatch.core.exceptions import (
    ProvisioningError,
    ProvisioningTimeoutError,
    SubprocessFailureError,
)
from kubehatch.core.models import ProvisioningRequest, VirtualClusterSpec
from kubehatch.interfaces.inspector import ResourceInspector
from kubehatch.provisioning.credentials import CredentialRetriever
from kubehatch.utils.logging import cluster_context, get_logger
from kubehatch.utils.retry import CancellationToken

logger = get_logger(__name__)

UPLOADED_CREDENTIALS_FILE = "uploaded.yaml"


class ProvisioningStage(str, Enum):
    """States of a provisioning run."""

    RECEIVED = "Received"
    CONFIG_WRITTEN = "ConfigWritten"
    CREATING = "Creating"
    AWAITING_READINESS = "AwaitingReadiness"
    CREDENTIAL_RETRIEVAL = "CredentialRetrieval"
    OWNERSHIP_TAGGED = "OwnershipTagged"
    COMPLETE = "Complete"

    CONFIG_WRITE_FAILED = "ConfigWriteFailed"
    CREATE_FAILED = "CreateFailed"
    CREDENTIAL_TIMEOUT = "CredentialTimeout"


@dataclass
class ProvisioningResult:
    """Outcome of a completed provisioning run."""

    kubeconfig: bytes
    kubeconfig_path: Path
    owner_tagged: bool


def new_request(
    requests_dir: str | Path,
    upload: BinaryIO | None = None,
) -> ProvisioningRequest:
    """Create the request-local directory and store an uploaded kubeconfig.

    Args:
        requests_dir: Root directory of all requests
        upload: Uploaded host kubeconfig stream (optional)

    Returns:
        New provisioning request
    """
    request_id = str(time.time_ns())
    working_directory = Path(requests_dir) / request_id
    working_directory.mkdir(parents=True, exist_ok=True)

    uploaded_path = None
    if upload is not None:
        uploaded_path = (working_directory / UPLOADED_CREDENTIALS_FILE).resolve()
        with uploaded_path.open("wb") as f:
            while chunk := upload.read(1024 * 1024):
                f.write(chunk)

    logger.debug(
        "provisioning_request_created",
        request_id=request_id,
        uploaded_credentials=uploaded_path is not None,
    )
    return ProvisioningRequest(
        request_id=request_id,
        working_directory=working_directory,
        uploaded_credentials_path=uploaded_path,
    )


class ProvisioningOrchestrator:
    """Sequences virtual cluster creation.

    ``Received -> ConfigWritten -> Creating -> AwaitingReadiness ->
    CredentialRetrieval -> OwnershipTagged -> Complete``

    Config write, creation and credential retrieval failures abort the run
    with a ProvisioningError naming the failed stage. A failure to record the
    owner is only logged.
    """

    def __init__(
        self,
        vcluster: VclusterCLI,
        inspector: ResourceInspector,
        retriever: CredentialRetriever,
        credentials_path: str | None = None,
        readiness_delay_seconds: float = 60.0,
        owner_annotation: str = "kubehatch.io/owner",
        sleep: Callable[[float], object] | None = None,
    ):
        """Initialize provisioning orchestrator.

        Args:
            vcluster: vcluster CLI wrapper
            inspector: Host cluster resource inspector
            retriever: Credential retriever
            credentials_path: Host kubeconfig (optional)
            readiness_delay_seconds: Grace period between create and the first poll
            owner_annotation: Namespace annotation recording the owner
            sleep: Sleep function for the grace period (defaults to the
                cancellation token's wait)
        """
        self.vcluster = vcluster
        self.inspector = inspector
        self.retriever = retriever
        self.credentials_path = credentials_path
        self.readiness_delay_seconds = readiness_delay_seconds
        self.owner_annotation = owner_annotation
        self._sleep = sleep

    def provision(
        self,
        spec: VirtualClusterSpec,
        request: ProvisioningRequest,
        owner: str,
        cancel: CancellationToken | None = None,
    ) -> ProvisioningResult:
        """Create a virtual cluster and return its kubeconfig.

        Args:
            spec: Virtual cluster to create
            request: Request scope for generated artifacts
            owner: Identity recorded as the cluster owner
            cancel: Optional cancellation token threaded through every poll

        Returns:
            ProvisioningResult with the kubeconfig and its durable path

        Raises:
            ProvisioningError: If a stage fails; ``stage`` names the failure state
        """
        token = cancel or CancellationToken()

        with cluster_context(cluster_name=spec.name, request_id=request.request_id):
            self._enter(
                ProvisioningStage.RECEIVED,
                owner=owner,
                ha=spec.high_availability,
                load_balancer=spec.expose_externally,
            )

            self._write_config(spec, request)
            self._enter(ProvisioningStage.CONFIG_WRITTEN, path=str(request.config_path))

            self._enter(ProvisioningStage.CREATING)
            self._create(spec, request)

            self._enter(
                ProvisioningStage.AWAITING_READINESS,
                delay_seconds=self.readiness_delay_seconds,
            )
            self._wait_for_readiness(token)

            self._enter(ProvisioningStage.CREDENTIAL_RETRIEVAL)
            document, path = self._retrieve_credentials(spec, request, token)

            owner_tagged = self._tag_owner(spec, owner)
            if owner_tagged:
                self._enter(ProvisioningStage.OWNERSHIP_TAGGED, owner=owner)

            self._enter(ProvisioningStage.COMPLETE, kubeconfig_path=str(path))

        return ProvisioningResult(
            kubeconfig=document, kubeconfig_path=path, owner_tagged=owner_tagged
        )

    def teardown(self, cluster_name: str) -> None:
        """Delete a virtual cluster and its namespace.

        Raises:
            SubprocessFailureError: If vcluster delete fails
        """
        self.vcluster.delete(cluster_name, credentials_path=self.credentials_path)
        logger.info("vcluster_deleted", cluster_name=cluster_name)

    @staticmethod
    def _enter(stage: ProvisioningStage, **kwargs: object) -> None:
        logger.info("provisioning_stage", stage=stage.value, **kwargs)

    def _fail(
        self, stage: ProvisioningStage, message: str, output: bytes, cause: Exception
    ) -> NoReturn:
        logger.error(
            "provisioning_failed",
            stage=stage.value,
            error_type=type(cause).__name__,
            error_message=message,
            output=output.decode(errors="replace"),
        )
        raise ProvisioningError(message, stage=stage.value, output=output) from cause

    def _write_config(self, spec: VirtualClusterSpec, request: ProvisioningRequest) -> None:
        try:
            rendered = yaml.safe_dump(
                spec.to_vcluster_config(), default_flow_style=False, sort_keys=False
            )
            request.config_path.parent.mkdir(parents=True, exist_ok=True)
            request.config_path.write_text(rendered)
        except (OSError, yaml.YAMLError) as e:
            self._fail(
                ProvisioningStage.CONFIG_WRITE_FAILED,
                f"Error creating vcluster config: {e}",
                b"",
                e,
            )
        logger.debug("vcluster_config_generated", config=rendered)

    def _create(self, spec: VirtualClusterSpec, request: ProvisioningRequest) -> None:
        try:
            self.vcluster.create(
                spec.name,
                request.config_path.name,
                working_directory=request.working_directory,
                credentials_path=self.credentials_path,
                expose=spec.expose_externally,
            )
        except SubprocessFailureError as e:
            self._fail(
                ProvisioningStage.CREATE_FAILED,
                f"vcluster create failed: {e.args[0]}",
                e.output,
                e,
            )

    def _wait_for_readiness(self, token: CancellationToken) -> None:
        # vcluster's own readiness signal is unreliable right after create
        if self._sleep is not None:
            self._sleep(self.readiness_delay_seconds)
        else:
            token.wait(self.readiness_delay_seconds)

    def _retrieve_credentials(
        self,
        spec: VirtualClusterSpec,
        request: ProvisioningRequest,
        token: CancellationToken,
    ) -> tuple[bytes, Path]:
        try:
            document = self.retriever.fetch(
                spec.name,
                spec.namespace,
                want_external_endpoint=spec.expose_externally,
                cancel=token,
                strict_endpoint=True,
            )
        except ProvisioningTimeoutError as e:
            self._fail(ProvisioningStage.CREDENTIAL_TIMEOUT, str(e), b"", e)

        try:
            path = self.retriever.save(document, request.kubeconfig_path(spec.name))
        except OSError as e:
            self._fail(
                ProvisioningStage.CREDENTIAL_TIMEOUT,
                f"Failed to write kubeconfig: {e}",
                b"",
                e,
            )
        return document, path

    def _tag_owner(self, spec: VirtualClusterSpec, owner: str) -> bool:
        try:
            self.inspector.annotate_namespace(spec.namespace, self.owner_annotation, owner)
        except SubprocessFailureError as e:
            logger.warning(
                "owner_tagging_failed",
                namespace=spec.namespace,
                owner=owner,
                error=str(e),
            )
            return False
        return True
