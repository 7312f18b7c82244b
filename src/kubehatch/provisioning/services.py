"""Wiring of clients and services for one host kubeconfig."""

from collections.abc import Callable
from pathlib import Path

from kubehatch.clients.command import CommandExecutor
from kubehatch.clients.kubectl import KubectlClient
from kubehatch.clients.vcluster import VclusterCLI
from kubehatch.core.config import KubehatchConfig
from kubehatch.provisioning.credentials import CredentialRetriever
from kubehatch.provisioning.endpoint import EndpointResolver
from kubehatch.provisioning.inventory import InventoryBuilder
from kubehatch.provisioning.orchestrator import ProvisioningOrchestrator
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)


def resolve_credentials_path(
    config: KubehatchConfig,
    uploaded: str | Path | None = None,
    read_path: bool = False,
) -> str | None:
    """Choose the host kubeconfig for a request.

    Order: uploaded file, mounted secret, then (read paths only) the local
    user kubeconfig. None means the tools' in-cluster default.
    """
    if uploaded:
        return str(uploaded)

    mounted = Path(config.paths.mounted_kubeconfig)
    if mounted.is_file():
        return str(mounted)

    if read_path:
        local = Path(config.paths.local_kubeconfig).expanduser()
        if local.is_file():
            return str(local)

    logger.debug("using_in_cluster_credentials", read_path=read_path)
    return None


class HostServices:
    """Clients and services bound to one host kubeconfig.

    Services are constructed on first use.
    """

    def __init__(
        self,
        config: KubehatchConfig,
        credentials_path: str | None = None,
        executor: CommandExecutor | None = None,
        sleep: Callable[[float], object] | None = None,
    ):
        """Initialize host services.

        Args:
            config: kubehatch configuration
            credentials_path: Host kubeconfig (None for in-cluster config)
            executor: Command executor (a new one by default)
            sleep: Sleep function for the readiness grace period (optional)
        """
        self.config = config
        self.credentials_path = credentials_path
        self.executor = executor or CommandExecutor()
        self._sleep = sleep
        self._kubectl: KubectlClient | None = None
        self._vcluster: VclusterCLI | None = None
        self._resolver: EndpointResolver | None = None

    @property
    def kubectl(self) -> KubectlClient:
        if self._kubectl is None:
            self._kubectl = KubectlClient(
                self.executor,
                credentials_path=self.credentials_path,
                kubectl=self.config.tools.kubectl,
            )
        return self._kubectl

    @property
    def vcluster(self) -> VclusterCLI:
        if self._vcluster is None:
            self._vcluster = VclusterCLI(self.executor, vcluster=self.config.tools.vcluster)
        return self._vcluster

    @property
    def resolver(self) -> EndpointResolver:
        if self._resolver is None:
            self._resolver = EndpointResolver(
                self.kubectl, poll=self.config.provisioning.endpoint_poll
            )
        return self._resolver

    def retriever(self, read_path: bool = False) -> CredentialRetriever:
        """Credential retriever with the creation or read path polling windows."""
        polls = self.config.read_path if read_path else self.config.provisioning
        return CredentialRetriever(
            self.vcluster,
            self.kubectl,
            self.resolver,
            credentials_path=self.credentials_path,
            connect_poll=polls.connect_poll,
            secret_poll=polls.secret_poll,
        )

    @property
    def orchestrator(self) -> ProvisioningOrchestrator:
        return ProvisioningOrchestrator(
            self.vcluster,
            self.kubectl,
            self.retriever(),
            credentials_path=self.credentials_path,
            readiness_delay_seconds=self.config.provisioning.readiness_delay_seconds,
            owner_annotation=self.config.ownership.annotation_key,
            sleep=self._sleep,
        )

    @property
    def inventory(self) -> InventoryBuilder:
        return InventoryBuilder(
            self.kubectl,
            self.resolver,
            owner_annotation=self.config.ownership.annotation_key,
            privileged_identities=self.config.ownership.privileged_identities,
        )
