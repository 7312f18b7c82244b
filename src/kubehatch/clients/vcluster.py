"""vcluster CLI wrapper."""

from pathlib import Path

from kubehatch.clients.command import CommandExecutor, CommandResult
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)


class VclusterCLI:
    """Wrapper for the vcluster command-line tool."""

    def __init__(self, executor: CommandExecutor, vcluster: str = "vcluster"):
        """Initialize vcluster wrapper.

        Args:
            executor: Command executor
            vcluster: vcluster executable
        """
        self.executor = executor
        self.vcluster = vcluster

    def create(
        self,
        cluster_name: str,
        config_file: str,
        working_directory: str | Path,
        credentials_path: str | None = None,
        expose: bool = False,
    ) -> CommandResult:
        """Create a virtual cluster from a declarative config file.

        Raises:
            SubprocessFailureError: If vcluster fails, carrying its output
        """
        args = ["create", cluster_name, "--config", config_file, "--connect=false", "--debug"]
        if expose:
            args.append("--expose")

        logger.info(
            "vcluster_create_started",
            cluster_name=cluster_name,
            expose=expose,
            working_directory=str(working_directory),
        )
        result = self.executor.check(
            self.vcluster,
            args,
            working_directory=working_directory,
            credentials_path=credentials_path,
        )
        logger.debug("vcluster_create_output", cluster_name=cluster_name, output=result.text)
        return result

    def connect_print(
        self, cluster_name: str, namespace: str, credentials_path: str | None = None
    ) -> CommandResult:
        """Ask vcluster to print a ready-to-use kubeconfig.

        A failure is returned, not raised: while the cluster initializes this
        is expected.
        """
        args = ["connect", cluster_name, "--namespace", namespace, "--print"]
        if credentials_path:
            args = ["--kubeconfig", credentials_path, *args]
        return self.executor.run(self.vcluster, args, credentials_path=credentials_path)

    def delete(self, cluster_name: str, credentials_path: str | None = None) -> CommandResult:
        """Delete a virtual cluster together with its namespace.

        Raises:
            SubprocessFailureError: If vcluster fails, carrying its output
        """
        logger.info("vcluster_delete_started", cluster_name=cluster_name)
        return self.executor.check(
            self.vcluster,
            ["delete", cluster_name, "--delete-namespace", "--yes"],
            credentials_path=credentials_path,
        )
