"""Subprocess execution for the external management tools."""

import os
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from kubehatch.core.exceptions import SubprocessFailureError
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

# Injected by the host cluster into every pod; they make the CLIs target the
# host API directly instead of the configured kubeconfig.
SERVICE_ENV_KEYS = (
    "KUBERNETES_SERVICE_HOST",
    "KUBERNETES_SERVICE_PORT",
    "KUBERNETES_PORT",
)


def filter_environment(env: Mapping[str, str], excluded: Iterable[str]) -> dict[str, str]:
    """Return a copy of ``env`` without the ``excluded`` keys."""
    skip = set(excluded)
    return {key: value for key, value in env.items() if key not in skip}


def build_environment(
    env: Mapping[str, str],
    credentials_path: str | None = None,
    excluded: Iterable[str] = SERVICE_ENV_KEYS,
) -> dict[str, str]:
    """Filter ``env`` and overlay KUBECONFIG when a credentials file is given."""
    result = filter_environment(env, excluded)
    if credentials_path:
        result["KUBECONFIG"] = credentials_path
    return result


@dataclass
class CommandResult:
    """Outcome of one tool invocation."""

    output: bytes
    success: bool
    returncode: int

    @property
    def text(self) -> str:
        return self.output.decode(errors="replace")


class CommandExecutor:
    """Runs management tools as subprocesses.

    Every call spawns exactly one process and waits for it. The executor never
    retries; callers own retry policy.
    """

    def __init__(self, base_env: Mapping[str, str] | None = None):
        """Initialize command executor.

        Args:
            base_env: Environment to start from (defaults to os.environ at call time)
        """
        self.base_env = base_env

    def run(
        self,
        tool: str,
        args: list[str],
        working_directory: str | Path | None = None,
        credentials_path: str | None = None,
        keep_service_env: bool = False,
    ) -> CommandResult:
        """Run a tool and capture its combined output.

        Args:
            tool: Executable name or path
            args: Command arguments
            working_directory: Directory to run in (optional)
            credentials_path: Host kubeconfig exported as KUBECONFIG (optional)
            keep_service_env: Keep the in-cluster service variables

        Returns:
            CommandResult; success is False for any non-zero exit

        Raises:
            SubprocessFailureError: If the tool cannot be started
        """
        cmd = [tool, *args]
        env = build_environment(
            self.base_env if self.base_env is not None else os.environ,
            credentials_path,
            excluded=() if keep_service_env else SERVICE_ENV_KEYS,
        )

        logger.debug("running_command", command=" ".join(cmd), cwd=str(working_directory or "."))

        try:
            completed = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=working_directory,
                env=env,
                check=False,
            )
        except FileNotFoundError as e:
            logger.error("command_not_found", tool=tool)
            raise SubprocessFailureError(f"{tool} command not found. Please install it.") from e
        except OSError as e:
            logger.error("command_start_failed", tool=tool, error=str(e))
            raise SubprocessFailureError(f"Failed to start {tool}: {e}") from e

        result = CommandResult(
            output=completed.stdout or b"",
            success=completed.returncode == 0,
            returncode=completed.returncode,
        )

        if result.success:
            logger.debug("command_completed", tool=tool, returncode=result.returncode)
        else:
            logger.debug(
                "command_failed",
                command=" ".join(cmd),
                returncode=result.returncode,
                output=result.text,
            )

        return result

    def check(
        self,
        tool: str,
        args: list[str],
        working_directory: str | Path | None = None,
        credentials_path: str | None = None,
        keep_service_env: bool = False,
    ) -> CommandResult:
        """Run a tool and raise if it exits non-zero.

        Raises:
            SubprocessFailureError: If the tool fails, carrying the full output
        """
        result = self.run(
            tool,
            args,
            working_directory=working_directory,
            credentials_path=credentials_path,
            keep_service_env=keep_service_env,
        )
        if not result.success:
            raise SubprocessFailureError(
                f"{tool} {' '.join(args)} failed with exit status {result.returncode}",
                output=result.output,
                returncode=result.returncode,
            )
        return result
