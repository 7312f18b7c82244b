"""Configuration management for kubehatch."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from kubehatch.core.exceptions import ConfigurationError


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8081


class PathsConfig(BaseModel):
    """Filesystem locations."""

    requests_dir: str = "./requests"
    mounted_kubeconfig: str = "/var/secrets/kubeconfig"
    local_kubeconfig: str = "~/.kube/config"


class ToolsConfig(BaseModel):
    """External tool executables."""

    kubectl: str = "kubectl"
    vcluster: str = "vcluster"


class PollSettings(BaseModel):
    """Fixed-interval polling window.

    A timeout of zero means a single attempt.
    """

    interval_seconds: float = 10.0
    timeout_seconds: float = 180.0


class ProvisioningConfig(BaseModel):
    """Timing for the creation path."""

    readiness_delay_seconds: float = 60.0
    connect_poll: PollSettings = Field(default_factory=PollSettings)
    secret_poll: PollSettings = Field(
        default_factory=lambda: PollSettings(interval_seconds=15.0, timeout_seconds=120.0)
    )
    endpoint_poll: PollSettings = Field(default_factory=PollSettings)


class ReadPathConfig(BaseModel):
    """Timing for live kubeconfig retrieval (GET kubeconfig)."""

    connect_poll: PollSettings = Field(
        default_factory=lambda: PollSettings(interval_seconds=0.0, timeout_seconds=0.0)
    )
    secret_poll: PollSettings = Field(
        default_factory=lambda: PollSettings(interval_seconds=0.0, timeout_seconds=0.0)
    )


class OwnershipConfig(BaseModel):
    """Ownership tagging and visibility."""

    annotation_key: str = "kubehatch.io/owner"
    privileged_identities: list[str] = Field(default_factory=lambda: ["default", "admin"])


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    output: str = "stdout"


class KubehatchConfig(BaseModel):
    """Main kubehatch configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    read_path: ReadPathConfig = Field(default_factory=ReadPathConfig)
    ownership: OwnershipConfig = Field(default_factory=OwnershipConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "KubehatchConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            KubehatchConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f)
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        try:
            return cls(**(data or {}))
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
