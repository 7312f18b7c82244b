"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from kubehatch.clients.command import CommandResult
from kubehatch.core.config import PollSettings
from kubehatch.interfaces.inspector import IngressPoint, ResourceInspector, ServiceInfo

SAMPLE_KUBECONFIG = b"""apiVersion: v1
kind: Config
clusters:
- name: my-vcluster
  cluster:
    certificate-authority-data: LS0tLS1CRUdJTi1DRVJU
    server: https://localhost:8443
contexts:
- name: my-vcluster
  context:
    cluster: my-vcluster
    user: my-vcluster
current-context: my-vcluster
users:
- name: my-vcluster
  user:
    client-certificate-data: Y2VydA==
    client-key-data: a2V5
"""


def command_result(output: bytes = b"", returncode: int = 0) -> CommandResult:
    """Build a CommandResult the way CommandExecutor would."""
    return CommandResult(output=output, success=returncode == 0, returncode=returncode)


@pytest.fixture
def make_result():
    """Factory for fake tool results."""
    return command_result


@pytest.fixture
def sample_kubeconfig() -> bytes:
    """Provide a kubeconfig as printed by vcluster connect."""
    return SAMPLE_KUBECONFIG


@pytest.fixture
def created_at() -> datetime:
    """Provide a fixed namespace creation timestamp."""
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_inspector() -> MagicMock:
    """Mock host cluster resource inspector."""
    return MagicMock(spec=ResourceInspector)


@pytest.fixture
def single_attempt() -> PollSettings:
    """Polling window that allows exactly one attempt."""
    return PollSettings(interval_seconds=0.0, timeout_seconds=0.0)


@pytest.fixture
def short_poll() -> PollSettings:
    """Polling window that gives up after a few fast attempts."""
    return PollSettings(interval_seconds=0.01, timeout_seconds=0.05)


@pytest.fixture
def patient_poll() -> PollSettings:
    """Polling window long enough for scripted side effects to complete."""
    return PollSettings(interval_seconds=0.0, timeout_seconds=5.0)


@pytest.fixture
def cluster_ip_service() -> ServiceInfo:
    """Provide a ClusterIP API service."""
    return ServiceInfo(
        name="demo",
        namespace="vcluster-demo",
        service_type="ClusterIP",
        ports=[443],
        cluster_ip="10.96.12.7",
    )


@pytest.fixture
def load_balancer_service() -> ServiceInfo:
    """Provide a LoadBalancer API service with an assigned ingress."""
    return ServiceInfo(
        name="demo",
        namespace="vcluster-demo",
        service_type="LoadBalancer",
        ports=[443],
        ingress=[IngressPoint(ip="203.0.113.10")],
        cluster_ip="10.96.12.7",
    )
