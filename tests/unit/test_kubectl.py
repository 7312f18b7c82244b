"""Unit tests for the kubectl client.

This module tests parsing of `kubectl get -o json` output into the
inspector dataclasses and the mapping of kubectl failures to
ResourceNotFoundError, ParseError and SubprocessFailureError.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from kubehatch.clients.command import CommandExecutor
from kubehatch.clients.kubectl import KubectlClient
from kubehatch.core.exceptions import (
    ParseError,
    ResourceNotFoundError,
    SubprocessFailureError,
)


@pytest.fixture
def mock_executor() -> MagicMock:
    """Mock command executor."""
    return MagicMock(spec=CommandExecutor)


@pytest.fixture
def client(mock_executor: MagicMock) -> KubectlClient:
    """kubectl client without a credentials file."""
    return KubectlClient(mock_executor)


def _json(payload: dict) -> bytes:
    return json.dumps(payload).encode()


NOT_FOUND = b'Error from server (NotFound): statefulsets.apps "demo" not found'


class TestInvocation:
    """Tests for how kubectl is invoked."""

    def test_credentials_path_is_passed_as_flag(
        self, mock_executor: MagicMock, make_result
    ) -> None:
        """Test the host kubeconfig is prepended as --kubeconfig."""
        mock_executor.run.return_value = make_result(_json({"items": []}))
        client = KubectlClient(mock_executor, credentials_path="/var/secrets/kubeconfig")

        client.list_namespaces()

        mock_executor.run.assert_called_once_with(
            "kubectl",
            ["--kubeconfig", "/var/secrets/kubeconfig", "get", "namespaces", "-o", "json"],
            keep_service_env=True,
        )

    def test_custom_executable(self, mock_executor: MagicMock, make_result) -> None:
        """Test the configured kubectl executable is used."""
        mock_executor.run.return_value = make_result(_json({"items": []}))
        client = KubectlClient(mock_executor, kubectl="/opt/bin/kubectl")

        client.list_namespaces()

        assert mock_executor.run.call_args.args[0] == "/opt/bin/kubectl"


class TestListNamespaces:
    """Tests for list_namespaces."""

    def test_list_namespaces_parses_items(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test names, timestamps and annotations are extracted."""
        mock_executor.run.return_value = make_result(
            _json(
                {
                    "items": [
                        {
                            "metadata": {
                                "name": "vcluster-demo",
                                "creationTimestamp": "2024-05-01T12:00:00Z",
                                "annotations": {"kubehatch.io/owner": "alice"},
                                "uid": "ignored",
                            }
                        },
                        {
                            "metadata": {
                                "name": "kube-system",
                                "creationTimestamp": "2024-04-01T08:30:00Z",
                            }
                        },
                    ]
                }
            )
        )

        namespaces = client.list_namespaces()

        assert [ns.name for ns in namespaces] == ["vcluster-demo", "kube-system"]
        assert namespaces[0].created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert namespaces[0].annotations == {"kubehatch.io/owner": "alice"}
        assert namespaces[1].annotations == {}

    def test_list_namespaces_failure(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a failing listing raises SubprocessFailureError."""
        mock_executor.run.return_value = make_result(b"connection refused", returncode=1)

        with pytest.raises(SubprocessFailureError) as exc_info:
            client.list_namespaces()

        assert exc_info.value.output == b"connection refused"

    def test_list_namespaces_malformed_output(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test unparseable output raises ParseError."""
        mock_executor.run.return_value = make_result(b"not json")

        with pytest.raises(ParseError):
            client.list_namespaces()


class TestWorkloadStatus:
    """Tests for get_workload_status."""

    def test_get_workload_status(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test desired and ready replicas are read from the StatefulSet."""
        mock_executor.run.return_value = make_result(
            _json({"spec": {"replicas": 3}, "status": {"readyReplicas": 2}})
        )

        status = client.get_workload_status("demo", "vcluster-demo")

        assert status.desired_replicas == 3
        assert status.ready_replicas == 2
        assert status.running is False
        assert mock_executor.run.call_args.args[1] == [
            "get",
            "statefulset",
            "demo",
            "-n",
            "vcluster-demo",
            "-o",
            "json",
        ]

    def test_missing_ready_replicas_defaults_to_zero(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a fresh StatefulSet without readyReplicas is not running."""
        mock_executor.run.return_value = make_result(
            _json({"spec": {"replicas": 1}, "status": {}})
        )

        status = client.get_workload_status("demo", "vcluster-demo")

        assert status.ready_replicas == 0
        assert status.running is False

    def test_workload_not_found(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a NotFound error maps to ResourceNotFoundError."""
        mock_executor.run.return_value = make_result(NOT_FOUND, returncode=1)

        with pytest.raises(ResourceNotFoundError):
            client.get_workload_status("demo", "vcluster-demo")

    def test_workload_lookup_failure(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test other kubectl errors map to SubprocessFailureError."""
        mock_executor.run.return_value = make_result(b"Unauthorized", returncode=1)

        with pytest.raises(SubprocessFailureError):
            client.get_workload_status("demo", "vcluster-demo")


class TestService:
    """Tests for get_service."""

    def test_get_load_balancer_service(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test type, ports, ClusterIP and ingress are extracted."""
        mock_executor.run.return_value = make_result(
            _json(
                {
                    "spec": {
                        "type": "LoadBalancer",
                        "clusterIP": "10.96.12.7",
                        "ports": [{"name": "https", "port": 443}, {"port": 8443}],
                    },
                    "status": {"loadBalancer": {"ingress": [{"hostname": "lb.example.com"}]}},
                }
            )
        )

        service = client.get_service("demo", "vcluster-demo")

        assert service.is_load_balancer is True
        assert service.ports == [443, 8443]
        assert service.first_port == 443
        assert service.cluster_ip == "10.96.12.7"
        assert service.external_address == "lb.example.com"

    def test_get_cluster_ip_service_without_status(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a ClusterIP service has no external address."""
        mock_executor.run.return_value = make_result(
            _json({"spec": {"clusterIP": "10.96.12.7", "ports": [{"port": 443}]}})
        )

        service = client.get_service("demo", "vcluster-demo")

        assert service.service_type == "ClusterIP"
        assert service.ingress == []
        assert service.external_address is None

    def test_service_not_found(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a missing service raises ResourceNotFoundError."""
        mock_executor.run.return_value = make_result(
            b'Error from server (NotFound): services "demo" not found', returncode=1
        )

        with pytest.raises(ResourceNotFoundError):
            client.get_service("demo", "vcluster-demo")


class TestSecretField:
    """Tests for get_secret_field."""

    def test_get_secret_field(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test the encoded value of the requested field is returned."""
        mock_executor.run.return_value = make_result(
            _json({"data": {"config": "YXBpVmVyc2lvbjogdjE=\n", "other": "eA=="}})
        )

        value = client.get_secret_field("vc-demo", "vcluster-demo", "config")

        assert value == "YXBpVmVyc2lvbjogdjE="

    def test_get_secret_field_absent(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test an unpopulated field yields an empty string."""
        mock_executor.run.return_value = make_result(_json({"metadata": {"name": "vc-demo"}}))

        assert client.get_secret_field("vc-demo", "vcluster-demo", "config") == ""

    def test_secret_not_found(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a missing secret raises ResourceNotFoundError."""
        mock_executor.run.return_value = make_result(
            b'Error from server (NotFound): secrets "vc-demo" not found', returncode=1
        )

        with pytest.raises(ResourceNotFoundError):
            client.get_secret_field("vc-demo", "vcluster-demo", "config")


class TestAnnotateNamespace:
    """Tests for annotate_namespace."""

    def test_annotate_namespace(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test the annotation is set with --overwrite."""
        mock_executor.run.return_value = make_result(b"namespace/vcluster-demo annotated")

        client.annotate_namespace("vcluster-demo", "kubehatch.io/owner", "alice")

        mock_executor.run.assert_called_once_with(
            "kubectl",
            ["annotate", "namespace", "vcluster-demo", "kubehatch.io/owner=alice", "--overwrite"],
            keep_service_env=True,
        )

    def test_annotate_namespace_failure(
        self, client: KubectlClient, mock_executor: MagicMock, make_result
    ) -> None:
        """Test a failed annotation raises SubprocessFailureError."""
        mock_executor.run.return_value = make_result(b"forbidden", returncode=1)

        with pytest.raises(SubprocessFailureError, match="vcluster-demo"):
            client.annotate_namespace("vcluster-demo", "kubehatch.io/owner", "alice")
