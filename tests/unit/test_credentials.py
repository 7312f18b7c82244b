"""Unit tests for kubeconfig retrieval.

This module tests the connect path, the secret fallback, the external
endpoint rewrite and persisting of the final document.
"""

import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from kubehatch.clients.vcluster import VclusterCLI
from kubehatch.core.exceptions import (
    CredentialTimeoutError,
    ProvisioningTimeoutError,
    ResourceNotFoundError,
    SubprocessFailureError,
)
from kubehatch.core.models import ExternalEndpoint
from kubehatch.provisioning.credentials import CredentialRetriever
from kubehatch.provisioning.endpoint import EndpointResolver, ResolutionMode
from kubehatch.utils.retry import CancellationToken


@pytest.fixture
def mock_vcluster() -> MagicMock:
    """Mock vcluster CLI wrapper."""
    return MagicMock(spec=VclusterCLI)


@pytest.fixture
def mock_resolver() -> MagicMock:
    """Mock endpoint resolver."""
    return MagicMock(spec=EndpointResolver)


@pytest.fixture
def retriever(
    mock_vcluster: MagicMock,
    mock_inspector: MagicMock,
    mock_resolver: MagicMock,
    single_attempt,
    patient_poll,
) -> CredentialRetriever:
    """Retriever with a single connect attempt and a patient secret poll."""
    return CredentialRetriever(
        mock_vcluster,
        mock_inspector,
        mock_resolver,
        credentials_path="/host/kubeconfig",
        connect_poll=single_attempt,
        secret_poll=patient_poll,
    )


class TestConnectPath:
    """Tests for retrieval through vcluster connect."""

    def test_fetch_via_connect(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test a successful connect is returned without touching the secret."""
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False)

        assert document == sample_kubeconfig
        mock_vcluster.connect_print.assert_called_once_with(
            "demo", "vcluster-demo", "/host/kubeconfig"
        )
        mock_inspector.get_secret_field.assert_not_called()

    def test_connect_retried_until_ready(
        self,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        mock_resolver: MagicMock,
        patient_poll,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test failing and empty connect output is retried within the window."""
        mock_vcluster.connect_print.side_effect = [
            make_result(b"cluster is not ready", returncode=1),
            make_result(b"   \n"),
            make_result(sample_kubeconfig),
        ]
        retriever = CredentialRetriever(
            mock_vcluster, mock_inspector, mock_resolver, connect_poll=patient_poll
        )

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False)

        assert document == sample_kubeconfig
        assert mock_vcluster.connect_print.call_count == 3


class TestSecretFallback:
    """Tests for the kubeconfig secret fallback."""

    def test_fallback_after_connect_timeout(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test the secret is polled once connect gives up."""
        mock_vcluster.connect_print.return_value = make_result(b"timeout", returncode=1)
        mock_inspector.get_secret_field.return_value = base64.b64encode(
            sample_kubeconfig
        ).decode()

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False)

        assert document == sample_kubeconfig
        mock_inspector.get_secret_field.assert_called_once_with(
            "vc-demo", "vcluster-demo", "config"
        )

    def test_fallback_keeps_polling_until_populated(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test a missing, empty or corrupt secret is not treated as success."""
        mock_vcluster.connect_print.return_value = make_result(b"timeout", returncode=1)
        mock_inspector.get_secret_field.side_effect = [
            ResourceNotFoundError("absent"),
            "",
            SubprocessFailureError("api hiccup"),
            "%%%not-base64%%%",
            base64.b64encode(sample_kubeconfig).decode(),
        ]

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False)

        assert document == sample_kubeconfig
        assert mock_inspector.get_secret_field.call_count == 5

    def test_both_paths_exhausted(
        self,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        mock_resolver: MagicMock,
        single_attempt,
        short_poll,
        make_result,
    ) -> None:
        """Test CredentialTimeoutError when neither path yields a kubeconfig."""
        mock_vcluster.connect_print.return_value = make_result(b"timeout", returncode=1)
        mock_inspector.get_secret_field.return_value = ""
        retriever = CredentialRetriever(
            mock_vcluster,
            mock_inspector,
            mock_resolver,
            connect_poll=single_attempt,
            secret_poll=short_poll,
        )

        with pytest.raises(CredentialTimeoutError, match="vc-demo"):
            retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False)

    def test_cancelled_skips_fallback(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        make_result,
    ) -> None:
        """Test a cancelled request does not fall back to the secret."""
        mock_vcluster.connect_print.return_value = make_result(b"timeout", returncode=1)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ProvisioningTimeoutError):
            retriever.fetch("demo", "vcluster-demo", want_external_endpoint=False, cancel=token)

        mock_inspector.get_secret_field.assert_not_called()


class TestExternalEndpoint:
    """Tests for the load-balancer rewrite."""

    def test_rewrite_to_external_endpoint(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_resolver: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test every server is pointed at the load-balancer address."""
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)
        mock_resolver.resolve.return_value = ExternalEndpoint(host="203.0.113.10", port=443)

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=True)

        raw = yaml.safe_load(document)
        assert raw["clusters"][0]["cluster"]["server"] == "https://203.0.113.10"
        assert mock_resolver.resolve.call_args.args == (
            "vcluster-demo",
            "demo",
            ResolutionMode.EXTERNAL,
        )

    def test_endpoint_timeout_is_not_fatal(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_resolver: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test the unmodified document is returned when no ingress appears."""
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)
        mock_resolver.resolve.side_effect = ProvisioningTimeoutError("no ingress")

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=True)

        assert document == sample_kubeconfig

    def test_endpoint_timeout_strict(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_resolver: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test strict mode propagates the endpoint timeout."""
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)
        mock_resolver.resolve.side_effect = ProvisioningTimeoutError("no ingress")

        with pytest.raises(ProvisioningTimeoutError, match="no ingress"):
            retriever.fetch(
                "demo", "vcluster-demo", want_external_endpoint=True, strict_endpoint=True
            )

    def test_unparseable_document_is_returned_unchanged(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_resolver: MagicMock,
        make_result,
    ) -> None:
        """Test a rewrite failure keeps the original document."""
        mock_vcluster.connect_print.return_value = make_result(b"kind: Config\n")
        mock_resolver.resolve.return_value = ExternalEndpoint(host="203.0.113.10", port=443)

        document = retriever.fetch("demo", "vcluster-demo", want_external_endpoint=True)

        assert document == b"kind: Config\n"


class TestFetchLive:
    """Tests for the read path."""

    def test_fetch_live_load_balanced(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        mock_resolver: MagicMock,
        load_balancer_service,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test a LoadBalancer service triggers the rewrite."""
        mock_inspector.get_service.return_value = load_balancer_service
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)
        mock_resolver.resolve.return_value = ExternalEndpoint(host="203.0.113.10", port=443)

        document = retriever.fetch_live("demo", "vcluster-demo")

        assert b"https://203.0.113.10" in document
        mock_resolver.resolve.assert_called_once()

    def test_fetch_live_cluster_ip(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        mock_resolver: MagicMock,
        cluster_ip_service,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test a ClusterIP service returns the document as printed."""
        mock_inspector.get_service.return_value = cluster_ip_service
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)

        assert retriever.fetch_live("demo", "vcluster-demo") == sample_kubeconfig
        mock_resolver.resolve.assert_not_called()

    def test_fetch_live_missing_service(
        self,
        retriever: CredentialRetriever,
        mock_vcluster: MagicMock,
        mock_inspector: MagicMock,
        mock_resolver: MagicMock,
        sample_kubeconfig: bytes,
        make_result,
    ) -> None:
        """Test a missing service falls back to the document as printed."""
        mock_inspector.get_service.side_effect = ResourceNotFoundError("missing")
        mock_vcluster.connect_print.return_value = make_result(sample_kubeconfig)

        assert retriever.fetch_live("demo", "vcluster-demo") == sample_kubeconfig
        mock_resolver.resolve.assert_not_called()


class TestSave:
    """Tests for persisting the kubeconfig."""

    def test_save_creates_parent_directories(
        self, retriever: CredentialRetriever, tmp_path: Path, sample_kubeconfig: bytes
    ) -> None:
        """Test the document is written to the per-request location."""
        path = tmp_path / "1700000000" / ".vcluster" / "demo" / "kubeconfig.yaml"

        saved = retriever.save(sample_kubeconfig, path)

        assert saved == path
        assert path.read_bytes() == sample_kubeconfig
