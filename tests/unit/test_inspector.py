"""Unit tests for the inspector dataclasses."""

import pytest

from kubehatch.interfaces import IngressPoint, ServiceInfo, WorkloadStatus


class TestWorkloadStatus:
    """Tests for WorkloadStatus.running."""

    @pytest.mark.parametrize(
        ("desired", "ready", "running"),
        [(1, 1, True), (3, 3, True), (3, 2, False), (1, 0, False), (0, 0, False)],
    )
    def test_running(self, desired: int, ready: int, running: bool) -> None:
        assert WorkloadStatus(desired, ready).running is running


class TestServiceInfo:
    """Tests for ServiceInfo helpers."""

    def test_external_address_skips_empty_entries(self) -> None:
        """Test the first populated ingress entry is used."""
        service = ServiceInfo(
            name="demo",
            namespace="vcluster-demo",
            service_type="LoadBalancer",
            ports=[443],
            ingress=[IngressPoint(), IngressPoint(hostname="lb.example.com")],
        )

        assert service.external_address == "lb.example.com"
        assert service.is_load_balancer is True

    def test_no_ports(self) -> None:
        service = ServiceInfo(name="demo", namespace="vcluster-demo", service_type="ClusterIP")

        assert service.first_port is None
        assert service.external_address is None
        assert service.is_load_balancer is False
