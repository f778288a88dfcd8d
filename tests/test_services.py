"""Tests for build_service."""

import pytest

from cloudlink.backends import RealBackend
from cloudlink.models import BackendKind, ProviderConfig
from cloudlink.providers.compute import ComputeMock, ComputeService
from cloudlink.providers.dns import DnsMock, DnsService
from cloudlink.providers.storage import StorageMock, StorageService
from cloudlink.services import build_service
from cloudlink.signing import SigV4Signer
from cloudlink.store import MockStore


def config(kind, backend=BackendKind.MOCK, **overrides):
    values = {
        "key": kind,
        "provider_name": kind.title(),
        "kind": kind,
        "endpoint_url": "https://api.example.com",
        "account": "acct",
        "secret": "secret",
        "backend": backend,
    }
    values.update(overrides)
    return ProviderConfig(**values)


class TestBuildService:
    """Tests for build_service function."""

    def test_mock_storage(self):
        service = build_service(config("storage", addressing_style="virtual"))

        assert isinstance(service, StorageService)
        assert isinstance(service.backend, StorageMock)
        assert service.mocking
        assert service.host == "api.example.com"
        assert service.addressing_style == "virtual"
        assert service.backend.addressing_style == "virtual"

    def test_mock_dns_and_compute(self):
        dns = build_service(config("dns"))
        compute = build_service(config("compute"))

        assert isinstance(dns, DnsService)
        assert isinstance(dns.backend, DnsMock)
        assert dns.api_key == "acct"
        assert isinstance(compute, ComputeService)
        assert isinstance(compute.backend, ComputeMock)

    def test_shared_store_shares_state(self):
        store = MockStore()
        first = build_service(config("storage"), store=store)
        second = build_service(config("storage"), store=store)

        first.put_bucket("docs")

        assert [b["Name"] for b in second.get_service().body] == ["docs"]

    def test_different_accounts_are_isolated(self):
        store = MockStore()
        first = build_service(config("storage"), store=store)
        other = build_service(config("storage", account="other"), store=store)

        first.put_bucket("docs")

        assert other.get_service().body == []

    def test_real_storage_is_signed(self):
        service = build_service(config("storage", BackendKind.REAL, endpoint_url="http://localhost:9000"))

        assert not service.mocking
        assert isinstance(service.backend, RealBackend)
        assert isinstance(service.backend.signer, SigV4Signer)
        assert service.backend.scheme == "http"
        assert service.backend.port == 9000

    def test_real_compute_uses_basic_auth(self):
        service = build_service(config("compute", BackendKind.REAL))

        assert service.backend.auth == ("acct", "secret")
        assert service.backend.signer is None

    def test_reset_data_on_real_backend(self):
        service = build_service(config("dns", BackendKind.REAL))

        with pytest.raises(RuntimeError):
            service.reset_data()

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown provider kind"):
            build_service(config("queue"))
