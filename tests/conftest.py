"""Shared fixtures for cloudlink tests."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from cloudlink.models import Method, RequestDescriptor
from cloudlink.providers.compute import ComputeMock, ComputeService
from cloudlink.providers.dns import DnsMock, DnsService
from cloudlink.providers.storage import StorageMock, StorageService
from cloudlink.store import MockStore

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable time source for mock backends."""

    def __init__(self, now: datetime = START):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


def serve(backend):
    """httpx.MockTransport handler answering requests from a mock backend.

    Lets tests drive a RealBackend over httpx against the same simulated
    provider the mock backend uses.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        descriptor = RequestDescriptor(
            method=Method(request.method),
            host=request.url.host,
            path=request.url.path,
            header_items=tuple(request.headers.items()),
            query=tuple(request.url.params.multi_items()),
            body=request.content or None,
        )
        envelope = backend.dispatch(descriptor)
        return httpx.Response(
            envelope.status,
            headers=list(envelope.headers.items()),
            content=envelope.body or b"",
        )

    return handler


@pytest.fixture
def store():
    return MockStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(store, clock):
    """Mock-backed storage service for account "AKID"."""
    return StorageService(StorageMock("AKID", store=store, clock=clock), "s3.amazonaws.com")


@pytest.fixture
def dns(store, clock):
    return DnsService(DnsMock("linode-key", store=store, clock=clock), api_key="linode-key")


@pytest.fixture
def compute(store, clock):
    return ComputeService(ComputeMock("cli-12345", store=store, clock=clock), "api.gb1.brightbox.com")
