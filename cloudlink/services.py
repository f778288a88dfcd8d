"""Service factory.

Builds the provider service for a ProviderConfig, wired to the backend the
configuration selects. Mock services built with the same store and account
see the same simulated state.
"""

from typing import Optional

import httpx

from cloudlink.backends import Backend, RealBackend
from cloudlink.models import BackendKind, ProviderConfig
from cloudlink.providers.compute import ComputeMock, ComputeService
from cloudlink.providers.dns import DnsMock, DnsService
from cloudlink.providers.storage import StorageMock, StorageService
from cloudlink.service import Service
from cloudlink.signing import SigV4Signer
from cloudlink.store import MockStore


def _real_backend(config: ProviderConfig, url: httpx.URL) -> RealBackend:
    signer = None
    auth = None
    if config.kind == "storage":
        signer = SigV4Signer(config.account, config.secret, region_name=config.region_name)
    elif config.kind == "compute":
        auth = (config.account, config.secret or "")

    return RealBackend(
        scheme=url.scheme,
        port=url.port,
        persistent=config.persistent,
        timeout=config.timeout,
        signer=signer,
        auth=auth,
    )


def _mock_backend(config: ProviderConfig, url: httpx.URL, store: Optional[MockStore]) -> Backend:
    if config.kind == "storage":
        return StorageMock(
            config.account,
            store=store,
            host=url.host,
            addressing_style=config.addressing_style,
        )
    if config.kind == "dns":
        return DnsMock(config.account, store=store)
    return ComputeMock(config.account, store=store)


def build_service(config: ProviderConfig, store: Optional[MockStore] = None) -> Service:
    """Build the service for a provider configuration.

    Args:
        config: Provider configuration.
        store: Store for the mock backend; ignored for the real backend.

    Returns:
        A StorageService, DnsService or ComputeService.

    Raises:
        ValueError: If config.kind is not a known provider kind.
    """
    if config.kind not in ("storage", "dns", "compute"):
        raise ValueError(f"Unknown provider kind: {config.kind}")

    url = httpx.URL(config.endpoint_url)
    if config.backend is BackendKind.MOCK:
        backend = _mock_backend(config, url, store)
    else:
        backend = _real_backend(config, url)

    if config.kind == "storage":
        return StorageService(backend, url.host, addressing_style=config.addressing_style)
    if config.kind == "dns":
        return DnsService(backend, url.host, api_key=config.account)
    return ComputeService(backend, url.host)
