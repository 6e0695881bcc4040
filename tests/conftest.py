"""Shared fixtures: isolated environment, fake release index, managers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from npl_lsm.binary import BinaryManager, DownloadEngine, VersionRegistry
from npl_lsm.config import ServerSettings
from npl_lsm.constants import DEFAULT_GITHUB_REPO, SERVER_PORT_ENV_VAR, SERVER_VERSION_ENV_VAR
from npl_lsm.utils.http import HttpClientFactory, create_httpx_client_factory

BINARY_NAME = "language-server-linux-x86_64"
API_URL = f"https://api.github.com/repos/{DEFAULT_GITHUB_REPO}"
DOWNLOAD_URL = f"https://github.com/{DEFAULT_GITHUB_REPO}/releases/download"
ASSET_HOST_URL = "https://objects.githubusercontent.com/release-assets"


Handler = Callable[[httpx.Request], httpx.Response]


class FakeReleaseIndex:
    """In-memory GitHub releases API and asset host behind httpx.MockTransport.

    Each published release serves its binary through a 302 to an asset host,
    like the real download endpoint.
    """

    def __init__(self) -> None:
        self.releases: list[dict[str, Any]] = []
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []
        self.api_status = 200

    def publish(self, tag: str, published_at: str | None = None, body: bytes = b"#!/bin/sh\nexit 0\n") -> str:
        """Add a release (newest first); returns the asset download URL."""
        self.releases.insert(0, {"tag_name": tag, "published_at": published_at})
        asset_url = f"{DOWNLOAD_URL}/{tag}/{BINARY_NAME}"
        final_url = f"{ASSET_HOST_URL}/{tag}/{BINARY_NAME}"
        self.routes[asset_url] = lambda request: httpx.Response(302, headers={"Location": final_url})
        self.routes[final_url] = lambda request: httpx.Response(200, content=body)
        return asset_url

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith(API_URL):
            if self.api_status != 200:
                return httpx.Response(self.api_status, json={"message": "unavailable"})
            if url == f"{API_URL}/releases/latest":
                if not self.releases:
                    return httpx.Response(404, json={"message": "Not Found"})
                return httpx.Response(200, json=self.releases[0])
            if url == f"{API_URL}/releases":
                return httpx.Response(200, json=self.releases)

        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        return route(request)

    def requested_urls(self) -> list[str]:
        return [str(request.url) for request in self.requests]

    def client_factory(self) -> HttpClientFactory:
        return create_httpx_client_factory(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear environment overrides and pin the platform binary name."""
    monkeypatch.delenv(SERVER_PORT_ENV_VAR, raising=False)
    monkeypatch.delenv(SERVER_VERSION_ENV_VAR, raising=False)
    monkeypatch.setattr("npl_lsm.binary.versions.binary_name_for_platform", lambda *args: BINARY_NAME)
    monkeypatch.setattr("npl_lsm.binary.manager.binary_name_for_platform", lambda *args: BINARY_NAME)


@pytest.fixture
def test_logger() -> logging.Logger:
    """Logger that propagates to the root logger, so caplog sees it."""
    logger = logging.getLogger("npl-lsm.test")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def release_index() -> FakeReleaseIndex:
    return FakeReleaseIndex()


@pytest.fixture
def settings() -> ServerSettings:
    return ServerSettings()


@pytest.fixture
def registry(
    tmp_path: Path,
    settings: ServerSettings,
    release_index: FakeReleaseIndex,
    test_logger: logging.Logger,
) -> VersionRegistry:
    return VersionRegistry(tmp_path, settings, release_index.client_factory(), test_logger)


@pytest.fixture
def downloader(release_index: FakeReleaseIndex, test_logger: logging.Logger) -> DownloadEngine:
    return DownloadEngine(release_index.client_factory(), test_logger)


@pytest.fixture
def binary_manager(
    registry: VersionRegistry,
    downloader: DownloadEngine,
    test_logger: logging.Logger,
) -> BinaryManager:
    return BinaryManager(registry, downloader, test_logger)


@pytest.fixture
def install_binary(registry: VersionRegistry) -> Callable[..., Path]:
    """Factory creating an executable file for a version and recording it."""

    def install(version: str, release_date: str | None = None) -> Path:
        path = registry.server_path(version)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"#!/bin/sh\nexit 0\n")
        path.chmod(0o755)
        registry.add_version_record(version, release_date=release_date, installed_path=path)
        return path

    return install
