"""Tests for ServerUpdateManager."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from npl_lsm.binary.manager import BinaryManager
from npl_lsm.binary.updates import ServerUpdateManager
from npl_lsm.binary.versions import VersionRegistry
from npl_lsm.exceptions import BinaryNotFoundError


@pytest.fixture
def accept() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture
def decline() -> AsyncMock:
    return AsyncMock(return_value=False)


class TestCheckForUpdates:
    """Tests for check_for_updates."""

    async def test_accepted_update_is_downloaded(
        self, binary_manager: BinaryManager, registry: VersionRegistry, release_index, install_binary, accept
    ) -> None:
        """Given a newer release and a yes, downloads it and returns True."""
        # Arrange
        install_binary("1.0.0", release_date="2024-01-01T00:00:00Z")
        release_index.publish("1.1.0", "2024-02-01T00:00:00Z")
        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act
        updated = await updates.check_for_updates()

        # Assert
        assert updated is True
        accept.assert_awaited_once_with("1.1.0")
        assert registry.find_installed("1.1.0") is not None

    async def test_declined_update_downloads_nothing(
        self, binary_manager: BinaryManager, registry: VersionRegistry, release_index, install_binary, decline
    ) -> None:
        # Arrange
        install_binary("1.0.0")
        release_index.publish("1.1.0")
        updates = ServerUpdateManager(binary_manager, decision=decline)

        # Act
        updated = await updates.check_for_updates()

        # Assert
        assert updated is False
        assert registry.find_installed("1.1.0") is None

    async def test_no_decision_sink_means_no(
        self, binary_manager: BinaryManager, release_index, install_binary
    ) -> None:
        # Arrange
        install_binary("1.0.0")
        release_index.publish("1.1.0")
        updates = ServerUpdateManager(binary_manager)

        # Act & Assert
        assert await updates.check_for_updates() is False

    async def test_up_to_date_does_not_ask(
        self, binary_manager: BinaryManager, release_index, install_binary, accept
    ) -> None:
        # Arrange
        install_binary("1.1.0")
        release_index.publish("1.1.0")
        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act
        updated = await updates.check_for_updates()

        # Assert
        assert updated is False
        accept.assert_not_awaited()

    async def test_failed_download_returns_false(
        self, binary_manager: BinaryManager, release_index, install_binary, accept
    ) -> None:
        """Given a release whose asset is missing, the failure is swallowed."""
        # Arrange
        install_binary("1.0.0")
        release_index.releases.insert(0, {"tag_name": "1.1.0", "published_at": None})

        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act & Assert
        assert await updates.check_for_updates() is False

    async def test_unreachable_index_returns_false(
        self, binary_manager: BinaryManager, release_index, install_binary, accept
    ) -> None:
        # Arrange
        install_binary("1.0.0")
        release_index.api_status = 503
        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act & Assert
        assert await updates.check_for_updates() is False
        accept.assert_not_awaited()


class TestGetLatestServerBinary:
    """Tests for choosing the binary to launch."""

    async def test_nothing_installed_downloads_without_asking(
        self, binary_manager: BinaryManager, registry: VersionRegistry, release_index, accept
    ) -> None:
        """Given no installed binary, downloads the selected version directly."""
        # Arrange
        release_index.publish("1.0.0")
        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act
        path = await updates.get_latest_server_binary()

        # Assert
        assert path == registry.server_path("1.0.0")
        accept.assert_not_awaited()

    async def test_installed_returns_freshest_after_update(
        self, binary_manager: BinaryManager, registry: VersionRegistry, release_index, install_binary, accept
    ) -> None:
        # Arrange
        install_binary("1.0.0", release_date="2024-01-01T00:00:00Z")
        release_index.publish("1.1.0", "2024-02-01T00:00:00Z")
        updates = ServerUpdateManager(binary_manager, decision=accept)

        # Act
        path = await updates.get_latest_server_binary()

        # Assert
        assert path == registry.server_path("1.1.0")

    async def test_pinned_download_wins_over_older_latest(
        self, binary_manager: BinaryManager, registry: VersionRegistry, release_index, decline
    ) -> None:
        """Given "latest" installed first and then a pinned tag, the pinned binary is launched."""
        # Arrange
        release_index.publish("v3.0.0", "2024-06-01T00:00:00Z")
        release_index.publish("v2.0.0", "2024-01-01T00:00:00Z")
        await binary_manager.download_server_binary(version="latest")
        await binary_manager.download_server_binary(version="v3.0.0")
        updates = ServerUpdateManager(binary_manager, decision=decline)

        # Act
        path = await updates.get_latest_server_binary()

        # Assert
        assert path == registry.server_path("v3.0.0")
        decline.assert_not_awaited()

    async def test_installed_kept_when_update_declined(
        self, binary_manager: BinaryManager, release_index, install_binary, decline
    ) -> None:
        # Arrange
        installed = install_binary("1.0.0")
        release_index.publish("1.1.0")
        updates = ServerUpdateManager(binary_manager, decision=decline)

        # Act
        path = await updates.get_latest_server_binary()

        # Assert
        assert path == installed

    async def test_binary_removed_during_check_raises(
        self, binary_manager: BinaryManager, release_index, install_binary
    ) -> None:
        """Given the only binary disappears during the update check, raises."""
        # Arrange
        installed = install_binary("1.0.0")
        updates = ServerUpdateManager(binary_manager)

        async def delete_binary() -> bool:
            installed.unlink()
            return False

        updates.check_for_updates = delete_binary

        # Act & Assert
        with pytest.raises(BinaryNotFoundError):
            await updates.get_latest_server_binary()
