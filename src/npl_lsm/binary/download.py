"""Download engine for server binaries.

Streams an HTTP(S) GET into a destination file with manual redirect
following, throttled progress reporting and strict cleanup: after
download_file returns or raises, the destination is either complete or
absent.
"""

from __future__ import annotations

__all__ = ["DownloadEngine"]

import asyncio
import logging
from pathlib import Path

import httpx

from npl_lsm.constants import (
    DOWNLOAD_CHUNK_SIZE,
    MAX_REDIRECTS,
    PROGRESS_REPORT_STEP_PERCENT,
    REDIRECT_STATUS_CODES,
)
from npl_lsm.exceptions import (
    HttpStatusError,
    OperationCancelledError,
    RedirectError,
    TooManyRedirectsError,
)
from npl_lsm.models import DownloadProgress, ProgressCallback
from npl_lsm.telemetry.system import get_system_logger, log_operation_failure
from npl_lsm.utils.http import HttpClientFactory, create_httpx_client_factory


class DownloadEngine:
    """Fetches a URL to a file, reporting progress to an optional sink."""

    def __init__(
        self,
        client_factory: HttpClientFactory | None = None,
        logger: logging.Logger | None = None,
        max_redirects: int = MAX_REDIRECTS,
    ) -> None:
        self._client_factory = client_factory or create_httpx_client_factory()
        self._logger = logger or get_system_logger()
        self.max_redirects = max_redirects

    async def download_file(
        self,
        url: str,
        destination: Path,
        progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Download url to destination.

        Args:
            url: Source URL. 301/302/303/307/308 responses are followed.
            destination: File to create (parent directories are created).
            progress: Optional progress sink.
            cancel_event: Optional signal; when set the download aborts.

        Raises:
            HttpStatusError: Final response was not 200.
            RedirectError: Redirect without a Location header.
            TooManyRedirectsError: More than max_redirects hops.
            OperationCancelledError: cancel_event was set.
            httpx.HTTPError: Network-level failure.
            OSError: File could not be written.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        try:
            async with self._client_factory(follow_redirects=False) as client:
                current_url = url
                for _hop in range(self.max_redirects + 1):
                    next_url = await self._fetch_once(
                        client, current_url, destination, progress, cancel_event
                    )
                    if next_url is None:
                        return
                    self._logger.info(
                        {
                            "event": "download_redirect",
                            "message": f"Following redirect to {next_url}",
                            "details": {"from": current_url, "to": next_url},
                        }
                    )
                    current_url = next_url
                raise TooManyRedirectsError(self.max_redirects, url)
        except asyncio.CancelledError:
            self._remove_partial(destination)
            raise
        except Exception as e:
            log_operation_failure(
                self._logger,
                "download_failed",
                f"Download error for {url}",
                e,
                level=logging.ERROR,
                destination=destination,
            )
            self._remove_partial(destination)
            raise

    async def _fetch_once(
        self,
        client: httpx.AsyncClient,
        url: str,
        destination: Path,
        progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> str | None:
        """Perform one GET. Returns the redirect target, or None when the file is written."""
        self._check_cancelled(cancel_event)

        async with client.stream("GET", url) as response:
            if response.status_code in REDIRECT_STATUS_CODES:
                location = response.headers.get("location")
                if not location:
                    raise RedirectError(response.status_code, url)
                self._remove_partial(destination)
                return str(response.url.join(location))

            if response.status_code != 200:
                raise HttpStatusError(response.status_code, url)

            total = _content_length(response)
            await self._write_body(response, destination, total, progress, cancel_event)
            return None

    async def _write_body(
        self,
        response: httpx.Response,
        destination: Path,
        total: int,
        progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        downloaded = 0
        last_reported = 0

        if progress:
            progress(DownloadProgress(message="Download started...", current=0, total=total, increment=0))

        with destination.open("wb") as f:
            async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                self._check_cancelled(cancel_event)
                f.write(chunk)
                downloaded += len(chunk)

                if progress and total > 0:
                    percent = min(100, downloaded * 100 // total)
                    if percent >= last_reported + PROGRESS_REPORT_STEP_PERCENT:
                        increment = percent - last_reported
                        last_reported = percent
                        progress(
                            DownloadProgress(
                                message=f"Downloading... {percent}%",
                                current=downloaded,
                                total=total,
                                increment=increment,
                            )
                        )

        if progress:
            final_total = total or downloaded
            progress(
                DownloadProgress(
                    message="Download completed",
                    current=final_total,
                    total=final_total,
                    increment=100 - last_reported,
                )
            )

        self._logger.info(
            {
                "event": "download_completed",
                "message": f"Downloaded {downloaded} bytes to {destination}",
                "details": {"url": str(response.url), "bytes": downloaded},
            }
        )

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Download cancelled")

    def _remove_partial(self, destination: Path) -> None:
        try:
            destination.unlink(missing_ok=True)
        except OSError as e:
            log_operation_failure(
                self._logger,
                "partial_cleanup_failed",
                f"Failed to remove partial download {destination}",
                e,
            )


def _content_length(response: httpx.Response) -> int:
    try:
        return max(0, int(response.headers.get("content-length", "0")))
    except ValueError:
        return 0
