"""
Artifact download utilities.

This module handles:
- Following HTTP redirects by hand so every hop is visible
- Refusing responses that do not declare their size
- Streaming bodies to disk with a progress bar
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from .config import config
from .exceptions import DownloadFailedError

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302)


@dataclass
class DownloadTarget:
    """One artifact to fetch."""

    destination: Path
    url: Optional[str]
    expected_size: Optional[int] = None

    @property
    def partial_path(self) -> Path:
        return self.destination.with_name(self.destination.name + ".part")


def make_progress() -> Progress:
    """Progress display shared by concurrent downloads."""
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=20),
        "[progress.percentage]{task.percentage:>3.0f}%",
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
    )


class Downloader:
    """Fetches artifacts over HTTP(S)."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        max_redirects: Optional[int] = None,
        timeout: Optional[float] = None,
        chunk_size: Optional[int] = None,
    ):
        """
        Initialize the downloader.

        Args:
            session: HTTP session to issue requests with
            max_redirects: Longest redirect chain to follow before giving up
            timeout: Connect/read timeout in seconds for each request
            chunk_size: Bytes read from the response per iteration
        """
        self.session = session or requests.Session()
        self.max_redirects = max_redirects if max_redirects is not None else config.MAX_REDIRECTS
        self.timeout = timeout if timeout is not None else config.DOWNLOAD_TIMEOUT
        self.chunk_size = chunk_size if chunk_size is not None else config.DOWNLOAD_CHUNK_SIZE

    def follow_redirects(self, url: Optional[str]) -> requests.Response:
        """
        GET ``url``, re-requesting the ``Location`` of every 301/302 reply.

        Args:
            url: Starting URL

        Returns:
            The first non-redirect response, still streaming

        Raises:
            DownloadFailedError: If a URL is missing, the chain is too long,
                or the request itself fails
        """
        for _ in range(self.max_redirects + 1):
            if not url:
                raise DownloadFailedError("No URL provided", url=url)

            logger.debug(f"GET {url}")
            try:
                response = self.session.get(
                    url, stream=True, allow_redirects=False, timeout=self.timeout
                )
            except requests.RequestException as e:
                raise DownloadFailedError(f"Request to {url} failed: {e}", url=url) from e

            if response.status_code not in REDIRECT_STATUSES:
                return response

            location = response.headers.get("location")
            response.close()
            logger.debug(f"{response.status_code} redirect from {url} to {location}")
            url = urljoin(url, location) if location else None

        raise DownloadFailedError(
            f"Too many redirects (more than {self.max_redirects})", url=url
        )

    def download(self, target: DownloadTarget, progress: Optional[Progress] = None) -> Path:
        """
        Stream ``target.url`` into ``target.destination``.

        The body is written to a ``.part`` file next to the destination and
        only renamed into place once every declared byte has arrived.

        Args:
            target: What to fetch and where to put it
            progress: Optional shared progress display

        Returns:
            The destination path

        Raises:
            DownloadFailedError: On any HTTP, size or write failure
        """
        target.destination.parent.mkdir(parents=True, exist_ok=True)
        response = self.follow_redirects(target.url)

        with response:
            if response.status_code != 200:
                raise DownloadFailedError(
                    f"Failed to download {target.url}: HTTP {response.status_code}",
                    url=target.url,
                    status_code=response.status_code,
                )

            total_size = _content_length(response)
            if not total_size:
                raise DownloadFailedError(
                    "Failed to download: No download size provided by server",
                    url=target.url,
                    status_code=response.status_code,
                )
            target.expected_size = total_size

            task_id = None
            if progress is not None:
                task_id = progress.add_task(target.destination.name, total=total_size)

            try:
                received = self._write_body(response, target.partial_path, progress, task_id)
                if received != total_size:
                    raise DownloadFailedError(
                        f"Download of {target.url} ended after {received} of {total_size} bytes",
                        url=target.url,
                    )
                os.replace(target.partial_path, target.destination)
            except (requests.RequestException, OSError) as e:
                target.partial_path.unlink(missing_ok=True)
                raise DownloadFailedError(
                    f"Failed to download {target.url}: {e}", url=target.url
                ) from e
            except DownloadFailedError:
                target.partial_path.unlink(missing_ok=True)
                raise

        logger.info(f"File downloaded successfully to {target.destination}")
        return target.destination

    def _write_body(self, response, path: Path, progress, task_id) -> int:
        received = 0
        with open(path, "wb") as f:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if not chunk:
                    continue
                f.write(chunk)
                received += len(chunk)
                if progress is not None:
                    progress.update(task_id, advance=len(chunk))
        return received


def _content_length(response) -> int:
    try:
        return int(response.headers.get("content-length") or 0)
    except ValueError:
        return 0
