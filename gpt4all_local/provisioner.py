"""
Artifact provisioning.

Makes sure the chat executable and the model weights are on disk before a
session is opened, downloading whichever is missing.
"""

import asyncio
import logging
import os
from contextlib import nullcontext
from pathlib import Path
from typing import Optional

from rich.progress import Progress

from .config import config
from .downloader import Downloader, DownloadTarget, make_progress
from .platforms import resolve_executable_url, resolve_model_url

logger = logging.getLogger(__name__)


class ArtifactProvisioner:
    """Downloads the executable and model file on demand."""

    def __init__(
        self,
        model: str,
        executable_path: Optional[Path] = None,
        model_path: Optional[Path] = None,
        downloader: Optional[Downloader] = None,
        show_progress: Optional[bool] = None,
    ):
        """
        Initialize the provisioner.

        Args:
            model: Name of the model whose weights are fetched
            executable_path: Where the chat executable lives
            model_path: Where the weights file lives
            downloader: Downloader used for both artifacts
            show_progress: Render progress bars while downloading
        """
        self.model = model
        self.executable_path = Path(executable_path or config.executable_path())
        self.model_path = Path(model_path or config.model_path(model))
        self.downloader = downloader or Downloader()
        self.show_progress = config.SHOW_PROGRESS if show_progress is None else show_progress
        self._pending: Optional[asyncio.Future] = None

    async def ensure(self, force_refresh: bool = False) -> None:
        """
        Fetch any artifact that is missing, or both when ``force_refresh``.

        Calls made while a previous call is still running wait on that same
        work instead of starting new downloads.

        Args:
            force_refresh: Download both artifacts even if they exist

        Raises:
            DownloadFailedError: If either download fails
            UnsupportedPlatformError: If no executable exists for this host
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._ensure(force_refresh))
            self._pending.add_done_callback(self._clear_pending)
        else:
            logger.debug("Provisioning already in progress, waiting on it")

        await asyncio.shield(self._pending)

    def _clear_pending(self, _future) -> None:
        self._pending = None

    async def _ensure(self, force_refresh: bool) -> None:
        jobs = []
        if force_refresh or not self.executable_path.exists():
            jobs.append(self.fetch_executable)
        if force_refresh or not self.model_path.exists():
            jobs.append(self.fetch_model)

        if not jobs:
            logger.debug("Executable and model already present")
            return

        with self._progress_display() as progress:
            results = await asyncio.gather(
                *(asyncio.to_thread(job, progress) for job in jobs),
                return_exceptions=True,
            )

        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            for error in errors:
                logger.error(f"Provisioning failed: {error}")
            raise errors[0]

    def _progress_display(self):
        if self.show_progress:
            return make_progress()
        return nullcontext(None)

    def fetch_executable(self, progress: Optional[Progress] = None) -> Path:
        """Download the chat executable and mark it executable."""
        url = resolve_executable_url(self.model)
        self.downloader.download(DownloadTarget(self.executable_path, url), progress)
        os.chmod(self.executable_path, 0o755)
        return self.executable_path

    def fetch_model(self, progress: Optional[Progress] = None) -> Path:
        """Download the model weights."""
        url = resolve_model_url(self.model)
        self.downloader.download(DownloadTarget(self.model_path, url), progress)
        return self.model_path
