"""
GPT4All facade.

Ties artifact provisioning and the chat session together behind the
``init`` / ``open`` / ``prompt`` / ``close`` interface.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .config import config
from .downloader import Downloader
from .exceptions import UnsupportedModelError
from .provisioner import ArtifactProvisioner
from .session import Session

logger = logging.getLogger(__name__)

AVAILABLE_MODELS = ("gpt4all-lora-quantized",)


class GPT4All:
    """Local GPT4All chat bot."""

    def __init__(
        self,
        model: Optional[str] = None,
        decoder_config: Optional[Mapping[str, Any]] = None,
        executable_path: Optional[Path] = None,
        model_path: Optional[Path] = None,
        downloader: Optional[Downloader] = None,
        spawn: Optional[Callable] = None,
        ready_timeout: Optional[float] = None,
        show_progress: Optional[bool] = None,
    ):
        """
        Initialize the bot. Nothing is downloaded or started yet.

        Args:
            model: Model name, must be one of ``AVAILABLE_MODELS``
            decoder_config: Generation options forwarded to the executable
            executable_path: Override for the executable location
            model_path: Override for the weights location
            downloader: Downloader used by ``init()``
            spawn: Process factory used by ``open()``
            ready_timeout: Seconds ``open()`` waits for the bot
            show_progress: Render progress bars while downloading

        Raises:
            UnsupportedModelError: If the model is not available
        """
        model = model or config.MODEL
        if model not in AVAILABLE_MODELS:
            raise UnsupportedModelError(model, AVAILABLE_MODELS)

        self.model = model
        self.provisioner = ArtifactProvisioner(
            model,
            executable_path=executable_path,
            model_path=model_path,
            downloader=downloader,
            show_progress=show_progress,
        )
        self.session = Session(
            self.provisioner.executable_path,
            self.provisioner.model_path,
            decoder_config=decoder_config,
            ready_timeout=ready_timeout,
            spawn=spawn,
        )

    @property
    def executable_path(self) -> Path:
        return self.provisioner.executable_path

    @property
    def model_path(self) -> Path:
        return self.provisioner.model_path

    @property
    def decoder_config(self) -> dict:
        return self.session.decoder_config

    async def init(self, force_download: bool = False) -> None:
        """Download whichever artifacts are missing (both if forced)."""
        await self.provisioner.ensure(force_download)

    async def open(self) -> None:
        """Start the bot, replacing any running one."""
        await self.session.open()

    def close(self) -> None:
        """Stop the bot."""
        self.session.close()

    async def prompt(self, prompt: str) -> str:
        """Send a prompt and return the bot's response."""
        return await self.session.prompt(prompt)

    async def proompt(self, prompt: str) -> str:
        return await self.prompt(prompt)

    async def __aenter__(self) -> "GPT4All":
        await self.init()
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
