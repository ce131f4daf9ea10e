"""
Central configuration module for the local GPT4All runner.

This module manages all configuration settings including:
- Model selection and artifact locations
- Download sources and transfer settings
- Subprocess startup limits
- CLI and logging settings
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Central configuration for the GPT4All runner."""

    # Model settings
    MODEL: str = os.getenv("GPT4ALL_MODEL", "gpt4all-lora-quantized")

    # Artifact locations
    NOMIC_HOME: Path = Path(
        os.getenv("NOMIC_HOME", str(Path.home() / ".nomic"))
    ).expanduser()
    EXECUTABLE_NAME: str = "gpt4all"

    # Download sources
    BINARY_URL_BASE: str = os.getenv(
        "GPT4ALL_BINARY_URL_BASE",
        "https://github.com/nomic-ai/gpt4all/blob/main/chat/",
    )
    MODEL_URL_BASE: str = os.getenv(
        "GPT4ALL_MODEL_URL_BASE",
        "https://the-eye.eu/public/AI/models/nomic-ai/gpt4all/",
    )

    # Download settings
    DOWNLOAD_TIMEOUT: float = float(os.getenv("DOWNLOAD_TIMEOUT", "30"))
    DOWNLOAD_CHUNK_SIZE: int = int(os.getenv("DOWNLOAD_CHUNK_SIZE", str(1024 * 1024)))
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "10"))
    SHOW_PROGRESS: bool = os.getenv("SHOW_PROGRESS", "true").lower() == "true"

    # Seconds to wait for the bot to print its first prompt marker
    READY_TIMEOUT: float = float(os.getenv("READY_TIMEOUT", "300"))

    # CLI settings
    HISTORY_FILE: str = os.getenv("HISTORY_FILE", ".gpt4all_chat_history")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def executable_path(cls) -> Path:
        """Location of the chat executable."""
        return cls.NOMIC_HOME / cls.EXECUTABLE_NAME

    @classmethod
    def model_path(cls, model: str = None) -> Path:
        """
        Location of the weights file for a model.

        Args:
            model: Model name (defaults to the configured model)

        Returns:
            Path to ``<model>.bin`` under the nomic home directory
        """
        return cls.NOMIC_HOME / f"{model or cls.MODEL}.bin"

    @classmethod
    def summary(cls) -> dict:
        """
        Get a summary of current configuration.

        Returns:
            Dictionary with all config values
        """
        return {
            "model": cls.MODEL,
            "nomic_home": str(cls.NOMIC_HOME),
            "executable_path": str(cls.executable_path()),
            "model_path": str(cls.model_path()),
            "ready_timeout": cls.READY_TIMEOUT,
            "max_redirects": cls.MAX_REDIRECTS,
        }


# Singleton instance
config = Config()
