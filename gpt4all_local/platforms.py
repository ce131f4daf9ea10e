"""
Download source resolution for the chat executable and model weights.

Prebuilt binaries exist for:
- Linux (x86)
- Windows (64 bit)
- macOS on Apple Silicon and on Intel
"""

import logging
import platform
from typing import Optional

from .config import config
from .exceptions import UnsupportedPlatformError

logger = logging.getLogger(__name__)

BINARY_NAMES = {
    "Linux": "gpt4all-lora-quantized-linux-x86",
    "Windows": "gpt4all-lora-quantized-win64.exe",
}
DARWIN_ARM_BINARY = "gpt4all-lora-quantized-OSX-m1"
DARWIN_INTEL_BINARY = "gpt4all-lora-quantized-OSX-intel"


def resolve_executable_url(
    model: str,
    system: Optional[str] = None,
    machine: Optional[str] = None,
) -> str:
    """
    Pick the executable download URL for the host platform.

    Every supported model currently shares the same chat binaries, so
    ``model`` only shows up in the log line.

    Args:
        model: Model the executable will run
        system: Operating system name as reported by ``platform.system()``
        machine: Hardware architecture, only consulted on macOS

    Returns:
        Download URL of the matching binary

    Raises:
        UnsupportedPlatformError: If the operating system has no binary
    """
    system = system or platform.system()

    if system in BINARY_NAMES:
        binary = BINARY_NAMES[system]
    elif system == "Darwin":
        machine = machine or platform.machine()
        binary = DARWIN_ARM_BINARY if machine.strip() == "arm64" else DARWIN_INTEL_BINARY
    else:
        raise UnsupportedPlatformError(system)

    logger.debug(f"Selected executable {binary} for {model} on {system}")
    return f"{config.BINARY_URL_BASE}{binary}?raw=true"


def resolve_model_url(model: str) -> str:
    """Download URL of the weights file for ``model``."""
    return f"{config.MODEL_URL_BASE}{model}.bin"
