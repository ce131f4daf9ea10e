"""Exception hierarchy for the GPT4All runner."""

from typing import Optional


class GPT4AllError(Exception):
    """Base exception for all runner errors."""

    pass


class UnsupportedModelError(GPT4AllError):
    """Requested model is not in the list of downloadable models."""

    def __init__(self, model: str, available):
        self.model = model
        self.available = tuple(available)
        super().__init__(
            f"Model {model} is not supported. Current models supported are:\n"
            + ",\n".join(self.available)
        )


class UnsupportedPlatformError(GPT4AllError):
    """No prebuilt chat executable exists for the host operating system."""

    def __init__(self, system: str):
        self.system = system
        super().__init__(
            f"Your platform is not supported: {system}. Current binaries supported "
            "are for OSX (ARM and Intel), Linux and Windows."
        )


class DownloadFailedError(GPT4AllError):
    """An artifact could not be fetched."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class SessionNotOpenError(GPT4AllError):
    """A prompt was issued without an open session."""

    pass


class StreamError(GPT4AllError):
    """The bot's output stream failed while a prompt was pending."""

    pass


class ReadinessTimeoutError(GPT4AllError):
    """The bot did not print its prompt marker in time."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Bot was not ready after {timeout} seconds")


class ProcessExitedError(GPT4AllError):
    """The bot exited before it became ready."""

    def __init__(self, returncode: Optional[int]):
        self.returncode = returncode
        super().__init__(f"Bot exited before becoming ready (return code: {returncode})")
