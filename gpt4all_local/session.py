"""
Chat session over the GPT4All executable's stdin/stdout.

This module handles:
- Spawning the executable with the decoder configuration as flags
- Waiting for the interactive prompt marker before accepting prompts
- Serializing prompts into a strict request/response cycle
- Dropping output that arrives while no prompt is pending
- Killing the process on close
"""

import asyncio
import codecs
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import config
from .exceptions import (
    ProcessExitedError,
    ReadinessTimeoutError,
    SessionNotOpenError,
    StreamError,
)
from .health_monitor import get_process_stats
from .response import ResponseAssembler

logger = logging.getLogger(__name__)

READY_MARKER = ">"
IDLE_TIMEOUT = 4.0  # seconds of silence after which a response is complete
READ_SIZE = 4096


class SessionState(Enum):
    CLOSED = "closed"
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"


def format_option(value: Any) -> str:
    """Render a decoder option value as a command-line argument."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class Session:
    """One chat executable process and the conversation held with it."""

    def __init__(
        self,
        executable_path: Path,
        model_path: Path,
        decoder_config: Optional[Mapping[str, Any]] = None,
        ready_timeout: Optional[float] = None,
        idle_timeout: float = IDLE_TIMEOUT,
        spawn: Optional[Callable] = None,
    ):
        """
        Initialize the session. No process is started until ``open()``.

        Args:
            executable_path: Path to the chat executable
            model_path: Path to the model weights
            decoder_config: Generation options passed as ``--key value`` flags
            ready_timeout: Seconds to wait for the first prompt marker
            idle_timeout: Seconds of silence that end a response
            spawn: Coroutine function with the signature of
                ``asyncio.create_subprocess_exec``
        """
        self.executable_path = Path(executable_path)
        self.model_path = Path(model_path)
        self.decoder_config: Dict[str, Any] = dict(decoder_config or {})
        self.ready_timeout = ready_timeout if ready_timeout is not None else config.READY_TIMEOUT
        self.idle_timeout = idle_timeout
        self.state = SessionState.CLOSED

        self._spawn = spawn or asyncio.create_subprocess_exec
        self._process = None
        self._reader: Optional[asyncio.Task] = None
        # Receives output while a readiness wait or a prompt is pending
        self._listener: Optional[asyncio.Queue] = None
        self._output_failure: Optional[StreamError] = None
        self._prompt_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._process is not None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def build_command(self) -> List[str]:
        """Executable, model flag and one flag pair per decoder option."""
        command = [str(self.executable_path), "--model", str(self.model_path)]
        for key, value in self.decoder_config.items():
            command.extend([f"--{key}", format_option(value)])
        return command

    async def open(self) -> None:
        """
        Start the executable and wait until it prints its prompt marker.

        Any process from an earlier ``open()`` is killed first.

        Raises:
            ReadinessTimeoutError: If the marker does not show up in time
            ProcessExitedError: If the process exits before the marker
        """
        self.close()

        command = self.build_command()
        logger.info(f"Starting bot: {' '.join(command)}")
        try:
            process = await self._spawn(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.executable_path}: {e}")
            raise
        self._process = process
        self._output_failure = None
        self.state = SessionState.STARTING

        listener: asyncio.Queue = asyncio.Queue()
        self._listener = listener
        self._reader = asyncio.ensure_future(self._read_output(process))

        try:
            await asyncio.wait_for(
                self._wait_until_ready(process, listener), timeout=self.ready_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Bot did not become ready within {self.ready_timeout}s")
            self._discard(process)
            raise ReadinessTimeoutError(self.ready_timeout) from None
        except (ProcessExitedError, StreamError) as e:
            logger.error(f"Bot failed to start: {e}")
            self._discard(process)
            raise
        finally:
            # Startup output after the marker is not part of any response
            if self._listener is listener:
                self._listener = None

        if self._process is process:
            self.state = SessionState.READY
            logger.info(f"Bot ready (pid {process.pid})")

    async def _wait_until_ready(self, process, listener: asyncio.Queue) -> None:
        while True:
            item = await listener.get()
            if item is None:
                raise ProcessExitedError(process.returncode)
            if isinstance(item, StreamError):
                raise item
            if READY_MARKER in item:
                return

    async def _read_output(self, process) -> None:
        """Decode the bot's stdout until EOF and hand it to the current listener."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                chunk = await process.stdout.read(READ_SIZE)
            except OSError as e:
                logger.error(f"Error reading bot output: {e}")
                self._deliver(process, StreamError(f"Error reading bot output: {e}"))
                return
            if not chunk:
                self._deliver(process, None)
                return
            text = decoder.decode(chunk)
            if text:
                self._deliver(process, text)

    def _deliver(self, process, item) -> None:
        """Pass text, EOF (None) or a StreamError on, or drop unclaimed text."""
        if self._process is not process:
            return
        if item is None:
            self._output_failure = StreamError("Bot output is closed")
        elif isinstance(item, StreamError):
            self._output_failure = item

        if self._listener is not None:
            self._listener.put_nowait(item)
        elif isinstance(item, str):
            logger.debug(f"Dropping {len(item)} characters of output with no prompt pending")

    def close(self) -> None:
        """Kill the process if one is running. Safe to call repeatedly."""
        if self._process is None:
            return
        process, self._process = self._process, None
        self.state = SessionState.CLOSED

        # Wake whoever is waiting on output; the reader stops with the process
        if self._listener is not None:
            self._listener.put_nowait(None)
            self._listener = None
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None

        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                logger.debug(f"Bot process {process.pid} already gone")
        logger.info("Bot process terminated")

    def _discard(self, process) -> None:
        if self._process is process:
            self.close()

    async def prompt(self, text: str) -> str:
        """
        Send one prompt and wait for the complete response.

        Concurrent calls are queued and answered one at a time, in order.
        Output the bot wrote while no prompt was pending is never part of
        the response.

        Args:
            text: Prompt text, sent as a single line

        Returns:
            Response text with the trailing prompt marker removed

        Raises:
            SessionNotOpenError: If no process is running
            StreamError: If the output stream fails or closes mid-response
        """
        if self._process is None:
            raise SessionNotOpenError("Bot is not initialized. Call open() first.")

        async with self._prompt_lock:
            process = self._process
            if process is None:
                raise SessionNotOpenError("Bot was closed before the prompt could be sent.")
            if self._output_failure is not None:
                raise StreamError(f"{self._output_failure}; reopen the session")

            self.state = SessionState.BUSY
            listener: asyncio.Queue = asyncio.Queue()
            self._listener = listener
            try:
                return await self._exchange(process, listener, text)
            finally:
                if self._listener is listener:
                    self._listener = None
                if self._process is process:
                    self.state = SessionState.READY

    async def _exchange(self, process, listener: asyncio.Queue, text: str) -> str:
        try:
            process.stdin.write(f"{text}\n".encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise StreamError(f"Could not send prompt to bot: {e}") from e

        assembler = ResponseAssembler()
        # No idle window until the bot starts answering
        timeout = None
        while not assembler.signaled:
            try:
                item = await asyncio.wait_for(listener.get(), timeout=timeout)
            except asyncio.TimeoutError:
                assembler.idle_elapsed()
                break
            if item is None:
                raise StreamError("Bot output closed while waiting for a response")
            if isinstance(item, StreamError):
                raise item
            assembler.feed(item)
            timeout = self.idle_timeout

        logger.debug(f"Response complete via {assembler.trigger.value}")
        return assembler.finish()

    async def process_stats(self) -> Dict[str, Any]:
        """Resource usage of the running bot, empty when closed."""
        if self.pid is None:
            return {}
        # psutil samples CPU over an interval, so keep it off the event loop
        return await asyncio.to_thread(get_process_stats, self.pid)

    async def __aenter__(self) -> "Session":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
