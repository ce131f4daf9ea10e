"""
Shared test doubles.

- FakeProcess / FakeSpawner: scripted stand-ins for the chat executable
- FakeResponse / FakeHTTPSession: scripted stand-ins for requests
- RecordingDownloader: offline stand-in for Downloader
"""

import asyncio
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from gpt4all_local.exceptions import DownloadFailedError

ESC = "\x1b"
PROMPT_CHUNK = f"{ESC}[0m\n> "


class FakeStdout:
    """Delivers each fed chunk as the result of exactly one read()."""

    def __init__(self):
        self._chunks: asyncio.Queue = asyncio.Queue()
        self._eof = False

    def feed(self, chunk):
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._chunks.put_nowait(chunk)

    def feed_eof(self):
        if not self._eof:
            self._eof = True
            self._chunks.put_nowait(b"")

    def feed_error(self, error: Exception):
        self._chunks.put_nowait(error)

    async def read(self, n=-1):
        chunk = await self._chunks.get()
        if chunk == b"":
            # Keep reporting EOF to later readers
            self._chunks.put_nowait(b"")
        if isinstance(chunk, Exception):
            raise chunk
        return chunk


class FakeStdin:
    def __init__(self, process: "FakeProcess"):
        self.process = process
        self.lines: List[str] = []
        self._buffer = ""

    def write(self, data: bytes):
        if self.process.returncode is not None:
            raise BrokenPipeError("process has exited")
        self._buffer += data.decode("utf-8")
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self.lines.append(line)
            self.process.on_line(line)

    async def drain(self):
        await asyncio.sleep(0)


Script = List[Tuple[float, str]]


class FakeProcess:
    """
    Scripted chat executable.

    Args:
        startup: (delay, chunk) pairs emitted right after spawn
        responder: Maps each input line to (delay, chunk) pairs to emit
        exit_after_startup: Close stdout once the startup script is done
    """

    _next_pid = 4000

    def __init__(
        self,
        startup: Optional[Script] = None,
        responder: Optional[Callable[[str], Script]] = None,
        exit_after_startup: bool = False,
    ):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.returncode = None
        self.killed = False
        self.stdout = FakeStdout()
        self.stdin = FakeStdin(self)
        self.responder = responder or (lambda line: [])
        self._tasks = []
        self._emit(list(startup or [(0, "== Running in chat mode ==\n> ")]), eof=exit_after_startup)

    def _emit(self, script: Script, eof: bool = False):
        async def run():
            for delay, chunk in script:
                await asyncio.sleep(delay)
                if self.returncode is not None and not eof:
                    return
                self.stdout.feed(chunk)
            if eof:
                self.returncode = 1
                self.stdout.feed_eof()

        self._tasks.append(asyncio.get_running_loop().create_task(run()))

    def on_line(self, line: str):
        self._emit(self.responder(line))

    def kill(self):
        self.killed = True
        self.returncode = -9
        self.stdout.feed_eof()


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess instances."""

    def __init__(self, **process_kwargs):
        self.process_kwargs = process_kwargs
        self.calls: List[Tuple[tuple, Dict]] = []
        self.processes: List[FakeProcess] = []

    async def __call__(self, *command, **kwargs):
        self.calls.append((command, kwargs))
        process = FakeProcess(**self.process_kwargs)
        self.processes.append(process)
        return process


def echo_responder(line: str) -> Script:
    """Answers every prompt with its text, then re-prints the prompt marker."""
    return [(0, f"echo: {line}"), (0.01, PROMPT_CHUNK)]


class RecordingDownloader:
    """Writes placeholder files instead of touching the network."""

    def __init__(self, delay: float = 0, fail_urls=()):
        self.delay = delay
        self.fail_urls = set(fail_urls)
        self.targets = []
        self._lock = threading.Lock()

    def download(self, target, progress=None):
        time.sleep(self.delay)
        with self._lock:
            self.targets.append(target)
        if target.url in self.fail_urls:
            raise DownloadFailedError("boom", url=target.url, status_code=500)
        target.destination.parent.mkdir(parents=True, exist_ok=True)
        target.destination.write_bytes(b"artifact")
        return target.destination


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunks: Optional[List[bytes]] = None,
        error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.chunks = chunks or []
        self.error = error
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def ok_response(body: bytes, chunk_size: int = 4) -> FakeResponse:
    chunks = [body[i : i + chunk_size] for i in range(0, len(body), chunk_size)]
    return FakeResponse(200, {"Content-Length": str(len(body))}, chunks)


class FakeHTTPSession:
    """Maps URLs to scripted responses and records every request."""

    def __init__(self, routes: Dict[str, FakeResponse]):
        self.routes = routes
        self.requests: List[Tuple[str, Dict]] = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if url not in self.routes:
            raise requests.ConnectionError(f"no route to {url}")
        return self.routes[url]


@pytest.fixture
def spawner():
    return FakeSpawner(responder=echo_responder)


@pytest.fixture
def nomic_home(tmp_path):
    home = tmp_path / ".nomic"
    return home
