"""Tests for artifact provisioning."""

import asyncio
import stat
import sys
import time

import pytest

from conftest import FakeHTTPSession, FakeResponse, RecordingDownloader, ok_response
from gpt4all_local.config import config
from gpt4all_local.downloader import Downloader
from gpt4all_local.exceptions import DownloadFailedError, UnsupportedPlatformError
from gpt4all_local.provisioner import ArtifactProvisioner

MODEL = "gpt4all-lora-quantized"


@pytest.fixture
def linux_host(monkeypatch):
    monkeypatch.setattr("gpt4all_local.platforms.platform.system", lambda: "Linux")


def make_provisioner(home, downloader):
    return ArtifactProvisioner(
        MODEL,
        executable_path=home / "gpt4all",
        model_path=home / f"{MODEL}.bin",
        downloader=downloader,
        show_progress=False,
    )


def populate(home):
    home.mkdir(parents=True, exist_ok=True)
    (home / "gpt4all").write_bytes(b"old binary")
    (home / f"{MODEL}.bin").write_bytes(b"old weights")


def test_existing_artifacts_are_not_fetched(nomic_home, linux_host):
    populate(nomic_home)
    downloader = RecordingDownloader()

    asyncio.run(make_provisioner(nomic_home, downloader).ensure(False))

    assert downloader.targets == []


def test_force_refresh_fetches_both(nomic_home, linux_host):
    populate(nomic_home)
    downloader = RecordingDownloader()

    asyncio.run(make_provisioner(nomic_home, downloader).ensure(True))

    assert len(downloader.targets) == 2
    assert (nomic_home / "gpt4all").read_bytes() == b"artifact"
    assert (nomic_home / f"{MODEL}.bin").read_bytes() == b"artifact"


def test_only_missing_artifact_is_fetched(nomic_home, linux_host):
    nomic_home.mkdir(parents=True)
    (nomic_home / "gpt4all").write_bytes(b"binary")
    downloader = RecordingDownloader()

    asyncio.run(make_provisioner(nomic_home, downloader).ensure())

    assert [t.url for t in downloader.targets] == [f"{config.MODEL_URL_BASE}{MODEL}.bin"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_executable_is_marked_executable(nomic_home, linux_host):
    asyncio.run(make_provisioner(nomic_home, RecordingDownloader()).ensure())

    mode = stat.S_IMODE((nomic_home / "gpt4all").stat().st_mode)
    assert mode == 0o755


def test_downloads_run_concurrently(nomic_home, linux_host):
    downloader = RecordingDownloader(delay=0.3)

    start = time.monotonic()
    asyncio.run(make_provisioner(nomic_home, downloader).ensure())
    elapsed = time.monotonic() - start

    assert len(downloader.targets) == 2
    assert elapsed < 0.55, f"downloads ran one after another ({elapsed:.2f}s)"


def test_overlapping_calls_share_work(nomic_home, linux_host):
    downloader = RecordingDownloader(delay=0.1)
    provisioner = make_provisioner(nomic_home, downloader)

    async def run():
        await asyncio.gather(provisioner.ensure(), provisioner.ensure(), provisioner.ensure(True))

    asyncio.run(run())

    assert len(downloader.targets) == 2


def test_later_calls_check_again(nomic_home, linux_host):
    downloader = RecordingDownloader()
    provisioner = make_provisioner(nomic_home, downloader)

    async def run():
        await provisioner.ensure()
        (nomic_home / f"{MODEL}.bin").unlink()
        await provisioner.ensure()

    asyncio.run(run())

    assert len(downloader.targets) == 3


def test_failure_propagates_and_clears(nomic_home, linux_host):
    model_url = f"{config.MODEL_URL_BASE}{MODEL}.bin"
    downloader = RecordingDownloader(fail_urls=[model_url])
    provisioner = make_provisioner(nomic_home, downloader)

    with pytest.raises(DownloadFailedError):
        asyncio.run(provisioner.ensure())

    # The executable still completes; the model is retried on the next call
    assert (nomic_home / "gpt4all").exists()
    downloader.fail_urls.clear()
    asyncio.run(provisioner.ensure())
    assert (nomic_home / f"{MODEL}.bin").exists()


def test_unsupported_platform_fails(nomic_home, monkeypatch):
    monkeypatch.setattr("gpt4all_local.platforms.platform.system", lambda: "SunOS")
    downloader = RecordingDownloader()

    with pytest.raises(UnsupportedPlatformError):
        asyncio.run(make_provisioner(nomic_home, downloader).ensure())


def test_end_to_end_over_http(nomic_home, linux_host):
    executable_url = f"{config.BINARY_URL_BASE}gpt4all-lora-quantized-linux-x86?raw=true"
    model_url = f"{config.MODEL_URL_BASE}{MODEL}.bin"
    session = FakeHTTPSession(
        {
            executable_url: FakeResponse(302, {"Location": "https://raw.test/chat"}),
            "https://raw.test/chat": ok_response(b"#!/bin/sh\necho chat\n"),
            model_url: ok_response(b"weights" * 10),
        }
    )
    provisioner = make_provisioner(nomic_home, Downloader(session=session, chunk_size=8))

    asyncio.run(provisioner.ensure())

    assert (nomic_home / "gpt4all").read_bytes() == b"#!/bin/sh\necho chat\n"
    assert (nomic_home / f"{MODEL}.bin").read_bytes() == b"weights" * 10
    assert len(session.requests) == 3
