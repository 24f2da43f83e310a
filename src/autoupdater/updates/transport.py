"""
HTTP transport for manifests and release artifacts.

Thin wrappers over ``httpx.AsyncClient``. These functions let httpx and
filesystem errors propagate; the AutoUpdater summarizes them into
pipeline errors. An ``httpx.AsyncBaseTransport`` may be injected, which
is how tests serve releases from ``httpx.MockTransport``.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlsplit

import httpx

from autoupdater.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 64 * 1024


def artifact_filename(url: str) -> str:
    """
    Return the file name a download of ``url`` is stored under.

    Raises:
        ValueError: If the URL path has no file name component.
    """
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    if not name:
        raise ValueError(f"URL has no file name: {url}")
    return name


def _client(timeout: float, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


async def read_json(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    Fetch and decode a JSON document.

    Raises:
        httpx.HTTPError: On connection failures and non-2xx responses.
        ValueError: If the body is not valid JSON.
    """
    logger.debug("Fetching JSON", extra={"url": url})
    async with _client(timeout, transport) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.json()


async def download_file(
    url: str,
    dest_dir: Path | str,
    on_progress: Callable[[int], Any] | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Path:
    """
    Stream ``url`` into ``dest_dir`` under the URL's file name.

    Args:
        url: Absolute artifact URL.
        dest_dir: Directory the file is written to (created if missing).
        on_progress: Called with the number of bytes received so far after
            every chunk.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport override.
        chunk_size: Streaming chunk size in bytes.

    Returns:
        Absolute path of the downloaded file.

    Raises:
        httpx.HTTPError: On connection failures and non-2xx responses.
        OSError: If the file cannot be written.
    """
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = (dest_dir / artifact_filename(url)).resolve()

    received = 0
    try:
        async with _client(timeout, transport) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size):
                        f.write(chunk)
                        received += len(chunk)
                        if on_progress is not None:
                            on_progress(received)
    except BaseException:
        with contextlib.suppress(OSError):
            target.unlink(missing_ok=True)
        raise

    logger.debug(
        "Downloaded file",
        extra={"url": url, "path": str(target), "bytes": received},
    )
    return target
