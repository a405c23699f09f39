"""Response Reader - Drains a validated response body.

Copies the response stream into memory, optionally mirroring every chunk to
the console as it arrives. A socket timeout while reading is not an error
for the caller: the command may still be running on the server, so the user
is pointed at the server logs and the absence marker is returned instead of
the partial body.
"""

from __future__ import annotations

import io
import logging
from typing import BinaryIO

import httpx

from artifactory_cli.models import NoResponse

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024
SYSTEM_LOGS_PATH = "/webapp/systemlogs.html"

# Statuses that never carry a response body (RFC 9110 section 6.4.1).
_BODYLESS_STATUSES = frozenset({204, 304})


class TeeWriter:
    """Forwards every write to each of its sinks, in order."""

    def __init__(self, *sinks: BinaryIO) -> None:
        self._sinks = sinks

    def write(self, chunk: bytes) -> int:
        for sink in self._sinks:
            sink.write(chunk)
        return len(chunk)

    def flush(self) -> None:
        for sink in self._sinks:
            sink.flush()


def has_body(response: httpx.Response) -> bool:
    """Whether the response exposes a body stream at all."""
    if 100 <= response.status_code < 200 or response.status_code in _BODYLESS_STATUSES:
        return False
    return response.headers.get("content-length", "").strip() != "0"


def read_response(
    response: httpx.Response,
    echo_stream: BinaryIO | None = None,
) -> bytes | NoResponse:
    """Read the full body of a streamed response.

    Args:
        response: A response opened with ``stream=True`` whose status and
            content type were already validated.
        echo_stream: Console sink. When set, each chunk is written to it as
            soon as it is read, followed by one newline after the last chunk.

    Returns:
        The body bytes, ``NoResponse.NO_BODY`` when the response has no body,
        or ``NoResponse.TIMED_OUT`` when the read timed out.
    """
    if not has_body(response):
        return NoResponse.NO_BODY

    buffer = io.BytesIO()
    out: BinaryIO | TeeWriter = buffer
    if echo_stream is not None:
        out = TeeWriter(buffer, echo_stream)

    try:
        # Each transport chunk is written as soon as it arrives, in pieces of
        # at most READ_CHUNK_SIZE bytes.
        for chunk in response.iter_bytes():
            for start in range(0, len(chunk), READ_CHUNK_SIZE):
                out.write(chunk[start:start + READ_CHUNK_SIZE])
    except httpx.ReadTimeout as e:
        report_read_timeout(response.request.url, e)
        return NoResponse.TIMED_OUT

    if echo_stream is not None:
        echo_stream.write(b"\n")
        echo_stream.flush()
    return buffer.getvalue()


def system_logs_url(url: httpx.URL | str) -> str:
    """Derive the server log viewer URL from a request URL.

    Everything from the first ``/api`` onwards is replaced with the log viewer
    path. Without an ``/api`` segment the default context path on the request
    host is assumed.
    """
    url_str = str(url)
    api_pos = url_str.find("/api")
    if api_pos != -1:
        return url_str[:api_pos] + SYSTEM_LOGS_PATH
    host = httpx.URL(url_str).host
    return f"http://{host}/artifactory{SYSTEM_LOGS_PATH}"


def report_read_timeout(url: httpx.URL | str, error: Exception) -> None:
    """Log the guidance shown when the server stops answering mid-command."""
    logger.warning("Communication with the server has timed out: %s", error)
    logger.warning("ATTENTION: The command on the server may still be running!")
    logger.warning(
        "Please check the server logs %s before re-running the command.",
        system_logs_url(url),
    )
