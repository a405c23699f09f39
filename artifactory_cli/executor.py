"""Executor - Sends one administrative request and validates the response.

Every call builds its own httpx client (fixed connect timeout, configurable
socket timeout, optional preemptive basic auth scoped to the target host),
dispatches the request exactly once, checks the status and content type, and
hands the live body stream to the response reader. Transport failures are
mapped onto the RemoteCommandError hierarchy below; nothing is retried.
"""

from __future__ import annotations

import errno
import logging
import socket
import ssl
import sys
from pathlib import Path
from typing import Any, BinaryIO, Generator, Iterator

import httpx

from artifactory_cli.entity import BytesEntity, FileEntity, RequestEntity, StreamEntity
from artifactory_cli.models import Credentials, HttpMethod, NoResponse, RequestDescriptor
from artifactory_cli.response_reader import read_response, report_read_timeout

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_MS = 3000
DEFAULT_SOCKET_TIMEOUT_MS = 60000
EXAMPLE_API_URL = "http://myhost:8081/artifactory/api/system"

_NO_ROUTE_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ENETUNREACH})


# =============================================================================
# Error taxonomy
# =============================================================================


class RemoteCommandError(Exception):
    """Base class for errors that abort a remote command."""


class UrlResolutionError(RemoteCommandError):
    """The URL could not be turned into a request."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        super().__init__(
            f"An error has occurred while trying to resolve the given url: {url}\n{reason}"
        )


class TlsCapabilityError(RemoteCommandError):
    """The remote host could not negotiate TLS."""

    def __init__(self) -> None:
        super().__init__("The host you are trying to reach does not support SSL.")


class ConnectTimeoutError(RemoteCommandError):
    """No connection within CONNECT_TIMEOUT_MS."""


class HostUnreachableError(RemoteCommandError):
    """The host could not be reached at all."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(message)


class UnknownHostError(HostUnreachableError):
    def __init__(self, url: str) -> None:
        super().__init__(
            url,
            f"The host of the specified URL: {url} could not be found.\n"
            f"Please make sure you have specified the correct path. The default should be:\n"
            f"{EXAMPLE_API_URL}",
        )


class NoRouteToHostError(HostUnreachableError):
    def __init__(self, url: str) -> None:
        super().__init__(
            url,
            f"Cannot reach: {url}.\n"
            f"Please make sure that the address is valid and that the port is open "
            f"(firewall, router, etc').",
        )


class ConnectionRefusedByHostError(RemoteCommandError):
    """The host actively refused the connection."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(
            f"Cannot connect to: {url}. Please make sure to specify a valid host "
            f"(--host <host>:<port>) or URL (--url http://...)."
        )


class StatusMismatchError(RemoteCommandError):
    """The response status differs from the expected one."""

    def __init__(self, url: str, expected: int, received: int, status_text: str) -> None:
        self.url = url
        self.expected = expected
        self.received = received
        self.status_text = status_text
        super().__init__(
            f"Unexpected response status for request: {url}\n"
            f"Expected status: {expected} ({httpx.codes.get_reason_phrase(expected)})\n"
            f"Received status: {received} ({httpx.codes.get_reason_phrase(received)}) - {status_text}"
        )


class ContentTypeMismatchError(RemoteCommandError):
    """The response content type does not contain the expected type."""

    def __init__(self, url: str, expected: str, actual: str) -> None:
        self.url = url
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"HTTP content type was {actual} and should be {expected} for request on {url}"
        )


# =============================================================================
# Client configuration
# =============================================================================


class ScopedBasicAuth(httpx.Auth):
    """Preemptive basic auth that only ever applies to one host.

    The Authorization header is added to the first request (no 401 round
    trip), on any port and for any realm, as long as the request host matches.
    """

    def __init__(self, host: str, credentials: Credentials) -> None:
        self._host = host.lower()
        self._basic = httpx.BasicAuth(credentials.username, credentials.password)

    @property
    def host(self) -> str:
        return self._host

    def matches(self, url: httpx.URL) -> bool:
        return url.host.lower() == self._host

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.matches(request.url):
            yield from self._basic.auth_flow(request)
        else:
            yield request


def socket_timeout_ms(timeout_ms: int) -> int:
    """Effective socket timeout: the override when positive, else the default."""
    return timeout_ms if timeout_ms > 0 else DEFAULT_SOCKET_TIMEOUT_MS


def build_client_kwargs(
    url: httpx.URL,
    descriptor: RequestDescriptor,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """Build kwargs for the per-request httpx.Client.

    Args:
        url: Parsed target URL (its host scopes the credentials).
        descriptor: The request being executed.
        transport: Optional transport override.

    Returns:
        Dictionary of kwargs for the httpx.Client constructor.
    """
    read_s = socket_timeout_ms(descriptor.timeout_ms) / 1000
    kwargs: dict[str, Any] = {
        "timeout": httpx.Timeout(read_s, connect=CONNECT_TIMEOUT_MS / 1000),
        "follow_redirects": False,
    }
    if descriptor.credentials is not None:
        kwargs["auth"] = ScopedBasicAuth(url.host, descriptor.credentials)
    if transport is not None:
        kwargs["transport"] = transport
    return kwargs


def parse_url(url: str) -> httpx.URL:
    """Parse an absolute http(s) URL.

    Raises:
        UrlResolutionError: If the URL is malformed, relative, or not http(s).
    """
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise UrlResolutionError(url, str(e)) from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise UrlResolutionError(url, "Expected an absolute http:// or https:// URL with a host.")
    return parsed


def _entity_parts(
    method: HttpMethod,
    entity: RequestEntity | None,
) -> tuple[dict[str, str], bytes | Iterator[bytes] | None]:
    """Headers and content for a request entity. Only PUT/POST carry a body."""
    if not method.has_body:
        return {}, None
    if entity is None:
        return {"Content-Length": "0"}, b""

    headers: dict[str, str] = {}
    if entity.content_length >= 0:
        headers["Content-Length"] = str(entity.content_length)
    if entity.content_type:
        headers["Content-Type"] = entity.content_type
    return headers, entity.iter_chunks()


# =============================================================================
# Execution
# =============================================================================


def execute(
    descriptor: RequestDescriptor,
    *,
    echo_stream: BinaryIO | None = None,
    transport: httpx.BaseTransport | None = None,
) -> bytes | NoResponse:
    """Execute a request and return its validated body.

    Args:
        descriptor: The request to send.
        echo_stream: Console sink used when ``descriptor.echo`` is set.
                     Defaults to the binary stdout.
        transport: Optional httpx transport (custom TLS setup, tests).

    Returns:
        Response bytes, or a NoResponse member when there is no body or the
        read timed out.

    Raises:
        RemoteCommandError: For every failure other than a read timeout.
    """
    url = parse_url(descriptor.url)
    sink: BinaryIO | None = None
    if descriptor.echo:
        sink = echo_stream if echo_stream is not None else sys.stdout.buffer

    headers, content = _entity_parts(descriptor.method, descriptor.body)
    logger.debug(
        "%s %s (socket timeout %d ms)",
        descriptor.method.value,
        descriptor.url,
        socket_timeout_ms(descriptor.timeout_ms),
    )

    with httpx.Client(**build_client_kwargs(url, descriptor, transport)) as client:
        try:
            request = client.build_request(
                descriptor.method.value, url, headers=headers, content=content
            )
        except httpx.InvalidURL as e:
            raise UrlResolutionError(descriptor.url, str(e)) from e

        try:
            response = client.send(request, stream=True)
        except httpx.ReadTimeout as e:
            # Request went out but no status line came back in time.
            report_read_timeout(request.url, e)
            return NoResponse.TIMED_OUT
        except httpx.TransportError as e:
            raise classify_transport_error(descriptor.url, e) from e

        try:
            check_status(descriptor.url, descriptor.expected_status, response)
            check_content_type(
                descriptor.url,
                descriptor.expected_content_type,
                response.headers.get("content-type"),
            )
            return read_response(response, sink)
        except httpx.TransportError as e:
            raise classify_transport_error(descriptor.url, e) from e
        finally:
            response.close()


def check_status(url: str, expected_status: int, response: httpx.Response) -> None:
    """Raise StatusMismatchError unless the response has the expected status."""
    if response.status_code != expected_status:
        raise StatusMismatchError(
            url, expected_status, response.status_code, response.reason_phrase
        )


def check_content_type(url: str, expected_type: str | None, content_type: str | None) -> None:
    """Raise ContentTypeMismatchError if content_type lacks expected_type.

    A missing header or a blank expectation is never a mismatch.
    """
    if content_type is None:
        return
    if expected_type is None or not expected_type.strip():
        return
    if expected_type not in content_type:
        raise ContentTypeMismatchError(url, expected_type, content_type)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield exc and every exception it was raised from."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(url: str, exc: httpx.TransportError) -> RemoteCommandError:
    """Map an httpx transport failure onto the RemoteCommandError taxonomy.

    httpx wraps the socket-level error (ssl.SSLError, socket.gaierror,
    ConnectionRefusedError, ...) as the exception cause, so the whole chain
    is inspected.
    """
    chain = list(_exception_chain(exc))

    if isinstance(exc, httpx.UnsupportedProtocol):
        return UrlResolutionError(url, str(exc))
    if isinstance(exc, httpx.ConnectTimeout):
        return ConnectTimeoutError(str(exc) or f"Connection to {url} timed out")
    if any(isinstance(e, ssl.SSLError) for e in chain):
        return TlsCapabilityError()
    if isinstance(exc, httpx.ConnectError):
        if any(isinstance(e, socket.gaierror) for e in chain):
            return UnknownHostError(url)
        if any(isinstance(e, ConnectionRefusedError) for e in chain):
            return ConnectionRefusedByHostError(url)
        if any(isinstance(e, OSError) and e.errno in _NO_ROUTE_ERRNOS for e in chain):
            return NoRouteToHostError(url)
    return RemoteCommandError(f"Request to {url} failed: {exc}")


# =============================================================================
# Convenience wrappers
# =============================================================================


def _to_entity(
    body: bytes | Path | BinaryIO | RequestEntity | None,
    content_type: str | None,
) -> RequestEntity | None:
    if body is None or isinstance(body, RequestEntity):
        return body
    if isinstance(body, bytes):
        return BytesEntity(body, content_type)
    if isinstance(body, Path):
        return FileEntity(body, content_type)
    return StreamEntity(body, content_type=content_type)


def _request(
    method: HttpMethod,
    url: str,
    username: str | None,
    password: str | None,
    body: RequestEntity | None = None,
    echo_stream: BinaryIO | None = None,
    transport: httpx.BaseTransport | None = None,
    **options: Any,
) -> bytes | NoResponse:
    descriptor = RequestDescriptor(
        method=method,
        url=url,
        body=body,
        credentials=Credentials.from_pair(username, password),
        **options,
    )
    return execute(descriptor, echo_stream=echo_stream, transport=transport)


def get(
    url: str,
    username: str | None = None,
    password: str | None = None,
    **options: Any,
) -> bytes | NoResponse:
    """GET url. Extra options are RequestDescriptor fields or execute() kwargs."""
    return _request(HttpMethod.GET, url, username, password, **options)


def get_string(
    url: str,
    username: str | None = None,
    password: str | None = None,
    **options: Any,
) -> str | NoResponse:
    """GET url and decode the body as UTF-8."""
    result = get(url, username, password, **options)
    if isinstance(result, NoResponse):
        return result
    return result.decode("utf-8")


def post(
    url: str,
    body: bytes | Path | BinaryIO | RequestEntity | None = None,
    username: str | None = None,
    password: str | None = None,
    *,
    content_type: str | None = None,
    **options: Any,
) -> bytes | NoResponse:
    """POST body (bytes, file path, open stream or entity) to url."""
    return _request(
        HttpMethod.POST, url, username, password, _to_entity(body, content_type), **options
    )


def put(
    url: str,
    body: bytes | Path | BinaryIO | RequestEntity | None = None,
    username: str | None = None,
    password: str | None = None,
    *,
    content_type: str | None = None,
    **options: Any,
) -> bytes | NoResponse:
    """PUT body (bytes, file path, open stream or entity) to url."""
    return _request(
        HttpMethod.PUT, url, username, password, _to_entity(body, content_type), **options
    )


def delete(
    url: str,
    username: str | None = None,
    password: str | None = None,
    **options: Any,
) -> bytes | NoResponse:
    """DELETE url."""
    return _request(HttpMethod.DELETE, url, username, password, **options)
