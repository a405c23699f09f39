"""Administrative commands against the Artifactory REST API.

Each command builds one RequestDescriptor for its endpoint and hands it to
the executor. Commands that print server output ask the executor to echo the
body while it streams in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import httpx

from artifactory_cli.entity import BytesEntity, FileEntity
from artifactory_cli.executor import execute
from artifactory_cli.models import Credentials, HttpMethod, NoResponse, RequestDescriptor
from artifactory_cli.xml_body import XML_MEDIA_TYPE, export_settings_xml, import_settings_xml

logger = logging.getLogger(__name__)

# Endpoint suffixes, relative to the API base URL
SYSTEM_URL = "system"
CONFIG_URL = SYSTEM_URL + "/configuration"
EXPORT_URL = "export/system"
IMPORT_URL = "import/system"
SECURITY_URL = SYSTEM_URL + "/security"
COMPRESS_URL = SYSTEM_URL + "/storage/compress"

DEFAULT_HOST = "localhost:8081"
API_PATH = "/artifactory/api/"


def build_api_url(host: str | None = None, url: str | None = None, ssl: bool = False) -> str:
    """Base API URL with a trailing slash.

    An explicit url wins over host. Without either, the local default
    server is assumed.
    """
    if url:
        return url if url.endswith("/") else url + "/"
    scheme = "https" if ssl else "http"
    return f"{scheme}://{host or DEFAULT_HOST}{API_PATH}"


@dataclass(frozen=True)
class CommandContext:
    """Where and as whom commands run."""

    api_url: str
    credentials: Credentials | None = None
    timeout_ms: int = -1
    echo_stream: BinaryIO | None = None
    transport: httpx.BaseTransport | None = None

    def endpoint(self, suffix: str) -> str:
        return self.api_url + suffix

    def run(self, descriptor: RequestDescriptor) -> bytes | NoResponse:
        return execute(descriptor, echo_stream=self.echo_stream, transport=self.transport)


def _descriptor(
    ctx: CommandContext,
    method: HttpMethod,
    suffix: str,
    **fields,
) -> RequestDescriptor:
    return RequestDescriptor(
        method=method,
        url=ctx.endpoint(suffix),
        credentials=ctx.credentials,
        timeout_ms=ctx.timeout_ms,
        **fields,
    )


def compress(ctx: CommandContext) -> bytes | NoResponse:
    """Compress the storage tables (Derby databases only)."""
    url = ctx.endpoint(COMPRESS_URL)
    logger.info("Sending compress command to %s ...", url)
    return ctx.run(_descriptor(ctx, HttpMethod.POST, COMPRESS_URL, echo=True))


def info(ctx: CommandContext) -> bytes | NoResponse:
    """Print the system information page."""
    logger.info("Sending info command to %s ...", ctx.endpoint(SYSTEM_URL))
    return ctx.run(_descriptor(ctx, HttpMethod.GET, SYSTEM_URL, echo=True))


def get_configuration(ctx: CommandContext, echo: bool = False) -> bytes | NoResponse:
    """Fetch the central configuration descriptor (XML)."""
    logger.info("Sending configuration command to %s ...", ctx.endpoint(CONFIG_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.GET, CONFIG_URL, expected_content_type=XML_MEDIA_TYPE, echo=echo
    ))


def set_configuration(ctx: CommandContext, path: Path) -> bytes | NoResponse:
    """Replace the central configuration descriptor with the XML file at path."""
    logger.info("Sending configuration file %s to %s ...", path, ctx.endpoint(CONFIG_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.POST, CONFIG_URL, body=FileEntity(path, XML_MEDIA_TYPE), echo=True
    ))


def get_security(ctx: CommandContext, echo: bool = False) -> bytes | NoResponse:
    """Fetch the security descriptor (users, groups, permissions) as XML."""
    logger.info("Sending security command to %s ...", ctx.endpoint(SECURITY_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.GET, SECURITY_URL, expected_content_type=XML_MEDIA_TYPE, echo=echo
    ))


def set_security(ctx: CommandContext, path: Path) -> bytes | NoResponse:
    """Replace the security descriptor with the XML file at path."""
    logger.info("Sending security file %s to %s ...", path, ctx.endpoint(SECURITY_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.POST, SECURITY_URL, body=FileEntity(path, XML_MEDIA_TYPE), echo=True
    ))


def export_system(
    ctx: CommandContext,
    dest: str,
    include_metadata: bool = True,
    create_archive: bool = False,
    bypass_filtering: bool = False,
    verbose: bool = False,
    fail_on_error: bool = False,
    fail_if_empty: bool = False,
) -> bytes | NoResponse:
    """Export the whole system into dest, a directory on the server host."""
    body = export_settings_xml(
        dest,
        include_metadata=include_metadata,
        create_archive=create_archive,
        bypass_filtering=bypass_filtering,
        verbose=verbose,
        fail_on_error=fail_on_error,
        fail_if_empty=fail_if_empty,
    )
    logger.info("Sending export command to %s ...", ctx.endpoint(EXPORT_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.POST, EXPORT_URL, body=BytesEntity(body, XML_MEDIA_TYPE), echo=True
    ))


def import_system(
    ctx: CommandContext,
    source: str,
    include_metadata: bool = True,
    verbose: bool = False,
    fail_on_error: bool = False,
    fail_if_empty: bool = False,
) -> bytes | NoResponse:
    """Import a full system export from source, a directory on the server host."""
    body = import_settings_xml(
        source,
        include_metadata=include_metadata,
        verbose=verbose,
        fail_on_error=fail_on_error,
        fail_if_empty=fail_if_empty,
    )
    logger.info("Sending import command to %s ...", ctx.endpoint(IMPORT_URL))
    return ctx.run(_descriptor(
        ctx, HttpMethod.POST, IMPORT_URL, body=BytesEntity(body, XML_MEDIA_TYPE), echo=True
    ))
