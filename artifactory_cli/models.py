"""Internal data models for artifactory-cli.

All models use Pydantic v2. Request models are frozen: a descriptor is built
once by a command and handed to the executor unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from artifactory_cli.entity import RequestEntity


DEFAULT_STATUS = 200


# =============================================================================
# Request Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods the management API is called with."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"

    @property
    def has_body(self) -> bool:
        return self in (HttpMethod.PUT, HttpMethod.POST)


class Credentials(BaseModel):
    """Username/password pair for basic authentication."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    username: str = Field(description="Username sent with every request")
    password: str = Field(default="", repr=False, description="Password (may be empty)")

    @classmethod
    def from_pair(cls, username: str | None, password: str | None) -> Credentials | None:
        """Build credentials, or None when no username was supplied at all.

        An empty-string username is still a credential; only None means
        "no authentication".
        """
        if username is None:
            return None
        return cls(username=username, password=password or "")


class RequestDescriptor(BaseModel):
    """One fully specified request against the management API.

    Defaults mirror what most commands need: expect 200, skip the content-type
    check, use the default socket timeout, no credentials, no echo.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    method: HttpMethod = Field(description="HTTP method")
    url: str = Field(description="Absolute target URL")
    body: RequestEntity | None = Field(
        default=None, description="Request entity for PUT/POST (ignored for GET/DELETE)"
    )
    expected_status: int = Field(default=DEFAULT_STATUS, description="Required response status")
    expected_content_type: str | None = Field(
        default=None, description="Substring the response content-type must contain"
    )
    timeout_ms: int = Field(
        default=-1, description="Socket read timeout in milliseconds (<=0 means default)"
    )
    credentials: Credentials | None = Field(default=None, description="Basic auth credentials")
    echo: bool = Field(default=False, description="Mirror the response body to the console")

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value


class NoResponse(Enum):
    """Absence marker returned instead of response bytes.

    Distinct from ``b""``: an empty bytes result means the server sent an
    empty body, while a NoResponse member means there is nothing to show.
    Members are falsy so ``if result:`` treats both as "nothing printed".
    """

    NO_BODY = "no_body"  # Response carried no body stream
    TIMED_OUT = "timed_out"  # Socket timeout while reading; server outcome unknown

    def __bool__(self) -> bool:
        return False


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ServerConfig(BaseModel):
    """Connection settings for a single Artifactory server."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = Field(default=None, description="Base API URL, e.g. http://host:8081/artifactory/api/")
    host: str | None = Field(default=None, description="host:port, used when url is not set")
    ssl: bool = Field(default=False, description="Use https when building the URL from host")
    username: str | None = Field(default=None, description="Username (supports ${ENV_VAR} substitution)")
    password: str | None = Field(default=None, description="Password (supports ${ENV_VAR} substitution)")
    timeout_ms: int | None = Field(default=None, description="Socket timeout override in milliseconds")

    @field_validator("timeout_ms")
    @classmethod
    def check_timeout(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("timeout_ms must be positive")
        return value


class RuntimeConfig(BaseModel):
    """Top-level runtime configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    servers: dict[str, ServerConfig] = Field(description="Profile name -> server settings")
    default_server: str | None = Field(default=None, description="Profile used when --server is absent")
