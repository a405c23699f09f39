"""Request entities - bodies attached to PUT and POST requests.

An entity declares its length and content type up front and writes its bytes
exactly once. The executor streams ``iter_chunks()`` into httpx so large
files (system import archives, descriptors) are never loaded whole.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Iterator

CHUNK_SIZE = 8192


class EntityConsumedError(RuntimeError):
    """Raised when a single-use entity is written a second time."""


class RequestEntity:
    """Base class for request bodies.

    Subclasses implement ``_chunks()``. ``content_length`` of -1 means the
    length is unknown and the body is sent chunked.
    """

    repeatable = False

    def __init__(self, content_type: str | None = None) -> None:
        self._content_type = content_type
        self._consumed = False

    @property
    def content_type(self) -> str | None:
        return self._content_type

    @property
    def content_length(self) -> int:
        raise NotImplementedError

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the body bytes. Single-use unless the entity is repeatable."""
        if self._consumed and not self.repeatable:
            raise EntityConsumedError(f"{type(self).__name__} has already been written")
        self._consumed = True
        yield from self._chunks()

    def write_to(self, out: BinaryIO) -> None:
        """Write the whole body to *out*."""
        for chunk in self.iter_chunks():
            out.write(chunk)

    def _chunks(self) -> Iterator[bytes]:
        raise NotImplementedError


class BytesEntity(RequestEntity):
    """In-memory body. A None payload is an empty body of length 0."""

    repeatable = True

    def __init__(self, data: bytes | None, content_type: str | None = None) -> None:
        super().__init__(content_type)
        self._data = data

    @property
    def content_length(self) -> int:
        if self._data is None:
            return 0
        return len(self._data)

    def _chunks(self) -> Iterator[bytes]:
        if self._data:
            yield self._data


class StreamEntity(RequestEntity):
    """Body read lazily from an open binary stream.

    The stream is read once, in CHUNK_SIZE pieces, and is not closed here:
    whoever opened it owns it.
    """

    def __init__(
        self,
        stream: BinaryIO,
        content_length: int = -1,
        content_type: str | None = None,
    ) -> None:
        super().__init__(content_type)
        self._stream = stream
        self._content_length = content_length

    @property
    def content_length(self) -> int:
        return self._content_length

    def _chunks(self) -> Iterator[bytes]:
        while True:
            chunk = self._stream.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class FileEntity(RequestEntity):
    """Body read from a file that is opened only when the request is sent."""

    def __init__(self, path: Path, content_type: str | None = None) -> None:
        super().__init__(content_type)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def content_length(self) -> int:
        return self._path.stat().st_size

    def _chunks(self) -> Iterator[bytes]:
        with open(self._path, "rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
