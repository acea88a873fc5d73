"""Content-Length framed JSON-RPC messages (the LSP base protocol)."""

from __future__ import annotations

import json
from typing import Any, BinaryIO

_HEADER_PREFIX = "Content-Length: "


class TransportError(OSError):
    """Raised when a framed message cannot be written or read."""


def write_message(writer: BinaryIO, body: Any) -> None:
    """Serialise ``body`` as JSON and write it with a Content-Length header."""
    try:
        content = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise TransportError(f"Cannot serialise message: {exc}") from exc
    header = f"Content-Length: {len(content)}\r\n\r\n".encode("ascii")
    writer.write(header)
    writer.write(content)
    writer.flush()


def _read_exact(reader: BinaryIO, length: int) -> bytes:
    chunks: list[bytes] = []
    remaining = length
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            raise TransportError("EOF reading message body")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_message(reader: BinaryIO) -> Any:
    """Read one framed message and return the decoded JSON value.

    Blocks until a whole message is available; raises TransportError at EOF,
    when the Content-Length header is missing, or when the body is not JSON.
    """
    content_length: int | None = None

    while True:
        raw = reader.readline()
        if not raw:
            raise TransportError("EOF reading headers")
        try:
            line = raw.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise TransportError(f"Invalid header encoding: {exc}") from exc
        if not line:
            break
        if line.startswith(_HEADER_PREFIX):
            value = line[len(_HEADER_PREFIX):]
            content_length = int(value) if value.isdigit() else None

    if content_length is None:
        raise TransportError("Missing Content-Length header")

    body = _read_exact(reader, content_length)
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TransportError(f"Invalid message body: {exc}") from exc