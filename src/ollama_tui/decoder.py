"""Incremental decoders for the two streaming wire formats.

Both decoders consume an iterable of raw body lines and lazily yield
:class:`DecodedFrame` objects. A decoder yields at most one terminal fragment
and stops immediately after it; when the body ends without an explicit
terminator an empty terminal fragment is synthesized.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
import json
import logging
from typing import Any

from .exceptions import DecodeError
from .models import FINAL_FRAGMENT, DecodedFrame, Fragment, Provider

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_LINE_BYTES = 1024 * 1024

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

Decoder = Callable[[Iterable[bytes]], Iterator[DecodedFrame]]


def iter_lines(
    chunks: Iterable[bytes], max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
) -> Iterator[bytes]:
    """Split arbitrarily sized byte chunks into lines.

    Line terminators (``\\n`` with an optional preceding ``\\r``) are stripped.
    A trailing unterminated line is yielded once the chunks run out. A line
    longer than ``max_line_bytes`` raises :class:`DecodeError`.
    """
    buffer = bytearray()
    for chunk in chunks:
        if not chunk:
            continue
        buffer.extend(chunk)
        while True:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(buffer[:newline])
            del buffer[: newline + 1]
            if len(line) > max_line_bytes:
                raise DecodeError(
                    f"Response line of {len(line)} bytes exceeds the "
                    f"{max_line_bytes} byte limit."
                )
            yield line.rstrip(b"\r")
        if len(buffer) > max_line_bytes:
            raise DecodeError(
                f"Response line exceeds the {max_line_bytes} byte limit."
            )
    if buffer:
        yield bytes(buffer).rstrip(b"\r")


def _parse_json_line(line: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(line)
    except ValueError:
        LOGGER.debug(
            "decoder.line.dropped",
            extra={"event": "decoder.line.dropped", "length": len(line)},
        )
        return None
    if not isinstance(payload, dict):
        LOGGER.debug(
            "decoder.line.dropped",
            extra={"event": "decoder.line.dropped", "length": len(line)},
        )
        return None
    return payload


def _extract_context(payload: dict[str, Any]) -> tuple[int, ...]:
    raw = payload.get("context")
    if not isinstance(raw, list):
        return ()
    try:
        return tuple(int(item) for item in raw)
    except (TypeError, ValueError):
        return ()


def decode_ndjson(lines: Iterable[bytes]) -> Iterator[DecodedFrame]:
    """Decode a local-generator body of ``{response, done, context?}`` objects."""
    for raw_line in lines:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        payload = _parse_json_line(line)
        if payload is None:
            continue

        text = payload.get("response")
        if not isinstance(text, str):
            text = ""
        context = _extract_context(payload)

        if payload.get("done") is True:
            yield DecodedFrame(Fragment(text=text, is_final=True), context)
            return
        if text or context:
            yield DecodedFrame(Fragment(text=text), context)

    yield DecodedFrame(FINAL_FRAGMENT)


def _first_choice(payload: dict[str, Any]) -> dict[str, Any]:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def decode_sse(lines: Iterable[bytes]) -> Iterator[DecodedFrame]:
    """Decode a hosted-chat Server-Sent-Events body of chat completion chunks."""
    for raw_line in lines:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line or not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX) :].strip()
        if data == SSE_DONE_SENTINEL:
            yield DecodedFrame(FINAL_FRAGMENT)
            return

        payload = _parse_json_line(data)
        if payload is None:
            continue

        choice = _first_choice(payload)
        delta = choice.get("delta")
        text = delta.get("content") if isinstance(delta, dict) else None
        if not isinstance(text, str):
            text = ""

        if choice.get("finish_reason") is not None:
            yield DecodedFrame(Fragment(text=text, is_final=True))
            return
        if text:
            yield DecodedFrame(Fragment(text=text))

    yield DecodedFrame(FINAL_FRAGMENT)


def decoder_for(provider: Provider) -> Decoder:
    """Return the line decoder matching ``provider``'s wire format."""
    if provider is Provider.LOCAL_GENERATOR:
        return decode_ndjson
    return decode_sse
