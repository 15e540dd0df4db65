"""Transcoding the CLI's stream-json output into Server-Sent Events.

The CLI writes one JSON message per line. Chunks read from stdout do not
line up with lines, so bytes are decoded incrementally and partial lines
are carried over to the next chunk. Each complete line becomes at most
one ``data`` event:

- ``stream_event`` text deltas are reduced to the delta text.
- ``assistant`` messages made of text only are dropped; their text was
  already streamed as deltas. Messages with a ``tool_use`` block are kept.
- ``result`` messages lose their ``result`` text (a repeat of the reply)
  but keep timing, cost and usage metadata.
- Anything else, including unknown types, is forwarded unchanged.
- Lines that are not JSON are forwarded as plain text.

Every stream starts with ``start`` and, unless the consumer closes it
early, finishes with ``end``. A read error is reported as one ``error``
event right before ``end``.
"""

from __future__ import annotations

import codecs
import enum
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from pydantic import BaseModel

from claudegate.domain.models import DataEvent, EndEvent, ErrorEvent, StartEvent

logger = logging.getLogger(__name__)

NEW_SESSION = "new"
READ_CHUNK_SIZE = 8192

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

# Marks a line that produces no event
SUPPRESSED = object()


class MessageKind(str, enum.Enum):
    """The ``type`` discriminator of a stream-json message."""

    STREAM_EVENT = "stream_event"
    ASSISTANT = "assistant"
    RESULT = "result"
    OTHER = "other"

    @classmethod
    def of(cls, payload: Any) -> MessageKind:
        if not isinstance(payload, dict):
            return cls.OTHER
        try:
            return cls(payload.get("type"))
        except (ValueError, TypeError):
            return cls.OTHER


def _text_delta(payload: dict[str, Any]) -> str | None:
    event = payload.get("event")
    if not isinstance(event, dict) or event.get("type") != "content_block_delta":
        return None
    delta = event.get("delta")
    if isinstance(delta, dict) and delta.get("type") == "text_delta":
        text = delta.get("text")
        if isinstance(text, str):
            return text
    return None


def _is_plain_text_message(payload: dict[str, Any]) -> bool:
    """True for an assistant message with text blocks and no tool use."""
    message = payload.get("message")
    if not isinstance(message, dict):
        return False
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return False
    has_tool_use = any(isinstance(b, dict) and b.get("type") == "tool_use" for b in blocks)
    has_text = any(isinstance(b, dict) and b.get("type") == "text" and b.get("text") for b in blocks)
    return has_text and not has_tool_use


def extract_content(payload: Any) -> Any:
    """Reduce a parsed message to the content sent to the client.

    Returns :data:`SUPPRESSED` when the message must not be forwarded.
    """
    kind = MessageKind.of(payload)

    if kind is MessageKind.STREAM_EVENT:
        text = _text_delta(payload)
        return payload if text is None else text

    if kind is MessageKind.ASSISTANT:
        return SUPPRESSED if _is_plain_text_message(payload) else payload

    if kind is MessageKind.RESULT:
        summary = dict(payload)
        summary.pop("result", None)
        return summary

    return payload


class LineBuffer:
    """Splits a chunked byte stream into complete text lines.

    Multi-byte UTF-8 sequences split across chunks are reassembled by an
    incremental decoder; an unterminated trailing line is held until the
    next chunk or :meth:`flush`.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        if not text:
            return []
        lines = (self._partial + text).split("\n")
        self._partial = lines.pop()
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left once the stream has ended."""
        rest = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return [rest] if rest else []


class StreamTranscoder:
    """Stateful line-to-event conversion for a single CLI run."""

    def __init__(self) -> None:
        self._buffer = LineBuffer()
        self._deltas_seen = False

    def feed(self, chunk: bytes | str) -> list[DataEvent]:
        return self._events(self._buffer.feed(chunk))

    def finish(self) -> list[DataEvent]:
        return self._events(self._buffer.flush())

    def _events(self, lines: list[str]) -> list[DataEvent]:
        events = []
        for line in lines:
            content = self.convert_line(line)
            if content is not SUPPRESSED:
                events.append(DataEvent(content=content))
        return events

    def convert_line(self, line: str) -> Any:
        """Turn one output line into event content, or :data:`SUPPRESSED`."""
        stripped = line.strip()
        if not stripped:
            return SUPPRESSED
        try:
            payload = json.loads(stripped)
        except ValueError:
            return stripped

        kind = MessageKind.of(payload)
        if kind is MessageKind.STREAM_EVENT and _text_delta(payload) is not None:
            self._deltas_seen = True
        elif kind is MessageKind.ASSISTANT and not self._deltas_seen and _is_plain_text_message(payload):
            logger.warning("Dropping assistant text that arrived without streamed deltas")
        return extract_content(payload)


async def iter_chunks(reader: Any, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield raw chunks from an ``asyncio.StreamReader`` until EOF."""
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            return
        yield chunk


async def transcode(
    chunks: AsyncIterable[bytes | str],
    session_id: str | None = None,
) -> AsyncIterator[StartEvent | DataEvent | ErrorEvent | EndEvent]:
    """Convert CLI output chunks into the outbound event sequence.

    Stops without an ``end`` event only if the consumer closes the
    generator early; there is nobody left to receive it then.
    """
    sid = session_id or NEW_SESSION
    yield StartEvent(session_id=sid)

    transcoder = StreamTranscoder()
    try:
        async for chunk in chunks:
            for event in transcoder.feed(chunk):
                yield event
        for event in transcoder.finish():
            yield event
    except Exception as e:
        logger.error("Error reading claude output (session=%s): %s", sid, e)
        yield ErrorEvent(error=str(e) or type(e).__name__)

    yield EndEvent(session_id=sid)


def to_sse(event: BaseModel) -> str:
    """Frame one event as an SSE ``data:`` message.

    Serialized with :func:`json.dumps` so CLI strings holding lone
    surrogates (valid escaped JSON) are re-escaped instead of failing.
    """
    payload = json.dumps(event.model_dump(by_alias=True), separators=(",", ":"))
    return f"data: {payload}\n\n"


async def stream_claude_output(process: Any, session_id: str | None = None) -> AsyncIterator[str]:
    """SSE frames for a running :class:`~claudegate.claude.process.ClaudeProcess`."""
    async for event in transcode(iter_chunks(process.stdout), session_id):
        yield to_sse(event)
