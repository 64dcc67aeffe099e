"""Decoder for chunked, newline-delimited generation streams.

Turns the text chunks of a streamed HTTP response body into a sequence of
StreamUpdate values, each carrying the full text generated so far.

Two framings are accepted on every line, whatever the provider:
- bare NDJSON:   {"response": "He", "done": false}
- event-stream:  data: {"choices": [{"delta": {"content": "He"}}]}
                 data: [DONE]

The dialect only decides where the text fragment lives in a record and
which records end the stream.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

from localgpt.models.stream import StreamUpdate
from localgpt.services.cancellation import CancelToken, race
from localgpt.services.exceptions import Cancelled, StreamProtocolError
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"
SSE_IGNORED_FIELDS = ("event:", "id:", "retry:")

GENERIC_PROTOCOL_ERROR = "Could not JSON parse stream message"


def _extract_content_from_openai_chunk(data: Dict[str, Any]) -> str | None:
    """
    Extract content from OpenAI-style streaming chunk.

    OpenAI-compatible servers return chunks like:
    {
        "choices": [{
            "delta": {"content": "..."},
            "finish_reason": null
        }]
    }

    Args:
        data: Parsed JSON chunk

    Returns:
        Content string if present, None otherwise
    """
    try:
        if "choices" in data and len(data["choices"]) > 0:
            choice = data["choices"][0]
            if "delta" in choice and "content" in choice["delta"]:
                return choice["delta"]["content"]
    except (KeyError, IndexError, TypeError):
        pass
    return None


def _extract_content_from_ollama_chunk(data: Dict[str, Any]) -> str | None:
    """
    Extract content from Ollama native streaming chunk.

    Ollama's /api/generate returns chunks like:
    {"model": "...", "response": "...", "done": false}

    /api/chat puts the text under message.content instead; both are accepted.

    Args:
        data: Parsed JSON chunk

    Returns:
        Content string if present, None otherwise
    """
    try:
        if "response" in data:
            return data["response"]
        if "message" in data and "content" in data["message"]:
            return data["message"]["content"]
    except (KeyError, TypeError):
        pass
    return None


def _ollama_done(data: Dict[str, Any]) -> bool:
    return data.get("done") is True


def _never_done(data: Dict[str, Any]) -> bool:
    return False


@dataclass(frozen=True)
class StreamDialect:
    """Record-level differences between provider stream formats.

    Attributes:
        name: Dialect name used in logs
        extract_fragment: Returns the text fragment carried by a record
        is_terminal: True for a record that ends the stream in-band
    """

    name: str
    extract_fragment: Callable[[Dict[str, Any]], Optional[str]]
    is_terminal: Callable[[Dict[str, Any]], bool]


OLLAMA_DIALECT = StreamDialect(
    name="ollama",
    extract_fragment=_extract_content_from_ollama_chunk,
    is_terminal=_ollama_done,
)

OPENAI_DIALECT = StreamDialect(
    name="openai",
    extract_fragment=_extract_content_from_openai_chunk,
    is_terminal=_never_done,
)


class _EndOfStream(Exception):
    """Internal signal: the [DONE] sentinel was seen."""


def _error_message(error: Any) -> str:
    """Human-readable message from a provider error payload."""
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
        return json.dumps(error)
    if isinstance(error, str) and error:
        return error
    return GENERIC_PROTOCOL_ERROR


def _record_payload(line: str) -> Optional[str]:
    """
    Strip event-stream framing from a line.

    Returns:
        JSON payload text, or None for lines that carry no record
        (blank lines, SSE comments, event/id/retry fields)
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(":"):
        return None
    if stripped.startswith(SSE_DATA_PREFIX):
        return stripped[len(SSE_DATA_PREFIX):].strip()
    if stripped.startswith(SSE_IGNORED_FIELDS):
        return None
    return stripped


def _decode_line(line: str, dialect: StreamDialect) -> tuple[Optional[str], bool]:
    """
    Decode one complete line.

    Returns:
        (fragment, terminal) where fragment is the text contributed by the
        record (None if nothing) and terminal marks an in-band end of stream

    Raises:
        _EndOfStream: On the [DONE] sentinel
        json.JSONDecodeError: If the line is not valid JSON
        StreamProtocolError: If the record is a provider error report
    """
    payload = _record_payload(line)
    if payload is None:
        return None, False
    if payload == SSE_DONE:
        raise _EndOfStream()

    data = json.loads(payload)

    if not isinstance(data, dict):
        logger.warning(
            "stream_record_not_object",
            dialect=dialect.name,
            record_type=type(data).__name__,
        )
        return None, False

    if data.get("error"):
        logger.error("stream_error_record", dialect=dialect.name, error=data["error"])
        raise StreamProtocolError(_error_message(data["error"]), payload=data["error"])

    return dialect.extract_fragment(data), dialect.is_terminal(data)


def _malformed_stream_error(remaining: str, line: str, error: json.JSONDecodeError) -> StreamProtocolError:
    """
    Build the error for an unparseable line.

    Some servers answer with a single (possibly pretty-printed) JSON error
    object instead of a stream, so the whole remaining buffer is tried as
    one error envelope before giving up with a generic message.
    """
    try:
        envelope = json.loads(remaining)
    except json.JSONDecodeError:
        logger.error(
            "stream_malformed_json",
            line=line,
            error=f"position {error.pos}: {error.msg}",
        )
        return StreamProtocolError(GENERIC_PROTOCOL_ERROR)

    detail = envelope.get("error", envelope) if isinstance(envelope, dict) else envelope
    logger.error("stream_error_envelope", error=detail)
    return StreamProtocolError(_error_message(detail), payload=detail)


async def decode_stream(
    chunks: AsyncIterator[str],
    dialect: StreamDialect,
    cancel_token: Optional[CancelToken] = None,
) -> AsyncIterator[StreamUpdate]:
    """
    Decode a chunked response body into accumulated-text updates.

    A chunk may hold zero, one or several lines, and a line may be split
    across chunks: the unterminated tail of each chunk is buffered and
    prepended to the next one. An update is emitted for every record that
    contributes a non-empty fragment, so the values are strictly growing
    and identical however the body was split into chunks.

    Args:
        chunks: Async iterator of decoded text chunks (e.g. response.aiter_text())
        dialect: Record dialect of the provider
        cancel_token: Optional token; firing it aborts the pending read

    Yields:
        StreamUpdate carrying the running total

    Raises:
        Cancelled: If the token fires before the stream completes
        StreamProtocolError: On malformed content or a provider error report

    Example:
        >>> async for update in decode_stream(response.aiter_text(), OPENAI_DIALECT):
        ...     display(update.accumulated_text)
    """
    iterator = chunks.__aiter__()
    buffer = ""
    accumulated = ""
    record_count = 0

    try:
        while True:
            try:
                chunk = await race(cancel_token, iterator.__anext__())
            except StopAsyncIteration:
                break

            buffer += chunk
            lines = buffer.split("\n")
            buffer = lines.pop()

            for index, line in enumerate(lines):
                try:
                    fragment, terminal = _decode_line(line, dialect)
                except _EndOfStream:
                    logger.debug("stream_done_sentinel", dialect=dialect.name)
                    return
                except json.JSONDecodeError as e:
                    remaining = "\n".join(lines[index:] + [buffer])
                    raise _malformed_stream_error(remaining, line, e) from e

                if fragment:
                    if cancel_token is not None and cancel_token.cancelled:
                        raise Cancelled()
                    record_count += 1
                    accumulated += fragment
                    yield StreamUpdate(accumulated_text=accumulated)

                if terminal:
                    logger.debug("stream_done_record", dialect=dialect.name)
                    return

        # Source ended: the unterminated tail is the last record
        if buffer.strip():
            try:
                fragment, _ = _decode_line(buffer, dialect)
            except _EndOfStream:
                return
            except json.JSONDecodeError as e:
                raise _malformed_stream_error(buffer, buffer, e) from e

            if fragment:
                if cancel_token is not None and cancel_token.cancelled:
                    raise Cancelled()
                record_count += 1
                accumulated += fragment
                yield StreamUpdate(accumulated_text=accumulated)

    finally:
        logger.debug(
            "stream_decoded",
            dialect=dialect.name,
            record_count=record_count,
            length=len(accumulated),
        )
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
