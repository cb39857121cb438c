# src/gemini_transport/core/stream_decoder.py
"""
Incremental decoder for streamed JSON responses.

The streaming endpoints return a sequence of JSON values (a JSON array of
frames, newline separated objects, or SSE ``data:`` lines) whose chunk
boundaries never line up with value boundaries. The scanner here tracks
string/escape state and ``{}``/``[]`` depth to find where each top-level
value ends, then parses just that span.

The scanner is a pure function over ``(state, text)`` with no I/O, so it can be
driven directly by tests with arbitrarily split payloads. ``StreamDecoder``
wraps it with an incremental UTF-8 decoder for raw byte chunks.

Example:
    >>> decoder = StreamDecoder()
    >>> decoder.feed(b'{"a":1}\\n{"b":')
    [{'a': 1}]
    >>> decoder.feed(b'2}')
    [{'b': 2}]
    >>> decoder.close()
    []
"""

import codecs
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

JSONObject = Dict[str, Any]
Chunk = Union[bytes, bytearray, memoryview, str]

_OPENERS = "{["
_CLOSERS = "}]"


@dataclass(frozen=True)
class DecoderState:
    """
    Scanner state carried between chunks.

    Attributes:
        buffer: Unconsumed input (starts at the current candidate value, if any)
        brace_depth: Open ``{`` count outside strings
        bracket_depth: Open ``[`` count outside strings
        in_string: Inside a quoted string, in a value or in the noise between values
        escape_next: Previous character was a backslash inside a string
        value_start: Start index of the candidate value in ``buffer``
        scan_pos: First index of ``buffer`` not scanned yet
    """
    buffer: str = ""
    brace_depth: int = 0
    bracket_depth: int = 0
    in_string: bool = False
    escape_next: bool = False
    value_start: Optional[int] = None
    scan_pos: int = 0

    @property
    def in_value(self) -> bool:
        return self.value_start is not None


def _decode_span(span: str) -> List[JSONObject]:
    """Parse one candidate span; objects are emitted, arrays are unwrapped one level."""
    try:
        parsed = json.loads(span)
    except ValueError:
        logger.debug("Skipping undecodable stream fragment (%d chars)", len(span))
        return []

    if isinstance(parsed, dict):
        return [parsed]
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    return []


def scan(state: DecoderState, text: str) -> Tuple[DecoderState, List[JSONObject]]:
    """
    Feed ``text`` to the scanner.

    Args:
        state: State after the previous chunk
        text: Next piece of decoded text

    Returns:
        ``(new_state, values)`` where ``values`` are the JSON objects completed
        by this chunk, in stream order.
    """
    buffer = state.buffer + text
    braces = state.brace_depth
    brackets = state.bracket_depth
    in_string = state.in_string
    escape_next = state.escape_next
    start = state.value_start
    i = state.scan_pos
    values: List[JSONObject] = []

    while i < len(buffer):
        char = buffer[i]

        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            # Strings are tracked between values too: a brace in quoted noise opens nothing
            in_string = True

        elif char in _OPENERS:
            if start is None:
                # Drop the noise in front of the new value
                buffer = buffer[i:]
                i = 0
                start = 0
            if char == "{":
                braces += 1
            else:
                brackets += 1

        elif char in _CLOSERS and start is not None:
            if char == "}" and braces > 0:
                braces -= 1
            elif char == "]" and brackets > 0:
                brackets -= 1

            if braces == 0 and brackets == 0:
                values.extend(_decode_span(buffer[start:i + 1]))
                buffer = buffer[i + 1:]
                start = None
                i = 0
                continue

        i += 1

    if start is None:
        # No open value: what is left cannot decode to an object, only the string state is kept
        buffer = ""
        i = 0

    new_state = replace(
        state,
        buffer=buffer,
        brace_depth=braces,
        bracket_depth=brackets,
        in_string=in_string,
        escape_next=escape_next,
        value_start=start,
        scan_pos=i,
    )
    return new_state, values


def finalize(state: DecoderState) -> List[JSONObject]:
    """
    Last chance for whatever is left when the stream ends.

    A truncated trailing fragment is expected under some framings, so a
    failed parse is dropped rather than raised.
    """
    remainder = state.buffer.strip()
    if not remainder:
        return []
    logger.debug("Decoding %d chars left at end of stream", len(remainder))
    return _decode_span(remainder)


class StreamDecoder:
    """
    Stateful wrapper around ``scan`` for one streaming response.

    Accepts ``bytes`` or ``str`` chunks. Bytes go through an incremental UTF-8
    decoder, so a multi-byte character split across chunks never reaches the
    scanner half-decoded.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._state = DecoderState()
        self._text_decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def state(self) -> DecoderState:
        return self._state

    def feed(self, chunk: Chunk) -> List[JSONObject]:
        """Add a chunk and return the objects it completed."""
        if isinstance(chunk, str):
            text = chunk
        else:
            text = self._text_decoder.decode(bytes(chunk))

        if not text:
            return []

        self._state, values = scan(self._state, text)
        return values

    def close(self) -> List[JSONObject]:
        """Flush the text decoder and give the remainder a final parse."""
        values: List[JSONObject] = []
        tail = self._text_decoder.decode(b"", final=True)
        if tail:
            self._state, values = scan(self._state, tail)

        values.extend(finalize(self._state))
        self._state = DecoderState()
        self._text_decoder.reset()
        return values


def iter_json_values(chunks: Iterable[Chunk]) -> Iterator[JSONObject]:
    """
    Lazily decode JSON objects from an iterable of chunks.

    Errors raised by ``chunks`` itself propagate unchanged.

    Example:
        >>> list(iter_json_values([b'[{"a":1},', b'{"b":2}]']))
        [{'a': 1}, {'b': 2}]
    """
    decoder = StreamDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.close()


async def aiter_json_values(chunks: AsyncIterable[Chunk]) -> AsyncIterator[JSONObject]:
    """Async counterpart of ``iter_json_values``."""
    decoder = StreamDecoder()
    async for chunk in chunks:
        for value in decoder.feed(chunk):
            yield value
    for value in decoder.close():
        yield value
