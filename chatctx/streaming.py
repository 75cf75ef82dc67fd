"""
Incremental decoding of the event stream of a chat completion
endpoint.

A streamed response is a sequence of lines of the form

    data: {"id": ..., "choices": [{"index": 0, "delta": {...}}]}

terminated by newlines, and usually closed by the sentinel line
`data: [DONE]`. The transport delivers the body in chunks whose
boundaries are arbitrary: a chunk may hold several lines, or a part
of a line only. `StreamDecoder` buffers the chunks and decodes a line
only once its terminator has arrived; the unterminated tail of the
buffer is kept for the next chunk.

A line that cannot be decoded is not dropped at once: it is logged
and kept as a carry that is prefixed to the next line, in case the
line was split by the transport. If the joined text cannot be decoded
either, the carry is discarded.

`decode_stream` and `adecode_stream` wrap the decoder into lazy
sequences of `StreamFrame` objects over a synchronous or asynchronous
source of text chunks:

    ```python
    from chatctx.streaming import decode_stream, StreamCollector

    collector = StreamCollector()
    for frame in decode_stream(chunks):
        collector.add(frame)
        print(frame.text(), end="")
    message = collector.message()
    ```

The sequences end when the source is exhausted. Errors raised by the
source propagate to the caller without any frame marking the
interruption; a sequence ending before a frame with a finish reason
must be considered possibly incomplete.
"""

from collections.abc import AsyncIterable, AsyncIterator
from collections.abc import Iterable, Iterator

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from chatctx.conversation import ConversationState
from chatctx.messages import FunctionCall, Message, ToolCall

# Set up default logger
from chatctx.utils import logger as default_logger
from chatctx.utils.logging import LoggerBase

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class FunctionCallDelta(BaseModel):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Fragment of a tool call. Name and arguments are delivered in
    pieces, to be concatenated by index."""

    index: int = 0
    id: str | None = None
    type: str | None = None
    function: FunctionCallDelta | None = None


class Delta(BaseModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: Delta = Field(default_factory=Delta)
    finish_reason: str | None = None

    @field_validator('delta', mode='before')
    @classmethod
    def null_delta(cls, value: object) -> object:
        return {} if value is None else value


class StreamFrame(BaseModel):
    """One decoded line of the event stream."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    system_fingerprint: str | None = None
    choices: list[StreamChoice]

    model_config = ConfigDict(extra='ignore')

    def text(self) -> str:
        """The text fragment of the first choice, empty if none."""
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""


def _strip_prefix(line: str) -> str:
    if line.startswith(DATA_PREFIX):
        return line[len(DATA_PREFIX):].strip()
    return line


class StreamDecoder:
    """
    Push decoder of the event stream. Feed the chunks of the body in
    order with `feed`, and call `close` when the body ends.
    """

    def __init__(self, logger: LoggerBase = default_logger) -> None:
        self.logger = logger
        self.buffer: str = ""
        self.carry: str = ""

    def feed(self, chunk: str) -> list[StreamFrame]:
        """
        Add a chunk of the body to the buffer.

        Returns:
            the frames of the lines completed by the chunk, possibly
            none.
        """
        self.buffer += chunk
        if "\n" not in self.buffer:
            return []
        complete, _, self.buffer = self.buffer.rpartition("\n")
        return self._decode_lines(complete.split("\n"))

    def close(self) -> list[StreamFrame]:
        """
        Decode the last line, if the body did not end with a
        terminator. The decoder is reset.

        Returns:
            the frame of the last line, if any.
        """
        rest, self.buffer = self.buffer, ""
        frames = self._decode_lines([rest])
        if self.carry:
            self.logger.warning(
                f"Stream ended with undecoded data: {self.carry}"
            )
            self.carry = ""
        return frames

    def _decode_lines(self, lines: list[str]) -> list[StreamFrame]:
        frames: list[StreamFrame] = []
        for raw in lines:
            # the carry keeps the whitespace at a spurious line break
            line = raw.rstrip("\r")
            if not line.strip():
                continue
            if self.carry:
                joined = self.carry + line
                self.carry = ""
                frame = self._decode(joined)
                if frame is not None:
                    frames.append(frame)
                    continue
                self.logger.warning(
                    f"Discarding undecodable stream data: {joined}"
                )
            line = line.strip()
            if _strip_prefix(line) == DONE_SENTINEL:
                self.logger.debug("End of stream sentinel received")
                continue
            frame = self._decode(line)
            if frame is not None:
                frames.append(frame)
            else:
                self.logger.warning(f"Chunk parse error at: {line}")
                self.carry = raw.rstrip("\r")
        return frames

    def _decode(self, line: str) -> StreamFrame | None:
        try:
            return StreamFrame.model_validate_json(
                _strip_prefix(line.strip())
            )
        except ValidationError:
            return None


def decode_stream(
    chunks: Iterable[str], logger: LoggerBase = default_logger
) -> Iterator[StreamFrame]:
    """
    Lazily decode the frames of an event stream.

    Args:
        chunks: the body of the response, as text chunks of any size.
        logger: receives the decoding warnings.

    Returns:
        an iterator over the decoded frames.
    """
    decoder = StreamDecoder(logger)
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.close()


async def adecode_stream(
    chunks: AsyncIterable[str], logger: LoggerBase = default_logger
) -> AsyncIterator[StreamFrame]:
    """
    Lazily decode the frames of an event stream delivered by an
    asynchronous source (see decode_stream).
    """
    decoder = StreamDecoder(logger)
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.close():
        yield frame


class StreamCollector:
    """
    Folds the frames of an event stream into the assistant message
    they deliver. Only the first choice is collected.
    """

    def __init__(self) -> None:
        self.role: str = 'assistant'
        self.model: str | None = None
        self.finish_reason: str | None = None
        self.fragments: list[str] = []
        self.tool_calls: dict[int, dict[str, str | None]] = {}

    def add(self, frame: StreamFrame) -> None:
        if frame.model:
            self.model = frame.model
        for choice in frame.choices:
            if choice.index != 0:
                continue
            delta = choice.delta
            if delta.role:
                self.role = delta.role
            if delta.content:
                self.fragments.append(delta.content)
            for tc in delta.tool_calls or []:
                self._add_tool_call(tc)
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason

    def _add_tool_call(self, tc: ToolCallDelta) -> None:
        entry = self.tool_calls.setdefault(
            tc.index,
            {'id': None, 'type': None, 'name': "", 'arguments': ""},
        )
        if tc.id and not entry['id']:
            entry['id'] = tc.id
        if tc.type and not entry['type']:
            entry['type'] = tc.type
        if tc.function is not None:
            entry['name'] = (entry['name'] or "") + (
                tc.function.name or ""
            )
            entry['arguments'] = (entry['arguments'] or "") + (
                tc.function.arguments or ""
            )

    def text(self) -> str:
        return "".join(self.fragments)

    def message(self) -> Message:
        """The assistant message collected so far."""
        tool_calls = [
            ToolCall(
                index=index,
                id=entry['id'],
                type=entry['type'] or 'function',
                function=FunctionCall(
                    name=entry['name'] or "",
                    arguments=entry['arguments'] or "",
                ),
            )
            for index, entry in sorted(self.tool_calls.items())
        ]
        content = self.text()
        return Message(
            role='assistant',
            content=content if content or not tool_calls else None,
            tool_calls=tool_calls or None,
        )


def fold_stream(
    state: ConversationState, frames: Iterable[StreamFrame]
) -> Message:
    """
    Consume the frames of a streamed response and append the
    resulting assistant message to a conversation.

    The stream does not report usage, so the message is accounted for
    with the estimated cost of its content. If the generation was cut
    short for length, the oldest messages are evicted.

    A stream that delivered neither text nor tool calls, for example
    one interrupted before its first frame, is not recorded: a
    placeholder message is returned instead.

    Returns:
        the appended message, or the placeholder.
    """
    collector = StreamCollector()
    for frame in frames:
        collector.add(frame)
    truncated = collector.finish_reason == 'length'
    if collector.fragments or collector.tool_calls:
        message = state.append_message(
            collector.message(), check=not truncated
        )
    else:
        state.logger.warning(
            "Empty streamed response, finish reason: "
            + f"{collector.finish_reason}"
        )
        message = Message(
            role='assistant',
            content="Empty streamed response (finish reason: "
            + f"{collector.finish_reason})",
        )
    if truncated:
        state.logger.warning(
            "Response truncated for length, evicting messages"
        )
        state.evict()
    return message
