"""
Data structures for the messages of a chat conversation.

The models mirror the wire format of chat-completion endpoints, so that
`message.model_dump(exclude_none=True)` is the JSON object sent to the
endpoint, and a message returned by the endpoint validates directly
into a `Message`.

Messages are frozen: once appended to a conversation they are never
modified, only removed when the conversation is trimmed.
"""

from typing import Annotated, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

Role = Literal['system', 'user', 'assistant', 'tool']


class ImageURL(BaseModel):
    """Reference to an image and the detail level it is sent at."""

    url: str
    detail: Literal['low', 'high'] = 'low'

    model_config = ConfigDict(frozen=True)


class TextPart(BaseModel):
    type: Literal['text'] = 'text'
    text: str = ""

    model_config = ConfigDict(frozen=True)


class ImagePart(BaseModel):
    type: Literal['image_url'] = 'image_url'
    image_url: ImageURL

    model_config = ConfigDict(frozen=True)


ContentPart: TypeAlias = Annotated[
    TextPart | ImagePart, Field(discriminator='type')
]

# Plain text, or a non-empty sequence of typed parts.
ContentUnit: TypeAlias = (
    str | Annotated[list[ContentPart], Field(min_length=1)]
)


class FunctionCall(BaseModel):
    """Name of the called function and its arguments, as the JSON
    text produced by the model. The arguments are not parsed here."""

    name: str = ""
    arguments: str = ""

    model_config = ConfigDict(frozen=True)


class ToolCall(BaseModel):
    """Represents a tool call requested by the model."""

    index: int = 0
    id: str | None = None
    type: str = 'function'
    function: FunctionCall = Field(default_factory=FunctionCall)

    model_config = ConfigDict(frozen=True)


class Message(BaseModel):
    """Represents a message in a chat conversation."""

    role: Role
    content: ContentUnit | None = None
    name: str | None = Field(
        default=None,
        description="Name tag, only meaningful for system messages "
        "(e.g. 'example_user')",
    )
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = Field(
        default=None,
        description="ID of the tool call this message responds to",
    )

    model_config = ConfigDict(frozen=True)

    def to_payload(self) -> dict[str, object]:
        """The message as a JSON object for the request body."""
        return self.model_dump(exclude_none=True)


def message_text(message: Message) -> str:
    """
    Render the content of a message as plain text.

    Text parts of a multi-part content are joined by newlines, images
    are skipped. A message carrying tool calls is rendered as a
    listing of the calls.

    Args:
        message: the message to render

    Returns:
        the text of the message, possibly empty.
    """
    content = message.content
    if content is None or isinstance(content, str):
        if message.tool_calls:
            return "\n".join(
                f"Tool Call ID: {tc.id}\n"
                f"Type: {tc.type}\n"
                f"Function: {tc.function.name}\n"
                f"Arguments: {tc.function.arguments}"
                for tc in message.tool_calls
            )
        return content or ""
    return "\n".join(
        part.text for part in content if isinstance(part, TextPart)
    )
