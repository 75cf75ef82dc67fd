"""
Fold a complete (non-streamed) response of the endpoint into the state
of a conversation.

The token usage reported in the response is authoritative: it replaces
the running total of the conversation. The returned message is added
to the history, after which the budget is checked. If the response was
cut short because the generation ran out of space (finish reason
'length'), the oldest messages are evicted unconditionally.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict

from chatctx.conversation import ConversationState
from chatctx.errors import RemoteError
from chatctx.messages import Message


class Usage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class CompletionChoice(BaseModel):
    message: Message | None = None
    finish_reason: str | None = None
    index: int | None = None


class CompletionResponse(BaseModel):
    """A complete response of a chat completion endpoint."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    usage: Usage | None = None
    choices: list[CompletionChoice] = []

    model_config = ConfigDict(extra='ignore')


def reduce_response(
    state: ConversationState, payload: dict[str, Any]
) -> Message:
    """
    Update the state of a conversation with a complete response.

    Args:
        state: the conversation.
        payload: the decoded JSON body of the response.

    Returns:
        the assistant message of the response. If the response has
        neither text nor tool calls, a message with the raw payload
        as content, so that the response remains visible.

    Raises:
        RemoteError: if the payload carries an error. The state is not
            modified.
    """
    if payload.get('error') is not None:
        raise RemoteError(payload['error'])

    response = CompletionResponse.model_validate(payload)
    first = response.choices[0] if response.choices else None
    message = first.message if first else None

    usage = response.usage
    state.total_tokens = (
        usage.total_tokens
        if usage and usage.total_tokens is not None
        else 0
    )
    if message is not None:
        state.record_response(message)

    if first and first.finish_reason == 'length':
        state.logger.warning(
            "Response truncated for length, evicting messages"
        )
        state.evict()
    else:
        state.check_budget()

    if message is None or not (message.content or message.tool_calls):
        raw = json.dumps(payload, ensure_ascii=False)
        return Message(
            role='assistant', content=f"Unparsed response: {raw}"
        )
    return Message(
        role='assistant',
        content=message.content,
        tool_calls=message.tool_calls,
    )
