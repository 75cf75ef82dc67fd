"""
Assemble the request sent to a chat completion endpoint.

The body contains the model identifier, the system prompt as a leading
system message (only if not blank), the history of the conversation
in order, the stream flag and the penalties. Temperature, top_p, the
cap on generated tokens and the JSON response format are only sent
when enabled in the settings. The tool descriptors, if any, are parsed
from the JSON text of the settings.

The credential is never part of the body; it is carried by the
Authorization header returned by `build_headers`.
"""

from typing import Any

from pydantic import TypeAdapter, ValidationError

from chatctx.config import ChatSettings
from chatctx.conversation import ConversationState
from chatctx.errors import ConfigurationError

_tools_adapter: TypeAdapter[list[dict[str, Any]]] = TypeAdapter(
    list[dict[str, Any]]
)


def parse_tools(tools_string: str) -> list[dict[str, Any]] | None:
    """
    Parse the tool descriptors of the settings.

    Args:
        tools_string: a JSON list of tool descriptors, or blank text.

    Returns:
        the list of descriptors, or None if the text is blank.

    Raises:
        ConfigurationError: if the text is not a JSON list of objects.
    """
    text = tools_string.strip()
    if not text:
        return None
    try:
        return _tools_adapter.validate_json(text)
    except ValidationError as e:
        raise ConfigurationError(
            "Tool schema is not a valid JSON list of tool "
            + f"descriptors: {e}"
        ) from e


def build_messages(state: ConversationState) -> list[dict[str, Any]]:
    """The messages of the request body, system prompt first."""
    messages: list[dict[str, Any]] = []
    system_prompt = state.settings.system_prompt
    if system_prompt.strip():
        messages.append({'role': 'system', 'content': system_prompt})
    messages.extend(m.to_payload() for m in state.messages)
    return messages


def build_payload(
    state: ConversationState, *, stream: bool | None = None
) -> dict[str, Any]:
    """
    Build the JSON body of a request from the state of a
    conversation.

    Args:
        state: the conversation.
        stream: request an event stream. Defaults to the stream flag
            of the settings.

    Returns:
        the body of the request as a dictionary.

    Raises:
        ConfigurationError: if the tool schema of the settings cannot
            be parsed. Nothing has been sent at that point.
    """
    settings = state.settings
    sampling = settings.sampling
    budget = settings.budget

    state.validate_history()

    body: dict[str, Any] = {
        'model': settings.model,
        'messages': build_messages(state),
        'stream': settings.stream if stream is None else stream,
        'presence_penalty': sampling.presence_penalty,
        'frequency_penalty': sampling.frequency_penalty,
    }
    if sampling.temperature_enabled:
        body['temperature'] = sampling.temperature
    if sampling.top_p_enabled:
        body['top_p'] = sampling.top_p
    if budget.max_gen_tokens_enabled:
        body['max_tokens'] = budget.max_gen_tokens
    if sampling.json_mode:
        body['response_format'] = {'type': 'json_object'}

    tools = parse_tools(settings.tools_string)
    if tools is not None:
        body['tools'] = tools

    return body


def build_headers(settings: ChatSettings) -> dict[str, str]:
    """The HTTP headers of a request, with the bearer credential if
    one is configured."""
    headers = {'Content-Type': 'application/json'}
    if settings.api_key:
        headers['Authorization'] = f"Bearer {settings.api_key}"
    return headers
