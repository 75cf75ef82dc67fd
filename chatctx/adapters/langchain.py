"""
LangChain interoperability.

Converts the history of a conversation into LangChain messages, for
instance to hand it to a LangChain chat model or to a memory
component, and converts the replies of LangChain chat models back into
messages of this package.
"""

import json

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.messages.tool import ToolCall as LCToolCall
from langchain_core.messages.tool import tool_call

from chatctx.conversation import ConversationState
from chatctx.messages import (
    ContentUnit,
    FunctionCall,
    Message,
    ToolCall,
)


def _convert_content(content: ContentUnit | None) -> str | list[str | dict]:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return [part.model_dump() for part in content]


def _parse_arguments(arguments: str) -> dict[str, object]:
    # LangChain requires the arguments as a dictionary
    if not arguments.strip():
        return {}
    try:
        args = json.loads(arguments)
    except json.JSONDecodeError:
        return {'arguments': arguments}
    return args if isinstance(args, dict) else {'arguments': args}


def to_langchain_message(msg: Message) -> BaseMessage:
    """Convert a message into the LangChain message of its role."""
    content = _convert_content(msg.content)
    match msg.role:
        case 'system':
            return SystemMessage(content=content, name=msg.name)
        case 'user':
            return HumanMessage(content=content, name=msg.name)
        case 'assistant':
            tool_calls: list[LCToolCall] = [
                tool_call(
                    name=tc.function.name,
                    args=_parse_arguments(tc.function.arguments),
                    id=tc.id,
                )
                for tc in msg.tool_calls or []
            ]
            return AIMessage(content=content, tool_calls=tool_calls)
        case 'tool':
            return ToolMessage(
                content=content, tool_call_id=msg.tool_call_id or ""
            )
        case _:  # do not remove this
            raise ValueError(f"Invalid message role: {msg.role}")


def to_langchain_messages(state: ConversationState) -> list[BaseMessage]:
    """
    The messages of a conversation as LangChain messages, preceded by
    the system prompt if it is not blank.
    """
    lc_messages: list[BaseMessage] = []
    system_prompt = state.settings.system_prompt
    if system_prompt.strip():
        lc_messages.append(SystemMessage(content=system_prompt))
    lc_messages.extend(to_langchain_message(m) for m in state.messages)
    return lc_messages


def from_langchain_message(msg: BaseMessage) -> Message:
    """
    Convert the reply of a LangChain chat model into an assistant
    message. Content blocks other than text are dropped.
    """
    content = msg.content
    if isinstance(content, list):
        content = "\n".join(
            block if isinstance(block, str) else str(block.get('text', ""))
            for block in content
            if isinstance(block, str) or block.get('type') == 'text'
        )

    tool_calls: list[ToolCall] = []
    if isinstance(msg, AIMessage):
        for index, tc in enumerate(msg.tool_calls):
            tool_calls.append(
                ToolCall(
                    index=index,
                    id=tc.get('id'),
                    function=FunctionCall(
                        name=tc['name'],
                        arguments=json.dumps(tc['args']),
                    ),
                )
            )

    return Message(
        role='assistant',
        content=content or (None if tool_calls else ""),
        tool_calls=tool_calls or None,
    )
