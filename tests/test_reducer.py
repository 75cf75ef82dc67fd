"""Test folding of complete responses"""

import json
import unittest

from chatctx.config import ChatSettings
from chatctx.conversation import ConversationState
from chatctx.errors import RemoteError
from chatctx.messages import Message
from chatctx.reducer import reduce_response
from chatctx.request_builder import build_payload
from chatctx.utils.logging import LoglistLogger


def _state(n: int = 0, total: int = 0, max_tokens: int = 1000):
    state = ConversationState(
        ChatSettings(
            budget={'max_tokens': max_tokens, 'tokens_margin': 10}
        ),
        logger=LoglistLogger(),
    )
    state.restore(
        [
            Message(role='user', content=f"question {i}")
            for i in range(n)
        ],
        total_tokens=total,
    )
    return state


def _response(
    content: str | None = "hi",
    finish_reason: str = "stop",
    total_tokens: int | None = 50,
    **message: object,
) -> dict:
    payload: dict = {
        'id': "chatcmpl-1",
        'object': "chat.completion",
        'created': 1700000000,
        'model': "gpt-3.5-turbo",
        'choices': [
            {
                'index': 0,
                'message': {
                    'role': 'assistant',
                    'content': content,
                    **message,
                },
                'finish_reason': finish_reason,
            }
        ],
    }
    if total_tokens is not None:
        payload['usage'] = {
            'prompt_tokens': 10,
            'completion_tokens': total_tokens - 10,
            'total_tokens': total_tokens,
        }
    return payload


class TestReduce(unittest.TestCase):

    def test_appends_and_overwrites_total(self):
        state = _state(2, total=7)
        message = reduce_response(state, _response(total_tokens=123))
        self.assertEqual(state.total_tokens, 123)
        self.assertEqual(len(state), 3)
        self.assertEqual(state.messages[-1].role, 'assistant')
        self.assertEqual(state.messages[-1].content, "hi")
        self.assertEqual(message.content, "hi")

    def test_missing_usage(self):
        state = _state(2, total=7)
        reduce_response(state, _response(total_tokens=None))
        self.assertEqual(state.total_tokens, 0)

    def test_spec_scenario_length(self):
        payload = {
            "choices": [
                {
                    "finish_reason": "length",
                    "message": {"role": "assistant", "content": "hi"},
                }
            ],
            "usage": {"total_tokens": 50},
        }
        state = _state(8, total=10)
        reduce_response(state, payload)
        self.assertEqual(state.total_tokens, 50)
        # 9 messages after the append, 2 evicted although within budget
        self.assertEqual(len(state), 7)
        self.assertEqual(state.messages[-1].content, "hi")

    def test_soft_check_on_stop(self):
        state = _state(8, total=10, max_tokens=100)
        reduce_response(state, _response(total_tokens=95))
        self.assertEqual(len(state), 7)

        state = _state(8, total=10, max_tokens=100)
        reduce_response(state, _response(total_tokens=50))
        self.assertEqual(len(state), 9)

    def test_error_payload(self):
        state = _state(2, total=7)
        error = {
            'message': "Incorrect API key provided",
            'type': "invalid_request_error",
            'code': "invalid_api_key",
        }
        with self.assertRaises(RemoteError) as ctx:
            reduce_response(state, {'error': error})
        self.assertEqual(ctx.exception.error, error)
        self.assertEqual(json.loads(str(ctx.exception)), error)
        # state unmodified
        self.assertEqual(state.total_tokens, 7)
        self.assertEqual(len(state), 2)

    def test_tool_calls(self):
        state = _state()
        tool_calls = [
            {
                'index': 0,
                'id': "call_1",
                'type': "function",
                'function': {
                    'name': "get_weather",
                    'arguments': '{"city": "Rome"}',
                },
            }
        ]
        message = reduce_response(
            state, _response(content=None, tool_calls=tool_calls)
        )
        self.assertIsNone(message.content)
        assert message.tool_calls is not None
        self.assertEqual(message.tool_calls[0].id, "call_1")
        self.assertEqual(
            message.tool_calls[0].function.arguments, '{"city": "Rome"}'
        )
        self.assertEqual(state.messages[-1].tool_calls, message.tool_calls)

    def test_empty_response_placeholder(self):
        state = _state()
        payload = _response(content="")
        message = reduce_response(state, payload)
        self.assertTrue(message.content.startswith("Unparsed response: "))
        raw = message.content[len("Unparsed response: "):]
        self.assertEqual(json.loads(raw), payload)

    def test_no_choices(self):
        state = _state(1)
        payload = {'choices': [], 'usage': {'total_tokens': 3}}
        message = reduce_response(state, payload)
        self.assertIn("Unparsed response", message.content)
        self.assertEqual(len(state), 1)
        self.assertEqual(state.total_tokens, 3)


class TestRoundTrip(unittest.TestCase):

    def test_echo(self):
        state = ConversationState(
            ChatSettings(system_prompt="Repeat after me.")
        )
        state.user("hello there")
        body = build_payload(state, stream=False)

        # a mock endpoint echoing the last message
        last = body['messages'][-1]
        payload = {
            'choices': [
                {
                    'index': 0,
                    'message': {
                        'role': 'assistant',
                        'content': last['content'],
                    },
                    'finish_reason': 'stop',
                }
            ],
            'usage': {'total_tokens': 20},
        }
        reduce_response(state, payload)
        self.assertEqual(state.messages[-1].role, 'assistant')
        self.assertEqual(state.messages[-1].content, "hello there")
        self.assertEqual(
            [m['role'] for m in build_payload(state)['messages']],
            ['system', 'user', 'assistant'],
        )


if __name__ == "__main__":
    unittest.main()
