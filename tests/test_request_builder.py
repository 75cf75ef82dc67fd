"""Test request building"""

import json
import unittest

from chatctx.config import ChatSettings
from chatctx.conversation import ConversationState
from chatctx.errors import ConfigurationError
from chatctx.messages import FunctionCall, ImagePart, ImageURL, TextPart
from chatctx.messages import ToolCall
from chatctx.request_builder import (
    build_headers,
    build_payload,
    parse_tools,
)
from chatctx.utils.logging import LoglistLogger

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "get_weather",
            "description": "Current weather in a city",
            "parameters": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        },
    }
]


class TestPayload(unittest.TestCase):

    def test_minimal_payload(self):
        state = ConversationState(
            ChatSettings(
                sampling={'temperature_enabled': False},
                budget={'max_gen_tokens_enabled': False},
            )
        )
        state.user("hello")
        body = build_payload(state, stream=False)
        self.assertEqual(
            body,
            {
                'model': "gpt-3.5-turbo",
                'messages': [{'role': 'user', 'content': "hello"}],
                'stream': False,
                'presence_penalty': 0.0,
                'frequency_penalty': 0.0,
            },
        )

    def test_default_knobs(self):
        state = ConversationState(ChatSettings())
        body = build_payload(state)
        self.assertTrue(body['stream'])
        self.assertEqual(body['temperature'], 0.7)
        self.assertEqual(body['max_tokens'], 2048)
        self.assertNotIn('top_p', body)
        self.assertNotIn('response_format', body)
        self.assertNotIn('tools', body)

    def test_enabled_knobs(self):
        state = ConversationState(
            ChatSettings(
                sampling={
                    'top_p': 0.5,
                    'top_p_enabled': True,
                    'json_mode': True,
                    'presence_penalty': 0.5,
                    'frequency_penalty': -0.5,
                },
            )
        )
        body = build_payload(state, stream=True)
        self.assertEqual(body['top_p'], 0.5)
        self.assertEqual(body['response_format'], {'type': 'json_object'})
        self.assertEqual(body['presence_penalty'], 0.5)
        self.assertEqual(body['frequency_penalty'], -0.5)
        self.assertTrue(body['stream'])

    def test_system_prompt_prepended(self):
        state = ConversationState(
            ChatSettings(system_prompt="You are terse.")
        )
        state.user("hello")
        messages = build_payload(state)['messages']
        self.assertEqual(
            messages[0], {'role': 'system', 'content': "You are terse."}
        )
        self.assertEqual(messages[1]['role'], 'user')

    def test_blank_system_prompt_omitted(self):
        state = ConversationState(ChatSettings(system_prompt="  \n "))
        state.user("hello")
        messages = build_payload(state)['messages']
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0]['role'], 'user')

    def test_message_order_and_linkage(self):
        state = ConversationState(ChatSettings())
        state.user("weather in Rome?")
        call = ToolCall(
            index=0,
            id="call_1",
            function=FunctionCall(
                name="get_weather", arguments='{"city": "Rome"}'
            ),
        )
        state.append('assistant', None, tool_calls=[call])
        state.tool("sunny", tool_call_id="call_1")
        messages = build_payload(state)['messages']
        self.assertEqual(
            [m['role'] for m in messages], ['user', 'assistant', 'tool']
        )
        self.assertNotIn('content', messages[1])
        self.assertEqual(messages[1]['tool_calls'][0]['id'], "call_1")
        self.assertEqual(
            messages[1]['tool_calls'][0]['function']['arguments'],
            '{"city": "Rome"}',
        )
        self.assertEqual(messages[2]['tool_call_id'], "call_1")

    def test_multipart_content(self):
        state = ConversationState(ChatSettings())
        state.user(
            [
                TextPart(text="what is this?"),
                ImagePart(
                    image_url=ImageURL(
                        url="https://example.com/x.png", detail='high'
                    )
                ),
            ]
        )
        content = build_payload(state)['messages'][0]['content']
        self.assertEqual(
            content,
            [
                {'type': 'text', 'text': "what is this?"},
                {
                    'type': 'image_url',
                    'image_url': {
                        'url': "https://example.com/x.png",
                        'detail': 'high',
                    },
                },
            ],
        )

    def test_payload_is_json(self):
        state = ConversationState(
            ChatSettings(tools_string=json.dumps(TOOLS))
        )
        state.user("hello")
        json.dumps(build_payload(state))

    def test_advisory_warnings_do_not_block(self):
        logs = LoglistLogger()
        state = ConversationState(ChatSettings(), logger=logs)
        state.user("hello")
        state.append('system', "late system message")
        body = build_payload(state)
        self.assertEqual(len(body['messages']), 2)
        self.assertEqual(logs.count_logs(level=1), 1)


class TestTools(unittest.TestCase):

    def test_tools_attached(self):
        state = ConversationState(
            ChatSettings(tools_string=json.dumps(TOOLS, indent=2))
        )
        self.assertEqual(build_payload(state)['tools'], TOOLS)

    def test_blank_tools(self):
        self.assertIsNone(parse_tools(""))
        self.assertIsNone(parse_tools("  \n"))

    def test_invalid_json(self):
        state = ConversationState(
            ChatSettings(tools_string="[{'type': 'function'}]")
        )
        with self.assertRaises(ConfigurationError):
            build_payload(state)

    def test_not_a_list(self):
        with self.assertRaises(ConfigurationError):
            parse_tools('{"type": "function"}')
        with self.assertRaises(ConfigurationError):
            parse_tools('[1, 2]')

    def test_configuration_error_is_value_error(self):
        with self.assertRaises(ValueError):
            parse_tools("not json")


class TestHeaders(unittest.TestCase):

    def test_no_credential(self):
        self.assertEqual(
            build_headers(ChatSettings()),
            {'Content-Type': 'application/json'},
        )

    def test_bearer(self):
        settings = ChatSettings(api_key="sk-test")
        headers = build_headers(settings)
        self.assertEqual(headers['Authorization'], "Bearer sk-test")

    def test_credential_not_in_body(self):
        state = ConversationState(ChatSettings(api_key="sk-test"))
        state.user("hello")
        self.assertNotIn("sk-test", json.dumps(build_payload(state)))


if __name__ == "__main__":
    unittest.main()
