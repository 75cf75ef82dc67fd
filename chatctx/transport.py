"""
Client executing the exchanges of a conversation with a chat
completion endpoint over HTTP.

The client performs one call per exchange: there are no retries, no
backoff and no caching, and no timeout unless one is given. Errors of
the endpoint are raised as `RemoteError`; errors of the network are
the exceptions of the requests library.

Example:
    ```python
    from chatctx.config import ChatSettings
    from chatctx.conversation import ConversationState
    from chatctx.transport import ChatClient

    state = ConversationState(ChatSettings(api_key="sk-..."))
    client = ChatClient(state)

    # complete response, or folded stream, per settings.stream
    reply = client.ask("Tell me a joke")

    # frame by frame
    state.user("And another one")
    for frame in client.stream():
        print(frame.text(), end="", flush=True)
    ```
"""

from collections.abc import Iterator
from typing import Any

import requests

from chatctx.conversation import ConversationState
from chatctx.errors import RemoteError
from chatctx.messages import ContentUnit, Message
from chatctx.reducer import reduce_response
from chatctx.request_builder import build_headers, build_payload
from chatctx.streaming import StreamFrame, decode_stream, fold_stream

# Set up default logger
from chatctx.utils.logging import LoggerBase


class ChatClient:
    """
    Sends the state of a conversation to the endpoint of its settings
    and folds the responses back into the state.

    Args:
        state: the conversation.
        session: the requests session used for the calls. A new
            session is created if not given.
        timeout: passed on to requests for every call. None waits
            indefinitely.
        logger: defaults to the logger of the conversation.
    """

    def __init__(
        self,
        state: ConversationState,
        *,
        session: requests.Session | None = None,
        timeout: float | tuple[float, float] | None = None,
        logger: LoggerBase | None = None,
    ) -> None:
        self.state = state
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or state.logger

    def _post(
        self, payload: dict[str, Any], stream: bool
    ) -> requests.Response:
        settings = self.state.settings
        return self.session.post(
            settings.endpoint,
            json=payload,
            headers=build_headers(settings),
            stream=stream,
            timeout=self.timeout,
        )

    def send(self) -> Message:
        """
        Request a complete response for the conversation and fold it
        into the state.

        Returns:
            the assistant message of the response.

        Raises:
            ConfigurationError: if the tool schema cannot be parsed.
            RemoteError: if the endpoint returns an error, or a body
                that is not JSON.
            requests.RequestException: for network errors.
        """
        payload = build_payload(self.state, stream=False)
        response = self._post(payload, stream=False)
        try:
            data = response.json()
        except requests.JSONDecodeError as e:
            raise RemoteError(response.text) from e
        if not isinstance(data, dict):
            raise RemoteError(response.text)
        return reduce_response(self.state, data)

    def stream(self) -> Iterator[StreamFrame]:
        """
        Request a streamed response for the conversation.

        The frames are returned as they are decoded and are not folded
        into the state; see fold_stream. If the connection fails while
        the body is read, the error is logged and the sequence ends
        early, with no frame signalling the interruption.

        Raises:
            ConfigurationError: if the tool schema cannot be parsed.
            RemoteError: if the endpoint answers with an error status.
            requests.RequestException: if the call cannot be made.
        """
        payload = build_payload(self.state, stream=True)
        response = self._post(payload, stream=True)
        if not response.ok:
            try:
                body = response.json()
            except requests.JSONDecodeError:
                raise RemoteError(response.text) from None
            raise RemoteError(
                body.get('error', body) if isinstance(body, dict) else body
            )
        return self._frames(response)

    def _frames(self, response: requests.Response) -> Iterator[StreamFrame]:
        with response:
            yield from decode_stream(
                self._chunks(response), logger=self.logger
            )

    def _chunks(self, response: requests.Response) -> Iterator[str]:
        if response.encoding is None:
            response.encoding = 'utf-8'
        try:
            for chunk in response.iter_content(
                chunk_size=None, decode_unicode=True
            ):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            self.logger.error(f"Stream interrupted: {e}")

    def ask(self, *contents: ContentUnit) -> Message:
        """
        Append user messages to the conversation and request the
        response, streamed or complete as set in the settings.

        Returns:
            the assistant message.
        """
        self.state.user(*contents)
        if self.state.settings.stream:
            return fold_stream(self.state, self.stream())
        return self.send()
