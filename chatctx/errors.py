"""
Exceptions raised by the chat context engine.

Only two conditions are raised to the caller: a malformed
configuration detected before any call to the endpoint, and an error
reported by the endpoint itself. Decoding failures of streamed lines
and structural anomalies of the history are logged, not raised.
"""

import json
from typing import Any


class ChatContextError(Exception):
    """Base class of the exceptions of this package."""


class ConfigurationError(ChatContextError, ValueError):
    """The settings cannot be turned into a valid request, for
    example because the tool schema text is not a JSON list."""


class RemoteError(ChatContextError, RuntimeError):
    """
    The endpoint answered with an error payload.

    Attributes:
        error: the error object as returned by the endpoint. The
            exception message is its JSON serialization.
    """

    def __init__(self, error: Any) -> None:
        self.error = error
        if isinstance(error, str):
            message = error
        else:
            message = json.dumps(error, ensure_ascii=False)
        super().__init__(message)
