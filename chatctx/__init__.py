"""
Conversation context engine for chat completion endpoints.

Keeps the history of a chat within a token budget, builds the requests
sent to the endpoint and folds complete or streamed responses back
into the history.
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from .errors import ChatContextError, ConfigurationError, RemoteError
from .messages import Message, ToolCall, message_text
from .tokens import TokenEstimator, HeuristicTokenEstimator
from .tokens import estimate_tokens
from .config import ChatSettings
from .conversation import ConversationState
from .request_builder import build_payload, build_headers
from .reducer import reduce_response
from .streaming import (
    StreamFrame,
    StreamDecoder,
    StreamCollector,
    decode_stream,
    adecode_stream,
    fold_stream,
)
from .transport import ChatClient
