"""
State of a chat conversation and its token budget.

A `ConversationState` owns the ordered history of the messages
exchanged with the model, the running total of the tokens that the
history costs, and the settings with which requests are built. It is
meant to be owned by one caller for a conversation session; there is
no locking, and append/send cycles on the same state must not
overlap.

The running total is maintained incrementally. Appending a message
adds the estimated cost of its content; a response from the endpoint
overwrites the total with the usage reported there. After each append
the budget is checked, and if the total plus the safety margin reaches
the ceiling the oldest messages are evicted:

    ```python
    from chatctx.conversation import ConversationState
    from chatctx.config import ChatSettings

    state = ConversationState(
        ChatSettings(system_prompt="You are a helpful assistant.")
    )
    state.user("What is the capital of France?")
    print(state.stats())
    ```

Eviction drops a quarter of the history (at least two messages) from
the front and does not recompute the total: the total is corrected
by the next usage report of the endpoint, or by `rescan_tokens`.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from chatctx.config import ChatSettings
from chatctx.messages import ContentUnit, Message, Role, ToolCall
from chatctx.tokens import TokenEstimator, default_estimator

# Set up default logger
from chatctx.utils import logger as default_logger
from chatctx.utils.logging import LoggerBase

MIN_EVICTED_MESSAGES = 2


def eviction_count(message_count: int) -> int:
    """The number of messages dropped by a hard eviction of a history
    of message_count messages."""
    return min(
        max(message_count // 4, MIN_EVICTED_MESSAGES), message_count
    )


class ConversationState:
    """
    The history, token total and settings of a conversation.

    Args:
        settings: the settings of the conversation. Defaults to the
            settings read from the configuration sources.
        estimator: the strategy estimating the token cost of
            content.
        logger: receives the advisory warnings and the eviction
            notices.
    """

    def __init__(
        self,
        settings: ChatSettings | None = None,
        *,
        estimator: TokenEstimator | None = None,
        logger: LoggerBase | None = None,
    ) -> None:
        self.settings: ChatSettings = settings or ChatSettings()
        self.estimator: TokenEstimator = estimator or default_estimator
        self.logger: LoggerBase = logger or default_logger
        self._messages: list[Message] = []
        self.total_tokens: int = self.estimator.estimate(
            self.settings.system_prompt
        )

    @property
    def messages(self) -> tuple[Message, ...]:
        """The history, oldest message first."""
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    # append ------------------------------------------------------------
    def append_message(
        self, message: Message, *, check: bool = True
    ) -> Message:
        """Append a message, add its estimated cost to the running
        total and, unless check is False, check the budget."""
        self._messages.append(message)
        self.total_tokens += self.estimator.estimate(message.content)
        if check:
            self.check_budget()
        return message

    def append(
        self,
        role: Role,
        content: ContentUnit | None,
        *,
        name: str | None = None,
        tool_calls: Sequence[ToolCall] | None = None,
        tool_call_id: str | None = None,
    ) -> Message:
        """
        Create a message and append it to the history.

        Returns:
            the appended message.

        Raises:
            ValidationError: if the arguments do not form a valid
                message, e.g. an empty list of content parts.
        """
        message = Message(
            role=role,
            content=content,
            name=name,
            tool_calls=list(tool_calls) if tool_calls else None,
            tool_call_id=tool_call_id,
        )
        return self.append_message(message)

    def user(self, *contents: ContentUnit) -> None:
        """Append user messages, checking the budget after each."""
        for content in contents:
            self.append('user', content)

    def assistant(self, *contents: ContentUnit) -> None:
        """Append assistant messages, checking the budget after
        each."""
        for content in contents:
            self.append('assistant', content)

    def tool(self, content: ContentUnit, tool_call_id: str) -> Message:
        """Append the result of a tool call."""
        return self.append('tool', content, tool_call_id=tool_call_id)

    def record_response(self, message: Message) -> None:
        """Append a message returned by the endpoint, whose cost is
        already accounted for in the usage reported by the endpoint.
        The budget is not checked."""
        self._messages.append(message)

    # eviction ----------------------------------------------------------
    def over_budget(self) -> bool:
        """True if the running total plus the margin reaches the
        ceiling."""
        budget = self.settings.budget
        return self.total_tokens + budget.tokens_margin >= budget.max_tokens

    def check_budget(self) -> int:
        """
        Evict the oldest messages if the conversation is over budget.

        Returns:
            the number of evicted messages.
        """
        if self.over_budget():
            return self.evict()
        return 0

    def evict(self) -> int:
        """
        Drop the oldest max(N/4, 2) messages of the history
        unconditionally. The running total is not recomputed.

        Returns:
            the number of evicted messages.
        """
        count = eviction_count(len(self._messages))
        if count:
            del self._messages[:count]
            self.logger.info(
                f"Evicted {count} messages, {len(self._messages)} left "
                + f"(total tokens {self.total_tokens})"
            )
        return count

    def forget_all(self) -> None:
        """Clear the history. The system prompt and the settings are
        kept."""
        self._messages.clear()
        self.total_tokens = self.estimator.estimate(
            self.settings.system_prompt
        )

    # recomputation -----------------------------------------------------
    def rescan_tokens(self) -> int:
        """Recompute the running total from the system prompt and the
        messages of the history.

        Returns:
            the new running total.
        """
        self.total_tokens = self.estimator.estimate(
            self.settings.system_prompt
        ) + sum(self.estimator.estimate(m.content) for m in self._messages)
        return self.total_tokens

    def restore(
        self,
        messages: Iterable[Message | dict[str, Any]],
        total_tokens: int | None = None,
    ) -> None:
        """
        Replace the history, for example with messages read from
        storage. The budget is not checked.

        Args:
            messages: the messages, as Message objects or as their
                dictionary representation.
            total_tokens: the running total saved with the messages.
                If None, the total is recomputed with rescan_tokens.
        """
        self._messages = [
            m if isinstance(m, Message) else Message.model_validate(m)
            for m in messages
        ]
        if total_tokens is None:
            self.rescan_tokens()
        else:
            self.total_tokens = total_tokens

    def configure(self, **overrides: Any) -> ChatSettings:
        """Replace the settings with a copy with the given fields
        modified (see ChatSettings.from_instance)."""
        self.settings = self.settings.from_instance(**overrides)
        return self.settings

    # diagnostics -------------------------------------------------------
    def validate_history(self) -> list[str]:
        """
        Check the structure of the history. Anomalies are logged as
        warnings and returned, but do not prevent sending the
        history.

        Returns:
            the list of the warnings, empty if there are none.
        """
        warnings: list[str] = []
        leading = True
        for i, msg in enumerate(self._messages):
            if msg.role != 'system':
                leading = False
            elif not leading:
                warnings.append(
                    f"system message at position {i} in the middle of "
                    + "the history"
                )
        for i, msg in enumerate(self._messages):
            if msg.name and msg.role != 'system':
                warnings.append(
                    f"message at position {i} has name '{msg.name}' "
                    + f"but role '{msg.role}' instead of 'system'"
                )

        for warning in warnings:
            self.logger.warning(warning)
        return warnings

    def stats(self) -> str:
        budget = self.settings.budget
        return (
            f"total_tokens: {self.total_tokens}\n"
            f"max_tokens: {budget.max_tokens}\n"
            f"tokens_margin: {budget.tokens_margin}\n"
            f"messages.length: {len(self._messages)}"
        )
