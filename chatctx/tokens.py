"""
Local estimate of the token cost of message content.

The estimate requires no tokenizer and no network access. It is an
approximation that is superseded by the token usage reported by the
endpoint, whenever that is available: a conversation overwrites its
running total with the reported value, and never averages it with the
local estimate.

The default strategy counts wide (non-ASCII) code points separately
from the rest of the text, since these are encoded into more tokens:

    tokens = wide * 4/3 + (total - wide) / 4

truncated toward zero. Images are charged a fixed cost that depends
only on the requested detail level.

Example:
    ```python
    from chatctx.tokens import estimate_tokens

    estimate_tokens("Hello world!")  # 3
    ```
"""

from abc import ABC, abstractmethod

from chatctx.messages import ContentUnit, ImagePart, TextPart

LOW_DETAIL_IMAGE_TOKENS = 65
HIGH_DETAIL_IMAGE_TOKENS = 4 * LOW_DETAIL_IMAGE_TOKENS


class TokenEstimator(ABC):
    """Strategy computing the token cost of a content unit."""

    @abstractmethod
    def estimate(self, content: ContentUnit | None) -> int:
        """
        Estimate the token cost of content.

        Args:
            content: plain text, a list of content parts, or None for
                messages without content.

        Returns:
            a non-negative number of tokens.
        """
        pass


class HeuristicTokenEstimator(TokenEstimator):
    """Estimates tokens from character counts, see module doc."""

    def estimate_text(self, text: str) -> int:
        wide = sum(1 for char in text if ord(char) > 0x7F)
        narrow = len(text) - wide
        # wide * 4/3 + narrow / 4, on a common denominator
        return (16 * wide + 3 * narrow) // 12

    def estimate(self, content: ContentUnit | None) -> int:
        if content is None:
            return 0
        if isinstance(content, str):
            return self.estimate_text(content)

        tokens = 0
        for part in content:
            match part:
                case TextPart():
                    tokens += self.estimate_text(part.text)
                case ImagePart():
                    if part.image_url.detail == 'high':
                        tokens += HIGH_DETAIL_IMAGE_TOKENS
                    else:
                        tokens += LOW_DETAIL_IMAGE_TOKENS
        return tokens


default_estimator: TokenEstimator = HeuristicTokenEstimator()


def estimate_tokens(content: ContentUnit | None) -> int:
    """Estimate the token cost of content with the default
    estimator."""
    return default_estimator.estimate(content)
