"""
Token counting.

The default counter is an approximation (1 token per 4 characters). Callers
that need exact counts for a specific backend inject their own TokenCounter.
"""

import math
from typing import Protocol


class TokenCounter(Protocol):
    """Anything that can turn text into a token count."""

    def count(self, text: str) -> int:
        ...


class HeuristicTokenCounter:
    """Approximate token counter: ceil(characters / chars_per_token).

    Not a real tokenizer. Good enough for budgeting decisions where the
    backend reports exact usage afterwards.
    """

    def __init__(self, chars_per_token: float = 4.0):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be > 0")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


DEFAULT_TOKEN_COUNTER = HeuristicTokenCounter()
