"""
Pattern-based prompt compression.

An ordered chain of rewrite rules followed by whitespace collapse and removal
of redundant lead-in phrases. Rules are plain objects so they can be reused
and tested one at a time.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Tuple


@dataclass(frozen=True)
class CompressionRule:
    """One named regex rewrite."""
    name: str
    pattern: Pattern
    replacement: str = ""

    @classmethod
    def compile(cls, name: str, pattern: str, replacement: str = "") -> "CompressionRule":
        return cls(name=name, pattern=re.compile(pattern, re.IGNORECASE), replacement=replacement)

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


@dataclass(frozen=True)
class CompressionResult:
    text: str
    improved: bool
    reason: str
    rules_applied: Tuple[str, ...] = ()


DEFAULT_RULES: Tuple[CompressionRule, ...] = (
    CompressionRule.compile(
        "verbose_requests",
        r"please\s+(?:kindly\s+)?(?:help\s+me\s+)?(?:to\s+)?",
    ),
    CompressionRule.compile(
        "redundant_politeness",
        r"\b(?:if\s+you\s+(?:would|could|can)|would\s+you\s+(?:mind|please)|could\s+you\s+(?:please|kindly))\b",
    ),
    CompressionRule.compile(
        "filler_words",
        r"\b(?:actually|basically|essentially|literally|obviously|clearly|simply)\s+",
    ),
    CompressionRule.compile(
        "redundant_phrases",
        r"\b(?:in\s+order\s+to|for\s+the\s+purpose\s+of)\b",
        "to",
    ),
    CompressionRule.compile(
        "verbose_conjunctions",
        r"\b(?:in\s+addition\s+to\s+that|furthermore|moreover|additionally)\b",
        "also",
    ),
)

REDUNDANT_LEAD_INS: Tuple[Pattern, ...] = (
    re.compile(r"\b(?:please\s+note\s+that|it\s+is\s+important\s+to\s+note\s+that)\b", re.IGNORECASE),
    re.compile(r"\b(?:as\s+you\s+can\s+see|as\s+mentioned\s+(?:above|before))\b", re.IGNORECASE),
)

_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.;:!?])")


class CompressionEngine:
    """Applies the rule chain and reports what changed."""

    def __init__(self, rules: Iterable[CompressionRule] = DEFAULT_RULES):
        self.rules: List[CompressionRule] = list(rules)

    def compress(self, text: str) -> CompressionResult:
        compressed = text
        applied = []

        # Lead-ins go first; "please note that" would otherwise lose its "please"
        for pattern in REDUNDANT_LEAD_INS:
            compressed = pattern.sub("", compressed)

        for rule in self.rules:
            before = len(compressed)
            compressed = rule.apply(compressed)
            if len(compressed) < before:
                applied.append(rule.name)

        compressed = _WHITESPACE.sub(" ", compressed).strip()
        compressed = _SPACE_BEFORE_PUNCT.sub(r"\1", compressed)

        # Replacement words can lengthen very short inputs
        if len(compressed) > len(text):
            compressed = text

        improved = len(compressed) < len(text)
        if improved:
            savings = round((len(text) - len(compressed)) / len(text) * 100)
            reason = f"Compression reduced length by {savings}% using {len(applied)} rules"
        else:
            reason = "No compression improvements found"

        return CompressionResult(
            text=compressed,
            improved=improved,
            reason=reason,
            rules_applied=tuple(applied),
        )
