"""
Quality scoring.

Heuristic 0-100 estimate of how much an optimization degraded the intent of
a prompt. 100 means untouched.
"""

from typing import Tuple

from .token_counter import DEFAULT_TOKEN_COUNTER, TokenCounter

BASE_SCORE = 85.0
OVERCOMPRESSION_RATIO = 0.3
MODERATE_RATIO_RANGE = (0.5, 0.8)
MODERATE_BONUS = 5.0
KEY_INSTRUCTION_BONUS = 10.0
UNOPTIMIZED_SCORE = 100.0

ACTION_VERBS: Tuple[str, ...] = ("implement", "create", "build", "design", "analyze", "optimize")


def maintains_key_instructions(original: str, optimized: str) -> bool:
    """True when every action verb in ``original`` survives in ``optimized``."""
    original_lower = original.lower()
    optimized_lower = optimized.lower()
    present = [verb for verb in ACTION_VERBS if verb in original_lower]
    if not present:
        return False
    return all(verb in optimized_lower for verb in present)


def quality_score(
    original: str,
    optimized: str,
    token_counter: TokenCounter = DEFAULT_TOKEN_COUNTER,
) -> float:
    original_tokens = token_counter.count(original)
    optimized_tokens = token_counter.count(optimized)
    kept = optimized_tokens / original_tokens if original_tokens else 1.0

    score = BASE_SCORE
    if kept < OVERCOMPRESSION_RATIO:
        score -= (OVERCOMPRESSION_RATIO - kept) * 100
    elif MODERATE_RATIO_RANGE[0] <= kept <= MODERATE_RATIO_RANGE[1]:
        score += MODERATE_BONUS

    if maintains_key_instructions(original, optimized):
        score += KEY_INSTRUCTION_BONUS

    return max(0.0, min(100.0, score))
