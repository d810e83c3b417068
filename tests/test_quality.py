"""
Unit tests for quality scoring.
"""

import pytest

from prompt_cost_guard.core.quality import maintains_key_instructions, quality_score


class TestKeyInstructions:

    def test_all_verbs_kept(self):
        assert maintains_key_instructions("Implement and test the cache", "implement cache")

    def test_verb_dropped(self):
        assert not maintains_key_instructions("Design and build the API", "build the API")

    def test_no_verbs_present(self):
        assert not maintains_key_instructions("Summarize the report", "Summarize the report")


class TestQualityScore:
    """Test the heuristic 0-100 score."""

    def test_unchanged_without_action_verbs(self):
        assert quality_score("Summarize the report", "Summarize the report") == 85

    def test_unchanged_with_action_verbs(self):
        assert quality_score("Implement the parser", "Implement the parser") == 95

    def test_moderate_reduction_bonus(self):
        original = "implement " + "x" * 90
        optimized = "implement " + "x" * 50
        # 15 of 25 tokens kept
        assert quality_score(original, optimized) == 100

    def test_overcompression_penalty(self):
        original = "y" * 400
        optimized = "y" * 40
        # 10% kept: 85 - (0.3 - 0.1) * 100
        assert quality_score(original, optimized) == pytest.approx(65)

    def test_empty_original(self):
        assert quality_score("", "") == 85

    @pytest.mark.parametrize("optimized", ["", "a", "a" * 200, "implement " * 50])
    def test_bounded(self, optimized):
        score = quality_score("Implement a caching layer for the service.", optimized)
        assert 0 <= score <= 100
