"""
Unit tests for pricing calculations.

Tests the per-1K-token cost formula, config updates and token counting.
"""

import pytest

from prompt_cost_guard.config.loader import CostConfig
from prompt_cost_guard.core.errors import InvalidConfiguration
from prompt_cost_guard.core.pricing import CostModel
from prompt_cost_guard.core.token_counter import HeuristicTokenCounter


class TestCostModel:
    """Test cost calculation accuracy."""

    def test_default_rates(self):
        model = CostModel()
        # 500/1000 * 0.00003 + 300/1000 * 0.00006
        assert model.cost(500, 300) == pytest.approx(0.000033)

    def test_zero_tokens_cost_nothing(self):
        assert CostModel().cost(0, 0) == 0.0

    def test_large_request(self):
        assert CostModel().cost(2_000_000_000, 1_000_000_000) == pytest.approx(120.0)

    def test_negative_tokens_raise(self):
        model = CostModel()
        with pytest.raises(ValueError, match="input_tokens cannot be negative"):
            model.cost(-1, 0)
        with pytest.raises(ValueError, match="output_tokens cannot be negative"):
            model.cost(0, -5)

    def test_update_changes_rates(self):
        model = CostModel()
        updated = model.update(cost_per_input_token=0.01)

        assert updated.cost_per_input_token == 0.01
        assert updated.cost_per_output_token == 0.00006
        assert model.cost(1000, 0) == pytest.approx(0.01)

    def test_update_rejects_unknown_key(self):
        model = CostModel()
        with pytest.raises(InvalidConfiguration, match="Unknown keys"):
            model.update(price=1.0)
        assert model.config == CostConfig()

    def test_update_rejects_negative_rate(self):
        with pytest.raises(InvalidConfiguration):
            CostModel().update(cost_per_output_token=-0.1)


class TestHeuristicTokenCounter:
    """Test the 4-characters-per-token approximation."""

    def test_rounds_up(self):
        counter = HeuristicTokenCounter()
        assert counter.count("abcd") == 1
        assert counter.count("abcde") == 2

    def test_empty_text(self):
        assert HeuristicTokenCounter().count("") == 0

    def test_custom_ratio(self):
        assert HeuristicTokenCounter(chars_per_token=2).count("abcdef") == 3

    def test_invalid_ratio(self):
        with pytest.raises(ValueError):
            HeuristicTokenCounter(chars_per_token=0)
