"""
Pricing calculations.

Maps token counts to monetary cost using the configured per-token rates.
"""

from typing import Any, Optional

from prompt_cost_guard.config.loader import CostConfig, merge_cost_config


class CostModel:
    """Pure cost function over a replaceable CostConfig.

    cost = (input / 1000) * cost_per_input_token
         + (output / 1000) * cost_per_output_token
    """

    def __init__(self, config: Optional[CostConfig] = None):
        self._config = config or CostConfig()

    @property
    def config(self) -> CostConfig:
        return self._config

    def update(self, **changes: Any) -> CostConfig:
        """Swap in a validated merge of the current config and ``changes``."""
        self._config = merge_cost_config(self._config, changes)
        return self._config

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost for a token pair.

        Raises:
            ValueError: If either token count is negative
        """
        if input_tokens < 0:
            raise ValueError(f"input_tokens cannot be negative: {input_tokens}")
        if output_tokens < 0:
            raise ValueError(f"output_tokens cannot be negative: {output_tokens}")

        input_cost = (input_tokens / 1000) * self._config.cost_per_input_token
        output_cost = (output_tokens / 1000) * self._config.cost_per_output_token
        return input_cost + output_cost
