"""
Prompt Cost Guard.

Token budget governance and budget-aware prompt optimization for metered
LLM backends.
"""

from prompt_cost_guard.config.loader import BudgetConfig, CostConfig, GuardConfig, load_config
from prompt_cost_guard.core.guardrails import BudgetApproval, BudgetRequest
from prompt_cost_guard.core.ledger import Priority
from prompt_cost_guard.core.manager import TokenBudgetManager, create_token_budget_manager
from prompt_cost_guard.core.optimizer import (
    OptimizationResult,
    PromptOptimizer,
    create_prompt_optimizer,
)
from prompt_cost_guard.core.strategy import OptimizationRequest

__version__ = "0.1.0"

__all__ = [
    "BudgetApproval",
    "BudgetConfig",
    "BudgetRequest",
    "CostConfig",
    "GuardConfig",
    "OptimizationRequest",
    "OptimizationResult",
    "Priority",
    "PromptOptimizer",
    "TokenBudgetManager",
    "create_prompt_optimizer",
    "create_token_budget_manager",
    "load_config",
]
