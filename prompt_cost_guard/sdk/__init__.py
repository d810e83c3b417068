"""
SDK for Prompt Cost Guard.

Provides budget-governed access to OpenAI chat completions.
"""

from .openai_client import BudgetRejected, GovernedOpenAI

__all__ = ["BudgetRejected", "GovernedOpenAI"]
