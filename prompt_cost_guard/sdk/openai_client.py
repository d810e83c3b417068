"""
Governed OpenAI client wrapper.

Every chat completion goes through budget approval first and commits the
actual usage reported by the API afterwards.
"""

import logging
import math
import uuid
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.errors import BudgetExceeded
from ..core.guardrails import BudgetApproval, BudgetRequest
from ..core.ledger import Priority
from ..core.manager import TokenBudgetManager
from ..core.optimizer import PromptOptimizer
from ..core.strategy import OptimizationRequest
from ..core.token_counter import DEFAULT_TOKEN_COUNTER, TokenCounter

logger = logging.getLogger(__name__)


class BudgetRejected(BudgetExceeded):
    """Approval was denied; ``approval`` carries the reason and alternatives."""

    def __init__(self, approval: BudgetApproval):
        super().__init__(approval.reason or "Budget approval denied", approval.reason or "")
        self.approval = approval


class GovernedOpenAI:
    """OpenAI client wrapper that asks the budget before every call.

    Failures are loud: API errors propagate after the reservation is
    released, and a denied approval raises BudgetRejected.
    """

    def __init__(
        self,
        model: str,
        tool_name: str,
        manager: Optional[TokenBudgetManager] = None,
        optimizer: Optional[PromptOptimizer] = None,
        token_counter: TokenCounter = DEFAULT_TOKEN_COUNTER,
    ):
        """Initialize governed OpenAI client.

        Args:
            model: OpenAI model name (required)
            tool_name: Caller identifier used for allocations (required)
            manager: Budget manager; a default one is created when omitted
            optimizer: When set, the last user message is optimized first
            token_counter: Used to estimate input tokens before the call

        Raises:
            ValueError: If model or tool_name is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not tool_name or not tool_name.strip():
            raise ValueError("tool_name is required and cannot be empty")

        self.model = model
        self.tool_name = tool_name
        self.manager = manager or (optimizer.budget_manager if optimizer else TokenBudgetManager())
        self.optimizer = optimizer
        self.token_counter = token_counter
        self.client = OpenAI()

    def chat(
        self,
        messages: List[Dict[str, str]],
        priority: Priority = Priority.MEDIUM,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs: Any
    ):
        """Create a chat completion within the budget.

        Args:
            messages: List of message dictionaries (required)
            priority: Budget priority of this call
            max_tokens: Maximum tokens to generate; also the output estimate
            temperature: Sampling temperature (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty or the response has no usage
            BudgetRejected: If the budget denies the call
            OpenAI API errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        messages = self._optimize_messages(messages)

        input_tokens = sum(self.token_counter.count(m.get("content") or "") for m in messages)
        output_tokens = max_tokens if max_tokens is not None else math.ceil(input_tokens * 0.5)
        request_id = f"chat_{uuid.uuid4().hex}"

        approval = self.manager.request_approval(BudgetRequest(
            request_id=request_id,
            tool_name=self.tool_name,
            estimated_input_tokens=input_tokens,
            estimated_output_tokens=output_tokens,
            priority=priority,
        ))
        if not approval.approved:
            raise BudgetRejected(approval)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception:
            self.manager.release_allocation(request_id)
            raise

        usage = response.usage
        if not usage:
            self.manager.release_allocation(request_id)
            raise ValueError("OpenAI response missing usage information")

        self.manager.record_usage(request_id, usage.prompt_tokens, usage.completion_tokens)
        return response

    def _optimize_messages(self, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        if self.optimizer is None:
            return messages

        for index in range(len(messages) - 1, -1, -1):
            if messages[index].get("role") == "user":
                break
        else:
            return messages

        # the chat call commits the real usage
        result = self.optimizer.optimize(OptimizationRequest(
            tool_name=self.tool_name,
            original_prompt=messages[index].get("content") or "",
        ), commit_usage=False)
        if not result.success:
            logger.info("Sending original prompt for %s: %s", self.tool_name, result.reason)
            return messages

        optimized = list(messages)
        optimized[index] = {**messages[index], "content": result.optimized_prompt}
        return optimized
