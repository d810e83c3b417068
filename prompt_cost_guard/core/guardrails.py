"""
Budget approval gate.

Approves or rejects a request before it reaches the backend.

Enforcement Order:
1. Per-request max cost - The caller's own ceiling for this request
2. Budget availability - Monthly hard cap, daily cap, low-priority reserve

Rejections are returned as BudgetApproval values carrying a reason and
alternatives; the gate never raises for a budget breach.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from .ledger import BudgetAllocation, BudgetLedger, Priority
from .pricing import CostModel

logger = logging.getLogger(__name__)

ALTERNATIVE_REDUCTION = 0.70

DEFER_STRATEGY = "use cached responses or defer to next budget period"
AGGRESSIVE_STRATEGY = "apply aggressive compression and remove examples"
MODERATE_STRATEGY = "reduce prompt complexity and use compression"


@dataclass(frozen=True)
class BudgetRequest:
    """Estimate submitted for approval before calling the backend."""
    request_id: str
    tool_name: str
    estimated_input_tokens: int
    estimated_output_tokens: int
    priority: Priority = Priority.MEDIUM
    max_cost: Optional[float] = None

    def __post_init__(self):
        """Validate estimates and normalise priority."""
        if not self.request_id:
            raise ValueError("request_id is required")
        if self.estimated_input_tokens < 0:
            raise ValueError("estimated_input_tokens cannot be negative")
        if self.estimated_output_tokens < 0:
            raise ValueError("estimated_output_tokens cannot be negative")
        if self.max_cost is not None and self.max_cost < 0:
            raise ValueError("max_cost cannot be negative")
        object.__setattr__(self, "priority", Priority(self.priority))


@dataclass(frozen=True)
class AllocatedTokens:
    input: int = 0
    output: int = 0


@dataclass(frozen=True)
class Alternatives:
    """Cheaper way forward offered with a rejection."""
    reduced_tokens: int
    fallback_strategy: str


@dataclass(frozen=True)
class BudgetApproval:
    approved: bool
    allocated_tokens: AllocatedTokens = field(default_factory=AllocatedTokens)
    estimated_cost: float = 0.0
    reason: Optional[str] = None
    alternatives: Optional[Alternatives] = None


class ApprovalGate:
    """Combines the cost model and ledger into approve/reject decisions."""

    def __init__(self, cost_model: CostModel, ledger: BudgetLedger):
        self.cost_model = cost_model
        self.ledger = ledger

    def request_approval(self, request: BudgetRequest) -> BudgetApproval:
        """Approve ``request`` and reserve an allocation, or explain why not.

        Args:
            request: Token estimate and priority for one backend call

        Returns:
            BudgetApproval; on rejection ``reason`` and ``alternatives`` are set
        """
        self.ledger.sweep_expired()

        estimated_cost = self.cost_model.cost(
            request.estimated_input_tokens, request.estimated_output_tokens
        )

        reason = None
        if request.max_cost is not None and estimated_cost > request.max_cost:
            reason = (
                f"Request cost ${estimated_cost:.4f} exceeds maximum allowed "
                f"${request.max_cost:.4f} for {request.tool_name}"
            )
        else:
            check = self.ledger.check_availability(estimated_cost, request.priority)
            if not check.available:
                reason = check.reason or "Budget check failed"

        if reason is not None:
            logger.info("Rejected request %s: %s", request.request_id, reason)
            return BudgetApproval(
                approved=False,
                reason=reason,
                alternatives=self.generate_alternatives(request),
            )

        now = self.ledger.now()
        ttl = timedelta(seconds=self.ledger.config.allocation_ttl_seconds)
        self.ledger.add_allocation(BudgetAllocation(
            request_id=request.request_id,
            tool_name=request.tool_name,
            estimated_input_tokens=request.estimated_input_tokens,
            estimated_output_tokens=request.estimated_output_tokens,
            estimated_cost=estimated_cost,
            priority=request.priority,
            created_at=now,
            expires_at=now + ttl,
        ))

        return BudgetApproval(
            approved=True,
            allocated_tokens=AllocatedTokens(
                input=request.estimated_input_tokens,
                output=request.estimated_output_tokens,
            ),
            estimated_cost=estimated_cost,
        )

    def generate_alternatives(self, request: BudgetRequest) -> Alternatives:
        """Suggest a token count the remaining daily budget can afford."""
        daily_remaining = self.ledger.get_remaining()["daily"]
        rate = self.cost_model.config.cost_per_input_token
        max_affordable = daily_remaining / rate if rate > 0 else math.inf

        requested = request.estimated_input_tokens
        reduced = min(requested * ALTERNATIVE_REDUCTION, max_affordable)

        if reduced < requested * 0.5:
            strategy = DEFER_STRATEGY
        elif reduced < requested * 0.8:
            strategy = AGGRESSIVE_STRATEGY
        else:
            strategy = MODERATE_STRATEGY

        return Alternatives(reduced_tokens=math.floor(reduced), fallback_strategy=strategy)
