"""
Token budget manager.

Facade that wires the cost model, ledger, approval gate, usage recorder and
alert engine together and exposes the in-process budget API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from prompt_cost_guard.config.loader import BudgetConfig, CostConfig, GuardConfig
from prompt_cost_guard.storage.repository import UsageRepository

from .alerts import AlertEngine, BudgetAlert
from .guardrails import ApprovalGate, BudgetApproval, BudgetRequest
from .ledger import BudgetAllocation, BudgetLedger, Clock, UsagePeriodStats
from .pricing import CostModel
from .recorder import UsageRecorder


class TokenBudgetManager:
    """Budget governance for one process or tenant.

    Create one instance and pass it to whatever needs approvals; there is no
    module-level singleton.
    """

    def __init__(
        self,
        cost_config: Optional[CostConfig] = None,
        budget_config: Optional[BudgetConfig] = None,
        repository: Optional[UsageRepository] = None,
        clock: Clock = datetime.now,
    ):
        self.cost_model = CostModel(cost_config)
        self.ledger = BudgetLedger(budget_config, clock=clock)
        self.alert_engine = AlertEngine(clock=clock)
        self.gate = ApprovalGate(self.cost_model, self.ledger)
        self.recorder = UsageRecorder(
            self.cost_model, self.ledger, self.alert_engine, repository=repository
        )

    @classmethod
    def from_config(
        cls,
        config: GuardConfig,
        repository: Optional[UsageRepository] = None,
        clock: Clock = datetime.now,
    ) -> "TokenBudgetManager":
        return cls(config.cost, config.budget, repository=repository, clock=clock)

    @property
    def cost_config(self) -> CostConfig:
        return self.cost_model.config

    @property
    def budget_config(self) -> BudgetConfig:
        return self.ledger.config

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return self.cost_model.cost(input_tokens, output_tokens)

    def request_approval(self, request: BudgetRequest) -> BudgetApproval:
        return self.gate.request_approval(request)

    def record_usage(
        self, request_id: str, actual_input_tokens: int, actual_output_tokens: int
    ) -> List[BudgetAlert]:
        return self.recorder.record_usage(request_id, actual_input_tokens, actual_output_tokens)

    def release_allocation(self, request_id: str) -> Optional[BudgetAllocation]:
        """Drop a reservation without committing usage (request abandoned)."""
        return self.ledger.pop_allocation(request_id)

    def sweep_expired_allocations(self, now: Optional[datetime] = None) -> List[BudgetAllocation]:
        return self.ledger.sweep_expired(now)

    def get_daily_usage(self) -> UsagePeriodStats:
        return self.ledger.daily

    def get_monthly_usage(self) -> UsagePeriodStats:
        return self.ledger.monthly

    def get_alerts(self) -> List[BudgetAlert]:
        return self.alert_engine.get_alerts()

    def get_active_allocations(self) -> List[BudgetAllocation]:
        return self.ledger.active_allocations()

    def get_remaining_budget(self) -> Dict[str, float]:
        return self.ledger.get_remaining()

    def get_projected_usage(self) -> Dict[str, float]:
        return self.ledger.get_projected()

    def update_budget_config(self, **changes: Any) -> BudgetConfig:
        return self.ledger.update_config(**changes)

    def update_cost_config(self, **changes: Any) -> CostConfig:
        return self.cost_model.update(**changes)

    def reset_daily_usage(self) -> None:
        self.ledger.reset_daily()

    def reset_monthly_usage(self) -> None:
        self.ledger.reset_monthly()


def create_token_budget_manager(
    cost_config: Optional[Dict[str, Any]] = None,
    budget_config: Optional[Dict[str, Any]] = None,
    repository: Optional[UsageRepository] = None,
) -> TokenBudgetManager:
    """Build a manager from partial settings merged over the defaults."""
    manager = TokenBudgetManager(repository=repository)
    if cost_config:
        manager.update_cost_config(**cost_config)
    if budget_config:
        manager.update_budget_config(**budget_config)
    return manager
