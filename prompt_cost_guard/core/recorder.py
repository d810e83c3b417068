"""
Usage reconciliation.

Commits actual usage for an approved request, retires its allocation and
reports how far the estimate was off.
"""

import logging
from typing import List, Optional

from prompt_cost_guard.storage.models import UsageVarianceEvent
from prompt_cost_guard.storage.repository import UsageRepository

from .alerts import AlertEngine, BudgetAlert
from .errors import UnknownAllocation
from .ledger import BudgetLedger
from .pricing import CostModel

logger = logging.getLogger(__name__)


class UsageRecorder:
    """Reconciles estimated versus actual usage after a request completes."""

    def __init__(
        self,
        cost_model: CostModel,
        ledger: BudgetLedger,
        alert_engine: AlertEngine,
        repository: Optional[UsageRepository] = None,
    ):
        self.cost_model = cost_model
        self.ledger = ledger
        self.alert_engine = alert_engine
        self.repository = repository

    def record_usage(
        self, request_id: str, actual_input_tokens: int, actual_output_tokens: int
    ) -> List[BudgetAlert]:
        """Commit actual usage for ``request_id``.

        Unknown request ids are logged and ignored; the ledger is untouched.

        Returns:
            Alerts raised by this update (possibly empty)
        """
        allocation = self.ledger.pop_allocation(request_id)
        if allocation is None:
            logger.warning("%s", UnknownAllocation(request_id))
            return []

        try:
            actual_cost = self.cost_model.cost(actual_input_tokens, actual_output_tokens)
            daily, monthly = self.ledger.record_usage(
                actual_input_tokens, actual_output_tokens, actual_cost
            )
        except ValueError:
            self.ledger.add_allocation(allocation)
            raise

        alerts = self.alert_engine.evaluate(daily, monthly, self.ledger.config)

        event = UsageVarianceEvent(
            timestamp=self.ledger.now(),
            request_id=request_id,
            tool_name=allocation.tool_name,
            estimated_input_tokens=allocation.estimated_input_tokens,
            estimated_output_tokens=allocation.estimated_output_tokens,
            estimated_cost=allocation.estimated_cost,
            actual_input_tokens=actual_input_tokens,
            actual_output_tokens=actual_output_tokens,
            actual_cost=actual_cost,
        )
        self._log_variance(event)
        return alerts

    def _log_variance(self, event: UsageVarianceEvent) -> None:
        logger.info(
            "Usage logged for %s: estimated=(in=%d, out=%d, cost=%.6f) "
            "actual=(in=%d, out=%d, cost=%.6f) variance=(in=%+d, out=%+d, cost=%+.6f)",
            event.request_id,
            event.estimated_input_tokens,
            event.estimated_output_tokens,
            event.estimated_cost,
            event.actual_input_tokens,
            event.actual_output_tokens,
            event.actual_cost,
            event.input_variance,
            event.output_variance,
            event.cost_variance,
        )
        if self.repository is not None:
            self.repository.record(event)
