"""
Data models for storage layer.

Defines the persisted record of estimated versus actual usage.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class UsageVarianceEvent:
    """Immutable record of one reconciled request.

    Append-only events that create an auditable ledger of how far actual
    usage drifted from the approved estimate. Once written, these records
    must never be modified.
    """
    timestamp: datetime
    request_id: str
    tool_name: str
    estimated_input_tokens: int
    estimated_output_tokens: int
    estimated_cost: float
    actual_input_tokens: int
    actual_output_tokens: int
    actual_cost: float

    @property
    def input_variance(self) -> int:
        return self.actual_input_tokens - self.estimated_input_tokens

    @property
    def output_variance(self) -> int:
        return self.actual_output_tokens - self.estimated_output_tokens

    @property
    def cost_variance(self) -> float:
        return self.actual_cost - self.estimated_cost

    @property
    def actual_total_tokens(self) -> int:
        return self.actual_input_tokens + self.actual_output_tokens
