"""
Budget ledger: rolling daily/monthly usage and in-flight allocations.

One ledger instance is owned per process or tenant and injected into the
components that need it. Every mutation happens under a single lock; period
statistics are frozen snapshots that are replaced on each update, so readers
never observe a half-applied change.
"""

import calendar
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from prompt_cost_guard.config.loader import BudgetConfig, merge_budget_config

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

HIGH_PRIORITY_OVERAGE = 1.10


class Priority(str, Enum):
    """Request priority used by the availability policy."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Period(str, Enum):
    """Budget period kinds."""
    DAILY = "daily"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class TokenTotals:
    input: int = 0
    output: int = 0
    total: int = 0


@dataclass(frozen=True)
class UsagePeriodStats:
    """Accumulated usage for one budget period."""
    period: Period
    start_date: datetime
    end_date: datetime
    total_tokens: TokenTotals = field(default_factory=TokenTotals)
    total_cost: float = 0.0
    request_count: int = 0
    average_tokens_per_request: float = 0.0

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date

    def add(self, input_tokens: int, output_tokens: int, cost: float) -> "UsagePeriodStats":
        """Return a new snapshot with one more request accounted for."""
        totals = TokenTotals(
            input=self.total_tokens.input + input_tokens,
            output=self.total_tokens.output + output_tokens,
            total=self.total_tokens.total + input_tokens + output_tokens,
        )
        request_count = self.request_count + 1
        return replace(
            self,
            total_tokens=totals,
            total_cost=self.total_cost + cost,
            request_count=request_count,
            average_tokens_per_request=totals.total / request_count,
        )


@dataclass(frozen=True)
class BudgetAllocation:
    """Reserved-but-uncommitted estimate for one in-flight request."""
    request_id: str
    tool_name: str
    estimated_input_tokens: int
    estimated_output_tokens: int
    estimated_cost: float
    priority: Priority
    created_at: datetime
    expires_at: datetime

    def is_expired(self, moment: datetime) -> bool:
        return moment >= self.expires_at


@dataclass(frozen=True)
class AvailabilityCheck:
    available: bool
    reason: Optional[str] = None


def period_bounds(period: Period, moment: datetime) -> Tuple[datetime, datetime]:
    """Start and (inclusive) end of the period containing ``moment``."""
    if period == Period.DAILY:
        start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1) - timedelta(microseconds=1)
    else:
        start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        days_in_month = calendar.monthrange(moment.year, moment.month)[1]
        end = start + timedelta(days=days_in_month) - timedelta(microseconds=1)
    return start, end


def new_period_stats(period: Period, moment: datetime) -> UsagePeriodStats:
    start, end = period_bounds(period, moment)
    return UsagePeriodStats(period=period, start_date=start, end_date=end)


class BudgetLedger:
    """Thread-safe usage counters plus the active-allocation map."""

    def __init__(self, config: Optional[BudgetConfig] = None, clock: Clock = datetime.now):
        self._config = config or BudgetConfig()
        self._clock = clock
        self._lock = threading.RLock()
        now = clock()
        self._daily = new_period_stats(Period.DAILY, now)
        self._monthly = new_period_stats(Period.MONTHLY, now)
        self._allocations: Dict[str, BudgetAllocation] = {}

    @property
    def config(self) -> BudgetConfig:
        return self._config

    def now(self) -> datetime:
        return self._clock()

    def update_config(self, **changes) -> BudgetConfig:
        with self._lock:
            self._config = merge_budget_config(self._config, changes)
            return self._config

    # -- periods -----------------------------------------------------------

    def _roll_periods(self, now: datetime) -> None:
        if not self._daily.contains(now):
            logger.info("Daily budget period rolled over at %s", now.isoformat())
            self._daily = new_period_stats(Period.DAILY, now)
        if not self._monthly.contains(now):
            logger.info("Monthly budget period rolled over at %s", now.isoformat())
            self._monthly = new_period_stats(Period.MONTHLY, now)

    def reset_daily(self) -> None:
        with self._lock:
            self._daily = new_period_stats(Period.DAILY, self._clock())

    def reset_monthly(self) -> None:
        with self._lock:
            self._monthly = new_period_stats(Period.MONTHLY, self._clock())

    def snapshot(self) -> Tuple[UsagePeriodStats, UsagePeriodStats]:
        """Current (daily, monthly) statistics after any due rollover."""
        with self._lock:
            self._roll_periods(self._clock())
            return self._daily, self._monthly

    @property
    def daily(self) -> UsagePeriodStats:
        return self.snapshot()[0]

    @property
    def monthly(self) -> UsagePeriodStats:
        return self.snapshot()[1]

    # -- policy ------------------------------------------------------------

    def check_availability(self, cost: float, priority: Priority) -> AvailabilityCheck:
        """Decide whether ``cost`` fits the remaining budget at ``priority``.

        Monthly budget is a hard cap. Daily budget allows high priority
        requests a 10% overage. Low priority requests may not dip into the
        reserve share of the daily budget.
        """
        priority = Priority(priority)
        with self._lock:
            self._roll_periods(self._clock())
            config = self._config
            daily_remaining = config.daily_budget - self._daily.total_cost
            monthly_remaining = config.monthly_budget - self._monthly.total_cost

        if cost > monthly_remaining:
            return AvailabilityCheck(
                available=False,
                reason=(
                    f"Request exceeds monthly budget. Remaining: ${monthly_remaining:.2f}, "
                    f"Requested: ${cost:.2f}"
                ),
            )

        if cost > daily_remaining:
            if priority == Priority.HIGH and cost <= daily_remaining * HIGH_PRIORITY_OVERAGE:
                return AvailabilityCheck(available=True)
            return AvailabilityCheck(
                available=False,
                reason=(
                    f"Request exceeds daily budget. Remaining: ${daily_remaining:.2f}, "
                    f"Requested: ${cost:.2f}"
                ),
            )

        reserve_amount = config.daily_budget * config.reserve_percentage
        available_for_low = daily_remaining - reserve_amount
        if priority == Priority.LOW and cost > available_for_low:
            return AvailabilityCheck(
                available=False,
                reason=(
                    f"Low priority request exceeds available non-reserve budget. "
                    f"Available: ${available_for_low:.2f}"
                ),
            )

        return AvailabilityCheck(available=True)

    # -- usage -------------------------------------------------------------

    def record_usage(
        self, input_tokens: int, output_tokens: int, cost: float
    ) -> Tuple[UsagePeriodStats, UsagePeriodStats]:
        """Commit actual usage to both periods and return the new snapshots."""
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts cannot be negative")
        if cost < 0:
            raise ValueError("cost cannot be negative")
        with self._lock:
            self._roll_periods(self._clock())
            self._daily = self._daily.add(input_tokens, output_tokens, cost)
            self._monthly = self._monthly.add(input_tokens, output_tokens, cost)
            return self._daily, self._monthly

    def get_remaining(self) -> Dict[str, float]:
        daily, monthly = self.snapshot()
        config = self._config
        return {
            "daily": max(0, config.daily_budget - daily.total_cost),
            "monthly": max(0, config.monthly_budget - monthly.total_cost),
        }

    def get_projected(self) -> Dict[str, float]:
        """Extrapolate spend over the rest of each period from the current rate."""
        daily, monthly = self.snapshot()
        now = self._clock()
        return {
            "daily": _project(daily, now),
            "monthly": _project(monthly, now),
        }

    # -- allocations -------------------------------------------------------

    def add_allocation(self, allocation: BudgetAllocation) -> None:
        with self._lock:
            if allocation.request_id in self._allocations:
                logger.warning(
                    "Replacing live allocation for request %s", allocation.request_id
                )
            self._allocations[allocation.request_id] = allocation

    def pop_allocation(self, request_id: str) -> Optional[BudgetAllocation]:
        with self._lock:
            return self._allocations.pop(request_id, None)

    def get_allocation(self, request_id: str) -> Optional[BudgetAllocation]:
        with self._lock:
            return self._allocations.get(request_id)

    def active_allocations(self) -> List[BudgetAllocation]:
        with self._lock:
            return list(self._allocations.values())

    def sweep_expired(self, now: Optional[datetime] = None) -> List[BudgetAllocation]:
        """Release allocations whose reservation window has passed."""
        with self._lock:
            moment = now or self._clock()
            expired = [a for a in self._allocations.values() if a.is_expired(moment)]
            for allocation in expired:
                del self._allocations[allocation.request_id]
        for allocation in expired:
            logger.warning(
                "Released stale allocation for request %s (%s), created %s",
                allocation.request_id,
                allocation.tool_name,
                allocation.created_at.isoformat(),
            )
        return expired


def _project(stats: UsagePeriodStats, now: datetime) -> float:
    if stats.request_count == 0:
        return 0.0
    elapsed_hours = (now - stats.start_date).total_seconds() / 3600
    if elapsed_hours <= 0:
        return 0.0
    total_hours = (stats.end_date - stats.start_date).total_seconds() / 3600
    remaining_hours = max(0.0, total_hours - elapsed_hours)
    requests_per_hour = stats.request_count / elapsed_hours
    remaining_requests = requests_per_hour * remaining_hours
    return (stats.total_cost / stats.request_count) * remaining_requests
