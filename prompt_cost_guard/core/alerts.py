"""
Budget alerting.

Evaluates usage ratios after each ledger update and keeps a bounded history
of alerts. Alerts are not de-duplicated: every evaluation above a threshold
emits a fresh alert.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, List, Optional

from prompt_cost_guard.config.loader import BudgetConfig

from .ledger import Period, UsagePeriodStats

logger = logging.getLogger(__name__)

MAX_ALERTS = 100

CRITICAL_ACTION = (
    "Immediate action required: pause non-essential operations for remainder of period"
)
WARNING_ACTION = "monitor usage, consider prompt compression"


class AlertType(str, Enum):
    """Severity levels for budget alerts."""
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class BudgetAlert:
    """Threshold crossing for one budget period."""
    id: str
    type: AlertType
    period: Period
    message: str
    timestamp: datetime
    current_usage_ratio: float
    threshold: float
    recommended_action: str


def recommended_action(alert_type: AlertType) -> str:
    if alert_type == AlertType.CRITICAL:
        return CRITICAL_ACTION
    return WARNING_ACTION


class AlertEngine:
    """Emits warning/critical alerts into a ring buffer."""

    def __init__(self, max_alerts: int = MAX_ALERTS, clock: Callable[[], datetime] = datetime.now):
        self._alerts: Deque[BudgetAlert] = deque(maxlen=max_alerts)
        self._lock = threading.Lock()
        self._clock = clock

    def evaluate(
        self,
        daily: UsagePeriodStats,
        monthly: UsagePeriodStats,
        config: BudgetConfig,
    ) -> List[BudgetAlert]:
        """Check both periods independently and return any new alerts.

        Rules:
        - ratio >= critical threshold: CRITICAL
        - ratio >= warning threshold: WARNING
        """
        emitted = []
        for stats, budget in ((daily, config.daily_budget), (monthly, config.monthly_budget)):
            alert = self._evaluate_period(stats, budget, config)
            if alert is not None:
                emitted.append(alert)

        if emitted:
            with self._lock:
                self._alerts.extend(emitted)
        return emitted

    def _evaluate_period(
        self, stats: UsagePeriodStats, budget: float, config: BudgetConfig
    ) -> Optional[BudgetAlert]:
        if budget <= 0:
            # A zero budget is exhausted by any spend
            ratio = 1.0 if stats.total_cost > 0 else 0.0
        else:
            ratio = stats.total_cost / budget

        thresholds = config.alert_thresholds
        if ratio >= thresholds.critical:
            alert_type, threshold = AlertType.CRITICAL, thresholds.critical
        elif ratio >= thresholds.warning:
            alert_type, threshold = AlertType.WARNING, thresholds.warning
        else:
            return None

        period = Period(stats.period)
        alert = BudgetAlert(
            id=f"{alert_type.value}_{period.value}_{uuid.uuid4().hex[:12]}",
            type=alert_type,
            period=period,
            message=(
                f"{period.value.capitalize()} budget {alert_type.value}: "
                f"{ratio * 100:.1f}% used (threshold {threshold * 100:g}%)"
            ),
            timestamp=self._clock(),
            current_usage_ratio=ratio,
            threshold=threshold,
            recommended_action=recommended_action(alert_type),
        )
        log = logger.error if alert_type == AlertType.CRITICAL else logger.warning
        log(alert.message)
        return alert

    def get_alerts(self) -> List[BudgetAlert]:
        with self._lock:
            return list(self._alerts)

    def clear(self) -> None:
        with self._lock:
            self._alerts.clear()
