"""
Configuration management and loading.

Handles cost rates, budget limits and alert thresholds, either built in code
or loaded from a YAML file.
"""

from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from prompt_cost_guard.core.errors import InvalidConfiguration


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class CostConfig:
    """Per-token pricing for the metered backend."""
    model: str = "gpt-4"
    cost_per_input_token: float = 0.00003
    cost_per_output_token: float = 0.00006
    currency: str = "USD"

    def __post_init__(self):
        """Validate rates are non-negative numbers."""
        if not self.model or not str(self.model).strip():
            raise InvalidConfiguration("model cannot be empty")
        if not _is_number(self.cost_per_input_token) or self.cost_per_input_token < 0:
            raise InvalidConfiguration("cost_per_input_token must be >= 0")
        if not _is_number(self.cost_per_output_token) or self.cost_per_output_token < 0:
            raise InvalidConfiguration("cost_per_output_token must be >= 0")
        if not self.currency or not str(self.currency).strip():
            raise InvalidConfiguration("currency cannot be empty")


@dataclass(frozen=True)
class AlertThresholds:
    """Usage ratios at which budget alerts fire."""
    warning: float = 0.8
    critical: float = 0.95

    def __post_init__(self):
        """Validate thresholds are ratios and ordered."""
        for name in ("warning", "critical"):
            value = getattr(self, name)
            if not _is_number(value) or not 0 <= value <= 1:
                raise InvalidConfiguration(f"alert threshold '{name}' must be between 0 and 1")
        if self.warning >= self.critical:
            raise InvalidConfiguration("warning threshold must be below critical threshold")


@dataclass(frozen=True)
class BudgetConfig:
    """Budget limits for cost control."""
    daily_budget: float = 100.0
    monthly_budget: float = 2000.0
    max_tokens_per_request: int = 4000
    reserve_percentage: float = 0.2
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)
    allocation_ttl_seconds: float = 300.0

    def __post_init__(self):
        """Validate budget values."""
        if not _is_number(self.daily_budget) or self.daily_budget < 0:
            raise InvalidConfiguration("daily_budget must be >= 0")
        if not _is_number(self.monthly_budget) or self.monthly_budget < 0:
            raise InvalidConfiguration("monthly_budget must be >= 0")
        if not _is_number(self.max_tokens_per_request) or not 100 <= self.max_tokens_per_request <= 32000:
            raise InvalidConfiguration("max_tokens_per_request must be between 100 and 32000")
        if not _is_number(self.reserve_percentage) or not 0 <= self.reserve_percentage <= 0.5:
            raise InvalidConfiguration("reserve_percentage must be between 0 and 0.5")
        if not isinstance(self.alert_thresholds, AlertThresholds):
            raise InvalidConfiguration("alert_thresholds must be an AlertThresholds instance")
        if not _is_number(self.allocation_ttl_seconds) or self.allocation_ttl_seconds <= 0:
            raise InvalidConfiguration("allocation_ttl_seconds must be > 0")


@dataclass(frozen=True)
class GuardConfig:
    """Complete configuration: pricing plus budget policy."""
    cost: CostConfig = field(default_factory=CostConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)


_COST_KEYS = {"model", "cost_per_input_token", "cost_per_output_token", "currency"}
_BUDGET_KEYS = {
    "daily_budget",
    "monthly_budget",
    "max_tokens_per_request",
    "reserve_percentage",
    "alert_thresholds",
    "allocation_ttl_seconds",
}
_THRESHOLD_KEYS = {"warning", "critical"}


def _check_keys(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown = set(data.keys()) - allowed
    if unknown:
        raise InvalidConfiguration(f"Unknown keys in {path}: {sorted(unknown)}")


def merge_cost_config(current: CostConfig, updates: Dict[str, Any]) -> CostConfig:
    """Return a validated CostConfig with ``updates`` applied over ``current``."""
    _check_keys(updates, _COST_KEYS, "cost")
    return replace(current, **updates)


def merge_budget_config(current: BudgetConfig, updates: Dict[str, Any]) -> BudgetConfig:
    """Return a validated BudgetConfig with ``updates`` applied over ``current``.

    ``alert_thresholds`` may be given as a partial mapping; missing keys keep
    their current values.
    """
    _check_keys(updates, _BUDGET_KEYS, "budget")
    updates = dict(updates)
    thresholds = updates.get("alert_thresholds")
    if isinstance(thresholds, dict):
        _check_keys(thresholds, _THRESHOLD_KEYS, "budget.alert_thresholds")
        updates["alert_thresholds"] = replace(current.alert_thresholds, **thresholds)
    return replace(current, **updates)


def config_to_dict(config: GuardConfig) -> Dict[str, Any]:
    """Plain-dict view of a configuration, suitable for ``yaml.safe_dump``."""
    return asdict(config)


def load_config(path: str) -> GuardConfig:
    """Load and validate cost and budget configuration from a YAML file.

    Both sections are optional; anything omitted takes the default. Unknown
    keys are rejected so a typo cannot silently fall back to a default budget.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated GuardConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        InvalidConfiguration: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return GuardConfig()
    if not isinstance(raw_config, dict):
        raise InvalidConfiguration("Configuration root must be a mapping")

    _check_keys(raw_config, {"cost", "budget"}, "configuration")

    cost = CostConfig()
    budget = BudgetConfig()

    cost_data = raw_config.get("cost") or {}
    if not isinstance(cost_data, dict):
        raise InvalidConfiguration("'cost' must be a dictionary")
    if cost_data:
        cost = merge_cost_config(cost, cost_data)

    budget_data = raw_config.get("budget") or {}
    if not isinstance(budget_data, dict):
        raise InvalidConfiguration("'budget' must be a dictionary")
    thresholds = budget_data.get("alert_thresholds")
    if thresholds is not None and not isinstance(thresholds, dict):
        raise InvalidConfiguration("'budget.alert_thresholds' must be a dictionary")
    if budget_data:
        budget = merge_budget_config(budget, budget_data)

    return GuardConfig(cost=cost, budget=budget)


def load_config_or_default(path: Optional[str]) -> GuardConfig:
    """Load ``path`` when given, otherwise return the default configuration."""
    if path is None:
        return GuardConfig()
    return load_config(path)
