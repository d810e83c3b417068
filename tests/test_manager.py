"""
Unit tests for the token budget manager facade.
"""

import threading

import pytest

from prompt_cost_guard.config.loader import BudgetConfig, CostConfig, GuardConfig
from prompt_cost_guard.core.errors import InvalidConfiguration
from prompt_cost_guard.core.guardrails import BudgetRequest
from prompt_cost_guard.core.manager import TokenBudgetManager, create_token_budget_manager


class TestTokenBudgetManager:
    """Test configuration handling and budget queries."""

    def test_fresh_manager_remaining_equals_budgets(self):
        manager = TokenBudgetManager(budget_config=BudgetConfig(daily_budget=40, monthly_budget=900))
        assert manager.get_remaining_budget() == {"daily": 40, "monthly": 900}

    def test_from_config(self):
        config = GuardConfig(
            cost=CostConfig(model="gpt-4o", cost_per_input_token=0.005),
            budget=BudgetConfig(daily_budget=10.0),
        )
        manager = TokenBudgetManager.from_config(config)

        assert manager.cost_config.model == "gpt-4o"
        assert manager.budget_config.daily_budget == 10.0
        assert manager.estimate_cost(1000, 0) == pytest.approx(0.005)

    def test_factory_merges_partial_settings(self):
        manager = create_token_budget_manager(
            cost_config={"cost_per_output_token": 0.001},
            budget_config={"daily_budget": 50.0, "alert_thresholds": {"critical": 0.99}},
        )

        assert manager.cost_config.cost_per_input_token == 0.00003
        assert manager.cost_config.cost_per_output_token == 0.001
        assert manager.budget_config.daily_budget == 50.0
        assert manager.budget_config.monthly_budget == 2000.0
        assert manager.budget_config.alert_thresholds.warning == 0.8
        assert manager.budget_config.alert_thresholds.critical == 0.99

    def test_invalid_update_leaves_config_unchanged(self):
        manager = TokenBudgetManager()
        with pytest.raises(InvalidConfiguration):
            manager.update_budget_config(reserve_percentage=0.9)
        with pytest.raises(InvalidConfiguration):
            manager.update_cost_config(unknown=1)

        assert manager.budget_config == BudgetConfig()
        assert manager.cost_config == CostConfig()

    def test_budget_update_applies_to_next_approval(self):
        manager = TokenBudgetManager()
        request = BudgetRequest("req_1", "smart_plan", 500, 300)
        manager.update_budget_config(daily_budget=0.00001)

        assert not manager.request_approval(request).approved

    def test_release_allocation(self):
        manager = TokenBudgetManager()
        manager.request_approval(BudgetRequest("req_1", "smart_plan", 500, 300))

        released = manager.release_allocation("req_1")

        assert released.request_id == "req_1"
        assert manager.get_active_allocations() == []
        assert manager.get_daily_usage().request_count == 0

    def test_reset_usage(self):
        manager = TokenBudgetManager()
        manager.request_approval(BudgetRequest("req_1", "smart_plan", 500, 300))
        manager.record_usage("req_1", 500, 300)

        manager.reset_daily_usage()
        assert manager.get_daily_usage().request_count == 0
        assert manager.get_monthly_usage().request_count == 1

        manager.reset_monthly_usage()
        assert manager.get_monthly_usage().request_count == 0

    def test_projection_keys(self):
        assert set(TokenBudgetManager().get_projected_usage()) == {"daily", "monthly"}


class TestConcurrency:
    """Test that concurrent callers never lose updates."""

    def test_parallel_approve_and_record(self):
        manager = TokenBudgetManager()
        errors = []

        def worker(index: int):
            try:
                request_id = f"req_{index}"
                approval = manager.request_approval(
                    BudgetRequest(request_id, "smart_plan", 1000, 500)
                )
                assert approval.approved
                manager.record_usage(request_id, 1000, 500)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        daily = manager.get_daily_usage()
        assert daily.request_count == 50
        assert daily.total_tokens.total == 75000
        assert manager.get_active_allocations() == []
