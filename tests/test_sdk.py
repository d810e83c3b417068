"""
Unit tests for SDK layer.

Tests the governed OpenAI wrapper: approval before the call, usage recorded
after it, reservations released on failure.
"""

from unittest.mock import Mock, patch

import pytest

from prompt_cost_guard.core.manager import TokenBudgetManager, create_token_budget_manager
from prompt_cost_guard.core.optimizer import PromptOptimizer
from prompt_cost_guard.sdk.openai_client import BudgetRejected, GovernedOpenAI


def _response(prompt_tokens: int = 100, completion_tokens: int = 50):
    response = Mock()
    response.id = "chat_123"
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.usage.total_tokens = prompt_tokens + completion_tokens
    return response


class TestGovernedOpenAI:
    """Test GovernedOpenAI client wrapper."""

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_init_success(self, mock_openai_class):
        mock_openai_class.return_value = Mock()
        manager = TokenBudgetManager()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", manager=manager)

        assert client.model == "gpt-4"
        assert client.tool_name == "chat"
        assert client.manager is manager
        assert client.client is not None

    def test_init_missing_model(self):
        with pytest.raises(ValueError, match="model is required"):
            GovernedOpenAI(model="", tool_name="chat")
        with pytest.raises(ValueError, match="model is required"):
            GovernedOpenAI(model=None, tool_name="chat")

    def test_init_missing_tool_name(self):
        with pytest.raises(ValueError, match="tool_name is required"):
            GovernedOpenAI(model="gpt-4", tool_name="")

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_chat_records_actual_usage(self, mock_openai_class):
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = _response(100, 50)
        mock_openai_class.return_value = mock_client
        manager = TokenBudgetManager()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", manager=manager)
        messages = [{"role": "user", "content": "Hello there"}]
        response = client.chat(messages=messages)

        mock_client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=messages,
            temperature=None,
            max_tokens=None,
        )
        assert response.id == "chat_123"

        daily = manager.get_daily_usage()
        assert daily.request_count == 1
        assert daily.total_tokens.input == 100
        assert daily.total_tokens.output == 50
        assert manager.get_active_allocations() == []

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_rejected_call_never_reaches_api(self, mock_openai_class):
        mock_client = Mock()
        mock_openai_class.return_value = mock_client
        manager = create_token_budget_manager(budget_config={"daily_budget": 0.0})

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", manager=manager)
        with pytest.raises(BudgetRejected) as exc_info:
            client.chat(messages=[{"role": "user", "content": "Hello there"}], max_tokens=100)

        assert "daily budget" in str(exc_info.value)
        assert exc_info.value.approval.alternatives is not None
        mock_client.chat.completions.create.assert_not_called()

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_api_error_releases_allocation(self, mock_openai_class):
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RuntimeError("API down")
        mock_openai_class.return_value = mock_client
        manager = TokenBudgetManager()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", manager=manager)
        with pytest.raises(RuntimeError, match="API down"):
            client.chat(messages=[{"role": "user", "content": "Hello there"}])

        assert manager.get_active_allocations() == []
        assert manager.get_daily_usage().request_count == 0

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_missing_usage_is_loud(self, mock_openai_class):
        response = _response()
        response.usage = None
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = response
        mock_openai_class.return_value = mock_client
        manager = TokenBudgetManager()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", manager=manager)
        with pytest.raises(ValueError, match="missing usage"):
            client.chat(messages=[{"role": "user", "content": "Hello there"}])

        assert manager.get_active_allocations() == []

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_last_user_message_optimized(self, mock_openai_class):
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = _response()
        mock_openai_class.return_value = mock_client
        optimizer = PromptOptimizer()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", optimizer=optimizer)
        messages = [
            {"role": "system", "content": "You are terse."},
            {"role": "user", "content": "Please kindly help me to summarize the report in order to brief the team."},
        ]
        client.chat(messages=messages, temperature=0.2)

        sent = mock_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0] == messages[0]
        assert sent[1] == {"role": "user", "content": "summarize the report to brief the team."}
        assert messages[1]["content"].startswith("Please kindly")
        assert client.manager is optimizer.budget_manager

    @patch('prompt_cost_guard.sdk.openai_client.OpenAI')
    def test_optimized_chat_commits_only_actual_usage(self, mock_openai_class):
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = _response(10, 5)
        mock_openai_class.return_value = mock_client
        optimizer = PromptOptimizer()

        client = GovernedOpenAI(model="gpt-4", tool_name="chat", optimizer=optimizer)
        client.chat(messages=[
            {"role": "user", "content": "Please kindly help me to summarize the report in order to brief the team."},
        ])

        daily = optimizer.budget_manager.get_daily_usage()
        assert daily.request_count == 1
        assert daily.total_tokens.input == 10
        assert daily.total_tokens.output == 5
        assert optimizer.budget_manager.get_active_allocations() == []

    def test_empty_messages_rejected(self):
        with patch('prompt_cost_guard.sdk.openai_client.OpenAI'):
            client = GovernedOpenAI(model="gpt-4", tool_name="chat")
        with pytest.raises(ValueError, match="messages is required"):
            client.chat(messages=[])
