"""
CLI interface for Prompt Cost Guard.

Provides command-line access to budget checks, prompt optimization and the
usage-variance report.
"""

import sqlite3
import sys
import uuid
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from prompt_cost_guard.config.loader import GuardConfig, config_to_dict, load_config_or_default
from prompt_cost_guard.core.errors import InvalidConfiguration
from prompt_cost_guard.core.guardrails import BudgetRequest
from prompt_cost_guard.core.ledger import Priority
from prompt_cost_guard.core.manager import TokenBudgetManager
from prompt_cost_guard.core.optimizer import PromptOptimizer
from prompt_cost_guard.core.strategy import OptimizationRequest
from prompt_cost_guard.core.templates import TaskType
from prompt_cost_guard.storage.db import DEFAULT_DB_PATH
from prompt_cost_guard.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration")


def _load(config_path: Optional[str]) -> GuardConfig:
    try:
        return load_config_or_default(config_path)
    except (FileNotFoundError, InvalidConfiguration, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: float, currency: str = "USD") -> str:
    """Format currency; sub-cent amounts keep six decimals."""
    symbol = "$" if currency == "USD" else f"{currency} "
    if 0 < abs(amount) < 0.01:
        return f"{symbol}{amount:.6f}"
    return f"{symbol}{amount:,.2f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Prompt Cost Guard CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Prompt Cost Guard - Use --help to see available commands")


@app.command()
def init(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Write a default YAML configuration to this path"
    ),
):
    """Initialize the usage database and, optionally, a default config file."""
    try:
        initialize_schema(db)
        console.print(f"[green]✓[/] Database initialized at {db}")
        if config:
            path = Path(config)
            if path.exists():
                console.print(f"[yellow]![/] {config} already exists, left unchanged")
            else:
                with open(path, "w", encoding="utf-8") as f:
                    yaml.safe_dump(config_to_dict(GuardConfig()), f, sort_keys=False)
                console.print(f"[green]✓[/] Default configuration written to {config}")
    except (OSError, sqlite3.Error) as e:
        console.print(f"[red]Error initializing:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def status(config: Optional[str] = CONFIG_OPTION):
    """Show the effective budget and pricing configuration."""
    guard = _load(config)
    cost, budget = guard.cost, guard.budget

    table = Table(title="Prompt Cost Guard Configuration")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_row("Model", cost.model)
    table.add_row("Input rate (per 1K tokens)", _format_currency(cost.cost_per_input_token, cost.currency))
    table.add_row("Output rate (per 1K tokens)", _format_currency(cost.cost_per_output_token, cost.currency))
    table.add_row("Daily budget", _format_currency(budget.daily_budget, cost.currency))
    table.add_row("Monthly budget", _format_currency(budget.monthly_budget, cost.currency))
    table.add_row("Reserve", f"{budget.reserve_percentage * 100:g}%")
    table.add_row("Max tokens per request", str(budget.max_tokens_per_request))
    table.add_row("Warning threshold", f"{budget.alert_thresholds.warning * 100:g}%")
    table.add_row("Critical threshold", f"{budget.alert_thresholds.critical * 100:g}%")
    console.print(table)


@app.command()
def estimate(
    input_tokens: int = typer.Argument(..., min=0, help="Estimated input tokens"),
    output_tokens: int = typer.Argument(..., min=0, help="Estimated output tokens"),
    config: Optional[str] = CONFIG_OPTION,
):
    """Estimate the cost of a request."""
    guard = _load(config)
    manager = TokenBudgetManager.from_config(guard)
    cost = manager.estimate_cost(input_tokens, output_tokens)
    console.print(
        f"Estimated cost for {input_tokens} input / {output_tokens} output tokens: "
        f"{_format_currency(cost, guard.cost.currency)}"
    )


@app.command()
def check(
    input_tokens: int = typer.Argument(..., min=0, help="Estimated input tokens"),
    output_tokens: int = typer.Argument(..., min=0, help="Estimated output tokens"),
    priority: Priority = typer.Option(Priority.MEDIUM, "--priority", "-p", help="Request priority"),
    tool: str = typer.Option("cli", "--tool", "-t", help="Tool name"),
    max_cost: Optional[float] = typer.Option(None, "--max-cost", "-m", help="Per-request cost ceiling"),
    config: Optional[str] = CONFIG_OPTION,
    enforced: bool = typer.Option(
        False, "--enforced", "-e", help="Exit with error code if the request would be rejected"
    ),
):
    """
    Check whether a request would be approved against an empty budget period.

    Read-only: nothing is reserved or recorded.
    """
    guard = _load(config)
    manager = TokenBudgetManager.from_config(guard)
    approval = manager.request_approval(BudgetRequest(
        request_id=f"cli_{uuid.uuid4().hex}",
        tool_name=tool,
        estimated_input_tokens=input_tokens,
        estimated_output_tokens=output_tokens,
        priority=priority,
        max_cost=max_cost,
    ))

    currency = guard.cost.currency
    if approval.approved:
        console.print(f"[bold green]APPROVED[/] ({_format_currency(approval.estimated_cost, currency)})")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"[bold red]REJECTED[/] {approval.reason}")
    if approval.alternatives is not None:
        console.print(f"Suggested input tokens: {approval.alternatives.reduced_tokens}")
        console.print(f"Fallback: {approval.alternatives.fallback_strategy}")
    sys.exit(EXIT_CODE_FAIL if enforced else EXIT_CODE_PASS)


@app.command()
def optimize(
    prompt: str = typer.Argument(..., help="Prompt text to optimize"),
    tool: str = typer.Option("cli", "--tool", "-t", help="Tool name"),
    task_type: TaskType = typer.Option(TaskType.GENERATION, "--task-type", help="Task type"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", min=1, help="Token ceiling"),
    target_reduction: Optional[float] = typer.Option(
        None, "--target-reduction", min=0.0, max=0.99, help="Desired reduction ratio"
    ),
    quality_threshold: Optional[float] = typer.Option(
        None, "--quality-threshold", min=0.0, max=100.0, help="Minimum quality score"
    ),
    config: Optional[str] = CONFIG_OPTION,
):
    """Optimize a prompt and show the result."""
    guard = _load(config)
    optimizer = PromptOptimizer(TokenBudgetManager.from_config(guard))
    result = optimizer.optimize(OptimizationRequest(
        tool_name=tool,
        original_prompt=prompt,
        task_type=task_type,
        max_tokens=max_tokens,
        target_reduction=target_reduction,
        quality_threshold=quality_threshold,
    ))

    console.print(f"\n[bold]Strategy:[/bold] {result.strategy}")
    console.print(f"Tokens: {result.estimated_tokens} (saved {result.token_reduction})")
    console.print(f"Quality score: {result.quality_score:.1f}")
    console.print("-" * 40)
    console.print(result.optimized_prompt, markup=False)

    if not result.success:
        console.print(f"\n[red]Optimization failed:[/] {result.reason}")
        if result.fallback is not None:
            console.print(f"Fallback: {result.fallback.strategy}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def report(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Filter to one tool"),
    days: int = typer.Option(30, "--days", "-d", min=1, help="Days to include"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Recent events to list"),
):
    """Report estimated versus actual usage from the variance ledger."""
    repository = UsageRepository(db)
    try:
        stats = repository.get_usage_stats(tool_name=tool, days=days)
        events = repository.get_recent_events(tool_name=tool, days=days, limit=limit)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]No usage data found[/]")
            console.print("\nRun `prompt-cost-guard init` and route calls through the SDK first.\n")
            sys.exit(EXIT_CODE_PASS)
        raise

    if not stats["total_requests"]:
        console.print("\n[bold yellow]No usage data found[/]")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"\n[bold]Usage Report[/bold] (last {days} days)")
    console.print("-" * 40)
    console.print(f"Requests: {stats['total_requests']}")
    console.print(f"Tokens: {stats['total_tokens']:,}")
    console.print(f"Estimated cost: {_format_currency(stats['estimated_cost'])}")
    console.print(f"Actual cost: {_format_currency(stats['total_cost'])}")
    console.print(f"Average variance: {stats['avg_cost_variance']:+.6f}")

    table = Table(title="Recent Requests")
    table.add_column("Time")
    table.add_column("Tool")
    table.add_column("Request")
    table.add_column("Est. cost", justify="right")
    table.add_column("Actual cost", justify="right")
    table.add_column("Variance", justify="right")
    for event in events:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M"),
            event.tool_name,
            event.request_id,
            _format_currency(event.estimated_cost),
            _format_currency(event.actual_cost),
            f"{event.cost_variance:+.6f}",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
