"""
Optimization strategy selection.

Rule order (first match wins):
0. Learning hook suggestion (none by default)
1. Verbosity cue phrase in the prompt - compression
2. Cataloged tool, short prompt, no "context" cue - template-based
3. Planning task with constraints - context-aware
4. Immediate time constraint - compression
5. Otherwise - adaptive
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .templates import (
    OutputFormat,
    TaskType,
    TemplateCatalog,
    TemplateContext,
    TimeConstraint,
    UserLevel,
    UserProfile,
)
from .token_counter import DEFAULT_TOKEN_COUNTER, TokenCounter

logger = logging.getLogger(__name__)

TEMPLATE_TOKEN_LIMIT = 100

VERBOSITY_CUES: Tuple[str, ...] = (
    "detailed implementation",
    "please kindly",
    "could you please",
    "would you mind",
    "it is important to note",
    "please note that",
    "as mentioned above",
    "in order to",
)

CONTEXT_CUE = "context"


class OptimizationStrategy(str, Enum):
    COMPRESSION = "compression"
    TEMPLATE_BASED = "template-based"
    CONTEXT_AWARE = "context-aware"
    ADAPTIVE = "adaptive"
    ML_DRIVEN = "ml-driven"


@dataclass(frozen=True)
class OptimizationRequest:
    """Prompt plus the context the optimizer may use to rewrite it."""
    tool_name: str
    original_prompt: str
    task_type: TaskType = TaskType.GENERATION
    user_level: UserLevel = UserLevel.INTERMEDIATE
    output_format: OutputFormat = OutputFormat.TEXT
    time_constraint: TimeConstraint = TimeConstraint.STANDARD
    constraints: Tuple[str, ...] = ()
    context_history: Tuple[str, ...] = ()
    session_id: Optional[str] = None
    user_profile: Optional[UserProfile] = None
    target_reduction: Optional[float] = None
    max_tokens: Optional[int] = None
    quality_threshold: Optional[float] = None

    def __post_init__(self):
        """Normalise enum fields and validate optional limits."""
        if not self.tool_name:
            raise ValueError("tool_name is required")
        if self.original_prompt is None:
            raise ValueError("original_prompt is required")
        object.__setattr__(self, "task_type", TaskType(self.task_type))
        object.__setattr__(self, "user_level", UserLevel(self.user_level))
        object.__setattr__(self, "output_format", OutputFormat(self.output_format))
        object.__setattr__(self, "time_constraint", TimeConstraint(self.time_constraint))
        object.__setattr__(self, "constraints", tuple(self.constraints or ()))
        object.__setattr__(self, "context_history", tuple(self.context_history or ()))
        if self.target_reduction is not None and not 0 <= self.target_reduction < 1:
            raise ValueError("target_reduction must be in [0, 1)")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if self.quality_threshold is not None and not 0 <= self.quality_threshold <= 100:
            raise ValueError("quality_threshold must be between 0 and 100")

    def template_context(self) -> TemplateContext:
        return TemplateContext(
            tool_name=self.tool_name,
            task_type=self.task_type,
            user_level=self.user_level,
            output_format=self.output_format,
            time_constraint=self.time_constraint,
            constraints=self.constraints,
            context_history=self.context_history,
            session_id=self.session_id,
        )


@dataclass(frozen=True)
class StrategyChoice:
    strategy: OptimizationStrategy
    reason: str


class OptimizationStrategySelector:
    """Chooses one strategy per request."""

    def __init__(
        self,
        catalog: TemplateCatalog,
        token_counter: TokenCounter = DEFAULT_TOKEN_COUNTER,
    ):
        self.catalog = catalog
        self.token_counter = token_counter

    def select(self, request: OptimizationRequest) -> StrategyChoice:
        prompt = request.original_prompt.lower()
        tokens = self.token_counter.count(request.original_prompt)

        suggested = self.catalog.learning_hook.suggest_strategy(
            request.original_prompt, request.template_context()
        )
        if suggested:
            try:
                return StrategyChoice(OptimizationStrategy(suggested), "suggested by learning hook")
            except ValueError:
                logger.warning("Ignoring unknown strategy suggestion %r", suggested)

        cue = next((c for c in VERBOSITY_CUES if c in prompt), None)
        if cue is not None:
            return StrategyChoice(OptimizationStrategy.COMPRESSION, f"verbosity cue '{cue}'")

        if (
            self.catalog.has_template_for_tool(request.tool_name)
            and tokens < TEMPLATE_TOKEN_LIMIT
            and CONTEXT_CUE not in prompt
        ):
            return StrategyChoice(
                OptimizationStrategy.TEMPLATE_BASED,
                f"template available for {request.tool_name}",
            )

        if request.task_type == TaskType.PLANNING and request.constraints:
            return StrategyChoice(OptimizationStrategy.CONTEXT_AWARE, "planning task with constraints")

        if request.time_constraint == TimeConstraint.IMMEDIATE:
            return StrategyChoice(OptimizationStrategy.COMPRESSION, "immediate time constraint")

        return StrategyChoice(OptimizationStrategy.ADAPTIVE, "no specific rule matched")
