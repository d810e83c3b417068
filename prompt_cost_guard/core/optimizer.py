"""
Prompt optimizer.

Runs a prompt through budget approval, strategy selection, the chosen
rewrite, limit checks and quality scoring, then commits usage. Failures of
any kind come back as ``success=False`` results with a reason; nothing is
silently degraded.
"""

import logging
import math
import re
import threading
import uuid
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple

from .compression import CompressionEngine
from .errors import NoTemplateFound, OptimizationFailure
from .guardrails import BudgetRequest
from .ledger import Priority
from .manager import TokenBudgetManager
from .quality import UNOPTIMIZED_SCORE, quality_score
from .strategy import OptimizationRequest, OptimizationStrategy, OptimizationStrategySelector
from .templates import LearningHook, TemplateCatalog
from .token_counter import DEFAULT_TOKEN_COUNTER, TokenCounter

logger = logging.getLogger(__name__)

OUTPUT_ESTIMATE_RATIO = 0.5
ADAPTIVE_TOKEN_THRESHOLD = 1000
ML_HEURISTIC_RATIO = 0.7
BUDGET_FALLBACK_QUALITY = 70.0
MAX_HISTORY = 1000

_EXAMPLE_CLAUSE = re.compile(r"(?:for example|such as)[^.]*\.", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(frozen=True)
class Fallback:
    optimized_prompt: str
    quality_score: float
    strategy: str


@dataclass(frozen=True)
class OptimizationResult:
    success: bool
    optimized_prompt: str
    token_reduction: int
    estimated_tokens: int
    strategy: str
    quality_score: float
    reason: Optional[str] = None
    fallback: Optional[Fallback] = None


@dataclass(frozen=True)
class OptimizationRecord:
    """History entry for analytics."""
    timestamp: datetime
    tool_name: str
    strategy: str
    original_tokens: int
    optimized_tokens: int
    reduction_percentage: float
    quality_score: float
    template_id: Optional[str] = None


class PromptOptimizer:
    """Budget-aware multi-strategy prompt optimizer."""

    def __init__(
        self,
        budget_manager: Optional[TokenBudgetManager] = None,
        catalog: Optional[TemplateCatalog] = None,
        compression: Optional[CompressionEngine] = None,
        token_counter: TokenCounter = DEFAULT_TOKEN_COUNTER,
        learning_hook: Optional[LearningHook] = None,
    ):
        self.budget_manager = budget_manager or TokenBudgetManager()
        self.catalog = catalog or TemplateCatalog(learning_hook=learning_hook)
        if learning_hook is not None:
            self.catalog.learning_hook = learning_hook
        self.compression = compression or CompressionEngine()
        self.token_counter = token_counter
        self.selector = OptimizationStrategySelector(self.catalog, token_counter)
        self._history: Deque[OptimizationRecord] = deque(maxlen=MAX_HISTORY)
        self._history_lock = threading.Lock()

    @property
    def learning_hook(self) -> LearningHook:
        return self.catalog.learning_hook

    def count_tokens(self, text: str) -> int:
        return self.token_counter.count(text)

    def optimize(self, request: OptimizationRequest, commit_usage: bool = True) -> OptimizationResult:
        """Optimize ``request.original_prompt`` within the budget.

        Args:
            request: What to optimize and under which limits
            commit_usage: When False the approval still gates the request,
                but the allocation is released instead of committed. Callers
                that record the real usage of the optimized prompt themselves
                pass False.

        Returns:
            OptimizationResult; ``success`` is False when the budget rejects
            the request, a limit cannot be met, quality drops below the
            threshold, or anything unexpected fails.
        """
        prompt = request.original_prompt
        request_id = None
        try:
            original_tokens = self.count_tokens(prompt)
            request_id = f"opt_{uuid.uuid4().hex}"
            approval = self.budget_manager.request_approval(BudgetRequest(
                request_id=request_id,
                tool_name=request.tool_name,
                estimated_input_tokens=original_tokens,
                estimated_output_tokens=math.ceil(original_tokens * OUTPUT_ESTIMATE_RATIO),
                priority=Priority.MEDIUM,
            ))
            if not approval.approved:
                request_id = None
                fallback = None
                if approval.alternatives is not None:
                    fallback = Fallback(
                        optimized_prompt=prompt,
                        quality_score=BUDGET_FALLBACK_QUALITY,
                        strategy=approval.alternatives.fallback_strategy,
                    )
                return OptimizationResult(
                    success=False,
                    optimized_prompt=prompt,
                    token_reduction=0,
                    estimated_tokens=original_tokens,
                    strategy="none",
                    quality_score=0.0,
                    reason=approval.reason or "Budget approval failed",
                    fallback=fallback,
                )

            choice = self.selector.select(request)
            logger.debug("Selected %s for %s: %s", choice.strategy.value, request.tool_name, choice.reason)
            optimized, strategy, template_id = self._apply(choice.strategy, request)
            optimized = self._meet_target_reduction(request, optimized, strategy, original_tokens)

            final_tokens = self.count_tokens(optimized)
            if request.max_tokens is not None and final_tokens > request.max_tokens:
                optimized = self.compression.compress(optimized).text
                final_tokens = self.count_tokens(optimized)
                if final_tokens > request.max_tokens:
                    self.budget_manager.release_allocation(request_id)
                    return OptimizationResult(
                        success=False,
                        optimized_prompt=optimized,
                        token_reduction=original_tokens - final_tokens,
                        estimated_tokens=final_tokens,
                        strategy=strategy.value,
                        quality_score=quality_score(prompt, optimized, self.token_counter),
                        reason=(
                            f"Optimized prompt needs {final_tokens} tokens, "
                            f"exceeding max_tokens {request.max_tokens}"
                        ),
                        fallback=Fallback(
                            optimized_prompt=prompt,
                            quality_score=UNOPTIMIZED_SCORE,
                            strategy="none",
                        ),
                    )

            score = quality_score(prompt, optimized, self.token_counter)
            if request.quality_threshold is not None and score < request.quality_threshold:
                self.budget_manager.release_allocation(request_id)
                return OptimizationResult(
                    success=False,
                    optimized_prompt=optimized,
                    token_reduction=original_tokens - final_tokens,
                    estimated_tokens=final_tokens,
                    strategy=strategy.value,
                    quality_score=score,
                    reason=(
                        f"Quality score {score:.1f} is below threshold "
                        f"{request.quality_threshold:g}"
                    ),
                    fallback=Fallback(
                        optimized_prompt=prompt,
                        quality_score=UNOPTIMIZED_SCORE,
                        strategy="none",
                    ),
                )

            if commit_usage:
                self.budget_manager.record_usage(request_id, original_tokens, final_tokens)
            else:
                self.budget_manager.release_allocation(request_id)
            request_id = None

            self._remember(request, strategy, original_tokens, final_tokens, score, template_id)
            self.learning_hook.record_optimization(strategy.value, original_tokens, final_tokens, score)

            return OptimizationResult(
                success=True,
                optimized_prompt=optimized,
                token_reduction=original_tokens - final_tokens,
                estimated_tokens=final_tokens,
                strategy=strategy.value,
                quality_score=score,
            )
        except Exception as e:
            logger.exception("Optimization failed for %s", request.tool_name)
            if request_id is not None:
                self.budget_manager.release_allocation(request_id)
            return OptimizationResult(
                success=False,
                optimized_prompt=prompt,
                token_reduction=0,
                estimated_tokens=self.count_tokens(prompt or ""),
                strategy="error",
                quality_score=0.0,
                reason=str(e) or e.__class__.__name__,
            )

    # -- strategies --------------------------------------------------------

    def _apply(
        self, strategy: OptimizationStrategy, request: OptimizationRequest
    ) -> Tuple[str, OptimizationStrategy, Optional[str]]:
        prompt = request.original_prompt

        if strategy == OptimizationStrategy.TEMPLATE_BASED:
            try:
                text, template_id = self._apply_template(request)
                return text, strategy, template_id
            except NoTemplateFound as e:
                logger.warning("%s; falling back to compression", e)
                return self.compression.compress(prompt).text, OptimizationStrategy.COMPRESSION, None

        if strategy == OptimizationStrategy.COMPRESSION:
            return self.compression.compress(prompt).text, strategy, None

        if strategy == OptimizationStrategy.CONTEXT_AWARE:
            return self._apply_context(request), strategy, None

        if strategy == OptimizationStrategy.ML_DRIVEN:
            return self._apply_heuristics(prompt), strategy, None

        if strategy == OptimizationStrategy.ADAPTIVE:
            if self.count_tokens(prompt) > ADAPTIVE_TOKEN_THRESHOLD:
                return self.compression.compress(prompt).text, strategy, None
            return prompt, strategy, None

        raise OptimizationFailure(f"No handler for strategy {strategy}")

    def _apply_template(self, request: OptimizationRequest) -> Tuple[str, str]:
        context = request.template_context()
        template = self.catalog.select(context, request.user_profile)
        content = extract_key_information(request.original_prompt)
        rendered = self.catalog.render(template.id, {
            "content": content,
            "output_format": request.output_format,
            "user_level": request.user_level,
            "task_type": request.task_type,
        })
        self.catalog.record_usage(template.id, context)
        return rendered, template.id

    def _apply_context(self, request: OptimizationRequest) -> str:
        optimized = request.original_prompt
        if request.context_history:
            optimized = f"Building on: {request.context_history[0]}. {optimized}"
        lowered = optimized.lower()
        missing = [c for c in request.constraints if c.lower() not in lowered]
        if missing:
            optimized = f"{optimized.rstrip()} Constraints: {'; '.join(missing)}."
        return self.compression.compress(optimized).text

    def _apply_heuristics(self, prompt: str) -> str:
        limit = self.budget_manager.budget_config.max_tokens_per_request * ML_HEURISTIC_RATIO
        optimized = prompt
        if self.count_tokens(prompt) > limit:
            optimized = _EXAMPLE_CLAUSE.sub("", optimized)
        return self.compression.compress(optimized).text

    def _meet_target_reduction(
        self,
        request: OptimizationRequest,
        optimized: str,
        strategy: OptimizationStrategy,
        original_tokens: int,
    ) -> str:
        if request.target_reduction is None or original_tokens == 0:
            return optimized
        achieved = (original_tokens - self.count_tokens(optimized)) / original_tokens
        if achieved >= request.target_reduction or strategy == OptimizationStrategy.COMPRESSION:
            return optimized
        return self.compression.compress(optimized).text

    # -- analytics ---------------------------------------------------------

    def _remember(
        self,
        request: OptimizationRequest,
        strategy: OptimizationStrategy,
        original_tokens: int,
        optimized_tokens: int,
        score: float,
        template_id: Optional[str],
    ) -> None:
        reduction = (
            (original_tokens - optimized_tokens) / original_tokens * 100 if original_tokens else 0.0
        )
        record = OptimizationRecord(
            timestamp=datetime.now(),
            tool_name=request.tool_name,
            strategy=strategy.value,
            original_tokens=original_tokens,
            optimized_tokens=optimized_tokens,
            reduction_percentage=round(reduction, 2),
            quality_score=score,
            template_id=template_id,
        )
        with self._history_lock:
            self._history.append(record)

    def get_optimization_history(self) -> List[OptimizationRecord]:
        with self._history_lock:
            return list(self._history)

    def get_analytics(self) -> Dict[str, Any]:
        history = self.get_optimization_history()
        return {
            "total_optimizations": len(history),
            "average_reduction": (
                sum(r.reduction_percentage for r in history) / len(history) if history else 0.0
            ),
            "strategy_distribution": dict(Counter(r.strategy for r in history)),
        }

    def get_performance_metrics(self) -> Dict[str, float]:
        history = self.get_optimization_history()
        if not history:
            return {"average_reduction": 0.0, "average_quality_score": 0.0, "total_optimizations": 0}
        return {
            "average_reduction": sum(r.reduction_percentage for r in history) / len(history),
            "average_quality_score": sum(r.quality_score for r in history) / len(history),
            "total_optimizations": len(history),
        }


def extract_key_information(prompt: str, max_sentences: int = 3) -> str:
    """First few substantive sentences of ``prompt``, without end punctuation."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(prompt) if len(s.strip()) > 20]
    if not sentences:
        return prompt.strip().rstrip(".!?")
    return " ".join(sentences[:max_sentences]).rstrip(".!?")


def create_prompt_optimizer(
    cost_config: Optional[Dict[str, Any]] = None,
    budget_config: Optional[Dict[str, Any]] = None,
) -> PromptOptimizer:
    from .manager import create_token_budget_manager

    return PromptOptimizer(create_token_budget_manager(cost_config, budget_config))
