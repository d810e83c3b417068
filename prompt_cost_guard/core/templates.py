"""
Template catalog.

Pre-built prompt templates scored against the request context, plus
per-session usage memory. Usage is forwarded to a LearningHook; the default
hook records nothing.
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from string import Template
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol, Tuple

from .errors import NoTemplateFound


MAX_SESSION_HISTORY = 100

USER_LEVEL_BONUS = 10
TIME_CONSTRAINT_BONUS = 5
USER_SEGMENT_BONUS = 15


class TaskType(str, Enum):
    GENERATION = "generation"
    ANALYSIS = "analysis"
    TRANSFORMATION = "transformation"
    PLANNING = "planning"
    DEBUGGING = "debugging"


class UserLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class OutputFormat(str, Enum):
    CODE = "code"
    TEXT = "text"
    STRUCTURED = "structured"
    MARKDOWN = "markdown"


class TimeConstraint(str, Enum):
    IMMEDIATE = "immediate"
    STANDARD = "standard"
    THOROUGH = "thorough"


class AdaptationLevel(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class TemplateMetadata:
    """A catalog entry. ``body`` uses ``$name`` placeholders."""
    id: str
    name: str
    tool_name: str
    task_type: TaskType
    body: str
    quality_score: float = 85.0
    usage_count: int = 0
    user_segments: Tuple[UserLevel, ...] = ()
    adaptation_level: AdaptationLevel = AdaptationLevel.STATIC


@dataclass(frozen=True)
class TemplateContext:
    tool_name: str
    task_type: TaskType
    user_level: UserLevel = UserLevel.INTERMEDIATE
    output_format: OutputFormat = OutputFormat.TEXT
    time_constraint: TimeConstraint = TimeConstraint.STANDARD
    constraints: Tuple[str, ...] = ()
    context_history: Tuple[str, ...] = ()
    session_id: Optional[str] = None


@dataclass(frozen=True)
class UserProfile:
    """Explicit profile supplied by the caller."""
    experience_level: UserLevel
    preferred_verbosity: str = "moderate"


@dataclass
class SessionContext:
    session_id: str
    start_time: datetime
    templates_used: Deque[str] = field(default_factory=lambda: deque(maxlen=MAX_SESSION_HISTORY))


class LearningHook(Protocol):
    """Extension point for cross-session learning and model-driven choices."""

    def record_template_usage(self, template_id: str, context: TemplateContext) -> None:
        ...

    def record_optimization(self, strategy: str, original_tokens: int, optimized_tokens: int,
                            quality_score: float) -> None:
        ...

    def suggest_strategy(self, prompt: str, context: TemplateContext) -> Optional[str]:
        ...


class NoOpLearningHook:
    """Records nothing and never suggests a strategy."""

    def record_template_usage(self, template_id: str, context: TemplateContext) -> None:
        return None

    def record_optimization(self, strategy: str, original_tokens: int, optimized_tokens: int,
                            quality_score: float) -> None:
        return None

    def suggest_strategy(self, prompt: str, context: TemplateContext) -> Optional[str]:
        return None


BUILT_IN_TEMPLATES: Tuple[TemplateMetadata, ...] = (
    TemplateMetadata(
        id="smart_begin_basic",
        name="Smart Begin Basic Template",
        tool_name="smart_begin",
        task_type=TaskType.GENERATION,
        body="Initialize project: $content. Output: $output_format.",
        quality_score=85,
        user_segments=(UserLevel.BEGINNER, UserLevel.INTERMEDIATE, UserLevel.ADVANCED),
        adaptation_level=AdaptationLevel.STATIC,
    ),
    TemplateMetadata(
        id="smart_plan_basic",
        name="Smart Plan Basic Template",
        tool_name="smart_plan",
        task_type=TaskType.PLANNING,
        body="Plan: $content. Cover scope, stack and timeline as $output_format.",
        quality_score=85,
        user_segments=(UserLevel.INTERMEDIATE, UserLevel.ADVANCED),
        adaptation_level=AdaptationLevel.STATIC,
    ),
    TemplateMetadata(
        id="smart_plan_analysis",
        name="Smart Plan Analysis Template",
        tool_name="smart_plan",
        task_type=TaskType.ANALYSIS,
        body="Analyze requirements: $content. List key requirements and constraints.",
        quality_score=88,
        user_segments=(UserLevel.ADVANCED, UserLevel.INTERMEDIATE),
        adaptation_level=AdaptationLevel.DYNAMIC,
    ),
    TemplateMetadata(
        id="smart_write_basic",
        name="Smart Write Basic Template",
        tool_name="smart_write",
        task_type=TaskType.GENERATION,
        body="Write $output_format for: $content. Follow best practices.",
        quality_score=85,
        user_segments=(UserLevel.INTERMEDIATE, UserLevel.ADVANCED),
        adaptation_level=AdaptationLevel.STATIC,
    ),
    TemplateMetadata(
        id="smart_orchestrate_planning",
        name="Smart Orchestrate Planning Template",
        tool_name="smart_orchestrate",
        task_type=TaskType.PLANNING,
        body="Orchestrate: $content. Give workflow steps, resources and constraints.",
        quality_score=90,
        user_segments=(UserLevel.ADVANCED, UserLevel.INTERMEDIATE),
        adaptation_level=AdaptationLevel.DYNAMIC,
    ),
    TemplateMetadata(
        id="smart_finish_generation",
        name="Smart Finish Generation Template",
        tool_name="smart_finish",
        task_type=TaskType.GENERATION,
        body="Complete project: $content. List completion steps, quality checks, deliverables.",
        quality_score=87,
        user_segments=(UserLevel.ADVANCED, UserLevel.INTERMEDIATE),
        adaptation_level=AdaptationLevel.STATIC,
    ),
)


def score_template(
    template: TemplateMetadata,
    context: TemplateContext,
    profile: Optional[UserProfile] = None,
) -> float:
    """Fit of ``template`` for ``context``, capped at 100."""
    score = template.quality_score

    if context.user_level in (UserLevel.BEGINNER, UserLevel.ADVANCED) and \
            context.user_level in template.user_segments:
        score += USER_LEVEL_BONUS

    if context.time_constraint == TimeConstraint.IMMEDIATE and \
            template.adaptation_level == AdaptationLevel.STATIC:
        score += TIME_CONSTRAINT_BONUS

    if profile is not None and profile.experience_level in template.user_segments:
        score += USER_SEGMENT_BONUS

    return min(100, score)


class TemplateCatalog:
    """Owns template metadata and session memory."""

    def __init__(
        self,
        templates: Optional[List[TemplateMetadata]] = None,
        learning_hook: Optional[LearningHook] = None,
    ):
        self._lock = threading.Lock()
        self._templates: Dict[str, TemplateMetadata] = {}
        self._sessions: Dict[str, SessionContext] = {}
        self.learning_hook = learning_hook or NoOpLearningHook()
        for template in (BUILT_IN_TEMPLATES if templates is None else templates):
            self.add_template(template)

    def add_template(self, template: TemplateMetadata) -> None:
        with self._lock:
            self._templates[template.id] = template

    def get_template(self, template_id: str) -> Optional[TemplateMetadata]:
        with self._lock:
            return self._templates.get(template_id)

    def all_templates(self) -> List[TemplateMetadata]:
        with self._lock:
            return list(self._templates.values())

    def has_template_for_tool(self, tool_name: str) -> bool:
        return any(t.tool_name == tool_name for t in self.all_templates())

    def select(self, context: TemplateContext, profile: Optional[UserProfile] = None) -> TemplateMetadata:
        """Highest scoring template matching tool name and task type.

        Raises:
            NoTemplateFound: If nothing matches
        """
        candidates = [
            t for t in self.all_templates()
            if t.tool_name == context.tool_name and t.task_type == context.task_type
        ]
        if not candidates:
            raise NoTemplateFound(context.tool_name, TaskType(context.task_type).value)
        return max(candidates, key=lambda t: score_template(t, context, profile))

    def render(self, template_id: str, variables: Mapping[str, Any]) -> str:
        template = self.get_template(template_id)
        if template is None:
            raise KeyError(f"Unknown template: {template_id}")
        values = {k: (v.value if isinstance(v, Enum) else v) for k, v in variables.items()}
        return Template(template.body).safe_substitute(values)

    def session(self, session_id: Optional[str]) -> SessionContext:
        """Get or create session memory.

        A missing id yields a fresh session that is not stored.
        """
        if not session_id:
            return SessionContext(session_id=f"session_{uuid.uuid4().hex[:12]}", start_time=datetime.now())
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = SessionContext(session_id=session_id, start_time=datetime.now())
                self._sessions[session_id] = session
            return session

    def record_usage(self, template_id: str, context: TemplateContext) -> SessionContext:
        """Note that ``template_id`` served ``context``."""
        session = self.session(context.session_id)
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                raise KeyError(f"Unknown template: {template_id}")
            self._templates[template_id] = replace(template, usage_count=template.usage_count + 1)
            session.templates_used.append(template_id)
        self.learning_hook.record_template_usage(template_id, context)
        return session

    def usage_stats(self) -> Dict[str, int]:
        return {t.id: t.usage_count for t in self.all_templates()}

    def metrics(self) -> Dict[str, float]:
        templates = self.all_templates()
        if not templates:
            return {
                "total_templates": 0,
                "active_templates": 0,
                "average_quality_score": 0.0,
                "total_usage": 0,
                "performance_score": 0,
            }
        active = [t for t in templates if t.usage_count > 0]
        avg_quality = sum(t.quality_score for t in templates) / len(templates)
        usage_rate = len(active) / len(templates)
        return {
            "total_templates": len(templates),
            "active_templates": len(active),
            "average_quality_score": avg_quality,
            "total_usage": sum(t.usage_count for t in templates),
            "performance_score": round((avg_quality + usage_rate * 100) / 2),
        }
