"""Step-sequenced workflows over the execution coordinator.

Each step's input is a template whose ``{name}`` tokens are filled from
the results of earlier steps (or from literal values). Steps run strictly
in order; a failed critical step aborts the rest of the run.

Usage::

    wf = (WorkflowBuilder("review")
          .step("draft", task_type="code_generation",
                input_template="Write {thing}",
                placeholders=[Placeholder.static("thing", "a parser")])
          .step("review", task_type="code_analysis", critical=True,
                input_template="Review:\\n{draft}",
                placeholders=[Placeholder("draft", source_step="draft")])
          .build())

    result = await WorkflowEngine(coordinator).run(wf)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from switchyard.exceptions_unified import FailureKind, WorkflowDefinitionError
from switchyard.llm.models import CompletionRequest, PostProcessingOption
from switchyard.orchestration.execution_coordinator import ExecutionCoordinator

logger = logging.getLogger(__name__)

INITIAL_SOURCE = "initial"


# ── Value objects ────────────────────────────────────────────────────


class ExtractionMethod(str, Enum):
    CONTENT = "content"
    MODEL_USED = "model_used"
    METADATA = "metadata"
    PROCESSING_TIME = "processing_time"
    SUCCESS = "success"
    STATIC = "static"

    @classmethod
    def parse(cls, value: Any) -> "ExtractionMethod":
        """Unknown method names fall back to CONTENT."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.CONTENT


@dataclass(frozen=True)
class Placeholder:
    """A ``{name}`` token in a step template and where its value comes from."""

    name: str
    source_step: str = INITIAL_SOURCE
    extraction_method: ExtractionMethod = ExtractionMethod.CONTENT
    static_value: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "extraction_method",
                           ExtractionMethod.parse(self.extraction_method))

    @classmethod
    def static(cls, name: str, value: str) -> "Placeholder":
        return cls(name, INITIAL_SOURCE, ExtractionMethod.STATIC, value)

    @property
    def token(self) -> str:
        return "{" + self.name + "}"

    def extract(self, result: "StepResult") -> str:
        method = self.extraction_method
        if method is ExtractionMethod.STATIC:
            return self.static_value
        if method is ExtractionMethod.MODEL_USED:
            return result.model_used
        if method is ExtractionMethod.METADATA:
            return json.dumps(result.metadata, sort_keys=True, default=str)
        if method is ExtractionMethod.PROCESSING_TIME:
            return str(int(result.processing_time_ms))
        if method is ExtractionMethod.SUCCESS:
            return str(result.success).lower()
        return result.content


@dataclass(frozen=True)
class WorkflowStep:
    name: str
    task_type: str
    input_template: str
    complexity_level: int = 1
    is_critical: bool = False
    required_languages: FrozenSet[str] = frozenset()
    max_tokens: int = 2048
    temperature: float = 0.7
    placeholders: tuple = ()
    post_processing_options: tuple = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_languages", frozenset(self.required_languages))
        object.__setattr__(self, "placeholders", tuple(self.placeholders))
        object.__setattr__(self, "post_processing_options", tuple(self.post_processing_options))


@dataclass(frozen=True)
class Workflow:
    """Validated, ordered list of steps."""

    name: str
    steps: tuple

    def __post_init__(self) -> None:
        steps = tuple(self.steps)
        seen = set()
        for step in steps:
            if not step.name:
                raise WorkflowDefinitionError(f"Workflow {self.name!r} has a step without a name")
            if step.name in seen:
                raise WorkflowDefinitionError(f"Duplicate step name: {step.name}")
            seen.add(step.name)
        object.__setattr__(self, "steps", steps)

    def step(self, name: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.name == name), None)


@dataclass
class StepResult:
    step_name: str
    success: bool
    content: str = ""
    processing_time_ms: float = 0.0
    model_used: str = ""
    error_message: Optional[str] = None
    cost: Decimal = Decimal(0)
    tokens_used: int = 0
    fallback_used: bool = False
    failure_kind: Optional[FailureKind] = None
    unresolved_placeholders: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_name": self.step_name,
            "success": self.success,
            "content": self.content,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "model_used": self.model_used,
            "error_message": self.error_message,
            "cost": str(self.cost),
            "tokens_used": self.tokens_used,
            "fallback_used": self.fallback_used,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "unresolved_placeholders": list(self.unresolved_placeholders),
        }


class WorkflowContext:
    """Append-only map of step name → StepResult for a single run."""

    def __init__(self) -> None:
        self._results: Dict[str, StepResult] = {}

    def record(self, result: StepResult) -> None:
        if result.step_name in self._results:
            raise WorkflowDefinitionError(f"Step {result.step_name} already recorded")
        self._results[result.step_name] = result

    def get(self, step_name: str) -> Optional[StepResult]:
        return self._results.get(step_name)

    def __contains__(self, step_name: object) -> bool:
        return step_name in self._results

    def __len__(self) -> int:
        return len(self._results)

    def to_dict(self) -> Dict[str, Any]:
        return {name: r.to_dict() for name, r in self._results.items()}


class WorkflowRunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class WorkflowResult:
    workflow_name: str
    state: WorkflowRunState = WorkflowRunState.PENDING
    success: bool = False
    step_results: List[StepResult] = field(default_factory=list)
    context: WorkflowContext = field(default_factory=WorkflowContext)
    total_cost: Decimal = Decimal(0)
    total_processing_time_ms: float = 0.0
    current_step_index: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_name": self.workflow_name,
            "state": self.state.value,
            "success": self.success,
            "step_results": [r.to_dict() for r in self.step_results],
            "total_cost": str(self.total_cost),
            "total_processing_time_ms": round(self.total_processing_time_ms, 3),
            "error_message": self.error_message,
        }


# ── Builder ──────────────────────────────────────────────────────────


class WorkflowBuilder:
    """Fluent construction of a Workflow."""

    def __init__(self, name: str):
        self.name = name
        self._steps: List[WorkflowStep] = []

    def step(
        self,
        name: str,
        task_type: str = "general",
        input_template: str = "",
        complexity: int = 1,
        critical: bool = False,
        languages: Optional[List[str]] = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        placeholders: Optional[List[Placeholder]] = None,
        post_processing: Optional[List[PostProcessingOption]] = None,
    ) -> "WorkflowBuilder":
        if any(s.name == name for s in self._steps):
            raise WorkflowDefinitionError(f"Duplicate step name: {name}")
        self._steps.append(WorkflowStep(
            name=name,
            task_type=task_type,
            input_template=input_template,
            complexity_level=complexity,
            is_critical=critical,
            required_languages=frozenset(languages or ()),
            max_tokens=max_tokens,
            temperature=temperature,
            placeholders=tuple(placeholders or ()),
            post_processing_options=tuple(post_processing or ()),
        ))
        return self

    def build(self) -> Workflow:
        return Workflow(self.name, tuple(self._steps))


# ── Engine ───────────────────────────────────────────────────────────


class WorkflowEngine:
    """Runs workflows one step at a time through the execution coordinator."""

    def __init__(self, coordinator: ExecutionCoordinator):
        self.coordinator = coordinator

    @staticmethod
    def resolve_input(step: WorkflowStep, context: WorkflowContext) -> tuple:
        """Fill the step template; returns (text, names of unresolved placeholders)."""
        text = step.input_template
        unresolved: List[str] = []
        for ph in step.placeholders:
            if ph.extraction_method is ExtractionMethod.STATIC:
                value = ph.static_value
            else:
                source = context.get(ph.source_step)
                if source is None:
                    unresolved.append(ph.name)
                    logger.debug("Placeholder %s unresolved: no result for step %s",
                                 ph.name, ph.source_step)
                    continue
                value = ph.extract(source)
            text = text.replace(ph.token, value)
        return text, unresolved

    async def _run_step(self, step: WorkflowStep, context: WorkflowContext) -> StepResult:
        start = time.perf_counter()
        text, unresolved = self.resolve_input(step, context)
        request = CompletionRequest(
            input=text,
            task_type=step.task_type,
            required_languages=step.required_languages,
            complexity_level=step.complexity_level,
            max_tokens=step.max_tokens,
            temperature=step.temperature,
            post_processing_options=list(step.post_processing_options),
            metadata={"workflow_step": step.name},
        )
        response = await self.coordinator.execute_with_fallback(request)
        return StepResult(
            step_name=step.name,
            success=response.success,
            content=response.content,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            model_used=response.model_used,
            error_message=response.error_message,
            cost=response.cost,
            tokens_used=response.tokens_used,
            fallback_used=response.fallback_used,
            failure_kind=response.failure_kind or (
                FailureKind.PLACEHOLDER_UNRESOLVED if unresolved else None),
            unresolved_placeholders=unresolved,
            metadata=dict(response.metadata),
        )

    async def run(self, workflow: Workflow) -> WorkflowResult:
        result = WorkflowResult(workflow_name=workflow.name)
        start = time.perf_counter()
        result.state = WorkflowRunState.RUNNING
        logger.info("Workflow %s started with %d steps", workflow.name, len(workflow.steps))

        for index, step in enumerate(workflow.steps):
            result.current_step_index = index
            step_result = await self._run_step(step, result.context)
            result.step_results.append(step_result)
            result.context.record(step_result)

            if not step_result.success and step.is_critical:
                result.state = WorkflowRunState.ABORTED
                result.error_message = f"Critical step {step.name} failed: {step_result.error_message}"
                logger.warning("Workflow %s aborted at critical step %s", workflow.name, step.name)
                break
        else:
            result.state = WorkflowRunState.COMPLETED

        result.success = all(
            r.success or not workflow.step(r.step_name).is_critical
            for r in result.step_results
        )
        result.total_cost = sum((r.cost for r in result.step_results), Decimal(0))
        result.total_processing_time_ms = (time.perf_counter() - start) * 1000
        logger.info("Workflow %s %s (success=%s, cost=%s)", workflow.name,
                    result.state.value, result.success, result.total_cost)
        return result
