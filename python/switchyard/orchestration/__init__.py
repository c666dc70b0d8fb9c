"""Fallback execution and step-sequenced workflows."""

from switchyard.orchestration.execution_coordinator import ExecutionCoordinator
from switchyard.orchestration.workflow_engine import (
    ExtractionMethod,
    Placeholder,
    StepResult,
    Workflow,
    WorkflowBuilder,
    WorkflowContext,
    WorkflowEngine,
    WorkflowResult,
    WorkflowRunState,
    WorkflowStep,
)

__all__ = [
    "ExecutionCoordinator",
    # Workflows
    "ExtractionMethod",
    "Placeholder",
    "StepResult",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowContext",
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowRunState",
    "WorkflowStep",
]
