"""
Unified error system for Switchyard.

Every failure the routing core can produce is described here:
- Severity / category enums used for classification and log routing
- ErrorContext carrying an id, timestamp and structured details
- SwitchyardException hierarchy (selection, provider, validation, workflow)
- FailureKind tags attached to failed responses, so callers can branch on
  the kind of failure without catching anything

Exceptions are raised inside components and converted into failed
CompletionResponse objects at the ExecutionCoordinator boundary.
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Enums & Constants
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"      # Core cannot continue
    ERROR = "error"            # Operation failure, caller impacted
    WARNING = "warning"        # Degraded operation
    INFO = "info"              # Informational, no action needed


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    SELECTION = "selection"             # No eligible provider
    PROVIDER = "provider"               # Provider call raised or reported failure
    VALIDATION = "validation"           # Content or input validation failure
    WORKFLOW = "workflow"               # Invalid workflow definition
    CONFIGURATION = "configuration"     # Invalid construction-time data
    RESOURCE = "resource"               # Resource snapshot/limits unavailable
    INTERNAL = "internal"               # Internal error


class FailureKind(str, Enum):
    """Structured failure tags carried on failed responses and step results."""
    NO_CANDIDATE = "no_candidate"
    PROVIDER_EXECUTION = "provider_execution"
    VALIDATION = "validation"
    PLACEHOLDER_UNRESOLVED = "placeholder_unresolved"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True
    recovery_suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (stack trace excluded)."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
            "recovery_suggestions": self.recovery_suggestions,
        }


# ============================================================================
# Exception Hierarchy
# ============================================================================

class SwitchyardException(Exception):
    """Base exception for all Switchyard errors with rich context."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
        recovery_suggestions: Optional[List[str]] = None,
        context: Optional[ErrorContext] = None,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.recovery_suggestions = recovery_suggestions or []

        if context:
            self.context = context
        else:
            self.context = ErrorContext(
                severity=severity,
                category=category,
                message=message,
                details=self.details,
                stack_trace=traceback.format_exc(),
                is_recoverable=is_recoverable,
                recovery_suggestions=self.recovery_suggestions,
            )

        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.context.error_id}] {self.category.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return self.context.to_dict()


# ============================================================================
# Selection Errors
# ============================================================================

class NoCandidateAvailableError(SwitchyardException):
    """Selection found zero eligible providers (all excluded or registry empty)."""

    def __init__(self, message: str = "No candidate provider available",
                 excluded: Iterable[str] = (), **kwargs):
        self.excluded = sorted(excluded)
        kwargs.setdefault("category", ErrorCategory.SELECTION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        kwargs.setdefault("details", {"excluded": self.excluded})
        kwargs.setdefault("recovery_suggestions", ["Register at least one provider",
                                                   "Configure a default provider"])
        super().__init__(message, **kwargs)


# ============================================================================
# Provider Errors
# ============================================================================

class ProviderExecutionError(SwitchyardException):
    """The opaque provider call raised or reported failure."""

    def __init__(self, message: str, provider: str = "", **kwargs):
        self.provider = provider
        kwargs.setdefault("category", ErrorCategory.PROVIDER)
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        kwargs.setdefault("details", {"provider": provider})
        kwargs.setdefault("is_recoverable", True)
        super().__init__(message, **kwargs)


class ProviderNotWiredError(ProviderExecutionError):
    """Selection named a provider that has no execution backend attached."""
    pass


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(SwitchyardException):
    """Validation error (input or content rejected)."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, **kwargs)


class ContentValidationError(ValidationError):
    """A post-processing validator rejected generated content."""
    pass


class ConfigurationError(ValidationError):
    """Invalid construction-time data (profiles, rules, strategies)."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class WorkflowDefinitionError(ValidationError):
    """A workflow definition is malformed (empty or duplicate step names)."""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.WORKFLOW)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


# ============================================================================
# Utility Functions
# ============================================================================

def failure_kind_for(exc: BaseException) -> FailureKind:
    """Map an exception raised inside the core to its FailureKind tag."""
    if isinstance(exc, NoCandidateAvailableError):
        return FailureKind.NO_CANDIDATE
    if isinstance(exc, ContentValidationError):
        return FailureKind.VALIDATION
    return FailureKind.PROVIDER_EXECUTION
