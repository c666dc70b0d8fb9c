"""
Post-processing applied to a successful response.

Options run in request order. Each one appends a PostProcessingResult;
a validation rejection also marks the whole response failed.
"""

import json
import logging
import time
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, Iterable

from switchyard.exceptions_unified import ContentValidationError, FailureKind
from switchyard.llm.models import (
    CompletionResponse,
    PostProcessingOption,
    PostProcessingResult,
    PostProcessingType,
)

logger = logging.getLogger(__name__)

VALIDATION_FAILED = "Content validation failed"
SUMMARY_LIMIT = 500

_CODE_MARKERS = {
    "csharp": ("using", "namespace", "class"),
    "javascript": ("function", "const", "let"),
    "python": ("def ", "import ", "class "),
}


# ── Formatting ───────────────────────────────────────────────────


def _format_json(content: str, params: Dict[str, Any]) -> str:
    try:
        return json.dumps(json.loads(content), indent=2)
    except ValueError:
        return content


def _format_markdown(content: str, params: Dict[str, Any]) -> str:
    return content.replace("\n", "\n\n").strip()


def _format_code(content: str, params: Dict[str, Any]) -> str:
    language = params.get("language", "text")
    return f"```{language}\n{content}\n```"


_FORMATTERS: Dict[str, Callable[[str, Dict[str, Any]], str]] = {
    "json": _format_json,
    "markdown": _format_markdown,
    "code": _format_code,
}


def format_content(content: str, params: Dict[str, Any]) -> str:
    formatter = _FORMATTERS.get(str(params.get("formatType", "default")).lower())
    return formatter(content, params) if formatter else content


# ── Validation ───────────────────────────────────────────────────


def _is_valid_json(content: str) -> bool:
    try:
        json.loads(content)
    except ValueError:
        return False
    return True


def _is_valid_xml(content: str) -> bool:
    try:
        ET.fromstring(content)
    except ET.ParseError:
        return False
    return True


def _is_plausible_code(content: str, language: str) -> bool:
    markers = _CODE_MARKERS.get(language.lower())
    if markers is None:
        return True
    return any(marker in content for marker in markers)


def validate_content(content: str, params: Dict[str, Any]) -> None:
    """Raise ContentValidationError when the content is rejected."""
    kind = str(params.get("validationType", "basic")).lower()
    if kind == "json":
        valid = _is_valid_json(content)
    elif kind == "xml":
        valid = _is_valid_xml(content)
    elif kind == "code":
        valid = _is_plausible_code(content, str(params.get("language", "csharp")))
    else:
        valid = True
    if not valid:
        raise ContentValidationError(VALIDATION_FAILED, details={"validation_type": kind})


# ── Enhancement ──────────────────────────────────────────────────


def enhance_content(content: str, params: Dict[str, Any]) -> str:
    kind = str(params.get("enhancementType", "none")).lower()
    if kind == "summarize":
        if len(content) > SUMMARY_LIMIT:
            return content[:SUMMARY_LIMIT] + "..."
        return content
    if kind in ("expand", "enhancement"):
        return content + "\n\nAdditional Details"
    if kind == "examples":
        return content + "\n\nExamples:\n- Example 1\n- Example 2"
    return content


# ── Pipeline ─────────────────────────────────────────────────────


def apply_option(response: CompletionResponse, option: PostProcessingOption) -> CompletionResponse:
    start = time.perf_counter()
    result = PostProcessingResult(type=option.type, success=True)
    try:
        if option.type is PostProcessingType.FORMATTING:
            response.content = format_content(response.content, option.parameters)
        elif option.type is PostProcessingType.VALIDATION:
            validate_content(response.content, option.parameters)
        elif option.type is PostProcessingType.ENHANCEMENT:
            response.content = enhance_content(response.content, option.parameters)
    except ContentValidationError as e:
        response.success = False
        response.error_message = e.message
        response.failure_kind = FailureKind.VALIDATION
        result.success = False
        result.error_message = e.message
        logger.warning("Post-processing rejected content from %s", response.model_used)
    except (TypeError, ValueError, AttributeError) as e:
        result.success = False
        result.error_message = str(e)
        logger.warning("Post-processing %s failed: %s", option.type.value, e)
    result.processing_time_ms = (time.perf_counter() - start) * 1000
    response.post_processing_results.append(result)
    return response


def apply_post_processing(response: CompletionResponse,
                          options: Iterable[PostProcessingOption]) -> CompletionResponse:
    for option in options:
        response = apply_option(response, option)
    return response
