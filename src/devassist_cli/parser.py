"""Turns raw AI output into typed analysis results.

The decoded JSON is treated as untyped only inside this module. Every field
is read defensively, bad list entries are dropped one at a time, and any
failure of the whole pipeline yields a low-confidence fallback result
instead of an exception.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Callable, TypeVar

from .domain import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisType,
    Issue,
    IssueCategory,
    Priority,
    Severity,
    Suggestion,
    SuggestionType,
)
from .errors import ParseError
from .logging_config import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)

DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.1

# Tried in order; first match wins
JSON_PATTERNS = [
    re.compile(r"```json\s*(\{.*?\})\s*```", re.DOTALL),
    re.compile(r"(\{.*\})", re.DOTALL),
    re.compile(r"<json>(.*?)</json>", re.DOTALL),
]


def extract_json(response: str) -> dict[str, Any]:
    """Pull a JSON object out of free-form model output."""
    content = response
    for pattern in JSON_PATTERNS:
        match = pattern.search(response)
        if match:
            content = match.group(1)
            break

    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Response is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ParseError("Response is not a JSON object")
    return data


def _parse_enum(enum_cls: type[E], value: Any, default: E) -> E:
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning("Invalid %s value %r, using %s", enum_cls.__name__, value, default.value)
        return default


def _nullable_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _nullable_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _nullable_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class ResponseParser:
    """Parses AI responses for every analysis type through one pipeline."""

    def parse(self, analysis_type: AnalysisType, response: str, request: AnalysisRequest) -> AnalysisResult:
        handlers: dict[AnalysisType, Callable[[str, AnalysisRequest], AnalysisResult]] = {
            AnalysisType.CODE_QUALITY: self.parse_code_quality_response,
            AnalysisType.ARCHITECTURE: self.parse_architecture_response,
            AnalysisType.PERFORMANCE: self.parse_performance_response,
            AnalysisType.SECURITY: self.parse_security_response,
        }
        return handlers[analysis_type](response, request)

    def parse_code_quality_response(self, response: str, request: AnalysisRequest) -> AnalysisResult:
        return self._parse(AnalysisType.CODE_QUALITY, response, request, lambda data: {})

    def parse_architecture_response(self, response: str, request: AnalysisRequest) -> AnalysisResult:
        def extra(data: dict[str, Any]) -> dict[str, Any]:
            return {
                "architectural_score": data.get("architectural_score"),
                "solid_compliance": data.get("solid_compliance"),
                "design_patterns_used": _list(data.get("design_patterns_used")),
                "coupling_score": data.get("coupling_score"),
                "cohesion_score": data.get("cohesion_score"),
            }

        return self._parse(AnalysisType.ARCHITECTURE, response, request, extra, default_confidence=0.85)

    def parse_performance_response(self, response: str, request: AnalysisRequest) -> AnalysisResult:
        def extra(data: dict[str, Any]) -> dict[str, Any]:
            return {
                "performance_score": data.get("performance_score"),
                "complexity_metrics": _dict(data.get("complexity_metrics")),
                "bottlenecks_identified": _list(data.get("bottlenecks_identified")),
                "optimization_potential": data.get("optimization_potential"),
            }

        return self._parse(AnalysisType.PERFORMANCE, response, request, extra)

    def parse_security_response(self, response: str, request: AnalysisRequest) -> AnalysisResult:
        def extra(data: dict[str, Any]) -> dict[str, Any]:
            return {
                "security_score": data.get("security_score"),
                "owasp_categories": _list(data.get("owasp_categories")),
                "vulnerabilities_found": data.get("vulnerabilities_found"),
            }

        return self._parse(AnalysisType.SECURITY, response, request, extra)

    def _parse(
        self,
        analysis_type: AnalysisType,
        response: str,
        request: AnalysisRequest,
        extra_metrics: Callable[[dict[str, Any]], dict[str, Any]],
        default_confidence: float = DEFAULT_CONFIDENCE,
    ) -> AnalysisResult:
        try:
            data = extract_json(response)
            metrics = {**_dict(data.get("metrics")), **extra_metrics(data)}
            confidence = _nullable_float(data.get("confidence"))
            summary = data.get("summary")
            return AnalysisResult(
                type=analysis_type,
                summary=str(summary) if summary else f"{analysis_type.display_name} completed",
                issues=self.parse_issues(_list(data.get("issues"))),
                suggestions=self.parse_suggestions(_list(data.get("suggestions"))),
                metrics=metrics,
                confidence=default_confidence if confidence is None else confidence,
            )
        except Exception as e:
            logger.error(
                "Failed to parse %s response: error=%s response_length=%d",
                analysis_type.value,
                e,
                len(response) if isinstance(response, str) else 0,
            )
            return self.fallback_result(request, response)

    def parse_issues(self, items: list[Any]) -> list[Issue]:
        issues = []
        for index, item in enumerate(items):
            try:
                issues.append(self._parse_issue(index, item))
            except Exception as e:
                logger.warning("Skipping malformed issue #%d: %s (%r)", index, e, item)
        return issues

    def _parse_issue(self, index: int, item: Any) -> Issue:
        if not isinstance(item, dict):
            raise ParseError(f"expected an object, got {type(item).__name__}")
        return Issue(
            id=str(item.get("id") or f"issue_{index + 1}"),
            title=str(item.get("title") or f"Issue #{index + 1}"),
            description=str(item.get("description") or ""),
            severity=_parse_enum(Severity, item.get("severity"), Severity.MEDIUM),
            category=_parse_enum(IssueCategory, item.get("category"), IssueCategory.BEST_PRACTICE),
            file=_nullable_str(item.get("file")),
            line=_nullable_int(item.get("line")),
            column=_nullable_int(item.get("column")),
            rule=_nullable_str(item.get("rule")),
            fix_suggestion=_nullable_str(_first(item, "fix_suggestion", "fixSuggestion")),
            code_snippet=_nullable_str(_first(item, "code_snippet", "codeSnippet")),
            metadata={
                "reasoning": item.get("reasoning"),
                "impact": item.get("impact"),
                "confidence": item.get("confidence"),
                "ai_generated": True,
            },
        )

    def parse_suggestions(self, items: list[Any]) -> list[Suggestion]:
        suggestions = []
        for index, item in enumerate(items):
            try:
                suggestions.append(self._parse_suggestion(index, item))
            except Exception as e:
                logger.warning("Skipping malformed suggestion #%d: %s (%r)", index, e, item)
        return suggestions

    def _parse_suggestion(self, index: int, item: Any) -> Suggestion:
        if not isinstance(item, dict):
            raise ParseError(f"expected an object, got {type(item).__name__}")
        benefits = item.get("benefits")
        if isinstance(benefits, str):
            benefits = [benefits]
        return Suggestion(
            id=str(item.get("id") or f"suggestion_{index + 1}"),
            title=str(item.get("title") or f"Suggestion #{index + 1}"),
            description=str(item.get("description") or ""),
            type=_parse_enum(SuggestionType, item.get("type"), SuggestionType.CODE_CLEANUP),
            priority=_parse_enum(Priority, item.get("priority"), Priority.MEDIUM),
            implementation=_nullable_str(item.get("implementation")),
            reasoning=_nullable_str(item.get("reasoning")),
            example_code=_nullable_str(_first(item, "example_code", "exampleCode")),
            benefits=tuple(str(b) for b in _list(benefits)),
            estimated_impact=_nullable_float(_first(item, "estimated_impact", "estimatedImpact")),
            metadata={
                "difficulty": item.get("difficulty"),
                "time_estimate": item.get("time_estimate"),
                "ai_generated": True,
            },
        )

    def fallback_result(self, request: AnalysisRequest, response: Any) -> AnalysisResult:
        """Degraded but valid result for output that could not be parsed."""
        return AnalysisResult(
            type=request.type,
            summary="Analysis completed with parsing errors. Please review manually.",
            metrics={
                "parse_error": True,
                "response_length": len(response) if isinstance(response, str) else 0,
                "fallback_result": True,
            },
            confidence=FALLBACK_CONFIDENCE,
        )
