"""AI-backed analyzers - Layer 2.

One analyzer class configured per analysis type: render the prompt, call
the backend on the model the orchestrator picked, parse the response, then
post-process (ordering, trimming, derived metrics, confidence adjustment).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace

from .analyzer import Analyzer, static_analyzers
from .config import AnalysisConfig
from .domain import AnalysisRequest, AnalysisResult, AnalysisType, Issue, Severity, Suggestion
from .errors import BackendError
from .logging_config import get_logger
from .model import Backend
from .parser import ResponseParser
from .prompts import PromptTemplateEngine
from .selector import ModelSelector

logger = get_logger(__name__)

CATEGORY_WEIGHT = {
    "security": 10,
    "performance": 8,
    "maintainability": 6,
    "architecture": 5,
    "code_style": 3,
}

# Minutes of remediation effort per issue
DEBT_MINUTES = {
    Severity.CRITICAL: 240,
    Severity.HIGH: 120,
    Severity.MEDIUM: 60,
    Severity.LOW: 30,
    Severity.INFO: 15,
}

MAX_SUGGESTIONS = 10


@dataclass(frozen=True)
class AnalyzerProfile:
    """What distinguishes one AI analyzer variant from another."""

    analysis_type: AnalysisType
    name: str
    priority: int
    template: str


PROFILES = {
    AnalysisType.CODE_QUALITY: AnalyzerProfile(AnalysisType.CODE_QUALITY, "ai_code_quality", 100, "code_quality"),
    AnalysisType.SECURITY: AnalyzerProfile(AnalysisType.SECURITY, "ai_security", 95, "security"),
    AnalysisType.ARCHITECTURE: AnalyzerProfile(AnalysisType.ARCHITECTURE, "ai_architecture", 90, "architecture"),
    AnalysisType.PERFORMANCE: AnalyzerProfile(AnalysisType.PERFORMANCE, "ai_performance", 85, "performance"),
}


class AIAnalyzer:
    """Analyzer that delegates the analysis itself to an AI backend."""

    def __init__(
        self,
        profile: AnalyzerProfile,
        backend: Backend,
        prompt_engine: PromptTemplateEngine | None = None,
        parser: ResponseParser | None = None,
        selector: ModelSelector | None = None,
        config: AnalysisConfig | None = None,
        timeout: float = 30,
    ):
        self.profile = profile
        self.backend = backend
        self.prompt_engine = prompt_engine or PromptTemplateEngine()
        self.parser = parser or ResponseParser()
        self.selector = selector or ModelSelector()
        self.config = config or AnalysisConfig()
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def priority(self) -> int:
        return self.profile.priority

    def supports(self, request: AnalysisRequest) -> bool:
        return (
            request.type is self.profile.analysis_type
            and request.code_length <= self.config.max_code_length
        )

    def estimated_duration(self, request: AnalysisRequest) -> int:
        """Rough wall-clock seconds for the backend call."""
        complexity = min(request.complexity_estimate() / 5, 3)
        length = min(request.code_length / 10000, 2)
        return max(1, int(5 * max(1.0, complexity) * max(1.0, length)))

    def analyze(self, request: AnalysisRequest, model: str | None = None) -> AnalysisResult:
        model = model or self.selector.select_model(request)
        depth = request.depth.value

        prompt = self.prompt_engine.generate_prompt(self.profile.template, request)
        messages = self.prompt_engine.create_message_bag(prompt, request)

        start = time.time()
        response = self.backend.complete(
            model,
            messages,
            temperature=self.config.temperature.get(depth, 0.15),
            max_tokens=self.config.max_tokens.get(depth, 2500),
            timeout=self.timeout,
        )
        logger.debug(
            "AI analysis executed: analyzer=%s model=%s duration=%.3fs",
            self.name,
            model,
            time.time() - start,
        )
        if not response or not response.strip():
            raise BackendError(f"Empty response from model {model}")

        result = self.parser.parse(self.profile.analysis_type, response, request)
        if result.metrics.get("parse_error"):
            return result
        return self.enhance(result, request, model)

    def enhance(self, result: AnalysisResult, request: AnalysisRequest, model: str) -> AnalysisResult:
        """Order issues, trim weak suggestions, add derived metrics."""
        issues = prioritize_issues(result.issues)
        suggestions = optimize_suggestions(result.suggestions)
        metrics = {
            **result.metrics,
            "analysis_efficiency": analysis_efficiency(request, issues),
            "code_health_score": code_health_score(issues),
            "improvement_potential": improvement_potential(suggestions),
            "technical_debt_minutes": technical_debt_minutes(issues),
            "model": model,
            "analyzer": self.name,
        }
        return replace(
            result,
            issues=tuple(issues),
            suggestions=tuple(suggestions),
            metrics=metrics,
            confidence=adjust_confidence(result.confidence, request),
        )


def prioritize_issues(issues: tuple[Issue, ...] | list[Issue]) -> list[Issue]:
    """Most severe first, then by category importance."""
    return sorted(
        issues,
        key=lambda i: (i.severity.rank, CATEGORY_WEIGHT.get(i.category.value, 1)),
        reverse=True,
    )


def optimize_suggestions(suggestions: tuple[Suggestion, ...] | list[Suggestion]) -> list[Suggestion]:
    """Drop low-impact suggestions when there are too many to act on."""
    if len(suggestions) <= MAX_SUGGESTIONS:
        return list(suggestions)
    return [
        s for s in suggestions
        if s.priority.weight > 0.5 or (s.estimated_impact or 0) > 0.6
    ]


def analysis_efficiency(request: AnalysisRequest, issues: list[Issue]) -> float:
    issues_per_kloc = len(issues) / max(1, request.code_length / 1000)
    return round(min(10.0, max(0.0, 10 - issues_per_kloc)), 2)


def code_health_score(issues: list[Issue]) -> float:
    critical = sum(1 for i in issues if i.severity is Severity.CRITICAL)
    high = sum(1 for i in issues if i.severity is Severity.HIGH)
    return float(max(0, min(10, 10 - critical * 2 - high)))


def improvement_potential(suggestions: list[Suggestion]) -> float:
    if not suggestions:
        return 0.0
    high_impact = sum(1 for s in suggestions if (s.estimated_impact or 0) > 0.7)
    return round(high_impact / len(suggestions) * 10, 2)


def technical_debt_minutes(issues: list[Issue]) -> int:
    return sum(DEBT_MINUTES[i.severity] for i in issues)


def adjust_confidence(confidence: float, request: AnalysisRequest) -> float:
    adjustment = 0.0
    if request.complexity_estimate() > 8:
        adjustment -= 0.1  # complex code
    if request.code_length < 100:
        adjustment -= 0.15  # too little context
    return max(0.0, min(1.0, confidence + adjustment))


def build_analyzers(
    backend: Backend | None = None,
    prompt_engine: PromptTemplateEngine | None = None,
    parser: ResponseParser | None = None,
    selector: ModelSelector | None = None,
    config: AnalysisConfig | None = None,
    timeout: float = 30,
) -> list[Analyzer]:
    """Registry of analyzer variants: AI analyzers when a backend exists, static always."""
    analyzers: list[Analyzer] = []
    if backend is not None:
        prompt_engine = prompt_engine or PromptTemplateEngine()
        parser = parser or ResponseParser()
        for profile in PROFILES.values():
            analyzers.append(
                AIAnalyzer(profile, backend, prompt_engine, parser, selector, config, timeout)
            )
    analyzers.extend(static_analyzers())
    return analyzers
