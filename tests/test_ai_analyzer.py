"""Tests for the AI-backed analyzers and result post-processing."""

import json

import pytest

from devassist_cli.ai_analyzer import (
    PROFILES,
    AIAnalyzer,
    adjust_confidence,
    build_analyzers,
    code_health_score,
    optimize_suggestions,
    prioritize_issues,
    technical_debt_minutes,
)
from devassist_cli.config import AnalysisConfig
from devassist_cli.domain import (
    AnalysisType,
    Issue,
    IssueCategory,
    Priority,
    Severity,
    Suggestion,
    SuggestionType,
)
from devassist_cli.errors import BackendError

from conftest import CLEAN_PHP, FakeBackend, make_request

RESPONSE = json.dumps(
    {
        "summary": "Mostly fine",
        "confidence": 0.9,
        "issues": [
            {"title": "Style nit", "severity": "low", "category": "code_style"},
            {"title": "Injection", "severity": "critical", "category": "security"},
            {"title": "Slow loop", "severity": "critical", "category": "performance"},
        ],
        "suggestions": [{"title": "Add tests", "type": "testing", "priority": "high"}],
    }
)


def _issue(severity, category=IssueCategory.BEST_PRACTICE, title="t"):
    return Issue(id=title, title=title, description="", severity=severity, category=category)


def _suggestion(priority, impact=None, n=0):
    return Suggestion(
        id=f"s{n}",
        title=f"s{n}",
        description="",
        type=SuggestionType.REFACTORING,
        priority=priority,
        estimated_impact=impact,
    )


class TestAIAnalyzer:
    """Prompt, dispatch, parse and enhance."""

    def test_analyze(self):
        backend = FakeBackend([RESPONSE])
        analyzer = AIAnalyzer(PROFILES[AnalysisType.CODE_QUALITY], backend)
        request = make_request("code_quality", {"src/Greeter.php": CLEAN_PHP}, depth="comprehensive")

        result = analyzer.analyze(request, "claude-3-5-haiku-20241022")

        (call,) = backend.calls
        assert call["model"] == "claude-3-5-haiku-20241022"
        assert call["temperature"] == 0.1
        assert call["max_tokens"] == 3500
        system, user = call["messages"]
        assert system.role == "system"
        assert CLEAN_PHP in user.content

        assert [i.title for i in result.issues] == ["Injection", "Slow loop", "Style nit"]
        assert result.overall_severity is Severity.CRITICAL
        assert result.metrics["model"] == "claude-3-5-haiku-20241022"
        assert result.metrics["analyzer"] == "ai_code_quality"
        assert result.metrics["technical_debt_minutes"] == 240 + 240 + 30
        assert result.metrics["code_health_score"] == 6.0
        assert result.confidence == pytest.approx(0.9)

    def test_selects_model_when_none_given(self):
        backend = FakeBackend([RESPONSE])
        analyzer = AIAnalyzer(PROFILES[AnalysisType.SECURITY], backend)
        analyzer.analyze(make_request("security", {"a.php": CLEAN_PHP}))
        assert backend.calls[0]["model"] == "claude-3-5-sonnet-20241022"

    def test_empty_response_raises(self):
        analyzer = AIAnalyzer(PROFILES[AnalysisType.CODE_QUALITY], FakeBackend(["   "]))
        with pytest.raises(BackendError):
            analyzer.analyze(make_request("code_quality", {"a.php": CLEAN_PHP}), "m")

    def test_backend_error_propagates(self):
        analyzer = AIAnalyzer(PROFILES[AnalysisType.CODE_QUALITY], FakeBackend([BackendError("down")]))
        with pytest.raises(BackendError):
            analyzer.analyze(make_request("code_quality", {"a.php": CLEAN_PHP}), "m")

    def test_unparseable_response_is_not_enhanced(self):
        analyzer = AIAnalyzer(PROFILES[AnalysisType.CODE_QUALITY], FakeBackend(["no json here"]))
        result = analyzer.analyze(make_request("code_quality", {"a.php": CLEAN_PHP}), "m")
        assert result.metrics["parse_error"] is True
        assert "model" not in result.metrics
        assert result.confidence == pytest.approx(0.1)

    def test_supports(self):
        analyzer = AIAnalyzer(
            PROFILES[AnalysisType.SECURITY], FakeBackend([RESPONSE]), config=AnalysisConfig(max_code_length=100)
        )
        assert analyzer.supports(make_request("security", {"a.py": "x = 1"}))
        assert not analyzer.supports(make_request("code_quality", {"a.py": "x = 1"}))
        assert not analyzer.supports(make_request("security", {"a.py": "x" * 101}))


class TestEnhancement:
    def test_prioritize_issues(self):
        issues = [
            _issue(Severity.MEDIUM, title="m"),
            _issue(Severity.HIGH, IssueCategory.CODE_STYLE, title="h-style"),
            _issue(Severity.HIGH, IssueCategory.SECURITY, title="h-sec"),
        ]
        assert [i.title for i in prioritize_issues(issues)] == ["h-sec", "h-style", "m"]

    def test_few_suggestions_are_kept(self):
        suggestions = [_suggestion(Priority.LOW, n=i) for i in range(10)]
        assert len(optimize_suggestions(suggestions)) == 10

    def test_many_suggestions_are_trimmed(self):
        suggestions = [_suggestion(Priority.LOW, n=i) for i in range(10)]
        suggestions.append(_suggestion(Priority.HIGH, n=10))
        suggestions.append(_suggestion(Priority.LOW, impact=0.9, n=11))
        assert [s.id for s in optimize_suggestions(suggestions)] == ["s10", "s11"]

    def test_code_health_score(self):
        assert code_health_score([]) == 10.0
        issues = [_issue(Severity.CRITICAL)] * 6
        assert code_health_score(issues) == 0.0

    def test_technical_debt(self):
        assert technical_debt_minutes([_issue(Severity.HIGH), _issue(Severity.INFO)]) == 135

    def test_confidence_drops_for_tiny_code(self):
        request = make_request("code_quality", {"a.py": "x = 1"})
        assert adjust_confidence(0.9, request) == pytest.approx(0.75)

    def test_confidence_drops_for_complex_code(self):
        body = "\n".join(f"    if x == {i}: return {i}" for i in range(10))
        request = make_request("code_quality", {"a.py": f"def f(x):\n{body}\n"})
        assert adjust_confidence(0.9, request) == pytest.approx(0.8)


class TestBuildAnalyzers:
    def test_static_only_without_backend(self):
        analyzers = build_analyzers()
        assert len(analyzers) == 4
        assert all(a.name.startswith("static_") for a in analyzers)

    def test_ai_analyzers_outrank_static(self):
        analyzers = build_analyzers(backend=FakeBackend([RESPONSE]))
        assert len(analyzers) == 8
        for analysis_type in AnalysisType:
            request = make_request(analysis_type, {"a.py": "x = 1"})
            best = max((a for a in analyzers if a.supports(request)), key=lambda a: a.priority)
            assert best.name.startswith("ai_")
