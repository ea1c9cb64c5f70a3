"""Tests for the analysis data model."""

import dataclasses

import pytest

from devassist_cli.domain import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisType,
    Depth,
    Issue,
    IssueCategory,
    Priority,
    Severity,
    Suggestion,
    SuggestionType,
    canonical_json,
    clamp,
)
from devassist_cli.errors import ValidationError

from conftest import make_request


def _issue(severity, n=1):
    return Issue(
        id=f"i{n}",
        title="t",
        description="d",
        severity=severity,
        category=IssueCategory.SECURITY,
    )


class TestSeverity:
    """Ordering of severities and priorities."""

    def test_ordering(self):
        assert Severity.INFO < Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
        assert max([Severity.LOW, Severity.CRITICAL, Severity.MEDIUM]) is Severity.CRITICAL

    def test_highest_of_nothing_is_info(self):
        assert Severity.highest([]) is Severity.INFO

    def test_priority_weights_are_ordered(self):
        weights = [p.weight for p in (Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL)]
        assert weights == sorted(weights)
        assert all(0 < w <= 1 for w in weights)
        assert Priority.HIGH > Priority.MEDIUM


class TestAnalysisResult:
    """Derived fields of AnalysisResult."""

    def test_overall_severity_is_max_of_issues(self):
        result = AnalysisResult(
            type=AnalysisType.SECURITY,
            summary="s",
            issues=[_issue(Severity.LOW, 1), _issue(Severity.HIGH, 2), _issue(Severity.MEDIUM, 3)],
        )
        assert result.overall_severity is Severity.HIGH

    def test_overall_severity_without_issues(self):
        result = AnalysisResult(type=AnalysisType.SECURITY, summary="s")
        assert result.overall_severity is Severity.INFO

    def test_overall_severity_cannot_be_passed(self):
        with pytest.raises(TypeError):
            AnalysisResult(type=AnalysisType.SECURITY, summary="s", overall_severity=Severity.CRITICAL)

    def test_replace_recomputes_severity(self):
        result = AnalysisResult(type=AnalysisType.SECURITY, summary="s")
        updated = dataclasses.replace(result, issues=(_issue(Severity.CRITICAL),))
        assert updated.overall_severity is Severity.CRITICAL

    @pytest.mark.parametrize("given, expected", [(1.7, 1.0), (-0.3, 0.0), (0.42, 0.42)])
    def test_confidence_is_clamped(self, given, expected):
        result = AnalysisResult(type=AnalysisType.CODE_QUALITY, summary="s", confidence=given)
        assert result.confidence == expected

    def test_is_immutable(self):
        result = AnalysisResult(type=AnalysisType.CODE_QUALITY, summary="s")
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.summary = "changed"

    def test_to_dict(self):
        result = AnalysisResult(
            type=AnalysisType.SECURITY,
            summary="s",
            issues=[_issue(Severity.HIGH)],
            metrics={"security_score": 6},
        )
        data = result.to_dict()
        assert data["type"] == "security"
        assert data["overall_severity"] == "high"
        assert data["issues"][0]["severity"] == "high"
        assert data["metrics"] == {"security_score": 6}

    def test_issues_by_severity(self):
        result = AnalysisResult(
            type=AnalysisType.SECURITY,
            summary="s",
            issues=[_issue(Severity.HIGH, 1), _issue(Severity.HIGH, 2), _issue(Severity.LOW, 3)],
        )
        grouped = result.issues_by_severity()
        assert len(grouped[Severity.HIGH]) == 2
        assert len(grouped[Severity.LOW]) == 1


class TestSuggestion:
    def test_estimated_impact_is_clamped(self):
        s = Suggestion(
            id="s1",
            title="t",
            description="d",
            type=SuggestionType.REFACTORING,
            priority=Priority.LOW,
            estimated_impact=3.5,
        )
        assert s.estimated_impact == 1.0

    def test_benefits_become_tuple(self):
        s = Suggestion(
            id="s1",
            title="t",
            description="d",
            type=SuggestionType.REFACTORING,
            priority=Priority.LOW,
            benefits=["faster"],
        )
        assert s.benefits == ("faster",)


class TestAnalysisRequest:
    """Construction and derived properties of requests."""

    def test_create_coerces_strings(self):
        request = AnalysisRequest.create("security", {"a.py": "x = 1"}, depth="expert")
        assert request.type is AnalysisType.SECURITY
        assert request.depth is Depth.EXPERT
        assert len(request.request_id) == 12

    def test_create_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            AnalysisRequest.create("style", {"a.py": "x = 1"})

    def test_create_rejects_unknown_depth(self):
        with pytest.raises(ValidationError):
            AnalysisRequest.create("security", {"a.py": "x = 1"}, depth="deep")

    def test_files_are_read_only(self):
        request = make_request(files={"a.py": "x = 1"})
        with pytest.raises(TypeError):
            request.files["b.py"] = "y = 2"

    def test_code_single_file(self):
        request = make_request(files={"a.py": "x = 1"})
        assert request.code == "x = 1"

    def test_code_multiple_files(self):
        request = make_request(files={"a.py": "x = 1", "b.py": "y = 2"})
        assert "// File: a.py\nx = 1" in request.code
        assert "// File: b.py\ny = 2" in request.code

    def test_language_by_extension(self):
        assert make_request(files={"a.php": "", "b.php": "", "c.py": ""}).language == "PHP"
        assert make_request(files={"README": "hi"}).language == "source"

    def test_code_length_and_lines(self):
        request = make_request(files={"a.py": "ab\ncd", "b.py": "e"})
        assert request.code_length == 6
        assert request.line_count == 3

    def test_complexity_estimate(self):
        code = "def f(x):\n    if x:\n        return 1\n    for i in x:\n        pass\n"
        assert make_request(files={"a.py": code}).complexity_estimate() == 3.0

    def test_requires_high_performance_model(self):
        assert make_request(files={"a.py": "x"}, depth="expert").requires_high_performance_model()
        assert make_request(files={"a.py": "x"}, rules=[f"r{i}" for i in range(6)]).requires_high_performance_model()
        assert make_request(files={"a.py": "x" * 5001}).requires_high_performance_model()
        assert not make_request(files={"a.py": "x"}).requires_high_performance_model()


class TestUniqueKey:
    """Content-derived request keys."""

    def test_same_content_same_key(self):
        a = make_request(files={"a.py": "x = 1", "b.py": "y"}, request_id="one")
        b = make_request(files={"b.py": "y", "a.py": "x = 1"}, request_id="two")
        assert a.unique_key() == b.unique_key()

    @pytest.mark.parametrize(
        "changes",
        [
            {"files": {"a.py": "x = 2"}},
            {"type": "security"},
            {"depth": "expert"},
            {"project_type": "django"},
            {"rules": ["no globals"]},
            {"options": {"strict": True}},
        ],
    )
    def test_any_field_change_changes_key(self, changes):
        base = {"type": "code_quality", "files": {"a.py": "x = 1"}}
        original = make_request(**base)
        changed = make_request(**{**base, **changes})
        assert original.unique_key() != changed.unique_key()

    def test_mixed_option_keys(self):
        options = {"weights": {1: "a", "x": "b"}}
        a = make_request(options=options, request_id="one")
        b = make_request(options={"weights": {"x": "b", 1: "a"}}, request_id="two")
        assert a.unique_key() == b.unique_key()


def test_canonical_json():
    assert canonical_json({"weights": {1: "a", "x": "b"}}) == '{"weights": {"1": "a", "x": "b"}}'
    assert canonical_json({"tags": {"b", "a"}}) == canonical_json({"tags": ["a", "b"]})
    assert canonical_json({"pair": (1, 2)}) == '{"pair": [1, 2]}'


def test_clamp():
    assert clamp(2) == 1.0
    assert clamp(-1) == 0.0
    assert clamp(0.5) == 0.5
    assert clamp(15, 0, 10) == 10
