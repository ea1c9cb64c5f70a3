"""Typed result model shared by analyzers, parser and orchestrator.

Requests are immutable once constructed; results recompute their overall
severity from their issues and clamp confidence, so neither can drift from
the data they summarise.
"""

from __future__ import annotations

import datetime
import functools
import hashlib
import json
import os
import re
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .errors import ValidationError


class AnalysisType(Enum):
    """Kind of analysis an analyzer performs."""

    CODE_QUALITY = "code_quality"
    ARCHITECTURE = "architecture"
    PERFORMANCE = "performance"
    SECURITY = "security"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    AnalysisType.CODE_QUALITY: "Code Quality Analysis",
    AnalysisType.ARCHITECTURE: "Architecture Analysis",
    AnalysisType.PERFORMANCE: "Performance Analysis",
    AnalysisType.SECURITY: "Security Analysis",
}


class Depth(Enum):
    """How thorough an analysis should be. Scales prompt size and model tier."""

    BASIC = "basic"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"
    EXPERT = "expert"


@functools.total_ordering
class Severity(Enum):
    """Ordered issue severity: info < low < medium < high < critical."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def highest(cls, severities: Iterable[Severity]) -> Severity:
        """Return the maximum severity, or INFO when there is none."""
        return max(severities, key=lambda s: s.rank, default=cls.INFO)


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class IssueCategory(Enum):
    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    ARCHITECTURE = "architecture"
    CODE_STYLE = "code_style"
    BEST_PRACTICE = "best_practice"
    COMPLEXITY = "complexity"
    DESIGN_PATTERN = "design_pattern"
    DOCUMENTATION = "documentation"
    TESTING = "testing"
    ERROR_HANDLING = "error_handling"


class SuggestionType(Enum):
    CODE_CLEANUP = "code_cleanup"
    REFACTORING = "refactoring"
    PERFORMANCE_OPTIMIZATION = "performance_optimization"
    SECURITY_HARDENING = "security_hardening"
    DESIGN_PATTERN = "design_pattern"
    ARCHITECTURE_IMPROVEMENT = "architecture_improvement"
    TESTING = "testing"
    DOCUMENTATION = "documentation"


@functools.total_ordering
class Priority(Enum):
    """Ordered suggestion priority with a numeric weight in (0, 1]."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> float:
        return _PRIORITY_WEIGHT[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.weight < other.weight


_PRIORITY_WEIGHT = {
    Priority.LOW: 0.25,
    Priority.MEDIUM: 0.5,
    Priority.HIGH: 0.75,
    Priority.CRITICAL: 1.0,
}


# Extension -> Language mapping
EXT_LANG = {
    ".py": "Python", ".pyi": "Python",
    ".js": "JavaScript", ".mjs": "JavaScript", ".cjs": "JavaScript", ".jsx": "JavaScript",
    ".ts": "TypeScript", ".tsx": "TypeScript",
    ".php": "PHP",
    ".rb": "Ruby",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java", ".kt": "Kotlin",
    ".cs": "C#",
    ".c": "C", ".h": "C/C++",
    ".cpp": "C++", ".cc": "C++", ".hpp": "C++",
    ".swift": "Swift",
    ".scala": "Scala",
    ".sql": "SQL",
}

_DECISION_RE = re.compile(
    r"\b(?:if|elseif|elif|for|foreach|while|case|catch|except)\b|&&|\|\||\?\?"
)
_FUNCTION_RE = re.compile(r"\b(?:function|def|func|fn)\s+\w+")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=repr)
    return value


def canonical_json(value: Any) -> str:
    """Stable JSON for arbitrary option values. Mapping keys are stringified, sets sorted."""
    return json.dumps(_normalize(value), sort_keys=True, default=str)


@dataclass(frozen=True)
class AnalysisRequest:
    """One unit of analysis work: a set of files and how to analyze them."""

    request_id: str
    type: AnalysisType
    files: Mapping[str, str]
    project_type: str = "generic"
    depth: Depth = Depth.STANDARD
    rules: tuple[str, ...] = ()
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.type, AnalysisType):
            raise ValidationError(f"Invalid analysis type: {self.type!r}")
        if not isinstance(self.depth, Depth):
            raise ValidationError(f"Invalid depth: {self.depth!r}")
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def create(
        cls,
        type: AnalysisType | str,
        files: Mapping[str, str],
        project_type: str = "generic",
        depth: Depth | str = Depth.STANDARD,
        rules: Iterable[str] = (),
        options: Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> AnalysisRequest:
        """Build a request, coercing string enum values."""
        try:
            analysis_type = type if isinstance(type, AnalysisType) else AnalysisType(str(type).lower())
        except ValueError:
            raise ValidationError(f"Unknown analysis type: {type}")
        try:
            analysis_depth = depth if isinstance(depth, Depth) else Depth(str(depth).lower())
        except ValueError:
            raise ValidationError(f"Unknown depth: {depth}")
        return cls(
            request_id=request_id or uuid.uuid4().hex[:12],
            type=analysis_type,
            files=files,
            project_type=project_type,
            depth=analysis_depth,
            rules=tuple(rules),
            options=options or {},
        )

    @property
    def code(self) -> str:
        """All file contents, each preceded by a path header when there are several."""
        if len(self.files) == 1:
            return next(iter(self.files.values()))
        return "\n\n".join(f"// File: {path}\n{content}" for path, content in self.files.items())

    @property
    def file_path(self) -> str:
        return next(iter(self.files), "")

    @property
    def code_length(self) -> int:
        return sum(len(content) for content in self.files.values())

    @property
    def line_count(self) -> int:
        return sum(content.count("\n") + 1 for content in self.files.values())

    @property
    def language(self) -> str:
        """Dominant language by file extension."""
        langs: Counter = Counter()
        for path in self.files:
            lang = EXT_LANG.get(os.path.splitext(path)[1].lower())
            if lang:
                langs[lang] += 1
        if not langs:
            return "source"
        return langs.most_common(1)[0][0]

    def complexity_estimate(self) -> float:
        """Rough cyclomatic complexity: decision points per function, plus one."""
        decisions = 0
        functions = 0
        for content in self.files.values():
            decisions += len(_DECISION_RE.findall(content))
            functions += len(_FUNCTION_RE.findall(content))
        return round(1 + decisions / max(1, functions), 1)

    def requires_high_performance_model(self, rule_threshold: int = 5, code_length_threshold: int = 5000) -> bool:
        return (
            self.depth is Depth.EXPERT
            or len(self.rules) > rule_threshold
            or self.code_length > code_length_threshold
        )

    def unique_key(self) -> str:
        """Deterministic content hash. The request id is not part of it."""
        payload = {
            "type": self.type.value,
            "files": sorted(self.files.items()),
            "project_type": self.project_type,
            "depth": self.depth.value,
            "rules": list(self.rules),
            "options": dict(self.options),
        }
        encoded = canonical_json(payload)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Issue:
    """A single finding."""

    id: str
    title: str
    description: str
    severity: Severity
    category: IssueCategory
    file: str | None = None
    line: int | None = None
    column: int | None = None
    rule: str | None = None
    fix_suggestion: str | None = None
    code_snippet: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category.value,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "rule": self.rule,
            "fix_suggestion": self.fix_suggestion,
            "code_snippet": self.code_snippet,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class Suggestion:
    """An improvement proposal. Estimated impact is clamped to [0, 1]."""

    id: str
    title: str
    description: str
    type: SuggestionType
    priority: Priority
    implementation: str | None = None
    reasoning: str | None = None
    example_code: str | None = None
    benefits: tuple[str, ...] = ()
    estimated_impact: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "benefits", tuple(self.benefits))
        if self.estimated_impact is not None:
            object.__setattr__(self, "estimated_impact", clamp(float(self.estimated_impact)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "priority": self.priority.value,
            "implementation": self.implementation,
            "reasoning": self.reasoning,
            "example_code": self.example_code,
            "benefits": list(self.benefits),
            "estimated_impact": self.estimated_impact,
            "metadata": self.metadata,
        }


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class AnalysisResult:
    """Complete output of one analysis.

    ``overall_severity`` is derived from ``issues`` and cannot be passed in.
    """

    type: AnalysisType
    summary: str
    issues: tuple[Issue, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()
    metrics: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.8
    analyzed_at: datetime.datetime = field(default_factory=_utcnow)
    overall_severity: Severity = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "issues", tuple(self.issues))
        object.__setattr__(self, "suggestions", tuple(self.suggestions))
        object.__setattr__(self, "metrics", dict(self.metrics))
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))
        object.__setattr__(self, "overall_severity", Severity.highest(i.severity for i in self.issues))

    def issues_by_severity(self) -> dict[Severity, list[Issue]]:
        grouped: dict[Severity, list[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.severity, []).append(issue)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "summary": self.summary,
            "issues": [i.to_dict() for i in self.issues],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "metrics": self.metrics,
            "overall_severity": self.overall_severity.value,
            "confidence": round(self.confidence, 3),
            "analyzed_at": self.analyzed_at.isoformat(),
        }


@dataclass(frozen=True)
class Message:
    """A chat message sent to an AI backend."""

    role: str
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
