"""Static code analyzers - Layer 1. No model needed.

Regex heuristics over the request's files. They back the AI analyzers when
no backend is configured or when code is too large to send to a model.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Protocol

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


class Analyzer(Protocol):
    """Capability shared by every analyzer variant."""

    name: str
    priority: int

    def supports(self, request: AnalysisRequest) -> bool: ...

    def analyze(self, request: AnalysisRequest, model: str | None = None) -> AnalysisResult: ...

    def estimated_duration(self, request: AnalysisRequest) -> int: ...


@dataclass(frozen=True)
class PatternRule:
    """Raise one issue per file when a pattern matches at least ``min_matches`` times."""

    rule: str
    title: str
    description: str
    severity: Severity
    category: IssueCategory
    patterns: tuple[re.Pattern, ...]
    fix_suggestion: str
    min_matches: int = 1

    def check(self, path: str, content: str) -> Issue | None:
        matches = [m for p in self.patterns for m in p.finditer(content)]
        if len(matches) < self.min_matches:
            return None
        first = min(matches, key=lambda m: m.start())
        line = content.count("\n", 0, first.start()) + 1
        snippet = content.split("\n")[line - 1].strip()[:200] if content else None
        return Issue(
            id="",
            title=self.title,
            description=self.description,
            severity=self.severity,
            category=self.category,
            file=path,
            line=line,
            rule=self.rule,
            fix_suggestion=self.fix_suggestion,
            code_snippet=snippet,
            metadata={"matches": len(matches), "static": True},
        )


@dataclass(frozen=True)
class SuggestionRule:
    """Emit a suggestion once when any file satisfies ``applies``."""

    suggestion: Suggestion
    applies: Callable[[str, str], bool]


def _rx(pattern: str, flags: int = 0) -> re.Pattern:
    return re.compile(pattern, flags)


SQL_CONCAT = _rx(
    r"""(?:query|execute)\(\s*(?:["'][^\n]*?["']\s*[.+]\s*\$?\w|f["'][^"'\n]*\{)"""
)

SQL_INJECTION = PatternRule(
    rule="SQL_INJECTION",
    title="SQL Injection Vulnerability",
    description="Direct SQL concatenation detected - use prepared statements",
    severity=Severity.CRITICAL,
    category=IssueCategory.SECURITY,
    patterns=(SQL_CONCAT,),
    fix_suggestion="Use prepared statements with parameter binding",
)

CODE_QUALITY_RULES = [
    PatternRule(
        rule="TYPE_DECLARATION_MISSING",
        title="Missing Type Declarations",
        description="Method parameters and return types should be explicitly declared",
        severity=Severity.MEDIUM,
        category=IssueCategory.BEST_PRACTICE,
        patterns=(
            _rx(r"public function \w+\([^)]*\)\s*\{"),
            _rx(r"^[ \t]*def \w+\([^)]*\)\s*:", re.MULTILINE),
        ),
        fix_suggestion="Add parameter and return type declarations",
    ),
    SQL_INJECTION,
    PatternRule(
        rule="COMPLEX_CONDITIONS",
        title="Complex Nested Conditions",
        description="Too many nested if statements reduce readability",
        severity=Severity.MEDIUM,
        category=IssueCategory.COMPLEXITY,
        patterns=(_rx(r"if\s*\([^{]*\{[^}]*if\s*\([^{]*\{[^}]*if"),),
        fix_suggestion="Extract conditions into separate methods or use early returns",
    ),
    PatternRule(
        rule="LINE_TOO_LONG",
        title="Overly Long Lines",
        description="Lines longer than 160 characters are hard to read and review",
        severity=Severity.LOW,
        category=IssueCategory.CODE_STYLE,
        patterns=(_rx(r"^[^\n]{161,}$", re.MULTILINE),),
        fix_suggestion="Wrap long expressions or extract intermediate variables",
    ),
]

ARCHITECTURE_RULES = [
    PatternRule(
        rule="SRP_VIOLATION",
        title="Single Responsibility Principle Violation",
        description="Class has too many public methods, indicating multiple responsibilities",
        severity=Severity.HIGH,
        category=IssueCategory.DESIGN_PATTERN,
        patterns=(
            _rx(r"\bpublic function\b"),
            _rx(r"^[ \t]+def [a-zA-Z]\w*\(", re.MULTILINE),
        ),
        fix_suggestion="Split class into smaller, focused classes",
        min_matches=11,
    ),
    PatternRule(
        rule="ISP_VIOLATION",
        title="High Coupling Detected",
        description="Class has too many dependencies, violating Interface Segregation Principle",
        severity=Severity.MEDIUM,
        category=IssueCategory.DESIGN_PATTERN,
        patterns=(_rx(r"private (?:readonly )?(?:\??[\w\\]+ )?\$\w+"),),
        fix_suggestion="Break down into smaller interfaces or use facade pattern",
        min_matches=6,
    ),
]

PERFORMANCE_RULES = [
    PatternRule(
        rule="NESTED_LOOPS",
        title="Nested Loops",
        description="Nested iteration is quadratic or worse on large inputs",
        severity=Severity.MEDIUM,
        category=IssueCategory.PERFORMANCE,
        patterns=(
            _rx(r"\b(?:for|foreach|while)\s*\([^)]*\)\s*\{[^}]*\b(?:for|foreach|while)\s*\("),
            _rx(r"^([ \t]*)for\b[^\n]*:\n(?:\1[ \t]+[^\n]*\n)*?\1[ \t]+for\b", re.MULTILINE),
        ),
        fix_suggestion="Index one side in a map/set or batch the inner work",
    ),
    PatternRule(
        rule="QUERY_IN_LOOP",
        title="Database Query Inside Loop",
        description="Querying inside a loop causes N+1 round trips",
        severity=Severity.HIGH,
        category=IssueCategory.PERFORMANCE,
        patterns=(
            _rx(
                r"\b(?:for|foreach|while)\b[^}]{0,400}?"
                r"(?:->find\w*\(|->query\(|->execute\(|\.execute\(|\.query\(|\.objects\.get\()"
            ),
        ),
        fix_suggestion="Fetch all rows in one query before the loop or use eager loading",
    ),
]

SECURITY_RULES = [
    SQL_INJECTION,
    PatternRule(
        rule="CODE_INJECTION",
        title="Dynamic Code Evaluation",
        description="eval() executes arbitrary code and is almost never safe with external input",
        severity=Severity.HIGH,
        category=IssueCategory.SECURITY,
        patterns=(_rx(r"\beval\s*\("),),
        fix_suggestion="Replace eval() with explicit parsing or a dispatch table",
    ),
    PatternRule(
        rule="COMMAND_INJECTION",
        title="Shell Command Built From Variables",
        description="Shell execution with interpolated input allows command injection",
        severity=Severity.HIGH,
        category=IssueCategory.SECURITY,
        patterns=(
            _rx(r"\b(?:shell_exec|system|passthru|exec|popen|proc_open)\s*\([^)]*\$"),
            _rx(r"\bos\.system\s*\("),
            _rx(r"\bsubprocess\.\w+\([^)]*shell\s*=\s*True"),
        ),
        fix_suggestion="Pass arguments as a list and avoid the shell, or escape every argument",
    ),
    PatternRule(
        rule="HARDCODED_SECRET",
        title="Hardcoded Credential",
        description="Secrets committed to source control leak with every copy of the code",
        severity=Severity.HIGH,
        category=IssueCategory.SECURITY,
        patterns=(
            _rx(
                r"""["']?\b(?:password|passwd|secret|api_?key|access_?token)\b["']?\s*(?:=>|[:=])\s*["'][^"'\s]{6,}["']""",
                re.IGNORECASE,
            ),
        ),
        fix_suggestion="Load credentials from the environment or a secret manager",
    ),
    PatternRule(
        rule="WEAK_HASH",
        title="Weak Hash Function",
        description="MD5 and SHA-1 are broken for password hashing and integrity checks",
        severity=Severity.MEDIUM,
        category=IssueCategory.SECURITY,
        patterns=(_rx(r"(?<![\w.])(?:md5|sha1)\s*\("), _rx(r"\bhashlib\.(?:md5|sha1)\(")),
        fix_suggestion="Use password_hash()/bcrypt/argon2 for passwords and SHA-256 for integrity",
    ),
    PatternRule(
        rule="UNSAFE_DESERIALIZATION",
        title="Unsafe Deserialization",
        description="Deserializing untrusted data can instantiate arbitrary objects",
        severity=Severity.HIGH,
        category=IssueCategory.SECURITY,
        patterns=(_rx(r"\bunserialize\s*\("), _rx(r"\bpickle\.loads?\(")),
        fix_suggestion="Use JSON for untrusted input or restrict allowed classes",
    ),
]


def _is_php(path: str) -> bool:
    return path.lower().endswith(".php")


CODE_QUALITY_SUGGESTIONS = [
    SuggestionRule(
        Suggestion(
            id="cq_sugg_001",
            title="Implement Strict Types",
            description="Add declare(strict_types=1) to all PHP files",
            type=SuggestionType.CODE_CLEANUP,
            priority=Priority.MEDIUM,
            implementation="Add declare(strict_types=1); after opening PHP tag",
            reasoning="Strict typing prevents type coercion bugs",
        ),
        lambda path, content: _is_php(path) and "strict_types=1" not in content,
    ),
]

ARCHITECTURE_SUGGESTIONS = [
    SuggestionRule(
        Suggestion(
            id="arch_sugg_001",
            title="Consider Interface Implementation",
            description="Add interfaces to improve testability and flexibility",
            type=SuggestionType.DESIGN_PATTERN,
            priority=Priority.MEDIUM,
            implementation="Create interface and implement it in the class",
        ),
        lambda path, content: _is_php(path) and "class " in content and "implements" not in content,
    ),
]

PERFORMANCE_SUGGESTIONS = [
    SuggestionRule(
        Suggestion(
            id="perf_sugg_001",
            title="Cache Repeated Lookups",
            description="Repository lookups without a cache layer are repeated on every call",
            type=SuggestionType.PERFORMANCE_OPTIMIZATION,
            priority=Priority.LOW,
            implementation="Memoize lookups per request or add a cache in front of the repository",
            estimated_impact=0.4,
        ),
        lambda path, content: bool(re.search(r"Repository|->find\w*\(|\.objects\.", content))
        and "cache" not in content.lower(),
    ),
]

SECURITY_SUGGESTIONS = [
    SuggestionRule(
        Suggestion(
            id="sec_sugg_001",
            title="Centralize Input Validation",
            description="Validate request input at one boundary instead of ad hoc checks",
            type=SuggestionType.SECURITY_HARDENING,
            priority=Priority.HIGH,
            benefits=("Smaller attack surface", "Consistent error handling"),
        ),
        lambda path, content: bool(re.search(r"\$_(?:GET|POST|REQUEST)\b|request\.(?:args|form|GET|POST)", content)),
    ),
]


def count_pattern(files: Iterable[str], pattern: str) -> int:
    regex = re.compile(pattern)
    return sum(len(regex.findall(content)) for content in files)


def count_recursive_functions(content: str) -> int:
    """Functions whose name appears as a call inside their own body or later."""
    count = 0
    for match in re.finditer(r"\b(?:function|def)\s+(\w+)\s*\(", content):
        name = match.group(1)
        rest = content[match.end():]
        if re.search(rf"(?<![\w$]){re.escape(name)}\s*\(", rest):
            count += 1
    return count


def _base_metrics(request: AnalysisRequest, issues: list[Issue]) -> dict[str, object]:
    return {
        "files_analyzed": len(request.files),
        "total_lines": request.line_count,
        "issues_found": len(issues),
    }


def _code_quality_metrics(request: AnalysisRequest, issues: list[Issue]) -> dict[str, object]:
    return {**_base_metrics(request, issues), "quality_score": max(1, 10 - len(issues))}


def _architecture_metrics(request: AnalysisRequest, issues: list[Issue]) -> dict[str, object]:
    contents = list(request.files.values())
    return {
        **_base_metrics(request, issues),
        "classes_found": count_pattern(contents, r"\bclass\s+\w+"),
        "interfaces_found": count_pattern(contents, r"\binterface\s+\w+"),
        "solid_score": max(1, 10 - len(issues)),
    }


def _performance_metrics(request: AnalysisRequest, issues: list[Issue]) -> dict[str, object]:
    contents = list(request.files.values())
    return {
        **_base_metrics(request, issues),
        "nested_loops": sum(1 for i in issues if i.rule == "NESTED_LOOPS"),
        "database_calls": count_pattern(
            contents, r"Repository\w*->find|\$entityManager->|->execute\(|\.execute\(|\.objects\."
        ),
        "recursive_patterns": sum(count_recursive_functions(c) for c in contents),
        "memory_allocations": count_pattern(
            contents, r"\bnew\s+\w+|array_merge\s*\(|str_repeat\s*\(|\brange\s*\("
        ),
        "performance_score": max(1, 10 - 2 * len(issues)),
    }


def _security_metrics(request: AnalysisRequest, issues: list[Issue]) -> dict[str, object]:
    critical = sum(1 for i in issues if i.severity is Severity.CRITICAL)
    return {
        **_base_metrics(request, issues),
        "vulnerabilities_found": len(issues),
        "security_score": max(0, 10 - 3 * critical - (len(issues) - critical)),
    }


@dataclass
class StaticAnalyzer:
    """Regex-driven analyzer for one analysis type."""

    name: str
    analysis_type: AnalysisType
    rules: list[PatternRule]
    summary: str
    id_prefix: str
    metrics: Callable[[AnalysisRequest, list[Issue]], dict[str, object]]
    suggestions: list[SuggestionRule] = field(default_factory=list)
    confidence: float = 0.8
    priority: int = 50

    def supports(self, request: AnalysisRequest) -> bool:
        return request.type is self.analysis_type

    def estimated_duration(self, request: AnalysisRequest) -> int:
        return 1

    def analyze(self, request: AnalysisRequest, model: str | None = None) -> AnalysisResult:
        issues: list[Issue] = []
        for path, content in request.files.items():
            for rule in self.rules:
                issue = rule.check(path, content)
                if issue is not None:
                    issues.append(issue)
        issues = [
            replace(issue, id=f"{self.id_prefix}_{n:03d}")
            for n, issue in enumerate(issues, start=1)
        ]

        suggestions = [
            sr.suggestion
            for sr in self.suggestions
            if any(sr.applies(path, content) for path, content in request.files.items())
        ]

        return AnalysisResult(
            type=self.analysis_type,
            summary=self.summary.format(issues=len(issues), suggestions=len(suggestions)),
            issues=issues,
            suggestions=suggestions,
            metrics={**self.metrics(request, issues), "analyzer": self.name},
            confidence=self.confidence,
        )


def static_code_quality_analyzer() -> StaticAnalyzer:
    return StaticAnalyzer(
        name="static_code_quality",
        analysis_type=AnalysisType.CODE_QUALITY,
        rules=CODE_QUALITY_RULES,
        suggestions=CODE_QUALITY_SUGGESTIONS,
        summary="Code quality analysis found {issues} issues and {suggestions} suggestions for improvement",
        id_prefix="cq",
        metrics=_code_quality_metrics,
        confidence=0.85,
    )


def static_architecture_analyzer() -> StaticAnalyzer:
    return StaticAnalyzer(
        name="static_architecture",
        analysis_type=AnalysisType.ARCHITECTURE,
        rules=ARCHITECTURE_RULES,
        suggestions=ARCHITECTURE_SUGGESTIONS,
        summary="Architecture analysis identified {issues} SOLID principle violations and {suggestions} improvement opportunities",
        id_prefix="arch",
        metrics=_architecture_metrics,
        confidence=0.8,
    )


def static_performance_analyzer() -> StaticAnalyzer:
    return StaticAnalyzer(
        name="static_performance",
        analysis_type=AnalysisType.PERFORMANCE,
        rules=PERFORMANCE_RULES,
        suggestions=PERFORMANCE_SUGGESTIONS,
        summary="Performance analysis found {issues} potential bottlenecks and {suggestions} optimization opportunities",
        id_prefix="perf",
        metrics=_performance_metrics,
        confidence=0.75,
    )


def static_security_analyzer() -> StaticAnalyzer:
    return StaticAnalyzer(
        name="static_security",
        analysis_type=AnalysisType.SECURITY,
        rules=SECURITY_RULES,
        suggestions=SECURITY_SUGGESTIONS,
        summary="Security analysis found {issues} potential vulnerabilities and {suggestions} hardening suggestions",
        id_prefix="sec",
        metrics=_security_metrics,
        confidence=0.8,
        priority=60,
    )


def static_analyzers() -> list[StaticAnalyzer]:
    """One static analyzer per analysis type."""
    return [
        static_code_quality_analyzer(),
        static_architecture_analyzer(),
        static_performance_analyzer(),
        static_security_analyzer(),
    ]
