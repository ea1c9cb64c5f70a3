"""Prompt templates for AI analysis.

Templates live in ``templates/<name>.tmpl`` and are rendered with
``string.Template`` from a context built out of the request. Rendering never
fails the analysis: any error falls back to a minimal built-in prompt.
"""

from __future__ import annotations

from pathlib import Path
from string import Template

from .domain import AnalysisRequest, Message, canonical_json
from .logging_config import get_logger

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

SYSTEM_PROMPT = """You are a senior software engineer and architect with 15+ years of experience in {expertise}.
Your task is to analyze the provided {language} code and return structured, actionable insights.

Analysis Guidelines:
- Focus on practical, implementable recommendations
- Prioritize issues by severity and business impact
- Provide specific code examples where helpful
- Follow the conventions of the project's framework and language

Response Format: Return valid JSON only, no additional text or markdown."""

EXPERTISE = {
    "code_quality": "code quality analysis, design patterns, and best practices",
    "architecture": "software architecture, system design, and scalability",
    "performance": "performance optimization, algorithmic complexity, and bottleneck analysis",
    "security": "security analysis, vulnerability assessment, and OWASP guidelines",
}

FALLBACK_FOCUS = {
    "code_quality": (
        "for quality issues and best practices",
        ["Coding standards", "SOLID principles", "Design patterns usage", "Code maintainability", "Error handling"],
        "Return JSON with issues and suggestions.",
    ),
    "architecture": (
        "for its architectural design",
        ["System architecture patterns", "Dependency management", "Separation of concerns", "Scalability considerations"],
        "Return JSON with architectural analysis.",
    ),
    "performance": (
        "for performance optimization",
        ["Algorithmic complexity", "Memory usage", "Database query efficiency", "Caching opportunities"],
        "Return JSON with performance insights.",
    ),
    "security": (
        "for security vulnerabilities",
        ["Injection flaws", "Authentication and session handling", "Sensitive data exposure", "Unsafe deserialization"],
        "Return JSON with security findings.",
    ),
}


def _fence(request: AnalysisRequest) -> str:
    return request.language.lower().replace("c/c++", "c").replace("#", "sharp")


def _format_rules(rules: tuple[str, ...]) -> str:
    if not rules:
        return "- (none beyond the defaults)"
    return "\n".join(f"- {rule}" for rule in rules)


class PromptTemplateEngine:
    """Renders analysis prompts and the system/user message pair."""

    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.templates_dir = Path(templates_dir)

    def build_context(self, request: AnalysisRequest) -> dict[str, str]:
        """Template variables derived from the request."""
        return {
            "code": request.code,
            "file_path": request.file_path,
            "files": ", ".join(request.files),
            "language": request.language,
            "fence": _fence(request),
            "analysis_type": request.type.value,
            "depth": request.depth.value,
            "project_type": request.project_type,
            "rules": _format_rules(request.rules),
            "options": canonical_json(request.options),
            "code_length": str(request.code_length),
            "complexity": str(request.complexity_estimate()),
            "lines": str(request.line_count),
        }

    def render(self, template_name: str, request: AnalysisRequest) -> str:
        """Render a template, raising on any failure."""
        source = (self.templates_dir / f"{template_name}.tmpl").read_text(encoding="utf-8")
        return Template(source).substitute(self.build_context(request))

    def generate_prompt(self, template_name: str, request: AnalysisRequest) -> str:
        try:
            prompt = self.render(template_name, request)
        except Exception as e:
            logger.error(
                "Prompt generation failed, using fallback: template=%s error=%s", template_name, e
            )
            return self.fallback_prompt(template_name, request)

        logger.debug(
            "Prompt generated: template=%s length=%d request_id=%s",
            template_name,
            len(prompt),
            request.request_id,
        )
        return prompt

    def fallback_prompt(self, template_name: str, request: AnalysisRequest) -> str:
        """Minimal hardcoded prompt for when a template cannot be rendered."""
        fence = _fence(request)
        if template_name not in FALLBACK_FOCUS:
            return f"Analyze this {request.language} code:\n\n```{fence}\n{request.code}\n```"

        purpose, focus, closing = FALLBACK_FOCUS[template_name]
        focus_lines = "\n".join(f"- {item}" for item in focus)
        return (
            f"Analyze this {request.language} code {purpose}:\n\n"
            f"```{fence}\n{request.code}\n```\n\n"
            f"Focus on:\n{focus_lines}\n\n"
            f"{closing}"
        )

    def system_prompt(self, request: AnalysisRequest) -> str:
        expertise = EXPERTISE.get(request.type.value, "comprehensive code analysis")
        return SYSTEM_PROMPT.format(expertise=expertise, language=request.language)

    def create_message_bag(self, prompt: str, request: AnalysisRequest) -> tuple[Message, Message]:
        """Ordered (system, user) message pair for the backend."""
        return Message.system(self.system_prompt(request)), Message.user(prompt)
