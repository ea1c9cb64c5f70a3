"""devassist CLI - AI-assisted code analysis.

Usage:
    devassist analyze <path> [options]
    devassist analyze src/ --type security --depth expert
    devassist analyze app.php --static --format json
"""

from __future__ import annotations

import fnmatch
import json
import os
from contextlib import nullcontext
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .ai_analyzer import build_analyzers
from .cache import AnalysisCache
from .config import AssistantConfig, load_config
from .domain import EXT_LANG, AnalysisRequest, AnalysisResult, AnalysisType, Depth
from .errors import AssistantError
from .limits import TokenBucketRateLimiter
from .logging_config import setup_logging
from .model import BackendRouter, OllamaClient, provider_for
from .orchestrator import AnalysisOrchestrator, BatchItem
from .selector import ModelSelector

console = Console()

IGNORE_DIRS = {
    ".git", "node_modules", "__pycache__", ".venv", "venv", "env",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    "target", "build", "dist", "vendor", "var",
    ".idea", ".vscode", ".devassist-cache",
}

SEVERITY_STYLE = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}


def _matches(rel: str, include: tuple[str, ...], exclude: tuple[str, ...], require_known_ext: bool) -> bool:
    fname = rel.rsplit("/", 1)[-1]
    if include:
        if not any(fnmatch.fnmatch(fname, pat) for pat in include):
            return False
    elif require_known_ext and os.path.splitext(fname)[1].lower() not in EXT_LANG:
        return False
    return not any(fnmatch.fnmatch(rel, pat) or fnmatch.fnmatch(fname, pat) for pat in exclude)


def _read_source(path: Path) -> str:
    try:
        return path.read_text(errors="replace")
    except OSError as e:
        raise click.ClickException(f"Cannot read {path}: {e.strerror or e}")


def _collect_files(
    path: Path,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    max_files: int,
) -> dict[str, str]:
    """Read source files under ``path`` keyed by relative path.

    An explicitly named file is taken whatever its extension, but still
    honours ``include``/``exclude``.
    """
    if max_files <= 0:
        return {}
    if path.is_file():
        if not _matches(path.name, include, exclude, require_known_ext=False):
            return {}
        return {path.name: _read_source(path)}

    files: dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(path):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
        for fname in sorted(filenames):
            rel = os.path.relpath(os.path.join(dirpath, fname), path).replace(os.sep, "/")
            if not _matches(rel, include, exclude, require_known_ext=True):
                continue
            files[rel] = _read_source(Path(dirpath, fname))
            if len(files) >= max_files:
                return files
    return files


def build_orchestrator(config: AssistantConfig, use_ai: bool, use_cache: bool) -> AnalysisOrchestrator:
    """Wire analyzers, selector, cache and rate limiter from configuration."""
    selector = ModelSelector(config.selector)
    backend = BackendRouter.from_config(config.backend) if use_ai else None
    analyzers = build_analyzers(
        backend=backend,
        selector=selector,
        config=config.analysis,
        timeout=config.backend.timeout,
    )
    config.analysis.cache_enabled = use_cache
    return AnalysisOrchestrator(
        analyzers,
        model_selector=selector,
        cache=AnalysisCache(config.analysis.cache_dir) if use_cache else None,
        rate_limiter=TokenBucketRateLimiter(config.analysis.rate_per_minute),
        config=config.analysis,
    )


@click.group()
@click.version_option(version=__version__)
def cli():
    """devassist - AI-assisted code analysis.

    Sends source files to an AI model for code quality, architecture,
    performance and security review, with regex-based static checks as a
    fallback when no model is configured.
    """
    pass


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--type", "-t", "analysis_type",
    type=click.Choice([t.value for t in AnalysisType] + ["all"]),
    default="code_quality",
    help="Analysis type",
)
@click.option("--depth", "-d", type=click.Choice([d.value for d in Depth]), default="standard", help="Analysis depth")
@click.option("--project-type", default="generic", help="Project type context (symfony, django, ...)")
@click.option("--rule", "rules", multiple=True, help="Extra rule for the analysis (repeatable)")
@click.option("--include", multiple=True, help="Filename patterns to include (default: known source extensions)")
@click.option("--exclude", multiple=True, help="Path or filename patterns to exclude")
@click.option("--max-files", default=50, show_default=True, help="Maximum number of files to analyze")
@click.option("--static", "static_only", is_flag=True, help="Static checks only, no model inference")
@click.option("--no-cache", is_flag=True, help="Do not read or write the result cache")
@click.option("--format", "-f", "fmt", type=click.Choice(["console", "json"]), default="console", help="Output format")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Write JSON results to a file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
def analyze(
    path: Path,
    analysis_type: str,
    depth: str,
    project_type: str,
    rules: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    max_files: int,
    static_only: bool,
    no_cache: bool,
    fmt: str,
    output: Path | None,
    verbose: bool,
    quiet: bool,
):
    """Analyze a file or directory.

    Examples:

        devassist analyze src/

        devassist analyze src/ --type all --depth comprehensive

        devassist analyze app/Controller --type security --format json -o report.json
    """
    setup_logging(verbose=verbose, quiet=quiet)
    json_only = fmt == "json"

    try:
        config = load_config()
    except AssistantError as e:
        raise click.ClickException(str(e))

    use_ai = not static_only and config.has_remote_backend
    if not json_only:
        console.print()
        console.print(Panel.fit(f"[bold cyan]devassist v{__version__}[/] - AI Code Analysis", border_style="cyan"))
        if not static_only and not use_ai:
            console.print("[yellow]No ANTHROPIC_API_KEY or OPENAI_API_KEY set; using static analyzers.[/]")

    files = _collect_files(path, include, exclude, max_files)
    if not files:
        if not json_only:
            console.print("[yellow]No source files found to analyze.[/]")
        return

    types = list(AnalysisType) if analysis_type == "all" else [AnalysisType(analysis_type)]
    try:
        requests = [
            AnalysisRequest.create(t, files, project_type=project_type, depth=depth, rules=rules)
            for t in types
        ]
    except AssistantError as e:
        raise click.ClickException(str(e))

    orchestrator = build_orchestrator(config, use_ai=use_ai, use_cache=not no_cache)

    if not json_only:
        console.print(f"  Files: {len(files)} | Types: {', '.join(t.value for t in types)} | Depth: {depth}")

    try:
        with console.status("Analyzing...", spinner="dots") if not json_only else nullcontext():
            outcomes = orchestrator.analyze_batch(requests)
    finally:
        if orchestrator.cache is not None:
            orchestrator.cache.close()

    payload = {
        "version": __version__,
        "path": str(path),
        "results": [_outcome_to_dict(item) for item in outcomes.values()],
    }
    if json_only:
        click.echo(json.dumps(payload, indent=2))
    else:
        for item in outcomes.values():
            _print_outcome(item)

    if output:
        output.write_text(json.dumps(payload, indent=2))
        if not json_only:
            console.print(f"\n[green]Results written to {output}[/]")

    if all(not item.ok for item in outcomes.values()):
        raise click.ClickException("All analyses failed")


@cli.command()
def models():
    """Show the model tiers, their fallback order and local availability."""
    try:
        config = load_config()
    except AssistantError as e:
        raise click.ClickException(str(e))
    selector = ModelSelector(config.selector)
    tiers = (
        ("high", config.selector.high_performance_model),
        ("default", config.selector.default_model),
        ("economy", config.selector.economy_model),
    )

    table = Table(show_header=True, title="Model Tiers")
    table.add_column("Tier", style="bold")
    table.add_column("Model")
    table.add_column("USD / 1K tokens", justify="right")
    table.add_column("Falls back to")

    for tier, model in tiers:
        cost = config.selector.model_costs.get(model, config.selector.default_unit_cost)
        table.add_row(tier, model, f"{cost:.5f}", selector.get_fallback_model(model) or "-")

    console.print(table)
    console.print()
    console.print(f"Anthropic key: {'[green]set[/]' if config.backend.anthropic_api_key else '[yellow]missing[/]'}")
    console.print(f"OpenAI key:    {'[green]set[/]' if config.backend.openai_api_key else '[yellow]missing[/]'}")

    local = [model for _, model in tiers if provider_for(model) == "Ollama"]
    client = OllamaClient(config.backend.ollama_url)
    if client.is_ollama_running():
        installed = client.list_models()
        console.print(f"[green]Ollama is running[/] ({', '.join(installed) or 'no models installed'})")
        for model in local:
            if client.is_model_available(model):
                console.print(f"  {model}: [green]installed[/]")
            else:
                console.print(f"  {model}: [yellow]not installed[/] (ollama pull {model})")
    else:
        console.print("[dim]Ollama is not running[/]")
        if local:
            console.print(f"[yellow]Local tiers need Ollama: {', '.join(local)}[/]")


@cli.command()
def version():
    """Show version information."""
    console.print(f"devassist-cli v{__version__}")


def _outcome_to_dict(item: BatchItem) -> dict:
    if item.ok:
        return {"ok": True, "request_id": item.request_id, **item.result.to_dict()}
    return {"ok": False, "request_id": item.request_id, "error": str(item.error)}


def _print_outcome(item: BatchItem) -> None:
    if not item.ok:
        console.print(f"\n[bold red]Analysis failed:[/] {item.error}")
        return
    _print_result(item.result)


def _print_result(result: AnalysisResult) -> None:
    style = SEVERITY_STYLE.get(result.overall_severity.value, "")
    console.print()
    console.print(Panel.fit(
        f"{result.summary}\n"
        f"Overall severity: [{style}]{result.overall_severity.value}[/] | "
        f"Confidence: {result.confidence:.0%} | Issues: {len(result.issues)} | "
        f"Suggestions: {len(result.suggestions)}",
        title=result.type.display_name,
        border_style="cyan",
    ))

    if result.issues:
        counts = result.issues_by_severity()
        breakdown = ", ".join(f"{len(counts[s])} {s.value}" for s in sorted(counts, reverse=True))
        console.print(f"[bold]Issues by severity:[/] {breakdown}")

        table = Table(show_header=True, border_style="dim")
        table.add_column("Severity")
        table.add_column("Issue", style="bold")
        table.add_column("Location")
        table.add_column("Fix")
        for issue in result.issues:
            location = f"{issue.file}:{issue.line}" if issue.file and issue.line else (issue.file or "-")
            sev = issue.severity.value
            table.add_row(f"[{SEVERITY_STYLE.get(sev, '')}]{sev}[/]", issue.title, location, issue.fix_suggestion or "")
        console.print(table)

    if result.suggestions:
        console.print("[bold]Suggestions:[/]")
        for s in result.suggestions:
            console.print(f"  [magenta]{s.priority.value}[/] {s.title} - {s.description}")


if __name__ == "__main__":
    cli()
