"""Memory commands.

Provides CLI commands over the incident memory:
    - Searching incidents with every matching strategy
    - Checking memory for patterns first, then incidents
    - Extracting patterns from recurring incidents
    - Showing store statistics
    - Analyzing a symptom with domain assessments
    - Reviewing incomplete incidents
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from debugmemory.core.console import console
from debugmemory.core.result import Err, Ok
from debugmemory.memory import (
    DomainAssessment,
    JsonMemoryStore,
    analyze_symptom,
    check_memory,
    extract_patterns,
    find_incomplete_incidents,
    generate_quality_feedback,
    get_memory_stats,
    parallel_search,
    parse_assessment_response,
    suggest_patterns,
)


def _store(ctx: typer.Context) -> JsonMemoryStore:
    return JsonMemoryStore.from_config(ctx.obj.config)


def _format_ts(timestamp: int) -> str:
    if not timestamp:
        return "-"
    return datetime.fromtimestamp(timestamp / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")


def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Describe the problem."),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum results to show."),
    threshold: float | None = typer.Option(
        None, "--threshold", "-t", help="Minimum match score (defaults to config)."
    ),
) -> None:
    """Search incidents with every matching strategy at once."""
    config = ctx.obj.config
    result = asyncio.run(
        parallel_search(
            query,
            _store(ctx),
            threshold=config.similarity_threshold if threshold is None else threshold,
            max_results=limit,
            timeout=config.search_timeout,
        )
    )
    match result:
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(found):
            pass

    if not found.results:
        console.print(Panel("No matching incidents.", style="yellow"))
        return

    table = Table(
        title=f"{len(found.results)} incidents ({', '.join(found.strategies_used)})",
        box=box.SIMPLE_HEAVY,
        expand=True,
    )
    table.add_column("Score", style="green", no_wrap=True)
    table.add_column("Match", style="magenta", no_wrap=True)
    table.add_column("Incident", style="cyan", no_wrap=True)
    table.add_column("Symptom", style="white")
    table.add_column("Fix", style="white")
    for match in found.results:
        table.add_row(
            f"{match.score:.0%}",
            match.match_type,
            match.incident.incident_id,
            match.incident.symptom,
            match.incident.fix.approach,
        )
    console.print(table)
    console.print(f"[dim]{found.execution_time_ms:.1f}ms[/dim]")


def check(
    ctx: typer.Context,
    symptom: str = typer.Argument(..., help="Symptom to look up."),
) -> None:
    """Check memory for a known pattern, falling back to similar incidents."""
    config = ctx.obj.config
    result = asyncio.run(
        check_memory(
            symptom,
            _store(ctx),
            threshold=config.similarity_threshold,
            max_results=config.max_results,
            timeout=config.search_timeout,
        )
    )
    match result:
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(retrieval):
            pass

    if retrieval.patterns:
        for pattern in retrieval.patterns:
            console.print(
                Panel(
                    f"{pattern.description}\n\n{pattern.solution_template}",
                    title=f"{pattern.name} ({pattern.pattern_id})",
                    border_style="green",
                )
            )
    elif retrieval.incidents:
        table = Table(title="Similar incidents", box=box.SIMPLE_HEAVY, expand=True)
        table.add_column("Score", style="green", no_wrap=True)
        table.add_column("Incident", style="cyan", no_wrap=True)
        table.add_column("Symptom", style="white")
        table.add_column("Fix", style="white")
        for incident in retrieval.incidents:
            table.add_row(
                f"{incident.similarity_score or 0.0:.0%}",
                incident.incident_id,
                incident.symptom,
                incident.fix.approach,
            )
        console.print(table)
    else:
        console.print(Panel("Nothing in memory matches this symptom.", style="yellow"))

    console.print(
        f"[dim]method={retrieval.retrieval_method} "
        f"confidence={retrieval.confidence:.0%} tokens={retrieval.tokens_used}[/dim]"
    )


def extract(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report candidates without storing."),
    min_incidents: int | None = typer.Option(
        None, "--min-incidents", help="Smallest cluster considered (defaults to config)."
    ),
    min_similarity: float | None = typer.Option(
        None, "--min-similarity", help="Minimum commonality score (defaults to config)."
    ),
) -> None:
    """Extract reusable patterns from recurring incidents."""
    config = ctx.obj.config
    store = _store(ctx)
    if dry_run and min_incidents is None and min_similarity is None:
        result = asyncio.run(suggest_patterns(store))
    else:
        result = asyncio.run(
            extract_patterns(
                store,
                min_incidents=config.extract_min_incidents if min_incidents is None else min_incidents,
                min_similarity=(
                    config.extract_min_similarity if min_similarity is None else min_similarity
                ),
                auto_store=not dry_run,
            )
        )
    match result:
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(patterns):
            pass

    if not patterns:
        console.print("[yellow]No new patterns. Need at least 3 similar incidents.[/yellow]")
        return

    table = Table(
        title="Pattern candidates" if dry_run else "Extracted patterns",
        box=box.SIMPLE_HEAVY,
        expand=True,
    )
    table.add_column("Pattern", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Incidents", style="green", justify="right")
    table.add_column("Success", style="green", justify="right")
    table.add_column("Tags", style="magenta")
    table.add_column("Caveats", style="yellow", justify="right")
    for pattern in patterns:
        table.add_row(
            pattern.pattern_id,
            pattern.name,
            str(pattern.usage_history.total_uses),
            f"{pattern.success_rate:.0%}",
            ", ".join(pattern.tags[:5]),
            str(len(pattern.caveats)),
        )
    console.print(table)
    if dry_run:
        console.print("[dim]Run without --dry-run to store these patterns.[/dim]")


def stats(ctx: typer.Context) -> None:
    """Show how much the memory holds."""
    store = _store(ctx)
    match asyncio.run(get_memory_stats(store)):
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(memory_stats):
            pass

    table = Table(title="Memory", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("Location", str(store.root))
    table.add_row("Incidents", str(memory_stats.total_incidents))
    table.add_row("Patterns", str(memory_stats.total_patterns))
    table.add_row("Oldest incident", _format_ts(memory_stats.oldest_incident))
    table.add_row("Newest incident", _format_ts(memory_stats.newest_incident))
    table.add_row("Disk usage (est.)", f"{memory_stats.disk_usage_kb} KB")
    console.print(table)


def analyze(
    ctx: typer.Context,
    symptom: str = typer.Argument(..., help="Symptom to analyze."),
    assessment: list[Path] = typer.Option(
        None,
        "--assessment",
        "-a",
        help="Assessor reply to include; the file name is the domain (repeatable).",
    ),
) -> None:
    """Rank domain assessments together with matching incidents and patterns."""
    config = ctx.obj.config
    assessments: list[DomainAssessment] = []
    for path in assessment or []:
        try:
            reply = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            console.print(f"[red]Cannot read assessment {path}: {exc}[/red]")
            raise typer.Exit(code=1) from exc
        parsed = parse_assessment_response(reply, path.stem)
        if parsed is None:
            console.print(f"[yellow]Skipping {path.name}: no usable assessment JSON.[/yellow]")
            continue
        assessments.append(parsed)

    result = asyncio.run(
        analyze_symptom(
            symptom,
            _store(ctx),
            assessments,
            threshold=config.similarity_threshold,
            max_results=config.max_results,
            timeout=config.search_timeout,
        )
    )
    match result:
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(analysis):
            pass

    domains = Table(title="Domains", box=box.SIMPLE, expand=True)
    domains.add_column("Domain", style="cyan", no_wrap=True)
    domains.add_column("Priority", style="magenta", no_wrap=True)
    domains.add_column("Keywords", style="white")
    for detection in analysis.plan.detections:
        domains.add_row(
            detection.domain,
            detection.priority,
            ", ".join(detection.matched_keywords) or "-",
        )
    console.print(domains)
    console.print(f"[dim]assess: {', '.join(analysis.plan.selected_domains)}[/dim]")

    fused = analysis.result
    if not fused.items:
        console.print(Panel("No relevant matches found.", style="yellow"))
        return

    table = Table(
        title=f"Top results ({fused.aggregate_confidence:.0%} confidence)",
        box=box.SIMPLE_HEAVY,
        expand=True,
    )
    table.add_column("Score", style="green", no_wrap=True)
    table.add_column("Type", style="magenta", no_wrap=True)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Domain", style="white", no_wrap=True)
    table.add_column("Summary", style="white")
    for item in fused.items:
        table.add_row(f"{item.score:.0%}", item.type, item.id, item.domain or "-", item.summary)
    console.print(table)
    if fused.recommended_actions:
        actions = "\n".join(
            f"{index}. {action}" for index, action in enumerate(fused.recommended_actions, start=1)
        )
        console.print(Panel(actions, title="Recommended actions", border_style="green"))


def review(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum incidents to show."),
) -> None:
    """List incidents that are unverified, low quality or tagged incomplete."""
    match asyncio.run(find_incomplete_incidents(_store(ctx))):
        case Err(err):
            console.print(f"[red]{err}[/red]")
            raise typer.Exit(code=1)
        case Ok(incomplete):
            pass

    if not incomplete:
        console.print(Panel("No incomplete incidents found.", style="green"))
        return

    console.print(f"Found {len(incomplete)} incomplete incidents.")
    for incident in incomplete[:limit]:
        console.print(
            Panel(
                f"{incident.symptom}\n\n"
                f"Verification: {incident.verification.status}\n"
                f"Tags: {', '.join(incident.tags) or '-'}\n\n"
                f"{generate_quality_feedback(incident)}",
                title=f"{incident.incident_id} ({_format_ts(incident.timestamp)})",
                border_style="yellow",
            )
        )


COMMANDS = {
    "search": search,
    "check": check,
    "extract": extract,
    "stats": stats,
    "analyze": analyze,
    "review": review,
}
