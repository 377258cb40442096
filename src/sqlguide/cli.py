"""
CLI for SQL guide validation.

Provides commands to check a guide's documentation quality, run its
examples in throwaway databases, and maintain its table of contents.

Usage:
    sqlguide check docs/postgresql_guide.md
    sqlguide run docs/postgresql_guide.md --dsn postgresql://postgres@localhost/postgres
    sqlguide validate docs/postgresql_guide.md --engine sqlite --output report.md
    sqlguide toc docs/postgresql_guide.md --write
    sqlguide convert postgres_main.sql --output docs/postgresql_guide.md
"""

import functools
import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sqlguide import __version__
from sqlguide.config import CHECK_NAMES, ENGINES, ISOLATION_MODES, REFERENCE_SCOPES, REPORT_FORMATS, GuideConfig
from sqlguide.errors import ConfigError, SqlGuideError
from sqlguide.logging import configure_logging
from sqlguide.orchestrator import GuideValidator
from sqlguide.parser import load_guide
from sqlguide.renderers import GuideMarkdownRenderer, JsonReportRenderer, ReportRenderer, TocRenderer
from sqlguide.runner import RunReport

console = Console()
err_console = Console(stderr=True)

SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "dim"}


def handle_errors(func):
    """Turn tool errors into exit codes: 2 for configuration, 1 otherwise."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConfigError as e:
            raise click.UsageError(str(e)) from e
        except SqlGuideError as e:
            err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            click.get_current_context().exit(1)

    return wrapper


def _validator(ctx: click.Context, guide: str, **overrides) -> GuideValidator:
    config: GuideConfig = ctx.obj["config"]
    return GuideValidator(config.merged(guide_path=guide, **overrides))


def _write_or_echo(content: str, output: str | None) -> None:
    if output:
        Path(output).write_text(content, encoding="utf-8")
        err_console.print(f"✅ Written to {output}")
    else:
        click.echo(content, nl=not content.endswith("\n"))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level (logs go to stderr).",
)
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (default: JSON unless stderr is a terminal).",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str, json_logs: bool | None):
    """SQL guide validation CLI.

    Check a tutorial-style SQL guide and run its examples against
    disposable databases.
    """
    configure_logging(level=log_level, json_format=json_logs)
    try:
        config = GuideConfig.from_yaml(Path(config_path)) if config_path else GuideConfig()
    except ConfigError as e:
        raise click.UsageError(str(e)) from e
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--check", "-c", "check_names",
    multiple=True,
    type=click.Choice(CHECK_NAMES),
    help="Checks to run (repeatable). Runs the configured checks if not specified.",
)
@click.option(
    "--scope",
    type=click.Choice(REFERENCE_SCOPES),
    help="Where a referenced relation must have been defined.",
)
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@click.pass_context
@handle_errors
def check(ctx: click.Context, guide: str, check_names: tuple, scope: str | None, output_format: str):
    """Check documentation quality: syntax, references, anchors, ordering.

    Examples:
        sqlguide check docs/postgresql_guide.md
        sqlguide check docs/postgresql_guide.md -c anchors -c ordering
        sqlguide check docs/postgresql_guide.md --scope guide --format json
    """
    validator = _validator(ctx, guide, reference_scope=scope)
    report = validator.check(list(check_names) or None)

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        console.print(f"\n[bold blue]🔍 Checking {escape(validator.guide.title)}[/bold blue]\n")
        if report.findings:
            table = Table()
            table.add_column("Severity")
            table.add_column("Check", style="cyan")
            table.add_column("Location")
            table.add_column("Message")
            for finding in report.findings:
                severity = finding.severity.value
                table.add_row(
                    f"[{SEVERITY_STYLES[severity]}]{severity}[/]",
                    finding.check,
                    escape(finding.location),
                    escape(finding.message),
                )
            console.print(table)
        if report.ok:
            console.print("[bold green]✅ Checks passed![/bold green]")
        else:
            console.print("[bold red]❌ Checks failed![/bold red]")
        console.print(
            f"  {len(report.errors)} errors, {len(report.warnings)} warnings, {len(report.infos)} notes"
        )

    if not report.ok:
        ctx.exit(1)


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--engine", type=click.Choice(ENGINES), help="Sandbox engine.")
@click.option("--dsn", envvar="SQLGUIDE_DSN", help="Admin DSN for the postgres engine.")
@click.option("--isolation", type=click.Choice(ISOLATION_MODES), help="Fresh database per section or one per guide.")
@click.option("--section", "-s", "sections", multiple=True, type=int, help="Section numbers to run (repeatable).")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@click.pass_context
@handle_errors
def run(
    ctx: click.Context,
    guide: str,
    engine: str | None,
    dsn: str | None,
    isolation: str | None,
    sections: tuple,
    output_format: str,
):
    """Run the guide's examples in throwaway databases.

    Examples:
        sqlguide run docs/postgresql_guide.md --dsn postgresql://postgres@localhost/postgres
        sqlguide run docs/postgresql_guide.md --engine sqlite -s 4 -s 9
    """
    validator = _validator(ctx, guide, engine=engine, dsn=dsn, isolation=isolation)
    report = validator.run(sections=list(sections) or None)

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        _print_run(validator, report)

    if not report.ok:
        ctx.exit(1)


def _print_run(validator: GuideValidator, report: RunReport) -> None:
    console.print(
        f"\n[bold blue]🧪 Running {escape(validator.guide.title)}[/bold blue] "
        f"(engine: {report.engine}, isolation: {report.isolation})\n"
    )
    titles = {s.ordinal: s.title for s in validator.guide.sections}

    table = Table(title="Sections")
    table.add_column("Section", justify="right", style="cyan")
    table.add_column("Title")
    table.add_column("Passed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Setup failures", justify="right")
    for ordinal, counts in sorted(report.by_section().items()):
        status = "✅" if counts["failed"] == 0 else "❌"
        table.add_row(
            f"{status} {ordinal}",
            escape(titles.get(ordinal, "")),
            str(counts["passed"]),
            str(counts["failed"]),
            str(counts["skipped"]),
            str(counts["setup_failed"]),
        )
    console.print(table)

    failures = report.failed(include_cascaded=False)
    if failures:
        console.print("\n[bold red]Failures:[/bold red]")
        for result in failures:
            sqlstate = f" [{result.sqlstate}]" if result.sqlstate else ""
            console.print(
                f"  ❌ {result.statement.ref} (line {result.statement.line}, {result.phase.value})"
                f"{escape(sqlstate)}: {escape(result.message)}"
            )

    if report.error:
        console.print(f"\n[bold red]Run aborted:[/bold red] {escape(report.error)}")

    counts = report.counts()
    console.print(
        f"\n[bold]Statements:[/bold] {counts['passed']} passed, {counts['failed']} failed "
        f"({counts['cascaded']} cascaded), {counts['skipped']} skipped"
    )


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the report to a file.")
@click.option("--format", "output_format", type=click.Choice(REPORT_FORMATS), help="Report format.")
@click.option("--engine", type=click.Choice(ENGINES), help="Sandbox engine.")
@click.option("--dsn", envvar="SQLGUIDE_DSN", help="Admin DSN for the postgres engine.")
@click.option("--isolation", type=click.Choice(ISOLATION_MODES), help="Fresh database per section or one per guide.")
@click.option("--no-run", is_flag=True, help="Only run the checks.")
@click.pass_context
@handle_errors
def validate(
    ctx: click.Context,
    guide: str,
    output: str | None,
    output_format: str | None,
    engine: str | None,
    dsn: str | None,
    isolation: str | None,
    no_run: bool,
):
    """Run checks and examples, and write a validation report.

    Examples:
        sqlguide validate docs/postgresql_guide.md --engine sqlite
        sqlguide validate docs/postgresql_guide.md --format json --output report.json
    """
    validator = _validator(ctx, guide, engine=engine, dsn=dsn, isolation=isolation, report_format=output_format)
    report = validator.validate(execute=not no_run)

    if validator.config.report_format == "json":
        content = JsonReportRenderer(report).render()
    else:
        content = ReportRenderer(report).render()
    _write_or_echo(content, output)

    if not report.ok:
        ctx.exit(1)


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--write", is_flag=True, help="Rewrite the guide's table of contents in place.")
@click.pass_context
@handle_errors
def toc(ctx: click.Context, guide: str, write: bool):
    """Print (or rewrite) the table of contents of a markdown guide."""
    path = Path(guide)
    parsed = load_guide(path, ctx.obj["config"])
    if parsed.source_format != "markdown":
        raise click.UsageError("The toc command works on markdown guides; use convert for .sql scripts")

    renderer = TocRenderer(parsed)
    if write:
        text = path.read_text(encoding="utf-8")
        updated = renderer.apply_toc(text)
        if updated == text:
            err_console.print("Table of contents is up to date")
        else:
            path.write_text(updated, encoding="utf-8")
            err_console.print(f"✅ Table of contents updated in {guide}")
    else:
        click.echo(renderer.render(), nl=False)


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the markdown guide to a file.")
@click.pass_context
@handle_errors
def convert(ctx: click.Context, script: str, output: str | None):
    """Convert a banner-sectioned .sql script into a markdown guide."""
    parsed = load_guide(Path(script), ctx.obj["config"])
    _write_or_echo(GuideMarkdownRenderer(parsed).render(), output)


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def stats(ctx: click.Context, guide: str, as_json: bool):
    """Show counts of sections, blocks, statements and defined objects."""
    validator = _validator(ctx, guide)
    guide_stats = validator.stats()

    if as_json:
        click.echo(json.dumps(guide_stats, indent=2))
        return

    console.print(f"\n[bold blue]📊 {escape(guide_stats['title'])}[/bold blue]\n")
    table = Table(title="Guide")
    table.add_column("Item", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Sections", str(guide_stats["sections"]))
    table.add_row("Code blocks", str(guide_stats["blocks"]))
    for kind, count in sorted(guide_stats["block_kinds"].items()):
        table.add_row(f"  {kind} blocks", str(count))
    table.add_row("Statements", str(guide_stats["statements"]))
    for kind, count in sorted(guide_stats["statement_kinds"].items()):
        table.add_row(f"  {kind} statements", str(count))
    table.add_row("Section dependencies", str(guide_stats["section_dependencies"]))
    table.add_row("Forward references", str(guide_stats["forward_references"]))
    console.print(table)

    if guide_stats["objects"]:
        objects = Table(title="Objects defined")
        objects.add_column("Kind", style="cyan")
        objects.add_column("Count", justify="right")
        for kind, count in sorted(guide_stats["objects"].items()):
            objects.add_row(kind, str(count))
        console.print(objects)


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file for the graph (JSON format).")
@click.pass_context
@handle_errors
def graph(ctx: click.Context, guide: str, output: str | None):
    """Export the section dependency graph as JSON."""
    validator = _validator(ctx, guide)
    content = json.dumps(validator.dependency_graph(), indent=2) + "\n"
    _write_or_echo(content, output)


@cli.command()
@click.argument("guide", type=click.Path(exists=True, dir_okay=False))
@click.option("--section", "-s", "sections", multiple=True, type=int, help="Sections to list (repeatable).")
@click.pass_context
@handle_errors
def extract(ctx: click.Context, guide: str, sections: tuple):
    """List code blocks and statements with their references.

    Useful for seeing how the parser splits a guide.
    """
    parsed = load_guide(Path(guide), ctx.obj["config"])
    for section in parsed.sections:
        if sections and section.ordinal not in sections:
            continue
        console.print(f"[bold cyan]{section.ordinal}. {escape(section.title)}[/bold cyan] (line {section.line})")
        for block in section.blocks:
            annotation = f" {escape(block.annotation)}" if block.annotation else ""
            console.print(f"  [bold]{block.ref}[/bold] {block.language or '-'} (line {block.line}){annotation}")
            for statement in block.statements:
                first_line = statement.text.strip().splitlines()[0] if statement.text.strip() else ""
                console.print(
                    f"    {statement.ref} [dim]{statement.kind}[/dim] line {statement.line}: {escape(first_line)}"
                )
        console.print()


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
