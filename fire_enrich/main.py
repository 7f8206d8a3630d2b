"""
Main application entry point for fire-enrich.

Provides the CLI for batch enrichment, field discovery, configuration and
the HTTP service.
"""

import asyncio
import json
import sys
from typing import List, Optional, Tuple

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from fire_enrich.core.config import get_settings, print_configuration_summary, validate_required_settings
from fire_enrich.core.exceptions import ConfigurationError, FireEnrichError
from fire_enrich.core.logging import setup_logging
from fire_enrich.core.models import (
    AgentProgress,
    EnrichmentField,
    FieldType,
    RowResult,
    RowStatus,
    SessionCancelled,
    SessionFailed,
)
from fire_enrich.data.csv_parser import CSVProcessor
from fire_enrich.intelligence.aliases import iter_catalogue

console = Console()


def parse_field_option(value: str) -> EnrichmentField:
    """``name`` or ``name:type``; the name doubles as the display name."""
    name, _, kind = value.partition(":")
    kind = kind.strip().lower() or FieldType.STRING.value
    try:
        field_type = FieldType(kind)
    except ValueError:
        raise click.BadParameter(f"unknown field type '{kind}' in '{value}'")
    return EnrichmentField(name=name.strip(), display_name=name.strip(), type=field_type)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, debug: bool):
    """Enrich CSV rows of contact emails with company intelligence."""
    ctx.ensure_object(dict)
    load_dotenv()
    setup_logging(debug=debug, rich_output=True)
    ctx.obj["debug"] = debug


@main.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--email-column", help="Column holding the contact email (auto-detected if omitted)")
@click.option("--name-column", help="Column holding the company name hint")
@click.option(
    "--field",
    "field_specs",
    multiple=True,
    required=True,
    help="Field to enrich, as NAME or NAME:TYPE (repeatable)",
)
@click.option("--concurrency", type=int, help="Rows processed at once (default from CONCURRENT_ROWS)")
@click.option("--output", type=click.Path(dir_okay=False), help="Write JSON lines here instead of stdout")
@click.option("--skip-validation", is_flag=True, help="Skip configuration validation")
@click.pass_context
def enrich(
    ctx,
    csv_path: str,
    email_column: Optional[str],
    name_column: Optional[str],
    field_specs: Tuple[str, ...],
    concurrency: Optional[int],
    output: Optional[str],
    skip_validation: bool,
):
    """Enrich every row of a CSV file."""
    try:
        if not skip_validation:
            missing = validate_required_settings("enrich")
            if missing:
                raise ConfigurationError(f"Missing settings: {', '.join(missing)}")

        fields = [parse_field_option(spec) for spec in field_specs]
        batch = CSVProcessor().load(csv_path, email_column, name_column)
        console.print(
            f"[blue]Enriching {len(batch.rows)} rows[/blue] "
            f"(email column: {batch.email_column}, fields: {', '.join(f.name for f in fields)})"
        )

        results = asyncio.run(
            _run_enrichment(batch.rows, fields, batch.email_column, batch.name_column, concurrency)
        )
        lines = [json.dumps(r.to_wire(), ensure_ascii=False) for r in results]
        if output:
            with open(output, "w", encoding="utf-8") as fh:
                fh.write("\n".join(lines) + ("\n" if lines else ""))
            console.print(f"[green]Wrote {len(lines)} results to {output}[/green]")
        else:
            for line in lines:
                click.echo(line)

        _display_summary(results)

    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)
    except FireEnrichError as e:
        console.print(f"[red]Enrichment Error:[/red] {e}")
        sys.exit(1)
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"[red]Unexpected Error:[/red] {e}")
        if ctx.obj["debug"]:
            console.print_exception()
        sys.exit(1)


async def _run_enrichment(rows, fields, email_column, name_column, concurrency) -> List:
    from fire_enrich.services.enrichment_service import EnrichmentService

    results = []
    async with EnrichmentService(get_settings()) as service:
        session = service.start_session(
            rows, fields, email_column, name_column=name_column, concurrency=concurrency
        )
        async for event in session.events():
            if isinstance(event, AgentProgress):
                console.print(f"[dim]row {event.row_index}[/dim] {event.message}")
            elif isinstance(event, RowResult):
                results.append(event.result)
                console.print(
                    f"[cyan]row {event.result.row_index}[/cyan] {event.result.status.value}"
                    + (f" - {event.result.error}" if event.result.error else "")
                )
            elif isinstance(event, SessionCancelled):
                console.print("[yellow]Session cancelled[/yellow]")
            elif isinstance(event, SessionFailed):
                raise FireEnrichError(event.message)
    return sorted(results, key=lambda r: r.row_index)


def _display_summary(results) -> None:
    table = Table(title="Enrichment Results")
    table.add_column("Status", style="cyan")
    table.add_column("Rows", style="white")
    for status in RowStatus:
        count = sum(1 for r in results if r.status == status)
        if count:
            table.add_row(status.value, str(count))
    console.print(table)


@main.command()
def fields():
    """List the fields that can be enriched and their aliases."""
    table = Table(title="Enrichable Fields")
    table.add_column("Field", style="cyan")
    table.add_column("English aliases", style="white")
    table.add_column("Portuguese aliases", style="white")
    for canonical, english, portuguese in iter_catalogue():
        table.add_row(canonical.value, ", ".join(english), ", ".join(portuguese))
    console.print(table)


@main.command()
def config():
    """Show configuration summary."""
    print_configuration_summary()
    missing = validate_required_settings("enrich")
    if missing:
        console.print("[yellow]Missing for enrichment:[/yellow]")
        for item in missing:
            console.print(f"  • {item}")


@main.command()
@click.option("--host", help="Bind address (default from SERVICE_HOST)")
@click.option("--port", type=int, help="Port (default from SERVICE_PORT)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the HTTP enrichment service."""
    import uvicorn

    from fire_enrich.api import build_app

    settings = get_settings()
    uvicorn.run(
        build_app(settings),
        host=host or settings.service_host,
        port=port or settings.service_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
