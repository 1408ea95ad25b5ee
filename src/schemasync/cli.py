"""
Command-line interface for schemasync.
"""

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import SchemaSyncConfig, configure_logging
from .exceptions import ConfigurationError, SchemaSyncError


console = Console()

OUTCOME_STYLES = {
    "already in sync": "green",
    "new table created": "cyan",
    "new columns added": "cyan",
    "old columns removed": "yellow",
    "new columns added and old columns removed": "yellow",
    "dropped and recreated": "red",
}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SchemaSyncError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
    return wrapper


def _load_config(path: str) -> SchemaSyncConfig:
    config = SchemaSyncConfig.from_yaml(path)
    config.validate_config()
    debug = (click.get_current_context().find_root().obj or {}).get("debug", False)
    configure_logging(config.logging, debug=debug or config.debug)
    return config


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """schemasync: keep SQLite tables in line with their declared schema."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="schemasync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new schemasync configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config()

    config.to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Declare your tables in the configuration file")
    console.print(f"2. Run: schemasync validate-config -c {output}")
    console.print(f"3. Run: schemasync status -c {output}")
    console.print(f"4. Run: schemasync sync -c {output}")


@main.command()
@config_option
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        schemasync_config = SchemaSyncConfig.from_yaml(config)
        schemasync_config.validate_config()

        console.print("[green]✓[/green] Configuration is valid")

        # Display configuration summary
        _display_config_summary(schemasync_config)

    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)


@main.command()
@config_option
@click.option(
    "--preserve/--no-preserve",
    default=None,
    help="Keep existing rows when a table has to be rebuilt (default: from config)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without making changes",
)
@handle_errors
def sync(config: str, preserve: Optional[bool], dry_run: bool):
    """Reconcile the database schema with the declared tables."""
    from .storage import Storage

    schemasync_config = _load_config(config)
    storage = Storage.from_config(schemasync_config)

    async def run_sync():
        async with storage:
            if dry_run:
                outcomes = await storage.sync_schema_simulate(preserve)
                statements = await storage.preview(preserve)
                return outcomes, statements
            return await storage.sync_schema(preserve), {}

    console.print("[blue]Schema synchronisation[/blue]")
    if dry_run:
        console.print("[yellow]Dry run mode - no changes will be made[/yellow]")

    outcomes, statements = asyncio.run(run_sync())

    _display_outcomes(outcomes, "Planned outcomes" if dry_run else "Outcomes")

    if dry_run:
        for table, changes in statements.items():
            if not changes:
                continue
            console.print(f"\n[bold cyan]{table}[/bold cyan]")
            for change in changes:
                console.print(f"  {change.sql};", markup=False, highlight=False)
    else:
        changed = sum(1 for outcome in outcomes.values() if outcome.value != "already in sync")
        console.print(f"\n[green]✓[/green] {len(outcomes)} tables synced, {changed} changed")


@main.command()
@config_option
@click.option(
    "--preserve/--no-preserve",
    default=None,
    help="Plan as if rows were kept on rebuild (default: from config)",
)
@handle_errors
def status(config: str, preserve: Optional[bool]):
    """Show how each declared table differs from the live database."""
    from .storage import Storage

    schemasync_config = _load_config(config)
    storage = Storage.from_config(schemasync_config)
    preserve = schemasync_config.sync.preserve if preserve is None else preserve

    async def run_status_check():
        async with storage:
            policy = await storage.reconciler.resolve_policy(preserve)
            analyses = [
                await storage.reconciler.analyze_table(table, policy)
                for table in storage.tables
            ]
            return policy, analyses

    policy, analyses = asyncio.run(run_status_check())

    console.print(f"[blue]Schema Status[/blue] ({schemasync_config.database.path})")
    console.print(
        f"  preserve={policy.preserve}  drop_column_supported={policy.drop_column_supported}"
    )

    status_table = Table(title="Declared Tables")
    status_table.add_column("Table", style="cyan")
    status_table.add_column("Differences", style="magenta")
    status_table.add_column("Outcome")
    status_table.add_column("Plan", style="yellow")

    for analysis in analyses:
        differences = analysis.diff.describe() if analysis.exists else "missing"
        style = OUTCOME_STYLES.get(analysis.outcome.value, "white")
        status_table.add_row(
            analysis.schema.name,
            differences,
            f"[{style}]{analysis.outcome.value}[/{style}]",
            str(analysis.plan),
        )

    console.print(status_table)


@main.command()
@config_option
@handle_errors
def test_connection(config: str):
    """Test the database connection and capabilities."""
    from .database.connection import ConnectionManager
    from .database.health import DatabaseHealthChecker, HealthStatus

    console.print("[blue]Testing connection...[/blue]")

    schemasync_config = _load_config(config)

    async def run_connection_tests():
        connection = ConnectionManager(schemasync_config.database)
        try:
            checker = DatabaseHealthChecker(connection)
            connectivity = await checker.check_connectivity()
            if connectivity.is_critical:
                return {connectivity.name: connectivity}
            return await checker.check_all()
        finally:
            await connection.close()

    results = asyncio.run(run_connection_tests())

    icons = {
        HealthStatus.HEALTHY: "[green]✓[/green]",
        HealthStatus.WARNING: "[yellow]![/yellow]",
        HealthStatus.CRITICAL: "[red]✗[/red]",
        HealthStatus.UNKNOWN: "?",
    }
    for result in results.values():
        console.print(
            f"  {icons[result.status]} {result.name}: {result.message} "
            f"({result.duration_ms:.1f}ms)"
        )

    failed = sum(1 for result in results.values() if result.is_critical)
    if failed:
        console.print(f"\n[bold red]{failed} checks failed[/bold red]")
        sys.exit(1)
    console.print("\n[bold green]Database ready[/bold green]")


def _create_default_config() -> SchemaSyncConfig:
    """Create a default configuration with examples."""
    from .config import ColumnConfig, IndexConfig, TableConfig
    from .database.connection import ConnectionConfig

    tables = [
        TableConfig(
            name="users",
            columns=[
                ColumnConfig(name="id", type="INTEGER", primary_key=True),
                ColumnConfig(name="email", type="TEXT", not_null=True, unique=True),
                ColumnConfig(name="name", type="TEXT", not_null=True, default="''"),
                ColumnConfig(name="created_at", type="TEXT", default="CURRENT_TIMESTAMP"),
            ],
            indexes=[IndexConfig(name="idx_users_name", columns=["name"])],
        ),
    ]

    return SchemaSyncConfig(
        database=ConnectionConfig(path="schemasync.db"),
        tables=tables,
    )


def _display_outcomes(outcomes: Dict, title: str):
    outcome_table = Table(title=title)
    outcome_table.add_column("Table", style="cyan")
    outcome_table.add_column("Outcome")

    for name, outcome in outcomes.items():
        style = OUTCOME_STYLES.get(outcome.value, "white")
        outcome_table.add_row(name, f"[{style}]{outcome.value}[/{style}]")

    console.print(outcome_table)


def _display_config_summary(config: SchemaSyncConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")
    console.print(f"  Database: {config.database.path}")
    console.print(
        f"  Sync: preserve={config.sync.preserve}, "
        f"type_comparison={config.sync.type_comparison}, "
        f"strict_defaults={config.sync.strict_defaults}"
    )

    if config.tables:
        table_table = Table(title="Declared Tables")
        table_table.add_column("Name", style="cyan")
        table_table.add_column("Columns", style="magenta")
        table_table.add_column("Primary Key", style="green")
        table_table.add_column("Indexes", style="yellow")

        for table in config.tables:
            schema = table.to_table_schema()
            key = ", ".join(schema.primary_key) or "rowid"
            if schema.without_rowid:
                key += " (without rowid)"
            table_table.add_row(
                table.name,
                str(len(table.columns)),
                key,
                str(len(table.indexes)),
            )

        console.print(table_table)


if __name__ == "__main__":
    main()
