"""
CLI interface for Serverless Cost Calculator.

Reads the workload of existing MySQL-compatible databases and estimates
their monthly cost on the serverless tier.
"""

import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from serverless_cost_calculator import __version__
from serverless_cost_calculator.cli.log import configure_logging
from serverless_cost_calculator.cli.output import (
    OutputFormat,
    format_currency,
    render_advisories,
    render_report,
)
from serverless_cost_calculator.config.loader import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_USER,
    WorkloadSourceConfiguration,
    load_batch_configuration,
)
from serverless_cost_calculator.core.pricing import (
    PRICING_TABLE,
    InvalidRegion,
    estimate_batch,
    list_regions,
)
from serverless_cost_calculator.core.workload import WorkloadDescription
from serverless_cost_calculator.source.reader import load_workload

app = typer.Typer(add_completion=False)
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ALREADY_SERVERLESS_MESSAGE = (
    "You are already using TiDB Serverless. Please check your billing in the TiDB Cloud "
    "Console for charges. For more information, visit "
    "https://docs.pingcap.com/tidbcloud/tidb-cloud-billing"
)
ANALYZE_PROMPT = (
    "Running ANALYZE on the production system may affect ongoing queries. "
    "Do you want to proceed?"
)


def _fatal(message: str) -> None:
    err_console.print(message, style="bold red", markup=False, soft_wrap=True)
    sys.exit(EXIT_CODE_FAIL)


def _version_callback(value: bool):
    if value:
        console.print(f"serverless-cost-calculator {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log queries and server detection details"
    )
):
    """Serverless Cost Calculator CLI."""
    configure_logging(err_console, verbose)
    if ctx.invoked_subcommand is None:
        console.print("Serverless Cost Calculator - Use --help to see available commands")


def _sources_from_options(
    batch_file: Optional[str],
    host: str,
    port: int,
    user: str,
    password: str,
    database: Optional[str]
) -> List[WorkloadSourceConfiguration]:
    if batch_file:
        return load_batch_configuration(batch_file)
    if not database:
        raise ValueError("Either --database or --batch-file is required")
    return [WorkloadSourceConfiguration(
        database=database,
        host=host,
        port=port,
        user=user,
        password=password
    )]


@app.command()
def estimate(
    host: str = typer.Option(
        DEFAULT_HOST, "--host", "-h", envvar="DB_HOST",
        help="Sets the host for the MySQL server"
    ),
    port: int = typer.Option(
        DEFAULT_PORT, "--port", "-P", envvar="DB_PORT",
        help="Sets the port for the MySQL server"
    ),
    user: str = typer.Option(
        DEFAULT_USER, "--user", "-u", envvar="DB_USERNAME",
        help="Sets the username for the MySQL server"
    ),
    password: str = typer.Option(
        "", "--password", "-p", envvar="DB_PASSWORD",
        help="Sets the password for the MySQL server"
    ),
    database: Optional[str] = typer.Option(
        None, "--database", "-D", envvar="DB_DATABASE",
        help="Sets the database for the MySQL server"
    ),
    region: str = typer.Option(
        "us-east-1", "--region", "-r", envvar="SERVERLESS_REGION",
        help="AWS Region of the serverless cluster"
    ),
    analyze: bool = typer.Option(
        False, "--analyze", "-a", envvar="DB_ANALYZE",
        help="Run ANALYZE before reading system tables depending on statistics data"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.HUMAN, "--output", "-o", envvar="OUTPUT",
        help="Output format"
    ),
    batch_file: Optional[str] = typer.Option(
        None, "--batch-file", "-f",
        help="JSON or YAML file listing several databases to estimate"
    )
):
    """
    Estimate the monthly serverless cost of existing databases.

    Statistics from the last seven days are read from each database,
    normalized into hourly usage and priced for the selected region.
    """
    human = output == OutputFormat.HUMAN
    try:
        PRICING_TABLE.get_pricing(region)
    except InvalidRegion as e:
        _fatal(f"The cost estimation failed: {e}")

    try:
        sources = _sources_from_options(batch_file, host, port, user, password, database)
    except Exception as e:
        _fatal(f"The workload configuration failed to load: {e}")

    workloads: List[WorkloadDescription] = []
    for source in sources:
        if human:
            console.print(
                "Connecting to the MySQL compatible database at "
                f"'[bold green]{source.address}[/]' as the user '[bold green]{source.user}[/]' "
                f"using the database '[bold green]{source.database}[/]'",
                soft_wrap=True
            )
        try:
            result = load_workload(
                source,
                analyze=analyze,
                confirm=lambda: typer.confirm(ANALYZE_PROMPT, err=True)
            )
        except typer.Abort:
            raise
        except Exception as e:
            _fatal(f"The workload failed to load: {e}")

        if result is None:
            if human:
                console.print(
                    ALREADY_SERVERLESS_MESSAGE, style="bold green", markup=False, soft_wrap=True
                )
            continue
        render_advisories(err_console, result.advisories)
        workloads.append(result.workload)

    if not workloads:
        sys.exit(EXIT_CODE_PASS)

    try:
        estimations = estimate_batch(region, workloads)
    except InvalidRegion as e:
        _fatal(f"The cost estimation failed: {e}")

    render_report(console, output, workloads, estimations)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def regions():
    """List supported regions and their serverless rates."""
    table = Table(title="Serverless pricing")
    table.add_column("Region", style="bold")
    table.add_column("Storage / GiB", justify="right")
    table.add_column("RU / million", justify="right")
    table.add_column("Free Credit", justify="right")
    for name in list_regions():
        pricing = PRICING_TABLE.get_pricing(name)
        table.add_row(
            name,
            format_currency(float(pricing.row_based_storage_per_gib)),
            format_currency(float(pricing.request_units_per_million)),
            format_currency(float(pricing.free_credit))
        )
    console.print(table)


if __name__ == "__main__":
    app()
