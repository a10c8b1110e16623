"""
Report rendering for the CLI.

Human-readable tables via rich, or JSON/YAML documents pairing each
workload with its estimation.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Sequence

import yaml
from rich.console import Console
from rich.table import Table

from serverless_cost_calculator.core.normalizer import Advisory, AdvisorySeverity
from serverless_cost_calculator.core.pricing import WorkloadEstimation
from serverless_cost_calculator.core.workload import WorkloadDescription


class OutputFormat(str, Enum):
    """Supported report formats."""
    HUMAN = "human"
    JSON = "json"
    YAML = "yaml"


_ADVISORY_STYLES = {
    AdvisorySeverity.ERROR: "bold red",
    AdvisorySeverity.WARNING: "bold yellow",
    AdvisorySeverity.INFO: "bold green",
}

NOTES = [
    "Request units are estimated based on statistical data from the past, up to seven "
    "days. Be cautious: severe fluctuations in recent workload, such as ingesting a large "
    "volume of data, can skew the final estimation.",
    "The storage size is estimated from statistical data, which differs from the actual "
    "data size.",
    "The serverless tier encodes data differently from MySQL, resulting in slightly "
    "different storage consumption.",
    "The serverless storage size meter does not account for data compression or replicas.",
    "For detailed pricing information, visit "
    "https://www.pingcap.com/tidb-serverless-pricing-details",
    "For additional questions, refer to the FAQs on "
    "https://docs.pingcap.com/tidbcloud/serverless-faqs",
]


def format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def render_advisories(console: Console, advisories: Sequence[Advisory]) -> None:
    for advisory in advisories:
        console.print(
            advisory.message,
            style=_ADVISORY_STYLES[advisory.severity],
            markup=False,
            soft_wrap=True
        )


def build_report(
    workloads: Sequence[WorkloadDescription],
    estimations: Sequence[WorkloadEstimation]
) -> List[Dict[str, Any]]:
    """Pair each workload with its estimation for structured output."""
    if len(workloads) != len(estimations):
        raise ValueError("Every workload needs exactly one estimation")
    return [
        {"workload": workload.to_dict(), "estimation": estimation.to_dict()}
        for workload, estimation in zip(workloads, estimations)
    ]


def render_report(
    console: Console,
    output: OutputFormat,
    workloads: Sequence[WorkloadDescription],
    estimations: Sequence[WorkloadEstimation]
) -> None:
    """Print the estimation report in the requested format."""
    if output == OutputFormat.HUMAN:
        _render_human(console, estimations)
        return

    report = build_report(workloads, estimations)
    if output == OutputFormat.JSON:
        text = json.dumps(report, indent=2)
    else:
        text = yaml.safe_dump(report, sort_keys=False)
    # Plain write keeps the document free of markup and wrapping.
    console.file.write(text.rstrip("\n") + "\n")


def _render_estimation(console: Console, estimation: WorkloadEstimation) -> None:
    total = format_currency(estimation.total_cost)
    console.print(f"The estimated monthly cost for your workload is [bold green]{total}[/]")

    table = Table()
    table.add_column("SKU", style="bold green")
    table.add_column("Cost", style="bold green", justify="right")
    table.add_row("Request Units", format_currency(estimation.request_units_cost))
    table.add_row("Row-based Storage", format_currency(estimation.storage_cost))
    table.add_row("Free Credits", f"-{format_currency(estimation.free_credit)}")
    table.add_row("Total", total)
    console.print(table)


def _render_human(console: Console, estimations: Sequence[WorkloadEstimation]) -> None:
    single_workload = len(estimations) == 1
    for index, estimation in enumerate(estimations):
        if not single_workload:
            console.print(f"Cluster: [bold green]{index}[/]")
        _render_estimation(console, estimation)

    console.print("\n[bold green]Notes:[/]")
    for note in NOTES:
        console.print(f"* {note}", style="green", markup=False)
