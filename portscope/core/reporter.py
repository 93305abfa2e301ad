import json
import logging

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import PortState, ScanReport

logger = logging.getLogger(__name__)

STATE_STYLES = {
    PortState.OPEN: "green",
    PortState.CLOSED: "red",
    PortState.FILTERED: "yellow",
}


class ReportGenerator:
    """Console rendering of scan reports"""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def print_json(self, report: ScanReport):
        """Print the report in the external JSON contract"""
        # Plain stdout so the output stays machine-readable when piped
        print(json.dumps(report.to_response(), indent=2))

    def print_summary(self, report: ScanReport, open_only: bool = False):
        """Print scan summary to console"""
        table = Table(title=f"PortScope report for {report.host}")
        table.add_column("Port", justify="right")
        table.add_column("State")
        table.add_column("Service")
        table.add_column("Banner", overflow="fold")

        for outcome in report.outcomes:
            if open_only and outcome.state is not PortState.OPEN:
                continue
            style = STATE_STYLES[outcome.state]
            table.add_row(
                f"{outcome.port}/tcp",
                f"[{style}]{outcome.state.value}[/{style}]",
                outcome.service,
                escape(outcome.banner or ""),
            )

        self.console.print(table)
        self.console.print(
            f"Scanned {report.total_scanned} ports in {report.duration_seconds:.2f}s "
            f"({report.strategy}): [green]{report.open_count} open[/green], "
            f"[red]{report.closed_count} closed[/red], "
            f"[yellow]{report.filtered_count} filtered[/yellow]"
        )
        if report.truncated_count:
            self.console.print(f"[yellow]{report.truncated_count} ports beyond the port limit were not scanned[/yellow]")
        if report.abandoned_count:
            self.console.print(f"[yellow]{report.abandoned_count} ports were cut off by the scan deadline[/yellow]")

    def print_error(self, message: str):
        """Print error message"""
        self.console.print(f"[red]error:[/red] {escape(message)}")
