"""Rich rendering of bulk orchestration results."""

from rich.console import Console
from rich.table import Table

from azbulk.models import OperationState, OrchestrationResult

STATE_STYLES = {
    OperationState.SUCCEEDED: "green",
    OperationState.FAILED: "red",
    OperationState.CANCELLED: "red",
    OperationState.UNSUBMITTED: "red",
    OperationState.TIMED_OUT: "yellow",
    OperationState.PENDING: "yellow",
    OperationState.RUNNING: "yellow",
}


class ResultDisplay:
    """Display an OrchestrationResult as summary and failure tables."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def show(self, result: OrchestrationResult, show_failures: bool = True) -> None:
        self.console.print(self.build_summary_table(result))
        failures = result.failures
        if show_failures and failures:
            self.console.print(self.build_failure_table(result))

        if result.succeeded:
            self.console.print(f"[green]✓ {result.format_summary()}[/green]")
        else:
            self.console.print(f"[yellow]⚠ {result.format_summary()}[/yellow]")

    def build_summary_table(self, result: OrchestrationResult) -> Table:
        table = Table(title=f"Bulk {result.action.value}", show_header=True)
        table.add_column("State")
        table.add_column("VMs", justify="right")

        for state, count in sorted(result.state_counts().items(), key=lambda i: i[0].value):
            style = STATE_STYLES.get(state, "white")
            table.add_row(f"[{style}]{state.value}[/{style}]", str(count))
        table.add_row("[bold]total[/bold]", f"[bold]{result.total}[/bold]")
        return table

    def build_failure_table(self, result: OrchestrationResult) -> Table:
        table = Table(title="Not succeeded", show_header=True)
        table.add_column("VM")
        table.add_column("State")
        table.add_column("Detail", overflow="fold")

        for outcome in result.failures:
            style = STATE_STYLES.get(outcome.state, "white")
            table.add_row(
                outcome.resource_id.rsplit("/", 1)[-1],
                f"[{style}]{outcome.state.value}[/{style}]",
                outcome.error or "",
            )
        return table


__all__ = ["ResultDisplay"]
