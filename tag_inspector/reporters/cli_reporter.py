"""
CLI Reporter Module
===================

Rich terminal output for tag compliance reports.

This module renders:
- A header panel with the policy version and scan mode
- A per resource type summary table
- A table of non-compliant resources and their issues
- Per-resource errors and failed services
- A policy overview for ``validate-config``

Classes
-------
CLIReporter
    Main reporter class for terminal output.

Example
-------
>>> from tag_inspector.reporters import CLIReporter
>>>
>>> reporter = CLIReporter()
>>> reporter.report(report)

See Also
--------
rich : Python library for rich text and formatting.
JSONReporter : For programmatic access.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from tag_inspector.core.base_scanner import ScanResult
from tag_inspector.core.orchestrator import Report
from tag_inspector.core.policy import Policy

# Module logger
logger = logging.getLogger(__name__)


class CLIReporter:
    """
    Reporter for displaying compliance reports in the terminal.

    Parameters
    ----------
    console : Console, optional
        Rich Console instance. If not provided, creates a new one.
    show_compliant : bool, default=False
        If True, compliant resources are listed as well.

    Examples
    --------
    >>> reporter = CLIReporter()
    >>> reporter.report(report)

    >>> with reporter.create_progress() as progress:
    ...     progress.add_task("Scanning...", total=None)
    ...     report = orchestrator.scan()
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        show_compliant: bool = False,
    ) -> None:
        self.console = console or Console()
        self.show_compliant = show_compliant
        logger.debug("Initialized CLIReporter")

    def report(self, report: Report) -> None:
        """
        Display a scan report.

        Example
        -------
        >>> CLIReporter().report(orchestrator.scan())
        """
        self._print_header(report)
        self._print_summary(report)

        if report.dry_run:
            self.console.print(
                "\n[cyan]Dry run: resources were listed but tags were not fetched.[/cyan]"
            )
        else:
            listed = report.results if self.show_compliant else report.non_compliant_results
            if listed:
                self._print_results_table(listed)
            elif report.results:
                self.console.print("\n[green]All scanned resources are compliant.[/green]")
            else:
                self.console.print("\n[dim]No resources were scanned.[/dim]")

        if report.has_errors:
            self._print_errors(report)

        if report.cancelled:
            self.print_warning("Scan was cancelled; results are partial.")

    # =========================================================================
    # Private Methods: Output Formatting
    # =========================================================================

    def _print_header(self, report: Report) -> None:
        header_text = Text()
        header_text.append("\nTag Compliance Report\n", style="bold blue")
        mode = "dry run" if report.dry_run else "full scan"
        header_text.append(
            f"Policy version: {report.policy_version} | Mode: {mode}", style="dim"
        )
        self.console.print(Panel(header_text, border_style="blue"))

    def _print_summary(self, report: Report) -> None:
        table = Table(title="\nSummary", title_style="bold", show_lines=False)
        table.add_column("Resource Type", style="cyan", no_wrap=True)
        table.add_column("Discovered", justify="right")
        table.add_column("Excluded", justify="right", style="dim")
        table.add_column("Scanned", justify="right")
        table.add_column("Compliant", justify="right", style="green")
        table.add_column("Non-compliant", justify="right")
        table.add_column("Errors", justify="right")

        for resource_type, counts in report.summary_by_type().items():
            non_compliant = counts["non_compliant"]
            errors = counts["errors"]
            table.add_row(
                resource_type,
                str(counts["discovered"]),
                str(counts["excluded"]),
                str(counts["scanned"]),
                str(counts["compliant"]),
                f"[red]{non_compliant}[/]" if non_compliant else "0",
                f"[yellow]{errors}[/]" if errors else "0",
            )

        self.console.print(table)
        self.console.print(
            f"[dim]Scan time: {report.scan_time.strftime('%Y-%m-%d %H:%M:%S UTC')} "
            f"({report.duration_seconds:.1f}s)[/dim]"
        )

    def _print_results_table(self, results: List[ScanResult]) -> None:
        title = "Scanned Resources" if self.show_compliant else "Non-compliant Resources"
        table = Table(title=f"\n{title}", title_style="bold", show_lines=True)

        table.add_column("Type", style="yellow", no_wrap=True)
        table.add_column("Resource ID", style="cyan")
        table.add_column("Region", style="dim", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Issues", style="white", max_width=70)

        for result in results:
            status = (
                "[green]compliant[/]" if result.is_compliant else "[red]non-compliant[/]"
            )
            issues = "\n".join(escape(self._truncate(i, 70)) for i in result.issues)
            table.add_row(
                result.resource_type,
                escape(result.resource_id),
                result.region,
                status,
                issues or "-",
            )

        self.console.print(table)

    def _print_errors(self, report: Report) -> None:
        if report.fatal_errors:
            self.console.print("\n[red bold]Services that could not be listed:[/red bold]")
            for failure in report.fatal_errors:
                self.console.print(f"  [red]• {escape(str(failure))}[/red]")

        if report.errors:
            self.console.print("\n[yellow bold]Errors encountered:[/yellow bold]")
            for error in report.errors:
                self.console.print(f"  [yellow]• {escape(str(error))}[/yellow]")

    @staticmethod
    def _truncate(text: str, max_length: int) -> str:
        """Truncate text to maximum length with ellipsis."""
        if len(text) <= max_length:
            return text
        return text[:max_length - 3] + "..."

    # =========================================================================
    # Public Methods: Policy Overview
    # =========================================================================

    def print_policy_summary(self, policy: Policy) -> None:
        """
        Print an overview of a validated policy.

        Example
        -------
        >>> reporter.print_policy_summary(load_policy_file("policy.yaml"))
        """
        criteria = policy.global_settings.tag_criteria
        self.console.print(
            Panel(
                Text(f"Policy version {policy.version}\n{policy.source}", style="bold"),
                border_style="green",
            )
        )

        table = Table(title="\nResource Types", title_style="bold")
        table.add_column("Type", style="cyan")
        table.add_column("Enabled")
        table.add_column("Batch Size", justify="right")
        table.add_column("Required Tags")
        table.add_column("Forbidden Tags")
        table.add_column("Exclusions", justify="right")

        for resource_type, settings in sorted(policy.resources.items()):
            effective = policy.effective_criteria(resource_type)
            table.add_row(
                resource_type,
                "[green]yes[/]" if settings.enabled else "[dim]no[/]",
                str(policy.batch_size_for(resource_type)),
                escape(", ".join(dict.fromkeys(effective.required_tags))) or "-",
                escape(", ".join(dict.fromkeys(effective.forbidden_tags))) or "-",
                str(len(settings.excluded_resources)),
            )

        self.console.print(table)
        self.console.print(
            f"[dim]Global required tags: {escape(', '.join(criteria.required_tags)) or '-'}; "
            f"compliance levels: {escape(', '.join(sorted(policy.compliance_levels))) or '-'}; "
            f"pattern rules: {len(policy.tag_validation.pattern_rules)}[/dim]"
        )
        if not policy.global_settings.enabled:
            self.print_warning("Policy is globally disabled; scans will be rejected.")

    # =========================================================================
    # Public Methods: Progress and Messages
    # =========================================================================

    def create_progress(self) -> Progress:
        """
        Create a spinner for long-running operations.

        Example
        -------
        >>> with reporter.create_progress() as progress:
        ...     progress.add_task("Scanning...", total=None)
        """
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        )

    def print_scanning_message(self, services: List[str], regions: List[str]) -> None:
        """Print which services and regions are about to be scanned."""
        service_text = ", ".join(services) if services else "no services"
        region_text = ", ".join(regions[:5])
        if len(regions) > 5:
            region_text += f"... ({len(regions)} total)"
        self.console.print(
            f"\n[bold]Scanning {service_text} in {region_text}...[/bold]"
        )

    def print_completion_message(self, output_file: Optional[str] = None) -> None:
        """Print scan completion message, with the output path if one was written."""
        self.console.print("\n[green bold]Scan complete![/green bold]")
        if output_file:
            self.console.print(f"[dim]Results saved to: {output_file}[/dim]")

    def print_error(self, message: str) -> None:
        self.console.print(f"\n[red bold]Error:[/red bold] {escape(message)}")

    def print_warning(self, message: str) -> None:
        self.console.print(f"\n[yellow bold]Warning:[/yellow bold] {escape(message)}")

    def __repr__(self) -> str:
        """Return string representation."""
        return f"CLIReporter(show_compliant={self.show_compliant})"
