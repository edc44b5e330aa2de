"""
Console output for the CLI.

Banners, discovery report, per-stage tables and the final summary, rendered
with rich on stdout. Progress logging goes to stderr through logging.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ldapbind.application.discovery import DiscoveryReport
from ldapbind.application.summary import RunSummary, StageReport
from ldapbind.domain.errors import PreconditionError
from ldapbind.domain.models import (
    CheckStatus,
    MutationOutcome,
    RevertOutcome,
    RunMode,
)


class Icons:
    """UTF-8 Icons."""

    CHECK = "✓"
    CROSS = "✗"
    CIRCLE = "○"
    WARN = "⚠"
    INFO = "ℹ"


MODE_BANNERS = {
    RunMode.DISCOVERY: "DISCOVERY MODE - Testing Discovery Logic",
    RunMode.DRY_RUN: "DRY-RUN MODE - No changes will be made",
    RunMode.WRITE: "WRITE MODE - Applying Configuration Changes",
    RunMode.VALIDATE: "VALIDATE MODE - Testing LDAP Configuration",
    RunMode.ROLLBACK: "ROLLBACK MODE - Restoring Original Configuration",
    RunMode.ROLLBACK_VALIDATE: "ROLLBACK VALIDATION - Verifying Original State",
}

MUTATION_STYLES = {
    MutationOutcome.APPLIED: "[green]applied[/green]",
    MutationOutcome.ALREADY_PRESENT: "[cyan]already present[/cyan]",
    MutationOutcome.SKIPPED_MISSING_FILE: "[yellow]skipped (file missing)[/yellow]",
    MutationOutcome.SKIPPED_NO_ANCHOR: "[yellow]skipped (no anchor)[/yellow]",
    MutationOutcome.FAILED: "[red]failed[/red]",
}

REVERT_STYLES = {
    RevertOutcome.RESTORED: "[green]restored from backup[/green]",
    RevertOutcome.STRIPPED: "[yellow]marked lines removed[/yellow]",
    RevertOutcome.NO_BACKUP_NO_MARKER: "[cyan]nothing to revert[/cyan]",
    RevertOutcome.SKIPPED_MISSING_FILE: "[yellow]skipped (file missing)[/yellow]",
    RevertOutcome.FAILED: "[red]failed[/red]",
}

CHECK_STYLES = {
    CheckStatus.PASS: f"[green]{Icons.CHECK} pass[/green]",
    CheckStatus.FAIL: f"[red]{Icons.CROSS} fail[/red]",
    CheckStatus.INFO: f"[cyan]{Icons.INFO} info[/cyan]",
    CheckStatus.WARN: f"[yellow]{Icons.WARN} warn[/yellow]",
}


class ConsoleRenderer:
    """Renders run results to the terminal."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def banner(self, mode: RunMode) -> None:
        self.console.print(Panel.fit(f"[bold]{MODE_BANNERS[mode]}[/bold]", border_style="blue"))

    def precondition_failed(self, error: PreconditionError) -> None:
        body = f"[bold red]{error}[/bold red]"
        if error.hints:
            body += "\n\n" + "\n".join(error.hints)
        self.console.print(Panel.fit(body, title=f"{Icons.CROSS} {error.precondition}", border_style="red"))

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def discovery(self, report: DiscoveryReport) -> None:
        c = self.console
        c.print("\n[bold]Head node discovery[/bold]")
        c.print('Running: cmsh -c "device list"')
        if report.device_listing:
            c.print(report.device_listing, markup=False, highlight=False)
        if report.control_plane_nodes:
            for node in report.control_plane_nodes:
                c.print(f"  - {node}")
        else:
            c.print(f"[yellow]{Icons.WARN} No head nodes found![/yellow]")

        c.print("\n[bold]Software image discovery[/bold]")
        c.print('Running: cmsh -c "softwareimage;list"')
        if report.image_listing:
            c.print(report.image_listing, markup=False, highlight=False)
        if not report.images:
            c.print(f"[yellow]{Icons.WARN} No software images found![/yellow]")
        for info in report.images:
            c.print(f"  - {info.image.path}")
            if info.lookup_config_present:
                c.print(f"    [green]{Icons.CHECK}[/green] nslcd.conf exists")
            else:
                c.print(f"    [yellow]{Icons.CROSS}[/yellow] nslcd.conf not found")

        c.print("\n[bold]Compute node discovery[/bold]")
        if report.compute_nodes:
            c.print(f"Found {len(report.compute_nodes)} compute node(s):")
            for node in report.compute_nodes:
                c.print(f"  - {node}")
            if report.up_compute_nodes:
                c.print(f"Of those, {len(report.up_compute_nodes)} are currently UP")
            else:
                c.print("No compute nodes currently UP")
        else:
            c.print("No compute nodes found")

        c.print("\n[bold]SSSD detection[/bold]")
        sssd = report.subsystem
        if not sssd.installed:
            c.print(f"[yellow]{Icons.CIRCLE}[/yellow] SSSD is not installed")
        else:
            c.print(f"[green]{Icons.CHECK}[/green] SSSD service file found")
            if sssd.active:
                c.print(f"[green]{Icons.CHECK}[/green] SSSD is active")
            elif sssd.enabled:
                c.print(f"[yellow]{Icons.CIRCLE}[/yellow] SSSD is enabled but not active")
            else:
                c.print(f"[yellow]{Icons.CIRCLE}[/yellow] SSSD is installed but not enabled/active")
            mark = f"[green]{Icons.CHECK}[/green]" if sssd.config_present else f"[yellow]{Icons.CROSS}[/yellow]"
            c.print(f"{mark} sssd.conf {'exists' if sssd.config_present else 'not found'}")

        c.print("\n[bold]File existence[/bold]")
        for path, exists in report.files:
            if exists:
                c.print(f"[green]{Icons.CHECK}[/green] {path} exists")
            else:
                c.print(f"[yellow]{Icons.CROSS}[/yellow] {path} not found")

        for error in report.errors:
            c.print(f"[red]{Icons.CROSS} {error}[/red]")

        c.print("\nThis test verified the discovery logic without making any changes.")
        c.print("Next steps:")
        c.print("  1. Run dry-run mode: ldapbind --dry-run")
        c.print("  2. Apply changes:    sudo ldapbind --write")

    # -------------------------------------------------------------------------
    # Stages and summary
    # -------------------------------------------------------------------------

    def _stage_table(self, stage: StageReport) -> Table | None:
        if stage.mutations:
            table = Table(title=stage.title, title_justify="left")
            table.add_column("Target", style="cyan", no_wrap=True)
            table.add_column("File")
            table.add_column("Directive", style="magenta")
            table.add_column("Outcome")
            table.add_column("Backup", style="dim")
            for m in stage.mutations:
                outcome = MUTATION_STYLES[m.outcome]
                if m.dry_run and m.outcome == MutationOutcome.APPLIED:
                    outcome = "[green]would add[/green]"
                table.add_row(m.target.label, m.real_path or m.path, m.directive, outcome, m.backup_path or "")
            return table
        if stage.reverts:
            table = Table(title=stage.title, title_justify="left")
            table.add_column("Target", style="cyan", no_wrap=True)
            table.add_column("File")
            table.add_column("Outcome")
            table.add_column("Source / safety copy", style="dim")
            for r in stage.reverts:
                table.add_row(
                    r.target.label, r.real_path or r.path, REVERT_STYLES[r.outcome],
                    r.backup_path or r.safety_copy or "",
                )
            return table
        if stage.checks:
            table = Table(title=stage.title, title_justify="left")
            table.add_column("Subject", style="cyan", no_wrap=True)
            table.add_column("Check")
            table.add_column("Status")
            table.add_column("Detail", style="dim")
            for check in stage.checks:
                table.add_row(check.subject, check.description, CHECK_STYLES[check.status], check.detail)
            return table
        return None

    def stages(self, summary: RunSummary) -> None:
        for stage in summary.stages:
            table = self._stage_table(stage)
            if table is not None:
                self.console.print(table)
            else:
                self.console.print(f"\n[bold]{stage.title}[/bold]")
            for note in stage.notes:
                self.console.print(f"  [dim]{Icons.CIRCLE} {note}[/dim]")
            for error in stage.errors:
                self.console.print(f"  [red]{Icons.CROSS} {error}[/red]")

    def summary(self, summary: RunSummary) -> None:
        self.stages(summary)

        counts = Table(title="Summary", show_header=False, title_justify="left")
        counts.add_column("Item", style="bold")
        counts.add_column("Count", justify="right")
        if summary.mode in (RunMode.WRITE, RunMode.DRY_RUN):
            applied = "Would change" if summary.mode == RunMode.DRY_RUN else "Changed"
            counts.add_row(applied, str(summary.count(MutationOutcome.APPLIED)))
            counts.add_row("Already present", str(summary.count(MutationOutcome.ALREADY_PRESENT)))
            counts.add_row(
                "Skipped",
                str(summary.count(MutationOutcome.SKIPPED_MISSING_FILE) + summary.count(MutationOutcome.SKIPPED_NO_ANCHOR)),
            )
            counts.add_row("Failed", str(summary.count(MutationOutcome.FAILED)))
        elif summary.mode == RunMode.ROLLBACK:
            counts.add_row("Restored from backup", str(summary.count(RevertOutcome.RESTORED)))
            counts.add_row("Marked lines removed", str(summary.count(RevertOutcome.STRIPPED)))
            counts.add_row("Nothing to revert", str(summary.count(RevertOutcome.NO_BACKUP_NO_MARKER)))
            counts.add_row("Skipped", str(summary.count(RevertOutcome.SKIPPED_MISSING_FILE)))
            counts.add_row("Failed", str(summary.count(RevertOutcome.FAILED)))
        else:
            for status in CheckStatus:
                counts.add_row(CHECK_STYLES[status], str(sum(1 for c in summary.checks if c.status == status)))
        self.console.print(counts)

        if summary.follow_ups:
            self.console.print("\n[bold]Follow-up:[/bold]")
            for item in summary.follow_ups:
                self.console.print(f"  {Icons.CIRCLE} {item}")

        self.console.print(self._verdict(summary))

    @staticmethod
    def _verdict(summary: RunSummary) -> Panel:
        mode = summary.mode
        if summary.success:
            text = {
                RunMode.DRY_RUN: "Dry-run complete. Run with --write to apply these changes.",
                RunMode.WRITE: "Configuration completed successfully!",
                RunMode.ROLLBACK: "Rollback completed successfully!",
                RunMode.ROLLBACK_VALIDATE: "System is in its original state",
                RunMode.VALIDATE: "ALL VALIDATION TESTS PASSED",
            }.get(mode, "Done")
            return Panel.fit(f"[bold green]{Icons.CHECK} {text}[/bold green]", border_style="green")
        text = {
            RunMode.ROLLBACK_VALIDATE: "ldapbind changes are still present",
            RunMode.VALIDATE: "VALIDATION FAILED",
        }.get(mode, "Completed with failures; review the messages above")
        failed = ", ".join(s.name for s in summary.failed_stages)
        return Panel.fit(
            f"[bold red]{Icons.CROSS} {text}[/bold red]" + (f"\nStages with problems: {failed}" if failed else ""),
            border_style="red",
        )
