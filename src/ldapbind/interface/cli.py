"""
ldapbind CLI entry point.

Exactly one mode flag per invocation:

    ldapbind --discovery          Show what would be configured
    ldapbind --dry-run            Preview changes without writing
    sudo ldapbind --write         Apply changes
    sudo ldapbind --validate      Check LDAP lookups and binds work
    sudo ldapbind --rollback      Restore the original configuration
    ldapbind --rollback-validate  Verify the original state is back

Exit code 0 on full success or pristine state, 1 otherwise.
"""

import logging
import socket
from pathlib import Path
from typing import Optional

import typer

from ldapbind.application.orchestrator import Orchestrator
from ldapbind.domain.config import RunConfig
from ldapbind.domain.errors import PreconditionError
from ldapbind.domain.models import RunMode
from ldapbind.infrastructure.capability import is_root
from ldapbind.infrastructure.logging_config import setup_logging
from ldapbind.infrastructure.settings_loader import SettingsLoader
from ldapbind.interface.console import ConsoleRenderer

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="ldapbind",
    help="🔐 Enable certificate-based (SASL EXTERNAL) LDAP authentication across the cluster",
    rich_markup_mode="rich",
    add_completion=False,
)


def _selected_mode(flags: dict[RunMode, bool]) -> Optional[RunMode]:
    selected = [mode for mode, on in flags.items() if on]
    return selected[0] if len(selected) == 1 else None


def _short_hostname() -> str:
    return socket.gethostname().split(".")[0]


@app.command()
def ldapbind(
    discovery: bool = typer.Option(False, "--discovery", help="Show discovered nodes, images and files (read-only)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without writing."),
    write: bool = typer.Option(False, "--write", help="Apply the changes (requires root)."),
    validate: bool = typer.Option(False, "--validate", help="Check that LDAP lookups and binds work (requires root)."),
    rollback: bool = typer.Option(False, "--rollback", help="Restore the original configuration (requires root)."),
    rollback_validate: bool = typer.Option(
        False, "--rollback-validate", help="Verify the system is back in its original state."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON file overriding engine settings."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to file."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the rollback confirmation prompt."),
):
    """
    Configure, preview, validate or reverse LDAP bind authentication.

    Select exactly one mode.
    """
    renderer = ConsoleRenderer()

    mode = _selected_mode({
        RunMode.DISCOVERY: discovery,
        RunMode.DRY_RUN: dry_run,
        RunMode.WRITE: write,
        RunMode.VALIDATE: validate,
        RunMode.ROLLBACK: rollback,
        RunMode.ROLLBACK_VALIDATE: rollback_validate,
    })
    if mode is None:
        renderer.console.print(
            "[red]❌ Error:[/red] exactly one of --discovery, --dry-run, --write, "
            "--validate, --rollback, --rollback-validate is required"
        )
        raise typer.Exit(1)

    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)

    try:
        settings = SettingsLoader(config).load()
    except (OSError, ValueError) as e:
        logger.error("Failed to load settings: %s", e)
        renderer.console.print(f"[red]❌ Error:[/red] {e}")
        raise typer.Exit(1)

    run_config = RunConfig(
        mode=mode,
        is_root=is_root(),
        hostname=settings.hostname or _short_hostname(),
        settings=settings,
    )
    logger.debug("Run configuration: mode=%s root=%s host=%s", mode.value, run_config.is_root, run_config.hostname)

    renderer.banner(mode)
    orchestrator = Orchestrator(run_config)

    if mode == RunMode.DISCOVERY:
        renderer.discovery(orchestrator.discover())
        raise typer.Exit(0)

    try:
        if mode == RunMode.ROLLBACK and not yes:
            orchestrator.check_privilege()
            renderer.console.print(
                "[yellow]⚠ This restores every managed file from its backup, or removes "
                "the lines ldapbind added when no backup exists.[/yellow]"
            )
            if not typer.confirm("Are you sure you want to rollback all changes?", default=False):
                logger.info("Rollback cancelled.")
                raise typer.Exit(0)
        summary = orchestrator.run()
    except PreconditionError as e:
        logger.error("%s", e)
        renderer.precondition_failed(e)
        raise typer.Exit(1)

    renderer.summary(summary)
    raise typer.Exit(0 if summary.success else 1)


def main() -> None:
    """Console script entry point."""
    app(prog_name="ldapbind")
