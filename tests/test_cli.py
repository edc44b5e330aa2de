"""
Tests for the ldapbind command line.

The orchestrator is replaced with a stub; these tests cover argument
handling, the rollback prompt and exit codes.
"""

import importlib
import json
import sys

import pytest
from typer.testing import CliRunner

from ldapbind.application.discovery import DiscoveryReport
from ldapbind.application.summary import RunSummary, StageReport
from ldapbind.domain.errors import PreconditionError
from ldapbind.interface import cli
from ldapbind.interface.cli import app

runner = CliRunner()


@pytest.fixture
def stub(monkeypatch):
    """Replace the orchestrator and pretend to run as root."""

    class StubOrchestrator:
        instances = []
        summary_errors: list[str] = []
        precondition: PreconditionError | None = None

        def __init__(self, run_config):
            self.run_config = run_config
            self.ran = False
            StubOrchestrator.instances.append(self)

        def check_privilege(self):
            if self.precondition is not None:
                raise self.precondition

        def discover(self):
            return DiscoveryReport(control_plane_nodes=["head1"])

        def run(self):
            self.check_privilege()
            self.ran = True
            summary = RunSummary(mode=self.run_config.mode)
            summary.stages.append(StageReport(name="stage", errors=list(self.summary_errors)))
            return summary

    monkeypatch.setattr(cli, "Orchestrator", StubOrchestrator)
    monkeypatch.setattr(cli, "is_root", lambda: True)
    return StubOrchestrator


class TestModeSelection:
    """Test that exactly one mode is required."""

    def test_no_mode(self, stub):
        result = runner.invoke(app, [])
        assert result.exit_code == 1
        assert stub.instances == []

    def test_two_modes(self, stub):
        result = runner.invoke(app, ["--write", "--dry-run"])
        assert result.exit_code == 1
        assert "exactly one" in result.stdout

    @pytest.mark.parametrize("flag,mode", [
        ("--dry-run", "dry-run"),
        ("--write", "write"),
        ("--validate", "validate"),
        ("--rollback-validate", "rollback-validate"),
    ])
    def test_mode_passed_through(self, stub, flag, mode):
        result = runner.invoke(app, [flag])
        assert result.exit_code == 0
        assert stub.instances[0].run_config.mode.value == mode
        assert stub.instances[0].ran

    def test_discovery(self, stub):
        result = runner.invoke(app, ["--discovery"])
        assert result.exit_code == 0
        assert "head1" in result.stdout
        assert not stub.instances[0].ran


class TestExitCodes:
    """Test mapping of run results to exit codes."""

    def test_failure_exits_1(self, stub):
        stub.summary_errors = ["imageupdate failed: exit 1"]
        result = runner.invoke(app, ["--write"])
        assert result.exit_code == 1

    def test_precondition_exits_1(self, stub):
        stub.precondition = PreconditionError(
            PreconditionError.ROOT_PRIVILEGE, "Write mode must be run as root.",
            hints=["Please run: sudo ldapbind --write"],
        )
        result = runner.invoke(app, ["--write"])
        assert result.exit_code == 1
        assert "sudo ldapbind --write" in result.stdout

    def test_real_orchestrator_refuses_non_root(self, monkeypatch):
        monkeypatch.setattr(cli, "is_root", lambda: False)
        result = runner.invoke(app, ["--write"])
        assert result.exit_code == 1
        assert "root" in result.stdout


class TestRollbackPrompt:
    """Test the rollback confirmation."""

    def test_declined(self, stub):
        result = runner.invoke(app, ["--rollback"], input="n\n")
        assert result.exit_code == 0
        assert not stub.instances[0].ran

    def test_confirmed(self, stub):
        result = runner.invoke(app, ["--rollback"], input="y\n")
        assert result.exit_code == 0
        assert stub.instances[0].ran

    def test_yes_skips_prompt(self, stub):
        result = runner.invoke(app, ["--rollback", "--yes"])
        assert result.exit_code == 0
        assert "Are you sure" not in result.stdout
        assert stub.instances[0].ran

    def test_privilege_checked_before_prompt(self, stub):
        stub.precondition = PreconditionError(PreconditionError.ROOT_PRIVILEGE, "Rollback mode must be run as root.")
        result = runner.invoke(app, ["--rollback"], input="y\n")
        assert result.exit_code == 1
        assert "Are you sure" not in result.stdout


class TestSettingsOption:
    """Test --config handling."""

    def test_settings_passed_to_run(self, stub, tmp_path):
        path = tmp_path / "ldapbind.json"
        path.write_text(json.dumps({"hostname": "master1", "images_prefix": "/srv/images"}))

        result = runner.invoke(app, ["--dry-run", "--config", str(path)])

        assert result.exit_code == 0
        run_config = stub.instances[0].run_config
        assert run_config.hostname == "master1"
        assert run_config.settings.images_prefix == "/srv/images"

    def test_missing_settings_file(self, stub, tmp_path):
        result = runner.invoke(app, ["--dry-run", "--config", str(tmp_path / "none.json")])
        assert result.exit_code == 1
        assert stub.instances == []

    def test_invalid_settings(self, stub, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"paths": {"nslcd_conf": "relative/nslcd.conf"}}))
        result = runner.invoke(app, ["--dry-run", "-c", str(path)])
        assert result.exit_code == 1


class TestModuleEntryPoint:
    """Test ``python -m ldapbind`` wiring."""

    def test_import_does_not_run_cli(self, stub):
        sys.modules.pop("ldapbind.__main__", None)
        module = importlib.import_module("ldapbind.__main__")
        assert module.main is cli.main
        assert stub.instances == []
