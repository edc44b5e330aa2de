"""
Tests for discovery mode and its console rendering.
"""

from io import StringIO

from conftest import OK
from rich.console import Console

from ldapbind.application.discovery import discover
from ldapbind.domain.models import RunMode
from ldapbind.interface.console import ConsoleRenderer


class TestDiscover:
    """Test the read-only discovery report."""

    def test_report(self, populated):
        populated.topology.compute = ["node001", "node002"]
        populated.topology.up = ["node002"]

        report = discover(populated.run_config(RunMode.DISCOVERY), populated.topology, populated.local)

        assert report.control_plane_nodes == ["head1"]
        assert report.compute_nodes == ["node001", "node002"]
        assert report.up_compute_nodes == ["node002"]
        assert [(i.image.name, i.lookup_config_present) for i in report.images] == [("default-image", True)]
        assert all(exists for _, exists in report.files)
        assert not report.subsystem.installed
        assert report.errors == []

    def test_nothing_is_written(self, populated):
        discover(populated.run_config(RunMode.DISCOVERY), populated.topology, populated.local)
        assert list(populated.root.rglob("*.backup.*")) == []
        assert not populated.local.ran("systemctl", "restart")

    def test_topology_errors_collected(self, cluster):
        cluster.topology.control_plane = []

        report = discover(cluster.run_config(RunMode.DISCOVERY), cluster.topology, cluster.local)

        assert report.errors == ["No head nodes found!"]
        assert [i.lookup_config_present for i in report.images] == [False]

    def test_subsystem_state(self, populated):
        populated.local.respond(("systemctl", "cat", "sssd.service"), OK)
        populated.write(populated.paths.sssd_conf, "[sssd]\n")

        report = discover(populated.run_config(RunMode.DISCOVERY), populated.topology, populated.local)

        assert report.subsystem.installed
        assert report.subsystem.active
        assert report.subsystem.config_present


class TestRender:
    """Test that the report renders."""

    def test_render(self, populated):
        report = discover(populated.run_config(RunMode.DISCOVERY), populated.topology, populated.local)
        out = StringIO()

        ConsoleRenderer(Console(file=out, width=200)).discovery(report)

        text = out.getvalue()
        assert "head1" in text
        assert "nslcd.conf exists" in text
        assert "SSSD is not installed" in text
