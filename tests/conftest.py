"""
Shared fixtures for ldapbind tests.

File operations run for real inside ``tmp_path``; commands (systemctl, ldd,
getent, ldapsearch) are recorded and answered from a script so nothing touches
the host's services.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parents[1] / "src"))

import pytest

from ldapbind.domain.config import EngineSettings, ManagedPaths, RunConfig, ValidationSettings
from ldapbind.domain.errors import TopologyError
from ldapbind.domain.models import CommandResult, NodeStatus, RunMode
from ldapbind.infrastructure.execution import LocalExecutionTarget
from ldapbind.infrastructure.topology import Image


OK = CommandResult("", 0)
FAIL = CommandResult("", 1)


class RecordingTarget(LocalExecutionTarget):
    """Local filesystem, scripted commands."""

    def __init__(self, host: str = "head1", responses: dict | None = None):
        super().__init__(host)
        self.commands: list[list[str]] = []
        self.responses: dict[tuple, CommandResult] = dict(responses or {})

    def respond(self, prefix: tuple, result: CommandResult) -> None:
        self.responses[prefix] = result

    def run(self, args, timeout=None, input_text=None) -> CommandResult:
        args = list(args)
        self.commands.append(args)
        for prefix, result in self.responses.items():
            if tuple(args[:len(prefix)]) == prefix:
                return result
        return OK

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c[:len(prefix)]) == prefix for c in self.commands)


class FakeTopology:
    """In-memory TopologyView."""

    def __init__(self, control_plane=("head1",), compute=(), up=(), images=()):
        self.control_plane = list(control_plane)
        self.compute = list(compute)
        self.up = list(up)
        self.image_list = list(images)
        self.actions: list[str] = []
        self.update_result = OK
        self.add_user_result = OK
        self.remove_user_result = OK

    def device_listing(self) -> str:
        rows = [f"HeadNode {n}" for n in self.control_plane] + [f"PhysicalNode {n}" for n in self.compute]
        return "Type Hostname\n" + "\n".join(rows)

    def image_listing(self) -> str:
        return "Name Path\n" + "\n".join(f"{i.name} {i.path}" for i in self.image_list)

    def control_plane_nodes(self) -> list[str]:
        if not self.control_plane:
            raise TopologyError("No head nodes found!")
        return list(self.control_plane)

    def compute_nodes(self) -> list[str]:
        return list(self.compute)

    def images(self) -> list[Image]:
        return list(self.image_list)

    def node_status(self) -> dict[str, NodeStatus]:
        return {n: NodeStatus.UP if n in self.up else NodeStatus.DOWN for n in self.compute}

    def up_compute_nodes(self) -> list[str]:
        return list(self.up)

    def image_update_up_nodes(self) -> CommandResult:
        self.actions.append("imageupdate")
        return self.update_result

    def restart_service_on_up_nodes(self, service: str) -> CommandResult:
        self.actions.append(f"restart {service}")
        return OK

    def add_user(self, user: str, password: str) -> CommandResult:
        self.actions.append(f"add {user}")
        return self.add_user_result

    def remove_user(self, user: str) -> CommandResult:
        self.actions.append(f"remove {user}")
        return self.remove_user_result


class FixedClock:
    """Clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 10, 30, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current.replace(second=(self.current.second + 1) % 60)
        return value


class Cluster:
    """A tmp_path cluster: managed files, one image, scripted local target."""

    def __init__(self, root: Path):
        self.root = root
        etc = root / "etc"
        self.settings = EngineSettings(
            paths=ManagedPaths(
                ldap_conf=str(etc / "openldap" / "ldap.conf"),
                nslcd_conf=str(etc / "nslcd.conf"),
                slapd_conf=str(root / "cm" / "local" / "apps" / "openldap" / "etc" / "slapd.conf"),
                sssd_conf=str(etc / "sssd" / "sssd.conf"),
            ),
            validation=ValidationSettings(sync_delay=0),
            images_prefix=str(root / "cm" / "images"),
            slapd_binary=str(root / "sbin" / "slapd"),
            cmsh_candidates=[str(root / "bin" / "cmsh")],
            lock_path=str(root / "ldapbind.lock"),
            lock_timeout=0.1,
            hostname="head1",
        )
        self.image_root = str(root / "cm" / "images" / "default-image")
        self.local = RecordingTarget("head1")
        self.local.respond(("ldd",), CommandResult("\tlibsasl2.so.3 => /lib64/libsasl2.so.3\n", 0))
        # sssd not installed unless a test says otherwise
        self.local.respond(("systemctl", "cat", "sssd.service"), FAIL)
        self.topology = FakeTopology(images=[Image("default-image", self.image_root)])
        self.clock = FixedClock()

    @property
    def paths(self) -> ManagedPaths:
        return self.settings.paths

    def write(self, path: str, content: str) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content)
        return p

    def image_path(self, nominal: str) -> str:
        return self.image_root + "/" + nominal.lstrip("/")

    def populate(self) -> None:
        """Stock files on the head node, in the image, and the slapd binary."""
        self.write(self.paths.ldap_conf, "URI ldaps://ldapserver\nBASE dc=cm,dc=cluster\n")
        self.write(self.paths.nslcd_conf, "uid nslcd\ngid ldap\nuri ldaps://ldapserver\n")
        self.write(
            self.paths.slapd_conf,
            "include schema.conf\n"
            "TLSCertificateFile /cm/local/apps/openldap/etc/certs/ldap.pem\n"
            "TLSVerifyClient never\n"
            "\n"
            "access to *\n"
            "    by * read\n",
        )
        self.write(self.image_path(self.paths.ldap_conf), "URI ldaps://master\n")
        self.write(self.image_path(self.paths.nslcd_conf), "uid nslcd\nuri ldaps://master\n")
        self.write(self.settings.slapd_binary, "ELF")

    def run_config(self, mode: RunMode, is_root: bool = True) -> RunConfig:
        return RunConfig(mode=mode, is_root=is_root, hostname="head1", settings=self.settings)


@pytest.fixture
def cluster(tmp_path) -> Cluster:
    return Cluster(tmp_path)


@pytest.fixture
def populated(cluster) -> Cluster:
    cluster.populate()
    return cluster


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()


SSH_SHIM = """#!/bin/sh
# Run the remote command (the last argument) on this machine.
for last; do :; done
exec sh -c "$last"
"""

SYSTEMCTL_SHIM = """#!/bin/sh
echo "$@" >> "$(dirname "$0")/systemctl.log"
"""


@pytest.fixture
def ssh_shim(tmp_path, monkeypatch) -> Path:
    """
    Put a fake ``ssh`` first on PATH so RemoteExecutionTarget runs its commands locally.

    ``systemctl`` is shimmed too; calls are appended to ``systemctl.log`` in
    the returned directory.
    """
    bin_dir = tmp_path / "shim-bin"
    bin_dir.mkdir()
    for name, script in (("ssh", SSH_SHIM), ("systemctl", SYSTEMCTL_SHIM)):
        shim = bin_dir / name
        shim.write_text(script)
        shim.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return bin_dir
