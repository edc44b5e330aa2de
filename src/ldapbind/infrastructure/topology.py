"""
Cluster topology view over the cluster management shell (cmsh).

Only column positions and two literal tokens are relied on: the device type of
control-plane nodes (``HeadNode``) and the reachable status (``UP``).

cmsh output formats used:
    device list         Type  Hostname  MAC  Category  IP  Network  Status
    softwareimage;list  Name  Path  Kernel version  Nodes
    device status       hostname ....... [   UP   ]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from ldapbind.domain.config import EngineSettings
from ldapbind.domain.errors import TopologyError
from ldapbind.domain.models import CommandResult, NodeStatus
from ldapbind.infrastructure.execution import ExecutionTarget

logger = logging.getLogger(__name__)

_STATUS_RE = re.compile(r"\[\s*([A-Za-z_]+)[^\]]*\]")
_HEADER_FIRST_COLUMNS = {"type", "name", "name (key)", "hostname"}


@dataclass(frozen=True)
class Device:
    """One row of the device listing."""
    device_type: str
    hostname: str


@dataclass(frozen=True)
class Image:
    """One row of the image listing."""
    name: str
    path: str


class TopologyView(Protocol):
    """Narrow query interface over the external cluster-management tool."""

    def device_listing(self) -> str:
        ...

    def image_listing(self) -> str:
        ...

    def control_plane_nodes(self) -> list[str]:
        ...

    def compute_nodes(self) -> list[str]:
        ...

    def images(self) -> list[Image]:
        ...

    def node_status(self) -> dict[str, NodeStatus]:
        ...

    def up_compute_nodes(self) -> list[str]:
        ...

    def image_update_up_nodes(self) -> CommandResult:
        ...

    def restart_service_on_up_nodes(self, service: str) -> CommandResult:
        ...

    def add_user(self, user: str, password: str) -> CommandResult:
        ...

    def remove_user(self, user: str) -> CommandResult:
        ...


def _is_noise(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return True
    if set(stripped) <= set("-= "):
        return True
    first = stripped.split()[0].lower()
    return first in _HEADER_FIRST_COLUMNS


def parse_devices(listing: str) -> list[Device]:
    """Rows of ``device list`` with at least a type and a hostname column."""
    devices = []
    for line in listing.splitlines():
        if _is_noise(line):
            continue
        fields = line.split()
        if len(fields) >= 2:
            devices.append(Device(device_type=fields[0], hostname=fields[1]))
    return devices


def parse_images(listing: str) -> list[Image]:
    """Rows of ``softwareimage;list``: name in column 1, path in column 2."""
    images = []
    for line in listing.splitlines():
        if _is_noise(line):
            continue
        fields = line.split()
        if len(fields) >= 2:
            images.append(Image(name=fields[0], path=fields[1]))
    return images


def parse_status(listing: str) -> dict[str, NodeStatus]:
    """Map hostname to status from ``device status`` lines."""
    statuses: dict[str, NodeStatus] = {}
    for line in listing.splitlines():
        if _is_noise(line):
            continue
        match = _STATUS_RE.search(line)
        if not match:
            continue
        statuses[line.split()[0]] = NodeStatus.from_token(match.group(1))
    return statuses


class CmshTopologyView:
    """
    TopologyView backed by cmsh on the control-plane node.

    Usage:
        topology = CmshTopologyView(LocalExecutionTarget("head1"), settings)
        for node in topology.control_plane_nodes():
            ...
    """

    def __init__(self, executor: ExecutionTarget, settings: EngineSettings):
        self.executor = executor
        self.settings = settings
        self._cmsh: str | None = None
        self._devices: list[Device] | None = None

    @property
    def cmsh(self) -> str:
        """Path of the cmsh binary, located on first use."""
        if self._cmsh is None:
            for candidate in self.settings.cmsh_candidates:
                if self.executor.is_file(candidate):
                    logger.debug("Found cmsh at %s", candidate)
                    self._cmsh = candidate
                    break
            else:
                raise TopologyError(
                    "cmsh binary not found in: " + ", ".join(self.settings.cmsh_candidates)
                )
        return self._cmsh

    def _run(self, command: str, timeout: int | None = None) -> CommandResult:
        return self.executor.run([self.cmsh, "-c", command], timeout=timeout)

    def query(self, command: str) -> str:
        """Run a read-only cmsh command and return its output."""
        result = self._run(command)
        if not result.ok:
            detail = "timed out" if result.timed_out else (result.error or result.output).strip()
            raise TopologyError(f'cmsh -c "{command}" failed: {detail}')
        return result.output

    # -------------------------------------------------------------------------
    # Raw listings (discovery mode prints these verbatim)
    # -------------------------------------------------------------------------

    def device_listing(self) -> str:
        return self.query("device list")

    def image_listing(self) -> str:
        return self.query("softwareimage;list")

    def status_listing(self) -> str:
        return self.query("device status")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def devices(self) -> list[Device]:
        if self._devices is None:
            self._devices = parse_devices(self.device_listing())
        return self._devices

    def control_plane_nodes(self) -> list[str]:
        token = self.settings.control_plane_token
        nodes = [d.hostname for d in self.devices() if d.device_type == token]
        if not nodes:
            raise TopologyError("No head nodes found!")
        return nodes

    def compute_nodes(self) -> list[str]:
        token = self.settings.control_plane_token
        return [d.hostname for d in self.devices() if d.device_type != token]

    def images(self) -> list[Image]:
        images = parse_images(self.image_listing())
        if not images:
            logger.warning("No software images found!")
        return images

    def node_status(self) -> dict[str, NodeStatus]:
        return parse_status(self.status_listing())

    def up_compute_nodes(self) -> list[str]:
        compute = set(self.compute_nodes())
        return [
            host for host, status in self.node_status().items()
            if status == NodeStatus.UP and host in compute
        ]

    # -------------------------------------------------------------------------
    # Cluster-wide actions
    # -------------------------------------------------------------------------

    def image_update_up_nodes(self) -> CommandResult:
        """Sync image content onto every UP physical node and wait for it."""
        return self._run(
            "device; imageupdate -t physicalnode -s UP -w --wait",
            timeout=self.settings.image_update_timeout,
        )

    def restart_service_on_up_nodes(self, service: str) -> CommandResult:
        return self._run(
            f"device; foreach -t physicalnode -s UP * (pexec systemctl restart {service} || true)",
            timeout=self.settings.image_update_timeout,
        )

    def add_user(self, user: str, password: str) -> CommandResult:
        return self._run(f"user; add {user}; set password {password}; commit")

    def remove_user(self, user: str) -> CommandResult:
        return self._run(f"user; remove {user}; commit")
