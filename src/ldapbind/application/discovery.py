"""
Discovery mode: read-only report of what the other modes would operate on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ldapbind.domain.config import RunConfig
from ldapbind.domain.errors import LdapBindError
from ldapbind.domain.models import Target, TargetKind
from ldapbind.infrastructure.execution import ExecutionTarget
from ldapbind.infrastructure.services import ServiceManager
from ldapbind.infrastructure.topology import Image, TopologyView

logger = logging.getLogger(__name__)


@dataclass
class ImageInfo:
    image: Image
    lookup_config_present: bool


@dataclass
class SubsystemInfo:
    """Identity broker presence on this node."""
    installed: bool = False
    active: bool = False
    enabled: bool = False
    config_present: bool = False


@dataclass
class DiscoveryReport:
    device_listing: str = ""
    image_listing: str = ""
    control_plane_nodes: list[str] = field(default_factory=list)
    images: list[ImageInfo] = field(default_factory=list)
    compute_nodes: list[str] = field(default_factory=list)
    up_compute_nodes: list[str] = field(default_factory=list)
    subsystem: SubsystemInfo = field(default_factory=SubsystemInfo)
    files: list[tuple[str, bool]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def discover(run_config: RunConfig, topology: TopologyView, local: ExecutionTarget) -> DiscoveryReport:
    """
    Collect topology, images, broker state and managed-file presence.

    Query failures are recorded in the report instead of raised; discovery is
    a diagnostic and should show as much as it can.
    """
    settings = run_config.settings
    paths = settings.paths
    report = DiscoveryReport()

    try:
        report.device_listing = topology.device_listing()
        report.control_plane_nodes = topology.control_plane_nodes()
    except LdapBindError as e:
        logger.warning("%s", e)
        report.errors.append(str(e))

    try:
        report.image_listing = topology.image_listing()
        for image in topology.images():
            target = Target(TargetKind.LOCAL, local.host, image_root=image.path)
            present = local.is_file(target.path(paths.nslcd_conf))
            report.images.append(ImageInfo(image, present))
    except LdapBindError as e:
        logger.warning("%s", e)
        report.errors.append(str(e))

    try:
        report.compute_nodes = topology.compute_nodes()
        if report.compute_nodes:
            report.up_compute_nodes = topology.up_compute_nodes()
    except LdapBindError as e:
        logger.warning("%s", e)
        report.errors.append(str(e))

    services = ServiceManager(local)
    broker = settings.broker_service
    if services.exists(broker):
        report.subsystem = SubsystemInfo(
            installed=True,
            active=services.is_active(broker),
            enabled=services.is_enabled(broker),
            config_present=local.is_file(paths.sssd_conf),
        )

    for path in (paths.ldap_conf, paths.nslcd_conf, paths.slapd_conf):
        report.files.append((path, local.is_file(path)))

    return report
