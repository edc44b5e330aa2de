"""
Orchestrator: sequences the stages of each mode and aggregates outcomes.

Stage order for write, dry-run and rollback:

    validate-capability
    -> mutate-control-plane-configs   ldap.conf, nslcd.conf on every control-plane node
    -> mutate-images                  ldap.conf, nslcd.conf inside every image tree
    -> propagate-to-live-nodes        push images to UP compute nodes
    -> mutate-optional-subsystem      sssd.conf on this node, when sssd is in use
    -> mutate-service-specific-config slapd.conf on every control-plane node

A stage that cannot run records why and the next one starts anyway. Only a
PreconditionError stops a run, and it is raised before anything is touched.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from filelock import FileLock, Timeout

from ldapbind.domain.config import RunConfig
from ldapbind.domain.directives import (
    LDAP_SASL_MECH_SSSD,
    REQUIRE_AUTHC,
    SASL_MECH_CLIENT,
    SASL_MECH_NSLCD,
    TLS_VERIFY_CLIENT,
)
from ldapbind.domain.errors import LdapBindError, PreconditionError
from ldapbind.domain.models import (
    CheckStatus,
    MutationOutcome,
    MutationResult,
    RevertOutcome,
    RevertResult,
    RunMode,
    Target,
    TargetKind,
    ValidationCheck,
)
from ldapbind.infrastructure.backup_store import BackupStore
from ldapbind.infrastructure.capability import sasl2_support
from ldapbind.infrastructure.execution import (
    ExecutionTarget,
    LocalExecutionTarget,
    target_for_host,
)
from ldapbind.infrastructure.path_resolver import PathResolver
from ldapbind.infrastructure.services import ServiceManager
from ldapbind.infrastructure.topology import CmshTopologyView, TopologyView

from .discovery import DiscoveryReport, discover
from .functional import FunctionalValidator
from .mutator import ConfigMutator
from .rollback import RollbackEngine
from .summary import RunSummary, StageReport
from .validator import StateValidator

logger = logging.getLogger(__name__)

STAGE_CAPABILITY = "validate-capability"
STAGE_CONTROL_PLANE = "mutate-control-plane-configs"
STAGE_IMAGES = "mutate-images"
STAGE_PROPAGATE = "propagate-to-live-nodes"
STAGE_SUBSYSTEM = "mutate-optional-subsystem"
STAGE_SERVICE = "mutate-service-specific-config"

STAGES = (
    STAGE_CAPABILITY,
    STAGE_CONTROL_PLANE,
    STAGE_IMAGES,
    STAGE_PROPAGATE,
    STAGE_SUBSYSTEM,
    STAGE_SERVICE,
)

STAGE_TITLES = {
    STAGE_CAPABILITY: "Checking SASL2 support",
    STAGE_CONTROL_PLANE: "OpenLDAP client and nslcd on head nodes",
    STAGE_IMAGES: "OpenLDAP client and nslcd in software images",
    STAGE_PROPAGATE: "Pushing software images to running compute nodes",
    STAGE_SUBSYSTEM: "SSSD configuration",
    STAGE_SERVICE: "slapd.conf on head nodes",
}

# validate and rollback-validate report in their own sections
STAGE_FUNCTIONAL_CONTROL_PLANE = "head-nodes"
STAGE_FUNCTIONAL_COMPUTE = "compute-nodes"
STAGE_FUNCTIONAL_BIND = "bind-credentials"
STAGE_FUNCTIONAL_SLAPD = "directory-server"
STAGE_BACKUPS = "backup-files"


def _failed_outcome(outcome) -> bool:
    return outcome in (MutationOutcome.FAILED, RevertOutcome.FAILED)


class Orchestrator:
    """
    Runs one mode end to end.

    Usage:
        orchestrator = Orchestrator(run_config)
        summary = orchestrator.run()
    """

    def __init__(
        self,
        run_config: RunConfig,
        topology: TopologyView | None = None,
        local: ExecutionTarget | None = None,
        executor_for: Callable[[str], ExecutionTarget] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.run_config = run_config
        self.settings = run_config.settings
        self.dry_run = run_config.dry_run
        self.local = local or LocalExecutionTarget(run_config.hostname, timeout=self.settings.command_timeout)
        self.topology = topology or CmshTopologyView(self.local, self.settings)
        self._executor_for = executor_for or (lambda host: target_for_host(host, run_config))

        resolver = PathResolver(self.settings.images_prefix)
        self.backups = BackupStore(clock)
        self.mutator = ConfigMutator(resolver, self.backups, dry_run=self.dry_run)
        self.rollback = RollbackEngine(resolver, self.backups)
        self.validator = StateValidator(resolver)
        self.functional = FunctionalValidator(
            run_config, self.topology, self.executor_for, self.local, self.validator, sleep=sleep,
        )

    def executor_for(self, host: str) -> ExecutionTarget:
        if host == self.run_config.hostname:
            return self.local
        return self._executor_for(host)

    # =========================================================================
    # Entry points
    # =========================================================================

    def discover(self) -> DiscoveryReport:
        return discover(self.run_config, self.topology, self.local)

    def run(self) -> RunSummary:
        """
        Execute the configured mode.

        Raises:
            PreconditionError: root privilege, SASL2 capability or run lock missing
        """
        mode = self.run_config.mode
        self.check_privilege()

        summary = RunSummary(mode=mode)
        if not mode.mutates:
            self._dispatch(summary)
            return summary

        lock = FileLock(self.settings.lock_path, timeout=self.settings.lock_timeout)
        try:
            lock.acquire()
        except Timeout as e:
            raise PreconditionError(
                PreconditionError.RUN_LOCK,
                f"Another ldapbind run holds the lock {self.settings.lock_path}",
                hints=["Wait for the other run to finish and try again"],
            ) from e
        try:
            self._dispatch(summary)
        finally:
            lock.release()
        return summary

    def _dispatch(self, summary: RunSummary) -> None:
        mode = summary.mode
        if mode in (RunMode.WRITE, RunMode.DRY_RUN):
            self.run_apply(summary)
        elif mode == RunMode.ROLLBACK:
            self.run_rollback(summary)
        elif mode == RunMode.ROLLBACK_VALIDATE:
            self.run_rollback_validate(summary)
        elif mode == RunMode.VALIDATE:
            self.run_validate(summary)
        else:
            raise ValueError(f"{mode.value} does not produce a run summary")

    # =========================================================================
    # Preconditions
    # =========================================================================

    def check_privilege(self) -> None:
        mode = self.run_config.mode
        if mode.requires_root and not self.run_config.is_root:
            raise PreconditionError(
                PreconditionError.ROOT_PRIVILEGE,
                f"{mode.value.capitalize()} mode must be run as root.",
                hints=[f"Please run: sudo ldapbind --{mode.value}"],
            )

    def check_capability(self, report: StageReport) -> None:
        """
        slapd must be linked against libsasl2 before bind authentication is enabled.

        Write aborts on a missing binary or missing SASL2. Dry-run only warns
        about a missing binary but still aborts when SASL2 is definitely absent,
        because the write would refuse to continue.
        """
        binary = self.settings.slapd_binary
        if self.dry_run and not self.local.is_file(binary):
            logger.warning("slapd binary not found at %s", binary)
            report.notes.append(f"slapd binary not found at {binary}; SASL2 support not checked")
            return

        supported, reason = sasl2_support(self.local, binary)
        if not supported:
            hints = [
                f"To verify SASL2 support, run: ldd {binary} | grep sasl2",
                "SASL2 support is available on RedHat and derivative systems",
            ]
            if self.dry_run:
                hints.insert(0, "The write mode would refuse to continue at this point.")
            raise PreconditionError(PreconditionError.SASL2_CAPABILITY, reason, hints=hints)

        logger.info("✓ %s", reason)
        report.notes.append(reason)

    # =========================================================================
    # Stage plumbing
    # =========================================================================

    def _stage(self, summary: RunSummary, name: str, func: Callable[[StageReport], None], title: str = "") -> StageReport:
        report = StageReport(name=name, title=title or STAGE_TITLES.get(name, name))
        summary.stages.append(report)
        logger.info("")
        logger.info("Step %d: %s", len(summary.stages), report.title)
        try:
            func(report)
        except PreconditionError:
            raise
        except LdapBindError as e:
            logger.error("%s", e)
            report.errors.append(str(e))
        return report

    def _control_plane_nodes(self) -> list[str]:
        return self.topology.control_plane_nodes()

    def _restart(self, report: StageReport, executor: ExecutionTarget, service: str) -> None:
        if self.dry_run:
            logger.info("[DRY-RUN] Would restart %s on %s", service, executor.host)
            report.notes.append(f"would restart {service} on {executor.host}")
            return
        result = ServiceManager(executor).restart_if_installed(service)
        if result is None:
            report.notes.append(f"{service} service not found on {executor.host}")
        elif result.ok:
            report.notes.append(f"restarted {service} on {executor.host}")
        else:
            report.notes.append(f"failed to restart {service} on {executor.host}")

    @staticmethod
    def _present(result: MutationResult | RevertResult) -> bool:
        """The file existed and was handled without error."""
        return result.outcome not in (
            MutationOutcome.SKIPPED_MISSING_FILE,
            MutationOutcome.FAILED,
            RevertOutcome.SKIPPED_MISSING_FILE,
            RevertOutcome.FAILED,
        )

    def _image_targets(self) -> list[Target]:
        images = self.topology.images()
        return [Target(TargetKind.LOCAL, self.local.host, image_root=image.path) for image in images]

    def _subsystem_in_use(self, report: StageReport) -> bool:
        services = ServiceManager(self.local)
        broker = self.settings.broker_service
        if not services.exists(broker):
            logger.info("SSSD is not installed, skipping SSSD configuration")
            report.notes.append("SSSD is not installed")
            return False
        if not (services.is_active(broker) or services.is_enabled(broker)):
            logger.info("SSSD service is not active or enabled, skipping SSSD configuration")
            report.notes.append("SSSD is installed but neither active nor enabled")
            return False
        return True

    def _propagate(self, report: StageReport) -> None:
        """Push image content to UP compute nodes and restart the lookup daemon there."""
        compute = self.topology.compute_nodes()
        if not compute:
            logger.info("No compute nodes found - skipping imageupdate")
            report.notes.append("no compute nodes found")
            return
        logger.info("Found %d compute node(s)", len(compute))

        up = self.topology.up_compute_nodes()
        down = len(compute) - len(up)
        if not up:
            logger.info("No compute nodes currently UP - skipping imageupdate")
            report.notes.append("no compute nodes currently UP")
            report.follow_ups.append(
                "Compute nodes get the change when they are rebooted or powered on"
            )
            return
        if down:
            report.follow_ups.append(
                f"{down} compute node(s) not UP get the change at their next image application"
            )

        service = self.settings.lookup_service
        if self.dry_run:
            logger.info("[DRY-RUN] Would run imageupdate on %d UP compute node(s)", len(up))
            logger.info("[DRY-RUN] Would restart %s on UP compute nodes", service)
            report.notes.append(f"would push images to {len(up)} UP compute node(s)")
            report.notes.append(f"would restart {service} on UP compute nodes")
            return

        logger.info("Updating filesystem on %d running compute node(s) with imageupdate...", len(up))
        logger.info("This may take several minutes...")
        result = self.topology.image_update_up_nodes()
        for line in result.output.splitlines():
            logger.info("  %s", line)
        if not result.ok:
            detail = "timed out" if result.timed_out else f"exit {result.exit_code}"
            logger.warning("imageupdate completed with warnings (%s)", detail)
            report.errors.append(f"imageupdate failed: {detail}")
            report.follow_ups.append("Re-run the image update or reboot the affected compute nodes")
        else:
            report.notes.append(f"pushed images to {len(up)} UP compute node(s)")

        logger.info("Restarting %s service on compute nodes...", service)
        restart = self.topology.restart_service_on_up_nodes(service)
        for line in restart.output.splitlines():
            logger.info("  %s", line)
        if restart.ok:
            report.notes.append(f"restarted {service} on UP compute nodes")
        else:
            logger.warning("%s restart completed with warnings", service)
            report.notes.append(f"{service} restart on compute nodes reported problems")

    # =========================================================================
    # write / dry-run
    # =========================================================================

    def run_apply(self, summary: RunSummary) -> None:
        """Ensure every directive everywhere; dry-run reports instead of writing."""
        paths = self.settings.paths
        self._stage(summary, STAGE_CAPABILITY, self.check_capability)

        def control_plane(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Processing head node: %s", node)
                executor = self.executor_for(node)
                report.mutations.append(self.mutator.apply(executor, paths.ldap_conf, SASL_MECH_CLIENT))
                nslcd = self.mutator.apply(executor, paths.nslcd_conf, SASL_MECH_NSLCD)
                report.mutations.append(nslcd)
                if self._present(nslcd):
                    self._restart(report, executor, self.settings.lookup_service)

        def images(report: StageReport) -> None:
            targets = self._image_targets()
            if not targets:
                report.notes.append("no software images to configure")
                return
            for target in targets:
                logger.info("Processing software image: %s", target.image_root)
                for path, directive in ((paths.ldap_conf, SASL_MECH_CLIENT), (paths.nslcd_conf, SASL_MECH_NSLCD)):
                    report.mutations.append(
                        self.mutator.apply(self.local, target.path(path), directive, image_root=target.image_root)
                    )

        def subsystem(report: StageReport) -> None:
            if not self._subsystem_in_use(report):
                return
            result = self.mutator.apply(self.local, paths.sssd_conf, LDAP_SASL_MECH_SSSD)
            report.mutations.append(result)
            if result.outcome == MutationOutcome.APPLIED:
                self._restart(report, self.local, self.settings.broker_service)

        def service(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Processing head node: %s", node)
                executor = self.executor_for(node)
                results = self.mutator.apply_all(executor, paths.slapd_conf, [REQUIRE_AUTHC, TLS_VERIFY_CLIENT])
                report.mutations.extend(results)
                if all(self._present(r) for r in results):
                    self._restart(report, executor, self.settings.directory_service)

        self._stage(summary, STAGE_CONTROL_PLANE, control_plane)
        self._stage(summary, STAGE_IMAGES, images)
        self._stage(summary, STAGE_PROPAGATE, self._propagate)
        self._stage(summary, STAGE_SUBSYSTEM, subsystem)
        self._stage(summary, STAGE_SERVICE, service)
        self._collect_follow_ups(summary)

    # =========================================================================
    # rollback
    # =========================================================================

    def run_rollback(self, summary: RunSummary) -> None:
        """Restore every managed file from its backup, or strip our blocks."""
        paths = self.settings.paths

        def capability(report: StageReport) -> None:
            report.notes.append("not required for rollback")

        def control_plane(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Processing head node: %s", node)
                executor = self.executor_for(node)
                report.reverts.append(self.rollback.revert(executor, paths.ldap_conf, SASL_MECH_CLIENT))
                nslcd = self.rollback.revert(executor, paths.nslcd_conf, SASL_MECH_NSLCD)
                report.reverts.append(nslcd)
                if self._present(nslcd):
                    self._restart(report, executor, self.settings.lookup_service)

        def images(report: StageReport) -> None:
            targets = self._image_targets()
            if not targets:
                report.notes.append("no software images to restore")
                return
            for target in targets:
                logger.info("Processing software image: %s", target.image_root)
                for path, directive in ((paths.ldap_conf, SASL_MECH_CLIENT), (paths.nslcd_conf, SASL_MECH_NSLCD)):
                    report.reverts.append(
                        self.rollback.revert(self.local, target.path(path), directive, image_root=target.image_root)
                    )

        def subsystem(report: StageReport) -> None:
            if not self._subsystem_in_use(report):
                return
            result = self.rollback.revert(self.local, paths.sssd_conf, LDAP_SASL_MECH_SSSD)
            report.reverts.append(result)
            if result.outcome.changed:
                self._restart(report, self.local, self.settings.broker_service)

        def service(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Processing head node: %s", node)
                executor = self.executor_for(node)
                result = self.rollback.revert_file(
                    executor, paths.slapd_conf, [REQUIRE_AUTHC, TLS_VERIFY_CLIENT],
                )
                report.reverts.append(result)
                if self._present(result):
                    self._restart(report, executor, self.settings.directory_service)

        self._stage(summary, STAGE_CAPABILITY, capability)
        self._stage(summary, STAGE_CONTROL_PLANE, control_plane, "Restoring ldap.conf and nslcd.conf on head nodes")
        self._stage(summary, STAGE_IMAGES, images, "Restoring ldap.conf and nslcd.conf in software images")
        self._stage(summary, STAGE_PROPAGATE, self._propagate, "Pushing restored configuration to running compute nodes")
        self._stage(summary, STAGE_SUBSYSTEM, subsystem, "Restoring SSSD configuration")
        self._stage(summary, STAGE_SERVICE, service, "Restoring slapd.conf on head nodes")
        self._collect_follow_ups(summary)

    # =========================================================================
    # rollback-validate
    # =========================================================================

    def run_rollback_validate(self, summary: RunSummary) -> None:
        """Read-only check that no ldapbind edit is left anywhere."""
        paths = self.settings.paths
        checked: list[tuple[ExecutionTarget, str]] = []

        def control_plane(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Checking head node: %s", node)
                executor = self.executor_for(node)
                report.checks += self.validator.inspect(executor, paths.ldap_conf, [SASL_MECH_CLIENT])
                report.checks += self.validator.inspect(executor, paths.nslcd_conf, [SASL_MECH_NSLCD])
                checked.extend([(executor, paths.ldap_conf), (executor, paths.nslcd_conf)])

        def subsystem(report: StageReport) -> None:
            if not ServiceManager(self.local).exists(self.settings.broker_service):
                report.notes.append("SSSD is not installed")
                return
            report.checks += self.validator.inspect(self.local, paths.sssd_conf, [LDAP_SASL_MECH_SSSD])
            checked.append((self.local, paths.sssd_conf))

        def images(report: StageReport) -> None:
            targets = self._image_targets()
            if not targets:
                report.notes.append("no software images found")
                return
            for target in targets:
                logger.info("Checking software image: %s", target.image_root)
                for path, directive in ((paths.ldap_conf, SASL_MECH_CLIENT), (paths.nslcd_conf, SASL_MECH_NSLCD)):
                    report.checks += self.validator.inspect(
                        self.local, target.path(path), [directive],
                        image_root=target.image_root, subject=f"image {target.image_root}",
                    )
                    checked.append((self.local, target.path(path)))

        def compute(report: StageReport) -> None:
            if not self.topology.compute_nodes():
                report.notes.append("no compute nodes found")
                return
            up = self.topology.up_compute_nodes()
            if not up:
                logger.warning("No compute nodes are currently UP - skipping node checks")
                report.notes.append("no compute nodes currently UP")
                return
            for node in up:
                logger.info("Checking node: %s", node)
                executor = self.executor_for(node)
                report.checks += self.validator.inspect(executor, paths.nslcd_conf, [SASL_MECH_NSLCD])
                report.checks += self.validator.inspect(executor, paths.ldap_conf, [SASL_MECH_CLIENT])

        def service(report: StageReport) -> None:
            for node in self._control_plane_nodes():
                logger.info("Checking head node: %s", node)
                executor = self.executor_for(node)
                report.checks += self.validator.inspect(
                    executor, paths.slapd_conf, [REQUIRE_AUTHC, TLS_VERIFY_CLIENT],
                )
                checked.append((executor, paths.slapd_conf))

        def backups(report: StageReport) -> None:
            for executor, path in checked:
                try:
                    real_path = self.validator.resolver.resolve(executor, path)
                    records = self.backups.find_backups(executor, real_path)
                except LdapBindError as e:
                    report.notes.append(f"could not list backups of {path} on {executor.host}: {e}")
                    continue
                for record in records:
                    report.checks.append(ValidationCheck(
                        executor.host, record.backup_path, CheckStatus.INFO, "backup file kept",
                    ))

        self._stage(summary, STAGE_CONTROL_PLANE, control_plane, "Checking ldap.conf and nslcd.conf on head nodes")
        self._stage(summary, STAGE_SUBSYSTEM, subsystem, "Checking SSSD configuration")
        self._stage(summary, STAGE_IMAGES, images, "Checking software images")
        self._stage(summary, STAGE_FUNCTIONAL_COMPUTE, compute, "Checking running compute nodes")
        self._stage(summary, STAGE_SERVICE, service, "Checking slapd.conf on head nodes")
        self._stage(summary, STAGE_BACKUPS, backups, "Listing backup files")

        if any(c.failed for c in summary.checks):
            summary.follow_ups.append("Run 'ldapbind --rollback' to restore the original configuration")

    # =========================================================================
    # validate
    # =========================================================================

    def run_validate(self, summary: RunSummary) -> None:
        """Functional checks: lookups and binds really work."""
        nodes: list[str] = []

        def control_plane(report: StageReport) -> None:
            nodes.extend(self._control_plane_nodes())
            report.checks += self.functional.check_control_plane(nodes)

        def compute(report: StageReport) -> None:
            if not self.topology.compute_nodes():
                logger.info("No compute nodes found in cluster")
                report.notes.append("no compute nodes found")
                return
            up = [n for n in self.topology.up_compute_nodes() if n not in nodes]
            if not up:
                logger.warning("No compute nodes are currently UP - skipping node tests")
                report.notes.append("no compute nodes currently UP")
                return
            logger.info("Found %d UP compute node(s) to test", len(up))
            report.checks += self.functional.check_compute_nodes(up)

        def bind(report: StageReport) -> None:
            report.checks += self.functional.check_bind()

        def slapd(report: StageReport) -> None:
            report.checks += self.functional.check_directory_server()

        self._stage(summary, STAGE_FUNCTIONAL_CONTROL_PLANE, control_plane, "Validating LDAP on head nodes")
        self._stage(summary, STAGE_FUNCTIONAL_COMPUTE, compute, "Validating LDAP on compute nodes")
        self._stage(summary, STAGE_FUNCTIONAL_BIND, bind, "Validating bind credentials authentication")
        self._stage(summary, STAGE_FUNCTIONAL_SLAPD, slapd, "Verifying slapd configuration")

        if any(c.failed for c in summary.checks):
            summary.follow_ups += [
                "Service logs: journalctl -u nslcd -u slapd",
                "Configuration files in /etc and software images",
                "Network connectivity between nodes",
            ]

    # =========================================================================
    # Summary helpers
    # =========================================================================

    def _collect_follow_ups(self, summary: RunSummary) -> None:
        for stage in summary.stages:
            for item in stage.follow_ups:
                if item not in summary.follow_ups:
                    summary.follow_ups.append(item)

        for result in summary.reverts:
            for warning in result.warnings:
                summary.follow_ups.append(f"Verify manually: {warning}")
            if result.safety_copy:
                summary.follow_ups.append(f"Pre-rollback copy of {result.real_path}: {result.safety_copy}")

        failed_hosts = sorted({
            r.target.label for r in [*summary.mutations, *summary.reverts] if _failed_outcome(r.outcome)
        })
        if failed_hosts:
            summary.follow_ups.append(
                "Re-run after fixing: " + ", ".join(failed_hosts) + " (every step is safe to repeat)"
            )
