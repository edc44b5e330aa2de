"""
Functional checks for validate mode.

Read-only apart from the temporary bind-test user, which is always removed
again, even when the bind itself fails.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ldapbind.domain.config import RunConfig
from ldapbind.domain.directives import REQUIRE_AUTHC, SASL_MECH_NSLCD, TLS_VERIFY_CLIENT
from ldapbind.domain.models import CheckStatus, ValidationCheck
from ldapbind.infrastructure.execution import ExecutionTarget
from ldapbind.infrastructure.services import ServiceManager
from ldapbind.infrastructure.topology import TopologyView

from .validator import StateValidator

logger = logging.getLogger(__name__)


def _check(subject: str, description: str, ok: bool, detail: str = "") -> ValidationCheck:
    status = CheckStatus.PASS if ok else CheckStatus.FAIL
    if ok:
        logger.info("  ✓ %s", description)
    else:
        logger.error("  ✗ %s%s", description, f": {detail}" if detail else "")
    return ValidationCheck(subject, description, status, detail)


class FunctionalValidator:
    """Checks that LDAP lookups and binds actually work after a write run."""

    def __init__(
        self,
        run_config: RunConfig,
        topology: TopologyView,
        executor_for: Callable[[str], ExecutionTarget],
        local: ExecutionTarget,
        validator: StateValidator,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.run_config = run_config
        self.settings = run_config.settings
        self.topology = topology
        self.executor_for = executor_for
        self.local = local
        self.validator = validator
        self.sleep = sleep

    def _lookup_checks(self, executor: ExecutionTarget) -> list[ValidationCheck]:
        user = self.settings.validation.lookup_user
        service = self.settings.lookup_service
        services = ServiceManager(executor)
        host = executor.host
        return [
            _check(host, f"{service} service is running", services.is_active(service)),
            _check(
                host, f"User lookup via {service} works (getent passwd {user})",
                executor.run(["getent", "passwd", user]).ok,
            ),
        ]

    def check_control_plane(self, nodes: list[str]) -> list[ValidationCheck]:
        """Lookup daemon, user lookup and certificate-based search on every control-plane node."""
        checks = []
        user = self.settings.validation.lookup_user
        for node in nodes:
            logger.info("Testing head node: %s", node)
            executor = self.executor_for(node)
            checks.extend(self._lookup_checks(executor))
            result = executor.run(["ldapsearch", f"uid={user}"])
            checks.append(_check(
                node, "Certificate-based LDAP search works (SASL EXTERNAL)", result.ok,
                (result.error or "").strip(),
            ))
        return checks

    def check_compute_nodes(self, nodes: list[str]) -> list[ValidationCheck]:
        """Lookup daemon state and its sasl_mech setting on every UP compute node."""
        checks = []
        path = self.settings.paths.nslcd_conf
        for node in nodes:
            logger.info("Testing node: %s", node)
            executor = self.executor_for(node)
            checks.extend(self._lookup_checks(executor))
            configured = self.validator.is_configured(executor, path, SASL_MECH_NSLCD)
            checks.append(_check(node, f"{path} has '{SASL_MECH_NSLCD.line}' configured", configured))
        return checks

    def check_bind(self) -> list[ValidationCheck]:
        """
        Simple bind with a temporary user's credentials.

        The user is created through the cluster manager, given time to reach
        the directory, used for one search, and removed.
        """
        cfg = self.settings.validation
        subject = self.local.host

        logger.info("Creating temporary test user: %s", cfg.test_user)
        created = self.topology.add_user(cfg.test_user, cfg.test_password)
        if not created.ok:
            return [_check(subject, "Create temporary test user", False, (created.error or created.output).strip())]

        checks = []
        try:
            self.sleep(cfg.sync_delay)
            bind_dn = f"uid={cfg.test_user},{cfg.base_dn}"
            logger.info("Testing bind authentication with ldapsearch...")
            result = self.local.run([
                "ldapsearch", "-x", "-D", bind_dn, "-w", cfg.test_password,
                "-H", cfg.ldap_uri, f"uid={cfg.lookup_user}",
            ])
            detail = "" if result.ok else (
                f"ldapsearch -x -D {bind_dn} -w <password> -H {cfg.ldap_uri} uid={cfg.lookup_user}"
            )
            checks.append(_check(subject, "Bind authentication works with user credentials", result.ok, detail))
        finally:
            logger.info("Removing test user: %s", cfg.test_user)
            removed = self.topology.remove_user(cfg.test_user)
            if removed.ok:
                logger.info("✓ Test user removed successfully")
            else:
                logger.warning(
                    "Failed to remove test user - run: cmsh -c 'user; remove %s; commit'", cfg.test_user,
                )
                checks.append(ValidationCheck(
                    subject, "Remove temporary test user", CheckStatus.WARN,
                    f"remove {cfg.test_user} manually",
                ))
        return checks

    def check_directory_server(self) -> list[ValidationCheck]:
        """Directory server directives and service on this node."""
        subject = self.local.host
        path = self.settings.paths.slapd_conf
        content = self.validator.read(self.local, path)
        if content is None:
            return [_check(subject, f"{path} exists", False, "not found")]

        checks = []
        for directive in (TLS_VERIFY_CLIENT, REQUIRE_AUTHC):
            present = self.validator.is_configured(self.local, path, directive)
            checks.append(_check(subject, f"'{directive.line}' is present", present))
        service = self.settings.directory_service
        checks.append(_check(
            subject, f"{service} service is running", ServiceManager(self.local).is_active(service),
        ))
        return checks
