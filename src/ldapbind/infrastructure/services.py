"""
Service lifecycle through systemctl: probe and restart, report the result.
"""

from __future__ import annotations

import logging

from ldapbind.domain.models import CommandResult
from ldapbind.infrastructure.execution import ExecutionTarget

logger = logging.getLogger(__name__)


class ServiceManager:
    """systemd unit probes and restarts on one execution target."""

    def __init__(self, executor: ExecutionTarget):
        self.executor = executor

    def exists(self, service: str) -> bool:
        """True if a unit file for the service is installed."""
        return self.executor.run(["systemctl", "cat", f"{service}.service"]).ok

    def is_active(self, service: str) -> bool:
        return self.executor.run(["systemctl", "is-active", "--quiet", service]).ok

    def is_enabled(self, service: str) -> bool:
        return self.executor.run(["systemctl", "is-enabled", "--quiet", service]).ok

    def restart(self, service: str) -> CommandResult:
        logger.info("Restarting %s service on %s...", service, self.executor.host)
        result = self.executor.run(["systemctl", "restart", service])
        if result.ok:
            logger.info("✓ %s restarted on %s", service, self.executor.host)
        else:
            logger.warning(
                "Failed to restart %s service on %s: %s",
                service, self.executor.host, (result.error or result.output).strip() or f"exit {result.exit_code}",
            )
        return result

    def restart_if_installed(self, service: str) -> CommandResult | None:
        """Restart when the unit exists; None when it is not installed."""
        if not self.exists(service):
            logger.warning("%s service not found on %s", service, self.executor.host)
            return None
        return self.restart(service)
