"""
Execution targets: the uniform local/remote capability used by every component.
"""

from ldapbind.domain.config import RunConfig
from .base import ExecutionTarget
from .local import LocalExecutionTarget
from .remote import RemoteExecutionTarget


def target_for_host(host: str, run_config: RunConfig) -> ExecutionTarget:
    """Local target for this node, ssh target for any other."""
    settings = run_config.settings
    if host == run_config.hostname:
        return LocalExecutionTarget(host, timeout=settings.command_timeout)
    return RemoteExecutionTarget(host, timeout=settings.command_timeout, ssh_options=settings.ssh_options)


__all__ = [
    "ExecutionTarget",
    "LocalExecutionTarget",
    "RemoteExecutionTarget",
    "target_for_host",
]
