"""
Error taxonomy for ldapbind.

Fatal preconditions abort a run before anything is touched. Execution errors are
per-target and are converted to ``failed`` outcomes at the target boundary by the
application layer, so one host or image never blocks another.
"""

from __future__ import annotations


class LdapBindError(Exception):
    """Base class for all ldapbind errors."""


class PreconditionError(LdapBindError):
    """A named hard precondition failed; the run must abort with no mutation."""

    ROOT_PRIVILEGE = "root-privilege"
    SASL2_CAPABILITY = "sasl2-capability"
    RUN_LOCK = "run-lock"

    def __init__(self, precondition: str, message: str, hints: list[str] | None = None):
        super().__init__(message)
        self.precondition = precondition
        self.hints = hints or []


class ExecutionError(LdapBindError):
    """A file or command operation on an execution target failed."""

    def __init__(self, host: str, operation: str, detail: str, exit_code: int | None = None):
        super().__init__(f"{operation} failed on {host}: {detail}")
        self.host = host
        self.operation = operation
        self.detail = detail
        self.exit_code = exit_code


class TopologyError(LdapBindError):
    """The cluster topology could not be queried or is unusable."""
