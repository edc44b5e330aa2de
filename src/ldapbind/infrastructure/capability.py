"""
Privilege and capability probes for the two hard preconditions.
"""

from __future__ import annotations

import logging
import os

from ldapbind.infrastructure.execution import ExecutionTarget

logger = logging.getLogger(__name__)


def is_root() -> bool:
    """Check if the current process runs with root privileges."""
    try:
        return os.geteuid() == 0
    except AttributeError:
        logger.warning("Could not determine privilege level: geteuid not available")
        return False


def sasl2_support(executor: ExecutionTarget, slapd_binary: str) -> tuple[bool, str]:
    """
    Check that slapd is linked against libsasl2.

    Returns:
        (supported, reason) - reason explains a negative answer
    """
    if not executor.is_file(slapd_binary):
        return False, f"slapd binary not found at {slapd_binary}"

    result = executor.run(["ldd", slapd_binary])
    if not result.ok:
        return False, f"ldd {slapd_binary} failed: {(result.error or result.output).strip()}"
    if "libsasl2" in result.output:
        return True, "SASL2 support detected in slapd"
    return False, "The slapd binary does not have SASL2 support compiled in"
