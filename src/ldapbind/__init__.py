"""
ldapbind - certificate-based LDAP authentication for Bright-style clusters.

Discovers control-plane nodes, software images and compute nodes, then adds
SASL EXTERNAL directives to the LDAP client, nslcd, slapd and (optionally)
SSSD configuration. Every edit is marked, backed up once and reversible.

Usage:
    # CLI (recommended)
    sudo ldapbind --write

    # Programmatic
    from ldapbind import Orchestrator, RunConfig, RunMode

    summary = Orchestrator(RunConfig(mode=RunMode.DRY_RUN, hostname="head1")).run()
"""

__version__ = "0.1.0"

from ldapbind.application.orchestrator import Orchestrator
from ldapbind.domain.config import RunConfig
from ldapbind.domain.models import RunMode

__all__ = ["Orchestrator", "RunConfig", "RunMode", "__version__"]
