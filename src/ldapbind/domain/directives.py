"""
Marker protocol and directive catalog.

Every edit made by ldapbind is a (marker comment, directive line) pair written
next to each other. A directive preceded by its marker is ours; the same
directive without the marker was there before us and is foreign.

Architecture Note:
    - Pure domain logic - no I/O
    - classify() is the single source of truth for provenance; the mutator,
      rollback engine and validator all go through it
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from ldapbind.domain.models import Classification

MARKER_TAG = "(added by ldapbind)"


class FileRole(str, Enum):
    """Which managed file a directive belongs to."""
    CLIENT = "client"                      # OpenLDAP client ldap.conf
    LOOKUP_DAEMON = "lookup-daemon"        # nslcd.conf
    DIRECTORY_SERVER = "directory-server"  # slapd.conf
    IDENTITY_BROKER = "identity-broker"    # sssd.conf


class AnchorPosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class Directive:
    """
    A line the engine is responsible for ensuring is present.

    Attributes:
        key: Short name used in logs and reports
        role: File role the directive is applied to
        line: Exact line written by the engine
        marker: Comment written immediately above ``line``
        match: Regex identifying the directive when scanning a file
        setting: Regex for any value of a single-valued setting. When set, an
            existing value is replaced rather than a second line added.
        anchor: Regex for the line the block is placed next to
        anchor_position: Place the block before or after the anchor
        anchor_required: Skip the file when the anchor is missing instead of appending
    """
    key: str
    role: FileRole
    line: str
    marker: str
    match: str
    setting: str | None = None
    anchor: str | None = None
    anchor_position: AnchorPosition = AnchorPosition.AFTER
    anchor_required: bool = False

    @property
    def modifies_existing(self) -> bool:
        """True when applying may overwrite a pre-existing value."""
        return self.setting is not None

    def matches(self, line: str) -> bool:
        return re.match(self.match, line) is not None

    def matches_setting(self, line: str) -> bool:
        return self.setting is not None and re.match(self.setting, line) is not None

    def matches_anchor(self, line: str) -> bool:
        return self.anchor is not None and re.match(self.anchor, line) is not None

    def is_marker(self, line: str) -> bool:
        return line.strip() == self.marker


# ============================================================================
# Catalog
# ============================================================================

SASL_MECH_CLIENT = Directive(
    key="SASL_MECH external",
    role=FileRole.CLIENT,
    line="SASL_MECH external",
    marker=f"# Force external authentication by default {MARKER_TAG}",
    match=r"^SASL_MECH\s+external\b",
)

SASL_MECH_NSLCD = Directive(
    key="sasl_mech external",
    role=FileRole.LOOKUP_DAEMON,
    line="sasl_mech external",
    marker=f"# Use certificate as auth {MARKER_TAG}",
    match=r"^sasl_mech\s+external\b",
)

REQUIRE_AUTHC = Directive(
    key="require authc",
    role=FileRole.DIRECTORY_SERVER,
    line="require authc",
    marker=f"# Require authentication {MARKER_TAG}",
    match=r"^require\s+authc\s*$",
    anchor=r"^access to\b",
    anchor_position=AnchorPosition.BEFORE,
)

TLS_VERIFY_CLIENT = Directive(
    key="TLSVerifyClient try",
    role=FileRole.DIRECTORY_SERVER,
    line="TLSVerifyClient try",
    marker=f"# Verify client certificates when offered {MARKER_TAG}",
    match=r"^TLSVerifyClient\s+try\s*$",
    setting=r"^TLSVerifyClient\b",
    anchor=r"^TLSCertificateFile\b",
    anchor_position=AnchorPosition.AFTER,
)

# Any explicit ldap_sasl_mech counts as configured; an admin's own choice is left alone.
LDAP_SASL_MECH_SSSD = Directive(
    key="ldap_sasl_mech = EXTERNAL",
    role=FileRole.IDENTITY_BROKER,
    line="ldap_sasl_mech = EXTERNAL",
    marker=f"# Use certificate as auth {MARKER_TAG}",
    match=r"^\s*ldap_sasl_mech\s*=",
    anchor=r"^\s*ldap_uri\s*=",
    anchor_position=AnchorPosition.AFTER,
    anchor_required=True,
)

CATALOG: tuple[Directive, ...] = (
    SASL_MECH_CLIENT,
    SASL_MECH_NSLCD,
    REQUIRE_AUTHC,
    TLS_VERIFY_CLIENT,
    LDAP_SASL_MECH_SSSD,
)


def directives_for(role: FileRole) -> tuple[Directive, ...]:
    """Directives managed in files of the given role, in application order."""
    return tuple(d for d in CATALOG if d.role == role)


# ============================================================================
# Classification
# ============================================================================

def _previous_non_blank(lines: list[str], index: int) -> str | None:
    j = index - 1
    while j >= 0:
        if lines[j].strip():
            return lines[j]
        j -= 1
    return None


def classify(content: str, directive: Directive) -> Classification:
    """
    Classify a directive's provenance inside file content.

    Returns:
        ABSENT if no line matches the directive, OURS if any matching line is
        immediately preceded (ignoring blank lines) by the directive's marker,
        FOREIGN otherwise.
    """
    lines = content.splitlines()
    found = False
    for index, line in enumerate(lines):
        if not directive.matches(line):
            continue
        found = True
        previous = _previous_non_blank(lines, index)
        if previous is not None and directive.is_marker(previous):
            return Classification.OURS
    return Classification.FOREIGN if found else Classification.ABSENT


def marker_lines(content: str, directive: Directive) -> list[int]:
    """Zero-based indexes of every line equal to the directive's marker."""
    return [i for i, line in enumerate(content.splitlines()) if directive.is_marker(line)]


def has_marker(content: str, directive: Directive) -> bool:
    return bool(marker_lines(content, directive))
