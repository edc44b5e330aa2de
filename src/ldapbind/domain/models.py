"""
Domain models for the configuration-mutation engine.

Contains the enums and value types shared by the mutator, rollback engine,
validator and orchestrator. Pure module: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# ============================================================================
# Enumerations
# ============================================================================

class RunMode(str, Enum):
    """Top-level operating mode selected on the command line."""
    DISCOVERY = "discovery"
    DRY_RUN = "dry-run"
    WRITE = "write"
    VALIDATE = "validate"
    ROLLBACK = "rollback"
    ROLLBACK_VALIDATE = "rollback-validate"

    @property
    def requires_root(self) -> bool:
        return self in (RunMode.WRITE, RunMode.VALIDATE, RunMode.ROLLBACK)

    @property
    def mutates(self) -> bool:
        return self in (RunMode.WRITE, RunMode.ROLLBACK)


class TargetKind(str, Enum):
    """Where a target's files live."""
    LOCAL = "local"
    REMOTE = "remote"


class Classification(str, Enum):
    """Provenance of a directive inside a file."""
    ABSENT = "absent"    # directive line not found
    OURS = "ours"        # directive preceded by our marker
    FOREIGN = "foreign"  # directive present without our marker


class MutationOutcome(str, Enum):
    """Result of ensuring one directive in one file."""
    ALREADY_PRESENT = "already-present"
    APPLIED = "applied"
    SKIPPED_MISSING_FILE = "skipped-missing-file"
    SKIPPED_NO_ANCHOR = "skipped-no-anchor"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self in (MutationOutcome.SKIPPED_MISSING_FILE, MutationOutcome.SKIPPED_NO_ANCHOR)


class RevertOutcome(str, Enum):
    """Result of reversing the engine's edits on one file."""
    RESTORED = "restored"
    STRIPPED = "stripped"
    NO_BACKUP_NO_MARKER = "no-backup-no-marker"
    SKIPPED_MISSING_FILE = "skipped-missing-file"
    FAILED = "failed"

    @property
    def changed(self) -> bool:
        return self in (RevertOutcome.RESTORED, RevertOutcome.STRIPPED)


class NodeStatus(str, Enum):
    """Reachability of a compute node as reported by the topology query."""
    UP = "UP"
    DOWN = "DOWN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_token(cls, token: str | None) -> NodeStatus:
        if token is None:
            return cls.UNKNOWN
        value = token.strip("[] ").upper()
        if value == "UP":
            return cls.UP
        if value == "DOWN":
            return cls.DOWN
        return cls.UNKNOWN


class CheckStatus(str, Enum):
    """Status of a single validation check."""
    PASS = "pass"
    FAIL = "fail"
    INFO = "info"
    WARN = "warn"


# ============================================================================
# Value types
# ============================================================================

@dataclass(frozen=True)
class Target:
    """
    An addressable location to mutate.

    Attributes:
        kind: LOCAL for this host (and image trees staged on it), REMOTE for another host
        host: Host name the target refers to
        image_root: Root of an image tree for image targets, None for a live host
    """
    kind: TargetKind
    host: str
    image_root: str | None = None

    @property
    def is_image(self) -> bool:
        return self.image_root is not None

    @property
    def label(self) -> str:
        if self.image_root:
            return f"image {self.image_root}"
        return self.host

    def path(self, nominal: str) -> str:
        """Map a host-absolute path into this target's tree."""
        if self.image_root:
            return self.image_root.rstrip("/") + "/" + nominal.lstrip("/")
        return nominal


@dataclass(frozen=True)
class ConfigFile:
    """A nominal path and the real file behind it."""
    path: str
    real_path: str

    @property
    def via_symlink(self) -> bool:
        return self.path != self.real_path


@dataclass(frozen=True)
class BackupRecord:
    """A backup copy living next to its original."""
    original_path: str
    backup_path: str
    timestamp: str


@dataclass
class MutationResult:
    """Outcome of one apply() call, with what the user needs to see."""
    target: Target
    path: str
    directive: str
    outcome: MutationOutcome
    real_path: str | None = None
    backup_path: str | None = None
    backup_created: bool = False
    classification: Classification | None = None
    dry_run: bool = False
    message: str = ""


@dataclass
class RevertResult:
    """Outcome of reversing edits on one file."""
    target: Target
    path: str
    outcome: RevertOutcome
    real_path: str | None = None
    backup_path: str | None = None
    safety_copy: str | None = None
    directives: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    message: str = ""


@dataclass
class ValidationCheck:
    """A single line of a validation report."""
    subject: str
    description: str
    status: CheckStatus
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status == CheckStatus.FAIL


@dataclass(frozen=True)
class CommandResult:
    """Output and exit code from a command on an execution target."""
    output: str
    exit_code: int
    error: str = ""
    timed_out: bool = False
    started_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out
