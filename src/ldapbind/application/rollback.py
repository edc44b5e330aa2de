"""
Rollback engine.

Reverses ldapbind's edits on one file:

    backup present -> copy it back byte-for-byte           (restored)
    marker present -> safety copy, strip marker blocks     (stripped)
    neither        -> nothing to do                        (no-backup-no-marker)

Backups are never deleted; a later write run finds them again and keeps
treating them as the pristine copy.

Known limitation: when a directive replaced an existing value (see
``Directive.modifies_existing``) stripping cannot bring the old value back,
so the setting is left unset and a warning is reported.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ldapbind.domain.directives import Directive, has_marker
from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import RevertOutcome, RevertResult, Target, TargetKind
from ldapbind.infrastructure.backup_store import BackupStore
from ldapbind.infrastructure.execution import ExecutionTarget
from ldapbind.infrastructure.path_resolver import PathResolver

logger = logging.getLogger(__name__)


def strip_block(content: str, directive: Directive) -> str:
    """
    Remove every marker block of ``directive`` from ``content``.

    A block runs from the marker line through the first following line that
    matches the directive. A marker with no directive after it loses only the
    marker line. Everything else is left byte-for-byte.
    """
    lines = content.splitlines(keepends=True)
    kept: list[str] = []
    i = 0
    while i < len(lines):
        if not directive.is_marker(lines[i]):
            kept.append(lines[i])
            i += 1
            continue
        j = i + 1
        while j < len(lines) and not directive.matches(lines[j].rstrip("\r\n")):
            j += 1
        i = j + 1 if j < len(lines) else i + 1
    return "".join(kept)


class RollbackEngine:
    """Restores or strips managed files, one file at a time."""

    def __init__(self, resolver: PathResolver, backups: BackupStore):
        self.resolver = resolver
        self.backups = backups

    def revert(
        self,
        executor: ExecutionTarget,
        path: str,
        directive: Directive,
        image_root: str | None = None,
    ) -> RevertResult:
        return self.revert_file(executor, path, [directive], image_root)

    def revert_file(
        self,
        executor: ExecutionTarget,
        path: str,
        directives: Iterable[Directive],
        image_root: str | None = None,
    ) -> RevertResult:
        """
        Undo ldapbind's edits of ``directives`` in one file.

        The backup, when one exists, is restored once for the whole file.
        Otherwise all the directives' marker blocks are stripped after a
        single safety copy.
        """
        directives = list(directives)
        kind = TargetKind.LOCAL if executor.is_local else TargetKind.REMOTE
        result = RevertResult(
            target=Target(kind=kind, host=executor.host, image_root=image_root),
            path=path,
            outcome=RevertOutcome.FAILED,
            directives=[d.key for d in directives],
        )
        where = "" if executor.is_local else f" on {executor.host}"

        try:
            real_path = self.resolver.resolve(executor, path, image_root)
            result.real_path = real_path

            if not executor.is_file(real_path):
                logger.warning("File not found: %s%s - skipping", real_path, where)
                result.outcome = RevertOutcome.SKIPPED_MISSING_FILE
                result.message = "file not found"
                return result

            backup = self.backups.latest_or_only(executor, real_path)
            if backup is not None:
                logger.info("Restoring %s%s from backup %s", real_path, where, backup.backup_path)
                executor.copy_file(backup.backup_path, real_path)
                logger.info("✓ Restored from backup")
                result.outcome = RevertOutcome.RESTORED
                result.backup_path = backup.backup_path
                result.message = "restored from backup"
                return result

            content = executor.read_text(real_path)
            present = [d for d in directives if has_marker(content, d)]
            if not present:
                logger.info("No backup and no ldapbind changes in %s%s", real_path, where)
                result.outcome = RevertOutcome.NO_BACKUP_NO_MARKER
                result.message = "nothing to revert"
                return result

            logger.warning("No backup found for %s%s, removing marked lines", real_path, where)
            stripped = content
            for directive in present:
                stripped = strip_block(stripped, directive)
                if directive.modifies_existing:
                    warning = (
                        f"Cannot determine the original value of {directive.line.split()[0]} "
                        f"in {real_path}; the setting is now unset"
                    )
                    logger.warning(warning)
                    result.warnings.append(warning)

            result.safety_copy = self.backups.create_safety_copy(executor, real_path)
            executor.write_text(real_path, stripped)
            logger.info("✓ Removed %s from %s%s", ", ".join(d.key for d in present), real_path, where)
            result.outcome = RevertOutcome.STRIPPED
            result.message = "marked lines removed"
            return result

        except ExecutionError as e:
            logger.error("Failed to roll back %s%s: %s", path, where, e.detail)
            result.outcome = RevertOutcome.FAILED
            result.message = e.detail
            return result
