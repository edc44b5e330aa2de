"""
Config mutator.

Applies one directive to one file exactly once:

    resolve path -> missing?          skipped-missing-file
    classify     -> ours or foreign?  already-present (never rewritten)
    place block  -> no anchor?        skipped-no-anchor
    backup (first time only) -> write -> applied

Errors on one file are turned into a ``failed`` outcome here so the caller
can move on to the next target.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ldapbind.domain.directives import AnchorPosition, Directive, classify
from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import (
    Classification,
    MutationOutcome,
    MutationResult,
    Target,
    TargetKind,
)
from ldapbind.infrastructure.backup_store import BackupStore
from ldapbind.infrastructure.execution import ExecutionTarget
from ldapbind.infrastructure.path_resolver import PathResolver

logger = logging.getLogger(__name__)


def insert_block(content: str, directive: Directive) -> str | None:
    """
    Return ``content`` with the marker and directive placed per the directive's rules.

    Order of preference: replace an existing value of the setting, place next
    to the anchor, append at the end. Returns None when the anchor is required
    and missing. Untouched lines keep their own line endings; new lines use
    CRLF when the file already does.
    """
    newline = "\r\n" if "\r\n" in content else "\n"
    lines = content.splitlines(keepends=True)
    if lines and not lines[-1].endswith(("\n", "\r")):
        lines[-1] += newline
    block = [directive.marker + newline, directive.line + newline]

    if directive.setting is not None:
        for index, line in enumerate(lines):
            if directive.matches_setting(line.rstrip("\r\n")):
                return "".join(lines[:index] + block + lines[index + 1:])

    if directive.anchor is not None:
        for index, line in enumerate(lines):
            if not directive.matches_anchor(line.rstrip("\r\n")):
                continue
            if directive.anchor_position == AnchorPosition.BEFORE:
                return "".join(lines[:index] + block + [newline] + lines[index:])
            return "".join(lines[:index + 1] + block + lines[index + 1:])
        if directive.anchor_required:
            return None

    return "".join(lines) + newline + "".join(block)


class ConfigMutator:
    """Idempotent, backup-first application of catalog directives."""

    def __init__(self, resolver: PathResolver, backups: BackupStore, dry_run: bool = False):
        self.resolver = resolver
        self.backups = backups
        self.dry_run = dry_run

    @staticmethod
    def _target(executor: ExecutionTarget, image_root: str | None) -> Target:
        kind = TargetKind.LOCAL if executor.is_local else TargetKind.REMOTE
        return Target(kind=kind, host=executor.host, image_root=image_root)

    def apply(
        self,
        executor: ExecutionTarget,
        path: str,
        directive: Directive,
        image_root: str | None = None,
    ) -> MutationResult:
        """
        Ensure ``directive`` is present in the file at ``path``.

        Args:
            executor: Target the file lives on
            path: Nominal path (already inside the image tree for image targets)
            directive: Catalog entry to ensure
            image_root: Image root for symlink re-rooting

        Returns:
            MutationResult; never raises for per-file problems
        """
        result = MutationResult(
            target=self._target(executor, image_root),
            path=path,
            directive=directive.key,
            outcome=MutationOutcome.FAILED,
            dry_run=self.dry_run,
        )
        where = "" if executor.is_local else f" on {executor.host}"

        try:
            real_path = self.resolver.resolve(executor, path, image_root)
            result.real_path = real_path

            if not executor.is_file(real_path):
                logger.warning("File not found: %s%s - skipping", real_path, where)
                result.outcome = MutationOutcome.SKIPPED_MISSING_FILE
                result.message = "file not found"
                return result

            content = executor.read_text(real_path)
            classification = classify(content, directive)
            result.classification = classification

            if classification == Classification.OURS:
                logger.info("✓ %s already present in %s%s", directive.key, real_path, where)
                result.outcome = MutationOutcome.ALREADY_PRESENT
                result.message = "already present"
                return result
            if classification == Classification.FOREIGN:
                logger.info(
                    "✓ %s already present in %s%s (pre-existing, not added by ldapbind)",
                    directive.key, real_path, where,
                )
                result.outcome = MutationOutcome.ALREADY_PRESENT
                result.message = "already present (pre-existing)"
                return result

            updated = insert_block(content, directive)
            if updated is None:
                logger.warning(
                    "Anchor for %s not found in %s%s; skipping", directive.key, real_path, where,
                )
                result.outcome = MutationOutcome.SKIPPED_NO_ANCHOR
                result.message = "anchor line not found"
                return result

            if self.dry_run:
                return self._plan(executor, result, directive, real_path, where)

            logger.info("Adding '%s' to %s%s", directive.line, real_path, where)
            record, created = self.backups.ensure_backup(executor, real_path)
            result.backup_path = record.backup_path
            result.backup_created = created
            executor.write_text(real_path, updated)
            result.outcome = MutationOutcome.APPLIED
            result.message = "added"
            return result

        except ExecutionError as e:
            logger.error("Failed to update %s%s: %s", path, where, e.detail)
            result.outcome = MutationOutcome.FAILED
            result.message = e.detail
            return result

    def _plan(
        self,
        executor: ExecutionTarget,
        result: MutationResult,
        directive: Directive,
        real_path: str,
        where: str,
    ) -> MutationResult:
        logger.info("[DRY-RUN] Would add '%s' to %s%s", directive.line, real_path, where)
        existing = self.backups.latest_or_only(executor, real_path)
        if existing is not None:
            logger.info("[DRY-RUN]   Backup already exists, would be preserved: %s", existing.backup_path)
            result.backup_path = existing.backup_path
        else:
            planned = self.backups.planned_backup_path(real_path)
            logger.info("[DRY-RUN]   Would create backup: %s", planned)
            result.backup_path = planned
            result.backup_created = True
        result.outcome = MutationOutcome.APPLIED
        result.message = "would add"
        return result

    def apply_all(
        self,
        executor: ExecutionTarget,
        path: str,
        directives: Iterable[Directive],
        image_root: str | None = None,
    ) -> list[MutationResult]:
        """Apply several directives to the same file, in order."""
        return [self.apply(executor, path, d, image_root) for d in directives]
