"""
Backup store.

Backups live next to the original as ``<path>.backup.<YYYYMMDD_HHMMSS>``. At most
one is ever created per file: once a backup exists it is the pristine copy and
later runs leave it alone. Heuristic rollback writes safety copies named
``<path>.pre-rollback.<YYYYMMDD_HHMMSS>``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ldapbind.domain.models import BackupRecord
from ldapbind.infrastructure.execution import ExecutionTarget

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup."
SAFETY_SUFFIX = ".pre-rollback."
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class BackupStore:
    """Creates and finds backup copies of managed files."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def _timestamp(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    @staticmethod
    def backup_path(real_path: str, timestamp: str) -> str:
        return f"{real_path}{BACKUP_SUFFIX}{timestamp}"

    @staticmethod
    def _record(real_path: str, backup_path: str) -> BackupRecord:
        return BackupRecord(
            original_path=real_path,
            backup_path=backup_path,
            timestamp=backup_path[len(real_path) + len(BACKUP_SUFFIX):],
        )

    def find_backups(self, executor: ExecutionTarget, real_path: str) -> list[BackupRecord]:
        """All backups of ``real_path``, oldest first."""
        return [
            self._record(real_path, p)
            for p in executor.list_siblings(real_path, BACKUP_SUFFIX)
        ]

    def latest_or_only(self, executor: ExecutionTarget, real_path: str) -> BackupRecord | None:
        """
        The backup to restore from.

        There should be exactly one. If several exist (manual intervention) the
        first in lexicographic order, which is also the oldest, is the pristine one.
        """
        backups = self.find_backups(executor, real_path)
        if not backups:
            return None
        if len(backups) > 1:
            logger.warning(
                "%d backups found for %s on %s, using the oldest: %s",
                len(backups), real_path, executor.host, backups[0].backup_path,
            )
        return backups[0]

    def ensure_backup(self, executor: ExecutionTarget, real_path: str) -> tuple[BackupRecord, bool]:
        """
        Make sure a pristine backup of ``real_path`` exists.

        Returns:
            (record, created) - created is False when an existing backup was kept
        """
        existing = self.latest_or_only(executor, real_path)
        if existing is not None:
            logger.info("  Backup already exists, preserving original: %s", existing.backup_path)
            return existing, False

        timestamp = self._timestamp()
        destination = self.backup_path(real_path, timestamp)
        executor.copy_file(real_path, destination)
        logger.info("  Created backup of original file: %s", destination)
        return BackupRecord(real_path, destination, timestamp), True

    def planned_backup_path(self, real_path: str) -> str:
        """Name a backup would get if created now (dry-run reporting)."""
        return self.backup_path(real_path, "<timestamp>")

    def create_safety_copy(self, executor: ExecutionTarget, real_path: str) -> str:
        """Snapshot current content before a heuristic rollback."""
        destination = f"{real_path}{SAFETY_SUFFIX}{self._timestamp()}"
        executor.copy_file(real_path, destination)
        logger.info("  Saved current content to %s", destination)
        return destination

    def find_safety_copies(self, executor: ExecutionTarget, real_path: str) -> list[str]:
        return executor.list_siblings(real_path, SAFETY_SUFFIX)
