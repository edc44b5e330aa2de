"""
Execution target abstraction.

Every file check, read, backup and edit goes through an ExecutionTarget so the
same business logic runs on this node and on any other node without branching
on "am I local".
"""

from __future__ import annotations

import logging
import posixpath
from abc import ABC, abstractmethod
from typing import Sequence

from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import CommandResult

logger = logging.getLogger(__name__)

# Undecodable bytes map to lone surrogates and back, so any file round-trips.
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


def decode_output(data: bytes | None) -> str:
    return (data or b"").decode(ENCODING, ENCODING_ERRORS)


def encode_input(text: str | None) -> bytes | None:
    return None if text is None else text.encode(ENCODING, ENCODING_ERRORS)


class ExecutionTarget(ABC):
    """
    Uniform capability for running commands and touching files on one host.

    Implementations:
        LocalExecutionTarget  - direct filesystem and process calls
        RemoteExecutionTarget - the same operations over ssh
    """

    def __init__(self, host: str, timeout: int = 60):
        self.host = host
        self.timeout = timeout

    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Whether operations hit this process's filesystem."""

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        timeout: int | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run a command and return its output and exit code. Never raises on non-zero exit."""

    @abstractmethod
    def is_file(self, path: str) -> bool:
        """True if path exists and is a regular file (symlinks followed)."""

    @abstractmethod
    def is_symlink(self, path: str) -> bool:
        """True if path itself is a symbolic link."""

    @abstractmethod
    def readlink(self, path: str) -> str:
        """Raw link target, exactly as stored."""

    @abstractmethod
    def realpath(self, path: str) -> str:
        """Host-rooted canonical path."""

    @abstractmethod
    def read_text(self, path: str) -> str:
        """File content."""

    @abstractmethod
    def write_text(self, path: str, content: str) -> None:
        """Replace file content, keeping the file's ownership and mode."""

    @abstractmethod
    def copy_file(self, source: str, destination: str) -> None:
        """Copy a file byte-for-byte, preserving mode and timestamps."""

    @abstractmethod
    def list_siblings(self, path: str, suffix_prefix: str) -> list[str]:
        """
        Regular files next to ``path`` named ``<basename><suffix_prefix>*``.

        Returns:
            Full paths sorted lexicographically
        """

    def check(self, args: Sequence[str], timeout: int | None = None) -> CommandResult:
        """Run a command and raise ExecutionError on failure."""
        result = self.run(args, timeout=timeout)
        if not result.ok:
            detail = "timed out" if result.timed_out else (result.error or result.output).strip()
            raise ExecutionError(self.host, " ".join(args), detail or f"exit {result.exit_code}", result.exit_code)
        return result

    @staticmethod
    def _sibling_pattern(path: str, suffix_prefix: str) -> tuple[str, str]:
        return posixpath.dirname(path) or "/", posixpath.basename(path) + suffix_prefix

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.host!r})"
