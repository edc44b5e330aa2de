"""
Local execution target: direct filesystem and process calls.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from datetime import datetime
from typing import Sequence

from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import CommandResult
from .base import ENCODING, ENCODING_ERRORS, ExecutionTarget, decode_output, encode_input

logger = logging.getLogger(__name__)


class LocalExecutionTarget(ExecutionTarget):
    """Runs everything on the node executing the tool."""

    @property
    def is_local(self) -> bool:
        return True

    def run(
        self,
        args: Sequence[str],
        timeout: int | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        timeout = timeout or self.timeout
        started = datetime.now()
        logger.debug("[%s] run: %s", self.host, " ".join(args))
        try:
            payload = encode_input(input_text)
            proc = subprocess.run(
                list(args),
                input=payload,
                stdin=None if payload is not None else subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            return CommandResult("", 127, error=f"command not found: {args[0]}", started_at=started)
        except subprocess.TimeoutExpired:
            logger.warning("[%s] command timed out after %ds: %s", self.host, timeout, " ".join(args))
            return CommandResult("", -1, error=f"timed out after {timeout}s", timed_out=True, started_at=started)
        except UnicodeError as e:
            return CommandResult("", 1, error=f"cannot encode input: {e}", started_at=started)
        return CommandResult(
            decode_output(proc.stdout), proc.returncode, error=decode_output(proc.stderr), started_at=started,
        )

    def is_file(self, path: str) -> bool:
        return os.path.isfile(path)

    def is_symlink(self, path: str) -> bool:
        return os.path.islink(path)

    def readlink(self, path: str) -> str:
        try:
            return os.readlink(path)
        except OSError as e:
            raise ExecutionError(self.host, f"readlink {path}", str(e)) from e

    def realpath(self, path: str) -> str:
        return os.path.realpath(path)

    def read_text(self, path: str) -> str:
        # newline="" keeps CRLF files byte-exact
        try:
            with open(path, encoding=ENCODING, errors=ENCODING_ERRORS, newline="") as f:
                return f.read()
        except (OSError, UnicodeError) as e:
            raise ExecutionError(self.host, f"read {path}", str(e)) from e

    def write_text(self, path: str, content: str) -> None:
        try:
            with open(path, "w", encoding=ENCODING, errors=ENCODING_ERRORS, newline="") as f:
                f.write(content)
        except (OSError, UnicodeError) as e:
            raise ExecutionError(self.host, f"write {path}", str(e)) from e

    def copy_file(self, source: str, destination: str) -> None:
        try:
            shutil.copy2(source, destination)
        except OSError as e:
            raise ExecutionError(self.host, f"copy {source} -> {destination}", str(e)) from e

    def list_siblings(self, path: str, suffix_prefix: str) -> list[str]:
        directory, prefix = self._sibling_pattern(path, suffix_prefix)
        try:
            entries = os.listdir(directory)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ExecutionError(self.host, f"list {directory}", str(e)) from e
        return sorted(
            os.path.join(directory, name)
            for name in entries
            if name.startswith(prefix) and os.path.isfile(os.path.join(directory, name))
        )
