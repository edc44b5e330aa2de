"""
SSH-based remote execution target.

Each operation is a single remote command. File content is streamed through
stdin so nothing needs quoting beyond the path.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from datetime import datetime
from typing import Sequence

from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import CommandResult
from .base import ExecutionTarget, decode_output, encode_input

logger = logging.getLogger(__name__)

# ssh reserves 255 for its own failures (unreachable host, auth refused)
SSH_TRANSPORT_ERROR = 255


class RemoteExecutionTarget(ExecutionTarget):
    """Runs operations on another node through ssh."""

    def __init__(self, host: str, timeout: int = 60, ssh_options: Sequence[str] | None = None):
        super().__init__(host, timeout)
        self.ssh_options = list(ssh_options or [])

    @property
    def is_local(self) -> bool:
        return False

    def build_command(self, args: Sequence[str], with_stdin: bool = False) -> list[str]:
        """Full local argv for running ``args`` on the remote host."""
        cmd = ["ssh"]
        if not with_stdin:
            cmd.append("-n")
        cmd.extend(self.ssh_options)
        cmd.append(self.host)
        cmd.append(shlex.join(args))
        return cmd

    def run(
        self,
        args: Sequence[str],
        timeout: int | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        timeout = timeout or self.timeout
        cmd = self.build_command(args, with_stdin=input_text is not None)
        started = datetime.now()
        logger.debug("[%s] ssh: %s", self.host, cmd[-1])
        try:
            payload = encode_input(input_text)
            proc = subprocess.run(
                cmd,
                input=payload,
                stdin=None if payload is not None else subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            return CommandResult("", 127, error="ssh client not found", started_at=started)
        except subprocess.TimeoutExpired:
            logger.warning("[%s] remote command timed out after %ds: %s", self.host, timeout, cmd[-1])
            return CommandResult("", -1, error=f"timed out after {timeout}s", timed_out=True, started_at=started)
        except UnicodeError as e:
            return CommandResult("", 1, error=f"cannot encode input: {e}", started_at=started)
        return CommandResult(
            decode_output(proc.stdout), proc.returncode, error=decode_output(proc.stderr), started_at=started,
        )

    def _test(self, flag: str, path: str) -> bool:
        result = self.run(["test", flag, path])
        if result.timed_out or result.exit_code in (SSH_TRANSPORT_ERROR, 127):
            raise ExecutionError(self.host, f"test {flag} {path}", result.error.strip() or "ssh failed", result.exit_code)
        return result.exit_code == 0

    def is_file(self, path: str) -> bool:
        return self._test("-f", path)

    def is_symlink(self, path: str) -> bool:
        return self._test("-L", path)

    def readlink(self, path: str) -> str:
        return self.check(["readlink", path]).output.strip()

    def realpath(self, path: str) -> str:
        # -m: a dangling chain still canonicalizes, like os.path.realpath
        return self.check(["readlink", "-m", path]).output.strip()

    def read_text(self, path: str) -> str:
        return self.check(["cat", path]).output

    def write_text(self, path: str, content: str) -> None:
        # Truncate-and-write keeps the inode, so ownership and mode survive.
        result = self.run(["sh", "-c", 'cat > "$1"', "sh", path], input_text=content)
        if not result.ok:
            raise ExecutionError(self.host, f"write {path}", result.error.strip() or "write failed", result.exit_code)

    def copy_file(self, source: str, destination: str) -> None:
        self.check(["cp", "-p", source, destination])

    def list_siblings(self, path: str, suffix_prefix: str) -> list[str]:
        directory, prefix = self._sibling_pattern(path, suffix_prefix)
        result = self.run(["find", directory, "-maxdepth", "1", "-type", "f", "-name", prefix + "*"])
        if result.timed_out or result.exit_code == SSH_TRANSPORT_ERROR:
            raise ExecutionError(self.host, f"list {directory}", result.error.strip() or "ssh failed", result.exit_code)
        return sorted(line.strip() for line in result.output.splitlines() if line.strip())
