"""
Path resolution for managed configuration files.

Images are alternate root filesystems staged on the control-plane node. A
symlink inside an image that points at ``/etc/...`` means the image's own
``/etc``, so absolute link targets are re-rooted onto the image root. Outside
an image the host's normal resolution applies.
"""

from __future__ import annotations

import logging
import posixpath

from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import ConfigFile
from ldapbind.infrastructure.execution import ExecutionTarget

logger = logging.getLogger(__name__)

# Same limit the kernel applies to symlink chains.
MAX_LINK_HOPS = 40


class PathResolver:
    """Resolves a nominal config path to the file that must actually be edited."""

    def __init__(self, images_prefix: str = "/cm/images"):
        self.images_prefix = images_prefix.rstrip("/")

    def image_root_for(self, path: str) -> str | None:
        """
        Image root containing ``path``, or None for host paths.

        ``<prefix>/<image>/etc/x`` -> ``<prefix>/<image>``
        """
        head = self.images_prefix + "/"
        if not path.startswith(head):
            return None
        name = path[len(head):].split("/", 1)[0]
        if not name:
            return None
        return head + name

    def resolve(self, executor: ExecutionTarget, path: str, image_root: str | None = None) -> str:
        """
        Real path behind ``path``.

        Args:
            executor: Target the path lives on
            path: Nominal path
            image_root: Root of the image tree; inferred from the images prefix when omitted

        Returns:
            ``path`` itself when it is not a symlink, otherwise the resolved file.
            The result may not exist; callers treat that as a missing file.
        """
        if not executor.is_symlink(path):
            return path

        root = image_root or self.image_root_for(path)
        if root is None:
            real = executor.realpath(path)
            logger.info("  %s is a symlink, using actual file: %s", path, real)
            return real

        current = path
        for _ in range(MAX_LINK_HOPS):
            if not executor.is_symlink(current):
                logger.info("  %s is a symlink, using actual file: %s", path, current)
                return current
            link = executor.readlink(current)
            if link.startswith("/"):
                current = root.rstrip("/") + posixpath.normpath(link)
            else:
                current = posixpath.normpath(posixpath.join(posixpath.dirname(current), link))
        raise ExecutionError(executor.host, f"resolve {path}", "too many levels of symbolic links")

    def config_file(self, executor: ExecutionTarget, path: str, image_root: str | None = None) -> ConfigFile:
        return ConfigFile(path=path, real_path=self.resolve(executor, path, image_root))
