"""
State validator: is a file back in its pre-ldapbind state?

Pristine means neither an ours-classified directive nor a stray marker line
remains. Foreign directives are fine; they were there before us.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ldapbind.domain.directives import Directive, classify, has_marker
from ldapbind.domain.errors import ExecutionError
from ldapbind.domain.models import CheckStatus, Classification, ValidationCheck
from ldapbind.infrastructure.execution import ExecutionTarget
from ldapbind.infrastructure.path_resolver import PathResolver

logger = logging.getLogger(__name__)


def content_is_pristine(content: str, directive: Directive) -> bool:
    return classify(content, directive) != Classification.OURS and not has_marker(content, directive)


class StateValidator:
    """Read-only inspection of managed files."""

    def __init__(self, resolver: PathResolver):
        self.resolver = resolver

    def read(self, executor: ExecutionTarget, path: str, image_root: str | None = None) -> str | None:
        """Content behind ``path``, or None when the file does not exist."""
        real_path = self.resolver.resolve(executor, path, image_root)
        if not executor.is_file(real_path):
            return None
        return executor.read_text(real_path)

    def is_pristine(
        self,
        executor: ExecutionTarget,
        path: str,
        directive: Directive,
        image_root: str | None = None,
    ) -> bool:
        """A missing file holds nothing of ours, so it counts as pristine."""
        content = self.read(executor, path, image_root)
        return content is None or content_is_pristine(content, directive)

    def inspect(
        self,
        executor: ExecutionTarget,
        path: str,
        directives: Iterable[Directive],
        image_root: str | None = None,
        subject: str | None = None,
    ) -> list[ValidationCheck]:
        """
        One check per directive describing the file's state.

        Statuses:
            PASS - no trace of ldapbind
            FAIL - an ldapbind-added directive or marker is still there
            INFO - file missing, or directive present but not ours
            WARN - foreign value of a setting ldapbind may have replaced
        """
        directives = list(directives)
        subject = subject or (image_root or executor.host)
        try:
            content = self.read(executor, path, image_root)
        except ExecutionError as e:
            logger.error("Could not inspect %s on %s: %s", path, executor.host, e.detail)
            return [ValidationCheck(subject, path, CheckStatus.FAIL, f"could not inspect: {e.detail}")]

        if content is None:
            return [ValidationCheck(subject, path, CheckStatus.INFO, "not found (skipping)")]

        checks = []
        for directive in directives:
            description = f"{path}: {directive.key}"
            classification = classify(content, directive)
            if classification == Classification.OURS or has_marker(content, directive):
                checks.append(ValidationCheck(
                    subject, description, CheckStatus.FAIL, "still has ldapbind-added line",
                ))
            elif classification == Classification.FOREIGN and directive.modifies_existing:
                checks.append(ValidationCheck(
                    subject, description, CheckStatus.WARN,
                    "present without marker; cannot tell whether this is the original value",
                ))
            elif classification == Classification.FOREIGN:
                checks.append(ValidationCheck(
                    subject, description, CheckStatus.INFO, "present but not added by ldapbind",
                ))
            else:
                checks.append(ValidationCheck(subject, description, CheckStatus.PASS, "in original state"))
        return checks

    def is_configured(
        self,
        executor: ExecutionTarget,
        path: str,
        directive: Directive,
        image_root: str | None = None,
    ) -> bool:
        """True when the directive is present, whoever added it."""
        content = self.read(executor, path, image_root)
        return content is not None and classify(content, directive) != Classification.ABSENT
