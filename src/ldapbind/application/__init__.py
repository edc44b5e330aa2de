"""
Application layer package.

Mutation, rollback and validation services, sequenced by the orchestrator.
"""

from ldapbind.application.mutator import ConfigMutator
from ldapbind.application.orchestrator import Orchestrator
from ldapbind.application.rollback import RollbackEngine
from ldapbind.application.summary import RunSummary, StageReport
from ldapbind.application.validator import StateValidator

__all__ = [
    "ConfigMutator",
    "Orchestrator",
    "RollbackEngine",
    "RunSummary",
    "StageReport",
    "StateValidator",
]
