"""
Run configuration domain model.

One immutable value per invocation carrying mode, privilege level and
settings. Every component receives it explicitly.
"""

from pydantic import BaseModel, ConfigDict, Field

from ldapbind.domain.models import RunMode
from .settings import EngineSettings


class RunConfig(BaseModel):
    """Explicit, frozen configuration of a single run."""

    model_config = ConfigDict(frozen=True)

    mode: RunMode = Field(..., description="Selected operating mode")
    is_root: bool = Field(False, description="Whether the process runs with root privilege")
    hostname: str = Field(..., description="Short host name of the node running the tool")
    settings: EngineSettings = Field(default_factory=EngineSettings)

    @property
    def dry_run(self) -> bool:
        """Only write and rollback may touch files."""
        return not self.mode.mutates
