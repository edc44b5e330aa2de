"""
Configuration domain package.

This package contains the settings and run-configuration models.
"""

from .run_config import RunConfig
from .settings import EngineSettings, ManagedPaths, ValidationSettings

__all__ = [
    "EngineSettings",
    "ManagedPaths",
    "RunConfig",
    "ValidationSettings",
]
