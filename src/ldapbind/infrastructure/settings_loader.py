"""
Settings loader.

Reads EngineSettings overrides from a JSON file. No file means defaults.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ldapbind.domain.config import EngineSettings

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Load and validate engine settings."""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Args:
            config_file: JSON file with overrides; None for built-in defaults
        """
        self.config_file = config_file

    def load_json_file(self) -> Dict[str, Any]:
        """
        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a JSON object
        """
        with open(self.config_file, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {self.config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_file} must contain a JSON object")
        return data

    def load(self) -> EngineSettings:
        """
        Raises:
            ValueError: If the file is unreadable or fails validation
        """
        if self.config_file is None:
            return EngineSettings()

        data = self.load_json_file()
        try:
            settings = EngineSettings.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid settings in {self.config_file}:\n{e}") from e
        logger.debug("Loaded settings from %s", self.config_file)
        return settings
