import json
import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Optional

from core.models.config_data import SimulatorConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SIMULATOR_CONFIG"


class ConfigLoader:
    """Loads and manages simulator configuration from a JSON file."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ConfigLoader, cls).__new__(cls)
            cls._instance._config = SimulatorConfig()
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.load_config()
            self._initialized = True

    @staticmethod
    def get_config_path() -> Path:
        """Path of simulator_config.json, overridable through SIMULATOR_CONFIG."""
        override = os.getenv(CONFIG_ENV_VAR)
        if override:
            return Path(override)
        return Path(__file__).parent.parent.parent / "config" / "simulator_config.json"

    def load_config(self, path: Optional[Path] = None):
        """Load configuration from JSON. Any problem falls back to defaults."""
        config_path = path or self.get_config_path()
        self._config = SimulatorConfig()

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            return

        known = {f.name for f in fields(SimulatorConfig)}
        try:
            with open(config_path, 'r') as f:
                json_data = json.load(f)
            values = json_data.get("simulation", {})
            for key in values:
                if key not in known:
                    logger.warning(f"Unknown configuration key ignored: {key}")
            self._config = SimulatorConfig(**{k: v for k, v in values.items() if k in known})
            logger.info(f"Configuration loaded from {config_path}")

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            self._config = SimulatorConfig()

        except (TypeError, ValueError) as e:
            logger.error(f"Invalid configuration values: {e}")
            self._config = SimulatorConfig()

    def get_config(self) -> SimulatorConfig:
        return self._config

    def get_simulation_enabled(self) -> bool:
        return self._config.simulation_enabled

    def get_error_probability(self) -> float:
        return self._config.error_probability

    def get_storage_dir(self) -> str:
        return self._config.storage_dir

    def reload_config(self):
        self.load_config()
        logger.info("Configuration reloaded")


# Global singleton instance
config_loader = ConfigLoader()
