"""Configuration management for pyxano.

Credentials come from the environment or from ``~/.config/pyxano/config``,
a file of ``KEY=VALUE`` lines. Environment variables win.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_KEYS = (
    "XANO_API_KEY",
    "XANO_INSTANCE_ORIGIN",
    "XANO_WORKSPACE_ID",
    "XANO_BRANCH",
)


class Config:
    """Credentials and connection settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path.home() / ".config" / "pyxano"
        self.config_file = self.config_dir / "config"
        self._values: dict[str, str] = {}
        self.reload()

    def reload(self) -> None:
        """Re-read the config file and the environment."""
        self._values = self._load_file()
        for key in CONFIG_KEYS:
            value = os.environ.get(key)
            if value:
                self._values[key] = value

    def _load_file(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values
        try:
            with open(self.config_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip().strip('"').strip("'")
        except OSError as e:
            logger.warning(f"Failed to read {self.config_file}: {e}")
        return values

    @property
    def api_key(self) -> Optional[str]:
        return self._values.get("XANO_API_KEY")

    @property
    def instance_origin(self) -> Optional[str]:
        origin = self._values.get("XANO_INSTANCE_ORIGIN")
        return origin.rstrip("/") if origin else None

    @property
    def workspace_id(self) -> Optional[int]:
        value = self._values.get("XANO_WORKSPACE_ID")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring invalid XANO_WORKSPACE_ID: {value}")
            return None

    @property
    def branch(self) -> Optional[str]:
        return self._values.get("XANO_BRANCH")

    def is_configured(self) -> bool:
        """Check whether an API key and instance are available."""
        return bool(self.api_key and self.instance_origin)

    def get_config_path(self) -> Path:
        return self.config_file

    def save(self, **values: str) -> None:
        """Persist values to the config file.

        Args:
            **values: Keys from CONFIG_KEYS mapped to their values
        """
        current = self._load_file()
        current.update({k: v for k, v in values.items() if v is not None})
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            for key, value in current.items():
                f.write(f"{key}={value}\n")
        # The file holds an access token
        os.chmod(self.config_file, 0o600)
        self.reload()


config = Config()
