"""
SLA Configuration
=================

Loads ``sla_config.yaml`` and keeps it current while the service runs.

A watchdog observer reloads the file on change. A reload that fails to
parse or validate keeps the previous configuration in place.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ticketflow.core.exceptions import ConfigurationException
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application.interfaces import ISLAConfigProvider
from ticketflow.sla.domain import SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration with hot reload.

    The watchdog callback runs on the observer thread; readers on the event
    loop always see either the old or the new config object, never a mix.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """Initial configuration load; an invalid file is fatal here."""
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, ConfigurationException) as e:
            raise ConfigurationException(
                f"Invalid SLA configuration in {self._path}",
                {"error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        config = SLAConfig(**data)
        # Fail on a bad calendar now rather than on first use
        config.calendar()
        return config

    def reload(self) -> bool:
        """Reload configuration from file; keeps the old one on failure."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except Exception as e:
            logger.error(
                "Failed to reload SLA config, keeping previous",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file.

        Skipped when the file does not exist or the platform cannot watch it.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "SLA config file missing, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call when not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_config(self) -> SLAConfig:
        return self.config
