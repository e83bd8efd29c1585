"""
Helpdesk Configuration Manager
==============================

Loads the YAML configuration document and keeps it current:
- PyYAML parsing, pydantic validation
- watchdog file watcher for hot reload
- thread-safe swap of the parsed document
"""

import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk.automation.application import IAutomationConfigProvider
from helpdesk.automation.domain import AutomationConfig
from helpdesk.config.document import HelpdeskConfig
from helpdesk.core import ConfigurationException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import ISLAConfigProvider
from helpdesk.sla.domain import SLAConfig
from helpdesk.workflow.domain import WorkflowDefinition

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for configuration file changes."""

    def __init__(self, config_manager: "HelpdeskConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class HelpdeskConfigManager(ISLAConfigProvider, IAutomationConfigProvider):
    """
    Thread-safe configuration manager with hot-reload support.

    Serves the SLA and automation sections to the services that read
    them on every call, so a reload takes effect without rebuilding the
    object graph. Workflows are read once, when the transition engine
    is built.
    """

    def __init__(self, config: Optional[HelpdeskConfig] = None):
        self._config = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    @classmethod
    def from_config(cls, config: Optional[HelpdeskConfig] = None) -> "HelpdeskConfigManager":
        """Manager over an in-memory document, defaults when omitted."""
        return cls(config or HelpdeskConfig())

    def load(self, path: Path) -> HelpdeskConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: the file is not valid YAML or fails validation
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> HelpdeskConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("Helpdesk config file not found, using defaults", extra={"path": str(path)})
            return HelpdeskConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationException(f"Configuration root in {path} must be a mapping")

        return self.parse(data)

    @staticmethod
    def parse(data: Dict[str, Any]) -> HelpdeskConfig:
        """
        Validate a configuration mapping.

        Raises:
            ConfigurationException: the mapping fails validation
        """
        try:
            return HelpdeskConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationException(
                "Invalid helpdesk configuration",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    def reload(self) -> bool:
        """Reload configuration from file; keeps the current one on failure."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload helpdesk config", extra={"error": e.message, "path": str(self._path)})
            return False

        with self._lock:
            self._config = new_config
        logger.info("Helpdesk configuration reloaded successfully", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching when the file does not exist or the platform
        cannot watch files.
        """
        if self._path is None:
            raise ConfigurationException("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def config(self) -> HelpdeskConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise ConfigurationException("Helpdesk configuration not loaded")
            return self._config

    # ========== Providers ==========

    def get_sla_config(self) -> SLAConfig:
        return self.config.sla

    def get_automation_config(self) -> AutomationConfig:
        return self.config.automation

    def get_workflows(self) -> Dict[str, WorkflowDefinition]:
        return dict(self.config.workflows)

    def get_notification_switches(self) -> Dict[str, bool]:
        return dict(self.config.notifications)
