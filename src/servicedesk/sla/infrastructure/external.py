"""
SLA External Service Integrations
==================================

- YAML policy loading with watchdog hot-reload
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from servicedesk.core import ConfigurationException
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.domain.value_objects import SLAPolicy

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, policy_manager: "SLAPolicyManager", policy_path: Path):
        self.policy_manager = policy_manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info("SLA policy file changed", extra={"path": str(event.src_path)})
            self.policy_manager.reload()


class SLAPolicyManager:
    """
    Thread-safe SLA policy manager with hot-reload support.

    Uses watchdog to monitor file changes and reload the policy
    without restarting the service. A reload that fails validation
    keeps the previous policy in place.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """Initial policy load. Raises ConfigurationException on an invalid file."""
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        if not path.exists():
            logger.warning("SLA policy file not found, using defaults", extra={"path": str(path)})
            return SLAPolicy()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return SLAPolicy(**data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid SLA policy file {path}",
                {"errors": e.errors(include_url=False)}
            ) from e

    def reload(self) -> bool:
        """Reload policy from file."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error("Failed to reload SLA policy", extra={"error": str(e)})
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching when the file doesn't exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Policy file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = PolicyFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching the policy file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def policy(self) -> SLAPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("SLA policy not loaded")
            return self._policy
