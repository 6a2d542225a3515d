"""YAML-file-backed store.

Keeps the working set in memory and writes a full snapshot to disk after
every mutation, so the file is never out of sync with the store.

Example store.yaml:
    work_item:
    - id: WI-001
      project_id: billing
      title: Add invoice export
      status: in_progress
      ...
    step: [...]
    context: [...]
    sequences:
      work_item: 1
      step: 3
"""

import logging
from pathlib import Path

import yaml

from concord.errors import StoreError

from .memory import InMemoryStore

logger = logging.getLogger(__name__)


class YamlFileStore(InMemoryStore):
    """Store persisted to a single YAML file."""

    def __init__(self, path: Path):
        """Load the store from ``path`` if it exists.

        Args:
            path: YAML file to read from and write to

        Raises:
            StoreError: If the file exists but cannot be read or parsed
        """
        super().__init__(save_callback=self._write)
        self.path = Path(path)

        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise StoreError(f"Failed to load store from {self.path}: {e}") from e
            self.restore(data)
            logger.info(f"Loaded store from {self.path}")

    def _write(self, store: InMemoryStore) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                yaml.dump(store.snapshot(), f, default_flow_style=False, sort_keys=False)
            tmp_path.replace(self.path)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to write store to {self.path}: {e}") from e
