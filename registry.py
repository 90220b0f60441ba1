# registry.py

import logging
import os
import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from models.repo_config import RepoConfig

logger = logging.getLogger(__name__)


def load_repo_configs(path: str) -> Dict[str, RepoConfig]:
    """
    Load repository configurations from a YAML mapping of
    "owner/name" -> {path, secret, branch}. Invalid entries are skipped.
    """
    if not os.path.exists(path):
        logger.info(f"Repository config '{path}' does not exist yet. Starting with no repositories.")
        return {}

    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading repository config '{path}': {e}")
        return {}

    if not isinstance(raw, dict):
        logger.error(f"Repository config '{path}' must be a mapping, got {type(raw).__name__}.")
        return {}

    configs = {}
    for repo_name, entry in raw.items():
        try:
            configs[str(repo_name)] = RepoConfig(**(entry or {}))
        except (TypeError, ValidationError) as e:
            logger.error(f"Skipping invalid configuration for '{repo_name}': {e}")
    return configs


class RegistryPersistenceError(Exception):
    """Raised when the repository file could not be written."""


def save_repo_configs(path: str, configs: Mapping[str, RepoConfig]) -> None:
    """
    Write the mapping to a sibling .tmp file and move it into place.
    Raises RegistryPersistenceError; the old file is left untouched.
    """
    data = {name: cfg.model_dump() for name, cfg in configs.items()}
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Error saving repository config '{path}': {e}")
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError as cleanup_error:
                logger.warning(f"Could not remove '{tmp_path}': {cleanup_error}")
        raise RegistryPersistenceError(f"Could not save repository config '{path}'") from e


class RepoRegistry:
    """
    Repository name -> RepoConfig lookup.

    Readers see an immutable snapshot and never lock. Writers serialize on a
    lock, build a new mapping and swap it in.
    """

    def __init__(self, configs: Optional[Mapping[str, RepoConfig]] = None, path: Optional[str] = None):
        self._path = path
        self._write_lock = threading.Lock()
        self._snapshot = MappingProxyType(dict(configs or {}))

    @classmethod
    def from_file(cls, path: str) -> "RepoRegistry":
        registry = cls(load_repo_configs(path), path=path)
        logger.info(f"Configured repositories: {', '.join(registry.names()) or '(none)'}")
        return registry

    def lookup(self, name: str) -> Optional[RepoConfig]:
        return self._snapshot.get(name)

    def names(self) -> List[str]:
        return sorted(self._snapshot)

    def snapshot(self) -> Mapping[str, RepoConfig]:
        return self._snapshot

    def upsert(self, name: str, repo_config: RepoConfig) -> None:
        with self._write_lock:
            updated = dict(self._snapshot)
            updated[name] = repo_config
            self._commit(updated)
        logger.info(f"Repository '{name}' configured.")

    def remove(self, name: str) -> bool:
        with self._write_lock:
            if name not in self._snapshot:
                return False
            updated = dict(self._snapshot)
            del updated[name]
            self._commit(updated)
        logger.info(f"Repository '{name}' removed.")
        return True

    def _commit(self, updated: Dict[str, RepoConfig]) -> None:
        # Persist first; a failed write leaves the live snapshot as it was.
        if self._path:
            save_repo_configs(self._path, updated)
        self._snapshot = MappingProxyType(updated)
