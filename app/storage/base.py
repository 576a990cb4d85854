"""Base storage interface."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Optional, List, Dict, Any, Callable
from pathlib import Path
import json
import os
import threading
from datetime import datetime, date

from app.core.exceptions import StorageUnavailableError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for datetime and date objects."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        return super().default(obj)


class BaseStore(ABC, Generic[T]):
    """
    JSON-file document store with an in-memory cache.

    All reads and writes go through one re-entrant lock, so a check followed
    by a write inside the same locked block is atomic within the process.
    """

    def __init__(self, data_dir: str, filename: str):
        self.data_dir = Path(data_dir)
        self.filepath = self.data_dir / filename
        self._ensure_directory()
        self._cache: Dict[str, T] = {}
        self._loaded = False
        self._lock = threading.RLock()

    def _ensure_directory(self):
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_data(self) -> Dict[str, Any]:
        """Load data from JSON file."""
        if not self.filepath.exists():
            return {}
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {self.filepath}: {e}")
            return {}

    def _save_data(self, data: Dict[str, Any]):
        """Write the whole collection, replacing the file atomically."""
        tmp_path = self.filepath.with_suffix(self.filepath.suffix + ".tmp")
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, cls=JSONEncoder)
            os.replace(tmp_path, self.filepath)
        except OSError as e:
            logger.error(f"Failed to save {self.filepath}: {e}")
            raise StorageUnavailableError(str(e)) from e

    @abstractmethod
    def _serialize(self, entity: T) -> Dict[str, Any]:
        """Serialize entity to dict."""
        pass

    @abstractmethod
    def _deserialize(self, data: Dict[str, Any]) -> T:
        """Deserialize dict to entity."""
        pass

    @abstractmethod
    def _get_id(self, entity: T) -> str:
        """Get entity ID."""
        pass

    def _clone(self, entity: T) -> T:
        """Detached copy, so callers never mutate the cache in place."""
        return self._deserialize(self._serialize(entity))

    def _load_all(self) -> Dict[str, T]:
        """Load and deserialize all entities."""
        if not self._loaded:
            data = self._load_data()
            for key, value in data.items():
                try:
                    self._cache[key] = self._deserialize(value)
                except ValueError as e:
                    logger.error(f"Failed to deserialize {key}: {e}")
            self._loaded = True
        return self._cache

    def _flush(self, previous: Optional[Dict[str, T]] = None):
        """Persist the cache; on failure restore the previous snapshot."""
        data = {k: self._serialize(v) for k, v in self._cache.items()}
        try:
            self._save_data(data)
        except StorageUnavailableError:
            if previous is not None:
                self._cache = previous
            raise

    def save(self, entity: T) -> T:
        """Insert or replace an entity."""
        with self._lock:
            self._load_all()
            previous = dict(self._cache)
            entity_id = self._get_id(entity)
            self._cache[entity_id] = self._clone(entity)
            self._flush(previous)

        logger.info(f"Saved entity: {entity_id}")
        return entity

    def save_if(self, entity: T, check: Callable[[Dict[str, T]], None]) -> T:
        """
        Save after running `check` against the current cache under the lock.

        `check` raises to abort; nothing is written in that case.
        """
        with self._lock:
            self._load_all()
            check(self._cache)
            return self.save(entity)

    def get(self, entity_id: str) -> Optional[T]:
        """Get entity by ID."""
        with self._lock:
            self._load_all()
            entity = self._cache.get(entity_id)
            return self._clone(entity) if entity is not None else None

    def get_all(self) -> List[T]:
        """Get all entities."""
        with self._lock:
            self._load_all()
            return [self._clone(e) for e in self._cache.values()]

    def delete(self, entity_id: str) -> bool:
        """Delete an entity."""
        with self._lock:
            self._load_all()
            if entity_id not in self._cache:
                return False

            previous = dict(self._cache)
            del self._cache[entity_id]
            self._flush(previous)

        logger.info(f"Deleted entity: {entity_id}")
        return True

    def exists(self, entity_id: str) -> bool:
        """Check if entity exists."""
        with self._lock:
            self._load_all()
            return entity_id in self._cache

    def count(self) -> int:
        """Count total entities."""
        with self._lock:
            self._load_all()
            return len(self._cache)
