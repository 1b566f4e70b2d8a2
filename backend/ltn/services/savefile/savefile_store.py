"""
Savefile storage for the LTN planner.

Keeps named savefiles on disk so a planning session can be resumed later:
- File-based storage with JSON serialization
- Names restricted to a safe character set
- Thread-safe operations
- Storage statistics
"""

import json
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


SAVEFILE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,99}$")


@dataclass
class StoredSavefile:
    """A savefile with its storage metadata."""

    name: str
    savefile: dict
    saved_at: float
    map_name: Optional[str] = None

    def age_seconds(self) -> float:
        return time.time() - self.saved_at


@dataclass
class StoreStats:
    """Storage statistics."""

    saves: int = 0
    loads: int = 0
    misses: int = 0
    entries_count: int = 0
    total_size_bytes: int = 0
    filters_stored: int = 0
    maps: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "saves": self.saves,
            "loads": self.loads,
            "misses": self.misses,
            "entries_count": self.entries_count,
            "total_size_kb": round(self.total_size_bytes / 1024, 2),
            "filters_stored": self.filters_stored,
            "maps": self.maps,
        }


class SavefileStore:
    """
    File-based store of named savefiles.

    Thread-safe implementation suitable for FastAPI's threadpool handlers.
    """

    def __init__(self, savefile_dir: str = "savefiles", enabled: bool = True):
        """
        Initialize the store.

        Args:
            savefile_dir: Directory for savefiles (relative to app root or absolute)
            enabled: Whether storage is enabled
        """
        self.savefile_dir = Path(savefile_dir)
        self.enabled = enabled
        self._lock = threading.RLock()
        self._stats = StoreStats()

        if self.enabled:
            self._ensure_dir()

    def _ensure_dir(self) -> None:
        """Create savefile directory if it doesn't exist."""
        try:
            self.savefile_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Savefile directory ready: %s", self.savefile_dir.absolute())
        except OSError as e:
            logger.error("Failed to create savefile directory: %s", e)
            self.enabled = False

    def _path(self, name: str) -> Path:
        if not SAVEFILE_NAME_PATTERN.match(name or ""):
            raise ValueError(
                f"Invalid savefile name {name!r}: use letters, digits, '.', '_' or '-'"
            )
        return self.savefile_dir / f"{name}.geojson"

    def save(self, name: str, savefile: dict, map_name: Optional[str] = None) -> bool:
        """
        Store a savefile under a name, overwriting any previous one.

        Returns:
            True if stored successfully, False otherwise
        """
        path = self._path(name)
        if not self.enabled:
            return False

        record = {
            "name": name,
            "map_name": map_name,
            "saved_at": time.time(),
            "savefile": savefile,
        }

        with self._lock:
            try:
                with open(path, "w", encoding="utf-8") as f:
                    json.dump(record, f)
                self._stats.saves += 1
                logger.info(
                    "Stored savefile %s (features=%d)",
                    name,
                    len(savefile.get("features", [])),
                )
                return True
            except (TypeError, OSError) as e:
                logger.error("Savefile write error for %s: %s", name, e)
                return False

    def load(self, name: str) -> Optional[StoredSavefile]:
        """
        Fetch a stored savefile.

        Returns:
            The stored savefile, or None if missing or unreadable
        """
        path = self._path(name)
        if not self.enabled:
            return None

        with self._lock:
            if not path.exists():
                self._stats.misses += 1
                logger.debug("No stored savefile named %s", name)
                return None

            try:
                with open(path, "r", encoding="utf-8") as f:
                    record = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Savefile read error for %s: %s", name, e)
                self._stats.misses += 1
                return None

            self._stats.loads += 1
            return StoredSavefile(
                name=name,
                savefile=record.get("savefile", {}),
                saved_at=record.get("saved_at", 0),
                map_name=record.get("map_name"),
            )

    def delete(self, name: str) -> bool:
        """Delete a stored savefile. Returns False if it did not exist."""
        path = self._path(name)
        if not self.enabled:
            return False

        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
                logger.info("Deleted savefile %s", name)
                return True
            except OSError as e:
                logger.warning("Failed to delete savefile %s: %s", name, e)
                return False

    def list_names(self) -> list[str]:
        """Names of all stored savefiles, sorted."""
        if not self.enabled:
            return []
        with self._lock:
            return sorted(p.stem for p in self.savefile_dir.glob("*.geojson"))

    def get_stats(self) -> StoreStats:
        """
        Get storage statistics.

        Returns:
            StoreStats object with current statistics
        """
        if not self.enabled:
            return StoreStats()

        stats = StoreStats(
            saves=self._stats.saves,
            loads=self._stats.loads,
            misses=self._stats.misses,
        )
        maps: dict[str, int] = {}

        with self._lock:
            for path in self.savefile_dir.glob("*.geojson"):
                try:
                    stats.total_size_bytes += path.stat().st_size
                    stats.entries_count += 1

                    with open(path, "r", encoding="utf-8") as f:
                        record = json.load(f)

                    map_name = record.get("map_name") or "unknown"
                    maps[map_name] = maps.get(map_name, 0) + 1
                    stats.filters_stored += sum(
                        1
                        for feature in record.get("savefile", {}).get("features", [])
                        if (feature.get("properties") or {}).get("kind") == "modal_filter"
                    )
                except (json.JSONDecodeError, OSError, AttributeError):
                    continue

        stats.maps = maps
        return stats


# Global store instance - initialized lazily
_savefile_store: Optional[SavefileStore] = None
_store_lock = threading.Lock()


def get_savefile_store() -> SavefileStore:
    """Get the global savefile store instance."""
    global _savefile_store
    if _savefile_store is None:
        with _store_lock:
            if _savefile_store is None:
                # Import here to avoid circular imports
                from ltn.core.config import get_settings

                settings = get_settings()
                _savefile_store = SavefileStore(
                    savefile_dir=settings.savefile_dir,
                    enabled=settings.savefile_store_enabled,
                )
    return _savefile_store


def reset_savefile_store() -> None:
    """Reset the global store (useful for testing)."""
    global _savefile_store
    with _store_lock:
        _savefile_store = None
