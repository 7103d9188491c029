"""Disk-backed parameter cache store.

Persists one blob per vehicle holding the last completely synchronized
parameter set and its content hash. A blob that cannot be read or does not
validate is treated as absent, which forces a full network load.
"""

import logging
import os
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from paramsync_gateway.core.models import CachedParameter, CachedParameterSet

logger = logging.getLogger(__name__)


class ParameterCacheStore:
    """Key-value blob store for synchronized parameter sets, keyed by vehicle id."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        """Directory holding the cache files."""
        return self._directory

    def path_for(self, vehicle_id: int) -> Path:
        """Cache file path for a vehicle."""
        return self._directory / f"vehicle_{vehicle_id}.json"

    def load(self, vehicle_id: int) -> CachedParameterSet | None:
        """Load the cached parameter set for a vehicle.

        Returns:
            The cached set, or None if absent or unreadable.
        """
        path = self.path_for(vehicle_id)
        if not path.exists():
            logger.debug("No parameter cache for vehicle %d at %s", vehicle_id, path)
            return None

        try:
            cached = CachedParameterSet.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.warning("Ignoring unreadable parameter cache %s: %s", path, e)
            return None

        if cached.vehicle_id != vehicle_id:
            logger.warning("Parameter cache %s belongs to vehicle %d, ignoring", path, cached.vehicle_id)
            return None

        logger.debug("Loaded %d cached parameters for vehicle %d", cached.count, vehicle_id)
        return cached

    def save(
        self,
        vehicle_id: int,
        hash_value: int,
        components: dict[int, dict[str, CachedParameter]],
    ) -> bool:
        """Persist a parameter set for a vehicle.

        The file is written to a temporary sibling and renamed into place so
        a crash never leaves a truncated cache behind.

        Returns:
            True if saved, False on I/O failure.
        """
        cached = CachedParameterSet(
            vehicle_id=vehicle_id,
            hash=hash_value,
            timestamp=datetime.now(),
            components=components,
        )
        path = self.path_for(vehicle_id)
        tmp_path = path.with_suffix(".json.tmp")

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(cached.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Failed to write parameter cache %s: %s", path, e)
            return False

        logger.info("Saved %d parameters to cache for vehicle %d (hash 0x%08X)", cached.count, vehicle_id, hash_value)
        return True

    def clear(self, vehicle_id: int) -> None:
        """Remove the cached set for a vehicle, if any."""
        path = self.path_for(vehicle_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove parameter cache %s: %s", path, e)
