"""Persisted-collection cache: reuse-or-rebuild decision and save strategies."""

from __future__ import annotations

import logging
import os
import pickle
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from spikeimport.config import LARGE_PAYLOAD_BYTES, MIN_SUPPORTED_VERSION, PERSISTED_SUFFIX
from spikeimport.types import SpikeCollection

logger = logging.getLogger("spikeimport")


class SaveStrategy(Protocol):
    name: str

    def save(self, collection: SpikeCollection, path: Path) -> None:
        ...


class PickleStrategy:
    """Pickle the collection to a temporary sibling file and move it into place."""

    def __init__(self, protocol: int = pickle.DEFAULT_PROTOCOL, name: str = 'standard'):
        self.protocol = protocol
        self.name = name

    def save(self, collection: SpikeCollection, path: Path) -> None:
        path = Path(path)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, 'wb') as f:
                pickle.dump(collection, f, protocol=self.protocol)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise


def persisted_path(basepath, basename: str) -> Path:
    return Path(basepath) / f"{basename}{PERSISTED_SUFFIX}"


class CollectionCache:
    """Loads and saves the persisted collection of one (basepath, basename) pair.

    Assumes a single writer; concurrent imports of the same session are not guarded.
    """

    def __init__(
        self,
        basepath,
        basename: str,
        min_version: float = MIN_SUPPORTED_VERSION,
        standard: Optional[SaveStrategy] = None,
        large: Optional[SaveStrategy] = None,
        large_payload_bytes: float = LARGE_PAYLOAD_BYTES,
    ):
        self.path = persisted_path(basepath, basename)
        self.min_version = min_version
        self.standard = standard or PickleStrategy(pickle.DEFAULT_PROTOCOL, 'standard')
        self.large = large or PickleStrategy(pickle.HIGHEST_PROTOCOL, 'large')
        self.large_payload_bytes = large_payload_bytes

    def exists(self) -> bool:
        return self.path.exists()

    def is_current(self, collection: SpikeCollection) -> bool:
        """True if ``collection`` was built by a version this implementation still accepts."""
        info = collection.processing_info
        return info is not None and float(info.version) >= self.min_version

    def load_current(self) -> Optional[SpikeCollection]:
        """Return the persisted collection if it exists and is current, else None.

        Unreadable or outdated files are reported and treated as absent, which
        triggers a rebuild.
        """
        if not self.exists():
            return None
        try:
            collection = SpikeCollection.load(self.path)
        except Exception as e:
            logger.warning(f"Could not read {self.path} ({e}). Reloading spikes.")
            return None
        if not isinstance(collection, SpikeCollection):
            logger.warning(f"{self.path} does not contain a spike collection. Reloading spikes.")
            return None
        if not self.is_current(collection):
            logger.warning("Persisted spike collection is not up to date. Reloading spikes.")
            return None
        logger.info(f"Loaded persisted spike collection from {self.path}")
        return collection

    def choose_strategy(self, collection: SpikeCollection) -> SaveStrategy:
        return self.large if collection.nbytes() > self.large_payload_bytes else self.standard

    def save(self, collection: SpikeCollection) -> bool:
        """Persist ``collection``. Failures are logged as warnings and reported as False."""
        strategy = self.choose_strategy(collection)
        logger.info(f"Saving spikes to {self.path} ({strategy.name} strategy)")
        try:
            strategy.save(collection, self.path)
        except Exception as e:
            logger.warning(f"Spikes could not be saved: {e}")
            return False
        return True
