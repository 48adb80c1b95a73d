"""Adapter interface and the context every adapter receives."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np

from spikeimport.config import DEDUP_TOLERANCE_S, DEFAULT_LSB
from spikeimport.dedup import deduplicate, tolerance_samples
from spikeimport.metadata import SessionMetadata
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


@dataclass
class AdapterContext:
    """Locations and parameters shared by all adapters."""
    basepath: Path
    clustering_path: Path                 # absolute: basepath / relative clustering path
    basename: str
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    labels_to_include: Tuple[str, ...] = ('good',)
    electrode_groups: Optional[Sequence[int]] = None
    raw_clusters: bool = False
    least_significant_bit: float = DEFAULT_LSB
    waveforms_from_source: bool = False
    spikes_times: Optional[Sequence[Any]] = None
    tolerance_s: float = DEDUP_TOLERANCE_S

    @property
    def sr(self) -> float:
        self.metadata.require('sr')
        return float(self.metadata.sr)

    @property
    def tolerance_samples(self) -> float:
        return tolerance_samples(self.sr, self.tolerance_s)

    def in_clustering_path(self, name: str) -> Path:
        return self.clustering_path / name

    def in_basepath(self, name: str) -> Path:
        return self.basepath / name


class FormatAdapter(ABC):
    """Maps one sorter's file layout to a list of UnitRecords.

    Subclasses set ``name`` (registry key), optional ``aliases``, the session
    metadata fields they cannot work without, and the provenance label for the
    waveforms they deliver.
    """

    name: ClassVar[str] = ''
    aliases: ClassVar[Tuple[str, ...]] = ()
    required_metadata: ClassVar[Tuple[str, ...]] = ()
    waveforms_source: ClassVar[Optional[str]] = None
    # Adapters that drive waveform extraction themselves (per probe) set this.
    extracts_waveforms: ClassVar[bool] = False

    def __init__(self, context: AdapterContext):
        self.context = context
        self.params: Dict[str, Any] = {}

    def run(self) -> List[UnitRecord]:
        """Check metadata, then load. Returns a fresh list owned by the caller."""
        self.context.metadata.require(*self.required_metadata)
        if self.waveforms_source:
            self.params['waveforms_source'] = self.waveforms_source
        units = list(self.load())
        logger.info(f"{self.name}: imported {len(units)} units")
        return units

    @abstractmethod
    def load(self) -> List[UnitRecord]:
        """Read the sorter output and return one record per unit."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def dedup_samples(self, samples: np.ndarray, tolerance: Optional[float] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Deduplicate integer sample timestamps; returns (unique samples, kept positions)."""
        if tolerance is None:
            tolerance = self.context.tolerance_samples
        return deduplicate(np.asarray(samples, dtype=np.float64), tolerance)


def peak_to_peak_channel(waveforms_all: np.ndarray) -> int:
    """Row (channel) index with the largest peak-to-peak amplitude of a channels x samples matrix."""
    return int(np.argmax(np.ptp(waveforms_all, axis=1)))
