"""Enums, constants and configuration dataclasses for spike import."""

from __future__ import annotations

import logging
import multiprocessing as mp
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple, TYPE_CHECKING

from spikeimport.metadata import SessionMetadata

if TYPE_CHECKING:
    from spikeimport.types import SpikeCollection

logger = logging.getLogger("spikeimport")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
PROCESSING_FUNCTION = "import_spikes"
PROCESSING_VERSION = 4.3
MIN_SUPPORTED_VERSION = 3.0      # persisted collections below this are rebuilt

DEDUP_TOLERANCE_S = 5e-4         # 0.5 ms
KILOSORT_TOLERANCE_DIVISOR = 1100.0  # rez.mat imports use sr / 1100 samples
LARGE_PAYLOAD_BYTES = 2e9        # switch to the large-payload save strategy above this
DEFAULT_LSB = 0.195              # uV/bit, Intan

PERSISTED_SUFFIX = ".spikes.cellinfo.pkl"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SpikeFormat(str, Enum):
    """Spike sorting output formats understood by the importer.

    Values are the canonical registry keys; aliases (e.g. ``neurosuite`` for
    ``klustakwik``) are resolved by the format registry.
    """
    CUSTOM = 'custom'
    PHY = 'phy'
    KLUSTAKWIK = 'klustakwik'
    KLUSTAVIEWA = 'klustaviewa'
    NWB = 'nwb'
    ALLENSDK = 'allensdk'
    MCLUST = 'mclust'
    ULTRAMEGASORT2000 = 'ultramegasort2000'
    ALF = 'alf'
    SEBASTIENROYER = 'sebastienroyer'
    KILOSORT = 'kilosort'
    WAVE_CLUS = 'wave_clus'
    SPYKING_CIRCUS = 'spyking circus'
    MOUNTAINSORT = 'mountainsort'
    IRONCLUST = 'ironclust'


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass
class UnitFilter:
    """Allowed values per unit field. ``None`` leaves that field unconstrained.

    Criteria are applied in field order: uid, shank_id, clu_id, region.
    """
    uid: Optional[Sequence[int]] = None
    shank_id: Optional[Sequence[int]] = None
    clu_id: Optional[Sequence[int]] = None
    region: Optional[Sequence[str]] = None

    FIELDS = ('uid', 'shank_id', 'clu_id', 'region')

    def criteria(self) -> Tuple[Tuple[str, Sequence[Any]], ...]:
        """Return the (field, allowed values) pairs that are set, in application order."""
        return tuple(
            (name, getattr(self, name))
            for name in self.FIELDS
            if getattr(self, name) is not None
        )

    def is_empty(self) -> bool:
        return not self.criteria()


@dataclass
class ImportConfiguration:
    """Complete set of options for one import."""
    # Locations
    basepath: str = '.'
    clustering_path: Optional[str] = None   # relative to basepath; resolved from metadata if None
    basename: Optional[str] = None          # resolved from metadata or basepath if None
    format: Optional[str] = None            # resolved from metadata, defaults to phy

    # Adapter parameters
    electrode_groups: Optional[Sequence[int]] = None  # None = all detected groups
    raw_clusters: bool = False
    labels_to_include: Tuple[str, ...] = ('good',)
    least_significant_bit: float = DEFAULT_LSB        # uV/bit, used when metadata has none
    spikes_times: Optional[Sequence[Any]] = None      # custom format input, seconds

    # Cache / persistence
    save_output: bool = True
    force_reload: bool = False
    existing_collection: Optional["SpikeCollection"] = None
    min_supported_version: float = MIN_SUPPORTED_VERSION

    # Waveforms
    extract_waveforms_from_raw: bool = True
    extract_waveforms_from_source: bool = False
    waveform_extractor: Optional[Callable[..., "SpikeCollection"]] = None
    n_jobs: int = max(1, mp.cpu_count() - 1)  # per-probe extraction workers

    # Session metadata and output filter
    session_metadata: Optional["SessionMetadata"] = None
    unit_filter: UnitFilter = field(default_factory=UnitFilter)

    @classmethod
    def from_options(cls, base: Optional["ImportConfiguration"] = None, **options: Any) -> "ImportConfiguration":
        """Build a configuration from keyword options, optionally on top of ``base``.

        Raises:
            TypeError: if an option does not name a configuration field.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise TypeError(f"Unknown import option(s): {', '.join(unknown)}")

        values = {f.name: getattr(base, f.name) for f in fields(cls)} if base else {}
        values.update(options)

        unit_filter = values.get('unit_filter')
        if isinstance(unit_filter, dict):
            values['unit_filter'] = UnitFilter(**unit_filter)
        elif unit_filter is None:
            values['unit_filter'] = UnitFilter()
        if isinstance(values.get('session_metadata'), dict):
            values['session_metadata'] = SessionMetadata.from_dict(values['session_metadata'])
        if values.get('labels_to_include') is not None:
            values['labels_to_include'] = tuple(values['labels_to_include'])
        return cls(**values)
