"""Data containers: UnitRecord, Unit, ProcessingInfo and SpikeCollection."""

from __future__ import annotations

import logging
import pickle
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger("spikeimport")

# Per-spike vectors: same length as ``times`` and kept aligned with it.
PER_SPIKE_FIELDS = ('amplitudes', 'ts', 'ids')

# Per-channel waveform matrices, stored channels x samples.
CHANNEL_MATRIX_FIELDS = ('filt_waveform_all', 'filt_waveform_all_std', 'raw_waveform_all')

# Everything a waveform extractor may add to a unit.
WAVEFORM_FIELDS = (
    'max_waveform_ch', 'max_waveform_ch1',
    'raw_waveform', 'filt_waveform', 'raw_waveform_all', 'raw_waveform_std',
    'filt_waveform_all', 'filt_waveform_std', 'filt_waveform_all_std',
    'time_waveform', 'time_waveform_all', 'peak_voltage', 'channels_all',
    'peak_voltage_sorted', 'max_waveform_all', 'peak_voltage_exp_fit_length_constant',
)

# Python attribute -> CellExplorer field name
CELLEXPLORER_NAMES = {
    'uid': 'UID',
    'clu_id': 'cluID',
    'shank_id': 'shankID',
    'max_waveform_ch': 'maxWaveformCh',
    'max_waveform_ch1': 'maxWaveformCh1',
    'raw_waveform': 'rawWaveform',
    'filt_waveform': 'filtWaveform',
    'raw_waveform_all': 'rawWaveform_all',
    'raw_waveform_std': 'rawWaveform_std',
    'filt_waveform_all': 'filtWaveform_all',
    'filt_waveform_std': 'filtWaveform_std',
    'filt_waveform_all_std': 'filtWaveform_all_std',
    'time_waveform': 'timeWaveform',
    'time_waveform_all': 'timeWaveform_all',
    'peak_voltage': 'peakVoltage',
    'peak_voltage_sorted': 'peakVoltage_sorted',
    'max_waveform_all': 'maxWaveform_all',
    'peak_voltage_exp_fit_length_constant': 'peakVoltage_expFitLengthConstant',
}


def as_vector(values, dtype=None) -> np.ndarray:
    """Return ``values`` as a flat 1-D array (row or column vectors alike)."""
    return np.asarray(values, dtype=dtype).ravel()


def _mat_compatible(value: Any) -> Any:
    """Replace None by empty arrays and lists by cell (object) arrays, recursively."""
    if value is None:
        return np.array([])
    if isinstance(value, dict):
        return {str(k): _mat_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        cell = np.empty(len(value), dtype=object)
        for i, v in enumerate(value):
            cell[i] = _mat_compatible(v)
        return cell
    return value


@dataclass(eq=False)
class UnitRecord:
    """One unit as produced by a format adapter, before a uid is assigned.

    Optional fields stay ``None`` for formats that do not provide them; the
    ``extra`` table holds format-specific per-unit values.
    """
    times: np.ndarray                            # seconds
    clu_id: Optional[int] = None
    shank_id: Optional[int] = None
    region: Optional[str] = None
    amplitudes: Optional[np.ndarray] = None      # one per spike
    ts: Optional[np.ndarray] = None              # sample timestamps, one per spike
    ids: Optional[np.ndarray] = None             # original spike index of each timestamp
    max_waveform_ch: Optional[int] = None        # 0-indexed
    max_waveform_ch1: Optional[int] = None       # 1-indexed

    raw_waveform: Optional[np.ndarray] = None
    filt_waveform: Optional[np.ndarray] = None
    raw_waveform_all: Optional[np.ndarray] = None
    raw_waveform_std: Optional[np.ndarray] = None
    filt_waveform_all: Optional[np.ndarray] = None
    filt_waveform_std: Optional[np.ndarray] = None
    filt_waveform_all_std: Optional[np.ndarray] = None
    time_waveform: Optional[np.ndarray] = None
    time_waveform_all: Optional[np.ndarray] = None
    peak_voltage: Optional[float] = None
    channels_all: Optional[np.ndarray] = None
    peak_voltage_sorted: Optional[np.ndarray] = None
    max_waveform_all: Optional[np.ndarray] = None
    peak_voltage_exp_fit_length_constant: Optional[float] = None

    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.times = as_vector(self.times, dtype=np.float64)
        for name in PER_SPIKE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, as_vector(value))
        for name in ('filt_waveform', 'raw_waveform', 'filt_waveform_std', 'raw_waveform_std',
                     'time_waveform', 'channels_all'):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, as_vector(value))
        for name in CHANNEL_MATRIX_FIELDS:
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, np.atleast_2d(np.asarray(value)))
        if self.clu_id is not None:
            self.clu_id = int(self.clu_id)
        if self.shank_id is not None:
            self.shank_id = int(self.shank_id)
        self._sync_max_channel()

    def _sync_max_channel(self) -> None:
        ch0, ch1 = self.max_waveform_ch, self.max_waveform_ch1
        if ch0 is not None and ch1 is not None:
            if int(ch0) != int(ch1) - 1:
                raise ValueError(
                    f"max_waveform_ch ({ch0}) must equal max_waveform_ch1 - 1 ({ch1} - 1)"
                )
        elif ch1 is not None:
            ch0 = int(ch1) - 1
        elif ch0 is not None:
            ch1 = int(ch0) + 1
        self.max_waveform_ch = None if ch0 is None else int(ch0)
        self.max_waveform_ch1 = None if ch1 is None else int(ch1)

    @property
    def total(self) -> int:
        """Number of spikes; always ``len(times)``."""
        return int(self.times.size)

    def per_spike_fields(self) -> Dict[str, np.ndarray]:
        """All per-spike arrays (including those in ``extra``) aligned with ``times``."""
        n = self.times.size
        out = {}
        for name in PER_SPIKE_FIELDS:
            value = getattr(self, name)
            if value is not None and value.size == n:
                out[name] = value
        for key, value in self.extra.items():
            if isinstance(value, np.ndarray) and value.ndim == 1 and value.size == n:
                out[key] = value
        return out


@dataclass(eq=False)
class Unit(UnitRecord):
    """A unit inside a SpikeCollection, carrying its dense collection-wide uid (1..N)."""
    uid: int = 0


@dataclass
class ProcessingInfo:
    """How and when a collection was built."""
    function: str
    version: float
    date: datetime = field(default_factory=datetime.now)
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SpikeCollection:
    """Format-agnostic set of units from one recording session."""
    units: List[Unit] = field(default_factory=list)
    basename: Optional[str] = None
    sr: Optional[float] = None
    numcells_orig: Optional[int] = None
    processing_info: Optional[ProcessingInfo] = None

    # ------------------------------------------------------------------
    # Unit-aligned views
    # ------------------------------------------------------------------

    @property
    def numcells(self) -> int:
        return len(self.units)

    @property
    def uids(self) -> np.ndarray:
        return np.array([u.uid for u in self.units], dtype=np.int64)

    @property
    def totals(self) -> np.ndarray:
        return np.array([u.total for u in self.units], dtype=np.int64)

    @property
    def times(self) -> List[np.ndarray]:
        return [u.times for u in self.units]

    def values_of(self, name: str) -> List[Any]:
        """Per-unit values of a Unit attribute or an ``extra`` key, in unit order."""
        if name in Unit.__dataclass_fields__ or name == 'total':
            return [getattr(u, name) for u in self.units]
        return [u.extra.get(name) for u in self.units]

    def has_field(self, name: str) -> bool:
        """True if at least one unit carries a value for ``name``."""
        return any(v is not None for v in self.values_of(name))

    def unit_by_uid(self, uid: int) -> Unit:
        """Look up a unit by its uid. Raises ValueError if not found."""
        for unit in self.units:
            if unit.uid == uid:
                return unit
        raise ValueError(f"Unit {uid} not found")

    @property
    def spindices(self) -> np.ndarray:
        """(n_spikes, 2) array of [time, uid] sorted by time, handy for rasters."""
        if not self.units:
            return np.empty((0, 2))
        times = np.concatenate([u.times for u in self.units])
        uids = np.concatenate([np.full(u.total, u.uid) for u in self.units])
        order = np.argsort(times, kind='stable')
        return np.column_stack([times[order], uids[order]])

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, filename: str, protocol: int = pickle.DEFAULT_PROTOCOL) -> None:
        """Save collection to disk."""
        with open(filename, 'wb') as f:
            pickle.dump(self, f, protocol=protocol)

    @classmethod
    def load(cls, filename: str) -> "SpikeCollection":
        """Load collection from disk."""
        with open(filename, 'rb') as f:
            return pickle.load(f)

    def nbytes(self) -> int:
        """Approximate in-memory payload size in bytes (array data only)."""
        total = 0
        for unit in self.units:
            for f_ in fields(unit):
                value = getattr(unit, f_.name)
                if isinstance(value, np.ndarray):
                    total += value.nbytes
            for value in unit.extra.values():
                if isinstance(value, np.ndarray):
                    total += value.nbytes
        return total

    # ------------------------------------------------------------------
    # Convenience views
    # ------------------------------------------------------------------

    def to_dataframe(self) -> pd.DataFrame:
        """One row per spike: uid, cluster id, shank id and time in seconds."""
        frames = [
            pd.DataFrame({
                'uid': unit.uid,
                'clu_id': unit.clu_id,
                'shank_id': unit.shank_id,
                'time_seconds': unit.times,
            })
            for unit in self.units
        ]
        if not frames:
            return pd.DataFrame(columns=['uid', 'clu_id', 'shank_id', 'time_seconds'])
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> Dict[str, Any]:
        """Generate a summary of the collection."""
        units_per_shank: Dict[Any, int] = {}
        for unit in self.units:
            units_per_shank[unit.shank_id] = units_per_shank.get(unit.shank_id, 0) + 1
        return {
            'basename': self.basename,
            'sr': self.sr,
            'numcells': self.numcells,
            'numcells_orig': self.numcells_orig,
            'total_spikes': int(self.totals.sum()) if self.units else 0,
            'units_per_shank': units_per_shank,
            'version': self.processing_info.version if self.processing_info else None,
        }

    def to_cellexplorer_dict(self) -> Dict[str, Any]:
        """CellExplorer ``spikes`` struct layout: per-unit fields as row vectors or cell lists."""
        out: Dict[str, Any] = {
            'basename': self.basename,
            'sr': self.sr,
            'numcells': self.numcells,
            'UID': self.uids,
            'times': self.times,
            'total': self.totals,
        }
        if self.numcells_orig is not None:
            out['numcells_orig'] = self.numcells_orig

        names = [f_.name for f_ in fields(Unit) if f_.name not in ('times', 'uid', 'extra')]
        for name in names:
            if not self.has_field(name):
                continue
            values = self.values_of(name)
            key = CELLEXPLORER_NAMES.get(name, name)
            if all(np.isscalar(v) and v is not None for v in values):
                out[key] = np.asarray(values)
            else:
                out[key] = values
        extra_keys = sorted({k for u in self.units for k in u.extra})
        for key in extra_keys:
            out[key] = self.values_of(key)

        if self.processing_info is not None:
            info = asdict(self.processing_info)
            info['date'] = self.processing_info.date.isoformat()
            out['processinginfo'] = info
        return out

    def save_mat(self, filename: str) -> None:
        """Write the CellExplorer struct to a MATLAB file as variable ``spikes``."""
        from scipy.io import savemat

        struct = _mat_compatible(self.to_cellexplorer_dict())
        savemat(filename, {'spikes': struct}, long_field_names=True)
        logger.info(f"CellExplorer spikes struct saved to {filename}")

    # ------------------------------------------------------------------
    # NWB export
    # ------------------------------------------------------------------

    def to_nwb(self, filepath: str, session_description: str = "spikeimport output") -> None:
        """Write units to an NWB file with spike times, cluster and shank ids.

        Raises:
            ImportError: if pynwb is not installed.
        """
        from pynwb import NWBFile, NWBHDF5IO
        from dateutil.tz import tzlocal

        nwbfile = NWBFile(
            session_description=session_description,
            identifier=f"{self.basename or 'spikeimport'}_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            session_start_time=datetime.now(tzlocal()),
        )
        nwbfile.add_unit_column(name='cluster_id', description='Sorter-native cluster id')
        nwbfile.add_unit_column(name='shank_id', description='Electrode group id (1-indexed)')

        for unit in self.units:
            nwbfile.add_unit(
                spike_times=unit.times,
                cluster_id=-1 if unit.clu_id is None else unit.clu_id,
                shank_id=-1 if unit.shank_id is None else unit.shank_id,
            )

        with NWBHDF5IO(filepath, 'w') as io:
            io.write(nwbfile)
        logger.info(f"NWB file saved to {filepath}")
