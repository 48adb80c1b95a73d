"""NWB units tables (read straight from the HDF5 container) and the AllenSDK variant."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from spikeimport.errors import MissingSourceFileError
from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import open_hdf5, read_dataset, read_npy_vector, split_ragged
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")

FIELDS_TO_EXTRACT = (
    'PT_ratio', 'amplitude', 'amplitude_cutoff', 'cluster_id', 'cumulative_drift', 'd_prime',
    'firing_rate', 'id', 'isi_violations', 'isolation_distance', 'l_ratio', 'local_index',
    'max_drift', 'nn_hit_rate', 'nn_miss_rate', 'peak_channel_id', 'presence_ratio', 'quality',
    'recovery_slope', 'repolarization_slope', 'silhouette_score', 'snr', 'spike_amplitudes',
    'spike_amplitudes_index', 'spike_times', 'spike_times_index', 'spread', 'velocity_above',
    'velocity_below', 'waveform_duration', 'waveform_halfwidth', 'waveform_mean', 'waveform_mean_index',
)

# Ragged columns and their offset datasets
RAGGED_FIELDS = {
    'spike_times': 'spike_times_index',
    'spike_amplitudes': 'spike_amplitudes_index',
    'waveform_mean': 'waveform_mean_index',
}

ELECTRODE_IDS = '/general/extracellular_ephys/electrodes/id'


@register_format
class NWBAdapter(FormatAdapter):
    """Every unit in ``/units`` of ``<basepath>/<basename>.nwb``; spike times are already in seconds."""

    name = 'nwb'
    waveforms_source = 'nwb'

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info(f"Loading {self.name} data")
        nwb_file = ctx.in_basepath(f"{ctx.basename}.nwb")
        with open_hdf5(nwb_file) as h5:
            columns = self._read_units_table(h5, nwb_file)
            electrode_ids = read_dataset(h5, ELECTRODE_IDS)

        n_units = len(columns['spike_times'])
        records = []
        for j in range(n_units):
            records.append(self._make_record(columns, j, electrode_ids))
        return records

    def _read_units_table(self, h5, nwb_file: Path) -> Dict[str, Any]:
        if '/units/spike_times' not in h5 or '/units/spike_times_index' not in h5:
            raise MissingSourceFileError(f"{nwb_file}:/units/spike_times")

        columns: Dict[str, Any] = {}
        n_fields = len(FIELDS_TO_EXTRACT)
        for i, name in enumerate(FIELDS_TO_EXTRACT):
            if name in RAGGED_FIELDS.values():
                continue
            data = read_dataset(h5, f"/units/{name}")
            if data is None:
                logger.debug(f"{name} not present in units table")
                continue
            logger.debug(f"Loading {name} ({i + 1}/{n_fields})")
            if name in RAGGED_FIELDS:
                index = read_dataset(h5, f"/units/{RAGGED_FIELDS[name]}")
                columns[name] = split_ragged(np.asarray(data), index)
            else:
                columns[name] = np.asarray(data).ravel()
        return columns

    def _make_record(self, columns: Dict[str, Any], j: int, electrode_ids: Optional[np.ndarray]) -> UnitRecord:
        times = columns['spike_times'][j]
        clu_id = j + 1
        if 'cluster_id' in columns:
            clu_id = int(columns['cluster_id'][j])
        elif 'id' in columns:
            clu_id = int(columns['id'][j])

        record = UnitRecord(times=times, clu_id=clu_id)
        if 'spike_amplitudes' in columns:
            record.amplitudes = np.asarray(columns['spike_amplitudes'][j], dtype=np.float64).ravel()
        if 'amplitude' in columns:
            record.peak_voltage = float(columns['amplitude'][j])
        if 'peak_channel_id' in columns and electrode_ids is not None:
            peak_channel_id = columns['peak_channel_id'][j]
            match = np.flatnonzero(np.asarray(electrode_ids).ravel() == peak_channel_id)
            if match.size:
                record.max_waveform_ch1 = int(match[0]) + 1
                record.max_waveform_ch = int(match[0])
            record.extra['peak_channel_id'] = _scalar(peak_channel_id)

        for name, values in columns.items():
            if name in ('spike_times', 'spike_amplitudes', 'cluster_id', 'amplitude', 'peak_channel_id'):
                continue
            if name == 'waveform_mean':
                record.extra['waveform_mean'] = np.asarray(values[j])
                record.extra['waveform_mean_filt'] = record.extra['waveform_mean']
            else:
                record.extra[name] = _scalar(values[j])
        return record


@register_format
class AllenSDKAdapter(NWBAdapter):
    """Allen Institute NWB files combined with raw per-unit timestamps saved by the AllenSDK.

    Units without a ``<raw_timestamps_dir>/<id>.npy`` file are dropped. Waveforms
    are extracted per probe after assembly.
    """

    name = 'allensdk'
    required_metadata = ('electrode_groups', 'raw_timestamps_dir')
    waveforms_source = None
    extracts_waveforms = True

    def load(self) -> List[UnitRecord]:
        records = super().load()
        metadata = self.context.metadata
        raw_dir = Path(metadata.raw_timestamps_dir)

        kept: List[UnitRecord] = []
        for record in records:
            record.shank_id = metadata.group_of_channel(record.max_waveform_ch1)
            unit_id = record.extra.get('id', record.clu_id)
            raw_file = raw_dir / f"{unit_id}.npy"
            if not raw_file.exists():
                logger.debug(f"No raw timestamps for unit {unit_id}; removing it")
                continue
            record.ts = read_npy_vector(raw_file).astype(np.float64)
            kept.append(record)
        logger.info(f"Raw timestamps found for {len(kept)}/{len(records)} units")
        return kept


def _scalar(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value
