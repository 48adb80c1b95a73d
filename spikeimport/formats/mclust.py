"""MClust tetrode files (``TT*.mat`` with ``.clusters`` and feature ``.fd`` files)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter, peak_to_peak_channel
from spikeimport.io import as_cell_list, mat_field, read_mat, read_npy_vector
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


def tetrode_files(path: Path) -> List[Path]:
    """``TT*.mat`` files without an underscore in their name, sorted by name."""
    return sorted(p for p in path.glob('TT*.mat') if '_' not in p.name)


@register_format
class MClustAdapter(FormatAdapter):
    """Every MClust cluster on every tetrode; tetrode k (in name order) is shank k."""

    name = 'mclust'
    required_metadata = ('electrode_groups',)
    waveforms_source = 'spk files'

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading MClust data")
        files = tetrode_files(ctx.clustering_path)

        open_ephys_start: Optional[float] = None
        timestamps_file = ctx.in_clustering_path('timestamps.npy')
        if timestamps_file.exists():
            # Open Ephys recordings do not start at time zero
            open_ephys_start = float(read_npy_vector(timestamps_file)[0])

        units: List[UnitRecord] = []
        for i_tetrode, tetrode_file in enumerate(files, start=1):
            logger.info(f"Loading tetrode {i_tetrode}/{len(files)}")
            stem = tetrode_file.with_suffix('')
            clusters_file = Path(f"{stem}.clusters")
            if not clusters_file.exists():
                logger.info(f"{clusters_file.name} not found. Skipping tetrode {i_tetrode}")
                continue
            units.extend(self._load_tetrode(tetrode_file, stem, i_tetrode, open_ephys_start))
        return units

    def _load_tetrode(self, tetrode_file: Path, stem: Path, shank: int,
                      open_ephys_start: Optional[float]) -> List[UnitRecord]:
        ctx = self.context
        tetrode = read_mat(tetrode_file)
        time_stamps = np.asarray(tetrode['TimeStamps'], dtype=np.float64).ravel()
        waveforms = np.asarray(tetrode['WaveForms'], dtype=np.float64)  # (spikes, channels, samples)
        if waveforms.ndim == 2:
            waveforms = waveforms[np.newaxis]
        clusters = as_cell_list(read_mat(f"{stem}.clusters")['MClust_Clusters'])
        energy = np.atleast_2d(read_mat(f"{stem}_Energy.fd")['FeatureData'])
        amplitude = np.atleast_2d(read_mat(f"{stem}_Amplitude.fd")['FeatureData'])
        channels = ctx.metadata.electrode_groups[shank - 1]

        units = []
        for i, cluster in enumerate(clusters, start=1):
            points = np.atleast_1d(np.asarray(mat_field(cluster, 'myPoints'))).astype(np.int64) - 1
            times = time_stamps[points]
            waveform_all = waveforms[points].mean(axis=0)   # channels x samples
            index1 = peak_to_peak_channel(waveform_all)
            filt_waveform = waveform_all[index1]
            record = UnitRecord(
                times=times,
                shank_id=shank,
                clu_id=i,
                filt_waveform_all=waveform_all,
                filt_waveform=filt_waveform,
                channels_all=channels,
                max_waveform_ch1=int(channels[index1]),
                peak_voltage=float(np.ptp(filt_waveform)),
            )
            if open_ephys_start is not None:
                record.ts = np.round(times * ctx.sr) - open_ephys_start
            record.extra['energy'] = energy[points, index1].astype(np.float64)
            record.extra['amplitude'] = amplitude[points, index1].astype(np.float64)
            units.append(record)
        return units
