"""Wave_clus ``times_*.mat`` files, one per recording channel."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import mat_field, read_mat
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


@register_format
class WaveClusAdapter(FormatAdapter):
    """Clusters > 0 of each file; file k (in name order) is channel k on shank 1."""

    name = 'wave_clus'

    def load(self) -> List[UnitRecord]:
        files = sorted(self.context.clustering_path.glob('times_*.mat'))
        units: List[UnitRecord] = []
        for channel, times_file in enumerate(files, start=1):
            logger.debug(f"Loading {times_file.name}")
            data = read_mat(times_file)
            units.extend(self._load_channel(data, channel))
        return units

    def _load_channel(self, data, channel: int) -> List[UnitRecord]:
        cluster_class = np.atleast_2d(np.asarray(data['cluster_class'], dtype=np.float64))
        spikes = np.atleast_2d(np.asarray(data['spikes'], dtype=np.float64))
        par = data['par']
        sr = float(mat_field(par, 'sr'))
        w_pre = int(mat_field(par, 'w_pre'))
        w_post = int(mat_field(par, 'w_post'))
        time_waveform = np.arange(-w_pre + 1, w_post + 1) * 1000 / sr

        units = []
        clusters = np.unique(cluster_class[:, 0])
        for cluster in clusters[clusters > 0]:
            idx = cluster_class[:, 0] == cluster
            snippets = spikes[idx]
            filt_waveform = snippets.mean(axis=0)
            units.append(UnitRecord(
                times=cluster_class[idx, 1] / 1000,   # ms -> s
                clu_id=int(cluster),
                shank_id=1,
                max_waveform_ch1=channel,
                filt_waveform=filt_waveform,
                filt_waveform_std=snippets.std(axis=0, ddof=1) if snippets.shape[0] > 1
                else np.zeros_like(filt_waveform),
                time_waveform=time_waveform,
                peak_voltage=float(np.ptp(filt_waveform)),
            ))
        return units
