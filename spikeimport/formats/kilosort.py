"""KiloSort ``rez.mat`` results without phy curation."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from spikeimport.config import KILOSORT_TOLERANCE_DIVISOR
from spikeimport.errors import MissingSourceFileError
from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import mat_field, read_mat
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


@register_format
class KiloSortAdapter(FormatAdapter):
    """All clusters of ``rez.st3``; column 5 holds post-merge clusters when present, else templates."""

    name = 'kilosort'
    required_metadata = ('sr',)

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading KiloSort data (the rez.mat file)")
        rez_file = ctx.in_clustering_path('rez.mat')
        if not rez_file.exists():
            raise MissingSourceFileError(rez_file, "rez.mat file does not exist")
        rez = read_mat(rez_file, variable_names=['rez'])['rez']

        st3 = np.atleast_2d(np.asarray(mat_field(rez, 'st3'), dtype=np.float64))
        if st3.shape[1] > 4:
            spike_cluster_index = st3[:, 4].astype(np.int64)
        else:
            spike_cluster_index = st3[:, 1].astype(np.int64) - 1   # templates are 1-indexed
        spike_times = st3[:, 0]
        spike_amplitudes = st3[:, 2]

        U = mat_field(rez, 'U')
        i_neigh = mat_field(rez, 'iNeigh')
        if U is not None:
            U = np.asarray(U, dtype=np.float64)
            if U.ndim == 2:
                U = U[:, :, np.newaxis]
        if i_neigh is not None:
            i_neigh = np.atleast_2d(np.asarray(i_neigh)).astype(np.int64)

        tolerance = ctx.sr / KILOSORT_TOLERANCE_DIVISOR   # about 1 ms in samples
        units: List[UnitRecord] = []
        for cluster in np.unique(spike_cluster_index):
            ids = np.flatnonzero(spike_cluster_index == cluster)
            ts, kept = self.dedup_samples(spike_times[ids], tolerance)
            ids = ids[kept]
            record = UnitRecord(
                times=ts / ctx.sr,
                ts=ts.astype(np.int64),
                ids=ids,
                clu_id=int(cluster),
                amplitudes=spike_amplitudes[ids],
            )
            if U is not None and i_neigh is not None and cluster < i_neigh.shape[1]:
                nearest = i_neigh[0, cluster] - 1
                record.max_waveform_ch1 = int(np.argmax(np.abs(U[:, nearest, 0]))) + 1
                record.max_waveform_ch = record.max_waveform_ch1 - 1
            units.append(record)
        return units
