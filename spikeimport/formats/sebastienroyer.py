"""Sebastien Royer lab standard: ``<basename>.mat`` with ``spk`` and ``spkinfo`` structs."""

from __future__ import annotations

from typing import List

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import mat_field, read_mat
from spikeimport.types import UnitRecord


@register_format
class SebastienRoyerAdapter(FormatAdapter):
    name = 'sebastienroyer'
    required_metadata = ('sr',)

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        data = read_mat(ctx.in_clustering_path(f"{ctx.basename}.mat"))
        spk, spkinfo = data['spk'], data.get('spkinfo')
        cluster_index = np.atleast_1d(np.asarray(mat_field(spk, 'g'))).ravel()
        cluster_timestamps = np.atleast_1d(np.asarray(mat_field(spk, 't'), dtype=np.float64)).ravel()
        waveform = None
        if spkinfo is not None and mat_field(spkinfo, 'waveform') is not None:
            waveform = np.asarray(mat_field(spkinfo, 'waveform'), dtype=np.float64)
            if waveform.ndim == 2:
                waveform = waveform[:, :, np.newaxis]

        units = []
        for i, cluster in enumerate(np.unique(cluster_index)):
            ts = cluster_timestamps[cluster_index == cluster]
            record = UnitRecord(times=ts / ctx.sr, ts=ts, clu_id=int(cluster))
            if waveform is not None:
                record.filt_waveform_all = waveform[:, :, i]
            units.append(record)
        return units
