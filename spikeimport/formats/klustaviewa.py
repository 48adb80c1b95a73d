"""KlustaViewa / Klustasuite ``.kwik`` (HDF5) output."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import open_hdf5, read_attribute, read_dataset
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")

GOOD_CLUSTER_GROUP = 2
# Samples per recording block used by Klustasuite to concatenate recordings
RECORDING_OFFSET_SAMPLES = 40 * 40000


@register_format
class KlustaViewaAdapter(FormatAdapter):
    """Units are the clusters whose ``cluster_group`` attribute is 2 (good)."""

    name = 'klustaviewa'
    aliases = ('klustasuite',)
    required_metadata = ('sr',)

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading KlustaViewa data")
        kwik_file = ctx.in_clustering_path(f"{ctx.basename}.kwik")
        kwx_file = ctx.in_clustering_path(f"{ctx.basename}.kwx")

        units: List[UnitRecord] = []
        with open_hdf5(kwik_file) as kwik:
            if ctx.electrode_groups is not None:
                groups = list(ctx.electrode_groups)
            else:
                groups = list(range(1, len(kwik['channel_groups']) + 1))
            kwx = open_hdf5(kwx_file) if kwx_file.exists() else None
            try:
                for group in groups:
                    units.extend(self._load_group(kwik, kwx, group))
            finally:
                if kwx is not None:
                    kwx.close()
        return units

    def _load_group(self, kwik, kwx, group: int) -> List[UnitRecord]:
        ctx = self.context
        root = f"/channel_groups/{group - 1}"
        spike_times = np.asarray(read_dataset(kwik, f"{root}/spikes/time_samples"), dtype=np.float64).ravel()
        recording_nb = np.asarray(
            read_dataset(kwik, f"{root}/spikes/recording", np.zeros(spike_times.size)), dtype=np.float64
        ).ravel()
        cluster_index = np.asarray(read_dataset(kwik, f"{root}/spikes/clusters/main")).ravel()
        waveforms = None
        if kwx is not None:
            waveforms = read_dataset(kwx, f"{root}/waveforms_filtered")  # (spikes, samples, channels)

        units = []
        for cluster in np.unique(cluster_index):
            cluster_type = read_attribute(kwik, f"{root}/clusters/main/{cluster}", 'cluster_group')
            if cluster_type is None or int(cluster_type) != GOOD_CLUSTER_GROUP:
                continue
            in_cluster = cluster_index == cluster
            samples = spike_times[in_cluster] + recording_nb[in_cluster] * RECORDING_OFFSET_SAMPLES
            ts, _ = self.dedup_samples(samples)
            record = UnitRecord(
                times=ts / ctx.sr,
                ts=ts.astype(np.int64),
                shank_id=group,
                clu_id=int(cluster),
            )
            if waveforms is not None:
                snippets = np.asarray(waveforms[in_cluster], dtype=np.float64)
                record.filt_waveform_all = snippets.mean(axis=0).T
                record.filt_waveform_all_std = snippets.std(axis=0).T
            units.append(record)
        return units
