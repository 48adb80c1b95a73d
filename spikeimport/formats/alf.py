"""ALF npy datasets (cortex lab, UCL): ``clusters.*.npy`` and ``spikes.*.npy`` in the basepath."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import read_npy, read_npy_vector
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")

# _phy_annotation: 0 noise, 1 mua, 2 good, 3 other
MIN_ANNOTATION = 2
TEMPLATE_SCALE = 200


@register_format
class ALFAdapter(FormatAdapter):
    """Clusters annotated good or better (annotation >= 2). Waveforms come from the templates."""

    name = 'alf'
    required_metadata = ('sr', 'electrode_groups')
    waveforms_source = 'kilosort template'

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading ALF npy data")
        self.params['waveforms_filt_freq'] = 500

        def clusters_npy(name):
            return ctx.in_basepath(f"clusters.{name}.npy")

        def spikes_npy(name):
            return ctx.in_basepath(f"spikes.{name}.npy")

        annotation = read_npy_vector(clusters_npy('_phy_annotation'))
        peak_channel = read_npy_vector(clusters_npy('peakChannel')).astype(np.int64)
        probes = read_npy_vector(clusters_npy('probes')).astype(np.int64) + 1
        original_ids = read_npy_vector(clusters_npy('originalIDs')).astype(np.int64)
        template_waveforms = TEMPLATE_SCALE * read_npy(clusters_npy('templateWaveforms')).astype(np.float64)
        template_chans = read_npy(clusters_npy('templateWaveformChans')).astype(np.int64)

        spikes_amps = read_npy_vector(spikes_npy('amps'))
        spikes_clusters = read_npy_vector(spikes_npy('clusters')).astype(np.int64)
        spikes_depths = read_npy_vector(spikes_npy('depths'))
        spikes_times = read_npy_vector(spikes_npy('times'))

        channels_all = self._global_channels(template_chans, probes)

        units: List[UnitRecord] = []
        for cluster in np.unique(spikes_clusters):
            if annotation[cluster] < MIN_ANNOTATION:
                continue
            idx = spikes_clusters == cluster
            waveform_all = template_waveforms[cluster].T   # channels x samples, sorted by amplitude
            filt_waveform = waveform_all[0]
            n_samples = filt_waveform.size
            time_waveform = (np.arange(1, n_samples + 1) - n_samples / 2) * 1000 / ctx.sr
            record = UnitRecord(
                times=spikes_times[idx],
                amplitudes=spikes_amps[idx],
                clu_id=int(original_ids[cluster]),
                shank_id=int(probes[cluster]),
                max_waveform_ch1=int(peak_channel[cluster]),
                filt_waveform_all=waveform_all,
                filt_waveform=filt_waveform,
                channels_all=channels_all[cluster],
                time_waveform=time_waveform,
                time_waveform_all=time_waveform,
                peak_voltage=float(np.ptp(filt_waveform)),
            )
            record.extra['depths'] = np.asarray(spikes_depths[idx], dtype=np.float64)
            record.extra['phy_annotation'] = int(annotation[cluster])
            record.extra['probe'] = int(probes[cluster])
            units.append(record)
        return units

    def _global_channels(self, template_chans: np.ndarray, probes: np.ndarray) -> np.ndarray:
        """Template channels are probe-local; shift them to 1-indexed session channels."""
        per_probe = self.context.metadata.channels_per_group()
        offsets = np.cumsum([0, *per_probe])
        first_probe = per_probe[0]
        if np.any(template_chans > first_probe):
            logger.warning("ALF npy data: Some waveform channels are not aligned correctly")
        chans = np.remainder(template_chans, first_probe)
        for probe in np.unique(probes):
            chans[probes == probe] += offsets[probe - 1]
        return chans + 1
