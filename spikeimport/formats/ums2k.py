"""UltraMegaSort2000 ``times_raw_elec_CH<n>.mat`` files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Tuple

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import mat_field, read_mat
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")

CHANNEL_FILE = re.compile(r'^times_raw_elec_CH(\d+)\.mat$')
GOOD_LABEL = 2
VOLTS_TO_UV = 1e6


def channel_files(path: Path) -> List[Tuple[Path, int]]:
    """(file, 1-indexed channel) pairs sorted by file name."""
    found = []
    for candidate in sorted(path.glob('times_raw_elec_CH*.mat')):
        match = CHANNEL_FILE.match(candidate.name)
        if match:
            found.append((candidate, int(match.group(1))))
    return found


@register_format
class UMS2kAdapter(FormatAdapter):
    """Clusters labelled good (2); each channel file is its own electrode group."""

    name = 'ultramegasort2000'
    aliases = ('ums2k',)
    waveforms_source = 'ultramegasort2000'

    def load(self) -> List[UnitRecord]:
        units: List[UnitRecord] = []
        for channel_file, channel in channel_files(self.context.clustering_path):
            logger.debug(f"Loading {channel_file.name}")
            spikes = read_mat(channel_file, variable_names=['spikes'])['spikes']
            units.extend(self._load_channel(spikes, channel))
        return units

    def _load_channel(self, spikes, channel: int) -> List[UnitRecord]:
        labels = np.atleast_2d(np.asarray(mat_field(spikes, 'labels')))
        assigns = np.atleast_1d(np.asarray(mat_field(spikes, 'assigns'))).ravel()
        spiketimes = np.atleast_1d(np.asarray(mat_field(spikes, 'spiketimes'), dtype=np.float64)).ravel()
        trials = mat_field(spikes, 'trials')
        waveforms = np.asarray(mat_field(spikes, 'waveforms'), dtype=np.float64)
        if waveforms.ndim == 1:
            waveforms = waveforms[np.newaxis]
        params = mat_field(spikes, 'params')
        fs = float(mat_field(params, 'Fs'))
        cross_time = float(mat_field(params, 'cross_time'))

        units = []
        for clu_id, label in labels[:, :2]:
            if int(label) != GOOD_LABEL:
                continue
            idx = assigns == clu_id
            snippets = waveforms[idx]
            filt_waveform = VOLTS_TO_UV * snippets.mean(axis=0)
            record = UnitRecord(
                times=spiketimes[idx],
                clu_id=int(clu_id),
                shank_id=channel,
                max_waveform_ch1=channel,
                filt_waveform=filt_waveform,
                filt_waveform_std=VOLTS_TO_UV * snippets.std(axis=0, ddof=1) if snippets.shape[0] > 1
                else np.zeros_like(filt_waveform),
                time_waveform=np.arange(waveforms.shape[1]) / fs * 1000 - cross_time,
                peak_voltage=float(np.ptp(filt_waveform)),
            )
            if trials is not None:
                record.extra['trials'] = np.atleast_1d(np.asarray(trials, dtype=np.float64)).ravel()[idx]
            units.append(record)
        return units
