"""Klustakwik / Neurosuite per-electrode-group ``.clu``, ``.res`` and ``.spk`` files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

import numpy as np

from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter, peak_to_peak_channel
from spikeimport.io import read_int16, read_text_column
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


def detect_electrode_groups(path: Path, basename: str) -> List[int]:
    """Electrode groups with a ``<basename>.res.<n>`` file, ascending."""
    pattern = re.compile(re.escape(basename) + r'\.res\.(\d+)$')
    groups = []
    for candidate in path.glob(f"{basename}.res.*"):
        match = pattern.match(candidate.name)
        if match:
            groups.append(int(match.group(1)))
    return sorted(groups)


@register_format
class KlustakwikAdapter(FormatAdapter):
    """Clusters 0 (noise) and 1 (MUA) are discarded; every other cluster becomes a unit."""

    name = 'klustakwik'
    aliases = ('neurosuite',)
    required_metadata = ('sr',)
    waveforms_source = 'spk files'

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading Klustakwik data")
        if ctx.waveforms_from_source:
            ctx.metadata.require('electrode_groups')

        source_dir = ctx.clustering_path / 'OriginalClus' if ctx.raw_clusters else ctx.clustering_path
        groups = list(ctx.electrode_groups) if ctx.electrode_groups is not None else \
            detect_electrode_groups(ctx.clustering_path, ctx.basename)

        units: List[UnitRecord] = []
        for k, group in enumerate(groups):
            clu_file = source_dir / f"{ctx.basename}.clu.{group}"
            if not clu_file.exists():
                logger.info(f".clu.{group} file not found. Skipping electrode group #{group} ({k + 1}/{len(groups)})")
                continue
            logger.info(f"Loading electrode group #{group} ({k + 1}/{len(groups)})")
            # First line of a .clu file is the number of clusters
            cluster_index = read_text_column(clu_file)[1:]
            time_stamps = read_text_column(source_dir / f"{ctx.basename}.res.{group}")

            waveforms = None
            if ctx.waveforms_from_source and not ctx.raw_clusters and time_stamps.size > 0:
                waveforms = self._read_spk(group, n_spikes=time_stamps.size)

            clusters = np.unique(cluster_index)
            for cluster in clusters[clusters > 1]:
                in_cluster = cluster_index == cluster
                ts, _ = self.dedup_samples(time_stamps[in_cluster])
                record = UnitRecord(
                    times=ts / ctx.sr,
                    ts=ts.astype(np.int64),
                    shank_id=group,
                    clu_id=int(cluster),
                )
                if waveforms is not None:
                    self._attach_waveforms(record, waveforms[in_cluster], group)
                units.append(record)
        return units

    def _read_spk(self, group: int, n_spikes: int) -> Optional[np.ndarray]:
        """Spike snippets as (spikes, samples, channels) in uV."""
        ctx = self.context
        raw = read_int16(ctx.clustering_path / f"{ctx.basename}.spk.{group}")
        n_channels = len(ctx.metadata.electrode_groups[group - 1])
        n_samples = raw.size // (n_spikes * n_channels)
        return ctx.least_significant_bit * raw.astype(np.float64).reshape(n_spikes, n_samples, n_channels)

    def _attach_waveforms(self, record: UnitRecord, snippets: np.ndarray, group: int) -> None:
        channels = self.context.metadata.electrode_groups[group - 1]
        waveform_all = snippets.mean(axis=0).T                 # channels x samples
        record.filt_waveform_all = waveform_all
        record.filt_waveform_all_std = snippets.std(axis=0, ddof=1).T if snippets.shape[0] > 1 \
            else np.zeros_like(waveform_all)
        index1 = peak_to_peak_channel(waveform_all)
        record.max_waveform_ch1 = int(channels[index1])
        record.max_waveform_ch = int(channels[index1]) - 1
        record.filt_waveform = waveform_all[index1]
        record.peak_voltage = float(np.ptp(record.filt_waveform))
