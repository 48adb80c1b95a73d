"""Phy / KiloSort2+ output (npy arrays plus a cluster label table)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from spikeimport.errors import MissingSourceFileError
from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter, peak_to_peak_channel
from spikeimport.io import mat_field, read_label_table, read_mat, read_npy, read_npy_vector, read_table
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")

CLUSTER_GROUP_TSV = 'cluster_group.tsv'      # phy1
CLUSTER_GROUPS_CSV = 'cluster_groups.csv'    # phy2
CLUSTER_KSLABEL_TSV = 'cluster_KSLabel.tsv'  # KiloSort labels


def resolve_label_file(clustering_path: Path) -> Tuple[Path, str]:
    """Pick the cluster label table and its delimiter.

    Preference order: ``cluster_group.tsv`` (unless it lists no clusters, in
    which case KiloSort's ``cluster_KSLabel.tsv`` is used), then
    ``cluster_groups.csv``, then ``cluster_KSLabel.tsv``. The first match wins
    even when later files would disagree.

    Raises:
        MissingSourceFileError: when none of the candidates exist.
    """
    group_tsv = clustering_path / CLUSTER_GROUP_TSV
    groups_csv = clustering_path / CLUSTER_GROUPS_CSV
    kslabel_tsv = clustering_path / CLUSTER_KSLABEL_TSV

    if group_tsv.exists():
        if read_label_table(group_tsv).empty:
            logger.info(f"No clusters found in {group_tsv}. Will use the labels from KiloSort")
            if not kslabel_tsv.exists():
                raise MissingSourceFileError(kslabel_tsv)
            return kslabel_tsv, '\t'
        return group_tsv, '\t'
    if groups_csv.exists():
        return groups_csv, ','
    if kslabel_tsv.exists():
        return kslabel_tsv, '\t'
    raise MissingSourceFileError(
        clustering_path / CLUSTER_GROUP_TSV,
        "Phy: No cluster group file found (cluster_group.tsv, cluster_groups.csv or cluster_KSLabel.tsv)",
    )


@register_format
class PhyAdapter(FormatAdapter):
    """Curated phy output: ``spike_clusters.npy``, ``spike_times.npy`` and a label table."""

    name = 'phy'
    required_metadata = ('sr',)

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        path = ctx.clustering_path
        logger.info("Loading Phy data")

        spike_cluster_index = read_npy_vector(path / 'spike_clusters.npy')
        spike_times = read_npy_vector(path / 'spike_times.npy')
        amplitudes_file = path / 'amplitudes.npy'
        spike_amplitudes = read_npy_vector(amplitudes_file) if amplitudes_file.exists() else None

        peak_channels = self._plugin_peak_channels(path)
        cluster_info = self._cluster_info(path)

        label_file, delimiter = resolve_label_file(path)
        labels = read_label_table(label_file, delimiter)
        include = {label.lower() for label in ctx.labels_to_include}

        templates = spike_templates = None
        if ctx.waveforms_from_source and (path / 'templates.npy').exists():
            logger.info("Getting waveforms from the phy template")
            templates = read_npy(path / 'templates.npy')
            spike_templates = read_npy_vector(path / 'spike_templates.npy')

        units: List[UnitRecord] = []
        for cluster_id, label in zip(labels['cluster_id'], labels['label']):
            if not ctx.raw_clusters and label.lower() not in include:
                continue
            ids = np.flatnonzero(spike_cluster_index == cluster_id)
            if ids.size == 0 and not ctx.raw_clusters:
                continue

            ts, kept = self.dedup_samples(spike_times[ids])
            ids = ids[kept]
            record = UnitRecord(
                times=ts / ctx.sr,
                ts=ts.astype(np.int64),
                ids=ids,
                clu_id=int(cluster_id),
                amplitudes=None if spike_amplitudes is None else spike_amplitudes[ids].astype(np.float64),
            )
            if not ctx.raw_clusters:
                self._attach_channels(record, peak_channels, cluster_info)
            if templates is not None and ids.size:
                self._attach_template(record, templates, spike_templates)
            units.append(record)

        logger.info(f"Importing {len(units)}/{len(labels)} clusters from phy")
        return units

    # ------------------------------------------------------------------
    # Optional inputs
    # ------------------------------------------------------------------

    def _plugin_peak_channels(self, path: Path) -> Optional[Dict[int, int]]:
        """Cluster id -> 1-indexed peak channel from the phy plugin files, if all present."""
        plugin_files = [path / 'cluster_ids.npy', path / 'shanks.npy', path / 'peak_channel.npy']
        if not all(f.exists() for f in plugin_files):
            return None
        cluster_ids = read_npy_vector(plugin_files[0])
        peak_channel = read_npy_vector(plugin_files[2]).astype(np.int64) + 1
        rez_file = path / 'rez.mat'
        if rez_file.exists():
            # Peak channels index the connected-channel list of KiloSort
            rez = read_mat(rez_file, variable_names=['rez'])['rez']
            connected = np.flatnonzero(np.asarray(mat_field(rez, 'connected')).ravel()) + 1
            peak_channel = connected[peak_channel - 1]
        return {int(c): int(ch) for c, ch in zip(cluster_ids, peak_channel)}

    def _cluster_info(self, path: Path) -> Optional[pd.DataFrame]:
        info_file = path / 'cluster_info.tsv'
        if not info_file.exists():
            return None
        info = read_table(info_file)
        # Recent phy2 versions renamed ``id`` to ``cluster_id``
        id_column = 'id' if 'id' in info.columns else 'cluster_id'
        return info.set_index(id_column)

    def _attach_channels(self, record: UnitRecord, peak_channels, cluster_info) -> None:
        metadata = self.context.metadata
        clu = record.clu_id
        if peak_channels is not None and clu in peak_channels:
            record.max_waveform_ch1 = peak_channels[clu]
            record.max_waveform_ch = peak_channels[clu] - 1
        if cluster_info is not None and clu in cluster_info.index:
            row = cluster_info.loc[clu]
            if 'ch' in cluster_info.columns:
                record.max_waveform_ch = int(row['ch'])
                record.max_waveform_ch1 = int(row['ch']) + 1
                record.extra['phy_max_waveform_ch1'] = int(row['ch']) + 1
            if 'amp' in cluster_info.columns:
                record.extra['phy_amp'] = float(row['amp'])
        if record.max_waveform_ch1 is not None and metadata.electrode_groups:
            shank = metadata.group_of_channel(record.max_waveform_ch1)
            if shank is not None:
                record.shank_id = shank

    def _attach_template(self, record: UnitRecord, templates: np.ndarray, spike_templates: np.ndarray) -> None:
        template_id = int(np.bincount(spike_templates[record.ids].astype(np.int64)).argmax())
        waveform_all = np.asarray(templates[template_id], dtype=np.float64).T  # channels x samples
        record.filt_waveform_all = waveform_all
        record.filt_waveform = waveform_all[peak_to_peak_channel(waveform_all)]
