"""Waveform extraction hooks: a single pass over the collection, or per probe in parallel."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Dict, List

import numpy as np

from spikeimport.metadata import SessionMetadata
from spikeimport.types import WAVEFORM_FIELDS, SpikeCollection

logger = logging.getLogger("spikeimport")

# (collection, metadata) -> collection with waveform fields added, same uid order
WaveformExtractor = Callable[[SpikeCollection, SessionMetadata], SpikeCollection]

# processing params an extractor may report about itself
WAVEFORM_PARAMS = (
    'waveforms_source', 'waveforms_filt_freq', 'waveforms_n_pull',
    'waveforms_win_sec', 'waveforms_win_keep', 'waveforms_filter_type',
)


def extract_waveforms(
    collection: SpikeCollection,
    metadata: SessionMetadata,
    extractor: WaveformExtractor,
) -> SpikeCollection:
    """Run ``extractor`` once over the whole collection.

    Raises:
        ValueError: if the extractor changed the set or order of units.
    """
    metadata.require('sr', 'n_channels')
    logger.info(f"Getting waveforms for {collection.numcells} units from the raw recording")
    result = extractor(collection, metadata)
    _check_alignment(collection, result)
    return result


def extract_waveforms_per_probe(
    collection: SpikeCollection,
    metadata: SessionMetadata,
    extractor: WaveformExtractor,
    n_jobs: int = 1,
) -> SpikeCollection:
    """Extract waveforms separately for each electrode group (probe) and merge the results.

    Every probe has its own raw file and unit subset, so tasks share nothing.
    All tasks finish before anything is merged; a failing task raises and no
    merged collection is returned. Channel numbers reported by the extractor
    are probe-local and are shifted by the number of channels on the
    preceding probes.
    """
    metadata.require('electrode_groups')
    shank_ids = np.array([-1 if u.shank_id is None else u.shank_id for u in collection.units])
    probes = [p for p in range(1, metadata.n_electrode_groups + 1) if np.any(shank_ids == p)]
    if not probes:
        logger.warning("No units assigned to any probe; skipping waveform extraction")
        return collection

    tasks = []
    for probe in probes:
        units = [u for u in collection.units if u.shank_id == probe]
        sub_collection = replace(collection, units=units)
        tasks.append((probe, sub_collection, metadata.for_probe(probe)))
    offsets = {probe: metadata.channel_offset(probe) for probe in probes}
    logger.info(f"Applying channel offset: {[offsets[p] for p in probes]}")

    def run(task):
        probe, sub_collection, probe_metadata = task
        logger.info(
            f"Getting waveforms from {sub_collection.numcells} cells from binary file "
            f"({probe}/{metadata.n_electrode_groups})"
        )
        return extract_waveforms(sub_collection, probe_metadata, extractor)

    if n_jobs > 1 and len(tasks) > 1:
        logger.info(f"Extracting waveforms with {min(n_jobs, len(tasks))} workers")
        with ThreadPoolExecutor(max_workers=min(n_jobs, len(tasks))) as executor:
            results = list(executor.map(run, tasks))
    else:
        results = [run(task) for task in tasks]

    return _merge_probe_results(collection, probes, results, offsets)


def _merge_probe_results(
    collection: SpikeCollection,
    probes: List[int],
    results: List[SpikeCollection],
    offsets: Dict[int, int],
) -> SpikeCollection:
    by_uid = {}
    for probe, result in zip(probes, results):
        for unit in result.units:
            by_uid[unit.uid] = (unit, offsets[probe])

    merged_units = []
    for unit in collection.units:
        if unit.uid not in by_uid:
            merged_units.append(unit)
            continue
        extracted, offset = by_uid[unit.uid]
        changes = {name: getattr(extracted, name) for name in WAVEFORM_FIELDS}
        if changes['max_waveform_ch1'] is not None:
            changes['max_waveform_ch1'] = changes['max_waveform_ch1'] + offset
            changes['max_waveform_ch'] = changes['max_waveform_ch1'] - 1
        if changes['channels_all'] is not None:
            changes['channels_all'] = np.asarray(changes['channels_all']) + offset
        merged_units.append(replace(unit, **changes))

    # Waveform parameters are reported by the last probe processed
    return replace(collection, units=merged_units, processing_info=results[-1].processing_info)


def waveform_params(collection: SpikeCollection) -> Dict[str, object]:
    """Waveform-related processing params an extractor left on the collection."""
    if collection.processing_info is None:
        return {}
    return {k: v for k, v in collection.processing_info.params.items() if k in WAVEFORM_PARAMS}


def _check_alignment(before: SpikeCollection, after: SpikeCollection) -> None:
    if not np.array_equal(before.uids, after.uids):
        raise ValueError("Waveform extractor must return the same units in the same order")
