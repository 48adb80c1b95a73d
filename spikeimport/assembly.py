"""Canonical collection assembly: concatenate adapter output, assign uids, enforce spike order."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Iterable, List, Optional

import numpy as np

from spikeimport.config import DEDUP_TOLERANCE_S
from spikeimport.dedup import deduplicate
from spikeimport.types import SpikeCollection, Unit, UnitRecord

logger = logging.getLogger("spikeimport")

_RECORD_FIELDS = tuple(f.name for f in fields(UnitRecord))


def assemble_collection(
    records: Iterable[UnitRecord],
    basename: str,
    sr: Optional[float],
    tolerance_s: float = DEDUP_TOLERANCE_S,
) -> SpikeCollection:
    """Build a SpikeCollection from adapter records in the order given.

    Units get ``uid = 1..N``. Spike trains that are not strictly increasing by
    more than ``tolerance_s`` are sorted and deduplicated, with every per-spike
    field realigned. Fields a record does not carry stay unset.
    """
    units: List[Unit] = []
    for uid, record in enumerate(records, start=1):
        values = {name: getattr(record, name) for name in _RECORD_FIELDS}
        values['extra'] = dict(record.extra)
        unit = Unit(**values, uid=uid)
        _enforce_spike_order(unit, tolerance_s)
        units.append(unit)

    collection = SpikeCollection(units=units, basename=basename, sr=sr)
    logger.info(f"Assembled {collection.numcells} units for {basename}")
    return collection


def _enforce_spike_order(unit: Unit, tolerance_s: float) -> None:
    times = unit.times
    if times.size < 2 or np.all(np.diff(times) > tolerance_s):
        return
    per_spike = unit.per_spike_fields()
    unique_times, kept = deduplicate(times, tolerance_s)
    logger.warning(
        f"Unit {unit.uid} (cluster {unit.clu_id}): {times.size - unique_times.size} spikes removed "
        f"while sorting/deduplicating spike times"
    )
    unit.times = unique_times
    for name, values in per_spike.items():
        if name in unit.extra:
            unit.extra[name] = values[kept]
        else:
            setattr(unit, name, values[kept])
