"""Post-hoc unit filtering by uid, shank, cluster id and region."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, List, Sequence

import numpy as np

from spikeimport.config import UnitFilter
from spikeimport.errors import FilterFieldMissingError
from spikeimport.types import SpikeCollection

logger = logging.getLogger("spikeimport")


def filter_units(collection: SpikeCollection, criteria: UnitFilter) -> SpikeCollection:
    """Keep only units whose values fall in every allowed set of ``criteria``.

    Criteria are applied in the order uid, shank_id, clu_id, region. A
    criterion naming a field no unit carries is skipped with a warning. Units
    are removed whole, so all per-unit data stays aligned; surviving units are
    not modified. ``numcells_orig`` records the unit count before the first
    filtering and is never overwritten.

    Returns:
        A new SpikeCollection (the input is left untouched).
    """
    result = collection
    if result.numcells_orig is None:
        result = replace(result, numcells_orig=result.numcells)
    for name, allowed in criteria.criteria():
        try:
            values = _field_values(result, name)
        except FilterFieldMissingError as e:
            logger.warning(str(e))
            continue
        keep = _isin(values, allowed)
        result = remove_units(result, ~keep)
    return result


def remove_units(collection: SpikeCollection, to_remove: np.ndarray) -> SpikeCollection:
    """Drop the units flagged in the boolean mask ``to_remove`` (unit order)."""
    to_remove = np.asarray(to_remove, dtype=bool)
    units = [u for u, drop in zip(collection.units, to_remove) if not drop]
    numcells_orig = collection.numcells_orig
    if numcells_orig is None:
        numcells_orig = collection.numcells
    n_removed = int(to_remove.sum())
    if n_removed:
        logger.info(f"Removed {n_removed} of {collection.numcells} units")
    return replace(collection, units=units, numcells_orig=numcells_orig)


def _field_values(collection: SpikeCollection, name: str) -> List[Any]:
    if collection.units and not collection.has_field(name):
        raise FilterFieldMissingError(name)
    return collection.values_of(name)


def _isin(values: Sequence[Any], allowed: Sequence[Any]) -> np.ndarray:
    allowed_set = set(np.atleast_1d(np.asarray(allowed, dtype=object)).tolist())
    return np.array([v is not None and v in allowed_set for v in values], dtype=bool)
