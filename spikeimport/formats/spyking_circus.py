"""SpyKING CIRCUS ``<basename>.result[-merged].hdf5`` output."""

from __future__ import annotations

import logging
from typing import List

import numpy as np

from spikeimport.errors import MissingSourceFileError
from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.io import first_existing, open_hdf5, read_dataset
from spikeimport.types import UnitRecord

logger = logging.getLogger("spikeimport")


def _first_column(data) -> np.ndarray:
    data = np.asarray(data)
    return data.reshape(data.shape[0], -1)[:, 0] if data.size else data.ravel()


@register_format
class SpykingCircusAdapter(FormatAdapter):
    """One unit per template; the merged result file is preferred over the raw one."""

    name = 'spyking circus'
    aliases = ('spykingcircus', 'spyking_circus')
    required_metadata = ('sr',)

    def load(self) -> List[UnitRecord]:
        ctx = self.context
        logger.info("Loading SpyKING CIRCUS data")
        merged = ctx.in_clustering_path(f"{ctx.basename}.result-merged.hdf5")
        plain = ctx.in_clustering_path(f"{ctx.basename}.result.hdf5")
        result_file = first_existing([merged, plain])
        if result_file is None:
            raise MissingSourceFileError(plain)

        units: List[UnitRecord] = []
        with open_hdf5(result_file) as h5:
            template_names = list(h5['spiketimes'].keys())
            for i, template in enumerate(template_names, start=1):
                samples = _first_column(read_dataset(h5, f"spiketimes/{template}")).astype(np.float64)
                amplitudes = read_dataset(h5, f"amplitudes/{template}")
                units.append(UnitRecord(
                    times=samples / ctx.sr,
                    ts=samples,
                    clu_id=i,
                    amplitudes=None if amplitudes is None else _first_column(amplitudes).astype(np.float64),
                ))
        return units
