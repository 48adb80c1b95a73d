"""Custom format: spike times passed in directly, one array per unit."""

from __future__ import annotations

from typing import List

from spikeimport.errors import MissingSourceFileError
from spikeimport.formats import register_format
from spikeimport.formats.base import FormatAdapter
from spikeimport.types import UnitRecord


@register_format
class CustomAdapter(FormatAdapter):
    """Units from the ``spikes_times`` option (seconds); cluster ids are 1..N."""

    name = 'custom'

    def load(self) -> List[UnitRecord]:
        spikes_times = self.context.spikes_times
        if spikes_times is None:
            raise MissingSourceFileError('spikes_times', "Custom format requires the 'spikes_times' option")
        return [
            UnitRecord(times=times, clu_id=i + 1)
            for i, times in enumerate(spikes_times)
        ]
