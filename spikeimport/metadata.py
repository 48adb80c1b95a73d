"""Session metadata supplied by the caller (channel layout, sampling rate, LSB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from spikeimport.errors import MissingMetadataError

logger = logging.getLogger("spikeimport")


@dataclass
class SessionMetadata:
    """Recording session description needed by the adapters and waveform extractor.

    ``electrode_groups`` holds one array of 1-indexed channel numbers per group;
    group ``k`` in that list is electrode group / shank ``k + 1``.
    """
    name: Optional[str] = None
    basepath: Optional[str] = None
    sr: Optional[float] = None
    n_channels: Optional[int] = None
    electrode_groups: List[np.ndarray] = field(default_factory=list)
    electrode_group_labels: List[str] = field(default_factory=list)
    least_significant_bit: Optional[float] = None
    bad_channels: List[int] = field(default_factory=list)
    brain_regions: Dict[str, List[int]] = field(default_factory=dict)
    spike_sorting_format: Optional[str] = None
    spike_sorting_path: Optional[str] = None
    raw_timestamps_dir: Optional[str] = None
    file_name: Optional[str] = None

    def __post_init__(self):
        self.electrode_groups = [np.asarray(ch, dtype=np.int64).ravel() for ch in self.electrode_groups]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionMetadata":
        """Create metadata from a plain mapping (e.g. a parsed session JSON)."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        ignored = sorted(set(data) - set(known))
        if ignored:
            logger.debug(f"Ignoring unknown session metadata keys: {ignored}")
        return cls(**known)

    @property
    def n_electrode_groups(self) -> int:
        return len(self.electrode_groups)

    def require(self, *names: str) -> None:
        """Raise MissingMetadataError for the first field in ``names`` that is unset or empty."""
        for name in names:
            value = getattr(self, name, None)
            if value is None:
                raise MissingMetadataError(name)
            if isinstance(value, (list, dict)) and len(value) == 0:
                raise MissingMetadataError(name)

    def group_of_channel(self, channel1: Optional[int]) -> Optional[int]:
        """Return the 1-indexed electrode group containing a 1-indexed channel, or None.

        When several groups list the channel the last one wins.
        """
        if channel1 is None:
            return None
        found = None
        for k, channels in enumerate(self.electrode_groups):
            if np.any(channels == channel1):
                found = k + 1
        return found

    def for_probe(self, probe: int) -> "SessionMetadata":
        """Metadata restricted to one electrode group (1-indexed), channels renumbered from 1.

        Used for per-probe waveform extraction where each probe has its own
        ``<label>/spike_band.dat`` file.
        """
        self.require('electrode_groups')
        channels = self.electrode_groups[probe - 1]
        offset = self.channel_offset(probe)
        label = (
            self.electrode_group_labels[probe - 1]
            if len(self.electrode_group_labels) >= probe
            else f"probe{probe}"
        )
        bad = [int(c) - offset for c in self.bad_channels if int(c) in set(channels.tolist())]
        return replace(
            self,
            n_channels=len(channels),
            electrode_groups=[np.arange(1, len(channels) + 1)],
            electrode_group_labels=[label],
            bad_channels=bad,
            brain_regions={},
            file_name=f"{label}/spike_band.dat",
        )

    def channel_offset(self, probe: int) -> int:
        """Number of channels on the electrode groups preceding ``probe`` (1-indexed)."""
        return int(sum(len(ch) for ch in self.electrode_groups[:probe - 1]))

    def channels_per_group(self) -> Sequence[int]:
        return [len(ch) for ch in self.electrode_groups]
