"""Provenance stamp attached to every rebuilt collection."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional

from spikeimport.config import PROCESSING_FUNCTION, PROCESSING_VERSION, ImportConfiguration
from spikeimport.types import ProcessingInfo, SpikeCollection


def resolved_params(config: ImportConfiguration, format_name: str, basename: str,
                    clustering_path: str) -> Dict[str, Any]:
    """The parameter set a rebuild actually ran with."""
    return {
        'force_reload': config.force_reload,
        'electrode_groups': None if config.electrode_groups is None else list(config.electrode_groups),
        'raw_clusters': config.raw_clusters,
        'extract_waveforms_from_raw': config.extract_waveforms_from_raw,
        'extract_waveforms_from_source': config.extract_waveforms_from_source,
        'basename': basename,
        'format': format_name,
        'clustering_path': clustering_path,
        'basepath': str(config.basepath),
        'labels_to_include': list(config.labels_to_include),
    }


def stamp(collection: SpikeCollection, params: Dict[str, Any],
          date: Optional[datetime] = None) -> SpikeCollection:
    """Return ``collection`` with function name, version, date and ``params`` recorded."""
    info = ProcessingInfo(
        function=PROCESSING_FUNCTION,
        version=PROCESSING_VERSION,
        date=date or datetime.now(),
        params=dict(params),
    )
    return replace(collection, processing_info=info)
