"""
spikeimport: load spike sorting output from many sorters into one spike collection.

Public API:
    import_spikes          one-call import (options as keyword arguments)
    SpikeImporter          pipeline class
    ImportConfiguration    all import options
    SessionMetadata        channel layout, sampling rate, LSB
    SpikeCollection        output container with export methods
    Unit / UnitRecord      one unit inside / before assembly
    UnitFilter             post-hoc unit selection
"""

from spikeimport.config import (
    MIN_SUPPORTED_VERSION,
    PROCESSING_VERSION,
    ImportConfiguration,
    SpikeFormat,
    UnitFilter,
)
from spikeimport.errors import (
    FilterFieldMissingError,
    FormatNotImplementedError,
    MissingMetadataError,
    MissingSourceFileError,
    SpikeImportError,
    UnsupportedFormatError,
)
from spikeimport.metadata import SessionMetadata
from spikeimport.types import ProcessingInfo, SpikeCollection, Unit, UnitRecord
from spikeimport.dedup import deduplicate
from spikeimport.filtering import filter_units
from spikeimport.formats import available_formats, register_format
from spikeimport.core import SpikeImporter, import_spikes

__all__ = [
    "import_spikes",
    "SpikeImporter",
    "ImportConfiguration",
    "SessionMetadata",
    "SpikeCollection",
    "Unit",
    "UnitRecord",
    "ProcessingInfo",
    "UnitFilter",
    "SpikeFormat",
    "PROCESSING_VERSION",
    "MIN_SUPPORTED_VERSION",
    "SpikeImportError",
    "UnsupportedFormatError",
    "FormatNotImplementedError",
    "MissingSourceFileError",
    "MissingMetadataError",
    "FilterFieldMissingError",
    "deduplicate",
    "filter_units",
    "available_formats",
    "register_format",
]
