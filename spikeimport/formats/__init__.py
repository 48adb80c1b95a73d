"""Name-keyed registry of format adapters."""

from __future__ import annotations

import logging
from typing import Dict, List, Type

from spikeimport.config import SpikeFormat
from spikeimport.errors import FormatNotImplementedError, UnsupportedFormatError
from spikeimport.formats.base import AdapterContext, FormatAdapter

logger = logging.getLogger("spikeimport")

_REGISTRY: Dict[str, Type[FormatAdapter]] = {}

# Recognized names that have no adapter yet
RESERVED_FORMATS = (SpikeFormat.MOUNTAINSORT.value, SpikeFormat.IRONCLUST.value)


def register_format(adapter_cls: Type[FormatAdapter]) -> Type[FormatAdapter]:
    """Class decorator adding an adapter under its name and aliases."""
    for key in (adapter_cls.name, *adapter_cls.aliases):
        _REGISTRY[key.lower()] = adapter_cls
    return adapter_cls


def get_adapter_class(format_name: str) -> Type[FormatAdapter]:
    """Resolve a format name (case-insensitive) to its adapter class.

    Raises:
        FormatNotImplementedError: for recognized formats without an adapter.
        UnsupportedFormatError: for unknown names.
    """
    key = str(format_name).strip().lower()
    if key in RESERVED_FORMATS:
        raise FormatNotImplementedError(key)
    try:
        return _REGISTRY[key]
    except KeyError:
        raise UnsupportedFormatError(format_name) from None


def create_adapter(format_name: str, context: AdapterContext) -> FormatAdapter:
    return get_adapter_class(format_name)(context)


def available_formats() -> List[str]:
    return sorted(_REGISTRY)


# Adapters register themselves on import
from spikeimport.formats import (  # noqa: E402,F401
    alf,
    custom,
    kilosort,
    klustakwik,
    klustaviewa,
    mclust,
    nwb,
    phy,
    sebastienroyer,
    spyking_circus,
    ums2k,
    wave_clus,
)

__all__ = [
    "AdapterContext",
    "FormatAdapter",
    "RESERVED_FORMATS",
    "available_formats",
    "create_adapter",
    "get_adapter_class",
    "register_format",
]
