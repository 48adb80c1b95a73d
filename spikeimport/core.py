"""spikeimport: orchestrator that turns spike sorter output into a SpikeCollection."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional

from spikeimport.assembly import assemble_collection
from spikeimport.cache import CollectionCache
from spikeimport.config import ImportConfiguration, SpikeFormat
from spikeimport.filtering import filter_units
from spikeimport.formats import AdapterContext, FormatAdapter, get_adapter_class
from spikeimport.metadata import SessionMetadata
from spikeimport.provenance import resolved_params, stamp
from spikeimport.types import SpikeCollection
from spikeimport.waveforms import extract_waveforms, extract_waveforms_per_probe, waveform_params

logger = logging.getLogger("spikeimport")


class SpikeImporter:
    """Runs one import:
    resolve locations → reuse persisted collection or rebuild (adapter → assemble
    → waveforms → provenance → persist) → unit filter.
    """

    def __init__(self, config: Optional[ImportConfiguration] = None):
        """Initialize with an ImportConfiguration (uses defaults if None)."""
        self.config = config or ImportConfiguration()
        self.metadata = self.config.session_metadata or SessionMetadata()
        self.basepath = Path(self.config.basepath)
        self.basename = self._resolve_basename()
        self.format_name = self._resolve_format()
        self.clustering_path = self._resolve_clustering_path()
        self.cache = CollectionCache(
            self.basepath, self.basename, min_version=self.config.min_supported_version,
        )
        self.adapter: Optional[FormatAdapter] = None
        self.collection: Optional[SpikeCollection] = None
        self.saved = False

    # ------------------------------------------------------------------
    # Option resolution
    # ------------------------------------------------------------------

    def _resolve_basename(self) -> str:
        if self.config.basename:
            return self.config.basename
        if self.metadata.name:
            return self.metadata.name
        return self.basepath.resolve().name

    def _resolve_format(self) -> str:
        name = self.config.format or self.metadata.spike_sorting_format or SpikeFormat.PHY.value
        return str(name.value if isinstance(name, SpikeFormat) else name)

    def _resolve_clustering_path(self) -> str:
        if self.config.clustering_path is not None:
            return str(self.config.clustering_path)
        return self.metadata.spike_sorting_path or ''

    def _resolve_lsb(self) -> float:
        """Session value when positive, otherwise the configured one (written back to the metadata)."""
        lsb = self.metadata.least_significant_bit
        if lsb is not None and lsb > 0:
            return float(lsb)
        self.metadata = replace(self.metadata, least_significant_bit=self.config.least_significant_bit)
        return float(self.config.least_significant_bit)

    # ------------------------------------------------------------------
    # Main pipeline
    # ------------------------------------------------------------------

    def run(self) -> SpikeCollection:
        """Return the session's SpikeCollection, filtered by the configured unit filter."""
        start = time.time()
        collection = None

        if self.config.force_reload:
            logger.info("Forced reload of spikes")
        else:
            collection = self.cache.load_current()
            if collection is None and not self.cache.exists() and self.config.existing_collection is not None:
                logger.info("Using existing spike collection")
                collection = self.config.existing_collection

        if collection is None:
            collection = self.rebuild()
            if self.config.save_output:
                self.saved = self.cache.save(collection)

        if not self.config.unit_filter.is_empty():
            collection = filter_units(collection, self.config.unit_filter)

        self.collection = collection
        logger.info(
            f"Spikes ready in {time.time() - start:.2f} seconds: "
            f"{collection.numcells} units, {int(collection.totals.sum()) if collection.units else 0} spikes"
        )
        return collection

    def rebuild(self) -> SpikeCollection:
        """Import from the sorter output. Nothing is persisted here."""
        # Step 1: Dispatch (unknown and reserved formats fail before any file access)
        adapter_cls = get_adapter_class(self.format_name)
        lsb = self._resolve_lsb()

        # Step 2: Read sorter output
        logger.info(f"Loading {self.format_name} data from {self.basepath / self.clustering_path}")
        context = AdapterContext(
            basepath=self.basepath,
            clustering_path=self.basepath / self.clustering_path,
            basename=self.basename,
            metadata=self.metadata,
            labels_to_include=tuple(self.config.labels_to_include),
            electrode_groups=self.config.electrode_groups,
            raw_clusters=self.config.raw_clusters,
            least_significant_bit=lsb,
            waveforms_from_source=self.config.extract_waveforms_from_source,
            spikes_times=self.config.spikes_times,
        )
        self.adapter = adapter_cls(context)
        records = self.adapter.run()

        # Step 3: Assemble
        collection = assemble_collection(records, self.basename, self.metadata.sr)

        # Step 4: Waveforms from the raw recording
        if self.config.extract_waveforms_from_raw:
            collection = self._extract_waveforms(collection)

        # Step 5: Provenance
        params: Dict[str, Any] = resolved_params(
            self.config, self.format_name, self.basename, self.clustering_path,
        )
        params.update(self.adapter.params)
        params.update(waveform_params(collection))
        return stamp(collection, params)

    def _extract_waveforms(self, collection: SpikeCollection) -> SpikeCollection:
        extractor = self.config.waveform_extractor
        if extractor is None:
            logger.warning("No waveform extractor configured; skipping waveform extraction")
            return collection
        if collection.numcells == 0:
            return collection
        if self.adapter is not None and self.adapter.extracts_waveforms:
            return extract_waveforms_per_probe(collection, self.metadata, extractor, n_jobs=self.config.n_jobs)
        return extract_waveforms(collection, self.metadata, extractor)


def import_spikes(config: Optional[ImportConfiguration] = None, **options: Any) -> SpikeCollection:
    """Import spike sorting output as a SpikeCollection.

    Args:
        config: Base configuration (defaults if None).
        **options: ImportConfiguration fields overriding ``config``.

    Returns:
        The (possibly persisted, possibly filtered) SpikeCollection.

    Raises:
        UnsupportedFormatError: unknown format name.
        FormatNotImplementedError: recognized format without an adapter.
        MissingSourceFileError: a required sorter file is missing.
        MissingMetadataError: session metadata lacks a required field.
        TypeError: unknown option name.
    """
    if options:
        config = ImportConfiguration.from_options(config, **options)
    return SpikeImporter(config).run()
