"""Waveform extraction hooks, including per-probe parallel extraction."""

import threading
from dataclasses import replace

import numpy as np
import pytest

from spikeimport.metadata import SessionMetadata
from spikeimport.types import ProcessingInfo, SpikeCollection, Unit
from spikeimport.waveforms import extract_waveforms, extract_waveforms_per_probe, waveform_params

from conftest import BASENAME, SR


@pytest.fixture
def probe_metadata():
    return SessionMetadata(
        sr=SR,
        n_channels=7,
        electrode_groups=[[1, 2, 3], [4, 5, 6, 7]],
        electrode_group_labels=['probeA', 'probeB'],
    )


@pytest.fixture
def probe_collection():
    units = [
        Unit(uid=1, times=[0.1], shank_id=1),
        Unit(uid=2, times=[0.2], shank_id=2),
        Unit(uid=3, times=[0.3], shank_id=2),
    ]
    return SpikeCollection(units=units, basename=BASENAME, sr=SR)


class FakeExtractor:
    """Marks channel 1 (probe-local) as the peak and records the files it was asked to read."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.files = []
        self.lock = threading.Lock()

    def __call__(self, collection, metadata):
        with self.lock:
            self.files.append(metadata.file_name)
        if self.fail_on is not None and metadata.file_name == self.fail_on:
            raise RuntimeError("cannot read raw data")
        units = [
            replace(
                u,
                max_waveform_ch=0,
                max_waveform_ch1=1,
                channels_all=np.arange(1, metadata.n_channels + 1),
                filt_waveform=np.ones(4),
            )
            for u in collection.units
        ]
        info = ProcessingInfo(function='fake', version=1.0, params={'waveforms_filt_freq': 500})
        return replace(collection, units=units, processing_info=info)


class TestExtractWaveforms:

    def test_single_pass(self, probe_collection, probe_metadata):
        extractor = FakeExtractor()
        result = extract_waveforms(probe_collection, probe_metadata, extractor)
        assert [u.max_waveform_ch1 for u in result.units] == [1, 1, 1]
        assert extractor.files == [None]

    def test_requires_channel_count(self, probe_collection):
        with pytest.raises(ValueError):
            extract_waveforms(probe_collection, SessionMetadata(sr=SR), FakeExtractor())

    def test_reordered_units_are_rejected(self, probe_collection, probe_metadata):
        def reverse(collection, metadata):
            return replace(collection, units=list(reversed(collection.units)))

        with pytest.raises(ValueError, match="same order"):
            extract_waveforms(probe_collection, probe_metadata, reverse)

    def test_waveform_params(self, probe_collection, probe_metadata):
        result = extract_waveforms(probe_collection, probe_metadata, FakeExtractor())
        assert waveform_params(result) == {'waveforms_filt_freq': 500}
        assert waveform_params(probe_collection) == {}


class TestExtractWaveformsPerProbe:

    @pytest.mark.parametrize("n_jobs", [1, 2])
    def test_channel_offsets(self, probe_collection, probe_metadata, n_jobs):
        extractor = FakeExtractor()
        result = extract_waveforms_per_probe(probe_collection, probe_metadata, extractor, n_jobs=n_jobs)
        np.testing.assert_array_equal(result.uids, [1, 2, 3])
        # probe B follows the three channels of probe A
        assert [u.max_waveform_ch1 for u in result.units] == [1, 4, 4]
        assert [u.max_waveform_ch for u in result.units] == [0, 3, 3]
        np.testing.assert_array_equal(result.units[0].channels_all, [1, 2, 3])
        np.testing.assert_array_equal(result.units[1].channels_all, [4, 5, 6, 7])
        assert sorted(extractor.files) == ['probeA/spike_band.dat', 'probeB/spike_band.dat']

    def test_spike_data_is_kept(self, probe_collection, probe_metadata):
        result = extract_waveforms_per_probe(probe_collection, probe_metadata, FakeExtractor())
        np.testing.assert_allclose(result.units[2].times, [0.3])
        assert result.units[2].shank_id == 2

    def test_probes_without_units_are_not_processed(self, probe_metadata):
        collection = SpikeCollection(units=[Unit(uid=1, times=[0.1], shank_id=2)], sr=SR)
        extractor = FakeExtractor()
        extract_waveforms_per_probe(collection, probe_metadata, extractor)
        assert extractor.files == ['probeB/spike_band.dat']

    def test_worker_failure_aborts(self, probe_collection, probe_metadata):
        extractor = FakeExtractor(fail_on='probeB/spike_band.dat')
        with pytest.raises(RuntimeError, match="cannot read raw data"):
            extract_waveforms_per_probe(probe_collection, probe_metadata, extractor, n_jobs=2)
        assert probe_collection.units[0].max_waveform_ch1 is None
