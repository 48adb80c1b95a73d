"""Collection assembly: uids, orientation and spike order."""

import logging

import numpy as np

from spikeimport.assembly import assemble_collection
from spikeimport.types import UnitRecord

from conftest import BASENAME, SR


class TestAssembleCollection:

    def test_uids_follow_record_order(self):
        records = [UnitRecord(times=[0.1], clu_id=7), UnitRecord(times=[0.2, 0.3], clu_id=3)]
        collection = assemble_collection(records, BASENAME, SR)
        np.testing.assert_array_equal(collection.uids, [1, 2])
        assert collection.values_of('clu_id') == [7, 3]
        np.testing.assert_array_equal(collection.totals, [1, 2])
        assert collection.basename == BASENAME
        assert collection.sr == SR

    def test_missing_fields_stay_unset(self):
        records = [UnitRecord(times=[0.1], shank_id=2), UnitRecord(times=[0.2])]
        collection = assemble_collection(records, BASENAME, SR)
        assert collection.values_of('shank_id') == [2, None]
        assert collection.units[1].amplitudes is None

    def test_column_oriented_times_are_flattened(self):
        collection = assemble_collection([UnitRecord(times=np.array([[0.1], [0.2]]))], BASENAME, SR)
        assert collection.units[0].times.shape == (2,)

    def test_unsorted_times_are_sorted_with_per_spike_fields(self, caplog):
        record = UnitRecord(times=[0.3, 0.1, 0.2, 0.1001], amplitudes=[3.0, 1.0, 2.0, 9.0])
        record.extra['depths'] = np.array([30.0, 10.0, 20.0, 90.0])
        with caplog.at_level(logging.WARNING, logger="spikeimport"):
            collection = assemble_collection([record], BASENAME, SR)
        unit = collection.units[0]
        np.testing.assert_allclose(unit.times, [0.1, 0.2, 0.3])
        np.testing.assert_allclose(unit.amplitudes, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(unit.extra['depths'], [10.0, 20.0, 30.0])
        assert unit.total == 3
        assert "1 spikes removed" in caplog.text

    def test_records_are_not_modified(self):
        record = UnitRecord(times=[0.2, 0.1])
        record.extra['depths'] = np.array([2.0, 1.0])
        assemble_collection([record], BASENAME, SR)
        np.testing.assert_allclose(record.extra['depths'], [2.0, 1.0])

    def test_region_is_not_backfilled(self):
        records = [
            UnitRecord(times=[0.1], max_waveform_ch1=2),
            UnitRecord(times=[0.1], max_waveform_ch1=6, region='custom'),
        ]
        collection = assemble_collection(records, BASENAME, SR)
        assert collection.values_of('region') == [None, 'custom']

    def test_invariants_hold(self):
        records = [UnitRecord(times=np.sort(np.random.default_rng(i).uniform(0, 10, 50)), max_waveform_ch1=i + 1)
                   for i in range(4)]
        collection = assemble_collection(records, BASENAME, SR)
        for unit in collection.units:
            assert unit.total == unit.times.size
            assert np.all(np.diff(unit.times) > 5e-4)
            assert unit.max_waveform_ch == unit.max_waveform_ch1 - 1
