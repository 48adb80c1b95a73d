"""Unit records, units and the SpikeCollection container."""

import pickle

import numpy as np
import pytest
from scipy.io import loadmat

from spikeimport.types import ProcessingInfo, SpikeCollection, Unit, UnitRecord


class TestUnitRecord:

    def test_column_vectors_are_flattened(self):
        record = UnitRecord(times=[[0.1], [0.2]], amplitudes=[[1.0], [2.0]])
        assert record.times.shape == (2,)
        assert record.amplitudes.shape == (2,)

    def test_total_equals_number_of_times(self):
        assert UnitRecord(times=[0.1, 0.2, 0.3]).total == 3

    def test_max_channel_derived_from_one_indexed(self):
        record = UnitRecord(times=[0.1], max_waveform_ch1=3)
        assert record.max_waveform_ch == 2

    def test_one_indexed_derived_from_max_channel(self):
        record = UnitRecord(times=[0.1], max_waveform_ch=0)
        assert record.max_waveform_ch1 == 1

    def test_inconsistent_max_channels_raise(self):
        with pytest.raises(ValueError):
            UnitRecord(times=[0.1], max_waveform_ch=4, max_waveform_ch1=4)

    def test_single_channel_waveform_matrix_is_two_dimensional(self):
        record = UnitRecord(times=[0.1], filt_waveform_all=np.arange(5.0))
        assert record.filt_waveform_all.shape == (1, 5)

    def test_per_spike_fields_skip_mismatched_lengths(self):
        record = UnitRecord(times=[0.1, 0.2], amplitudes=[1.0, 2.0], ts=[1, 2, 3])
        record.extra['depths'] = np.array([5.0, 6.0])
        record.extra['template'] = np.zeros(7)
        assert set(record.per_spike_fields()) == {'amplitudes', 'depths'}


class TestSpikeCollection:

    def test_unit_aligned_views(self, three_unit_collection):
        c = three_unit_collection
        assert c.numcells == 3
        np.testing.assert_array_equal(c.uids, [1, 2, 3])
        np.testing.assert_array_equal(c.totals, [3, 2, 1])
        assert c.values_of('clu_id') == [5, 6, 7]

    def test_has_field(self, three_unit_collection):
        assert three_unit_collection.has_field('shank_id')
        assert not three_unit_collection.has_field('region')

    def test_unit_by_uid(self, three_unit_collection):
        assert three_unit_collection.unit_by_uid(2).clu_id == 6
        with pytest.raises(ValueError):
            three_unit_collection.unit_by_uid(99)

    def test_spindices_are_time_sorted(self, three_unit_collection):
        spindices = three_unit_collection.spindices
        assert spindices.shape == (6, 2)
        assert np.all(np.diff(spindices[:, 0]) >= 0)
        np.testing.assert_array_equal(spindices[:2, 1], [1, 2])

    def test_to_dataframe_has_one_row_per_spike(self, three_unit_collection):
        df = three_unit_collection.to_dataframe()
        assert len(df) == 6
        assert list(df.columns) == ['uid', 'clu_id', 'shank_id', 'time_seconds']

    def test_summary(self, three_unit_collection):
        summary = three_unit_collection.summary()
        assert summary['numcells'] == 3
        assert summary['total_spikes'] == 6
        assert summary['units_per_shank'] == {1: 2, 2: 1}

    def test_cellexplorer_names(self, three_unit_collection):
        out = three_unit_collection.to_cellexplorer_dict()
        np.testing.assert_array_equal(out['UID'], [1, 2, 3])
        np.testing.assert_array_equal(out['cluID'], [5, 6, 7])
        np.testing.assert_array_equal(out['shankID'], [1, 1, 2])
        np.testing.assert_array_equal(out['total'], [3, 2, 1])
        assert 'region' not in out

    def test_pickle_round_trip_keeps_units(self, tmp_path, three_unit_collection):
        path = tmp_path / "c.pkl"
        three_unit_collection.save(path, protocol=pickle.HIGHEST_PROTOCOL)
        loaded = SpikeCollection.load(path)
        np.testing.assert_array_equal(loaded.uids, [1, 2, 3])
        np.testing.assert_allclose(loaded.units[0].times, [0.1, 0.2, 0.3])

    def test_nbytes_counts_array_payload(self, three_unit_collection):
        # times and amplitudes, float64
        assert three_unit_collection.nbytes() == 2 * 6 * 8

    def test_save_mat_writes_spikes_struct(self, tmp_path, three_unit_collection):
        c = three_unit_collection
        c.processing_info = ProcessingInfo(function='import_spikes', version=4.3,
                                           params={'format': 'phy', 'electrode_groups': None})
        path = tmp_path / "session.spikes.cellinfo.mat"
        c.save_mat(str(path))
        spikes = loadmat(str(path), squeeze_me=True, struct_as_record=False)['spikes']
        np.testing.assert_array_equal(spikes.UID, [1, 2, 3])
        assert spikes.numcells == 3
        assert spikes.processinginfo.params.format == 'phy'

    def test_empty_collection(self):
        c = SpikeCollection()
        assert c.numcells == 0
        assert c.spindices.shape == (0, 2)
        assert c.to_dataframe().empty


class TestUnit:

    def test_uid_defaults_to_zero(self):
        assert Unit(times=[0.1]).uid == 0
