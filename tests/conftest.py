"""Shared fixtures: small synthetic sorter outputs written into tmp_path.

Every fixture writes files the way the sorter itself lays them out (npy arrays,
tab/comma separated label tables, MATLAB files, HDF5 containers) so adapters
are exercised through their real readers.
"""

from pathlib import Path

import h5py
import numpy as np
import pytest
from scipy.io import savemat

from spikeimport.metadata import SessionMetadata
from spikeimport.types import SpikeCollection, Unit

SR = 20000.0
BASENAME = "session"


# ---------------------------------------------------------------------------
# Session metadata
# ---------------------------------------------------------------------------

@pytest.fixture
def metadata():
    """Two electrode groups of four channels at 20 kHz."""
    return SessionMetadata(
        name=BASENAME,
        sr=SR,
        n_channels=8,
        electrode_groups=[[1, 2, 3, 4], [5, 6, 7, 8]],
        electrode_group_labels=["probeA", "probeB"],
        brain_regions={"CA1": [1, 2, 3, 4], "DG": [5, 6, 7, 8]},
    )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

@pytest.fixture
def three_unit_collection():
    units = [
        Unit(uid=1, times=[0.1, 0.2, 0.3], clu_id=5, shank_id=1, amplitudes=[1.0, 2.0, 3.0]),
        Unit(uid=2, times=[0.15, 0.25], clu_id=6, shank_id=1, amplitudes=[4.0, 5.0]),
        Unit(uid=3, times=[0.5], clu_id=7, shank_id=2, amplitudes=[6.0]),
    ]
    return SpikeCollection(units=units, basename=BASENAME, sr=SR)


# ---------------------------------------------------------------------------
# Phy
# ---------------------------------------------------------------------------

# cluster 0 (good): 100, 101 (duplicate), 500, 1000
# cluster 1 (mua):  200, 300
# cluster 2 (good): 150, 2000
PHY_SPIKE_TIMES = [100, 101, 150, 200, 300, 500, 1000, 2000]
PHY_SPIKE_CLUSTERS = [0, 0, 2, 1, 1, 0, 0, 2]
PHY_AMPLITUDES = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]


def write_phy(path: Path) -> Path:
    """Phy output with cluster_group.tsv labelling clusters 0 and 2 good."""
    path.mkdir(parents=True, exist_ok=True)
    np.save(path / "spike_times.npy", np.array(PHY_SPIKE_TIMES, dtype=np.uint64).reshape(-1, 1))
    np.save(path / "spike_clusters.npy", np.array(PHY_SPIKE_CLUSTERS, dtype=np.int32))
    np.save(path / "amplitudes.npy", np.array(PHY_AMPLITUDES))
    (path / "cluster_group.tsv").write_text("cluster_id\tgroup\n0\tgood\n1\tmua\n2\tgood\n")
    return path


@pytest.fixture
def phy_dir(tmp_path):
    return write_phy(tmp_path)


# ---------------------------------------------------------------------------
# Neurosuite / Klustakwik
# ---------------------------------------------------------------------------

@pytest.fixture
def klustakwik_dir(tmp_path):
    """Group 1 with clusters 0, 1, 2, 3; group 2 has a .res file but no .clu file."""
    (tmp_path / f"{BASENAME}.clu.1").write_text("4\n0\n2\n2\n1\n3\n")
    (tmp_path / f"{BASENAME}.res.1").write_text("10\n100\n105\n300\n400\n")
    (tmp_path / f"{BASENAME}.res.2").write_text("20\n")
    return tmp_path


# ---------------------------------------------------------------------------
# HDF5 based formats
# ---------------------------------------------------------------------------

@pytest.fixture
def kwik_dir(tmp_path):
    with h5py.File(tmp_path / f"{BASENAME}.kwik", "w") as f:
        f.create_dataset("channel_groups/0/spikes/time_samples", data=np.array([100, 200, 300, 5000]))
        f.create_dataset("channel_groups/0/spikes/clusters/main", data=np.array([3, 3, 4, 3]))
        f.create_group("channel_groups/0/clusters/main/3").attrs["cluster_group"] = 2
        f.create_group("channel_groups/0/clusters/main/4").attrs["cluster_group"] = 1
    return tmp_path


def write_nwb_units(path: Path):
    """Two units: id 10 with three spikes, id 11 with two spikes."""
    with h5py.File(path, "w") as f:
        f.create_dataset("units/spike_times", data=np.array([0.1, 0.2, 0.3, 1.0, 1.5]))
        f.create_dataset("units/spike_times_index", data=np.array([3, 5]))
        f.create_dataset("units/id", data=np.array([10, 11]))
        f.create_dataset("units/firing_rate", data=np.array([2.0, 1.0]))
        f.create_dataset("units/peak_channel_id", data=np.array([101, 103]))
        f.create_dataset("general/extracellular_ephys/electrodes/id", data=np.array([100, 101, 102, 103]))


@pytest.fixture
def nwb_dir(tmp_path):
    write_nwb_units(tmp_path / f"{BASENAME}.nwb")
    return tmp_path


@pytest.fixture
def spyking_circus_dir(tmp_path):
    with h5py.File(tmp_path / f"{BASENAME}.result-merged.hdf5", "w") as f:
        f.create_dataset("spiketimes/temp_0", data=np.array([[100], [200]]))
        f.create_dataset("spiketimes/temp_1", data=np.array([[50]]))
        f.create_dataset("amplitudes/temp_0", data=np.array([[1.0, 0.0], [0.9, 0.0]]))
        f.create_dataset("amplitudes/temp_1", data=np.array([[1.1, 0.0]]))
    with h5py.File(tmp_path / f"{BASENAME}.result.hdf5", "w") as f:
        f.create_dataset("spiketimes/temp_0", data=np.array([[999]]))
    return tmp_path


# ---------------------------------------------------------------------------
# MATLAB based formats
# ---------------------------------------------------------------------------

@pytest.fixture
def wave_clus_dir(tmp_path):
    rng = np.random.default_rng(0)
    savemat(tmp_path / "times_ch1.mat", {
        "cluster_class": np.array([[1, 10.0], [0, 20.0], [2, 30.0], [1, 40.0]]),
        "spikes": rng.normal(size=(4, 64)),
        "par": {"sr": 24000.0, "w_pre": 20, "w_post": 44},
    })
    return tmp_path


@pytest.fixture
def kilosort_dir(tmp_path):
    # columns: sample, template, amplitude, unused, post-merge cluster
    st3 = np.array([
        [100, 1, 5.0, 0, 0],
        [110, 1, 6.0, 0, 0],
        [500, 2, 7.0, 0, 1],
        [900, 1, 8.0, 0, 0],
    ])
    U = np.zeros((4, 2, 1))
    U[:, 0, 0] = [0.0, 3.0, -5.0, 1.0]
    U[:, 1, 0] = [9.0, 0.0, 0.0, 0.0]
    i_neigh = np.array([[1, 2], [2, 1]])
    savemat(tmp_path / "rez.mat", {"rez": {"st3": st3, "U": U, "iNeigh": i_neigh}})
    return tmp_path


@pytest.fixture
def sebastienroyer_dir(tmp_path):
    savemat(tmp_path / f"{BASENAME}.mat", {
        "spk": {"g": np.array([1, 1, 2]), "t": np.array([200.0, 400.0, 600.0])},
    })
    return tmp_path


@pytest.fixture
def ums2k_dir(tmp_path):
    rng = np.random.default_rng(1)
    savemat(tmp_path / "times_raw_elec_CH3.mat", {
        "spikes": {
            "labels": np.array([[1, 2], [2, 1]]),
            "assigns": np.array([1, 2, 1]),
            "spiketimes": np.array([0.5, 0.7, 0.9]),
            "trials": np.array([1, 1, 2]),
            "waveforms": rng.normal(scale=1e-5, size=(3, 10)),
            "params": {"Fs": 25000.0, "cross_time": 0.4},
        },
    })
    return tmp_path


@pytest.fixture
def mclust_dir(tmp_path):
    rng = np.random.default_rng(2)
    savemat(tmp_path / "TT1.mat", {
        "TimeStamps": np.array([1.0, 2.0, 3.0]),
        "WaveForms": rng.normal(size=(3, 4, 8)),
    })
    clusters = np.empty(2, dtype=object)
    clusters[0] = {"myPoints": np.array([1, 3])}
    clusters[1] = {"myPoints": np.array([2])}
    savemat(str(tmp_path / "TT1.clusters"), {"MClust_Clusters": clusters}, appendmat=False)
    savemat(str(tmp_path / "TT1_Energy.fd"), {"FeatureData": rng.normal(size=(3, 4))}, appendmat=False)
    savemat(str(tmp_path / "TT1_Amplitude.fd"), {"FeatureData": rng.normal(size=(3, 4))}, appendmat=False)
    # A second tetrode without cluster cuts is skipped
    savemat(tmp_path / "TT2.mat", {
        "TimeStamps": np.array([1.0]),
        "WaveForms": rng.normal(size=(1, 4, 8)),
    })
    return tmp_path


# ---------------------------------------------------------------------------
# ALF
# ---------------------------------------------------------------------------

@pytest.fixture
def alf_dir(tmp_path):
    np.save(tmp_path / "clusters._phy_annotation.npy", np.array([2, 1, 3]))
    np.save(tmp_path / "clusters.peakChannel.npy", np.array([2, 1, 3]))
    np.save(tmp_path / "clusters.probes.npy", np.array([0, 0, 0]))
    np.save(tmp_path / "clusters.originalIDs.npy", np.array([10, 11, 12]))
    np.save(tmp_path / "clusters.templateWaveforms.npy", np.ones((3, 6, 2)))
    np.save(tmp_path / "clusters.templateWaveformChans.npy", np.array([[0, 1], [1, 0], [2, 3]]))
    np.save(tmp_path / "spikes.amps.npy", np.array([1.0, 2.0, 3.0, 4.0]))
    np.save(tmp_path / "spikes.clusters.npy", np.array([0, 1, 2, 0]))
    np.save(tmp_path / "spikes.depths.npy", np.array([10.0, 20.0, 30.0, 40.0]))
    np.save(tmp_path / "spikes.times.npy", np.array([0.1, 0.2, 0.3, 0.4]))
    return tmp_path
