"""Source readers for sorter output files: npy, delimited tables, MATLAB, HDF5, plain text."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import h5py
import numpy as np
import pandas as pd
from scipy.io import loadmat

from spikeimport.errors import MissingSourceFileError

logger = logging.getLogger("spikeimport")

PathLike = Union[str, Path]


def require_file(path: PathLike) -> Path:
    """Return ``path`` as a Path, raising MissingSourceFileError if it does not exist."""
    path = Path(path)
    if not path.exists():
        raise MissingSourceFileError(path)
    return path


def first_existing(candidates: Sequence[PathLike]) -> Optional[Path]:
    """Return the first candidate that exists, in the given order, or None."""
    for candidate in candidates:
        candidate = Path(candidate)
        if candidate.exists():
            return candidate
    return None


# ---------------------------------------------------------------------------
# Typed arrays
# ---------------------------------------------------------------------------

def read_npy(path: PathLike) -> np.ndarray:
    """Load a .npy array exactly as stored."""
    return np.load(require_file(path))


def read_npy_vector(path: PathLike) -> np.ndarray:
    """Load a .npy array and flatten it; phy writes both (n,) and (n, 1) arrays."""
    return read_npy(path).ravel()


def read_text_column(path: PathLike, dtype=np.int64) -> np.ndarray:
    """Read a one-number-per-line text file (neurosuite .clu/.res)."""
    path = require_file(path)
    values = np.loadtxt(path, dtype=dtype, ndmin=1)
    return values.ravel()


def read_int16(path: PathLike) -> np.ndarray:
    """Read a flat little-endian int16 binary file (neurosuite .spk)."""
    return np.fromfile(require_file(path), dtype='<i2')


# ---------------------------------------------------------------------------
# Delimited tables
# ---------------------------------------------------------------------------

def read_table(path: PathLike, delimiter: str = '\t') -> pd.DataFrame:
    """Read a delimited table with a header row. Empty files give an empty frame."""
    path = require_file(path)
    try:
        return pd.read_csv(path, sep=delimiter)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()


def read_label_table(path: PathLike, delimiter: str = '\t') -> pd.DataFrame:
    """Read a two-column cluster label table as columns ``cluster_id`` and ``label``.

    The first column holds cluster ids, the second the label text regardless of
    how the header names them (``group``, ``KSLabel``, ...).
    """
    table = read_table(path, delimiter)
    if table.shape[1] < 2:
        return pd.DataFrame({'cluster_id': pd.Series(dtype=np.int64), 'label': pd.Series(dtype=str)})
    table = table.iloc[:, :2].dropna()
    table.columns = ['cluster_id', 'label']
    table['cluster_id'] = table['cluster_id'].astype(np.int64)
    table['label'] = table['label'].astype(str).str.strip()
    return table.reset_index(drop=True)


# ---------------------------------------------------------------------------
# MATLAB files
# ---------------------------------------------------------------------------

def read_mat(path: PathLike, variable_names: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Load a MATLAB (pre v7.3) file with structs as attribute objects and singleton dims squeezed."""
    path = require_file(path)
    return loadmat(
        str(path),
        squeeze_me=True,
        struct_as_record=False,
        variable_names=variable_names,
        appendmat=False,
    )


def mat_field(struct: Any, name: str, default: Any = None) -> Any:
    """Attribute of a loaded MATLAB struct, or ``default`` when absent."""
    return getattr(struct, name, default)


def as_cell_list(value: Any) -> list:
    """A MATLAB cell array as a Python list (squeezing turns 1-element cells into scalars)."""
    if isinstance(value, np.ndarray) and value.dtype == object:
        return list(value.ravel())
    return [value]


# ---------------------------------------------------------------------------
# HDF5
# ---------------------------------------------------------------------------

def open_hdf5(path: PathLike) -> h5py.File:
    """Open an HDF5 container read-only."""
    return h5py.File(require_file(path), 'r')


def read_dataset(h5: h5py.File, dataset_path: str, default: Any = None) -> Any:
    """Read a dataset fully into memory; ``default`` if the path is absent."""
    if dataset_path not in h5:
        return default
    data = h5[dataset_path][()]
    if isinstance(data, np.ndarray) and data.dtype.kind in ('S', 'O'):
        data = np.array([_decode(v) for v in data.ravel()], dtype=object).reshape(data.shape)
    elif isinstance(data, bytes):
        data = data.decode()
    return data


def read_attribute(h5: h5py.File, node_path: str, name: str, default: Any = None) -> Any:
    if node_path not in h5:
        return default
    value = h5[node_path].attrs.get(name, default)
    if isinstance(value, np.ndarray) and value.size == 1:
        value = value.item()
    return _decode(value)


def split_ragged(data: np.ndarray, index: np.ndarray) -> list:
    """Split a flat (or row-stacked) ragged array at the cumulative end offsets in ``index``."""
    index = np.asarray(index, dtype=np.int64).ravel()
    starts = np.concatenate([[0], index[:-1]])
    return [data[start:end] for start, end in zip(starts, index)]


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode()
    return value
