"""Tests for block readers and the file-backed matrix."""

import pickle

import numpy as np
import pandas as pd
import pytest

from blockstats import Options
from blockstats.matrix import ArrayMatrix, BlockReader, FileBackedMatrix, as_reader


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


@pytest.fixture()
def data(rng):
    return rng.standard_normal((30, 12))


class TestFileBackedMatrix:
    def test_create_shape_and_init(self, tmp_path):
        fbm = FileBackedMatrix.create(tmp_path / "X.npy", 5, 3, init=2.5)
        assert fbm.shape == (5, 3)
        np.testing.assert_array_equal(fbm.read_block([0, 1, 2]), np.full((5, 3), 2.5))

    def test_create_zero_initialised(self, tmp_path):
        fbm = FileBackedMatrix.create(tmp_path / "X.npy", 4, 2)
        assert np.all(fbm.read_block([0, 1]) == 0)

    def test_create_rejects_empty(self, tmp_path):
        with pytest.raises(ValueError, match="positive dimensions"):
            FileBackedMatrix.create(tmp_path / "X.npy", 0, 3)

    def test_from_array_roundtrip(self, tmp_path, data):
        fbm = FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        np.testing.assert_array_equal(fbm.read_block(range(12)), data)

    def test_stored_column_major(self, tmp_path, data):
        FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        assert np.load(tmp_path / "X.npy", mmap_mode="r").flags.f_contiguous

    def test_from_array_small_budget_writes_in_blocks(self, tmp_path, data):
        # A budget of a few columns forces many write blocks.
        opts = Options(ncores_max=1, block_size_gb=8 * 30 * 3 / 1024**3)
        fbm = FileBackedMatrix.from_array(data, tmp_path / "X.npy", options=opts)
        np.testing.assert_array_equal(fbm.read_block(range(12)), data)

    def test_from_dataframe(self, tmp_path, data):
        df = pd.DataFrame(data)
        fbm = FileBackedMatrix.from_array(df, tmp_path / "X.npy")
        np.testing.assert_array_equal(fbm.read_block([3], [0, 1]), data[[0, 1]][:, [3]])

    def test_attach_reopens(self, tmp_path, data):
        FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        again = FileBackedMatrix.attach(tmp_path / "X.npy")
        np.testing.assert_array_equal(again.read_block([5]), data[:, [5]])

    def test_pickle_reattaches_from_path(self, tmp_path, data):
        fbm = FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        clone = pickle.loads(pickle.dumps(fbm))
        assert clone.path == fbm.path
        np.testing.assert_array_equal(clone.read_block([0, 11]), data[:, [0, 11]])

    def test_lossy_cast_warns(self, tmp_path):
        arr = np.array([[0.5, 1.0], [2.25, 3.0]])
        with pytest.warns(UserWarning, match="changed some values"):
            fbm = FileBackedMatrix.from_array(arr, tmp_path / "X.npy", dtype="int32")
        np.testing.assert_array_equal(fbm.read_block([0, 1]), [[0, 1], [2, 3]])

    def test_lossy_cast_silenced_by_option(self, tmp_path, recwarn):
        arr = np.array([[0.5, 1.0], [2.25, 3.0]])
        opts = Options(ncores_max=1, typecast_warning=False)
        FileBackedMatrix.from_array(arr, tmp_path / "X.npy", dtype="int32", options=opts)
        assert not [w for w in recwarn if "changed some values" in str(w.message)]

    def test_exact_cast_does_not_warn(self, tmp_path, recwarn):
        arr = np.array([[1.0, 2.0], [3.0, 4.0]])
        FileBackedMatrix.from_array(arr, tmp_path / "X.npy", dtype="int16")
        assert not [w for w in recwarn if "changed some values" in str(w.message)]

    def test_row_major_file_warns(self, tmp_path, data):
        np.save(tmp_path / "C.npy", np.ascontiguousarray(data))
        with pytest.warns(UserWarning, match="row-major"):
            FileBackedMatrix(tmp_path / "C.npy")

    def test_rejects_non_2d(self, tmp_path):
        np.save(tmp_path / "v.npy", np.arange(5.0))
        with pytest.raises(ValueError, match="2-D"):
            FileBackedMatrix(tmp_path / "v.npy")

    def test_is_block_reader(self, tmp_path, data):
        fbm = FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        assert isinstance(fbm, BlockReader)
        assert "FileBackedMatrix" in repr(fbm)


class TestReadBlock:
    def test_contiguous_and_scattered_columns(self, data):
        reader = ArrayMatrix(data)
        np.testing.assert_array_equal(reader.read_block(range(2, 6)), data[:, 2:6])
        np.testing.assert_array_equal(reader.read_block([7, 1, 4]), data[:, [7, 1, 4]])

    def test_row_subset(self, data):
        rows = np.array([29, 0, 3, 3])
        block = ArrayMatrix(data).read_block([1, 2], rows)
        np.testing.assert_array_equal(block, data[np.ix_(rows, [1, 2])])

    def test_returns_float64_fortran(self):
        reader = ArrayMatrix(np.arange(12, dtype=np.int8).reshape(4, 3))
        block = reader.read_block([0, 2])
        assert block.dtype == np.float64
        assert block.flags.f_contiguous

    def test_negative_index_raises(self, data):
        with pytest.raises(IndexError, match="negative"):
            ArrayMatrix(data).read_block([-1])

    def test_out_of_range_column_raises(self, data):
        with pytest.raises(IndexError, match="out of range"):
            ArrayMatrix(data).read_block([12])

    def test_out_of_range_row_raises(self, data):
        with pytest.raises(IndexError, match="out of range"):
            ArrayMatrix(data).read_block([0], [30])

    def test_boolean_mask_rejected(self, data):
        with pytest.raises(TypeError, match="boolean mask"):
            ArrayMatrix(data).read_block(np.ones(12, dtype=bool))


class TestAsReader:
    def test_passes_reader_through(self, data):
        reader = ArrayMatrix(data)
        assert as_reader(reader) is reader

    def test_wraps_array_and_frame(self, data):
        assert isinstance(as_reader(data), ArrayMatrix)
        assert isinstance(as_reader(pd.DataFrame(data)), ArrayMatrix)

    def test_path_attaches(self, tmp_path, data):
        FileBackedMatrix.from_array(data, tmp_path / "X.npy")
        assert isinstance(as_reader(str(tmp_path / "X.npy")), FileBackedMatrix)

    def test_rejects_other_types(self):
        with pytest.raises(TypeError, match="'X' must be"):
            as_reader([[1, 2], [3, 4]])

    def test_rejects_non_numeric_frame(self):
        with pytest.raises(TypeError, match="numeric"):
            as_reader(pd.DataFrame({"a": ["x", "y"]}))
