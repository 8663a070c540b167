import pytest

from mini_trainer import TensorDim


def test_left_pads_to_four_axes():
    dim = TensorDim(3, 4)
    assert dim.shape == (1, 1, 3, 4)
    assert dim.batch == 1 and dim.height == 3 and dim.width == 4
    assert dim.data_len == 12
    assert dim.feature_len == 12


def test_accepts_tuple_and_copies():
    dim = TensorDim((2, 3, 4, 5))
    other = TensorDim(dim)
    other.batch = 7
    assert dim.batch == 2
    assert other == (7, 3, 4, 5)
    assert dim.feature_len == 60


def test_empty_dim():
    dim = TensorDim()
    assert dim.is_empty()
    assert dim.data_len == 0


def test_rejects_bad_axes():
    with pytest.raises(ValueError):
        TensorDim(1, 2, 3, 4, 5)
    with pytest.raises(ValueError):
        TensorDim(-1, 2)
    dim = TensorDim(2, 3)
    with pytest.raises(ValueError):
        dim.batch = 0


def test_repr():
    assert repr(TensorDim(2, 1, 3, 4)) == "TensorDim(2:1:3:4)"
