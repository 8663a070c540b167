import io

import numpy as np
import pytest

from mini_trainer import Tensor, TensorDim


def test_allocating_and_lazy_construction():
    t = Tensor(TensorDim(2, 1, 1, 3))
    assert t.is_allocated and t.owns_data
    assert np.all(t.data == 0)
    assert t.data.shape == (2, 1, 1, 3)

    lazy = Tensor(TensorDim(2, 3), allocate=False)
    assert not lazy.is_allocated
    assert lazy.size == 6
    with pytest.raises(RuntimeError):
        lazy.data
    lazy.allocate()
    assert lazy.is_allocated


def test_from_data():
    t = Tensor(data=[[1, 2], [3, 4]])
    assert t.dim == (1, 1, 2, 2)
    assert t.data.dtype == np.float32
    assert t.get_value(0, 0, 1, 0) == 3.0

    with pytest.raises(ValueError):
        Tensor((1, 3), data=[1, 2])


@pytest.mark.parametrize("offset", [0, 3, 6])
def test_shared_view_aliases_source(offset):
    source = Tensor(TensorDim(10))
    view = source.get_shared_data_tensor(TensorDim(2, 2), offset)

    assert not view.owns_data
    assert view.dim == (1, 1, 2, 2)
    assert view.shares_memory(source)

    # write through the view, read through the source
    view.fill(5.0)
    assert np.all(source.data.reshape(-1)[offset:offset + 4] == 5.0)
    assert np.sum(source.data) == 20.0

    # and the other way around
    source.data.reshape(-1)[offset] = -1.0
    assert view.get_value(0, 0, 0, 0) == -1.0


def test_shared_view_out_of_bounds():
    source = Tensor(TensorDim(10))
    with pytest.raises(ValueError):
        source.get_shared_data_tensor(TensorDim(4), 7)
    with pytest.raises(ValueError):
        source.get_shared_data_tensor(TensorDim(1), -1)
    with pytest.raises(RuntimeError):
        Tensor(TensorDim(4), allocate=False).get_shared_data_tensor(TensorDim(1), 0)


def test_view_of_view_resolves_to_root():
    source = Tensor(TensorDim(12))
    outer = source.get_shared_data_tensor(TensorDim(8), 4)
    inner = outer.get_shared_data_tensor(TensorDim(2), 2)
    inner.fill(3.0)
    assert np.all(source.data.reshape(-1)[6:8] == 3.0)

    with pytest.raises(ValueError):
        outer.get_shared_data_tensor(TensorDim(4), 6)


def test_disjoint_views_do_not_share_memory():
    source = Tensor(TensorDim(8))
    first = source.get_shared_data_tensor(TensorDim(4), 0)
    second = source.get_shared_data_tensor(TensorDim(4), 4)
    assert not first.shares_memory(second)


def test_in_place_arithmetic_writes_through_view():
    source = Tensor(TensorDim(6))
    view = source.get_shared_data_tensor(TensorDim(3), 3)
    view += 2.0
    view *= Tensor(data=[1, 2, 3])
    view -= 1.0
    view /= 2.0
    assert np.allclose(source.data.reshape(-1), [0, 0, 0, 0.5, 1.5, 2.5])


def test_out_of_place_arithmetic():
    a = Tensor(data=[1.0, 2.0, 3.0])
    b = Tensor(data=[4.0, 5.0, 6.0])
    assert np.allclose((a + b).data, [[[[5, 7, 9]]]])
    assert np.allclose((b - a).data.reshape(-1), [3, 3, 3])
    assert np.allclose((a * 2).data.reshape(-1), [2, 4, 6])
    assert np.allclose((1 - a).data.reshape(-1), [0, -1, -2])
    assert np.allclose((a ** 2).data.reshape(-1), [1, 4, 9])
    assert np.allclose((-a).data.reshape(-1), [-1, -2, -3])
    # out-of-place results own fresh memory
    assert not (a + b).shares_memory(a)


def test_dot():
    x = Tensor(TensorDim(2, 1, 1, 3), data=np.arange(6))
    w = Tensor(TensorDim(3, 4), data=np.ones((3, 4)))
    out = x.dot(w)
    assert out.dim == (2, 1, 1, 4)
    assert np.allclose(out.data.reshape(2, 4), [[3] * 4, [12] * 4])

    grad = x.dot(out, trans=True)
    assert grad.dim == (1, 1, 3, 4)

    back = out.dot(w, trans_m=True)
    assert back.dim == (2, 1, 1, 3)

    with pytest.raises(ValueError):
        x.dot(x)


def test_reductions():
    t = Tensor(TensorDim(2, 1, 1, 2), data=[[3, -4], [0, 0]])
    assert t.sum().item() == -1.0
    assert t.sum(axis=0).dim == (1, 1, 1, 2)
    assert np.allclose(t.mean(axis=(0, 1, 2)).data.reshape(-1), [1.5, -2.0])
    assert t.l2norm() == pytest.approx(5.0)
    assert t.max_abs() == 4.0


def test_copy_and_clone():
    src = Tensor(data=[1, 2, 3, 4])
    dst = Tensor(TensorDim(2, 2), allocate=False)
    dst.copy_from(src)
    assert dst.is_allocated
    assert np.allclose(dst.data.reshape(-1), [1, 2, 3, 4])

    clone = src.clone()
    clone.fill(0)
    assert src.data.sum() == 10

    with pytest.raises(ValueError):
        dst.copy_from(Tensor(data=[1, 2]))


def test_set_batch_size():
    owned = Tensor(TensorDim(2, 1, 1, 3))
    owned.set_batch_size(4)
    assert owned.dim.batch == 4
    assert owned.data.shape == (4, 1, 1, 3)

    pool = Tensor(TensorDim(12))
    view = pool.get_shared_data_tensor(TensorDim(2, 1, 1, 3), 0)
    view.set_batch_size(3)
    assert not view.is_allocated
    assert view.dim == (3, 1, 1, 3)

    with pytest.raises(ValueError):
        owned.set_batch_size(0)


def test_reshape():
    t = Tensor(data=np.arange(6))
    t.reshape(TensorDim(2, 3))
    assert t.data.shape == (1, 1, 2, 3)
    with pytest.raises(ValueError):
        t.reshape(TensorDim(4))


def test_save_and_read():
    t = Tensor(TensorDim(2, 3), data=np.arange(6))
    buf = io.BytesIO()
    t.save(buf)
    buf.seek(0)

    restored = Tensor(TensorDim(2, 3), allocate=False)
    restored.read(buf)
    assert np.array_equal(restored.data, t.data)

    with pytest.raises(EOFError):
        restored.read(io.BytesIO(b"\x00" * 4))


@pytest.mark.parametrize("dim", [6, (2, 3), TensorDim(2, 3)])
def test_dim_argument_forms(dim):
    t = Tensor(dim)
    assert t.size == 6
    assert t.is_allocated
