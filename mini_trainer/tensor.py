"""
Tensor backed by a flat float32 buffer that is either owned or shared.

A tensor is in one of three states:
    - lazy: the dim is fixed but no memory exists yet
    - owning: it holds its own flat buffer (OwnedStorage)
    - view: it describes a window of another tensor's buffer (SharedStorage)

Views are how pooled gradient memory is handed out to weights and
activations, and how sequence layers slice one time step out of a batch.
"""
import logging

import numpy as np

from .tensor_dim import TensorDim

logger = logging.getLogger(__name__)

DTYPE = np.float32


class OwnedStorage:
    """Flat buffer owned by exactly one tensor."""

    __slots__ = ('buffer',)

    def __init__(self, length):
        self.buffer = np.zeros(length, dtype=DTYPE)

    @property
    def root(self):
        return self

    @property
    def offset(self):
        return 0


class SharedStorage:
    """Non-owning window into an OwnedStorage, starting at an element offset."""

    __slots__ = ('root', 'offset')

    def __init__(self, root, offset):
        # the reference to root keeps the owning buffer alive while the view is
        self.root = root
        self.offset = offset

    @property
    def buffer(self):
        return self.root.buffer


def _unwrap(other):
    return other.data if isinstance(other, Tensor) else other


class Tensor:
    """
    Dense 4-axis float32 tensor.

    Args:
        dim: TensorDim (or shape tuple / element count) of the tensor
        data: Optional scalar, list or ndarray copied into a new buffer
        allocate: Allocate a zeroed buffer now; if False the tensor stays lazy
    """

    def __init__(self, dim=None, data=None, allocate=True):
        self._storage = None

        if data is not None:
            # Convert data to numpy array if not already
            if isinstance(data, Tensor):
                array = data.data
            elif isinstance(data, (int, float)):
                array = np.array(data, dtype=DTYPE)
            elif isinstance(data, np.ndarray):
                array = data.astype(DTYPE)
            else:
                array = np.array(data, dtype=DTYPE)

            if dim is None:
                dim = array.shape if array.ndim > 0 else (1,)
            self._dim = TensorDim(dim)
            if array.size != self._dim.data_len:
                raise ValueError(
                    f"Data of {array.size} elements does not fit {self._dim}"
                )
            self._storage = OwnedStorage(self._dim.data_len)
            self._storage.buffer[:] = array.reshape(-1)
            return

        self._dim = TensorDim() if dim is None else TensorDim(dim)

        if allocate and not self._dim.is_empty():
            self.allocate()

    # ------------------------------------------------------------------
    # Storage state
    # ------------------------------------------------------------------

    @property
    def dim(self):
        """Copy of the tensor's dim."""
        return self._dim.copy()

    @property
    def shape(self):
        return self._dim.shape

    @property
    def size(self):
        """Total number of elements."""
        return self._dim.data_len

    @property
    def batch(self):
        return self._dim.batch

    @property
    def width(self):
        return self._dim.width

    @property
    def is_allocated(self):
        return self._storage is not None

    @property
    def owns_data(self):
        return isinstance(self._storage, OwnedStorage)

    def allocate(self):
        """Allocate a zeroed buffer if the tensor is still lazy."""
        if self._storage is None:
            self._storage = OwnedStorage(self._dim.data_len)

    def deallocate(self):
        """Drop the storage and go back to the lazy state."""
        self._storage = None

    @property
    def data(self):
        """NumPy view of the tensor's elements, shaped like its dim."""
        if self._storage is None:
            raise RuntimeError(f"Tensor {self._dim} is used before allocation")
        start = self._storage.offset
        flat = self._storage.buffer[start:start + self._dim.data_len]
        return flat.reshape(self._dim.shape)

    def numpy(self):
        """Return data as numpy array."""
        return self.data

    def item(self):
        """Get scalar value (for single-element tensors)."""
        return self.data.item()

    def shares_memory(self, other):
        """True if both tensors are allocated and overlap in memory."""
        if not (self.is_allocated and other.is_allocated):
            return False
        return bool(np.shares_memory(self.data, other.data))

    def get_shared_data_tensor(self, dim, offset):
        """
        Create a view of this tensor's buffer.

        Args:
            dim: Dim of the view, with its own shape metadata
            offset: Element offset into this tensor

        Returns:
            Tensor aliasing elements [offset, offset + dim.data_len)
        """
        if self._storage is None:
            raise RuntimeError("Cannot create a shared tensor from an unallocated tensor")

        dim = TensorDim(dim)
        if offset < 0 or offset + dim.data_len > self.size:
            raise ValueError(
                f"Shared tensor {dim} at offset {offset} exceeds source of {self.size} elements"
            )

        view = Tensor(dim, allocate=False)
        view._storage = SharedStorage(self._storage.root, self._storage.offset + offset)
        return view

    def set_batch_size(self, batch):
        """
        Change the batch axis.

        Owning tensors re-allocate a zeroed buffer. A view cannot follow the
        pool it aliases, so it is released and has to be bound again.
        """
        if batch <= 0:
            raise ValueError(f"Batch size must be positive, got {batch}")
        if batch == self._dim.batch:
            return

        self._dim.batch = batch
        if isinstance(self._storage, SharedStorage):
            logger.debug("Releasing shared view on batch change to %d", batch)
            self._storage = None
        elif self._storage is not None:
            self._storage = OwnedStorage(self._dim.data_len)

    def reshape(self, dim):
        """Reinterpret the elements with a new dim of the same size."""
        dim = TensorDim(dim)
        if dim.data_len != self._dim.data_len:
            raise ValueError(f"Cannot reshape {self._dim} to {dim}")
        self._dim = dim
        return self

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def get_value(self, b, c, h, w):
        return float(self.data[b, c, h, w])

    def set_value(self, b, c, h, w, value):
        self.data[b, c, h, w] = value

    def set_zero(self):
        self.fill(0.0)

    def fill(self, value):
        self.data.fill(value)

    def copy_from(self, other):
        """Copy the elements of other into this tensor's storage."""
        if other.size != self.size:
            raise ValueError(f"Cannot copy {other.dim} into {self._dim}")
        self.allocate()
        self.data[...] = other.data.reshape(self._dim.shape)
        return self

    def clone(self):
        """Owning deep copy."""
        return Tensor(self._dim, data=self.data)

    def apply(self, func):
        """Return a new tensor holding func(data)."""
        return Tensor(self._dim, data=func(self.data))

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, other):
        return Tensor(data=self.data + _unwrap(other))

    def __sub__(self, other):
        return Tensor(data=self.data - _unwrap(other))

    def __mul__(self, other):
        return Tensor(data=self.data * _unwrap(other))

    def __truediv__(self, other):
        return Tensor(data=self.data / _unwrap(other))

    def __pow__(self, exponent):
        assert isinstance(exponent, (int, float)), "only supporting int/float powers for now"
        return Tensor(self._dim, data=self.data ** exponent)

    def __neg__(self):
        return self * -1

    def __radd__(self, other):
        return self + other

    def __rsub__(self, other):
        return Tensor(data=_unwrap(other) - self.data)

    def __rmul__(self, other):
        return self * other

    def __rtruediv__(self, other):
        return Tensor(data=_unwrap(other) / self.data)

    # In-place variants write through the existing storage, views included
    def __iadd__(self, other):
        view = self.data
        view += _unwrap(other)
        return self

    def __isub__(self, other):
        view = self.data
        view -= _unwrap(other)
        return self

    def __imul__(self, other):
        view = self.data
        view *= _unwrap(other)
        return self

    def __itruediv__(self, other):
        view = self.data
        view /= _unwrap(other)
        return self

    def dot(self, other, trans=False, trans_m=False):
        """
        Matrix product treating each tensor as a (-1, width) matrix.

        Args:
            other: Right-hand tensor
            trans: Transpose this tensor's matrix first
            trans_m: Transpose other's matrix first
        """
        left = self.data.reshape(-1, self.width)
        right = other.data.reshape(-1, other.width)
        if trans:
            left = left.T
        if trans_m:
            right = right.T
        if left.shape[1] != right.shape[0]:
            raise ValueError(f"Cannot multiply {left.shape} by {right.shape}")

        result = left @ right
        if trans:
            dim = TensorDim(result.shape)
        else:
            dim = TensorDim(self._dim.batch, self._dim.channel, self._dim.height, result.shape[1])
        return Tensor(dim, data=result)

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    def sum(self, axis=None):
        """Sum elements along given axis, keeping all four axes."""
        return Tensor(data=self.data.sum(axis=axis, keepdims=True))

    def mean(self, axis=None):
        """Mean of elements along given axis, keeping all four axes."""
        return Tensor(data=self.data.mean(axis=axis, keepdims=True))

    def l2norm(self):
        return float(np.linalg.norm(self.data))

    def max_abs(self):
        return float(np.abs(self.data).max())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def save(self, file):
        """Write raw float32 elements to a binary file object."""
        file.write(np.ascontiguousarray(self.data).tobytes())

    def read(self, file):
        """Fill the tensor with raw float32 elements from a binary file object."""
        nbytes = self.size * np.dtype(DTYPE).itemsize
        raw = file.read(nbytes)
        if len(raw) != nbytes:
            raise EOFError(f"Expected {nbytes} bytes for {self._dim}, got {len(raw)}")
        self.allocate()
        self.data[...] = np.frombuffer(raw, dtype=DTYPE).reshape(self._dim.shape)

    def __repr__(self):
        if self._storage is None:
            return f"Tensor(dim={self._dim}, unallocated)"
        kind = "owned" if self.owns_data else "shared"
        return f"Tensor(dim={self._dim}, {kind}, data={self.data})"
