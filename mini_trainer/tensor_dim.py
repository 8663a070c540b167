"""
Tensor dimension with four semantic axes: batch, channel, height, width.
"""
import numpy as np

MAXDIM = 4


class TensorDim:
    """
    Shape of a tensor as (batch, channel, height, width).

    Shapes with fewer than four axes are left-padded with 1, so
    TensorDim(3, 4) describes 1:1:3:4. TensorDim() is the empty dim.

    Args:
        *dims: Up to four axis sizes, or a single tuple/list/TensorDim
    """

    def __init__(self, *dims):
        if len(dims) == 1 and isinstance(dims[0], (tuple, list, TensorDim)):
            dims = tuple(dims[0])

        if len(dims) > MAXDIM:
            raise ValueError(f"TensorDim supports at most {MAXDIM} axes, got {len(dims)}")

        if len(dims) == 0:
            self._dims = [0] * MAXDIM
            return

        dims = (1,) * (MAXDIM - len(dims)) + tuple(int(d) for d in dims)
        for d in dims:
            if d < 0:
                raise ValueError(f"Negative axis size in {dims}")
        self._dims = list(dims)

    def _set_axis(self, axis, value):
        value = int(value)
        if value <= 0:
            raise ValueError(f"Axis size must be positive, got {value}")
        self._dims[axis] = value

    @property
    def batch(self):
        return self._dims[0]

    @batch.setter
    def batch(self, value):
        self._set_axis(0, value)

    @property
    def channel(self):
        return self._dims[1]

    @channel.setter
    def channel(self, value):
        self._set_axis(1, value)

    @property
    def height(self):
        return self._dims[2]

    @height.setter
    def height(self, value):
        self._set_axis(2, value)

    @property
    def width(self):
        return self._dims[3]

    @width.setter
    def width(self, value):
        self._set_axis(3, value)

    @property
    def data_len(self):
        """Total number of elements."""
        return int(np.prod(self._dims))

    @property
    def feature_len(self):
        """Number of elements in one batch entry."""
        return self.channel * self.height * self.width

    @property
    def shape(self):
        return tuple(self._dims)

    def is_empty(self):
        return self.data_len == 0

    def copy(self):
        return TensorDim(self._dims)

    def __getitem__(self, axis):
        return self._dims[axis]

    def __iter__(self):
        return iter(self._dims)

    def __len__(self):
        return MAXDIM

    def __eq__(self, other):
        if isinstance(other, TensorDim):
            return self._dims == other._dims
        if isinstance(other, (tuple, list)):
            return self._dims == list(TensorDim(other))
        return NotImplemented

    def __repr__(self):
        return "TensorDim(" + ":".join(str(d) for d in self._dims) + ")"
