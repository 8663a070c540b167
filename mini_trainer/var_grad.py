"""
VarGrad: a value tensor paired with an optional gradient tensor.
"""
from .tensor import Tensor
from .tensor_dim import TensorDim


class VarGrad:
    """
    One trainable or intermediate quantity (activation or weight).

    Construction only records metadata; memory is bound or allocated later
    through initialize_variable / initialize_gradient, either standalone or
    as a view handed out by the Manager's pool.

    Args:
        dim: TensorDim of the value (and gradient)
        trainable: Whether a gradient of the same dim will exist
        name: Name of the quantity, unique per (layer, role, index)
    """

    def __init__(self, dim, trainable=True, name=''):
        self.name = name
        self.trainable = trainable
        dim = TensorDim(dim)
        self._var = Tensor(dim, allocate=False)
        self._grad = Tensor(dim, allocate=False) if trainable else Tensor()

    @property
    def dim(self):
        return self._var.dim

    @property
    def is_initialized(self):
        return self._var.is_allocated

    @property
    def has_gradient(self):
        return self.trainable and self._grad.is_allocated

    @property
    def variable(self):
        if not self._var.is_allocated:
            raise RuntimeError(f"Variable of '{self.name}' is used before initialize()")
        return self._var

    @property
    def gradient(self):
        if not self.trainable:
            raise RuntimeError(f"'{self.name}' is not trainable and has no gradient")
        if not self._grad.is_allocated:
            raise RuntimeError(f"Gradient of '{self.name}' is used before initialize()")
        return self._grad

    def _check_preallocated(self, preallocated):
        if not preallocated.is_allocated:
            raise ValueError(f"Tensor bound to '{self.name}' must be allocated")
        if preallocated.dim != self.dim:
            raise ValueError(
                f"Tensor {preallocated.dim} does not match '{self.name}' {self.dim}"
            )

    def initialize_variable(self, preallocated=None):
        """
        Bind the value to preallocated storage, or allocate a zeroed buffer.

        Args:
            preallocated: Optional allocated tensor (often a pool view)
        """
        if preallocated is not None:
            self._check_preallocated(preallocated)
            self._var = preallocated
        else:
            self._var = Tensor(self._var.dim)

    def initialize_gradient(self, preallocated=None):
        """
        Bind the gradient to preallocated storage, or allocate a buffer.
        The gradient is zeroed either way.

        Args:
            preallocated: Optional allocated tensor (often a pool view)
        """
        if not self.trainable:
            raise RuntimeError(f"'{self.name}' is not trainable and has no gradient")

        if preallocated is not None:
            self._check_preallocated(preallocated)
            self._grad = preallocated
        else:
            self._grad = Tensor(self._var.dim)
        self.reset_gradient()

    def initialize(self, var=None, grad=None, gtrain=True):
        """
        Initialize the value and, when trainable and gtrain is set, the gradient.

        Args:
            var: Optional preallocated value tensor
            grad: Optional preallocated gradient tensor
            gtrain: Whether the gradient is needed at all
        """
        self.initialize_variable(var)
        if self.trainable and gtrain:
            self.initialize_gradient(grad)
        elif self.trainable:
            # drop any gradient bound by an earlier training initialize
            self._grad = Tensor(self._var.dim, allocate=False)

    def reset_gradient(self):
        """Zero the gradient in place without rebinding its storage."""
        if not self.trainable:
            return
        self.gradient.set_zero()

    def set_batch_size(self, batch):
        """Change the batch axis of both value and gradient."""
        if batch <= 0:
            raise ValueError(f"Batch size of '{self.name}' must be positive, got {batch}")
        self._var.set_batch_size(batch)
        if self.trainable:
            self._grad.set_batch_size(batch)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(name={self.name!r}, dim={self.dim}, "
            f"trainable={self.trainable}, initialized={self.is_initialized})"
        )
