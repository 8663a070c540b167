"""
Weight: a VarGrad with an initializer policy, owned by one layer.
"""
from enum import Enum

import numpy as np

from .var_grad import VarGrad


class WeightInitializer(Enum):
    """Initialization applied to a weight's value when it is allocated."""
    NONE = 'none'
    ZEROS = 'zeros'
    ONES = 'ones'
    LECUN_NORMAL = 'lecun_normal'
    LECUN_UNIFORM = 'lecun_uniform'
    XAVIER_NORMAL = 'xavier_normal'
    XAVIER_UNIFORM = 'xavier_uniform'
    HE_NORMAL = 'he_normal'
    HE_UNIFORM = 'he_uniform'


class Weight(VarGrad):
    """
    Trainable (or frozen) parameter of a layer.

    Fan-in is the height axis and fan-out the width axis, so a fully
    connected weight is laid out as 1:1:in:out.

    Args:
        dim: TensorDim of the weight
        initializer: WeightInitializer (or its string value)
        trainable: Whether the weight receives a gradient
        name: Unique weight name, e.g. "fc1:weight"
        owner: Name of the layer owning this weight
    """

    def __init__(self, dim, initializer=WeightInitializer.XAVIER_UNIFORM,
                 trainable=True, name='', owner=None):
        super().__init__(dim, trainable, name)
        self.initializer = WeightInitializer(initializer)
        self.owner = owner

    def initialize_variable(self, preallocated=None):
        """
        Bind or allocate the value.

        The initializer only runs on a freshly allocated buffer; bound
        storage keeps whatever the caller put there.
        """
        super().initialize_variable(preallocated)
        if preallocated is None:
            self.run_initializer()

    def run_initializer(self, rng=None):
        """
        Fill the value according to the initializer.

        Args:
            rng: Optional numpy Generator; the global numpy RNG otherwise
        """
        var = self.variable
        dim = var.dim
        fan_in, fan_out = dim.height, dim.width
        shape = dim.shape

        if rng is None:
            rng = np.random

        init = self.initializer
        if init == WeightInitializer.NONE:
            return
        elif init == WeightInitializer.ZEROS:
            var.set_zero()
        elif init == WeightInitializer.ONES:
            var.fill(1.0)
        elif init == WeightInitializer.LECUN_NORMAL:
            var.data[...] = rng.standard_normal(size=shape) * np.sqrt(1.0 / fan_in)
        elif init == WeightInitializer.XAVIER_NORMAL:
            var.data[...] = rng.standard_normal(size=shape) * np.sqrt(2.0 / (fan_in + fan_out))
        elif init == WeightInitializer.HE_NORMAL:
            var.data[...] = rng.standard_normal(size=shape) * np.sqrt(2.0 / fan_in)
        elif init == WeightInitializer.LECUN_UNIFORM:
            limit = np.sqrt(1.0 / fan_in)
            var.data[...] = rng.uniform(-limit, limit, size=shape)
        elif init == WeightInitializer.XAVIER_UNIFORM:
            limit = np.sqrt(6.0 / (fan_in + fan_out))
            var.data[...] = rng.uniform(-limit, limit, size=shape)
        elif init == WeightInitializer.HE_UNIFORM:
            limit = np.sqrt(6.0 / fan_in)
            var.data[...] = rng.uniform(-limit, limit, size=shape)

    def save(self, file):
        """Write the weight value to a binary file object."""
        self.variable.save(file)

    def read(self, file):
        """Restore the weight value from a binary file object, allocating it if needed."""
        self._var.read(file)
