"""
Layer contract and reference layers for mini_trainer.

Layers never allocate their inputs, outputs or gradients themselves: the
model tracks them with the Manager, which binds them to (possibly pooled)
storage. A layer only reads and writes through the VarGrads it is handed.
"""
import numpy as np

from .tensor_dim import TensorDim
from .weight import Weight, WeightInitializer


class Layer:
    """
    Base class for all layers.

    After finalize() the model binds net_input (VarGrads of the inputs) and
    net_hidden (VarGrads of the outputs, shared with the next layer's inputs).

    Args:
        name: Unique layer name
        trainable: Whether the layer's weights are updated
    """

    type = None

    def __init__(self, name, trainable=True):
        self.name = name
        self.trainable = trainable
        self.input_dims = []
        self.output_dims = []
        self.weights = []
        self.net_input = []
        self.net_hidden = []

    def finalize(self, input_dims):
        """Set input/output dims and create (unallocated) weights."""
        self.input_dims = [TensorDim(d) for d in input_dims]
        self.output_dims = [d.copy() for d in self.input_dims]

    def forwarding(self, training=True):
        """Forward pass - to be implemented by subclasses"""
        raise NotImplementedError

    def calc_gradient(self):
        """Compute weight gradients from the output derivative."""
        pass

    def calc_derivative(self):
        """Compute the input derivative passed to the previous layer."""
        raise NotImplementedError

    def set_batch_size(self, batch):
        for dim in self.input_dims + self.output_dims:
            dim.batch = batch

    def _set_output(self, result):
        self.net_hidden[0].variable.copy_from(result)

    def _set_input_derivative(self, derivative):
        # the first layer's input carries no derivative
        if self.net_input[0].has_gradient:
            self.net_input[0].gradient.copy_from(derivative)

    def save(self, file):
        """Write the layer's weights, in order, to a binary file object."""
        for weight in self.weights:
            weight.save(file)

    def read(self, file):
        """Restore the layer's weights, in order, from a binary file object."""
        for weight in self.weights:
            weight.read(file)

    def __repr__(self):
        return f"[{self.name}/{self.type}]"


class FullyConnectedLayer(Layer):
    """
    Fully connected (dense) layer: y = xW + b

    Args:
        unit: Number of output features
        name: Unique layer name
        weight_initializer: WeightInitializer of W
        bias_initializer: WeightInitializer of b
    """

    type = 'fully_connected'

    def __init__(self, unit, name, weight_initializer=WeightInitializer.XAVIER_UNIFORM,
                 bias_initializer=WeightInitializer.ZEROS, trainable=True):
        super().__init__(name, trainable)
        self.unit = unit
        self.weight_initializer = weight_initializer
        self.bias_initializer = bias_initializer

    def finalize(self, input_dims):
        if len(input_dims) != 1:
            raise ValueError("Only one input is allowed for fully connected layer")
        super().finalize(input_dims)

        in_dim = self.input_dims[0]
        self.output_dims[0].width = self.unit

        self.weights = [
            Weight((in_dim.width, self.unit), self.weight_initializer,
                   self.trainable, f"{self.name}:weight", owner=self.name),
            Weight((1, self.unit), self.bias_initializer,
                   self.trainable, f"{self.name}:bias", owner=self.name),
        ]

    def forwarding(self, training=True):
        weight, bias = self.weights
        out = self.net_input[0].variable.dot(weight.variable)
        out += bias.variable
        self._set_output(out)

    def calc_gradient(self):
        weight, bias = self.weights
        if not weight.has_gradient:
            return
        deriv = self.net_hidden[0].gradient
        weight.gradient.copy_from(self.net_input[0].variable.dot(deriv, trans=True))
        bias.gradient.copy_from(deriv.sum(axis=(0, 1, 2)))

    def calc_derivative(self):
        weight = self.weights[0]
        deriv = self.net_hidden[0].gradient
        self._set_input_derivative(deriv.dot(weight.variable, trans_m=True))


class ActivationLayer(Layer):
    """
    Element-wise activation layer.

    Args:
        activation: One of 'relu', 'sigmoid', 'tanh'
        name: Unique layer name
    """

    type = 'activation'

    _ACTIVATIONS = ('relu', 'sigmoid', 'tanh')

    def __init__(self, activation, name):
        super().__init__(name, trainable=False)
        if activation not in self._ACTIVATIONS:
            raise ValueError(f"Unknown activation '{activation}'")
        self.activation = activation

    def _act(self, x):
        if self.activation == 'relu':
            return np.maximum(0, x)
        elif self.activation == 'sigmoid':
            # For numerical stability
            return np.where(x >= 0, 1 / (1 + np.exp(-np.abs(x))),
                            np.exp(-np.abs(x)) / (1 + np.exp(-np.abs(x))))
        return np.tanh(x)

    def _act_prime(self, y):
        # derivative expressed in terms of the activation's output
        if self.activation == 'relu':
            return (y > 0).astype(y.dtype)
        elif self.activation == 'sigmoid':
            return y * (1 - y)
        return 1 - y ** 2

    def forwarding(self, training=True):
        self._set_output(self.net_input[0].variable.apply(self._act))

    def calc_derivative(self):
        out = self.net_hidden[0].variable
        deriv = self.net_hidden[0].gradient
        self._set_input_derivative(deriv * out.apply(self._act_prime))
