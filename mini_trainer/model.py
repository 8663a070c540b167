"""
Sequential model: wires layers to the Manager and drives training.
"""
import logging

import numpy as np

from .config import merge_config
from .dynamic_training import DynamicTrainingOptimization
from .manager import Manager
from .optim import SGD
from .tensor import Tensor
from .tensor_dim import TensorDim

logger = logging.getLogger(__name__)

# name of the in/out group holding the model output and the loss derivative
OUTPUT_NAME = "__output__"


class Sequential:
    """
    A stack of layers executed in the order they are given.

    Args:
        *layers: Layers in execution order
        optimizer: Optimizer applied after each layer's backward step (default: SGD)
        config: Optional partial config dict (see mini_trainer.config)
    """

    def __init__(self, *layers, optimizer=None, config=None):
        self.config = merge_config(config)
        self.layers = list(layers)
        self.optimizer = optimizer if optimizer is not None else SGD()
        self.manager = Manager(self.config)
        self.dynamic_training = DynamicTrainingOptimization.from_config(self.config)
        self.batch_size = None
        self._output = None

    @property
    def compiled(self):
        return self._output is not None

    def _check_compiled(self):
        if not self.compiled:
            raise RuntimeError("Model is not compiled")

    def add(self, layer):
        """Append a layer; only allowed before compile()."""
        if self.compiled:
            raise RuntimeError("Cannot add layers to a compiled model")
        self.layers.append(layer)

    def compile(self, input_dim, batch_size=1):
        """
        Finalize the layers and track their memory with the Manager.

        Args:
            input_dim: Dim of one input sample (the batch axis is overridden)
            batch_size: Batch size to start with
        """
        if self.compiled:
            raise RuntimeError("Model is already compiled")
        if not self.layers:
            raise ValueError("Model has no layers")

        names = [layer.name for layer in self.layers]
        if len(set(names)) != len(names) or OUTPUT_NAME in names:
            raise ValueError(f"Layer names must be unique and not '{OUTPUT_NAME}': {names}")

        dim = TensorDim(input_dim)
        dim.batch = batch_size

        for idx, layer in enumerate(self.layers):
            layer.finalize([dim])
            if layer.weights:
                self.manager.track_weights(layer.weights, layer.name)
            # the model input needs no derivative
            layer.net_input = self.manager.track_layer_in_outs(
                layer.name, layer.input_dims, trainable=idx > 0)
            dim = layer.output_dims[0]

        self._output = self.manager.track_layer_in_outs(OUTPUT_NAME, self.layers[-1].output_dims)
        for layer, next_layer in zip(self.layers, self.layers[1:]):
            layer.net_hidden = next_layer.net_input
        self.layers[-1].net_hidden = self._output

        self.manager.freeze(names + [OUTPUT_NAME])
        self.batch_size = batch_size
        logger.debug("Compiled %s with batch size %d", self.layers, batch_size)

    def initialize(self, trainable=True):
        """
        Allocate weights and layer inputs/outputs.

        Args:
            trainable: If False, no gradients or derivatives are allocated
        """
        self._check_compiled()
        if self.config["seed"] is not None:
            np.random.seed(self.config["seed"])
        self.manager.initialize()
        self.manager.initialize_in_outs(trainable)

    def set_batch_size(self, batch):
        """Change the batch size of the model; call between passes."""
        self._check_compiled()
        self.manager.set_batch_size(batch)
        for layer in self.layers:
            layer.set_batch_size(batch)
        self.batch_size = batch

    def forward(self, x, training=True):
        """
        Run the forward pass.

        Args:
            x: Input batch as a Tensor or array with batch_size samples

        Returns:
            Copy of the model output
        """
        self._check_compiled()
        x = x if isinstance(x, Tensor) else Tensor(data=x)
        self.layers[0].net_input[0].variable.copy_from(x)

        for layer in self.layers:
            layer.forwarding(training)
        return self._output[0].variable.clone()

    def backward(self, label, iteration=0):
        """
        Backpropagate a mean squared error loss and update the weights.

        Each layer's weights are updated right after its own backward step,
        before the next layer reuses the shared gradient memory.

        Args:
            label: Target batch as a Tensor or array
            iteration: Current iteration (learning rate decay, dynamic training)

        Returns:
            Loss value
        """
        self._check_compiled()
        output = self._output[0]
        label = label.data if isinstance(label, Tensor) else np.asarray(label, dtype=np.float32)

        diff = output.variable - label.reshape(output.variable.shape)
        loss = float(np.mean(diff.data ** 2))
        output.gradient.copy_from(diff * (2.0 / diff.size))

        for idx in reversed(range(len(self.layers))):
            layer = self.layers[idx]
            layer.calc_gradient()

            # decide before calc_derivative, which may overwrite the
            # output derivative in the shared derivative memory
            apply = bool(layer.weights) and self.dynamic_training.check_if_apply(
                layer.weights, layer.net_input[0], layer.net_hidden[0],
                self.optimizer, iteration)

            if idx > 0:
                layer.calc_derivative()
            if apply:
                self.optimizer.apply_gradients(layer.weights, iteration)

        return loss

    def train_step(self, x, y, iteration=0):
        """One forward and backward pass; returns the loss."""
        self.forward(x, training=True)
        return self.backward(y, iteration)

    def save(self, path):
        """Dump all weights, layer by layer, to a binary file."""
        self._check_compiled()
        with open(path, 'wb') as f:
            for layer in self.layers:
                layer.save(f)

    def load(self, path):
        """Restore all weights, layer by layer, from a binary file."""
        self._check_compiled()
        with open(path, 'rb') as f:
            for layer in self.layers:
                layer.read(f)
            if f.read(1):
                logger.warning("Ignoring trailing data in %s", path)
