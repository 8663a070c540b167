"""
Dynamic training optimization: skip weight updates that barely move a weight.

The relative size of an update is estimated per weight and reduced to one
number. Updates are applied with a probability proportional to that ratio
scaled by the learning rate, so small relative updates are mostly skipped.
"""
import logging
from enum import Enum

import numpy as np

from .config import merge_config

logger = logging.getLogger(__name__)


class ReduceOp(Enum):
    """How an update ratio tensor is reduced to a single value."""
    MAX = 'max'
    NORM = 'norm'


class RatioMode(Enum):
    """What the update ratio is computed from."""
    DERIVATIVE = 'derivative'
    GRADIENT = 'gradient'


class DynamicTrainingOptimization:
    """
    Decide whether the update of a layer's weights should be applied.

    Args:
        threshold: Ratio threshold; a larger value skips more updates
        skip_n_iterations: Initial iterations that always apply updates
        reduce_op: ReduceOp (or 'max' / 'norm')
        mode: RatioMode (or 'derivative' / 'gradient')
        seed: Seed of the random draws
    """

    def __init__(self, threshold=1.0, skip_n_iterations=1, reduce_op=ReduceOp.NORM,
                 mode=RatioMode.DERIVATIVE, seed=None):
        self.threshold = threshold
        self.skip_n_iterations = skip_n_iterations
        self.reduce_op = ReduceOp(reduce_op)
        self.mode = RatioMode(mode)
        self.enabled = False
        self.epsilon = 1e-7
        self._rng = np.random.default_rng(seed)

    @classmethod
    def from_config(cls, config=None):
        """Build from the 'dynamic_training' section of a config dict."""
        section = merge_config(config)["dynamic_training"]
        opt = cls(threshold=section["threshold"],
                  skip_n_iterations=section["skip_n_iterations"],
                  reduce_op=section["reduce_op"],
                  mode=section["mode"],
                  seed=section["seed"])
        if section["enabled"]:
            opt.enable()
        return opt

    def enable(self):
        self.enabled = True

    def disable(self):
        self.enabled = False

    def set_reduce_op(self, op):
        self.reduce_op = ReduceOp(op)

    def set_mode(self, mode):
        self.mode = RatioMode(mode)

    def is_derivative_mode(self):
        return self.enabled and self.mode == RatioMode.DERIVATIVE

    def is_gradient_mode(self):
        return self.enabled and self.mode == RatioMode.GRADIENT

    def reduce(self, tensor):
        """Reduce a tensor to one value with the configured ReduceOp."""
        if self.reduce_op == ReduceOp.MAX:
            return tensor.max_abs()
        elif self.reduce_op == ReduceOp.NORM:
            return tensor.l2norm() / np.sqrt(tensor.size)
        raise ValueError(f"Unsupported reduce op {self.reduce_op}")

    def calc_ratio(self, weight, input_, output):
        """
        Ratio of the update to the weight.

        Args:
            weight: Weight whose update is checked
            input_: Input VarGrad of the layer
            output: Output VarGrad of the layer
        """
        if self.mode == RatioMode.GRADIENT:
            ratio = weight.gradient / (weight.variable + self.epsilon)
            return self.reduce(ratio)
        elif self.mode == RatioMode.DERIVATIVE:
            reduced_derivative = self.reduce(output.gradient)
            reduced_input = self.reduce(input_.variable)
            reduced_weight = self.reduce(weight.variable)
            return reduced_derivative * reduced_input / (reduced_weight + self.epsilon)
        raise ValueError(f"Unsupported ratio mode {self.mode}")

    def _check_ratio(self, reduced_ratio, learning_rate):
        # a nan ratio means the update cannot be judged, so it is applied
        if np.isnan(reduced_ratio):
            return True
        return self._rng.uniform() < reduced_ratio * learning_rate / self.threshold

    def check_if_apply(self, weights, input_, output, optimizer, iteration):
        """
        Check if the update of the given weights should be applied.

        Args:
            weights: Weight or list of weights of one layer
            input_: Input VarGrad of the layer
            output: Output VarGrad of the layer
            optimizer: Optimizer providing the learning rate
            iteration: Current iteration

        Returns:
            True if the update should be applied, False to skip it
        """
        if not self.enabled or iteration < self.skip_n_iterations:
            return True

        if not isinstance(weights, (list, tuple)):
            weights = [weights]

        learning_rate = optimizer.get_learning_rate(iteration)
        checked = False
        for weight in weights:
            if not weight.trainable or not weight.has_gradient:
                continue
            checked = True
            if self._check_ratio(self.calc_ratio(weight, input_, output), learning_rate):
                return True

        if not checked:
            return True

        logger.debug("Skipping update of %s at iteration %d",
                     [w.name for w in weights], iteration)
        return False
