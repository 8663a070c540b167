"""
Manager for all weights, layer inputs/outputs and their memory.

Layers are tracked one group per layer, in the order they execute. The
Manager sizes one shared gradient pool for weights and one shared derivative
pool for inputs/outputs to the largest single group, and binds every
trainable entry to a view of its pool. Offsets restart at zero for every
group: the backward pass visits groups strictly one after another, and each
group's gradients are consumed before the next group writes into the pool.
"""
import logging

from .config import merge_config
from .tensor import Tensor
from .tensor_dim import TensorDim
from .var_grad import VarGrad

logger = logging.getLogger(__name__)


def _trainable_len(entries):
    return sum(e.dim.data_len for e in entries if e.trainable)


class Manager:
    """
    Registry of weights and layer inputs/outputs in execution order.

    Tracking is open until the registry is frozen, which happens explicitly
    through freeze() or implicitly on the first initialize call. reset()
    reopens it.

    Args:
        config: Optional partial config dict (see mini_trainer.config)
    """

    def __init__(self, config=None):
        config = merge_config(config)
        self._enable_gradient_memory_opt = config["gradient_memory_opt"]
        self._enable_derivative_memory_opt = config["derivative_memory_opt"]
        self._clear()

    def _clear(self):
        self._weights = []
        self._weight_group_names = []
        self._in_outs = []
        self._in_out_names = []

        self._max_weight_gradient_elems = 0
        self._max_derivative_elems = 0

        self._gradient_pool = None
        self._derivative_pool = None

        self._frozen = False
        self._in_outs_initialized = False
        self._in_outs_trainable = True

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_gradient_memory_optimization(self, opt):
        """Share memory among the gradients of all weights."""
        self._enable_gradient_memory_opt = bool(opt)

    def set_derivative_memory_optimization(self, opt):
        """Share memory among the derivatives of all layer inputs/outputs."""
        self._enable_derivative_memory_opt = bool(opt)

    @property
    def max_weight_gradient_elems(self):
        return self._max_weight_gradient_elems

    @property
    def max_derivative_elems(self):
        return self._max_derivative_elems

    @property
    def gradient_pool(self):
        return self._gradient_pool

    @property
    def derivative_pool(self):
        return self._derivative_pool

    @property
    def is_frozen(self):
        return self._frozen

    def _check_open(self):
        if self._frozen:
            raise RuntimeError("Manager is frozen; call reset() before tracking again")

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------

    def track_weight(self, weight, layer_name=None):
        """
        Track a single weight as its own group.

        Returns:
            Index of the new group
        """
        return self.track_weights([weight], layer_name)

    def track_weights(self, weights, layer_name=None):
        """
        Track the weights of one layer as one group.

        Must be called once per layer, in execution order.

        Args:
            weights: Weights of the layer
            layer_name: Optional layer name, checked against the execution order on freeze()

        Returns:
            Index of the new group
        """
        self._check_open()
        weights = list(weights)

        tracked = {id(w) for group in self._weights for w in group}
        names = {w.name for group in self._weights for w in group}
        for w in weights:
            if id(w) in tracked:
                raise ValueError(f"Weight '{w.name}' is already tracked by another layer")
            if w.name and w.name in names:
                raise ValueError(f"Weight name '{w.name}' is not unique")
            tracked.add(id(w))
            names.add(w.name)

        self._weights.append(weights)
        self._weight_group_names.append(layer_name)

        group_len = _trainable_len(weights)
        self._max_weight_gradient_elems = max(self._max_weight_gradient_elems, group_len)
        logger.debug("Tracked %d weights for %s (%d trainable elements)",
                     len(weights), layer_name, group_len)
        return len(self._weights) - 1

    def get_weight_refs(self):
        """List of weight groups, in execution order."""
        return [list(group) for group in self._weights]

    def initialize(self):
        """
        Allocate weight values and bind weight gradients.

        With the gradient optimization on, every trainable weight's gradient
        is a view into one pool sized to the largest layer. Weight values are
        allocated and initialized once and kept across calls.
        """
        if not self._frozen:
            self.freeze()

        pool = None
        if self._enable_gradient_memory_opt and self._max_weight_gradient_elems > 0:
            pool = self._get_pool(self._gradient_pool, self._max_weight_gradient_elems)
        self._gradient_pool = pool

        for group in self._weights:
            offset = 0
            for weight in group:
                if not weight.is_initialized:
                    weight.initialize_variable()

                if not weight.trainable:
                    continue

                if pool is not None:
                    weight.initialize_gradient(
                        pool.get_shared_data_tensor(weight.dim, offset))
                    offset += weight.dim.data_len
                else:
                    weight.initialize_gradient()

        logger.debug("Initialized %d weight groups (gradient pool: %s)",
                     len(self._weights), pool.dim if pool is not None else None)

    @staticmethod
    def _get_pool(current, length):
        if current is not None and current.size == length:
            return current
        if current is not None:
            logger.info("Re-allocating pool from %d to %d elements", current.size, length)
        else:
            logger.debug("Allocating pool of %d elements", length)
        return Tensor(TensorDim(length))

    # ------------------------------------------------------------------
    # Layer inputs/outputs
    # ------------------------------------------------------------------

    def track_layer_in_outs(self, layer_name, input_dims, trainable=True):
        """
        Track the inputs/outputs of a layer as one group.

        Must be called once per layer, in execution order.

        Args:
            layer_name: Name of the layer
            input_dims: One TensorDim per input
            trainable: Whether derivatives are needed for these inputs

        Returns:
            List of VarGrads named "<layer>:InOut<index>"
        """
        self._check_open()
        if layer_name in self._in_out_names:
            raise ValueError(f"Inputs/outputs of layer '{layer_name}' are already tracked")

        base_name = f"{layer_name}:InOut"
        in_out = [VarGrad(dim, trainable, f"{base_name}{i}")
                  for i, dim in enumerate(input_dims)]

        self._in_outs.append(in_out)
        self._in_out_names.append(layer_name)

        group_len = _trainable_len(in_out)
        self._max_derivative_elems = max(self._max_derivative_elems, group_len)
        return list(in_out)

    def untrack_layer_in_outs(self, layer_name):
        """
        Stop tracking the inputs/outputs of a layer.

        Raises:
            KeyError: If the layer's inputs/outputs are not tracked
        """
        self._check_open()
        var_name = f"{layer_name}:InOut0"

        for idx, in_out in enumerate(self._in_outs):
            if in_out and in_out[0].name == var_name:
                del self._in_outs[idx]
                del self._in_out_names[idx]
                break
        else:
            raise KeyError(f"Inputs/outputs of layer '{layer_name}' are not tracked")

        self._max_derivative_elems = max(
            (_trainable_len(in_out) for in_out in self._in_outs), default=0)

    def get_inputs_layer(self, layer_idx):
        """
        Inputs/outputs of a layer by its position in execution order.

        Args:
            layer_idx: Index of the layer, or -1 for the most recently tracked one

        Raises:
            IndexError: If the index is out of range
        """
        if not self._in_outs:
            raise IndexError("No layer inputs/outputs are tracked")
        if layer_idx == -1:
            return list(self._in_outs[-1])
        if not 0 <= layer_idx < len(self._in_outs):
            raise IndexError(
                f"Layer index {layer_idx} out of range for {len(self._in_outs)} layers")
        return list(self._in_outs[layer_idx])

    def initialize_in_outs(self, trainable):
        """
        Allocate input/output values and, if trainable, their derivatives.

        Args:
            trainable: If True, initialize derivatives, else, do not
        """
        if not self._frozen:
            self.freeze()

        pool = None
        if (trainable and self._enable_derivative_memory_opt
                and self._max_derivative_elems > 0):
            pool = self._get_pool(self._derivative_pool, self._max_derivative_elems)
        self._derivative_pool = pool

        for in_out in self._in_outs:
            offset = 0
            for vg in in_out:
                if vg.trainable and pool is not None:
                    vg.initialize(grad=pool.get_shared_data_tensor(vg.dim, offset))
                    offset += vg.dim.data_len
                else:
                    vg.initialize(gtrain=trainable)

        self._in_outs_initialized = True
        self._in_outs_trainable = trainable

    def _batch_sizes(self):
        return {vg.dim.batch for in_out in self._in_outs for vg in in_out}

    def set_batch_size(self, batch):
        """
        Set the batch size of every tracked input/output.

        The derivative pool size is rescaled with the batch, and already
        initialized inputs/outputs are bound again to the resized pool.
        """
        if batch <= 0:
            raise ValueError(f"Batch size must be positive, got {batch}")

        batches = self._batch_sizes()
        if len(batches) > 1:
            raise RuntimeError(f"Tracked inputs/outputs have mixed batch sizes {sorted(batches)}")
        if not batches:
            return

        old_batch = batches.pop()
        self._max_derivative_elems = self._max_derivative_elems // old_batch * batch
        for in_out in self._in_outs:
            for vg in in_out:
                vg.set_batch_size(batch)

        logger.debug("Batch size %d -> %d, derivative pool %d elements",
                     old_batch, batch, self._max_derivative_elems)

        if self._in_outs_initialized:
            self.initialize_in_outs(self._in_outs_trainable)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def freeze(self, execution_order=None):
        """
        Close the registry for tracking and validate it.

        Args:
            execution_order: Optional list of layer names in execution order.
                Named groups must appear in this order.

        Raises:
            ValueError: If a tracked layer is missing from execution_order
            RuntimeError: If groups are out of order or batch sizes differ
        """
        if execution_order is not None:
            position = {name: i for i, name in enumerate(execution_order)}
            for kind, names in (("weights", self._weight_group_names),
                                ("inputs/outputs", self._in_out_names)):
                last = -1
                for name in names:
                    if name is None:
                        continue
                    if name not in position:
                        raise ValueError(f"Layer '{name}' is not in the execution order")
                    if position[name] <= last:
                        raise RuntimeError(
                            f"{kind.capitalize()} of layer '{name}' are tracked out of execution order")
                    last = position[name]

        batches = self._batch_sizes()
        if len(batches) > 1:
            raise RuntimeError(f"Tracked inputs/outputs have mixed batch sizes {sorted(batches)}")

        self._frozen = True
        logger.debug("Frozen with %d weight groups and %d in/out groups",
                     len(self._weights), len(self._in_outs))

    def reset(self):
        """
        Clear all registries, pools and high-water marks.

        Tensors already bound to a pool keep the pool's buffer alive on
        their own; they are simply no longer managed.
        """
        self._clear()
