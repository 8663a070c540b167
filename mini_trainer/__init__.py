"""
mini_trainer: a lightweight neural-network training library.

Layers operate on tensors whose memory is owned by a Manager. The Manager
tracks every weight and layer input/output in execution order and lets
gradients of different layers share one buffer to reduce peak memory.
"""
import logging

from .tensor_dim import TensorDim
from .tensor import Tensor
from .var_grad import VarGrad
from .weight import Weight, WeightInitializer
from .manager import Manager
from .dynamic_training import DynamicTrainingOptimization, ReduceOp, RatioMode
from . import layers
from . import optim
from .model import Sequential

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = '0.1.0'
__all__ = [
    'TensorDim', 'Tensor', 'VarGrad', 'Weight', 'WeightInitializer', 'Manager',
    'DynamicTrainingOptimization', 'ReduceOp', 'RatioMode',
    'layers', 'optim', 'Sequential',
]
