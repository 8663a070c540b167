"""
Optimizers for mini_trainer.
Includes SGD, Momentum and Adam, applied one weight at a time.

Weights are updated right after their layer's backward step, while their
gradient is still valid in the shared gradient pool. Per-weight state is
kept by weight name and never aliases pooled memory.
"""
import numpy as np


class Optimizer:
    """
    Base class for all optimizers.

    Args:
        learning_rate (or lr): Learning rate (step size)
        decay_rate: Exponential decay applied every decay_steps iterations
        decay_steps: Iterations per decay step; 0 disables decay
    """

    def __init__(self, learning_rate=0.01, decay_rate=1.0, decay_steps=0, lr=None):
        self.learning_rate = lr if lr is not None else learning_rate
        self.decay_rate = decay_rate
        self.decay_steps = decay_steps

    def get_learning_rate(self, iteration):
        """Learning rate for the given iteration."""
        if self.decay_steps > 0:
            return self.learning_rate * self.decay_rate ** (iteration / self.decay_steps)
        return self.learning_rate

    def apply_gradient(self, weight, iteration):
        """Update one weight - to be implemented by subclasses"""
        raise NotImplementedError

    def apply_gradients(self, weights, iteration):
        """Update every trainable, initialized weight in place."""
        for weight in weights:
            if weight.trainable and weight.has_gradient:
                self.apply_gradient(weight, iteration)


class SGD(Optimizer):
    """
    Stochastic Gradient Descent optimizer.
    """

    def apply_gradient(self, weight, iteration):
        """Update parameters using SGD"""
        var = weight.variable
        var -= self.get_learning_rate(iteration) * weight.gradient.data


class Momentum(Optimizer):
    """
    SGD with PyTorch-style momentum.

    Args:
        learning_rate (or lr): Learning rate
        momentum: Momentum factor (default: 0.9)
    """

    def __init__(self, learning_rate=0.01, momentum=0.9, lr=None, **kwargs):
        super().__init__(learning_rate, lr=lr, **kwargs)
        self.momentum = momentum
        self.velocity = {}

    def apply_gradient(self, weight, iteration):
        """Update parameters using PyTorch-style Momentum"""
        grad = weight.gradient.data
        velocity = self.velocity.setdefault(weight.name, np.zeros_like(grad))

        # Update velocity (accumulation of gradients)
        velocity[...] = self.momentum * velocity + grad

        var = weight.variable
        var -= self.get_learning_rate(iteration) * velocity


class Adam(Optimizer):
    """
    Adam (Adaptive Moment Estimation) optimizer.
    Combines momentum and RMSProp with bias correction.

    Args:
        learning_rate (or lr): Learning rate
        beta1: Exponential decay rate for first moment (default: 0.9)
        beta2: Exponential decay rate for second moment (default: 0.999)
        eps: Small constant for numerical stability
    """

    def __init__(self, learning_rate=0.001, beta1=0.9, beta2=0.999, eps=1e-8, lr=None, **kwargs):
        super().__init__(learning_rate, lr=lr, **kwargs)
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.m = {}  # First moment
        self.v = {}  # Second moment

    def apply_gradient(self, weight, iteration):
        """Update parameters using Adam"""
        grad = weight.gradient.data
        m = self.m.setdefault(weight.name, np.zeros_like(grad))
        v = self.v.setdefault(weight.name, np.zeros_like(grad))
        t = iteration + 1

        # Update biased first and second moment estimates
        m[...] = self.beta1 * m + (1 - self.beta1) * grad
        v[...] = self.beta2 * v + (1 - self.beta2) * (grad ** 2)

        # Bias-corrected moments
        m_hat = m / (1 - self.beta1 ** t)
        v_hat = v / (1 - self.beta2 ** t)

        var = weight.variable
        var -= self.get_learning_rate(iteration) * m_hat / (np.sqrt(v_hat) + self.eps)
