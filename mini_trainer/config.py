"""
Default configuration for mini_trainer.

Manager, Sequential and DynamicTrainingOptimization read their defaults
from CONFIG; callers pass a partial dict to override individual keys.
"""

CONFIG = {
    # ==========================================================================
    # MEMORY SHARING
    # ==========================================================================

    # Share one gradient buffer among the weights of all layers.
    # Sized to the largest single layer, since layers are updated one by one
    # during the backward pass
    "gradient_memory_opt": True,

    # Share one derivative buffer among the inputs/outputs of all layers
    "derivative_memory_opt": True,

    # ==========================================================================
    # TRAINING
    # ==========================================================================

    # Seed for the global numpy RNG used by weight initializers.
    # None leaves the RNG untouched
    "seed": None,

    # Skip weight updates whose relative size is too small to matter
    "dynamic_training": {
        "enabled": False,
        # Larger threshold = more updates skipped
        "threshold": 1.0,
        # Always apply updates for the first N iterations
        "skip_n_iterations": 1,
        # 'max' or 'norm'
        "reduce_op": "norm",
        # 'derivative' or 'gradient'
        "mode": "derivative",
        "seed": None,
    },
}


def merge_config(overrides=None):
    """Return CONFIG with overrides applied, one level deep for sections."""
    config = {key: (dict(value) if isinstance(value, dict) else value)
              for key, value in CONFIG.items()}
    for key, value in (overrides or {}).items():
        if key not in config:
            raise ValueError(f"Unknown config key: {key}")
        if isinstance(config[key], dict):
            unknown = set(value) - set(config[key])
            if unknown:
                raise ValueError(f"Unknown keys in '{key}': {sorted(unknown)}")
            config[key].update(value)
        else:
            config[key] = value
    return config
