import numpy as np
import pytest

from mini_trainer import TensorDim, VarGrad, WeightInitializer
from mini_trainer.layers import ActivationLayer, FullyConnectedLayer


def bind(layer, batch=2, in_width=3):
    layer.finalize([TensorDim(batch, 1, 1, in_width)])
    for w in layer.weights:
        w.initialize()
    layer.net_input = [VarGrad(layer.input_dims[0], name=f"{layer.name}:InOut0")]
    layer.net_hidden = [VarGrad(layer.output_dims[0], name="next:InOut0")]
    for vg in layer.net_input + layer.net_hidden:
        vg.initialize()
    return layer


def test_fully_connected_shapes_and_names():
    layer = bind(FullyConnectedLayer(4, "fc"))
    weight, bias = layer.weights
    assert weight.name == "fc:weight"
    assert weight.dim == (3, 4)
    assert bias.dim == (1, 4)
    assert layer.output_dims[0] == (2, 1, 1, 4)


def test_fully_connected_rejects_multiple_inputs():
    with pytest.raises(ValueError):
        FullyConnectedLayer(4, "fc").finalize([TensorDim(1, 3), TensorDim(1, 3)])


def test_fully_connected_math():
    layer = bind(FullyConnectedLayer(2, "fc", WeightInitializer.ONES, WeightInitializer.ONES))
    x = np.array([[1, 2, 3], [0, 1, 0]], dtype=np.float32).reshape(2, 1, 1, 3)
    layer.net_input[0].variable.data[...] = x
    layer.forwarding()
    assert np.allclose(layer.net_hidden[0].variable.data.reshape(2, 2), [[7, 7], [2, 2]])

    layer.net_hidden[0].gradient.fill(1.0)
    layer.calc_gradient()
    weight, bias = layer.weights
    assert np.allclose(weight.gradient.data.reshape(3, 2), [[1, 1], [3, 3], [3, 3]])
    assert np.allclose(bias.gradient.data, 2.0)

    layer.calc_derivative()
    assert np.allclose(layer.net_input[0].gradient.data, 2.0)


@pytest.mark.parametrize("activation, x, y, dy", [
    ("relu", -1.0, 0.0, 0.0),
    ("relu", 2.0, 2.0, 1.0),
    ("sigmoid", 0.0, 0.5, 0.25),
    ("tanh", 0.0, 0.0, 1.0),
])
def test_activation(activation, x, y, dy):
    layer = bind(ActivationLayer(activation, "act"), in_width=1)
    assert not layer.weights
    layer.net_input[0].variable.fill(x)
    layer.forwarding()
    assert np.allclose(layer.net_hidden[0].variable.data, y)

    layer.net_hidden[0].gradient.fill(1.0)
    layer.calc_derivative()
    assert np.allclose(layer.net_input[0].gradient.data, dy)


def test_sigmoid_is_stable_for_large_inputs():
    layer = bind(ActivationLayer("sigmoid", "act"), in_width=2)
    layer.net_input[0].variable.data[...] = np.array([-1000, 1000]).reshape(1, 1, 1, 2)
    layer.forwarding()
    assert np.all(np.isfinite(layer.net_hidden[0].variable.data))


def test_unknown_activation():
    with pytest.raises(ValueError):
        ActivationLayer("softplus", "act")
