import unittest

import numpy as np

from acousticnn.domain._errors import LayerNotInitializedError, ShapeMismatchError
from acousticnn.infrastructure.layers._affine_transform import AffineTransform


def _layer_with(W, b) -> AffineTransform:
    W = np.asarray(W, dtype=np.float32)
    layer = AffineTransform(input_dim=W.shape[1], output_dim=W.shape[0])
    layer.set_linearity(W)
    layer.set_bias(b)
    return layer


class TestAffinePropagate(unittest.TestCase):
    def test_selection_scenario(self):
        layer = _layer_with([[1, 0, 0], [0, 1, 0]], [0, 0])
        y = layer.propagate(np.ones((4, 3), dtype=np.float32))
        self.assertEqual(y.shape, (4, 2))
        np.testing.assert_array_equal(y, np.ones((4, 2), dtype=np.float32))

    def test_matches_numpy_reference_for_any_batch(self):
        rng = np.random.default_rng(0)
        W = rng.standard_normal((5, 7)).astype(np.float32)
        b = rng.standard_normal(5).astype(np.float32)
        layer = _layer_with(W, b)

        for batch in (1, 3, 16):
            x = rng.standard_normal((batch, 7)).astype(np.float32)
            y = layer.propagate(x)
            self.assertEqual(y.dtype, np.float32)
            np.testing.assert_allclose(y, x @ W.T + b, rtol=1e-5, atol=1e-5)

    def test_does_not_mutate_parameters(self):
        layer = _layer_with([[1.0, 2.0]], [0.5])
        w_before = layer.linearity.copy()
        b_before = layer.bias.copy()
        layer.propagate(np.ones((2, 2), dtype=np.float32))
        np.testing.assert_array_equal(layer.linearity, w_before)
        np.testing.assert_array_equal(layer.bias, b_before)

    def test_rejects_wrong_input_width(self):
        layer = _layer_with([[1.0, 2.0]], [0.5])
        with self.assertRaises(ShapeMismatchError):
            layer.propagate(np.ones((2, 3), dtype=np.float32))
        with self.assertRaises(ShapeMismatchError):
            layer.propagate(np.ones(2, dtype=np.float32))

    def test_uninitialized_layer_raises(self):
        layer = AffineTransform(3, 2)
        self.assertFalse(layer.is_initialized)
        with self.assertRaises(LayerNotInitializedError):
            layer.propagate(np.ones((1, 3), dtype=np.float32))

    def test_only_linearity_set_is_still_uninitialized(self):
        layer = AffineTransform(3, 2)
        layer.set_linearity(np.zeros((2, 3)))
        self.assertFalse(layer.is_initialized)
        with self.assertRaises(LayerNotInitializedError):
            layer.propagate(np.ones((1, 3), dtype=np.float32))


class TestAffineBackpropagate(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(1)
        self.W = rng.standard_normal((4, 6)).astype(np.float32)
        self.x = rng.standard_normal((3, 6)).astype(np.float32)
        self.dy = rng.standard_normal((3, 4)).astype(np.float32)

    def test_equals_grad_times_weight(self):
        layer = _layer_with(self.W, np.zeros(4))
        y = layer.propagate(self.x)
        dx = layer.backpropagate(self.x, y, self.dy)
        self.assertEqual(dx.shape, (3, 6))
        np.testing.assert_allclose(dx, self.dy @ self.W, rtol=1e-5, atol=1e-5)

    def test_independent_of_bias_and_cached_output(self):
        a = _layer_with(self.W, np.zeros(4))
        b = _layer_with(self.W, np.full(4, 100.0))
        y_garbage = np.full((3, 4), -7.0, dtype=np.float32)

        dx_a = a.backpropagate(self.x, a.propagate(self.x), self.dy)
        dx_b = b.backpropagate(self.x, y_garbage, self.dy)
        np.testing.assert_array_equal(dx_a, dx_b)

    def test_rejects_mismatched_batches(self):
        layer = _layer_with(self.W, np.zeros(4))
        y = layer.propagate(self.x)
        with self.assertRaises(ShapeMismatchError):
            layer.backpropagate(self.x, y, self.dy[:2])
        with self.assertRaises(ShapeMismatchError):
            layer.backpropagate(self.x, y, np.ones((3, 5), dtype=np.float32))


class TestAffineSetters(unittest.TestCase):
    def test_set_linearity_and_bias_are_shape_checked(self):
        layer = AffineTransform(3, 2)
        with self.assertRaises(ShapeMismatchError):
            layer.set_linearity(np.zeros((3, 2)))
        with self.assertRaises(ShapeMismatchError):
            layer.set_bias(np.zeros(3))

    def test_setters_copy_input(self):
        W = np.zeros((2, 3), dtype=np.float32)
        layer = _layer_with(W, np.zeros(2))
        W[0, 0] = 5.0
        self.assertEqual(layer.linearity[0, 0], 0.0)

    def test_accessors_are_read_only(self):
        layer = _layer_with(np.zeros((2, 3)), np.zeros(2))
        with self.assertRaises(ValueError):
            layer.linearity[0, 0] = 1.0
        with self.assertRaises(ValueError):
            layer.bias_corr[0] = 1.0

    def test_constructor_rejects_non_positive_dims(self):
        with self.assertRaises(ValueError):
            AffineTransform(0, 2)
        with self.assertRaises(ValueError):
            AffineTransform(3, -1)


if __name__ == "__main__":
    unittest.main()
