import io
import json
import os
import tempfile
import unittest
from pathlib import Path

import numpy as np

from acousticnn.domain._errors import (
    ConfigError,
    CorruptStateError,
    LayerNotInitializedError,
)
from acousticnn.domain._layer import LayerType
from acousticnn.domain._update import UpdateContext, UpdateRule
from acousticnn.infrastructure.io._token_stream import BINARY_HEADER, TokenReader, TokenWriter
from acousticnn.infrastructure.layers._affine_transform import AffineTransform
from acousticnn.infrastructure.layers._layer import layer_class_for
from acousticnn.infrastructure.layers._serialization import (
    JSON_FORMAT,
    init_layer,
    layer_from_payload,
    layer_to_payload,
    load_json,
    load_layer,
    read_layer,
    save_json,
    save_layer,
    write_layer,
)


def _populated_layer(adaptive: bool = False) -> AffineTransform:
    rng = np.random.default_rng(11)
    layer = AffineTransform(5, 2)
    layer.set_linearity(rng.standard_normal((2, 5)))
    layer.set_bias(rng.standard_normal(2))
    layer.learn_rate_coef = 0.75
    layer.max_grad = 1.5
    if adaptive:
        x = rng.standard_normal((3, 5)).astype(np.float32)
        dy = rng.standard_normal((3, 2)).astype(np.float32)
        layer.update(x, dy, UpdateContext(learn_rate=0.05), UpdateRule.RMSPROP)
    return layer


class TestLayerRegistry(unittest.TestCase):
    def test_affine_transform_is_registered(self):
        self.assertIs(layer_class_for(LayerType.AFFINE_TRANSFORM), AffineTransform)
        self.assertIs(AffineTransform.layer_type, LayerType.AFFINE_TRANSFORM)


class TestTokenFraming(unittest.TestCase):
    def _round_trip(self, layer, binary):
        buf = io.BytesIO()
        write_layer(layer, TokenWriter(buf, binary))
        data = buf.getvalue()
        return data, read_layer(TokenReader(io.BytesIO(data), binary))

    def test_frame_round_trip(self):
        src = _populated_layer(adaptive=True)
        for binary in (True, False):
            with self.subTest(binary=binary):
                data, dst = self._round_trip(src, binary)
                self.assertTrue(data.startswith(b"<AffineTransform> "))
                self.assertIsInstance(dst, AffineTransform)
                self.assertEqual((dst.input_dim, dst.output_dim), (5, 2))
                np.testing.assert_array_equal(dst.linearity, src.linearity)
                np.testing.assert_array_equal(dst.bias, src.bias)
                np.testing.assert_array_equal(dst.linearity_accu, src.linearity_accu)
                self.assertEqual(dst.learn_rate_coef, 0.75)
                self.assertEqual(dst.max_grad, 1.5)

    def test_text_frame_puts_dims_on_first_line(self):
        data, _ = self._round_trip(_populated_layer(), binary=False)
        first_line = data.decode("ascii").splitlines()[0]
        self.assertEqual(first_line, "<AffineTransform> 2 5 ")

    def test_unknown_marker_raises(self):
        data = b"<Sigmoid> 2 2 \n [\n  1 2 \n  3 4 ]\n [ 1 2 ]\n"
        with self.assertRaises(CorruptStateError):
            read_layer(TokenReader(io.BytesIO(data), False))

    def test_non_positive_dims_raise(self):
        data = b"<AffineTransform> 0 2 \n [ ]\n [ ]\n"
        with self.assertRaises(CorruptStateError):
            read_layer(TokenReader(io.BytesIO(data), False))


class TestInitLayer(unittest.TestCase):
    def test_builds_and_initializes(self):
        np.random.seed(0)
        layer = init_layer("<AffineTransform> <InputDim> 3 <OutputDim> 2 <ParamRange> 0.1")
        self.assertIsInstance(layer, AffineTransform)
        self.assertEqual((layer.input_dim, layer.output_dim), (3, 2))
        self.assertTrue(layer.is_initialized)
        self.assertLessEqual(float(np.abs(layer.linearity).max()), 0.1 + 1e-7)

    def test_options_in_any_order(self):
        layer = init_layer(
            "<AffineTransform> <MaxGrad> 5 <OutputDim> 4 <LearnRateCoef> 0.1 <InputDim> 6"
        )
        self.assertEqual((layer.input_dim, layer.output_dim), (6, 4))
        self.assertEqual(layer.max_grad, 5.0)
        self.assertAlmostEqual(layer.learn_rate_coef, 0.1)

    def test_marker_without_brackets(self):
        layer = init_layer("AffineTransform <InputDim> 1 <OutputDim> 1")
        self.assertIsInstance(layer, AffineTransform)

    def test_config_errors(self):
        bad_lines = [
            "",
            "<Softmax> <InputDim> 3 <OutputDim> 3",
            "<AffineTransform> <InputDim> 3",
            "<AffineTransform> <InputDim> 0 <OutputDim> 2",
            "<AffineTransform> <InputDim> x <OutputDim> 2",
            "<AffineTransform> <InputDim> 3 <OutputDim> 2 <Bogus> 1",
        ]
        for line in bad_lines:
            with self.subTest(line=line):
                with self.assertRaises(ConfigError):
                    init_layer(line)


class TestFileSaveLoad(unittest.TestCase):
    def test_binary_and_text_files(self):
        src = _populated_layer(adaptive=True)
        with tempfile.TemporaryDirectory() as d:
            for binary in (True, False):
                with self.subTest(binary=binary):
                    path = os.path.join(d, f"layer_{int(binary)}.nnet")
                    save_layer(src, path, binary=binary)
                    raw = Path(path).read_bytes()
                    self.assertEqual(raw.startswith(BINARY_HEADER), binary)

                    dst = load_layer(path)
                    np.testing.assert_array_equal(dst.linearity, src.linearity)
                    np.testing.assert_array_equal(dst.bias, src.bias)
                    np.testing.assert_array_equal(dst.bias_accu, src.bias_accu)


class TestJsonCheckpoint(unittest.TestCase):
    def test_payload_structure(self):
        payload = layer_to_payload(_populated_layer())
        self.assertEqual(payload["format"], JSON_FORMAT)
        self.assertEqual(payload["type"], "AffineTransform")
        self.assertEqual(payload["config"]["input_dim"], 5)
        self.assertEqual(set(payload["state"]), {"linearity", "bias"})

    def test_save_load_with_accumulators(self):
        src = _populated_layer(adaptive=True)
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "layer.json"
            save_json(src, path)
            dst = load_json(path)

        self.assertIsInstance(dst, AffineTransform)
        self.assertEqual(dst.get_config(), src.get_config())
        np.testing.assert_array_equal(dst.linearity, src.linearity)
        np.testing.assert_array_equal(dst.bias, src.bias)
        self.assertTrue(dst.ada_buffers_initialized)
        np.testing.assert_array_equal(dst.linearity_accu, src.linearity_accu)
        np.testing.assert_array_equal(dst.bias_accu, src.bias_accu)

    def test_unpopulated_layer_cannot_be_saved(self):
        with self.assertRaises(LayerNotInitializedError):
            layer_to_payload(AffineTransform(2, 2))

    def test_bad_payloads_raise(self):
        good = layer_to_payload(_populated_layer())

        wrong_format = dict(good, format="keras.v2")
        with self.assertRaises(CorruptStateError):
            layer_from_payload(wrong_format)

        wrong_type = dict(good, type="Softmax")
        with self.assertRaises(CorruptStateError):
            layer_from_payload(wrong_type)

        missing_bias = json.loads(json.dumps(good))
        del missing_bias["state"]["bias"]
        with self.assertRaises(CorruptStateError):
            layer_from_payload(missing_bias)

        wrong_dims = json.loads(json.dumps(good))
        wrong_dims["config"]["input_dim"] = 4
        with self.assertRaises(CorruptStateError):
            layer_from_payload(wrong_dims)

    def test_invalid_json_file_raises(self):
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(CorruptStateError):
                load_json(path)


if __name__ == "__main__":
    unittest.main()
