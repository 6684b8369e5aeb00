import unittest

from acousticnn.domain._errors import ConfigError
from acousticnn.infrastructure.io._config_pairs import (
    normalize_key,
    parse_config_pairs,
    parse_float,
    parse_int,
)


class TestConfigPairs(unittest.TestCase):
    def test_string_config_preserves_order(self):
        pairs = parse_config_pairs("<MaxGrad> 5 \n <ParamRange>\t0.1")
        self.assertEqual(pairs, [("<MaxGrad>", "5"), ("<ParamRange>", "0.1")])

    def test_empty_config(self):
        self.assertEqual(parse_config_pairs(""), [])
        self.assertEqual(parse_config_pairs("   \n"), [])

    def test_pair_iterable_normalizes_keys(self):
        pairs = parse_config_pairs([("ParamRange", 0.5), ("<MaxGrad>", 1)])
        self.assertEqual(pairs, [("<ParamRange>", "0.5"), ("<MaxGrad>", "1")])

    def test_missing_value_raises(self):
        with self.assertRaises(ConfigError):
            parse_config_pairs("<ParamRange>")
        with self.assertRaises(ConfigError):
            parse_config_pairs("<ParamRange> <MaxGrad> 1")

    def test_value_without_key_raises(self):
        with self.assertRaises(ConfigError) as cm:
            parse_config_pairs("0.5 <MaxGrad> 1")
        self.assertEqual(cm.exception.token, "0.5")

    def test_normalize_key(self):
        self.assertEqual(normalize_key("MaxGrad"), "<MaxGrad>")
        self.assertEqual(normalize_key(" <MaxGrad> "), "<MaxGrad>")

    def test_value_parsers(self):
        self.assertEqual(parse_float("<MaxGrad>", "-1e-2"), -0.01)
        self.assertEqual(parse_int("<InputDim>", "12"), 12)
        with self.assertRaises(ConfigError):
            parse_float("<MaxGrad>", "five")
        with self.assertRaises(ConfigError):
            parse_int("<InputDim>", "1.5")


if __name__ == "__main__":
    unittest.main()
