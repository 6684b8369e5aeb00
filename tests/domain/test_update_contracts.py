import unittest

from acousticnn.domain._update import UpdateContext, UpdateRule


class TestUpdateRule(unittest.TestCase):
    def test_parse_accepts_enum_and_strings(self):
        self.assertIs(UpdateRule.parse(UpdateRule.ADAGRAD), UpdateRule.ADAGRAD)
        self.assertIs(UpdateRule.parse("sgd"), UpdateRule.SGD)
        self.assertIs(UpdateRule.parse(" RMSProp "), UpdateRule.RMSPROP)

    def test_parse_rejects_unknown_rule(self):
        with self.assertRaises(ValueError):
            UpdateRule.parse("adam")

    def test_is_adaptive(self):
        self.assertFalse(UpdateRule.SGD.is_adaptive)
        self.assertTrue(UpdateRule.ADAGRAD.is_adaptive)
        self.assertTrue(UpdateRule.RMSPROP.is_adaptive)


class TestUpdateContext(unittest.TestCase):
    def test_defaults_and_normalization(self):
        ctx = UpdateContext(learn_rate=1)
        self.assertIsInstance(ctx.learn_rate, float)
        self.assertEqual(ctx.learn_rate, 1.0)
        self.assertEqual(ctx.momentum, 0.0)

    def test_zero_learn_rate_is_allowed(self):
        self.assertEqual(UpdateContext(learn_rate=0).learn_rate, 0.0)

    def test_rejects_negative_or_non_finite_learn_rate(self):
        for lr in (-0.1, float("nan"), float("inf")):
            with self.subTest(lr=lr):
                with self.assertRaises(ValueError):
                    UpdateContext(learn_rate=lr)

    def test_rejects_momentum_out_of_range(self):
        with self.assertRaises(ValueError):
            UpdateContext(learn_rate=0.1, momentum=1.0)
        with self.assertRaises(ValueError):
            UpdateContext(learn_rate=0.1, momentum=-0.5)

    def test_is_immutable(self):
        ctx = UpdateContext(learn_rate=0.1, momentum=0.5)
        with self.assertRaises(AttributeError):
            ctx.learn_rate = 0.2  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
