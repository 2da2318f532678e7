import math
import unittest

import numpy as np

from keyprop.domain._errors import (
    EngineMismatchError,
    InvalidConfigError,
    MissingRegistryError,
    ShapeMismatchError,
    UnknownParameterError,
)
from keyprop.infrastructure._variables import VariableRegistry
from keyprop.infrastructure.optimizers._rmsprop import RMSProp
from keyprop.infrastructure.tensor._engine import Engine
from keyprop.infrastructure.tensor._ops import scalar, tensor

# one, c, epsilon, gamma
N_OPTIMIZER_SCALARS = 4


def reference_step(p, g, cache, lr, decay, eps=1e-6):
    """
    Float32 reference for one RMSProp step, evaluated in the same order as
    the optimizer.
    """
    p = np.asarray(p, dtype=np.float32)
    g = np.asarray(g, dtype=np.float32)
    cache = np.asarray(cache, dtype=np.float32)
    gamma = np.float32(decay)
    new_cache = gamma * cache + (np.float32(1.0) - gamma) * (g * g)
    new_p = np.float32(-lr) * (g / (np.sqrt(new_cache) + np.float32(eps))) + (
        np.float32(1.0) * p
    )
    return new_p, new_cache


class _RMSPropTestBase(unittest.TestCase):
    def setUp(self):
        self.engine = Engine()
        self.registry = VariableRegistry(engine=self.engine)

    def grad(self, values):
        return tensor(values, engine=self.engine)

    def make_opt(self, lr=0.1, decay=0.9, **kwargs):
        return RMSProp(lr, decay, registry=self.registry, engine=self.engine, **kwargs)


class TestRMSPropFirstStep(_RMSPropTestBase):
    def test_single_scalar_scenario(self):
        w = self.registry.add("w", [1.0])
        opt = self.make_opt(lr=0.1, decay=0.9)

        opt.apply_gradients({"w": self.grad([2.0])})

        np.testing.assert_allclose(opt.get_accumulator("w").to_numpy(), [0.4], rtol=1e-5)
        expected = 1.0 - 0.1 * 2.0 / (math.sqrt(0.4) + 1e-6)
        np.testing.assert_allclose(w.to_numpy(), [expected], rtol=1e-5)
        np.testing.assert_allclose(w.to_numpy(), [0.6838], atol=1e-4)

    def test_first_step_matches_closed_form(self):
        p0 = np.array([[1.0, -2.0], [0.5, 3.0]], dtype=np.float32)
        g0 = np.array([[0.1, -0.2], [0.0, 1.5]], dtype=np.float32)
        lr, decay = 1e-2, 0.95
        w = self.registry.add("w", p0)
        opt = self.make_opt(lr=lr, decay=decay)

        opt.apply_gradients({"w": self.grad(g0)})

        # cache starts at zero: cache = (1 - decay) * g^2
        np.testing.assert_allclose(
            opt.get_accumulator("w").to_numpy(), (1.0 - decay) * g0**2, rtol=1e-5, atol=1e-8
        )
        expected_p, _ = reference_step(p0, g0, np.zeros_like(p0), lr, decay)
        np.testing.assert_allclose(w.to_numpy(), expected_p, rtol=1e-6, atol=1e-7)

    def test_zero_gradient_leaves_parameter_unchanged(self):
        w = self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        opt.apply_gradients({"w": self.grad([0.0, 0.0])})
        np.testing.assert_allclose(w.to_numpy(), [1.0, 2.0])

    def test_multiple_parameters_updated_independently(self):
        a = self.registry.add("a", [1.0, 1.0])
        b = self.registry.add("b", [[2.0], [3.0], [4.0]])
        opt = self.make_opt(lr=0.05, decay=0.8)

        ga = np.array([0.5, -0.5], dtype=np.float32)
        gb = np.array([[1.0], [2.0], [-3.0]], dtype=np.float32)
        opt.apply_gradients({"a": self.grad(ga), "b": self.grad(gb)})

        exp_a, _ = reference_step([1.0, 1.0], ga, np.zeros(2), 0.05, 0.8)
        exp_b, _ = reference_step([[2.0], [3.0], [4.0]], gb, np.zeros((3, 1)), 0.05, 0.8)
        np.testing.assert_allclose(a.to_numpy(), exp_a, rtol=1e-6)
        np.testing.assert_allclose(b.to_numpy(), exp_b, rtol=1e-6)
        self.assertEqual(sorted(opt.accumulators.names()), ["a", "b"])

    def test_custom_epsilon_is_used(self):
        w = self.registry.add("w", [1.0])
        opt = self.make_opt(lr=0.1, decay=0.5, epsilon=0.5)
        opt.apply_gradients({"w": self.grad([1.0])})
        expected = 1.0 - 0.1 * 1.0 / (math.sqrt(0.5) + 0.5)
        np.testing.assert_allclose(w.to_numpy(), [expected], rtol=1e-5)


class TestRMSPropChainedSteps(_RMSPropTestBase):
    def test_second_step_scenario(self):
        w = self.registry.add("w", [1.0])
        opt = self.make_opt(lr=0.1, decay=0.9)

        opt.apply_gradients({"w": self.grad([2.0])})
        after_first = 1.0 - 0.1 * 2.0 / (math.sqrt(0.4) + 1e-6)
        opt.apply_gradients({"w": self.grad([1.0])})

        np.testing.assert_allclose(opt.get_accumulator("w").to_numpy(), [0.46], rtol=1e-5)
        expected = after_first - 0.1 * 1.0 / (math.sqrt(0.46) + 1e-6)
        np.testing.assert_allclose(w.to_numpy(), [expected], rtol=1e-5)

    def test_accumulator_blends_consecutive_gradients(self):
        decay = 0.7
        g1 = np.array([0.3, -1.2, 2.0], dtype=np.float32)
        g2 = np.array([-0.4, 0.1, 1.0], dtype=np.float32)
        self.registry.add("w", np.zeros(3))
        opt = self.make_opt(lr=0.01, decay=decay)

        opt.apply_gradients({"w": self.grad(g1)})
        opt.apply_gradients({"w": self.grad(g2)})

        expected = decay * (decay * 0.0 + (1 - decay) * g1**2) + (1 - decay) * g2**2
        np.testing.assert_allclose(
            opt.get_accumulator("w").to_numpy(), expected, rtol=1e-6, atol=1e-6
        )

    def test_many_steps_match_reference(self):
        rng = np.random.default_rng(0)
        p = rng.standard_normal((4, 3)).astype(np.float32)
        cache = np.zeros_like(p)
        w = self.registry.add("w", p)
        opt = self.make_opt(lr=1e-2, decay=0.9)

        for _ in range(10):
            g = rng.standard_normal((4, 3)).astype(np.float32)
            opt.apply_gradients({"w": self.grad(g)})
            p, cache = reference_step(p, g, cache, 1e-2, 0.9)

        np.testing.assert_allclose(w.to_numpy(), p, rtol=1e-6, atol=1e-7)
        np.testing.assert_allclose(opt.get_accumulator("w").to_numpy(), cache, rtol=1e-6)

    def test_shape_is_preserved(self):
        w = self.registry.add("w", np.ones((2, 3, 4)))
        opt = self.make_opt()
        for _ in range(3):
            opt.apply_gradients({"w": self.grad(np.full((2, 3, 4), 0.5))})
        self.assertEqual(w.shape, (2, 3, 4))
        self.assertEqual(opt.get_accumulator("w").shape, (2, 3, 4))


class TestRMSPropMemory(_RMSPropTestBase):
    def test_gradients_remain_owned_by_caller(self):
        self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        g = self.grad([0.1, 0.2])
        opt.apply_gradients({"w": g})
        self.assertFalse(g.is_disposed)
        self.assertFalse(g.is_kept)

    def test_one_live_accumulator_per_parameter(self):
        w = self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        g = self.grad([0.1, 0.2])

        opt.apply_gradients({"w": g})
        first_acc = opt.get_accumulator("w")
        first_value = w.value
        live_after_first = self.engine.num_tensors

        opt.apply_gradients({"w": g})
        self.assertTrue(first_acc.is_disposed)
        self.assertTrue(first_value.is_disposed)
        self.assertTrue(opt.get_accumulator("w").is_kept)
        self.assertEqual(len(opt.accumulators), 1)
        self.assertEqual(self.engine.num_tensors, live_after_first)

    def test_intermediates_are_reclaimed_each_call(self):
        self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        g = self.grad([0.1, 0.2])
        # variable + gradient + optimizer scalars
        baseline = 2 + N_OPTIMIZER_SCALARS
        self.assertEqual(self.engine.num_tensors, baseline)

        for _ in range(5):
            opt.apply_gradients({"w": g})
            # + one accumulator
            self.assertEqual(self.engine.num_tensors, baseline + 1)
        self.assertEqual(self.engine.scope_depth, 0)

    def test_no_leak_after_steps_and_dispose(self):
        self.registry.add("a", [1.0, 2.0])
        self.registry.add("b", [[0.5]])
        opt = self.make_opt()
        grads = {"a": self.grad([0.1, -0.1]), "b": self.grad([[2.0]])}

        for _ in range(7):
            opt.apply_gradients(grads)
        opt.dispose()

        # only the caller-owned variables and gradients remain
        self.assertEqual(self.engine.num_tensors, 4)
        for g in grads.values():
            g.dispose()
        self.registry.dispose()
        self.assertEqual(self.engine.num_tensors, 0)


class TestRMSPropErrors(_RMSPropTestBase):
    def test_shape_mismatch_propagates_without_leaking(self):
        w = self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        g = self.grad([1.0, 2.0, 3.0])
        before = self.engine.num_tensors

        with self.assertRaises(ShapeMismatchError):
            opt.apply_gradients({"w": g})

        np.testing.assert_allclose(w.to_numpy(), [1.0, 2.0])
        self.assertEqual(self.engine.num_tensors, before)
        self.assertIsNone(opt.get_accumulator("w"))

    def test_scalar_gradient_is_not_broadcast(self):
        w = self.registry.add("w", [1.0, 2.0, 3.0])
        opt = self.make_opt()

        with self.assertRaises(ShapeMismatchError):
            opt.apply_gradients({"w": scalar(2.0, engine=self.engine)})

        np.testing.assert_allclose(w.to_numpy(), [1.0, 2.0, 3.0])
        self.assertNotIn("w", opt.accumulators)

    def test_failed_update_leaves_accumulator_intact(self):
        w = self.registry.add("w", 1.0)
        opt = self.make_opt()
        opt.apply_gradients({"w": scalar(2.0, engine=self.engine)})
        acc_before = opt.get_accumulator("w").to_numpy()
        value_before = w.to_numpy()

        with self.assertRaises(ShapeMismatchError):
            opt.apply_gradients({"w": self.grad([1.0, 2.0, 3.0])})

        acc = opt.get_accumulator("w")
        self.assertEqual(acc.shape, ())
        np.testing.assert_array_equal(acc.to_numpy(), acc_before)
        np.testing.assert_array_equal(w.to_numpy(), value_before)

        # a correctly shaped gradient still works afterwards
        opt.apply_gradients({"w": scalar(2.0, engine=self.engine)})
        self.assertEqual(opt.get_accumulator("w").shape, ())
        self.assertLess(float(w.to_numpy()), float(value_before))

    def test_gradient_on_other_engine_is_rejected(self):
        self.registry.add("w", [1.0, 2.0])
        opt = self.make_opt()
        other = Engine()
        g = tensor([1.0, 1.0], engine=other)

        with self.assertRaises(EngineMismatchError):
            opt.apply_gradients({"w": g})

        self.assertEqual(other.num_tensors, 1)
        self.assertNotIn("w", opt.accumulators)

    def test_variable_on_other_engine_is_rejected(self):
        other = Engine()
        registry = VariableRegistry(engine=other)
        registry.add("w", [1.0])
        opt = RMSProp(0.1, 0.9, registry=registry, engine=self.engine)

        with self.assertRaises(EngineMismatchError):
            opt.apply_gradients({"w": self.grad([1.0])})

        self.assertEqual(other.num_tensors, 1)

    def test_unknown_parameter_raises(self):
        opt = self.make_opt()
        with self.assertRaises(UnknownParameterError):
            opt.apply_gradients({"nope": self.grad([1.0])})

    def test_partial_update_is_not_rolled_back(self):
        a = self.registry.add("a", [1.0])
        opt = self.make_opt()
        with self.assertRaises(UnknownParameterError):
            opt.apply_gradients({"a": self.grad([1.0]), "missing": self.grad([1.0])})
        self.assertLess(float(a.to_numpy()[0]), 1.0)
        self.assertIn("a", opt.accumulators)

    def test_apply_without_registry_raises(self):
        opt = RMSProp(0.1, 0.9, engine=self.engine)
        with self.assertRaises(MissingRegistryError) as cm:
            opt.apply_gradients({"w": self.grad([1.0])})
        self.assertIsInstance(cm.exception, InvalidConfigError)


if __name__ == "__main__":
    unittest.main()
