from numpy import allclose
import unittest

import numpy as np
import autograd.numpy as anp
from autograd import grad

from blobnet import NetDef, Workspace, create_net, make_op


def run_ops(ws: Workspace, *ops, name="test_net"):
    net = create_net(NetDef(name=name, op=list(ops)), ws)
    net.run()
    return net


def softmax_loss_reference(x, labels):
    shifted = x - anp.max(x, axis=1, keepdims=True)
    log_probs = shifted - anp.log(anp.sum(anp.exp(shifted), axis=1, keepdims=True))
    return -anp.mean(log_probs[anp.arange(x.shape[0]), labels])


class TestFillOps(unittest.TestCase):
    def setUp(self):
        self.ws = Workspace(seed=3)

    def test_xavier_fill_bounds(self):
        run_ops(self.ws, make_op("XavierFill", [], ["fc_w"], shape=[10, 100]))

        w = self.ws.fetch_blob("fc_w")
        scale = np.sqrt(3.0 / 100)

        self.assertEqual(w.shape, (10, 100))
        self.assertEqual(w.dtype, np.float32)
        self.assertTrue(np.all(np.abs(w) <= scale + 1e-7))
        self.assertGreater(np.std(w), 0.0)

    def test_constant_fill_from_shape_and_input(self):
        run_ops(
            self.ws,
            make_op("ConstantFill", [], ["fc_b"], shape=[10]),
            make_op("ConstantFill", ["fc_b"], ["ones"], value=1.0),
            make_op("ConstantFill", [], ["idx"], shape=[2, 2], value=7, dtype="int32"),
        )

        self.assertTrue(np.array_equal(self.ws.fetch_blob("fc_b"), np.zeros(10)))
        self.assertTrue(np.array_equal(self.ws.fetch_blob("ones"), np.ones(10)))
        idx = self.ws.fetch_blob("idx")
        self.assertEqual(idx.dtype, np.int32)
        self.assertTrue(np.all(idx == 7))

    def test_constant_fill_scalar_like_loss(self):
        self.ws.feed_blob("loss", np.array(2.5, dtype=np.float32))
        run_ops(self.ws, make_op("ConstantFill", ["loss"], ["loss_grad"], value=1.0))

        loss_grad = self.ws.fetch_blob("loss_grad")
        self.assertEqual(loss_grad.shape, ())
        self.assertEqual(float(loss_grad), 1.0)

    def test_given_tensor_and_random_fills(self):
        run_ops(
            self.ws,
            make_op("GivenTensorFill", [], ["g"], shape=[2, 2], values=[1.0, 2.0, 3.0, 4.0]),
            make_op("UniformFill", [], ["u"], shape=[50], min=-2.0, max=-1.0),
            make_op("GaussianFill", [], ["n"], shape=[3, 4], mean=5.0, std=0.0),
        )

        self.assertTrue(np.array_equal(self.ws.fetch_blob("g"), [[1, 2], [3, 4]]))
        u = self.ws.fetch_blob("u")
        self.assertTrue(np.all((u >= -2.0) & (u <= -1.0)))
        self.assertTrue(allclose(self.ws.fetch_blob("n"), 5.0))

    def test_given_tensor_fill_size_mismatch(self):
        with self.assertRaises(ValueError):
            create_net(
                NetDef(op=[make_op("GivenTensorFill", [], ["g"], shape=[3], values=[1.0])]),
                self.ws,
            )

    def test_same_seed_same_fill(self):
        other = Workspace(seed=3)
        op = make_op("XavierFill", [], ["w"], shape=[4, 5])
        run_ops(self.ws, op)
        run_ops(other, op)
        self.assertTrue(np.array_equal(self.ws.fetch_blob("w"), other.fetch_blob("w")))


class TestForwardOps(unittest.TestCase):
    def setUp(self):
        self.ws = Workspace(seed=0)
        rng = np.random.default_rng(5)

        # --- Inputs ---
        self.x = rng.random((16, 100), dtype=np.float32)
        self.w = rng.standard_normal((10, 100)).astype(np.float32) * 0.1
        self.b = rng.standard_normal(10).astype(np.float32)
        self.labels = rng.integers(0, 10, size=16).astype(np.int32)

        self.ws.feed_blob("data", self.x)
        self.ws.feed_blob("fc_w", self.w)
        self.ws.feed_blob("fc_b", self.b)
        self.ws.feed_blob("label", self.labels)

    def test_fc_sigmoid_softmax_loss(self):
        """Tests FC, Sigmoid and SoftmaxWithLoss against a NumPy reference."""
        run_ops(
            self.ws,
            make_op("FC", ["data", "fc_w", "fc_b"], ["fc1"]),
            make_op("Sigmoid", ["fc1"], ["pred"]),
            make_op("SoftmaxWithLoss", ["pred", "label"], ["softmax", "loss"]),
        )

        # --- NumPy Reference Calculation ---
        expected_fc = self.x @ self.w.T + self.b
        expected_pred = 1.0 / (1.0 + np.exp(-expected_fc))
        exp = np.exp(expected_pred - expected_pred.max(axis=1, keepdims=True))
        expected_softmax = exp / exp.sum(axis=1, keepdims=True)
        expected_loss = softmax_loss_reference(expected_pred.astype(np.float64), self.labels)

        # --- Assertions ---
        self.assertEqual(self.ws.fetch_blob("fc1").shape, (16, 10))
        self.assertTrue(allclose(self.ws.fetch_blob("fc1"), expected_fc, atol=1e-5))
        self.assertTrue(allclose(self.ws.fetch_blob("pred"), expected_pred, atol=1e-6))
        self.assertTrue(allclose(self.ws.fetch_blob("softmax"), expected_softmax, atol=1e-6))

        loss = self.ws.fetch_blob("loss")
        self.assertEqual(loss.shape, ())
        self.assertTrue(allclose(loss, expected_loss, atol=1e-5))

    def test_fc_flattens_trailing_dims(self):
        self.ws.feed_blob("img", self.x.reshape(16, 4, 25))
        run_ops(self.ws, make_op("FC", ["img", "fc_w", "fc_b"], ["out"]))
        self.assertTrue(allclose(self.ws.fetch_blob("out"), self.x @ self.w.T + self.b, atol=1e-5))

    def test_softmax_with_loss_weights_and_scale(self):
        weights = np.linspace(0.5, 2.0, 16).astype(np.float32)
        self.ws.feed_blob("weights", weights)
        self.ws.feed_blob("logits", self.x[:, :10])
        run_ops(
            self.ws,
            make_op("SoftmaxWithLoss", ["logits", "label", "weights"], ["p", "loss"], scale=2.0),
        )

        x = self.x[:, :10].astype(np.float64)
        shifted = x - x.max(axis=1, keepdims=True)
        log_probs = shifted - np.log(np.exp(shifted).sum(axis=1, keepdims=True))
        picked = -log_probs[np.arange(16), self.labels]
        expected = 2.0 * np.sum(picked * weights) / np.sum(weights)

        self.assertTrue(allclose(self.ws.fetch_blob("loss"), expected, atol=1e-5))

    def test_label_out_of_range(self):
        self.ws.feed_blob("label", np.full(16, 10, dtype=np.int32))
        self.ws.feed_blob("logits", self.x[:, :10])
        net = create_net(
            NetDef(op=[make_op("SoftmaxWithLoss", ["logits", "label"], ["p", "loss"])]), self.ws
        )
        with self.assertRaises(RuntimeError) as ctx:
            net.run()
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    def test_float_labels_rejected(self):
        self.ws.feed_blob("label", np.zeros(16, dtype=np.float32))
        self.ws.feed_blob("logits", self.x[:, :10])
        net = create_net(
            NetDef(op=[make_op("SoftmaxWithLoss", ["logits", "label"], ["p", "loss"])]), self.ws
        )
        with self.assertRaises(RuntimeError):
            net.run()

    def test_sum_and_weighted_sum(self):
        self.ws.feed_blob("a", np.array([1.0, 2.0], dtype=np.float32))
        self.ws.feed_blob("b", np.array([3.0, 4.0], dtype=np.float32))
        self.ws.feed_blob("wa", np.array([2.0], dtype=np.float32))
        self.ws.feed_blob("wb", np.array([-1.0], dtype=np.float32))
        run_ops(
            self.ws,
            make_op("Sum", ["a", "b", "a"], ["s"]),
            make_op("WeightedSum", ["a", "wa", "b", "wb"], ["ws"]),
        )
        self.assertTrue(allclose(self.ws.fetch_blob("s"), [5.0, 8.0]))
        self.assertTrue(allclose(self.ws.fetch_blob("ws"), [-1.0, 0.0]))

    def test_relu(self):
        self.ws.feed_blob("z", np.array([-1.0, 0.0, 2.0], dtype=np.float32))
        run_ops(self.ws, make_op("Relu", ["z"], ["r"]))
        self.assertTrue(allclose(self.ws.fetch_blob("r"), [0.0, 0.0, 2.0]))


class TestGradientOps(unittest.TestCase):
    """Gradient kernels checked against autograd on the same inputs."""

    def setUp(self):
        self.ws = Workspace(seed=0)
        rng = np.random.default_rng(11)
        self.x = rng.random((8, 6))
        self.w = rng.standard_normal((4, 6)) * 0.5
        self.b = rng.standard_normal(4)
        self.labels = rng.integers(0, 4, size=8).astype(np.int32)
        self.dy = rng.standard_normal((8, 4))

        self.ws.feed_blob("x", self.x)
        self.ws.feed_blob("w", self.w)
        self.ws.feed_blob("b", self.b)
        self.ws.feed_blob("label", self.labels)
        self.ws.feed_blob("dy", self.dy)

    def test_fc_gradient(self):
        run_ops(self.ws, make_op("FCGradient", ["x", "w", "dy"], ["dw", "db", "dx"]))

        def f(x, w, b):
            return anp.sum((anp.dot(x, w.T) + b) * self.dy)

        self.assertTrue(allclose(self.ws.fetch_blob("dw"), grad(f, 1)(self.x, self.w, self.b)))
        self.assertTrue(allclose(self.ws.fetch_blob("db"), grad(f, 2)(self.x, self.w, self.b)))
        self.assertTrue(allclose(self.ws.fetch_blob("dx"), grad(f, 0)(self.x, self.w, self.b)))

    def test_fc_gradient_without_input_gradient(self):
        run_ops(self.ws, make_op("FCGradient", ["x", "w", "dy"], ["dw", "db"]))
        self.assertEqual(self.ws.fetch_blob("dw").shape, (4, 6))
        self.assertFalse(self.ws.has_blob("dx"))

    def test_sigmoid_gradient(self):
        self.ws.feed_blob("z", self.dy)
        run_ops(
            self.ws,
            make_op("Sigmoid", ["z"], ["y"]),
            make_op("SigmoidGradient", ["y", "dy"], ["dz"]),
        )

        def f(z):
            return anp.sum(1.0 / (1.0 + anp.exp(-z)) * self.dy)

        self.assertTrue(allclose(self.ws.fetch_blob("dz"), grad(f)(self.dy)))

    def test_softmax_with_loss_gradient(self):
        logits = self.dy
        self.ws.feed_blob("logits", logits)
        self.ws.feed_blob("dloss", np.array(1.0))
        run_ops(
            self.ws,
            make_op("SoftmaxWithLoss", ["logits", "label"], ["p", "loss"]),
            make_op("SoftmaxWithLossGradient", ["logits", "label", "p", "dloss"], ["dlogits"]),
        )

        expected = grad(lambda z: softmax_loss_reference(z, self.labels))(logits)
        self.assertTrue(allclose(self.ws.fetch_blob("dlogits"), expected))


if __name__ == "__main__":
    unittest.main()
