import unittest

import numpy as np

from blobnet import Blob, Tensor, Type, Workspace


class TestTensor(unittest.TestCase):
    def test_resize_keeps_storage_when_size_matches(self):
        t = Tensor(Type.FLOAT32)
        t.resize(4, 6)
        buffer = t.mutable_data()

        t.resize(2, 12)
        self.assertEqual(t.shape, (2, 12))
        self.assertTrue(np.shares_memory(buffer, t.mutable_data()))

        t.resize(3, 3)
        self.assertEqual(t.shape, (3, 3))
        self.assertFalse(np.shares_memory(buffer, t.mutable_data()))

    def test_copy_from_checks_element_count(self):
        t = Tensor(Type.INT32).resize(16)
        with self.assertRaises(ValueError):
            t.copy_from(np.zeros((16, 100), dtype=np.int32))

    def test_copy_from_casts_to_tensor_type(self):
        t = Tensor(Type.INT32).resize(3)
        t.copy_from([1.0, 2.0, 3.0])
        self.assertEqual(t.data.dtype, np.int32)
        self.assertEqual(t.data.tolist(), [1, 2, 3])

    def test_data_is_read_only(self):
        t = Tensor().resize(2)
        with self.assertRaises(ValueError):
            t.data[0] = 1.0

    def test_mutable_data_switches_type(self):
        t = Tensor(Type.FLOAT32).resize(5)
        arr = t.mutable_data(Type.INT64)
        self.assertEqual(t.dtype, Type.INT64)
        self.assertEqual(arr.dtype, np.int64)
        self.assertEqual(t.shape, (5,))


class TestBlob(unittest.TestCase):
    def test_get_wrong_type_fails(self):
        blob = Blob("b")
        with self.assertRaises(TypeError):
            blob.get(Tensor)

        blob.reset("not a tensor")
        with self.assertRaises(TypeError):
            blob.get(Tensor)
        self.assertEqual(blob.type_name, "str")

    def test_get_mutable_replaces_content(self):
        blob = Blob("b")
        blob.reset(42)
        tensor = blob.get_mutable(Tensor)
        self.assertIsInstance(tensor, Tensor)
        self.assertIs(blob.get(Tensor), tensor)
        self.assertIs(blob.get_mutable(Tensor), tensor)


class TestWorkspace(unittest.TestCase):
    def setUp(self):
        self.ws = Workspace(seed=0)

    def test_feed_fetch_round_trip(self):
        x = np.random.default_rng(1).random((4, 3, 2)).astype(np.float32)

        self.ws.feed_blob("my_x", x)
        fetched = self.ws.fetch_blob("my_x")

        self.assertEqual(fetched.shape, (4, 3, 2))
        self.assertEqual(fetched.dtype, np.float32)
        self.assertTrue(np.array_equal(fetched, x))

    def test_fetch_returns_a_copy(self):
        self.ws.feed_blob("a", np.ones(3, dtype=np.float32))
        fetched = self.ws.fetch_blob("a")
        fetched[0] = 10.0
        self.assertEqual(self.ws.fetch_blob("a")[0], 1.0)

    def test_refeed_overwrites_in_place(self):
        first = self.ws.feed_blob("data", np.zeros((16, 100), dtype=np.float32))
        buffer = first.mutable_data()

        second = self.ws.feed_blob("data", np.ones((16, 100), dtype=np.float32))

        self.assertIs(first, second)
        self.assertTrue(np.shares_memory(buffer, second.mutable_data()))
        self.assertTrue(np.all(self.ws.fetch_blob("data") == 1.0))

    def test_feed_list_and_dtype(self):
        self.ws.feed_blob("label", [1, 2, 3], dtype="int32")
        tensor = self.ws.get_blob("label").get(Tensor)
        self.assertEqual(tensor.dtype, Type.INT32)
        self.assertEqual(tensor.shape, (3,))

    def test_feed_ragged_list_fails(self):
        with self.assertRaises(ValueError):
            self.ws.feed_blob("bad", [[1, 2], [3]])

    def test_missing_blob(self):
        self.assertFalse(self.ws.has_blob("nope"))
        with self.assertRaises(KeyError):
            self.ws.get_blob("nope")
        with self.assertRaises(KeyError):
            self.ws.fetch_blob("nope")

    def test_create_blob_is_idempotent(self):
        a = self.ws.create_blob("x")
        b = self.ws.create_blob("x")
        self.assertIs(a, b)
        self.assertEqual(self.ws.blobs(), ["x"])
        self.assertEqual(len(self.ws), 1)

    def test_remove_blob(self):
        self.ws.create_blob("x")
        self.ws.remove_blob("x")
        self.assertFalse(self.ws.has_blob("x"))
        with self.assertRaises(KeyError):
            self.ws.remove_blob("x")

    def test_workspaces_are_independent(self):
        other = Workspace()
        self.ws.feed_blob("x", np.zeros(2, dtype=np.float32))
        self.assertFalse(other.has_blob("x"))


if __name__ == "__main__":
    unittest.main()
