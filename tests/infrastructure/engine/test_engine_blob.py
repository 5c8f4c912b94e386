import unittest

import numpy as np

from src.nnbridge.domain import EngineError
from src.nnbridge.infrastructure.engine import MAX_BLOB_AXES, Blob


class TestEngineBlobShape(unittest.TestCase):
    def test_empty_blob(self):
        b = Blob()
        self.assertEqual(b.shape, ())
        self.assertEqual(b.num_axes, 0)
        self.assertEqual(b.count, 0)

    def test_count_and_legacy_accessors(self):
        b = Blob((2, 3, 4, 5))
        self.assertEqual(b.count, 120)
        self.assertEqual((b.num, b.channels, b.height, b.width), (2, 3, 4, 5))

    def test_missing_legacy_axes_read_as_one(self):
        b = Blob((7,))
        self.assertEqual((b.num, b.channels, b.height, b.width), (7, 1, 1, 1))

    def test_legacy_accessors_reject_more_than_four_axes(self):
        b = Blob((1, 1, 1, 1, 2))
        with self.assertRaises(EngineError):
            _ = b.num

    def test_negative_dimension_rejected(self):
        with self.assertRaises(EngineError):
            Blob((2, -1))

    def test_too_many_axes_rejected(self):
        with self.assertRaises(EngineError):
            Blob((1,) * (MAX_BLOB_AXES + 1))


class TestEngineBlobStorage(unittest.TestCase):
    def test_data_and_diff_are_separate_buffers(self):
        b = Blob((2, 2))
        b.data[...] = 1.0
        b.diff[...] = 2.0
        np.testing.assert_array_equal(b.data, np.ones((2, 2), dtype=np.float32))
        np.testing.assert_array_equal(b.diff, np.full((2, 2), 2.0, dtype=np.float32))
        self.assertNotEqual(b.mutable_cpu_data(), b.mutable_cpu_diff())

    def test_shrinking_keeps_allocation(self):
        b = Blob((4, 4))
        addr = b.mutable_cpu_data()
        storage = b.data_storage()
        b.reshape((2, 2))
        self.assertEqual(b.mutable_cpu_data(), addr)
        self.assertIs(b.data_storage(), storage)
        self.assertEqual(b.data.shape, (2, 2))

    def test_growing_reallocates_zeroed(self):
        b = Blob((2,))
        b.data[...] = 5.0
        old = b.data_storage()
        b.reshape((3, 3))
        self.assertIsNot(b.data_storage(), old)
        np.testing.assert_array_equal(b.data, np.zeros((3, 3), dtype=np.float32))
        # the old allocation is untouched
        np.testing.assert_array_equal(old, np.full(2, 5.0, dtype=np.float32))

    def test_update_subtracts_diff(self):
        b = Blob((3,))
        b.data[...] = [1.0, 2.0, 3.0]
        b.diff[...] = [0.5, 0.5, 0.5]
        b.update()
        np.testing.assert_allclose(b.data, [0.5, 1.5, 2.5])

    def test_share_data(self):
        a = Blob((2, 3))
        b = Blob((2, 3))
        a.data[...] = 4.0
        b.share_data(a)
        self.assertTrue(b.shares_data_with(a))
        np.testing.assert_array_equal(b.data, a.data)
        b.data[0, 0] = -1.0
        self.assertEqual(a.data[0, 0], -1.0)

    def test_share_data_requires_equal_count(self):
        with self.assertRaises(EngineError):
            Blob((2, 3)).share_data(Blob((3, 3)))


if __name__ == "__main__":
    unittest.main()
