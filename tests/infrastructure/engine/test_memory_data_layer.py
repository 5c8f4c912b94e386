import unittest

import numpy as np

from src.nnbridge.domain import ConfigurationError, EngineError
from src.nnbridge.infrastructure.engine import MemoryDataLayer, Net, reset_context


def _memory_net_def(batch_size=2, **param):
    memory_param = {"batch_size": batch_size, "dim": [3], "label_dim": [1]}
    memory_param.update(param)
    return {
        "name": "memory",
        "layers": [
            {
                "name": "data",
                "type": "MemoryData",
                "top": ["data", "label"],
                "memory_data_param": memory_param,
            },
        ],
    }


class TestMemoryDataLayer(unittest.TestCase):
    def setUp(self):
        reset_context()
        self.net = Net(_memory_net_def())
        self.layer = self.net.layers[0]

    def test_shapes(self):
        self.assertIsInstance(self.layer, MemoryDataLayer)
        self.assertEqual(self.layer.batch_size, 2)
        self.assertEqual(self.layer.shape(), [2, 3])
        self.assertEqual(self.layer.label_shape(), [2, 1])
        self.assertEqual(self.net.blob_by_name("data").shape, (2, 3))
        self.assertEqual(self.net.blob_by_name("label").shape, (2, 1))

    def test_channels_height_width_form(self):
        net = Net(
            {
                "layers": [
                    {
                        "name": "data",
                        "type": "MemoryData",
                        "top": ["data", "label"],
                        "memory_data_param": {"batch_size": 1, "channels": 2, "height": 3, "width": 4},
                    }
                ]
            }
        )
        self.assertEqual(net.blob_by_name("data").shape, (1, 2, 3, 4))
        self.assertEqual(net.blob_by_name("label").shape, (1, 1, 1, 1))

    def test_forward_before_reset(self):
        with self.assertRaisesRegex(EngineError, "reset"):
            self.net.forward()

    def test_reads_batches_in_order_and_wraps(self):
        data = np.arange(12, dtype=np.float32).reshape(4, 3)
        labels = np.arange(4, dtype=np.float32).reshape(4, 1)
        self.layer.reset(data.ctypes.data, labels.ctypes.data, 4)
        for start in (0, 2, 0):
            self.net.forward()
            np.testing.assert_array_equal(self.net.blob_by_name("data").data, data[start : start + 2])
            np.testing.assert_array_equal(self.net.blob_by_name("label").data, labels[start : start + 2])
        self.assertEqual(self.layer.position, 2)

    def test_reads_borrowed_memory_live(self):
        data = np.zeros((2, 3), dtype=np.float32)
        labels = np.zeros((2, 1), dtype=np.float32)
        self.layer.reset(data.ctypes.data, labels.ctypes.data, 2)
        data[...] = 9.0
        self.net.forward()
        np.testing.assert_array_equal(self.net.blob_by_name("data").data, 9.0)

    def test_reset_validation(self):
        data = np.zeros((4, 3), dtype=np.float32)
        labels = np.zeros((4, 1), dtype=np.float32)
        with self.assertRaises(EngineError):
            self.layer.reset(0, labels.ctypes.data, 4)
        with self.assertRaises(EngineError):
            self.layer.reset(data.ctypes.data, labels.ctypes.data, 3)
        with self.assertRaises(EngineError):
            self.layer.reset(data.ctypes.data, labels.ctypes.data, 0)
        self.assertEqual(self.layer.num_examples, 0)

    def test_batch_size_required(self):
        definition = _memory_net_def()
        del definition["layers"][0]["memory_data_param"]["batch_size"]
        with self.assertRaises(ConfigurationError):
            Net(definition)
        with self.assertRaises(ConfigurationError):
            Net(_memory_net_def(batch_size=0))


if __name__ == "__main__":
    unittest.main()
