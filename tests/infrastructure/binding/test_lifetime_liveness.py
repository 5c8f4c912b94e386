import gc
import json
import os
import tempfile
import unittest
import weakref

import numpy as np

from src.nnbridge.domain import TRAIN
from src.nnbridge.infrastructure.binding import Custodian, Net
from src.nnbridge.infrastructure.engine import reset_context

MEMORY_NET = {
    "name": "memory",
    "layers": [
        {
            "name": "data",
            "type": "MemoryData",
            "top": ["data", "label"],
            "memory_data_param": {"batch_size": 2, "dim": [3], "label_dim": [1]},
        },
        {
            "name": "ip",
            "type": "InnerProduct",
            "bottom": ["data"],
            "top": ["ip"],
            "inner_product_param": {
                "num_output": 1,
                "weight_filler": {"type": "constant", "value": 1.0},
            },
        },
        {"name": "loss", "type": "EuclideanLoss", "bottom": ["ip", "label"], "top": ["loss"]},
    ],
}


class _NetFileTestCase(unittest.TestCase):
    def setUp(self):
        reset_context()
        self._tmp = tempfile.TemporaryDirectory()
        self.net_file = os.path.join(self._tmp.name, "memory.json")
        with open(self.net_file, "w", encoding="utf-8") as f:
            json.dump(MEMORY_NET, f)

    def tearDown(self):
        self._tmp.cleanup()


class TestViewLiveness(_NetFileTestCase):
    def test_view_survives_net(self):
        net = Net(self.net_file, TRAIN)
        net_ref = weakref.ref(net._net)
        view = net.layers[1].blobs[0].data
        del net
        gc.collect()
        self.assertIsNone(net_ref())
        np.testing.assert_array_equal(view, 1.0)
        view[...] = 2.0
        np.testing.assert_array_equal(view, 2.0)

    def test_view_keeps_blob_handle_alive(self):
        net = Net(self.net_file, TRAIN)
        blob = net.blob_by_name("ip")
        blob_ref = weakref.ref(blob)
        view = blob.diff
        del blob, net
        gc.collect()
        self.assertIsNotNone(blob_ref())
        self.assertIs(view.base.owner, blob_ref())
        del view
        gc.collect()
        self.assertIsNone(blob_ref())

    def test_layers_view_keeps_net_handle_alive(self):
        net = Net(self.net_file, TRAIN)
        handle_ref = weakref.ref(net)
        layers = net.layers
        del net
        gc.collect()
        self.assertIsNotNone(handle_ref())
        self.assertEqual(layers[0].type, "MemoryData")


class TestInputCustodianship(_NetFileTestCase):
    def _arrays(self, n):
        data = np.arange(n * 3, dtype=np.float32).reshape(n, 3)
        labels = np.zeros((n, 1), dtype=np.float32)
        return data, labels

    def test_net_keeps_injected_arrays_alive(self):
        net = Net(self.net_file, TRAIN)
        data, labels = self._arrays(4)
        data_ref = weakref.ref(data)
        labels_ref = weakref.ref(labels)
        net.set_input_arrays(data, labels)
        del data, labels
        gc.collect()
        self.assertIsNotNone(data_ref())
        self.assertIsNotNone(labels_ref())
        net.forward()
        np.testing.assert_array_equal(net.blob_by_name("data").data, [[0, 1, 2], [3, 4, 5]])

    def test_reinjection_releases_previous_arrays(self):
        net = Net(self.net_file, TRAIN)
        first, first_labels = self._arrays(2)
        first_ref = weakref.ref(first)
        net.set_input_arrays(first, first_labels)
        del first, first_labels
        net.set_input_arrays(*self._arrays(2))
        gc.collect()
        self.assertIsNone(first_ref())

    def test_arrays_released_with_net(self):
        net = Net(self.net_file, TRAIN)
        data, labels = self._arrays(2)
        data_ref = weakref.ref(data)
        net.set_input_arrays(data, labels)
        del data, labels, net
        gc.collect()
        self.assertIsNone(data_ref())


class TestCustodian(unittest.TestCase):
    def test_edges_are_keyed_by_site_and_key(self):
        c = Custodian()
        a, b, x = object(), object(), object()
        c.hold("input_arrays", 0, a, b)
        c.hold("input_arrays", 3, x)
        self.assertEqual(c.wards("input_arrays", 0), (a, b))
        self.assertEqual(c.wards("input_arrays", 3), (x,))
        self.assertEqual(len(c), 2)
        c.hold("input_arrays", 0, x)
        self.assertEqual(c.wards("input_arrays", 0), (x,))
        c.release("input_arrays", 0)
        self.assertEqual(c.wards("input_arrays", 0), ())
        self.assertEqual(len(c), 1)


if __name__ == "__main__":
    unittest.main()
