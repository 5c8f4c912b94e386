import json
import os
import tempfile
import unittest

import numpy as np

from src.nnbridge.domain import ConfigurationError, EngineError, Phase
from src.nnbridge.infrastructure.engine import LayerRegistry, Net, reset_context


def _regression_def(num_output=2, in_place_relu=False):
    layers = [
        {
            "name": "ip",
            "type": "InnerProduct",
            "bottom": ["data"],
            "top": ["ip"],
            "inner_product_param": {
                "num_output": num_output,
                "weight_filler": {"type": "constant", "value": 1.0},
                "bias_filler": {"type": "constant", "value": 0.5},
            },
        },
    ]
    if in_place_relu:
        layers.append({"name": "relu", "type": "ReLU", "bottom": ["ip"], "top": ["ip"]})
    layers.append(
        {
            "name": "loss",
            "type": "EuclideanLoss",
            "bottom": ["ip", "label"],
            "top": ["loss"],
        }
    )
    return {
        "name": "regression",
        "inputs": [
            {"name": "data", "shape": [2, 3]},
            {"name": "label", "shape": [2, num_output]},
        ],
        "layers": layers,
    }


class TestNetConstruction(unittest.TestCase):
    def setUp(self):
        reset_context()

    def test_structure(self):
        net = Net(_regression_def())
        self.assertEqual(net.name, "regression")
        self.assertIs(net.phase, Phase.TRAIN)
        self.assertEqual(net.layer_names, ["input_data", "input_label", "ip", "loss"])
        self.assertEqual(net.blob_names, ["data", "label", "ip", "loss"])
        self.assertEqual(net.input_blob_indices, [0, 1])
        self.assertEqual(net.output_blob_indices, [3])
        self.assertEqual(net.bottom_ids(3), [2, 1])
        self.assertEqual(net.top_ids(2), [2])
        self.assertEqual(net.blob_loss_weights, [0.0, 0.0, 0.0, 1.0])
        self.assertEqual(net.blob_by_name("ip").shape, (2, 2))
        self.assertEqual(len(net.learnable_params), 2)

    def test_in_place_layer_reuses_blob(self):
        net = Net(_regression_def(in_place_relu=True))
        relu = net.layer_names.index("relu")
        self.assertEqual(net.bottom_ids(relu), net.top_ids(relu))
        self.assertEqual(net.blob_names.count("ip"), 1)

    def test_phase_filtering(self):
        definition = _regression_def()
        definition["layers"].append(
            {
                "name": "test_only",
                "type": "Sigmoid",
                "bottom": ["ip"],
                "top": ["prob"],
                "include": {"phase": "TEST"},
            }
        )
        self.assertNotIn("test_only", Net(definition, Phase.TRAIN).layer_names)
        self.assertIn("test_only", Net(definition, Phase.TEST).layer_names)

    def test_unknown_layer_type(self):
        definition = _regression_def()
        definition["layers"][0]["type"] = "Convolution3D"
        with self.assertRaises(ConfigurationError):
            Net(definition)

    def test_unknown_bottom(self):
        definition = _regression_def()
        definition["layers"][0]["bottom"] = ["missing"]
        with self.assertRaisesRegex(ConfigurationError, "Unknown bottom blob 'missing'"):
            Net(definition)

    def test_duplicate_layer_name(self):
        definition = _regression_def()
        definition["layers"][1]["name"] = "ip"
        with self.assertRaises(ConfigurationError):
            Net(definition)

    def test_unknown_layer_field(self):
        definition = _regression_def()
        definition["layers"][0]["bogus"] = 1
        with self.assertRaises(ConfigurationError):
            Net(definition)

    def test_from_file_parse_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "broken.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertRaises(ConfigurationError):
                Net.from_file(path)

    def test_layer_type_list(self):
        for name in ("Input", "MemoryData", "InnerProduct", "ReLU", "Sigmoid",
                     "EuclideanLoss", "SoftmaxWithLoss"):
            self.assertIn(name, LayerRegistry.layer_type_list())


class TestNetExecution(unittest.TestCase):
    def setUp(self):
        reset_context()
        self.net = Net(_regression_def())
        self.x = np.arange(6, dtype=np.float32).reshape(2, 3)
        self.y = np.array([[1.0, 2.0], [3.0, 4.0]], dtype=np.float32)
        self.net.blob_by_name("data").data[...] = self.x
        self.net.blob_by_name("label").data[...] = self.y

    def test_forward_loss(self):
        loss = self.net.forward()
        ip = self.x.sum(axis=1, keepdims=True) + 0.5 + np.zeros((2, 2))
        expected = float(np.sum((ip - self.y) ** 2) / 2 / 2)
        self.assertAlmostEqual(loss, expected, places=4)
        self.assertAlmostEqual(float(self.net.blob_by_name("loss").data), expected, places=4)

    def test_backward_parameter_gradients(self):
        self.net.forward()
        self.net.backward()
        ip = self.x.sum(axis=1, keepdims=True) + 0.5 + np.zeros((2, 2))
        dy = (ip - self.y) / 2.0
        weight, bias = self.net.layer_by_name("ip").blobs
        np.testing.assert_allclose(weight.diff, dy.T @ self.x, rtol=1e-5)
        np.testing.assert_allclose(bias.diff, dy.sum(axis=0), rtol=1e-5)

    def test_partial_ranges(self):
        self.assertEqual(self.net.forward_from_to(0, 2), 0.0)
        with self.assertRaises(EngineError):
            self.net.forward_from_to(3, 2)
        with self.assertRaises(EngineError):
            self.net.backward_from_to(1, 2)
        with self.assertRaises(EngineError):
            self.net.forward_from_to(0, 10)

    def test_clear_and_update(self):
        self.net.forward_backward()
        weight = self.net.layer_by_name("ip").blobs[0]
        before = weight.data.copy()
        self.net.update()
        np.testing.assert_allclose(weight.data, before - weight.diff)
        self.net.clear_param_diffs()
        self.assertFalse(np.any(weight.diff))

    def test_reshape_propagates_input_shape(self):
        self.net.blob_by_name("data").reshape((5, 3))
        self.net.blob_by_name("label").reshape((5, 2))
        self.net.reshape()
        self.assertEqual(self.net.blob_by_name("ip").shape, (5, 2))

    def test_forward_follows_resized_inputs(self):
        self.net.blob_by_name("data").reshape((3, 3))
        self.net.blob_by_name("label").reshape((3, 2))
        self.net.blob_by_name("data").data[...] = 1.0
        self.net.blob_by_name("label").data[...] = 0.0
        loss = self.net.forward()
        self.assertEqual(self.net.blob_by_name("ip").shape, (3, 2))
        np.testing.assert_allclose(self.net.blob_by_name("ip").data, 3.5)
        self.assertAlmostEqual(loss, 3.5**2 * 6 / 3 / 2, places=4)

    def test_forward_with_mismatched_inputs(self):
        self.net.blob_by_name("data").reshape((3, 3))
        with self.assertRaisesRegex(EngineError, "same dimension"):
            self.net.forward()
        self.net.blob_by_name("data").reshape((2, 4))
        with self.assertRaisesRegex(EngineError, "incompatible"):
            self.net.forward()

    def test_lookup_errors(self):
        with self.assertRaises(EngineError):
            self.net.blob_by_name("nope")
        with self.assertRaises(EngineError):
            self.net.layer_by_name("nope")


class TestNetWeights(unittest.TestCase):
    def setUp(self):
        reset_context()

    def test_save_and_copy(self):
        src = Net(_regression_def())
        src.layer_by_name("ip").blobs[0].data[...] = 7.0
        dst = Net(_regression_def())
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "weights.caffemodel")
            src.save(path)
            self.assertTrue(os.path.exists(path))
            dst.copy_trained_layers_from(path)
        np.testing.assert_array_equal(dst.layer_by_name("ip").blobs[0].data, 7.0)

    def test_copy_shape_mismatch(self):
        src = Net(_regression_def(num_output=3))
        dst = Net(_regression_def(num_output=2))
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "weights.caffemodel")
            src.save(path)
            with self.assertRaisesRegex(EngineError, "shape mismatch"):
                dst.copy_trained_layers_from(path)

    def test_copy_ignores_unknown_layers(self):
        src = Net(_regression_def())
        definition = _regression_def()
        definition["layers"][0]["name"] = "other_ip"
        dst = Net(definition)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "weights.caffemodel")
            src.save(path)
            with self.assertLogs(level="INFO") as logs:
                dst.copy_trained_layers_from(path)
        self.assertTrue(any("Ignoring source layer ip" in m for m in logs.output))

    def test_copy_from_non_archive(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "weights.caffemodel")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"not": "weights"}, f)
            with self.assertRaises(EngineError):
                Net(_regression_def()).copy_trained_layers_from(path)

    def test_copy_rejects_misnumbered_blobs(self):
        net = Net(_regression_def())
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "weights.caffemodel")
            with open(path, "wb") as f:
                np.savez(
                    f,
                    **{
                        "ip/1": np.zeros((2, 3), dtype=np.float32),
                        "ip/2": np.zeros((2,), dtype=np.float32),
                    },
                )
            with self.assertRaisesRegex(EngineError, "Malformed weights"):
                net.copy_trained_layers_from(path)
        np.testing.assert_array_equal(net.layer_by_name("ip").blobs[0].data, 1.0)

    def test_share_trained_layers(self):
        a = Net(_regression_def())
        b = Net(_regression_def(), Phase.TEST)
        b.share_trained_layers_with(a)
        wa = a.layer_by_name("ip").blobs[0]
        wb = b.layer_by_name("ip").blobs[0]
        self.assertTrue(wb.shares_data_with(wa))
        wa.data[...] = 3.0
        np.testing.assert_array_equal(wb.data, 3.0)


if __name__ == "__main__":
    unittest.main()
