import json
import os
import tempfile
import unittest
from unittest import mock

from src.nnbridge.domain import (
    TRAIN,
    ArrayValidationError,
    BindingError,
    ConfigurationError,
    EngineError,
    FileAccessError,
    NativeError,
)
from src.nnbridge.infrastructure.binding import Blob, Net, translate_errors
from src.nnbridge.infrastructure.engine import reset_context
from src.nnbridge.infrastructure.engine._layers import InnerProductLayer

INPUT_NET = {
    "name": "toy",
    "inputs": [{"name": "data", "shape": [2, 3]}, {"name": "label", "shape": [2, 1]}],
    "layers": [
        {
            "name": "ip",
            "type": "InnerProduct",
            "bottom": ["data"],
            "top": ["ip"],
            "inner_product_param": {"num_output": 1},
        },
        {"name": "loss", "type": "EuclideanLoss", "bottom": ["ip", "label"], "top": ["loss"]},
    ],
}


class TestTranslateErrors(unittest.TestCase):
    def test_engine_error_becomes_native_error(self):
        @translate_errors
        def fail():
            raise EngineError("Check failed: count_ == other.count_")

        with self.assertRaises(NativeError) as ctx:
            fail()
        self.assertEqual(str(ctx.exception), "Check failed: count_ == other.count_")
        self.assertIsInstance(ctx.exception.__cause__, EngineError)
        self.assertIsInstance(ctx.exception, BindingError)
        self.assertIsInstance(ctx.exception, RuntimeError)

    def test_binding_errors_pass_through(self):
        @translate_errors
        def fail():
            raise ConfigurationError("bad config")

        with self.assertRaises(ConfigurationError):
            fail()

    def test_host_errors_pass_through(self):
        @translate_errors
        def fail():
            raise KeyError("k")

        with self.assertRaises(KeyError):
            fail()

    def test_return_value_and_metadata_preserved(self):
        @translate_errors
        def add(a, b=1):
            """Add two numbers."""
            return a + b

        self.assertEqual(add(2, b=3), 5)
        self.assertEqual(add.__name__, "add")
        self.assertEqual(add.__doc__, "Add two numbers.")

    def test_boundary_call_translates(self):
        blob = Blob(2, 3, 4, 5, 6)
        with self.assertRaisesRegex(NativeError, "legacy accessors"):
            blob.num
        with self.assertRaises(NativeError):
            blob.reshape(-1)

    def test_taxonomy(self):
        self.assertTrue(issubclass(FileAccessError, FileNotFoundError))
        self.assertTrue(issubclass(ArrayValidationError, ValueError))
        self.assertTrue(issubclass(ConfigurationError, ValueError))
        self.assertFalse(issubclass(EngineError, BindingError))


class TestEngineFailuresThroughNet(unittest.TestCase):
    def setUp(self):
        reset_context()
        self._tmp = tempfile.TemporaryDirectory()
        path = os.path.join(self._tmp.name, "net.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(INPUT_NET, f)
        self.net = Net(path, TRAIN)

    def tearDown(self):
        self._tmp.cleanup()

    def test_resized_input_reaches_caller_translated(self):
        self.net.blob_by_name("data").reshape(3, 3)
        with self.assertRaisesRegex(NativeError, "same dimension") as ctx:
            self.net.forward()
        self.assertIsInstance(ctx.exception.__cause__, EngineError)

        self.net.blob_by_name("label").reshape(3, 1)
        self.assertIsInstance(self.net.forward(), float)
        self.assertEqual(self.net.blob_by_name("ip").shape, (3, 1))

    def test_numeric_failure_in_engine_is_translated(self):
        with mock.patch.object(
            InnerProductLayer, "forward_cpu", side_effect=FloatingPointError("overflow")
        ):
            with self.assertRaisesRegex(NativeError, "FloatingPointError: overflow") as ctx:
                self.net.forward()
        self.assertIsInstance(ctx.exception.__cause__, FloatingPointError)

    def test_lookup_failure_in_engine_is_translated(self):
        with mock.patch.object(
            InnerProductLayer, "forward_cpu", side_effect=KeyError("w")
        ):
            with self.assertRaises(NativeError):
                self.net.forward()

    def test_type_error_in_engine_passes_through(self):
        with mock.patch.object(
            InnerProductLayer, "forward_cpu", side_effect=TypeError("bad operand")
        ):
            with self.assertRaises(TypeError):
                self.net.forward()

    def test_value_error_outside_engine_passes_through(self):
        @translate_errors
        def fail():
            raise ValueError("host side")

        with self.assertRaisesRegex(ValueError, "host side") as ctx:
            fail()
        self.assertNotIsInstance(ctx.exception, BindingError)


if __name__ == "__main__":
    unittest.main()
