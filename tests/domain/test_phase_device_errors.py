import unittest

from src.nnbridge.domain import (
    ArrayValidationError,
    BindingError,
    ConfigurationError,
    Device,
    DeviceType,
    EngineError,
    FileAccessError,
    NativeError,
    Phase,
    TEST,
    TRAIN,
)


class TestPhase(unittest.TestCase):
    def test_constants_match_wire_values(self):
        self.assertEqual(int(TRAIN), 0)
        self.assertEqual(int(TEST), 1)
        self.assertIs(TRAIN, Phase.TRAIN)

    def test_coerce_accepts_phase_int_and_name(self):
        self.assertIs(Phase.coerce(Phase.TEST), Phase.TEST)
        self.assertIs(Phase.coerce(0), Phase.TRAIN)
        self.assertIs(Phase.coerce("test"), Phase.TEST)
        self.assertIs(Phase.coerce(" Train "), Phase.TRAIN)

    def test_coerce_rejects_unknown(self):
        for bad in ("validate", 2, -1, True, 0.0, None):
            with self.subTest(value=bad):
                with self.assertRaises(ValueError):
                    Phase.coerce(bad)


class TestDevice(unittest.TestCase):
    def test_cpu(self):
        d = Device("cpu")
        self.assertTrue(d.is_cpu())
        self.assertFalse(d.is_cuda())
        self.assertIs(d.type, DeviceType.CPU)
        self.assertIsNone(d.index)
        self.assertEqual(str(d), "cpu")

    def test_cuda_index(self):
        d = Device("cuda:3")
        self.assertTrue(d.is_cuda())
        self.assertEqual(d.index, 3)
        self.assertEqual(repr(d), "Device('cuda:3')")

    def test_equality_and_hash(self):
        self.assertEqual(Device("cuda:0"), Device("cuda:0"))
        self.assertNotEqual(Device("cuda:0"), Device("cuda:1"))
        self.assertEqual(len({Device("cpu"), Device("cpu"), Device("cuda:0")}), 2)

    def test_invalid_strings(self):
        for bad in ("gpu", "cuda", "cuda:-1", "cuda:x", "CPU"):
            with self.subTest(device=bad):
                with self.assertRaises(ValueError):
                    Device(bad)


class TestErrorTaxonomy(unittest.TestCase):
    def test_every_boundary_error_shares_a_base(self):
        for cls in (FileAccessError, ArrayValidationError, ConfigurationError, NativeError):
            with self.subTest(cls=cls.__name__):
                self.assertTrue(issubclass(cls, BindingError))

    def test_builtin_bases(self):
        self.assertTrue(issubclass(FileAccessError, FileNotFoundError))
        self.assertTrue(issubclass(ArrayValidationError, ValueError))
        self.assertTrue(issubclass(ConfigurationError, ValueError))
        self.assertTrue(issubclass(NativeError, RuntimeError))

    def test_engine_error_is_not_a_boundary_error(self):
        self.assertFalse(issubclass(EngineError, BindingError))
        self.assertTrue(issubclass(EngineError, RuntimeError))

    def test_file_access_error_message(self):
        e = FileAccessError("/no/such/file.json")
        self.assertEqual(str(e), "Could not open file /no/such/file.json")
        self.assertEqual(e.path, "/no/such/file.json")

    def test_array_validation_error_details(self):
        e = ArrayValidationError("bad", name="data array", dim=1, got=4, expected=3)
        self.assertEqual(str(e), "bad")
        self.assertEqual((e.name, e.dim, e.got, e.expected), ("data array", 1, 4, 3))


if __name__ == "__main__":
    unittest.main()
