import json
import os
import tempfile
import unittest

from src.nnbridge.domain import IBlob, ILayer, INet, ISolver
from src.nnbridge.infrastructure.engine import Blob, Net, reset_context
from src.nnbridge.infrastructure.engine.solvers import SolverParameter, SolverRegistry

NET_DEF = {
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


class TestEngineConformsToProtocols(unittest.TestCase):
    def setUp(self):
        reset_context()

    def test_blob(self):
        self.assertIsInstance(Blob((2, 3)), IBlob)
        self.assertNotIsInstance(object(), IBlob)

    def test_net_and_layers(self):
        net = Net(NET_DEF)
        self.assertIsInstance(net, INet)
        for layer in net.layers:
            with self.subTest(layer=layer.name):
                self.assertIsInstance(layer, ILayer)
        for blob in net.blobs:
            self.assertIsInstance(blob, IBlob)

    def test_every_registered_solver(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "net.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(NET_DEF, f)
            for name in SolverRegistry.solver_type_list():
                with self.subTest(solver=name):
                    param = SolverParameter(net=path, type=name)
                    solver = SolverRegistry.create_solver(param)
                    self.assertIsInstance(solver, ISolver)
                    self.assertIsInstance(solver.net, INet)


if __name__ == "__main__":
    unittest.main()
