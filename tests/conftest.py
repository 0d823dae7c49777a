import json
import pytest


LENET_NODES = [
  {"op": "null", "name": "data", "inputs": []},
  {"op": "null", "name": "conv1_weight", "inputs": []},
  {"op": "null", "name": "conv1_bias", "inputs": []},
  {
    "op": "Convolution",
    "name": "conv1",
    "attrs": {"kernel": "(3, 3)", "num_filter": "64", "stride": "(1, 1)"},
    "inputs": [[0, 0, 0], [1, 0, 0], [2, 0, 0]],
  },
  {
    "op": "Activation",
    "name": "relu1",
    "attrs": {"act_type": "relu"},
    "inputs": [[3, 0, 0]],
  },
  {
    "op": "Pooling",
    "name": "pool1",
    "attrs": {"kernel": "(2, 2)", "pool_type": "max", "stride": "(2, 2)"},
    "inputs": [[4, 0, 0]],
  },
  {"op": "Flatten", "name": "flatten1", "inputs": [[5, 0, 0]]},
  {"op": "null", "name": "fc1_weight", "inputs": []},
  {"op": "null", "name": "fc1_bias", "inputs": []},
  {
    "op": "FullyConnected",
    "name": "fc1",
    "attrs": {"num_hidden": "10"},
    "inputs": [[6, 0, 0], [7, 0, 0], [8, 0, 0]],
  },
  {"op": "null", "name": "softmax_label", "inputs": []},
  {"op": "SoftmaxOutput", "name": "softmax", "inputs": [[9, 0, 0], [10, 0, 0]]},
]

LENET_OUTPUTS = {
  "data": (1, 1, 28, 28),
  "conv1_weight": (64, 1, 3, 3),
  "conv1_bias": (64,),
  "conv1_output": (1, 64, 26, 26),
  "relu1_output": (1, 64, 26, 26),
  "pool1_output": (1, 64, 13, 13),
  "flatten1_output": (1, 10816),
  "fc1_weight": (10, 10816),
  "fc1_bias": (10,),
  "fc1_output": (1, 10),
  "softmax_label": (1,),
  "softmax_output": (1, 10),
}


class FakeSymbol:
  """Stands in for an MXNet symbol: JSON export plus shape inference."""

  def __init__(self, model, outputs=None):
    self.model = model
    self.outputs = outputs
    self.infer_calls = []

  def tojson(self):
    return json.dumps(self.model)

  def get_internals(self):
    return self

  def list_outputs(self):
    return list(self.outputs or {})

  def infer_shape(self, **kwargs):
    self.infer_calls.append(kwargs)
    if self.outputs is None:
      return None, None, None
    return [], list(self.outputs.values()), []


@pytest.fixture
def lenet_model():
  return {
    "nodes": json.loads(json.dumps(LENET_NODES)),
    "arg_nodes": [0, 1, 2, 7, 8, 10],
    "heads": [[11, 0, 0]],
  }


@pytest.fixture
def lenet_symbol(lenet_model):
  return FakeSymbol(lenet_model, dict(LENET_OUTPUTS))
