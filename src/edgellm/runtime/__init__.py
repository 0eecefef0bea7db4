# Import backends to trigger registration
from . import onnx_backend, torch_backend  # noqa: F401
from .onnx_backend import OnnxForwardPass
from .port import ForwardPass
from .registry import BACKEND_REGISTRY, open_forward_pass, register_backend
from .torch_backend import TorchForwardPass

__all__ = [
    "BACKEND_REGISTRY",
    "ForwardPass",
    "OnnxForwardPass",
    "TorchForwardPass",
    "open_forward_pass",
    "register_backend",
]
