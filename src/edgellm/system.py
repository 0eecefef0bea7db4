"""
Host probes: accelerator availability, model file presence and system summary.
"""

import os
import platform
import time
from pathlib import Path

import onnxruntime as ort
import psutil
import torch
from pydantic import BaseModel, Field

SUPPORTED_FEATURES = ["cpu_inference", "quantized_models", "onnx_runtime", "torch_runtime"]


class HardwareInfo(BaseModel):
    available: bool = False
    type: str = "cpu"
    device_info: str = ""


class ModelFileInfo(BaseModel):
    model_exists: bool = False
    config_exists: bool = False
    model_size: int = 0
    last_modified: int = Field(0, description="Check time in milliseconds since the epoch.")

    model_config = {"protected_namespaces": ()}


class SystemInfo(BaseModel):
    platform_version: str
    device_model: str
    available_memory: int
    cpu_cores: int
    has_gpu: bool
    supported_features: list[str]


def _host_description() -> str:
    return f"{platform.machine() or 'unknown'} ({platform.system() or 'unknown'})"


def check_hardware_acceleration() -> HardwareInfo:
    if torch.cuda.is_available():
        return HardwareInfo(available=True, type="cuda", device_info=torch.cuda.get_device_name(0))
    if "CUDAExecutionProvider" in ort.get_available_providers():
        return HardwareInfo(available=True, type="cuda", device_info=_host_description())
    return HardwareInfo(available=False, type="cpu", device_info=_host_description())


def check_model_files(model_path: str | Path, config_path: str | Path) -> ModelFileInfo:
    model_path, config_path = Path(model_path), Path(config_path)
    model_exists = model_path.is_file()
    return ModelFileInfo(
        model_exists=model_exists,
        config_exists=config_path.is_file(),
        model_size=model_path.stat().st_size if model_exists else 0,
        last_modified=int(time.time() * 1000),
    )


def get_system_info() -> SystemInfo:
    has_gpu = check_hardware_acceleration().available
    return SystemInfo(
        platform_version=platform.release(),
        device_model=platform.node() or platform.machine(),
        available_memory=psutil.virtual_memory().available,
        cpu_cores=os.cpu_count() or 1,
        has_gpu=has_gpu,
        supported_features=SUPPORTED_FEATURES + (["cuda_inference"] if has_gpu else []),
    )
