import logging
import threading
from collections.abc import Callable

import psutil
import torch
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PerformanceMetrics(BaseModel):
    """Aggregated timings of the generations run by one session."""

    average_inference_time_ms: float = Field(0.0, description="Mean latency over all recorded generations.")
    total_inferences: int = Field(0, description="Number of successful generations.")
    memory_peak_bytes: int = Field(0, description="Highest memory-in-use observation, 0 if unavailable.")
    battery_impact: str = Field("Medium", description="Fixed battery impact estimate.")


def current_memory_usage() -> int:
    """
    Bytes of memory in use by this process: resident set size, plus the CUDA
    allocator's peak when a GPU is in use. Returns 0 when it cannot be measured.
    """
    try:
        used = psutil.Process().memory_info().rss
    except psutil.Error:
        logger.debug("Process memory is not observable on this platform")
        used = 0
    if torch.cuda.is_available() and torch.cuda.is_initialized():
        used += torch.cuda.max_memory_allocated()
    return used


class MetricsRecorder:
    """
    Accumulates one latency sample per successful generation.

    Args:
        memory_probe: Callable returning the current memory use in bytes.
    """

    def __init__(self, memory_probe: Callable[[], int] = current_memory_usage):
        self.memory_probe = memory_probe
        self.inference_times: list[float] = []
        self.total_inferences = 0
        self.memory_peak = 0
        self._lock = threading.Lock()

    def record(self, elapsed_ms: float) -> None:
        memory = self.memory_probe()
        with self._lock:
            self.inference_times.append(elapsed_ms)
            self.total_inferences += 1
            self.memory_peak = max(self.memory_peak, memory)

    def get_avg_inference_time(self) -> float:
        return sum(self.inference_times) / len(self.inference_times) if self.inference_times else 0.0

    def snapshot(self) -> PerformanceMetrics:
        with self._lock:
            return PerformanceMetrics(
                average_inference_time_ms=self.get_avg_inference_time(),
                total_inferences=self.total_inferences,
                memory_peak_bytes=self.memory_peak,
            )

    def reset(self) -> None:
        with self._lock:
            self.inference_times.clear()
            self.total_inferences = 0
            self.memory_peak = 0
