from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from edgellm.errors import ModelLoadError

T = TypeVar("T")


class BackendRegistry:
    """
    A simple registry for forward-pass backends, keyed by name and model file suffix.
    """

    def __init__(self, name: str):
        self._name = name
        self._registry: dict[str, Any] = {}
        self._suffixes: dict[str, str] = {}

    def register(self, name: str, suffixes: tuple[str, ...] = ()) -> Callable[[T], T]:
        def decorator(cls: T) -> T:
            if name in self._registry:
                raise ValueError(f"Backend '{name}' already registered in {self._name} registry.")
            self._registry[name] = cls
            for suffix in suffixes:
                self._suffixes[suffix.lower()] = name
            return cls

        return decorator

    def get(self, name: str) -> Any:
        if name not in self._registry:
            raise ValueError(
                f"Backend '{name}' not found in {self._name} registry. Available: {list(self._registry.keys())}"
            )
        return self._registry[name]

    def resolve(self, model_path: str | Path) -> str:
        suffix = Path(model_path).suffix.lower()
        if suffix not in self._suffixes:
            raise ModelLoadError(
                f"No backend handles '{suffix or model_path}' models. Supported suffixes: {sorted(self._suffixes)}"
            )
        return self._suffixes[suffix]

    @property
    def names(self) -> list[str]:
        return list(self._registry.keys())


BACKEND_REGISTRY = BackendRegistry("ForwardPass")
register_backend = BACKEND_REGISTRY.register


def open_forward_pass(model_path: str | Path, config: Any, backend: str | None = None) -> Any:
    """
    Opens a forward pass for ``model_path`` using the backend registered for its suffix.

    Args:
        model_path: Path to the model file.
        config: The `SessionConfig` the runtime session is built from.
        backend: Explicit backend name, overriding suffix detection.
    """
    name = backend or BACKEND_REGISTRY.resolve(model_path)
    return BACKEND_REGISTRY.get(name)(model_path, config)
