import numpy as np
import pytest
import torch
from torch.ao.nn.quantized.dynamic import Linear as DynamicQuantizedLinear

from edgellm.config import SessionConfig
from edgellm.errors import ModelLoadError
from edgellm.runtime import BACKEND_REGISTRY, OnnxForwardPass, TorchForwardPass, open_forward_pass
from edgellm.runtime.port import ForwardPass, read_model_file, to_logits_matrix
from edgellm.runtime.registry import BackendRegistry
from edgellm.schemas import GenerationRequest
from edgellm.session import SessionManager, SessionState
from tests.dummies import VOCAB_SIZE, TinyLMWithCache


@pytest.fixture
def runtime_config():
    return SessionConfig(thread_count=1, precision_mode="fp32", memory_limit_mb=64)


class TestRegistry:
    def test_backends_registered(self):
        assert {"onnx", "torch"} <= set(BACKEND_REGISTRY.names)

    @pytest.mark.parametrize(
        "path, backend", [("m.onnx", "onnx"), ("m.ONNX", "onnx"), ("m.pt", "torch"), ("m.ts", "torch")]
    )
    def test_resolve_by_suffix(self, path, backend):
        assert BACKEND_REGISTRY.resolve(path) == backend

    def test_unknown_suffix(self, runtime_config):
        with pytest.raises(ModelLoadError, match="No backend"):
            open_forward_pass("model.gguf", runtime_config)

    def test_duplicate_registration(self):
        registry = BackendRegistry("Test")
        registry.register("x")(object)
        with pytest.raises(ValueError, match="already registered"):
            registry.register("x")(object)

    def test_unknown_backend_name(self):
        with pytest.raises(ValueError, match="not found"):
            BackendRegistry("Test").get("missing")


class TestPortHelpers:
    def test_missing_model_file(self, tmp_path):
        with pytest.raises(ModelLoadError, match="not found"):
            read_model_file(tmp_path / "nope.onnx", memory_limit_mb=10)

    def test_memory_limit(self, tmp_path):
        path = tmp_path / "big.onnx"
        path.write_bytes(b"\0" * (2 * 1024 * 1024))
        with pytest.raises(ModelLoadError, match="memory limit"):
            read_model_file(path, memory_limit_mb=1)

    def test_squeezes_batch_dimension(self):
        logits = to_logits_matrix(np.zeros((1, 3, 7)), num_positions=3)
        assert logits.shape == (3, 7)
        assert logits.dtype == np.float32

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            to_logits_matrix(np.zeros((2, 3, 7)), num_positions=3)


class TestTorchBackend:
    def test_torchscript_logits_shape(self, torchscript_model_file, runtime_config):
        forward = open_forward_pass(torchscript_model_file, runtime_config)
        assert isinstance(forward, TorchForwardPass)
        assert isinstance(forward, ForwardPass)
        logits = forward.run([2, 10, 11, 12])
        assert logits.shape == (4, VOCAB_SIZE)
        forward.close()

    def test_matches_eager_model(self, torchscript_model_file, tiny_model, runtime_config):
        forward = TorchForwardPass(torchscript_model_file, runtime_config)
        expected = tiny_model(torch.tensor([[2, 5, 6]]))[0].detach().numpy()
        np.testing.assert_allclose(forward.run([2, 5, 6]), expected, rtol=1e-5, atol=1e-5)

    def test_pickled_module(self, tmp_path, tiny_model, runtime_config):
        path = tmp_path / "model.pt"
        torch.save(tiny_model, path)
        forward = open_forward_pass(path, runtime_config)
        assert forward.run([2, 4]).shape == (2, VOCAB_SIZE)

    def test_tuple_output_is_unwrapped(self, tmp_path, runtime_config):
        path = tmp_path / "model.ts"
        torch.jit.save(torch.jit.script(TinyLMWithCache()), str(path))
        assert TorchForwardPass(path, runtime_config).run([2, 4, 5]).shape == (3, VOCAB_SIZE)

    def test_not_a_module(self, tmp_path, runtime_config):
        path = tmp_path / "weights.pt"
        torch.save({"weight": torch.zeros(2)}, path)
        with pytest.raises(ModelLoadError, match="nn.Module"):
            TorchForwardPass(path, runtime_config)

    def test_garbage_file(self, tmp_path, runtime_config):
        path = tmp_path / "model.pt"
        path.write_bytes(b"definitely not a model")
        with pytest.raises(ModelLoadError):
            TorchForwardPass(path, runtime_config)

    def test_closed_port_raises(self, torchscript_model_file, runtime_config):
        forward = TorchForwardPass(torchscript_model_file, runtime_config)
        forward.close()
        with pytest.raises(RuntimeError, match="closed"):
            forward.run([2])

    def test_cpu_runs_float32(self, torchscript_model_file):
        forward = TorchForwardPass(torchscript_model_file, SessionConfig(thread_count=1, precision_mode="fp16"))
        assert forward.dtype == torch.float32

    def test_int8_quantizes_linear_layers(self, tmp_path, tiny_model, runtime_config):
        path = tmp_path / "model.pt"
        torch.save(tiny_model, path)
        forward = TorchForwardPass(path, runtime_config.updated(precision_mode="int8"))

        modules = list(forward._model.modules())
        assert any(isinstance(m, DynamicQuantizedLinear) for m in modules)
        assert not any(type(m) is torch.nn.Linear for m in modules)

        logits = forward.run([2, 5, 6])
        assert logits.shape == (3, VOCAB_SIZE)
        assert np.isfinite(logits).all()
        assert type(tiny_model.lm_head) is torch.nn.Linear

    def test_int8_torchscript_runs_as_exported(self, torchscript_model_file, runtime_config, caplog):
        with caplog.at_level("WARNING", logger="edgellm.runtime.torch_backend"):
            forward = TorchForwardPass(torchscript_model_file, runtime_config.updated(precision_mode="int8"))
        assert "as exported" in caplog.text
        assert forward.run([2, 4]).shape == (2, VOCAB_SIZE)

    def test_session_end_to_end(self, torchscript_model_file, model_config_file):
        config = SessionConfig(
            model_path=str(torchscript_model_file),
            config_path=str(model_config_file),
            thread_count=1,
            warmup_max_tokens=3,
            seed=0,
        )
        with SessionManager(config) as session:
            session.initialize()
            assert session.state is SessionState.READY
            first = session.generate(GenerationRequest(prompt="Hello", max_tokens=8, temperature=0))
            second = session.generate(GenerationRequest(prompt="Hello", max_tokens=8, temperature=0))
            assert first.text == second.text
            assert first.token_count <= 8
            assert session.performance_metrics().total_inferences == 2


@pytest.mark.slow
class TestOnnxBackend:
    @pytest.fixture
    def onnx_model_file(self, tmp_path, tiny_model):
        pytest.importorskip("onnx")
        path = tmp_path / "model.onnx"
        with torch.no_grad():
            torch.onnx.export(
                tiny_model,
                (torch.tensor([[2, 4, 5]], dtype=torch.long),),
                str(path),
                input_names=["input_ids"],
                output_names=["logits"],
                dynamic_axes={"input_ids": {0: "batch_size", 1: "seq_len"}, "logits": {0: "batch_size", 1: "seq_len"}},
                opset_version=17,
                dynamo=False,
            )
        return path

    def test_logits_match_torch(self, onnx_model_file, tiny_model, runtime_config):
        forward = open_forward_pass(onnx_model_file, runtime_config)
        assert isinstance(forward, OnnxForwardPass)
        expected = tiny_model(torch.tensor([[2, 7, 8, 9]]))[0].detach().numpy()
        np.testing.assert_allclose(forward.run([2, 7, 8, 9]), expected, rtol=1e-4, atol=1e-4)

    def test_cpu_provider_without_acceleration(self, onnx_model_file, runtime_config):
        forward = OnnxForwardPass(onnx_model_file, runtime_config)
        assert forward.providers[-1] == "CPUExecutionProvider"
        assert forward.input_dtype == np.int64

    def test_rejected_model(self, tmp_path, runtime_config):
        path = tmp_path / "broken.onnx"
        path.write_bytes(b"not a protobuf")
        with pytest.raises(ModelLoadError, match="rejected"):
            OnnxForwardPass(path, runtime_config)
