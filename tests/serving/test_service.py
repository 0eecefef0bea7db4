import pytest

from edgellm.errors import InvalidRequestError, ModelLoadError, NotInitializedError
from edgellm.schemas import estimate_token_count
from edgellm.serving.schemas import ChatMessage
from edgellm.serving.service import InferenceService, build_chat_prompt
from edgellm.session import SessionState
from tests.dummies import EOS_ID, ScriptedForwardPass, scripted_factory


@pytest.fixture
def port(tokenizer):
    vocab = tokenizer.vocabulary
    return ScriptedForwardPass([vocab.token_to_id(" "), vocab.token_to_id("o"), vocab.token_to_id("k"), EOS_ID])


@pytest.fixture
def service(session_config, port):
    return InferenceService(session_config, forward_factory=scripted_factory(port), memory_probe=lambda: 2048)


@pytest.fixture
def ready_service(service):
    assert service.initialize().success
    return service


def test_estimate_token_count():
    assert estimate_token_count("") == 0
    assert estimate_token_count("abc") == 0
    assert estimate_token_count("abcdefgh") == 2


class TestChatPrompt:
    def test_roles_and_cue(self):
        prompt = build_chat_prompt(
            [
                ChatMessage(role="system", content="Be brief."),
                ChatMessage(role="user", content="Hi"),
                ChatMessage(role="assistant", content="Hello!"),
                ChatMessage(role="user", content="How are you?"),
            ]
        )
        assert prompt == (
            "System: Be brief.\n\nUser: Hi\n\nAssistant: Hello!\n\nUser: How are you?\n\nAssistant: "
        )

    def test_single_message(self):
        assert build_chat_prompt([ChatMessage(role="user", content="Hi")]) == "User: Hi\n\nAssistant: "


class TestInitialize:
    def test_success(self, service):
        result = service.initialize()
        assert result.success
        assert result.message == "Model initialized successfully"
        assert service.session.state is SessionState.READY

    def test_already_ready(self, ready_service):
        assert ready_service.initialize().success

    def test_failure_is_reported_not_raised(self, session_config):
        def factory(model_path, config):
            raise ModelLoadError(f"Model file not found: {model_path}")

        service = InferenceService(session_config, forward_factory=factory)
        result = service.initialize()
        assert result.success is False
        assert result.message.startswith("Failed to initialize model:")
        assert "not found" in result.message
        assert service.session.state is SessionState.UNINITIALIZED

    def test_reinitialize_after_destroy(self, ready_service):
        ready_service.destroy()
        assert ready_service.session.state is SessionState.DESTROYED
        assert ready_service.initialize().success
        assert ready_service.session.state is SessionState.READY


class TestGenerate:
    def test_generate(self, ready_service):
        result = ready_service.generate("Hello", max_tokens=10, temperature=0)
        assert result.text == " ok"
        assert result.token_count == 3

    @pytest.mark.parametrize("prompt", ["", "   ", None])
    def test_empty_prompt(self, ready_service, prompt):
        with pytest.raises(InvalidRequestError):
            ready_service.generate(prompt)

    def test_negative_max_tokens(self, ready_service):
        with pytest.raises(InvalidRequestError):
            ready_service.generate("Hi", max_tokens=-1)

    def test_generate_before_initialize(self, service):
        with pytest.raises(NotInitializedError):
            service.generate("Hi")

    def test_stream(self, ready_service):
        assert "".join(ready_service.stream("Hi", temperature=0)) == " ok"


class TestChat:
    def test_chat_strips_response(self, ready_service, port):
        result = ready_service.chat([{"role": "user", "content": "Hi"}], temperature=0)
        assert result.response == "ok"
        assert port.calls[0] == ready_service.session.tokenizer.encode("User: Hi\n\nAssistant: ")

    def test_empty_messages(self, ready_service):
        with pytest.raises(InvalidRequestError, match="Messages array is required"):
            ready_service.chat([])

    def test_unknown_role(self, ready_service):
        with pytest.raises(InvalidRequestError):
            ready_service.chat([{"role": "tool", "content": "Hi"}])


class TestLifecycle:
    def test_model_info(self, service):
        assert service.get_model_info().model_name == "Not Initialized"
        service.initialize()
        info = service.get_model_info()
        assert info.is_ready
        assert info.memory_usage == 2048

    def test_reconfigure_echoes_settings(self, service):
        result = service.reconfigure(thread_count=2, precision_mode="int8")
        assert result.thread_count == 2
        assert result.precision_mode == "int8"
        assert result.use_acceleration is False
        assert service.config.thread_count == 2

    def test_reconfigure_invalid(self, service):
        with pytest.raises(InvalidRequestError):
            service.reconfigure(precision_mode="fp64")

    def test_destroy_always_succeeds(self, ready_service, port):
        assert ready_service.destroy().success
        assert ready_service.destroy().success
        assert port.closed

    def test_metrics_require_ready_session(self, service):
        with pytest.raises(NotInitializedError):
            service.get_performance_metrics()

    def test_model_files(self, service, tmp_path, model_config_file):
        info = service.check_model_files(tmp_path / "missing.onnx", model_config_file)
        assert info.model_exists is False
        assert info.config_exists is True
