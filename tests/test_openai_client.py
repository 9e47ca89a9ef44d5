from types import SimpleNamespace

import pytest

from agent_builder.config import OpenAIConfig
from agent_builder.errors import ErrorKind
from agent_builder.generation import GenerationError, OpenAIClient, OpenAISpecGenerator


class _DummyCompletions:
    def __init__(self, client):
        self._client = client

    def create(self, **kwargs):
        self._client.last_kwargs = kwargs
        message = SimpleNamespace(content=self._client.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _DummyClient:
    def __init__(self, content):
        self.content = content
        self.chat = SimpleNamespace(completions=_DummyCompletions(self))
        self.last_kwargs = None


class _StaticClient:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    def complete(self, system_prompt, user_content):
        if self.error is not None:
            raise self.error
        return self.text


def _client(max_output_tokens=512):
    return OpenAIClient(
        model="gpt-test",
        temperature=0.2,
        max_output_tokens=max_output_tokens,
        api_key_provider=lambda: "sk-test",
    )


def test_complete_requests_a_json_object(monkeypatch):
    client = _client()
    dummy_client = _DummyClient('  {"features": []}  ')
    monkeypatch.setattr(client, "_ensure_client", lambda api_key: dummy_client)

    result = client.complete("system prompt", "build a todo app")

    assert result == '{"features": []}'
    assert dummy_client.last_kwargs == {
        "model": "gpt-test",
        "messages": [
            {"role": "system", "content": "system prompt"},
            {"role": "user", "content": "build a todo app"},
        ],
        "temperature": 0.2,
        "response_format": {"type": "json_object"},
        "max_tokens": 512,
    }


def test_complete_omits_max_tokens_when_unset(monkeypatch):
    client = _client(max_output_tokens=None)
    dummy_client = _DummyClient("{}")
    monkeypatch.setattr(client, "_ensure_client", lambda api_key: dummy_client)

    client.complete("system", "user")

    assert "max_tokens" not in dummy_client.last_kwargs


def test_from_config_copies_model_settings():
    config = OpenAIConfig(model="gpt-4o", temperature=0.1, max_output_tokens=100, timeout_seconds=5)
    client = OpenAIClient.from_config(config, api_key_provider=lambda: "sk")

    assert (client.model, client.temperature, client.max_output_tokens, client.timeout) == ("gpt-4o", 0.1, 100, 5)


def test_generator_parses_json_objects():
    generator = OpenAISpecGenerator(_StaticClient(text='{"apis": [], "architecture": "Serverless"}'))

    assert generator.generate_backend({"features": ["Login"]}) == {"apis": [], "architecture": "Serverless"}
    assert generator.ai_generated is True


@pytest.mark.parametrize("text", ["", "not json", "[1, 2]"])
def test_generator_rejects_unusable_output(text):
    generator = OpenAISpecGenerator(_StaticClient(text=text))

    with pytest.raises(GenerationError) as excinfo:
        generator.generate_requirements("Build a todo list application")

    assert excinfo.value.kind is ErrorKind.SERVICE_UNAVAILABLE
    assert excinfo.value.details == {"stage": "requirements"}


def test_generator_wraps_sdk_errors():
    cause = TimeoutError("read timed out")
    generator = OpenAISpecGenerator(_StaticClient(error=cause))

    with pytest.raises(GenerationError) as excinfo:
        generator.generate_devops({}, {})

    assert excinfo.value.__cause__ is cause
    assert "devops generation failed" in excinfo.value.message
