import time
from types import SimpleNamespace

import pytest

from feedback_insights.core.config import settings
from feedback_insights.core.llm import (
    ConfigurationError, LLMConfig, LLMManager, LLMProvider, LLMTimeoutError, ProviderError,
)


class FakeChatModel:
    def __init__(self, content=None, delay=0.0, error=None):
        self.content = content
        self.delay = delay
        self.error = error
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return SimpleNamespace(content=self.content)


def make_manager(llm, timeout=5):
    config = LLMConfig(provider=LLMProvider.ANTHROPIC, model="test-model", timeout=timeout)
    return LLMManager(config=config, llm=llm)


class TestLLMManagerGateway:

    def test_invoke_returns_text(self):
        llm = FakeChatModel(content="  relevant \n")
        assert make_manager(llm).invoke("classify this") == "relevant"
        (messages,) = llm.calls
        assert messages[0].content == "classify this"

    def test_content_blocks_are_joined(self):
        llm = FakeChatModel(content=[{"type": "text", "text": '{"a": '}, {"type": "text", "text": "1}"}])
        assert make_manager(llm).invoke("x") == '{"a": 1}'

    def test_timeout(self):
        llm = FakeChatModel(content="late", delay=0.5)
        with pytest.raises(LLMTimeoutError):
            make_manager(llm, timeout=0.05).invoke("x")

    def test_timeout_is_a_timeout_error(self):
        assert issubclass(LLMTimeoutError, TimeoutError)

    def test_provider_failure(self):
        llm = FakeChatModel(error=RuntimeError("401 unauthorized"))
        with pytest.raises(ProviderError, match="401 unauthorized"):
            make_manager(llm).invoke("x")


class TestLLMManagerConfiguration:

    def test_missing_anthropic_key(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "anthropic")
        monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", None)
        with pytest.raises(ConfigurationError):
            LLMManager.from_env()

    def test_invalid_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "carrier-pigeon")
        with pytest.raises(ConfigurationError):
            LLMManager.from_env()

    def test_temperature_override(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "anthropic")
        config = LLMManager._load_config_from_env(temperature=0.0)
        assert config.temperature == 0.0
        assert config.timeout == settings.LLM_TIMEOUT
