"""
Tests for model pass implementations (no network access).
"""

from types import SimpleNamespace

import pytest

from watchdog_core.config_manager import WatchdogConfig
from watchdog_core.model_passes import (
    DEFAULT_MODELS,
    CallableModelPass,
    OpenAIModelPass,
    StaticResponsePass,
    build_audit_prompt,
    build_model_passes,
)


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.content is None:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestOpenAIModelPass:

    @pytest.mark.asyncio
    async def test_invoke_sends_prompt(self):
        client, completions = fake_client('{"keyFindings": []}')
        model_pass = OpenAIModelPass("qwen/test", api_key="k", max_tokens=1234, temperature=0.2, client=client)
        text = await model_pass.invoke("contract Vault {}", "Vault")

        assert text == '{"keyFindings": []}'
        request = completions.requests[0]
        assert request["model"] == "qwen/test"
        assert request["max_tokens"] == 1234
        assert request["temperature"] == 0.2
        assert request["messages"][0]["role"] == "system"
        assert "contract Vault {}" in request["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_no_choices_returns_empty(self):
        client, _ = fake_client(None)
        assert await OpenAIModelPass("m", api_key="k", client=client).invoke("", "X") == ""

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
            await OpenAIModelPass("m", api_key="").invoke("contract A {}", "A")


class TestOtherPasses:

    @pytest.mark.asyncio
    async def test_static_response(self):
        assert await StaticResponsePass("replay", "canned").invoke("src", "Name") == "canned"

    @pytest.mark.asyncio
    async def test_async_callable(self):
        async def model(source_code, contract_name):
            return f"{contract_name}:{len(source_code)}"

        assert await CallableModelPass("async", model).invoke("abc", "Vault") == "Vault:3"

    @pytest.mark.asyncio
    async def test_sync_callable_runs_in_executor(self):
        assert await CallableModelPass("sync", lambda s, n: n.upper()).invoke("abc", "vault") == "VAULT"


class TestBuilders:

    def test_prompt_mentions_contract(self):
        prompt = build_audit_prompt("contract Vault {}", "Vault")
        assert '"Vault"' in prompt
        assert "```solidity\ncontract Vault {}\n```" in prompt
        assert "keyFindings" in prompt

    def test_build_from_config(self):
        config = WatchdogConfig(openrouter_api_key="key", max_tokens=500)
        passes = build_model_passes(config)
        assert [p.model_id for p in passes] == DEFAULT_MODELS
        assert all(p.api_key == "key" and p.max_tokens == 500 for p in passes)

    def test_build_with_explicit_models(self):
        passes = build_model_passes(WatchdogConfig(openrouter_api_key="key"), ["only/one"])
        assert [p.model_id for p in passes] == ["only/one"]
