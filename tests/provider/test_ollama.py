import json

import httpx
import pytest
import respx

from llmrouter.models import FreePricing, GenerationRequest, ProviderConfig
from llmrouter.provider.ollama import OllamaProvider
from llmrouter.provider.wire import OllamaGenerateResponse

BASE = "http://localhost:11434"


def _config(endpoint: "str" = BASE) -> "ProviderConfig":
    return ProviderConfig(
        key="ollama",
        name="Ollama",
        family="ollama",
        endpoint=endpoint,
        models_endpoint=f"{BASE}/api/tags",
        model="llama3.2:3b",
        pricing=FreePricing(),
    )


class TestOllamaProvider:
    @pytest.mark.asyncio
    @respx.mock
    async def test_generate(self) -> "None":
        route = respx.post(f"{BASE}/api/generate").mock(
            return_value=httpx.Response(
                200,
                json={
                    "model": "llama3.2:3b",
                    "response": "Hello there",
                    "done": True,
                    "prompt_eval_count": 26,
                    "eval_count": 4,
                },
            )
        )

        async with httpx.AsyncClient() as client:
            # a trailing slash on the base URL is tolerated
            provider = OllamaProvider(_config(f"{BASE}/"), client)
            response = await provider.generate(
                GenerationRequest(prompt="hi", user_id="u", max_tokens=64)
            )

        assert response == OllamaGenerateResponse(
            response="Hello there", prompt_eval_count=26, eval_count=4
        )
        body = json.loads(route.calls.last.request.content)
        assert body["stream"] is False
        assert body["prompt"] == "hi"
        assert body["options"] == {"num_predict": 64, "temperature": 0.7}

    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_and_list_models(self) -> "None":
        respx.get(f"{BASE}/api/tags").mock(
            return_value=httpx.Response(
                200,
                json={"models": [{"name": "qwen2:7b"}, {"name": "llama3.2:3b"}]},
            )
        )

        async with httpx.AsyncClient() as client:
            provider = OllamaProvider(_config(), client)
            await provider.probe(timeout=1.0)
            models = await provider.list_models()

        assert models == ["llama3.2:3b", "qwen2:7b"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_fails_when_server_is_down(self) -> "None":
        respx.get(f"{BASE}/api/tags").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        async with httpx.AsyncClient() as client:
            with pytest.raises(httpx.ConnectError):
                await OllamaProvider(_config(), client).probe(timeout=1.0)
