import httpx
import structlog

from llmrouter.models import GenerationRequest, ProviderConfig
from llmrouter.provider.wire import OpenAIChatResponse

logger = structlog.get_logger()


class OpenAICompatibleProvider:
    """
    OpenAICompatibleProvider implements the ChatProvider protocol for
    backends that speak the OpenAI chat completions API (OpenAI, Groq).
    Probing lists the models endpoint, which is free of charge.
    """

    def __init__(self, config: "ProviderConfig", client: "httpx.AsyncClient") -> "None":
        self._config = config
        self._client = client

    @property
    def key(self) -> "str":
        return self._config.key

    @property
    def config(self) -> "ProviderConfig":
        return self._config

    def _headers(self) -> "dict[str, str]":
        return {"Authorization": f"Bearer {self._config.api_key}"}

    async def probe(self, timeout: "float") -> "None":
        resp = await self._client.get(
            self._config.models_endpoint, headers=self._headers(), timeout=timeout
        )
        resp.raise_for_status()

    async def list_models(self) -> "list[str]":
        resp = await self._client.get(
            self._config.models_endpoint, headers=self._headers()
        )
        resp.raise_for_status()

        data = resp.json()
        return sorted(
            str(item["id"]) for item in data.get("data", []) if item.get("id")
        )

    async def generate(self, request: "GenerationRequest") -> "OpenAIChatResponse":
        logger.debug(
            "openai_generate",
            provider=self.key,
            model=self._config.model,
            request_id=request.request_id,
        )
        resp = await self._client.post(
            self._config.endpoint,
            headers=self._headers(),
            json={
                "model": self._config.model,
                "messages": [{"role": "user", "content": request.prompt}],
                "max_tokens": request.max_tokens,
                "temperature": request.temperature,
            },
        )
        resp.raise_for_status()
        return OpenAIChatResponse.from_json(resp.json())
