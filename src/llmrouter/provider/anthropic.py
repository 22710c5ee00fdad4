import httpx
import structlog

from llmrouter.models import GenerationRequest, ProviderConfig
from llmrouter.provider.wire import AnthropicMessageResponse

logger = structlog.get_logger()

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider:
    """
    AnthropicProvider implements the ChatProvider protocol for the
    Anthropic messages API.
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
        return {
            "x-api-key": self._config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

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

    async def generate(
        self, request: "GenerationRequest"
    ) -> "AnthropicMessageResponse":
        logger.debug(
            "anthropic_generate",
            provider=self.key,
            model=self._config.model,
            request_id=request.request_id,
        )
        resp = await self._client.post(
            self._config.endpoint,
            headers=self._headers(),
            json={
                "model": self._config.model,
                "max_tokens": request.max_tokens,
                "messages": [{"role": "user", "content": request.prompt}],
                "temperature": request.temperature,
            },
        )
        resp.raise_for_status()
        return AnthropicMessageResponse.from_json(resp.json())
