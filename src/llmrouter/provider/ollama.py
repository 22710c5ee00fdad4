import httpx
import structlog

from llmrouter.models import GenerationRequest, ProviderConfig
from llmrouter.provider.wire import OllamaGenerateResponse

logger = structlog.get_logger()


class OllamaProvider:
    """
    OllamaProvider implements the ChatProvider protocol for a local
    Ollama server. The configured endpoint is the server base URL.
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

    async def probe(self, timeout: "float") -> "None":
        resp = await self._client.get(self._config.models_endpoint, timeout=timeout)
        resp.raise_for_status()

    async def list_models(self) -> "list[str]":
        """
        names of the models pulled on the server, from /api/tags.
        """
        resp = await self._client.get(self._config.models_endpoint)
        resp.raise_for_status()

        data = resp.json()
        return sorted(
            str(item["name"]) for item in data.get("models", []) if item.get("name")
        )

    async def generate(self, request: "GenerationRequest") -> "OllamaGenerateResponse":
        logger.debug(
            "ollama_generate",
            provider=self.key,
            model=self._config.model,
            request_id=request.request_id,
        )
        resp = await self._client.post(
            f"{self._config.endpoint.rstrip('/')}/api/generate",
            json={
                "model": self._config.model,
                "prompt": request.prompt,
                "stream": False,
                "options": {
                    "num_predict": request.max_tokens,
                    "temperature": request.temperature,
                },
            },
        )
        resp.raise_for_status()
        return OllamaGenerateResponse.from_json(resp.json())
