from typing import Protocol

from llmrouter.models import GenerationRequest, ProviderConfig
from llmrouter.provider.wire import WireResponse


class ChatProvider(Protocol):
    """
    ChatProvider stands as a common protocol that all
    provider adapters must satisfy.

    Adapters are bound to one immutable ProviderConfig. They
    raise on any transport or protocol failure and return the raw
    wire response of their family; normalization happens in
    llmrouter.provider.wire.normalize.
    """

    @property
    def key(self) -> "str": ...

    @property
    def config(self) -> "ProviderConfig": ...

    async def probe(self, timeout: "float") -> "None": ...

    async def list_models(self) -> "list[str]": ...

    async def generate(self, request: "GenerationRequest") -> "WireResponse": ...
