import os
from dataclasses import dataclass


@dataclass
class Config:
    # listen_address: format ":9186" or
    # "0.0.0.0:9186", empty disables the metrics server
    listen_address: "str" = ":9186"
    log_level: "str" = "info"
    # "console" or "json"
    log_format: "str" = "console"

    # seconds between background probe cycles
    probe_interval: "float" = 60.0
    probe_timeout: "float" = 5.0
    probe_concurrency: "int" = 4
    request_timeout: "float" = 30.0
    # 6 hours
    cache_ttl: "float" = 6 * 60 * 60
    cache_max_size: "int" = 1000

    ollama_base_url: "str" = ""
    openai_api_key: "str" = ""
    groq_api_key: "str" = ""
    anthropic_api_key: "str" = ""

    # JSON settings store, in-memory when empty
    settings_file: "str" = ""
    # usage summaries survive restarts when set
    usage_file: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", ""),
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            groq_api_key=os.environ.get("GROQ_API_KEY", ""),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            settings_file=os.environ.get("LLMROUTER_SETTINGS_FILE", ""),
            usage_file=os.environ.get("LLMROUTER_USAGE_FILE", ""),
        )

    @property
    def stale_after(self) -> "float | None":
        """
        age after which a probe result no longer counts. Three missed
        cycles, or never when periodic probing is off.
        """
        if self.probe_interval <= 0:
            return None
        return self.probe_interval * 3

    def api_key_for(self, provider: "str") -> "str":
        """
        environment-provided API key for a provider key, "" if none.
        """
        return {
            "openai": self.openai_api_key,
            "groq": self.groq_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(provider, "")
