class RouterError(Exception):
    """
    base class for every error raised by the router.
    """


class NoProviderAvailable(RouterError):
    """
    raised when no enabled, available provider is left after
    filtering. This is transient: provider state changes after the
    next probe cycle, so callers should retry later.
    """

    def __init__(self, reason: "str" = "no eligible provider") -> "None":
        super().__init__(
            f"No LLM provider is currently available ({reason}). "
            "Please retry in a moment."
        )
        self.reason = reason


class ProviderTransportError(RouterError):
    """
    network, timeout or protocol failure of one specific provider.
    """

    def __init__(self, provider: "str", message: "str") -> "None":
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderConfigError(RouterError):
    """
    malformed or missing configuration for one provider.
    """

    def __init__(self, provider: "str", message: "str") -> "None":
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class UnknownProviderKey(RouterError):
    def __init__(self, provider: "str") -> "None":
        super().__init__(f"unknown provider: {provider}")
        self.provider = provider
