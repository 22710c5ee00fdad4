import asyncio
import dataclasses
import json
import signal

import structlog
from prometheus_client import REGISTRY, start_http_server

from llmrouter.cli import parse_args
from llmrouter.errors import RouterError
from llmrouter.logging import setup_logging
from llmrouter.metrics import MetricsUpdater
from llmrouter.models import GenerationRequest
from llmrouter.router import LLMRouter, create_router
from llmrouter.settings import JsonFileSettingsStore, MemorySettingsStore

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def _route_once(router: "LLMRouter", request: "GenerationRequest") -> "int":
    try:
        result = await router.route(request)
    except RouterError as exc:
        logger.error("route_failed", error=str(exc))
        return 1

    print(json.dumps(dataclasses.asdict(result), indent=2))
    return 0


async def _serve(router: "LLMRouter") -> "None":
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # for SIGINT and SIGTERM, stop probing gracefully
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    router.start()
    await router.wait_for_initialization()
    logger.info("providers_ready", providers=router.get_provider_stats())
    await stop_event.wait()


def main() -> "None":
    config, args = parse_args()
    setup_logging(config.log_level, config.log_format)

    store = (
        JsonFileSettingsStore(config.settings_file)
        if config.settings_file
        else MemorySettingsStore()
    )

    async def _run() -> "int":
        router = create_router(config, store, metrics=MetricsUpdater(REGISTRY))
        try:
            if args.prompt is not None:
                request = GenerationRequest(
                    prompt=args.prompt,
                    user_id="cli",
                    max_tokens=args.max_tokens,
                    temperature=args.temperature,
                    provider=args.provider,
                )
                return await _route_once(router, request)

            if config.listen_address:
                host, port = _parse_listen_address(config.listen_address)
                start_http_server(port, addr=host)
                logger.info("metrics_server_started", host=host, port=port)
            await _serve(router)
            return 0
        finally:
            logger.info("shutting_down")
            await router.close()
            logger.info("shutdown_complete")

    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
