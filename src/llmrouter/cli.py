import argparse

from llmrouter.config import Config
from llmrouter.logging import LOG_FORMATS


def parse_args(
    argv: "list[str] | None" = None,
) -> "tuple[Config, argparse.Namespace]":
    parser = argparse.ArgumentParser(
        prog="llmrouter",
        description="Cost and latency aware router for LLM providers",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9186",
        help="Metrics address, empty to disable (default: :9186)",
    )
    parser.add_argument(
        "--probe.interval",
        dest="probe_interval",
        type=float,
        default=60.0,
        help="Seconds between probe cycles, 0 probes once (default: 60)",
    )
    parser.add_argument(
        "--probe.timeout",
        dest="probe_timeout",
        type=float,
        default=5.0,
        help="Timeout of a single probe in seconds (default: 5)",
    )
    parser.add_argument(
        "--request.timeout",
        dest="request_timeout",
        type=float,
        default=30.0,
        help="Timeout of a generation call in seconds (default: 30)",
    )
    parser.add_argument(
        "--cache.ttl",
        dest="cache_ttl",
        type=float,
        default=6 * 60 * 60,
        help="Response cache TTL in seconds (default: 21600)",
    )
    parser.add_argument(
        "--settings.file",
        dest="settings_file",
        default=None,
        help="JSON settings store (default: $LLMROUTER_SETTINGS_FILE)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=list(LOG_FORMATS),
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--prompt",
        default=None,
        help="Route a single prompt, print the result as JSON and exit",
    )
    parser.add_argument(
        "--provider",
        default=None,
        help="Provider key to use for --prompt instead of selecting one",
    )
    parser.add_argument(
        "--max-tokens",
        dest="max_tokens",
        type=int,
        default=1000,
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=0.7,
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    config.listen_address = args.listen_address
    config.probe_interval = args.probe_interval
    config.probe_timeout = args.probe_timeout
    config.request_timeout = args.request_timeout
    config.cache_ttl = args.cache_ttl
    config.log_level = args.log_level
    config.log_format = args.log_format
    if args.settings_file is not None:
        config.settings_file = args.settings_file
    return config, args
