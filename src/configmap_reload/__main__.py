"""Command-line entry point for the ConfigMap reloader."""
from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import AppConfig, ConfigError, load_config
from .coordinator import ReloadCoordinator
from .dispatcher import WebhookDispatcher
from .exporter import MetricsServer
from .metrics import PrometheusMetrics
from .transport import select_transport
from .watcher import DirectoryWatcher, WatchRegistrationError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="configmap-reload",
        description="Trigger a webhook when a mounted ConfigMap volume is updated",
    )
    parser.add_argument("--config", help="Optional YAML configuration file")
    parser.add_argument(
        "--volume-dir",
        dest="volume_dirs",
        action="append",
        help="The config map volume directory to watch for updates; may be used multiple times",
    )
    parser.add_argument(
        "--webhook-url",
        dest="webhook_urls",
        action="append",
        help="The url to send a request to when the volume has been updated; may be used multiple times",
    )
    parser.add_argument("--webhook-method", help="The HTTP method to use for the webhook (default: POST)")
    parser.add_argument(
        "--webhook-status-code",
        type=int,
        help="The HTTP status code indicating successful triggering of reload (default: 200)",
    )
    parser.add_argument("--webhook-retries", type=int, help="How many times to try the reload request (default: 1)")
    parser.add_argument(
        "--webhook-backoff",
        type=float,
        help="Fixed number of seconds to wait between attempts (default: 10)",
    )
    parser.add_argument("--webhook-timeout", type=float, help="Per-request timeout in seconds (default: 5)")
    parser.add_argument("--recursive", action="store_true", default=None, help="Also watch subdirectories")
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        help="Address to listen on for telemetry (default: :9533)",
    )
    parser.add_argument(
        "--web.telemetry-path",
        dest="telemetry_path",
        help="Path under which to expose metrics (default: /metrics)",
    )
    parser.add_argument("--identity-file", help="Overlay identity file; enables the overlay transport when loadable")
    parser.add_argument("--overlay-service", help="Overlay service to dial (default: configmap-reload)")
    parser.add_argument("--overlay-target-identity", help="Overlay identity to dial")
    parser.add_argument("--overlay-dialer", help="Overlay dialer factory as 'package.module:callable'")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    return {
        "watch": {"directories": args.volume_dirs, "recursive": args.recursive},
        "webhook": {
            "urls": args.webhook_urls,
            "method": args.webhook_method,
            "status_code": args.webhook_status_code,
            "retries": args.webhook_retries,
            "backoff": args.webhook_backoff,
            "timeout": args.webhook_timeout,
        },
        "web": {"listen_address": args.listen_address, "telemetry_path": args.telemetry_path},
        "transport": {
            "identity_file": args.identity_file,
            "service": args.overlay_service,
            "target_identity": args.overlay_target_identity,
            "dialer": args.overlay_dialer,
        },
    }


def build_coordinator(app_config: AppConfig, metrics: PrometheusMetrics) -> ReloadCoordinator:
    transport = select_transport(app_config.transport, timeout=app_config.webhook.timeout)
    dispatcher = WebhookDispatcher(
        app_config.webhook.targets,
        transport,
        metrics,
        method=app_config.webhook.method,
        expected_status=app_config.webhook.status_code,
        retries=app_config.webhook.retries,
        backoff=app_config.webhook.backoff,
    )
    watcher = DirectoryWatcher(app_config.watch.directories, recursive=app_config.watch.recursive)
    return ReloadCoordinator(watcher, dispatcher, metrics, poll_interval=app_config.watch.poll_interval)


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    config_path = Path(args.config) if args.config else None
    try:
        app_config = load_config(config_path, overrides_from_args(args))
        metrics = PrometheusMetrics()
        coordinator = build_coordinator(app_config, metrics)
    except ConfigError as exc:
        logging.error("%s", exc)
        parser.print_usage()
        raise SystemExit(2) from exc

    server = MetricsServer(
        metrics.registry,
        listen_address=app_config.web.listen_address,
        telemetry_path=app_config.web.telemetry_path,
    )
    try:
        server.start()
    except OSError as exc:
        logging.error("Cannot serve metrics on %s: %s", app_config.web.listen_address, exc)
        raise SystemExit(1) from exc

    signal.signal(signal.SIGTERM, lambda _signum, _frame: coordinator.stop())
    try:
        coordinator.run()
    except WatchRegistrationError as exc:
        logging.error("%s", exc)
        raise SystemExit(1) from exc
    finally:
        server.stop()


if __name__ == "__main__":
    main()
