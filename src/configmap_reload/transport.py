"""HTTP transport providers used to deliver webhook requests."""
from __future__ import annotations

import importlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, cast

import httpx

from .config import ConfigError, TransportConfig

logger = logging.getLogger(__name__)

DialerFactory = Callable[..., httpx.BaseTransport]


class Transport(Protocol):
    """Performs a single, already-built HTTP request."""

    def execute(self, request: httpx.Request) -> httpx.Response:
        """Send *request*; raise ``httpx.RequestError`` when it cannot be delivered."""
        ...


class HttpTransport:
    """Transport backed by an ``httpx.Client``."""

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        base_transport: Optional[httpx.BaseTransport] = None,
        client: Optional[httpx.Client] = None,
    ):
        if client is None:
            client = httpx.Client(timeout=timeout, transport=base_transport)
        self._client = client

    def execute(self, request: httpx.Request) -> httpx.Response:
        # Custom base transports (overlay dialers) raise their own errors.
        try:
            response = self._client.send(request)
        except httpx.RequestError:
            raise
        except Exception as exc:
            raise httpx.TransportError(f"{type(exc).__name__}: {exc}", request=request) from exc
        response.close()
        return response

    def close(self) -> None:
        self._client.close()


def load_identity(path: Path) -> Optional[Dict[str, Any]]:
    """Read an overlay identity document, returning None when unusable."""

    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        logger.warning("Identity file %s not found; using direct transport", path)
        return None
    except (OSError, ValueError) as exc:
        logger.warning("Identity file %s could not be loaded (%s); using direct transport", path, exc)
        return None

    if not isinstance(data, dict):
        logger.warning("Identity file %s is not a JSON object; using direct transport", path)
        return None
    return data


def select_transport(config: TransportConfig, *, timeout: float = 5.0) -> HttpTransport:
    """Build the direct or overlay transport for this process.

    The overlay is used only when the configured identity file exists and
    parses; the dialer factory then supplies the ``httpx`` transport that
    reaches the overlay service.
    """

    if config.identity_file is None:
        logger.info("No identity file configured; using direct transport")
        return HttpTransport(timeout=timeout)

    logger.info("Loading overlay identity from %s", config.identity_file)
    identity = load_identity(config.identity_file)
    if identity is None:
        return HttpTransport(timeout=timeout)

    if config.dialer is None:
        raise ConfigError("transport.dialer is required when an identity file is configured")

    factory = _load_dialer(config.dialer)
    base_transport = factory(
        identity=identity,
        service=config.service,
        target_identity=config.target_identity,
    )
    if not isinstance(base_transport, httpx.BaseTransport):
        raise ConfigError(f"Dialer '{config.dialer}' did not return an httpx transport")

    if config.target_identity:
        logger.info("Using overlay transport for service %s (target identity %s)", config.service, config.target_identity)
    else:
        logger.info("Using overlay transport for service %s", config.service)
    return HttpTransport(timeout=timeout, base_transport=base_transport)


def _load_dialer(reference: str) -> DialerFactory:
    module_path, _, attribute = reference.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ConfigError(f"Unable to import dialer module '{module_path}'") from exc

    try:
        factory = getattr(module, attribute)
    except AttributeError as exc:
        raise ConfigError(f"Dialer module '{module_path}' has no attribute '{attribute}'") from exc

    if not callable(factory):
        raise ConfigError(f"Dialer '{reference}' is not callable")
    return cast(DialerFactory, factory)
