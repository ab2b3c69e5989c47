"""Helpers for the DevTools HTTP endpoint.

A browser started with ``--remote-debugging-port`` serves a small JSON API
next to its WebSocket endpoints:

- ``GET /json`` lists inspectable targets
- ``PUT /json/new?<url>`` opens a new tab
- ``GET /json/version`` describes the browser

These helpers find the ``webSocketDebuggerUrl`` to hand to ``ChromeConnector``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from cdpconnector.config import DiscoveryConfig

logger = logging.getLogger(__name__)


class TargetInfo(BaseModel):
    """One entry of ``/json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    type: str = "page"
    title: str = ""
    url: str = ""
    web_socket_debugger_url: str | None = Field(default=None, alias="webSocketDebuggerUrl")
    devtools_frontend_url: str | None = Field(default=None, alias="devtoolsFrontendUrl")


async def _request(method: str, path: str, config: DiscoveryConfig) -> Any:
    url = f"{config.base_url}{path}"
    timeout = aiohttp.ClientTimeout(total=config.timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.request(method, url) as response:
            response.raise_for_status()
            # DevTools answers with text/plain on some versions
            return await response.json(content_type=None)


async def list_targets(config: DiscoveryConfig | None = None) -> list[TargetInfo]:
    """List inspectable targets."""
    data = await _request("GET", "/json", config or DiscoveryConfig())
    return [TargetInfo.model_validate(item) for item in data]


async def new_target(url: str | None = None, config: DiscoveryConfig | None = None) -> TargetInfo:
    """Open a new tab, optionally navigated to ``url``."""
    path = "/json/new"
    if url:
        # The whole query string is the target URL
        path = f"{path}?{quote(url, safe=':/')}"
    data = await _request("PUT", path, config or DiscoveryConfig())
    return TargetInfo.model_validate(data)


async def get_version(config: DiscoveryConfig | None = None) -> dict[str, Any]:
    """Return browser and protocol version info."""
    return await _request("GET", "/json/version", config or DiscoveryConfig())


async def find_websocket_debugger_url(config: DiscoveryConfig | None = None) -> str:
    """Return the debugger URL of the first target that has one.

    Raises:
        LookupError: if no target exposes a debugger URL
    """
    config = config or DiscoveryConfig()
    for target in await list_targets(config):
        if target.web_socket_debugger_url:
            logger.debug("Using target %s (%s)", target.id, target.url)
            return target.web_socket_debugger_url
    raise LookupError(f"No debuggable target found at {config.base_url}")
