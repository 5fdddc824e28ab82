"""Open/close command dispatch to the ESPHome cover endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol
from urllib.parse import quote

import aiohttp

from pyespgarage._constants import DEFAULT_COMMAND_TIMEOUT, DEFAULT_PORT, USER_AGENT
from pyespgarage.exceptions import CommandFailedError
from pyespgarage.models.door import DoorDirection
from pyespgarage.models.events import split_device_id

_logger = logging.getLogger(__name__)


class CommandSender(Protocol):
    """Structural interface the door engine dispatches commands through."""

    async def send(self, device_id: str, direction: DoorDirection) -> bool: ...


class CommandDispatcher:
    """Sends ``POST /<template-name>/<template-id>/<open|close>`` requests."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self._http = http_session
        self._base_url = f"http://{host}:{port}"
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def command_url(self, device_id: str, direction: DoorDirection) -> str:
        template_name, template_id = split_device_id(device_id)
        return f"{self._base_url}/{quote(template_name, safe='')}/{quote(template_id, safe='')}/{direction.value}"

    async def send(self, device_id: str, direction: DoorDirection) -> bool:
        """Send one command. Returns ``False`` instead of raising on failure."""
        try:
            await self.send_or_raise(device_id, direction)
        except CommandFailedError as exc:
            _logger.error("Command %s for %s failed: %s", direction.value, device_id, exc)
            return False
        return True

    async def send_or_raise(self, device_id: str, direction: DoorDirection) -> None:
        """Send one command.

        Raises
        ------
        CommandFailedError
            On network failure, timeout, or a non-2xx response.
        """
        url = self.command_url(device_id, direction)
        headers = {"user-agent": USER_AGENT}

        _logger.debug("POST %s", url)
        try:
            async with self._http.post(url, headers=headers, timeout=self._timeout) as resp:
                if not 200 <= resp.status < 300:
                    text = await resp.text()
                    raise CommandFailedError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except CommandFailedError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CommandFailedError(f"Request to {url} failed: {exc!r}", url=url) from exc
