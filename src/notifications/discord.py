"""Discord delivery for health reports.

Two modes:
1. **Bot mode** (DISCORD_BOT_TOKEN + DISCORD_CHANNEL_ID) — discord.py gateway
   client. Gateway ready/resumed/disconnect events drive the sink lifecycle.
2. **Webhook only** (DISCORD_WEBHOOK_URL) — httpx POST, always available once
   the webhook has been validated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord
import httpx

from .base import ReportSink, SinkStartupError, chunk_message

logger = logging.getLogger(__name__)


class DiscordBotSink(ReportSink):
    """Posts reports to a channel through a Discord bot session."""

    name = "discord-bot"

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        client: Any = None,
    ) -> None:
        super().__init__()
        self.bot_token = bot_token
        self.channel_id = channel_id
        self._client: Any = client
        self._channel: Any = None
        self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def _build_client(self) -> discord.Client:
        client = discord.Client(intents=discord.Intents.default())

        async def on_ready() -> None:
            await self._handle_ready()

        async def on_resumed() -> None:
            await self._handle_resumed()

        async def on_disconnect() -> None:
            await self._handle_disconnect()

        for handler in (on_ready, on_resumed, on_disconnect):
            client.event(handler)
        return client

    async def serve(self) -> None:
        """Log in and run the gateway session until ``close()``.

        Raises SinkStartupError when the token is rejected.
        """
        try:
            int(self.channel_id)
        except ValueError as e:
            raise SinkStartupError(f"Invalid Discord channel id: {self.channel_id!r}") from e

        if self._client is None:
            self._client = self._build_client()

        logger.info("Discord bot connecting (channel=%s)", self.channel_id)
        try:
            await self._client.start(self.bot_token)
        except discord.LoginFailure as e:
            raise SinkStartupError(f"Failed to login to Discord: {e}") from e

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed():
            await self._client.close()
        logger.info("Discord bot closed")

    async def deliver(self, text: str) -> bool:
        if not self._available:
            logger.warning("Discord: skipping send (gateway unavailable)")
            return False
        if self._channel is None:
            logger.error("Could not find channel %s. Check DISCORD_CHANNEL_ID.", self.channel_id)
            return False
        try:
            for chunk in chunk_message(text):
                await self._channel.send(chunk)
        except discord.HTTPException as e:
            logger.warning("Discord send failed: %s", e)
            return False
        except Exception:
            logger.exception("Discord send error")
            return False
        logger.info("Health check report sent to channel %s", self.channel_id)
        return True

    # -- gateway events --------------------------------------------------------

    async def _handle_ready(self) -> None:
        logger.info("Discord bot connected as %s", self._client.user)
        self._channel = await self._resolve_channel()
        await self._set_available(True)

    async def _handle_resumed(self) -> None:
        logger.info("Discord session resumed")
        await self._set_available(True)

    async def _handle_disconnect(self) -> None:
        await self._set_available(False)

    async def _set_available(self, available: bool) -> None:
        if available == self._available:
            return
        self._available = available
        if available:
            await self._emit_available()
        else:
            await self._emit_unavailable()

    async def _resolve_channel(self) -> Any:
        channel_id = int(self.channel_id)
        channel = self._client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self._client.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden) as e:
            logger.error("Could not find channel %s: %s", self.channel_id, e)
        except discord.HTTPException:
            logger.exception("Discord channel lookup failed")
        return None


class DiscordWebhookSink(ReportSink):
    """Posts reports to a Discord webhook URL."""

    name = "discord-webhook"

    def __init__(
        self,
        webhook_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.webhook_url = webhook_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=10)
        self._closed = asyncio.Event()

    async def serve(self) -> None:
        """Validate the webhook, announce availability, then idle until closed."""
        try:
            resp = await self._client.get(self.webhook_url)
        except httpx.HTTPError as e:
            raise SinkStartupError(f"Discord webhook unreachable: {e}") from e
        if resp.status_code != 200:
            raise SinkStartupError(
                f"Discord webhook rejected ({resp.status_code}): {resp.text[:200]}"
            )

        logger.info("Discord webhook validated")
        await self._emit_available()
        await self._closed.wait()

    async def close(self) -> None:
        self._closed.set()
        if self._owns_client:
            await self._client.aclose()

    async def deliver(self, text: str) -> bool:
        for chunk in chunk_message(text):
            try:
                resp = await self._client.post(self.webhook_url, json={"content": chunk})
            except Exception:
                logger.exception("Discord webhook send error")
                return False
            if resp.status_code not in (200, 204):
                logger.warning(
                    "Discord webhook send failed: %d %s", resp.status_code, resp.text[:200],
                )
                return False
        logger.info("Health check report sent via webhook")
        return True
