"""Report delivery — Discord bot and webhook sinks."""

from .base import ReportSink, SinkError, SinkStartupError, chunk_message
from .discord import DiscordBotSink, DiscordWebhookSink
