"""Discord gateway bot surface for the request workflow."""

from .config import DiscordBotConfig
from .service import DiscordBotService, create_discord_bot_service

__all__ = ["DiscordBotConfig", "DiscordBotService", "create_discord_bot_service"]
