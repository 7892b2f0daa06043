from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
DISCORD_GATEWAY_URL = "wss://gateway.discord.gg/?v=10&encoding=json"

# Discord hard limit for message content.
DISCORD_MAX_MESSAGE_LENGTH = 2000
DISCORD_SELECT_OPTION_MAX_OPTIONS = 25
DISCORD_SELECT_LABEL_MAX_LENGTH = 100
DISCORD_SELECT_DESCRIPTION_MAX_LENGTH = 100
DISCORD_BUTTON_LABEL_MAX_LENGTH = 80
DISCORD_CUSTOM_ID_MAX_LENGTH = 100

# Gateway intents bitflags; slash commands and components only need GUILDS.
DISCORD_INTENT_GUILDS = 1 << 0

# Interaction types.
INTERACTION_TYPE_APPLICATION_COMMAND = 2
INTERACTION_TYPE_MESSAGE_COMPONENT = 3

# Interaction callback types.
CALLBACK_DEFERRED_CHANNEL_MESSAGE = 5
CALLBACK_DEFERRED_UPDATE_MESSAGE = 6

DISCORD_EPHEMERAL_FLAG = 64
