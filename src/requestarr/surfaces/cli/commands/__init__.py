from .bot import register_bot_commands

__all__ = ["register_bot_commands"]
