"""Discord request bot for Radarr/Sonarr style media managers."""

__version__ = "0.4.0"
