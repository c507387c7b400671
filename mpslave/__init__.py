"""Control logic for a media player driven through its slave-mode interface."""

__version__ = "0.1.0"
__all__ = ["commands", "fstypes", "mediainfo", "parser", "player", "position", "state"]