"""Party Decoration Studio - AI-generated printable party decorations."""

__version__ = "0.1.0"

from partydeco.core.config import PartyDecoConfig, config

__all__ = [
    "PartyDecoConfig",
    "config",
]
