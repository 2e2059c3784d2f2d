"""Core functionality for the Party Decoration Studio.

- **PartyDecoConfig** / **config**: Pydantic Settings configuration loaded
  from ``PARTYDECO_*`` and ``OPENROUTER_*`` environment variables
- **validation** / **image_validation**: request field and reference image
  checks raising :class:`~partydeco.core.validation.ValidationError`
- **decoration_prompts**: decoration-type catalogue and prompt construction
- **streaming**: SSE parsing and index-keyed image stream reassembly
- **gateway**: httpx client for the chat-completions image provider
- **database**: SQLite persistence for projects, iterations, and images
"""

from partydeco.core.config import PartyDecoConfig, config

__all__ = [
    "PartyDecoConfig",
    "config",
]
