"""Translation between the form Plex posts to webhooks and relay events.

- **models**: pydantic models for the posted payload
- **translate**: payload to coalescing key and embed fragment
- **receiver**: FastAPI app exposing ``POST /plex``
"""

from .models import PlexEvent, PlexPayload, PlexPayloadError, parse_payload
from .translate import coalescing_key, translate

__all__ = [
    "PlexEvent",
    "PlexPayload",
    "PlexPayloadError",
    "coalescing_key",
    "parse_payload",
    "translate",
]
