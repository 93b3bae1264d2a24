"""Pydantic models for the payload Plex posts to webhooks.

The webhook format is undocumented and was reverse-engineered, so almost every
metadata field is optional and unknown keys are kept in ``extra`` rather than
rejected.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

LOGGER = logging.getLogger(__name__)


class PlexPayloadError(ValueError):
    """Raised when a webhook payload cannot be parsed into a ``PlexPayload``."""


class PlexEvent(str, Enum):
    LIBRARY_ON_DECK = "library.on.deck"
    LIBRARY_NEW = "library.new"
    MEDIA_PAUSE = "media.pause"
    MEDIA_PLAY = "media.play"
    MEDIA_RATE = "media.rate"
    MEDIA_RESUME = "media.resume"
    MEDIA_SCROBBLE = "media.scrobble"
    MEDIA_STOP = "media.stop"
    ADMIN_DATABASE_BACKUP = "admin.database.backup"
    ADMIN_DATABASE_CORRUPTED = "admin.database.corrupted"
    DEVICE_NEW = "device.new"
    PLAYBACK_STARTED = "playback.started"


class Account(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    thumb: str
    title: str


class Server(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    uuid: str


class Player(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    local: bool
    public_address: str
    title: str
    uuid: str


class Credit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filter: str | None = None
    id: int | None = None
    tag: str
    role: str | None = None
    thumb: str | None = None


class Link(BaseModel):
    id: str


class Metadata(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    # Item itself
    title: str | None = None
    title_sort: str | None = None
    thumb: str | None = None
    key: str | None = None
    guid: str | None = None
    rating_key: str | None = None
    summary: str | None = None
    external_links: list[Link] | None = Field(default=None, alias="Guid")
    media_type: str | None = Field(default=None, alias="type")
    year: int | None = None

    index: int | None = None
    art: str | None = None
    skip_count: int | None = None
    view_count: int | None = None
    audience_rating: float | None = None
    audience_rating_image: str | None = None
    library_section_type: str | None = None
    content_rating: str | None = None
    view_offset: int | None = None

    writer: list[Credit] | None = Field(default=None, alias="Writer")
    director: list[Credit] | None = Field(default=None, alias="Director")
    role: list[Credit] | None = Field(default=None, alias="Role")

    originally_available_at: str | None = None
    updated_at: int | None = None
    last_viewed_at: int | None = None
    duration: int | None = None
    added_at: int | None = None

    # Parent (season / album)
    parent_rating_key: str | None = None
    parent_index: int | None = None
    parent_key: str | None = None
    parent_title: str | None = None
    parent_guid: str | None = None
    parent_thumb: str | None = None

    # Grandparent (show / artist)
    grandparent_key: str | None = None
    grandparent_title: str | None = None
    grandparent_thumb: str | None = None
    grandparent_theme: str | None = None
    grandparent_guid: str | None = None
    grandparent_rating_key: str | None = None
    grandparent_art: str | None = None

    # Containing library
    library_section_title: str | None = None
    library_section_key: str | None = None
    library_section_id: int = Field(alias="librarySectionID")

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class PlexPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event: PlexEvent
    user: bool
    owner: bool
    account: Account = Field(alias="Account")
    server: Server = Field(alias="Server")
    player: Player | None = Field(default=None, alias="Player")
    metadata: Metadata | None = Field(default=None, alias="Metadata")


def decode_json(raw: bytes | str) -> Any:
    """Decode raw part bytes as JSON; raises ``ValueError`` when they are not JSON."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)


def parse_payload(data: Any) -> PlexPayload:
    """Validate decoded webhook JSON into a ``PlexPayload``."""
    try:
        payload = PlexPayload.model_validate(data)
    except ValidationError as exc:
        raise PlexPayloadError(f"Invalid Plex payload: {exc.error_count()} error(s): {exc}") from exc

    if payload.metadata is not None:
        extra = payload.metadata.extra
        if extra:
            LOGGER.warning("%d extra fields in metadata", len(extra))
            LOGGER.debug("Extra metadata fields: %s", ", ".join(sorted(extra)))
    return payload
