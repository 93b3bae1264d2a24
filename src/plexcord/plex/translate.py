from __future__ import annotations

from datetime import datetime, timezone

from ..notifications.types import EmbedAuthor, EmbedField, EmbedFooter, Event, NotificationFragment
from ..utils import trim
from .models import Metadata, PlexEvent, PlexPayload

COLOR_NEW = 0x57F287
COLOR_PLAYBACK = 0x5865F2
COLOR_ALERT = 0xED4245
COLOR_OTHER = 0x95A5A6

SUMMARY_LIMIT = 300

_PLAYBACK_EVENTS = frozenset(
    {
        PlexEvent.MEDIA_PLAY,
        PlexEvent.MEDIA_PAUSE,
        PlexEvent.MEDIA_RESUME,
        PlexEvent.MEDIA_STOP,
        PlexEvent.MEDIA_SCROBBLE,
        PlexEvent.MEDIA_RATE,
        PlexEvent.PLAYBACK_STARTED,
    }
)

_EVENT_LABELS = {
    PlexEvent.LIBRARY_NEW: "Added",
    PlexEvent.LIBRARY_ON_DECK: "On deck",
    PlexEvent.MEDIA_PLAY: "Playing",
    PlexEvent.MEDIA_PAUSE: "Paused",
    PlexEvent.MEDIA_RESUME: "Resumed",
    PlexEvent.MEDIA_STOP: "Stopped",
    PlexEvent.MEDIA_SCROBBLE: "Watched",
    PlexEvent.MEDIA_RATE: "Rated",
    PlexEvent.PLAYBACK_STARTED: "Playback started",
    PlexEvent.ADMIN_DATABASE_BACKUP: "Database backup",
    PlexEvent.ADMIN_DATABASE_CORRUPTED: "Database corrupted",
    PlexEvent.DEVICE_NEW: "New device",
}


def event_color(event: PlexEvent) -> int:
    if event == PlexEvent.LIBRARY_NEW:
        return COLOR_NEW
    if event in _PLAYBACK_EVENTS:
        return COLOR_PLAYBACK
    if event == PlexEvent.ADMIN_DATABASE_CORRUPTED:
        return COLOR_ALERT
    return COLOR_OTHER


def coalescing_key(payload: PlexPayload) -> str:
    """Group episodes by show season and tracks by album; everything else is not coalesced.

    Only library additions are grouped. Playback events are per-user and stay singular.
    """
    metadata = payload.metadata
    if metadata is None or payload.event != PlexEvent.LIBRARY_NEW:
        return ""
    server = payload.server.uuid
    if metadata.media_type == "episode" and metadata.grandparent_rating_key and metadata.parent_index is not None:
        return f"{server}:{metadata.grandparent_rating_key}:{metadata.parent_index}"
    if metadata.media_type == "track" and metadata.parent_rating_key:
        return f"{server}:{metadata.parent_rating_key}"
    return ""


def _episode_line(metadata: Metadata) -> str:
    number = f"E{metadata.index:02d}" if metadata.index is not None else "E??"
    return f"{number} · {metadata.title or 'Untitled'}"


def _title_and_description(payload: PlexPayload) -> tuple[str, str | None]:
    metadata = payload.metadata
    label = _EVENT_LABELS.get(payload.event, payload.event.value)
    if metadata is None:
        return label, None

    if metadata.media_type == "episode":
        show = metadata.grandparent_title or "Unknown show"
        season = metadata.parent_index if metadata.parent_index is not None else "?"
        return f"{show} – Season {season}", _episode_line(metadata)

    if metadata.media_type == "track":
        artist = metadata.grandparent_title or "Unknown artist"
        album = metadata.parent_title or "Unknown album"
        number = f"{metadata.index}. " if metadata.index is not None else ""
        return f"{artist} – {album}", f"{number}{metadata.title or 'Untitled'}"

    title = metadata.title or label
    if metadata.media_type == "movie" and metadata.year:
        title = f"{title} ({metadata.year})"
    summary = trim(metadata.summary, SUMMARY_LIMIT) if metadata.summary else None
    return title, summary


def _fields_for(payload: PlexPayload) -> tuple[EmbedField, ...]:
    fields = [EmbedField(name="Event", value=_EVENT_LABELS.get(payload.event, payload.event.value), inline=True)]
    if payload.event in _PLAYBACK_EVENTS:
        fields.append(EmbedField(name="User", value=payload.account.title, inline=True))
        if payload.player is not None:
            fields.append(EmbedField(name="Player", value=payload.player.title, inline=True))
    return tuple(fields)


def translate(payload: PlexPayload, *, received_at: datetime | None = None) -> Event:
    """Map a parsed Plex payload onto a relay event."""
    received_at = received_at or datetime.now(timezone.utc)
    title, description = _title_and_description(payload)
    metadata = payload.metadata

    footer = None
    if metadata is not None and metadata.library_section_title:
        footer = EmbedFooter(text=metadata.library_section_title)

    account_thumb = payload.account.thumb if payload.account.thumb.startswith("http") else None
    fragment = NotificationFragment(
        title=title,
        description=description,
        timestamp=received_at.isoformat(),
        color=event_color(payload.event),
        footer=footer,
        author=EmbedAuthor(name=payload.server.title, icon_url=account_thumb),
        fields=_fields_for(payload),
    )
    return Event(key=coalescing_key(payload), payload=fragment)
