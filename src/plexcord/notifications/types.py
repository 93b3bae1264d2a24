from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..config import WebhookEndpoint


@dataclass(frozen=True)
class EmbedFooter:
    text: str
    icon_url: Optional[str] = None


@dataclass(frozen=True)
class EmbedAuthor:
    name: str
    url: Optional[str] = None
    icon_url: Optional[str] = None


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class NotificationFragment:
    """Embed-shaped content carried by one event; also the shape of a built notification."""

    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    timestamp: Optional[str] = None
    color: Optional[int] = None
    footer: Optional[EmbedFooter] = None
    author: Optional[EmbedAuthor] = None
    thumbnail_url: Optional[str] = None
    image_url: Optional[str] = None
    fields: Tuple[EmbedField, ...] = ()


# A notification is a fragment produced by merging a group.
Notification = NotificationFragment


@dataclass(frozen=True)
class Event:
    """One unit of ingested work. An empty key means flush immediately."""

    key: str
    payload: NotificationFragment


@dataclass
class PendingGroup:
    key: str
    items: List[NotificationFragment]
    last_update: float
    created_at: float
    revision: int = 0

    def add(self, fragment: NotificationFragment, now: float) -> None:
        self.items.append(fragment)
        self.last_update = now


@dataclass(frozen=True)
class DeliveryResult:
    endpoint: WebhookEndpoint
    ok: bool
    status: Optional[int] = None
    reason: Optional[str] = None


class DeliveryTransport:
    """Sends one notification to one endpoint. Implementations must be safe to call concurrently."""

    name: str = "transport"

    def send(self, endpoint: WebhookEndpoint, notification: Notification) -> DeliveryResult:
        raise NotImplementedError

    def close(self) -> None:
        return None
