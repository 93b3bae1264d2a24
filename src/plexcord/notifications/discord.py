from __future__ import annotations

import logging
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException

from ..config import WebhookEndpoint
from ..utils import redact_url, trim
from .types import DeliveryResult, DeliveryTransport, EmbedField, Notification

LOGGER = logging.getLogger(__name__)

# Discord embed limits
TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 4096
FOOTER_LIMIT = 2048
AUTHOR_LIMIT = 256
FIELD_NAME_LIMIT = 256
FIELD_VALUE_LIMIT = 1024
MAX_FIELDS = 25
USERNAME_LIMIT = 80


def build_session(pool_size: int) -> requests.Session:
    """Create the shared HTTP session; its connection pool is sized for the dispatcher's workers."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["Content-Type"] = "application/json"
    return session


def _excerpt_response(response: Response) -> str:
    """Extract a short excerpt from an HTTP response for logging purposes."""
    try:
        text = response.text
    except Exception:  # pragma: no cover
        return "<no response body>"
    return trim(text or "<empty>", 200)


def _embed_field(item: EmbedField) -> dict[str, Any] | None:
    name = trim(item.name, FIELD_NAME_LIMIT)
    value = trim(item.value, FIELD_VALUE_LIMIT)
    if not name or not value:
        return None
    return {"name": name, "value": value, "inline": item.inline}


def build_embed(notification: Notification) -> dict[str, Any]:
    embed: dict[str, Any] = {"type": "rich"}
    if notification.title:
        embed["title"] = trim(notification.title, TITLE_LIMIT)
    if notification.description:
        embed["description"] = trim(notification.description, DESCRIPTION_LIMIT)
    if notification.url:
        embed["url"] = notification.url
    if notification.timestamp:
        embed["timestamp"] = notification.timestamp
    if notification.color is not None:
        embed["color"] = notification.color
    if notification.footer is not None:
        footer: dict[str, Any] = {"text": trim(notification.footer.text, FOOTER_LIMIT)}
        if notification.footer.icon_url:
            footer["icon_url"] = notification.footer.icon_url
        embed["footer"] = footer
    if notification.author is not None:
        author: dict[str, Any] = {"name": trim(notification.author.name, AUTHOR_LIMIT)}
        if notification.author.url:
            author["url"] = notification.author.url
        if notification.author.icon_url:
            author["icon_url"] = notification.author.icon_url
        embed["author"] = author
    if notification.thumbnail_url:
        embed["thumbnail"] = {"url": notification.thumbnail_url}
    if notification.image_url:
        embed["image"] = {"url": notification.image_url}
    fields = [field for field in (_embed_field(item) for item in notification.fields) if field is not None]
    if fields:
        embed["fields"] = fields[:MAX_FIELDS]
    return embed


def build_payload(endpoint: WebhookEndpoint, notification: Notification) -> dict[str, Any]:
    payload: dict[str, Any] = {"embeds": [build_embed(notification)]}
    if endpoint.username:
        payload["username"] = trim(endpoint.username, USERNAME_LIMIT)
    if endpoint.avatar_url:
        payload["avatar_url"] = endpoint.avatar_url
    return payload


class DiscordTransport(DeliveryTransport):
    """Single-attempt Discord webhook client over one shared session."""

    name = "discord"

    def __init__(self, session: requests.Session, *, timeout: float = 10.0) -> None:
        self._session = session
        self._timeout = timeout

    def send(self, endpoint: WebhookEndpoint, notification: Notification) -> DeliveryResult:
        payload = build_payload(endpoint, notification)
        try:
            response = self._session.post(endpoint.url, json=payload, timeout=self._timeout)
        except RequestException as exc:
            return DeliveryResult(endpoint=endpoint, ok=False, reason=str(exc))

        LOGGER.debug(
            "Discord webhook %s (%s) replied with %s",
            endpoint.name,
            redact_url(endpoint.url),
            response.status_code,
        )
        if not 200 <= response.status_code < 300:
            return DeliveryResult(
                endpoint=endpoint,
                ok=False,
                status=response.status_code,
                reason=f"Server replied with {response.status_code}: {_excerpt_response(response)}",
            )
        return DeliveryResult(endpoint=endpoint, ok=True, status=response.status_code)

    def close(self) -> None:
        self._session.close()
