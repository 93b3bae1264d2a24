from __future__ import annotations

import json
from typing import Any, Dict, List

import requests

from plexcord.config import WebhookEndpoint
from plexcord.notifications import (
    DiscordTransport,
    EmbedAuthor,
    EmbedField,
    EmbedFooter,
    NotificationFragment,
    build_session,
)
from plexcord.notifications.discord import build_embed, build_payload

ENDPOINT = WebhookEndpoint(
    name="main",
    url="https://discord.test/api/webhooks/1/token",
    username="Plex",
    avatar_url="https://cdn.test/avatar.png",
)


class FakeResponse:
    def __init__(self, status_code: int, payload: Dict[str, Any] | None = None):
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else ""


class FakeSession:
    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def test_send_posts_embed_with_request_metadata() -> None:
    session = FakeSession([FakeResponse(204)])
    transport = DiscordTransport(session, timeout=3.0)
    notification = NotificationFragment(
        title="Demo Show – Season 1",
        description="E01 · Pilot\nE02 · Second",
        color=0x57F287,
        footer=EmbedFooter(text="TV Shows"),
        author=EmbedAuthor(name="Home Server"),
    )

    result = transport.send(ENDPOINT, notification)

    assert result.ok is True
    assert result.status == 204
    call = session.calls[0]
    assert call["url"] == ENDPOINT.url
    assert call["timeout"] == 3.0
    payload = call["json"]
    assert payload["username"] == "Plex"
    assert payload["avatar_url"] == "https://cdn.test/avatar.png"
    embed = payload["embeds"][0]
    assert embed["type"] == "rich"
    assert embed["title"] == "Demo Show – Season 1"
    assert embed["description"] == "E01 · Pilot\nE02 · Second"
    assert embed["footer"] == {"text": "TV Shows"}
    assert embed["author"] == {"name": "Home Server"}


def test_non_success_status_is_a_failure_with_body_excerpt() -> None:
    session = FakeSession([FakeResponse(400, {"message": "Invalid Form Body"})])
    transport = DiscordTransport(session)

    result = transport.send(ENDPOINT, NotificationFragment(title="x"))

    assert result.ok is False
    assert result.status == 400
    assert "Invalid Form Body" in result.reason


def test_request_exception_is_a_failure() -> None:
    session = FakeSession([requests.ConnectionError("connection refused")])
    transport = DiscordTransport(session)

    result = transport.send(ENDPOINT, NotificationFragment(title="x"))

    assert result.ok is False
    assert result.status is None
    assert "connection refused" in result.reason


def test_close_closes_shared_session() -> None:
    session = FakeSession([])
    DiscordTransport(session).close()
    assert session.closed is True


def test_embed_is_trimmed_to_discord_limits() -> None:
    notification = NotificationFragment(
        title="t" * 300,
        description="d" * 5000,
        fields=tuple(EmbedField(name=f"f{index}", value="v") for index in range(30)),
    )

    embed = build_embed(notification)

    assert len(embed["title"]) == 256
    assert embed["title"].endswith("...")
    assert len(embed["description"]) == 4096
    assert len(embed["fields"]) == 25


def test_embed_omits_absent_fields() -> None:
    embed = build_embed(NotificationFragment(title="only"))

    assert embed == {"type": "rich", "title": "only"}


def test_payload_without_overrides_has_only_embeds() -> None:
    endpoint = WebhookEndpoint(name="plain", url="https://discord.test/api/webhooks/2/t")

    payload = build_payload(endpoint, NotificationFragment(title="x"))

    assert set(payload) == {"embeds"}


def test_build_session_mounts_sized_pool() -> None:
    session = build_session(4)
    try:
        adapter = session.get_adapter("https://discord.com/api/webhooks/1/t")
        assert adapter._pool_maxsize == 4
    finally:
        session.close()
